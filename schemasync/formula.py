# File: schemasync/formula.py
"""
schemasync - Formula Evaluator
===============================
Evaluates a single spreadsheet-style function call such as::

    ROUND($order.total, 2)
    CONCAT($customer.last_name, " ", $customer.first_name)
    IF($record, "yes", "no")

against a *record* value (``$record``) and a *datasource* mapping
(``$name.field.sub``).

Scope is deliberately small: exactly one top-level call, matched by a single
regular expression.  No nesting, no operators, and a comma always separates
arguments (even inside quotes).

Functions live in a registry keyed by upper-case name.  Each entry carries
its arity bounds, so a call with the wrong number of arguments raises
``MalformedArgumentError`` before the handler runs.
"""

from __future__ import annotations

import calendar
import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from schemasync.exceptions import MalformedArgumentError, UnsupportedFunctionError
from schemasync.utils import (
    get_value_from_path,
    is_datasource_reference,
    is_empty,
    is_numeric,
    to_text,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemasync.formula")

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_CALL_RE: re.Pattern[str] = re.compile(r"([A-Za-z_]\w*)\((.*?)\)")
_PARAM_NUMERIC_RE: re.Pattern[str] = re.compile(
    r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$"
)

RECORD_PLACEHOLDER: str = "$record"

_DATE_FORMATS: tuple = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
)

_UNIT_ALIASES: Dict[str, str] = {
    "second": "seconds",
    "sec": "seconds",
    "minute": "minutes",
    "min": "minutes",
    "hour": "hours",
    "day": "days",
    "week": "weeks",
    "month": "months",
    "year": "years",
}


# ---------------------------------------------------------------------------
# Function registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FormulaFunction:
    """A registered formula function and its accepted argument count."""

    name: str
    handler: Callable[[str, List[Any]], Any]
    min_args: int = 0
    max_args: Optional[int] = None  # None = variadic

    def check_arity(self, params: Sequence[Any]) -> None:
        count: int = len(params)
        if count < self.min_args or (self.max_args is not None and count > self.max_args):
            if self.max_args is None:
                expected: str = f"at least {self.min_args}"
            elif self.min_args == self.max_args:
                expected = str(self.min_args)
            else:
                expected = f"{self.min_args} to {self.max_args}"
            raise MalformedArgumentError(
                self.name, f"expects {expected} argument(s), got {count}"
            )


_REGISTRY: Dict[str, FormulaFunction] = {}


def register_function(
    name: str,
    min_args: int = 0,
    max_args: Optional[int] = None,
) -> Callable[[Callable[[str, List[Any]], Any]], Callable[[str, List[Any]], Any]]:
    """
    Decorator adding a handler to the function registry.

    The handler receives the upper-case function name and the resolved
    argument list.  Registering an existing name replaces it.
    """

    def decorator(
        handler: Callable[[str, List[Any]], Any],
    ) -> Callable[[str, List[Any]], Any]:
        key: str = name.upper()
        _REGISTRY[key] = FormulaFunction(key, handler, min_args, max_args)
        return handler

    return decorator


def supported_functions() -> List[str]:
    """Sorted list of registered function names."""
    return sorted(_REGISTRY)


def get_function(name: str) -> FormulaFunction:
    """Look up a function case-insensitively."""
    try:
        return _REGISTRY[name.upper()]
    except KeyError:
        raise UnsupportedFunctionError(name) from None


# ---------------------------------------------------------------------------
# Argument conversion
# ---------------------------------------------------------------------------


def _as_number(fn: str, value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and is_numeric(value):
        return float(value)
    raise MalformedArgumentError(fn, f"expected a number, got {value!r}", value)


def _as_int(fn: str, value: Any) -> int:
    number: float = _as_number(fn, value)
    if math.isnan(number) or math.isinf(number):
        raise MalformedArgumentError(fn, f"expected a finite number, got {value!r}", value)
    return int(number)


def _as_datetime(fn: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip():
        text: str = value.strip()
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            pass
        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
    raise MalformedArgumentError(fn, f"cannot parse {value!r} as a date", value)


def _add_months(value: datetime, months: int) -> datetime:
    """
    Shift *value* by whole months.  A day past the end of the target month
    rolls over into the next one (Jan 31 + 1 month → Mar 3 in 2023).
    """
    total: int = value.year * 12 + (value.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    last_day: int = calendar.monthrange(year, month)[1]
    if value.day <= last_day:
        return value.replace(year=year, month=month)
    overflow: int = value.day - last_day
    return value.replace(year=year, month=month, day=last_day) + timedelta(days=overflow)


def _substr(text: str, start: int, length: Optional[int] = None) -> str:
    """Multibyte substring: negative start counts from the end, negative length trims the tail."""
    size: int = len(text)
    if start < 0:
        start = max(size + start, 0)
    if start > size:
        return ""
    if length is None:
        return text[start:]
    if length < 0:
        end: int = size + length
        return text[start:end] if end > start else ""
    return text[start:start + length]


# ---------------------------------------------------------------------------
# Date functions
# ---------------------------------------------------------------------------


@register_function("YEAR", 1, 1)
def _fn_year(fn: str, params: List[Any]) -> int:
    return _as_datetime(fn, params[0]).year


@register_function("MONTH", 1, 1)
def _fn_month(fn: str, params: List[Any]) -> int:
    return _as_datetime(fn, params[0]).month


@register_function("DAY", 1, 1)
def _fn_day(fn: str, params: List[Any]) -> int:
    return _as_datetime(fn, params[0]).day


@register_function("DATE", 3, 3)
def _fn_date(fn: str, params: List[Any]) -> str:
    year: int = _as_int(fn, params[0])
    month: int = _as_int(fn, params[1])
    day: int = _as_int(fn, params[2])
    try:
        return date(year, month, day).strftime("%Y-%m-%d")
    except ValueError as exc:
        raise MalformedArgumentError(fn, str(exc), (year, month, day)) from exc


@register_function("NOW", 0, 0)
def _fn_now(fn: str, params: List[Any]) -> datetime:
    return datetime.now()


@register_function("DATEADD", 3, 3)
def _fn_dateadd(fn: str, params: List[Any]) -> datetime:
    base: datetime = _as_datetime(fn, params[0])
    unit: str = to_text(params[1]).strip().lower()
    unit = _UNIT_ALIASES.get(unit, unit)
    amount: float = _as_number(fn, params[2])

    if unit in ("months", "years"):
        months: int = int(amount) * (12 if unit == "years" else 1)
        return _add_months(base, months)
    if unit in ("seconds", "minutes", "hours", "days", "weeks"):
        return base + timedelta(**{unit: amount})
    raise MalformedArgumentError(fn, f"unknown date unit {params[1]!r}", params[1])


@register_function("DATEDIFF", 2, 2)
def _fn_datediff(fn: str, params: List[Any]) -> int:
    first: datetime = _as_datetime(fn, params[0])
    second: datetime = _as_datetime(fn, params[1])
    try:
        delta: timedelta = second - first
    except TypeError as exc:
        # naive vs. aware
        raise MalformedArgumentError(fn, str(exc)) from exc
    return abs(delta).days


# ---------------------------------------------------------------------------
# Numeric functions
# ---------------------------------------------------------------------------


@register_function("ROUND", 1, 2)
def _fn_round(fn: str, params: List[Any]) -> float:
    value: float = _as_number(fn, params[0])
    precision: int = _as_int(fn, params[1]) if len(params) > 1 else 0
    if math.isnan(value) or math.isinf(value):
        return value
    try:
        quantum: Decimal = Decimal(1).scaleb(-precision)
        rounded: Decimal = Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise MalformedArgumentError(fn, f"cannot round {value!r}", value) from exc
    return float(rounded)


@register_function("FLOOR", 1, 1)
def _fn_floor(fn: str, params: List[Any]) -> float:
    return float(math.floor(_as_number(fn, params[0])))


@register_function("CEIL", 1, 1)
def _fn_ceil(fn: str, params: List[Any]) -> float:
    return float(math.ceil(_as_number(fn, params[0])))


@register_function("ABS", 1, 1)
def _fn_abs(fn: str, params: List[Any]) -> float:
    return abs(_as_number(fn, params[0]))


@register_function("MAX", 1)
def _fn_max(fn: str, params: List[Any]) -> float:
    return max(_as_number(fn, p) for p in params)


@register_function("MIN", 1)
def _fn_min(fn: str, params: List[Any]) -> float:
    return min(_as_number(fn, p) for p in params)


@register_function("SUM", 1)
def _fn_sum(fn: str, params: List[Any]) -> float:
    return sum(_as_number(fn, p) for p in params)


@register_function("AVG", 1)
def _fn_avg(fn: str, params: List[Any]) -> float:
    return sum(_as_number(fn, p) for p in params) / len(params)


@register_function("POWER", 2, 2)
def _fn_power(fn: str, params: List[Any]) -> float:
    base: float = _as_number(fn, params[0])
    exponent: float = _as_number(fn, params[1])
    try:
        result: Any = base ** exponent
    except (OverflowError, ZeroDivisionError) as exc:
        raise MalformedArgumentError(fn, str(exc), (base, exponent)) from exc
    if isinstance(result, complex):
        raise MalformedArgumentError(fn, "result is not a real number", (base, exponent))
    return float(result)


# ---------------------------------------------------------------------------
# String functions
# ---------------------------------------------------------------------------


@register_function("LEFT", 2, 2)
def _fn_left(fn: str, params: List[Any]) -> str:
    return _substr(to_text(params[0]), 0, _as_int(fn, params[1]))


@register_function("RIGHT", 2, 2)
def _fn_right(fn: str, params: List[Any]) -> str:
    return _substr(to_text(params[0]), -_as_int(fn, params[1]))


@register_function("LEN", 1, 1)
def _fn_len(fn: str, params: List[Any]) -> int:
    return len(to_text(params[0]))


@register_function("LOWER", 1, 1)
def _fn_lower(fn: str, params: List[Any]) -> str:
    return to_text(params[0]).lower()


@register_function("UPPER", 1, 1)
def _fn_upper(fn: str, params: List[Any]) -> str:
    return to_text(params[0]).upper()


@register_function("TRIM", 1, 1)
def _fn_trim(fn: str, params: List[Any]) -> str:
    return to_text(params[0]).strip(" \t\n\r\0\x0b")


@register_function("CONCAT", 0)
def _fn_concat(fn: str, params: List[Any]) -> str:
    return "".join(to_text(p) for p in params)


@register_function("REPLACE", 3, 3)
def _fn_replace(fn: str, params: List[Any]) -> str:
    subject: str = to_text(params[0])
    search: str = to_text(params[1])
    if not search:
        return subject
    return subject.replace(search, to_text(params[2]))


@register_function("SUBSTRING", 2, 3)
def _fn_substring(fn: str, params: List[Any]) -> str:
    length: Optional[int] = None
    if len(params) > 2 and params[2] is not None:
        length = _as_int(fn, params[2])
    return _substr(to_text(params[0]), _as_int(fn, params[1]), length)


# ---------------------------------------------------------------------------
# Logical functions
# ---------------------------------------------------------------------------


@register_function("IF", 3, 3)
def _fn_if(fn: str, params: List[Any]) -> Any:
    return params[2] if is_empty(params[0]) else params[1]


@register_function("ISEMPTY", 1, 1)
def _fn_isempty(fn: str, params: List[Any]) -> bool:
    return is_empty(params[0])


@register_function("ISNULL", 1, 1)
def _fn_isnull(fn: str, params: List[Any]) -> bool:
    return params[0] is None


@register_function("ISNUMBER", 1, 1)
def _fn_isnumber(fn: str, params: List[Any]) -> bool:
    return is_numeric(params[0])


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class FormulaParser:
    """
    Evaluates formulas for one record against one datasource.

    Usage::

        parser = FormulaParser(record="2024-03-15", datasource={"order": {"total": 9.5}})
        parser.parse("YEAR($record)")          # 2024
        parser.parse("ROUND($order.total, 0)") # 10.0

    The parser holds no mutable state, so one instance may be shared across
    threads.
    """

    def __init__(
        self,
        record: Any = None,
        datasource: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._record: Any = record
        self._datasource: Mapping[str, Any] = datasource if datasource is not None else {}

    def parse(self, formula: Any) -> Any:
        """
        Evaluate *formula*.

        Returns *formula* unchanged when it is not a string or contains no
        function call.

        Raises:
            UnsupportedFunctionError: Unknown function name.
            MalformedArgumentError: Wrong arity or unconvertible argument.
        """
        if not isinstance(formula, str):
            return formula

        match: Optional[re.Match[str]] = _CALL_RE.search(formula)
        if match is None:
            logger.debug("Not a formula, passing through: %r", formula)
            return formula

        name: str = match.group(1)
        function: FormulaFunction = get_function(name)
        params: List[Any] = self.parse_params(match.group(2))
        function.check_arity(params)

        result: Any = function.handler(function.name, params)
        logger.debug("Evaluated %s(%d args) → %r", function.name, len(params), result)
        return result

    def parse_params(self, params_string: str) -> List[Any]:
        """Split and resolve the raw argument text of a call."""
        if not params_string.strip():
            return []
        return [self.resolve_param(token.strip()) for token in params_string.split(",")]

    def resolve_param(self, token: str) -> Any:
        if token == RECORD_PLACEHOLDER:
            return self._record
        if is_datasource_reference(token):
            return get_value_from_path(token[1:], self._datasource)
        if _PARAM_NUMERIC_RE.match(token):
            return float(token)
        return token.strip("\"'")


def evaluate(
    formula: Any,
    record: Any = None,
    datasource: Optional[Mapping[str, Any]] = None,
) -> Any:
    """Evaluate *formula* against *record* and *datasource* (see ``FormulaParser``)."""
    return FormulaParser(record, datasource).parse(formula)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "RECORD_PLACEHOLDER",
    "FormulaFunction",
    "FormulaParser",
    "evaluate",
    "get_function",
    "register_function",
    "supported_functions",
]
