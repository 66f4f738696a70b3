# File: schemasync/cli.py
"""
schemasync - Command-Line Interface
====================================

Usage examples::

    # Evaluate a formula
    schemasync eval 'ROUND($order.total, 2)' --datasource order.yaml
    schemasync eval 'YEAR($record)' --record '"2024-03-15"'

    # Install a generated bundle into the current project
    schemasync install bundle.zip --dest . --workers 4 --detailed

    # Check a manifest without installing anything
    schemasync check-manifest build/filelist.json

    # Aggregate schema files for upload
    schemasync aggregate database/schemas --output build/schemas.json

    # Preview the documents a parameter file would generate
    schemasync expand params.yaml --owner-type Order --owner-id 42 --base-name Invoice

Exit codes:
    0 — success
    1 — validation error
    2 — formula error
    3 — install error
    4 — input/argument error
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, NoReturn, Optional, Sequence

from pydantic import ValidationError

from schemasync.exceptions import (
    ArchiveError,
    ConfigError,
    FormulaError,
    ManifestFormatError,
    SchemaFormatError,
)

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemasync")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_VALIDATION_ERROR: int = 1
EXIT_FORMULA_ERROR: int = 2
EXIT_INSTALL_ERROR: int = 3
EXIT_INPUT_ERROR: int = 4


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the schemasync logger.

    Args:
        verbosity: -1 = ERROR, 0 = WARNING, 1 = INFO, 2+ = DEBUG.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    elif verbosity == 0:
        level = logging.WARNING
    else:
        level = logging.ERROR

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter("%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s", datefmt="%H:%M:%S")
    )

    root_logger: logging.Logger = logging.getLogger("schemasync")
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _add_verbosity(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("verbosity")
    group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    )
    group.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress all log output except errors.",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    from schemasync import __version__

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="schemasync",
        description=(
            "schemasync — schema bundle installer, formula evaluator and "
            "combinatorial document planner."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s eval 'CONCAT(\"a\", \"b\")'\n"
            "  %(prog)s install bundle.zip --dest .\n"
            "  %(prog)s aggregate database/schemas -o schemas.json\n"
        ),
    )
    parser.add_argument("--version", action="version", version=f"schemasync v{__version__}")

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    # --- eval ---
    p_eval = sub.add_parser("eval", help="Evaluate a single formula.")
    p_eval.add_argument("formula", help="Formula, e.g. 'ROUND($order.total, 2)'.")
    p_eval.add_argument(
        "--record",
        default=None,
        metavar="JSON",
        help="Value of $record, as JSON (non-JSON text is taken as a plain string).",
    )
    p_eval.add_argument(
        "--datasource",
        default=None,
        metavar="FILE",
        help="YAML/JSON mapping used for $name.field references.",
    )
    _add_verbosity(p_eval)

    # --- install ---
    p_install = sub.add_parser("install", help="Install a generated bundle (ZIP).")
    p_install.add_argument("bundle", help="Path to the bundle ZIP.")
    p_install.add_argument("--dest", required=True, metavar="DIR", help="Project root to install into.")
    p_install.add_argument("--config", default=None, metavar="FILE", help="YAML/JSON config file.")
    p_install.add_argument("--workers", type=int, default=None, metavar="N", help="Copy worker threads.")
    replace_group = p_install.add_mutually_exclusive_group()
    replace_group.add_argument(
        "--default-replace",
        dest="default_replace",
        action="store_const",
        const=True,
        default=None,
        help="Treat entries without a replace flag as replace=true.",
    )
    replace_group.add_argument(
        "--no-default-replace",
        dest="default_replace",
        action="store_const",
        const=False,
        help="Treat entries without a replace flag as replace=false.",
    )
    p_install.add_argument("--audit-dir", default=None, metavar="DIR", help="Keep a copy of each manifest here.")
    p_install.add_argument("--detailed", action="store_true", help="Print one line per manifest entry.")
    p_install.add_argument("--json", action="store_true", help="Print the report as JSON.")
    _add_verbosity(p_install)

    # --- check-manifest ---
    p_check = sub.add_parser("check-manifest", help="Validate a filelist.json without installing.")
    p_check.add_argument("manifest", help="Path to filelist.json.")
    p_check.add_argument(
        "--default-replace",
        dest="default_replace",
        action="store_const",
        const=True,
        default=None,
        help="Treat entries without a replace flag as replace=true.",
    )
    _add_verbosity(p_check)

    # --- aggregate ---
    p_agg = sub.add_parser("aggregate", help="Merge <root>/<group>/<object>.yaml schema files.")
    p_agg.add_argument("roots", nargs="*", metavar="ROOT", help="Schema roots (default: from config).")
    p_agg.add_argument("--config", default=None, metavar="FILE", help="YAML/JSON config file.")
    p_agg.add_argument("-o", "--output", default=None, metavar="FILE", help="Write JSON here instead of stdout.")
    _add_verbosity(p_agg)

    # --- expand ---
    p_expand = sub.add_parser("expand", help="Expand parameter sets into document combinations.")
    p_expand.add_argument("file", help="YAML/JSON file with 'parameters' (and optionally 'existing').")
    p_expand.add_argument("--owner-type", default=None, help="Owning record type.")
    p_expand.add_argument("--owner-id", default=None, help="Owning record id.")
    p_expand.add_argument("--base-name", default=None, help="Base document name for labels.")
    _add_verbosity(p_expand)

    return parser


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def _parse_identifier(value: Any) -> Any:
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


def _parse_record(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _run_eval(args: argparse.Namespace) -> int:
    from schemasync.config import load_structured_file
    from schemasync.formula import evaluate

    datasource: Dict[str, Any] = {}
    if args.datasource:
        try:
            datasource = load_structured_file(Path(args.datasource))
        except (FileNotFoundError, ValueError) as exc:
            logger.error("Failed to load datasource: %s", exc)
            return EXIT_INPUT_ERROR

    try:
        result: Any = evaluate(args.formula, _parse_record(args.record), datasource)
    except FormulaError as exc:
        logger.error("%s", exc)
        return EXIT_FORMULA_ERROR

    print(result if isinstance(result, str) else _to_json(result))
    return EXIT_SUCCESS


def _run_install(args: argparse.Namespace) -> int:
    from schemasync.archive import BundleInstaller, InstallResult
    from schemasync.config import load_config

    overrides: Dict[str, Any] = {
        "workers": args.workers,
        "default_replace": args.default_replace,
        "audit_dir": args.audit_dir,
    }
    try:
        config = load_config(Path(args.config) if args.config else None, overrides)
    except ConfigError as exc:
        logger.error("%s", exc)
        return EXIT_INPUT_ERROR

    try:
        result: InstallResult = BundleInstaller(Path(args.dest), config).install(Path(args.bundle))
    except (ArchiveError, ManifestFormatError) as exc:
        logger.error("Install failed: %s", exc)
        return EXIT_INSTALL_ERROR

    if args.json:
        print(result.report.to_json())
    else:
        print(result.summary())
        if args.detailed:
            for outcome in result.report.outcomes:
                reason: str = f" ({outcome.reason})" if outcome.reason else ""
                print(
                    f"  {outcome.status.value:9s} [{outcome.category}] "
                    f"{outcome.source} → {outcome.destination}{reason}"
                )

    return EXIT_INSTALL_ERROR if result.report.has_failures else EXIT_SUCCESS


def _run_check_manifest(args: argparse.Namespace) -> int:
    from schemasync.manifest import load_manifest
    from schemasync.validators import validate_manifest_entries

    try:
        entries = load_manifest(Path(args.manifest), default_replace=args.default_replace)
    except ManifestFormatError as exc:
        logger.error("%s", exc)
        return EXIT_INPUT_ERROR

    result = validate_manifest_entries(entries)
    print(result.format_report(include_info=args.verbose > 0))
    return EXIT_SUCCESS if result.is_valid else EXIT_VALIDATION_ERROR


def _run_aggregate(args: argparse.Namespace) -> int:
    from schemasync.config import load_config
    from schemasync.schemas import aggregate_schemas
    from schemasync.utils import write_text_atomic
    from schemasync.validators import validate_schemas

    roots: List[str] = list(args.roots)
    if not roots:
        try:
            roots = load_config(Path(args.config) if args.config else None).schema_paths
        except ConfigError as exc:
            logger.error("%s", exc)
            return EXIT_INPUT_ERROR

    try:
        schemas: Dict[str, Dict[str, Any]] = aggregate_schemas(roots)
    except SchemaFormatError as exc:
        logger.error("%s", exc)
        return EXIT_INPUT_ERROR

    validation = validate_schemas(schemas)
    if not validation.is_valid:
        print(validation.format_report(), file=sys.stderr)
        return EXIT_VALIDATION_ERROR
    for warning in validation.warnings:
        logger.warning("%s", warning.message)

    payload: str = _to_json(schemas)
    if args.output:
        write_text_atomic(Path(args.output), payload + "\n")
        logger.info("Wrote %d schemas to %s.", len(schemas), args.output)
    else:
        print(payload)
    return EXIT_SUCCESS


def _run_expand(args: argparse.Namespace) -> int:
    from schemasync.combinations import (
        build_label,
        compute_dedup_key,
        expand_combinations,
        reconcile_generated_documents,
    )
    from schemasync.config import load_structured_file
    from schemasync.models import GeneratedDocumentRecord

    try:
        raw: Dict[str, Any] = load_structured_file(Path(args.file))
    except (FileNotFoundError, ValueError) as exc:
        logger.error("Failed to load parameter file: %s", exc)
        return EXIT_INPUT_ERROR

    parameters: Any = raw.get("parameters", {})
    if not isinstance(parameters, Mapping):
        logger.error("'parameters' must be a mapping of name → candidates.")
        return EXIT_INPUT_ERROR

    owner_type: Optional[str] = args.owner_type or raw.get("owner_type")
    owner_id: Any = _parse_identifier(args.owner_id if args.owner_id is not None else raw.get("owner_id"))
    base_name: str = args.base_name if args.base_name is not None else str(raw.get("base_name", ""))

    try:
        combinations = expand_combinations(parameters)
        existing: List[GeneratedDocumentRecord] = [
            GeneratedDocumentRecord.model_validate(item) for item in raw.get("existing", [])
        ]
    except (ValidationError, TypeError) as exc:
        logger.error("Invalid parameter file: %s", exc)
        return EXIT_INPUT_ERROR

    output: Dict[str, Any] = {"combinations": []}
    for combination in combinations:
        name, description = build_label(base_name, combination)
        item: Dict[str, Any] = {
            "name": name,
            "description": description,
            "parameters": {param: candidate.id for param, candidate in combination.items()},
        }
        if owner_type and owner_id is not None:
            item["key"] = compute_dedup_key(combination, owner_type, owner_id)
        output["combinations"].append(item)

    if owner_type and owner_id is not None:
        plan = reconcile_generated_documents(
            owner_type, owner_id, combinations, existing, base_name=base_name
        )
        output["plan"] = [
            {"key": p.key, "action": p.action.value, "name": p.name} for p in plan.items
        ]
        output["counts"] = plan.counts()

    print(_to_json(output))
    return EXIT_SUCCESS


_COMMANDS = {
    "eval": _run_eval,
    "install": _run_install,
    "check-manifest": _run_check_manifest,
    "aggregate": _run_aggregate,
    "expand": _run_expand,
}


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Parse *argv*, run the selected command and return its exit code.

    Can be called directly for testing.
    """
    parser: argparse.ArgumentParser = _build_parser()
    try:
        args: argparse.Namespace = parser.parse_args(argv)
    except SystemExit as exc:
        # --help / --version exit 0; usage errors exit 2
        return EXIT_SUCCESS if exc.code in (0, None) else EXIT_INPUT_ERROR

    # verbosity flags belong to the subcommands
    _setup_logging(-1 if getattr(args, "quiet", False) else getattr(args, "verbose", 0))

    if args.command is None:
        parser.print_usage(sys.stderr)
        return EXIT_INPUT_ERROR

    exit_code: int = _COMMANDS[args.command](args)
    if exit_code != EXIT_SUCCESS:
        logger.debug("Command %s finished with exit code %d.", args.command, exit_code)
    return exit_code


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """Console-script entry point."""
    sys.exit(main(argv))


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "main",
    "cli_main",
    "EXIT_SUCCESS",
    "EXIT_VALIDATION_ERROR",
    "EXIT_FORMULA_ERROR",
    "EXIT_INSTALL_ERROR",
    "EXIT_INPUT_ERROR",
]

logger.debug("schemasync.cli loaded.")
