# File: schemasync/combinations.py
"""
schemasync - Combinatorial Document Expander
=============================================

Given named parameter sets of candidates, generates one document per
combination (the cartesian product), keyed by a deterministic dedup key,
and reconciles those documents against what is already persisted.

Lifecycle of a generated-document record, driven by whether its key is
produced by the current pass::

    NONEXISTENT --present--> ACTIVE         (create)
    ACTIVE      --present--> ACTIVE         (update)
    ACTIVE      --absent---> SOFT_DELETED   (soft delete)
    SOFT_DELETED --present-> ACTIVE         (restore + update)
    SOFT_DELETED --absent--> SOFT_DELETED   (no-op)

Planning is pure; ``apply_plan`` performs the writes through a
``DocumentRepository`` inside one transaction, serialised per owner.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    Any,
    ContextManager,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Protocol,
    Tuple,
    Union,
    runtime_checkable,
)

from schemasync.exceptions import SchemaSyncError
from schemasync.models import (
    Candidate,
    DocumentState,
    GeneratedDocumentRecord,
    Identifier,
    MappingTarget,
    PlanAction,
)
from schemasync.utils import canonical_json, sha1_hex

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemasync.combinations")

Combination = Dict[str, Candidate]
CandidateLike = Union[Candidate, Mapping[str, Any]]
ParameterValue = Union[None, CandidateLike, Iterable[Optional[CandidateLike]]]


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------


def _as_candidate(value: CandidateLike) -> Candidate:
    if isinstance(value, Candidate):
        return value
    return Candidate.model_validate(value)


def _candidates(name: str, value: ParameterValue) -> List[Candidate]:
    """Non-null candidates of one parameter set; a lone candidate is a set of one."""
    if value is None:
        return []
    if isinstance(value, (Candidate, Mapping)):
        return [_as_candidate(value)]
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise TypeError(
            f"Parameter set {name!r} must be a candidate or a list of candidates, "
            f"got {type(value).__name__}"
        )
    return [_as_candidate(item) for item in value if item is not None]


def expand_combinations(parameter_sets: Mapping[str, ParameterValue]) -> List[Combination]:
    """
    Cartesian product of *parameter_sets*, folded left from ``[{}]``.

    Null candidates are dropped.  A parameter set left with no candidates
    empties the product wherever it appears.  An empty *parameter_sets*
    yields a single empty combination.

    Raises:
        TypeError: A parameter set is a scalar rather than candidates.
        pydantic.ValidationError: A mapping does not describe a candidate.

    Examples:
        >>> a1, a2 = Candidate(id=1, title="a1"), Candidate(id=2, title="a2")
        >>> len(expand_combinations({"A": [a1, a2], "B": [a1]}))
        2
    """
    combinations: List[Combination] = [{}]
    for name, value in parameter_sets.items():
        candidates: List[Candidate] = _candidates(name, value)
        combinations = [
            {**partial, name: candidate}
            for partial in combinations
            for candidate in candidates
        ]
    logger.debug(
        "Expanded %d parameter sets into %d combinations.",
        len(parameter_sets),
        len(combinations),
    )
    return combinations


def compute_dedup_key(
    combination: Mapping[str, Candidate],
    owner_type: str,
    owner_id: Identifier,
    document_id: Optional[Identifier] = None,
) -> str:
    """
    SHA-1 over the sorted ``{name: candidate id}`` map plus the owner, and
    the template document when one is given.

    Owner and document ids are hashed as text, so ``7`` and ``"7"`` name the
    same owner.
    """
    ids: Dict[str, Identifier] = {name: combination[name].id for name in sorted(combination)}
    payload: List[Any] = [ids, owner_type, str(owner_id)]
    if document_id is not None:
        payload.append(str(document_id))
    return sha1_hex(canonical_json(payload))


def build_label(base_name: str, combination: Mapping[str, Candidate]) -> Tuple[str, str]:
    """Return ``(name, description)`` for a combination."""
    titles: List[str] = [candidate.title for candidate in combination.values()]
    name: str = f"{base_name}【{'-'.join(titles)}】"
    description: str = "".join(
        f"{param}:{candidate.title}\n" for param, candidate in combination.items()
    )
    return name, description


def mapping_targets_for(combination: Mapping[str, Candidate]) -> List[MappingTarget]:
    return [
        MappingTarget(name=param, mapping_type=candidate.type, mapping_id=candidate.id)
        for param, candidate in combination.items()
    ]


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

_TRANSITIONS: Dict[Tuple[DocumentState, bool], Tuple[PlanAction, DocumentState]] = {
    (DocumentState.NONEXISTENT, True): (PlanAction.CREATE, DocumentState.ACTIVE),
    (DocumentState.ACTIVE, True): (PlanAction.UPDATE, DocumentState.ACTIVE),
    (DocumentState.ACTIVE, False): (PlanAction.SOFT_DELETE, DocumentState.SOFT_DELETED),
    (DocumentState.SOFT_DELETED, True): (PlanAction.RESTORE, DocumentState.ACTIVE),
    (DocumentState.SOFT_DELETED, False): (PlanAction.NOOP, DocumentState.SOFT_DELETED),
}


def transition(state: DocumentState, key_present: bool) -> Tuple[PlanAction, DocumentState]:
    """Look up the action and resulting state for one record."""
    try:
        return _TRANSITIONS[(state, key_present)]
    except KeyError:
        raise ValueError(
            f"No transition from {state.value} with key_present={key_present}"
        ) from None


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PlannedDocument:
    """One scheduled change to a generated-document record."""

    key: str
    action: PlanAction
    previous_state: DocumentState
    new_state: DocumentState
    name: str = ""
    description: str = ""
    mapping_targets: Tuple[MappingTarget, ...] = ()
    record_id: Optional[int] = None


@dataclass(slots=True)
class ReconciliationPlan:
    """Ordered list of planned changes for one owner."""

    owner_type: str
    owner_id: Identifier
    document_id: Optional[Identifier] = None
    items: List[PlannedDocument] = field(default_factory=list)

    def of_action(self, action: PlanAction) -> List[PlannedDocument]:
        return [item for item in self.items if item.action is action]

    @property
    def creates(self) -> List[PlannedDocument]:
        return self.of_action(PlanAction.CREATE)

    @property
    def updates(self) -> List[PlannedDocument]:
        return self.of_action(PlanAction.UPDATE)

    @property
    def restores(self) -> List[PlannedDocument]:
        return self.of_action(PlanAction.RESTORE)

    @property
    def soft_deletes(self) -> List[PlannedDocument]:
        return self.of_action(PlanAction.SOFT_DELETE)

    @property
    def active_keys(self) -> List[str]:
        """Keys that are active once the plan is applied."""
        return [item.key for item in self.items if item.new_state is DocumentState.ACTIVE]

    def counts(self) -> Dict[str, int]:
        result: Dict[str, int] = {action.value: 0 for action in PlanAction}
        for item in self.items:
            result[item.action.value] += 1
        return result

    def summary(self) -> str:
        parts: str = ", ".join(f"{count} {name}" for name, count in self.counts().items())
        return f"Plan for {self.owner_type}#{self.owner_id}: {parts}"


def _same_id(left: Optional[Identifier], right: Optional[Identifier]) -> bool:
    return str(left) == str(right)


def reconcile_generated_documents(
    owner_type: str,
    owner_id: Identifier,
    combinations: Iterable[Mapping[str, Candidate]],
    existing_records: Iterable[GeneratedDocumentRecord],
    base_name: str = "",
    document_id: Optional[Identifier] = None,
) -> ReconciliationPlan:
    """
    Plan the create/update/restore/soft-delete changes for one owner.

    Records belonging to other owners (or, when *document_id* is given, to
    other template documents) are ignored.  Repeated combinations are
    planned once.
    """
    owned: List[GeneratedDocumentRecord] = [
        record
        for record in existing_records
        if record.owner_type == owner_type
        and _same_id(record.owner_id, owner_id)
        and (document_id is None or _same_id(record.document_id, document_id))
    ]
    by_key: Dict[str, GeneratedDocumentRecord] = {record.key: record for record in owned}

    plan: ReconciliationPlan = ReconciliationPlan(
        owner_type=owner_type, owner_id=owner_id, document_id=document_id
    )
    produced: set = set()

    for combination in combinations:
        key: str = compute_dedup_key(combination, owner_type, owner_id, document_id)
        if key in produced:
            continue
        produced.add(key)

        existing: Optional[GeneratedDocumentRecord] = by_key.get(key)
        state: DocumentState = existing.state if existing is not None else DocumentState.NONEXISTENT
        action, new_state = transition(state, True)
        name, description = build_label(base_name, combination)
        plan.items.append(
            PlannedDocument(
                key=key,
                action=action,
                previous_state=state,
                new_state=new_state,
                name=name,
                description=description,
                mapping_targets=tuple(mapping_targets_for(combination)),
                record_id=existing.id if existing is not None else None,
            )
        )

    for record in owned:
        if record.key in produced:
            continue
        produced.add(record.key)
        action, new_state = transition(record.state, False)
        plan.items.append(
            PlannedDocument(
                key=record.key,
                action=action,
                previous_state=record.state,
                new_state=new_state,
                name=record.name,
                description=record.description,
                mapping_targets=tuple(record.mapping_targets),
                record_id=record.id,
            )
        )

    logger.debug(plan.summary())
    return plan


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


@runtime_checkable
class DocumentRepository(Protocol):
    """Storage for generated-document records."""

    def find_by_key(self, key: str) -> Optional[GeneratedDocumentRecord]: ...

    def list_for_owner(
        self,
        owner_type: str,
        owner_id: Identifier,
        document_id: Optional[Identifier] = None,
    ) -> List[GeneratedDocumentRecord]: ...

    def create(self, record: GeneratedDocumentRecord) -> GeneratedDocumentRecord: ...

    def update(self, record: GeneratedDocumentRecord) -> GeneratedDocumentRecord: ...

    def soft_delete(self, key: str, when: Optional[datetime] = None) -> None: ...

    def restore(self, key: str) -> None: ...

    def transaction(self) -> ContextManager[Any]: ...


class InMemoryDocumentRepository:
    """
    Dict-backed ``DocumentRepository``.

    ``transaction()`` snapshots the store and restores it if the block
    raises.  Records handed in and out are copies.
    """

    def __init__(self, records: Optional[Iterable[GeneratedDocumentRecord]] = None) -> None:
        self._records: Dict[str, GeneratedDocumentRecord] = {}
        self._next_id: int = 1
        self._lock: threading.RLock = threading.RLock()
        for record in records or ():
            self.create(record)

    def __len__(self) -> int:
        return len(self._records)

    def all(self) -> List[GeneratedDocumentRecord]:
        with self._lock:
            return [record.model_copy(deep=True) for record in self._records.values()]

    def find_by_key(self, key: str) -> Optional[GeneratedDocumentRecord]:
        with self._lock:
            record: Optional[GeneratedDocumentRecord] = self._records.get(key)
            return record.model_copy(deep=True) if record is not None else None

    def list_for_owner(
        self,
        owner_type: str,
        owner_id: Identifier,
        document_id: Optional[Identifier] = None,
    ) -> List[GeneratedDocumentRecord]:
        with self._lock:
            return [
                record.model_copy(deep=True)
                for record in self._records.values()
                if record.owner_type == owner_type
                and _same_id(record.owner_id, owner_id)
                and (document_id is None or _same_id(record.document_id, document_id))
            ]

    def create(self, record: GeneratedDocumentRecord) -> GeneratedDocumentRecord:
        with self._lock:
            if record.key in self._records:
                raise SchemaSyncError(f"Generated document {record.key} already exists")
            stored: GeneratedDocumentRecord = record.model_copy(deep=True)
            if stored.id is None:
                stored.id = self._next_id
            self._next_id = max(self._next_id, stored.id) + 1
            self._records[stored.key] = stored
            return stored.model_copy(deep=True)

    def update(self, record: GeneratedDocumentRecord) -> GeneratedDocumentRecord:
        with self._lock:
            if record.key not in self._records:
                raise SchemaSyncError(f"Generated document {record.key} does not exist")
            stored: GeneratedDocumentRecord = record.model_copy(deep=True)
            stored.id = self._records[record.key].id
            self._records[stored.key] = stored
            return stored.model_copy(deep=True)

    def soft_delete(self, key: str, when: Optional[datetime] = None) -> None:
        with self._lock:
            self._require(key).deleted_at = when or datetime.now()

    def restore(self, key: str) -> None:
        with self._lock:
            self._require(key).deleted_at = None

    @contextmanager
    def transaction(self) -> Iterator["InMemoryDocumentRepository"]:
        with self._lock:
            snapshot: Dict[str, GeneratedDocumentRecord] = {
                key: record.model_copy(deep=True) for key, record in self._records.items()
            }
            next_id: int = self._next_id
            try:
                yield self
            except BaseException:
                self._records = snapshot
                self._next_id = next_id
                logger.warning("Transaction rolled back (%d records restored).", len(snapshot))
                raise

    def _require(self, key: str) -> GeneratedDocumentRecord:
        record: Optional[GeneratedDocumentRecord] = self._records.get(key)
        if record is None:
            raise SchemaSyncError(f"Generated document {key} does not exist")
        return record


# ---------------------------------------------------------------------------
# Applying a plan
# ---------------------------------------------------------------------------

# Fixed pool of locks; owners hashing to the same stripe share one.
OWNER_LOCK_STRIPES: int = 64
_OWNER_LOCKS: Tuple[threading.RLock, ...] = tuple(
    threading.RLock() for _ in range(OWNER_LOCK_STRIPES)
)


def _owner_lock(owner_type: str, owner_id: Identifier) -> threading.RLock:
    return _OWNER_LOCKS[hash((owner_type, str(owner_id))) % OWNER_LOCK_STRIPES]


@dataclass(slots=True)
class ApplyResult:
    """Counts of changes written by ``apply_plan``."""

    created: int = 0
    updated: int = 0
    restored: int = 0
    soft_deleted: int = 0
    unchanged: int = 0

    def summary(self) -> str:
        return (
            f"{self.created} created, {self.updated} updated, {self.restored} restored, "
            f"{self.soft_deleted} soft-deleted, {self.unchanged} unchanged"
        )


def _refresh(
    repository: DocumentRepository,
    item: PlannedDocument,
) -> None:
    record: Optional[GeneratedDocumentRecord] = repository.find_by_key(item.key)
    if record is None:
        raise SchemaSyncError(f"Generated document {item.key} disappeared during apply")
    record.name = item.name
    record.description = item.description
    record.mapping_targets = list(item.mapping_targets)
    repository.update(record)


def apply_plan(
    plan: ReconciliationPlan,
    repository: DocumentRepository,
    now: Optional[datetime] = None,
) -> ApplyResult:
    """
    Write *plan* through *repository*.

    Creates, updates and restores run before soft deletes, all inside one
    repository transaction and under the owner's lock.
    """
    result: ApplyResult = ApplyResult()
    deleted_at: datetime = now or datetime.now()

    with _owner_lock(plan.owner_type, plan.owner_id):
        with repository.transaction():
            for item in plan.items:
                if item.action is PlanAction.CREATE:
                    repository.create(
                        GeneratedDocumentRecord(
                            key=item.key,
                            owner_type=plan.owner_type,
                            owner_id=plan.owner_id,
                            document_id=plan.document_id,
                            name=item.name,
                            description=item.description,
                            mapping_targets=list(item.mapping_targets),
                        )
                    )
                    result.created += 1
                elif item.action is PlanAction.UPDATE:
                    _refresh(repository, item)
                    result.updated += 1
                elif item.action is PlanAction.RESTORE:
                    repository.restore(item.key)
                    _refresh(repository, item)
                    result.restored += 1
                elif item.action is PlanAction.NOOP:
                    result.unchanged += 1

            for item in plan.soft_deletes:
                repository.soft_delete(item.key, deleted_at)
                result.soft_deleted += 1

    logger.info("Applied plan for %s#%s: %s.", plan.owner_type, plan.owner_id, result.summary())
    return result


def generate_documents(
    repository: DocumentRepository,
    owner_type: str,
    owner_id: Identifier,
    parameter_sets: Mapping[str, ParameterValue],
    base_name: str = "",
    document_id: Optional[Identifier] = None,
    now: Optional[datetime] = None,
) -> Tuple[ReconciliationPlan, ApplyResult]:
    """Expand, plan and apply in one step for a single owner."""
    with _owner_lock(owner_type, owner_id):
        existing: List[GeneratedDocumentRecord] = repository.list_for_owner(
            owner_type, owner_id, document_id
        )
        plan: ReconciliationPlan = reconcile_generated_documents(
            owner_type,
            owner_id,
            expand_combinations(parameter_sets),
            existing,
            base_name=base_name,
            document_id=document_id,
        )
        result: ApplyResult = apply_plan(plan, repository, now=now)
    return plan, result


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "Combination",
    "expand_combinations",
    "compute_dedup_key",
    "build_label",
    "mapping_targets_for",
    "transition",
    "PlannedDocument",
    "ReconciliationPlan",
    "reconcile_generated_documents",
    "DocumentRepository",
    "InMemoryDocumentRepository",
    "ApplyResult",
    "apply_plan",
    "generate_documents",
    "OWNER_LOCK_STRIPES",
]
