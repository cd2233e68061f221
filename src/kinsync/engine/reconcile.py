"""
Natural-key reconciliation: decides create, patch or skip per record and resolves
the household -> people relationship across a two-phase batch.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Protocol, Sequence

from ..exceptions import ReconciliationBatchError
from ..models.fields import EntityKind, FieldKind, FieldSpec, natural_key_field
from ..models.plan import (
    ExistingRecordIndex, RelationRef, WriteAction, WriteCommand, WritePlan, WriteResult
)
from .transforms import FieldTransformer, natural_key_of, parse_datetime, record_values

logger = logging.getLogger(__name__)

DEFAULT_MAX_PER_RUN = 500


class Sink(Protocol):
    """Destination side of a sync direction."""

    def writable_fields(self, kind: EntityKind) -> Sequence[FieldSpec]:
        """Fields this destination accepts, natural key included."""
        ...

    def find_existing(self, kind: EntityKind, keys: Iterable[str]) -> ExistingRecordIndex:
        """Records whose natural key is in ``keys``, with a snapshot of every writable field."""
        ...

    def write(self, commands: List[WriteCommand]) -> List[WriteResult]:
        """Execute commands in order. Raises ReconciliationBatchError if the batch is rejected."""
        ...


@dataclass
class ReconcileOutcome:
    """Result of reconciling one entity kind."""
    kind: EntityKind
    processed: List[Any] = field(default_factory=list)
    deferred: int = 0
    # earliest modification stamp among deferred records
    resume_at: Optional[str] = None
    plan: Optional[WritePlan] = None
    results: List[WriteResult] = field(default_factory=list)
    # natural key -> destination ID for every record located or written
    destination_ids: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def created(self) -> int:
        return self.plan.creates if self.plan else 0

    @property
    def updated(self) -> int:
        return self.plan.updates if self.plan else 0

    @property
    def skipped(self) -> int:
        return len(self.plan.skipped) if self.plan else 0


def truncate(records: Sequence[Any], limit: int, floor: Optional[str] = None) -> tuple:
    """Keep the first ``limit`` records in pull order.

    Records modified at or before ``floor`` (the cursor the batch was read from) are
    re-reads of the previous run's boundary. They are always kept and do not count
    toward ``limit``.

    Returns:
        (kept records, records deferred to a later run)
    """
    floor_at = parse_datetime(floor) if floor else None
    kept: List[Any] = []
    deferred: List[Any] = []
    counted = 0
    for record in records:
        stamp = getattr(record, "modified_at", None)
        stamp_at = parse_datetime(stamp) if stamp else None
        if floor_at is not None and stamp_at is not None and stamp_at <= floor_at:
            kept.append(record)
        elif counted < limit:
            kept.append(record)
            counted += 1
        else:
            deferred.append(record)
    return kept, deferred


def resume_point(deferred: Sequence[Any]) -> Optional[str]:
    """Earliest modification stamp among deferred records, None if any lacks one."""
    earliest, earliest_at = None, None
    for record in deferred:
        stamp = getattr(record, "modified_at", None)
        stamp_at = parse_datetime(stamp) if stamp else None
        if stamp_at is None:
            return None
        if earliest_at is None or stamp_at < earliest_at:
            earliest, earliest_at = stamp, stamp_at
    return earliest


def compute_patch(
    desired: Mapping[str, Any],
    snapshot: Mapping[str, Any],
    *,
    specs: Sequence[FieldSpec],
    anchor: str,
    always_refresh: FrozenSet[str] = frozenset(),
) -> Dict[str, Any]:
    """Minimal update for an existing record.

    A field is included when its value differs from the snapshot, when it is in
    ``always_refresh``, or when the snapshot has no value for it. Absent values are then
    dropped, except the natural-key anchor which is always kept.
    """
    kinds = {spec.name: spec.kind for spec in specs}
    patch: Dict[str, Any] = {}
    for name, new_value in desired.items():
        current = snapshot.get(name)
        changed = not FieldTransformer.same_value(kinds.get(name, FieldKind.TEXT), current, new_value)
        if changed or name in always_refresh or current is None:
            patch[name] = new_value

    patch = {name: value for name, value in patch.items() if value is not None or name == anchor}
    patch[anchor] = desired.get(anchor)
    return patch


def plan_writes(
    kind: EntityKind,
    records: Sequence[Any],
    existing: ExistingRecordIndex,
    *,
    specs: Sequence[FieldSpec],
    always_refresh: FrozenSet[str] = frozenset(),
    relations: Optional[Mapping[str, RelationRef]] = None,
) -> WritePlan:
    """Decide create, update or skip for each record.

    Args:
        kind: Entity kind of ``records``
        records: Canonical records in pull order
        existing: Destination records found for the batch keys
        specs: Fields the destination accepts
        always_refresh: Fields re-sent on every update
        relations: Resolved household link per person natural key

    Returns:
        WritePlan with commands in input order
    """
    anchor = natural_key_field(kind).name
    plan = WritePlan(kind=kind)

    for record in records:
        key = natural_key_of(record, kind)
        desired = record_values(record, specs)
        for spec in specs:
            if spec.kind == FieldKind.RELATION:
                desired[spec.name] = (relations or {}).get(key, RelationRef(None))

        match = existing.get(key) if key else None
        if match is None:
            fields = {name: value for name, value in desired.items() if value is not None or name == anchor}
            plan.commands.append(WriteCommand(WriteAction.CREATE, kind, key, fields))
            continue

        patch = compute_patch(desired, match.snapshot, specs=specs, anchor=anchor, always_refresh=always_refresh)
        if len(patch) <= 1:
            plan.skipped.append(key)
            continue
        plan.commands.append(WriteCommand(WriteAction.UPDATE, kind, key, patch, destination_id=match.destination_id))

    return plan


class Reconciler:
    """Pushes canonical batches into a sink, households before people."""

    def __init__(
        self,
        sink: Sink,
        *,
        max_per_run: int = DEFAULT_MAX_PER_RUN,
        always_refresh: Optional[Mapping[EntityKind, Iterable[str]]] = None,
        label: str = "",
    ):
        self.sink = sink
        self.max_per_run = max_per_run
        self.always_refresh = {kind: frozenset(names) for kind, names in (always_refresh or {}).items()}
        self.label = label or type(sink).__name__

    def reconcile_households(self, households: Sequence[Any], floor: Optional[str] = None) -> ReconcileOutcome:
        """Reconcile and write households. The outcome's ``destination_ids`` feeds people.

        Args:
            households: Canonical households in pull order
            floor: Cursor the batch was read from, see ``truncate``
        """
        kept, deferred = self._truncate(EntityKind.HOUSEHOLD, households, floor)
        return self._reconcile(EntityKind.HOUSEHOLD, kept, deferred)

    def reconcile_people(
        self,
        people: Sequence[Any],
        household_ids: Mapping[str, str],
        floor: Optional[str] = None,
    ) -> ReconcileOutcome:
        """Reconcile and write people, linking each to its household's destination ID.

        Args:
            people: Canonical people in pull order
            household_ids: Household natural key -> destination ID from the household phase
            floor: Cursor the batch was read from, see ``truncate``
        """
        kept, deferred = self._truncate(EntityKind.PERSON, people, floor)
        index = dict(household_ids)
        warnings: List[str] = []

        referenced = {p.household_id for p in kept if p.household_id}
        missing = referenced - set(index)
        if missing:
            located = self.sink.find_existing(EntityKind.HOUSEHOLD, sorted(missing))
            index.update({key: record.destination_id for key, record in located.items()})

        relations: Dict[str, RelationRef] = {}
        for person in kept:
            if not person.person_id:
                continue
            target = index.get(person.household_id) if person.household_id else None
            if person.household_id and target is None:
                message = (
                    f"{self.label}: household {person.household_id} for person {person.person_id} "
                    f"not found, clearing the link"
                )
                logger.warning(message)
                warnings.append(message)
            relations[person.person_id] = RelationRef(target)

        outcome = self._reconcile(EntityKind.PERSON, kept, deferred, relations=relations)
        outcome.warnings = warnings + outcome.warnings
        return outcome

    def _truncate(self, kind: EntityKind, records: Sequence[Any], floor: Optional[str]) -> tuple:
        kept, deferred = truncate(records, self.max_per_run, floor)
        if deferred:
            logger.warning(
                f"{self.label}: {len(records)} {kind.value} records exceed the limit of {self.max_per_run}, "
                f"deferring {len(deferred)} to the next run"
            )
        return kept, deferred

    def _reconcile(
        self,
        kind: EntityKind,
        kept: Sequence[Any],
        deferred: Sequence[Any],
        *,
        relations: Optional[Mapping[str, RelationRef]] = None,
    ) -> ReconcileOutcome:
        outcome = ReconcileOutcome(
            kind=kind, processed=list(kept), deferred=len(deferred), resume_at=resume_point(deferred)
        )
        if not kept:
            outcome.plan = WritePlan(kind=kind)
            return outcome

        keys = sorted({key for key in (natural_key_of(r, kind) for r in kept) if key})
        if keys:
            existing = self.sink.find_existing(kind, keys)
        else:
            logger.info(f"{self.label}: no {kind.value} natural keys in batch, creating all records")
            existing = {}
        logger.info(f"{self.label}: found {len(existing)} existing {kind.value} records for {len(keys)} keys")

        plan = plan_writes(
            kind,
            kept,
            existing,
            specs=self.sink.writable_fields(kind),
            always_refresh=self.always_refresh.get(kind, frozenset()),
            relations=relations,
        )
        outcome.plan = plan
        logger.info(
            f"{self.label}: will execute {plan.updates} updates, {plan.creates} creates, "
            f"{len(plan.skipped)} skipped (no changes) for {kind.value}"
        )

        outcome.destination_ids = {key: record.destination_id for key, record in existing.items()}
        if plan.commands:
            try:
                outcome.results = self.sink.write(plan.commands)
            except ReconciliationBatchError:
                raise
            except Exception as e:
                raise ReconciliationBatchError(f"{self.label}: {kind.value} write batch failed: {e}") from e

        for result in outcome.results:
            if result.natural_key and result.destination_id:
                outcome.destination_ids[result.natural_key] = result.destination_id
        return outcome
