"""
Models for the kinsync integration.
"""

from .records import CanonicalHousehold, CanonicalPerson
from .fields import EntityKind, FieldKind, FieldSpec, FiberySchema
from .plan import (
    ExistingRecord, ExistingRecordIndex, RelationRef,
    WriteAction, WriteCommand, WritePlan, WriteResult
)
from .sync import Direction, DirectionSummary, RunStage, SyncRun, SyncStatus
from .config import FiberySettings, HttpSettings, PlanningCenterSettings, SyncSettings

__all__ = [
    # Canonical records and field table
    "CanonicalHousehold",
    "CanonicalPerson",
    "EntityKind",
    "FieldKind",
    "FieldSpec",
    "FiberySchema",

    # Reconciliation plan
    "ExistingRecord",
    "ExistingRecordIndex",
    "RelationRef",
    "WriteAction",
    "WriteCommand",
    "WritePlan",
    "WriteResult",

    # Runs and settings
    "Direction",
    "DirectionSummary",
    "RunStage",
    "SyncRun",
    "SyncStatus",
    "FiberySettings",
    "HttpSettings",
    "PlanningCenterSettings",
    "SyncSettings",
]
