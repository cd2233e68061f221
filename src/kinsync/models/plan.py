"""
Write-plan types produced by the reconciler and consumed by sink connectors.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .fields import EntityKind


class WriteAction(str, Enum):
    """What a sink should do with a record."""
    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class RelationRef:
    """Household link on a person write.

    ``RelationRef(None)`` clears the link explicitly. It is a value, not the absent
    sentinel, so it survives null suppression.
    """
    destination_id: Optional[str] = None

    @property
    def cleared(self) -> bool:
        return self.destination_id is None


@dataclass(frozen=True)
class ExistingRecord:
    """A destination record matched by natural key.

    ``snapshot`` maps canonical field names to normalised current values. An empty
    snapshot means the destination cannot report current values, so every field is unset.
    """
    destination_id: str
    snapshot: Dict[str, Any] = field(default_factory=dict)


ExistingRecordIndex = Dict[str, ExistingRecord]


@dataclass
class WriteCommand:
    """One create or update for a sink. ``fields`` is keyed by canonical field name."""
    action: WriteAction
    kind: EntityKind
    natural_key: Optional[str]
    fields: Dict[str, Any]
    destination_id: Optional[str] = None


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a successful write, used to build the household index."""
    kind: EntityKind
    natural_key: Optional[str]
    destination_id: Optional[str]


@dataclass
class WritePlan:
    """Ordered commands for one entity kind plus bookkeeping."""
    kind: EntityKind
    commands: List[WriteCommand] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def creates(self) -> int:
        return len([c for c in self.commands if c.action == WriteAction.CREATE])

    @property
    def updates(self) -> int:
        return len([c for c in self.commands if c.action == WriteAction.UPDATE])
