"""
Models for sync run results and status tracking.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Any, Optional
from pydantic import BaseModel, Field


class SyncStatus(str, Enum):
    """Status of a sync run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Direction(str, Enum):
    """Whether an optional sync direction runs."""
    ENABLED = "enabled"
    DISABLED = "disabled"


class RunStage(str, Enum):
    """Orchestrator stages, in execution order."""
    INIT = "init"
    TEST_CONNECTIVITY = "test_connectivity"
    LOAD_CURSORS = "load_cursors"
    PULL_PCO = "pull_pco"
    RECONCILE_HOUSEHOLDS = "reconcile_households"
    RECONCILE_PEOPLE = "reconcile_people"
    PULL_FIBERY = "pull_fibery"
    RECONCILE_REVERSE = "reconcile_reverse"
    COMMIT_CURSORS = "commit_cursors"
    DONE = "done"


class DirectionSummary(BaseModel):
    """Counts for one sync direction."""
    pulled_households: int = 0
    pulled_people: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    deferred: int = 0
    invalid: int = 0


class SyncRun(BaseModel):
    """Represents one orchestrator run."""
    id: str
    status: SyncStatus = SyncStatus.PENDING
    stage: RunStage = RunStage.INIT
    triggered_by: Optional[str] = None
    reverse_sync: Direction = Direction.DISABLED
    started_at: datetime
    completed_at: Optional[datetime] = None
    cursors_before: Dict[str, Optional[str]] = Field(default_factory=dict)
    cursors_after: Dict[str, Optional[str]] = Field(default_factory=dict)
    pco_to_fibery: DirectionSummary = Field(default_factory=DirectionSummary)
    fibery_to_pco: DirectionSummary = Field(default_factory=DirectionSummary)
    warnings: List[str] = Field(default_factory=list)
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    execution_time_seconds: Optional[float] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SyncStatus.COMPLETED

    def mark_completed(self, completed_at: datetime) -> None:
        self.status = SyncStatus.COMPLETED
        self.stage = RunStage.DONE
        self._finish(completed_at)

    def mark_failed(self, error: Exception, completed_at: datetime) -> None:
        self.status = SyncStatus.FAILED
        self.error_type = type(error).__name__
        self.error_message = str(error)
        self._finish(completed_at)

    def _finish(self, completed_at: datetime) -> None:
        self.completed_at = completed_at
        self.execution_time_seconds = (completed_at - self.started_at).total_seconds()

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the run."""
        return {
            "id": self.id,
            "status": self.status,
            "stage": self.stage,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "pco_to_fibery": self.pco_to_fibery.model_dump(),
            "fibery_to_pco": self.fibery_to_pco.model_dump(),
            "warnings": len(self.warnings),
            "error_message": self.error_message,
            "execution_time_seconds": self.execution_time_seconds,
        }

    def to_firestore(self) -> Dict[str, Any]:
        """Convert to Firestore document format."""
        return self.model_dump(mode="json")

    @classmethod
    def from_firestore(cls, doc_id: str, data: Dict[str, Any]) -> "SyncRun":
        """Create instance from Firestore document."""
        data = dict(data)
        data["id"] = doc_id
        return cls(**data)
