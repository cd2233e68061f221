"""
Immutable settings consumed by the sync engine.
"""

from typing import Dict, FrozenSet, Optional
from pydantic import BaseModel, ConfigDict, Field

from .fields import EntityKind
from .sync import Direction

PCO_BASE_URL = "https://api.planningcenteronline.com/people/v2"


class PlanningCenterSettings(BaseModel):
    """Connection settings for Planning Center People."""
    model_config = ConfigDict(frozen=True)

    app_id: str = Field(..., description="Personal access token application ID")
    secret: str = Field(..., description="Personal access token secret")
    base_url: str = Field(PCO_BASE_URL, description="People API v2 base URL")
    page_size: int = Field(100, ge=1, le=100)


class FiberySettings(BaseModel):
    """Connection settings for the Fibery workspace."""
    model_config = ConfigDict(frozen=True)

    host: str = Field(..., description="Workspace host, e.g. yourcompany.fibery.io")
    token: str = Field(..., description="API token")
    space: str = Field(..., description="Space holding the People and Household databases")
    query_limit: int = Field(1000, ge=1, description="q/limit for incremental queries")

    @property
    def api_url(self) -> str:
        host = self.host.strip().rstrip("/")
        if host.startswith("http://") or host.startswith("https://"):
            return f"{host}/api/commands"
        return f"https://{host}/api/commands"


class HttpSettings(BaseModel):
    """Retry and timeout settings shared by both transports."""
    model_config = ConfigDict(frozen=True)

    retries: int = Field(3, ge=0)
    backoff_ms: int = Field(500, ge=0)
    timeout_seconds: float = Field(30, gt=0)


class SyncSettings(BaseModel):
    """
    Complete configuration for one orchestrator.
    Built once at startup and never mutated during a run.
    """
    model_config = ConfigDict(frozen=True)

    pco: PlanningCenterSettings
    fibery: FiberySettings
    http: HttpSettings = Field(default_factory=HttpSettings)

    # Guardrail on records processed per entity kind per run
    max_per_run: int = Field(500, ge=1)
    reverse_sync: Direction = Field(Direction.DISABLED, description="Push Fibery edits back to Planning Center")
    always_refresh: Dict[EntityKind, FrozenSet[str]] = Field(
        default_factory=dict,
        description="Fields re-sent on every update, keyed by entity kind",
    )

    # Persistence
    google_cloud_project: Optional[str] = None
    cursor_collection: str = "sync_cursors"
    runs_collection: str = "sync_runs"
