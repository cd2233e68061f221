"""
Cursor and run history stores.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..models.sync import SyncRun

logger = logging.getLogger(__name__)

# Persisted cursor names, one per pull direction
PCO_CURSOR = "Asource"
FIBERY_CURSOR = "Bsource"
CURSOR_KEYS = (PCO_CURSOR, FIBERY_CURSOR)


class CursorStore(ABC):
    """Durable key -> cursor token mapping."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored token, or None when the cursor was never set."""
        pass

    @abstractmethod
    def set(self, key: str, token: str) -> None:
        """Store a token. Raises CursorStoreError on failure."""
        pass

    def get_all(self) -> Dict[str, Optional[str]]:
        return {key: self.get(key) for key in CURSOR_KEYS}


class RunHistory(ABC):
    """Record of past orchestrator runs."""

    @abstractmethod
    def save_run(self, run: SyncRun) -> SyncRun:
        pass

    @abstractmethod
    def get_run(self, run_id: str) -> Optional[SyncRun]:
        pass

    @abstractmethod
    def list_runs(self, limit: int = 50) -> List[SyncRun]:
        """Most recent runs first."""
        pass


class InMemoryCursorStore(CursorStore):
    """Process-local cursor store, for tests and one-off runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._tokens: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._tokens.get(key)

    def set(self, key: str, token: str) -> None:
        logger.debug(f"Setting cursor {key} to {token}")
        self._tokens[key] = token


class InMemoryRunHistory(RunHistory):
    """Process-local run history."""

    def __init__(self):
        self._runs: Dict[str, SyncRun] = {}

    def save_run(self, run: SyncRun) -> SyncRun:
        self._runs[run.id] = run.model_copy(deep=True)
        return run

    def get_run(self, run_id: str) -> Optional[SyncRun]:
        return self._runs.get(run_id)

    def list_runs(self, limit: int = 50) -> List[SyncRun]:
        runs = sorted(self._runs.values(), key=lambda run: run.started_at, reverse=True)
        return runs[:limit]
