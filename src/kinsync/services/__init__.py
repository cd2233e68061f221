"""
Services for kinsync.
"""

from .cursors import (
    CURSOR_KEYS, FIBERY_CURSOR, PCO_CURSOR,
    CursorStore, InMemoryCursorStore, InMemoryRunHistory, RunHistory,
)
from .firestore import FirestoreService
from .secrets import SecretManagerService

__all__ = [
    "CURSOR_KEYS",
    "FIBERY_CURSOR",
    "PCO_CURSOR",
    "CursorStore",
    "InMemoryCursorStore",
    "InMemoryRunHistory",
    "RunHistory",
    "FirestoreService",
    "SecretManagerService",
]
