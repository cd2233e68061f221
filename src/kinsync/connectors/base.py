"""
Base connector class for both synced systems.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional, Sequence, Tuple
import logging

from ..models.fields import EntityKind, FieldSpec
from ..models.plan import ExistingRecordIndex, WriteCommand, WriteResult

logger = logging.getLogger(__name__)


class BaseConnector(ABC):
    """Abstract base class for connectors.

    A connector is both a source (``read_since``) and a sink (``writable_fields``,
    ``find_existing``, ``write``) for canonical records.
    """

    name = "connector"

    def __init__(self, **kwargs):
        self.config = kwargs
        logger.info(f"Initialized {self.__class__.__name__} connector")

    @abstractmethod
    def test_connection(self) -> bool:
        """Test if the connector can successfully connect to the service."""
        pass

    @abstractmethod
    def read_since(self, kind: EntityKind, since: Optional[str]) -> Tuple[List[Any], List[str]]:
        """
        Read records of ``kind`` modified since a cursor token.

        Args:
            kind: Entity kind to read
            since: Cursor token, or None for a full read

        Returns:
            (canonical records in modification order, warnings for skipped records)
        """
        pass

    @abstractmethod
    def writable_fields(self, kind: EntityKind) -> Sequence[FieldSpec]:
        """Fields this service accepts on write, natural key included."""
        pass

    @abstractmethod
    def find_existing(self, kind: EntityKind, keys: Iterable[str]) -> ExistingRecordIndex:
        """Locate records by natural key."""
        pass

    def write(self, commands: List[WriteCommand]) -> List[WriteResult]:
        """
        Execute write commands in order.

        Args:
            commands: Commands for a single entity kind

        Returns:
            One result per command
        """
        if not commands:
            return []
        return self._write(commands)

    @abstractmethod
    def _write(self, commands: List[WriteCommand]) -> List[WriteResult]:
        """Service-specific write implementation."""
        pass
