"""
Planning Center People connector.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .base import BaseConnector
from ..exceptions import PlanningCenterAPIError, ReconciliationBatchError
from ..integrations.pco.client import PlanningCenterClient
from ..models.fields import (
    EntityKind, FieldKind, FieldSpec, PCO_COLLECTIONS, PCO_TYPES, fields_for
)
from ..models.plan import ExistingRecord, ExistingRecordIndex, RelationRef, WriteAction, WriteCommand, WriteResult
from ..engine.transforms import (
    map_records, pco_attributes, pco_household_to_canonical, pco_person_to_canonical
)

logger = logging.getLogger(__name__)

_MAPPERS = {
    EntityKind.HOUSEHOLD: pco_household_to_canonical,
    EntityKind.PERSON: pco_person_to_canonical,
}


class PlanningCenterConnector(BaseConnector):
    """
    Planning Center People as a source of people and households, and as the sink
    for Fibery edits pushed back.

    Planning Center IDs are the natural keys, so every key is already a destination
    ID. The connector reports no current values, so every present field is asserted.
    """

    name = "planning_center"

    def __init__(self, client: PlanningCenterClient, **kwargs):
        super().__init__(**kwargs)
        self.client = client

    def test_connection(self) -> bool:
        try:
            self.client.test_connection()
            logger.info("Planning Center connection test successful")
            return True
        except PlanningCenterAPIError as e:
            logger.error(f"Planning Center connection test failed: {e}")
            return False

    def read_since(self, kind: EntityKind, since: Optional[str]) -> Tuple[List[Any], List[str]]:
        collection = self.client.list_updated_since(f"/{PCO_COLLECTIONS[kind]}", since)
        records, warnings = map_records(collection.data, _MAPPERS[kind], f"Planning Center {kind.value}")
        logger.info(f"Pulled {len(records)} {kind.value} records from Planning Center since {since}")
        return records, warnings

    def writable_fields(self, kind: EntityKind) -> Sequence[FieldSpec]:
        return [
            spec for spec in fields_for(kind)
            if spec.natural_key or spec.kind == FieldKind.RELATION or (spec.pco_attribute and spec.pco_writable)
        ]

    def find_existing(self, kind: EntityKind, keys: Iterable[str]) -> ExistingRecordIndex:
        return {key: ExistingRecord(destination_id=key) for key in keys if key}

    def _write(self, commands: List[WriteCommand]) -> List[WriteResult]:
        results = []
        for command in commands:
            try:
                results.append(self._write_one(command))
            except PlanningCenterAPIError as e:
                raise ReconciliationBatchError(
                    f"Planning Center {command.action.value} failed for {command.kind.value} "
                    f"{command.natural_key}: {e}"
                ) from e
        logger.info(f"Wrote {len(results)} {commands[0].kind.value} records to Planning Center")
        return results

    def _write_one(self, command: WriteCommand) -> WriteResult:
        kind = command.kind
        path = f"/{PCO_COLLECTIONS[kind]}"
        attributes = pco_attributes(kind, command.fields)
        relationships = self._relationships(command.fields) if kind == EntityKind.PERSON else None

        if command.action == WriteAction.UPDATE:
            document = self.client.update(path, PCO_TYPES[kind], command.destination_id, attributes, relationships)
        else:
            document = self.client.create(path, PCO_TYPES[kind], attributes, relationships)

        destination_id = document.data.id if document.data else command.destination_id
        return WriteResult(kind=kind, natural_key=command.natural_key or destination_id, destination_id=destination_id)

    @staticmethod
    def _relationships(fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Households relationship block. An empty ``data`` list clears the link."""
        ref = fields.get("household_id")
        if not isinstance(ref, RelationRef):
            return None
        data = [] if ref.cleared else [{"type": PCO_TYPES[EntityKind.HOUSEHOLD], "id": ref.destination_id}]
        return {"households": {"data": data}}
