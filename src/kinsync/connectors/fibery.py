"""
Fibery connector.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .base import BaseConnector
from ..exceptions import FiberyAPIError, ReconciliationBatchError
from ..integrations.fibery.client import CREATE, UPDATE, FiberyClient
from ..models.fields import EntityKind, FieldKind, FieldSpec, FiberySchema, fields_for
from ..models.plan import ExistingRecord, ExistingRecordIndex, RelationRef, WriteAction, WriteCommand, WriteResult
from ..engine.transforms import (
    FIBERY_ID, FIBERY_MODIFIED, fibery_household_to_canonical, fibery_person_to_canonical,
    fibery_snapshot, map_records,
)

logger = logging.getLogger(__name__)


class FiberyConnector(BaseConnector):
    """
    Fibery People and Household databases in one space.

    Writes for one entity kind go out as a single command batch.
    """

    name = "fibery"

    def __init__(self, client: FiberyClient, space: str, query_limit: int = 1000, **kwargs):
        super().__init__(**kwargs)
        self.client = client
        self.schema = FiberySchema(space)
        self.query_limit = query_limit

    def test_connection(self) -> bool:
        try:
            self.client.test_connection(self.schema.type_name(EntityKind.PERSON))
            logger.info("Fibery connection test successful")
            return True
        except FiberyAPIError as e:
            logger.error(f"Fibery connection test failed: {e}")
            return False

    # Queries

    def _select(self, kind: EntityKind) -> List[Any]:
        """Select clause covering every mapped field. Relations select the linked key."""
        select: List[Any] = [FIBERY_ID]
        for spec in fields_for(kind):
            if spec.kind == FieldKind.RELATION:
                select.append({
                    self.schema.field(spec): [FIBERY_ID, self.schema.natural_key(EntityKind.HOUSEHOLD)]
                })
            else:
                select.append(self.schema.field(spec))
        select.append(FIBERY_MODIFIED)
        return select

    def read_since(self, kind: EntityKind, since: Optional[str]) -> Tuple[List[Any], List[str]]:
        query: Dict[str, Any] = {
            'q/from': self.schema.type_name(kind),
            'q/select': self._select(kind),
            'q/order-by': [[[FIBERY_MODIFIED], 'q/asc']],
            'q/limit': self.query_limit,
        }
        params = None
        if since:
            query['q/where'] = ['>=', [FIBERY_MODIFIED], '$since']
            params = {'$since': since}

        rows = self.client.query(query, params)
        if kind == EntityKind.PERSON:
            records, warnings = map_records(rows, lambda row: fibery_person_to_canonical(row, self.schema), "Fibery person")
        else:
            records, warnings = map_records(
                rows, lambda row: fibery_household_to_canonical(row, self.schema), "Fibery household"
            )
        logger.info(f"Pulled {len(records)} {kind.value} records from Fibery since {since}")
        return records, warnings

    def writable_fields(self, kind: EntityKind) -> Sequence[FieldSpec]:
        return fields_for(kind)

    def find_existing(self, kind: EntityKind, keys: Iterable[str]) -> ExistingRecordIndex:
        keys = [key for key in keys if key]
        if not keys:
            return {}
        key_field = self.schema.natural_key(kind)
        query = {
            'q/from': self.schema.type_name(kind),
            'q/select': self._select(kind),
            'q/where': ['q/in', [key_field], '$keys'],
            'q/limit': len(keys),
        }
        rows = self.client.query(query, {'$keys': keys})

        index: ExistingRecordIndex = {}
        for row in rows:
            key = row.get(key_field)
            if key in (None, ""):
                continue
            index[str(key)] = ExistingRecord(
                destination_id=row.get(FIBERY_ID),
                snapshot=fibery_snapshot(row, kind, self.schema),
            )
        return index

    # Writes

    def _entity(self, kind: EntityKind, fields: Dict[str, Any]) -> Dict[str, Any]:
        specs = {spec.name: spec for spec in fields_for(kind)}
        entity: Dict[str, Any] = {}
        for name, value in fields.items():
            spec = specs.get(name)
            if spec is None:
                continue
            if isinstance(value, RelationRef):
                value = None if value.cleared else {FIBERY_ID: value.destination_id}
            entity[self.schema.field(spec)] = value
        return entity

    def _command(self, command: WriteCommand) -> Dict[str, Any]:
        entity = self._entity(command.kind, command.fields)
        if command.action == WriteAction.UPDATE:
            entity[FIBERY_ID] = command.destination_id
            return {'command': UPDATE, 'args': {'type': self.schema.type_name(command.kind), 'entity': entity}}
        return {'command': CREATE, 'args': {'type': self.schema.type_name(command.kind), 'entity': entity}}

    def _write(self, commands: List[WriteCommand]) -> List[WriteResult]:
        kind = commands[0].kind
        batch = [self._command(command) for command in commands]
        logger.info(f"Sending {len(batch)} {kind.value} commands to Fibery")
        try:
            results = self.client.execute(batch)
        except FiberyAPIError as e:
            raise ReconciliationBatchError(f"Fibery {kind.value} batch of {len(batch)} commands failed: {e}") from e

        key_field = self.schema.natural_key(kind)
        written = []
        for command, result in zip(commands, results):
            result = result if isinstance(result, dict) else {}
            written.append(WriteResult(
                kind=command.kind,
                natural_key=command.natural_key or result.get(key_field),
                destination_id=result.get(FIBERY_ID) or command.destination_id,
            ))
        return written
