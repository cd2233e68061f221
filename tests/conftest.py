"""Shared fixtures: settings, in-memory connectors and Planning Center payload builders."""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import pytest

from kinsync.connectors.base import BaseConnector
from kinsync.core.models import Resource
from kinsync.exceptions import ReconciliationBatchError
from kinsync.models.config import FiberySettings, PlanningCenterSettings, SyncSettings
from kinsync.models.fields import EntityKind, fields_for
from kinsync.models.plan import ExistingRecord, WriteAction, WriteResult


class FakeConnector(BaseConnector):
    """
    In-memory system acting as both source and sink.

    ``source`` holds canonical records returned by reads. ``stored`` holds what was
    written, keyed by natural key, as (destination_id, snapshot).
    """

    def __init__(self, name: str = "fake", *, online: bool = True, snapshots: bool = True):
        super().__init__()
        self.name = name
        self.online = online
        self.snapshots = snapshots
        self.source: Dict[EntityKind, List[Any]] = {EntityKind.HOUSEHOLD: [], EntityKind.PERSON: []}
        self.stored: Dict[EntityKind, Dict[str, tuple]] = {EntityKind.HOUSEHOLD: {}, EntityKind.PERSON: {}}
        self.batches: List[list] = []
        self.reads: List[tuple] = []
        self.lookups: List[tuple] = []
        self.fail_writes: Optional[EntityKind] = None
        self.fail_reads = False
        self._sequence = 0

    def test_connection(self) -> bool:
        return self.online

    def read_since(self, kind, since):
        self.reads.append((kind, since))
        if self.fail_reads:
            raise RuntimeError(f"{self.name} read failed")
        return list(self.source[kind]), []

    def writable_fields(self, kind):
        return fields_for(kind)

    def find_existing(self, kind, keys: Iterable[str]):
        keys = list(keys)
        self.lookups.append((kind, keys))
        found = {}
        for key in keys:
            if key in self.stored[kind]:
                destination_id, snapshot = self.stored[kind][key]
                found[key] = ExistingRecord(destination_id, dict(snapshot) if self.snapshots else {})
        return found

    def _write(self, commands):
        kind = commands[0].kind
        if self.fail_writes == kind:
            raise ReconciliationBatchError(f"{self.name} rejected the {kind.value} batch")
        self.batches.append(list(commands))

        results = []
        for command in commands:
            if command.action == WriteAction.CREATE:
                self._sequence += 1
                destination_id = f"{self.name}-{kind.value}-{self._sequence}"
                snapshot = {spec.name: None for spec in fields_for(kind)}
            else:
                destination_id = command.destination_id
                snapshot = dict(self.stored[kind][command.natural_key][1])
            snapshot.update(command.fields)
            self.stored[kind][command.natural_key] = (destination_id, snapshot)
            results.append(WriteResult(kind, command.natural_key, destination_id))
        return results

    @property
    def commands(self) -> list:
        return [command for batch in self.batches for command in batch]


@pytest.fixture
def fake_connector():
    return FakeConnector


@pytest.fixture
def settings() -> SyncSettings:
    return SyncSettings(
        pco=PlanningCenterSettings(app_id="app", secret="secret"),
        fibery=FiberySettings(host="example.fibery.io", token="token", space="Congregation"),
    )


@pytest.fixture
def fixed_clock():
    """Clock returning a fixed run start, then one second later for completion."""
    instants = iter([
        datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc),
        datetime(2024, 5, 1, 12, 0, 1, tzinfo=timezone.utc),
    ])
    last = [datetime(2024, 5, 1, 12, 0, 1, tzinfo=timezone.utc)]

    def clock():
        try:
            last[0] = next(instants)
        except StopIteration:
            pass
        return last[0]

    return clock


def pco_person(person_id: str, household_id: Optional[str] = None, **attributes) -> Resource:
    data: Dict[str, Any] = {"type": "Person", "id": person_id, "attributes": attributes}
    if household_id is not None:
        data["relationships"] = {"households": {"data": [{"type": "Household", "id": household_id}]}}
    return Resource(**data)


def pco_household(household_id: str, **attributes) -> Resource:
    return Resource(type="Household", id=household_id, attributes=attributes)


@pytest.fixture
def make_pco_person():
    return pco_person


@pytest.fixture
def make_pco_household():
    return pco_household
