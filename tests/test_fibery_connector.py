"""Tests for the Fibery client and connector."""

from unittest.mock import MagicMock

import pytest

from conftest import pco_household, pco_person

from kinsync.connectors.fibery import FiberyConnector
from kinsync.engine.reconcile import Reconciler
from kinsync.engine.transforms import (
    format_instant, parse_datetime, pco_household_to_canonical, pco_person_to_canonical
)
from kinsync.exceptions import FiberyAPIError, PermanentTransportError, ReconciliationBatchError
from kinsync.integrations.fibery.client import FiberyClient
from kinsync.models.config import FiberySettings
from kinsync.models.fields import EntityKind
from kinsync.models.plan import RelationRef, WriteAction, WriteCommand

API_URL = "https://example.fibery.io/api/commands"


@pytest.fixture
def transport():
    return MagicMock()


@pytest.fixture
def client(transport):
    settings = FiberySettings(host="example.fibery.io", token="token", space="Congregation")
    return FiberyClient(settings, transport=transport)


@pytest.fixture
def connector(client):
    return FiberyConnector(client, space="Congregation", query_limit=250)


def sent_commands(transport, call=-1):
    return transport.request.call_args_list[call].kwargs["json"]


class TestFiberyClient:
    """Test command batches"""

    def test_returns_results_in_order(self, client, transport):
        transport.request.return_value = [{"success": True, "result": 1}, {"success": True, "result": 2}]
        assert client.execute([{"command": "a"}, {"command": "b"}]) == [1, 2]
        assert transport.request.call_args.args == ("POST", API_URL)

    def test_any_failed_command_fails_the_batch(self, client, transport):
        transport.request.return_value = [
            {"success": True, "result": {}},
            {"success": False, "result": {"message": "Unknown field"}},
        ]
        with pytest.raises(FiberyAPIError, match="Unknown field"):
            client.execute([{"command": "a"}, {"command": "b"}])

    def test_transport_failure_becomes_api_error(self, client, transport):
        transport.request.side_effect = PermanentTransportError("POST => 401", status=401)
        with pytest.raises(FiberyAPIError):
            client.test_connection("Congregation/People")

    def test_empty_batch_sends_nothing(self, client, transport):
        assert client.execute([]) == []
        transport.request.assert_not_called()

    def test_api_url_accepts_full_host(self):
        settings = FiberySettings(host="https://example.fibery.io/", token="t", space="S")
        assert settings.api_url == API_URL


class TestFiberyReads:
    """Test incremental queries"""

    def test_query_since_cursor(self, connector, transport):
        transport.request.return_value = [{"success": True, "result": [
            {"fibery/id": "f-1", "Congregation/Person ID": "P1", "Congregation/First Name": "Jo",
             "Congregation/Household": None, "fibery/modification-date": "2024-01-01T00:00:00.000Z"},
            {"fibery/id": "f-2", "Congregation/Person ID": None},
        ]}]

        people, warnings = connector.read_since(EntityKind.PERSON, "2023-12-31T00:00:00.000Z")

        assert [p.person_id for p in people] == ["P1"]
        assert len(warnings) == 1
        [command] = sent_commands(transport)
        query = command["args"]["query"]
        assert command["command"] == "fibery.entity/query"
        assert query["q/from"] == "Congregation/People"
        assert query["q/where"] == [">=", ["fibery/modification-date"], "$since"]
        assert query["q/order-by"] == [[["fibery/modification-date"], "q/asc"]]
        assert query["q/limit"] == 250
        assert command["args"]["params"] == {"$since": "2023-12-31T00:00:00.000Z"}
        assert {"Congregation/Household": ["fibery/id", "Congregation/Household ID"]} in query["q/select"]

    def test_full_read_without_cursor(self, connector, transport):
        transport.request.return_value = [{"success": True, "result": []}]
        connector.read_since(EntityKind.HOUSEHOLD, None)
        [command] = sent_commands(transport)
        assert "q/where" not in command["args"]["query"]
        assert "params" not in command["args"]


class TestFiberyLookup:
    """Test existing-record lookup"""

    def test_find_existing_returns_snapshots(self, connector, transport):
        transport.request.return_value = [{"success": True, "result": [
            {"fibery/id": "f-1", "Congregation/Person ID": "P1", "Congregation/Grade": 5,
             "Congregation/Household": {"fibery/id": "f-h1", "Congregation/Household ID": "H1"}},
        ]}]

        index = connector.find_existing(EntityKind.PERSON, ["P1", "P2"])

        assert list(index) == ["P1"]
        assert index["P1"].destination_id == "f-1"
        assert index["P1"].snapshot["grade"] == 5
        assert index["P1"].snapshot["household_id"] == RelationRef("f-h1")
        [command] = sent_commands(transport)
        assert command["args"]["query"]["q/where"] == ["q/in", ["Congregation/Person ID"], "$keys"]
        assert command["args"]["params"] == {"$keys": ["P1", "P2"]}

    def test_no_keys_no_query(self, connector, transport):
        assert connector.find_existing(EntityKind.PERSON, []) == {}
        transport.request.assert_not_called()


class TestFiberyWrites:
    """Test create and update batches"""

    def test_one_batch_with_creates_and_updates(self, connector, transport):
        transport.request.return_value = [
            {"success": True, "result": {"fibery/id": "f-new", "Congregation/Person ID": "P2"}},
            {"success": True, "result": {"fibery/id": "f-1"}},
        ]
        commands = [
            WriteCommand(WriteAction.CREATE, EntityKind.PERSON, "P2",
                         {"person_id": "P2", "first_name": "Al", "household_id": RelationRef("f-h1")}),
            WriteCommand(WriteAction.UPDATE, EntityKind.PERSON, "P1",
                         {"person_id": "P1", "household_id": RelationRef(None)}, destination_id="f-1"),
        ]

        results = connector.write(commands)

        assert transport.request.call_count == 1
        create, update = sent_commands(transport)
        assert create == {"command": "fibery.entity/create", "args": {
            "type": "Congregation/People",
            "entity": {"Congregation/Person ID": "P2", "Congregation/First Name": "Al",
                       "Congregation/Household": {"fibery/id": "f-h1"}},
        }}
        assert update == {"command": "fibery.entity/update", "args": {
            "type": "Congregation/People",
            "entity": {"fibery/id": "f-1", "Congregation/Person ID": "P1", "Congregation/Household": None},
        }}
        assert [(r.natural_key, r.destination_id) for r in results] == [("P2", "f-new"), ("P1", "f-1")]

    def test_rejected_batch_raises(self, connector, transport):
        transport.request.return_value = [{"success": False, "result": {"message": "boom"}}]
        command = WriteCommand(WriteAction.CREATE, EntityKind.HOUSEHOLD, "H1", {"household_id": "H1"})
        with pytest.raises(ReconciliationBatchError, match="boom"):
            connector.write([command])


class FiberyWorkspace:
    """Answers command batches from memory and echoes entities the way Fibery returns them."""

    def __init__(self, space="Congregation"):
        self.space = space
        self.entities = {}
        self.writes = []
        self._sequence = 0

    def __call__(self, method, url, json=None, **kwargs):
        return [{"success": True, "result": self._execute(command)} for command in json]

    def _execute(self, command):
        args = command["args"]
        if command["command"] == "fibery.entity/query":
            query = args["query"]
            key_field = query["q/where"][1][0]
            keys = set(args["params"]["$keys"])
            stored = self.entities.get(query["q/from"], {}).values()
            return [self._echo(entity) for entity in stored if entity.get(key_field) in keys]

        self.writes.append(command)
        stored = self.entities.setdefault(args["type"], {})
        entity = dict(args["entity"])
        if command["command"] == "fibery.entity/create":
            self._sequence += 1
            entity["fibery/id"] = f"f-{self._sequence}"
        else:
            entity = {**stored[entity["fibery/id"]], **entity}
        stored[entity["fibery/id"]] = entity
        return {"fibery/id": entity["fibery/id"]}

    def _echo(self, entity):
        echoed = {}
        for name, value in entity.items():
            if isinstance(value, dict):
                linked = self.entities[f"{self.space}/Household"][value["fibery/id"]]
                key_field = f"{self.space}/Household ID"
                value = {"fibery/id": linked["fibery/id"], key_field: linked[key_field]}
            elif isinstance(value, str) and value.endswith("Z") and "T" in value:
                value = format_instant(parse_datetime(value))
            echoed[name] = value
        echoed["fibery/modification-date"] = "2024-05-01T12:00:00.000Z"
        return echoed


class TestRoundTrip:
    """Test that mapped Planning Center records written to Fibery read back unchanged"""

    def test_second_pass_writes_nothing(self, connector, transport):
        workspace = FiberyWorkspace()
        transport.request.side_effect = workspace
        household = pco_household_to_canonical(pco_household("10", name="Smith"))
        person = pco_person_to_canonical(pco_person(
            "1", household_id="10", first_name="Jo", last_name="Smith", birthdate="1990-05-01",
            child=False, grade=3, inactivated_at="2024-01-02T03:04:05Z", status="active",
        ))
        reconciler = Reconciler(connector)

        for _ in range(2):
            households = reconciler.reconcile_households([household])
            people = reconciler.reconcile_people([person], households.destination_ids)

        assert [write["command"] for write in workspace.writes] == ["fibery.entity/create", "fibery.entity/create"]
        assert households.skipped == 1
        assert people.skipped == 1
        assert people.plan.commands == []
        stored = workspace.entities["Congregation/People"]["f-2"]
        assert stored["Congregation/Household"] == {"fibery/id": "f-1"}
