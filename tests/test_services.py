"""Tests for cursor stores, run history and Secret Manager credentials."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from google.api_core.exceptions import ServiceUnavailable

from kinsync.exceptions import ConfigurationError, CursorStoreError
from kinsync.models.sync import SyncRun, SyncStatus
from kinsync.services.cursors import FIBERY_CURSOR, PCO_CURSOR, InMemoryCursorStore, InMemoryRunHistory
from kinsync.services.firestore import FirestoreService
from kinsync.services.secrets import SecretManagerService


def make_run(run_id, hour):
    return SyncRun(id=run_id, status=SyncStatus.COMPLETED, started_at=datetime(2024, 5, 1, hour, tzinfo=timezone.utc))


class TestInMemoryStores:
    """Test process-local stores"""

    def test_absent_cursor_is_none(self):
        assert InMemoryCursorStore().get(PCO_CURSOR) is None

    def test_get_all_covers_both_directions(self):
        store = InMemoryCursorStore({PCO_CURSOR: "2024-01-01T00:00:00.000Z"})
        assert store.get_all() == {PCO_CURSOR: "2024-01-01T00:00:00.000Z", FIBERY_CURSOR: None}

    def test_run_history_newest_first(self):
        history = InMemoryRunHistory()
        history.save_run(make_run("early", 1))
        history.save_run(make_run("late", 2))
        assert [run.id for run in history.list_runs()] == ["late", "early"]
        assert history.get_run("early").id == "early"


@pytest.fixture
def firestore_client():
    client = MagicMock()
    client.project = "test-project"
    return client


@pytest.fixture
def service(firestore_client):
    return FirestoreService(client=firestore_client, cursor_collection="cursors", runs_collection="runs")


class TestFirestoreCursors:
    """Test Firestore-backed cursors"""

    def test_get_existing_cursor(self, service, firestore_client):
        doc = MagicMock(exists=True)
        doc.to_dict.return_value = {"token": "2024-01-01T00:00:00.000Z"}
        firestore_client.collection.return_value.document.return_value.get.return_value = doc

        assert service.get(PCO_CURSOR) == "2024-01-01T00:00:00.000Z"
        firestore_client.collection.assert_called_with("cursors")
        firestore_client.collection.return_value.document.assert_called_with(PCO_CURSOR)

    def test_missing_cursor_is_none(self, service, firestore_client):
        firestore_client.collection.return_value.document.return_value.get.return_value = MagicMock(exists=False)
        assert service.get(FIBERY_CURSOR) is None

    def test_set_writes_token(self, service, firestore_client):
        service.set(PCO_CURSOR, "2024-02-01T00:00:00.000Z")
        written = firestore_client.collection.return_value.document.return_value.set.call_args.args[0]
        assert written["token"] == "2024-02-01T00:00:00.000Z"

    def test_failures_raise_cursor_store_error(self, service, firestore_client):
        firestore_client.collection.return_value.document.return_value.set.side_effect = ServiceUnavailable("down")
        with pytest.raises(CursorStoreError):
            service.set(PCO_CURSOR, "2024-02-01T00:00:00.000Z")


class TestFirestoreRuns:
    """Test Firestore-backed run history"""

    def test_save_run(self, service, firestore_client):
        run = make_run("run-1", 3)
        service.save_run(run)
        firestore_client.collection.assert_called_with("runs")
        stored = firestore_client.collection.return_value.document.return_value.set.call_args.args[0]
        assert stored["status"] == "completed"

    def test_get_run_round_trips(self, service, firestore_client):
        doc = MagicMock(exists=True)
        doc.to_dict.return_value = make_run("run-1", 3).to_firestore()
        firestore_client.collection.return_value.document.return_value.get.return_value = doc

        run = service.get_run("run-1")
        assert run.id == "run-1"
        assert run.status == SyncStatus.COMPLETED


class TestSecretManager:
    """Test credential lookup with environment fallback"""

    def test_requires_project(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)
        with pytest.raises(ConfigurationError):
            SecretManagerService(client=MagicMock())

    def test_falls_back_to_environment(self, monkeypatch):
        monkeypatch.setenv("FIBERY_TOKEN", "from-env")
        client = MagicMock()

        def access(request):
            if request["name"].endswith("/fibery-token/versions/latest"):
                raise RuntimeError("not found")
            response = MagicMock()
            response.payload.data = b"from-secret"
            return response

        client.access_secret_version.side_effect = access
        credentials = SecretManagerService(project_id="proj", client=client).get_api_credentials()

        assert credentials == {
            "PCO_APP_ID": "from-secret",
            "PCO_SECRET": "from-secret",
            "FIBERY_TOKEN": "from-env",
        }
