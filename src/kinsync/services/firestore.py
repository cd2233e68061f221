"""
Firestore service for sync cursors and run history.
"""

import logging
from typing import List, Optional
from google.api_core.exceptions import GoogleAPICallError
from google.cloud import firestore
from google.auth import default

from ..exceptions import CursorStoreError
from ..models.sync import SyncRun
from .cursors import CursorStore, RunHistory

logger = logging.getLogger(__name__)


class FirestoreService(CursorStore, RunHistory):
    """
    Cursor store and run history backed by Firestore.

    Each cursor is one document in the cursor collection, keyed by cursor name.
    """

    def __init__(
        self,
        project_id: Optional[str] = None,
        cursor_collection: str = "sync_cursors",
        runs_collection: str = "sync_runs",
        client: Optional[firestore.Client] = None,
    ):
        """
        Initialize Firestore service.

        Args:
            project_id: Google Cloud project ID. If None, uses default from environment.
            cursor_collection: Collection holding cursor documents
            runs_collection: Collection holding run history documents
            client: Pre-built Firestore client (mainly for tests)
        """
        try:
            if client is not None:
                self.db = client
            elif project_id:
                self.db = firestore.Client(project=project_id)
            else:
                # Use application default credentials
                credentials, project = default()
                self.db = firestore.Client(project=project, credentials=credentials)

            self.cursor_collection = cursor_collection
            self.runs_collection = runs_collection

            logger.info(f"Firestore service initialized for project: {self.db.project}")

        except Exception as e:
            logger.error(f"Failed to initialize Firestore: {e}")
            raise

    # Cursors

    def get(self, key: str) -> Optional[str]:
        """
        Get a cursor token.

        Args:
            key: Cursor name

        Returns:
            Token if the cursor exists, None otherwise

        Raises:
            CursorStoreError: If Firestore cannot be read
        """
        try:
            doc = self.db.collection(self.cursor_collection).document(key).get()
        except GoogleAPICallError as e:
            logger.error(f"Failed to read cursor {key}: {e}")
            raise CursorStoreError(f"Failed to read cursor {key}: {e}") from e

        if not doc.exists:
            return None
        return (doc.to_dict() or {}).get("token")

    def set(self, key: str, token: str) -> None:
        """
        Store a cursor token.

        Raises:
            CursorStoreError: If Firestore rejects the write
        """
        try:
            self.db.collection(self.cursor_collection).document(key).set({
                "token": token,
                "updated_at": firestore.SERVER_TIMESTAMP,
            })
            logger.info(f"Committed cursor {key} = {token}")
        except GoogleAPICallError as e:
            logger.error(f"Failed to write cursor {key}: {e}")
            raise CursorStoreError(f"Failed to write cursor {key}: {e}") from e

    # Run history

    def save_run(self, run: SyncRun) -> SyncRun:
        """
        Create or overwrite a run record.

        Args:
            run: Run to store

        Returns:
            Stored run
        """
        try:
            doc_ref = self.db.collection(self.runs_collection).document(run.id)
            doc_ref.set(run.to_firestore())

            logger.info(f"Saved sync run: {run.id}")
            return run

        except Exception as e:
            logger.error(f"Failed to save run {run.id}: {e}")
            raise

    def get_run(self, run_id: str) -> Optional[SyncRun]:
        """
        Get a sync run by ID.

        Args:
            run_id: Run ID

        Returns:
            Run if found, None otherwise
        """
        try:
            doc = self.db.collection(self.runs_collection).document(run_id).get()

            if doc.exists:
                return SyncRun.from_firestore(run_id, doc.to_dict())
            return None

        except Exception as e:
            logger.error(f"Failed to get run {run_id}: {e}")
            raise

    def list_runs(self, limit: int = 50) -> List[SyncRun]:
        """
        List sync runs, most recent first.

        Args:
            limit: Maximum number of runs to return

        Returns:
            List of runs
        """
        try:
            query = self.db.collection(self.runs_collection)
            query = query.order_by("started_at", direction=firestore.Query.DESCENDING)
            query = query.limit(limit)

            return [SyncRun.from_firestore(doc.id, doc.to_dict()) for doc in query.stream()]

        except Exception as e:
            logger.error(f"Failed to list runs: {e}")
            raise
