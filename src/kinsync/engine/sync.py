"""
Sync orchestrator: one linear pass from Planning Center to Fibery, optionally back again.
"""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence, Tuple

from ..connectors.base import BaseConnector
from ..connectors.fibery import FiberyConnector
from ..connectors.pco import PlanningCenterConnector
from ..exceptions import ConnectivityError
from ..integrations.fibery.client import FiberyClient
from ..integrations.pco.client import PlanningCenterClient
from ..models.config import SyncSettings
from ..models.fields import EntityKind, validate_field_table
from ..models.sync import Direction, DirectionSummary, RunStage, SyncRun, SyncStatus
from ..services.cursors import FIBERY_CURSOR, PCO_CURSOR, CursorStore, RunHistory
from ..services.firestore import FirestoreService
from .reconcile import ReconcileOutcome, Reconciler
from .transforms import parse_datetime, format_instant

logger = logging.getLogger(__name__)

# Lower bound for the Planning Center filter when no cursor has been stored
EPOCH = "1970-01-01T00:00:00.000Z"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_cursor(previous: Optional[str], run_start: str, outcomes: Sequence[ReconcileOutcome]) -> Optional[str]:
    """Cursor value to commit for one direction.

    Normally the run start. When the guardrail deferred records, the earliest
    modification stamp among the deferred records of every truncated kind is used
    instead, so the next run reads them again. Records at exactly that stamp are
    re-read and reconciled without counting toward the limit (see ``truncate``).
    Never moves backwards from ``previous``.
    """
    candidate: Optional[str] = run_start
    for outcome in outcomes:
        if not outcome.deferred:
            continue
        boundary_at = parse_datetime(outcome.resume_at) if outcome.resume_at else None
        if boundary_at is None:
            return previous
        if boundary_at < parse_datetime(candidate):
            candidate = outcome.resume_at

    if previous is not None:
        previous_at, candidate_at = parse_datetime(previous), parse_datetime(candidate)
        if previous_at is not None and candidate_at is not None and candidate_at < previous_at:
            return previous
    return candidate


class SyncEngine:
    """
    Runs one sync pass:

    init -> test connectivity -> load cursors -> pull Planning Center -> reconcile
    households -> reconcile people -> pull Fibery -> [reconcile back to Planning
    Center] -> commit cursors -> done.

    Cursors are committed only when every stage succeeded.
    """

    def __init__(
        self,
        settings: SyncSettings,
        pco: BaseConnector,
        fibery: BaseConnector,
        cursors: CursorStore,
        history: Optional[RunHistory] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the sync engine.

        Raises:
            ConfigurationError: If the field table or always-refresh settings are invalid
        """
        validate_field_table(settings.always_refresh)
        self.settings = settings
        self.pco = pco
        self.fibery = fibery
        self.cursors = cursors
        self.history = history
        self.clock = clock
        self.reverse_sync = settings.reverse_sync

        self.forward = Reconciler(
            fibery,
            max_per_run=settings.max_per_run,
            always_refresh=settings.always_refresh,
            label="Planning Center -> Fibery",
        )
        self.reverse = Reconciler(
            pco,
            max_per_run=settings.max_per_run,
            always_refresh=settings.always_refresh,
            label="Fibery -> Planning Center",
        )

    def run(self, triggered_by: str = "manual") -> SyncRun:
        """
        Execute one sync pass.

        Args:
            triggered_by: What triggered this run (cli, scheduler, api)

        Returns:
            SyncRun with status completed or failed. A failed run leaves cursors unchanged.
        """
        started_at = self.clock()
        run_start = format_instant(started_at)
        run = SyncRun(
            id=str(uuid.uuid4()),
            status=SyncStatus.RUNNING,
            triggered_by=triggered_by,
            reverse_sync=self.reverse_sync,
            started_at=started_at,
        )
        logger.info(f"Starting sync run {run.id} (triggered by {triggered_by}, run start {run_start})")

        try:
            self._enter(run, RunStage.TEST_CONNECTIVITY)
            self._test_connectivity()

            self._enter(run, RunStage.LOAD_CURSORS)
            run.cursors_before = self.cursors.get_all()
            pco_floor = run.cursors_before.get(PCO_CURSOR)
            pco_since = pco_floor or EPOCH
            fibery_since = run.cursors_before.get(FIBERY_CURSOR)

            self._enter(run, RunStage.PULL_PCO)
            households, people = self._pull(self.pco, pco_since, run, run.pco_to_fibery)

            self._enter(run, RunStage.RECONCILE_HOUSEHOLDS)
            household_outcome = self.forward.reconcile_households(households, floor=pco_floor)

            self._enter(run, RunStage.RECONCILE_PEOPLE)
            people_outcome = self.forward.reconcile_people(
                people, household_outcome.destination_ids, floor=pco_floor
            )
            forward_outcomes = [household_outcome, people_outcome]
            self._record(run, run.pco_to_fibery, forward_outcomes)

            self._enter(run, RunStage.PULL_FIBERY)
            fibery_households, fibery_people = self._pull(self.fibery, fibery_since, run, run.fibery_to_pco)

            reverse_outcomes: List[ReconcileOutcome] = []
            if self.reverse_sync == Direction.ENABLED:
                self._enter(run, RunStage.RECONCILE_REVERSE)
                reverse_households = self.reverse.reconcile_households(fibery_households, floor=fibery_since)
                reverse_people = self.reverse.reconcile_people(
                    fibery_people, reverse_households.destination_ids, floor=fibery_since
                )
                reverse_outcomes = [reverse_households, reverse_people]
                self._record(run, run.fibery_to_pco, reverse_outcomes)
            else:
                logger.info("Reverse sync disabled, not pushing Fibery changes to Planning Center")

            self._enter(run, RunStage.COMMIT_CURSORS)
            after = {
                PCO_CURSOR: next_cursor(run.cursors_before.get(PCO_CURSOR), run_start, forward_outcomes),
                FIBERY_CURSOR: next_cursor(run.cursors_before.get(FIBERY_CURSOR), run_start, reverse_outcomes),
            }
            for key, token in after.items():
                if token is not None:
                    self.cursors.set(key, token)
            run.cursors_after = after

            run.mark_completed(self.clock())
            logger.info(f"Sync run {run.id} completed in {run.execution_time_seconds:.1f}s: {run.get_summary()}")

        except Exception as e:
            logger.error(f"Sync run {run.id} failed during {run.stage.value}: {e}")
            run.cursors_after = dict(run.cursors_before)
            run.mark_failed(e, self.clock())

        self._save(run)
        return run

    def test_connectivity(self) -> bool:
        """Check both systems without running a sync."""
        try:
            self._test_connectivity()
            return True
        except ConnectivityError as e:
            logger.error(str(e))
            return False

    def _test_connectivity(self) -> None:
        failed = [connector.name for connector in (self.pco, self.fibery) if not connector.test_connection()]
        if failed:
            raise ConnectivityError(f"Connectivity check failed for: {', '.join(failed)}")

    def _enter(self, run: SyncRun, stage: RunStage) -> None:
        run.stage = stage
        logger.info(f"Sync run {run.id}: {stage.value}")

    def _pull(
        self,
        connector: BaseConnector,
        since: Optional[str],
        run: SyncRun,
        summary: DirectionSummary,
    ) -> Tuple[List[Any], List[Any]]:
        """Read households and people from one system concurrently."""
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix=f"pull-{connector.name}") as pool:
            households_future = pool.submit(connector.read_since, EntityKind.HOUSEHOLD, since)
            people_future = pool.submit(connector.read_since, EntityKind.PERSON, since)
            households, household_warnings = households_future.result()
            people, people_warnings = people_future.result()

        summary.pulled_households = len(households)
        summary.pulled_people = len(people)
        summary.invalid += len(household_warnings) + len(people_warnings)
        run.warnings.extend(household_warnings + people_warnings)
        logger.info(f"Pulled {len(households)} households and {len(people)} people from {connector.name}")
        return households, people

    def _record(self, run: SyncRun, summary: DirectionSummary, outcomes: Sequence[ReconcileOutcome]) -> None:
        for outcome in outcomes:
            summary.created += outcome.created
            summary.updated += outcome.updated
            summary.skipped += outcome.skipped
            summary.deferred += outcome.deferred
            run.warnings.extend(outcome.warnings)

    def _save(self, run: SyncRun) -> None:
        if self.history is None:
            return
        try:
            self.history.save_run(run)
        except Exception as e:
            logger.error(f"Failed to save sync run {run.id}: {e}")


def create_sync_engine(
    settings: SyncSettings,
    cursors: Optional[CursorStore] = None,
    history: Optional[RunHistory] = None,
) -> SyncEngine:
    """
    Build an engine with Planning Center and Fibery connectors from settings.

    Without an explicit cursor store, cursors and run history go to Firestore.
    """
    if cursors is None:
        firestore_service = FirestoreService(
            project_id=settings.google_cloud_project,
            cursor_collection=settings.cursor_collection,
            runs_collection=settings.runs_collection,
        )
        cursors = firestore_service
        history = history or firestore_service

    pco = PlanningCenterConnector(PlanningCenterClient(settings.pco, http=settings.http))
    fibery = FiberyConnector(
        FiberyClient(settings.fibery, http=settings.http),
        space=settings.fibery.space,
        query_limit=settings.fibery.query_limit,
    )
    return SyncEngine(settings, pco, fibery, cursors, history=history)
