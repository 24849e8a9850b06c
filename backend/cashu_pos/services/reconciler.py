"""
Settlement Reconciliation

Repairs settlements whose proofs were redeemed but whose quote state was
never committed (storage failure or crash between the two steps).

- redeemed attempts: the commit is re-run; the wallet is never called again
- pending attempts older than the grace period: the redemption outcome is
  unknown, so they are reported for manual review and left untouched

The job runs on an APScheduler interval trigger started from the app lifespan.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..db.settlement_store import SettlementStore
from ..exceptions import PosError
from ..models.quotes import utcnow
from ..models.settlements import SettlementStatus
from .quote_service import QuoteService

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = "settlement-reconciler"


@dataclass
class ReconcileReport:
    committed: int = 0
    already_paid: int = 0
    errors: int = 0
    stale_pending: int = 0


class SettlementReconciler:
    """Re-runs the state commit for redeemed settlement attempts."""

    def __init__(
        self,
        service: QuoteService,
        settlements: SettlementStore,
        pending_grace_seconds: int = 300,
    ):
        self._service = service
        self._settlements = settlements
        self._pending_grace = timedelta(seconds=pending_grace_seconds)

    async def run_once(self) -> ReconcileReport:
        report = ReconcileReport()

        for attempt in await self._settlements.list_by_status(SettlementStatus.REDEEMED):
            try:
                if await self._service.commit_settlement(attempt):
                    report.committed += 1
                else:
                    report.already_paid += 1
            except PosError as e:
                report.errors += 1
                logger.error(f"Retry of settlement {attempt.id} for quote {attempt.quote_id} failed: {e.message}")

        cutoff = utcnow() - self._pending_grace
        for attempt in await self._settlements.list_by_status(SettlementStatus.PENDING, updated_before=cutoff):
            report.stale_pending += 1
            logger.warning(
                f"Settlement {attempt.id} for quote {attempt.quote_id} pending since "
                f"{attempt.updated_at.isoformat()}: redemption outcome unknown, needs manual review"
            )

        if report.committed or report.errors or report.stale_pending:
            logger.info(f"Reconciliation finished: {report}")
        return report


class ReconcileScheduler:
    """
    APScheduler wrapper running the reconciler on a fixed interval.

    Jobs live in memory; the job is re-registered on every start.
    """

    def __init__(self, reconciler: SettlementReconciler, interval_seconds: int):
        self._reconciler = reconciler
        self._interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self.running:
            logger.warning("Reconcile scheduler already running")
            return

        self._scheduler = AsyncIOScheduler(
            executors={"default": AsyncIOExecutor()},
            job_defaults={
                "coalesce": True,  # combine missed runs into one
                "max_instances": 1,
                "misfire_grace_time": self._interval_seconds,
            },
            timezone="UTC",
        )
        self._scheduler.add_job(
            self._reconciler.run_once,
            trigger=IntervalTrigger(seconds=self._interval_seconds),
            id=RECONCILE_JOB_ID,
            name="Reconcile redeemed settlements",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(f"Reconcile scheduler started, interval={self._interval_seconds}s")

    def shutdown(self, wait: bool = True) -> None:
        if self.running:
            self._scheduler.shutdown(wait=wait)
            logger.info(f"Reconcile scheduler shutdown (wait={wait})")
        self._scheduler = None
