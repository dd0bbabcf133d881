"""
Background reconciliation.

Periodic sweep over every connected account that re-pulls recent
activity, as a backstop for missed or failed webhooks. The scheduler is a
plain object owned by the application lifespan: nothing runs until
`start()` and `stop()` ends the loop.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

from ..exceptions import DecryptionError, IntegrationError, NotConnectedError
from ..repository import CredentialRepository
from .config import SyncConfig

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Totals for one reconciliation pass."""

    accounts: int = 0
    synced: int = 0
    failed: int = 0
    imported: int = 0


class ReconciliationScheduler:
    """
    Background task runner for the reconciliation sweep.

    Usage:
        scheduler = ReconciliationScheduler(AsyncSessionLocal, integration.sync_service)
        await scheduler.start()
        # ... later ...
        await scheduler.stop()
    """

    def __init__(
        self,
        db_factory,
        service_factory: Callable,
        interval: timedelta = timedelta(hours=6),
        lookback: timedelta = timedelta(hours=24),
        initial_delay: float = 0.0,
        account_delay: float = SyncConfig.ACCOUNT_DELAY_SECONDS
    ):
        self._db_factory = db_factory
        self._service_factory = service_factory
        self.interval = interval
        self.lookback = lookback
        self.initial_delay = initial_delay
        self.account_delay = account_delay

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._sweep_lock = asyncio.Lock()
        self.last_report: Optional[SweepReport] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Start the sweep loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            f"Reconciliation scheduler started (every {self.interval}, "
            f"lookback {self.lookback})"
        )

    async def stop(self):
        """Stop the sweep loop. A sweep in progress is cancelled."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Reconciliation scheduler stopped")

    async def _run_loop(self):
        """Main sweep loop."""
        if self.initial_delay:
            await asyncio.sleep(self.initial_delay)

        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Reconciliation sweep error: {e}", exc_info=True)

            await asyncio.sleep(self.interval.total_seconds())

    async def run_once(self) -> SweepReport:
        """
        Sweep all connected accounts sequentially.

        An error for one account is logged and the sweep moves on.
        Overlapping calls wait for the running sweep to finish.
        """
        async with self._sweep_lock:
            async with self._db_factory() as db:
                credential_ids = await CredentialRepository(db).list_connected_ids()

            report = SweepReport(accounts=len(credential_ids))
            logger.info(f"Reconciliation sweep: {report.accounts} connected accounts")

            for index, credential_id in enumerate(credential_ids):
                if index and self.account_delay:
                    await asyncio.sleep(self.account_delay)
                await self._sync_account(credential_id, report)

            logger.info(
                f"Reconciliation sweep finished: {report.synced} synced, "
                f"{report.failed} failed, {report.imported} activities imported"
            )
            self.last_report = report
            return report

    async def _sync_account(self, credential_id: int, report: SweepReport) -> None:
        try:
            async with self._db_factory() as db:
                service = self._service_factory(db)
                result = await service.reconcile_credential(credential_id, self.lookback)
        except NotConnectedError:
            logger.info(f"Credential {credential_id} disconnected during sweep")
            return
        except DecryptionError as e:
            report.failed += 1
            logger.error(
                f"Corrupted credential {credential_id}, tokens cannot be decrypted: {e}"
            )
            return
        except IntegrationError as e:
            report.failed += 1
            logger.warning(
                f"Sync failed for credential {credential_id}: "
                f"{e.__class__.__name__}: {e}"
            )
            return
        except Exception as e:
            report.failed += 1
            logger.error(f"Error syncing credential {credential_id}: {e}", exc_info=True)
            return

        if result is None:
            return
        report.synced += 1
        report.imported += result.imported
