"""
Strava webhook intake.

Event lifecycle:
    received -> acknowledged -> (async) resolved -> imported | skipped | failed

The HTTP handler only validates and enqueues; it never waits on the
provider or the database. Import work runs on a bounded queue served by a
fixed pool of worker tasks. Each event gets exactly one attempt; anything
missed is picked up by the reconciliation sweep.
"""

import asyncio
import logging
import secrets
from typing import Callable, Optional

from .exceptions import DecryptionError, IntegrationError
from .importer import ImportResult
from .repository import CredentialRepository
from .schemas import WebhookEvent
from .sync.config import SyncConfig

logger = logging.getLogger(__name__)


SUBSCRIBE_MODE = "subscribe"


def verify_subscription(
    expected_token: str,
    mode: Optional[str],
    challenge: Optional[str],
    verify_token: Optional[str]
) -> Optional[str]:
    """
    Check a subscription handshake.

    Returns:
        The challenge to echo back, or None if the handshake must be rejected
    """
    if mode != SUBSCRIBE_MODE or challenge is None or verify_token is None:
        return None
    if not secrets.compare_digest(verify_token.encode(), expected_token.encode()):
        return None
    return challenge


def should_import(event: WebhookEvent) -> bool:
    """Only newly created activities trigger an import."""
    return event.object_type == "activity" and event.aspect_type == "create"


class WebhookDispatcher:
    """
    Bounded work queue for webhook-triggered imports.

    Usage:
        dispatcher = WebhookDispatcher(AsyncSessionLocal, integration.sync_service)
        await dispatcher.start()
        dispatcher.submit(event)
        # ... at shutdown ...
        await dispatcher.stop()
    """

    def __init__(
        self,
        db_factory,
        service_factory: Callable,
        queue_size: int = 100,
        workers: int = 2
    ):
        self._db_factory = db_factory
        self._service_factory = service_factory
        self._queue: asyncio.Queue[WebhookEvent] = asyncio.Queue(maxsize=queue_size)
        self._worker_count = workers
        self._workers: list[asyncio.Task] = []
        self._accepting = True
        self.processed = 0
        self.dropped = 0

    @property
    def pending(self) -> int:
        """Events queued but not yet picked up."""
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    async def start(self):
        """Start worker tasks."""
        if self._workers:
            return
        self._accepting = True
        self._workers = [
            asyncio.create_task(self._worker(n), name=f"strava-webhook-{n}")
            for n in range(self._worker_count)
        ]
        logger.info(f"Webhook dispatcher started with {self._worker_count} workers")

    async def stop(self, drain_timeout: float = SyncConfig.WEBHOOK_DRAIN_TIMEOUT_SECONDS):
        """Stop accepting events, drain the queue (bounded), then stop workers."""
        self._accepting = False

        if self._workers:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Webhook queue not drained within {drain_timeout}s, "
                    f"{self.pending} events left for reconciliation"
                )

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Webhook dispatcher stopped")

    def submit(self, event: WebhookEvent) -> bool:
        """
        Queue an event without waiting.

        Returns:
            False if the event was dropped (shutting down or queue full)
        """
        if not self._accepting:
            self.dropped += 1
            logger.warning(f"Dispatcher stopping, dropped event for activity {event.object_id}")
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Webhook queue full, dropped event for activity {event.object_id} "
                f"(reconciliation will pick it up)"
            )
            return False
        return True

    async def _worker(self, number: int):
        while True:
            event = await self._queue.get()
            try:
                await self.process(event)
            except Exception as e:
                logger.error(
                    f"Webhook worker {number} failed on activity {event.object_id}: {e}",
                    exc_info=True
                )
            finally:
                self.processed += 1
                self._queue.task_done()

    async def process(self, event: WebhookEvent) -> Optional[ImportResult]:
        """
        Resolve the event to a local user and import the activity once.

        Events for accounts no local user has connected are dropped.
        """
        async with self._db_factory() as db:
            credentials = CredentialRepository(db)
            credential = await credentials.get_connected_by_external_account(
                event.external_account_id
            )
            if not credential:
                logger.info(
                    f"No connected user for Strava athlete {event.owner_id}, "
                    f"dropping event for activity {event.object_id}"
                )
                return None

            user_id = credential.user_id
            service = self._service_factory(db)
            try:
                result = await service.import_activity_by_id(
                    credential, event.external_activity_id
                )
            except DecryptionError as e:
                logger.error(f"Corrupted Strava credential for user {user_id}: {e}")
                return None
            except IntegrationError as e:
                logger.warning(
                    f"Webhook import of activity {event.object_id} for user {user_id} "
                    f"failed: {e.__class__.__name__}: {e}"
                )
                return None

            logger.info(
                f"Webhook activity {event.object_id} for user {user_id}: "
                f"{result.status.value}"
                + (f" ({result.reason})" if result.reason else "")
            )
            return result
