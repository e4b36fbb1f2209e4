"""
Sync Service

Pushes the outbox to the remote backend.

- Replays happen on demand (sync_now), when connectivity is restored
  (set_online(True)) and on a timer (run_periodic, driven from a
  background thread by PeriodicSyncRunner).
- Entries are pushed strictly in enqueue order. The first entry that
  still fails after its retries stops the replay; it and everything
  after it stay queued for the next attempt.
- Only one replay runs at a time, across threads. A replay requested
  while another is running is skipped, not queued.
- With encryption enabled, entries queued before sign-in wait until a
  key is available; they are never pushed as plaintext.
"""

import asyncio
import threading
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from bookkeeper.logger import get_logger
from bookkeeper.models.base import utc_now
from bookkeeper.security.encryption import EncryptionError
from bookkeeper.services.storage.interface import StorageError
from bookkeeper.services.sync.interface import RemoteBackendError, RemoteBackendInterface, SyncError
from bookkeeper.services.sync.outbox import OutboxEntry, OutboxOperation, SyncOutbox


logger = get_logger(__name__)


class SyncReport(BaseModel):
    """Result of one outbox replay."""

    pushed: int = 0
    ignored: int = Field(
        default=0,
        description="Entries the backend skipped as stale or already applied"
    )
    failed: int = 0
    remaining: int = 0
    skipped_reason: Optional[str] = None
    last_error: Optional[str] = None
    completed_at: datetime = Field(default_factory=utc_now)

    @property
    def succeeded(self) -> bool:
        return self.failed == 0 and self.skipped_reason is None


class SyncService:
    """Tracks connectivity and replays the outbox."""

    def __init__(
        self,
        outbox: SyncOutbox,
        remote: Optional[RemoteBackendInterface] = None,
        max_attempts: int = 3,
        wait: Optional[wait_base] = None,
        online: bool = True,
    ):
        self._outbox = outbox
        self._remote = remote
        self._max_attempts = max_attempts
        self._wait = wait or wait_exponential(multiplier=1, min=2, max=10)
        self._online = online
        self._lock = threading.Lock()
        self.last_report: Optional[SyncReport] = None

    @property
    def online(self) -> bool:
        return self._online

    @property
    def has_remote(self) -> bool:
        return self._remote is not None

    async def queue_size(self) -> int:
        return await self._outbox.size()

    async def set_online(self, online: bool) -> Optional[SyncReport]:
        """
        Record a connectivity change.

        Returns the replay report when coming back online, otherwise None.
        """
        was_online = self._online
        self._online = online
        logger.info("connectivity_changed", online=online)
        if online and not was_online:
            return await self.sync_now()
        return None

    async def _push(self, entry: OutboxEntry) -> bool:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(RemoteBackendError),
            reraise=True,
        ):
            with attempt:
                if entry.operation == OutboxOperation.DELETE:
                    return await self._remote.delete(
                        entry.collection,
                        entry.record_id,
                        entry.record_updated_at,
                        str(entry.entry_id),
                    )
                return await self._remote.upsert(
                    entry.collection,
                    entry.record_id,
                    entry.payload or "",
                    entry.record_updated_at,
                    str(entry.entry_id),
                )
        return False

    async def sync_now(self) -> SyncReport:
        """Replay pending entries in order; stop at the first failure."""
        if self._remote is None:
            report = SyncReport(
                remaining=await self._outbox.size(),
                skipped_reason="No remote backend configured",
            )
            self.last_report = report
            return report

        if not self._online:
            report = SyncReport(
                remaining=await self._outbox.size(),
                skipped_reason="Offline",
            )
            self.last_report = report
            return report

        if not self._lock.acquire(blocking=False):
            return SyncReport(
                remaining=await self._outbox.size(),
                skipped_reason="Sync already in progress",
            )
        try:
            report = await self._replay()
        finally:
            self._lock.release()

        logger.info(
            "sync_completed",
            pushed=report.pushed,
            ignored=report.ignored,
            failed=report.failed,
            remaining=report.remaining,
            skipped_reason=report.skipped_reason,
        )
        return report

    async def _replay(self) -> SyncReport:
        report = SyncReport()

        for entry in await self._outbox.pending():
            sealed = await self._outbox.seal(entry)
            if sealed is None:
                report.skipped_reason = "Waiting for sign-in to encrypt pending changes"
                logger.info("sync_waiting_for_key", sequence=entry.sequence)
                break

            try:
                applied = await self._push(sealed)
            except RemoteBackendError as e:
                await self._outbox.record_failure(sealed, str(e))
                report.failed = 1
                report.last_error = str(e)
                logger.warning(
                    "sync_push_failed",
                    collection=entry.collection,
                    record_id=entry.record_id,
                    sequence=entry.sequence,
                    error=str(e),
                )
                break

            await self._outbox.acknowledge(sealed)
            if applied:
                report.pushed += 1
            else:
                report.ignored += 1

        report.remaining = await self._outbox.size()
        report.completed_at = utc_now()
        self.last_report = report
        return report

    async def fetch(self, collection: str) -> list[dict[str, Any]]:
        """
        Live records of a collection on the remote backend.

        Raises:
            SyncError: If no remote backend is configured
            RemoteBackendError: If the backend still fails after retries
        """
        if self._remote is None:
            raise SyncError("No remote backend configured")
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(RemoteBackendError),
            reraise=True,
        ):
            with attempt:
                return await self._remote.fetch(collection)
        return []

    async def run_periodic(self, interval: float, stop_event: asyncio.Event) -> None:
        """Replay the outbox every interval seconds until stop_event is set."""
        while not stop_event.is_set():
            if self._online and self._remote is not None:
                try:
                    await self.sync_now()
                except (StorageError, EncryptionError) as e:
                    logger.error("periodic_sync_failed", error=str(e))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue


class PeriodicSyncRunner:
    """
    Drives SyncService.run_periodic on a daemon thread.

    The thread owns its own event loop, so the replay timer keeps
    running between UI reruns. stop() signals the loop and joins.
    """

    def __init__(self, service: SyncService, interval: float):
        self._service = service
        self._interval = interval
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop: Optional[asyncio.Event] = None
        self._ready = threading.Event()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._ready.clear()
        self._thread = threading.Thread(
            target=asyncio.run,
            args=(self._main(),),
            name="bookkeeper-sync",
            daemon=True,
        )
        self._thread.start()
        self._ready.wait(timeout=5)
        logger.info("periodic_sync_started", interval=self._interval)

    async def _main(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stop = asyncio.Event()
        self._ready.set()
        await self._service.run_periodic(self._interval, self._stop)

    def stop(self, timeout: float = 5.0) -> None:
        if not self.running:
            return
        self._loop.call_soon_threadsafe(self._stop.set)
        self._thread.join(timeout)
        logger.info("periodic_sync_stopped")
