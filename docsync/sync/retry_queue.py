"""
Durable retry queue for remote commits that hit a branch conflict.

Jobs are persisted in the local store as {document_id: job}; that table is
the source of truth. Timers are asyncio handles rebuilt from it by
restore() after a restart.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from docsync.config.settings import SyncSettings, load_settings
from docsync.storage.local_store import RETRY_QUEUE_KEY, LocalStore
from docsync.sync.committer import RemoteCommitExecutor
from docsync.sync.exceptions import ConflictError, SyncError
from docsync.sync.models import RetryJob, SaveType, Snapshot
from docsync.sync.notifier import NotificationEvent, Notifier, NullNotifier
from docsync.sync.token_manager import TokenManager

logger = logging.getLogger(__name__)


class RetryQueue:
    """
    One retry job per document, exponential backoff, bounded attempts.

    Invariant: at most one armed timer per document id. Arming always
    clears the previous timer for that id, and dropping a job clears it.
    """

    def __init__(
        self,
        store: LocalStore,
        executor: RemoteCommitExecutor,
        token_manager: TokenManager,
        notifier: Optional[Notifier] = None,
        settings: Optional[SyncSettings] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize retry queue.

        Args:
            store: Durable key/value store holding the job table
            executor: Remote commit executor
            token_manager: Resolves token and repository at fire time
            notifier: Receives sync_success events
            settings: Fixed settings (None = reload on every use)
            clock: Wall clock in epoch seconds
        """
        self.store = store
        self.executor = executor
        self.token_manager = token_manager
        self.notifier = notifier or NullNotifier()
        self.settings = settings
        self.clock = clock
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        self._running: set[str] = set()
        self._lock = asyncio.Lock()

    def _settings(self) -> SyncSettings:
        return self.settings or load_settings()

    #region Persistence

    async def _load_table(self) -> dict[str, dict[str, Any]]:
        return (await self.store.get(RETRY_QUEUE_KEY)) or {}

    async def get(self, document_id: str) -> Optional[RetryJob]:
        """Read a job from durable storage."""
        table = await self._load_table()
        data = table.get(document_id)
        return RetryJob.from_dict(data) if data else None

    async def jobs(self) -> list[RetryJob]:
        """All persisted jobs, soonest first."""
        table = await self._load_table()
        return sorted(
            (RetryJob.from_dict(data) for data in table.values()),
            key=lambda job: job.next_run_at,
        )

    async def _drop(self, document_id: str, reason: str) -> None:
        """Delete a job and clear its timer."""
        self._clear_timer(document_id)
        async with self._lock:
            table = await self._load_table()
            if table.pop(document_id, None) is None:
                return
            await self.store.set(RETRY_QUEUE_KEY, table)
        logger.info("Dropped retry job for %s: %s", document_id, reason)

    #endregion

    #region Timers

    def _clear_timer(self, document_id: str) -> None:
        handle = self._timers.pop(document_id, None)
        if handle is not None:
            handle.cancel()

    def _arm(self, job: RetryJob) -> None:
        self._clear_timer(job.id)
        delay = max(0.0, job.next_run_at - self.clock())
        loop = asyncio.get_running_loop()
        self._timers[job.id] = loop.call_later(delay, self._on_timer, job.id)
        logger.debug("Armed retry timer for %s in %.1fs", job.id, delay)

    def _on_timer(self, document_id: str) -> None:
        self._timers.pop(document_id, None)
        if document_id in self._running:
            # the in-flight attempt re-arms when it finishes
            return
        task = asyncio.ensure_future(self.fire(document_id))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Retry attempt failed", exc_info=error)

    def has_timer(self, document_id: str) -> bool:
        return document_id in self._timers

    #endregion

    async def enqueue(
        self,
        document_id: str,
        snapshot: Snapshot,
        save_type: SaveType,
    ) -> RetryJob:
        """
        Schedule a retry after a conflict, coalescing with any pending job.

        An existing job takes the new payload and keeps its attempt count;
        its next run is moved earlier if the new proposal is sooner, never
        later.

        Args:
            document_id: Document identifier
            snapshot: Latest document state
            save_type: How the save was triggered

        Returns:
            The persisted job
        """
        settings = self._settings()
        proposed = self.clock() + settings.retry_initial_delay

        async with self._lock:
            table = await self._load_table()
            existing = table.get(document_id)
            if existing:
                job = RetryJob.from_dict(existing)
                job.snapshot = snapshot
                job.save_type = SaveType(save_type)
                job.next_run_at = min(job.next_run_at, proposed)
            else:
                job = RetryJob(
                    id=document_id,
                    attempt=0,
                    next_run_at=proposed,
                    snapshot=snapshot,
                    save_type=SaveType(save_type),
                )
            table[document_id] = job.to_dict()
            await self.store.set(RETRY_QUEUE_KEY, table)

        self._arm(job)
        logger.info("Queued retry for %s (attempt %d)", document_id, job.attempt)
        return job

    async def fire(self, document_id: str) -> None:
        """
        Run one retry attempt for a document.

        The job is re-read from storage first, so a wakeup whose job was
        already removed does nothing.

        Args:
            document_id: Document identifier
        """
        self._clear_timer(document_id)
        job = await self.get(document_id)
        if job is None:
            return

        token = await self.token_manager.get_token()
        repo = await self.token_manager.get_repo()
        if not token or not repo.is_valid:
            await self._drop(document_id, "token or repository not configured")
            return

        self._running.add(document_id)
        try:
            await self.executor.commit_once(
                repo.owner, repo.repo, token, document_id, job.snapshot, job.save_type
            )
        except ConflictError:
            await self._reschedule(job)
        except SyncError as e:
            await self._drop(document_id, f"terminal error: {e}")
        except Exception:
            await self._drop(document_id, "unexpected error")
            raise
        else:
            await self._complete(job)
        finally:
            self._running.discard(document_id)

    async def _complete(self, attempted: RetryJob) -> None:
        # compare and drop under one lock; a save coalesced after the
        # commit must outlive this attempt
        async with self._lock:
            table = await self._load_table()
            data = table.get(attempted.id)
            current = RetryJob.from_dict(data) if data else None
            if current is not None and current.snapshot == attempted.snapshot:
                del table[attempted.id]
                await self.store.set(RETRY_QUEUE_KEY, table)
                current = None

        if current is not None:
            # newer content was coalesced while the attempt was in flight
            self._arm(current)
        else:
            self._clear_timer(attempted.id)
            logger.info("Dropped retry job for %s: committed", attempted.id)
        self.notifier.notify(
            NotificationEvent.SYNC_SUCCESS,
            name=attempted.snapshot.name,
            document_id=attempted.id,
        )

    async def _reschedule(self, attempted: RetryJob) -> None:
        settings = self._settings()
        exhausted = attempted.attempt + 1 >= settings.retry_max_attempts

        async with self._lock:
            table = await self._load_table()
            data = table.get(attempted.id)
            if data is None:
                return
            if exhausted:
                del table[attempted.id]
                await self.store.set(RETRY_QUEUE_KEY, table)
                current = None
            else:
                current = RetryJob.from_dict(data)
                current.attempt = attempted.attempt + 1
                proposed = self.clock() + settings.backoff_delay(current.attempt)
                if current.snapshot != attempted.snapshot:
                    current.next_run_at = min(current.next_run_at, proposed)
                else:
                    current.next_run_at = proposed
                table[current.id] = current.to_dict()
                await self.store.set(RETRY_QUEUE_KEY, table)

        if current is None:
            self._clear_timer(attempted.id)
            logger.info("Dropped retry job for %s: gave up after %d attempts",
                        attempted.id, settings.retry_max_attempts)
            return

        self._arm(current)
        logger.info("Conflict for %s, retry %d in %.0fs",
                    current.id, current.attempt, current.next_run_at - self.clock())

    async def restore(self) -> int:
        """
        Re-arm timers for every persisted job after a restart.

        Jobs whose next run is in the past fire immediately.

        Returns:
            Number of timers armed
        """
        jobs = await self.jobs()
        for job in jobs:
            self._arm(job)
        if jobs:
            logger.info("Restored %d retry job(s)", len(jobs))
        return len(jobs)

    async def remove(self, document_id: str) -> None:
        """Drop a document's job, e.g. when the document is deleted."""
        await self._drop(document_id, "removed")

    async def drain(self) -> None:
        """Wait for in-flight attempts to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def wait_until_empty(self, poll_interval: float = 0.5) -> int:
        """
        Block until every persisted job has succeeded or been dropped.

        Stops early once no timer or attempt is live, since persisted jobs
        without a timer (e.g. left over from an earlier run that was never
        restored) would otherwise never drain.

        Args:
            poll_interval: Seconds between checks of the job table

        Returns:
            Number of jobs still persisted with nothing scheduled (0 once
            the queue is empty)
        """
        while True:
            idle = not self._timers and not self._tasks
            table = await self._load_table()
            if not table:
                return 0
            if idle:
                logger.warning("%d retry job(s) pending with no timer armed", len(table))
                return len(table)
            await self.drain()
            await asyncio.sleep(poll_interval)

    def close(self) -> None:
        """Cancel all timers. Jobs stay persisted for the next restore()."""
        for document_id in list(self._timers):
            self._clear_timer(document_id)
