"""
Main synchronization manager for GitHub repository integration.

Entry point called after every local save: attempts one remote commit and
hands conflicts to the retry queue.
"""

import logging
from typing import Any, Optional

from docsync.sync.committer import RemoteCommitExecutor
from docsync.sync.exceptions import (
    ConflictError,
    SyncError,
    error_kind,
)
from docsync.sync.hasher import ContentHasher
from docsync.sync.models import SaveType, Snapshot, SyncOutcome
from docsync.sync.retry_queue import RetryQueue
from docsync.sync.token_manager import TokenManager

logger = logging.getLogger(__name__)


class SyncManager:
    """
    Manages synchronization between local saves and a GitHub repository.
    """

    def __init__(
        self,
        token_manager: TokenManager,
        executor: RemoteCommitExecutor,
        retry_queue: RetryQueue,
        hasher: Optional[ContentHasher] = None,
    ):
        self.token_manager = token_manager
        self.executor = executor
        self.retry_queue = retry_queue
        self.hasher = hasher

    async def sync_after_save(
        self,
        document_id: str,
        snapshot: Snapshot,
        save_type: SaveType = SaveType.MANUAL,
    ) -> SyncOutcome:
        """
        Mirror a saved document to GitHub.

        Args:
            document_id: Document identifier
            snapshot: Saved document state
            save_type: How the save was triggered

        Returns:
            SyncOutcome; suppressed outcomes should not be shown to the user

        Decision table:
            - no token or no repository: accepted, suppressed
            - malformed repository: rejected, incorrect_repo
            - commit succeeds: accepted
            - conflict: accepted, suppressed, retry queued
            - auth / not found / other: rejected with a stable error kind
        """
        token = await self.token_manager.get_token()
        if not token:
            return SyncOutcome(accepted=True, suppressed=True)

        repo = await self.token_manager.get_repo()
        if repo.is_empty:
            return SyncOutcome(accepted=True, suppressed=True)

        try:
            owner, name = repo.require()
            await self.executor.commit_once(owner, name, token, document_id, snapshot, save_type)
        except ConflictError:
            logger.info("Branch moved while syncing %s, queueing retry", document_id)
            await self.retry_queue.enqueue(document_id, snapshot, save_type)
            return SyncOutcome(accepted=True, suppressed=True)
        except SyncError as e:
            logger.warning("GitHub sync failed for %s: %s", document_id, e)
            return SyncOutcome(accepted=False, suppressed=False, error_kind=error_kind(e))

        return SyncOutcome(accepted=True, suppressed=False)

    async def status(self) -> dict[str, Any]:
        """
        Get synchronization status.

        Returns:
            Dictionary with status information
        """
        repo = await self.token_manager.get_repo()
        jobs = await self.retry_queue.jobs()
        status = {
            "token_configured": await self.token_manager.has_token(),
            "token_location": await self.token_manager.get_storage_location(),
            "repo": repo.full_name,
            "repo_valid": repo.is_valid,
            "repo_configured": not repo.is_empty,
            "pending_jobs": [
                {"id": job.id, "attempt": job.attempt, "next_run_at": job.next_run_at}
                for job in jobs
            ],
        }
        if self.hasher is not None:
            status["hash_strategy"] = self.hasher.strategy
        return status
