"""
Per-document version history with deduplication and pruning.

History is stored as one table in the local store:
{document_id: [version, ...]} with the newest version first.
"""

import asyncio
import logging
from typing import Any, Optional

from docsync.config.settings import SyncSettings, load_settings
from docsync.storage.local_store import HISTORY_KEY, LocalStore
from docsync.sync.hasher import ContentHasher
from docsync.sync.models import Snapshot, SaveType, VersionItem, new_version_id, now_millis

logger = logging.getLogger(__name__)


class VersionHistoryStore:
    """
    Append-only, size-bounded, hash-deduplicated version log.
    """

    def __init__(
        self,
        store: LocalStore,
        hasher: Optional[ContentHasher] = None,
        settings: Optional[SyncSettings] = None,
    ):
        """
        Initialize history store.

        Args:
            store: Durable key/value store
            hasher: Content hasher (default: capability-selected)
            settings: Fixed settings (None = reload on every append)
        """
        self.store = store
        self.hasher = hasher or ContentHasher()
        self.settings = settings
        self._lock = asyncio.Lock()

    async def _load(self) -> dict[str, list[dict[str, Any]]]:
        return (await self.store.get(HISTORY_KEY)) or {}

    async def append(
        self,
        document_id: str,
        snapshot: Snapshot,
        save_type: SaveType = SaveType.MANUAL,
        settings: Optional[SyncSettings] = None,
    ) -> Optional[VersionItem]:
        """
        Add a version to the head of a document's history.

        Args:
            document_id: Document identifier
            snapshot: Saved document state
            save_type: How the save was triggered
            settings: Override settings for this call

        Returns:
            The new VersionItem, or None if skipped as an immediate duplicate

        Raises:
            sqlite3.Error: If the history table cannot be persisted
        """
        settings = settings or self.settings or load_settings()
        content_hash = self.hasher.hash(snapshot.markdown, snapshot.css, snapshot.styles)

        async with self._lock:
            history = await self._load()
            versions = history.get(document_id, [])

            if (
                settings.version_history_dedupe
                and versions
                and versions[0].get("hash") == content_hash
            ):
                logger.debug("Skipping duplicate version for %s", document_id)
                return None

            version = VersionItem(
                version_id=new_version_id(),
                created_at=now_millis(),
                hash=content_hash,
                type=SaveType(save_type),
                name=snapshot.name,
                markdown=snapshot.markdown,
                css=snapshot.css,
                styles=snapshot.styles,
            )

            versions.insert(0, version.to_dict())
            if len(versions) > settings.version_history_max:
                del versions[settings.version_history_max:]

            history[document_id] = versions
            await self.store.set(HISTORY_KEY, history)

        return version

    async def list(self, document_id: str) -> list[VersionItem]:
        """
        Get a document's history, newest first.

        Args:
            document_id: Document identifier

        Returns:
            List of versions (empty if none)
        """
        history = await self._load()
        return [VersionItem.from_dict(v) for v in history.get(document_id, [])]

    async def find_by_version_id(
        self,
        document_id: str,
        version_id: str,
    ) -> Optional[VersionItem]:
        """
        Find a version by id.

        Args:
            document_id: Document identifier
            version_id: Version identifier

        Returns:
            VersionItem if found, None otherwise
        """
        history = await self._load()
        for entry in history.get(document_id, []):
            if entry.get("versionId") == version_id:
                return VersionItem.from_dict(entry)
        return None

    async def remove(self, document_id: str) -> bool:
        """
        Drop a document's whole history.

        Returns:
            True if any history existed
        """
        async with self._lock:
            history = await self._load()
            if document_id not in history:
                return False
            del history[document_id]
            await self.store.set(HISTORY_KEY, history)
        return True
