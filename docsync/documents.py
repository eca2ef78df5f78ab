"""
Document operations used by the editor.

Wraps the local documents table, version history, and GitHub sync, and
reports each outcome to the notifier.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

from docsync.autosave import AutosaveGuard
from docsync.config.settings import SyncSettings
from docsync.storage.local_store import DOCUMENTS_KEY, LocalStore
from docsync.sync.committer import RemoteCommitExecutor
from docsync.sync.exceptions import ERROR_SYNC_FAILED
from docsync.sync.hasher import ContentHasher
from docsync.sync.history import VersionHistoryStore
from docsync.sync.models import SaveType, Snapshot, SyncOutcome, VersionItem, now_millis
from docsync.sync.notifier import NotificationEvent, Notifier, NullNotifier
from docsync.sync.retry_queue import RetryQueue
from docsync.sync.sync_manager import SyncManager
from docsync.sync.token_manager import TokenManager

logger = logging.getLogger(__name__)


DEFAULT_NAME = "New Document"
DEFAULT_MD_CONTENT = "# New Document\n"
DEFAULT_CSS_CONTENT = ""
DEFAULT_STYLES: dict[str, Any] = {
    "fontSize": 15,
    "lineHeight": 1.3,
    "marginH": 45,
    "marginV": 45,
    "paper": "A4",
    "paragraphSpace": 5,
    "themeColor": "#377bb5",
    "fontCJK": {"name": "Noto Serif CJK SC"},
    "fontEN": {"name": "Minion Pro"},
}


NUMERIC_STYLE_FIELDS = ("fontSize", "lineHeight", "marginH", "marginV", "paragraphSpace")
TEXT_STYLE_FIELDS = ("paper", "themeColor")
FONT_STYLE_FIELDS = ("fontCJK", "fontEN")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _valid_styles(styles: Any) -> bool:
    if not isinstance(styles, dict):
        return False
    if not all(_is_number(styles.get(field)) for field in NUMERIC_STYLE_FIELDS):
        return False
    if not all(isinstance(styles.get(field), str) for field in TEXT_STYLE_FIELDS):
        return False
    for field in FONT_STYLE_FIELDS:
        font = styles.get(field)
        if not isinstance(font, dict) or not isinstance(font.get("name"), str):
            return False
    return True


def validate_documents(data: Any) -> bool:
    """
    Check that imported data is a {id: document} mapping.

    Args:
        data: Parsed JSON

    Returns:
        True if every entry, including its style settings, has the
        expected field types
    """
    if not isinstance(data, dict):
        return False
    for document in data.values():
        if not isinstance(document, dict):
            return False
        for field in ("name", "markdown", "css"):
            if not isinstance(document.get(field), str):
                return False
        if not _valid_styles(document.get("styles")):
            return False
        if not isinstance(document.get("update", ""), str):
            return False
    return True


class DocumentManager:
    """
    Local document store with version history and best-effort remote sync.
    """

    def __init__(
        self,
        store: LocalStore,
        history: VersionHistoryStore,
        sync_manager: SyncManager,
        notifier: Optional[Notifier] = None,
        autosave: Optional[AutosaveGuard] = None,
    ):
        self.store = store
        self.history = history
        self.sync_manager = sync_manager
        self.notifier = notifier or NullNotifier()
        self.autosave_guard = autosave or AutosaveGuard()
        self.current_id: Optional[str] = None
        self._lock = asyncio.Lock()

    @classmethod
    def create(
        cls,
        store: LocalStore,
        notifier: Optional[Notifier] = None,
        settings: Optional[SyncSettings] = None,
        token_manager: Optional[TokenManager] = None,
        executor: Optional[RemoteCommitExecutor] = None,
    ) -> "DocumentManager":
        """
        Wire up history, token manager, executor, retry queue, and sync.

        Args:
            store: Local key/value store shared by all components
            notifier: Outcome sink (default: discard)
            settings: Fixed settings (None = reload on every use)
            token_manager: Override token/repository lookup
            executor: Override remote commit executor

        Returns:
            DocumentManager ready for use; call retry_queue.restore() once
            an event loop is running
        """
        notifier = notifier or NullNotifier()
        hasher = ContentHasher()
        token_manager = token_manager or TokenManager(store)
        executor = executor or RemoteCommitExecutor(settings=settings)
        retry_queue = RetryQueue(store, executor, token_manager, notifier, settings)
        sync_manager = SyncManager(token_manager, executor, retry_queue, hasher)
        history = VersionHistoryStore(store, hasher, settings)
        return cls(store, history, sync_manager, notifier)

    @property
    def retry_queue(self) -> RetryQueue:
        return self.sync_manager.retry_queue

    #region Documents table

    async def _load(self) -> dict[str, dict[str, Any]]:
        return (await self.store.get(DOCUMENTS_KEY)) or {}

    async def get(self, document_id: str) -> Optional[Snapshot]:
        documents = await self._load()
        data = documents.get(document_id)
        return Snapshot.from_dict(data) if data else None

    async def list(self) -> list[tuple[str, Snapshot]]:
        """
        List documents, most recently updated first.

        Returns:
            List of (document_id, snapshot)
        """
        documents = await self._load()
        # documents without an update timestamp sort by their id
        ordered = sorted(
            documents.items(),
            key=lambda item: item[1].get("update") or item[0],
            reverse=True,
        )
        return [(doc_id, Snapshot.from_dict(data)) for doc_id, data in ordered]

    async def _write(self, document_id: str, snapshot: Snapshot) -> None:
        async with self._lock:
            documents = await self._load()
            documents[document_id] = snapshot.to_dict()
            await self.store.set(DOCUMENTS_KEY, documents)

    #endregion

    async def save(
        self,
        document_id: str,
        snapshot: Snapshot,
        save_type: SaveType = SaveType.MANUAL,
    ) -> SyncOutcome:
        """
        Save a document locally, record history, and sync to GitHub.

        Args:
            document_id: Document identifier
            snapshot: Document state to save
            save_type: How the save was triggered

        Returns:
            SyncOutcome of the remote sync

        Raises:
            sqlite3.Error: If the local write or history append fails
        """
        await self._write(document_id, snapshot)
        await self.history.append(document_id, snapshot, SaveType(save_type))
        self.notifier.notify(NotificationEvent.SAVE, name=snapshot.name)

        try:
            outcome = await self.sync_manager.sync_after_save(document_id, snapshot, save_type)
        except Exception:
            # the local save already succeeded; sync must not break editing
            logger.exception("Unexpected error syncing %s", document_id)
            outcome = SyncOutcome(accepted=False, suppressed=False, error_kind=ERROR_SYNC_FAILED)

        if not outcome.suppressed:
            if outcome.accepted:
                self.notifier.notify(NotificationEvent.SYNC_SUCCESS, name=snapshot.name)
            else:
                self.notifier.notify(NotificationEvent.ERROR, error=outcome.error_kind)
        return outcome

    async def autosave(self, document_id: str, snapshot: Snapshot) -> Optional[SyncOutcome]:
        """
        Save triggered by the editor's autosave timer.

        Returns:
            SyncOutcome, or None if autosave is currently suppressed
        """
        if self.autosave_guard.is_suppressed:
            logger.debug("Autosave suppressed for %s", document_id)
            return None
        return await self.save(document_id, snapshot, SaveType.AUTO)

    async def new(self) -> str:
        """
        Create a document with default content.

        Returns:
            New document id
        """
        document_id = now_millis()
        snapshot = Snapshot(
            name=DEFAULT_NAME,
            markdown=DEFAULT_MD_CONTENT,
            css=DEFAULT_CSS_CONTENT,
            styles=dict(DEFAULT_STYLES),
            update=document_id,
        )
        await self.save(document_id, snapshot)
        self.notifier.notify(NotificationEvent.NEW)
        return document_id

    async def delete(self, document_id: str) -> bool:
        """
        Delete a document with its history and any pending retry.

        Returns:
            True if the document existed
        """
        async with self._lock:
            documents = await self._load()
            data = documents.pop(document_id, None)
            if data is None:
                return False
            await self.store.set(DOCUMENTS_KEY, documents)

        await self.history.remove(document_id)
        await self.retry_queue.remove(document_id)
        if self.current_id == document_id:
            self.current_id = None
        self.notifier.notify(NotificationEvent.DELETE, name=data["name"])
        return True

    async def duplicate(self, document_id: str) -> Optional[str]:
        """
        Copy a document under a new id, named '<name> Copy'.

        Returns:
            New document id, or None if the source does not exist
        """
        source = await self.get(document_id)
        if source is None:
            return None

        new_id = now_millis()
        copy = Snapshot(
            name=f"{source.name} Copy",
            markdown=source.markdown,
            css=source.css,
            styles=json.loads(json.dumps(source.styles)),
            update=new_id,
        )
        await self._write(new_id, copy)
        self.notifier.notify(NotificationEvent.DUPLICATE, name=source.name)
        return new_id

    async def rename(self, document_id: str, name: str) -> bool:
        snapshot = await self.get(document_id)
        if snapshot is None:
            return False
        await self._write(document_id, Snapshot(
            name=name,
            markdown=snapshot.markdown,
            css=snapshot.css,
            styles=snapshot.styles,
            update=snapshot.update,
        ))
        self.notifier.notify(NotificationEvent.SAVE, name=name)
        return True

    async def switch(self, document_id: str) -> bool:
        snapshot = await self.get(document_id)
        if snapshot is None:
            return False
        self.current_id = document_id
        self.notifier.notify(NotificationEvent.SWITCH, name=snapshot.name)
        return True

    async def rollback(self, document_id: str, version_id: str) -> bool:
        """
        Restore a historical version as a new 'rollback' save.

        Autosave stays suppressed until the rollback's own save finishes.

        Args:
            document_id: Document identifier
            version_id: Version to restore

        Returns:
            True if restored, False if the version does not exist
        """
        version: Optional[VersionItem] = await self.history.find_by_version_id(
            document_id, version_id
        )
        if version is None:
            self.notifier.notify(NotificationEvent.ERROR)
            return False

        async with self.autosave_guard.suppressed():
            self.current_id = document_id
            await self.save(document_id, version.to_snapshot(), SaveType.ROLLBACK)

        self.notifier.notify(NotificationEvent.RESTORE)
        return True

    async def export_documents(self, path: Path) -> int:
        """
        Write all documents to a JSON file.

        Returns:
            Number of documents exported
        """
        documents = await self._load()
        path.write_text(json.dumps(documents, ensure_ascii=False), encoding="utf-8")
        return len(documents)

    async def import_documents(self, path: Path) -> int:
        """
        Merge documents from a JSON file into the local store.

        Imported documents overwrite existing ones with the same id.

        Returns:
            Number of documents imported (0 if the file is invalid)
        """
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read import file %s: %s", path, e)
            data = None

        if not validate_documents(data):
            self.notifier.notify(NotificationEvent.IMPORT, ok=False)
            return 0

        async with self._lock:
            documents = await self._load()
            documents.update(data)
            await self.store.set(DOCUMENTS_KEY, documents)

        self.notifier.notify(NotificationEvent.IMPORT, ok=True)
        return len(data)
