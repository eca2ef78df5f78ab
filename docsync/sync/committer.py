"""
Single-attempt remote commit of a document snapshot.
"""

import asyncio
import json
import logging
from typing import Callable, Optional

from docsync.config.settings import SyncSettings, load_settings
from docsync.sync.github_client import GitHubClient
from docsync.sync.models import SaveType, Snapshot

logger = logging.getLogger(__name__)


def document_paths(document_id: str, name: str) -> tuple[str, str, str]:
    """Repository paths for a document's markdown, css and styles files."""
    base = f"{document_id}/{name}"
    return f"{base}.md", f"{base}.css", f"{base}.json"


def commit_message(snapshot: Snapshot, save_type: SaveType) -> str:
    return f"Update document: {snapshot.name} ({SaveType(save_type).value}) {snapshot.update}"


class RemoteCommitExecutor:
    """
    Writes one snapshot as a new commit on the target branch.

    Stateless per call and never retries. Blocking HTTP calls run in a
    worker thread so the event loop stays responsive.
    """

    def __init__(
        self,
        client_factory: Callable[[str], GitHubClient] = GitHubClient,
        settings: Optional[SyncSettings] = None,
    ):
        """
        Initialize executor.

        Args:
            client_factory: Builds a GitHub client for a token
            settings: Fixed settings (None = reload per commit)
        """
        self.client_factory = client_factory
        self.settings = settings

    async def commit_once(
        self,
        owner: str,
        repo: str,
        token: str,
        document_id: str,
        snapshot: Snapshot,
        save_type: SaveType,
    ) -> str:
        """
        Commit a snapshot to the repository.

        Args:
            owner: Repository owner
            repo: Repository name
            token: GitHub token
            document_id: Document identifier (top-level folder)
            snapshot: Document state to write
            save_type: How the save was triggered

        Returns:
            Sha of the new commit

        Raises:
            ConflictError: If the branch moved between reading and updating it
            AuthError: If the token is invalid or lacks permissions
            NotFoundError: If the repository or branch does not exist
            OtherRemoteError: For any other remote failure

        Workflow:
            1. Read the branch tip
            2. Read the tip's tree
            3. Write markdown, css and styles blobs
            4. Build a tree on top of the base tree
            5. Create a commit whose parent is the tip
            6. Fast-forward the branch to the new commit
        """
        settings = self.settings or load_settings()
        ref = f"heads/{settings.branch}"
        client = self.client_factory(token)

        # 1-2. Current tip and its tree
        ref_data = await asyncio.to_thread(client.get_ref, owner, repo, ref)
        parent_sha = ref_data["object"]["sha"]
        commit_data = await asyncio.to_thread(client.get_commit, owner, repo, parent_sha)
        base_tree = commit_data["tree"]["sha"]

        # 3. Blobs
        paths = document_paths(document_id, snapshot.name)
        contents = (
            snapshot.markdown,
            snapshot.css,
            json.dumps(snapshot.styles, indent=2, ensure_ascii=False),
        )
        entries = []
        for path, content in zip(paths, contents):
            blob = await asyncio.to_thread(client.create_blob, owner, repo, content)
            entries.append({
                "path": path,
                "mode": "100644",
                "type": "blob",
                "sha": blob["sha"],
            })

        # 4-5. Tree and commit
        tree = await asyncio.to_thread(client.create_tree, owner, repo, base_tree, entries)
        commit = await asyncio.to_thread(
            client.create_commit,
            owner,
            repo,
            commit_message(snapshot, save_type),
            tree["sha"],
            [parent_sha],
        )

        # 6. Race point: rejected if another writer moved the branch
        await asyncio.to_thread(
            client.update_ref, owner, repo, ref, commit["sha"], parent_sha
        )

        logger.info("Committed %s to %s/%s@%s as %s",
                    document_id, owner, repo, settings.branch, commit["sha"][:7])
        return commit["sha"]
