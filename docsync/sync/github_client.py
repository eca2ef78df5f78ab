"""
GitHub git data API client for document synchronization.

Uses GitHub REST API v3 low-level git objects (refs, commits, blobs,
trees). Each call makes exactly one request; retrying is the caller's job.
"""

import logging
from typing import Any, Optional

import requests

from docsync.sync.exceptions import AuthError, ConflictError, OtherRemoteError, classify_status

logger = logging.getLogger(__name__)


class GitHubClient:
    """
    GitHub git data API client.

    Handles authentication and maps failed responses to the sync error
    taxonomy.
    """

    API_BASE = "https://api.github.com"
    TIMEOUT = 30  # seconds

    def __init__(self, token: str, session: Optional[requests.Session] = None):
        """
        Initialize GitHub client.

        Args:
            token: GitHub Personal Access Token with 'repo' scope
            session: Preconfigured session (default: new session)

        Raises:
            ValueError: If token is empty
        """
        if not token:
            raise ValueError("GitHub token is required")

        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"token {token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "docsync",
        })

    def _repo_url(self, owner: str, repo: str, path: str) -> str:
        return f"{self.API_BASE}/repos/{owner}/{repo}/git/{path}"

    def get_ref(self, owner: str, repo: str, ref: str) -> dict[str, Any]:
        """
        Get a git reference.

        Args:
            owner: Repository owner
            repo: Repository name
            ref: Reference without the 'refs/' prefix (e.g. 'heads/main')

        Returns:
            Reference data; the tip sha is at ['object']['sha']
        """
        response = self._request("GET", self._repo_url(owner, repo, f"ref/{ref}"))
        return response.json()

    def get_commit(self, owner: str, repo: str, commit_sha: str) -> dict[str, Any]:
        """
        Get a commit object.

        Returns:
            Commit data; the tree sha is at ['tree']['sha']
        """
        response = self._request("GET", self._repo_url(owner, repo, f"commits/{commit_sha}"))
        return response.json()

    def create_blob(self, owner: str, repo: str, content: str) -> dict[str, Any]:
        """
        Create a UTF-8 blob.

        Returns:
            Blob data including 'sha'
        """
        response = self._request(
            "POST",
            self._repo_url(owner, repo, "blobs"),
            json={"content": content, "encoding": "utf-8"},
        )
        return response.json()

    def create_tree(
        self,
        owner: str,
        repo: str,
        base_tree: str,
        entries: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """
        Create a tree layered on top of base_tree.

        Args:
            owner: Repository owner
            repo: Repository name
            base_tree: Sha of the tree to layer on
            entries: Tree entries ({path, mode, type, sha})

        Returns:
            Tree data including 'sha'
        """
        response = self._request(
            "POST",
            self._repo_url(owner, repo, "trees"),
            json={"base_tree": base_tree, "tree": entries},
        )
        return response.json()

    def create_commit(
        self,
        owner: str,
        repo: str,
        message: str,
        tree: str,
        parents: list[str],
    ) -> dict[str, Any]:
        """
        Create a commit object.

        Returns:
            Commit data including 'sha'
        """
        response = self._request(
            "POST",
            self._repo_url(owner, repo, "commits"),
            json={"message": message, "tree": tree, "parents": parents},
        )
        return response.json()

    def update_ref(
        self,
        owner: str,
        repo: str,
        ref: str,
        sha: str,
        expected_sha: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Move a reference to a new commit without forcing.

        The update only succeeds as a fast-forward, so a commit whose parent
        is expected_sha is rejected if the reference has moved since.

        Args:
            owner: Repository owner
            repo: Repository name
            ref: Reference without the 'refs/' prefix
            sha: New commit sha
            expected_sha: Sha the reference is expected to point at

        Returns:
            Updated reference data

        Raises:
            ConflictError: If the reference moved (409, or 422 non-fast-forward)
        """
        try:
            response = self._request(
                "PATCH",
                self._repo_url(owner, repo, f"refs/{ref}"),
                json={"sha": sha, "force": False},
            )
        except OtherRemoteError as e:
            if e.status == 422:
                raise ConflictError(
                    f"Reference {ref} is no longer at {expected_sha or 'the expected commit'}",
                    status=e.status,
                ) from e
            raise
        return response.json()

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """
        Make one HTTP request.

        Args:
            method: HTTP method
            url: Request URL
            **kwargs: Additional arguments for requests

        Returns:
            Response object

        Raises:
            RemoteError: Classified by HTTP status (or transport failure)
        """
        kwargs.setdefault("timeout", self.TIMEOUT)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise OtherRemoteError(f"GitHub API request failed: {e}") from e

        if response.status_code >= 400:
            error_cls = classify_status(response.status_code)
            message = _error_message(response)
            logger.debug("%s %s -> %s %s", method, url, response.status_code, message)
            raise error_cls(
                f"GitHub API {method} failed ({response.status_code}): {message}",
                status=response.status_code,
            )

        return response

    def test_token(self) -> bool:
        """
        Test if token is valid.

        Returns:
            True if token is valid

        Raises:
            OtherRemoteError: If GitHub could not be reached
        """
        try:
            response = self._request("GET", f"{self.API_BASE}/user")
            return response.status_code == 200
        except AuthError:
            return False


def _error_message(response: requests.Response) -> str:
    """Extract GitHub's error message without echoing request headers."""
    try:
        return str(response.json().get("message", ""))
    except ValueError:
        return response.reason or ""
