"""
GitHub token and repository configuration.

Token lookup uses the keyring library for cross-platform secure storage
and falls back to the local store if no keyring backend is usable.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from docsync.storage.local_store import REPO_KEY, TOKEN_KEY, LocalStore
from docsync.sync.exceptions import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepoConfig:
    """
    Parsed 'owner/repo' identifier.

    is_empty is True when nothing is configured; owner and repo are None
    when the stored identifier is malformed.
    """
    owner: Optional[str]
    repo: Optional[str]
    is_empty: bool

    @property
    def is_valid(self) -> bool:
        return bool(self.owner and self.repo)

    @property
    def full_name(self) -> Optional[str]:
        return f"{self.owner}/{self.repo}" if self.is_valid else None

    def require(self) -> tuple[str, str]:
        """
        Owner and repository name for a remote call.

        Returns:
            (owner, repo)

        Raises:
            ConfigError: If no repository is configured or it is not 'owner/repo'
        """
        if self.is_empty:
            raise ConfigError("No repository configured")
        if not self.is_valid:
            raise ConfigError("Repository must be in 'owner/repo' form")
        return self.owner, self.repo


def parse_repo(full_name: Optional[str]) -> RepoConfig:
    """
    Parse a repository identifier.

    Args:
        full_name: Identifier like 'owner/repo'

    Returns:
        RepoConfig (empty, valid, or malformed)
    """
    if not full_name:
        return RepoConfig(owner=None, repo=None, is_empty=True)
    parts = full_name.split("/")
    if len(parts) != 2 or not all(parts):
        return RepoConfig(owner=None, repo=None, is_empty=False)
    return RepoConfig(owner=parts[0], repo=parts[1], is_empty=False)


class TokenManager:
    """
    Manage the GitHub token and target repository.

    Token priority:
    1. Environment variable: DOCSYNC_GITHUB_TOKEN
    2. System keyring (secure)
    3. Local store (fallback)
    """

    SERVICE_NAME = "docsync"
    USERNAME = "github-token"
    ENV_VAR = "DOCSYNC_GITHUB_TOKEN"

    def __init__(self, store: LocalStore, use_keyring: bool = True):
        """
        Initialize token manager.

        Args:
            store: Local key/value store
            use_keyring: Set False to skip the system keyring entirely
        """
        self.store = store
        self.use_keyring = use_keyring

    def _keyring_get(self) -> Optional[str]:
        if not self.use_keyring:
            return None
        try:
            return keyring.get_password(self.SERVICE_NAME, self.USERNAME)
        except KeyringError as e:
            logger.debug("Keyring unavailable: %s", e)
            return None

    async def get_token(self) -> Optional[str]:
        """
        Get GitHub token.

        Returns:
            GitHub token or None if not configured
        """
        token = os.getenv(self.ENV_VAR)
        if token:
            return token

        token = self._keyring_get()
        if token:
            return token

        return await self.store.get(TOKEN_KEY)

    async def set_token(self, token: str) -> str:
        """
        Store GitHub token, or clear it if token is empty.

        Prefers keyring, falls back to the local store with a warning.

        Args:
            token: GitHub Personal Access Token

        Returns:
            Human-readable storage location
        """
        if not token:
            await self.delete_token()
            return "Not configured"

        if self.use_keyring:
            try:
                keyring.set_password(self.SERVICE_NAME, self.USERNAME, token)
                await self.store.remove(TOKEN_KEY)
                return self.get_storage_location_name()
            except KeyringError as e:
                logger.warning("Could not store token in keyring (%s), using local store", e)

        await self.store.set(TOKEN_KEY, token)
        return "Local store (not encrypted)"

    async def delete_token(self) -> bool:
        """
        Delete stored token from keyring and local store.

        Returns:
            True if a token was removed
        """
        deleted = False

        if self.use_keyring:
            try:
                keyring.delete_password(self.SERVICE_NAME, self.USERNAME)
                deleted = True
            except PasswordDeleteError:
                pass  # nothing stored
            except KeyringError as e:
                logger.debug("Keyring unavailable: %s", e)

        if await self.store.get(TOKEN_KEY) is not None:
            await self.store.remove(TOKEN_KEY)
            deleted = True

        return deleted

    async def has_token(self) -> bool:
        return await self.get_token() is not None

    async def get_storage_location(self) -> str:
        """
        Get description of where the token is stored.

        Returns:
            Human-readable storage location
        """
        if os.getenv(self.ENV_VAR):
            return f"Environment variable: {self.ENV_VAR}"
        if self._keyring_get():
            return self.get_storage_location_name()
        if await self.store.get(TOKEN_KEY):
            return "Local store (not encrypted)"
        return "Not configured"

    def get_storage_location_name(self) -> str:
        return f"System keyring ({keyring.get_keyring().__class__.__name__})"

    async def get_repo(self) -> RepoConfig:
        """Get the configured target repository."""
        return parse_repo(await self.store.get(REPO_KEY))

    async def set_repo(self, full_name: str) -> RepoConfig:
        """
        Store the target repository, or clear it if empty.

        Malformed identifiers are stored as-is; syncing reports them as
        an incorrect repository.

        Args:
            full_name: Identifier like 'owner/repo'

        Returns:
            Parsed RepoConfig
        """
        if not full_name:
            await self.store.remove(REPO_KEY)
        else:
            await self.store.set(REPO_KEY, full_name)
        return parse_repo(full_name)
