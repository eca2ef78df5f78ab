"""
Custom exceptions for GitHub repository synchronization.
"""

from typing import Optional


# Stable error kinds reported to the notification layer
ERROR_INCORRECT_REPO = "incorrect_repo"
ERROR_TOKEN_INVALID = "token_invalid"
ERROR_TOKEN_INSUFFICIENT_PERMISSIONS = "token_insufficient_permissions"
ERROR_REPO_NOT_FOUND = "repo_not_found"
ERROR_FILE_CONFLICT = "file_conflict"
ERROR_SYNC_FAILED = "sync_failed"


class SyncError(Exception):
    """
    Generic synchronization error.

    Base class for all sync-related errors.
    """
    pass


class ConfigError(SyncError):
    """
    Raised when token or repository configuration is missing or malformed.
    """
    pass


class RemoteError(SyncError):
    """
    Raised when the remote repository rejects a request.

    Attributes:
        status: HTTP status code, or None for transport failures
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ConflictError(RemoteError):
    """
    Raised when the branch reference no longer points at the expected commit.

    This is the only recoverable remote error: it typically occurs when
    another writer updated the branch between reading the tip and
    updating the reference.
    """
    pass


class AuthError(RemoteError):
    """
    Raised when the GitHub token is invalid (401) or lacks permissions (403).
    """
    pass


class NotFoundError(RemoteError):
    """
    Raised when the repository or branch does not exist.
    """
    pass


class OtherRemoteError(RemoteError):
    """
    Catch-all for remote failures that are not worth retrying.
    """
    pass


def classify_status(status: Optional[int]) -> type:
    """
    Map an HTTP status code to a RemoteError subclass.

    Args:
        status: HTTP status code (None for transport failures)

    Returns:
        RemoteError subclass
    """
    if status in (401, 403):
        return AuthError
    if status == 404:
        return NotFoundError
    if status == 409:
        return ConflictError
    return OtherRemoteError


def error_kind(error: Exception) -> str:
    """
    Map an exception to a stable error kind string.

    Args:
        error: Exception raised during sync

    Returns:
        One of the ERROR_* constants
    """
    if isinstance(error, ConfigError):
        return ERROR_INCORRECT_REPO
    if isinstance(error, AuthError):
        if error.status == 403:
            return ERROR_TOKEN_INSUFFICIENT_PERMISSIONS
        return ERROR_TOKEN_INVALID
    if isinstance(error, NotFoundError):
        return ERROR_REPO_NOT_FOUND
    if isinstance(error, ConflictError):
        return ERROR_FILE_CONFLICT
    return ERROR_SYNC_FAILED
