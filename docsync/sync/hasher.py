"""
Content fingerprints for version history deduplication.

Only the content blocks and style settings are hashed; names and
timestamps change on every save without representing a content change.
"""

import hashlib
import json
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


def canonical_content(markdown: str, css: str, styles: dict[str, Any]) -> str:
    """
    Serialize content fields to a canonical JSON string.

    Args:
        markdown: Markdown content block
        css: Stylesheet content block
        styles: Style settings mapping

    Returns:
        JSON string with sorted keys and compact separators
    """
    return json.dumps(
        {"markdown": markdown, "css": css, "styles": styles},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def sha256_digest(text: str) -> str:
    """SHA-256 hex digest (64 chars)."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def checksum_digest(text: str) -> str:
    """32-bit rolling checksum rendered as 8 hex chars."""
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    return f"{value:08x}"


def secure_digest_available() -> bool:
    """
    Check whether a SHA-256 primitive is usable in this interpreter.

    Returns:
        True if hashlib provides a working sha256
    """
    if "sha256" not in hashlib.algorithms_available:
        return False
    try:
        hashlib.sha256(b"probe").hexdigest()
    except ValueError:
        # FIPS-restricted or stripped builds
        return False
    return True


class ContentHasher:
    """
    Deterministic fingerprint of a document's content.

    The strategy is selected once at construction: SHA-256 when available,
    otherwise a non-cryptographic checksum.
    """

    def __init__(self, prefer_secure: Optional[bool] = None):
        """
        Initialize hasher.

        Args:
            prefer_secure: Force a strategy (None = capability check)
        """
        secure = secure_digest_available() if prefer_secure is None else prefer_secure
        self._digest: Callable[[str], str] = sha256_digest if secure else checksum_digest
        self.strategy = "sha256" if secure else "checksum"
        if not secure:
            logger.info("SHA-256 unavailable, using checksum content hashes")

    def hash(self, markdown: str, css: str, styles: dict[str, Any]) -> str:
        """
        Hash document content.

        Args:
            markdown: Markdown content block
            css: Stylesheet content block
            styles: Style settings mapping

        Returns:
            Fixed-length hex digest
        """
        return self._digest(canonical_content(markdown, css, styles))
