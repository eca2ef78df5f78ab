"""
Re-entrant autosave suppression.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator


class AutosaveGuard:
    """
    Counter that blocks autosave while multi-step local mutations run.

    Nested suppression is allowed; autosave resumes once every scope has
    been released.
    """

    def __init__(self) -> None:
        self.count = 0

    @property
    def is_suppressed(self) -> bool:
        return self.count > 0

    def suppress(self) -> None:
        self.count += 1

    def release(self) -> None:
        if self.count > 0:
            self.count -= 1

    @asynccontextmanager
    async def suppressed(self) -> AsyncIterator[None]:
        """Suppress autosave for the duration of the block, even on failure."""
        self.suppress()
        try:
            yield
        finally:
            self.release()
