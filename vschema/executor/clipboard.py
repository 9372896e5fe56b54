"""
Clipboard collaborator

`copy` actions write through this protocol; hosts plug in a platform
clipboard, tests and headless runs use MemoryClipboard.
"""

import logging
from typing import List, Optional, Protocol

logger = logging.getLogger(__name__)


class Clipboard(Protocol):
    """System clipboard surface"""

    async def write_text(self, text: str) -> None: ...


class MemoryClipboard:
    """In-process clipboard keeping every written value"""

    def __init__(self):
        self.history: List[str] = []

    @property
    def text(self) -> Optional[str]:
        return self.history[-1] if self.history else None

    async def write_text(self, text: str) -> None:
        self.history.append(text)
        logger.debug(f"Clipboard updated ({len(text)} chars)")
