"""
Bounded undo/redo log of whole-document snapshots.

Entries have value semantics: everything going in or coming out is a deep
copy, so callers can never mutate history through a returned reference.
"""

import asyncio
from typing import Callable, List, Optional, Sequence

import structlog

from mdsync.hosts import MarkdownHost
from mdsync.models import HistoryEntry, PageData

logger = structlog.get_logger(__name__)

MAX_HISTORY = 50


class HistoryStack:
    def __init__(self, max_history: int = MAX_HISTORY):
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self.max_history = max_history
        self._entries: List[HistoryEntry] = []
        self._pointer = -1

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def pointer(self) -> int:
        return self._pointer

    @property
    def can_undo(self) -> bool:
        return self._pointer > 0

    @property
    def can_redo(self) -> bool:
        return self._pointer < len(self._entries) - 1

    def push(self, entry: HistoryEntry) -> None:
        """Drops any redo branch, appends a copy and evicts the oldest past the bound."""
        del self._entries[self._pointer + 1 :]
        self._entries.append(entry.model_copy(deep=True))
        while len(self._entries) > self.max_history:
            self._entries.pop(0)
        self._pointer = len(self._entries) - 1

    def push_pages(self, pages: Sequence[PageData], has_table_of_contents: bool = False) -> None:
        self.push(HistoryEntry(pages=list(pages), has_table_of_contents=has_table_of_contents))

    def undo(self) -> Optional[HistoryEntry]:
        if not self.can_undo:
            return None
        self._pointer -= 1
        return self._entries[self._pointer].model_copy(deep=True)

    def redo(self) -> Optional[HistoryEntry]:
        if not self.can_redo:
            return None
        self._pointer += 1
        return self._entries[self._pointer].model_copy(deep=True)

    def current(self) -> Optional[HistoryEntry]:
        if self._pointer < 0:
            return None
        return self._entries[self._pointer].model_copy(deep=True)

    def clear(self) -> None:
        self._entries.clear()
        self._pointer = -1


def host_snapshot(host: MarkdownHost, page_id: str = "page-1") -> HistoryEntry:
    """Snapshot of a single-page host."""
    return HistoryEntry(pages=[PageData(id=page_id, content=host.get_markdown())])


class HistoryRecorder:
    """
    Debounced history pushes.

    Each notify() restarts a fixed idle timer on the running event loop; the
    snapshot is taken when the timer fires, so it reflects whatever state the
    document is in at that moment, partial streams included.
    """

    def __init__(
        self,
        stack: HistoryStack,
        snapshot: Callable[[], HistoryEntry],
        delay: float = 0.3,
    ):
        self.stack = stack
        self.snapshot = snapshot
        self.delay = delay
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def notify(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to debounce on
            self.flush()
            return

        self.cancel()
        self._handle = loop.call_later(self.delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self.stack.push(self.snapshot())
        logger.debug(f"History snapshot pushed ({len(self.stack)} entries)")

    def flush(self) -> None:
        """Pushes immediately, dropping any pending timer."""
        self.cancel()
        self._fire()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
