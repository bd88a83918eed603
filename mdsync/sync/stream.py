"""
Applies a single node-level edit, either progressively (structured hosts)
or in one write (flat-string hosts).
"""

import asyncio
import math
from typing import Callable, NamedTuple, Optional

import structlog

from mdsync.config import settings
from mdsync.document import FORMAT_FLAGS
from mdsync.errors import EditCancelledError, UnmappableEditError
from mdsync.hosts import MarkdownHost, TreeHost
from mdsync.models import AIEdit, EditAction, EditFormatting

logger = structlog.get_logger(__name__)


class StreamProgress(NamedTuple):
    node_id: str
    progress: float  # 0..100
    revealed: str


ProgressCallback = Callable[[StreamProgress], None]


class CancellationToken:
    """Cooperative cancellation flag, checked between chunks and between edits."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise EditCancelledError("Edit cancelled")


def _apply_formatting(node, formatting: Optional[EditFormatting]) -> None:
    """Toggles requested formats that are not already set."""
    if formatting is None:
        return
    for name, flag in FORMAT_FLAGS.items():
        if getattr(formatting, name) and not node.has_format(flag):
            node.toggle_format(flag)


async def stream_text_into_node(
    host: TreeHost,
    node_id: str,
    new_content: str,
    formatting: Optional[EditFormatting] = None,
    on_progress: Optional[ProgressCallback] = None,
    token: Optional[CancellationToken] = None,
    chunk_size: Optional[int] = None,
    interval: Optional[float] = None,
) -> None:
    """
    Reveals `new_content` in the node `chunk_size` characters at a time.

    Progress is reported once at the start (0, or 100 when there is nothing
    to reveal) and after every chunk; the last report carries exactly
    `new_content` at 100. The node holds partial content between chunks.

    Raises:
        UnmappableEditError: the node no longer exists.
        EditCancelledError: `token` was cancelled at a chunk boundary.
    """
    chunk_size = chunk_size or settings.chunk_size
    interval = settings.chunk_interval if interval is None else interval

    if token is not None:
        token.raise_if_cancelled()

    node = host.get_node_by_id(node_id)
    if node is None:
        raise UnmappableEditError(f"Node {node_id} not found")

    total = len(new_content)
    _apply_formatting(node, formatting)
    node.set_text("")
    if on_progress:
        on_progress(StreamProgress(node_id, 0.0 if total else 100.0, ""))

    ticks = math.ceil(total / chunk_size)
    for tick in range(1, ticks + 1):
        if token is not None:
            token.raise_if_cancelled()

        # The node may have been replaced by a concurrent user edit
        node = host.get_node_by_id(node_id)
        if node is None:
            raise UnmappableEditError(f"Node {node_id} disappeared while streaming")

        end = min(tick * chunk_size, total)
        revealed = new_content[:end]
        node.set_text(revealed)

        if on_progress:
            progress = 100.0 if tick == ticks else min(end / total * 100, 100.0)
            on_progress(StreamProgress(node_id, progress, revealed))

        if tick < ticks and interval > 0:
            await asyncio.sleep(interval)

    logger.debug(f"Streamed {total} chars into node {node_id} in {ticks} chunks")


async def apply_node_edit(
    host: TreeHost,
    edit: AIEdit,
    on_progress: Optional[ProgressCallback] = None,
    token: Optional[CancellationToken] = None,
    chunk_size: Optional[int] = None,
    interval: Optional[float] = None,
) -> str:
    """
    Executes one AIEdit against a structured host.
    Returns the id of the node that received the content.
    """
    if edit.action is EditAction.REPLACE:
        await stream_text_into_node(
            host, edit.target_node_id, edit.new_content, edit.formatting, on_progress, token, chunk_size, interval
        )
        return edit.target_node_id

    if edit.action is EditAction.INSERT:
        new_id = host.insert_paragraph_after(edit.target_node_id)
        if new_id is None:
            raise UnmappableEditError(f"Cannot insert after node {edit.target_node_id}")
        await stream_text_into_node(
            host, new_id, edit.new_content, edit.formatting, on_progress, token, chunk_size, interval
        )
        return new_id

    if edit.action is EditAction.DELETE:
        if not host.remove_node(edit.target_node_id):
            raise UnmappableEditError(f"Node {edit.target_node_id} not found")
        if on_progress:
            on_progress(StreamProgress(edit.target_node_id, 100.0, ""))
        return edit.target_node_id

    raise ValueError(f"Unhandled edit action: {edit.action}")


def commit_markdown(host: MarkdownHost, markdown: str) -> None:
    """Flat-string hosts take the whole result in a single write."""
    host.set_markdown(markdown)
    logger.debug(f"Committed {len(markdown)} chars to flat host")
