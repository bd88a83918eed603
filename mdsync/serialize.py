"""
Deterministic Document -> Markdown projection.

The projection is produced as a stream of Segments. Real segments carry the
text node they came from; virtual segments (block prefixes, inline markers,
separators) carry None. The PositionMapper consumes the same stream, so the
offsets it records always agree with `serialize()`.
"""

from typing import Iterator, NamedTuple, Optional

from mdsync.document import Document, DocumentNode, NodeKind, TextFormat


BLOCK_SEPARATOR = "\n\n"
LIST_SEPARATOR = "\n"
CODE_FENCE = "```"
HORIZONTAL_RULE = "---"

# Opening order; closing markers are emitted in reverse.
INLINE_MARKERS = (
    (TextFormat.BOLD, "**"),
    (TextFormat.ITALIC, "_"),
    (TextFormat.STRIKETHROUGH, "~~"),
)


class Segment(NamedTuple):
    text: str
    node: Optional[DocumentNode]  # None for virtual text


def serialize(document: Document) -> str:
    """
    Serializes a Document to Markdown.
    Same tree in, byte-identical string out.
    """
    return "".join(segment.text for segment in iter_markdown_segments(document))


def iter_markdown_segments(document: Document) -> Iterator[Segment]:
    previous: Optional[DocumentNode] = None
    ordinal = 0

    for block in document.root.children:
        if previous is not None:
            yield Segment(_separator(previous, block), None)

        if block.kind is NodeKind.LIST_ITEM and block.ordered:
            continuing = previous is not None and previous.kind is NodeKind.LIST_ITEM and previous.ordered
            ordinal = ordinal + 1 if continuing else 1
        else:
            ordinal = 0

        yield from _block_segments(block, ordinal)
        previous = block


def _separator(previous: DocumentNode, block: DocumentNode) -> str:
    # Consecutive list items form one list
    if previous.kind is NodeKind.LIST_ITEM and block.kind is NodeKind.LIST_ITEM:
        return LIST_SEPARATOR
    return BLOCK_SEPARATOR


def block_prefix(block: DocumentNode, ordinal: int = 1) -> str:
    """Markdown prefix for a block, e.g. HEADING level 2 -> '## '."""
    kind = block.kind
    if kind is NodeKind.HEADING:
        return "#" * min(max(block.level, 1), 6) + " "
    if kind is NodeKind.LIST_ITEM:
        return f"{ordinal}. " if block.ordered else "- "
    if kind is NodeKind.QUOTE:
        return "> "
    if kind in (NodeKind.PARAGRAPH, NodeKind.CODE_BLOCK, NodeKind.HORIZONTAL_RULE, NodeKind.TEXT):
        return ""
    raise ValueError(f"Unhandled block kind: {kind.value}")


def _block_segments(block: DocumentNode, ordinal: int) -> Iterator[Segment]:
    kind = block.kind

    if kind is NodeKind.HORIZONTAL_RULE:
        yield Segment(HORIZONTAL_RULE, None)
        return

    if kind is NodeKind.CODE_BLOCK:
        # Code is emitted raw: no inline markers inside a fence
        yield Segment(CODE_FENCE + "\n", None)
        for node in _iter_text(block):
            yield Segment(node.text, node)
        yield Segment("\n" + CODE_FENCE, None)
        return

    if kind is NodeKind.TEXT:
        # Bare text directly under the root reads as an implicit paragraph
        yield from _inline_segments(block)
        return

    if kind in (NodeKind.PARAGRAPH, NodeKind.HEADING, NodeKind.LIST_ITEM, NodeKind.QUOTE):
        prefix = block_prefix(block, ordinal)
        if prefix:
            yield Segment(prefix, None)
        for node in _iter_text(block):
            yield from _inline_segments(node)
        return

    raise ValueError(f"Unhandled block kind: {kind.value}")


def _iter_text(node: DocumentNode) -> Iterator[DocumentNode]:
    for child in node.children:
        if child.is_text:
            yield child
        else:
            yield from _iter_text(child)


def _inline_segments(node: DocumentNode) -> Iterator[Segment]:
    """
    Wraps a text node in its inline markers.
    Empty text emits a zero-width real segment and no markers (avoids '****').
    Underline has no Markdown marker and is carried by the tree only.
    """
    if not node.text:
        yield Segment("", node)
        return

    if node.has_format(TextFormat.CODE):
        yield Segment("`", None)
        yield Segment(node.text, node)
        yield Segment("`", None)
        return

    markers = [marker for flag, marker in INLINE_MARKERS if node.has_format(flag)]
    for marker in markers:
        yield Segment(marker, None)
    yield Segment(node.text, node)
    for marker in reversed(markers):
        yield Segment(marker, None)
