import re
from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Tuple, Union

import structlog

from mdsync.document import Document
from mdsync.models import MarkdownSelection
from mdsync.serialize import iter_markdown_segments

logger = structlog.get_logger(__name__)

# A hint is an approximate offset, or an editor-reported (start, end) pair.
Hint = Union[int, Tuple[int, int], None]

CONTEXT_CHARS = 50


@dataclass
class TextSpan:
    start: int
    end: int
    text: str
    node_id: Optional[str]  # None for virtual text (prefixes, markers, separators)

    @property
    def is_virtual(self) -> bool:
        return self.node_id is None


class NodePosition(NamedTuple):
    node_id: str
    local_offset: int


class PositionMapper:
    """
    Bidirectional map between Markdown offsets and (node id, local offset).

    `full_text` is byte-identical to `serialize(document)`; both are built
    from the same segment stream. The map describes the tree at construction
    time; rebuild it (`rebuild()`) after the tree mutates.
    """

    def __init__(self, document: Document):
        self.document = document
        self.full_text = ""
        self.spans: List[TextSpan] = []
        self._build_map()

    def _build_map(self):
        current = 0
        parts = []
        self.spans = []

        for segment in iter_markdown_segments(self.document):
            node_id = segment.node.id if segment.node is not None else None
            self.spans.append(TextSpan(current, current + len(segment.text), segment.text, node_id))
            parts.append(segment.text)
            current += len(segment.text)

        self.full_text = "".join(parts)

    def rebuild(self) -> None:
        self._build_map()

    @property
    def text_spans(self) -> List[TextSpan]:
        return [s for s in self.spans if not s.is_virtual]

    def node_range(self, node_id: str) -> Optional[Tuple[int, int]]:
        for span in self.spans:
            if span.node_id == node_id:
                return span.start, span.end
        return None

    def anchor(self, markdown: str) -> List[TextSpan]:
        """
        Positions every text node inside `markdown`.

        When `markdown` is this mapper's own text the recorded spans are exact.
        Otherwise (the snapshot drifted from the live tree) each node's text is
        searched sequentially, so nodes keep document order; nodes whose text
        cannot be found are left out.
        """
        if markdown == self.full_text:
            return self.text_spans

        anchored = []
        cursor = 0
        for span in self.text_spans:
            if not span.text:
                continue
            idx = markdown.find(span.text, cursor)
            if idx == -1:
                logger.debug(f"Node {span.node_id} not found in drifted markdown")
                continue
            anchored.append(TextSpan(idx, idx + len(span.text), span.text, span.node_id))
            cursor = idx + len(span.text)

        logger.debug(f"Anchored {len(anchored)}/{len(self.text_spans)} nodes in drifted markdown")
        return anchored

    def locate(self, markdown: str, offset: int) -> Optional[NodePosition]:
        """
        Resolves a Markdown offset to the text node containing it.

        Ranges are half-open, so the first node whose [start, end) contains
        the offset wins. Where two nodes touch, the shared offset is the end
        of the earlier node and the start of the later one; it resolves to
        the later node, since that is the node holding markdown[offset].

        Offsets on virtual text (markers, separators, end of document) clamp
        to the end of the earlier node; before the first node they clamp to
        its start. Offsets outside the string return None.
        """
        if offset < 0 or offset > len(markdown):
            return None

        spans = self.anchor(markdown)
        if not spans:
            return None

        earlier: Optional[TextSpan] = None
        for span in spans:
            if span.start <= offset < span.end:
                return NodePosition(span.node_id, offset - span.start)
            if span.end <= offset:
                earlier = span

        if earlier is not None:
            return NodePosition(earlier.node_id, len(earlier.text))
        return NodePosition(spans[0].node_id, 0)

    def offset_of(self, node_id: str, local_offset: int = 0) -> Optional[int]:
        """Inverse of locate() against this mapper's own text."""
        node_range = self.node_range(node_id)
        if node_range is None:
            return None
        start, end = node_range
        return min(start + max(local_offset, 0), end)

    def spans_in_range(self, markdown: str, start: int, end: int) -> List[TextSpan]:
        """Text spans overlapping [start, end) in `markdown`."""
        return [s for s in self.anchor(markdown) if s.end > start and s.start < end]


# --- Selection resolution ---


def _replace_smart_quotes(text: str) -> str:
    """Normalizes smart quotes to ASCII equivalents (1:1, offsets preserved)."""
    return text.replace("“", '"').replace("”", '"').replace("‘", "'").replace("’", "'")


def _collapse_whitespace(text: str) -> Tuple[str, List[int]]:
    """
    Collapses whitespace runs to single spaces.
    Returns (collapsed_text, positions) where positions[i] is the original
    index of collapsed_text[i].
    """
    chars = []
    positions = []
    in_space = False
    for idx, ch in enumerate(text):
        if ch.isspace():
            if in_space:
                continue
            chars.append(" ")
            in_space = True
        else:
            chars.append(ch)
            in_space = False
        positions.append(idx)
    return "".join(chars), positions


def _find_all(haystack: str, needle: str) -> List[int]:
    found = []
    idx = haystack.find(needle)
    while idx != -1:
        found.append(idx)
        idx = haystack.find(needle, idx + 1)
    return found


def _pick_occurrence(matches: List[Tuple[int, int]], hint: Hint) -> Tuple[int, int]:
    """
    Chooses among repeated occurrences.
    Without a hint the first occurrence wins. With a hint the occurrence whose
    start is closest to it wins; ties go to the earlier one.
    """
    if hint is None or len(matches) == 1:
        return matches[0]
    target = hint[0] if isinstance(hint, tuple) else hint
    return min(matches, key=lambda m: (abs(m[0] - target), m[0]))


def find_selection(markdown: str, search_text: str, hint: Hint = None) -> Optional[Tuple[int, int]]:
    """
    Finds `search_text` in `markdown` using progressive matching strategies.
    Returns (start_offset, end_offset) in the original string, or None.
    """
    if not search_text:
        return None

    # 1. Exact match
    matches = [(i, i + len(search_text)) for i in _find_all(markdown, search_text)]

    # 2. Smart quote normalization
    if not matches:
        norm_markdown = _replace_smart_quotes(markdown)
        norm_search = _replace_smart_quotes(search_text)
        matches = [(i, i + len(search_text)) for i in _find_all(norm_markdown, norm_search)]

    # 3. Whitespace normalization, mapped back through the position table
    if not matches:
        norm_search = re.sub(r"\s+", " ", _replace_smart_quotes(search_text)).strip()
        if norm_search:
            collapsed, positions = _collapse_whitespace(_replace_smart_quotes(markdown))
            for idx in _find_all(collapsed, norm_search):
                start = positions[idx]
                end = positions[idx + len(norm_search) - 1] + 1
                matches.append((start, end))

    if not matches:
        logger.debug(f"Selection text not found: '{search_text[:50]}'")
        return None

    if len(matches) > 1:
        logger.debug(f"Selection text occurs {len(matches)} times, hint={hint}")

    return _pick_occurrence(matches, hint)


def build_selection(
    markdown: str,
    text: str,
    hint: Hint = None,
    context_chars: int = CONTEXT_CHARS,
) -> Optional[MarkdownSelection]:
    """Resolves selected text to a MarkdownSelection with surrounding context."""
    position = find_selection(markdown, text, hint)
    if position is None:
        return None

    start, end = position
    return MarkdownSelection(
        text=text,
        start_offset=start,
        end_offset=end,
        context_before=markdown[max(0, start - context_chars) : start],
        context_after=markdown[end : end + context_chars],
    )
