"""
Maps offset-based Markdown edits onto node-level AIEdit operations.

Edits are resolved against the mapper's view of `markdown`. Several edits
touching the same node are merged into one operation whose splices are
applied right to left on the node's original text.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from mdsync.document import FORMAT_FLAGS, Document, TextFormat
from mdsync.errors import UnmappableEditError
from mdsync.markup import filter_overlapping_edits
from mdsync.models import AIEdit, EditAction, EditFormatting, MarkdownEdit
from mdsync.parser import parse_inline_markdown
from mdsync.sync.mapper import PositionMapper, TextSpan

logger = structlog.get_logger(__name__)

_BLOCK_PREFIX = re.compile(r"^(?:#{1,6} |[-*+] |\d+[.)] |> )")


@dataclass
class _NodePlan:
    node_id: str
    original: str
    splices: List[Tuple[int, int, str]] = field(default_factory=list)
    delete: bool = False
    formatting: Optional[EditFormatting] = None

    def render(self) -> str:
        text = self.original
        for start, end, content in sorted(self.splices, key=lambda s: (s[0], s[1]), reverse=True):
            text = text[:start] + content + text[end:]
        return text


def _strip_formatting_markers(text: str) -> str:
    """
    Strip ** (bold) and _ (italic) formatting markers from text.
    The serializer decorates node text with markers; a range echoed back from
    the Markdown may carry them while the node text does not.
    """
    # Strip balanced bold markers (keep inner text)
    text = re.sub(r"\*\*(.+?)\*\*", r"\1", text)
    # Strip remaining unbalanced **
    text = text.replace("**", "")
    # Strip balanced italic markers at word boundaries (avoid snake_case)
    text = re.sub(r"(?<![a-zA-Z0-9])_(.+?)_(?![a-zA-Z0-9])", r"\1", text)
    return text


def _strip_covered_markup(content: str, lead: str, trail: str) -> str:
    """
    Removes Markdown syntax from `content` that the edit range already covered
    outside the node text (block prefix, inline markers). The node keeps that
    syntax as structure, so echoing it back would duplicate it.
    """
    if lead:
        if _BLOCK_PREFIX.match(lead):
            content = _BLOCK_PREFIX.sub("", content, count=1)
            lead = _BLOCK_PREFIX.sub("", lead, count=1)
        markers = lead.strip("\n")
        if markers and content.startswith(markers):
            content = content[len(markers) :]
    if trail:
        markers = trail.strip("\n")
        if markers and content.endswith(markers):
            content = content[: -len(markers)]
    return content


def _extract_formatting(content: str) -> Tuple[str, Optional[EditFormatting]]:
    """
    '**x**' -> ('x', bold). Only a single uniformly formatted segment counts;
    anything else stays literal.
    """
    segments = parse_inline_markdown(content)
    if len(segments) != 1:
        return content, None
    text, fmt = segments[0]
    if text == content or not fmt:
        return content, None

    # Strikethrough and code have no EditFormatting field
    if fmt & (TextFormat.STRIKETHROUGH | TextFormat.CODE):
        return content, None
    requested = {name: True for name, flag in FORMAT_FLAGS.items() if fmt & flag}
    return text, EditFormatting(**requested)


def _is_block_boundary(markdown: str, position: int, spans: List[TextSpan]) -> bool:
    """True when `position` sits after a block's closing syntax, before a separator or EOF."""
    if position == 0:
        return False
    if any(s.start <= position < s.end for s in spans):
        return False
    return position == len(markdown) or markdown[position] == "\n"


class _Planner:
    def __init__(self, document: Document, markdown: str):
        self.document = document
        self.markdown = markdown
        self.mapper = PositionMapper(document)
        self.spans = self.mapper.anchor(markdown)
        self.plans: Dict[str, _NodePlan] = {}
        # Emission order: node ids and insert ops, by first appearance
        self.order: List[object] = []

    def _plan_for(self, node_id: str) -> _NodePlan:
        plan = self.plans.get(node_id)
        if plan is None:
            node = self.document.get_node_by_id(node_id)
            plan = _NodePlan(node_id=node_id, original=node.text)
            self.plans[node_id] = plan
            self.order.append(node_id)
        return plan

    def add(self, edit: MarkdownEdit, idx: int) -> bool:
        start = edit.start_offset
        end = min(edit.end_offset, len(self.markdown))
        if start > len(self.markdown):
            logger.warning(f"Dropping edit {idx}: start {start} beyond end of markdown")
            return False

        if start == end:
            return self._add_insertion(start, edit.new_content)

        overlapping = [s for s in self.spans if s.end > start and s.start < end]
        if not overlapping:
            return self._add_by_text(start, end, edit.new_content, idx)

        first, last = overlapping[0], overlapping[-1]
        lead = self.markdown[start : first.start] if start < first.start else ""
        trail = self.markdown[last.end : end] if end > last.end else ""
        content = _strip_covered_markup(edit.new_content, lead, trail)

        local_start = max(start, first.start) - first.start
        local_end = min(end, last.end) - last.start

        if first is last:
            plan = self._plan_for(first.node_id)
            if local_start == 0 and local_end == len(first.text):
                content, formatting = _extract_formatting(content)
                if formatting is not None:
                    plan.formatting = formatting
            plan.splices.append((local_start, local_end, content))
            return True

        self._plan_for(first.node_id).splices.append((local_start, len(first.text), content))
        for span in overlapping[1:-1]:
            self._plan_for(span.node_id).delete = True
        last_plan = self._plan_for(last.node_id)
        if local_end >= len(last.text):
            last_plan.delete = True
        else:
            last_plan.splices.append((0, local_end, ""))
        return True

    def _add_insertion(self, position: int, new_content: str) -> bool:
        if not new_content:
            # Empty range, empty content: nothing to do
            return True
        position_info = self.mapper.locate(self.markdown, position) if self.spans else None
        if position_info is None:
            logger.warning(f"No node near offset {position} for insertion")
            return False

        if "\n" in new_content and _is_block_boundary(self.markdown, position, self.spans):
            text = _BLOCK_PREFIX.sub("", new_content.strip("\n"), count=1)
            text, formatting = _extract_formatting(text)
            self.order.append(
                AIEdit(
                    target_node_id=position_info.node_id,
                    action=EditAction.INSERT,
                    new_content=text,
                    formatting=formatting,
                )
            )
            return True

        local = position_info.local_offset
        self._plan_for(position_info.node_id).splices.append((local, local, new_content))
        return True

    def _add_by_text(self, start: int, end: int, new_content: str, idx: int) -> bool:
        """Fallback: replace the first occurrence of the range's text in any node."""
        target = self.markdown[start:end]
        # (search text, replacement) pairs, literal first
        candidates = [(target, new_content)]
        stripped = _strip_formatting_markers(target)
        if stripped and stripped != target:
            candidates.append((stripped, _strip_formatting_markers(new_content)))

        for node in self.document.iter_text_nodes():
            for candidate, content in candidates:
                if not candidate.strip():
                    continue
                local = node.text.find(candidate)
                if local == -1:
                    continue
                logger.info(f"Edit {idx} mapped by text match onto node {node.id}")
                self._plan_for(node.id).splices.append((local, local + len(candidate), content))
                return True

        logger.warning(f"Dropping edit {idx}: no node maps to [{start}, {end}) '{target[:50]}'")
        return False

    def _node_op(self, plan: _NodePlan) -> Optional[AIEdit]:
        if plan.delete:
            return AIEdit(target_node_id=plan.node_id, action=EditAction.DELETE)
        if not plan.splices:
            return None
        new_text = plan.render()
        if new_text == plan.original and plan.formatting is None:
            return None
        return AIEdit(
            target_node_id=plan.node_id,
            action=EditAction.REPLACE,
            new_content=new_text,
            formatting=plan.formatting,
        )

    def emit(self) -> List[AIEdit]:
        """
        Orders operations so every insert still has its anchor.

        Inserts sharing an anchor each land directly after the anchor's block,
        so they are emitted in reverse to keep list order in the result. An
        anchor that is also deleted gets its inserts first.
        """
        inserts: Dict[str, List[AIEdit]] = {}
        for item in self.order:
            if isinstance(item, AIEdit):
                inserts.setdefault(item.target_node_id, []).append(item)

        ops: List[AIEdit] = []
        emitted = set()
        for item in self.order:
            anchor = item.target_node_id if isinstance(item, AIEdit) else item
            if anchor in emitted:
                continue
            if isinstance(item, AIEdit) and anchor in self.plans:
                # Emitted together with the anchor's own operation
                continue
            emitted.add(anchor)

            anchored = list(reversed(inserts.get(anchor, [])))
            plan = self.plans.get(anchor)
            op = self._node_op(plan) if plan is not None else None
            if op is None:
                ops.extend(anchored)
            elif op.action is EditAction.DELETE:
                ops.extend(anchored)
                ops.append(op)
            else:
                ops.append(op)
                ops.extend(anchored)
        return ops


def plan_node_edits(document: Document, markdown: str, edits: Sequence[MarkdownEdit]) -> List[AIEdit]:
    """
    Converts Markdown-range edits into node-level operations.

    Args:
        document: The tree the edits will be applied to.
        markdown: The Markdown snapshot the edit offsets refer to.
        edits: Edits in the order the collaborator proposed them.

    Returns:
        Node operations in first-appearance order.

    Raises:
        UnmappableEditError: edits were proposed but none could be mapped.
    """
    if not edits:
        return []

    planner = _Planner(document, markdown)
    mapped = 0
    for edit, idx in filter_overlapping_edits(edits):
        if planner.add(edit, idx):
            mapped += 1

    ops = planner.emit()
    logger.info(f"Planned {len(ops)} node operations from {mapped}/{len(edits)} edits")

    if not ops and mapped == 0:
        raise UnmappableEditError(f"None of the {len(edits)} proposed edits could be mapped onto the document")
    return ops
