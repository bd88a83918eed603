"""
Pure text transformation utilities for applying offset-based edits to
Markdown and generating CriticMarkup previews.
"""

from typing import List, Sequence, Tuple

import structlog

from mdsync.models import MarkdownEdit

logger = structlog.get_logger(__name__)

# (start, end, edit, original_index)
_Placed = Tuple[int, int, MarkdownEdit, int]


def filter_overlapping_edits(edits: Sequence[MarkdownEdit]) -> List[Tuple[MarkdownEdit, int]]:
    """
    Drops edits whose range overlaps an edit listed earlier; first-in-list wins.
    Returns (edit, original_index) pairs in list order.
    Zero-width edits only collide with ranges that strictly contain them.
    """
    kept: List[Tuple[MarkdownEdit, int]] = []
    occupied: List[Tuple[int, int]] = []

    for idx, edit in enumerate(edits):
        start, end = edit.start_offset, edit.end_offset
        overlaps = False
        for occ_start, occ_end in occupied:
            if start < occ_end and end > occ_start:
                overlaps = True
                logger.warning(f"Skipping edit {idx}: overlaps with previously listed edit")
                break

        if not overlaps:
            kept.append((edit, idx))
            occupied.append((start, end))

    return kept


def _place_edits(markdown: str, edits: Sequence[MarkdownEdit]) -> Tuple[List[_Placed], int]:
    """
    Validates, clamps and orders edits for splicing.
    Returns (placed edits sorted descending, number skipped).
    """
    placed: List[_Placed] = []

    for edit, idx in filter_overlapping_edits(edits):
        if edit.start_offset > len(markdown):
            logger.warning(f"Skipping edit {idx}: start {edit.start_offset} beyond end of markdown ({len(markdown)})")
            continue
        end = min(edit.end_offset, len(markdown))
        placed.append((edit.start_offset, end, edit, idx))

    skipped = len(edits) - len(placed)

    # Apply from end to start; at equal positions the later-listed edit goes first
    # so list order survives in the output.
    placed.sort(key=lambda x: (x[0], x[1], x[3]), reverse=True)
    return placed, skipped


def splice_edits(markdown: str, edits: Sequence[MarkdownEdit]) -> Tuple[str, int, int]:
    """
    Applies edits in descending start order so earlier offsets stay valid.
    Returns (result, applied_count, skipped_count).
    """
    if not edits:
        return markdown, 0, 0

    placed, skipped = _place_edits(markdown, edits)

    result = markdown
    for start, end, edit, _ in placed:
        result = result[:start] + edit.new_content + result[end:]

    logger.debug(f"Spliced {len(placed)} edits ({skipped} skipped)")
    return result, len(placed), skipped


def apply_markdown_edits(markdown: str, edits: Sequence[MarkdownEdit]) -> str:
    """Applies offset-based edits to a flat Markdown string."""
    result, _, _ = splice_edits(markdown, edits)
    return result


def _build_critic_markup(target_text: str, new_text: str, edit_index: int, include_index: bool) -> str:
    """
    Generates CriticMarkup string for a single edit.
    """
    parts = []

    has_target = bool(target_text)
    has_new = bool(new_text)

    if has_target and not has_new:
        # Deletion
        parts.append(f"{{--{target_text}--}}")
    elif not has_target and has_new:
        # Pure insertion
        parts.append(f"{{++{new_text}++}}")
    elif has_target and has_new:
        # Modification
        parts.append(f"{{--{target_text}--}}{{++{new_text}++}}")

    if include_index:
        parts.append(f"{{>>[Edit:{edit_index}]<<}}")

    return "".join(parts)


def preview_markdown_edits(markdown: str, edits: Sequence[MarkdownEdit], include_index: bool = False) -> str:
    """
    Renders edits as CriticMarkup instead of applying them.

    Args:
        markdown: The source Markdown document.
        edits: Offset-based edits against `markdown`.
        include_index: If True, include the edit's 0-based index in the output markup.

    Returns:
        Markdown with {--deleted--}{++inserted++} annotations.
    """
    if not edits:
        return markdown

    placed, _ = _place_edits(markdown, edits)

    result = markdown
    for start, end, edit, idx in placed:
        markup = _build_critic_markup(
            target_text=markdown[start:end],
            new_text=edit.new_content,
            edit_index=idx,
            include_index=include_index,
        )
        result = result[:start] + markup + result[end:]

    return result
