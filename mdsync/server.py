import json
import logging
import sys
from typing import List, Optional

import structlog
from mcp.server.fastmcp import FastMCP

from mdsync.diff import generate_markdown_edits
from mdsync.markup import preview_markdown_edits, splice_edits
from mdsync.models import MarkdownEdit
from mdsync.parser import parse_markdown
from mdsync.sync.mapper import PositionMapper, build_selection
from mdsync.sync.planner import plan_node_edits

# --- LOGGING CONFIGURATION ---
# MCP communicates over stdio.
# CRITICAL: All logs must go to stderr. Any print to stdout will break the JSON-RPC protocol.
logging.basicConfig(stream=sys.stderr, level=logging.INFO, force=True)

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)

logger = structlog.get_logger(__name__)

mcp = FastMCP("mdsync Markdown Edit Service")


@mcp.tool()
def locate_offset(markdown: str, offset: int) -> str:
    """
    Resolves a character offset in Markdown to the document node that holds it.

    Args:
        markdown: The Markdown document.
        offset: 0-based character offset into `markdown`.

    Returns:
        JSON {"nodeId", "localOffset", "nodeText"} or an error message.
    """
    try:
        mapper = PositionMapper(parse_markdown(markdown))
        position = mapper.locate(markdown, offset)
        if position is None:
            return f"Error: offset {offset} is outside the document (0..{len(markdown)})."
        node = mapper.document.get_node_by_id(position.node_id)
        return json.dumps({"nodeId": position.node_id, "localOffset": position.local_offset, "nodeText": node.text})
    except Exception as e:
        return f"Error locating offset: {str(e)}"


@mcp.tool()
def find_text_selection(markdown: str, text: str, hint: Optional[int] = None) -> str:
    """
    Finds selected text in Markdown and returns its offsets with surrounding context.

    Matching Strategy:
    - Exact match first, then smart-quote and whitespace-insensitive matching.
    - When the text occurs more than once, the first occurrence wins unless `hint`
      (an approximate offset) is given, in which case the closest occurrence wins.

    Args:
        markdown: The Markdown document.
        text: The selected text.
        hint: Optional approximate offset of the selection.
    """
    try:
        selection = build_selection(markdown, text, hint=hint)
        if selection is None:
            return f"Error: text not found: '{text[:50]}'"
        return selection.model_dump_json(by_alias=True)
    except Exception as e:
        return f"Error finding selection: {str(e)}"


@mcp.tool()
def apply_markdown_edits(markdown: str, edits: List[MarkdownEdit], preview: bool = False) -> str:
    """
    Applies offset-based edits to Markdown.

    Offsets refer to the Markdown passed in. Edits are applied from the end of the
    document backwards so earlier offsets stay valid. An edit overlapping one listed
    before it is skipped.

    Args:
        markdown: The Markdown document the offsets refer to.
        edits: List of {start_offset, end_offset, new_content}.
        preview: If True, returns CriticMarkup ({--old--}{++new++}) instead of applying.
    """
    try:
        if preview:
            return preview_markdown_edits(markdown, edits, include_index=True)
        result, _, skipped = splice_edits(markdown, edits)
        if skipped:
            logger.warning(f"Skipped {skipped} of {len(edits)} edits")
        return result
    except Exception as e:
        return f"Error applying edits: {str(e)}"


@mcp.tool()
def plan_node_operations(markdown: str, edits: List[MarkdownEdit]) -> str:
    """
    Shows which document nodes a set of offset edits would change.

    Args:
        markdown: The Markdown document the offsets refer to.
        edits: List of {start_offset, end_offset, new_content}.

    Returns:
        JSON list of {targetNodeId, action, newContent, formatting} operations.
    """
    try:
        ops = plan_node_edits(parse_markdown(markdown), markdown, edits)
        return json.dumps([op.model_dump(mode="json", by_alias=True, exclude_none=True) for op in ops])
    except Exception as e:
        return f"Error planning edits: {str(e)}"


@mcp.tool()
def diff_markdown(original: str, modified: str) -> str:
    """
    Compares two Markdown documents and returns the offset edits that turn the
    original into the modified one (word-level diff).
    """
    try:
        edits = generate_markdown_edits(original, modified)
        if not edits:
            return "No text differences found between the documents."
        return json.dumps([e.model_dump(by_alias=True) for e in edits])
    except Exception as e:
        return f"Error computing diff: {str(e)}"


def main():
    mcp.run()


if __name__ == "__main__":
    main()
