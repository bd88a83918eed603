"""
Markdown -> Document loader used by hosts to build their initial tree.

Covers the block and inline subset that `serialize()` emits: headings,
bullet/numbered items, quotes, fenced code, horizontal rules, paragraphs,
and **bold**, _italic_, ~~strike~~, `code` spans.
"""

import re
from typing import List, Optional, Tuple

import structlog

from mdsync.document import Document, DocumentNode, NodeKind, TextFormat

logger = structlog.get_logger(__name__)

_HEADING = re.compile(r"^(#{1,6}) (.*)$")
_BULLET = re.compile(r"^[-*+] (.*)$")
_NUMBERED = re.compile(r"^\d+[.)] (.*)$")
_QUOTE = re.compile(r"^> ?(.*)$")
_RULE = re.compile(r"^(?:-{3,}|\*{3,}|_{3,})\s*$")
_FENCE = re.compile(r"^```")

# First match wins, left to right.
# Group 1: code span, 2: bold, 3: strikethrough, 4: italic (_), 5: italic (*)
_INLINE = re.compile(
    r"(`[^`]+`)"
    r"|(\*\*.+?\*\*)"
    r"|(~~.+?~~)"
    r"|((?<![A-Za-z0-9])_.+?_(?![A-Za-z0-9]))"
    r"|(\*[^*\s][^*]*\*)",
    re.DOTALL,
)


def parse_markdown(markdown: str) -> Document:
    """
    Parses Markdown into a Document.
    Every block gets at least one text child so it can be located and edited.
    """
    doc = Document()
    lines = markdown.replace("\r\n", "\n").split("\n")
    paragraph: List[str] = []
    i = 0

    def flush_paragraph():
        if paragraph:
            _add_block(doc, NodeKind.PARAGRAPH, "\n".join(paragraph))
            paragraph.clear()

    while i < len(lines):
        line = lines[i]

        if not line.strip():
            flush_paragraph()
            i += 1
            continue

        if _FENCE.match(line):
            flush_paragraph()
            code_lines = []
            i += 1
            while i < len(lines) and not _FENCE.match(lines[i]):
                code_lines.append(lines[i])
                i += 1
            i += 1  # closing fence (or EOF)
            _add_code_block(doc, "\n".join(code_lines))
            continue

        if _RULE.match(line):
            flush_paragraph()
            doc.append(doc.root, doc.create_node(NodeKind.HORIZONTAL_RULE))
            i += 1
            continue

        match = _HEADING.match(line)
        if match:
            flush_paragraph()
            _add_block(doc, NodeKind.HEADING, match.group(2), level=len(match.group(1)))
            i += 1
            continue

        match = _BULLET.match(line)
        if match:
            flush_paragraph()
            _add_block(doc, NodeKind.LIST_ITEM, match.group(1))
            i += 1
            continue

        match = _NUMBERED.match(line)
        if match:
            flush_paragraph()
            _add_block(doc, NodeKind.LIST_ITEM, match.group(1), ordered=True)
            i += 1
            continue

        match = _QUOTE.match(line)
        if match:
            flush_paragraph()
            # Consecutive quote lines form one quote block
            quoted = [match.group(1)]
            i += 1
            while i < len(lines):
                follow = _QUOTE.match(lines[i])
                if not follow or not lines[i].strip():
                    break
                quoted.append(follow.group(1))
                i += 1
            _add_block(doc, NodeKind.QUOTE, " ".join(quoted))
            continue

        paragraph.append(line)
        i += 1

    flush_paragraph()
    logger.debug(f"Parsed markdown into {len(doc.root.children)} blocks")
    return doc


def _add_block(doc: Document, kind: NodeKind, text: str, **attrs) -> DocumentNode:
    block = doc.append(doc.root, doc.create_node(kind, **attrs))
    segments = parse_inline_markdown(text)
    if not segments:
        segments = [("", TextFormat.NONE)]
    for seg_text, seg_format in segments:
        doc.append(block, doc.create_node(NodeKind.TEXT, text=seg_text, format=seg_format))
    return block


def _add_code_block(doc: Document, code: str) -> DocumentNode:
    block = doc.append(doc.root, doc.create_node(NodeKind.CODE_BLOCK))
    doc.append(block, doc.create_node(NodeKind.TEXT, text=code))
    return block


def parse_inline_markdown(text: str, base_format: Optional[TextFormat] = None) -> List[Tuple[str, TextFormat]]:
    """
    Recursively parses inline Markdown.
    Returns a flat list of (text_segment, combined_format).
    Supports arbitrary nesting.
    """
    if base_format is None:
        base_format = TextFormat.NONE

    if not text:
        return []

    match = _INLINE.search(text)
    if not match:
        return [(text, base_format)]

    start, end = match.span()
    pre_text = text[:start]
    post_text = text[end:]

    results: List[Tuple[str, TextFormat]] = []

    # 1. Pre (current format)
    if pre_text:
        results.append((pre_text, base_format))

    # 2. Inner (recursively, with added format)
    code, bold, strike, italic_us, italic_star = match.groups()
    if code:
        # Code spans are literal: no nested parsing
        results.append((code[1:-1], base_format | TextFormat.CODE))
    elif bold:
        results.extend(parse_inline_markdown(bold[2:-2], base_format | TextFormat.BOLD))
    elif strike:
        results.extend(parse_inline_markdown(strike[2:-2], base_format | TextFormat.STRIKETHROUGH))
    else:
        inner = (italic_us or italic_star)[1:-1]
        results.extend(parse_inline_markdown(inner, base_format | TextFormat.ITALIC))

    # 3. Post (recursively, with base format)
    results.extend(parse_inline_markdown(post_text, base_format))

    return results
