import re
from typing import Dict, List, Optional, Tuple

import structlog
from diff_match_patch import diff_match_patch

from mdsync.models import MarkdownEdit

logger = structlog.get_logger(__name__)


def generate_markdown_edits(original_markdown: str, modified_markdown: str) -> List[MarkdownEdit]:
    """
    Compares original and rewritten Markdown and returns offset-based edits
    against the original. Uses word-level diffing so edits cover whole words.
    Adjacent deletions and insertions collapse into one replacement.
    """
    if original_markdown == modified_markdown:
        return []

    dmp = diff_match_patch()

    # 1. Word-Level Tokenization & Encoding
    chars1, chars2, token_array = _words_to_chars(original_markdown, modified_markdown)

    # 2. Compute Diff on the Encoded Strings
    diffs = dmp.diff_main(chars1, chars2, False)

    # 3. Semantic Cleanup
    dmp.diff_cleanupSemantic(diffs)

    # 4. Decode back to Text
    dmp.diff_charsToLines(diffs, token_array)

    edits: List[MarkdownEdit] = []
    current_original_index = 0
    # (start_offset, deleted_length, inserted_text) of the run being collected
    pending: Optional[Tuple[int, int, str]] = None

    for op, text in diffs:
        if op == 0:  # Equal
            if pending:
                edits.append(_to_edit(pending))
                pending = None
            current_original_index += len(text)
            continue

        if pending is None:
            pending = (current_original_index, 0, "")
        start, deleted, inserted = pending

        if op == -1:  # Delete
            pending = (start, deleted + len(text), inserted)
            current_original_index += len(text)
        elif op == 1:  # Insert
            pending = (start, deleted, inserted + text)

    # Flush trailing run
    if pending:
        edits.append(_to_edit(pending))

    logger.debug(f"Diff produced {len(edits)} edits")
    return edits


def _to_edit(pending: Tuple[int, int, str]) -> MarkdownEdit:
    start, deleted, inserted = pending
    return MarkdownEdit(start_offset=start, end_offset=start + deleted, new_content=inserted)


def _words_to_chars(text1: str, text2: str) -> Tuple[str, str, List[str]]:
    """
    Splits text into words/tokens and encodes them as unique Unicode characters.
    """
    token_array: List[str] = []
    token_hash: Dict[str, int] = {}
    split_pattern = r"(\s+|\w+|[^\w\s])"

    def encode_text(text: str) -> str:
        tokens = [t for t in re.split(split_pattern, text) if t]
        encoded_chars = []
        for token in tokens:
            if token in token_hash:
                encoded_chars.append(chr(token_hash[token]))
            else:
                code = len(token_array)
                token_hash[token] = code
                token_array.append(token)
                encoded_chars.append(chr(code))
        return "".join(encoded_chars)

    chars1 = encode_text(text1)
    chars2 = encode_text(text2)
    return chars1, chars2, token_array
