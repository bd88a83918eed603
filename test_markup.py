"""
Tests for flat Markdown splicing and CriticMarkup previews.

Run: python3 test_markup.py
"""

import sys

sys.path.insert(0, '.')

from pydantic import ValidationError

from mdsync.markup import apply_markdown_edits, filter_overlapping_edits, preview_markdown_edits, splice_edits
from mdsync.models import MarkdownEdit


def _edit(start, end, content):
    return MarkdownEdit(start_offset=start, end_offset=end, new_content=content)


def test_descending_application_scenario():
    """Edits applied end-first keep earlier offsets valid."""
    md = "A\n\n---\n\nB"
    first, second = _edit(0, 1, "X"), _edit(8, 9, "Y")

    assert apply_markdown_edits(md, [second]) == "A\n\n---\n\nY"
    assert apply_markdown_edits(md, [first, second]) == "X\n\n---\n\nY"
    # List order does not matter for non-overlapping edits
    assert apply_markdown_edits(md, [second, first]) == "X\n\n---\n\nY"
    print("PASS: descending application (A/---/B)")


def test_descending_matches_sequential_with_shifting():
    md = "The quick brown fox"
    edits = [_edit(4, 9, "slow"), _edit(10, 15, "red"), _edit(0, 3, "A")]

    # Apply one at a time in ascending order, shifting later offsets by hand
    expected = md
    shift = 0
    for edit in sorted(edits, key=lambda e: e.start_offset):
        start, end = edit.start_offset + shift, edit.end_offset + shift
        expected = expected[:start] + edit.new_content + expected[end:]
        shift += len(edit.new_content) - (edit.end_offset - edit.start_offset)

    assert expected == "A slow red fox"
    assert apply_markdown_edits(md, edits) == expected
    print("PASS: descending splice equals shifted sequential application")


def test_overlapping_edits_first_wins():
    md = "Hello world"
    result, applied, skipped = splice_edits(md, [_edit(0, 5, "Howdy"), _edit(3, 8, "XX")])
    assert result == "Howdy world", result
    assert (applied, skipped) == (1, 1)

    kept = filter_overlapping_edits([_edit(0, 5, "a"), _edit(3, 8, "b"), _edit(6, 11, "c")])
    assert [idx for _, idx in kept] == [0, 2]
    print("PASS: overlapping edits, first in list wins")


def test_zero_width_edits_keep_list_order():
    md = "hello world"
    assert apply_markdown_edits(md, [_edit(5, 5, "a"), _edit(5, 5, "b")]) == "helloab world"
    print("PASS: zero-width edits at one position keep list order")


def test_out_of_range_edits():
    md = "Hello"
    result, applied, skipped = splice_edits(md, [_edit(3, 99, "p!"), _edit(10, 12, "x")])
    assert result == "Help!", result
    assert (applied, skipped) == (1, 1)
    print("PASS: end clamped, start past end skipped")


def test_empty_edit_list():
    assert splice_edits("same", []) == ("same", 0, 0)
    assert preview_markdown_edits("same", []) == "same"
    print("PASS: empty edit list")


def test_preview_critic_markup():
    md = "Hello world"
    assert preview_markdown_edits(md, [_edit(6, 11, "there")]) == "Hello {--world--}{++there++}"
    assert preview_markdown_edits(md, [_edit(5, 5, "!")]) == "Hello{++!++} world"
    assert preview_markdown_edits(md, [_edit(5, 11, "")]) == "Hello{-- world--}"
    indexed = preview_markdown_edits(md, [_edit(0, 5, "Hi")], include_index=True)
    assert indexed == "{--Hello--}{++Hi++}{>>[Edit:0]<<} world", indexed
    print("PASS: CriticMarkup preview")


def test_markdown_edit_validation():
    try:
        _edit(5, 2, "x")
        assert False, "end before start should be rejected"
    except ValidationError:
        pass

    try:
        _edit(-1, 2, "x")
        assert False, "negative offsets should be rejected"
    except ValidationError:
        pass

    camel = MarkdownEdit.model_validate({"startOffset": 1, "endOffset": 3, "newContent": "z"})
    assert (camel.start_offset, camel.end_offset, camel.new_content) == (1, 3, "z")
    print("PASS: MarkdownEdit validation")


if __name__ == "__main__":
    tests = [
        test_descending_application_scenario,
        test_descending_matches_sequential_with_shifting,
        test_overlapping_edits_first_wins,
        test_zero_width_edits_keep_list_order,
        test_out_of_range_edits,
        test_empty_edit_list,
        test_preview_critic_markup,
        test_markdown_edit_validation,
    ]

    passed = 0
    failed = 0
    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"FAIL: {test.__name__}: {e}")
            import traceback
            traceback.print_exc()
            failed += 1

    print(f"\n{'='*60}")
    print(f"Results: {passed} passed, {failed} failed out of {len(tests)} tests")
    if failed == 0:
        print("ALL TESTS PASSED")
    else:
        print("SOME TESTS FAILED")
