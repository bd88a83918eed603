"""
Tests for the bounded undo/redo history and the debounced recorder.

Run: python3 test_history.py
"""

import asyncio
import sys

sys.path.insert(0, '.')

from mdsync.hosts import MarkdownBuffer
from mdsync.models import HistoryEntry, PageData
from mdsync.sync.history import MAX_HISTORY, HistoryRecorder, HistoryStack, host_snapshot


def _entry(content):
    return HistoryEntry(pages=[PageData(id="page-1", content=content)])


def _content(entry):
    return entry.pages[0].content


def test_bound_evicts_oldest():
    """51 pushes into a stack of 50 keep snapshots 1..50."""
    stack = HistoryStack()
    for i in range(MAX_HISTORY + 1):
        stack.push(_entry(f"snapshot {i}"))

    assert len(stack) == MAX_HISTORY
    assert stack.pointer == MAX_HISTORY - 1
    assert _content(stack.current()) == f"snapshot {MAX_HISTORY}"

    while stack.can_undo:
        oldest = stack.undo()
    assert _content(oldest) == "snapshot 1", _content(oldest)
    print("PASS: bound evicts the oldest entry")


def test_small_bound():
    stack = HistoryStack(max_history=3)
    for i in range(10):
        stack.push(_entry(str(i)))
    assert len(stack) == 3
    assert _content(stack.undo()) == "8"
    assert _content(stack.undo()) == "7"
    assert stack.undo() is None
    print("PASS: small bound")


def test_undo_redo_symmetry():
    stack = HistoryStack()
    for name in ["a", "b", "c"]:
        stack.push(_entry(name))

    assert not stack.can_redo
    assert _content(stack.undo()) == "b"
    assert _content(stack.undo()) == "a"
    assert not stack.can_undo
    assert stack.undo() is None
    assert _content(stack.redo()) == "b"
    assert _content(stack.redo()) == "c"
    assert stack.redo() is None
    print("PASS: undo/redo symmetry")


def test_push_after_undo_drops_redo_branch():
    stack = HistoryStack()
    for name in ["a", "b", "c"]:
        stack.push(_entry(name))
    stack.undo()
    stack.push(_entry("d"))

    assert len(stack) == 3
    assert not stack.can_redo
    assert _content(stack.undo()) == "b"
    print("PASS: push after undo drops the redo branch")


def test_value_semantics():
    stack = HistoryStack()
    original = _entry("before")
    stack.push(original)
    original.pages[0].content = "mutated after push"
    assert _content(stack.current()) == "before"

    returned = stack.current()
    returned.pages[0].content = "mutated copy"
    assert _content(stack.current()) == "before"

    stack.push(_entry("after"))
    undone = stack.undo()
    undone.pages.append(PageData(id="page-2"))
    assert len(stack.current().pages) == 1
    print("PASS: entries have value semantics")


def test_push_pages_and_clear():
    stack = HistoryStack()
    stack.push_pages([PageData(id="toc", is_table_of_contents=True), PageData(id="p1", content="x")], True)
    assert stack.current().has_table_of_contents
    assert len(stack.current().pages) == 2

    stack.clear()
    assert len(stack) == 0
    assert stack.current() is None
    assert not stack.can_undo and not stack.can_redo
    print("PASS: push_pages and clear")


def test_invalid_bound():
    try:
        HistoryStack(max_history=0)
        assert False, "Expected ValueError"
    except ValueError:
        pass
    print("PASS: invalid bound rejected")


def test_recorder_without_loop_pushes_immediately():
    buffer = MarkdownBuffer("v1")
    stack = HistoryStack()
    recorder = HistoryRecorder(stack, lambda: host_snapshot(buffer))

    recorder.notify()
    buffer.set_markdown("v2")
    recorder.notify()
    assert len(stack) == 2
    assert _content(stack.current()) == "v2"
    assert not recorder.pending
    print("PASS: recorder without a running loop pushes immediately")


def test_recorder_debounces_bursts():
    buffer = MarkdownBuffer("v1")
    stack = HistoryStack()
    recorder = HistoryRecorder(stack, lambda: host_snapshot(buffer), delay=0.01)

    async def burst():
        for i in range(5):
            buffer.set_markdown(f"v{i + 2}")
            recorder.notify()
        assert recorder.pending
        assert len(stack) == 0
        await asyncio.sleep(0.05)

    asyncio.run(burst())
    assert len(stack) == 1
    # Snapshot reflects the document when the timer fired
    assert _content(stack.current()) == "v6"
    assert not recorder.pending
    print("PASS: recorder debounces a burst into one push")


def test_recorder_flush_and_cancel():
    buffer = MarkdownBuffer("v1")
    stack = HistoryStack()
    recorder = HistoryRecorder(stack, lambda: host_snapshot(buffer), delay=10)

    async def run():
        recorder.notify()
        recorder.cancel()
        assert not recorder.pending
        recorder.notify()
        recorder.flush()

    asyncio.run(run())
    assert len(stack) == 1
    assert not recorder.pending
    print("PASS: recorder flush and cancel")


if __name__ == "__main__":
    tests = [
        test_bound_evicts_oldest,
        test_small_bound,
        test_undo_redo_symmetry,
        test_push_after_undo_drops_redo_branch,
        test_value_semantics,
        test_push_pages_and_clear,
        test_invalid_bound,
        test_recorder_without_loop_pushes_immediately,
        test_recorder_debounces_bursts,
        test_recorder_flush_and_cancel,
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
