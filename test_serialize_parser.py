"""
Tests for the document model, Markdown serializer and Markdown loader.

Run: python3 test_serialize_parser.py
"""

import sys

sys.path.insert(0, '.')

from mdsync.document import Document, DocumentNode, NodeKind, TextFormat
from mdsync.parser import parse_inline_markdown, parse_markdown
from mdsync.serialize import block_prefix, serialize


SAMPLE = (
    "# Title\n\n"
    "Hello **world** and _you_.\n\n"
    "- one\n- two\n\n"
    "Between\n\n"
    "1. a\n2. b\n\n"
    "> quoted\n\n"
    "---\n\n"
    "```\ncode *x*\n```"
)


def _paragraph(doc, *texts):
    block = doc.append(doc.root, doc.create_node(NodeKind.PARAGRAPH))
    for text, fmt in texts:
        doc.append(block, doc.create_node(NodeKind.TEXT, text=text, format=fmt))
    return block


def test_parse_serialize_round_trip():
    """Markdown in the supported subset survives parse -> serialize unchanged."""
    doc = parse_markdown(SAMPLE)
    assert serialize(doc) == SAMPLE, f"Round trip changed markdown:\n{serialize(doc)!r}"

    kinds = [b.kind for b in doc.root.children]
    assert kinds == [
        NodeKind.HEADING,
        NodeKind.PARAGRAPH,
        NodeKind.LIST_ITEM,
        NodeKind.LIST_ITEM,
        NodeKind.PARAGRAPH,
        NodeKind.LIST_ITEM,
        NodeKind.LIST_ITEM,
        NodeKind.QUOTE,
        NodeKind.HORIZONTAL_RULE,
        NodeKind.CODE_BLOCK,
    ], f"Unexpected blocks: {kinds}"
    print("PASS: parse -> serialize round trip")


def test_serialize_is_deterministic():
    doc = parse_markdown(SAMPLE)
    assert serialize(doc) == serialize(doc)
    assert serialize(doc.copy()) == serialize(doc)
    print("PASS: serialize is deterministic")


def test_inline_markers():
    doc = Document()
    _paragraph(
        doc,
        ("plain ", TextFormat.NONE),
        ("bold", TextFormat.BOLD),
        (" ", TextFormat.NONE),
        ("both", TextFormat.BOLD | TextFormat.ITALIC),
        (" ", TextFormat.NONE),
        ("gone", TextFormat.STRIKETHROUGH),
        (" ", TextFormat.NONE),
        ("under", TextFormat.UNDERLINE),
        (" ", TextFormat.NONE),
        ("x = 1", TextFormat.CODE),
    )
    assert serialize(doc) == "plain **bold** **_both_** ~~gone~~ under `x = 1`", serialize(doc)
    print("PASS: inline markers")


def test_empty_text_emits_no_markers():
    doc = Document()
    _paragraph(doc, ("", TextFormat.BOLD))
    _paragraph(doc, ("after", TextFormat.NONE))
    assert serialize(doc) == "\n\nafter", repr(serialize(doc))
    print("PASS: empty text emits no markers")


def test_block_prefixes():
    doc = Document()
    heading = doc.create_node(NodeKind.HEADING, level=3)
    ordered = doc.create_node(NodeKind.LIST_ITEM, ordered=True)
    bullet = doc.create_node(NodeKind.LIST_ITEM)
    quote = doc.create_node(NodeKind.QUOTE)
    assert block_prefix(heading) == "### "
    assert block_prefix(ordered, 4) == "4. "
    assert block_prefix(bullet) == "- "
    assert block_prefix(quote) == "> "
    assert block_prefix(doc.create_node(NodeKind.PARAGRAPH)) == ""
    print("PASS: block prefixes")


def test_ordered_list_numbering_restarts():
    md = "1. a\n2. b\n\nbreak\n\n1. c"
    doc = parse_markdown(md)
    assert serialize(doc) == md, repr(serialize(doc))
    print("PASS: ordered list numbering restarts after a break")


def test_parse_inline_markdown_nesting():
    segments = parse_inline_markdown("a **b _c_** `d*e*` snake_case")
    assert segments == [
        ("a ", TextFormat.NONE),
        ("b ", TextFormat.BOLD),
        ("c", TextFormat.BOLD | TextFormat.ITALIC),
        (" ", TextFormat.NONE),
        ("d*e*", TextFormat.CODE),
        (" snake_case", TextFormat.NONE),
    ], segments
    print("PASS: inline parser nesting")


def test_every_block_has_a_text_node():
    doc = parse_markdown("# \n\nText")
    heading = doc.root.children[0]
    assert heading.kind is NodeKind.HEADING
    assert len(heading.children) == 1 and heading.children[0].is_text
    print("PASS: every block has a text node")


def test_document_mutations():
    doc = parse_markdown("First\n\nSecond")
    first_text = doc.root.children[0].children[0]
    assert doc.block_of(first_text.id) is doc.root.children[0]

    new_block = doc.insert_after(doc.root.children[0], doc.create_node(NodeKind.PARAGRAPH))
    doc.append(new_block, doc.create_node(NodeKind.TEXT, text="Middle"))
    assert serialize(doc) == "First\n\nMiddle\n\nSecond"

    removed = doc.remove(new_block.id)
    assert removed is new_block
    assert new_block.id not in doc
    assert all(child.id not in doc for child in new_block.children)
    assert serialize(doc) == "First\n\nSecond"
    assert doc.remove("root") is None
    print("PASS: document mutations")


def test_set_text_requires_text_node():
    doc = parse_markdown("Hello")
    block = doc.root.children[0]
    try:
        block.set_text("nope")
        assert False, "set_text on an element should raise"
    except TypeError:
        pass

    text = block.children[0]
    text.toggle_format(TextFormat.BOLD)
    assert text.has_format(TextFormat.BOLD)
    text.toggle_format(TextFormat.BOLD)
    assert not text.has_format(TextFormat.BOLD)
    print("PASS: set_text requires a text node")


def test_duplicate_ids_rejected():
    doc = Document()
    doc.append(doc.root, DocumentNode(id="a", kind=NodeKind.PARAGRAPH))
    try:
        doc.append(doc.root, DocumentNode(id="a", kind=NodeKind.PARAGRAPH))
        assert False, "Duplicate id should raise"
    except ValueError:
        pass
    print("PASS: duplicate ids rejected")


def test_from_dict_accepts_lexical_keys():
    data = {
        "root": {
            "children": [
                {"type": "heading", "tag": "h2", "children": [{"type": "text", "text": "Hi", "id": "t1"}]},
                {"type": "listitem", "listType": "number", "children": [{"type": "text", "text": "x", "format": 1}]},
            ]
        }
    }
    doc = Document.from_dict(data)
    assert serialize(doc) == "## Hi\n\n1. **x**", repr(serialize(doc))
    assert doc.get_node_by_id("t1").text == "Hi"
    print("PASS: from_dict accepts Lexical keys")


def test_dict_round_trip_keeps_ids():
    doc = parse_markdown(SAMPLE)
    rebuilt = Document.from_dict(doc.to_dict())
    assert serialize(rebuilt) == serialize(doc)
    assert [n.id for n in rebuilt.iter_nodes()] == [n.id for n in doc.iter_nodes()]
    print("PASS: dict round trip keeps ids")


def test_copy_is_independent():
    doc = parse_markdown("Hello")
    snapshot = doc.copy()
    text = doc.root.children[0].children[0]
    text.set_text("Changed")
    assert serialize(snapshot) == "Hello"
    assert snapshot.get_node_by_id(text.id).text == "Hello"
    print("PASS: copy is independent")


if __name__ == "__main__":
    tests = [
        test_parse_serialize_round_trip,
        test_serialize_is_deterministic,
        test_inline_markers,
        test_empty_text_emits_no_markers,
        test_block_prefixes,
        test_ordered_list_numbering_restarts,
        test_parse_inline_markdown_nesting,
        test_every_block_has_a_text_node,
        test_document_mutations,
        test_set_text_requires_text_node,
        test_duplicate_ids_rejected,
        test_from_dict_accepts_lexical_keys,
        test_dict_round_trip_keeps_ids,
        test_copy_is_independent,
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
