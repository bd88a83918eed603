"""
Structured document model: an arena of nodes keyed by id, owned top-down.

Node kinds form a closed set. Only TEXT nodes bear characters; every other
kind is an element whose text content is the concatenation of its children.
"""

import copy
import itertools
from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import Any, Dict, Iterator, List, Optional, Set


class NodeKind(str, Enum):
    ROOT = "root"
    PARAGRAPH = "paragraph"
    HEADING = "heading"
    LIST_ITEM = "listitem"
    QUOTE = "quote"
    CODE_BLOCK = "code"
    HORIZONTAL_RULE = "horizontalrule"
    TEXT = "text"


BLOCK_KINDS = frozenset(
    {
        NodeKind.PARAGRAPH,
        NodeKind.HEADING,
        NodeKind.LIST_ITEM,
        NodeKind.QUOTE,
        NodeKind.CODE_BLOCK,
        NodeKind.HORIZONTAL_RULE,
    }
)


class TextFormat(IntFlag):
    """Inline format bits. Values match Lexical's TextNode format mask."""

    NONE = 0
    BOLD = 1
    ITALIC = 2
    STRIKETHROUGH = 4
    UNDERLINE = 8
    CODE = 16


# Formatting flags an AI edit may request, by EditFormatting field name.
FORMAT_FLAGS = {
    "bold": TextFormat.BOLD,
    "italic": TextFormat.ITALIC,
    "underline": TextFormat.UNDERLINE,
}


@dataclass(eq=False)
class DocumentNode:
    id: str
    kind: NodeKind
    text: str = ""
    format: TextFormat = TextFormat.NONE
    level: int = 0
    ordered: bool = False
    children: List["DocumentNode"] = field(default_factory=list)
    # Back-reference only; the parent owns this node through `children`.
    parent: Optional["DocumentNode"] = field(default=None, repr=False)

    @property
    def is_text(self) -> bool:
        return self.kind is NodeKind.TEXT

    @property
    def is_block(self) -> bool:
        return self.kind in BLOCK_KINDS

    def set_text(self, text: str) -> None:
        if not self.is_text:
            raise TypeError(f"Node {self.id} ({self.kind.value}) does not hold text")
        self.text = text

    def has_format(self, flag: TextFormat) -> bool:
        return bool(self.format & flag)

    def toggle_format(self, flag: TextFormat) -> None:
        if not self.is_text:
            raise TypeError(f"Node {self.id} ({self.kind.value}) cannot be formatted")
        self.format ^= flag

    def text_content(self) -> str:
        if self.is_text:
            return self.text
        return "".join(child.text_content() for child in self.children)


class Document:
    """
    A document tree plus an id index over every node it owns.

    Ids are unique within one Document. `copy()` carries them over so a
    snapshot can be compared against the live tree; independently built
    documents make no such promise.
    """

    def __init__(self, root: Optional[DocumentNode] = None):
        self.root = root or DocumentNode(id="root", kind=NodeKind.ROOT)
        if self.root.kind is not NodeKind.ROOT:
            raise ValueError("Document root must be a ROOT node")
        self._nodes: Dict[str, DocumentNode] = {}
        self._reserved: Set[str] = set()
        self._ids = itertools.count(1)
        self._index(self.root)

    def _index(self, node: DocumentNode) -> None:
        if node.id in self._nodes:
            raise ValueError(f"Duplicate node id: {node.id}")
        self._nodes[node.id] = node
        for child in node.children:
            child.parent = node
            self._index(child)

    def _unindex(self, node: DocumentNode) -> None:
        self._nodes.pop(node.id, None)
        for child in node.children:
            self._unindex(child)

    def new_id(self) -> str:
        while True:
            candidate = str(next(self._ids))
            if candidate not in self._nodes and candidate not in self._reserved:
                return candidate

    def create_node(self, kind: NodeKind, text: str = "", **attrs: Any) -> DocumentNode:
        """Creates a detached node with a fresh id. Attach it with append/insert_after."""
        return DocumentNode(id=self.new_id(), kind=kind, text=text, **attrs)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def get_node_by_id(self, node_id: str) -> Optional[DocumentNode]:
        return self._nodes.get(node_id)

    def append(self, parent: DocumentNode, child: DocumentNode) -> DocumentNode:
        if parent.id not in self._nodes:
            raise KeyError(f"Parent {parent.id} is not part of this document")
        parent.children.append(child)
        child.parent = parent
        self._index(child)
        return child

    def insert_after(self, sibling: DocumentNode, node: DocumentNode) -> DocumentNode:
        parent = sibling.parent
        if parent is None:
            raise ValueError("Cannot insert a sibling next to the root")
        position = parent.children.index(sibling)
        parent.children.insert(position + 1, node)
        node.parent = parent
        self._index(node)
        return node

    def remove(self, node_id: str) -> Optional[DocumentNode]:
        """Detaches a node and its subtree. Returns the detached node, or None if unknown."""
        node = self._nodes.get(node_id)
        if node is None or node is self.root:
            return None
        parent = node.parent
        if parent is not None:
            parent.children.remove(node)
        node.parent = None
        self._unindex(node)
        return node

    def iter_nodes(self) -> Iterator[DocumentNode]:
        """Pre-order traversal, document order."""
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def iter_text_nodes(self) -> Iterator[DocumentNode]:
        return (n for n in self.iter_nodes() if n.is_text)

    def block_of(self, node_id: str) -> Optional[DocumentNode]:
        """Nearest block ancestor of a node (the node itself if it is a block)."""
        node = self._nodes.get(node_id)
        while node is not None and not node.is_block:
            node = node.parent
        return node

    def copy(self) -> "Document":
        return Document(copy.deepcopy(self.root))

    def text_content(self) -> str:
        return self.root.text_content()

    # --- Dict (JSON) form ---

    def to_dict(self) -> Dict[str, Any]:
        return {"root": _node_to_dict(self.root)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        """
        Builds a Document from its dict form.
        Accepts the Lexical-style keys too ('type', 'tag': 'h2', 'listType': 'number').
        Nodes without an id get a generated one.
        """
        root_data = data.get("root", data)
        doc = cls()
        doc._reserved = set(_explicit_ids(root_data))
        for child in root_data.get("children", []):
            doc.append(doc.root, _node_from_dict(doc, child))
        doc._reserved.clear()
        return doc


def _explicit_ids(data: Dict[str, Any]) -> Iterator[str]:
    for child in data.get("children", []):
        if child.get("id") is not None:
            yield str(child["id"])
        yield from _explicit_ids(child)


def _node_to_dict(node: DocumentNode) -> Dict[str, Any]:
    data: Dict[str, Any] = {"id": node.id, "type": node.kind.value}
    if node.is_text:
        data["text"] = node.text
        if node.format:
            data["format"] = int(node.format)
    if node.kind is NodeKind.HEADING:
        data["level"] = node.level
    if node.kind is NodeKind.LIST_ITEM and node.ordered:
        data["ordered"] = True
    if node.children:
        data["children"] = [_node_to_dict(c) for c in node.children]
    return data


def _node_from_dict(doc: Document, data: Dict[str, Any]) -> DocumentNode:
    kind = NodeKind(data.get("type", NodeKind.TEXT.value))
    node_id = str(data["id"]) if data.get("id") is not None else doc.new_id()

    level = int(data.get("level", 0))
    tag = data.get("tag")
    if kind is NodeKind.HEADING and not level and isinstance(tag, str) and tag[1:].isdigit():
        level = int(tag[1:])
    if kind is NodeKind.HEADING:
        level = min(max(level, 1), 6)

    ordered = bool(data.get("ordered", False)) or data.get("listType") == "number"

    node = DocumentNode(
        id=node_id,
        kind=kind,
        text=data.get("text", "") if kind is NodeKind.TEXT else "",
        format=TextFormat(int(data.get("format") or 0)),
        level=level,
        ordered=ordered,
    )
    # Children are attached to the detached node; Document.append indexes the subtree.
    for child_data in data.get("children", []):
        child = _node_from_dict(doc, child_data)
        child.parent = node
        node.children.append(child)
    return node
