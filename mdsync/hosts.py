"""
Editor host contracts and in-memory reference hosts.

A flat-string host only exposes the whole Markdown string. A structured host
exposes the node tree, per-block render elements that carry CSS-like classes,
and the structural mutations the stream applier needs.
"""

from typing import Dict, Optional, Protocol, Set, runtime_checkable

import structlog

from mdsync.document import Document, DocumentNode, NodeKind
from mdsync.parser import parse_markdown
from mdsync.serialize import serialize

logger = structlog.get_logger(__name__)


@runtime_checkable
class MarkdownHost(Protocol):
    def get_markdown(self) -> str: ...

    def set_markdown(self, markdown: str) -> None: ...


@runtime_checkable
class HighlightTarget(Protocol):
    def add_class(self, name: str) -> None: ...

    def remove_class(self, name: str) -> None: ...


@runtime_checkable
class TreeHost(Protocol):
    def get_document(self) -> Document: ...

    def get_markdown(self) -> str: ...

    def get_node_by_id(self, node_id: str) -> Optional[DocumentNode]: ...

    def get_element_by_key(self, node_id: str) -> Optional[HighlightTarget]: ...

    def insert_paragraph_after(self, node_id: str) -> Optional[str]: ...

    def remove_node(self, node_id: str) -> bool: ...


class MarkdownBuffer:
    """Flat-string host backed by a plain str. Counts commits."""

    def __init__(self, markdown: str = ""):
        self._markdown = markdown
        self.writes = 0

    def get_markdown(self) -> str:
        return self._markdown

    def set_markdown(self, markdown: str) -> None:
        self._markdown = markdown
        self.writes += 1


class NodeElement:
    """Render element of one block. Holds the classes currently applied to it."""

    def __init__(self, key: str):
        self.key = key
        self.classes: Set[str] = set()

    def add_class(self, name: str) -> None:
        self.classes.add(name)

    def remove_class(self, name: str) -> None:
        self.classes.discard(name)

    def has_class(self, name: str) -> bool:
        return name in self.classes

    def __repr__(self) -> str:
        return f"NodeElement({self.key!r}, classes={sorted(self.classes)})"


class DocumentHost:
    """
    Structured host over a Document.

    Elements are per block: asking for a text node's element returns its
    block's element, the way a rendered editor highlights whole paragraphs.
    """

    def __init__(self, document: Optional[Document] = None):
        self.document = document if document is not None else Document()
        self._elements: Dict[str, NodeElement] = {}

    @classmethod
    def from_markdown(cls, markdown: str) -> "DocumentHost":
        return cls(parse_markdown(markdown))

    def get_document(self) -> Document:
        return self.document

    def get_markdown(self) -> str:
        return serialize(self.document)

    def get_node_by_id(self, node_id: str) -> Optional[DocumentNode]:
        return self.document.get_node_by_id(node_id)

    def get_element_by_key(self, node_id: str) -> Optional[NodeElement]:
        # Bare text under the root renders as its own block
        block = self.document.block_of(node_id) or self.document.get_node_by_id(node_id)
        if block is None:
            return None
        element = self._elements.get(block.id)
        if element is None:
            element = NodeElement(block.id)
            self._elements[block.id] = element
        return element

    def elements_with_class(self, name: str) -> Set[str]:
        return {key for key, element in self._elements.items() if element.has_class(name)}

    def insert_paragraph_after(self, node_id: str) -> Optional[str]:
        """
        Inserts an empty paragraph after the block holding `node_id`.
        Returns the id of the new paragraph's text node.
        """
        block = self.document.block_of(node_id)
        if block is None:
            node = self.document.get_node_by_id(node_id)
            if node is None or node.parent is not self.document.root:
                logger.warning(f"Cannot insert after unknown node {node_id}")
                return None
            block = node

        paragraph = self.document.insert_after(block, self.document.create_node(NodeKind.PARAGRAPH))
        text = self.document.append(paragraph, self.document.create_node(NodeKind.TEXT))
        logger.debug(f"Inserted paragraph {paragraph.id} after block {block.id}")
        return text.id

    def remove_node(self, node_id: str) -> bool:
        """Removes a node. A block left without children is removed with it."""
        node = self.document.get_node_by_id(node_id)
        if node is None:
            return False
        parent = node.parent
        self.document.remove(node_id)
        self._elements.pop(node_id, None)
        if parent is not None and parent is not self.document.root and not parent.children:
            self.document.remove(parent.id)
            self._elements.pop(parent.id, None)
        return True
