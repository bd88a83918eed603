from importlib.metadata import PackageNotFoundError, version

from mdsync.document import Document, DocumentNode, NodeKind, TextFormat
from mdsync.markup import apply_markdown_edits
from mdsync.models import AIEdit, EditOutcome, MarkdownEdit, MarkdownSelection
from mdsync.parser import parse_markdown
from mdsync.serialize import serialize
from mdsync.sync.mapper import PositionMapper, find_selection
from mdsync.sync.orchestrator import EditSession

try:
    __version__ = version("mdsync")
except PackageNotFoundError:
    # Running from a source checkout without installation
    __version__ = "0.0.0-dev"

__all__ = [
    "Document",
    "DocumentNode",
    "NodeKind",
    "TextFormat",
    "AIEdit",
    "EditOutcome",
    "MarkdownEdit",
    "MarkdownSelection",
    "EditSession",
    "PositionMapper",
    "apply_markdown_edits",
    "find_selection",
    "parse_markdown",
    "serialize",
    "__version__",
]
