from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """
    Base for models that cross the AI collaborator / host boundary.
    Accepts both snake_case and the camelCase used by editor front-ends
    (e.g. 'startOffset').
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EditAction(str, Enum):
    REPLACE = "replace"
    INSERT = "insert"
    DELETE = "delete"


class EditFormatting(WireModel):
    bold: Optional[bool] = None
    italic: Optional[bool] = None
    underline: Optional[bool] = None

    def is_empty(self) -> bool:
        return not (self.bold or self.italic or self.underline)


class MarkdownSelection(WireModel):
    """
    A span of the serialized Markdown the user selected.
    Offsets are only meaningful against the Markdown they were computed from.
    """

    text: str
    start_offset: int = Field(..., ge=0)
    end_offset: int = Field(..., ge=0)
    context_before: str = ""
    context_after: str = ""


class MarkdownEdit(WireModel):
    """
    A single edit proposed by the AI collaborator.
    The range [start_offset, end_offset) refers to one specific Markdown snapshot.
    """

    start_offset: int = Field(..., ge=0, description="Inclusive start offset in the Markdown snapshot.")
    end_offset: int = Field(..., ge=0, description="Exclusive end offset in the Markdown snapshot.")
    new_content: str = Field(
        "",
        description=(
            "Replacement text. May use Markdown: '# Title' for headings, '**bold**', '_italic_'. "
            "An empty string deletes the range."
        ),
    )

    @model_validator(mode="after")
    def _check_range(self) -> "MarkdownEdit":
        if self.end_offset < self.start_offset:
            raise ValueError(f"end_offset ({self.end_offset}) precedes start_offset ({self.start_offset})")
        return self


class EditContext(WireModel):
    full_markdown: str
    selection: Optional[MarkdownSelection] = None


class AIEditRequest(WireModel):
    instruction: str
    context: EditContext


class AIEditResponse(WireModel):
    """Empty `edits` means 'no change needed', not an error."""

    edits: List[MarkdownEdit] = Field(default_factory=list)
    explanation: str = ""


class AIEdit(WireModel):
    """A node-level operation produced by the planner."""

    target_node_id: str
    action: EditAction = EditAction.REPLACE
    new_content: str = ""
    formatting: Optional[EditFormatting] = None


class AIEditState(WireModel):
    """Per-session streaming state. The zero value means idle."""

    is_streaming: bool = False
    highlighted_nodes: Set[str] = Field(default_factory=set)
    current_edit_node: Optional[str] = None
    streaming_text: str = ""


class PageData(WireModel):
    id: str
    content: str = ""
    is_table_of_contents: bool = False


class HistoryEntry(WireModel):
    pages: List[PageData] = Field(default_factory=list)
    has_table_of_contents: bool = False


class OutcomeStatus(str, Enum):
    APPLIED = "applied"
    NO_CHANGES = "no_changes"
    UNMAPPABLE = "unmappable"
    FAILED = "failed"
    CANCELLED = "cancelled"
    IGNORED = "ignored"


class EditOutcome(WireModel):
    status: OutcomeStatus
    message: str = ""
    applied: int = 0
    skipped: int = 0
    markdown: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.APPLIED
