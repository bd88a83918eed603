"""
The AI collaborator boundary.

A service takes an instruction plus the current Markdown (and optional
selection) and proposes offset-based edits against that exact Markdown.
The model itself lives outside this package.
"""

from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol, Union

import structlog
from pydantic import ValidationError

from mdsync.diff import generate_markdown_edits
from mdsync.errors import ServiceFailureError
from mdsync.models import AIEditRequest, AIEditResponse, MarkdownEdit

logger = structlog.get_logger(__name__)

ServicePayload = Union[AIEditResponse, dict]


class EditService(Protocol):
    async def generate_edits(self, request: AIEditRequest) -> ServicePayload: ...


def parse_response(payload: Any) -> AIEditResponse:
    """
    Validates a collaborator payload.

    Raises:
        ServiceFailureError: the payload is not a well-formed response.
    """
    if isinstance(payload, AIEditResponse):
        return payload
    try:
        return AIEditResponse.model_validate(payload)
    except ValidationError as e:
        raise ServiceFailureError(f"Malformed response from edit service: {e.error_count()} validation errors") from e


class StaticEditService:
    """Returns the same proposal for every request. Useful for replays and tests."""

    def __init__(self, edits: Optional[Iterable[MarkdownEdit]] = None, explanation: str = ""):
        self.response = AIEditResponse(edits=list(edits or []), explanation=explanation)
        self.requests = []

    async def generate_edits(self, request: AIEditRequest) -> AIEditResponse:
        self.requests.append(request)
        return self.response.model_copy(deep=True)


RewriteFn = Callable[[str, str], Awaitable[str]]


class RewriteEditService:
    """
    Adapts a whole-document rewriter to the edit contract.

    `rewrite(instruction, markdown)` returns the full rewritten Markdown; the
    word diff against the request's Markdown becomes the edit list.
    """

    def __init__(self, rewrite: RewriteFn):
        self.rewrite = rewrite

    async def generate_edits(self, request: AIEditRequest) -> AIEditResponse:
        original = request.context.full_markdown
        rewritten = await self.rewrite(request.instruction, original)
        edits = generate_markdown_edits(original, rewritten)
        logger.info(f"Rewrite produced {len(edits)} edits")
        return AIEditResponse(edits=edits, explanation=f"{len(edits)} changes from rewrite")
