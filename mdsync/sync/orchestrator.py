"""
Edit session state machine.

    IDLE -> VALIDATING -> AWAITING_SERVICE -> HIGHLIGHT_PENDING
         -> STREAMING_EDIT(0..n-1) -> IDLE

Any error or cancellation returns the session to IDLE with highlights
cleared. Content already streamed stays in the document.
"""

import asyncio
from enum import Enum
from typing import Dict, List, Optional, Union

import structlog

from mdsync import config
from mdsync.config import SyncSettings
from mdsync.errors import (
    EditCancelledError,
    EmptyInstructionError,
    MdSyncError,
    NoActiveEditorError,
    ServiceFailureError,
    UnmappableEditError,
)
from mdsync.hosts import HighlightTarget, MarkdownHost, TreeHost
from mdsync.markup import splice_edits
from mdsync.models import (
    AIEdit,
    AIEditRequest,
    AIEditResponse,
    AIEditState,
    EditContext,
    EditOutcome,
    MarkdownSelection,
    OutcomeStatus,
)
from mdsync.service import EditService, parse_response
from mdsync.sync.history import HistoryRecorder
from mdsync.sync.mapper import build_selection
from mdsync.sync.planner import plan_node_edits
from mdsync.sync.stream import (
    CancellationToken,
    ProgressCallback,
    StreamProgress,
    apply_node_edit,
    commit_markdown,
)

logger = structlog.get_logger(__name__)

SelectionArg = Union[MarkdownSelection, str, None]


class EditPhase(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    AWAITING_SERVICE = "awaiting_service"
    HIGHLIGHT_PENDING = "highlight_pending"
    STREAMING_EDIT = "streaming_edit"


class EditSession:
    """
    One editor session. Holds the host binding, the AI collaborator and the
    per-session AIEditState. At most one orchestration runs at a time; a call
    made while one is in flight returns an IGNORED outcome.
    """

    def __init__(
        self,
        host: Union[TreeHost, MarkdownHost, None] = None,
        service: Optional[EditService] = None,
        settings: Optional[SyncSettings] = None,
        recorder: Optional[HistoryRecorder] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.host = host
        self.service = service
        self.settings = settings or config.settings
        self.recorder = recorder
        self.on_progress = on_progress
        self.state = AIEditState()
        self.phase = EditPhase.IDLE
        self.edit_index: Optional[int] = None
        self._token: Optional[CancellationToken] = None
        # Operations of the current run already written to the host
        self._applied = 0
        self._elements: Dict[str, HighlightTarget] = {}

    @property
    def is_streaming(self) -> bool:
        return self.state.is_streaming

    # --- Public API ---

    async def execute_edit(
        self,
        instruction: str,
        markdown: Optional[str] = None,
        selection: SelectionArg = None,
    ) -> EditOutcome:
        """
        Runs one instruction end to end against the bound host.

        Structured hosts get the highlight/stream sequence; flat-string hosts
        get a single spliced write.

        Raises:
            EmptyInstructionError: blank instruction (no state change).
            NoActiveEditorError: no host or no service bound (no state change).
        """
        if self.state.is_streaming:
            logger.info("Edit already in progress, ignoring new request")
            return EditOutcome(status=OutcomeStatus.IGNORED, message="An edit is already in progress")

        self._validate(instruction)
        if not isinstance(self.host, TreeHost):
            return await self.execute_markdown_edit(instruction, markdown, selection)

        token = self._begin()
        host: TreeHost = self.host
        try:
            markdown = host.get_markdown() if markdown is None else markdown
            response = await self._request_edits(instruction, markdown, selection, token)
            if not response.edits:
                return self._no_changes(response)

            ops = plan_node_edits(host.get_document(), markdown, response.edits)
            if not ops:
                return self._no_changes(response)

            await self._highlight_pending(host, ops, token)
            await self._stream_edits(host, ops, token)

            result = host.get_markdown()
            self._record_history()
            logger.info(f"Applied {len(ops)} node edits")
            return EditOutcome(
                status=OutcomeStatus.APPLIED,
                message=response.explanation,
                applied=len(ops),
                markdown=result,
            )
        except Exception as e:
            return self._error_outcome(e, self._applied)
        finally:
            self._finish(token)

    async def execute_markdown_edit(
        self,
        instruction: str,
        markdown: Optional[str] = None,
        selection: SelectionArg = None,
    ) -> EditOutcome:
        """Flat-string path: service, descending splice, one set_markdown."""
        if self.state.is_streaming:
            logger.info("Edit already in progress, ignoring new request")
            return EditOutcome(status=OutcomeStatus.IGNORED, message="An edit is already in progress")

        self._validate(instruction)
        if not isinstance(self.host, MarkdownHost):
            raise NoActiveEditorError("Bound host does not accept Markdown writes")

        token = self._begin()
        host: MarkdownHost = self.host
        try:
            markdown = host.get_markdown() if markdown is None else markdown
            response = await self._request_edits(instruction, markdown, selection, token)
            if not response.edits:
                return self._no_changes(response)

            result, applied, skipped = splice_edits(markdown, response.edits)
            if not applied:
                raise UnmappableEditError(f"None of the {len(response.edits)} proposed edits fit the markdown")

            token.raise_if_cancelled()
            commit_markdown(host, result)
            self._record_history()
            logger.info(f"Applied {applied} markdown edits ({skipped} skipped)")
            return EditOutcome(
                status=OutcomeStatus.APPLIED,
                message=response.explanation,
                applied=applied,
                skipped=skipped,
                markdown=result,
            )
        except Exception as e:
            return self._error_outcome(e)
        finally:
            self._finish(token)

    def cancel(self) -> None:
        """
        Requests cancellation. The running orchestration stops at its next
        chunk or edit boundary; highlights and state are reset right away.
        """
        if self._token is None:
            return
        logger.info(f"Cancelling edit in phase {self.phase.value}")
        self._token.cancel()
        self._token = None
        self._clear_highlights()
        self._reset()

    # --- Phases ---

    def _validate(self, instruction: str) -> None:
        if not instruction or not instruction.strip():
            raise EmptyInstructionError("Instruction is empty")
        if self.host is None:
            raise NoActiveEditorError("No editor is bound to this session")
        if self.service is None:
            raise NoActiveEditorError("No edit service is bound to this session")

    def _begin(self) -> CancellationToken:
        token = CancellationToken()
        self._token = token
        self._applied = 0
        self.phase = EditPhase.VALIDATING
        self.state = AIEditState(is_streaming=True)
        return token

    async def _request_edits(
        self,
        instruction: str,
        markdown: str,
        selection: SelectionArg,
        token: CancellationToken,
    ) -> AIEditResponse:
        if isinstance(selection, str):
            selection = build_selection(markdown, selection, context_chars=self.settings.context_chars)

        self.phase = EditPhase.AWAITING_SERVICE
        request = AIEditRequest(
            instruction=instruction.strip(),
            context=EditContext(full_markdown=markdown, selection=selection),
        )
        try:
            payload = await self.service.generate_edits(request)
        except MdSyncError:
            raise
        except Exception as e:
            raise ServiceFailureError(f"Edit service raised {type(e).__name__}: {e}") from e

        token.raise_if_cancelled()
        response = parse_response(payload)
        logger.info(f"Service proposed {len(response.edits)} edits")
        return response

    async def _highlight_pending(self, host: TreeHost, ops: List[AIEdit], token: CancellationToken) -> None:
        self.phase = EditPhase.HIGHLIGHT_PENDING
        for op in ops:
            element = host.get_element_by_key(op.target_node_id)
            if element is None:
                continue
            element.add_class(self.settings.pending_class)
            self._elements[op.target_node_id] = element
            self.state.highlighted_nodes.add(op.target_node_id)

        if self.settings.highlight_dwell > 0:
            await asyncio.sleep(self.settings.highlight_dwell)
        token.raise_if_cancelled()

    async def _stream_edits(self, host: TreeHost, ops: List[AIEdit], token: CancellationToken) -> None:
        self.phase = EditPhase.STREAMING_EDIT

        def on_progress(progress: StreamProgress) -> None:
            # Inserts stream into a new paragraph, not the anchor
            if not token.cancelled and progress.node_id != self.state.current_edit_node:
                self._move_active(host, progress.node_id)
            self.state.streaming_text = progress.revealed
            if self.on_progress is not None:
                self.on_progress(progress)
            if self.recorder is not None:
                self.recorder.notify()

        for i, op in enumerate(ops):
            token.raise_if_cancelled()
            self.edit_index = i
            self.state.current_edit_node = op.target_node_id
            self.state.streaming_text = ""

            element = self._elements.get(op.target_node_id) or host.get_element_by_key(op.target_node_id)
            if element is not None:
                element.remove_class(self.settings.pending_class)
                element.add_class(self.settings.active_class)
                self._elements[op.target_node_id] = element

            logger.debug(f"Edit {i + 1}/{len(ops)}: {op.action.value} on node {op.target_node_id}")
            await apply_node_edit(
                host,
                op,
                on_progress=on_progress,
                token=token,
                chunk_size=self.settings.chunk_size,
                interval=self.settings.chunk_interval,
            )
            self._applied += 1

            for key in {op.target_node_id, self.state.current_edit_node}:
                done = self._elements.pop(key, None)
                if done is not None:
                    done.remove_class(self.settings.active_class)
            self.state.highlighted_nodes.discard(op.target_node_id)

            if i < len(ops) - 1 and self.settings.edit_pause > 0:
                await asyncio.sleep(self.settings.edit_pause)

    def _move_active(self, host: TreeHost, node_id: str) -> None:
        previous = self._elements.pop(self.state.current_edit_node, None)
        if previous is not None:
            previous.remove_class(self.settings.active_class)
        element = host.get_element_by_key(node_id)
        if element is not None:
            element.add_class(self.settings.active_class)
            self._elements[node_id] = element
        self.state.current_edit_node = node_id

    # --- Cleanup ---

    def _no_changes(self, response: AIEditResponse) -> EditOutcome:
        logger.info("No changes needed")
        return EditOutcome(
            status=OutcomeStatus.NO_CHANGES,
            message=response.explanation or "No changes needed",
        )

    def _error_outcome(self, error: Exception, applied: int = 0) -> EditOutcome:
        """
        UNMAPPABLE only while the document is untouched. Once an operation
        has landed, a failure to place the rest is reported as FAILED.
        """
        if isinstance(error, EditCancelledError):
            logger.info(f"Edit cancelled after {applied} operations")
            return EditOutcome(status=OutcomeStatus.CANCELLED, message="Edit cancelled", applied=applied)
        if isinstance(error, UnmappableEditError):
            if applied:
                logger.error(f"Edit stopped after {applied} operations: {error}")
                return EditOutcome(
                    status=OutcomeStatus.FAILED,
                    message=f"Edit stopped after {applied} operations: {error}",
                    applied=applied,
                )
            logger.warning(f"Unmappable edit batch: {error}")
            return EditOutcome(status=OutcomeStatus.UNMAPPABLE, message=str(error))
        if isinstance(error, ServiceFailureError):
            logger.error(f"Edit service failed: {error}")
            return EditOutcome(status=OutcomeStatus.FAILED, message=str(error))
        logger.error(f"Edit failed: {error}", exc_info=error)
        return EditOutcome(status=OutcomeStatus.FAILED, message=f"Edit failed: {error}", applied=applied)

    def _record_history(self) -> None:
        if self.recorder is not None:
            self.recorder.flush()

    def _clear_highlights(self) -> None:
        for element in self._elements.values():
            element.remove_class(self.settings.pending_class)
            element.remove_class(self.settings.active_class)
        self._elements.clear()

    def _reset(self) -> None:
        self.state = AIEditState()
        self.phase = EditPhase.IDLE
        self.edit_index = None

    def _finish(self, token: CancellationToken) -> None:
        # A cancel() may already have reset the session for a newer run
        if self._token is not token:
            return
        self._token = None
        self._clear_highlights()
        self._reset()
