"""
Error taxonomy for the edit pipeline.

An empty response is an informational outcome (OutcomeStatus.NO_CHANGES), not a failure.
"""


class MdSyncError(Exception):
    """Base class for all mdsync errors."""


class NoActiveEditorError(MdSyncError):
    """No editor host is bound to the session. Raised before any state change."""


class EmptyInstructionError(MdSyncError):
    """The instruction is empty or whitespace. Raised before any state change."""


class UnmappableEditError(MdSyncError):
    """None of the proposed edits could be mapped onto the document."""


class ServiceFailureError(MdSyncError):
    """The AI collaborator raised or returned a malformed payload."""


class EditCancelledError(MdSyncError):
    """A cooperative cancellation was observed at a chunk or edit boundary."""
