"""Typed errors raised by the visa workflow services.

Every error carries a ``kind`` (the RFC 7807 problem type) and the HTTP
status the API layer maps it to. Only ``ConflictError`` is safe to retry.
"""


class WorkflowError(Exception):
    """Base class for workflow errors surfaced to callers."""

    kind = "workflow"
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(WorkflowError):
    """Malformed input, rejected before any state mutation."""

    kind = "validation"
    status_code = 422


class IllegalTransitionError(WorkflowError):
    """Target stage is not a legal successor of the current stage."""

    kind = "illegal-transition"
    status_code = 409


class PreconditionError(WorkflowError):
    """Legal transition blocked by an unmet dependent condition."""

    kind = "precondition"
    status_code = 412


class ConflictError(WorkflowError):
    """Lost the race on a conditional update. Re-read and retry."""

    kind = "conflict"
    status_code = 409


class NotFoundError(WorkflowError):
    """Referenced application, country, or document is absent or out of scope."""

    kind = "not-found"
    status_code = 404


class StorageError(WorkflowError):
    """Blob store write failed or timed out."""

    kind = "storage"
    status_code = 502
