"""
Error taxonomy for the board/card persistence layer.

Batch reads swallow DecodeError per record; single-entity operations let
everything else reach the caller.
"""
from typing import Optional


class KanbanError(Exception):
    """Base for all kanbanstr errors."""
    pass


class NotFound(KanbanError):
    """Queried board or card is absent from every connected relay."""
    pass


class PermissionDenied(KanbanError):
    """Acting identity may not perform this write."""
    pass


class DecodeError(KanbanError):
    """A single record could not be decoded."""

    def __init__(self, record_id: str, reason: str):
        super().__init__(f"Cannot decode record {record_id}: {reason}")
        self.record_id = record_id
        self.reason = reason


class TransportError(KanbanError):
    """Opaque failure bubbled up from the event client."""
    pass


class MigrationFailed(KanbanError):
    """Legacy migration aborted at some step."""

    def __init__(self, step: str, cause: Optional[BaseException] = None):
        message = f"Migration failed during {step}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.step = step
        self.cause = cause
