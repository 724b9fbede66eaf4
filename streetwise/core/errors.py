from __future__ import annotations


class StreetwiseError(Exception):
    """Base class for errors raised by the record-keeping engine."""


class ValidationError(StreetwiseError, ValueError):
    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class NotFoundError(StreetwiseError, LookupError):
    def __init__(self, kind: str, record_id: str | None = None) -> None:
        if record_id:
            super().__init__(f"{kind} {record_id} not found")
        else:
            super().__init__(f"{kind} not found")
        self.kind = kind
        self.record_id = record_id


class ConflictError(StreetwiseError):
    pass


class CorruptSnapshotError(StreetwiseError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Snapshot {path} is unreadable: {reason}")
        self.path = path
        self.reason = reason


class PersistenceWarning(RuntimeWarning):
    """A snapshot flush failed; the in-memory state is still authoritative."""
