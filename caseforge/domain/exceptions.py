"""Exceptions raised by caseforge domain services."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from .results import ErrorKind


class CaseForgeError(RuntimeError):
    """Base class for domain exceptions."""

    kind: ErrorKind = ErrorKind.TRANSPORT


class ValidationError(CaseForgeError):
    """Raised before any ledger call when a request is malformed."""

    kind = ErrorKind.VALIDATION


class ThrottledError(CaseForgeError):
    """Raised when the limiter or the lockout denies an action."""

    kind = ErrorKind.THROTTLED

    def __init__(self, retry_after_ms: float, *, tripped: bool = False, reason: str = "") -> None:
        seconds = max(0, int((retry_after_ms + 999) // 1000))
        super().__init__(reason or f"Too many attempts. Try again in {seconds} seconds")
        self.retry_after_ms = max(0.0, retry_after_ms)
        self.tripped = tripped


class DuplicateAttempt(CaseForgeError):
    """Raised when a gesture is already in flight."""

    kind = ErrorKind.DUPLICATE

    def __init__(self, message: str, *, session_id: str | None = None) -> None:
        super().__init__(message)
        self.session_id = session_id


class RemoteRejection(CaseForgeError):
    """Raised when the ledger answers ``success=False``."""

    kind = ErrorKind.REMOTE_REJECTION

    def __init__(self, message: str, *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = dict(context or {})


class TransportFailure(CaseForgeError):
    """Raised when the ledger could not be reached or timed out."""

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = dict(context or {})


class CompensationFailure(CaseForgeError):
    """Raised when a bulk sale could neither finish nor be rolled back."""

    kind = ErrorKind.COMPENSATION

    def __init__(self, failed_item_ids: Sequence[str], *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(
            f"Could not revert {len(failed_item_ids)} item(s) after a failed balance credit"
        )
        self.failed_item_ids = tuple(failed_item_ids)
        self.context = {"failed_reverts": list(self.failed_item_ids), **dict(context or {})}


class InvalidTransition(CaseForgeError):
    """Raised when a state machine is driven out of order."""

    kind = ErrorKind.VALIDATION
