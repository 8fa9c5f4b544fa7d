"""Explicit result values returned by coordinator calls."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Mapping, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    THROTTLED = "throttled"
    DUPLICATE = "duplicate"
    REMOTE_REJECTION = "remote_rejection"
    TRANSPORT = "transport"
    COMPENSATION = "compensation"


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Err:
    """Failed action. ``message`` is safe to show to the user."""

    kind: ErrorKind
    message: str
    retry_after_ms: float = 0.0
    session_id: str | None = None
    context: Mapping[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return False

    @classmethod
    def from_exception(cls, exc: Exception) -> "Err":
        kind = getattr(exc, "kind", ErrorKind.TRANSPORT)
        return cls(
            kind=kind,
            message=str(exc),
            retry_after_ms=getattr(exc, "retry_after_ms", 0.0),
            session_id=getattr(exc, "session_id", None),
            context=dict(getattr(exc, "context", {}) or {}),
        )


Result = Union[Ok[T], Err]
