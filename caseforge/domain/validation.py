"""Request-level checks applied before any ledger call."""

from __future__ import annotations

import re

from .exceptions import ValidationError

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

MAX_PRICE = 1_000_000_000


def is_valid_identifier(value: object) -> bool:
    return isinstance(value, str) and bool(_UUID_RE.match(value))


def validate_identifier(value: object, field: str) -> str:
    """Return ``value`` if it is a well-formed UUID, raise otherwise."""
    if not is_valid_identifier(value):
        raise ValidationError(f"Invalid {field}")
    return value  # type: ignore[return-value]


def validate_price(value: object, field: str = "price") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Invalid {field}")
    if value < 0 or value > MAX_PRICE:
        raise ValidationError(f"Invalid {field}")
    return value
