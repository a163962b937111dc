"""
Identifier and code normalization.

Every public operation parses its id arguments here BEFORE touching the
database, so a malformed id is a BadRequest and never a NotFound.
"""

from __future__ import annotations

from uuid import UUID

from org_kernel.exceptions import InvalidFieldError, InvalidIdentifierError


def parse_identifier(value: object, field: str = "id") -> UUID:
    """Return ``value`` as a UUID or raise InvalidIdentifierError."""
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value.strip())
        except ValueError:
            raise InvalidIdentifierError(field, value) from None
    raise InvalidIdentifierError(field, value)


def parse_optional_identifier(value: object, field: str) -> UUID | None:
    if value is None:
        return None
    return parse_identifier(value, field)


def normalize_code(value: object, field: str = "code") -> str:
    """Trim and upper-case a department/position code; blank codes are rejected."""
    if not isinstance(value, str):
        raise InvalidFieldError(field, "must be a string")
    code = value.strip().upper()
    if not code:
        raise InvalidFieldError(field, "must not be blank")
    if len(code) > 50:
        raise InvalidFieldError(field, "must be at most 50 characters")
    return code


def require_text(value: object, field: str, max_length: int = 255) -> str:
    """Trimmed non-blank string, or InvalidFieldError."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidFieldError(field, "must be a non-blank string")
    text = value.strip()
    if len(text) > max_length:
        raise InvalidFieldError(field, f"must be at most {max_length} characters")
    return text
