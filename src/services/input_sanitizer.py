"""Input validation and sanitization for Douban user ids.

The id ends up in the ``/people/{id}/collect`` path, so besides the
non-empty check it is restricted to the characters Douban uses in ids.
"""

import re
import unicodedata
from typing import Any, NamedTuple

import logfire

from src.constants import MAX_USER_ID_LENGTH_CHARS

_USER_ID_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")


class ValidationResult(NamedTuple):
    """Result of input validation.

    Attributes:
        is_valid: Whether the input passed validation.
        error_code: Error code if validation failed, None otherwise.
        error_message: Human-readable error message if validation failed.
    """

    is_valid: bool
    error_code: str | None
    error_message: str | None


def sanitize_user_id(raw: Any) -> str:
    """Normalize a submitted user id.

    Non-string input becomes an empty string. Control characters and
    surrounding whitespace are removed.
    """
    if not isinstance(raw, str):
        return ""

    sanitized = unicodedata.normalize("NFC", raw)
    sanitized = "".join(char for char in sanitized if ord(char) >= 32)
    return sanitized.strip()


def validate_user_id(raw: Any) -> ValidationResult:
    """Validate a user id after sanitizing it.

    Args:
        raw: Value taken from the request body or the command line.

    Returns:
        ValidationResult with error_code ``empty``, ``too_long`` or
        ``invalid_chars`` on failure.
    """
    user_id = sanitize_user_id(raw)

    if not user_id:
        return ValidationResult(
            is_valid=False,
            error_code="empty",
            error_message="User id is empty or not a string",
        )

    if len(user_id) > MAX_USER_ID_LENGTH_CHARS:
        logfire.warning(
            "User id rejected as too long",
            length=len(user_id),
            max_length=MAX_USER_ID_LENGTH_CHARS,
        )
        return ValidationResult(
            is_valid=False,
            error_code="too_long",
            error_message=f"User id exceeds {MAX_USER_ID_LENGTH_CHARS} characters",
        )

    if not _USER_ID_RE.match(user_id):
        logfire.warning("User id rejected for invalid characters", user_id=user_id[:64])
        return ValidationResult(
            is_valid=False,
            error_code="invalid_chars",
            error_message="User id may only contain letters, digits, '_', '.' and '-'",
        )

    return ValidationResult(is_valid=True, error_code=None, error_message=None)


def get_user_friendly_error(error_code: str | None) -> str:
    """Map a validation error code to the message shown to the user."""
    messages = {
        "empty": "请输入有效的豆瓣用户 ID",
        "too_long": "豆瓣用户 ID 太长了，请检查后再试",
        "invalid_chars": "豆瓣用户 ID 只能包含字母、数字、下划线、点和连字符",
    }
    return messages.get(error_code or "", "请输入有效的豆瓣用户 ID")
