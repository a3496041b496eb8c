from __future__ import annotations

from enum import Enum
from typing import Any

from titanbot.config.settings import COLORS


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    PERMISSION = "permission"
    CONFIGURATION = "configuration"
    DATABASE = "database"
    RATE_LIMIT = "rate_limit"
    UNHANDLED = "unhandled"


class BotError(Exception):
    """Base for errors a handler raises instead of writing its own error reply.

    ``message`` is for logs, ``user_message`` is what the invoking user sees.
    """

    kind = ErrorKind.UNHANDLED
    default_user_message = "Something went wrong. Please try again in a moment."

    def __init__(
        self,
        message: str,
        *,
        user_message: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.user_message = user_message or self.default_user_message
        self.context = dict(context or {})


class ValidationError(BotError):
    kind = ErrorKind.VALIDATION
    default_user_message = "Please check your input and try again."


class PermissionDeniedError(ValidationError):
    kind = ErrorKind.PERMISSION
    default_user_message = "You don't have permission to do that."


class ConfigurationError(BotError):
    kind = ErrorKind.CONFIGURATION
    default_user_message = "This feature is not available here."


class DatabaseError(BotError):
    kind = ErrorKind.DATABASE
    default_user_message = "I'm having trouble with my database. Please try again later."


class RateLimitError(BotError):
    kind = ErrorKind.RATE_LIMIT
    default_user_message = "You're doing that too much. Please wait a moment."

    def __init__(self, message: str, *, remaining_ms: int, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.remaining_ms = max(0, int(remaining_ms))
        self.context.setdefault("remaining_ms", self.remaining_ms)


_TITLES = {
    ErrorKind.VALIDATION: "❌ Invalid Input",
    ErrorKind.PERMISSION: "🚫 Permission Denied",
    ErrorKind.CONFIGURATION: "⚙️ Not Available",
    ErrorKind.DATABASE: "🗄️ Database Error",
    ErrorKind.RATE_LIMIT: "⏱️ Slow Down",
    ErrorKind.UNHANDLED: "❓ Unexpected Error",
}


def error_kind(exc: BaseException) -> ErrorKind:
    if isinstance(exc, BotError):
        return exc.kind
    return ErrorKind.UNHANDLED


def describe_error(exc: BaseException) -> tuple[str, str, int]:
    """Return ``(title, user message, colour)`` for an error reply."""
    kind = error_kind(exc)
    if isinstance(exc, BotError):
        message = exc.user_message
    else:
        message = BotError.default_user_message
    # Cooldowns are an expected outcome, shown as information.
    colour = COLORS["info"] if kind is ErrorKind.RATE_LIMIT else COLORS["error"]
    return _TITLES[kind], message, colour
