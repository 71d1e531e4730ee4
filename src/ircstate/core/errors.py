"""Domain exceptions."""

from __future__ import annotations


class IrcStateError(Exception):
    """Base for ircstate domain errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, object] | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.original_error = original_error


class ConfigurationError(IrcStateError):
    """Config validation or load failure."""


class NotFound(IrcStateError):
    """A network or buffer lookup that does not create found nothing."""


class NickRetryExhausted(IrcStateError):
    """Nick collisions during registration exceeded the retry cap."""
