"""Core types shared across the package: errors and constants."""

from ircstate.core.errors import (
    ConfigurationError,
    IrcStateError,
    NickRetryExhausted,
    NotFound,
)

__all__ = ["ConfigurationError", "IrcStateError", "NickRetryExhausted", "NotFound"]
