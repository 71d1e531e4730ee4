"""Display text for message records."""

from ircstate.formatting.text import format_user, format_user_full, t, with_reason

__all__ = ["format_user", "format_user_full", "t", "with_reason"]
