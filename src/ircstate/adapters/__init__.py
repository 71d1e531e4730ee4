"""Transport adapters."""

from ircstate.adapters.base import AdapterBase
from ircstate.adapters.irc import IRCAdapter, IRCClient, IRCTransport
from ircstate.adapters.irc_throttle import TokenBucket
from ircstate.adapters.irc_translate import LineTranslator

__all__ = ["AdapterBase", "IRCAdapter", "IRCClient", "IRCTransport", "LineTranslator", "TokenBucket"]
