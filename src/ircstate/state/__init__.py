"""State store and entities."""

from ircstate.state.casemap import IrcDict, IrcKey, irc_lower
from ircstate.state.models import Buffer, Membership, Message, Network, User
from ircstate.state.store import StateStore

__all__ = [
    "Buffer",
    "IrcDict",
    "IrcKey",
    "Membership",
    "Message",
    "Network",
    "StateStore",
    "User",
    "irc_lower",
]
