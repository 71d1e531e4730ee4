"""State entities: Network, Buffer, User, membership and message records."""

from __future__ import annotations

import itertools
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ircstate.config.schema import NetworkConfig
from ircstate.core.constants import (
    DEFAULT_CHANTYPES,
    RAW_BUFFER,
    SERVER_BUFFER,
    BufferKind,
    ChannelListState,
    NetworkState,
)
from ircstate.events import ChannelListEntry
from ircstate.state.casemap import IrcDict

_buffer_ids = itertools.count(1)

# Local connection lines; not a position in the server's history
_LOCAL_TRAFFIC = frozenset({"connected", "disconnected"})


@dataclass(frozen=True)
class Message:
    """One display line. Never mutated once appended to a buffer."""

    time: datetime
    nick: str
    message: str
    type: str = ""
    type_extra: str | None = None
    tags: dict[str, Any] = field(default_factory=dict)

    @property
    def is_local_traffic(self) -> bool:
        return self.type == "traffic" and self.type_extra in _LOCAL_TRAFFIC


@dataclass
class Membership:
    """A user's presence in one buffer, with the privilege modes held there."""

    buffer: Buffer
    user: User
    modes: list[str] = field(default_factory=list)


class User:
    """A known peer on the network."""

    def __init__(self, nick: str, **attrs: Any) -> None:
        self.nick = nick
        self.username = ""
        self.host = ""
        self.realname = ""
        self.account = ""
        self.away = ""
        self.extra: dict[str, Any] = {}
        self.buffers: dict[int, Membership] = {}
        self.update(**attrs)

    _FIELDS = ("username", "host", "realname", "account", "away")

    def update(self, **attrs: Any) -> None:
        """Merge attributes; None means "unknown" and leaves the value alone."""
        for key, value in attrs.items():
            if value is None or key == "nick":
                continue
            if key in self._FIELDS:
                setattr(self, key, value)
            else:
                self.extra[key] = value

    def __repr__(self) -> str:
        return f"<User nick: {self.nick}, buffers: {len(self.buffers)}>"


class Buffer:
    """Server console, channel, or query."""

    def __init__(
        self,
        name: str,
        kind: BufferKind,
        network_id: int = 0,
        casemapping: str = "rfc1459",
        max_backlog: int = 1000,
    ) -> None:
        self.id = next(_buffer_ids)
        self.network_id = network_id
        self.name = name
        self.kind: BufferKind = kind
        self.joined = False
        self.enabled = kind == "channel"
        self.key = ""
        self.topic = ""
        self.created_at: datetime | None = None
        self.modes: dict[str, str | bool] = {}
        self.flags: dict[str, Any] = {}
        self.messages: deque[Message] = deque(maxlen=max_backlog)
        self.users: IrcDict[Membership] = IrcDict(casemapping)

    def is_channel(self) -> bool:
        return self.kind == "channel"

    def is_query(self) -> bool:
        return self.kind == "query"

    def is_server(self) -> bool:
        return self.kind == "server"

    def has_user(self, nick: str) -> bool:
        return nick in self.users

    def last_history_time(self) -> datetime | None:
        """Time of the newest line that came from the server, if any."""
        for msg in reversed(self.messages):
            if not msg.is_local_traffic:
                return msg.time
        return None

    def __repr__(self) -> str:
        return f"<Buffer id: {self.id}, name: {self.name}, kind: {self.kind}>"


class Network:
    """One configured connection and everything known about it."""

    def __init__(self, id: int, config: NetworkConfig, casemapping: str = "rfc1459") -> None:
        self.id = id
        self.config = config
        self.name = config.name
        self.nick = config.nick
        self.state: NetworkState = "disconnected"
        self.state_error = ""
        self.last_error = ""
        self.captcha_response = ""
        self.chantypes = DEFAULT_CHANTYPES
        self.buffers: IrcDict[Buffer] = IrcDict(casemapping)
        self.users: IrcDict[User] = IrcDict(casemapping)
        self.channel_list: list[ChannelListEntry] = []
        self.channel_list_state: ChannelListState = "idle"
        self.channel_list_cache: list[ChannelListEntry] | None = None
        # Registrations completed since this Network was created
        self.connect_count = 0

    @property
    def casemapping(self) -> str:
        return self.buffers.casemapping

    def set_casemapping(self, casemapping: str) -> None:
        self.buffers.set_casemapping(casemapping)
        self.users.set_casemapping(casemapping)
        for buffer in self.buffers.values():
            buffer.users.set_casemapping(casemapping)

    def is_channel_name(self, name: str | None) -> bool:
        return bool(name) and name[0] in self.chantypes

    def same_nick(self, a: str, b: str) -> bool:
        return self.users.same(a, b)

    def is_self(self, nick: str) -> bool:
        return bool(nick) and self.same_nick(nick, self.nick)

    def buffer_by_name(self, name: str) -> Buffer | None:
        return self.buffers.get(name)

    def server_buffer(self) -> Buffer:
        return self.buffers[SERVER_BUFFER]

    def infer_kind(self, name: str) -> BufferKind:
        if name == SERVER_BUFFER:
            return "server"
        if name == RAW_BUFFER:
            return "special"
        if self.is_channel_name(name):
            return "channel"
        return "query"

    def __repr__(self) -> str:
        return f"<Network id: {self.id}, name: {self.name}, state: {self.state}>"
