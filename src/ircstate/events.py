"""Parsed IRC event types: the closed set of events the sync engine consumes.

Each event is a plain dataclass; `kind` is the protocol-level event name the
transport reported it under. The engine keeps one handler per class and checks
at construction that every class in ALL_EVENTS has one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Literal, Union


@dataclass(frozen=True)
class ModeDelta:
    """One signed mode change, e.g. ModeDelta("+o", "alice")."""

    mode: str
    param: str | None = None

    @property
    def adding(self) -> bool:
        return self.mode.startswith("+")

    @property
    def char(self) -> str:
        return self.mode[1:]


@dataclass(frozen=True)
class ChannelListEntry:
    channel: str
    num_users: int = 0
    topic: str = ""


@dataclass(frozen=True)
class WhoUser:
    """One row of a WHO reply."""

    nick: str
    ident: str = ""
    hostname: str = ""
    real_name: str = ""
    account: str = ""
    away: bool = False
    channel: str = ""


@dataclass(frozen=True)
class NamesUser:
    """One entry of a NAMES reply, with its prefix modes already resolved."""

    nick: str
    ident: str = ""
    hostname: str = ""
    modes: tuple[str, ...] = ()


# -- lifecycle ---------------------------------------------------------------


@dataclass
class Connecting:
    kind: ClassVar[str] = "connecting"


@dataclass
class Connected:
    """Transport handshake finished (before IRC registration)."""

    kind: ClassVar[str] = "connected"


@dataclass
class SocketConnected:
    """Raw socket is open; nothing has been sent yet."""

    kind: ClassVar[str] = "socket connected"


@dataclass
class SocketClosed:
    kind: ClassVar[str] = "socket close"
    reason: str = ""


@dataclass
class Registered:
    kind: ClassVar[str] = "registered"
    nick: str = ""
    time: datetime | None = None


@dataclass
class ServerOptions:
    """ISUPPORT (005) information became known or changed."""

    kind: ClassVar[str] = "server options"
    options: dict[str, Any] = field(default_factory=dict)
    network_name: str = ""


@dataclass
class NickInUse:
    kind: ClassVar[str] = "nick in use"
    nick: str = ""
    reason: str = ""


# -- messages ----------------------------------------------------------------


@dataclass
class Message:
    kind: ClassVar[str] = "message"
    type: Literal["privmsg", "notice", "action"] = "privmsg"
    nick: str = ""
    ident: str = ""
    hostname: str = ""
    target: str = ""
    message: str = ""
    from_server: bool = False
    time: datetime | None = None
    tags: dict[str, Any] = field(default_factory=dict)


@dataclass
class Wallops:
    kind: ClassVar[str] = "wallops"
    nick: str = ""
    message: str = ""
    time: datetime | None = None


@dataclass
class Motd:
    kind: ClassVar[str] = "motd"
    motd: str = ""
    time: datetime | None = None


@dataclass
class CtcpRequest:
    kind: ClassVar[str] = "ctcp request"
    nick: str = ""
    target: str = ""
    type: str = ""
    message: str = ""
    time: datetime | None = None


@dataclass
class CtcpResponse:
    kind: ClassVar[str] = "ctcp response"
    nick: str = ""
    target: str = ""
    type: str = ""
    message: str = ""
    time: datetime | None = None


# -- channel membership ------------------------------------------------------


@dataclass
class Join:
    kind: ClassVar[str] = "join"
    nick: str = ""
    channel: str = ""
    ident: str = ""
    hostname: str = ""
    gecos: str = ""
    account: str = ""
    time: datetime | None = None


@dataclass
class Part:
    kind: ClassVar[str] = "part"
    nick: str = ""
    channel: str = ""
    ident: str = ""
    hostname: str = ""
    message: str = ""
    time: datetime | None = None


@dataclass
class Kick:
    kind: ClassVar[str] = "kick"
    nick: str = ""
    channel: str = ""
    kicked: str = ""
    ident: str = ""
    hostname: str = ""
    message: str = ""
    time: datetime | None = None


@dataclass
class Quit:
    kind: ClassVar[str] = "quit"
    nick: str = ""
    ident: str = ""
    hostname: str = ""
    message: str = ""
    time: datetime | None = None


@dataclass
class Nick:
    kind: ClassVar[str] = "nick"
    nick: str = ""
    new_nick: str = ""
    time: datetime | None = None


@dataclass
class Invite:
    kind: ClassVar[str] = "invite"
    nick: str = ""
    channel: str = ""


@dataclass
class ChannelRedirect:
    """Server forwarded a join for `source` to channel `to`."""

    kind: ClassVar[str] = "channel_redirect"
    source: str = ""
    to: str = ""


@dataclass
class UserList:
    """Full NAMES membership of a channel."""

    kind: ClassVar[str] = "userlist"
    channel: str = ""
    users: list[NamesUser] = field(default_factory=list)


# -- modes and topic ---------------------------------------------------------


@dataclass
class Mode:
    kind: ClassVar[str] = "mode"
    target: str = ""
    nick: str = ""
    ident: str = ""
    hostname: str = ""
    modes: list[ModeDelta] = field(default_factory=list)
    time: datetime | None = None


@dataclass
class ChannelInfo:
    """Channel mode dump (324) and/or creation time (329)."""

    kind: ClassVar[str] = "channel info"
    channel: str = ""
    modes: list[ModeDelta] | None = None
    created_at: int | None = None
    time: datetime | None = None


@dataclass
class Topic:
    kind: ClassVar[str] = "topic"
    channel: str = ""
    topic: str = ""
    nick: str = ""
    time: datetime | None = None


# -- user info ---------------------------------------------------------------


@dataclass
class Whois:
    kind: ClassVar[str] = "whois"
    nick: str = ""
    ident: str = ""
    hostname: str = ""
    real_name: str = ""
    away: str = ""
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class WhoList:
    kind: ClassVar[str] = "wholist"
    target: str = ""
    users: list[WhoUser] = field(default_factory=list)


@dataclass
class Account:
    kind: ClassVar[str] = "account"
    nick: str = ""
    account: str = ""


@dataclass
class Away:
    kind: ClassVar[str] = "away"
    nick: str = ""
    message: str = ""


@dataclass
class Back:
    kind: ClassVar[str] = "back"
    nick: str = ""


# -- channel list ------------------------------------------------------------


@dataclass
class ChannelListStart:
    kind: ClassVar[str] = "channel list start"


@dataclass
class ChannelList:
    kind: ClassVar[str] = "channel list"
    entries: list[ChannelListEntry] = field(default_factory=list)


@dataclass
class ChannelListEnd:
    kind: ClassVar[str] = "channel list end"


# -- errors and everything else ---------------------------------------------


@dataclass
class IrcError:
    kind: ClassVar[str] = "irc error"
    error: str = ""
    channel: str = ""
    nick: str = ""
    reason: str = ""
    time: datetime | None = None


@dataclass
class UnknownCommand:
    kind: ClassVar[str] = "unknown command"
    command: str = ""
    params: list[str] = field(default_factory=list)


@dataclass
class RawLine:
    """One raw protocol line, for the diagnostic buffer."""

    kind: ClassVar[str] = "raw"
    line: str = ""
    from_server: bool = True


IrcEvent = Union[
    Connecting,
    Connected,
    SocketConnected,
    SocketClosed,
    Registered,
    ServerOptions,
    NickInUse,
    Message,
    Wallops,
    Motd,
    CtcpRequest,
    CtcpResponse,
    Join,
    Part,
    Kick,
    Quit,
    Nick,
    Invite,
    ChannelRedirect,
    UserList,
    Mode,
    ChannelInfo,
    Topic,
    Whois,
    WhoList,
    Account,
    Away,
    Back,
    ChannelListStart,
    ChannelList,
    ChannelListEnd,
    IrcError,
    UnknownCommand,
    RawLine,
]

ALL_EVENTS: tuple[type, ...] = IrcEvent.__args__  # type: ignore[attr-defined]


@dataclass
class AutoCommand:
    """A configured auto-command line offered to hooks before the built-in fallback."""

    kind: ClassVar[str] = "auto command"
    line: str = ""
