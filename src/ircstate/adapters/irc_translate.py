"""Protocol line to typed event translation.

The translator is fed one parsed line at a time (command, params, source,
tags) and returns the events it produces, which may be none while a multi-line
reply (NAMES, WHO, WHOIS, MOTD, LIST) is still accumulating. Accumulations are
held in TTL caches so a reply the server never finishes is dropped.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from cachetools import TTLCache
from loguru import logger

from ircstate import events as ev
from ircstate.core.constants import DEFAULT_NETWORK_NAME
from ircstate.state.casemap import irc_lower

DEFAULT_PREFIX = "(ov)@+"
DEFAULT_CHANMODES = "beI,k,l,imnpst"

# Entries per ChannelList event while a LIST reply streams in
LIST_BATCH_SIZE = 50

# Numerics the translator consumes without producing an event
_SILENT = frozenset(
    {"002", "003", "004", "333", "PING", "PONG", "CAP", "AUTHENTICATE", "900", "903", "904", "905", "906", "908"}
)

# Numeric -> (error name, which param names the channel/nick)
_ERRORS: dict[str, tuple[str, str]] = {
    "401": ("no_such_nick", "nick"),
    "403": ("no_such_channel", "channel"),
    "404": ("cannot_send_to_channel", "channel"),
    "405": ("too_many_channels", "channel"),
    "441": ("user_not_in_channel", "nick"),
    "442": ("not_on_channel", "channel"),
    "443": ("user_on_channel", "nick"),
    "464": ("password_mismatch", ""),
    "465": ("banned_from_server", ""),
    "471": ("channel_is_full", "channel"),
    "473": ("invite_only_channel", "channel"),
    "474": ("banned_from_channel", "channel"),
    "475": ("bad_channel_key", "channel"),
    "477": ("need_registered_nick", "channel"),
    "482": ("chanop_privs_needed", "channel"),
}


def split_source(source: str | None) -> tuple[str, str, str]:
    """Split "nick!ident@host" into its parts."""
    if not source:
        return "", "", ""
    nick, _, rest = source.partition("!")
    ident, _, host = rest.partition("@")
    if not rest and "@" in nick:
        nick, _, host = nick.partition("@")
    return nick, ident, host


def parse_server_time(tags: dict[str, Any]) -> datetime | None:
    value = tags.get("time")
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Ignoring malformed server-time tag {!r}", value)
        return None


def parse_prefix(value: str) -> list[tuple[str, str]]:
    """"(ov)@+" -> [("@", "o"), ("+", "v")]."""
    if not value.startswith("(") or ")" not in value:
        return []
    modes, _, symbols = value[1:].partition(")")
    return list(zip(symbols, modes))


def unescape_isupport(value: str) -> str:
    return value.replace("\\x20", " ").replace("\\x5C", "\\").replace("\\x3D", "=")


class LineTranslator:
    """Stateful translator for one connection."""

    def __init__(self, accumulate_ttl: float = 60) -> None:
        self.isupport: dict[str, str | bool] = {}
        self.prefixes: list[tuple[str, str]] = parse_prefix(DEFAULT_PREFIX)
        self._names: TTLCache[str, list[ev.NamesUser]] = TTLCache(maxsize=512, ttl=accumulate_ttl)
        self._who: TTLCache[str, list[ev.WhoUser]] = TTLCache(maxsize=512, ttl=accumulate_ttl)
        self._whois: TTLCache[str, dict[str, Any]] = TTLCache(maxsize=128, ttl=accumulate_ttl)
        self._motd: TTLCache[str, list[str]] = TTLCache(maxsize=1, ttl=accumulate_ttl)
        self._list: TTLCache[str, list[ev.ChannelListEntry]] = TTLCache(maxsize=1, ttl=accumulate_ttl)

    def reset(self) -> None:
        """Forget everything learned from the previous connection."""
        self.isupport.clear()
        self.prefixes = parse_prefix(DEFAULT_PREFIX)
        for cache in (self._names, self._who, self._whois, self._motd, self._list):
            cache.clear()

    # -- server metadata -----------------------------------------------------

    @property
    def casemapping(self) -> str:
        value = self.isupport.get("CASEMAPPING")
        return value if isinstance(value, str) else "rfc1459"

    @property
    def chantypes(self) -> str:
        value = self.isupport.get("CHANTYPES")
        return value if isinstance(value, str) and value else "#&"

    @property
    def network_name(self) -> str:
        value = self.isupport.get("NETWORK")
        return value if isinstance(value, str) and value else DEFAULT_NETWORK_NAME

    def supports(self, feature: str) -> bool:
        return feature.upper() in self.isupport

    def is_channel(self, name: str) -> bool:
        return bool(name) and name[0] in self.chantypes

    def _fold(self, name: str) -> str:
        return irc_lower(name, self.casemapping)

    def _chanmodes(self) -> tuple[str, str, str, str]:
        value = self.isupport.get("CHANMODES")
        raw = value if isinstance(value, str) else DEFAULT_CHANMODES
        groups = (raw.split(",") + ["", "", "", ""])[:4]
        return groups[0], groups[1], groups[2], groups[3]

    def parse_modes(self, modestring: str, args: list[str], *, channel: bool = True) -> list[ev.ModeDelta]:
        """Pair each signed mode letter with its argument, if it takes one."""
        list_modes, always, set_only, _never = self._chanmodes()
        prefix_modes = "".join(mode for _symbol, mode in self.prefixes)
        pending = list(args)
        deltas: list[ev.ModeDelta] = []
        sign = "+"
        for char in modestring:
            if char in "+-":
                sign = char
                continue
            takes_param = channel and (
                char in prefix_modes
                or char in list_modes
                or char in always
                or (char in set_only and sign == "+")
            )
            param = pending.pop(0) if takes_param and pending else None
            deltas.append(ev.ModeDelta(sign + char, param))
        return deltas

    # -- entry point ---------------------------------------------------------

    def translate(
        self,
        command: str,
        params: list[str],
        source: str | None = None,
        tags: dict[str, Any] | None = None,
    ) -> list[ev.IrcEvent]:
        command = command.upper()
        tags = tags or {}
        if command in _SILENT:
            return []
        handler = getattr(self, f"_cmd_{command.lower()}", None)
        if handler is not None:
            return handler(params, source, tags)
        if command in _ERRORS:
            return self._error(command, params, tags)
        return [ev.UnknownCommand(command=command, params=list(params))]

    # -- registration --------------------------------------------------------

    def _cmd_001(self, params, source, tags):
        return [ev.Registered(nick=params[0] if params else "", time=parse_server_time(tags))]

    def _cmd_005(self, params, source, tags):
        for token in params[1:-1]:
            if token.startswith("-"):
                self.isupport.pop(token[1:].upper(), None)
                continue
            key, sep, value = token.partition("=")
            self.isupport[key.upper()] = unescape_isupport(value) if sep else True
        prefix = self.isupport.get("PREFIX")
        if isinstance(prefix, str):
            self.prefixes = parse_prefix(prefix)
        return [ev.ServerOptions(options=dict(self.isupport), network_name=self.network_name)]

    def _cmd_433(self, params, source, tags):
        return [ev.NickInUse(nick=params[1] if len(params) > 1 else "", reason=params[-1] if params else "")]

    def _cmd_470(self, params, source, tags):
        # ERR_LINKCHANNEL: <me> <requested> <forwarded> :reason
        if len(params) < 3:
            return []
        return [ev.ChannelRedirect(source=params[1], to=params[2])]

    def _cmd_error(self, params, source, tags):
        return [ev.IrcError(error="irc", reason=params[0] if params else "", time=parse_server_time(tags))]

    def _error(self, command, params, tags):
        name, target_kind = _ERRORS[command]
        target = params[1] if target_kind and len(params) > 2 else ""
        return [
            ev.IrcError(
                error=name,
                channel=target if target_kind == "channel" else "",
                nick=target if target_kind == "nick" else "",
                reason=params[-1] if len(params) > 1 else "",
                time=parse_server_time(tags),
            )
        ]

    # -- messages ------------------------------------------------------------

    def _message(self, kind: str, params, source, tags):
        nick, ident, host = split_source(source)
        target = params[0] if params else ""
        text = params[1] if len(params) > 1 else ""
        time = parse_server_time(tags)
        from_server = not ident and not host and ("." in nick or not nick)

        if len(text) > 1 and text.startswith("\x01"):
            body = text[1:].rstrip("\x01")
            ctcp_type, _, ctcp_text = body.partition(" ")
            ctcp_type = ctcp_type.upper()
            if ctcp_type == "ACTION":
                return [
                    ev.Message(
                        type="action",
                        nick=nick,
                        ident=ident,
                        hostname=host,
                        target=target,
                        message=ctcp_text,
                        time=time,
                        tags=dict(tags),
                    )
                ]
            ctcp_cls = ev.CtcpRequest if kind == "privmsg" else ev.CtcpResponse
            return [ctcp_cls(nick=nick, target=target, type=ctcp_type, message=ctcp_text, time=time)]

        return [
            ev.Message(
                type=kind,
                nick=nick,
                ident=ident,
                hostname=host,
                target=target,
                message=text,
                from_server=from_server,
                time=time,
                tags=dict(tags),
            )
        ]

    def _cmd_privmsg(self, params, source, tags):
        return self._message("privmsg", params, source, tags)

    def _cmd_notice(self, params, source, tags):
        return self._message("notice", params, source, tags)

    def _cmd_wallops(self, params, source, tags):
        nick, _ident, _host = split_source(source)
        return [ev.Wallops(nick=nick, message=params[0] if params else "", time=parse_server_time(tags))]

    # -- membership ----------------------------------------------------------

    def _cmd_join(self, params, source, tags):
        nick, ident, host = split_source(source)
        # extended-join: <channel> <account|*> :<realname>
        account = params[1] if len(params) > 1 and params[1] != "*" else ""
        return [
            ev.Join(
                nick=nick,
                channel=params[0] if params else "",
                ident=ident,
                hostname=host,
                gecos=params[2] if len(params) > 2 else "",
                account=account,
                time=parse_server_time(tags),
            )
        ]

    def _cmd_part(self, params, source, tags):
        nick, ident, host = split_source(source)
        return [
            ev.Part(
                nick=nick,
                channel=params[0] if params else "",
                ident=ident,
                hostname=host,
                message=params[1] if len(params) > 1 else "",
                time=parse_server_time(tags),
            )
        ]

    def _cmd_kick(self, params, source, tags):
        nick, ident, host = split_source(source)
        return [
            ev.Kick(
                nick=nick,
                channel=params[0] if params else "",
                kicked=params[1] if len(params) > 1 else "",
                ident=ident,
                hostname=host,
                message=params[2] if len(params) > 2 else "",
                time=parse_server_time(tags),
            )
        ]

    def _cmd_quit(self, params, source, tags):
        nick, ident, host = split_source(source)
        return [
            ev.Quit(
                nick=nick,
                ident=ident,
                hostname=host,
                message=params[0] if params else "",
                time=parse_server_time(tags),
            )
        ]

    def _cmd_nick(self, params, source, tags):
        nick, _ident, _host = split_source(source)
        return [ev.Nick(nick=nick, new_nick=params[0] if params else "", time=parse_server_time(tags))]

    def _cmd_invite(self, params, source, tags):
        nick, _ident, _host = split_source(source)
        return [ev.Invite(nick=nick, channel=params[1] if len(params) > 1 else "")]

    def _cmd_account(self, params, source, tags):
        nick, _ident, _host = split_source(source)
        account = params[0] if params and params[0] != "*" else ""
        return [ev.Account(nick=nick, account=account)]

    def _cmd_away(self, params, source, tags):
        nick, _ident, _host = split_source(source)
        if params and params[0]:
            return [ev.Away(nick=nick, message=params[0])]
        return [ev.Back(nick=nick)]

    # -- NAMES ---------------------------------------------------------------

    def _cmd_353(self, params, source, tags):
        # <me> <symbol> <channel> :<names>
        if len(params) < 4:
            return []
        channel = params[2]
        symbols = {symbol: mode for symbol, mode in self.prefixes}
        entries = self._names.setdefault(self._fold(channel), [])
        for item in params[3].split():
            modes = []
            while item and item[0] in symbols:
                modes.append(symbols[item[0]])
                item = item[1:]
            nick, ident, host = split_source(item)
            if nick:
                entries.append(ev.NamesUser(nick=nick, ident=ident, hostname=host, modes=tuple(modes)))
        return []

    def _cmd_366(self, params, source, tags):
        channel = params[1] if len(params) > 1 else ""
        users = self._names.pop(self._fold(channel), [])
        return [ev.UserList(channel=channel, users=users)]

    # -- WHO -----------------------------------------------------------------

    def _cmd_352(self, params, source, tags):
        # <me> <channel> <user> <host> <server> <nick> <flags> :<hops> <realname>
        if len(params) < 8:
            return []
        _hops, _, realname = params[7].partition(" ")
        channel = params[1]
        row = ev.WhoUser(
            nick=params[5],
            ident=params[2],
            hostname=params[3],
            real_name=realname,
            away="G" in params[6],
            channel=channel if channel != "*" else "",
        )
        # Rows do not name the WHO target, so they share one slot until 315
        self._who.setdefault("who", []).append(row)
        return []

    def _cmd_315(self, params, source, tags):
        target = params[1] if len(params) > 1 else ""
        users = self._who.pop("who", [])
        return [ev.WhoList(target=target, users=users)]

    # -- WHOIS ---------------------------------------------------------------

    def _whois_entry(self, nick: str) -> dict[str, Any]:
        return self._whois.setdefault(self._fold(nick), {"nick": nick, "extra": {}})

    def _cmd_311(self, params, source, tags):
        if len(params) < 6:
            return []
        entry = self._whois_entry(params[1])
        entry.update(ident=params[2], hostname=params[3], real_name=params[5])
        return []

    def _cmd_312(self, params, source, tags):
        if len(params) >= 4:
            extra = self._whois_entry(params[1])["extra"]
            extra.update(server=params[2], server_info=params[3])
        return []

    def _cmd_313(self, params, source, tags):
        if len(params) >= 3:
            self._whois_entry(params[1])["extra"]["operator"] = params[2]
        return []

    def _cmd_317(self, params, source, tags):
        if len(params) >= 3:
            extra = self._whois_entry(params[1])["extra"]
            extra["idle"] = int(params[2]) if params[2].isdigit() else params[2]
            if len(params) >= 4 and params[3].isdigit():
                extra["logon"] = int(params[3])
        return []

    def _cmd_319(self, params, source, tags):
        if len(params) >= 3:
            extra = self._whois_entry(params[1])["extra"]
            extra["channels"] = " ".join(filter(None, [extra.get("channels", ""), params[2]]))
        return []

    def _cmd_330(self, params, source, tags):
        if len(params) >= 3:
            self._whois_entry(params[1])["extra"]["account"] = params[2]
        return []

    def _cmd_671(self, params, source, tags):
        if len(params) >= 2:
            self._whois_entry(params[1])["extra"]["secure"] = True
        return []

    def _cmd_301(self, params, source, tags):
        # RPL_AWAY: part of a WHOIS, or the reply to messaging an away user
        if len(params) < 3:
            return []
        nick, message = params[1], params[2]
        if self._fold(nick) in self._whois:
            self._whois[self._fold(nick)]["away"] = message
            return []
        return [ev.Away(nick=nick, message=message)]

    def _cmd_318(self, params, source, tags):
        nick = params[1] if len(params) > 1 else ""
        entry = self._whois.pop(self._fold(nick), None)
        if entry is None:
            return []
        return [
            ev.Whois(
                nick=entry["nick"],
                ident=entry.get("ident", ""),
                hostname=entry.get("hostname", ""),
                real_name=entry.get("real_name", ""),
                away=entry.get("away", ""),
                extra=entry["extra"],
            )
        ]

    # -- MOTD ----------------------------------------------------------------

    def _cmd_375(self, params, source, tags):
        self._motd["motd"] = []
        return []

    def _cmd_372(self, params, source, tags):
        line = params[-1] if params else ""
        self._motd.setdefault("motd", []).append(line[2:] if line.startswith("- ") else line)
        return []

    def _cmd_376(self, params, source, tags):
        lines = self._motd.pop("motd", [])
        return [ev.Motd(motd="\n".join(lines), time=parse_server_time(tags))]

    # -- LIST ----------------------------------------------------------------

    def _cmd_321(self, params, source, tags):
        self._list["list"] = []
        return [ev.ChannelListStart()]

    def _cmd_322(self, params, source, tags):
        # <me> <channel> <users> :<topic>
        if len(params) < 3:
            return []
        entry = ev.ChannelListEntry(
            channel=params[1],
            num_users=int(params[2]) if params[2].isdigit() else 0,
            topic=params[3] if len(params) > 3 else "",
        )
        pending = self._list.setdefault("list", [])
        pending.append(entry)
        if len(pending) >= LIST_BATCH_SIZE:
            self._list["list"] = []
            return [ev.ChannelList(entries=pending)]
        return []

    def _cmd_323(self, params, source, tags):
        pending = self._list.pop("list", [])
        out: list[ev.IrcEvent] = []
        if pending:
            out.append(ev.ChannelList(entries=pending))
        out.append(ev.ChannelListEnd())
        return out

    # -- modes and topic -----------------------------------------------------

    def _cmd_mode(self, params, source, tags):
        if len(params) < 2:
            return []
        nick, ident, host = split_source(source)
        target = params[0]
        deltas = self.parse_modes(params[1], list(params[2:]), channel=self.is_channel(target))
        return [
            ev.Mode(
                target=target,
                nick=nick,
                ident=ident,
                hostname=host,
                modes=deltas,
                time=parse_server_time(tags),
            )
        ]

    def _cmd_324(self, params, source, tags):
        # <me> <channel> <modes> [args...]
        if len(params) < 3:
            return []
        return [
            ev.ChannelInfo(
                channel=params[1],
                modes=self.parse_modes(params[2], list(params[3:])),
                time=parse_server_time(tags),
            )
        ]

    def _cmd_329(self, params, source, tags):
        if len(params) < 3 or not params[2].isdigit():
            return []
        return [ev.ChannelInfo(channel=params[1], created_at=int(params[2]), time=parse_server_time(tags))]

    def _cmd_topic(self, params, source, tags):
        nick, _ident, _host = split_source(source)
        return [
            ev.Topic(
                channel=params[0] if params else "",
                topic=params[1] if len(params) > 1 else "",
                nick=nick,
                time=parse_server_time(tags),
            )
        ]

    def _cmd_332(self, params, source, tags):
        if len(params) < 3:
            return []
        return [ev.Topic(channel=params[1], topic=params[2], time=parse_server_time(tags))]

    def _cmd_331(self, params, source, tags):
        if len(params) < 2:
            return []
        return [ev.Topic(channel=params[1], topic="", time=parse_server_time(tags))]
