"""Event dispatch: turns parsed IRC events into state mutations, display lines
and follow-up commands for one network.

Events are handled strictly in arrival order. Every event is first offered to
the hook chain; a hook returning HANDLED stops built-in processing.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from datetime import datetime
from typing import Any

from loguru import logger

from ircstate import events as ev
from ircstate.config.schema import SettingsProvider
from ircstate.core.constants import (
    CHANSERV_NICK,
    CONTROL_COMMAND,
    DEFAULT_NETWORK_NAME,
    HIDDEN_CHANNEL,
    RAW_BUFFER,
    SERVER_BUFFER,
)
from ircstate.core.errors import NickRetryExhausted
from ircstate.formatting.text import format_user, format_user_full, t, with_reason
from ircstate.gateway.bus import ChannelListPublished
from ircstate.gateway.hooks import HookChain, HookResult
from ircstate.state.models import Buffer, Message, Network
from ircstate.state.store import StateStore
from ircstate.sync.clock import Clock, utcnow
from ircstate.sync.history import HistoryCoordinator
from ircstate.sync.lifecycle import ConnectionLifecycle
from ircstate.sync.modes import ModeTracker
from ircstate.sync.transport import Transport


class SyncEngine:
    """Per-network event router."""

    def __init__(
        self,
        store: StateStore,
        network: Network,
        transport: Transport,
        settings: SettingsProvider,
        *,
        hooks: HookChain | None = None,
        clock: Clock = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.network = network
        self.transport = transport
        self.settings = settings
        self.hooks = hooks or HookChain()
        self._clock = clock
        self.modes = ModeTracker(settings.mode_request_ttl)
        self.history = HistoryCoordinator(network, transport, settings.history_count, clock)
        self.lifecycle = ConnectionLifecycle(
            store, network, transport, settings, hooks=self.hooks, clock=clock, rng=rng
        )

    # -- entry point ---------------------------------------------------------

    def handle(self, evt: ev.IrcEvent) -> HookResult:
        """Process one event. Returns HANDLED if a hook claimed it."""
        if self.hooks.run(evt, self.network) is HookResult.HANDLED:
            return HookResult.HANDLED
        if isinstance(evt, ev.UnknownCommand) and evt.command == CONTROL_COMMAND:
            return HookResult.UNHANDLED

        handler = _HANDLERS[type(evt)]
        logger.debug("Dispatch {} on {}", evt.kind, self.network.name)
        handler(self, evt)
        return HookResult.UNHANDLED

    # -- helpers -------------------------------------------------------------

    def _when(self, evt: Any) -> datetime:
        return getattr(evt, "time", None) or self._clock()

    def _add(
        self,
        buffer: Buffer,
        body: str,
        *,
        when: datetime | None = None,
        nick: str = "",
        type: str = "",
        type_extra: str | None = None,
        tags: dict[str, Any] | None = None,
    ) -> None:
        message = Message(when or self._clock(), nick, body, type, type_extra, dict(tags or {}))
        self.store.add_message(buffer, message)

    # -- lifecycle -----------------------------------------------------------

    def _on_connecting(self, evt: ev.Connecting) -> None:
        self.lifecycle.on_connecting()

    def _on_connected(self, evt: ev.Connected) -> None:
        self.lifecycle.on_connected()

    def _on_socket_connected(self, evt: ev.SocketConnected) -> None:
        self.lifecycle.on_socket_connected()

    def _on_socket_closed(self, evt: ev.SocketClosed) -> None:
        self.lifecycle.on_socket_closed(evt.reason)

    def _on_registered(self, evt: ev.Registered) -> None:
        self.lifecycle.on_registered(evt)
        self.history.reset()

    def _on_server_options(self, evt: ev.ServerOptions) -> None:
        network = self.network
        name = evt.network_name or self.transport.network_name
        if name and name != DEFAULT_NETWORK_NAME:
            network.name = name

        chantypes = evt.options.get("CHANTYPES")
        if chantypes:
            network.chantypes = chantypes
        casemapping = evt.options.get("CASEMAPPING")
        if casemapping and casemapping != network.casemapping:
            network.set_casemapping(casemapping)

        policy = self.history.on_server_options()
        if policy:
            logger.debug("History policy {} on {}", policy, network.name)

    def _on_nick_in_use(self, evt: ev.NickInUse) -> None:
        if not self.lifecycle.registered:
            try:
                self.lifecycle.retry_nick()
            except NickRetryExhausted as exc:
                self._fail_registration(exc)
            return

        logger.warning("Nick {} in use on {}", evt.nick, self.network.name)
        active = self.store.get_active_buffer()
        if active is not None:
            self._add(active, t("nick_in_use", nick=evt.nick), type="error")

    def _fail_registration(self, exc: NickRetryExhausted) -> None:
        network = self.network
        reason = str(exc)
        logger.error("Giving up on {}: {}", network.name, reason)
        network.last_error = reason
        for buffer in list(network.buffers.values()):
            self._add(buffer, reason, type="error")
        self.transport.quit(reason)

    # -- messages ------------------------------------------------------------

    def _on_message(self, evt: ev.Message) -> None:
        network = self.network
        is_pm = False
        name = SERVER_BUFFER if evt.from_server else evt.target

        if not evt.from_server and network.is_self(evt.target):
            is_pm = True
            name = evt.nick

        # "[#channel] text" from ChanServ belongs to that channel
        if is_pm and evt.nick.lower() == CHANSERV_NICK and evt.message.startswith("[") and "]" in evt.message:
            name = evt.message[1 : evt.message.index("]")]

        if not name:
            logger.debug("Dropped {} from {} on {}: no target", evt.type, evt.nick, network.name)
            return

        if evt.type == "notice" and self.store.find_buffer(network, name) is None:
            active = self.store.get_active_buffer()
            if self.settings.notice_active_buffer and active is not None and active.network_id == network.id:
                name = active.name
            else:
                name = SERVER_BUFFER

        buffer = self.store.find_buffer(network, name)
        if buffer is None:
            if is_pm and self.settings.block_pms:
                logger.debug("Dropped PM from {} on {}: new PMs blocked", evt.nick, network.name)
                return
            buffer = self.store.get_or_add_buffer(network, name)

        body = t("action", nick=evt.nick, text=evt.message) if evt.type == "action" else evt.message
        self._add(buffer, body, when=self._when(evt), nick=evt.nick, type=evt.type, tags=evt.tags)

    def _on_wallops(self, evt: ev.Wallops) -> None:
        buffer = self.network.server_buffer()
        self._add(buffer, t("wallops", text=evt.message), when=self._when(evt), nick=evt.nick, type="wallops")

    def _on_motd(self, evt: ev.Motd) -> None:
        self._add(self.network.server_buffer(), evt.motd, when=self._when(evt), type="motd")

    def _on_ctcp(self, evt: ev.CtcpRequest | ev.CtcpResponse) -> None:
        network = self.network
        buffer = self.store.find_buffer(network, evt.target) or network.server_buffer()
        key = "ctcp_request" if isinstance(evt, ev.CtcpRequest) else "ctcp_response"
        body = t(key, nick=evt.nick, type=evt.type, message=evt.message)
        self._add(buffer, body, when=self._when(evt), type="error")

        if isinstance(evt, ev.CtcpRequest) and evt.type.upper() == "VERSION":
            self.transport.ctcp_response(evt.nick, "VERSION", self.settings.ctcp_version)

    # -- membership ----------------------------------------------------------

    def _on_channel_redirect(self, evt: ev.ChannelRedirect) -> None:
        buffer = self.network.buffer_by_name(evt.source)
        if buffer is not None:
            buffer.flags["redirect_to"] = evt.to

    def _on_join(self, evt: ev.Join) -> None:
        network = self.network
        is_self = network.is_self(evt.nick)

        if is_self:
            for buffer in list(network.buffers.values()):
                redirect = buffer.flags.get("redirect_to")
                if redirect and network.buffers.same(redirect, evt.channel):
                    del buffer.flags["redirect_to"]
                    self.store.rename_buffer(network, buffer, evt.channel)

        buffer = self.store.get_or_add_buffer(network, evt.channel)
        self.store.add_user_to_buffer(
            network,
            buffer,
            evt.nick,
            username=evt.ident or None,
            host=evt.hostname or None,
            realname=evt.gecos or None,
            account=evt.account or "",
        )

        if is_self:
            buffer.enabled = True
            buffer.joined = True
            buffer.flags["channel_badkey"] = False
            self.transport.raw("MODE", evt.channel)
            self.transport.who(evt.channel)

        nick = format_user_full(evt.nick, evt.ident, evt.hostname)
        self._add(buffer, t("has_joined", nick=nick), when=self._when(evt), nick=evt.nick, type="traffic", type_extra="join")

    def _on_kick(self, evt: ev.Kick) -> None:
        network = self.network
        buffer = self.store.get_or_add_buffer(network, evt.channel)
        self.store.remove_user_from_buffer(network, buffer, evt.kicked)

        if network.is_self(evt.kicked):
            buffer.joined = False
            self.store.clear_users(network, buffer)
            body = t("kicked_you_from", nick=format_user(evt.nick), channel=evt.channel)
        else:
            self.store.prune_user(network, evt.kicked)
            body = t("was_kicked_from", nick=evt.kicked, channel=evt.channel, chanop=format_user(evt.nick))

        self._add(
            buffer,
            with_reason(body, evt.message),
            when=self._when(evt),
            nick=evt.nick,
            type="traffic",
            type_extra="kick",
        )

    def _on_part(self, evt: ev.Part) -> None:
        network = self.network
        buffer = self.store.find_buffer(network, evt.channel)
        if buffer is None:
            logger.debug("Part for unknown buffer {} on {}", evt.channel, network.name)
            return

        self.store.remove_user_from_buffer(network, buffer, evt.nick)
        if network.is_self(evt.nick):
            buffer.joined = False
            buffer.enabled = False
            self.store.clear_users(network, buffer)
        self.store.prune_user(network, evt.nick)

        body = with_reason(t("has_left", nick=format_user_full(evt.nick, evt.ident, evt.hostname)), evt.message)
        self._add(buffer, body, when=self._when(evt), nick=evt.nick, type="traffic", type_extra="part")

    def _on_quit(self, evt: ev.Quit) -> None:
        network = self.network
        is_self = network.is_self(evt.nick)
        body = with_reason(t("has_quit", nick=format_user_full(evt.nick, evt.ident, evt.hostname)), evt.message)
        when = self._when(evt)

        for buffer in self.store.get_buffers_with_user(network, evt.nick):
            if is_self:
                buffer.joined = False
                self.store.clear_users(network, buffer)
            self._add(buffer, body, when=when, nick=evt.nick, type="traffic", type_extra="quit")

        self.store.remove_user(network, evt.nick)

    def _on_nick(self, evt: ev.Nick) -> None:
        network = self.network
        if network.is_self(evt.nick):
            network.nick = evt.new_nick
        self.store.change_user_nick(network, evt.nick, evt.new_nick)

        body = t("now_known_as", nick=evt.nick, newnick=evt.new_nick)
        when = self._when(evt)
        for buffer in self.store.get_buffers_with_user(network, evt.new_nick):
            self._add(buffer, body, when=when, type="nick")

    def _on_invite(self, evt: ev.Invite) -> None:
        self._add(self.network.server_buffer(), t("invited_you", nick=evt.nick, channel=evt.channel), nick="*")

    def _on_userlist(self, evt: ev.UserList) -> None:
        buffer = self.store.get_or_add_buffer(self.network, evt.channel)
        entries = [
            ({"nick": u.nick, "username": u.ident or None, "host": u.hostname or None}, u.modes)
            for u in evt.users
        ]
        self.store.add_multiple_users_to_buffer(self.network, buffer, entries)

    # -- modes and topic -----------------------------------------------------

    def _on_mode(self, evt: ev.Mode) -> None:
        buffer = self.network.buffer_by_name(evt.target)
        if buffer is None:
            return
        when = self._when(evt)
        for line in self.modes.apply_mode(buffer, evt, self.transport.prefixes()):
            self._add(buffer, line.text, when=when, type="mode")

    def request_modes(self, channel: str) -> None:
        """Ask the server for a channel's modes and show the reply when it arrives."""
        buffer = self.store.get_or_add_buffer(self.network, channel)
        self.modes.request_modes(buffer)
        self.transport.raw("MODE", buffer.name)

    def _on_channel_info(self, evt: ev.ChannelInfo) -> None:
        buffer = self.network.buffer_by_name(evt.channel)
        if buffer is None:
            return
        when = self._when(evt)
        for line in self.modes.apply_channel_info(buffer, evt):
            self._add(buffer, line, when=when, nick="*")

    def _on_topic(self, evt: ev.Topic) -> None:
        buffer = self.store.get_or_add_buffer(self.network, evt.channel)
        buffer.topic = evt.topic or ""
        if evt.nick:
            body = t("changed_topic_to", nick=evt.nick, topic=evt.topic)
        else:
            body = evt.topic
        self._add(buffer, body, when=self._when(evt), type="topic")

    # -- user info -----------------------------------------------------------

    def _on_whois(self, evt: ev.Whois) -> None:
        user = self.store.add_user(
            self.network,
            evt.nick,
            host=evt.hostname or None,
            username=evt.ident or None,
            realname=evt.real_name or None,
            away=evt.away or "",
        )
        user.update(**evt.extra)

    def _on_wholist(self, evt: ev.WhoList) -> None:
        rows = [
            {
                "nick": u.nick,
                "host": u.hostname or None,
                "username": u.ident or None,
                "away": "Away" if u.away else "",
                "realname": u.real_name or None,
                "account": u.account or "",
            }
            for u in evt.users
        ]
        count = self.store.apply_users(self.network, rows)
        logger.debug("WHO {}: {} users merged on {}", evt.target, count, self.network.name)

    def _on_account(self, evt: ev.Account) -> None:
        self.store.add_user(self.network, evt.nick, account=evt.account or "")

    def _on_away(self, evt: ev.Away) -> None:
        self.store.add_user(self.network, evt.nick, away=evt.message or "")

    def _on_back(self, evt: ev.Back) -> None:
        self.store.add_user(self.network, evt.nick, away="")

    # -- channel list --------------------------------------------------------

    def _on_channel_list_start(self, evt: ev.ChannelListStart) -> None:
        self.network.channel_list_cache = []
        self.network.channel_list_state = "updating"

    def _on_channel_list(self, evt: ev.ChannelList) -> None:
        network = self.network
        network.channel_list_state = "updating"
        visible = [e for e in evt.entries if e.channel != HIDDEN_CHANNEL]
        network.channel_list_cache = (network.channel_list_cache or []) + visible

    def _on_channel_list_end(self, evt: ev.ChannelListEnd) -> None:
        network = self.network
        network.channel_list = network.channel_list_cache or []
        network.channel_list_state = "updated"
        network.channel_list_cache = None
        self.store.bus.publish("state", ChannelListPublished(network.id, len(network.channel_list)))

    # -- errors and the rest -------------------------------------------------

    def _on_irc_error(self, evt: ev.IrcError) -> None:
        network = self.network
        name = evt.channel or evt.nick
        buffer = self.store.get_or_add_buffer(network, name) if name else network.server_buffer()

        if evt.error == "bad_channel_key":
            buffer.flags["channel_badkey"] = True

        if evt.reason:
            network.last_error = evt.reason
            self._add(buffer, evt.reason, when=self._when(evt), type="error")
        logger.warning("IRC error {} on {} ({}): {}", evt.error, network.name, buffer.name, evt.reason)

        # Stop auto-rejoining a channel we failed to act on
        if buffer.is_channel() and not buffer.joined:
            buffer.enabled = False

    def _on_unknown_command(self, evt: ev.UnknownCommand) -> None:
        network = self.network
        params = evt.params

        if evt.command == "486":
            # Must be identified to message this user
            target = params[1] if len(params) > 1 else ""
            if target:
                buffer = self.store.get_or_add_buffer(network, target)
                self._add(buffer, params[2] if len(params) > 2 else "", nick="*", type="error")
            return

        buffer = network.server_buffer()
        prefix = "" if evt.command.isdigit() else f"{evt.command} "
        contains_nick = bool(params) and network.is_self(params[0])
        second = params[1] if len(params) > 1 else None

        if contains_nick and network.is_channel_name(second):
            channel_buffer = network.buffer_by_name(second)
            if channel_buffer is not None:
                buffer = channel_buffer
            rest = params[2:]
        elif contains_nick:
            rest = params[1:]
        else:
            rest = params
        self._add(buffer, prefix + ", ".join(rest))

    def _on_raw(self, evt: ev.RawLine) -> None:
        if not (self.network.config.show_raw or self.settings.show_raw):
            return
        buffer = self.store.get_or_add_buffer(self.network, RAW_BUFFER)
        self._add(buffer, ("[S] " if evt.from_server else "[C] ") + evt.line)


_HANDLERS: dict[type, Callable[[SyncEngine, Any], None]] = {
    ev.Connecting: SyncEngine._on_connecting,
    ev.Connected: SyncEngine._on_connected,
    ev.SocketConnected: SyncEngine._on_socket_connected,
    ev.SocketClosed: SyncEngine._on_socket_closed,
    ev.Registered: SyncEngine._on_registered,
    ev.ServerOptions: SyncEngine._on_server_options,
    ev.NickInUse: SyncEngine._on_nick_in_use,
    ev.Message: SyncEngine._on_message,
    ev.Wallops: SyncEngine._on_wallops,
    ev.Motd: SyncEngine._on_motd,
    ev.CtcpRequest: SyncEngine._on_ctcp,
    ev.CtcpResponse: SyncEngine._on_ctcp,
    ev.Join: SyncEngine._on_join,
    ev.Part: SyncEngine._on_part,
    ev.Kick: SyncEngine._on_kick,
    ev.Quit: SyncEngine._on_quit,
    ev.Nick: SyncEngine._on_nick,
    ev.Invite: SyncEngine._on_invite,
    ev.ChannelRedirect: SyncEngine._on_channel_redirect,
    ev.UserList: SyncEngine._on_userlist,
    ev.Mode: SyncEngine._on_mode,
    ev.ChannelInfo: SyncEngine._on_channel_info,
    ev.Topic: SyncEngine._on_topic,
    ev.Whois: SyncEngine._on_whois,
    ev.WhoList: SyncEngine._on_wholist,
    ev.Account: SyncEngine._on_account,
    ev.Away: SyncEngine._on_away,
    ev.Back: SyncEngine._on_back,
    ev.ChannelListStart: SyncEngine._on_channel_list_start,
    ev.ChannelList: SyncEngine._on_channel_list,
    ev.ChannelListEnd: SyncEngine._on_channel_list_end,
    ev.IrcError: SyncEngine._on_irc_error,
    ev.UnknownCommand: SyncEngine._on_unknown_command,
    ev.RawLine: SyncEngine._on_raw,
}

_missing = set(ev.ALL_EVENTS) - set(_HANDLERS)
if _missing:
    raise TypeError(f"no handler for events: {sorted(e.__name__ for e in _missing)}")
