"""Connection lifecycle: state transitions, registration, nick collisions and
credential selection for one network."""

from __future__ import annotations

import random
from dataclasses import dataclass

from loguru import logger

from ircstate.config.schema import SettingsProvider
from ircstate.core.constants import BNC_CONTROL_AUTH_NAME, BNC_CONTROL_NETWORK
from ircstate.core.errors import NickRetryExhausted
from ircstate.events import AutoCommand, Registered
from ircstate.formatting.text import t
from ircstate.gateway.hooks import HookChain, HookResult
from ircstate.state.models import Message, Network
from ircstate.state.store import StateStore
from ircstate.sync.clock import Clock, utcnow
from ircstate.sync.transport import Transport

DEFAULT_GECOS = "ircstate"

# Suffixes tried after a nick collision during registration
NICK_SUFFIX_RANGE = (1, 100)


@dataclass(frozen=True)
class ConnectionParams:
    """Everything the transport needs for one connect call."""

    host: str
    port: int
    tls: bool
    password: str
    nick: str
    username: str
    gecos: str
    encoding: str


class ConnectionLifecycle:
    """Tracks connecting/connected/disconnected plus the orthogonal
    registered flag, and runs registration-time actions."""

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
        self._store = store
        self._network = network
        self._transport = transport
        self._settings = settings
        self._hooks = hooks or HookChain()
        self._clock = clock
        self._rng = rng or random.Random()
        self.registered = False
        self.nick_attempts = 0
        self._nick_suffixes: list[int] = []

    # -- credentials ---------------------------------------------------------

    def connection_params(self) -> ConnectionParams:
        """Build connect parameters from the current settings. Never cached:
        bouncer mode may have been toggled since the last connection."""
        network = self._network
        conf = network.config
        bnc = self._settings.bnc
        if bnc.active:
            if network.name == BNC_CONTROL_NETWORK:
                password = f"{bnc.username}/{BNC_CONTROL_AUTH_NAME}:{bnc.password}"
            else:
                password = f"{bnc.username}/{conf.bncname}:{bnc.password}"
            return ConnectionParams(
                host=bnc.server,
                port=bnc.port,
                tls=bnc.tls,
                password=password,
                nick=network.nick,
                username=bnc.username,
                gecos=conf.gecos or DEFAULT_GECOS,
                encoding=conf.encoding,
            )
        return ConnectionParams(
            host=conf.server,
            port=conf.port,
            tls=conf.tls,
            password=conf.password,
            nick=network.nick,
            username=conf.username or network.nick,
            gecos=conf.gecos or DEFAULT_GECOS,
            encoding=conf.encoding,
        )

    # -- transitions ---------------------------------------------------------

    def _broadcast(self, body: str, type_: str, type_extra: str | None = None) -> None:
        now = self._clock()
        for buffer in list(self._network.buffers.values()):
            self._store.add_message(buffer, Message(now, "", body, type_, type_extra))

    def on_connecting(self) -> None:
        self.registered = False
        self.nick_attempts = 0
        self._nick_suffixes = []
        self._network.last_error = ""
        self._store.set_network_state(self._network, "connecting")
        logger.info("Network {} connecting", self._network.name)

    def on_connected(self) -> None:
        self._store.set_network_state(self._network, "connected")
        self._broadcast(t("connected"), "traffic", "connected")
        logger.info("Network {} connected", self._network.name)

    def on_socket_connected(self) -> None:
        if self._network.captcha_response:
            self._transport.raw("CAPTCHA", self._network.captcha_response)

    def on_socket_closed(self, reason: str) -> None:
        """Any prior state ends here; nothing pending survives."""
        network = self._network
        self.registered = False
        network.last_error = reason
        self._store.set_network_state(network, "disconnected", reason)
        now = self._clock()
        for buffer in list(network.buffers.values()):
            buffer.joined = False
            self._store.clear_users(network, buffer)
            self._store.add_message(buffer, Message(now, "", t("disconnected"), "traffic", "disconnected"))
        logger.info("Network {} disconnected: {}", network.name, reason or "no reason")

    def on_registered(self, evt: Registered) -> None:
        network = self._network
        self.registered = True
        self.nick_attempts = 0
        self._nick_suffixes = []
        network.nick = evt.nick

        nickserv = network.config.nickserv
        if nickserv:
            self._transport.say("nickserv", f"identify {nickserv.account} {nickserv.password}")

        params = self.connection_params()
        self._store.add_user(network, evt.nick, username=params.username)
        self._store.add_message(
            network.server_buffer(),
            Message(self._clock(), "", t("connected_to", network=self._transport.network_name)),
        )

        self._transport.who(evt.nick)
        self.run_auto_commands()

        # A bouncer replays the channels it holds; joining ourselves would duplicate them
        if not network.config.bncname:
            for buffer in list(network.buffers.values()):
                if buffer.is_channel() and buffer.enabled:
                    self._transport.join(buffer.name, buffer.key)

        network.connect_count += 1
        logger.info("Network {} registered as {} (connection #{})", network.name, evt.nick, network.connect_count)

    def run_auto_commands(self) -> None:
        for line in self._network.config.auto_commands.split("\n"):
            line = line.strip()
            if not line:
                continue
            if not line.startswith("/"):
                line = f"/{line}"
            if self._hooks.run(AutoCommand(line=line), self._network) is HookResult.HANDLED:
                continue
            self._run_command(line)

    def _run_command(self, line: str) -> None:
        command, _, rest = line[1:].partition(" ")
        command = command.lower()
        if command in ("msg", "privmsg") and " " in rest:
            target, _, text = rest.partition(" ")
            self._transport.say(target, text)
        elif command == "join" and rest:
            channel, _, key = rest.partition(" ")
            self._transport.join(channel, key)
        elif command in ("quote", "raw") and rest:
            self._transport.raw(rest)
        else:
            self._transport.raw(line[1:])
        logger.debug("Auto-command sent on {}: /{}", self._network.name, command)

    # -- nick collisions -----------------------------------------------------

    def retry_nick(self) -> str:
        """Pick and send an alternative nick after a collision during
        registration. Raises NickRetryExhausted once the cap is reached."""
        limit = self._settings.nick_retry_limit
        base = self._network.nick
        if self.nick_attempts == 0:
            low, high = NICK_SUFFIX_RANGE
            candidates = range(low, high + 1)
            self._nick_suffixes = self._rng.sample(candidates, max(0, min(limit, len(candidates))))
        if self.nick_attempts >= limit or not self._nick_suffixes:
            raise NickRetryExhausted(
                t("nick_retry_exhausted", nick=base, attempts=limit),
                code="nick_retry_exhausted",
                details={"nick": base, "attempts": limit},
            )
        self.nick_attempts += 1
        new_nick = f"{base}{self._nick_suffixes.pop(0)}"
        logger.debug(
            "Nick {} in use on {}; retrying as {} ({}/{})",
            base,
            self._network.name,
            new_nick,
            self.nick_attempts,
            limit,
        )
        self._transport.change_nick(new_nick)
        return new_nick
