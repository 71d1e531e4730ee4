"""IRC transport: pydle client feeding the sync engine."""

from __future__ import annotations

import asyncio
import contextlib
import random
from collections.abc import Callable, Sequence
from typing import ClassVar

import pydle
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ircstate.adapters.base import AdapterBase
from ircstate.adapters.irc_throttle import TokenBucket
from ircstate.adapters.irc_translate import LineTranslator
from ircstate.config.schema import Config, NetworkConfig
from ircstate.events import Connected, Connecting, IrcEvent, RawLine, SocketClosed, SocketConnected
from ircstate.gateway.hooks import HookChain
from ircstate.state.models import Network
from ircstate.state.store import StateStore
from ircstate.sync.engine import SyncEngine
from ircstate.sync.lifecycle import ConnectionParams

# Backoff: min 2s, max 60s, jitter
_BACKOFF_MIN = 2
_BACKOFF_MAX = 60
_MAX_ATTEMPTS = 10

_CONNECT_RETRY = retry(
    stop=stop_after_attempt(_MAX_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=_BACKOFF_MIN, max=_BACKOFF_MAX),
    retry=retry_if_exception_type(OSError),
    reraise=True,
)


def split_line(line: str) -> list[str]:
    """"CMD a b :trailing text" -> ["CMD", "a", "b", "trailing text"]."""
    head, sep, trailing = line.partition(" :")
    parts = head.split()
    if sep:
        parts.append(trailing)
    return parts


def format_line(command: str, params: Sequence[str], source: str | None = None) -> str:
    parts = [f":{source}"] if source else []
    parts.append(command)
    if params:
        *middle, last = params
        parts.extend(middle)
        parts.append(f":{last}" if not last or " " in last or last.startswith(":") else last)
    return " ".join(parts)


class IRCClient(pydle.Client):
    """Pydle client that hands every line to a LineTranslator and sends
    engine commands through a throttled queue."""

    # Reconnects are driven by IRCAdapter
    RECONNECT_ON_ERROR: ClassVar[bool] = False

    def __init__(
        self,
        nick: str,
        *,
        translator: LineTranslator | None = None,
        throttle_limit: int = 10,
        on_event: Callable[[IrcEvent], object] | None = None,
        **kwargs,
    ):
        super().__init__(nick, **kwargs)
        self.translator = translator or LineTranslator()
        self.on_event = on_event
        self.quit_requested = False
        self._outbound: asyncio.Queue[tuple[str, tuple[str, ...]]] = asyncio.Queue()
        self._consumer_task: asyncio.Task | None = None
        self._throttle = TokenBucket(throttle_limit)

    def emit(self, evt: IrcEvent) -> None:
        if self.on_event is None:
            return
        try:
            self.on_event(evt)
        except Exception as exc:
            logger.exception("Event handler failed on {}: {}", evt.kind, exc)

    async def on_raw(self, message) -> None:
        """Let pydle track its own state, then translate the line."""
        await super().on_raw(message)
        command = message.command
        command = str(command).zfill(3) if isinstance(command, int) else str(command).upper()
        params = [str(p) for p in getattr(message, "params", [])]
        source = getattr(message, "source", None)
        tags = getattr(message, "tags", None) or {}

        self.emit(RawLine(line=format_line(command, params, source), from_server=True))
        for evt in self.translator.translate(command, params, source, tags):
            self.emit(evt)

    async def on_raw_433(self, message) -> None:
        """Nick collisions are resolved by the engine; skip pydle's own retry."""

    async def on_ctcp_version(self, by, target, contents) -> None:
        """VERSION replies are sent by the engine."""

    async def on_capability_draft_chathistory_available(self, value):
        return True

    async def on_capability_server_time_available(self, value):
        return True

    async def on_disconnect(self, expected: bool) -> None:
        await super().on_disconnect(expected)
        self.translator.reset()
        self.emit(SocketClosed(reason="" if expected else "Connection closed"))

    def supports(self, feature: str) -> bool:
        if self.translator.supports(feature):
            return True
        caps = getattr(self, "_capabilities", {})
        return bool(caps.get(feature) or caps.get(f"draft/{feature}"))

    # -- outbound ------------------------------------------------------------

    def queue_command(self, command: str, *params: str) -> None:
        self._outbound.put_nowait((command, params))

    def start_consumer(self) -> None:
        if self._consumer_task is None or self._consumer_task.done():
            self._consumer_task = asyncio.create_task(self._consume_outbound())

    async def _consume_outbound(self) -> None:
        """Send queued commands with token bucket throttling."""
        while True:
            try:
                command, params = await self._outbound.get()
                wait = self._throttle.delay()
                if wait > 0:
                    await asyncio.sleep(wait)
                self._throttle.take()
                await self.rawmsg(command, *params)
                self.emit(RawLine(line=format_line(command, params), from_server=False))
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.exception("IRC send failed: {}", exc)

    async def disconnect(self, expected=True):
        """Disconnect and stop the outbound consumer."""
        if self._consumer_task:
            self._consumer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer_task
            self._consumer_task = None
        await super().disconnect(expected)


class IRCTransport:
    """Command interface the engine talks to; every call is queued on the client."""

    def __init__(self, client: IRCClient) -> None:
        self._client = client

    def raw(self, *parts: str) -> None:
        if len(parts) == 1:
            parts = tuple(split_line(parts[0]))
        if not parts:
            return
        self._client.queue_command(parts[0].upper(), *parts[1:])

    def join(self, channel: str, key: str = "") -> None:
        if key:
            self._client.queue_command("JOIN", channel, key)
        else:
            self._client.queue_command("JOIN", channel)

    def who(self, target: str) -> None:
        self._client.queue_command("WHO", target)

    def change_nick(self, nick: str) -> None:
        self._client.queue_command("NICK", nick)

    def ctcp_response(self, nick: str, type: str, body: str) -> None:
        payload = f"{type} {body}" if body else type
        self._client.queue_command("NOTICE", nick, f"\x01{payload}\x01")

    def say(self, target: str, text: str) -> None:
        self._client.queue_command("PRIVMSG", target, text)

    def quit(self, message: str = "") -> None:
        self._client.quit_requested = True
        if message:
            self._client.queue_command("QUIT", message)
        else:
            self._client.queue_command("QUIT")

    def supports(self, feature: str) -> bool:
        return self._client.supports(feature)

    @property
    def network_name(self) -> str:
        return self._client.translator.network_name

    def prefixes(self) -> Sequence[tuple[str, str]]:
        return self._client.translator.prefixes


class IRCAdapter(AdapterBase):
    """One configured network: a pydle client, its engine, and the reconnect loop."""

    def __init__(
        self,
        store: StateStore,
        config: NetworkConfig,
        settings: Config,
        *,
        hooks: HookChain | None = None,
        tls_verify: bool = True,
    ) -> None:
        self._store = store
        self._config = config
        self._settings = settings
        self._hooks = hooks
        self._tls_verify = tls_verify
        self._client: IRCClient | None = None
        self._task: asyncio.Task | None = None
        self._stopping = False
        self.network: Network | None = None
        self.engine: SyncEngine | None = None

    @property
    def name(self) -> str:
        return f"irc:{self._config.name}"

    async def start(self) -> None:
        """Create the network state and start connecting in the background."""
        self.network = self._store.add_network(self._config)
        self._client = IRCClient(self._config.nick, throttle_limit=self._settings.throttle_limit)
        self.engine = SyncEngine(
            self._store,
            self.network,
            IRCTransport(self._client),
            self._settings,
            hooks=self._hooks,
        )
        self._client.on_event = self.engine.handle
        self._stopping = False
        self._task = asyncio.create_task(self._run())
        logger.info("IRC adapter started for {}", self._config.name)

    @_CONNECT_RETRY
    async def _connect(self, params: ConnectionParams) -> None:
        client = self._client
        engine = self.engine
        if client is None or engine is None:
            return
        engine.handle(Connecting())
        client.quit_requested = False
        client._nicknames = [params.nick]
        client.username = params.username
        client.realname = params.gecos
        try:
            await client.connect(
                hostname=params.host,
                port=params.port,
                password=params.password or None,
                tls=params.tls,
                tls_verify=self._tls_verify if params.tls else False,
                encoding=params.encoding,
            )
        except OSError as exc:
            logger.warning("IRC connect to {}:{} failed: {}", params.host, params.port, exc)
            engine.handle(SocketClosed(reason=str(exc)))
            raise

    async def _run(self) -> None:
        """Connect, wait for the connection to drop, and reconnect unless stopped."""
        client = self._client
        engine = self.engine
        if client is None or engine is None:
            return
        while not self._stopping:
            # Recomputed every time: bouncer settings may change between connections
            params = engine.lifecycle.connection_params()
            try:
                await self._connect(params)
            except OSError:
                logger.exception("IRC connect to {} failed after {} attempts", self._config.name, _MAX_ATTEMPTS)
                return
            client.start_consumer()
            engine.handle(SocketConnected())
            engine.handle(Connected())

            # pydle.connect() returns immediately after spawning handle_forever
            while client.connected:
                await asyncio.sleep(0.5)
            if self._stopping or client.quit_requested:
                break
            wait = _BACKOFF_MIN * random.uniform(0.5, 1.5)
            logger.info("IRC {} disconnected, reconnecting in {:.1f}s", self._config.name, wait)
            await asyncio.sleep(wait)

    async def stop(self) -> None:
        """Disconnect and drop this network's state."""
        self._stopping = True
        if self._client:
            self._client.quit_requested = True
            if self._client.connected:
                await self._client.disconnect()
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        if self.network is not None:
            self._store.remove_network(self.network.id)
        self._client = None
        self._task = None
        self.network = None
        self.engine = None
