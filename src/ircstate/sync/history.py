"""History backfill: one CHATHISTORY policy per connection attempt.

The first registration of a Network fetches a fixed number of recent lines for
every channel and query. Later registrations (reconnects) instead ask for
everything after each buffer's newest known line, filling the gap left by the
disconnect.
"""

from __future__ import annotations

from typing import Literal

from loguru import logger

from ircstate.state.models import Buffer, Network
from ircstate.sync.clock import Clock, iso_timestamp, utcnow
from ircstate.sync.transport import Transport

HISTORY_FEATURE = "chathistory"

Policy = Literal["full", "incremental"]


class HistoryCoordinator:
    """Decides and issues the backfill for one network."""

    def __init__(
        self,
        network: Network,
        transport: Transport,
        count: int = 50,
        clock: Clock = utcnow,
    ) -> None:
        self._network = network
        self._transport = transport
        self._count = count
        self._clock = clock
        self.requested = False

    def reset(self) -> None:
        """Start a new connection attempt; called at registration."""
        self.requested = False

    def _targets(self) -> list[Buffer]:
        return [b for b in self._network.buffers.values() if b.is_channel() or b.is_query()]

    def on_server_options(self) -> Policy | None:
        """Issue this attempt's backfill if not yet done. Returns the policy used."""
        if self.requested:
            return None
        if not self._transport.supports(HISTORY_FEATURE):
            return None
        attempt = self._network.connect_count
        if attempt < 1:
            # Options seen before registration; wait for the registered attempt
            return None

        self.requested = True
        if attempt == 1:
            self.request_latest()
            return "full"
        self.request_forward()
        return "incremental"

    def request_latest(self) -> None:
        stamp = iso_timestamp(self._clock())
        targets = self._targets()
        for buffer in targets:
            self._transport.raw(f"CHATHISTORY {buffer.name} timestamp={stamp} message_count=-{self._count}")
        logger.debug(
            "History: requested latest {} lines for {} buffers on {}",
            self._count,
            len(targets),
            self._network.name,
        )

    def request_forward(self) -> None:
        targets = self._targets()
        for buffer in targets:
            self.request_scrollback(buffer, "forward")
        logger.debug("History: requested forward scrollback for {} buffers on {}", len(targets), self._network.name)

    def request_scrollback(self, buffer: Buffer, direction: Literal["forward", "backward"] = "backward") -> None:
        """Page history for one buffer relative to its known lines: forward
        from the newest, or backward from the oldest."""
        if direction == "forward":
            anchor = buffer.last_history_time()
            if anchor is None and buffer.messages:
                anchor = buffer.messages[-1].time
            count = self._count
        else:
            anchor = buffer.messages[0].time if buffer.messages else None
            count = -self._count
        stamp = iso_timestamp(anchor or self._clock())
        self._transport.raw(f"CHATHISTORY {buffer.name} timestamp={stamp} message_count={count}")
