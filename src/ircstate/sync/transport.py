"""Interface the sync engine needs from the protocol/transport layer.

Every command method is fire-and-forget: replies arrive later as ordinary
events and are matched by content, not by a request id.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol


class Transport(Protocol):
    def raw(self, *parts: str) -> None:
        """Send a raw line. One argument is sent as-is; several are joined by spaces."""
        ...

    def join(self, channel: str, key: str = "") -> None: ...

    def who(self, target: str) -> None: ...

    def change_nick(self, nick: str) -> None: ...

    def ctcp_response(self, nick: str, type: str, body: str) -> None: ...

    def say(self, target: str, text: str) -> None: ...

    def quit(self, message: str = "") -> None: ...

    def supports(self, feature: str) -> bool:
        """Whether the server advertised a feature (ISUPPORT token or capability)."""
        ...

    @property
    def network_name(self) -> str:
        """Network name advertised by the server, or the parser's placeholder."""
        ...

    def prefixes(self) -> Sequence[tuple[str, str]]:
        """(symbol, mode) pairs from ISUPPORT PREFIX, highest rank first."""
        ...
