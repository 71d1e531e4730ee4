"""External pre-hooks: handlers that may claim an event before the built-in
translation runs."""

from __future__ import annotations

import enum
from collections.abc import Callable
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from ircstate.state.models import Network


class HookResult(enum.Enum):
    UNHANDLED = "unhandled"
    HANDLED = "handled"


Hook = Callable[[object, "Network"], HookResult]


class HookChain:
    """Ordered hooks. The first hook returning HANDLED wins and later hooks are
    not consulted."""

    def __init__(self) -> None:
        self._hooks: list[Hook] = []

    def register(self, hook: Hook, *, first: bool = False) -> None:
        if first:
            self._hooks.insert(0, hook)
        else:
            self._hooks.append(hook)

    def unregister(self, hook: Hook) -> None:
        if hook in self._hooks:
            self._hooks.remove(hook)

    def run(self, evt: object, network: Network) -> HookResult:
        for hook in list(self._hooks):
            try:
                result = hook(evt, network)
            except Exception as exc:
                logger.exception("Hook {} failed on {}: {}", hook, type(evt).__name__, exc)
                continue
            if result is HookResult.HANDLED:
                logger.debug("Hook {} handled {}", hook, type(evt).__name__)
                return HookResult.HANDLED
        return HookResult.UNHANDLED
