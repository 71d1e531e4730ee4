"""Gateway: presentation notification bus and external pre-hooks."""

from ircstate.gateway.bus import Bus, Dispatcher, EventTarget
from ircstate.gateway.hooks import HookChain, HookResult

__all__ = ["Bus", "Dispatcher", "EventTarget", "HookChain", "HookResult"]
