"""Mode and permission tracking.

Mode deltas either change a member's privilege set (modes listed in the
server's PREFIX table) or the channel's own mode map. Simultaneous changes with
the same signed mode string collapse into one display line, e.g. a single
"+o" line naming every nick that was opped.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from cachetools import TTLCache
from loguru import logger

from ircstate.events import ChannelInfo, Mode, ModeDelta
from ircstate.formatting.text import t
from ircstate.state.models import Buffer

MODE_PHRASES: dict[str, str] = {
    "+o": "modes_give_ops",
    "-o": "modes_take_ops",
    "+h": "modes_give_halfops",
    "-h": "modes_take_halfops",
    "+v": "modes_give_voice",
    "-v": "modes_take_voice",
    "+a": "modes_give_admin",
    "-a": "modes_take_admin",
    "+q": "modes_give_owner",
    "-q": "modes_take_owner",
    "+b": "modes_gives_ban",
    "-b": "modes_takes_ban",
}

# (symbol, mode letter) pairs from ISUPPORT PREFIX, highest rank first
PrefixTable = Sequence[tuple[str, str]]


@dataclass
class _Target:
    target: str
    param: str | None = None


@dataclass
class ModeLine:
    """One aggregated display line for a group of identical mode strings."""

    mode: str
    targets: list[str]
    text: str


@dataclass
class _Group:
    mode: str
    targets: list[_Target] = field(default_factory=list)


def _default_phrase_vars(group: _Group, nick: str) -> dict[str, str]:
    first = group.targets[0]
    return {
        "mode": group.mode + (f" {first.param}" if first.param else ""),
        "target": ", ".join(tg.target for tg in group.targets),
        "nick": nick,
    }


def _ban_phrase_vars(group: _Group, nick: str) -> dict[str, str]:
    return {
        "mode": group.mode,
        "target": group.targets[0].param or "",
        "nick": nick,
    }


_PHRASE_BUILDERS = {"b": _ban_phrase_vars}


class ModeTracker:
    """Applies mode deltas to buffer and membership state."""

    def __init__(self, request_ttl: float = 30) -> None:
        # Outstanding explicit /mode requests, keyed by buffer id
        self._requested: TTLCache[int, None] = TTLCache(maxsize=256, ttl=request_ttl)

    # -- explicit requests ---------------------------------------------------

    def request_modes(self, buffer: Buffer) -> None:
        """Mark that the user asked for this buffer's modes, so the reply is shown."""
        buffer.flags["requested_modes"] = True
        self._requested[buffer.id] = None

    def modes_requested(self, buffer: Buffer) -> bool:
        if not buffer.flags.get("requested_modes"):
            return False
        if buffer.id in self._requested:
            return True
        buffer.flags.pop("requested_modes", None)
        return False

    # -- deltas --------------------------------------------------------------

    @staticmethod
    def prefix_for(char: str, prefixes: PrefixTable) -> str | None:
        for _symbol, mode in prefixes:
            if mode == char:
                return mode
        return None

    def set_member_mode(self, buffer: Buffer, nick: str, delta: ModeDelta) -> bool:
        """Add or remove one privilege for a member. Returns True if anything changed."""
        membership = buffer.users.get(nick) if nick else None
        if membership is None:
            logger.debug("Mode {} for {} in {}: not a member", delta.mode, nick, buffer.name)
            return False
        if delta.adding:
            if delta.char in membership.modes:
                return False
            membership.modes.append(delta.char)
            return True
        if delta.char not in membership.modes:
            return False
        membership.modes.remove(delta.char)
        return True

    @staticmethod
    def set_channel_mode(buffer: Buffer, delta: ModeDelta) -> None:
        if delta.adding:
            buffer.modes[delta.char] = delta.param if delta.param is not None else True
        else:
            buffer.modes.pop(delta.char, None)

    def apply_mode(self, buffer: Buffer, evt: Mode, prefixes: PrefixTable) -> list[ModeLine]:
        """Apply every delta of a MODE event and return its display lines."""
        groups: dict[str, _Group] = {}
        for delta in evt.modes:
            group = groups.setdefault(delta.mode, _Group(delta.mode))
            if self.prefix_for(delta.char, prefixes):
                self.set_member_mode(buffer, delta.param or "", delta)
                group.targets.append(_Target(delta.param or ""))
            else:
                self.set_channel_mode(buffer, delta)
                group.targets.append(_Target(buffer.name, delta.param))

        lines = []
        for mode, group in groups.items():
            builder = _PHRASE_BUILDERS.get(mode[1:], _default_phrase_vars)
            phrase = t(MODE_PHRASES.get(mode, "modes_other"), **builder(group, evt.nick))
            lines.append(ModeLine(mode, [tg.target for tg in group.targets], phrase))
        return lines

    def apply_channel_info(self, buffer: Buffer, evt: ChannelInfo) -> list[str]:
        """Store a mode dump and/or creation time; return lines to echo, which
        is nothing unless the modes were explicitly requested."""
        echo = self.modes_requested(buffer)
        lines = []
        if evt.modes:
            mode_strs = []
            for delta in evt.modes:
                self.set_channel_mode(buffer, delta)
                mode_strs.append(delta.mode + (f" {delta.param}" if delta.param else ""))
            if echo:
                lines.append(f"{buffer.name} {', '.join(mode_strs)}")

        if evt.created_at:
            buffer.created_at = datetime.fromtimestamp(evt.created_at, tz=timezone.utc)
            if echo:
                lines.append(f"{buffer.name} {buffer.created_at.strftime('%Y-%m-%d %H:%M:%S')}")
        return lines
