"""Notification bus: state changes published to presentation targets."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from loguru import logger

if TYPE_CHECKING:
    from ircstate.state.models import Message


@dataclass(frozen=True)
class MessageAdded:
    """A line was appended to a buffer's log."""

    network_id: int
    buffer: str
    message: Message


@dataclass(frozen=True)
class NetworkStateChanged:
    network_id: int
    state: str
    error: str = ""


@dataclass(frozen=True)
class UsersChanged:
    """The network's user index was replaced in one batch."""

    network_id: int
    count: int


@dataclass(frozen=True)
class ChannelListPublished:
    network_id: int
    count: int


class EventTarget(Protocol):
    """Subscriber interface: accept_event + push_event."""

    def accept_event(self, source: str, evt: object) -> bool:
        """Return True if this target wants the event."""
        ...

    def push_event(self, source: str, evt: object) -> None:
        """Handle the event."""
        ...


class Dispatcher:
    """Central dispatcher; targets filter by type and receive events."""

    def __init__(self) -> None:
        self._targets: list[EventTarget] = []

    def register(self, target: EventTarget) -> None:
        self._targets.append(target)

    def unregister(self, target: EventTarget) -> None:
        if target in self._targets:
            self._targets.remove(target)

    def dispatch(self, source: str, evt: object) -> None:
        """Dispatch event to all targets that accept it. A failing target never
        stops delivery to the others."""
        for target in self._targets:
            try:
                if target.accept_event(source, evt):
                    target.push_event(source, evt)
            except Exception as exc:
                logger.exception("Failed to pass event to target {}: {}", target, exc)


class Bus:
    """Event bus wrapping the dispatcher. Presentation targets register here."""

    def __init__(self) -> None:
        self._dispatcher = Dispatcher()

    def register(self, target: EventTarget) -> None:
        self._dispatcher.register(target)

    def unregister(self, target: EventTarget) -> None:
        self._dispatcher.unregister(target)

    @property
    def targets(self) -> list[EventTarget]:
        return list(self._dispatcher._targets)

    def publish(self, source: str, evt: object) -> None:
        """Publish event to all targets that accept it."""
        self._dispatcher.dispatch(source, evt)
