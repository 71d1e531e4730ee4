"""State store: owns networks, buffers and users and the rules that keep them
consistent.

Mutations here never emit display lines on their own. The one exception is
`add_message`, which is how the dispatch engine appends a line and notifies the
presentation bus.
"""

from __future__ import annotations

import contextlib
import itertools
from collections.abc import Iterable, Iterator
from typing import Any

from loguru import logger

from ircstate.config.schema import NetworkConfig
from ircstate.core.constants import SERVER_BUFFER
from ircstate.core.errors import NotFound
from ircstate.gateway.bus import Bus, MessageAdded, NetworkStateChanged, UsersChanged
from ircstate.state.casemap import IrcDict
from ircstate.state.models import Buffer, Membership, Message, Network, User


class StateStore:
    """Canonical Network/Buffer/User state for every configured network."""

    def __init__(self, bus: Bus | None = None, max_backlog: int = 1000) -> None:
        self.bus = bus or Bus()
        self.networks: dict[int, Network] = {}
        self._ids = itertools.count(1)
        self._max_backlog = max_backlog
        self._active: Buffer | None = None

    # -- networks ------------------------------------------------------------

    def add_network(self, config: NetworkConfig) -> Network:
        """Create a network with its server buffer and any configured channels."""
        network = Network(next(self._ids), config)
        self.networks[network.id] = network
        self.get_or_add_buffer(network, SERVER_BUFFER)
        for channel in config.channels:
            self.get_or_add_buffer(network, channel)
        logger.info("Network {} added (id={})", network.name, network.id)
        return network

    def remove_network(self, network_id: int) -> None:
        network = self.networks.pop(network_id, None)
        if network is None:
            return
        if self._active is not None and self._active.network_id == network_id:
            self._active = None
        logger.info("Network {} removed", network.name)

    def get_network(self, network_id: int) -> Network:
        try:
            return self.networks[network_id]
        except KeyError:
            raise NotFound(f"no network {network_id}", code="network_not_found") from None

    def set_network_state(self, network: Network, state: str, error: str = "") -> None:
        network.state = state  # type: ignore[assignment]
        network.state_error = error
        self.bus.publish("state", NetworkStateChanged(network.id, state, error))

    # -- buffers -------------------------------------------------------------

    def find_buffer(self, network: Network, name: str) -> Buffer | None:
        return network.buffers.get(name) if name else None

    def get_buffer(self, network: Network, name: str) -> Buffer:
        buffer = self.find_buffer(network, name)
        if buffer is None:
            raise NotFound(f"no buffer {name!r} on {network.name}", code="buffer_not_found")
        return buffer

    def get_or_add_buffer(self, network: Network, name: str) -> Buffer:
        """Case-insensitive lookup; creates the buffer with a kind inferred from
        the name when missing."""
        buffer = network.buffers.get(name)
        if buffer is not None:
            return buffer
        buffer = Buffer(
            name,
            network.infer_kind(name),
            network_id=network.id,
            casemapping=network.casemapping,
            max_backlog=self._max_backlog,
        )
        network.buffers[name] = buffer
        logger.debug("Buffer {} created on {} ({})", name, network.name, buffer.kind)
        return buffer

    def rename_buffer(self, network: Network, buffer: Buffer, new_name: str) -> None:
        old_name = buffer.name
        network.buffers.rename_key(old_name, new_name)
        buffer.name = new_name
        buffer.kind = network.infer_kind(new_name)
        logger.debug("Buffer {} renamed to {} on {}", old_name, new_name, network.name)

    def get_buffers_with_user(self, network: Network, nick: str) -> list[Buffer]:
        return [b for b in network.buffers.values() if b.has_user(nick)]

    def set_active_buffer(self, buffer: Buffer | None) -> None:
        self._active = buffer

    def get_active_buffer(self) -> Buffer | None:
        return self._active

    # -- users ---------------------------------------------------------------

    def get_user(self, network: Network, nick: str) -> User | None:
        return network.users.get(nick)

    def add_user(
        self,
        network: Network,
        nick: str,
        users: IrcDict[User] | None = None,
        **attrs: Any,
    ) -> User:
        """Insert or merge a user. Pass `users` to apply against a snapshot
        opened with `users_transaction`."""
        index = network.users if users is None else users
        user = index.get(nick)
        if user is None:
            user = User(nick, **attrs)
            index[nick] = user
        else:
            user.update(**attrs)
        return user

    @contextlib.contextmanager
    def users_transaction(self, network: Network) -> Iterator[IrcDict[User]]:
        """Yield a copy of the user index; it replaces the live one on exit so
        observers see a single change instead of one per user."""
        snapshot: IrcDict[User] = IrcDict(network.casemapping)
        snapshot.update(network.users)
        yield snapshot
        network.users = snapshot
        self.bus.publish("state", UsersChanged(network.id, len(snapshot)))

    def apply_users(self, network: Network, rows: Iterable[dict[str, Any]]) -> int:
        """Batch-merge many user records in one step; returns the number applied."""
        count = 0
        with self.users_transaction(network) as users:
            for row in rows:
                attrs = dict(row)
                nick = attrs.pop("nick")
                self.add_user(network, nick, users=users, **attrs)
                count += 1
        return count

    def remove_user(self, network: Network, nick: str) -> None:
        """Drop the user from the index and every buffer they were in."""
        user = network.users.get(nick)
        for buffer in network.buffers.values():
            if buffer.has_user(nick):
                del buffer.users[nick]
        if user is not None:
            user.buffers.clear()
            del network.users[nick]

    def prune_user(self, network: Network, nick: str) -> bool:
        """Remove a user that shares no buffer any more. The local user is kept."""
        if network.is_self(nick):
            return False
        if self.get_buffers_with_user(network, nick):
            return False
        if nick in network.users:
            del network.users[nick]
            logger.debug("User {} removed from {} (no common buffers)", nick, network.name)
            return True
        return False

    def change_user_nick(self, network: Network, old: str, new: str) -> User | None:
        """Relabel a user and every membership key that refers to them."""
        user = network.users.get(old)
        if user is None:
            return None
        if not network.same_nick(old, new) and new in network.users:
            # A stale record already holds the new nick
            self.remove_user(network, new)
        network.users.rename_key(old, new)
        user.nick = new
        for membership in user.buffers.values():
            membership.buffer.users.rename_key(old, new)
        return user

    # -- membership ----------------------------------------------------------

    def add_user_to_buffer(
        self,
        network: Network,
        buffer: Buffer,
        nick: str,
        modes: Iterable[str] | None = None,
        **attrs: Any,
    ) -> Membership:
        user = self.add_user(network, nick, **attrs)
        membership = user.buffers.get(buffer.id)
        if membership is None:
            membership = Membership(buffer=buffer, user=user)
            user.buffers[buffer.id] = membership
        if modes is not None:
            membership.modes = list(modes)
        buffer.users[nick] = membership
        return membership

    def add_multiple_users_to_buffer(
        self,
        network: Network,
        buffer: Buffer,
        entries: Iterable[tuple[dict[str, Any], Iterable[str]]],
    ) -> None:
        """Add many (attrs, modes) pairs under one user-index transaction."""
        with self.users_transaction(network) as users:
            for attrs, modes in entries:
                attrs = dict(attrs)
                nick = attrs.pop("nick")
                user = self.add_user(network, nick, users=users, **attrs)
                membership = user.buffers.get(buffer.id)
                if membership is None:
                    membership = Membership(buffer=buffer, user=user)
                    user.buffers[buffer.id] = membership
                membership.modes = list(modes)
                buffer.users[nick] = membership

    def remove_user_from_buffer(self, network: Network, buffer: Buffer, nick: str) -> bool:
        membership = buffer.users.get(nick)
        if membership is None:
            return False
        del buffer.users[nick]
        membership.user.buffers.pop(buffer.id, None)
        return True

    def clear_users(self, network: Network, buffer: Buffer) -> None:
        """Empty the buffer's member list, dropping users left with no buffer."""
        nicks = list(buffer.users)
        for nick in nicks:
            self.remove_user_from_buffer(network, buffer, nick)
        for nick in nicks:
            self.prune_user(network, nick)

    # -- messages ------------------------------------------------------------

    def add_message(self, buffer: Buffer, message: Message) -> None:
        buffer.messages.append(message)
        self.bus.publish("message", MessageAdded(buffer.network_id, buffer.name, message))
