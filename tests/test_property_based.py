"""Property-based tests using hypothesis."""

from hypothesis import given, settings, strategies as st

from ircstate import events as ev
from ircstate.events import Mode, ModeDelta
from ircstate.gateway.bus import Bus, NetworkStateChanged
from ircstate.state.casemap import IrcDict, irc_lower
from tests.mocks import make_engine

NICKS = st.sampled_from(["alice", "bob", "Bob", "carol", "dave[1]", "DAVE{1}"])
CHANNELS = st.sampled_from(["#a", "#A", "#b", "#c"])

MEMBERSHIP_EVENTS = st.one_of(
    st.builds(ev.Join, nick=NICKS, channel=CHANNELS),
    st.builds(ev.Part, nick=NICKS, channel=CHANNELS),
    st.builds(ev.Kick, nick=NICKS, channel=CHANNELS, kicked=NICKS),
    st.builds(ev.Quit, nick=NICKS),
    st.builds(ev.Nick, nick=NICKS, new_nick=NICKS),
)


def _assert_consistent(network):
    for buffer in network.buffers.values():
        for nick, membership in buffer.users.items():
            assert network.users.get(nick) is membership.user
            assert membership.user.buffers.get(buffer.id) is membership
    for nick, user in network.users.items():
        if not network.is_self(nick):
            assert user.buffers, f"{nick} has no common buffer"
        for membership in user.buffers.values():
            assert membership.buffer.users.get(nick) is membership


class TestPropertyBased:
    """Property-based tests for invariants."""

    @given(st.lists(MEMBERSHIP_EVENTS, max_size=40))
    @settings(max_examples=200)
    def test_users_exist_only_with_a_common_buffer(self, events):
        """Property: after any membership sequence, every known peer shares a
        buffer and both sides of every membership agree."""
        # Arrange
        engine, network, _, _ = make_engine(channels=["#a", "#b"])
        engine.handle(ev.Registered(nick="alice"))

        # Act & Assert
        for evt in events:
            engine.handle(evt)
            _assert_consistent(network)

    @given(st.lists(st.sampled_from(["bob", "carol", "dave"]), min_size=1, unique=True), st.text(min_size=1, max_size=8))
    def test_nick_change_keeps_memberships(self, others, suffix):
        """Property: a rename keeps exactly the renamed user's buffers."""
        # Arrange
        engine, network, _, _ = make_engine(channels=["#a", "#b"])
        engine.handle(ev.Registered(nick="alice"))
        for i, nick in enumerate(others):
            engine.handle(ev.Join(nick=nick, channel="#a" if i % 2 else "#b"))
        target = others[0]
        before = sorted(b.name for b in engine.store.get_buffers_with_user(network, target))
        new_nick = f"zz{suffix}"

        # Act
        engine.handle(ev.Nick(nick=target, new_nick=new_nick))

        # Assert
        after = sorted(b.name for b in engine.store.get_buffers_with_user(network, new_nick))
        assert after == before
        assert not engine.store.get_buffers_with_user(network, target)

    @given(
        st.lists(
            st.tuples(st.sampled_from(["+o", "-o", "+v", "-v", "+b", "-b", "+n", "-n"]), st.sampled_from(["bob", "carol"])),
            max_size=10,
        )
    )
    def test_mode_application_is_idempotent(self, changes):
        """Property: applying the same MODE twice leaves the same state as once."""
        # Arrange
        engine, network, _, _ = make_engine(channels=["#a"])
        buffer = network.buffers["#a"]
        for nick in ("bob", "carol"):
            engine.store.add_user_to_buffer(network, buffer, nick)
        evt = Mode(target="#a", nick="op", modes=[ModeDelta(m, p) for m, p in changes])

        # Act
        engine.handle(evt)
        once = ({n: sorted(m.modes) for n, m in buffer.users.items()}, dict(buffer.modes))
        engine.handle(evt)
        twice = ({n: sorted(m.modes) for n, m in buffer.users.items()}, dict(buffer.modes))

        # Assert
        assert once == twice
        for membership in buffer.users.values():
            assert len(membership.modes) == len(set(membership.modes))

    @given(st.integers(min_value=1, max_value=4), st.lists(st.sampled_from(["#a", "#b", "bob", "carol"]), unique=True))
    def test_history_policy_is_exclusive(self, attempts, names):
        """Property: each registration issues one request per buffer, all
        backward on the first connection and all forward afterwards."""
        # Arrange
        engine, network, transport, store = make_engine(features=["chathistory"])
        for name in names:
            store.get_or_add_buffer(network, name)

        for attempt in range(1, attempts + 1):
            transport.lines.clear()

            # Act
            engine.handle(ev.Connecting())
            engine.handle(ev.Registered(nick="alice"))
            engine.handle(ev.ServerOptions(options={}))
            engine.handle(ev.ServerOptions(options={}))
            engine.handle(ev.SocketClosed())

            # Assert
            lines = transport.history_lines()
            assert sorted(line.split()[1] for line in lines) == sorted(names)
            backward = ["message_count=-" in line for line in lines]
            if attempt == 1:
                assert all(backward)
            else:
                assert not any(backward)

    @given(st.text(alphabet=st.characters(min_codepoint=32, max_codepoint=126)))
    def test_irc_lower_is_idempotent(self, text):
        """Property: folding a folded name changes nothing."""
        once = irc_lower(text)
        assert irc_lower(once) == once

    @given(st.text(alphabet="abcdefgxyzABCDEFGXYZ[]\\~{}|^", min_size=1))
    def test_case_variants_share_a_slot(self, name):
        """Property: upper and lower spellings address the same entry."""
        d: IrcDict[int] = IrcDict()
        d[name] = 1
        d[name.upper()] = 2
        assert len(d) == 1
        assert d[name.lower()] == 2

    @given(st.lists(st.sampled_from(["connecting", "connected", "disconnected"]), min_size=1, max_size=50))
    def test_bus_dispatch_order(self, states):
        """Property: events are dispatched in order."""
        # Arrange
        bus = Bus()
        received = []

        class OrderTracker:
            def accept_event(self, source, evt):
                return True

            def push_event(self, source, evt):
                received.append(evt.state)

        bus.register(OrderTracker())

        # Act
        for state in states:
            bus.publish("state", NetworkStateChanged(1, state))

        # Assert
        assert received == states
