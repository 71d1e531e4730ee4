"""Test notification bus, dispatcher and hook chain."""

from ircstate.gateway.bus import Bus, Dispatcher, NetworkStateChanged
from ircstate.gateway.hooks import HookChain, HookResult


class MockTarget:
    """Mock event target for testing."""

    def __init__(self, accept_filter=None):
        self.received_events = []
        self.accept_filter = accept_filter or (lambda s, e: True)

    def accept_event(self, source: str, evt: object) -> bool:
        return self.accept_filter(source, evt)

    def push_event(self, source: str, evt: object) -> None:
        self.received_events.append((source, evt))


class FailingTarget(MockTarget):
    def push_event(self, source: str, evt: object) -> None:
        raise RuntimeError("boom")


class TestDispatcher:
    """Test event dispatcher."""

    def test_register_target(self):
        dispatcher = Dispatcher()
        target = MockTarget()
        dispatcher.register(target)
        assert target in dispatcher._targets

    def test_unregister_target(self):
        dispatcher = Dispatcher()
        target = MockTarget()
        dispatcher.register(target)
        dispatcher.unregister(target)
        assert target not in dispatcher._targets

    def test_unregister_nonexistent_target_is_safe(self):
        Dispatcher().unregister(MockTarget())

    def test_dispatch_to_accepting_target(self):
        dispatcher = Dispatcher()
        target = MockTarget()
        dispatcher.register(target)
        evt = NetworkStateChanged(1, "connected")

        dispatcher.dispatch("state", evt)

        assert target.received_events == [("state", evt)]

    def test_dispatch_skips_rejecting_target(self):
        dispatcher = Dispatcher()
        target = MockTarget(accept_filter=lambda s, e: s == "message")
        dispatcher.register(target)

        dispatcher.dispatch("state", NetworkStateChanged(1, "connected"))

        assert target.received_events == []

    def test_failing_target_does_not_block_others(self):
        dispatcher = Dispatcher()
        good = MockTarget()
        dispatcher.register(FailingTarget())
        dispatcher.register(good)

        dispatcher.dispatch("state", NetworkStateChanged(1, "connected"))

        assert len(good.received_events) == 1


class TestBus:
    """Test Bus wrapper."""

    def test_publish(self):
        bus = Bus()
        target = MockTarget()
        bus.register(target)

        bus.publish("state", NetworkStateChanged(1, "disconnected", "eof"))

        assert target.received_events[0][1].error == "eof"

    def test_targets_is_a_copy(self):
        bus = Bus()
        target = MockTarget()
        bus.register(target)

        bus.targets.clear()

        assert bus.targets == [target]

    def test_unregister(self):
        bus = Bus()
        target = MockTarget()
        bus.register(target)
        bus.unregister(target)

        bus.publish("state", NetworkStateChanged(1, "connected"))

        assert target.received_events == []


class TestHookChain:
    def test_empty_chain_is_unhandled(self):
        assert HookChain().run(object(), None) is HookResult.UNHANDLED

    def test_first_handled_stops_the_chain(self):
        calls = []
        chain = HookChain()

        def first(evt, network):
            calls.append("first")
            return HookResult.HANDLED

        def second(evt, network):
            calls.append("second")
            return HookResult.HANDLED

        chain.register(first)
        chain.register(second)

        assert chain.run(object(), None) is HookResult.HANDLED
        assert calls == ["first"]

    def test_register_first(self):
        calls = []
        chain = HookChain()
        chain.register(lambda e, n: calls.append("late") or HookResult.UNHANDLED)
        chain.register(lambda e, n: calls.append("early") or HookResult.UNHANDLED, first=True)

        chain.run(object(), None)

        assert calls == ["early", "late"]

    def test_failing_hook_is_skipped(self):
        chain = HookChain()

        def broken(evt, network):
            raise ValueError("bad hook")

        chain.register(broken)
        chain.register(lambda e, n: HookResult.HANDLED)

        assert chain.run(object(), None) is HookResult.HANDLED

    def test_unregister(self):
        chain = HookChain()

        def claim(evt, network):
            return HookResult.HANDLED

        chain.register(claim)
        chain.unregister(claim)
        chain.unregister(claim)

        assert chain.run(object(), None) is HookResult.UNHANDLED
