"""Unit tests for EventBus — run-to-completion pub/sub.

Tests subscribe/unsubscribe, publish/receive, queued (non-recursive)
delivery from inside handlers, and deferred callbacks.
"""
from __future__ import annotations

import pytest

from comms.event_bus import ALL_EVENTS, Event, EventBus, Subscription


@pytest.mark.unit
class TestEventBusBasics:
    """Core subscribe/publish/unsubscribe functionality."""

    def test_publish_delivers_to_subscriber(self):
        bus = EventBus()
        received = []
        bus.subscribe("test_event", received.append)
        bus.publish("test_event", {"key": "value"})
        assert len(received) == 1
        assert received[0].type == "test_event"
        assert received[0].data["key"] == "value"

    def test_publish_without_data(self):
        bus = EventBus()
        received = []
        bus.subscribe("ping", received.append)
        bus.publish("ping")
        assert received[0].data == {}

    def test_only_matching_type_delivered(self):
        bus = EventBus()
        received = []
        bus.subscribe("a", received.append)
        bus.publish("b")
        assert received == []

    def test_wildcard_receives_everything(self):
        bus = EventBus()
        received = []
        bus.subscribe(ALL_EVENTS, received.append)
        bus.publish("a")
        bus.publish("b")
        assert [e.type for e in received] == ["a", "b"]

    def test_unsubscribe_stops_delivery(self):
        bus = EventBus()
        received = []
        sub = bus.subscribe("x", received.append)
        bus.unsubscribe(sub)
        bus.publish("x")
        assert received == []
        assert sub.active is False

    def test_unsubscribe_unknown_is_safe(self):
        bus = EventBus()
        bus.unsubscribe(Subscription("x", lambda e: None))  # Should not raise

    def test_sequence_numbers_increase(self):
        bus = EventBus()
        e1 = bus.publish("a")
        e2 = bus.publish("a")
        assert isinstance(e1, Event)
        assert e2.seq > e1.seq

    def test_data_is_copied(self):
        bus = EventBus()
        data = {"k": 1}
        event = bus.publish("a", data)
        data["k"] = 2
        assert event.data["k"] == 1


@pytest.mark.unit
class TestRunToCompletion:
    """Publishing from a handler queues instead of recursing."""

    def test_nested_publish_runs_after_handler(self):
        bus = EventBus()
        order = []

        def on_a(event):
            order.append("a-start")
            bus.publish("b")
            order.append("a-done")

        bus.subscribe("a", on_a)
        bus.subscribe("b", lambda e: order.append("b"))
        bus.publish("a")
        assert order == ["a-start", "a-done", "b"]

    def test_every_subscriber_sees_event_before_next(self):
        bus = EventBus()
        order = []

        def first(event):
            order.append("first")
            bus.publish("b")

        bus.subscribe("a", first)
        bus.subscribe("a", lambda e: order.append("second"))
        bus.subscribe("b", lambda e: order.append("b"))
        bus.publish("a")
        assert order == ["first", "second", "b"]

    def test_unsubscribe_during_turn_skips_later_subscriber(self):
        bus = EventBus()
        called = []
        subs = {}

        def first(event):
            bus.unsubscribe(subs["second"])

        bus.subscribe("x", first)
        subs["second"] = bus.subscribe("x", lambda e: called.append("second"))
        bus.publish("x")
        assert called == []

    def test_defer_runs_after_current_turn(self):
        bus = EventBus()
        order = []

        def on_a(event):
            bus.defer(order.append, "deferred")
            order.append("a")

        bus.subscribe("a", on_a)
        bus.publish("a")
        assert order == ["a", "deferred"]

    def test_defer_outside_dispatch_runs_immediately(self):
        bus = EventBus()
        order = []
        bus.defer(order.append, "now")
        assert order == ["now"]
        assert bus.pending == 0

    def test_handler_error_is_contained(self, log_messages):
        bus = EventBus()
        received = []

        def boom(event):
            raise RuntimeError("handler failed")

        bus.subscribe("bad", boom)
        bus.subscribe("bad", received.append)
        bus.publish("bad")
        assert len(received) == 1
        assert bus.dispatching is False
        assert bus.pending == 0
        assert any("subscriber failed on bad event" in msg for msg in log_messages)

    def test_failing_wildcard_does_not_stop_the_queue(self):
        bus = EventBus()
        order = []

        def boom(event):
            raise RuntimeError("observer failed")

        def first(event):
            bus.publish("second")
            order.append("first")

        bus.subscribe(ALL_EVENTS, boom)
        bus.subscribe("first", first)
        bus.subscribe("second", lambda e: order.append("second"))
        bus.publish("first")
        assert order == ["first", "second"]
