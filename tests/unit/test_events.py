"""Unit tests for EventHub callback fan-out."""

import logging

import pytest

from bl654.core import events
from bl654.core.events import EventHub
from bl654.core.models import DisconnectEvent


class TestEventHub:
    """Test subscription and dispatch."""

    def test_dispatch_to_all_subscribers_in_order(self):
        hub = EventHub()
        calls = []
        hub.subscribe(events.DISCONNECT, lambda event: calls.append(("first", event.handle)))
        hub.subscribe(events.DISCONNECT, lambda event: calls.append(("second", event.handle)))

        hub.dispatch(events.DISCONNECT, DisconnectEvent(5, 84))

        assert calls == [("first", 5), ("second", 5)]

    def test_dispatch_without_subscribers(self):
        EventHub().dispatch(events.INTERFACE_DISCONNECTED)

    def test_unsubscribe(self):
        hub = EventHub()
        calls = []
        callback = calls.append
        hub.subscribe(events.NOTIFICATION, callback)

        assert hub.unsubscribe(events.NOTIFICATION, callback) is True
        assert hub.unsubscribe(events.NOTIFICATION, callback) is False

        hub.dispatch(events.NOTIFICATION, "payload")
        assert calls == []

    def test_unsubscribe_during_dispatch(self):
        """Test a callback removing itself does not skip the next callback."""
        hub = EventHub()
        calls = []

        def once(event):
            calls.append("once")
            hub.unsubscribe(events.ADVERTISEMENT, once)

        hub.subscribe(events.ADVERTISEMENT, once)
        hub.subscribe(events.ADVERTISEMENT, lambda event: calls.append("always"))

        hub.dispatch(events.ADVERTISEMENT, object())
        hub.dispatch(events.ADVERTISEMENT, object())

        assert calls == ["once", "always", "always"]
        assert hub.subscriber_count(events.ADVERTISEMENT) == 1

    def test_raising_callback_is_logged_and_skipped(self, caplog):
        hub = EventHub()
        calls = []

        def broken(event):
            raise RuntimeError("boom")

        hub.subscribe(events.DISCONNECT, broken)
        hub.subscribe(events.DISCONNECT, calls.append)

        with caplog.at_level(logging.ERROR, logger="bl654.core.events"):
            hub.dispatch(events.DISCONNECT, DisconnectEvent(1, 0))

        assert len(calls) == 1
        assert "Unhandled exception in disconnect callback" in caplog.text

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Unknown event kind"):
            EventHub().subscribe("bogus", print)
