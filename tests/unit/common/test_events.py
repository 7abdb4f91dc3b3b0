"""Tests for publish-cycle events."""

import pytest

from repokit.common.events import EventBus, RepositoryEvent


class TestEventBus:
    """Tests for EventBus."""

    def test_publish_to_subscribers_in_order(self):
        """Test handlers run in registration order with the payload."""
        bus = EventBus()
        calls = []
        bus.subscribe(RepositoryEvent.PRE_BUILD, lambda e: calls.append(("first", e.path)))
        bus.subscribe(RepositoryEvent.PRE_BUILD, lambda e: calls.append(("second", e.path)))

        bus.publish(RepositoryEvent.PRE_BUILD, "repo", "/srv/repo")

        assert calls == [("first", "/srv/repo"), ("second", "/srv/repo")]

    def test_events_are_independent(self):
        """Test a handler only receives its own event."""
        bus = EventBus()
        received = []
        bus.subscribe(RepositoryEvent.POST_BUILD, received.append)

        bus.publish(RepositoryEvent.PRE_BUILD, "repo", "/a")
        bus.publish(RepositoryEvent.POST_BUILD, "repo", "/b")

        assert len(received) == 1
        assert received[0].event == RepositoryEvent.POST_BUILD
        assert received[0].repository == "repo"

    def test_unsubscribe(self):
        """Test removed handlers are no longer called."""
        bus = EventBus()
        received = []
        bus.subscribe(RepositoryEvent.PRE_BUILD, received.append)
        bus.unsubscribe(RepositoryEvent.PRE_BUILD, received.append)
        bus.unsubscribe(RepositoryEvent.POST_BUILD, received.append)

        bus.publish(RepositoryEvent.PRE_BUILD, "repo", "/a")
        assert received == []

    def test_handler_error_propagates(self):
        """Test a failing handler aborts publishing."""
        bus = EventBus()

        def fail(event):
            raise RuntimeError("signing failed")

        bus.subscribe(RepositoryEvent.PRE_BUILD, fail)
        with pytest.raises(RuntimeError, match="signing failed"):
            bus.publish(RepositoryEvent.PRE_BUILD, "repo", "/a")
