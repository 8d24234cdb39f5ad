"""Tests for the idle notification broker."""

from unittest.mock import Mock

from minion_mpd.protocol.idle import IdleBroker


class TestIdleBroker:
    """Tests for IdleBroker."""

    def test_changes_before_idle_reported_immediately(self):
        broker = IdleBroker()
        wake = Mock()
        subscriber = broker.subscribe(wake)

        broker.notify("player", "playlist")

        assert broker.begin_idle(subscriber) == ["playlist", "player"]
        wake.assert_not_called()

    def test_armed_idle_woken_once(self):
        broker = IdleBroker()
        wake = Mock()
        subscriber = broker.subscribe(wake)

        assert broker.begin_idle(subscriber) is None
        broker.notify("playlist")
        broker.notify("playlist")

        wake.assert_called_once_with()
        assert broker.collect(subscriber) == ["playlist"]

    def test_interest_filters_wakeups(self):
        """A change outside the idle's subsystems stays pending."""
        broker = IdleBroker()
        wake = Mock()
        subscriber = broker.subscribe(wake)

        broker.begin_idle(subscriber, ["playlist"])
        broker.notify("options")
        wake.assert_not_called()

        broker.notify("playlist")
        wake.assert_called_once_with()
        assert broker.collect(subscriber) == ["playlist"]
        assert broker.begin_idle(subscriber) == ["options"]

    def test_cancel_idle_keeps_pending(self):
        broker = IdleBroker()
        wake = Mock()
        subscriber = broker.subscribe(wake)

        broker.begin_idle(subscriber)
        broker.cancel_idle(subscriber)
        broker.notify("mixer")

        wake.assert_not_called()
        assert broker.begin_idle(subscriber) == ["mixer"]

    def test_subscribers_are_independent(self):
        broker = IdleBroker()
        first = broker.subscribe(Mock())
        second = broker.subscribe(Mock())

        broker.notify("database")
        assert broker.begin_idle(first) == ["database"]
        assert broker.begin_idle(second) == ["database"]

    def test_unsubscribed_not_notified(self):
        broker = IdleBroker()
        wake = Mock()
        subscriber = broker.subscribe(wake)
        broker.begin_idle(subscriber)
        broker.unsubscribe(subscriber)

        broker.notify("player")

        wake.assert_not_called()


class TestServerNotifications:
    """Subsystem events raised by real state changes."""

    def test_add_wakes_playlist_idle_once(self, ctx, songs):
        """An idle on playlist is woken by add and not by an option change."""
        wake = Mock()
        subscriber = ctx.broker.subscribe(wake)
        ctx.broker.begin_idle(subscriber, ["playlist"])

        ctx.machine.set_repeat(True)
        wake.assert_not_called()

        ctx.queue.add(songs[0].id)
        wake.assert_called_once_with()
        assert ctx.broker.collect(subscriber) == ["playlist"]

    def test_playback_notifies_player(self, ctx, songs):
        subscriber = ctx.broker.subscribe(Mock())
        ctx.queue.add(songs[0].id)
        ctx.machine.play()
        assert "player" in ctx.broker.begin_idle(subscriber)
