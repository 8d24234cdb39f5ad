"""Tests for the playback state machine."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from minion_mpd.context import ServerContext
from minion_mpd.core.database import PersistenceError
from minion_mpd.domain.playback import NotPlaying, NullSink, SinkError, Transport
from minion_mpd.domain.queue import OutOfRange


@pytest.fixture
def entries(ctx: ServerContext, songs) -> list[int]:
    """Queue A, B, C, D (the four sample songs); returns entry ids."""
    return ctx.queue.add_many(song.id for song in songs)


def current_id(ctx: ServerContext):
    entry = ctx.machine.current_entry()
    return entry.id if entry else None


class TestTransport:
    """play/pause/stop/next/previous."""

    def test_add_then_play_on_empty_queue(self, ctx, songs, sink: NullSink):
        """add(X) on an empty queue followed by play plays position 0."""
        ctx.queue.add(songs[0].id)
        ctx.machine.play()

        status = ctx.machine.status()
        assert status.state == Transport.PLAY
        assert status.song == 0
        assert sink.path == Path(ctx.config.music.music_directory) / songs[0].path

    def test_play_on_empty_queue_stays_stopped(self, ctx):
        ctx.machine.play()
        assert ctx.machine.transport == Transport.STOP

    def test_play_position(self, ctx, entries):
        ctx.machine.play(2)
        assert current_id(ctx) == entries[2]

    def test_play_bad_position(self, ctx, entries):
        with pytest.raises(OutOfRange):
            ctx.machine.play(10)

    def test_pause_toggle_and_resume(self, ctx, entries):
        ctx.machine.play(0)
        ctx.machine.pause()
        assert ctx.machine.transport == Transport.PAUSE
        ctx.machine.pause()
        assert ctx.machine.transport == Transport.PLAY
        ctx.machine.pause(True)
        ctx.machine.play()
        assert ctx.machine.transport == Transport.PLAY

    def test_pause_while_stopped_is_noop(self, ctx, entries):
        ctx.machine.pause(True)
        assert ctx.machine.transport == Transport.STOP

    def test_stop_keeps_current(self, ctx, entries):
        ctx.machine.play(1)
        ctx.machine.stop()
        assert ctx.machine.transport == Transport.STOP
        assert current_id(ctx) == entries[1]
        ctx.machine.play()
        assert current_id(ctx) == entries[1]

    def test_next_and_previous(self, ctx, entries):
        ctx.machine.play(1)
        ctx.machine.next()
        assert current_id(ctx) == entries[2]
        ctx.machine.previous()
        ctx.machine.previous()
        assert current_id(ctx) == entries[0]

    def test_next_past_end_stops(self, ctx, entries):
        ctx.machine.play(3)
        ctx.machine.next()
        assert ctx.machine.transport == Transport.STOP
        assert ctx.machine.current_entry() is None

    def test_next_with_repeat_wraps(self, ctx, entries):
        ctx.machine.set_repeat(True)
        ctx.machine.play(3)
        ctx.machine.next()
        assert current_id(ctx) == entries[0]

    def test_next_while_stopped_is_noop(self, ctx, entries):
        ctx.machine.next()
        assert ctx.machine.transport == Transport.STOP

    def test_status_next_song(self, ctx, entries):
        ctx.machine.play(0)
        status = ctx.machine.status()
        assert (status.song, status.song_id) == (0, entries[0])
        assert (status.next_song, status.next_song_id) == (1, entries[1])
        assert status.duration == 180.0
        assert status.elapsed is not None


class TestSongEnd:
    """Natural end of a song under the mode flags."""

    def test_advances_to_next(self, ctx, entries, sink):
        ctx.machine.play(0)
        sink.finish()
        assert current_id(ctx) == entries[1]
        assert ctx.machine.transport == Transport.PLAY

    def test_end_of_queue_stops(self, ctx, entries, sink):
        ctx.machine.play(3)
        sink.finish()
        assert ctx.machine.transport == Transport.STOP

    def test_repeat_single_replays(self, ctx, entries, sink):
        """repeat+single re-selects the same position at song end."""
        ctx.machine.set_repeat(True)
        ctx.machine.set_single(True)
        ctx.machine.play(1)

        sink.finish()
        sink.finish()

        assert current_id(ctx) == entries[1]
        assert ctx.machine.transport == Transport.PLAY

    def test_single_without_repeat_stops(self, ctx, entries, sink):
        ctx.machine.set_single(True)
        ctx.machine.play(1)
        sink.finish()
        assert ctx.machine.transport == Transport.STOP
        assert current_id(ctx) == entries[1]

    def test_consume_removes_each_finished_song(self, ctx, entries, sink):
        """consume: length drops by one per song and nothing is skipped."""
        ctx.machine.set_consume(True)
        ctx.machine.play(0)
        played = [current_id(ctx)]

        for expected_length in (3, 2, 1):
            sink.finish()
            assert len(ctx.queue) == expected_length
            played.append(current_id(ctx))

        sink.finish()
        assert len(ctx.queue) == 0
        assert ctx.machine.transport == Transport.STOP
        assert played == entries

    def test_consume_random_uses_prior_order(self, ctx, entries, sink):
        """consume+random: the successor comes from the permutation before removal."""
        ctx.machine.set_random(True)
        ctx.machine.set_consume(True)
        ctx.machine.play()
        order = ctx.queue.random_order()
        played = [current_id(ctx)]

        while ctx.machine.transport == Transport.PLAY:
            sink.finish()
            if ctx.machine.transport == Transport.PLAY:
                played.append(current_id(ctx))

        assert played[:2] == order[:2]
        assert sorted(played) == sorted(entries)
        assert len(ctx.queue) == 0

    def test_consume_repeat_drains_queue(self, ctx, entries, sink):
        """consume+repeat: the last remaining entry is removed instead of replayed."""
        ctx.machine.set_consume(True)
        ctx.machine.set_repeat(True)
        ctx.machine.play(0)
        played = [current_id(ctx)]

        for _ in range(3):
            sink.finish()
            played.append(current_id(ctx))

        assert len(ctx.queue) == 1
        sink.finish()
        assert len(ctx.queue) == 0
        assert ctx.machine.transport == Transport.STOP
        assert played == entries

    def test_consume_repeat_random_removes_last_entry(self, ctx, songs, sink):
        ctx.queue.add(songs[0].id)
        ctx.machine.set_random(True)
        ctx.machine.set_consume(True)
        ctx.machine.set_repeat(True)
        ctx.machine.play()

        sink.finish()
        assert len(ctx.queue) == 0
        assert ctx.machine.transport == Transport.STOP
        assert current_id(ctx) is None

    def test_random_pass_plays_each_entry_once(self, ctx, entries, sink):
        ctx.machine.set_random(True)
        ctx.machine.play()
        played = [current_id(ctx)]
        while True:
            sink.finish()
            if ctx.machine.transport != Transport.PLAY:
                break
            played.append(current_id(ctx))

        assert sorted(played) == sorted(entries)

    def test_stale_end_event_ignored(self, ctx, entries):
        """An end callback from a song that was replaced does nothing."""
        sink = Mock()
        ctx.machine.sink = sink
        ctx.machine.play(0)
        old_on_end = sink.start.call_args.args[3]

        ctx.machine.next()
        old_on_end()

        assert current_id(ctx) == entries[1]

    def test_persistence_failure_reported(self, ctx, entries, sink):
        on_fatal = Mock()
        ctx.machine.on_fatal = on_fatal
        ctx.machine.play(0)
        error = PersistenceError("disk gone")
        ctx.machine._natural_end = Mock(side_effect=error)

        sink.finish()

        on_fatal.assert_called_once_with(error)


class TestQueueInteraction:
    """The current entry follows queue edits."""

    def test_move_keeps_current(self, ctx, songs):
        """[A,B,C] current B, moveid(C, 0) gives [C,A,B] with B current at 2."""
        a, b, c = ctx.queue.add_many(song.id for song in songs[:3])
        ctx.machine.play(1)

        ctx.queue.move_id(c, 0)

        assert ctx.queue.ids() == [c, a, b]
        status = ctx.machine.status()
        assert (status.song, status.song_id) == (2, b)
        assert ctx.machine.state.current_position == 2

    def test_removing_last_current_entry_stops(self, ctx, entries):
        ctx.machine.play(3)
        ctx.queue.remove_id(entries[3])
        assert ctx.machine.transport == Transport.STOP
        assert ctx.machine.current_entry() is None

    def test_removing_current_plays_successor(self, ctx, entries, sink):
        ctx.machine.play(1)
        ctx.queue.remove_id(entries[1])
        assert current_id(ctx) == entries[2]
        assert ctx.machine.transport == Transport.PLAY

    def test_removing_range_with_current(self, ctx, entries):
        ctx.machine.play(1)
        ctx.queue.remove_range(0, 2)
        assert current_id(ctx) == entries[2]

    def test_removing_current_while_stopped_parks_on_successor(self, ctx, entries):
        ctx.machine.play(1)
        ctx.machine.stop()
        ctx.queue.remove_id(entries[1])
        assert ctx.machine.transport == Transport.STOP
        assert current_id(ctx) == entries[2]

    def test_clear_stops(self, ctx, entries):
        ctx.machine.play(0)
        ctx.queue.clear()
        assert ctx.machine.transport == Transport.STOP
        assert ctx.machine.current_entry() is None

    def test_shuffle_keeps_current_position(self, ctx, entries):
        ctx.machine.play(2)
        ctx.machine.shuffle()
        assert ctx.machine.status().song == 2


class TestErrorsAndOptions:
    """Sink failures, seeking, options and volume."""

    def test_sink_failure_stops_with_error(self, ctx, entries):
        sink = Mock()
        sink.start.side_effect = SinkError("device busy")
        ctx.machine.sink = sink

        ctx.machine.play(0)

        status = ctx.machine.status()
        assert status.state == Transport.STOP
        assert status.error == "device busy"
        sink.stop.assert_called_once()

    def test_clear_error(self, ctx, entries):
        ctx.machine.error = "old problem"
        ctx.machine.clear_error()
        assert ctx.machine.status().error is None

    def test_seek_cur_without_song(self, ctx):
        with pytest.raises(NotPlaying):
            ctx.machine.seek_cur(10.0)

    def test_seek_starts_entry(self, ctx, entries, sink):
        ctx.machine.seek(2, 30.0)
        assert current_id(ctx) == entries[2]
        assert ctx.machine.transport == Transport.PLAY
        assert sink.elapsed() >= 30.0

    def test_seek_cur_relative(self, ctx, entries, sink):
        ctx.machine.play(0)
        ctx.machine.seek_cur(20.0)
        ctx.machine.pause(True)
        ctx.machine.seek_cur(-5.0, relative=True)
        assert 14.9 < sink.elapsed() < 16.0

    def test_volume(self, ctx, sink):
        ctx.machine.set_volume(80)
        assert sink.volume == 80
        ctx.machine.change_volume(30)
        assert ctx.machine.state.volume == 100
        ctx.machine.change_volume(-150)
        assert ctx.machine.state.volume == 0

    def test_options_notify(self, ctx):
        notify = Mock()
        ctx.machine._notify = notify
        ctx.machine.set_repeat(True)
        ctx.machine.set_volume(10)
        assert [c.args for c in notify.call_args_list] == [("options",), ("mixer",)]


class TestPersistedState:
    """Restart behaviour."""

    def test_flags_and_current_survive_restart(self, config, db, ctx, entries):
        ctx.machine.set_repeat(True)
        ctx.machine.set_consume(True)
        ctx.machine.set_volume(33)
        ctx.machine.play(2)

        restarted = ServerContext.create(config, NullSink(), db=db)
        try:
            state = restarted.machine.state
            assert (state.repeat, state.random, state.single, state.consume) == (
                True,
                False,
                False,
                True,
            )
            assert state.volume == 33
            assert restarted.machine.transport == Transport.STOP
            assert restarted.machine.current_entry().id == entries[2]
            assert restarted.queue.ids() == entries
        finally:
            restarted.close()
