from __future__ import annotations

import math

import pytest

from app.services.watch_tracker import (
    PlaybackState,
    SessionStats,
    SessionStatsTracker,
    WatchProgressTracker,
    WatchSegmentRecorder,
)


@pytest.fixture
def tracker(clock) -> WatchProgressTracker:
    return WatchProgressTracker("user-1", "intro-video", duration=100, clock=clock)


def _play_through(tracker: WatchProgressTracker, start: float, end: float, step: float = 0.8) -> None:
    position = start
    while position < end:
        position = min(end, round(position + step, 3))
        tracker.handle_time_update(position)


# --- WatchSegmentRecorder -----------------------------------------------------

def test_short_delta_is_not_emitted() -> None:
    recorder = WatchSegmentRecorder()

    assert recorder.observe(10.0, 10.3, True) is None
    assert recorder.cursor == 10.3


def test_long_delta_is_treated_as_seek() -> None:
    recorder = WatchSegmentRecorder()

    assert recorder.observe(10.0, 45.0, True) is None
    assert recorder.cursor == 45.0


def test_band_edges() -> None:
    recorder = WatchSegmentRecorder()

    assert recorder.observe(10.0, 10.5, True) == (10, 11)
    assert recorder.observe(10.0, 12.0, True) is None
    assert recorder.observe(10.0, 11.99, True) == (10, 12)


def test_not_playing_never_emits() -> None:
    recorder = WatchSegmentRecorder()

    assert recorder.observe(10.0, 11.0, False) is None
    assert recorder.cursor == 11.0


def test_backwards_delta_is_discarded() -> None:
    recorder = WatchSegmentRecorder()

    assert recorder.observe(20.0, 19.0, True) is None


def test_flush_uses_cursor_and_reanchors() -> None:
    recorder = WatchSegmentRecorder()
    recorder.reanchor(30.2)

    assert recorder.flush(31.0) == (30, 31)
    assert recorder.cursor == 31.0


def test_flush_without_cursor_only_anchors() -> None:
    recorder = WatchSegmentRecorder()

    assert recorder.flush(5.0) is None
    assert recorder.cursor == 5.0


def test_custom_thresholds() -> None:
    recorder = WatchSegmentRecorder(min_segment=1.0, max_segment=5.0)

    assert recorder.observe(0.0, 0.7, True) is None
    assert recorder.observe(0.0, 4.0, True) == (0, 4)


def test_invalid_thresholds_rejected() -> None:
    with pytest.raises(ValueError):
        WatchSegmentRecorder(min_segment=2.0, max_segment=1.0)


# --- SessionStatsTracker --------------------------------------------------------

def test_stats_counters(clock) -> None:
    stats = SessionStatsTracker(clock)

    stats.on_play()
    clock.advance(3)
    stats.on_pause()
    stats.on_seek()
    stats.on_seek()
    assert stats.on_rate_change(1.5)
    assert stats.on_rate_change(2.0)

    assert stats.snapshot() == SessionStats(watch_time=3, pauses=1, seeks=2, playback_rate=2.0)


def test_stats_rejects_invalid_rate(clock) -> None:
    stats = SessionStatsTracker(clock)

    assert not stats.on_rate_change(0)
    assert not stats.on_rate_change(-1)
    assert stats.snapshot().playback_rate == 1.0


def test_watch_time_only_accumulates_while_playing(clock) -> None:
    stats = SessionStatsTracker(clock)

    clock.advance(10)
    stats.on_play()
    clock.advance(4)
    stats.tick()
    clock.advance(1)
    assert stats.snapshot().watch_time == 5

    stats.on_stop()
    clock.advance(20)
    assert stats.snapshot().watch_time == 5


def test_stats_reset_keeps_playing(clock) -> None:
    stats = SessionStatsTracker(clock)
    stats.on_play()
    clock.advance(5)
    stats.on_seek()

    stats.reset()
    clock.advance(2)

    assert stats.is_playing
    assert stats.snapshot() == SessionStats(watch_time=2)


# --- WatchProgressTracker -------------------------------------------------------

def test_initial_snapshot(tracker) -> None:
    snapshot = tracker.get_snapshot()

    assert snapshot.watched_set == ()
    assert snapshot.total_unique_seconds == 0
    assert snapshot.completion_percentage == 0
    assert snapshot.session_stats == SessionStats()
    assert snapshot.state is PlaybackState.IDLE


def test_record_observation_merges(tracker) -> None:
    assert tracker.record_observation(2.0, 3.0, True) == (2, 3)
    assert tracker.record_observation(2.5, 3.2, True) == (2, 4)
    assert tracker.record_observation(10.0, 11.5, True) == (10, 12)

    assert tracker.watched_set == ((2, 4), (10, 12))
    assert tracker.get_snapshot().total_unique_seconds == 4


def test_record_observation_filters_noise(tracker) -> None:
    assert tracker.record_observation(10.0, 10.3, True) is None
    assert tracker.record_observation(10.0, 45.0, True) is None
    assert tracker.watched_set == ()
    assert tracker.current_time == 45.0


def test_continuous_play_builds_one_interval(tracker) -> None:
    tracker.handle_play()
    _play_through(tracker, 0, 10)
    tracker.handle_pause()

    snapshot = tracker.get_snapshot()
    assert snapshot.watched_set == ((0, 10),)
    assert snapshot.completion_percentage == 10
    assert snapshot.state is PlaybackState.PAUSED


def test_replay_does_not_increase_progress(tracker, clock) -> None:
    tracker.handle_play()
    _play_through(tracker, 0, 10)
    tracker.handle_seeked(0.0)
    _play_through(tracker, 0, 10)
    clock.advance(20)

    snapshot = tracker.get_snapshot()
    assert snapshot.total_unique_seconds == 10
    assert snapshot.session_stats.seeks == 1
    assert snapshot.session_stats.watch_time == 20


def test_time_updates_while_paused_do_not_record(tracker) -> None:
    _play_through(tracker, 0, 5)

    assert tracker.watched_set == ()
    assert tracker.recorder.cursor == 5


def test_pause_flushes_last_fraction(tracker) -> None:
    tracker.handle_play()
    tracker.handle_time_update(0.8)
    tracker.handle_time_update(1.6)

    interval = tracker.handle_pause(position=2.3)

    assert interval == (1, 3)
    assert tracker.watched_set == ((0, 3),)
    assert tracker.get_snapshot().session_stats.pauses == 1
    assert tracker.current_time == 2.3


def test_pause_when_not_playing_is_ignored(tracker) -> None:
    assert tracker.handle_pause() is None
    assert tracker.state is PlaybackState.IDLE
    assert tracker.get_snapshot().session_stats.pauses == 0


def test_play_twice_is_single_transition(tracker, clock) -> None:
    tracker.handle_play()
    clock.advance(2)
    tracker.handle_play()
    clock.advance(2)

    assert tracker.state is PlaybackState.PLAYING
    assert tracker.get_snapshot().session_stats.watch_time == 4


def test_resume_after_pause(tracker) -> None:
    tracker.handle_play()
    tracker.handle_pause()
    tracker.handle_play()

    assert tracker.state is PlaybackState.PLAYING


def test_seek_while_playing_flushes_and_reanchors(tracker) -> None:
    tracker.handle_play()
    tracker.handle_time_update(0.9)

    interval = tracker.handle_seeked(50.0, from_position=1.7)

    assert interval == (0, 2)
    assert tracker.recorder.cursor == 50.0
    assert tracker.state is PlaybackState.PLAYING

    tracker.handle_time_update(50.8)
    assert tracker.watched_set == ((0, 2), (50, 51))


def test_seek_jump_is_not_recorded(tracker) -> None:
    tracker.handle_play()
    tracker.handle_time_update(0.8)

    tracker.handle_seeked(60.0, from_position=60.0)

    assert tracker.watched_set == ((0, 1),)


def test_seek_states(tracker) -> None:
    tracker.handle_seeked(10.0)
    assert tracker.state is PlaybackState.PAUSED

    tracker.handle_play()
    tracker.handle_seeked(20.0)
    assert tracker.state is PlaybackState.PLAYING

    tracker.handle_pause()
    tracker.handle_seeked(30.0)
    assert tracker.state is PlaybackState.PAUSED
    assert tracker.get_snapshot().session_stats.seeks == 3


def test_rate_change(tracker) -> None:
    tracker.handle_rate_change(1.25)
    tracker.handle_rate_change(0)

    assert tracker.get_snapshot().session_stats.playback_rate == 1.25


def test_duration_known_late(clock) -> None:
    tracker = WatchProgressTracker("user-1", "late-duration", clock=clock)
    tracker.record_observation(0.0, 1.0, True)
    assert tracker.get_snapshot().completion_percentage == 0

    tracker.handle_duration(0)
    assert tracker.duration == 0

    tracker.handle_duration(4)
    assert tracker.get_snapshot().completion_percentage == 25


def test_load_snapshot_normalizes(tracker) -> None:
    tracker.load_snapshot([[5, 3], [1, 2], [2, 4]], last_position=4.0, duration=10)

    snapshot = tracker.get_snapshot()
    assert snapshot.watched_set == ((1, 4),)
    assert snapshot.total_unique_seconds == 3
    assert snapshot.completion_percentage == 30
    assert snapshot.last_position == 4.0
    assert tracker.recorder.cursor == 4.0


def test_load_snapshot_seeds_cursor_for_next_sample(tracker) -> None:
    tracker.load_snapshot([[0, 20]], last_position=20.0, duration=100)
    tracker.handle_play()
    tracker.handle_time_update(20.9)

    assert tracker.watched_set == ((0, 21),)


def test_load_snapshot_ignores_non_finite_values(tracker) -> None:
    tracker.load_snapshot([[0, math.inf], [2, 4]], last_position=math.nan, duration=math.inf)

    snapshot = tracker.get_snapshot()
    assert snapshot.watched_set == ((2, 4),)
    assert snapshot.completion_percentage == 2
    assert snapshot.last_position == 0.0
    assert snapshot.duration == 100
    assert snapshot.to_payload()["total_unique_seconds"] == 2


def test_load_snapshot_keeps_duration_when_unknown(tracker) -> None:
    tracker.load_snapshot([], last_position=0, duration=0)

    assert tracker.duration == 100


def test_reset_clears_set_and_stats(tracker, clock) -> None:
    tracker.handle_play()
    _play_through(tracker, 0, 5)
    tracker.handle_seeked(40.0)
    tracker.handle_rate_change(2.0)

    tracker.reset()

    snapshot = tracker.get_snapshot()
    assert snapshot.watched_set == ()
    assert snapshot.total_unique_seconds == 0
    assert snapshot.session_stats == SessionStats()
    assert snapshot.state is PlaybackState.PLAYING


def test_snapshot_is_a_copy(tracker) -> None:
    tracker.record_observation(0.0, 1.0, True)
    snapshot = tracker.get_snapshot()

    tracker.record_observation(5.0, 6.0, True)

    assert snapshot.watched_set == ((0, 1),)


def test_payload_wire_format(tracker) -> None:
    tracker.record_observation(0.0, 1.0, True)
    tracker.record_observation(4.2, 5.1, True)

    payload = tracker.get_snapshot().to_payload()

    assert payload == {
        "intervals": [[0, 1], [4, 6]],
        "total_unique_seconds": 3,
        "last_position": 5.1,
        "duration": 100.0,
    }


def test_subscribers_notified(tracker) -> None:
    seen = []
    unsubscribe = tracker.subscribe(seen.append)

    tracker.record_observation(0.0, 1.0, True)
    tracker.record_observation(1.0, 1.1, True)
    tracker.reset()
    unsubscribe()
    tracker.record_observation(3.0, 4.0, True)

    assert [s.total_unique_seconds for s in seen] == [1, 0]


def test_subscriber_errors_do_not_break_tracker(tracker) -> None:
    def broken(snapshot):
        raise RuntimeError("boom")

    tracker.subscribe(broken)
    tracker.record_observation(0.0, 1.0, True)

    assert tracker.watched_set == ((0, 1),)
