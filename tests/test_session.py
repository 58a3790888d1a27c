"""
Tests for session state — autosearch/session.py and autosearch/settings.py
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from autosearch.session import Checkpoint, Mode, Phase, Session
from autosearch.settings import Settings
from autosearch.store import (
    ACTIVE_TAB_ID,
    CURRENT_INDEX,
    CURRENT_QUERIES,
    INTERVAL_COUNT,
    INTERVAL_MODE,
    INTERVAL_SEARCH_ACTIVE,
    PENDING_QUERIES,
)


class TestSettings:
    """Tests for the Settings Pydantic model."""

    def test_defaults(self) -> None:
        """Default values should match the documented pacing constants."""
        s = Settings()
        assert s.submit_attempts == 3
        assert s.submit_backoff == 1.0
        assert (s.continuous_delay_min, s.continuous_delay_max) == (3.0, 15.0)
        assert (s.interval_delay_min, s.interval_delay_max) == (3.0, 8.0)
        assert s.interval_batch_size == 5
        assert s.interval_pause_minutes == 15.0
        assert s.interval_pause_jitter == 60
        assert s.backup_check_minutes == 5.0
        assert s.log_max_entries == 500
        assert s.topic_count == 90

    def test_derived_paths(self, tmp_path: Path) -> None:
        s = Settings(state_dir=tmp_path)
        assert s.store_path == tmp_path / "state.json"
        assert s.wake_path == tmp_path / "wake_requests.json"
        assert s.inbox_dir == tmp_path / "inbox"

    def test_inverted_delay_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(interval_delay_min=10, interval_delay_max=5)

    def test_topic_count_bounds(self) -> None:
        with pytest.raises(ValidationError):
            Settings(topic_count=101)

    def test_fallback_topics_must_not_be_empty(self) -> None:
        with pytest.raises(ValidationError):
            Settings(fallback_topics=[])


class TestSession:
    """Tests for Session transitions and its persisted projection."""

    def test_begin_interval(self) -> None:
        session = Session.begin(["a", "b"], Mode.INTERVAL)
        assert session.cursor == 0
        assert session.interval_active is True
        assert session.phase is Phase.QUEUING

    def test_begin_continuous_is_not_interval_active(self) -> None:
        assert Session.begin(["a"], Mode.CONTINUOUS).interval_active is False

    def test_begin_copies_topics(self) -> None:
        topics = ["a", "b"]
        session = Session.begin(topics, Mode.CONTINUOUS)
        topics.append("c")
        assert session.topics == ["a", "b"]

    def test_enqueue_next_advances_cursor_and_count(self) -> None:
        """Each enqueue should move exactly one topic into the queue."""
        session = Session.begin(["a", "b"], Mode.INTERVAL)
        assert session.enqueue_next() == "a"
        assert session.queue == ["a"]
        assert (session.cursor, session.interval_count) == (1, 1)

    def test_enqueue_past_end(self) -> None:
        session = Session.begin(["a"], Mode.CONTINUOUS)
        session.enqueue_next()
        assert session.enqueue_next() is None
        assert session.cursor == 1

    def test_exhausted_waits_for_queue(self) -> None:
        """A session is only exhausted once the last queued topic has been consumed."""
        session = Session.begin(["a"], Mode.CONTINUOUS)
        session.enqueue_next()
        assert session.exhausted is False
        session.queue.clear()
        assert session.exhausted is True

    def test_halted(self) -> None:
        session = Session.begin(["a"], Mode.INTERVAL)
        assert session.halted is False
        session.interval_active = False
        assert session.halted is True

        continuous = Session.begin(["a"], Mode.CONTINUOUS)
        continuous.stopped = True
        assert continuous.halted is True

    def test_checkpoint_uses_store_keys(self) -> None:
        session = Session.begin(["a", "b"], Mode.INTERVAL)
        session.enqueue_next()
        session.active_surface_id = "h1"
        assert session.checkpoint().to_store() == {
            CURRENT_QUERIES: ["a", "b"],
            CURRENT_INDEX: 1,
            INTERVAL_COUNT: 1,
            INTERVAL_MODE: True,
            INTERVAL_SEARCH_ACTIVE: True,
            ACTIVE_TAB_ID: "h1",
            PENDING_QUERIES: ["a"],
        }

    def test_round_trip(self) -> None:
        """A session rebuilt from its checkpoint should carry the same progress."""
        session = Session.begin(["a", "b", "c"], Mode.INTERVAL)
        session.enqueue_next()
        session.queue.clear()
        session.enqueue_next()
        session.active_surface_id = "h7"

        stored = session.checkpoint().to_store()
        restored = Session.from_checkpoint(Checkpoint.model_validate(stored))

        assert restored.topics == session.topics
        assert restored.cursor == 2
        assert restored.interval_count == 2
        assert restored.mode is Mode.INTERVAL
        assert restored.interval_active is True
        assert restored.active_surface_id == "h7"
        assert restored.queue == ["b"]
        assert restored.processing is False

    def test_cursor_is_clamped(self) -> None:
        """A corrupted cursor past the end should be clamped to the topic count."""
        checkpoint = Checkpoint.model_validate({CURRENT_QUERIES: ["a", "b"], CURRENT_INDEX: 9})
        assert Session.from_checkpoint(checkpoint).cursor == 2

    def test_negative_cursor_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Checkpoint.model_validate({CURRENT_QUERIES: ["a"], CURRENT_INDEX: -1})

    def test_checkpoint_keys(self) -> None:
        assert set(Checkpoint.keys()) == {
            CURRENT_QUERIES,
            CURRENT_INDEX,
            INTERVAL_COUNT,
            INTERVAL_MODE,
            INTERVAL_SEARCH_ACTIVE,
            ACTIVE_TAB_ID,
            PENDING_QUERIES,
        }
