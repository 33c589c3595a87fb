"""
Unit tests for the Event & Session Tracker.

Tests cover:
- Session lifecycle and deactivation
- Event buffer and per-name counters
- Event-driven metric updates (streaks, XP, quits, performance)
- Sentiment surveys
- A/B test results
- Persistence round trip with per-field merge
"""

import pytest

from playlens.core.storage import InMemoryStore
from playlens.tracking.cohorts import PLAYER_ID_KEY
from playlens.tracking.session_tracker import (
    STORE_KEY,
    EventBuffer,
    GameEvent,
    SessionTracker,
)


class TestSessionLifecycle:
    """Tests for init / end_session."""

    def test_init_opens_session_and_tracks_start(self, tracker):
        assert tracker.is_active
        assert tracker.session.id.startswith("session_")
        assert tracker.session.counters[GameEvent.SESSION_START.value] == 1
        assert tracker.cohort is not None

    def test_end_session_freezes_and_rolls_up(self, tracker, clock, store):
        clock.tick(120)
        assert tracker.end_session("user_quit") is True

        engagement = tracker.metrics["engagement"]
        assert tracker.session.duration == 120
        assert tracker.session.quit_reason == "user_quit"
        assert engagement["total_sessions"] == 1
        assert engagement["total_playtime"] == 120
        assert engagement["avg_session_duration"] == 120
        assert store.get(STORE_KEY)["metrics"]["engagement"]["total_sessions"] == 1

    def test_tracking_after_end_is_a_no_op(self, tracker):
        tracker.end_session()
        buffered = len(tracker.buffer)

        assert tracker.track_event("jump", {"power": 50}) is False
        assert tracker.end_session() is False
        assert len(tracker.buffer) == buffered

    def test_cohort_fixed_by_persisted_player(self, test_settings, clock, wall_clock):
        store = InMemoryStore({PLAYER_ID_KEY: "player_fixed"})
        first = SessionTracker(store, clock.now, test_settings, wall_clock)
        first.init()
        second = SessionTracker(store, clock.now, test_settings, wall_clock)
        second.init()

        assert first.cohort.cohort_id == second.cohort.cohort_id
        assert first.cohort.test_assignments == second.cohort.test_assignments


class TestEventIngestion:
    """Tests for track_event."""

    def test_counts_unknown_events(self, tracker):
        assert tracker.track_event("custom_thing", {"x": 1}) is True
        assert tracker.track_event("custom_thing") is True
        assert tracker.session.counters["custom_thing"] == 2

    def test_malformed_payload_never_raises(self, tracker):
        assert tracker.track_event("level_up", "garbage") is True
        assert tracker.track_event("level_up", {"xp": "lots"}) is True
        assert tracker.session.levels_gained == 2
        assert tracker.session.xp_gained == 0

    def test_events_are_immutable(self, tracker):
        tracker.track_event("jump", {"power": 50})
        event = tracker.events[-1]
        with pytest.raises(TypeError):
            event.payload["power"] = 10

    def test_buffer_evicts_oldest(self):
        from playlens.tracking.session_tracker import Event

        buffer = EventBuffer(capacity=3)
        for i in range(5):
            buffer.append(Event(name=f"e{i}", timestamp=float(i), session_id="s"))

        assert len(buffer) == 3
        assert [e.name for e in buffer.recent()] == ["e2", "e3", "e4"]
        assert [e.name for e in buffer.recent(2)] == ["e3", "e4"]


class TestMetricUpdates:
    """Tests for event-driven metric updates."""

    def test_streak_metrics(self, tracker):
        tracker.track_event("streak_started")
        tracker.track_event("streak_broken", {"length": 10})
        tracker.track_event("streak_started")
        tracker.track_event("streak_broken", {"length": 20})
        tracker.track_event("grace_period_used")

        addiction = tracker.metrics["addiction"]
        assert addiction["total_streaks"] == 2
        assert addiction["streak_breaks"] == 2
        assert addiction["average_streak_length"] == 15
        assert addiction["max_streak_achieved"] == 20
        assert addiction["streak_recoveries"] == 1
        assert addiction["streak_recovery_rate"] == 0.5
        assert addiction["grace_period_usage"] == pytest.approx(1 / 3)

    def test_xp_rate_from_update(self, tracker, clock):
        tracker.track_event("level_up", {"xp": 100})
        tracker.track_event("xp_gained", {"amount": 50})
        clock.tick(60)
        tracker.update()

        progression = tracker.metrics["progression"]
        assert progression["total_xp"] == 150
        assert progression["xp_per_minute"] == pytest.approx(150)
        assert progression["levels_per_session"] == 1

    def test_quit_points_keyed_by_level(self, tracker):
        tracker.track_event("quit_point", {"level": 5})
        tracker.track_event("quit_point", {"level": 5.0})
        tracker.track_event("quit_point", {})

        quits = tracker.metrics["difficulty"]["quit_points_by_level"]
        assert quits == {"5": 2, "unknown": 1}

    def test_frustration_recorded(self, tracker):
        tracker.track_event("frustration_detected", {"intensity": 0.8, "context": "spikes", "level": 3})

        assert len(tracker.session.frustration_events) == 1
        indicator = tracker.metrics["difficulty"]["frustration_indicators"][0]
        assert indicator["level"] == "3"
        assert indicator["intensity"] == 0.8

    def test_flow_duration_summed(self, tracker):
        tracker.track_event("flow_state_detected", {"duration": 30})
        tracker.track_event("flow_state_detected", {"duration": 15})
        tracker.update()
        assert tracker.metrics["difficulty"]["flow_state_duration"] == 45


class TestPerformanceMetrics:
    """Tests for update_performance_metrics."""

    def test_fps_ema(self, tracker):
        tracker.update_performance_metrics(fps=50)
        assert tracker.metrics["performance"]["avg_fps"] == pytest.approx(59.0)

    def test_low_fps_emits_frame_drop(self, tracker):
        tracker.update_performance_metrics(fps=30)

        performance = tracker.metrics["performance"]
        assert performance["frame_drops"] == 1
        assert performance["min_fps"] == 30
        assert tracker.events[-1].name == GameEvent.PERFORMANCE_ISSUE.value

    def test_memory_peak(self, tracker):
        tracker.update_performance_metrics(memory_kb=2048)
        tracker.update_performance_metrics(memory_kb=1024)

        performance = tracker.metrics["performance"]
        assert performance["memory_usage"] == 1024
        assert performance["memory_peak"] == 2048

    def test_crash_counted(self, tracker):
        tracker.track_event("performance_issue", {"type": "crash"})
        assert tracker.metrics["performance"]["crash_count"] == 1


class TestSentiment:
    """Tests for micro-survey ratings."""

    def test_last_write_wins(self, tracker):
        tracker.record_sentiment("overall", 4)
        tracker.record_sentiment("overall", 2)

        assert tracker.metrics["sentiment"]["overall_satisfaction"] == 2
        assert tracker.get_sentiment_scores()["overall"] == [4, 2]

    def test_rating_is_clamped(self, tracker):
        tracker.record_sentiment("difficulty", 9)
        tracker.record_sentiment("difficulty", -3)
        assert tracker.get_sentiment_scores()["difficulty"] == [5, 1]

    def test_invalid_input_ignored(self, tracker):
        assert tracker.record_sentiment("mood", 3) is False
        assert tracker.record_sentiment("overall", "great") is False
        assert tracker.metrics["sentiment"]["survey_responses"] == []

    def test_survey_tracked_as_event(self, tracker):
        tracker.record_sentiment("ui", 5, {"screen": "menu"})
        assert tracker.session.counters[GameEvent.SENTIMENT_SURVEY.value] == 1


class TestABTests:
    """Tests for A/B result collection."""

    def test_compare_variants(self, tracker):
        for value in (10, 11, 12, 11):
            tracker.track_ab_test_result("xp_scaling", "control", "retention", value)
        for value in (20, 21, 22, 21):
            tracker.track_ab_test_result("xp_scaling", "variant_a", "retention", value)

        result = tracker.compare_variants("xp_scaling", "retention")
        assert result.significant
        assert result.statistic > 0

    def test_compare_without_treatment_data(self, tracker):
        tracker.track_ab_test_result("xp_scaling", "control", "retention", 1)
        assert tracker.compare_variants("xp_scaling", "retention") is None

    def test_variant_lookup(self, tracker):
        assignments = tracker.cohort.test_assignments
        assert tracker.get_ab_test_variant("visual_intensity") == assignments["visual_intensity"]
        assert tracker.get_ab_test_variant("unknown_test") == "control"

        tracker.reset()
        assert tracker.get_ab_test_variant("xp_scaling") == "control"


class TestReportsAndPersistence:
    """Tests for snapshots and the merge-load round trip."""

    def test_analytics_report_shape(self, tracker):
        report = tracker.get_analytics_report()
        assert {"session", "metrics", "cohort", "ab_tests"} <= set(report)
        assert report["ab_tests"]["cohort_id"] == tracker.cohort.cohort_id

    def test_key_metrics_shape(self, tracker):
        key_metrics = tracker.get_key_metrics()
        assert set(key_metrics) == {"engagement", "addiction", "progression", "satisfaction"}

    def test_save_then_load_reproduces_metrics(self, tracker, store, clock, test_settings, wall_clock):
        tracker.track_event("mystery_box_collected")
        tracker.track_event("quit_point", {"level": 2})
        tracker.record_sentiment("overall", 4)
        clock.tick(30)
        tracker.end_session()

        fresh = SessionTracker(store, clock.now, test_settings, wall_clock)
        fresh.init()

        assert fresh.metrics["events"]["mystery_boxes_collected"] == 1
        assert fresh.metrics["difficulty"]["quit_points_by_level"] == {"2": 1}
        assert fresh.metrics["sentiment"]["overall_satisfaction"] == 4
        assert fresh.metrics["engagement"]["total_sessions"] == 1

    def test_partial_record_keeps_defaults(self, clock, test_settings, wall_clock):
        store = InMemoryStore({STORE_KEY: {"metrics": {"events": {"mystery_boxes_collected": 7}}}})
        tracker = SessionTracker(store, clock.now, test_settings, wall_clock)
        tracker.init()

        assert tracker.metrics["events"]["mystery_boxes_collected"] == 7
        assert tracker.metrics["events"]["random_events_experienced"] == 0
        assert tracker.metrics["performance"]["avg_fps"] == 60.0
