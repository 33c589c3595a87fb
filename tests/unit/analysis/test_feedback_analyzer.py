"""
Unit tests for the periodic Feedback Analyzer.

Tests cover:
- Phase sequence of one analysis pass
- Interval scheduling
- Failing or missing report sources
- Report ranking, churn and journeys
- Interventions and persistence
"""

import pytest

from playlens.analysis.feedback_analyzer import (
    STORE_KEY,
    AnalysisPhase,
    FeedbackAnalyzer,
    split_journeys,
)
from playlens.analysis.intervention_engine import InterventionEngine
from playlens.core.clock import GameClock
from playlens.core.storage import InMemoryStore
from playlens.schemas.analytics import ChurnRiskLevel, InsightType, Severity
from playlens.services.dynamic_config import DynamicConfig


BAD_PERFORMANCE = {"avg_fps": 20, "frame_drops": 20, "crash_count": 1}


def failing_source():
    raise RuntimeError("source offline")


@pytest.fixture
def events():
    return []


def make_analyzer(sources, store=None, clock=None, settings=None, events=None, configuration=None):
    track = (lambda name, data: events.append((name, data))) if events is not None else None
    analyzer = FeedbackAnalyzer(
        sources,
        interventions=InterventionEngine(configuration, track),
        store=store,
        clock=(clock or GameClock()).now,
        settings=settings,
        track_event=track,
    )
    analyzer.init()
    return analyzer


class TestAnalysisPass:
    """Tests for one complete analysis pass."""

    def test_phase_sequence(self):
        analyzer = make_analyzer({"performance": lambda: {"avg_fps": 60}})
        analyzer.run_analysis()

        assert analyzer.phase_history == [
            AnalysisPhase.GATHERING_INPUTS,
            AnalysisPhase.ANALYZING,
            AnalysisPhase.REPORT_GENERATED,
            AnalysisPhase.INTERVENTION_CHECK,
            AnalysisPhase.IDLE,
        ]
        assert analyzer.phase == AnalysisPhase.IDLE

    def test_failing_source_is_skipped(self):
        analyzer = make_analyzer({
            "performance": failing_source,
            "sentiment": lambda: {"overall": [4.5]},
        })
        report = analyzer.run_analysis()

        assert "performance" in report.skipped_categories
        assert "engagement" in report.skipped_categories
        assert "sentiment" not in report.skipped_categories
        assert report.total_insights == 0

    def test_unknown_source_rejected(self):
        with pytest.raises(ValueError):
            FeedbackAnalyzer({"telemetry": dict})

    def test_report_ranks_by_severity(self, test_settings):
        analyzer = make_analyzer({"performance": lambda: BAD_PERFORMANCE}, settings=test_settings)
        report = analyzer.run_analysis()

        assert report.total_insights == 3
        assert report.critical_issues == 2
        assert report.insights_by_category["performance"] == 3
        assert report.insights_by_category["engagement"] == 0
        assert [r.category for r in report.top_recommendations] == [
            InsightType.LOW_FPS,
            InsightType.CRASHES_DETECTED,
            InsightType.FREQUENT_FRAME_DROPS,
        ]
        assert report.top_recommendations[-1].severity == Severity.MEDIUM

    def test_churn_from_analytics(self):
        analytics = {
            "metrics": {"engagement": {"sessions_per_day": 0.2, "total_sessions": 0, "session_duration": 100}},
            "session": {"duration": 100},
        }
        report = make_analyzer({"analytics": lambda: analytics}).run_analysis()

        assert report.churn.risk_level == ChurnRiskLevel.MEDIUM
        assert report.churn.indicators == ["low_session_frequency", "short_sessions"]

    def test_journeys_from_event_stream(self):
        stream = ["session_start", "jump", "landing"] * 3
        report = make_analyzer({"events": lambda: stream}).run_analysis()

        assert report.journeys["total_journeys"] == 3
        assert report.journeys["common_paths"] == [{"sequence": "session_start->jump->landing", "frequency": 3}]

    def test_split_journeys(self):
        assert split_journeys(["a", "session_start", "b"]) == [["a"], ["session_start", "b"]]
        assert split_journeys([]) == []


class TestScheduling:
    """Tests for interval-driven passes."""

    def test_runs_once_per_interval(self, test_settings):
        analyzer = make_analyzer({"performance": lambda: {}}, settings=test_settings)

        assert analyzer.update(30) is None
        assert analyzer.update(30) is not None
        assert analyzer.elapsed == 0.0
        assert analyzer.update(59) is None
        assert analyzer.analysis_count == 1

    @pytest.mark.parametrize("dt", [0, -5, None, "1", True])
    def test_invalid_delta_ignored(self, dt):
        analyzer = make_analyzer({})
        assert analyzer.update(dt) is None
        assert analyzer.elapsed == 0.0

    def test_inactive_does_nothing(self):
        analyzer = make_analyzer({})
        analyzer.is_active = False
        assert analyzer.update(1000) is None


class TestInterventions:
    """Tests for critical insights reaching the configuration surface."""

    def test_critical_findings_apply_configuration(self, events):
        config = DynamicConfig()
        analyzer = make_analyzer(
            {"performance": lambda: BAD_PERFORMANCE}, events=events, configuration=config
        )
        analyzer.run_analysis()

        # LOW_FPS then CRASHES_DETECTED; the later target wins
        assert config.get_value("particle_intensity") == 0.3
        assert config.get_value("animation_speed") == 0.8
        assert [o.applied for o in analyzer.last_outcomes] == [True, True]

        names = [name for name, _ in events]
        assert names[0] == "insights_report_generated"
        assert names.count("auto_intervention") == 2

    def test_report_snapshot(self):
        analyzer = make_analyzer({"performance": lambda: BAD_PERFORMANCE})
        assert analyzer.get_analysis_report() is None

        analyzer.run_analysis()
        snapshot = analyzer.get_analysis_report()
        assert snapshot["phase"] == "idle"
        assert snapshot["analysis_count"] == 1
        assert len(snapshot["insights"]) == 3
        assert all(not o["applied"] for o in snapshot["interventions"])


class TestPersistence:
    """Tests for analysis bookkeeping round trips."""

    def test_round_trip(self):
        store = InMemoryStore()
        clock = GameClock()
        clock.tick(42)
        analyzer = make_analyzer({"performance": lambda: BAD_PERFORMANCE}, store=store, clock=clock)
        analyzer.run_analysis()

        record = store.get(STORE_KEY)
        assert record["insights"]["total"] == 3
        assert record["insights"]["critical"] == 2

        fresh = make_analyzer({}, store=store, clock=clock)
        assert fresh.analysis_count == 1
        assert fresh.last_analysis == 42.0

    def test_reset_clears_counters(self):
        analyzer = make_analyzer({"performance": lambda: {}})
        analyzer.run_analysis()
        analyzer.reset()
        assert analyzer.analysis_count == 0
        assert analyzer.get_analysis_report() is None
