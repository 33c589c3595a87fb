"""
Unit tests for the churn risk model.
"""

import pytest

from playlens.analysis.churn import ChurnInputs, ChurnPredictor
from playlens.schemas.analytics import ChurnRiskLevel
from playlens.tracking.session_tracker import default_metrics


@pytest.fixture
def predictor():
    return ChurnPredictor()


class TestChurnPredictor:
    """Tests for indicator weights and risk buckets."""

    def test_healthy_player_is_low_risk(self, predictor):
        prediction = predictor.predict(ChurnInputs(
            sessions_per_day=2.0,
            avg_session_duration=900,
            progression_satisfaction=4.5,
            frustration_events_per_session=0.5,
            recent_crashes=0,
            avg_fps=60,
        ))
        assert prediction.risk_score == 0
        assert prediction.risk_level == ChurnRiskLevel.LOW
        assert prediction.indicators == []

    def test_weights_are_additive(self, predictor):
        prediction = predictor.predict(ChurnInputs(
            sessions_per_day=0.2,
            avg_session_duration=120,
        ))
        assert prediction.indicators == ["low_session_frequency", "short_sessions"]
        assert prediction.risk_score == pytest.approx(0.55)
        assert prediction.risk_level == ChurnRiskLevel.MEDIUM

    def test_high_risk(self, predictor):
        prediction = predictor.predict(ChurnInputs(
            sessions_per_day=0.2,
            progression_satisfaction=2.0,
            recent_crashes=1,
        ))
        assert prediction.risk_score == pytest.approx(0.8)
        assert prediction.risk_level == ChurnRiskLevel.HIGH
        assert "Fix performance problems" in prediction.recommendations

    @pytest.mark.parametrize("score,level", [
        (0.4, ChurnRiskLevel.LOW),
        (0.41, ChurnRiskLevel.MEDIUM),
        (0.7, ChurnRiskLevel.MEDIUM),
        (0.71, ChurnRiskLevel.HIGH),
    ])
    def test_cutoffs(self, predictor, score, level):
        assert predictor.risk_level(score) == level

    def test_missing_signals_are_skipped(self, predictor):
        assert predictor.predict(ChurnInputs()).risk_score == 0

    def test_custom_weights_merge(self):
        predictor = ChurnPredictor(custom_weights={"technical_issues": 0.9})
        prediction = predictor.predict(ChurnInputs(avg_fps=20))
        assert prediction.risk_score == pytest.approx(0.9)
        assert predictor.weights["short_sessions"] == 0.25


class TestChurnInputs:
    """Tests for deriving indicators from tracker metrics."""

    def test_from_fresh_metrics(self):
        metrics = default_metrics()
        metrics["engagement"]["sessions_per_day"] = 1.0
        inputs = ChurnInputs.from_metrics(metrics, is_active=True)

        assert inputs.progression_satisfaction is None
        assert inputs.frustration_events_per_session == 0
        assert inputs.avg_session_duration == 0.0
        assert inputs.avg_fps == 60.0

    def test_uses_completed_session_average(self):
        metrics = default_metrics()
        metrics["engagement"].update(total_sessions=2, avg_session_duration=700, session_duration=30)
        metrics["difficulty"]["total_frustration_events"] = 9
        metrics["sentiment"]["progression_satisfaction"] = 2.5

        inputs = ChurnInputs.from_metrics(metrics, is_active=True)
        assert inputs.avg_session_duration == 700
        assert inputs.frustration_events_per_session == pytest.approx(3.0)
        assert inputs.progression_satisfaction == 2.5
