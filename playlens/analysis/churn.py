"""
Churn risk prediction

Additive weighted model over five independent indicators, bucketed into
low/medium/high by two cut-offs. The weights are hand-tuned configuration.
"""
from typing import Any, Dict, List, Mapping, Optional
from dataclasses import dataclass
import logging

from playlens.core.payload import as_number
from playlens.schemas.analytics import ChurnPrediction, ChurnRiskLevel

logger = logging.getLogger(__name__)


@dataclass
class ChurnInputs:
    """
    Indicator values. ``None`` means the signal is unavailable and the
    indicator is skipped rather than counted.
    """
    sessions_per_day: Optional[float] = None
    avg_session_duration: Optional[float] = None
    progression_satisfaction: Optional[float] = None
    frustration_events_per_session: Optional[float] = None
    recent_crashes: int = 0
    avg_fps: Optional[float] = None

    @classmethod
    def from_metrics(cls, metrics: Mapping[str, Any], is_active: bool = True) -> "ChurnInputs":
        """Derive indicator values from the tracker's lifetime metrics"""
        engagement = metrics.get("engagement") or {}
        sentiment = metrics.get("sentiment") or {}
        difficulty = metrics.get("difficulty") or {}
        performance = metrics.get("performance") or {}

        total_sessions = int(as_number(engagement, "total_sessions"))
        session_count = total_sessions + (1 if is_active else 0)

        if total_sessions > 0:
            avg_duration = as_number(engagement, "avg_session_duration", default=None)
        else:
            avg_duration = as_number(engagement, "session_duration", default=None)

        # A rating of 0 means no survey was ever answered
        progression = as_number(sentiment, "progression_satisfaction", default=None)
        if progression is not None and progression <= 0:
            progression = None

        frustration_total = as_number(difficulty, "total_frustration_events", default=None)
        frustration_rate = (
            frustration_total / session_count
            if frustration_total is not None and session_count > 0 else None
        )

        return cls(
            sessions_per_day=as_number(engagement, "sessions_per_day", default=None) if session_count else None,
            avg_session_duration=avg_duration,
            progression_satisfaction=progression,
            frustration_events_per_session=frustration_rate,
            recent_crashes=int(as_number(performance, "crash_count")),
            avg_fps=as_number(performance, "avg_fps", default=None),
        )


class ChurnPredictor:
    """Weighted indicator model for abandonment risk"""

    WEIGHTS = {
        "low_session_frequency": 0.3,
        "short_sessions": 0.25,
        "progression_dissatisfaction": 0.35,
        "high_frustration": 0.2,
        "technical_issues": 0.15,
    }

    THRESHOLDS = {
        "sessions_per_day_min": 0.5,
        "session_duration_min": 300.0,
        "progression_satisfaction_min": 3.0,
        "frustration_per_session_max": 2.0,
        "fps_min": 30.0,
        "medium_risk": 0.4,
        "high_risk": 0.7,
    }

    RETENTION_ACTIONS = {
        "low_session_frequency": "Add daily login bonuses",
        "short_sessions": "Improve onboarding and early hooks",
        "progression_dissatisfaction": "Increase progression rewards",
        "high_frustration": "Adjust difficulty or add assistance",
        "technical_issues": "Fix performance problems",
    }

    def __init__(
        self,
        custom_weights: Optional[Dict[str, float]] = None,
        custom_thresholds: Optional[Dict[str, float]] = None,
    ):
        self.weights = {**self.WEIGHTS, **(custom_weights or {})}
        self.thresholds = {**self.THRESHOLDS, **(custom_thresholds or {})}

    def predict(self, inputs: ChurnInputs) -> ChurnPrediction:
        t = self.thresholds
        indicators: List[str] = []

        if inputs.sessions_per_day is not None and inputs.sessions_per_day < t["sessions_per_day_min"]:
            indicators.append("low_session_frequency")

        if inputs.avg_session_duration is not None and inputs.avg_session_duration < t["session_duration_min"]:
            indicators.append("short_sessions")

        if (inputs.progression_satisfaction is not None
                and inputs.progression_satisfaction < t["progression_satisfaction_min"]):
            indicators.append("progression_dissatisfaction")

        if (inputs.frustration_events_per_session is not None
                and inputs.frustration_events_per_session > t["frustration_per_session_max"]):
            indicators.append("high_frustration")

        if inputs.recent_crashes > 0 or (inputs.avg_fps is not None and inputs.avg_fps < t["fps_min"]):
            indicators.append("technical_issues")

        risk_score = sum(self.weights[name] for name in indicators)

        return ChurnPrediction(
            risk_score=risk_score,
            risk_level=self.risk_level(risk_score),
            indicators=indicators,
            recommendations=self.retention_recommendations(indicators),
        )

    def risk_level(self, risk_score: float) -> ChurnRiskLevel:
        if risk_score > self.thresholds["high_risk"]:
            return ChurnRiskLevel.HIGH
        if risk_score > self.thresholds["medium_risk"]:
            return ChurnRiskLevel.MEDIUM
        return ChurnRiskLevel.LOW

    def retention_recommendations(self, indicators: List[str]) -> List[str]:
        return [self.RETENTION_ACTIONS[name] for name in indicators if name in self.RETENTION_ACTIONS]
