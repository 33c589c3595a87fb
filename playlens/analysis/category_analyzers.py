"""
Category analyzers for the periodic analysis pass

Each analyzer turns the gathered reports into severity-tagged insights for
one category. An analyzer whose report sources are all unavailable is
skipped; the rest of the pass continues.

Report sources (keys of ``AnalysisInputs``):
- analytics: session tracker snapshot (``get_analytics_report``)
- sentiment: survey ratings grouped by kind
- performance: performance metrics
- behavior: movement/exploration summary
- patterns: skill/emotional analysis
- insights: latest player-facing InsightSet
- events: recent event names, oldest first
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from collections import Counter
from dataclasses import dataclass
import logging

from playlens.analysis.statistical_tools import ChiSquareTest, PooledTTest, linear_trend, mean
from playlens.core.payload import as_number
from playlens.schemas.analytics import (
    ChurnPrediction,
    ChurnRiskLevel,
    Insight,
    InsightCategory,
    InsightSet,
    InsightType,
    Severity,
)

logger = logging.getLogger(__name__)


@dataclass
class AnalysisInputs:
    analytics: Optional[Dict[str, Any]] = None
    sentiment: Optional[Dict[str, List[float]]] = None
    performance: Optional[Dict[str, Any]] = None
    behavior: Optional[Dict[str, Any]] = None
    patterns: Optional[Dict[str, Any]] = None
    insights: Optional[InsightSet] = None
    events: Optional[List[str]] = None
    churn: Optional[ChurnPrediction] = None

    def section(self, source: str, *path: str) -> Mapping[str, Any]:
        """Nested mapping under a source, or an empty mapping"""
        node: Any = getattr(self, source, None)
        for key in path:
            if not isinstance(node, Mapping):
                return {}
            node = node.get(key)
        return node if isinstance(node, Mapping) else {}

    def ratings(self, kind: str) -> List[float]:
        if not isinstance(self.sentiment, Mapping):
            return []
        values = self.sentiment.get(kind) or []
        return [v for v in values if isinstance(v, (int, float)) and not isinstance(v, bool)]


def _insight(
    category: InsightCategory,
    insight_type: InsightType,
    severity: Severity,
    recommendation: str,
    metric: Optional[float] = None,
    target: Optional[float] = None,
    confidence: float = 0.8,
    **details: Any,
) -> Insight:
    return Insight(
        category=category,
        type=insight_type,
        severity=severity,
        message=recommendation,
        recommendation=recommendation,
        confidence=confidence,
        metric=metric,
        target=target,
        details=details,
    )


# ==================== Pattern recognition ====================

def analyze_quit_points(quit_data: Mapping[str, Any], threshold: float = 0.15) -> Dict[str, Any]:
    """
    Levels whose share of all quits exceeds ``threshold``, highest rate
    first.
    """
    quits_by_level = {
        str(level): int(count)
        for level, count in (quit_data or {}).items()
        if isinstance(count, (int, float)) and not isinstance(count, bool) and count > 0
    }
    total_quits = sum(quits_by_level.values())

    problematic = []
    if total_quits > 0:
        for level, count in quits_by_level.items():
            quit_rate = count / total_quits
            if quit_rate > threshold:
                problematic.append({"level": level, "quit_rate": quit_rate, "quit_count": count})
    problematic.sort(key=lambda entry: entry["quit_rate"], reverse=True)

    return {
        "total_quits": total_quits,
        "problematic_levels": problematic,
        "quit_distribution": quits_by_level,
    }


def analyze_player_journeys(journeys: Sequence[Sequence[str]], min_occurrences: int = 3) -> Dict[str, Any]:
    """Event-name trigrams seen at least ``min_occurrences`` times, most common first"""
    sequence_counts: Counter = Counter()
    for journey in journeys:
        names = list(journey)
        for i in range(len(names) - 2):
            sequence_counts["->".join(names[i:i + 3])] += 1

    common_paths = [
        {"sequence": sequence, "frequency": count}
        for sequence, count in sequence_counts.most_common()
        if count >= min_occurrences
    ]

    return {
        "total_journeys": len(journeys),
        "common_paths": common_paths,
        "unique_patterns": len({"->".join(journey) for journey in journeys}),
    }


# ==================== Analyzers ====================

class CategoryAnalyzer(ABC):
    """Produces insights for one category from the gathered reports"""

    category: InsightCategory
    sources: Tuple[str, ...] = ()
    THRESHOLDS: Dict[str, float] = {}

    def __init__(self, custom_thresholds: Optional[Dict[str, float]] = None):
        self.thresholds = {**self.THRESHOLDS, **(custom_thresholds or {})}

    def available(self, inputs: AnalysisInputs) -> bool:
        return any(getattr(inputs, source, None) is not None for source in self.sources)

    @abstractmethod
    def analyze(self, inputs: AnalysisInputs) -> List[Insight]:
        ...


class EngagementAnalyzer(CategoryAnalyzer):
    category = InsightCategory.ENGAGEMENT
    sources = ("analytics",)

    THRESHOLDS = {
        "session_length_min": 600.0,      # 10 minutes
        "session_length_max": 1800.0,     # 30 minutes
        "low_engagement_session": 300.0,
    }

    def analyze(self, inputs: AnalysisInputs) -> List[Insight]:
        t = self.thresholds
        engagement = inputs.section("analytics", "metrics", "engagement")
        insights: List[Insight] = []

        total_sessions = as_number(engagement, "total_sessions")
        avg_duration = as_number(engagement, "avg_session_duration", default=None)
        current_duration = as_number(engagement, "session_duration", default=None)

        # Completed sessions judge shortness; the running session can only be too long
        if total_sessions > 0 and avg_duration is not None:
            if avg_duration < t["low_engagement_session"]:
                insights.append(_insight(
                    self.category, InsightType.LOW_SESSION_ENGAGEMENT, Severity.HIGH,
                    "Investigate early session drop-off causes",
                    metric=avg_duration, target=t["low_engagement_session"],
                ))
            elif avg_duration < t["session_length_min"]:
                insights.append(_insight(
                    self.category, InsightType.SESSION_TOO_SHORT, Severity.MEDIUM,
                    "Improve early engagement hooks to extend sessions",
                    metric=avg_duration, target=t["session_length_min"],
                ))

        if current_duration is not None and current_duration > t["session_length_max"]:
            insights.append(_insight(
                self.category, InsightType.SESSION_TOO_LONG, Severity.LOW,
                "Consider adding natural break points",
                metric=current_duration, target=t["session_length_max"],
            ))

        churn = inputs.churn
        if churn is not None and churn.risk_level != ChurnRiskLevel.LOW:
            severity = Severity.HIGH if churn.risk_level == ChurnRiskLevel.HIGH else Severity.MEDIUM
            insights.append(_insight(
                self.category, InsightType.HIGH_CHURN_RISK, severity,
                "; ".join(churn.recommendations) or "Review retention drivers",
                metric=churn.risk_score,
                indicators=list(churn.indicators),
            ))

        return insights


class BalanceAnalyzer(CategoryAnalyzer):
    category = InsightCategory.BALANCE
    sources = ("analytics", "sentiment")

    THRESHOLDS = {
        "quit_point_threshold": 0.15,     # Share of all quits at one level
        "min_quits_for_distribution": 10,
        "frustration_threshold": 3,       # Frustration events per session
        "difficulty_satisfaction_min": 3.5,
    }

    def __init__(self, custom_thresholds: Optional[Dict[str, float]] = None):
        super().__init__(custom_thresholds)
        self.chi_square = ChiSquareTest()

    def analyze(self, inputs: AnalysisInputs) -> List[Insight]:
        t = self.thresholds
        insights: List[Insight] = []

        difficulty_scores = inputs.ratings("difficulty")
        if difficulty_scores:
            avg_difficulty = mean(difficulty_scores)
            if avg_difficulty < t["difficulty_satisfaction_min"]:
                insights.append(_insight(
                    self.category, InsightType.DIFFICULTY_DISSATISFACTION, Severity.HIGH,
                    "Adjust difficulty curve or add adaptive difficulty",
                    metric=avg_difficulty, target=t["difficulty_satisfaction_min"],
                ))

        difficulty = inputs.section("analytics", "metrics", "difficulty")
        quit_analysis = analyze_quit_points(
            difficulty.get("quit_points_by_level") or {}, t["quit_point_threshold"]
        )
        for level in quit_analysis["problematic_levels"]:
            insights.append(_insight(
                self.category, InsightType.HIGH_QUIT_RATE, Severity.HIGH,
                f"Review level {level['level']} difficulty - {level['quit_rate'] * 100:.1f}% quit rate",
                metric=level["quit_rate"], target=t["quit_point_threshold"],
                level=level["level"], quit_count=level["quit_count"],
            ))

        skew = self._quit_distribution_skew(quit_analysis)
        if skew is not None and skew.significant:
            insights.append(_insight(
                self.category, InsightType.SKEWED_QUIT_DISTRIBUTION, Severity.MEDIUM,
                "Quits concentrate on a few levels - smooth the difficulty curve",
                metric=skew.statistic, confidence=0.6,
                degrees_of_freedom=skew.degrees_of_freedom,
            ))

        session = inputs.section("analytics", "session")
        frustration_events = session.get("frustration_events")
        if isinstance(frustration_events, list) and len(frustration_events) >= t["frustration_threshold"]:
            insights.append(_insight(
                self.category, InsightType.HIGH_FRUSTRATION, Severity.HIGH,
                "Adjust difficulty or add assistance at frustration hotspots",
                metric=float(len(frustration_events)), target=t["frustration_threshold"],
            ))

        return insights

    def _quit_distribution_skew(self, quit_analysis: Dict[str, Any]):
        distribution = quit_analysis["quit_distribution"]
        total = quit_analysis["total_quits"]
        if len(distribution) < 2 or total < self.thresholds["min_quits_for_distribution"]:
            return None
        observed = list(distribution.values())
        expected = [total / len(observed)] * len(observed)
        return self.chi_square.run(observed, expected)


class ProgressionAnalyzer(CategoryAnalyzer):
    category = InsightCategory.PROGRESSION
    sources = ("analytics", "sentiment", "patterns")

    THRESHOLDS = {
        "xp_rate_min": 120.0,             # XP per minute
        "xp_rate_max": 300.0,
        "xp_rate_critical_fraction": 0.25,
        "xp_rate_critical_min_duration": 300.0,
        "progression_satisfaction_min": 4.0,
        "skill_trend_min_samples": 10,
        "skill_decline_slope": -0.001,
    }

    def analyze(self, inputs: AnalysisInputs) -> List[Insight]:
        t = self.thresholds
        insights: List[Insight] = []

        progression = inputs.section("analytics", "metrics", "progression")
        session = inputs.section("analytics", "session")
        xp_rate = as_number(progression, "xp_per_minute", default=None)
        xp_gained = as_number(session, "xp_gained")
        duration = as_number(session, "duration")

        # A session that never reported XP has no XP rate to judge
        if xp_rate is not None and xp_gained > 0:
            if xp_rate < t["xp_rate_min"]:
                far_below = (
                    xp_rate < t["xp_rate_min"] * t["xp_rate_critical_fraction"]
                    and duration >= t["xp_rate_critical_min_duration"]
                )
                insights.append(_insight(
                    self.category, InsightType.XP_RATE_TOO_LOW,
                    Severity.CRITICAL if far_below else Severity.MEDIUM,
                    "Increase XP rates or add XP bonus events",
                    metric=xp_rate, target=t["xp_rate_min"],
                ))
            elif xp_rate > t["xp_rate_max"]:
                insights.append(_insight(
                    self.category, InsightType.XP_RATE_TOO_HIGH, Severity.LOW,
                    "Consider reducing XP inflation",
                    metric=xp_rate, target=t["xp_rate_max"],
                ))

        progression_scores = inputs.ratings("progression")
        if progression_scores:
            avg_satisfaction = mean(progression_scores)
            if avg_satisfaction < t["progression_satisfaction_min"]:
                insights.append(_insight(
                    self.category, InsightType.PROGRESSION_DISSATISFACTION, Severity.HIGH,
                    "Improve progression rewards and pacing",
                    metric=avg_satisfaction, target=t["progression_satisfaction_min"],
                ))

        skill = inputs.section("patterns", "skill")
        history = [v for v in (skill.get("history") or []) if isinstance(v, (int, float))]
        if len(history) >= t["skill_trend_min_samples"]:
            slope = linear_trend(history)
            if slope < t["skill_decline_slope"]:
                insights.append(_insight(
                    self.category, InsightType.SKILL_DECLINING, Severity.MEDIUM,
                    "Skill is trending down - ease the difficulty curve",
                    metric=slope, confidence=0.6,
                ))

        if skill.get("plateau") is True:
            insights.append(_insight(
                self.category, InsightType.SKILL_PLATEAU, Severity.LOW,
                "Introduce new mechanics to break the skill plateau",
                metric=as_number(skill, "level", default=None), confidence=0.7,
            ))

        return insights


class SentimentAnalyzer(CategoryAnalyzer):
    category = InsightCategory.SENTIMENT
    sources = ("sentiment", "patterns")

    THRESHOLDS = {
        "satisfaction_critical": 3.0,
        "satisfaction_warning": 3.5,
        "event_satisfaction_min": 3.0,
        "sentiment_trend_threshold": 0.5,
        "trend_min_samples": 4,
    }

    def __init__(self, custom_thresholds: Optional[Dict[str, float]] = None):
        super().__init__(custom_thresholds)
        self.t_test = PooledTTest()

    def analyze(self, inputs: AnalysisInputs) -> List[Insight]:
        t = self.thresholds
        insights: List[Insight] = []

        overall, source = self._overall_satisfaction(inputs)
        if overall is not None:
            if overall < t["satisfaction_critical"]:
                insights.append(_insight(
                    self.category, InsightType.CRITICAL_SATISFACTION, Severity.CRITICAL,
                    "Immediate intervention required - low player satisfaction",
                    metric=overall, target=t["satisfaction_critical"], source=source,
                ))
            elif overall < t["satisfaction_warning"]:
                insights.append(_insight(
                    self.category, InsightType.LOW_SATISFACTION, Severity.HIGH,
                    "Investigate causes of player dissatisfaction",
                    metric=overall, target=t["satisfaction_warning"], source=source,
                ))

        event_scores = inputs.ratings("events")
        if event_scores:
            avg_events = mean(event_scores)
            if avg_events < t["event_satisfaction_min"]:
                insights.append(_insight(
                    self.category, InsightType.EVENT_DISSATISFACTION, Severity.MEDIUM,
                    "Review event frequency and variety",
                    metric=avg_events, target=t["event_satisfaction_min"],
                ))

        trend = self._declining_trend(inputs.ratings("overall"))
        if trend is not None:
            insights.append(trend)

        return insights

    def _overall_satisfaction(self, inputs: AnalysisInputs) -> Tuple[Optional[float], Optional[str]]:
        """
        Mean overall survey rating; without surveys, a 1-5 estimate from
        behavioral satisfaction once emotional events have been observed.
        """
        overall_scores = inputs.ratings("overall")
        if overall_scores:
            return mean(overall_scores), "survey"

        emotional = inputs.section("patterns", "emotional")
        satisfaction = as_number(emotional, "satisfaction", default=None)
        if satisfaction is not None and as_number(emotional, "events") > 0:
            return 1.0 + 4.0 * satisfaction, "behavioral"
        return None, None

    def _declining_trend(self, ratings: List[float]) -> Optional[Insight]:
        t = self.thresholds
        if len(ratings) < t["trend_min_samples"]:
            return None

        half = len(ratings) // 2
        earlier, later = ratings[:half], ratings[half:]
        result = self.t_test.run(earlier, later)
        if result is None or not result.significant:
            return None

        drop = mean(earlier) - mean(later)
        if drop < t["sentiment_trend_threshold"]:
            return None

        return _insight(
            self.category, InsightType.DECLINING_SENTIMENT, Severity.MEDIUM,
            "Satisfaction is falling across recent surveys - review recent changes",
            metric=drop, target=t["sentiment_trend_threshold"], confidence=0.6,
            effect_size=result.effect_size,
        )


class PerformanceAnalyzer(CategoryAnalyzer):
    category = InsightCategory.PERFORMANCE
    sources = ("performance",)

    THRESHOLDS = {
        "fps_target": 60.0,
        "fps_low": 45.0,
        "fps_critical": 30.0,
        "frame_drops_max": 10,
        "memory_peak_mb": 256.0,
    }

    def analyze(self, inputs: AnalysisInputs) -> List[Insight]:
        t = self.thresholds
        performance = inputs.performance if isinstance(inputs.performance, Mapping) else {}
        insights: List[Insight] = []

        avg_fps = as_number(performance, "avg_fps", default=None)
        if avg_fps is not None and avg_fps < t["fps_low"]:
            insights.append(_insight(
                self.category, InsightType.LOW_FPS,
                Severity.CRITICAL if avg_fps < t["fps_critical"] else Severity.HIGH,
                "Optimize rendering and particle systems",
                metric=avg_fps, target=t["fps_target"],
            ))

        frame_drops = as_number(performance, "frame_drops")
        if frame_drops > t["frame_drops_max"]:
            insights.append(_insight(
                self.category, InsightType.FREQUENT_FRAME_DROPS, Severity.MEDIUM,
                "Investigate frame drop causes",
                metric=frame_drops, target=t["frame_drops_max"],
            ))

        peak_mb = as_number(performance, "memory_peak") / 1024
        if peak_mb > t["memory_peak_mb"]:
            insights.append(_insight(
                self.category, InsightType.HIGH_MEMORY_USAGE, Severity.MEDIUM,
                "Optimize memory usage and garbage collection",
                metric=peak_mb, target=t["memory_peak_mb"],
            ))

        crashes = as_number(performance, "crash_count")
        if crashes > 0:
            insights.append(_insight(
                self.category, InsightType.CRASHES_DETECTED, Severity.CRITICAL,
                "Fix crash-causing bugs immediately",
                metric=crashes, target=0,
            ))

        return insights


class BehavioralAnalyzer(CategoryAnalyzer):
    category = InsightCategory.BEHAVIORAL
    sources = ("analytics", "patterns", "behavior")

    THRESHOLDS = {
        "streak_recovery_min": 0.5,
        "grace_period_usage_max": 0.8,
        "exploration_efficiency_min": 0.3,
        "exploration_min_discoveries": 3,
    }

    def analyze(self, inputs: AnalysisInputs) -> List[Insight]:
        t = self.thresholds
        insights: List[Insight] = []

        addiction = inputs.section("analytics", "metrics", "addiction")
        if as_number(addiction, "streak_breaks") > 0:
            recovery = as_number(addiction, "streak_recovery_rate")
            if recovery < t["streak_recovery_min"]:
                insights.append(_insight(
                    self.category, InsightType.LOW_STREAK_RECOVERY, Severity.MEDIUM,
                    "Improve streak recovery mechanics or reduce pressure",
                    metric=recovery, target=t["streak_recovery_min"],
                ))

        grace_usage = as_number(addiction, "grace_period_usage")
        if as_number(addiction, "grace_periods_used") > 0 and grace_usage > t["grace_period_usage_max"]:
            insights.append(_insight(
                self.category, InsightType.HIGH_GRACE_PERIOD_USAGE, Severity.LOW,
                "Players rely heavily on grace periods - consider balance",
                metric=grace_usage, target=t["grace_period_usage_max"],
            ))

        emotional = inputs.section("patterns", "emotional")
        if emotional.get("mood") == "frustrated":
            insights.append(_insight(
                self.category, InsightType.FRUSTRATED_MOOD, Severity.MEDIUM,
                "Offer a hint or an easier path while the player is frustrated",
                confidence=0.7,
            ))

        exploration = inputs.section("behavior", "exploration")
        if as_number(exploration, "discoveries") >= t["exploration_min_discoveries"]:
            efficiency = as_number(exploration, "efficiency")
            if efficiency < t["exploration_efficiency_min"]:
                insights.append(_insight(
                    self.category, InsightType.LOW_EXPLORATION_EFFICIENCY, Severity.LOW,
                    "Make discovery targets easier to reach or better signposted",
                    metric=efficiency, target=t["exploration_efficiency_min"],
                ))

        return insights


def default_analyzers(custom_thresholds: Optional[Dict[str, Dict[str, float]]] = None) -> List[CategoryAnalyzer]:
    """One analyzer per category, in reporting order"""
    overrides = custom_thresholds or {}
    return [
        cls(overrides.get(cls.category.value))
        for cls in (
            EngagementAnalyzer,
            BalanceAnalyzer,
            ProgressionAnalyzer,
            SentimentAnalyzer,
            PerformanceAnalyzer,
            BehavioralAnalyzer,
        )
    ]
