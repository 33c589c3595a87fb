"""
Feedback Analyzer - Periodic Statistical Analysis Pass

Every analysis interval the analyzer walks a fixed phase sequence:

    idle -> gathering_inputs -> analyzing -> report_generated
         -> intervention_check -> idle

Report sources are plain callables. A source that is missing or raises is
skipped, and only the categories that depend on it alone are dropped from
the pass. The pass is synchronous and bounded by the buffer and history
caps of its sources.
"""
from typing import Any, Callable, Dict, List, Mapping, Optional
from dataclasses import fields
from enum import Enum
import logging
import time

from playlens.analysis.category_analyzers import (
    AnalysisInputs,
    CategoryAnalyzer,
    analyze_player_journeys,
    default_analyzers,
)
from playlens.analysis.churn import ChurnInputs, ChurnPredictor
from playlens.analysis.intervention_engine import InterventionEngine
from playlens.core.config import Settings, settings as default_settings
from playlens.core.storage import KeyValueStore, safe_load, safe_save
from playlens.schemas.analytics import (
    AnalysisReport,
    ChurnPrediction,
    Insight,
    InterventionOutcome,
    Severity,
    TopRecommendation,
)

logger = logging.getLogger(__name__)

STORE_KEY = "feedback_insights"

SOURCE_NAMES = tuple(f.name for f in fields(AnalysisInputs) if f.name != "churn")


class AnalysisPhase(str, Enum):
    IDLE = "idle"
    GATHERING_INPUTS = "gathering_inputs"
    ANALYZING = "analyzing"
    REPORT_GENERATED = "report_generated"
    INTERVENTION_CHECK = "intervention_check"


def split_journeys(event_names: List[str], boundary: str = "session_start") -> List[List[str]]:
    """Cut a flat event-name stream into per-session journeys"""
    journeys: List[List[str]] = []
    current: List[str] = []
    for name in event_names:
        if name == boundary and current:
            journeys.append(current)
            current = []
        current.append(name)
    if current:
        journeys.append(current)
    return journeys


class FeedbackAnalyzer:
    """
    Runs the category analyzers on a fixed period and turns critical
    findings into interventions.
    """

    def __init__(
        self,
        sources: Optional[Dict[str, Callable[[], Any]]] = None,
        interventions: Optional[InterventionEngine] = None,
        store: Optional[KeyValueStore] = None,
        clock: Optional[Callable[[], float]] = None,
        settings: Optional[Settings] = None,
        track_event: Optional[Callable[[str, Mapping[str, Any]], Any]] = None,
        churn_predictor: Optional[ChurnPredictor] = None,
        custom_thresholds: Optional[Dict[str, Dict[str, float]]] = None,
    ):
        self.sources: Dict[str, Callable[[], Any]] = {}
        for name, source in (sources or {}).items():
            self.register_source(name, source)

        self.interventions = interventions or InterventionEngine(track_event=track_event)
        self.store = store
        self.clock = clock or time.monotonic
        self.settings = settings or default_settings
        self.track_event = track_event
        self.churn_predictor = churn_predictor or ChurnPredictor()
        self.analyzers: List[CategoryAnalyzer] = default_analyzers(custom_thresholds)

        self.interval = self.settings.ANALYSIS_INTERVAL_SECONDS
        self.phase = AnalysisPhase.IDLE
        self.phase_history: List[AnalysisPhase] = []
        self.is_active = False
        self.elapsed = 0.0
        self.analysis_count = 0
        self.last_analysis: Optional[float] = None

        self.last_report: Optional[AnalysisReport] = None
        self.last_insights: List[Insight] = []
        self.last_outcomes: List[InterventionOutcome] = []

    def register_source(self, name: str, source: Callable[[], Any]) -> None:
        if name not in SOURCE_NAMES:
            raise ValueError(f"Unknown report source: {name}")
        self.sources[name] = source

    def init(self) -> None:
        self.load()
        self.phase = AnalysisPhase.IDLE
        self.elapsed = 0.0
        self.is_active = True
        logger.info("Feedback analyzer initialized")

    def reset(self) -> None:
        self.phase = AnalysisPhase.IDLE
        self.phase_history = []
        self.elapsed = 0.0
        self.analysis_count = 0
        self.last_analysis = None
        self.last_report = None
        self.last_insights = []
        self.last_outcomes = []

    def update(self, dt: float) -> Optional[AnalysisReport]:
        """Accumulate frame time; run a pass once the interval has elapsed"""
        if not self.is_active:
            return None
        if isinstance(dt, bool) or not isinstance(dt, (int, float)) or not dt > 0:
            return None

        self.elapsed += dt
        if self.elapsed < self.interval:
            return None

        self.elapsed = 0.0
        return self.run_analysis()

    # ==================== Analysis pass ====================

    def _enter(self, phase: AnalysisPhase) -> None:
        self.phase = phase
        self.phase_history.append(phase)
        logger.debug(f"Analysis phase: {phase.value}")

    def run_analysis(self) -> AnalysisReport:
        self.phase_history = []

        self._enter(AnalysisPhase.GATHERING_INPUTS)
        inputs = self.gather_inputs()

        self._enter(AnalysisPhase.ANALYZING)
        insights, skipped = self._run_analyzers(inputs)

        report = self._build_report(inputs, insights, skipped)
        self._enter(AnalysisPhase.REPORT_GENERATED)
        self.last_report = report
        self.last_insights = insights
        if self.track_event is not None:
            self.track_event("insights_report_generated", {
                "total_insights": report.total_insights,
                "critical_issues": report.critical_issues,
                "churn_risk": report.churn.risk_level.value if report.churn else None,
            })

        self._enter(AnalysisPhase.INTERVENTION_CHECK)
        critical = [i for i in insights if i.severity == Severity.CRITICAL]
        self.last_outcomes = self.interventions.run(critical)

        self.analysis_count += 1
        self.last_analysis = report.timestamp
        self.save()

        self._enter(AnalysisPhase.IDLE)
        logger.info(
            f"Analysis complete - {report.total_insights} insights, "
            f"{report.critical_issues} critical"
        )
        return report

    def gather_inputs(self) -> AnalysisInputs:
        inputs = AnalysisInputs()
        for name in SOURCE_NAMES:
            source = self.sources.get(name)
            if source is None:
                continue
            try:
                setattr(inputs, name, source())
            except Exception as e:
                logger.warning(f"Report source '{name}' failed, skipping: {e}")

        inputs.churn = self._predict_churn(inputs)
        return inputs

    def _predict_churn(self, inputs: AnalysisInputs) -> Optional[ChurnPrediction]:
        metrics = inputs.section("analytics", "metrics")
        if not metrics:
            return None
        session = inputs.section("analytics", "session")
        is_active = bool(session) and not session.get("ended", False)
        return self.churn_predictor.predict(ChurnInputs.from_metrics(metrics, is_active))

    def _run_analyzers(self, inputs: AnalysisInputs):
        insights: List[Insight] = []
        skipped: List[str] = []
        for analyzer in self.analyzers:
            category = analyzer.category.value
            if not analyzer.available(inputs):
                logger.debug(f"Skipping {category} analysis: no report sources")
                skipped.append(category)
                continue
            try:
                insights.extend(analyzer.analyze(inputs))
            except Exception as e:
                logger.warning(f"{category} analysis failed: {e}")
                skipped.append(category)
        return insights, skipped

    def _build_report(self, inputs: AnalysisInputs, insights: List[Insight], skipped: List[str]) -> AnalysisReport:
        by_category: Dict[str, int] = {analyzer.category.value: 0 for analyzer in self.analyzers}
        for insight in insights:
            by_category[insight.category.value] = by_category.get(insight.category.value, 0) + 1

        # sorted() is stable, so equal severities keep analyzer order
        ranked = sorted(insights, key=lambda i: i.severity.rank, reverse=True)
        top = [
            TopRecommendation(
                severity=insight.severity,
                recommendation=insight.recommendation or insight.message,
                category=insight.type,
            )
            for insight in ranked[:self.settings.TOP_RECOMMENDATIONS]
        ]

        journeys: Dict[str, Any] = {}
        if isinstance(inputs.events, list):
            journeys = analyze_player_journeys(split_journeys([str(name) for name in inputs.events]))

        return AnalysisReport(
            timestamp=self.clock(),
            total_insights=len(insights),
            critical_issues=sum(1 for i in insights if i.severity == Severity.CRITICAL),
            insights_by_category=by_category,
            top_recommendations=top,
            churn=inputs.churn,
            skipped_categories=skipped,
            journeys=journeys,
        )

    # ==================== Reporting & persistence ====================

    def get_analysis_report(self) -> Optional[Dict[str, Any]]:
        if self.last_report is None:
            return None
        return {
            "report": self.last_report.model_dump(mode="json"),
            "insights": [insight.model_dump(mode="json") for insight in self.last_insights],
            "interventions": [outcome.model_dump(mode="json") for outcome in self.last_outcomes],
            "analysis_count": self.analysis_count,
            "phase": self.phase.value,
        }

    def save(self) -> bool:
        report = self.last_report
        return safe_save(self.store, STORE_KEY, {
            "insights": {
                "total": report.total_insights if report else 0,
                "critical": report.critical_issues if report else 0,
                "by_category": dict(report.insights_by_category) if report else {},
                "top": [r.model_dump(mode="json") for r in report.top_recommendations] if report else [],
            },
            "last_analysis": self.last_analysis,
            "analysis_count": self.analysis_count,
        })

    def load(self) -> bool:
        record = safe_load(self.store, STORE_KEY)
        if not isinstance(record, dict):
            return False

        count = record.get("analysis_count")
        if isinstance(count, int) and not isinstance(count, bool) and count >= 0:
            self.analysis_count = count
        last = record.get("last_analysis")
        if isinstance(last, (int, float)) and not isinstance(last, bool):
            self.last_analysis = float(last)
        return True
