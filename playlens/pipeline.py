"""
Analytics pipeline

Wires the session tracker, the behavior profilers, the insight synthesizer
and the periodic analyzer into one instance driven by two calls:
``emit(event_name, payload)`` from gameplay code and ``tick(delta_seconds)``
once per frame. Every component is owned by the instance, so several
pipelines can run side by side without sharing state.
"""
from typing import Any, Callable, Dict, Mapping, Optional
import logging
import time

from playlens.adaptive.behavior_tracker import BehaviorTracker
from playlens.adaptive.pattern_analyzer import EmotionalEventKind, PatternAnalyzer
from playlens.analysis.feedback_analyzer import FeedbackAnalyzer
from playlens.analysis.intervention_engine import ConfigurationSurface, InterventionEngine
from playlens.core.clock import GameClock
from playlens.core.config import Settings, settings as default_settings
from playlens.core.payload import as_text
from playlens.core.storage import InMemoryStore, KeyValueStore
from playlens.insights.insight_synthesizer import InsightSynthesizer
from playlens.schemas.analytics import AnalysisReport, InsightSet
from playlens.services.dynamic_config import DynamicConfig
from playlens.tracking.session_tracker import GameEvent, SessionTracker

logger = logging.getLogger(__name__)

EMOTIONAL_EVENTS = {
    GameEvent.SUCCESS: EmotionalEventKind.SUCCESS,
    GameEvent.FAILURE: EmotionalEventKind.FAILURE,
    GameEvent.FRUSTRATION_DETECTED: EmotionalEventKind.FRUSTRATION,
    GameEvent.FLOW_STATE_DETECTED: EmotionalEventKind.FLOW,
    GameEvent.PAUSE: EmotionalEventKind.PAUSE,
}


class AnalyticsPipeline:
    """
    One player's analytics stack.

    Lifecycle: ``init()`` opens a session, ``end_session()`` closes and
    persists it, ``reset()`` drops in-memory state without touching the
    store.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        settings: Optional[Settings] = None,
        configuration: Optional[ConfigurationSurface] = None,
        clock: Optional[GameClock] = None,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.store = store if store is not None else InMemoryStore()
        self.settings = settings or default_settings
        self.clock = clock or GameClock()

        self.tracker = SessionTracker(self.store, self.clock.now, self.settings, wall_clock)
        self.behavior = BehaviorTracker(self.store)
        self.patterns = PatternAnalyzer(self.store, self.clock.now, self.settings)
        self.synthesizer = InsightSynthesizer()

        self._owns_configuration = configuration is None
        self.configuration = configuration if configuration is not None else DynamicConfig(
            self.store, self.clock.now, self.settings, track_event=self.tracker.track_event,
        )
        self.interventions = InterventionEngine(self.configuration, self.tracker.track_event)
        self.analyzer = FeedbackAnalyzer(
            sources={
                "analytics": self.tracker.get_analytics_report,
                "sentiment": self.tracker.get_sentiment_scores,
                "performance": lambda: dict(self.tracker.metrics["performance"]),
                "behavior": self.behavior.get_summary,
                "patterns": self.patterns.get_analysis,
                "insights": self.synthesize_insights,
                "events": lambda: [event.name for event in self.tracker.events],
            },
            interventions=self.interventions,
            store=self.store,
            clock=self.clock.now,
            settings=self.settings,
            track_event=self.tracker.track_event,
        )

        self._routes: Dict[GameEvent, Callable[[GameEvent, Mapping[str, Any]], None]] = {
            GameEvent.JUMP: self._route_jump,
            GameEvent.PLAYER_JUMP: self._route_jump,
            GameEvent.LANDING: self._route_activity,
            GameEvent.COLLISION: self._route_action,
            GameEvent.NEAR_MISS: self._route_action,
            GameEvent.WASTED_MOVE: self._route_action,
            GameEvent.DISCOVERY: self._route_discovery,
            GameEvent.SUCCESS: self._route_emotional,
            GameEvent.FAILURE: self._route_emotional,
            GameEvent.FRUSTRATION_DETECTED: self._route_emotional,
            GameEvent.FLOW_STATE_DETECTED: self._route_emotional,
            GameEvent.PAUSE: self._route_emotional,
        }

    # ==================== Lifecycle ====================

    def init(self) -> None:
        session = self.tracker.init()
        self.behavior.load()
        self.patterns.load()
        self.patterns.begin_session()

        if self._owns_configuration:
            self.configuration.init(self.tracker.cohort.test_assignments)
        self.analyzer.init()

        logger.info(f"Analytics pipeline started - session {session.id}")

    def reset(self) -> None:
        self.tracker.reset()
        self.behavior.reset()
        self.patterns.reset()
        self.analyzer.reset()
        self.analyzer.is_active = False
        if self._owns_configuration:
            self.configuration.reset()

    def end_session(self, reason: Optional[str] = None) -> bool:
        if not self.tracker.end_session(reason):
            return False
        self.behavior.save()
        self.patterns.save()
        self.analyzer.is_active = False
        return True

    @property
    def is_active(self) -> bool:
        return self.tracker.is_active

    # ==================== Inbound ====================

    def emit(self, event_name: str, payload: Optional[Mapping[str, Any]] = None) -> bool:
        """
        Track a gameplay event and feed it to the profilers.

        Returns False when no session is active.
        """
        if not isinstance(payload, Mapping):
            payload = {}
        if not self.tracker.track_event(event_name, payload):
            return False

        kind = GameEvent.parse(str(event_name))
        route = self._routes.get(kind) if kind is not None else None
        if route is not None:
            route(kind, payload)
        return True

    def tick(self, delta_seconds: float) -> Optional[AnalysisReport]:
        """Advance time; returns the analysis report when a pass ran"""
        before = self.clock.now()
        step = self.clock.tick(delta_seconds) - before
        if step <= 0 or not self.tracker.is_active:
            return None

        self.tracker.update()
        self.patterns.update_session()
        return self.analyzer.update(step)

    def record_sentiment(self, kind: str, rating: Any, context: Optional[Mapping[str, Any]] = None) -> bool:
        return self.tracker.record_sentiment(kind, rating, context)

    def update_performance(self, fps: Optional[float] = None, memory_kb: Optional[float] = None) -> None:
        self.tracker.update_performance_metrics(fps, memory_kb)

    def run_analysis(self) -> AnalysisReport:
        """Run an analysis pass now, regardless of the interval"""
        return self.analyzer.run_analysis()

    # ==================== Routing ====================

    def _route_jump(self, kind: GameEvent, payload: Mapping[str, Any]) -> None:
        self.behavior.on_action("jump", payload)
        self.patterns.note_activity()
        self.patterns.update_skill_progression(self.behavior.performance_snapshot())

    def _route_action(self, kind: GameEvent, payload: Mapping[str, Any]) -> None:
        self.behavior.on_action(kind.value, payload)
        self.patterns.note_activity()

    def _route_activity(self, kind: GameEvent, payload: Mapping[str, Any]) -> None:
        self.patterns.note_activity()

    def _route_discovery(self, kind: GameEvent, payload: Mapping[str, Any]) -> None:
        position = payload.get("position")
        self.behavior.on_discovery(
            as_text(payload, "target_id"),
            payload.get("attempts"),
            position if isinstance(position, Mapping) else None,
        )
        self.patterns.note_activity()

    def _route_emotional(self, kind: GameEvent, payload: Mapping[str, Any]) -> None:
        self.patterns.on_emotional_event(EMOTIONAL_EVENTS[kind].value, payload.get("intensity", 1.0), payload)
        # Outcomes of play count as activity; detected states do not
        if kind in (GameEvent.SUCCESS, GameEvent.FAILURE):
            self.patterns.note_activity()

    # ==================== Outbound ====================

    def synthesize_insights(self) -> InsightSet:
        return self.synthesizer.synthesize(self.behavior.get_summary(), self.patterns.get_analysis())

    def get_analytics_report(self) -> Dict[str, Any]:
        return self.tracker.get_analytics_report()

    def get_key_metrics(self) -> Dict[str, Dict[str, float]]:
        return self.tracker.get_key_metrics()

    def get_player_profile(self) -> Dict[str, Any]:
        return self.synthesizer.get_player_profile(self.behavior.get_summary(), self.patterns.get_analysis())

    def get_latest_analysis(self) -> Optional[Dict[str, Any]]:
        return self.analyzer.get_analysis_report()
