"""
Event & Session Tracker - Gameplay Event Ingestion and Session Metrics

Ingests discrete gameplay events into a bounded ring buffer, keeps per-session
counters and lifetime metrics, and exposes snapshots for the analysis stage.

Metric groups (persisted under ``feedback_analytics``):
1. Engagement: session length, frequency, retention
2. Addiction: streak lengths, recovery and grace-period reliance
3. Progression: XP rate, levels per session
4. Events: mystery boxes and random events
5. Difficulty: quit points, frustration, flow time
6. Performance: FPS, memory, crashes
7. Sentiment: micro-survey ratings

``track_event`` is O(1) amortized and never raises; expensive aggregation is
left to the periodic analysis pass.
"""
from typing import Any, Callable, Dict, List, Mapping, Optional
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
import copy
import logging
import random
import time

from playlens.analysis.statistical_tools import PooledTTest, SignificanceResult
from playlens.core.config import Settings, settings as default_settings
from playlens.core.payload import as_number, as_text
from playlens.core.storage import (
    KeyValueStore,
    filter_entries,
    is_number,
    merge_into,
    safe_load,
    safe_save,
)
from playlens.tracking.cohorts import CohortAssignment, get_or_create_player_id

logger = logging.getLogger(__name__)

STORE_KEY = "feedback_analytics"
SECONDS_PER_DAY = 24 * 3600


class GameEvent(str, Enum):
    """Event names with dedicated handling. Anything else is only counted."""
    SESSION_START = "session_start"
    SESSION_END = "session_end"

    # Movement
    PLAYER_JUMP = "player_jump"
    JUMP = "jump"
    LANDING = "landing"
    COLLISION = "collision"
    NEAR_MISS = "near_miss"
    WASTED_MOVE = "wasted_move"
    DISCOVERY = "discovery"

    # Streaks
    STREAK_STARTED = "streak_started"
    STREAK_BROKEN = "streak_broken"
    GRACE_PERIOD_USED = "grace_period_used"

    # Progression
    LEVEL_UP = "level_up"
    XP_GAINED = "xp_gained"
    ACHIEVEMENT_EARNED = "achievement_earned"

    # Events
    MYSTERY_BOX_COLLECTED = "mystery_box_collected"
    RANDOM_EVENT_TRIGGERED = "random_event_triggered"

    # Emotional signals
    SUCCESS = "success"
    FAILURE = "failure"
    PAUSE = "pause"
    FRUSTRATION_DETECTED = "frustration_detected"
    FLOW_STATE_DETECTED = "flow_state_detected"

    # Difficulty / technical
    QUIT_POINT = "quit_point"
    PERFORMANCE_ISSUE = "performance_issue"

    # Emitted by the pipeline itself
    SENTIMENT_SURVEY = "sentiment_survey"
    AB_TEST_RESULT = "ab_test_result"
    AUTO_INTERVENTION = "auto_intervention"
    AUTO_ROLLBACK = "auto_rollback"
    INSIGHTS_REPORT_GENERATED = "insights_report_generated"

    @classmethod
    def parse(cls, name: str) -> Optional["GameEvent"]:
        try:
            return cls(name)
        except ValueError:
            return None


class SentimentKind(str, Enum):
    OVERALL = "overall"
    PROGRESSION = "progression"
    DIFFICULTY = "difficulty"
    EVENTS = "events"
    UI = "ui"


SENTIMENT_FIELDS = {
    SentimentKind.OVERALL: "overall_satisfaction",
    SentimentKind.PROGRESSION: "progression_satisfaction",
    SentimentKind.DIFFICULTY: "difficulty_satisfaction",
    SentimentKind.EVENTS: "event_satisfaction",
    SentimentKind.UI: "ui_satisfaction",
}


@dataclass(frozen=True)
class Event:
    """Immutable tracked event"""
    name: str
    timestamp: float
    session_id: str
    payload: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "timestamp": self.timestamp,
            "session_id": self.session_id,
            "payload": dict(self.payload),
        }


class EventBuffer:
    """Append-only ring buffer; the oldest event is evicted at capacity"""

    def __init__(self, capacity: int = 1000):
        self._events: deque = deque(maxlen=max(1, capacity))

    def append(self, event: Event) -> None:
        self._events.append(event)

    def recent(self, limit: Optional[int] = None) -> List[Event]:
        events = list(self._events)
        if limit is None:
            return events
        return events[-limit:] if limit > 0 else []

    def clear(self) -> None:
        self._events.clear()

    @property
    def capacity(self) -> int:
        return self._events.maxlen

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(self._events)


@dataclass
class Session:
    """One play period, finalized at session end"""
    id: str
    start_time: float
    duration: float = 0.0
    counters: Dict[str, int] = field(default_factory=dict)
    jumps: int = 0
    landings: int = 0
    streaks: int = 0
    achievements: int = 0
    levels_gained: int = 0
    xp_gained: float = 0.0
    events_triggered: int = 0
    flow_periods: List[Dict[str, float]] = field(default_factory=list)
    frustration_events: List[Dict[str, Any]] = field(default_factory=list)
    quit_reason: Optional[str] = None
    ended: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "start_time": self.start_time,
            "duration": self.duration,
            "counters": dict(self.counters),
            "jumps": self.jumps,
            "landings": self.landings,
            "streaks": self.streaks,
            "achievements": self.achievements,
            "levels_gained": self.levels_gained,
            "xp_gained": self.xp_gained,
            "events_triggered": self.events_triggered,
            "flow_periods": [dict(p) for p in self.flow_periods],
            "frustration_events": [dict(e) for e in self.frustration_events],
            "quit_reason": self.quit_reason,
            "ended": self.ended,
        }


def default_metrics() -> Dict[str, Dict[str, Any]]:
    """Fresh lifetime metrics; also the schema loaded records merge into"""
    return {
        "engagement": {
            "session_duration": 0.0,
            "sessions_per_day": 0.0,
            "retention_1_day": False,
            "retention_7_day": False,
            "retention_30_day": False,
            "first_session_timestamp": 0.0,
            "last_session_timestamp": 0.0,
            "total_sessions": 0,
            "total_playtime": 0.0,
            "avg_session_duration": 0.0,
        },
        "addiction": {
            "average_streak_length": 0.0,
            "max_streak_achieved": 0,
            "streak_recovery_rate": 0.0,
            "streak_recoveries": 0,
            "grace_period_usage": 0.0,
            "grace_periods_used": 0,
            "streak_breaks": 0,
            "total_streaks": 0,
        },
        "progression": {
            "xp_per_minute": 0.0,
            "levels_per_session": 0,
            "total_xp": 0.0,
            "achievements_earned": 0,
        },
        "events": {
            "mystery_boxes_collected": 0,
            "random_events_experienced": 0,
        },
        "difficulty": {
            "quit_points_by_level": {},
            "frustration_indicators": [],
            "total_frustration_events": 0,
            "flow_state_duration": 0.0,
        },
        "performance": {
            "avg_fps": 60.0,
            "min_fps": 60.0,
            "max_fps": 60.0,
            "frame_drops": 0,
            "memory_usage": 0.0,
            "memory_peak": 0.0,
            "crash_count": 0,
            "error_count": 0,
        },
        "sentiment": {
            "overall_satisfaction": 0.0,
            "progression_satisfaction": 0.0,
            "difficulty_satisfaction": 0.0,
            "event_satisfaction": 0.0,
            "ui_satisfaction": 0.0,
            "survey_responses": [],
        },
    }


def _level_key(payload: Mapping[str, Any]) -> str:
    level = as_number(payload, "level", default=None)
    if level is not None:
        return str(int(level)) if level == int(level) else str(level)
    return as_text(payload, "level", default="unknown")


class SessionTracker:
    """
    Tracks gameplay events for one player across sessions.

    Lifecycle: ``init()`` opens a session (loading persisted metrics and
    assigning the cohort), ``end_session()`` finalizes it. Between the two,
    ``track_event`` is the hot-path entry point.
    """

    THRESHOLDS = {
        "frame_drop_fps": 45,
        "fps_smoothing": 0.1,
        "rating_min": 1,
        "rating_max": 5,
    }

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        clock: Optional[Callable[[], float]] = None,
        settings: Optional[Settings] = None,
        wall_clock: Callable[[], float] = time.time,
        custom_thresholds: Optional[Dict[str, float]] = None,
    ):
        self.store = store
        self.clock = clock or time.monotonic
        self.wall_clock = wall_clock
        self.settings = settings or default_settings
        self.thresholds = {**self.THRESHOLDS, **(custom_thresholds or {})}

        self.metrics: Dict[str, Dict[str, Any]] = default_metrics()
        self.buffer = EventBuffer(self.settings.EVENT_BUFFER_SIZE)
        self.session: Optional[Session] = None
        self.cohort: Optional[CohortAssignment] = None
        self.ab_test_results: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
        self.is_active = False
        self._t_test = PooledTTest()

        self._handlers: Dict[GameEvent, Callable[[Mapping[str, Any]], None]] = {
            GameEvent.PLAYER_JUMP: self._on_jump,
            GameEvent.JUMP: self._on_jump,
            GameEvent.LANDING: self._on_landing,
            GameEvent.STREAK_STARTED: self._on_streak_started,
            GameEvent.STREAK_BROKEN: self._on_streak_broken,
            GameEvent.GRACE_PERIOD_USED: self._on_grace_period_used,
            GameEvent.LEVEL_UP: self._on_level_up,
            GameEvent.XP_GAINED: self._on_xp_gained,
            GameEvent.ACHIEVEMENT_EARNED: self._on_achievement,
            GameEvent.MYSTERY_BOX_COLLECTED: self._on_mystery_box,
            GameEvent.RANDOM_EVENT_TRIGGERED: self._on_random_event,
            GameEvent.FRUSTRATION_DETECTED: self._on_frustration,
            GameEvent.FLOW_STATE_DETECTED: self._on_flow_state,
            GameEvent.QUIT_POINT: self._on_quit_point,
            GameEvent.PERFORMANCE_ISSUE: self._on_performance_issue,
        }

    # ==================== Lifecycle ====================

    def init(self) -> Session:
        """Open a new session, merge persisted metrics and assign the cohort"""
        self.metrics = default_metrics()
        self.buffer.clear()
        self.load()

        self.session = Session(id=self._generate_session_id(), start_time=self.clock())
        self.cohort = CohortAssignment.from_player_id(get_or_create_player_id(self.store))
        self._update_retention()
        self.is_active = True

        self.track_event(GameEvent.SESSION_START.value, {
            "session_id": self.session.id,
            "timestamp": self.session.start_time,
        })

        logger.info(
            f"Session tracker initialized - session {self.session.id}, "
            f"cohort {self.cohort.cohort_id}"
        )
        return self.session

    def reset(self) -> None:
        """Drop in-memory state without touching the store"""
        self.metrics = default_metrics()
        self.buffer.clear()
        self.session = None
        self.cohort = None
        self.ab_test_results = {}
        self.is_active = False

    def end_session(self, quit_reason: Optional[str] = None) -> bool:
        """
        Freeze duration, roll the session into lifetime totals, persist and
        deactivate. Returns False if there is no active session.
        """
        if not self.is_active or self.session is None:
            return False

        self.update()
        session = self.session
        session.quit_reason = quit_reason or "normal_exit"

        engagement = self.metrics["engagement"]
        engagement["total_sessions"] += 1
        engagement["total_playtime"] += session.duration
        engagement["avg_session_duration"] = engagement["total_playtime"] / engagement["total_sessions"]
        engagement["last_session_timestamp"] = self.wall_clock()
        engagement["sessions_per_day"] = self._sessions_per_day(engagement["total_sessions"])

        self.track_event(GameEvent.SESSION_END.value, {
            "duration": session.duration,
            "quit_reason": session.quit_reason,
            "jumps": session.jumps,
            "levels_gained": session.levels_gained,
            "streaks": session.streaks,
        })

        session.ended = True
        self.save()
        self.is_active = False

        logger.info(
            f"Session ended - Duration: {session.duration:.1f}s, "
            f"Jumps: {session.jumps}, Levels: {session.levels_gained}"
        )
        return True

    def _generate_session_id(self) -> str:
        timestamp = int(self.wall_clock() * 1000)
        return f"session_{timestamp}_{random.randint(10000, 99999)}"

    def _update_retention(self) -> None:
        engagement = self.metrics["engagement"]
        now = self.wall_clock()
        if not engagement["first_session_timestamp"]:
            engagement["first_session_timestamp"] = now
            return

        days_since_first = (now - engagement["first_session_timestamp"]) / SECONDS_PER_DAY
        engagement["retention_1_day"] = engagement["retention_1_day"] or days_since_first >= 1
        engagement["retention_7_day"] = engagement["retention_7_day"] or days_since_first >= 7
        engagement["retention_30_day"] = engagement["retention_30_day"] or days_since_first >= 30

    def _sessions_per_day(self, session_count: int) -> float:
        first = self.metrics["engagement"]["first_session_timestamp"]
        days = (self.wall_clock() - first) / SECONDS_PER_DAY if first else 0.0
        return session_count / max(1.0, days)

    # ==================== Event ingestion ====================

    def track_event(self, name: str, payload: Optional[Mapping[str, Any]] = None) -> bool:
        """
        Record an event and update the metrics it drives.

        Returns False (and does nothing) when no session is active.
        """
        if not self.is_active or self.session is None:
            return False

        if payload is not None and not isinstance(payload, Mapping):
            logger.debug(f"Ignoring non-mapping payload for event '{name}'")
            payload = None
        data = dict(payload or {})

        name = str(name)
        event = Event(
            name=name,
            timestamp=self.clock(),
            session_id=self.session.id,
            payload=MappingProxyType(data),
        )
        self.buffer.append(event)
        self.session.counters[name] = self.session.counters.get(name, 0) + 1

        kind = GameEvent.parse(name)
        handler = self._handlers.get(kind) if kind is not None else None
        if handler is not None:
            handler(event.payload)

        logger.debug(f"Event tracked: {name}")
        return True

    def _on_jump(self, payload: Mapping[str, Any]) -> None:
        self.session.jumps += 1

    def _on_landing(self, payload: Mapping[str, Any]) -> None:
        self.session.landings += 1

    def _on_streak_started(self, payload: Mapping[str, Any]) -> None:
        addiction = self.metrics["addiction"]
        self.session.streaks += 1
        addiction["total_streaks"] += 1
        # A streak started after an unrecovered break counts as a recovery
        if addiction["streak_breaks"] > addiction["streak_recoveries"]:
            addiction["streak_recoveries"] += 1
        self._refresh_streak_rates()

    def _on_streak_broken(self, payload: Mapping[str, Any]) -> None:
        addiction = self.metrics["addiction"]
        addiction["streak_breaks"] += 1

        length = as_number(payload, "length", default=None)
        if length is not None and length >= 0:
            breaks = addiction["streak_breaks"]
            addiction["average_streak_length"] = (
                addiction["average_streak_length"] * (breaks - 1) + length
            ) / breaks
            addiction["max_streak_achieved"] = max(addiction["max_streak_achieved"], length)
        self._refresh_streak_rates()

    def _on_grace_period_used(self, payload: Mapping[str, Any]) -> None:
        self.metrics["addiction"]["grace_periods_used"] += 1
        self._refresh_streak_rates()

    def _refresh_streak_rates(self) -> None:
        addiction = self.metrics["addiction"]
        breaks = addiction["streak_breaks"]
        grace = addiction["grace_periods_used"]
        addiction["streak_recovery_rate"] = addiction["streak_recoveries"] / breaks if breaks else 0.0
        # Share of streak-ending moments rescued by a grace period
        addiction["grace_period_usage"] = grace / (grace + breaks) if (grace + breaks) else 0.0

    def _on_level_up(self, payload: Mapping[str, Any]) -> None:
        self.session.levels_gained += 1
        self._add_xp(as_number(payload, "xp"))

    def _on_xp_gained(self, payload: Mapping[str, Any]) -> None:
        self._add_xp(as_number(payload, "amount"))

    def _add_xp(self, amount: float) -> None:
        if amount > 0:
            self.session.xp_gained += amount
            self.metrics["progression"]["total_xp"] += amount

    def _on_achievement(self, payload: Mapping[str, Any]) -> None:
        self.session.achievements += 1
        self.metrics["progression"]["achievements_earned"] += 1

    def _on_mystery_box(self, payload: Mapping[str, Any]) -> None:
        self.metrics["events"]["mystery_boxes_collected"] += 1

    def _on_random_event(self, payload: Mapping[str, Any]) -> None:
        self.metrics["events"]["random_events_experienced"] += 1
        self.session.events_triggered += 1

    def _on_frustration(self, payload: Mapping[str, Any]) -> None:
        now = self.clock()
        intensity = as_number(payload, "intensity", default=1.0)
        context = as_text(payload, "context", default="unknown")

        self.session.frustration_events.append({
            "timestamp": now,
            "context": context,
            "intensity": intensity,
        })

        difficulty = self.metrics["difficulty"]
        difficulty["total_frustration_events"] += 1
        difficulty["frustration_indicators"].append({
            "timestamp": now,
            "level": _level_key(payload) if payload.get("level") is not None else None,
            "context": context,
            "intensity": intensity,
        })
        self._trim(difficulty["frustration_indicators"], self.settings.EVENT_BUFFER_SIZE)

    def _on_flow_state(self, payload: Mapping[str, Any]) -> None:
        now = self.clock()
        self.session.flow_periods.append({
            "start_time": as_number(payload, "start_time", default=now),
            "end_time": as_number(payload, "end_time", default=now),
            "duration": max(0.0, as_number(payload, "duration")),
        })

    def _on_quit_point(self, payload: Mapping[str, Any]) -> None:
        quit_points = self.metrics["difficulty"]["quit_points_by_level"]
        level = _level_key(payload)
        quit_points[level] = quit_points.get(level, 0) + 1

    def _on_performance_issue(self, payload: Mapping[str, Any]) -> None:
        performance = self.metrics["performance"]
        issue = as_text(payload, "type")
        if issue == "frame_drop":
            performance["frame_drops"] += 1
        elif issue == "crash":
            performance["crash_count"] += 1
        elif issue == "error":
            performance["error_count"] += 1

    @staticmethod
    def _trim(items: List[Any], cap: int) -> None:
        overflow = len(items) - cap
        if overflow > 0:
            del items[:overflow]

    # ==================== Periodic updates ====================

    def update(self) -> None:
        """Refresh duration-derived metrics; called once per tick"""
        if not self.is_active or self.session is None:
            return

        session = self.session
        session.duration = max(0.0, self.clock() - session.start_time)
        self.metrics["engagement"]["session_duration"] = session.duration

        progression = self.metrics["progression"]
        if session.duration > 0:
            progression["xp_per_minute"] = session.xp_gained / session.duration * 60
        progression["levels_per_session"] = session.levels_gained

        self.metrics["difficulty"]["flow_state_duration"] = sum(
            period.get("duration", 0.0) for period in session.flow_periods
        )
        self.metrics["engagement"]["sessions_per_day"] = self._sessions_per_day(
            self.metrics["engagement"]["total_sessions"] + 1
        )

    def update_performance_metrics(self, fps: Optional[float] = None, memory_kb: Optional[float] = None) -> None:
        """
        Fold a performance sample into the running metrics. FPS below the
        frame-drop threshold is tracked as a ``performance_issue``.
        """
        if not self.is_active:
            return

        sample = {"fps": fps, "memory_kb": memory_kb}
        fps = as_number(sample, "fps", default=None)
        memory_kb = as_number(sample, "memory_kb", default=None)
        performance = self.metrics["performance"]

        if fps is not None and fps >= 0:
            alpha = self.thresholds["fps_smoothing"]
            performance["avg_fps"] = performance["avg_fps"] * (1 - alpha) + fps * alpha
            performance["min_fps"] = min(performance["min_fps"], fps)
            performance["max_fps"] = max(performance["max_fps"], fps)

            if fps < self.thresholds["frame_drop_fps"]:
                self.track_event(GameEvent.PERFORMANCE_ISSUE.value, {
                    "type": "frame_drop",
                    "fps": fps,
                })

        if memory_kb is not None and memory_kb >= 0:
            performance["memory_usage"] = memory_kb
            performance["memory_peak"] = max(performance["memory_peak"], memory_kb)

    # ==================== Sentiment ====================

    def record_sentiment(self, kind: str, rating: Any, context: Optional[Mapping[str, Any]] = None) -> bool:
        """
        Store a micro-survey response. The per-kind field keeps the latest
        rating; averaging happens at analysis time.
        """
        if not self.is_active or self.session is None:
            return False

        try:
            sentiment_kind = SentimentKind(kind)
        except ValueError:
            logger.warning(f"Ignoring sentiment of unknown kind '{kind}'")
            return False

        value = as_number({"rating": rating}, "rating", default=None)
        if value is None:
            logger.warning(f"Ignoring non-numeric {sentiment_kind.value} rating: {rating!r}")
            return False
        value = max(self.thresholds["rating_min"], min(self.thresholds["rating_max"], value))

        response = {
            "type": sentiment_kind.value,
            "rating": value,
            "context": dict(context) if isinstance(context, Mapping) else {},
            "timestamp": self.clock(),
            "session_id": self.session.id,
        }
        sentiment = self.metrics["sentiment"]
        sentiment["survey_responses"].append(response)
        self._trim(sentiment["survey_responses"], self.settings.EVENT_BUFFER_SIZE)
        sentiment[SENTIMENT_FIELDS[sentiment_kind]] = value

        self.track_event(GameEvent.SENTIMENT_SURVEY.value, response)
        logger.info(f"Sentiment recorded: {sentiment_kind.value} rated {value:g}/5")
        return True

    def get_sentiment_scores(self) -> Dict[str, List[float]]:
        """All recorded ratings grouped by survey kind"""
        scores: Dict[str, List[float]] = {kind.value: [] for kind in SentimentKind}
        for response in self.metrics["sentiment"]["survey_responses"]:
            kind = response.get("type")
            rating = as_number(response, "rating", default=None)
            if kind in scores and rating is not None:
                scores[kind].append(rating)
        return scores

    # ==================== A/B tests ====================

    def get_ab_test_variant(self, test_name: str) -> Any:
        if self.cohort is None:
            return "control"
        return self.cohort.variant(test_name)

    def track_ab_test_result(self, test_name: str, variant: str, metric: str, value: float) -> bool:
        numeric = as_number({"value": value}, "value", default=None)
        if numeric is None:
            logger.warning(f"Ignoring non-numeric A/B result for {test_name}/{variant}/{metric}")
            return False

        samples = self.ab_test_results.setdefault(test_name, {}).setdefault(str(variant), [])
        samples.append({
            "metric": metric,
            "value": numeric,
            "timestamp": self.clock(),
            "session_id": self.session.id if self.session else None,
        })

        self.track_event(GameEvent.AB_TEST_RESULT.value, {
            "test": test_name,
            "variant": variant,
            "metric": metric,
            "value": numeric,
        })
        return True

    def compare_variants(
        self,
        test_name: str,
        metric: str,
        control: str = "control",
        treatment: Optional[str] = None,
    ) -> Optional[SignificanceResult]:
        """
        Pooled t-test of ``metric`` between two variants. Without an explicit
        treatment, the first non-control variant with data is used.
        """
        variants = self.ab_test_results.get(test_name, {})
        if treatment is None:
            treatment = next((v for v in variants if v != control), None)
        if treatment is None:
            return None

        def values(variant: str) -> List[float]:
            return [s["value"] for s in variants.get(variant, []) if s.get("metric") == metric]

        return self._t_test.run(values(treatment), values(control))

    # ==================== Snapshots ====================

    @property
    def events(self) -> List[Event]:
        return self.buffer.recent()

    def get_analytics_report(self) -> Dict[str, Any]:
        """Full snapshot for export"""
        return {
            "session": self.session.to_dict() if self.session else None,
            "metrics": copy.deepcopy(self.metrics),
            "cohort": self.cohort.to_dict() if self.cohort else None,
            "ab_tests": self._ab_tests_record(),
            "event_count": len(self.buffer),
            "timestamp": self.clock(),
        }

    def get_key_metrics(self) -> Dict[str, Dict[str, float]]:
        """Compact subset for UI display"""
        session = self.session
        duration = session.duration if session else 0.0
        jumps = session.jumps if session else 0
        addiction = self.metrics["addiction"]
        total_streaks = addiction["total_streaks"]

        return {
            "engagement": {
                "session_duration": duration,
                "actions_per_minute": jumps / max(duration / 60, 1),
            },
            "addiction": {
                "streak_success_rate": (
                    max(0, total_streaks - addiction["streak_breaks"]) / total_streaks
                    if total_streaks > 0 else 0.0
                ),
                "average_streak": addiction["average_streak_length"],
            },
            "progression": {
                "xp_rate": self.metrics["progression"]["xp_per_minute"],
                "level_rate": self.metrics["progression"]["levels_per_session"],
            },
            "satisfaction": {
                "overall": self.metrics["sentiment"]["overall_satisfaction"],
                "progression": self.metrics["sentiment"]["progression_satisfaction"],
            },
        }

    def _ab_tests_record(self) -> Dict[str, Any]:
        return {
            "cohort_id": self.cohort.cohort_id if self.cohort else None,
            "test_assignments": dict(self.cohort.test_assignments) if self.cohort else {},
            "test_results": copy.deepcopy(self.ab_test_results),
        }

    # ==================== Persistence ====================

    def save(self) -> bool:
        return safe_save(self.store, STORE_KEY, {
            "metrics": self.metrics,
            "session": self.session.to_dict() if self.session else None,
            "ab_tests": self._ab_tests_record(),
            "last_save_time": self.wall_clock(),
        })

    def load(self) -> bool:
        """
        Merge persisted metrics over the defaults. Session and cohort are
        rebuilt rather than restored.
        """
        record = safe_load(self.store, STORE_KEY)
        if not isinstance(record, dict) or not isinstance(record.get("metrics"), dict):
            return False

        merge_into(self.metrics, record["metrics"])
        difficulty = self.metrics["difficulty"]
        difficulty["quit_points_by_level"] = filter_entries(
            difficulty["quit_points_by_level"], is_number, "quit_points_by_level"
        )
        sentiment = self.metrics["sentiment"]
        sentiment["survey_responses"] = filter_entries(
            sentiment["survey_responses"], lambda entry: isinstance(entry, dict), "survey_responses"
        )
        logger.debug("Persisted analytics metrics merged")
        return True
