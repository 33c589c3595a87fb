"""
Pattern Analyzer - Skill Progression and Emotional State

Two profiles:
- Skill: smoothed skill scalar, first-difference velocity, plateau flag and
  a bounded history.
- Emotional: confidence, persistence, engagement, satisfaction and session
  energy, updated by emotional events with asymmetric rules.

Mood is never stored. ``current_mood`` evaluates ``MOOD_RULES`` top to
bottom on every call and returns the first match, so rule order decides the
result whenever several conditions hold at once. The only stored mood is
the one captured when a session begins.
"""
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional
from dataclasses import dataclass, field, asdict
from enum import Enum
import logging
import time

from playlens.core.config import Settings, settings as default_settings
from playlens.core.payload import as_number, clamp01
from playlens.core.storage import (
    KeyValueStore,
    filter_entries,
    is_number,
    merge_into,
    safe_load,
    safe_save,
)

logger = logging.getLogger(__name__)

STORE_KEY = "pattern_profile"


class Mood(str, Enum):
    NEUTRAL = "neutral"
    FOCUSED = "focused"
    FRUSTRATED = "frustrated"
    CONTEMPLATIVE = "contemplative"
    FLOW = "flow"
    TIRED = "tired"


class EmotionalEventKind(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    FRUSTRATION = "frustration"
    PAUSE = "pause"
    FLOW = "flow"


@dataclass(frozen=True)
class MoodContext:
    """Inputs to mood inference at one instant"""
    idle_seconds: float
    confidence: float
    energy: float
    engagement: float
    persistence: float


class MoodRule(NamedTuple):
    name: str
    predicate: Callable[[MoodContext, Dict[str, float]], bool]
    result: Mood


# Evaluated in order; the first matching rule wins.
MOOD_RULES: List[MoodRule] = [
    MoodRule(
        "idle_without_persistence",
        lambda c, t: c.idle_seconds > t["idle_seconds"] and c.persistence < t["low_persistence"],
        Mood.FRUSTRATED,
    ),
    MoodRule(
        "idle",
        lambda c, t: c.idle_seconds > t["idle_seconds"],
        Mood.CONTEMPLATIVE,
    ),
    MoodRule(
        "confident_and_energetic",
        lambda c, t: c.confidence > t["flow_confidence"] and c.energy > t["flow_energy"],
        Mood.FLOW,
    ),
    MoodRule(
        "low_energy",
        lambda c, t: c.energy < t["tired_energy"],
        Mood.TIRED,
    ),
    MoodRule(
        "engaged",
        lambda c, t: c.engagement > t["focused_engagement"],
        Mood.FOCUSED,
    ),
]


@dataclass
class SkillProgression:
    initial_skill: float = 0.0
    current_skill: float = 0.0
    skill_velocity: float = 0.0
    skill_plateau: bool = False
    consistency: float = 0.0
    efficiency: float = 0.0
    creativity: float = 0.0
    updates: int = 0
    history: List[Dict[str, float]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SkillProgression":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass
class EmotionalProfile:
    confidence: float = 0.5
    retry_persistence: float = 0.5
    engagement: float = 0.5
    satisfaction: float = 0.5
    session_energy: float = 1.0
    flow_state_duration: float = 0.0
    pause_frequency: int = 0
    emotional_events: int = 0
    achievement_reactions: List[Dict[str, Any]] = field(default_factory=list)
    failure_patterns: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "EmotionalProfile":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass
class SessionPatterns:
    total_sessions: int = 0
    session_start_mood: str = Mood.NEUTRAL.value
    start_mood_history: List[str] = field(default_factory=list)
    peak_performance_time: float = 0.0
    fade_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SessionPatterns":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


def _is_skill_sample(entry: Any) -> bool:
    return isinstance(entry, dict) and is_number(entry.get("skill"))


class PatternAnalyzer:
    """
    Skill/emotional half of the behavior profiler.

    ``note_activity`` must be called for gameplay actions; idle time (and
    therefore the frustrated/contemplative moods) is measured from the last
    such call.
    """

    THRESHOLDS = {
        # Mood rules
        "idle_seconds": 30.0,
        "low_persistence": 0.3,
        "flow_confidence": 0.7,
        "flow_energy": 0.6,
        "tired_energy": 0.3,
        "focused_engagement": 0.7,

        # Emotional event rules
        "success_confidence_gain": 0.1,
        "success_satisfaction_alpha": 0.1,
        "failure_confidence_loss": 0.05,
        "failure_persistence_alpha": 0.1,
        "frustration_confidence_loss": 0.05,
        "frustration_persistence_decay": 0.2,
        "frustration_satisfaction_decay": 0.15,
        "frustration_engagement_loss": 0.05,
        "flow_engagement_gain": 0.1,

        # Skill progression
        "skill_alpha": 0.05,
        "submetric_alpha": 0.1,
        "plateau_velocity": 0.001,
        "plateau_min_skill": 0.5,

        # Session energy
        "energy_horizon_seconds": 3600.0,
        "fade_energy": 0.5,
    }

    SKILL_WEIGHTS = {
        "accuracy": 0.3,
        "efficiency": 0.3,
        "creativity": 0.2,
        "consistency": 0.2,
    }

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        clock: Optional[Callable[[], float]] = None,
        settings: Optional[Settings] = None,
        custom_thresholds: Optional[Dict[str, float]] = None,
    ):
        self.store = store
        self.clock = clock or time.monotonic
        self.settings = settings or default_settings
        self.thresholds = {**self.THRESHOLDS, **(custom_thresholds or {})}

        self.skill = SkillProgression()
        self.emotional = EmotionalProfile()
        self.sessions = SessionPatterns()

        now = self.clock()
        self.session_start_time = now
        self.last_action_time = now

    def reset(self) -> None:
        self.skill = SkillProgression()
        self.emotional = EmotionalProfile()
        self.sessions = SessionPatterns()
        self.session_start_time = self.last_action_time = self.clock()

    # ==================== Session ====================

    def begin_session(self) -> Mood:
        """Start a session: count it, restore full energy, capture the start mood"""
        now = self.clock()
        self.session_start_time = now
        self.last_action_time = now

        self.sessions.total_sessions += 1
        self.sessions.peak_performance_time = 0.0
        self.sessions.fade_time = 0.0
        self.emotional.session_energy = 1.0

        start_mood = self.current_mood(now)
        self.sessions.session_start_mood = start_mood.value
        self.sessions.start_mood_history.append(start_mood.value)
        self._trim(self.sessions.start_mood_history)

        logger.info(f"Session {self.sessions.total_sessions} begun - mood: {start_mood.value}")
        return start_mood

    def update_session(self, now: Optional[float] = None) -> None:
        """Decay session energy and note peak/fade times"""
        now = self.clock() if now is None else now
        t = self.thresholds
        duration = max(0.0, now - self.session_start_time)

        self.emotional.session_energy = max(0.0, 1.0 - duration / t["energy_horizon_seconds"])

        if self.current_mood(now) == Mood.FLOW and self.sessions.peak_performance_time == 0:
            self.sessions.peak_performance_time = duration
        if self.emotional.session_energy < t["fade_energy"] and self.sessions.fade_time == 0:
            self.sessions.fade_time = duration

    def note_activity(self, now: Optional[float] = None) -> None:
        self.last_action_time = self.clock() if now is None else now

    # ==================== Mood ====================

    def mood_context(self, now: Optional[float] = None) -> MoodContext:
        now = self.clock() if now is None else now
        emotional = self.emotional
        return MoodContext(
            idle_seconds=max(0.0, now - self.last_action_time),
            confidence=emotional.confidence,
            energy=emotional.session_energy,
            engagement=emotional.engagement,
            persistence=emotional.retry_persistence,
        )

    def current_mood(self, now: Optional[float] = None) -> Mood:
        context = self.mood_context(now)
        for rule in MOOD_RULES:
            if rule.predicate(context, self.thresholds):
                return rule.result
        return Mood.NEUTRAL

    # ==================== Emotional events ====================

    def on_emotional_event(
        self,
        kind: str,
        intensity: Any = 1.0,
        context: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """
        Apply an emotional event. Success raises confidence faster than
        failure lowers it; frustration erodes persistence and satisfaction.
        """
        try:
            event = EmotionalEventKind(kind)
        except ValueError:
            logger.debug(f"Ignoring unknown emotional event '{kind}'")
            return False

        i = clamp01(as_number({"intensity": intensity}, "intensity", default=1.0))
        context = dict(context) if isinstance(context, Mapping) else {}
        emotional = self.emotional
        t = self.thresholds
        emotional.emotional_events += 1

        if event == EmotionalEventKind.SUCCESS:
            emotional.confidence = clamp01(emotional.confidence + i * t["success_confidence_gain"])
            alpha = t["success_satisfaction_alpha"]
            emotional.satisfaction = clamp01(emotional.satisfaction * (1 - alpha) + i * alpha)
            emotional.achievement_reactions.append({
                "intensity": i,
                "context": context,
                "mood": self.current_mood().value,
            })
            self._trim(emotional.achievement_reactions)

        elif event == EmotionalEventKind.FAILURE:
            emotional.confidence = clamp01(emotional.confidence - i * t["failure_confidence_loss"])
            alpha = t["failure_persistence_alpha"]
            # Retrying after a failure shows persistence
            emotional.retry_persistence = clamp01(emotional.retry_persistence * (1 - alpha) + alpha)
            self._record_setback(event, i, context)

        elif event == EmotionalEventKind.FRUSTRATION:
            emotional.confidence = clamp01(emotional.confidence - i * t["frustration_confidence_loss"])
            emotional.retry_persistence = clamp01(
                emotional.retry_persistence * (1 - i * t["frustration_persistence_decay"])
            )
            emotional.satisfaction = clamp01(
                emotional.satisfaction * (1 - i * t["frustration_satisfaction_decay"])
            )
            emotional.engagement = clamp01(emotional.engagement - i * t["frustration_engagement_loss"])
            self._record_setback(event, i, context)

        elif event == EmotionalEventKind.PAUSE:
            emotional.pause_frequency += 1

        elif event == EmotionalEventKind.FLOW:
            emotional.flow_state_duration += max(0.0, as_number(context, "duration", default=i))
            emotional.engagement = clamp01(emotional.engagement + t["flow_engagement_gain"])

        return True

    def _record_setback(self, event: EmotionalEventKind, intensity: float, context: Dict[str, Any]) -> None:
        self.emotional.failure_patterns.append({
            "kind": event.value,
            "intensity": intensity,
            "context": context,
            "recovery": self.emotional.confidence,
        })
        self._trim(self.emotional.failure_patterns)

    def _trim(self, items: List[Any], cap: Optional[int] = None) -> None:
        cap = cap or self.settings.EMOTIONAL_HISTORY_SIZE
        overflow = len(items) - cap
        if overflow > 0:
            del items[:overflow]

    # ==================== Skill ====================

    def update_skill_progression(self, metrics: Optional[Mapping[str, Any]]) -> bool:
        """
        Blend the weighted sub-metrics present in ``metrics`` into the
        smoothed skill scalar. Returns False when no sub-metric is usable.
        """
        if not isinstance(metrics, Mapping):
            return False

        skill = self.skill
        t = self.thresholds
        sub_alpha = t["submetric_alpha"]

        new_skill = 0.0
        used = 0
        for name, weight in self.SKILL_WEIGHTS.items():
            value = as_number(metrics, name, default=None)
            if value is None:
                continue
            value = clamp01(value)
            new_skill += value * weight
            used += 1
            if name in ("consistency", "efficiency", "creativity"):
                setattr(skill, name, getattr(skill, name) * (1 - sub_alpha) + value * sub_alpha)

        if used == 0:
            return False

        if skill.updates == 0:
            skill.initial_skill = new_skill

        old_skill = skill.current_skill
        alpha = t["skill_alpha"]
        skill.current_skill = clamp01(old_skill * (1 - alpha) + new_skill * alpha)
        skill.skill_velocity = skill.current_skill - old_skill
        skill.skill_plateau = (
            abs(skill.skill_velocity) < t["plateau_velocity"]
            and skill.current_skill > t["plateau_min_skill"]
        )
        skill.updates += 1

        skill.history.append({
            "time": self.clock(),
            "skill": skill.current_skill,
            "velocity": skill.skill_velocity,
        })
        self._trim(skill.history, self.settings.SKILL_HISTORY_SIZE)
        return True

    # ==================== Snapshots ====================

    def get_analysis(self, now: Optional[float] = None) -> Dict[str, Dict[str, Any]]:
        now = self.clock() if now is None else now
        skill = self.skill
        emotional = self.emotional
        context = self.mood_context(now)

        return {
            "skill": {
                "level": skill.current_skill,
                "velocity": skill.skill_velocity,
                "plateau": skill.skill_plateau,
                "consistency": skill.consistency,
                "efficiency": skill.efficiency,
                "creativity": skill.creativity,
                "history": [entry["skill"] for entry in skill.history],
            },
            "emotional": {
                "mood": self.current_mood(now).value,
                "confidence": emotional.confidence,
                "energy": emotional.session_energy,
                "engagement": emotional.engagement,
                "satisfaction": emotional.satisfaction,
                "persistence": emotional.retry_persistence,
                "idle_seconds": context.idle_seconds,
                "events": emotional.emotional_events,
            },
            "session": {
                "number": self.sessions.total_sessions,
                "duration": max(0.0, now - self.session_start_time),
                "start_mood": self.sessions.session_start_mood,
                "peak_time": self.sessions.peak_performance_time,
                "fade_time": self.sessions.fade_time,
            },
        }

    # ==================== Persistence ====================

    def save_state(self) -> Dict[str, Any]:
        return {
            "skill_progression": self.skill.to_dict(),
            "emotional_profile": self.emotional.to_dict(),
            "session_data": self.sessions.to_dict(),
        }

    def restore_state(self, state: Any) -> None:
        """Merge a saved state over the current profiles; absent fields keep their values"""
        if not isinstance(state, dict):
            return
        self.skill = SkillProgression.from_dict(
            merge_into(self.skill.to_dict(), state.get("skill_progression"))
        )
        self.emotional = EmotionalProfile.from_dict(
            merge_into(self.emotional.to_dict(), state.get("emotional_profile"))
        )
        self.sessions = SessionPatterns.from_dict(
            merge_into(self.sessions.to_dict(), state.get("session_data"))
        )
        self.skill.history = filter_entries(self.skill.history, _is_skill_sample, "skill_progression.history")

    def save(self) -> bool:
        return safe_save(self.store, STORE_KEY, self.save_state())

    def load(self) -> bool:
        state = safe_load(self.store, STORE_KEY)
        if state is None:
            return False
        self.restore_state(state)
        return True
