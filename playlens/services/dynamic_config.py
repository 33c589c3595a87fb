"""
Dynamic Configuration - Live Balance Values, A/B Variants and Rollback

The single mutation point for game balance. Interventions and experiment
assignments reach the game only through ``apply_configuration_batch``,
which validates the whole batch against a candidate copy and swaps it in
atomically: either every key is applied or none is.

Features:
- Balance defaults (XP, events, streaks, visuals, difficulty, pacing, toggles)
- A/B variant tables applied from cohort assignments
- Bounded change history with rollback
- Automatic rollback on metric regressions
- Change listeners for dependent systems
"""
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from dataclasses import dataclass
import copy
import logging
import math
import time

from playlens.core.config import Settings, settings as default_settings
from playlens.core.exceptions import ConfigurationRejected
from playlens.core.storage import KeyValueStore, safe_load, safe_save

logger = logging.getLogger(__name__)

STORE_KEY = "dynamic_config"


# ==================== Defaults ====================

DEFAULT_VALUES: Dict[str, Any] = {
    # XP
    "xp_scaling_factors": [1.15, 1.12, 1.08, 1.05],  # Per level tier
    "xp_source_multipliers": {
        "perfect_landing": 1.0,
        "combo_ring": 1.0,
        "discovery": 1.0,
        "streak_bonus": 1.0,
        "mystery_box": 1.0,
    },

    # Event frequency
    "mystery_box_spawn_rate": 0.015,  # Per frame
    "random_event_chance": 0.03,
    "event_cooldown_minutes": 2,
    "event_intensity_multiplier": 1.0,

    # Streaks
    "grace_period_base": 3.0,
    "streak_thresholds": [5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 75, 100],
    "bonus_duration_multiplier": 1.0,
    "streak_pressure_modifier": 1.0,
    "grace_period_learning_bonus": 0.5,

    # Visuals
    "particle_intensity": 1.0,
    "screen_glow_intensity": 1.0,
    "animation_speed": 1.0,
    "ui_feedback_strength": 1.0,
    "celebration_intensity": 1.0,

    # Difficulty
    "difficulty_scaling": 1.0,
    "jump_power_scaling": 1.0,
    "precision_requirement": 1.0,
    "forgiveness_factor": 1.0,

    # Progression pacing
    "level_up_xp_scaling": 1.0,
    "reward_frequency_multiplier": 1.0,
    "achievement_unlock_pacing": 1.0,
    "prestige_incentive_strength": 1.0,

    "features": {
        "mystery_boxes_enabled": True,
        "random_events_enabled": True,
        "streak_shields_enabled": True,
        "adaptive_difficulty": True,
        "performance_scaling": True,
        "accessibility_features": True,
    },
}

# Keys whose batch values are partial updates of a nested mapping
NESTED_KEYS = ("xp_source_multipliers", "features")

AB_TEST_VARIANTS: Dict[str, Dict[str, Dict[str, Any]]] = {
    "xp_scaling": {
        "control": {"xp_scaling_factors": [1.15, 1.12, 1.08, 1.05]},
        "variant_a": {"xp_scaling_factors": [1.20, 1.15, 1.10, 1.05]},  # Faster early, same late
        "variant_b": {"xp_scaling_factors": [1.10, 1.08, 1.06, 1.04]},  # Slower overall
    },
    "event_frequency": {
        "high": {"mystery_box_spawn_rate": 0.020, "random_event_chance": 0.04},
        "normal": {"mystery_box_spawn_rate": 0.015, "random_event_chance": 0.03},
        "low": {"mystery_box_spawn_rate": 0.010, "random_event_chance": 0.02},
    },
    "visual_intensity": {
        "full": {"particle_intensity": 1.0, "screen_glow_intensity": 1.0},
        "reduced": {"particle_intensity": 0.6, "screen_glow_intensity": 0.7},
        "minimal": {"particle_intensity": 0.3, "screen_glow_intensity": 0.4},
    },
}

# Unit multipliers: positive and at most 5
SCALAR_MULTIPLIERS = (
    "event_intensity_multiplier",
    "bonus_duration_multiplier",
    "streak_pressure_modifier",
    "difficulty_scaling",
    "jump_power_scaling",
    "precision_requirement",
    "forgiveness_factor",
    "level_up_xp_scaling",
    "reward_frequency_multiplier",
    "achievement_unlock_pacing",
    "prestige_incentive_strength",
)

# Visual multipliers: 0 (off) to 3
VISUAL_MULTIPLIERS = (
    "particle_intensity",
    "screen_glow_intensity",
    "animation_speed",
    "ui_feedback_strength",
    "celebration_intensity",
)


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


@dataclass
class ConfigChange:
    """One applied key change, enough to undo it"""
    timestamp: float
    key: str
    old_value: Any
    new_value: Any
    reason: str = "manual"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "key": self.key,
            "old_value": copy.deepcopy(self.old_value),
            "new_value": copy.deepcopy(self.new_value),
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ConfigChange":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


class DynamicConfig:
    """
    Live configuration with validated, atomic batch updates.

    Implements the configuration surface used by the intervention engine.
    """

    ROLLBACK_THRESHOLDS = {
        "retention_drop_percent": 10.0,  # Retention drop > 10%
        "crash_rate_threshold": 0.01,    # Crash rate > 1%
        "fps_drop_threshold": 0.15,      # Average FPS drop > 15%
        "satisfaction_drop": 0.5,        # Satisfaction drop > 0.5 points
    }

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        clock: Optional[Callable[[], float]] = None,
        settings: Optional[Settings] = None,
        track_event: Optional[Callable[[str, Mapping[str, Any]], Any]] = None,
        custom_thresholds: Optional[Dict[str, float]] = None,
    ):
        self.store = store
        self.clock = clock or time.monotonic
        self.settings = settings or default_settings
        self.track_event = track_event
        self.thresholds = {**self.ROLLBACK_THRESHOLDS, **(custom_thresholds or {})}

        self.values: Dict[str, Any] = copy.deepcopy(DEFAULT_VALUES)
        self.history: List[ConfigChange] = []
        self.listeners: List[Callable[[str, Any], None]] = []
        self.is_active = False

    def init(self, test_assignments: Optional[Mapping[str, Any]] = None) -> bool:
        """Load persisted values, then apply experiment variants"""
        self.load()
        if test_assignments:
            self.apply_ab_test_assignments(test_assignments)
        self.is_active = True
        logger.info("Dynamic configuration initialized")
        return True

    def reset(self) -> None:
        self.values = copy.deepcopy(DEFAULT_VALUES)
        self.history = []

    # ==================== Reads ====================

    def get_value(self, key: str, default: Any = None) -> Any:
        return copy.deepcopy(self.values.get(key, default))

    def get_xp_scaling_factor(self, tier: int) -> float:
        factors = self.values["xp_scaling_factors"]
        index = min(max(int(tier), 1), len(factors)) - 1
        return factors[index] if factors else 1.05

    def get_xp_multiplier(self, source: str) -> float:
        return self.values["xp_source_multipliers"].get(source, 1.0)

    def get_grace_period(self, player_skill_level: Optional[float] = None) -> float:
        """Base grace period, extended for newcomers below 0.3 skill"""
        base = self.values["grace_period_base"]
        if player_skill_level is not None and player_skill_level < 0.3:
            return base + self.values["grace_period_learning_bonus"] * (0.3 - player_skill_level)
        return base

    def get_streak_threshold(self, level: int) -> int:
        thresholds = self.values["streak_thresholds"]
        for threshold in thresholds:
            if level <= threshold:
                return threshold
        # Past the table, thresholds track the level
        return level

    def is_feature_enabled(self, feature_name: str) -> bool:
        return self.values["features"].get(feature_name) is not False

    # ==================== Writes ====================

    def apply_ab_test_assignments(self, assignments: Mapping[str, Any]) -> Dict[str, Any]:
        """Translate cohort variant assignments into one configuration batch"""
        batch: Dict[str, Any] = {}
        for test_name, variant in assignments.items():
            if test_name == "grace_period":
                if _is_number(variant):
                    batch["grace_period_base"] = variant
                continue
            table = AB_TEST_VARIANTS.get(test_name, {})
            if variant in table:
                batch.update(table[variant])
            else:
                logger.debug(f"No configuration for {test_name}={variant}")

        if not batch:
            return {}
        try:
            changes = self.apply_configuration_batch(batch, reason="ab_test")
        except ConfigurationRejected as e:
            logger.warning(f"A/B test configuration rejected: {e}")
            return {}
        logger.info("A/B test configurations applied")
        return changes

    def apply_configuration_batch(self, parameters: Mapping[str, Any], reason: str = "manual") -> Dict[str, Any]:
        """
        Apply a partial set of values atomically.

        Nested keys (``xp_source_multipliers``, ``features``) merge their
        entries; every other key replaces its value. Raises
        ``ConfigurationRejected`` and leaves the configuration untouched if
        any key is unknown or the resulting configuration is invalid.

        Returns the keys that actually changed, with their new values.
        """
        if not isinstance(parameters, Mapping):
            raise ConfigurationRejected(reason, ["parameters must be a mapping"])

        errors: List[str] = []
        candidate = copy.deepcopy(self.values)

        for key, value in parameters.items():
            if key not in DEFAULT_VALUES:
                errors.append(f"Unknown configuration key: {key}")
                continue

            if key in NESTED_KEYS:
                if not isinstance(value, Mapping):
                    errors.append(f"{key} must be a mapping")
                    continue
                unknown = [name for name in value if name not in DEFAULT_VALUES[key]]
                if unknown:
                    errors.append(f"Unknown {key} entries: {', '.join(map(str, unknown))}")
                    continue
                candidate[key].update(copy.deepcopy(dict(value)))
            else:
                candidate[key] = copy.deepcopy(value)

        if not errors:
            _, errors = self.validate_configuration(candidate)
        if errors:
            logger.warning(f"Configuration batch rejected ({reason}): {', '.join(errors)}")
            raise ConfigurationRejected(reason, errors, dict(parameters))

        now = self.clock()
        changes = [
            ConfigChange(
                timestamp=now,
                key=key,
                old_value=copy.deepcopy(self.values[key]),
                new_value=copy.deepcopy(candidate[key]),
                reason=reason,
            )
            for key in parameters
            if candidate[key] != self.values[key]
        ]

        # Single swap keeps readers from seeing a half-applied batch
        self.values = candidate

        if changes:
            self.history.extend(changes)
            overflow = len(self.history) - self.settings.CONFIG_HISTORY_SIZE
            if overflow > 0:
                del self.history[:overflow]

            for change in changes:
                logger.info(f"Configuration changed: {change.key} = {change.new_value} (reason: {reason})")
                self._notify(change.key, change.new_value)
            self.save()

        return {change.key: copy.deepcopy(change.new_value) for change in changes}

    def rollback_configuration(self, steps: int = 1) -> bool:
        """Undo the most recent ``steps`` changes"""
        if steps < 1 or len(self.history) < steps:
            logger.warning(f"Cannot rollback {steps} steps, only {len(self.history)} entries in history")
            return False

        for _ in range(steps):
            entry = self.history.pop()
            self.values[entry.key] = copy.deepcopy(entry.old_value)
            self._notify(entry.key, entry.old_value)
            logger.info(f"Rolled back: {entry.key} = {entry.old_value}")

        self.save()
        return True

    def check_auto_rollback(self, metrics: Optional[Mapping[str, Any]]) -> bool:
        """
        Roll back the latest change when a regression metric crosses its
        threshold. Recognized metrics: retention_drop (percent), crash_rate,
        fps_drop (fraction), satisfaction_drop (points).
        """
        if not metrics:
            return False

        t = self.thresholds
        checks = (
            ("retention_drop", t["retention_drop_percent"], "retention drop: {:.1f}%", 1),
            ("crash_rate", t["crash_rate_threshold"], "crash rate: {:.2f}%", 100),
            ("fps_drop", t["fps_drop_threshold"], "FPS drop: {:.1f}%", 100),
            ("satisfaction_drop", t["satisfaction_drop"], "satisfaction drop: {:.1f} points", 1),
        )

        reason = None
        for name, threshold, template, scale in checks:
            value = metrics.get(name)
            if _is_number(value) and value > threshold:
                reason = template.format(value * scale)

        if reason is None:
            return False

        logger.warning(f"Auto-rollback triggered: {reason}")
        if not self.rollback_configuration(1):
            return False

        if self.track_event is not None:
            self.track_event("auto_rollback", {"reason": reason, "metrics": dict(metrics)})
        return True

    # ==================== Validation ====================

    def validate_configuration(self, values: Optional[Mapping[str, Any]] = None) -> Tuple[bool, List[str]]:
        """Check value ranges; validates the live values when none are given"""
        v = self.values if values is None else values
        errors: List[str] = []

        factors = v.get("xp_scaling_factors")
        if not isinstance(factors, list) or not factors:
            errors.append("XP scaling factors missing")
        else:
            for i, factor in enumerate(factors, start=1):
                if not _is_number(factor) or factor <= 0 or factor > 5:
                    errors.append(f"Invalid XP scaling factor[{i}]: {factor}")

        for source, multiplier in (v.get("xp_source_multipliers") or {}).items():
            if not _is_number(multiplier) or multiplier <= 0 or multiplier > 5:
                errors.append(f"Invalid XP multiplier for {source}: {multiplier}")

        for key in ("mystery_box_spawn_rate", "random_event_chance"):
            rate = v.get(key)
            if not _is_number(rate) or rate < 0 or rate > 1:
                errors.append(f"{key} out of range")

        cooldown = v.get("event_cooldown_minutes")
        if not _is_number(cooldown) or cooldown < 0:
            errors.append("event_cooldown_minutes out of range")

        grace = v.get("grace_period_base")
        if not _is_number(grace) or grace < 0.5 or grace > 10:
            errors.append("Grace period out of reasonable range")

        bonus = v.get("grace_period_learning_bonus")
        if not _is_number(bonus) or bonus < 0:
            errors.append("grace_period_learning_bonus out of range")

        thresholds = v.get("streak_thresholds")
        if (not isinstance(thresholds, list) or not thresholds
                or not all(_is_number(x) and x > 0 for x in thresholds)
                or thresholds != sorted(thresholds)):
            errors.append("Streak thresholds must be positive and ascending")

        for key in VISUAL_MULTIPLIERS:
            value = v.get(key)
            if not _is_number(value) or value < 0 or value > 3:
                errors.append(f"{key} out of range")

        for key in SCALAR_MULTIPLIERS:
            value = v.get(key)
            if not _is_number(value) or value <= 0 or value > 5:
                errors.append(f"{key} out of range")

        for feature, enabled in (v.get("features") or {}).items():
            if not isinstance(enabled, bool):
                errors.append(f"Feature toggle {feature} must be a boolean")

        return not errors, errors

    # ==================== Listeners ====================

    def add_listener(self, callback: Callable[[str, Any], None]) -> None:
        self.listeners.append(callback)

    def remove_listener(self, callback: Callable[[str, Any], None]) -> None:
        if callback in self.listeners:
            self.listeners.remove(callback)

    def _notify(self, key: str, value: Any) -> None:
        for listener in list(self.listeners):
            try:
                listener(key, copy.deepcopy(value))
            except Exception as e:
                logger.warning(f"Configuration listener failed for {key}: {e}")

    # ==================== Reporting & persistence ====================

    def get_configuration_report(self) -> Dict[str, Any]:
        return {
            "current_values": copy.deepcopy(self.values),
            "history": [change.to_dict() for change in self.history],
            "ab_tests": copy.deepcopy(AB_TEST_VARIANTS),
            "rollback_thresholds": dict(self.thresholds),
            "is_active": self.is_active,
        }

    def save(self) -> bool:
        return safe_save(self.store, STORE_KEY, {
            "values": self.values,
            "history": [change.to_dict() for change in self.history],
            "last_update": self.clock(),
        })

    def load(self) -> bool:
        """
        Merge persisted values over the defaults. A record that fails
        validation is discarded in favor of the defaults.
        """
        record = safe_load(self.store, STORE_KEY)
        if not isinstance(record, dict):
            return False

        candidate = copy.deepcopy(DEFAULT_VALUES)
        loaded_values = record.get("values")
        if isinstance(loaded_values, dict):
            for key, value in loaded_values.items():
                if key not in candidate:
                    continue
                if key in NESTED_KEYS:
                    if isinstance(value, dict):
                        candidate[key].update(value)
                else:
                    candidate[key] = value

        valid, errors = self.validate_configuration(candidate)
        if not valid:
            logger.warning(f"Persisted configuration invalid, using defaults: {', '.join(errors)}")
            return False

        self.values = candidate
        history = record.get("history")
        if isinstance(history, list):
            self.history = [
                ConfigChange.from_dict(entry)
                for entry in history
                if isinstance(entry, dict)
                and entry.get("key") in DEFAULT_VALUES
                and {"timestamp", "old_value", "new_value"} <= entry.keys()
            ][-self.settings.CONFIG_HISTORY_SIZE:]

        logger.info("Dynamic configuration state loaded")
        return True
