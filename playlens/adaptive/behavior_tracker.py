"""
Behavior Tracker - Movement and Exploration Profiling

Builds a movement profile (jump power, consistency, planning, risk, path
choice, spatial mastery) and an exploration profile (discovery efficiency,
visit distribution, style) from gameplay actions.

Every field is an exponential moving average or a running counter, so memory
per field is O(1) regardless of session length. Normalized fields
(risk tolerance, spatial mastery, rates, efficiency) are clamped to [0, 1].
"""
from typing import Any, Dict, Mapping, Optional
from dataclasses import dataclass, field, asdict
from enum import Enum
import logging
import math

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

STORE_KEY = "behavior_profile"


class ActionKind(str, Enum):
    JUMP = "jump"
    COLLISION = "collision"
    NEAR_MISS = "near_miss"
    WASTED_MOVE = "wasted_move"


class MovementStyle(str, Enum):
    LEARNING = "learning"
    METHODICAL = "methodical"
    ADVENTUROUS = "adventurous"
    EFFICIENT = "efficient"
    BALANCED = "balanced"


class ExplorationStyle(str, Enum):
    UNKNOWN = "unknown"
    METHODICAL = "methodical"
    BALANCED = "balanced"
    CHAOTIC = "chaotic"


@dataclass
class MovementProfile:
    """Smoothed statistics over jumps and spatial events"""
    preferred_jump_power: float = 0.0
    jump_power_variance: float = 0.0     # EMA of |power - preferred|
    average_jump_distance: float = 0.0
    risk_tolerance: float = 0.5          # 0 conservative, 1 adventurous
    planning_time: float = 0.0           # Seconds between landing and jumping
    total_jumps: int = 0
    total_distance: float = 0.0

    # Path choice
    wasted_movement: int = 0
    efficient_paths: int = 0
    creative_paths: int = 0

    # Spatial awareness
    collisions: int = 0
    near_misses: int = 0
    collision_rate: float = 0.0
    near_miss_rate: float = 0.0
    spatial_mastery: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MovementProfile":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass
class ExplorationProfile:
    """Discovery outcomes and first-observed exploration style"""
    exploration_style: str = ExplorationStyle.UNKNOWN.value
    discovery_attempts: int = 0
    discoveries: int = 0
    exploration_efficiency: float = 0.0
    visit_distribution: Dict[str, int] = field(default_factory=dict)
    exploration_radius: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ExplorationProfile":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


class BehaviorTracker:
    """
    Movement/exploration half of the behavior profiler.

    Smoothing factors and classification cut-offs live in ``THRESHOLDS``
    and can be overridden per instance.
    """

    THRESHOLDS = {
        # Smoothing factors
        "power_alpha": 0.05,
        "variance_alpha": 0.05,
        "planning_alpha": 0.1,
        "risk_alpha": 0.1,
        "mastery_alpha": 0.05,

        # Risk normalization
        "risk_power_scale": 100.0,
        "risk_distance_scale": 500.0,

        # Path classification
        "efficient_max_distance": 300.0,
        "efficient_max_power": 50.0,
        "creative_min_power": 80.0,
        "creative_min_distance": 600.0,

        # Spatial mastery
        "variance_scale": 30.0,
        "planning_optimal_min": 1.0,
        "planning_optimal_max": 3.0,
        "planning_slow_span": 10.0,

        # Movement style tree
        "learning_jumps": 10,
        "methodical_max_variance": 10.0,
        "methodical_min_planning": 2.0,
        "adventurous_min_risk": 0.7,
        "efficient_ratio": 2.0,

        # Exploration style
        "methodical_attempts": 1,
        "chaotic_attempts": 5,
    }

    MASTERY_WEIGHTS = {
        "consistency": 0.3,
        "planning": 0.3,
        "efficiency": 0.2,
        "collision_avoidance": 0.2,
    }

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        custom_thresholds: Optional[Dict[str, float]] = None,
    ):
        self.store = store
        self.thresholds = {**self.THRESHOLDS, **(custom_thresholds or {})}
        self.movement = MovementProfile()
        self.exploration = ExplorationProfile()

    def reset(self) -> None:
        self.movement = MovementProfile()
        self.exploration = ExplorationProfile()

    # ==================== Actions ====================

    def on_action(self, kind: str, parameters: Optional[Mapping[str, Any]] = None) -> bool:
        """
        Fold one action into the movement profile.

        Returns False for unknown action kinds; malformed parameters are
        treated as zero.
        """
        try:
            action = ActionKind(kind)
        except ValueError:
            logger.debug(f"Ignoring unknown action kind '{kind}'")
            return False

        parameters = parameters if isinstance(parameters, Mapping) else {}

        if action == ActionKind.JUMP:
            self._on_jump(parameters)
        elif action == ActionKind.COLLISION:
            self.movement.collisions += 1
            self._refresh_spatial_rates()
        elif action == ActionKind.NEAR_MISS:
            self.movement.near_misses += 1
            self._refresh_spatial_rates()
        elif action == ActionKind.WASTED_MOVE:
            self.movement.wasted_movement += 1
        return True

    def _on_jump(self, parameters: Mapping[str, Any]) -> None:
        movement = self.movement
        t = self.thresholds

        power = max(0.0, as_number(parameters, "power"))
        distance = self._jump_distance(parameters)
        planning_time = as_number(parameters, "planning_time", default=None)

        movement.total_jumps += 1
        movement.total_distance += distance
        movement.average_jump_distance = movement.total_distance / movement.total_jumps

        if movement.total_jumps == 1 and movement.preferred_jump_power == 0:
            movement.preferred_jump_power = power
        else:
            movement.preferred_jump_power = self._ema(movement.preferred_jump_power, power, t["power_alpha"])

        power_diff = abs(power - movement.preferred_jump_power)
        movement.jump_power_variance = self._ema(movement.jump_power_variance, power_diff, t["variance_alpha"])

        if planning_time is not None and planning_time > 0:
            if movement.planning_time == 0:
                movement.planning_time = planning_time
            else:
                movement.planning_time = self._ema(movement.planning_time, planning_time, t["planning_alpha"])

        self._update_risk_and_paths(power, distance)
        self._update_spatial_mastery(planning_time)
        self._refresh_spatial_rates()

        logger.debug(f"Jump tracked: power={power:.2f}, distance={distance:.0f}, planning={planning_time or 0:.2f}")

    @staticmethod
    def _jump_distance(parameters: Mapping[str, Any]) -> float:
        distance = as_number(parameters, "distance", default=None)
        if distance is not None:
            return max(0.0, distance)

        start_x = as_number(parameters, "start_x")
        start_y = as_number(parameters, "start_y")
        target_x = as_number(parameters, "target_x")
        target_y = as_number(parameters, "target_y")
        return math.hypot(target_x - start_x, target_y - start_y)

    def _update_risk_and_paths(self, power: float, distance: float) -> None:
        movement = self.movement
        t = self.thresholds

        # High power over a long distance reads as risk-taking
        risk_factor = (power / t["risk_power_scale"]) * (distance / t["risk_distance_scale"])
        movement.risk_tolerance = clamp01(
            self._ema(movement.risk_tolerance, min(1.0, risk_factor), t["risk_alpha"])
        )

        if distance < t["efficient_max_distance"] and power < t["efficient_max_power"]:
            movement.efficient_paths += 1
        elif power > t["creative_min_power"] or distance > t["creative_min_distance"]:
            movement.creative_paths += 1

    def _update_spatial_mastery(self, planning_time: Optional[float]) -> None:
        movement = self.movement
        t = self.thresholds
        w = self.MASTERY_WEIGHTS

        consistency_score = self._consistency_score()
        planning_score = self._planning_score(planning_time)
        efficiency_score = self._path_efficiency()

        new_mastery = (
            consistency_score * w["consistency"]
            + planning_score * w["planning"]
            + efficiency_score * w["efficiency"]
            + (1 - movement.collision_rate) * w["collision_avoidance"]
        )
        movement.spatial_mastery = clamp01(
            self._ema(movement.spatial_mastery, new_mastery, t["mastery_alpha"])
        )

    def _consistency_score(self) -> float:
        return 1.0 - min(1.0, self.movement.jump_power_variance / self.thresholds["variance_scale"])

    def _planning_score(self, planning_time: Optional[float]) -> float:
        """1 inside the optimal window, falling off when too fast or too slow"""
        t = self.thresholds
        if planning_time is None or planning_time <= 0:
            return 0.0
        if t["planning_optimal_min"] <= planning_time <= t["planning_optimal_max"]:
            return 1.0
        if planning_time < t["planning_optimal_min"]:
            return planning_time / t["planning_optimal_min"]
        return max(0.0, 1.0 - (planning_time - t["planning_optimal_max"]) / t["planning_slow_span"])

    def _path_efficiency(self) -> float:
        movement = self.movement
        total_paths = movement.efficient_paths + movement.creative_paths + movement.wasted_movement
        if total_paths == 0:
            return 0.0
        return (movement.efficient_paths + movement.creative_paths * 0.5) / total_paths

    def _refresh_spatial_rates(self) -> None:
        movement = self.movement
        jumps = max(1, movement.total_jumps)
        movement.collision_rate = clamp01(movement.collisions / jumps)
        movement.near_miss_rate = clamp01(movement.near_misses / jumps)

    @staticmethod
    def _ema(old: float, sample: float, alpha: float) -> float:
        return old * (1 - alpha) + sample * alpha

    # ==================== Exploration ====================

    def on_discovery(
        self,
        target_id: Optional[str] = None,
        attempts: Optional[float] = None,
        position: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Record reaching a new target after ``attempts`` tries (default 1)"""
        exploration = self.exploration
        tries = as_number({"attempts": attempts}, "attempts", default=1.0)
        tries = max(1, int(tries))

        exploration.discoveries += 1
        exploration.discovery_attempts += tries
        exploration.exploration_efficiency = clamp01(
            exploration.discoveries / exploration.discovery_attempts
        )

        key = str(target_id) if target_id is not None else f"target_{exploration.discoveries}"
        exploration.visit_distribution[key] = exploration.visit_distribution.get(key, 0) + 1

        if isinstance(position, Mapping):
            radius = math.hypot(as_number(position, "x"), as_number(position, "y"))
            exploration.exploration_radius = max(exploration.exploration_radius, radius)

        # Style is set once, from the first discovery
        if exploration.exploration_style == ExplorationStyle.UNKNOWN.value:
            exploration.exploration_style = self._exploration_style_for(tries).value

        logger.debug(f"Discovery tracked: {key} after {tries} attempts")

    def _exploration_style_for(self, attempts: int) -> ExplorationStyle:
        if attempts <= self.thresholds["methodical_attempts"]:
            return ExplorationStyle.METHODICAL
        if attempts > self.thresholds["chaotic_attempts"]:
            return ExplorationStyle.CHAOTIC
        return ExplorationStyle.BALANCED

    # ==================== Classification ====================

    def classify_movement_style(self) -> MovementStyle:
        """Decision tree over the accumulated movement counters"""
        movement = self.movement
        t = self.thresholds

        if movement.total_jumps < t["learning_jumps"]:
            return MovementStyle.LEARNING

        if (movement.jump_power_variance < t["methodical_max_variance"]
                and movement.planning_time > t["methodical_min_planning"]):
            return MovementStyle.METHODICAL
        if (movement.risk_tolerance > t["adventurous_min_risk"]
                and movement.creative_paths > movement.efficient_paths):
            return MovementStyle.ADVENTUROUS
        if movement.efficient_paths > movement.creative_paths * t["efficient_ratio"]:
            return MovementStyle.EFFICIENT
        return MovementStyle.BALANCED

    def performance_snapshot(self) -> Dict[str, float]:
        """
        Sub-metrics for skill progression, each in [0, 1]. Empty until the
        first jump so a newcomer's skill is not dragged toward zero.
        """
        movement = self.movement
        if movement.total_jumps == 0:
            return {}

        return {
            "accuracy": clamp01(1.0 - movement.collision_rate),
            "efficiency": clamp01(self._path_efficiency()),
            "consistency": clamp01(self._consistency_score()),
            "creativity": clamp01(movement.creative_paths / movement.total_jumps),
        }

    def get_summary(self) -> Dict[str, Dict[str, Any]]:
        movement = self.movement
        exploration = self.exploration
        return {
            "movement": {
                "style": self.classify_movement_style().value,
                "total_jumps": movement.total_jumps,
                "average_distance": movement.average_jump_distance,
                "mastery": movement.spatial_mastery,
                "risk_tolerance": movement.risk_tolerance,
                "preferred_power": movement.preferred_jump_power,
                "power_variance": movement.jump_power_variance,
                "planning_time": movement.planning_time,
            },
            "exploration": {
                "style": exploration.exploration_style,
                "discoveries": exploration.discoveries,
                "attempts": exploration.discovery_attempts,
                "efficiency": exploration.exploration_efficiency,
                "radius": exploration.exploration_radius,
            },
        }

    # ==================== Persistence ====================

    def save_state(self) -> Dict[str, Any]:
        return {
            "movement_profile": self.movement.to_dict(),
            "exploration_profile": self.exploration.to_dict(),
        }

    def restore_state(self, state: Any) -> None:
        """Merge a saved state over the current profiles; absent fields keep their values"""
        if not isinstance(state, dict):
            return
        self.movement = MovementProfile.from_dict(
            merge_into(self.movement.to_dict(), state.get("movement_profile"))
        )
        self.exploration = ExplorationProfile.from_dict(
            merge_into(self.exploration.to_dict(), state.get("exploration_profile"))
        )
        self.exploration.visit_distribution = filter_entries(
            self.exploration.visit_distribution, is_number, "visit_distribution"
        )

    def save(self) -> bool:
        return safe_save(self.store, STORE_KEY, self.save_state())

    def load(self) -> bool:
        state = safe_load(self.store, STORE_KEY)
        if state is None:
            return False
        self.restore_state(state)
        return True
