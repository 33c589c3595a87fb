"""
Intervention Engine - Automatic Configuration Changes for Critical Insights

Critical insights are mapped through a fixed table to configuration
batches. Parameters are target values, never deltas, so applying the same
intervention twice leaves the same state as applying it once.
"""
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Protocol
from collections import deque
import copy
import logging

from playlens.core.exceptions import ConfigurationRejected
from playlens.schemas.analytics import (
    Insight,
    InsightType,
    InterventionAction,
    InterventionOutcome,
    Severity,
)

logger = logging.getLogger(__name__)


class ConfigurationSurface(Protocol):
    """The single write path into game configuration"""

    def apply_configuration_batch(self, parameters: Mapping[str, Any], reason: str) -> Any:
        ...


class InterventionRule(NamedTuple):
    action: str
    parameters: Dict[str, Any]
    reason: str


INTERVENTION_TABLE: Dict[InsightType, InterventionRule] = {
    InsightType.CRITICAL_SATISFACTION: InterventionRule(
        action="reduce_difficulty",
        parameters={"difficulty_scaling": 0.8},
        reason="auto_intervention",
    ),
    InsightType.CRASHES_DETECTED: InterventionRule(
        action="enable_safe_mode",
        parameters={"particle_intensity": 0.3, "screen_glow_intensity": 0.2},
        reason="performance_intervention",
    ),
    InsightType.LOW_FPS: InterventionRule(
        action="optimize_performance",
        parameters={"particle_intensity": 0.5, "animation_speed": 0.8},
        reason="fps_intervention",
    ),
    InsightType.XP_RATE_TOO_LOW: InterventionRule(
        action="increase_xp_rates",
        parameters={"xp_source_multipliers": {"perfect_landing": 1.2, "combo_ring": 1.1}},
        reason="progression_intervention",
    ),
}


class InterventionEngine:
    """
    Plans and applies interventions through a configuration surface.

    A rejected batch is logged as failed and not retried; the next analysis
    cycle may detect the issue again and re-attempt.
    """

    HISTORY_SIZE = 50

    def __init__(
        self,
        configuration: Optional[ConfigurationSurface] = None,
        track_event: Optional[Callable[[str, Mapping[str, Any]], Any]] = None,
        table: Optional[Dict[InsightType, InterventionRule]] = None,
    ):
        self.configuration = configuration
        self.track_event = track_event
        self.table = table if table is not None else INTERVENTION_TABLE
        self.outcomes: deque = deque(maxlen=self.HISTORY_SIZE)

    def create_intervention(self, insight: Insight) -> Optional[InterventionAction]:
        """Action for a critical insight, or None when its type is unmapped"""
        if insight.severity != Severity.CRITICAL:
            return None

        rule = self.table.get(insight.type)
        if rule is None:
            return None

        return InterventionAction(
            type=insight.type,
            action=rule.action,
            parameters=copy.deepcopy(rule.parameters),
            reason=rule.reason,
        )

    def plan(self, insights: Iterable[Insight]) -> List[InterventionAction]:
        """One action per triggering insight type, in first-seen order"""
        actions: List[InterventionAction] = []
        seen = set()
        for insight in insights:
            action = self.create_intervention(insight)
            if action is None or action.type in seen:
                continue
            seen.add(action.type)
            actions.append(action)
        return actions

    def execute(self, action: InterventionAction) -> InterventionOutcome:
        if self.configuration is None:
            outcome = InterventionOutcome(action=action, applied=False, error="no configuration surface")
            logger.warning(f"Intervention {action.action} skipped: no configuration surface")
            self.outcomes.append(outcome)
            return outcome

        try:
            changes = self.configuration.apply_configuration_batch(action.parameters, action.reason)
        except ConfigurationRejected as e:
            outcome = InterventionOutcome(action=action, applied=False, error=str(e))
            logger.warning(f"Intervention {action.action} failed: {e}")
            self.outcomes.append(outcome)
            return outcome
        except Exception as e:
            outcome = InterventionOutcome(action=action, applied=False, error=str(e))
            logger.warning(f"Intervention {action.action} failed unexpectedly: {e}")
            self.outcomes.append(outcome)
            return outcome

        outcome = InterventionOutcome(action=action, applied=True)
        self.outcomes.append(outcome)

        if self.track_event is not None:
            self.track_event("auto_intervention", {
                "type": action.type.value,
                "action": action.action,
                "parameters": copy.deepcopy(action.parameters),
                "reason": action.reason,
                "changed": sorted(changes) if isinstance(changes, Mapping) else None,
            })

        logger.info(f"Applied automatic intervention: {action.action} ({action.type.value})")
        return outcome

    def run(self, insights: Iterable[Insight]) -> List[InterventionOutcome]:
        return [self.execute(action) for action in self.plan(insights)]

    def recent_outcomes(self, limit: Optional[int] = None) -> List[InterventionOutcome]:
        items = list(self.outcomes)
        return items if limit is None else items[-limit:]
