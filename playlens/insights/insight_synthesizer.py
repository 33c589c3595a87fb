"""
Insight Synthesizer - Player-Facing Insights from Profile Snapshots

Maps the behavior summary (movement/exploration) and the pattern analysis
(skill/emotional) onto categorized, confidence-scored insights, then ranks
the actionable ones (challenges and tips) into recommendations.

Synthesis is pure: the same summaries always produce the same InsightSet.
Missing or malformed summary fields never raise; the affected category is
listed in ``InsightSet.insufficient_data`` and its rules that need the field
are skipped.
"""
from typing import Any, Dict, List, Mapping, Optional, Tuple
import logging

from playlens.core.payload import as_number, as_text
from playlens.schemas.analytics import (
    Insight,
    InsightCategory,
    InsightSet,
    InsightType,
    Recommendation,
    SystemRecommendation,
)

logger = logging.getLogger(__name__)

ACTIONABLE_TYPES = (InsightType.CHALLENGE, InsightType.TIP)


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


class _Section:
    """Field reader over one summary section that remembers what was missing"""

    def __init__(self, data: Any):
        self.data = data if isinstance(data, Mapping) else {}
        self.missing: List[str] = [] if isinstance(data, Mapping) else ["*"]

    def number(self, key: str) -> Optional[float]:
        value = as_number(self.data, key, default=None)
        if value is None:
            self.missing.append(key)
        return value

    def text(self, key: str) -> Optional[str]:
        value = as_text(self.data, key)
        if value is None:
            self.missing.append(key)
        return value

    def flag(self, key: str) -> Optional[bool]:
        value = self.data.get(key)
        if not isinstance(value, bool):
            self.missing.append(key)
            return None
        return value


class InsightSynthesizer:
    """
    Rule-based insight generation.

    Thresholds are configuration; override them per instance via
    ``custom_thresholds``.
    """

    THRESHOLDS = {
        "mastery_low": 0.3,
        "mastery_high": 0.7,
        "exploration_efficiency_high": 0.8,
        "exploration_efficiency_low": 0.3,
        "skill_velocity_progress": 0.01,
        "skill_consistency_high": 0.8,
        "satisfaction_high": 0.8,
        "energy_low": 0.3,

        # System recommendations
        "difficulty_up_skill": 0.7,
        "difficulty_down_skill": 0.3,
        "difficulty_down_confidence": 0.4,
    }

    def __init__(self, custom_thresholds: Optional[Dict[str, float]] = None):
        self.thresholds = {**self.THRESHOLDS, **(custom_thresholds or {})}
        self.last_result: Optional[InsightSet] = None

    def synthesize(self, behavior_summary: Any, pattern_summary: Any) -> InsightSet:
        behavior = _mapping(behavior_summary)
        pattern = _mapping(pattern_summary)

        movement, movement_missing = self._movement_insights(_Section(behavior.get("movement")))
        exploration, exploration_missing = self._exploration_insights(_Section(behavior.get("exploration")))
        skill, skill_missing = self._skill_insights(_Section(pattern.get("skill")))
        emotional, emotional_missing = self._emotional_insights(_Section(pattern.get("emotional")))

        insufficient = [
            category
            for category, missing in (
                (InsightCategory.MOVEMENT, movement_missing),
                (InsightCategory.EXPLORATION, exploration_missing),
                (InsightCategory.SKILL, skill_missing),
                (InsightCategory.EMOTIONAL, emotional_missing),
            )
            if missing
        ]
        if insufficient:
            logger.debug(f"Insufficient data for: {', '.join(c.value for c in insufficient)}")

        insight_set = InsightSet(
            movement=movement,
            exploration=exploration,
            skill=skill,
            emotional=emotional,
            insufficient_data=insufficient,
        )
        insight_set.recommendations = self._recommendations(insight_set)
        self.last_result = insight_set
        return insight_set

    # ==================== Category rules ====================

    def _movement_insights(self, section: _Section) -> Tuple[List[Insight], bool]:
        t = self.thresholds
        insights: List[Insight] = []
        category = InsightCategory.MOVEMENT

        style = section.text("style")
        if style == "methodical":
            insights.append(self._insight(category, InsightType.STRENGTH,
                                          "Careful, planned movements show excellent control", 0.8))
        elif style == "adventurous":
            insights.append(self._insight(category, InsightType.STRENGTH,
                                          "Bold exploration style leads to creative discoveries", 0.8))

        mastery = section.number("mastery")
        jumps = as_number(section.data, "total_jumps", default=None)
        if mastery is not None and (jumps is None or jumps > 0):
            if mastery < t["mastery_low"]:
                insights.append(self._insight(category, InsightType.GROWTH,
                                              "Movement precision is improving with practice", 0.7, mastery))
            elif mastery > t["mastery_high"]:
                insights.append(self._insight(category, InsightType.MASTERY,
                                              "Exceptional spatial control demonstrated", 0.9, mastery))

        return insights, bool(section.missing)

    def _exploration_insights(self, section: _Section) -> Tuple[List[Insight], bool]:
        t = self.thresholds
        insights: List[Insight] = []
        category = InsightCategory.EXPLORATION

        efficiency = section.number("efficiency")
        discoveries = as_number(section.data, "discoveries", default=None)
        # No discoveries yet means the efficiency is undefined, not low
        if efficiency is not None and (discoveries is None or discoveries > 0):
            if efficiency > t["exploration_efficiency_high"]:
                insights.append(self._insight(category, InsightType.STRENGTH,
                                              "Highly efficient at discovering new areas", 0.9, efficiency))
            elif efficiency < t["exploration_efficiency_low"]:
                insights.append(self._insight(category, InsightType.TIP,
                                              "Try varying jump power for better exploration success", 0.6, efficiency))

        if section.text("style") == "methodical":
            insights.append(self._insight(category, InsightType.PATTERN,
                                          "Systematic exploration approach ensures thorough coverage", 0.8))

        return insights, bool(section.missing)

    def _skill_insights(self, section: _Section) -> Tuple[List[Insight], bool]:
        t = self.thresholds
        insights: List[Insight] = []
        category = InsightCategory.SKILL

        velocity = section.number("velocity")
        plateau = section.flag("plateau")
        if velocity is not None and velocity > t["skill_velocity_progress"]:
            insights.append(self._insight(category, InsightType.PROGRESS,
                                          "Skills are rapidly improving", 0.8, velocity))
        elif plateau:
            insights.append(self._insight(category, InsightType.CHALLENGE,
                                          "Ready for new challenges to break through skill plateau", 0.7))

        consistency = section.number("consistency")
        if consistency is not None and consistency > t["skill_consistency_high"]:
            insights.append(self._insight(category, InsightType.MASTERY,
                                          "Remarkably consistent performance achieved", 0.9, consistency))

        return insights, bool(section.missing)

    def _emotional_insights(self, section: _Section) -> Tuple[List[Insight], bool]:
        t = self.thresholds
        insights: List[Insight] = []
        category = InsightCategory.EMOTIONAL

        mood = section.text("mood")
        if mood == "flow":
            insights.append(self._insight(category, InsightType.STATE,
                                          "In the zone - optimal performance state", 0.9))
        elif mood == "frustrated":
            insights.append(self._insight(category, InsightType.SUPPORT,
                                          "Consider a short break or easier challenge", 0.7))

        satisfaction = section.number("satisfaction")
        if satisfaction is not None and satisfaction > t["satisfaction_high"]:
            insights.append(self._insight(category, InsightType.POSITIVE,
                                          "High satisfaction with current progress", 0.8, satisfaction))

        energy = section.number("energy")
        if energy is not None and energy < t["energy_low"]:
            insights.append(self._insight(category, InsightType.WELLNESS,
                                          "Energy levels low - perfect time for a break", 0.8, energy))

        return insights, bool(section.missing)

    @staticmethod
    def _insight(
        category: InsightCategory,
        insight_type: InsightType,
        message: str,
        confidence: float,
        metric: Optional[float] = None,
    ) -> Insight:
        return Insight(
            category=category,
            type=insight_type,
            message=message,
            confidence=confidence,
            metric=metric,
        )

    # ==================== Recommendations ====================

    @staticmethod
    def _recommendations(insight_set: InsightSet) -> List[Recommendation]:
        recommendations = [
            Recommendation(category=insight.category, priority=insight.confidence, action=insight.message)
            for insight in insight_set.all_insights()
            if insight.type in ACTIONABLE_TYPES
        ]
        recommendations.sort(key=lambda r: r.priority, reverse=True)
        return recommendations

    def system_recommendations(self, behavior_summary: Any, pattern_summary: Any) -> List[SystemRecommendation]:
        """Adaptations for the difficulty, content and support systems"""
        t = self.thresholds
        behavior = _mapping(behavior_summary)
        pattern = _mapping(pattern_summary)
        movement = _Section(behavior.get("movement"))
        exploration = _Section(behavior.get("exploration"))
        skill = _Section(pattern.get("skill"))
        emotional = _Section(pattern.get("emotional"))

        recommendations: List[SystemRecommendation] = []

        level = skill.number("level")
        plateau = skill.flag("plateau")
        confidence = emotional.number("confidence")
        if level is not None:
            if level > t["difficulty_up_skill"] and plateau is False:
                recommendations.append(SystemRecommendation(
                    system="difficulty", action="increase",
                    reason="High skill level with continued improvement", confidence=0.8,
                ))
            elif (level < t["difficulty_down_skill"] and confidence is not None
                  and confidence < t["difficulty_down_confidence"]):
                recommendations.append(SystemRecommendation(
                    system="difficulty", action="decrease",
                    reason="Low skill and confidence levels", confidence=0.7,
                ))

        if exploration.text("style") == "methodical":
            recommendations.append(SystemRecommendation(
                system="content", action="show_hidden_areas",
                reason="Player enjoys thorough exploration", confidence=0.8,
            ))
        elif movement.text("style") == "adventurous":
            recommendations.append(SystemRecommendation(
                system="content", action="add_challenges",
                reason="Player seeks risky, creative paths", confidence=0.8,
            ))

        energy = emotional.number("energy")
        if emotional.text("mood") == "frustrated":
            recommendations.append(SystemRecommendation(
                system="support", action="offer_hint",
                reason="Player showing signs of frustration", confidence=0.7,
            ))
        elif energy is not None and energy < t["energy_low"]:
            recommendations.append(SystemRecommendation(
                system="support", action="suggest_break",
                reason="Low energy levels detected", confidence=0.8,
            ))

        return recommendations

    def get_player_profile(self, behavior_summary: Any, pattern_summary: Any) -> Dict[str, Any]:
        """Play style, headline metrics and fresh insights in one record"""
        insight_set = self.synthesize(behavior_summary, pattern_summary)
        behavior = _mapping(behavior_summary)
        pattern = _mapping(pattern_summary)
        movement = _mapping(behavior.get("movement"))
        exploration = _mapping(behavior.get("exploration"))
        skill = _mapping(pattern.get("skill"))
        emotional = _mapping(pattern.get("emotional"))

        return {
            "playstyle": {
                "movement": movement.get("style"),
                "exploration": exploration.get("style"),
                "primary": movement.get("style"),
            },
            "metrics": {
                "total_jumps": movement.get("total_jumps"),
                "skill_level": skill.get("level"),
                "satisfaction": emotional.get("satisfaction"),
                "consistency": skill.get("consistency"),
            },
            "insights": insight_set.model_dump(mode="json"),
            "recommendations": [r.model_dump(mode="json") for r in insight_set.recommendations],
            "system_recommendations": [
                r.model_dump(mode="json")
                for r in self.system_recommendations(behavior_summary, pattern_summary)
            ],
        }
