"""
Behavior & Pattern Profiler

Per-player profiles built from gameplay actions with O(1) memory per field:
- Movement: jump power/variance, planning, risk, spatial mastery, style
- Exploration: discovery efficiency, visit distribution, style
- Skill progression: smoothed skill scalar, velocity, plateau detection
- Emotional state: confidence, persistence, engagement, rule-based mood
"""

# Movement & exploration
from .behavior_tracker import (
    ActionKind,
    BehaviorTracker,
    ExplorationProfile,
    ExplorationStyle,
    MovementProfile,
    MovementStyle,
)

# Skill & emotional patterns
from .pattern_analyzer import (
    MOOD_RULES,
    EmotionalEventKind,
    EmotionalProfile,
    Mood,
    MoodContext,
    MoodRule,
    PatternAnalyzer,
    SessionPatterns,
    SkillProgression,
)

__all__ = [
    "ActionKind",
    "BehaviorTracker",
    "ExplorationProfile",
    "ExplorationStyle",
    "MovementProfile",
    "MovementStyle",
    "MOOD_RULES",
    "EmotionalEventKind",
    "EmotionalProfile",
    "Mood",
    "MoodContext",
    "MoodRule",
    "PatternAnalyzer",
    "SessionPatterns",
    "SkillProgression",
]
