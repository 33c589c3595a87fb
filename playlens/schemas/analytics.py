from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel, Field


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class InsightCategory(str, Enum):
    # Synthesizer categories
    MOVEMENT = "movement"
    EXPLORATION = "exploration"
    SKILL = "skill"
    EMOTIONAL = "emotional"
    # Statistical analyzer categories
    ENGAGEMENT = "engagement"
    BALANCE = "balance"
    PROGRESSION = "progression"
    SENTIMENT = "sentiment"
    PERFORMANCE = "performance"
    BEHAVIORAL = "behavioral"


class InsightType(str, Enum):
    # Player-facing insight types
    STRENGTH = "strength"
    GROWTH = "growth"
    MASTERY = "mastery"
    TIP = "tip"
    PATTERN = "pattern"
    PROGRESS = "progress"
    CHALLENGE = "challenge"
    STATE = "state"
    SUPPORT = "support"
    POSITIVE = "positive"
    WELLNESS = "wellness"

    # Engagement
    SESSION_TOO_SHORT = "session_too_short"
    SESSION_TOO_LONG = "session_too_long"
    LOW_SESSION_ENGAGEMENT = "low_session_engagement"
    HIGH_CHURN_RISK = "high_churn_risk"

    # Balance
    DIFFICULTY_DISSATISFACTION = "difficulty_dissatisfaction"
    HIGH_QUIT_RATE = "high_quit_rate"
    SKEWED_QUIT_DISTRIBUTION = "skewed_quit_distribution"
    HIGH_FRUSTRATION = "high_frustration"

    # Progression
    XP_RATE_TOO_LOW = "xp_rate_too_low"
    XP_RATE_TOO_HIGH = "xp_rate_too_high"
    PROGRESSION_DISSATISFACTION = "progression_dissatisfaction"
    SKILL_DECLINING = "skill_declining"
    SKILL_PLATEAU = "skill_plateau"

    # Sentiment
    CRITICAL_SATISFACTION = "critical_satisfaction"
    LOW_SATISFACTION = "low_satisfaction"
    EVENT_DISSATISFACTION = "event_dissatisfaction"
    DECLINING_SENTIMENT = "declining_sentiment"

    # Performance
    LOW_FPS = "low_fps"
    FREQUENT_FRAME_DROPS = "frequent_frame_drops"
    HIGH_MEMORY_USAGE = "high_memory_usage"
    CRASHES_DETECTED = "crashes_detected"

    # Behavioral
    LOW_STREAK_RECOVERY = "low_streak_recovery"
    HIGH_GRACE_PERIOD_USAGE = "high_grace_period_usage"
    FRUSTRATED_MOOD = "frustrated_mood"
    LOW_EXPLORATION_EFFICIENCY = "low_exploration_efficiency"


class Insight(BaseModel):
    category: InsightCategory
    type: InsightType
    severity: Severity = Severity.LOW
    message: str
    confidence: float = Field(0.5, ge=0, le=1)
    metric: Optional[float] = None
    target: Optional[float] = None
    recommendation: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class Recommendation(BaseModel):
    category: InsightCategory
    priority: float = Field(..., ge=0, le=1)
    action: str


class SystemRecommendation(BaseModel):
    system: str  # "difficulty", "content", "support"
    action: str
    reason: str
    confidence: float = Field(..., ge=0, le=1)


class InsightSet(BaseModel):
    movement: List[Insight] = Field(default_factory=list)
    exploration: List[Insight] = Field(default_factory=list)
    skill: List[Insight] = Field(default_factory=list)
    emotional: List[Insight] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    insufficient_data: List[InsightCategory] = Field(default_factory=list)

    def all_insights(self) -> List[Insight]:
        return [*self.movement, *self.exploration, *self.skill, *self.emotional]

    def top_recommendations(self, limit: int = 5) -> List[Recommendation]:
        return self.recommendations[:max(0, limit)]


class InterventionAction(BaseModel):
    type: InsightType  # Insight type that triggered the action
    action: str
    parameters: Dict[str, Any]  # Target state, never a delta
    reason: str


class InterventionOutcome(BaseModel):
    action: InterventionAction
    applied: bool
    error: Optional[str] = None
    applied_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ChurnRiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ChurnPrediction(BaseModel):
    risk_score: float = Field(..., ge=0)
    risk_level: ChurnRiskLevel
    indicators: List[str]
    recommendations: List[str]


class TopRecommendation(BaseModel):
    severity: Severity
    recommendation: str
    category: InsightType


class AnalysisReport(BaseModel):
    timestamp: float
    total_insights: int
    critical_issues: int
    insights_by_category: Dict[str, int]
    top_recommendations: List[TopRecommendation]
    churn: Optional[ChurnPrediction] = None
    skipped_categories: List[str] = Field(default_factory=list)
    journeys: Dict[str, Any] = Field(default_factory=dict)
