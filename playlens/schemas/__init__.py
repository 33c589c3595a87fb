from .analytics import (
    AnalysisReport,
    ChurnPrediction,
    ChurnRiskLevel,
    Insight,
    InsightCategory,
    InsightSet,
    InsightType,
    InterventionAction,
    InterventionOutcome,
    Recommendation,
    Severity,
    SystemRecommendation,
    TopRecommendation,
)

__all__ = [
    "AnalysisReport",
    "ChurnPrediction",
    "ChurnRiskLevel",
    "Insight",
    "InsightCategory",
    "InsightSet",
    "InsightType",
    "InterventionAction",
    "InterventionOutcome",
    "Recommendation",
    "Severity",
    "SystemRecommendation",
    "TopRecommendation",
]
