"""
Statistical Analyzer & Intervention Engine

Periodic analysis over the tracker and profiler reports:
- Category analyzers (engagement, balance, progression, sentiment,
  performance, behavioral) producing severity-tagged insights
- Churn risk from an additive weighted indicator model
- Coarse significance tests behind a substitutable interface
- Automatic interventions for critical insights
"""
from .category_analyzers import (
    AnalysisInputs,
    CategoryAnalyzer,
    analyze_player_journeys,
    analyze_quit_points,
    default_analyzers,
)
from .churn import ChurnInputs, ChurnPredictor
from .feedback_analyzer import AnalysisPhase, FeedbackAnalyzer
from .intervention_engine import INTERVENTION_TABLE, ConfigurationSurface, InterventionEngine
from .statistical_tools import ChiSquareTest, PooledTTest, SignificanceResult, SignificanceTest

__all__ = [
    "AnalysisInputs",
    "CategoryAnalyzer",
    "analyze_player_journeys",
    "analyze_quit_points",
    "default_analyzers",
    "ChurnInputs",
    "ChurnPredictor",
    "AnalysisPhase",
    "FeedbackAnalyzer",
    "INTERVENTION_TABLE",
    "ConfigurationSurface",
    "InterventionEngine",
    "ChiSquareTest",
    "PooledTTest",
    "SignificanceResult",
    "SignificanceTest",
]
