"""
Event & Session Tracker

Gameplay event ingestion, session lifecycle, lifetime metrics, sentiment
surveys and deterministic A/B cohorts.
"""
from .cohorts import CohortAssignment, cohort_for, get_or_create_player_id, variants_for
from .session_tracker import (
    Event,
    EventBuffer,
    GameEvent,
    SentimentKind,
    Session,
    SessionTracker,
    default_metrics,
)

__all__ = [
    "CohortAssignment",
    "cohort_for",
    "get_or_create_player_id",
    "variants_for",
    "Event",
    "EventBuffer",
    "GameEvent",
    "SentimentKind",
    "Session",
    "SessionTracker",
    "default_metrics",
]
