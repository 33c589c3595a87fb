"""
Unit test configuration and fixtures.

Unit tests validate isolated components against an in-memory store and a
logical clock. They never touch the filesystem unless a test asks for
``tmp_path`` explicitly.
"""

import pytest

from playlens.adaptive.behavior_tracker import BehaviorTracker
from playlens.adaptive.pattern_analyzer import PatternAnalyzer
from playlens.core.clock import GameClock
from playlens.core.config import Settings
from playlens.core.storage import InMemoryStore
from playlens.pipeline import AnalyticsPipeline
from playlens.tracking.session_tracker import SessionTracker


WALL_CLOCK_START = 1_700_000_000.0


# ============================================================================
# Infrastructure Fixtures
# ============================================================================

@pytest.fixture
def store():
    """Fresh in-memory key-value store."""
    return InMemoryStore()


@pytest.fixture
def clock():
    """Logical clock starting at zero."""
    return GameClock()


@pytest.fixture
def test_settings():
    """Settings with the documented defaults."""
    return Settings(ANALYSIS_INTERVAL_SECONDS=60.0, EVENT_BUFFER_SIZE=1000)


@pytest.fixture
def wall_clock():
    """Fixed wall clock so retention maths is deterministic."""
    return lambda: WALL_CLOCK_START


# ============================================================================
# Component Fixtures
# ============================================================================

@pytest.fixture
def tracker(store, clock, test_settings, wall_clock):
    """Session tracker with an open session."""
    tracker = SessionTracker(store, clock.now, test_settings, wall_clock)
    tracker.init()
    return tracker


@pytest.fixture
def behavior(store):
    """Behavior tracker bound to the test store."""
    return BehaviorTracker(store)


@pytest.fixture
def patterns(store, clock, test_settings):
    """Pattern analyzer driven by the logical clock."""
    return PatternAnalyzer(store, clock.now, test_settings)


@pytest.fixture
def pipeline(store, clock, test_settings, wall_clock):
    """Initialized pipeline with its own configuration surface."""
    pipeline = AnalyticsPipeline(store, test_settings, clock=clock, wall_clock=wall_clock)
    pipeline.init()
    return pipeline
