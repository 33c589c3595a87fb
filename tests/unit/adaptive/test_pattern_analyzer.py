"""
Unit tests for skill and emotional pattern analysis.

Tests cover:
- Mood rule order and priority
- Asymmetric emotional event rules
- Skill progression smoothing, velocity and plateau
- Session energy decay
- Save/restore merge round trip
"""

import random

import pytest

from playlens.adaptive.pattern_analyzer import (
    MOOD_RULES,
    Mood,
    PatternAnalyzer,
)
from playlens.core.clock import GameClock
from playlens.core.storage import InMemoryStore


class TestMoodRules:
    """Tests for the ordered mood rule chain."""

    def test_rule_order(self):
        """Test the rule order that mood inference depends on."""
        assert [rule.name for rule in MOOD_RULES] == [
            "idle_without_persistence",
            "idle",
            "confident_and_energetic",
            "low_energy",
            "engaged",
        ]
        assert [rule.result for rule in MOOD_RULES] == [
            Mood.FRUSTRATED,
            Mood.CONTEMPLATIVE,
            Mood.FLOW,
            Mood.TIRED,
            Mood.FOCUSED,
        ]

    def test_idle_low_persistence_beats_flow(self, patterns, clock):
        """Test every condition true at once resolves to the first rule."""
        patterns.emotional.confidence = 0.9
        patterns.emotional.engagement = 0.9
        patterns.emotional.retry_persistence = 0.1
        clock.tick(40)

        assert patterns.current_mood() == Mood.FRUSTRATED

    def test_idle_with_persistence_is_contemplative(self, patterns, clock):
        patterns.emotional.confidence = 0.9
        clock.tick(40)
        assert patterns.current_mood() == Mood.CONTEMPLATIVE

    def test_flow_beats_focused(self, patterns):
        patterns.emotional.confidence = 0.9
        patterns.emotional.engagement = 0.9
        assert patterns.current_mood() == Mood.FLOW

    def test_tired_beats_focused(self, patterns):
        patterns.emotional.session_energy = 0.2
        patterns.emotional.engagement = 0.9
        assert patterns.current_mood() == Mood.TIRED

    def test_focused_and_neutral(self, patterns):
        assert patterns.current_mood() == Mood.NEUTRAL
        patterns.emotional.engagement = 0.9
        assert patterns.current_mood() == Mood.FOCUSED

    def test_activity_resets_idle(self, patterns, clock):
        patterns.emotional.retry_persistence = 0.1
        clock.tick(40)
        patterns.note_activity()
        assert patterns.current_mood() != Mood.FRUSTRATED


class TestEmotionalEvents:
    """Tests for emotional event rules."""

    def test_success_raises_faster_than_failure_lowers(self, patterns):
        patterns.on_emotional_event("success", 1.0)
        assert patterns.emotional.confidence == pytest.approx(0.6)
        patterns.on_emotional_event("failure", 1.0)
        assert patterns.emotional.confidence == pytest.approx(0.55)

    def test_intensity_is_clamped(self, patterns):
        patterns.on_emotional_event("success", 5.0)
        assert patterns.emotional.confidence == pytest.approx(0.6)

    def test_unknown_kind_ignored(self, patterns):
        assert patterns.on_emotional_event("boredom", 1.0) is False
        assert patterns.emotional.emotional_events == 0

    def test_repeated_frustration(self, patterns):
        for _ in range(4):
            patterns.on_emotional_event("frustration", 1.0)

        emotional = patterns.emotional
        assert emotional.retry_persistence == pytest.approx(0.5 * 0.8 ** 4)
        assert emotional.satisfaction == pytest.approx(0.5 * 0.85 ** 4)
        assert emotional.confidence == pytest.approx(0.3)
        assert emotional.engagement == pytest.approx(0.3)

    def test_flow_adds_duration(self, patterns):
        patterns.on_emotional_event("flow", 1.0, {"duration": 12})
        assert patterns.emotional.flow_state_duration == 12
        assert patterns.emotional.engagement == pytest.approx(0.6)

    def test_histories_are_bounded(self, patterns, test_settings):
        for _ in range(test_settings.EMOTIONAL_HISTORY_SIZE + 10):
            patterns.on_emotional_event("failure", 0.5)
        assert len(patterns.emotional.failure_patterns) == test_settings.EMOTIONAL_HISTORY_SIZE


class TestSkillProgression:
    """Tests for the smoothed skill scalar."""

    def test_first_update(self, patterns):
        metrics = {"accuracy": 1.0, "efficiency": 1.0, "creativity": 1.0, "consistency": 1.0}
        assert patterns.update_skill_progression(metrics) is True

        skill = patterns.skill
        assert skill.current_skill == pytest.approx(0.05)
        assert skill.skill_velocity == pytest.approx(0.05)
        assert skill.initial_skill == pytest.approx(1.0)

    def test_unusable_metrics(self, patterns):
        assert patterns.update_skill_progression(None) is False
        assert patterns.update_skill_progression({"speed": 1.0}) is False
        assert patterns.skill.updates == 0

    def test_plateau_requires_skill_floor(self):
        analyzer = PatternAnalyzer(custom_thresholds={"skill_alpha": 1.0})
        low = {"accuracy": 0.4, "efficiency": 0.4, "creativity": 0.4, "consistency": 0.4}
        analyzer.update_skill_progression(low)
        analyzer.update_skill_progression(low)
        assert analyzer.skill.skill_velocity == pytest.approx(0.0)
        assert analyzer.skill.skill_plateau is False

        high = {"accuracy": 0.8, "efficiency": 0.8, "creativity": 0.8, "consistency": 0.8}
        analyzer.update_skill_progression(high)
        analyzer.update_skill_progression(high)
        assert analyzer.skill.skill_plateau is True

    def test_plateau_never_at_low_skill(self, patterns):
        rng = random.Random(3)
        for _ in range(300):
            patterns.update_skill_progression({
                name: rng.random() for name in ("accuracy", "efficiency", "creativity", "consistency")
            })
            if patterns.skill.skill_plateau:
                assert patterns.skill.current_skill > 0.5

    def test_history_capped(self, patterns, test_settings):
        for _ in range(test_settings.SKILL_HISTORY_SIZE + 50):
            patterns.update_skill_progression({"accuracy": 0.5})
        assert len(patterns.skill.history) == test_settings.SKILL_HISTORY_SIZE


class TestSessionPatterns:
    """Tests for session energy and lifecycle."""

    def test_begin_session(self, patterns):
        patterns.emotional.session_energy = 0.1
        mood = patterns.begin_session()

        assert patterns.sessions.total_sessions == 1
        assert patterns.emotional.session_energy == 1.0
        assert patterns.sessions.session_start_mood == mood.value

    def test_energy_decays_and_fade_recorded(self, patterns, clock):
        patterns.begin_session()
        clock.tick(1800)
        patterns.update_session()
        assert patterns.emotional.session_energy == pytest.approx(0.5)
        assert patterns.sessions.fade_time == 0

        clock.tick(100)
        patterns.update_session()
        assert patterns.sessions.fade_time == pytest.approx(1900)

    def test_analysis_shape(self, patterns):
        analysis = patterns.get_analysis()
        assert set(analysis) == {"skill", "emotional", "session"}
        assert analysis["emotional"]["mood"] == Mood.NEUTRAL.value


class TestPersistence:
    """Tests for save/load merge round trips."""

    def test_round_trip(self):
        store = InMemoryStore()
        clock = GameClock()
        analyzer = PatternAnalyzer(store, clock.now)
        analyzer.begin_session()
        analyzer.on_emotional_event("success", 0.7)
        analyzer.update_skill_progression({"accuracy": 0.9, "efficiency": 0.6})
        analyzer.save()

        fresh = PatternAnalyzer(store, clock.now)
        assert fresh.load() is True
        assert fresh.skill == analyzer.skill
        assert fresh.emotional == analyzer.emotional
        assert fresh.sessions == analyzer.sessions

    def test_missing_record(self, patterns):
        assert patterns.load() is False
        assert patterns.emotional.confidence == 0.5
