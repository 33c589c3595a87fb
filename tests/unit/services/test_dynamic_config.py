"""
Unit tests for the dynamic configuration surface.

Tests cover:
- Atomic batch application and validation
- Bounded change history and rollback
- Automatic rollback on metric regressions
- A/B variant assignments
- Listeners and persistence
"""

import pytest

from playlens.core.clock import GameClock
from playlens.core.config import Settings
from playlens.core.exceptions import ConfigurationRejected
from playlens.core.storage import InMemoryStore
from playlens.services.dynamic_config import (
    DEFAULT_VALUES,
    STORE_KEY,
    DynamicConfig,
)


@pytest.fixture
def events():
    return []


@pytest.fixture
def config(store, clock, test_settings, events):
    config = DynamicConfig(store, clock.now, test_settings, lambda name, data: events.append((name, data)))
    config.init()
    return config


class TestReads:
    """Tests for configuration getters."""

    def test_defaults_are_valid(self, config):
        assert config.validate_configuration() == (True, [])

    def test_xp_scaling_factor_clamps_tier(self, config):
        assert config.get_xp_scaling_factor(1) == 1.15
        assert config.get_xp_scaling_factor(0) == 1.15
        assert config.get_xp_scaling_factor(99) == 1.05

    def test_grace_period_learning_bonus(self, config):
        assert config.get_grace_period() == 3.0
        assert config.get_grace_period(0.8) == 3.0
        assert config.get_grace_period(0.1) == pytest.approx(3.1)

    def test_streak_threshold(self, config):
        assert config.get_streak_threshold(7) == 10
        assert config.get_streak_threshold(100) == 100
        assert config.get_streak_threshold(120) == 120

    def test_feature_flags(self, config):
        assert config.is_feature_enabled("mystery_boxes_enabled")
        assert config.is_feature_enabled("unknown_feature")
        config.apply_configuration_batch({"features": {"mystery_boxes_enabled": False}})
        assert not config.is_feature_enabled("mystery_boxes_enabled")

    def test_get_value_returns_copy(self, config):
        config.get_value("xp_scaling_factors").append(9)
        assert config.get_value("xp_scaling_factors") == DEFAULT_VALUES["xp_scaling_factors"]


class TestBatchApplication:
    """Tests for atomic, validated batches."""

    def test_applies_and_reports_changes(self, config):
        changes = config.apply_configuration_batch(
            {"difficulty_scaling": 0.8, "animation_speed": 1.0}, reason="auto_intervention"
        )
        assert changes == {"difficulty_scaling": 0.8}
        assert len(config.history) == 1
        assert config.history[0].reason == "auto_intervention"
        assert config.history[0].old_value == 1.0

    def test_invalid_value_rejects_whole_batch(self, config):
        with pytest.raises(ConfigurationRejected) as exc_info:
            config.apply_configuration_batch({"difficulty_scaling": 0.8, "particle_intensity": 7})

        assert config.get_value("difficulty_scaling") == 1.0
        assert config.history == []
        assert any("particle_intensity" in e for e in exc_info.value.errors)

    def test_unknown_key_rejected(self, config):
        with pytest.raises(ConfigurationRejected):
            config.apply_configuration_batch({"gravity": 2.0})

    def test_unknown_nested_entry_rejected(self, config):
        with pytest.raises(ConfigurationRejected):
            config.apply_configuration_batch({"xp_source_multipliers": {"boss_kill": 2.0}})
        assert config.get_xp_multiplier("boss_kill") == 1.0

    def test_nested_keys_merge(self, config):
        config.apply_configuration_batch({"xp_source_multipliers": {"discovery": 1.5}})
        multipliers = config.get_value("xp_source_multipliers")
        assert multipliers["discovery"] == 1.5
        assert multipliers["perfect_landing"] == 1.0

    @pytest.mark.parametrize("parameters", [
        {"streak_thresholds": [10, 5]},
        {"grace_period_base": 0.1},
        {"random_event_chance": 1.5},
        {"difficulty_scaling": 0},
        {"features": {"adaptive_difficulty": "yes"}},
        {"xp_scaling_factors": []},
    ])
    def test_invalid_values(self, config, parameters):
        with pytest.raises(ConfigurationRejected):
            config.apply_configuration_batch(parameters)

    def test_non_mapping_rejected(self, config):
        with pytest.raises(ConfigurationRejected):
            config.apply_configuration_batch([("difficulty_scaling", 0.8)])

    def test_reapplying_is_idempotent(self, config):
        config.apply_configuration_batch({"difficulty_scaling": 0.8})
        assert config.apply_configuration_batch({"difficulty_scaling": 0.8}) == {}
        assert len(config.history) == 1

    def test_history_is_bounded(self, store, clock):
        config = DynamicConfig(store, clock.now, Settings(CONFIG_HISTORY_SIZE=3))
        for i in range(5):
            config.apply_configuration_batch({"difficulty_scaling": 1.0 + (i + 1) / 10})

        assert len(config.history) == 3
        assert config.history[0].new_value == pytest.approx(1.3)


class TestRollback:
    """Tests for manual and automatic rollback."""

    def test_rollback_restores_values(self, config):
        config.apply_configuration_batch({"difficulty_scaling": 0.8})
        config.apply_configuration_batch({"particle_intensity": 0.5})

        assert config.rollback_configuration(2) is True
        assert config.get_value("difficulty_scaling") == 1.0
        assert config.get_value("particle_intensity") == 1.0
        assert config.history == []

    def test_rollback_beyond_history(self, config):
        assert config.rollback_configuration(1) is False
        assert config.rollback_configuration(0) is False

    def test_auto_rollback_on_crash_rate(self, config, events):
        config.apply_configuration_batch({"particle_intensity": 2.0})

        assert config.check_auto_rollback({"crash_rate": 0.05}) is True
        assert config.get_value("particle_intensity") == 1.0
        name, data = events[-1]
        assert name == "auto_rollback"
        assert "crash rate" in data["reason"]

    def test_no_rollback_within_thresholds(self, config):
        config.apply_configuration_batch({"particle_intensity": 2.0})
        assert config.check_auto_rollback({"retention_drop": 5, "fps_drop": 0.1}) is False
        assert config.check_auto_rollback(None) is False
        assert config.get_value("particle_intensity") == 2.0

    def test_auto_rollback_without_history(self, config, events):
        assert config.check_auto_rollback({"satisfaction_drop": 1.0}) is False
        assert events == []


class TestAbAssignments:
    """Tests for translating cohort assignments into configuration."""

    def test_variants_applied(self, config):
        changes = config.apply_ab_test_assignments({
            "xp_scaling": "variant_a",
            "event_frequency": "high",
            "visual_intensity": "control",
            "grace_period": 5,
        })

        assert config.get_value("xp_scaling_factors") == [1.20, 1.15, 1.10, 1.05]
        assert config.get_value("mystery_box_spawn_rate") == 0.020
        assert config.get_value("grace_period_base") == 5
        assert "particle_intensity" not in changes
        assert all(change.reason == "ab_test" for change in config.history)

    def test_out_of_range_variant_is_dropped(self, config):
        assert config.apply_ab_test_assignments({"grace_period": 30}) == {}
        assert config.get_grace_period() == 3.0

    def test_init_applies_assignments(self, store, clock):
        config = DynamicConfig(store, clock.now)
        config.init({"visual_intensity": "minimal"})
        assert config.get_value("particle_intensity") == 0.3
        assert config.is_active


class TestListeners:
    """Tests for change notification."""

    def test_listener_receives_changes(self, config):
        seen = []
        config.add_listener(lambda key, value: seen.append((key, value)))
        config.apply_configuration_batch({"difficulty_scaling": 0.8})
        config.rollback_configuration()
        assert seen == [("difficulty_scaling", 0.8), ("difficulty_scaling", 1.0)]

    def test_failing_listener_does_not_block_batch(self, config):
        def broken(key, value):
            raise RuntimeError("listener down")

        seen = []
        config.add_listener(broken)
        config.add_listener(lambda key, value: seen.append(key))
        config.apply_configuration_batch({"difficulty_scaling": 0.8})

        assert seen == ["difficulty_scaling"]
        config.remove_listener(broken)
        assert len(config.listeners) == 1


class TestPersistence:
    """Tests for save/load."""

    def test_round_trip(self, store, clock):
        config = DynamicConfig(store, clock.now)
        config.apply_configuration_batch({"difficulty_scaling": 0.8, "features": {"random_events_enabled": False}})

        fresh = DynamicConfig(store, clock.now)
        assert fresh.load() is True
        assert fresh.get_value("difficulty_scaling") == 0.8
        assert not fresh.is_feature_enabled("random_events_enabled")
        assert [c.key for c in fresh.history] == ["difficulty_scaling", "features"]

    def test_invalid_record_falls_back_to_defaults(self, clock):
        store = InMemoryStore({STORE_KEY: {"values": {"particle_intensity": 50}}})
        config = DynamicConfig(store, clock.now)
        assert config.load() is False
        assert config.get_value("particle_intensity") == 1.0

    def test_unknown_keys_and_bad_history_ignored(self, clock):
        store = InMemoryStore({STORE_KEY: {
            "values": {"gravity": 9.8, "animation_speed": 1.5},
            "history": [{"key": "animation_speed"}, "junk"],
        }})
        config = DynamicConfig(store, clock.now)
        assert config.load() is True
        assert config.get_value("animation_speed") == 1.5
        assert config.get_value("gravity") is None
        assert config.history == []

    def test_report(self, config):
        report = config.get_configuration_report()
        assert set(report) == {"current_values", "history", "ab_tests", "rollback_thresholds", "is_active"}
        assert report["is_active"] is True


class TestStoreAndClock:
    """Tests for time-stamping changes with the logical clock."""

    def test_history_timestamps(self, store):
        clock = GameClock()
        config = DynamicConfig(store, clock.now)
        clock.tick(12.5)
        config.apply_configuration_batch({"difficulty_scaling": 0.9})
        assert config.history[0].timestamp == 12.5
