# ABOUTME: Unit tests for the behavioral metrics engine
from datetime import datetime, timedelta

import pytest

from behavior_telemetry.metrics import BehavioralMetricsEngine
from behavior_telemetry.models import (
    ActionType,
    BehavioralAction,
    BehavioralMetrics,
    TemporalMetrics,
)
from behavior_telemetry.utils import ConfigManager, hash_key


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 3, 4, 9, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += timedelta(milliseconds=ms)


def keystroke_actions(count, start=1000, spacing=100):
    return [
        BehavioralAction(
            type=ActionType.KEYSTROKE,
            timestamp=start + i * spacing,
            metadata={"hashedKey": hash_key("a"), "modifiers": {"shift": False}},
        )
        for i in range(count)
    ]


def snapshot(engine, typing_speed, pauses, decision_time=1500.0):
    return TemporalMetrics(
        timestamp=engine.clock(),
        metrics=BehavioralMetrics(
            typing_speed=typing_speed,
            pause_patterns=(pauses, 0, 0),
            decision_time=decision_time,
        ),
        session_id=engine.session_id,
        duration=0.0,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(clock):
    return BehavioralMetricsEngine("user-1", clock=clock)


class TestCalculateMetrics:
    """Test snapshot computation from action batches."""

    def test_keystroke_stream(self, engine):
        metrics = engine.calculate_metrics(keystroke_actions(150))

        assert metrics.context_switches == 0
        assert metrics.typing_speed > 0
        assert engine.keystroke_analyzer.event_count == 100
        assert len(engine.get_metrics_history()) == 1

    def test_history_is_capped(self, engine):
        engine.calculate_metrics(keystroke_actions(150))
        for _ in range(1500):
            engine.calculate_metrics([])

        assert len(engine.get_metrics_history()) <= 1000
        assert len(engine.metrics_history) == 1000

    def test_context_switches_are_counted(self, engine):
        actions = keystroke_actions(5) + [
            BehavioralAction(type=ActionType.CONTEXT_SWITCH, timestamp=5000 + i)
            for i in range(3)
        ]

        assert engine.calculate_metrics(actions).context_switches == 3

    def test_string_action_types_are_resolved(self, engine):
        actions = [
            BehavioralAction(type="context_switch", timestamp=1),
            BehavioralAction(type="scroll", timestamp=2),
        ]

        assert engine.calculate_metrics(actions).context_switches == 1

    def test_keystroke_without_token_is_ignored(self, engine):
        actions = [
            BehavioralAction(type=ActionType.KEYSTROKE, timestamp=i * 100)
            for i in range(10)
        ]

        metrics = engine.calculate_metrics(actions)
        assert metrics.typing_speed == 0
        assert engine.keystroke_analyzer.event_count == 0

    def test_malformed_metadata_does_not_raise(self, engine):
        actions = [
            BehavioralAction(
                type=ActionType.KEYSTROKE,
                timestamp=100,
                metadata={"hashedKey": "key_1", "modifiers": "ctrl"},
            ),
            BehavioralAction(type=ActionType.KEYSTROKE, timestamp=200, metadata="junk"),
        ]

        engine.calculate_metrics(actions)
        stored = engine.keystroke_analyzer.key_events[0]
        assert engine.keystroke_analyzer.event_count == 1
        assert stored.token == "key_1"
        assert stored.ctrl_key is False
        assert stored.event_type == "keydown"

    def test_empty_batch(self, engine):
        metrics = engine.calculate_metrics([])
        assert metrics == BehavioralMetrics()

    def test_fatigue_level_is_bounded(self, engine):
        for i in range(30):
            batch = keystroke_actions(20, start=i * 100000, spacing=100 + i * 50)
            metrics = engine.calculate_metrics(batch)
            assert 0.0 <= metrics.fatigue_level <= 1.0


class TestFatigueDetection:
    """Test fatigue comparison across history windows."""

    def test_insufficient_history(self, engine):
        for _ in range(9):
            engine.calculate_metrics([])

        fatigue = engine.detect_fatigue()
        assert fatigue.overall_fatigue_score == 0
        assert fatigue.typing_speed_decline == 0

    def test_only_one_window(self, engine):
        for _ in range(10):
            engine.metrics_history.append(snapshot(engine, 60.0, 1))
        assert engine.detect_fatigue().overall_fatigue_score == 0

    def test_declining_session(self, engine):
        for _ in range(10):
            engine.metrics_history.append(snapshot(engine, 60.0, 1))
        for _ in range(10):
            engine.metrics_history.append(snapshot(engine, 30.0, 3))

        fatigue = engine.detect_fatigue()
        assert fatigue.typing_speed_decline == pytest.approx(0.5)
        # Pause frequency tripled; clamped to 1
        assert fatigue.increased_pause_frequency == 1.0
        assert fatigue.rhythm_inconsistency == 0.0
        assert fatigue.overall_fatigue_score == pytest.approx(0.5)

    def test_improving_session_has_no_fatigue(self, engine):
        for _ in range(10):
            engine.metrics_history.append(snapshot(engine, 30.0, 3))
        for _ in range(10):
            engine.metrics_history.append(snapshot(engine, 60.0, 1))

        fatigue = engine.detect_fatigue()
        assert fatigue.typing_speed_decline == 0.0
        assert fatigue.increased_pause_frequency == 0.0
        assert fatigue.overall_fatigue_score == 0.0

    def test_erratic_decision_time_counts_as_rhythm_loss(self, engine):
        for _ in range(10):
            engine.metrics_history.append(snapshot(engine, 60.0, 1, decision_time=1500.0))
        for i in range(10):
            decision_time = 500.0 if i % 2 else 2500.0
            engine.metrics_history.append(snapshot(engine, 60.0, 1, decision_time))

        fatigue = engine.detect_fatigue()
        assert 0.0 < fatigue.rhythm_inconsistency <= 1.0
        assert 0.0 <= fatigue.overall_fatigue_score <= 1.0


class TestPatternIndex:
    """Test label-keyed snapshot storage."""

    def test_duplicate_labels_accumulate(self, engine):
        engine.store_pattern("coding", BehavioralMetrics(typing_speed=40))
        engine.store_pattern("coding", BehavioralMetrics(typing_speed=50))

        assert [m.metrics.typing_speed for m in engine.patterns["coding"]] == [40, 50]

    def test_time_range_is_inclusive(self, engine, clock):
        start = clock()
        engine.store_pattern("coding", BehavioralMetrics(typing_speed=40))
        clock.advance(60000)
        engine.store_pattern("coding", BehavioralMetrics(typing_speed=50))

        assert len(engine.get_patterns_by_time_range("coding", start, start)) == 1
        end = start + timedelta(minutes=1)
        assert len(engine.get_patterns_by_time_range("coding", start, end)) == 2
        assert engine.get_patterns_by_time_range("unknown", start, end) == []

    def test_current_session_patterns(self, engine):
        engine.store_pattern("morning", BehavioralMetrics())
        engine.start_new_session()
        engine.store_pattern("afternoon", BehavioralMetrics())

        current = engine.get_current_session_patterns()
        assert list(current) == ["afternoon"]
        assert len(engine.patterns["morning"]) == 1


class TestSessions:
    """Test session lifecycle."""

    def test_new_session_resets_count(self, engine):
        engine.calculate_metrics(keystroke_actions(20))
        engine.store_pattern("coding", BehavioralMetrics())
        previous = engine.session_id
        assert engine.get_session_statistics()["metrics_count"] == 1

        engine.start_new_session()

        stats = engine.get_session_statistics()
        assert engine.session_id != previous
        assert stats["metrics_count"] == 0
        assert stats["session_id"] == engine.session_id
        assert len(engine.patterns["coding"]) == 1
        assert engine.keystroke_analyzer.event_count == 0

    def test_session_rolls_over_after_timeout(self, engine, clock):
        engine.calculate_metrics(keystroke_actions(5))
        first_session = engine.session_id

        clock.advance(31 * 60 * 1000)
        engine.calculate_metrics(keystroke_actions(5))

        history = engine.get_metrics_history()
        assert engine.session_id != first_session
        assert [m.session_id for m in history] == [first_session, first_session]
        assert history[-1].duration == pytest.approx(31 * 60 * 1000)
        assert engine.get_session_statistics()["metrics_count"] == 0

    def test_no_rollover_within_timeout(self, engine, clock):
        first_session = engine.session_id
        clock.advance(29 * 60 * 1000)
        engine.calculate_metrics([])
        assert engine.session_id == first_session

    def test_session_statistics(self, engine, clock):
        clock.advance(5000)
        engine.calculate_metrics(keystroke_actions(50))
        engine.calculate_metrics(
            [BehavioralAction(type=ActionType.CONTEXT_SWITCH, timestamp=99999)]
        )

        stats = engine.get_session_statistics()
        assert stats["duration"] == pytest.approx(5000)
        assert stats["metrics_count"] == 2
        assert stats["total_context_switches"] == 1
        assert stats["average_typing_speed"] > 0
        assert stats["fatigue_progression"] == 0.0

    def test_fatigue_progression(self, engine):
        engine.metrics_history.append(snapshot(engine, 80.0, 0))
        engine.metrics_history.append(snapshot(engine, 40.0, 0))

        assert engine.get_session_statistics()["fatigue_progression"] == pytest.approx(0.5)

    def test_identity_properties(self, engine):
        assert engine.user_id == "user-1"
        assert engine.session_id.startswith("session_")

    def test_invalid_yaml_settings_use_defaults(self, tmp_path, clock, caplog):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(
            "metrics:\n  max_history: -1\n  session_timeout_ms: soon\n  fatigue_window: 0\n"
        )
        engine = BehavioralMetricsEngine("user-2", ConfigManager(config_path), clock=clock)

        assert engine.metrics_history.maxlen == 1000
        assert engine.fatigue_window == 10
        assert "Invalid value for metrics.session_timeout_ms" in caplog.text

        first_session = engine.session_id
        clock.advance(29 * 60 * 1000)
        engine.calculate_metrics([])
        assert engine.session_id == first_session
        clock.advance(2 * 60 * 1000)
        engine.calculate_metrics([])
        assert engine.session_id != first_session


class TestHistoryAndClear:
    def test_history_limit(self, engine):
        for _ in range(5):
            engine.calculate_metrics([])

        assert len(engine.get_metrics_history(limit=2)) == 2
        assert len(engine.get_metrics_history()) == 5

    def test_history_is_a_copy(self, engine):
        engine.calculate_metrics([])
        engine.get_metrics_history().clear()
        assert len(engine.metrics_history) == 1

    def test_clear_all_data(self, engine):
        engine.calculate_metrics(keystroke_actions(30))
        engine.store_pattern("coding", BehavioralMetrics())
        previous = engine.session_id

        engine.clear_all_data()

        assert engine.get_metrics_history() == []
        assert engine.patterns == {}
        assert engine.keystroke_analyzer.event_count == 0
        assert engine.session_id != previous


if __name__ == "__main__":
    pytest.main([__file__])
