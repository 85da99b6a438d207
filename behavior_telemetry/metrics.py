# ABOUTME: Behavioral metrics engine with session bookkeeping and fatigue detection
import logging
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from .keystroke import KeystrokeTimingAnalyzer
from .models import (
    ActionType,
    BehavioralAction,
    BehavioralMetrics,
    FatigueIndicators,
    HashedKeyEvent,
    TemporalMetrics,
    resolve_action_type,
)
from .utils import (
    ConfigManager,
    as_mapping,
    clamp_unit,
    coefficient_consistency,
    generate_session_id,
    safe_mean,
)


class BehavioralMetricsEngine:
    """Folds action streams into metric snapshots and tracks them over time.

    Owns one keystroke analyzer, a capped chronological history of
    snapshots tagged with the session that produced them, and a
    caller-driven index from labels to snapshots. Session rollover is
    checked lazily whenever a snapshot is stored.
    """

    def __init__(
        self,
        user_id: str,
        config: Optional[ConfigManager] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or ConfigManager(None)
        self.clock = clock or datetime.now
        self._user_id = user_id

        self.max_history = self.config.get_positive("metrics.max_history", 1000, integer=True)
        self.session_timeout_ms = self.config.get_positive(
            "metrics.session_timeout_ms", 30 * 60 * 1000
        )
        self.fatigue_window = self.config.get_positive("metrics.fatigue_window", 10, integer=True)

        self.keystroke_analyzer = KeystrokeTimingAnalyzer(self.config)
        self.metrics_history: Deque[TemporalMetrics] = deque(maxlen=self.max_history)
        self.patterns: Dict[str, Deque[TemporalMetrics]] = {}

        self.session_start_time = self.clock()
        self._session_id = generate_session_id(self.session_start_time.timestamp() * 1000)

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def session_id(self) -> str:
        return self._session_id

    def calculate_metrics(self, actions: Iterable[BehavioralAction]) -> BehavioralMetrics:
        """Compute a snapshot from a batch of actions and append it to history."""
        context_switches = 0
        for action in actions:
            kind = resolve_action_type(action)
            if kind is ActionType.KEYSTROKE:
                self._route_keystroke(action)
            elif kind is ActionType.CONTEXT_SWITCH:
                context_switches += 1

        keystroke_metrics = self.keystroke_analyzer.analyze_statistics()
        fatigue = self.detect_fatigue()

        metrics = BehavioralMetrics(
            typing_speed=keystroke_metrics.typing_speed,
            pause_patterns=tuple(keystroke_metrics.pause_patterns),
            decision_time=keystroke_metrics.decision_time,
            context_switches=context_switches,
            fatigue_level=fatigue.overall_fatigue_score,
        )

        self._store_metrics(metrics)
        return metrics

    def detect_fatigue(self) -> FatigueIndicators:
        """Compare the latest history window with the one right before it.

        Only declines count: each component is clamped into [0, 1] and the
        overall score is their unweighted mean.
        """
        history = list(self.metrics_history)
        if len(history) < self.fatigue_window:
            return FatigueIndicators()

        recent = history[-self.fatigue_window:]
        earlier = history[
            max(0, len(history) - self.fatigue_window * 2): len(history) - self.fatigue_window
        ]
        if not earlier:
            return FatigueIndicators()

        recent_speed = self._average_typing_speed(recent)
        earlier_speed = self._average_typing_speed(earlier)
        recent_pauses = self._average_pause_frequency(recent)
        earlier_pauses = self._average_pause_frequency(earlier)
        recent_rhythm = self._average_rhythm_consistency(recent)
        earlier_rhythm = self._average_rhythm_consistency(earlier)

        typing_speed_decline = (
            clamp_unit((earlier_speed - recent_speed) / earlier_speed)
            if earlier_speed > 0
            else 0.0
        )
        increased_pause_frequency = (
            clamp_unit((recent_pauses - earlier_pauses) / earlier_pauses)
            if earlier_pauses > 0
            else 0.0
        )
        rhythm_inconsistency = (
            clamp_unit((earlier_rhythm - recent_rhythm) / earlier_rhythm)
            if earlier_rhythm > 0
            else 0.0
        )

        overall = (
            typing_speed_decline + increased_pause_frequency + rhythm_inconsistency
        ) / 3

        return FatigueIndicators(
            typing_speed_decline=typing_speed_decline,
            increased_pause_frequency=increased_pause_frequency,
            rhythm_inconsistency=rhythm_inconsistency,
            overall_fatigue_score=overall,
        )

    def store_pattern(self, pattern: str, metrics: BehavioralMetrics) -> None:
        """Append a snapshot under a label. Duplicate labels accumulate."""
        history = self.patterns.setdefault(pattern, deque(maxlen=self.max_history))
        history.append(self._tag(metrics))

    def get_patterns_by_time_range(
        self, pattern: str, start_time: datetime, end_time: datetime
    ) -> List[TemporalMetrics]:
        """Snapshots stored under `pattern` with start <= timestamp <= end."""
        return [
            m for m in self.patterns.get(pattern, ()) if start_time <= m.timestamp <= end_time
        ]

    def get_current_session_patterns(self) -> Dict[str, List[TemporalMetrics]]:
        session_patterns: Dict[str, List[TemporalMetrics]] = {}
        for pattern, history in self.patterns.items():
            matches = [m for m in history if m.session_id == self._session_id]
            if matches:
                session_patterns[pattern] = matches
        return session_patterns

    def start_new_session(self) -> None:
        """Begin a new session; the label index and history stay queryable."""
        previous = self._session_id
        self.session_start_time = self.clock()
        new_id = generate_session_id(self.session_start_time.timestamp() * 1000)
        while new_id == previous:
            new_id = generate_session_id(self.session_start_time.timestamp() * 1000)
        self._session_id = new_id
        self.keystroke_analyzer.clear_data()
        logging.info(f"Started session {self._session_id} (previous: {previous})")

    def get_metrics_history(self, limit: Optional[int] = None) -> List[TemporalMetrics]:
        history = list(self.metrics_history)
        if limit:
            return history[-limit:]
        return history

    def clear_all_data(self) -> None:
        """Wipe history, label index and keystroke buffers, then start fresh."""
        self.metrics_history.clear()
        self.patterns.clear()
        self.keystroke_analyzer.clear_data()
        logging.info("Cleared all behavioral metrics data")
        self.start_new_session()

    def get_session_statistics(self) -> Dict[str, Any]:
        """Aggregate the history entries tagged with the current session."""
        session_metrics = [
            m for m in self.metrics_history if m.session_id == self._session_id
        ]

        return {
            "session_id": self._session_id,
            "duration": self._session_duration(),
            "metrics_count": len(session_metrics),
            "average_typing_speed": self._average_typing_speed(session_metrics),
            "total_context_switches": sum(
                m.metrics.context_switches for m in session_metrics
            ),
            "fatigue_progression": self._fatigue_progression(session_metrics),
        }

    def _route_keystroke(self, action: BehavioralAction) -> None:
        metadata = as_mapping(getattr(action, "metadata", None))
        token = metadata.get("hashedKey")
        if not token:
            logging.debug("Keystroke action without hashed key skipped")
            return

        modifiers = as_mapping(metadata.get("modifiers"))
        self.keystroke_analyzer.ingest_hashed(
            HashedKeyEvent(
                token=str(token),
                timestamp=getattr(action, "timestamp", None),
                event_type=metadata.get("eventType") or "keydown",
                ctrl_key=bool(modifiers.get("ctrl", False)),
                shift_key=bool(modifiers.get("shift", False)),
                alt_key=bool(modifiers.get("alt", False)),
            )
        )

    def _tag(self, metrics: BehavioralMetrics) -> TemporalMetrics:
        return TemporalMetrics(
            timestamp=self.clock(),
            metrics=metrics,
            session_id=self._session_id,
            duration=self._session_duration(),
        )

    def _store_metrics(self, metrics: BehavioralMetrics) -> None:
        self.metrics_history.append(self._tag(metrics))

        duration = self._session_duration()
        if duration > self.session_timeout_ms:
            logging.info(
                f"Session {self._session_id} exceeded {self.session_timeout_ms / 60000:.0f} "
                f"minutes ({duration / 60000:.1f} elapsed), rolling over"
            )
            self.start_new_session()

    def _session_duration(self) -> float:
        """Elapsed session time in milliseconds."""
        return (self.clock() - self.session_start_time).total_seconds() * 1000

    @staticmethod
    def _average_typing_speed(metrics: List[TemporalMetrics]) -> float:
        return safe_mean(m.metrics.typing_speed for m in metrics)

    @staticmethod
    def _average_pause_frequency(metrics: List[TemporalMetrics]) -> float:
        return safe_mean(sum(m.metrics.pause_patterns) for m in metrics)

    @staticmethod
    def _average_rhythm_consistency(metrics: List[TemporalMetrics]) -> float:
        # Proxy: steadiness of decision time across snapshots
        if not metrics:
            return 0.0
        return coefficient_consistency(m.metrics.decision_time for m in metrics)

    def _fatigue_progression(self, session_metrics: List[TemporalMetrics]) -> float:
        """Typing-speed decline from the first half of the session to the second."""
        if len(session_metrics) < 2:
            return 0.0

        middle = len(session_metrics) // 2
        first_half = self._average_typing_speed(session_metrics[:middle])
        second_half = self._average_typing_speed(session_metrics[middle:])
        if first_half <= 0:
            return 0.0
        return clamp_unit((first_half - second_half) / first_half)
