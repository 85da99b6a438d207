# ABOUTME: Keystroke timing analysis over bounded, privacy-preserving buffers
import logging
import statistics
from collections import deque
from numbers import Real
from typing import Deque, List, Optional

import numpy as np

from .models import (
    ActionType,
    BehavioralAction,
    HashedKeyEvent,
    KeystrokeEvent,
    KeystrokeMetrics,
    TimingPattern,
)
from .utils import (
    ConfigManager,
    coefficient_consistency,
    hash_key,
    population_variance,
    safe_mean,
)


class KeystrokeTimingAnalyzer:
    """Derives timing patterns from keystrokes without keeping key content.

    Raw keys are replaced by opaque tokens on ingestion. Events and the
    inter-event intervals live in two ring buffers of equal capacity; the
    oldest entry is evicted first.
    """

    def __init__(self, config: Optional[ConfigManager] = None):
        self.config = config or ConfigManager(None)
        self.buffer_size = self.config.get_positive("keystroke.buffer_size", 100, integer=True)
        self.pause_threshold = self.config.get_positive("keystroke.pause_threshold_ms", 1000)
        self.burst_threshold = self.config.get_positive("keystroke.burst_threshold_ms", 100)
        self.rhythm_window = self.config.get_positive("keystroke.rhythm_window", 5, integer=True)
        self.fatigue_window = self.config.get_positive(
            "keystroke.fatigue_window", 10, integer=True
        )

        self.key_events: Deque[HashedKeyEvent] = deque(maxlen=self.buffer_size)
        self.intervals: Deque[float] = deque(maxlen=self.buffer_size)

    @property
    def event_count(self) -> int:
        return len(self.key_events)

    @property
    def interval_count(self) -> int:
        return len(self.intervals)

    def process_keystroke(self, event: KeystrokeEvent) -> None:
        """Hash the key and record the event and its interval."""
        self.ingest_hashed(
            HashedKeyEvent(
                token=hash_key(event.key),
                timestamp=event.timestamp,
                event_type=event.event_type,
                ctrl_key=bool(event.ctrl_key),
                shift_key=bool(event.shift_key),
                alt_key=bool(event.alt_key),
            )
        )

    def ingest_hashed(self, event: HashedKeyEvent) -> None:
        """Record an event whose key has already been tokenized."""
        if not isinstance(event.timestamp, Real):
            logging.warning(
                f"Skipping keystroke with non-numeric timestamp: {event.timestamp!r}"
            )
            return

        if self.key_events:
            self.intervals.append(event.timestamp - self.key_events[-1].timestamp)
        self.key_events.append(event)

    def extract_timing_patterns(self) -> TimingPattern:
        """Summarize the interval buffer. Zero pattern below two intervals."""
        if len(self.intervals) < 2:
            return TimingPattern()

        intervals = list(self.intervals)
        average_interval = safe_mean(intervals)

        return TimingPattern(
            average_interval=average_interval,
            variance=population_variance(intervals, average_interval),
            rhythm=self._calculate_rhythm(intervals),
            pause_count=sum(1 for i in intervals if i > self.pause_threshold),
            burst_count=sum(1 for i in intervals if i < self.burst_threshold),
        )

    def analyze_statistics(self) -> KeystrokeMetrics:
        """Per-call statistics derived from the current buffers."""
        pattern = self.extract_timing_patterns()

        return KeystrokeMetrics(
            typing_speed=self._calculate_typing_speed(),
            pause_patterns=self._analyze_pause_patterns(),
            decision_time=self._calculate_decision_time(),
            rhythm_consistency=self._calculate_rhythm_consistency(pattern),
            fatigue_indicators=self._detect_fatigue_indicator(pattern),
        )

    def to_behavioral_actions(self) -> List[BehavioralAction]:
        """Expose buffered keystrokes as keystroke actions."""
        return [
            BehavioralAction(
                type=ActionType.KEYSTROKE,
                timestamp=event.timestamp,
                duration=0,
                metadata={
                    "hashedKey": event.token,
                    "modifiers": {
                        "ctrl": event.ctrl_key,
                        "shift": event.shift_key,
                        "alt": event.alt_key,
                    },
                    "eventType": event.event_type,
                },
            )
            for event in self.key_events
        ]

    def clear_data(self) -> None:
        """Drop all buffered keystrokes and intervals."""
        self.key_events.clear()
        self.intervals.clear()

    def _calculate_rhythm(self, intervals: List[float]) -> List[float]:
        """Moving averages over a fixed window; len - window + 1 values."""
        if len(intervals) < self.rhythm_window:
            return []
        kernel = np.ones(self.rhythm_window) / self.rhythm_window
        smoothed = np.convolve(np.asarray(intervals, dtype=float), kernel, mode="valid")
        return [float(v) for v in smoothed]

    def _paused_intervals(self) -> List[float]:
        return [i for i in self.intervals if i > self.pause_threshold]

    def _calculate_typing_speed(self) -> float:
        """Approximate WPM, assuming five keystrokes per word."""
        if len(self.key_events) < 2:
            return 0.0

        time_span = self.key_events[-1].timestamp - self.key_events[0].timestamp
        minutes = time_span / (1000 * 60)
        if minutes <= 0:
            return 0.0
        return (len(self.key_events) / 5) / minutes

    def _analyze_pause_patterns(self) -> List[int]:
        """Bucket pauses into short (<2s), medium (2-5s) and long (>=5s)."""
        pauses = self._paused_intervals()
        short_pauses = sum(1 for p in pauses if p < 2000)
        medium_pauses = sum(1 for p in pauses if 2000 <= p < 5000)
        long_pauses = sum(1 for p in pauses if p >= 5000)
        return [short_pauses, medium_pauses, long_pauses]

    def _calculate_decision_time(self) -> float:
        pauses = self._paused_intervals()
        return statistics.fmean(pauses) if pauses else 0.0

    def _calculate_rhythm_consistency(self, pattern: TimingPattern) -> float:
        if len(pattern.rhythm) < 2:
            return 0.0
        return coefficient_consistency(pattern.rhythm)

    def _detect_fatigue_indicator(self, pattern: TimingPattern) -> float:
        """Relative slow-down of the latest rhythm values against the earliest."""
        recent = pattern.rhythm[-self.fatigue_window:]
        early = pattern.rhythm[: self.fatigue_window]
        if not recent or not early:
            return 0.0

        recent_mean = safe_mean(recent)
        early_mean = safe_mean(early)
        if early_mean == 0 or recent_mean <= early_mean:
            return 0.0
        return (recent_mean - early_mean) / early_mean
