# ABOUTME: Behavioral sequence tracking, context switches, focus segments and change detection
"""
Sequence tracking over a stream of behavioral actions.

Actions are buffered until the buffer reaches its configured size, at which
point the buffered window becomes one labelled ActionSequence. Alongside the
windowing, every action is checked for a change of context (file, terminal,
named region) and the stream is cut into focus segments. A lightweight
two-sample t-test over per-sequence metrics flags shifts in behavior.

All timestamps and durations are milliseconds.
"""

import logging
import math
from collections import Counter, deque
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime
from numbers import Real
from typing import Any, Deque, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np

from .models import ActionType, BehavioralAction, resolve_action_type
from .utils import ConfigManager, as_mapping, is_positive_number, safe_mean


PATTERN_FAMILIES = ("typing_rhythm", "context_switching", "focus_duration")

# |t| cutoffs mapped onto approximate significance levels, independent of sample size
SIGNIFICANCE_CUTOFFS = ((2.576, 0.01), (1.96, 0.05), (1.645, 0.10))
NOT_SIGNIFICANT = 0.5


@dataclass
class SequenceConfig:
    """Tunable thresholds for the sequence tracker."""

    buffer_size: int = 50
    context_switch_threshold: float = 2000
    focus_loss_threshold: float = 30000
    pattern_change_threshold: float = 0.05

    @classmethod
    def from_config(cls, config: ConfigManager) -> "SequenceConfig":
        """Defaults overlaid with the `sequence` section, validated like any override."""
        return cls().merged(
            {
                "buffer_size": config.get("sequence.buffer_size"),
                "context_switch_threshold": config.get("sequence.context_switch_threshold_ms"),
                "focus_loss_threshold": config.get("sequence.focus_loss_threshold_ms"),
                "pattern_change_threshold": config.get("sequence.pattern_change_threshold"),
            }
        )

    def merged(self, overrides: Mapping[str, Any]) -> "SequenceConfig":
        """Return a copy with valid overrides applied; invalid ones are logged and skipped."""
        known = {f.name for f in fields(self)}
        accepted: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in known:
                logging.warning(f"Ignoring unknown sequence config key: {key}")
                continue
            if value is None:
                continue
            if key == "buffer_size" and is_positive_number(value):
                value = int(value)
            if not is_positive_number(value):
                logging.warning(f"Ignoring invalid value for {key}: {value!r}")
                continue
            accepted[key] = value
        return replace(self, **accepted)


@dataclass
class ContextSnapshot:
    file_type: str
    project_context: str
    time_of_day: int
    session_duration: float


@dataclass
class ActionSequence:
    """A completed window of actions."""

    id: str
    actions: List[BehavioralAction]
    start_time: float
    end_time: float
    context: ContextSnapshot
    patterns: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "actions": [a.to_dict() for a in self.actions],
            "start_time": self.start_time,
            "end_time": self.end_time,
            "context": asdict(self.context),
            "patterns": list(self.patterns),
        }


@dataclass
class ContextSwitch:
    timestamp: float
    from_context: str
    to_context: str
    duration: float
    reason: str


@dataclass
class FocusSegment:
    """A contiguous span attributed to one context."""

    start_time: float
    end_time: float
    duration: float
    context: str
    activity_level: float = 0.0


@dataclass
class FocusPattern:
    session_id: str
    focus_segments: List[FocusSegment] = field(default_factory=list)
    total_focus_time: float = 0.0
    average_focus_segment: float = 0.0
    interruption_count: int = 0


@dataclass
class PatternChangeEvent:
    timestamp: float
    previous_pattern: str
    new_pattern: str
    confidence: float
    change_type: str
    statistical_significance: float
    pattern_family: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _timestamp(action: Any) -> Optional[float]:
    value = getattr(action, "timestamp", None)
    if isinstance(value, Real) and not isinstance(value, bool):
        return value
    return None


def two_sample_t_statistic(group1: Sequence[float], group2: Sequence[float]) -> float:
    """Pooled-variance two-sample t statistic; 0 when the standard error vanishes."""
    a = np.asarray(group1, dtype=float)
    b = np.asarray(group2, dtype=float)
    n1, n2 = len(a), len(b)
    if n1 == 0 or n2 == 0 or n1 + n2 <= 2:
        return 0.0

    var1 = float(a.var(ddof=1)) if n1 > 1 else 0.0
    var2 = float(b.var(ddof=1)) if n2 > 1 else 0.0
    pooled = ((n1 - 1) * var1 + (n2 - 1) * var2) / (n1 + n2 - 2)
    standard_error = math.sqrt(pooled * (1 / n1 + 1 / n2))
    if not standard_error > 0:
        return 0.0
    return float((a.mean() - b.mean()) / standard_error)


def approximate_significance(t_stat: float) -> float:
    """Map |t| onto 0.01 / 0.05 / 0.10, or 0.5 when not significant.

    Fixed normal-distribution cutoffs are used regardless of degrees of
    freedom; an exact Student's t lookup would change the reported levels.
    """
    magnitude = abs(t_stat)
    for cutoff, significance in SIGNIFICANCE_CUTOFFS:
        if magnitude > cutoff:
            return significance
    return NOT_SIGNIFICANT


def classify_change(first_half: Sequence[float], second_half: Sequence[float]) -> str:
    """Relative shift of the means: >50% sudden, >20% gradual, else cyclical."""
    mean1 = safe_mean(first_half)
    mean2 = safe_mean(second_half)
    if mean1 == 0:
        return "sudden" if mean2 != 0 else "cyclical"

    percent_change = abs((mean2 - mean1) / mean1)
    if percent_change > 0.5:
        return "sudden"
    if percent_change > 0.2:
        return "gradual"
    return "cyclical"


class BehavioralSequenceTracker:
    """Tracks action windows, context switches and focus over an action stream."""

    def __init__(
        self,
        overrides: Optional[Union[Mapping[str, Any], SequenceConfig]] = None,
        config: Optional[ConfigManager] = None,
        **kwargs: Any,
    ):
        self.settings = config or ConfigManager(None)
        self.config = SequenceConfig.from_config(self.settings)
        if overrides or kwargs:
            self.update_config(overrides, **kwargs)

        self.max_sequences = self.settings.get_positive(
            "sequence.max_sequences", 100, integer=True
        )
        self.max_context_switches = self.settings.get_positive(
            "sequence.max_context_switches", 500, integer=True
        )
        self.max_focus_segments = self.settings.get_positive(
            "sequence.max_focus_segments", 500, integer=True
        )
        self.recent_window = self.settings.get_positive(
            "sequence.recent_sequence_window", 10, integer=True
        )
        self.min_sequences = self.settings.get_positive(
            "sequence.min_sequences_for_change", 5, integer=True
        )

        self.action_buffer: List[BehavioralAction] = []
        self.sequences: Deque[ActionSequence] = deque(maxlen=self.max_sequences)
        self.context_switches: Deque[ContextSwitch] = deque(maxlen=self.max_context_switches)
        self.focus_segments: Deque[FocusSegment] = deque(maxlen=self.max_focus_segments)
        self.current_focus_segment: Optional[FocusSegment] = None
        self.current_context = ""
        self.last_activity_time: Optional[float] = None
        # Per-family metric of each completed sequence, aligned with self.sequences
        self.pattern_history: Dict[str, Deque[float]] = {
            family: deque(maxlen=self.max_sequences) for family in PATTERN_FAMILIES
        }
        self._sequence_counter = 0

    def record_action(self, action: BehavioralAction) -> None:
        """Buffer an action and update context, focus and sequence bookkeeping."""
        timestamp = _timestamp(action)
        if timestamp is None:
            logging.warning(
                f"Skipping action with non-numeric timestamp: "
                f"{getattr(action, 'timestamp', None)!r}"
            )
            return

        previous_activity = self.last_activity_time
        gap = timestamp - previous_activity if previous_activity is not None else 0

        self.action_buffer.append(action)
        if len(self.action_buffer) > self.config.buffer_size:
            del self.action_buffer[: len(self.action_buffer) - self.config.buffer_size]
        self.last_activity_time = timestamp

        segment_opened = self._detect_context_switch(action, timestamp, gap)
        if not segment_opened:
            self._update_focus_tracking(timestamp, gap, previous_activity)

        if len(self.action_buffer) >= self.config.buffer_size:
            self._complete_current_sequence()

    def analyze_focus_patterns(self, session_id: str) -> FocusPattern:
        """Summarize closed focus segments whose context contains `session_id`.

        The literal "all" selects every closed segment.
        """
        segments = [
            seg
            for seg in self.focus_segments
            if session_id == "all" or session_id in seg.context
        ]
        if not segments:
            return FocusPattern(session_id=session_id)

        total = sum(seg.duration for seg in segments)
        average = total / len(segments)
        interruptions = sum(1 for seg in segments if seg.duration < average / 2)

        return FocusPattern(
            session_id=session_id,
            focus_segments=[replace(seg) for seg in segments],
            total_focus_time=total,
            average_focus_segment=average,
            interruption_count=interruptions,
        )

    def detect_pattern_changes(self) -> List[PatternChangeEvent]:
        """Run the change detector over the most recent sequences."""
        recent = list(self.sequences)[-self.recent_window:]
        if len(recent) < self.min_sequences:
            return []

        changes = []
        for family in PATTERN_FAMILIES:
            values = list(self.pattern_history[family])[-self.recent_window:]
            change = self._detect_pattern_change(family, values, recent[-1].end_time)
            if change:
                logging.info(
                    f"Pattern change in {family}: {change.change_type} "
                    f"(significance {change.statistical_significance})"
                )
                changes.append(change)
        return changes

    def get_sequences_by_time_range(
        self, start_time: float, end_time: float
    ) -> List[ActionSequence]:
        return [
            seq
            for seq in self.sequences
            if seq.start_time >= start_time and seq.end_time <= end_time
        ]

    def get_context_switches_by_time_range(
        self, start_time: float, end_time: float
    ) -> List[ContextSwitch]:
        return [cs for cs in self.context_switches if start_time <= cs.timestamp <= end_time]

    def get_current_buffer(self) -> List[BehavioralAction]:
        return list(self.action_buffer)

    def get_recent_sequences(self, count: int = 10) -> List[ActionSequence]:
        if count <= 0:
            return []
        return list(self.sequences)[-count:]

    def get_focus_segments(self) -> List[FocusSegment]:
        """Closed segments followed by the open one, if any."""
        segments = [replace(seg) for seg in self.focus_segments]
        if self.current_focus_segment is not None:
            segments.append(replace(self.current_focus_segment))
        return segments

    def get_context_switch_statistics(self) -> Dict[str, Any]:
        switches = list(self.context_switches)
        if not switches:
            return {
                "total_switches": 0,
                "average_switch_duration": 0,
                "most_frequent_reason": "none",
                "switches_per_hour": 0,
                "rapid_switches": 0,
                "contexts": [],
            }

        total = len(switches)
        reason_counts = Counter(cs.reason for cs in switches)
        contexts: Dict[str, None] = {}
        for cs in switches:
            contexts.setdefault(cs.from_context)
            contexts.setdefault(cs.to_context)

        time_span = switches[-1].timestamp - switches[0].timestamp if total > 1 else 0
        hours = time_span / (1000 * 60 * 60)
        rapid = sum(
            1
            for previous, current in zip(switches, switches[1:])
            if current.timestamp - previous.timestamp < self.config.context_switch_threshold
        )

        return {
            "total_switches": total,
            "average_switch_duration": sum(cs.duration for cs in switches) / total,
            "most_frequent_reason": reason_counts.most_common(1)[0][0],
            "switches_per_hour": total / hours if hours > 0 else 0,
            "rapid_switches": rapid,
            "contexts": list(contexts),
        }

    def clear_data(self) -> None:
        """Reset every buffer, history and the current context."""
        self.action_buffer = []
        self.sequences.clear()
        self.context_switches.clear()
        self.focus_segments.clear()
        self.current_focus_segment = None
        for history in self.pattern_history.values():
            history.clear()
        self.current_context = ""
        self.last_activity_time = None
        self._sequence_counter = 0
        logging.info("Cleared sequence tracking data")

    def update_config(
        self,
        new_config: Optional[Union[Mapping[str, Any], SequenceConfig]] = None,
        **kwargs: Any,
    ) -> None:
        """Merge a partial configuration over the current one."""
        overrides: Dict[str, Any] = {}
        if isinstance(new_config, SequenceConfig):
            overrides.update(asdict(new_config))
        elif new_config:
            overrides.update(new_config)
        overrides.update(kwargs)
        self.config = self.config.merged(overrides)

    def get_config(self) -> SequenceConfig:
        return replace(self.config)

    def _detect_context_switch(
        self, action: BehavioralAction, timestamp: float, gap: float
    ) -> bool:
        """Record a switch when the action implies a new context.

        Returns True when a focus segment was opened for this action.
        """
        kind = resolve_action_type(action)
        metadata = as_mapping(getattr(action, "metadata", None))

        if kind is ActionType.FILE_SWITCH:
            new_context = metadata.get("fileName") or "unknown_file"
        elif kind is ActionType.CONTEXT_SWITCH:
            new_context = metadata.get("to") or "unknown_context"
        elif kind in (ActionType.KEYSTROKE, ActionType.CODE_EDIT):
            return False
        else:
            new_context = metadata.get("context") or "default_context"
        new_context = str(new_context)

        if self.current_context == "":
            self.current_context = new_context
            self._start_focus_segment(timestamp, new_context)
            return True

        if new_context == self.current_context:
            return False

        duration = getattr(action, "duration", 0)
        switch = ContextSwitch(
            timestamp=timestamp,
            from_context=self.current_context,
            to_context=new_context,
            duration=duration if isinstance(duration, Real) else 0,
            reason=self._switch_reason(kind, metadata, gap),
        )
        self.context_switches.append(switch)
        logging.debug(
            f"Context switch {switch.from_context} -> {switch.to_context} ({switch.reason})"
        )

        self._end_focus_segment(timestamp)
        self.current_context = new_context
        self._start_focus_segment(timestamp, new_context)
        return True

    def _switch_reason(
        self, kind: Optional[ActionType], metadata: Mapping[str, Any], gap: float
    ) -> str:
        if kind is ActionType.FILE_SWITCH:
            return "file_switch"
        if kind is ActionType.CONTEXT_SWITCH:
            return str(metadata.get("reason") or "manual")
        return "focus_loss" if gap > self.config.focus_loss_threshold else "manual"

    def _update_focus_tracking(
        self, timestamp: float, gap: float, previous_activity: Optional[float]
    ) -> None:
        segment = self.current_focus_segment
        if segment is None:
            return

        if previous_activity is not None and gap > self.config.focus_loss_threshold:
            # Focus was last seen at the previous action
            self._end_focus_segment(previous_activity)
            self._start_focus_segment(timestamp, self.current_context)
            return

        segment.end_time = timestamp
        segment.duration = timestamp - segment.start_time
        segment.activity_level = self._activity_level()

    def _start_focus_segment(self, timestamp: float, context: str) -> None:
        self.current_focus_segment = FocusSegment(
            start_time=timestamp,
            end_time=timestamp,
            duration=0,
            context=context,
            activity_level=self._activity_level(),
        )

    def _end_focus_segment(self, timestamp: float) -> None:
        segment = self.current_focus_segment
        if segment is None:
            return
        segment.end_time = timestamp
        segment.duration = timestamp - segment.start_time
        self.focus_segments.append(segment)
        self.current_focus_segment = None
        logging.debug(f"Closed focus segment in {segment.context} after {segment.duration}ms")

    def _activity_level(self) -> float:
        """Actions per second over the last ten buffered actions."""
        recent = self.action_buffer[-10:]
        time_span = recent[-1].timestamp - recent[0].timestamp if len(recent) > 1 else 1
        return len(recent) / (time_span / 1000) if time_span > 0 else 0.0

    def _complete_current_sequence(self) -> None:
        if not self.action_buffer:
            return

        actions = list(self.action_buffer)
        self._sequence_counter += 1
        sequence = ActionSequence(
            id=f"seq_{self._sequence_counter}",
            actions=actions,
            start_time=actions[0].timestamp,
            end_time=actions[-1].timestamp,
            context=self._context_snapshot(actions[-1].timestamp),
            patterns=self._extract_sequence_patterns(actions),
        )

        self.sequences.append(sequence)
        for family in PATTERN_FAMILIES:
            self.pattern_history[family].append(self._pattern_metric(sequence, family))
        self.action_buffer = []

        logging.info(
            f"Completed sequence {sequence.id} with {len(actions)} actions "
            f"{sequence.patterns}"
        )

    def _context_snapshot(self, timestamp: float) -> ContextSnapshot:
        try:
            hour = datetime.fromtimestamp(timestamp / 1000).hour
        except (OverflowError, OSError, ValueError):
            hour = 0

        if self.focus_segments:
            first_start = self.focus_segments[0].start_time
        elif self.current_focus_segment is not None:
            first_start = self.current_focus_segment.start_time
        else:
            first_start = timestamp

        return ContextSnapshot(
            file_type=self.current_context.split(".")[-1] or "unknown",
            project_context=self.current_context,
            time_of_day=hour,
            session_duration=timestamp - first_start,
        )

    def _extract_sequence_patterns(self, actions: List[BehavioralAction]) -> List[str]:
        patterns = []
        for finder in (self._action_type_pattern, self._timing_pattern, self._context_pattern):
            label = finder(actions)
            if label:
                patterns.append(label)
        return patterns

    @staticmethod
    def _action_type_pattern(actions: List[BehavioralAction]) -> Optional[str]:
        kinds = [resolve_action_type(a) for a in actions]

        def contains(run: Sequence[ActionType]) -> bool:
            width = len(run)
            return any(
                tuple(kinds[i: i + width]) == tuple(run)
                for i in range(len(kinds) - width + 1)
            )

        if contains((ActionType.KEYSTROKE,) * 3):
            return "continuous_typing"
        if contains((ActionType.CONTEXT_SWITCH, ActionType.KEYSTROKE)):
            return "switch_and_type"
        if contains((ActionType.FILE_SWITCH, ActionType.CODE_EDIT)):
            return "file_navigation"
        return None

    @staticmethod
    def _timing_pattern(actions: List[BehavioralAction]) -> Optional[str]:
        if len(actions) < 3:
            return None

        average = safe_mean(
            current.timestamp - previous.timestamp
            for previous, current in zip(actions, actions[1:])
        )
        if average < 200:
            return "rapid_sequence"
        if average > 2000:
            return "deliberate_sequence"
        return "normal_sequence"

    @staticmethod
    def _context_pattern(actions: List[BehavioralAction]) -> str:
        contexts = {
            str(as_mapping(getattr(a, "metadata", None)).get("context"))
            for a in actions
            if as_mapping(getattr(a, "metadata", None)).get("context")
        }
        if len(contexts) == 1:
            return "single_context"
        if len(contexts) > len(actions) / 2:
            return "context_heavy"
        return "mixed_context"

    @staticmethod
    def _pattern_metric(sequence: ActionSequence, family: str) -> float:
        if family == "typing_rhythm":
            keystrokes = [
                a.timestamp
                for a in sequence.actions
                if resolve_action_type(a) is ActionType.KEYSTROKE
            ]
            if len(keystrokes) < 2:
                return 0.0
            return safe_mean(b - a for a, b in zip(keystrokes, keystrokes[1:]))

        if family == "context_switching":
            switches = sum(
                1
                for a in sequence.actions
                if resolve_action_type(a) is ActionType.CONTEXT_SWITCH
            )
            duration = sequence.end_time - sequence.start_time
            return switches / duration * 60000 if duration > 0 else 0.0

        if family == "focus_duration":
            return float(sequence.end_time - sequence.start_time)
        return 0.0

    def _detect_pattern_change(
        self, family: str, values: List[float], timestamp: float
    ) -> Optional[PatternChangeEvent]:
        if len(values) < self.min_sequences:
            return None

        middle = len(values) // 2
        first_half, second_half = values[:middle], values[middle:]
        significance = approximate_significance(
            two_sample_t_statistic(first_half, second_half)
        )
        if significance >= self.config.pattern_change_threshold:
            return None

        return PatternChangeEvent(
            timestamp=timestamp,
            previous_pattern=f"{family}_old",
            new_pattern=f"{family}_new",
            confidence=1 - significance,
            change_type=classify_change(first_half, second_half),
            statistical_significance=significance,
            pattern_family=family,
        )
