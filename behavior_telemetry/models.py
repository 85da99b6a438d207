# ABOUTME: Value records shared by the keystroke analyzer and the metrics engine
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ActionType(str, Enum):
    """Kinds of tracked interaction."""

    KEYSTROKE = "keystroke"
    MOUSE_CLICK = "mouse_click"
    MOUSE_MOVE = "mouse_move"
    CODE_EDIT = "code_edit"
    FILE_SWITCH = "file_switch"
    CONTEXT_SWITCH = "context_switch"


@dataclass
class KeystrokeEvent:
    """Raw key event as delivered by the host, before hashing."""

    key: str
    timestamp: float
    event_type: str = "keydown"
    ctrl_key: bool = False
    shift_key: bool = False
    alt_key: bool = False


@dataclass
class HashedKeyEvent:
    """Privacy-safe keystroke record; `token` replaces the raw key."""

    token: str
    timestamp: float
    event_type: str = "keydown"
    ctrl_key: bool = False
    shift_key: bool = False
    alt_key: bool = False


@dataclass
class TimingPattern:
    """Summary of inter-keystroke intervals."""

    average_interval: float = 0.0
    variance: float = 0.0
    rhythm: List[float] = field(default_factory=list)
    pause_count: int = 0
    burst_count: int = 0


@dataclass
class KeystrokeMetrics:
    typing_speed: float = 0.0
    pause_patterns: List[int] = field(default_factory=lambda: [0, 0, 0])
    decision_time: float = 0.0
    rhythm_consistency: float = 0.0
    fatigue_indicators: float = 0.0


@dataclass
class BehavioralAction:
    """One tracked interaction. Timestamps and durations are in milliseconds."""

    type: ActionType
    timestamp: float
    duration: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "type": getattr(self.type, "value", self.type),
            "timestamp": self.timestamp,
            "duration": self.duration,
            "metadata": dict(self.metadata) if isinstance(self.metadata, dict) else {},
        }


@dataclass(frozen=True)
class BehavioralMetrics:
    """One computed snapshot of behavior."""

    typing_speed: float = 0.0
    pause_patterns: tuple = (0, 0, 0)
    decision_time: float = 0.0
    context_switches: int = 0
    fatigue_level: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["pause_patterns"] = list(self.pause_patterns)
        return data


@dataclass(frozen=True)
class TemporalMetrics:
    """A metrics snapshot tagged with when it was taken and for which session."""

    timestamp: datetime
    metrics: BehavioralMetrics
    session_id: str
    duration: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "metrics": self.metrics.to_dict(),
            "session_id": self.session_id,
            "duration": self.duration,
        }


@dataclass
class FatigueIndicators:
    typing_speed_decline: float = 0.0
    increased_pause_frequency: float = 0.0
    rhythm_inconsistency: float = 0.0
    overall_fatigue_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def resolve_action_type(action: Any) -> Optional[ActionType]:
    """Resolve an action's kind; unknown kinds resolve to None."""
    raw = getattr(action, "type", None)
    if isinstance(raw, ActionType):
        return raw
    try:
        return ActionType(raw)
    except ValueError:
        return None
