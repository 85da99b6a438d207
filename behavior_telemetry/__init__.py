# ABOUTME: Package initialization for behavioral telemetry engine
"""
Behavioral Telemetry Engine

Privacy-preserving keystroke timing analysis, behavioral metrics with
session and fatigue tracking, and action-sequence tracking with context
switch, focus and pattern-change detection.
"""

__version__ = "1.0.0"
__description__ = (
    "Privacy-preserving behavioral telemetry from keystroke timing and action streams"
)

from .keystroke import KeystrokeTimingAnalyzer
from .metrics import BehavioralMetricsEngine
from .models import (
    ActionType,
    BehavioralAction,
    BehavioralMetrics,
    FatigueIndicators,
    KeystrokeEvent,
    KeystrokeMetrics,
    TemporalMetrics,
    TimingPattern,
)
from .reporting import build_summary, export_reports
from .sequence import BehavioralSequenceTracker, PatternChangeEvent, SequenceConfig
from .utils import ConfigManager, hash_key, setup_logging

__all__ = [
    "KeystrokeTimingAnalyzer",
    "BehavioralMetricsEngine",
    "BehavioralSequenceTracker",
    "ActionType",
    "BehavioralAction",
    "BehavioralMetrics",
    "FatigueIndicators",
    "KeystrokeEvent",
    "KeystrokeMetrics",
    "TemporalMetrics",
    "TimingPattern",
    "PatternChangeEvent",
    "SequenceConfig",
    "ConfigManager",
    "hash_key",
    "setup_logging",
    "build_summary",
    "export_reports",
]
