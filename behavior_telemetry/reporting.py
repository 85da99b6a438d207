# ABOUTME: Tabular views and report export over the metrics engine and sequence tracker
import json
import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

import numpy as np
import pandas as pd

from .metrics import BehavioralMetricsEngine
from .sequence import BehavioralSequenceTracker


METRICS_COLUMNS = [
    "timestamp",
    "session_id",
    "duration_ms",
    "typing_speed",
    "short_pauses",
    "medium_pauses",
    "long_pauses",
    "decision_time",
    "context_switches",
    "fatigue_level",
]

SEQUENCE_COLUMNS = [
    "id",
    "start_time",
    "end_time",
    "span_ms",
    "action_count",
    "context",
    "file_type",
    "patterns",
]

CONTEXT_SWITCH_COLUMNS = ["timestamp", "from_context", "to_context", "duration", "reason"]
RECENT_METRICS_LIMIT = 10


def metrics_history_frame(engine: BehavioralMetricsEngine) -> pd.DataFrame:
    """One row per stored metrics snapshot, oldest first."""
    rows = []
    for entry in engine.get_metrics_history():
        pauses = list(entry.metrics.pause_patterns) + [0, 0, 0]
        short_pauses, medium_pauses, long_pauses = pauses[:3]
        rows.append(
            {
                "timestamp": entry.timestamp,
                "session_id": entry.session_id,
                "duration_ms": entry.duration,
                "typing_speed": entry.metrics.typing_speed,
                "short_pauses": short_pauses,
                "medium_pauses": medium_pauses,
                "long_pauses": long_pauses,
                "decision_time": entry.metrics.decision_time,
                "context_switches": entry.metrics.context_switches,
                "fatigue_level": entry.metrics.fatigue_level,
            }
        )
    return pd.DataFrame(rows, columns=METRICS_COLUMNS)


def sequence_frame(tracker: BehavioralSequenceTracker) -> pd.DataFrame:
    rows = [
        {
            "id": seq.id,
            "start_time": seq.start_time,
            "end_time": seq.end_time,
            "span_ms": seq.end_time - seq.start_time,
            "action_count": len(seq.actions),
            "context": seq.context.project_context,
            "file_type": seq.context.file_type,
            "patterns": ",".join(seq.patterns),
        }
        for seq in tracker.get_recent_sequences(tracker.max_sequences)
    ]
    return pd.DataFrame(rows, columns=SEQUENCE_COLUMNS)


def context_switch_frame(tracker: BehavioralSequenceTracker) -> pd.DataFrame:
    rows = [asdict(cs) for cs in tracker.context_switches]
    return pd.DataFrame(rows, columns=CONTEXT_SWITCH_COLUMNS)


def _percentiles(values: Iterable[float]) -> Dict[str, float]:
    values = list(values)
    return {
        f"{p}th": float(np.percentile(values, p)) if values else 0.0
        for p in (25, 50, 75, 90)
    }


def build_summary(
    engine: BehavioralMetricsEngine, tracker: BehavioralSequenceTracker
) -> Dict[str, Any]:
    """Collect the aggregated views of both engines into one document."""
    focus = tracker.analyze_focus_patterns("all")
    history = engine.get_metrics_history()

    return {
        "metadata": {
            "generated_at": datetime.now().isoformat(),
            "user_id": engine.user_id,
            "metrics_recorded": len(history),
            "sequences_recorded": len(tracker.sequences),
        },
        "session": engine.get_session_statistics(),
        "fatigue": engine.detect_fatigue().to_dict(),
        "typing_speed_percentiles": _percentiles(m.metrics.typing_speed for m in history),
        "context_switches": tracker.get_context_switch_statistics(),
        "focus": {
            "segments": len(focus.focus_segments),
            "total_focus_time": focus.total_focus_time,
            "average_focus_segment": focus.average_focus_segment,
            "interruption_count": focus.interruption_count,
        },
        "pattern_changes": [c.to_dict() for c in tracker.detect_pattern_changes()],
        "recent_metrics": [m.to_dict() for m in history[-RECENT_METRICS_LIMIT:]],
    }


def export_reports(
    engine: BehavioralMetricsEngine,
    tracker: BehavioralSequenceTracker,
    output_dir: Optional[Union[str, Path]] = None,
    formats: Iterable[str] = ("json", "csv"),
) -> Dict[str, str]:
    """Write a JSON summary and/or CSV tables; return report kind -> path."""
    reports_dir = Path(
        output_dir or engine.config.get("output.reports_directory", "./reports")
    )
    reports_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    generated_files: Dict[str, str] = {}

    for format_type in formats:
        if format_type == "json":
            filename = reports_dir / f"behavior_summary_{timestamp}.json"
            with open(filename, "w") as f:
                json.dump(build_summary(engine, tracker), f, indent=2, default=str)
            generated_files["json"] = str(filename)

        elif format_type == "csv":
            tables = {
                "metrics_csv": ("metrics_history", metrics_history_frame(engine)),
                "sequences_csv": ("sequences", sequence_frame(tracker)),
                "context_switches_csv": ("context_switches", context_switch_frame(tracker)),
            }
            for key, (name, frame) in tables.items():
                filename = reports_dir / f"{name}_{timestamp}.csv"
                frame.to_csv(filename, index=False)
                generated_files[key] = str(filename)

        else:
            logging.warning(f"Unknown report format skipped: {format_type}")

    logging.info(f"Generated reports: {list(generated_files.keys())}")
    return generated_files
