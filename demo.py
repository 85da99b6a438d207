# ABOUTME: Demonstration script replaying a synthetic work session through the telemetry engines
import argparse
import random
import time

from behavior_telemetry.metrics import BehavioralMetricsEngine
from behavior_telemetry.models import ActionType, BehavioralAction
from behavior_telemetry.reporting import build_summary, export_reports
from behavior_telemetry.sequence import BehavioralSequenceTracker
from behavior_telemetry.utils import ConfigManager, hash_key, setup_logging


def create_sample_stream(num_actions=1500, seed=None):
    """Create a realistic action stream: typing bursts, file hops and a tired tail."""
    rng = random.Random(seed)

    common_words = [
        "the", "quick", "brown", "fox", "jumps", "over", "lazy", "dog",
        "def", "return", "import", "class", "self", "value", "result",
    ]
    files = ["main.py", "utils.py", "README.md", "config.yaml"]
    contexts = ["editor", "terminal", "browser"]

    actions = []
    current_time = time.time() * 1000
    file_idx = 0
    word_idx = 0

    for i in range(num_actions):
        # Last quarter of the session types noticeably slower
        slowdown = 1.8 if i > num_actions * 0.75 else 1.0

        if i % 200 == 0 and i > 0:
            file_idx = (file_idx + 1) % len(files)
            current_time += rng.uniform(400, 1500)
            actions.append(
                BehavioralAction(
                    type=ActionType.FILE_SWITCH,
                    timestamp=current_time,
                    metadata={"fileName": files[file_idx]},
                )
            )
            continue

        if i % 170 == 0 and i > 0:
            current_time += rng.uniform(800, 3000)
            actions.append(
                BehavioralAction(
                    type=ActionType.CONTEXT_SWITCH,
                    timestamp=current_time,
                    duration=rng.uniform(200, 900),
                    metadata={"to": rng.choice(contexts), "reason": "manual"},
                )
            )
            continue

        word = common_words[word_idx % len(common_words)]
        char = word[i % len(word)]
        if i % len(word) == len(word) - 1:
            word_idx += 1

        if rng.random() < 0.03:
            # Thinking pause
            current_time += rng.uniform(1200, 6000)
        else:
            current_time += rng.uniform(80, 180) * slowdown

        actions.append(
            BehavioralAction(
                type=ActionType.KEYSTROKE,
                timestamp=current_time,
                metadata={
                    "hashedKey": hash_key(char),
                    "modifiers": {"ctrl": False, "shift": char.isupper(), "alt": False},
                    "eventType": "keydown",
                },
            )
        )

        if rng.random() < 0.02:
            actions.append(
                BehavioralAction(
                    type=ActionType.CODE_EDIT,
                    timestamp=current_time + 5,
                    metadata={"context": files[file_idx]},
                )
            )

    return actions


def run_demo(config_path="config.yaml", batch_size=50, export=False, seed=None):
    """Feed a synthetic stream through both engines and print the aggregated views."""
    config = ConfigManager(config_path)
    setup_logging(config.get("output.log_level", "INFO"))

    print("Creating synthetic action stream...")
    actions = create_sample_stream(seed=seed)
    print(f"Generated {len(actions)} actions")

    engine = BehavioralMetricsEngine("demo-user", config)
    tracker = BehavioralSequenceTracker(config=config)

    for start in range(0, len(actions), batch_size):
        batch = actions[start:start + batch_size]
        for action in batch:
            tracker.record_action(action)
        engine.calculate_metrics(batch)

    summary = build_summary(engine, tracker)

    print("\n" + "=" * 50)
    print("BEHAVIORAL TELEMETRY SUMMARY")
    print("=" * 50)

    session = summary["session"]
    print(f"Session: {session['session_id']}")
    print(f"Snapshots: {session['metrics_count']}")
    print(f"Average typing speed: {session['average_typing_speed']:.1f} WPM")
    print(f"Context switches: {session['total_context_switches']}")
    print(f"Fatigue progression: {session['fatigue_progression']:.2f}")

    print("\nTyping speed percentiles:")
    for label, value in summary["typing_speed_percentiles"].items():
        print(f"  {label}: {value:.1f} WPM")

    fatigue = summary["fatigue"]
    print(f"\nFatigue score: {fatigue['overall_fatigue_score']:.2f}")
    print(f"  Speed decline: {fatigue['typing_speed_decline']:.2f}")
    print(f"  Pause increase: {fatigue['increased_pause_frequency']:.2f}")

    switches = summary["context_switches"]
    print(f"\nRecorded switches: {switches['total_switches']}")
    print(f"  Most frequent reason: {switches['most_frequent_reason']}")
    print(f"  Rapid switches: {switches['rapid_switches']}")

    focus = summary["focus"]
    print(f"\nFocus segments: {focus['segments']}")
    print(f"  Average segment: {focus['average_focus_segment'] / 1000:.1f}s")
    print(f"  Interruptions: {focus['interruption_count']}")

    print(f"\nPattern changes: {len(summary['pattern_changes'])}")
    for change in summary["pattern_changes"]:
        print(
            f"  {change['pattern_family']}: {change['change_type']} "
            f"(p~{change['statistical_significance']})"
        )

    if export:
        generated_files = export_reports(engine, tracker)
        print("\nReports generated:")
        for kind, filepath in generated_files.items():
            print(f"  {kind}: {filepath}")

    return summary


def main():
    parser = argparse.ArgumentParser(
        description="Replay a synthetic session through the telemetry engines"
    )
    parser.add_argument("--config", default="config.yaml", help="Configuration file path")
    parser.add_argument("--batch-size", type=int, default=50, help="Actions per metrics snapshot")
    parser.add_argument("--export", action="store_true", help="Write JSON and CSV reports")
    parser.add_argument("--seed", type=int, help="Random seed for a reproducible stream")
    args = parser.parse_args()

    run_demo(args.config, args.batch_size, args.export, args.seed)


if __name__ == "__main__":
    main()
