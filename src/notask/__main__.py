"""Command line entry point for the Notask auto-save tools."""

import argparse
import json
import logging
import sys
from pathlib import Path

from notask.core.config import ConfigManager
from notask.core.edit_history import EditHistoryTracker
from notask.core.preferences import (
    USER_PREFERENCES_KEY,
    SettingsPreferenceStore,
    load_user_preferences,
)
from notask.models.analysis import SaveRecommendation

logger = logging.getLogger(__name__)


class _LogClock:
    """Clock that reports the time of the edit being replayed."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def replay_edit_log(path: Path, base_delay: int = 2000) -> SaveRecommendation:
    """Replay a JSON-lines edit log and return the final recommendation.

    Each line holds ``{"kind", "position", "length", "content_length", "t"}``
    with ``t`` in milliseconds. Blank lines are skipped.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If a line is not a JSON object with a numeric ``t``.
    """
    clock = _LogClock()
    tracker = EditHistoryTracker(clock=clock)
    started = False

    with path.open(encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError as e:
                msg = f"{path}:{lineno}: invalid JSON ({e.msg})"
                raise ValueError(msg) from e
            if not isinstance(entry, dict) or not isinstance(entry.get("t"), int | float):
                msg = f"{path}:{lineno}: expected an object with a numeric 't'"
                raise ValueError(msg)

            clock.now = float(entry["t"])
            if not started:
                tracker.reset()
                started = True
            tracker.record_edit(
                entry.get("kind", "insert"),
                entry.get("position", 0),
                entry.get("length", 0),
                "x" * int(entry.get("content_length", 0) or 0),
            )

    return tracker.get_auto_save_recommendations(base_delay)


def _print_recommendation(rec: SaveRecommendation, as_json: bool) -> None:
    if as_json:
        print(json.dumps(rec.to_dict(), indent=2))
        return
    analysis = rec.analysis
    print(f"pattern:           {analysis.pattern} (confidence {analysis.confidence:.1f})")
    print(f"typing speed:      {analysis.typing_speed} cpm")
    print(f"edit frequency:    {analysis.edit_frequency:.1f} / min")
    print(f"average gap:       {analysis.avg_gap:.0f} ms")
    print(f"recommended delay: {rec.recommended_delay} ms ({rec.reason})")
    print(f"save now:          {'yes' if rec.should_save_now else 'no'}")


def _cmd_replay(args: argparse.Namespace) -> int:
    try:
        rec = replay_edit_log(Path(args.file), args.base_delay)
    except (OSError, ValueError) as e:
        logger.error("Cannot replay %s: %s", args.file, e)
        return 1
    _print_recommendation(rec, args.json)
    return 0


def _cmd_prefs(args: argparse.Namespace) -> int:
    store = SettingsPreferenceStore()
    if args.clear:
        store.remove(USER_PREFERENCES_KEY)
        logger.info("Cleared learned auto-save preferences")
        return 0
    print(json.dumps(load_user_preferences(store), indent=2, sort_keys=True))
    return 0


def _cmd_config(_args: argparse.Namespace) -> int:
    print(json.dumps(ConfigManager().as_dict(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="notask-autosave",
        description="Inspect and tune Notask adaptive auto-save",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    replay = sub.add_parser("replay", help="replay an edit log and show the save recommendation")
    replay.add_argument("file", help="JSON-lines edit log")
    replay.add_argument(
        "--base-delay", type=int, default=2000, help="base delay in ms (default: 2000)"
    )
    replay.add_argument("--json", action="store_true", help="print JSON instead of text")
    replay.set_defaults(func=_cmd_replay)

    prefs = sub.add_parser("prefs", help="show learned per-pattern delays")
    prefs.add_argument("--clear", action="store_true", help="forget learned delays")
    prefs.set_defaults(func=_cmd_prefs)

    config = sub.add_parser("config", help="show effective auto-save settings")
    config.set_defaults(func=_cmd_config)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the CLI.

    Returns:
        Exit code (0 for success).
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
