from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Optional

from .aggregation.intervals import LapFilters, compare_intervals
from .config import get_config
from .exceptions import AnalyticsError
from .io.client import TrainingDataClient
from .io.fit_decoder import parse_activity_file
from .io.sources import LocalActivitySource
from .metrics.decoupling import get_aerobic_decoupling
from .metrics.power import build_power_duration_curve, get_best_power
from .storage.cache import ActivityFileCache

logger = logging.getLogger(__name__)


def _emit(payload: Any) -> None:
    if hasattr(payload, "to_dict"):
        payload = payload.to_dict()
    print(json.dumps(payload, indent=2, default=str))


def _build_cache(args: argparse.Namespace) -> Optional[ActivityFileCache]:
    if args.no_cache or not get_config().cache.enabled:
        return None
    return ActivityFileCache(cache_dir=args.cache_dir, max_bytes=args.cache_max_bytes)


def _build_client(args: argparse.Namespace) -> TrainingDataClient:
    return TrainingDataClient(LocalActivitySource(args.data_dir), cache=_build_cache(args))


def _cmd_best_power(args: argparse.Namespace) -> Any:
    return asyncio.run(get_best_power(_build_client(args), args.workout_id, args.durations))


def _cmd_power_curve(args: argparse.Namespace) -> Any:
    return asyncio.run(
        build_power_duration_curve(
            _build_client(args),
            args.start,
            args.end,
            durations=args.durations,
            exclude_workout_ids=args.exclude,
        )
    )


def _cmd_decoupling(args: argparse.Namespace) -> Any:
    return asyncio.run(get_aerobic_decoupling(_build_client(args), args.workout_id))


def _cmd_compare_intervals(args: argparse.Namespace) -> Any:
    filters = LapFilters(min_power=args.min_power, target_duration=args.target_duration, tolerance=args.tolerance)
    return asyncio.run(compare_intervals(_build_client(args), args.workout_ids, filters))


def _cmd_search(args: argparse.Namespace) -> Any:
    workouts = _build_client(args).search_workouts(args.title, args.start, args.end)
    return [w.to_dict() for w in workouts]


def _cmd_parse_file(args: argparse.Namespace) -> Any:
    return parse_activity_file(args.path)


def _cmd_cache(args: argparse.Namespace) -> Any:
    cache = ActivityFileCache(cache_dir=args.cache_dir, max_bytes=args.cache_max_bytes)
    if args.cache_command == "clear":
        return cache.clear()
    if args.cache_command == "delete":
        return {"workout_id": args.workout_id, "deleted": cache.delete(args.workout_id)}
    return cache.stats()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tp-analytics", description="Power, decoupling and lap analytics from activity files")
    parser.add_argument("--data-dir", help="Directory with workouts.json and <id>.fit[.gz] files (default: $TP_DATA_DIR or training_data)")
    parser.add_argument("--cache-dir", help="Activity file cache directory (default: $TP_CACHE_DIR or ~/.trainingpeaks-mcp/cache/fit)")
    parser.add_argument("--cache-max-bytes", type=int, help="Cache byte budget (default: $TP_CACHE_MAX_BYTES or 500 MiB)")
    parser.add_argument("--no-cache", action="store_true", help="Bypass the activity file cache")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("best-power", help="Best power for given durations in one workout")
    p.add_argument("workout_id", type=int)
    p.add_argument("--durations", type=int, nargs="+", required=True, help="Durations in seconds")
    p.set_defaults(func=_cmd_best_power)

    p = sub.add_parser("power-curve", help="Power-duration curve across cycling workouts")
    p.add_argument("--start", required=True, help="Start date (YYYY-MM-DD)")
    p.add_argument("--end", required=True, help="End date (YYYY-MM-DD)")
    p.add_argument("--durations", type=int, nargs="+", help="Durations in seconds (default: 5s to 20min)")
    p.add_argument("--exclude", type=int, nargs="+", default=[], help="Workout ids to leave out")
    p.set_defaults(func=_cmd_power_curve)

    p = sub.add_parser("decoupling", help="Aerobic decoupling of one workout")
    p.add_argument("workout_id", type=int)
    p.set_defaults(func=_cmd_decoupling)

    p = sub.add_parser("compare-intervals", help="Compare laps across workouts")
    p.add_argument("workout_ids", type=int, nargs="+")
    p.add_argument("--min-power", type=float, help="Minimum lap average power")
    p.add_argument("--target-duration", type=float, help="Target lap duration in seconds")
    p.add_argument("--tolerance", type=float, help="Duration tolerance in seconds (default: 2)")
    p.set_defaults(func=_cmd_compare_intervals)

    p = sub.add_parser("search", help="Find workouts by title")
    p.add_argument("title")
    p.add_argument("--start", required=True)
    p.add_argument("--end", required=True)
    p.set_defaults(func=_cmd_search)

    p = sub.add_parser("parse-file", help="Summarise a local FIT file")
    p.add_argument("path")
    p.set_defaults(func=_cmd_parse_file)

    p = sub.add_parser("cache", help="Inspect or manage the activity file cache")
    cache_sub = p.add_subparsers(dest="cache_command", required=True)
    cache_sub.add_parser("stats")
    cache_sub.add_parser("clear")
    d = cache_sub.add_parser("delete")
    d.add_argument("workout_id", type=int)
    p.set_defaults(func=_cmd_cache)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        _emit(args.func(args))
    except AnalyticsError as e:
        logger.error("%s", e.message)
        _emit(e.to_dict())
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
