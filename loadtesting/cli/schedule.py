"""CLI for previewing dispatch schedules."""

import argparse
import json

from ..core.config import SchedulerConfig
from ..core.models import PATTERN_TYPES, LoadPattern
from ..core.pattern_scheduler import build_schedule


def main():
    """Main entry point for schedule CLI."""
    parser = argparse.ArgumentParser(
        description="Print the dispatch offsets and phases for a load pattern"
    )
    parser.add_argument(
        "--pattern",
        type=str,
        choices=PATTERN_TYPES,
        default="constant",
        help="Load pattern type (default: constant)",
    )
    parser.add_argument(
        "--requests", type=int, required=True, help="Total number of requests to schedule"
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=0.0,
        help="Duration in seconds (default: 0, fire immediately)",
    )
    parser.add_argument(
        "--rps", type=float, default=None, help="Target requests per second (ramp-up)"
    )
    parser.add_argument(
        "--seed", type=int, default=None, help="Random seed for random-burst gaps"
    )
    parser.add_argument(
        "--no-offsets",
        action="store_true",
        help="Only print phases and the per-second rate curve",
    )
    args = parser.parse_args()

    pattern = LoadPattern(type=args.pattern, requests_per_second=args.rps)
    schedule = build_schedule(
        pattern, args.requests, args.duration, SchedulerConfig(random_seed=args.seed)
    )

    output = schedule.to_dict()
    output["rate_curve"] = schedule.rate_curve(1.0)
    if args.no_offsets:
        output.pop("offsets")
    print(json.dumps(output, indent=2))


if __name__ == "__main__":
    main()
