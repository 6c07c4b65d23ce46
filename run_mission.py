#!/usr/bin/env python3
"""Run a scripted mission against the simulated world and report the outcome.

Usage:
    python run_mission.py catalog.json script.json [--log-level DEBUG] [--seed 7] [--json]
"""

import argparse
import json
import random
import sys

from loguru import logger

from app.config import settings
from ops.catalog import load_catalog
from ops.scenario import load_mission_script, run_script


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description=f"{settings.app_name}: run a scripted mission in simulated time"
    )
    parser.add_argument("catalog", help="Template catalog JSON file")
    parser.add_argument("script", help="Mission script JSON file")
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        help=f"Log level (default: {settings.log_level})",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed for spawn placement and mission codes")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    args = parser.parse_args(argv)

    logger.remove()
    logger.add(sys.stderr, level=args.log_level.upper())

    catalog = load_catalog(args.catalog)
    script = load_mission_script(args.script)
    result = run_script(script, catalog, rng=random.Random(args.seed))

    if args.json:
        print(json.dumps(result.model_dump(), indent=2))
        return 0 if result.outcome == "success" else 1

    print(f"\n{'='*60}")
    print(f"  MISSION: {script.name}  [{result.mission_code}]")
    print(f"{'='*60}")
    print(f"  Goal:        {result.goal}")
    print(f"  Outcome:     {result.outcome or 'unresolved'}")
    if result.resolved_at is not None:
        print(f"  Resolved at: t={result.resolved_at:.1f}s")
    if result.ended_at is not None:
        print(f"  Ended at:    t={result.ended_at:.1f}s")
    print(f"  Sim time:    {result.end_time:.1f}s")
    for line in result.setup_errors:
        print(f"  Setup:       {line}")

    print("\n  --- Timeline ---")
    for entry in result.log:
        if entry.kind in ("action", "start", "success", "failure", "end", "group_spawned", "zone_entered"):
            detail = entry.text or ", ".join(f"{k}={v}" for k, v in entry.data.items())
            print(f"  [{entry.time:7.1f}s] {entry.kind:>13s}: {detail}")

    return 0 if result.outcome == "success" else 1


if __name__ == "__main__":
    sys.exit(main())
