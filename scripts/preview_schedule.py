#!/usr/bin/env python3
"""
Print round-robin fixtures for a list of teams. No database involved.
Run from project root:
    python3 scripts/preview_schedule.py Red Blue Green --duration 60 --warmup 10 --match-length 10
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Ensure project root on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from pickup.exceptions import InvalidConfigurationError
from pickup.services.scheduling import generate_fixtures, max_time_slots


def main() -> int:
    parser = argparse.ArgumentParser(description="Preview round-robin fixtures for a pickup event")
    parser.add_argument("teams", nargs="+", help="Team names in rotation order")
    parser.add_argument("--duration", type=int, required=True, help="Event length in minutes")
    parser.add_argument("--warmup", type=int, default=0, help="Warmup before the first match, minutes")
    parser.add_argument("--match-length", type=int, required=True, help="Length of one match, minutes")
    parser.add_argument("--fields", type=int, default=1, help="Matches that can run at the same time")
    parser.add_argument("--json", action="store_true", help="Print rounds as JSON")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        rounds = generate_fixtures(args.teams, args.duration, args.warmup, args.match_length, args.fields)
    except InvalidConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps([r.to_dict() for r in rounds], indent=2))
        return 0

    slots = max_time_slots(args.duration, args.warmup, args.match_length)
    print(f"{len(args.teams)} teams, {slots} time slots, {len(rounds)} rounds")
    print("-" * 40)
    for r in rounds:
        print(f"Round {r.round_number} ({r.time_label})")
        for home, away in r.pairings:
            print(f"  {home} vs {away}")
    if not rounds:
        print("No fixtures fit these constraints.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
