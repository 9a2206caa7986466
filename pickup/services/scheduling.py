"""
Deterministic round-robin fixture generation for pickup events.

Round-robin is used so every team plays every other team exactly once; a full
schedule is N-1 rotations (N even) or N rotations (N odd). Each team plays at
most one match per rotation.

BYE handling: when the number of teams is odd, a BYE placeholder is inserted at
the fixed slot 0. Every rotation pairs exactly one team with BYE; that pair is
dropped and the team sits out.

Uses the circle method: fix slot 0, rotate the others one step each rotation.
Same team order yields the same fixtures.

Time fitting: one rotation per time slot. A slot holds at most concurrent_fields
matches; extra pairs of that rotation are dropped, not deferred to a later slot.
Generation stops when the event runs out of time slots.
"""
from __future__ import annotations

import logging
from typing import Any, Sequence

from pickup.exceptions import InvalidConfigurationError
from pickup.models import FixtureRound

logger = logging.getLogger(__name__)

# Sentinel slot index for the bye when number of teams is odd
BYE = -1


def _require_int(name: str, value: Any, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfigurationError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise InvalidConfigurationError(f"{name} must be at least {minimum}, got {value}")
    return value


def round_robin_rotations(team_names: Sequence[str]) -> list[list[tuple[str, str]]]:
    """
    Every circle-method rotation as a list of (home, away) pairs, bye pairs removed.
    Fewer than 2 teams => no rotations.
    """
    if len(team_names) < 2:
        return []
    slots = list(range(len(team_names)))
    if len(slots) % 2 == 1:
        slots.insert(0, BYE)
    n = len(slots)  # n is even
    rotations: list[list[tuple[str, str]]] = []
    # Rotation 0 pairs slot (0, n-1), (1, n-2), ...
    # Next rotation keeps slot 0 and moves the last slot to position 1: [0, n-1, 1, 2, ..., n-2]
    for _ in range(n - 1):
        pairs: list[tuple[str, str]] = []
        for i in range(n // 2):
            a, b = slots[i], slots[n - 1 - i]
            if a == BYE or b == BYE:
                continue
            pairs.append((team_names[a], team_names[b]))
        rotations.append(pairs)
        slots = [slots[0], slots[n - 1]] + slots[1 : n - 1]
    return rotations


def max_time_slots(event_duration_minutes: int, warmup_minutes: int, match_length_minutes: int) -> int:
    """Number of match slots that fit after the warmup; never negative."""
    return max(0, (event_duration_minutes - warmup_minutes) // match_length_minutes)


def generate_fixtures(
    team_names: Sequence[str],
    event_duration_minutes: int,
    warmup_minutes: int,
    match_length_minutes: int,
    concurrent_fields: int,
) -> list[FixtureRound]:
    """
    Ordered fixture rounds for the given teams and time constraints.
    Returns [] for fewer than 2 teams or when no slot fits; the caller must reject that.
    Raises InvalidConfigurationError for non-positive match length or fields,
    negative duration or warmup, or duplicate team names.
    """
    _require_int("match_length_minutes", match_length_minutes, 1)
    _require_int("concurrent_fields", concurrent_fields, 1)
    _require_int("event_duration_minutes", event_duration_minutes, 0)
    _require_int("warmup_minutes", warmup_minutes, 0)
    names = list(team_names)
    if len(set(names)) != len(names):
        raise InvalidConfigurationError("Team names must be unique within an event")

    slots = max_time_slots(event_duration_minutes, warmup_minutes, match_length_minutes)
    rotations = round_robin_rotations(names)
    rounds: list[FixtureRound] = []
    for slot, pairs in enumerate(rotations[:slots]):
        rounds.append(
            FixtureRound(
                round_number=slot + 1,
                offset_minutes=warmup_minutes + slot * match_length_minutes,
                pairings=pairs[:concurrent_fields],
            )
        )
    logger.debug(
        "Generated %d rounds (%d slots available, %d rotations) for %d teams",
        len(rounds), slots, len(rotations), len(names),
    )
    return rounds


def flatten_fixtures(rounds: Sequence[FixtureRound]) -> list[dict[str, Any]]:
    """
    Return list of fixtures: { "round_number": int, "home_team": str, "away_team": str }.
    One entry per match to persist, in round then field order.
    """
    return [
        {"round_number": r.round_number, "home_team": h, "away_team": a}
        for r in rounds
        for h, a in r.pairings
    ]
