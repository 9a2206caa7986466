"""
Round progression state, derived from match records alone.

Rounds are not stored: a round is the set of tournament matches sharing a
round_number. The current round is the lowest round that still has a pending
(scheduled or active) match. Cancelled matches never hold a round open.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from pickup.models import Match, TournamentPhase, TournamentState


def group_rounds(matches: Iterable[Match]) -> dict[int, list[Match]]:
    """Tournament matches keyed by round_number, in ascending round order."""
    grouped: dict[int, list[Match]] = defaultdict(list)
    for m in matches:
        if m.is_tournament:
            grouped[m.round_number].append(m)
    return dict(sorted(grouped.items()))


def derive_state(matches: Iterable[Match]) -> TournamentState:
    rounds = group_rounds(matches)
    if not rounds:
        return TournamentState(TournamentPhase.NOT_STARTED, current_round=None, total_rounds=0)
    total = max(rounds)
    for number, round_matches in rounds.items():
        if any(m.is_pending for m in round_matches):
            return TournamentState(TournamentPhase.IN_ROUND, current_round=number, total_rounds=total)
    return TournamentState(TournamentPhase.COMPLETE, current_round=None, total_rounds=total)


def is_tournament_mode(matches: Iterable[Match]) -> bool:
    """True if any match is a generated fixture (round_number above the manual sentinel)."""
    return any(m.is_tournament for m in matches)
