"""
Tests for round-state derivation from match records.
"""
from __future__ import annotations

from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from pickup.models import Match, MatchStatus, TournamentPhase
from pickup.services.progression import derive_state, group_rounds, is_tournament_mode


def _m(mid, round_number, status=MatchStatus.SCHEDULED, home="A", away="B"):
    return Match(id=mid, event_id="e1", home_team=home, away_team=away, round_number=round_number, status=status)


def test_no_matches_not_started():
    state = derive_state([])
    assert state.phase == TournamentPhase.NOT_STARTED
    assert state.current_round is None
    assert state.total_rounds == 0


def test_manual_matches_are_not_a_tournament():
    matches = [_m("m1", 0, MatchStatus.COMPLETED), _m("m2", 0, MatchStatus.SCHEDULED)]
    assert derive_state(matches).phase == TournamentPhase.NOT_STARTED
    assert not is_tournament_mode(matches)


def test_current_round_is_lowest_pending():
    matches = [
        _m("m1", 1, MatchStatus.COMPLETED),
        _m("m2", 1, MatchStatus.COMPLETED),
        _m("m3", 2, MatchStatus.ACTIVE),
        _m("m4", 3),
    ]
    state = derive_state(matches)
    assert state.phase == TournamentPhase.IN_ROUND
    assert state.current_round == 2
    assert state.total_rounds == 3
    assert is_tournament_mode(matches)


def test_cancelled_match_does_not_hold_round_open():
    matches = [
        _m("m1", 1, MatchStatus.COMPLETED),
        _m("m2", 1, MatchStatus.CANCELLED),
        _m("m3", 2),
    ]
    assert derive_state(matches).current_round == 2


def test_all_done_is_complete():
    matches = [_m("m1", 1, MatchStatus.COMPLETED), _m("m2", 2, MatchStatus.CANCELLED)]
    state = derive_state(matches)
    assert state.phase == TournamentPhase.COMPLETE
    assert state.current_round is None
    assert state.total_rounds == 2
    assert state.to_dict() == {"phase": "complete", "current_round": None, "total_rounds": 2}


def test_group_rounds_sorted_and_skips_manual():
    matches = [_m("m3", 3), _m("m0", 0), _m("m1", 1), _m("m1b", 1, home="C", away="D")]
    grouped = group_rounds(matches)
    assert list(grouped) == [1, 3]
    assert [m.id for m in grouped[1]] == ["m1", "m1b"]
