"""
Tests for the event service: fixture scheduling, round sequencing, guards, manual results.
"""
from __future__ import annotations

from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from pickup.exceptions import (
    ConcurrentModificationError,
    EventModeError,
    EventNotFoundError,
    IncompleteRoundError,
    InvalidConfigurationError,
    InvalidScoreError,
    RoundSequenceError,
    TeamChangeNotAllowedError,
    TournamentTransitionError,
    UnknownMatchError,
    UnknownTeamError,
)
from pickup.models import EventMode, EventStatus, MatchStatus, TournamentPhase
from pickup.persistence.db import get_connection, init_db, set_db_path
from pickup.services.tournament_service import TournamentService


@pytest.fixture
def db_conn(tmp_path):
    """Temporary DB with the full schema."""
    db_path = tmp_path / "tournament_test.db"
    set_db_path(db_path)
    init_db(db_path=db_path)
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def service():
    return TournamentService()


@pytest.fixture
def four_team_event(db_conn, service):
    """Four teams, three rounds of two matches."""
    event = service.create_event(db_conn, "Sunday 5s", ["A", "B", "C", "D"])
    service.schedule_fixtures(db_conn, event.id, 30, 0, 10, 2)
    return event


def _round(service, conn, event_id, k):
    return [m for m in service.list_matches(conn, event_id) if m.round_number == k]


def test_create_event_keeps_team_order(db_conn, service):
    event = service.create_event(db_conn, "Pickup", ["Red", "Blue", "Green"])
    assert event.mode == EventMode.MANUAL
    assert event.status == EventStatus.SCHEDULED
    assert [t.name for t in service.get_teams(db_conn, event.id)] == ["Red", "Blue", "Green"]
    assert [t.position for t in service.get_teams(db_conn, event.id)] == [0, 1, 2]


def test_create_event_duplicate_teams_rejected(db_conn, service):
    with pytest.raises(InvalidConfigurationError):
        service.create_event(db_conn, "Pickup", ["Red", "Red"])
    assert service.list_events(db_conn) == []


def test_unknown_event(db_conn, service):
    with pytest.raises(EventNotFoundError):
        service.get_event(db_conn, "missing")


def test_preview_does_not_persist(db_conn, service):
    event = service.create_event(db_conn, "Pickup", ["Red", "Blue", "Green"])
    rounds = service.preview_fixtures(db_conn, event.id, 60, 10, 10, 1)
    assert len(rounds) == 3
    assert service.list_matches(db_conn, event.id) == []
    assert service.get_event(db_conn, event.id).mode == EventMode.MANUAL


def test_schedule_fixtures_persists_rounds(db_conn, service, four_team_event):
    matches = service.list_matches(db_conn, four_team_event.id)
    assert len(matches) == 6
    assert [m.round_number for m in matches] == [1, 1, 2, 2, 3, 3]
    assert all(m.status == MatchStatus.SCHEDULED for m in matches)
    assert all((m.home_score, m.away_score) == (0, 0) for m in matches)
    assert service.get_event(db_conn, four_team_event.id).mode == EventMode.ROUND_ROBIN
    state = service.tournament_state(db_conn, four_team_event.id)
    assert state.phase == TournamentPhase.IN_ROUND
    assert state.current_round == 1
    assert state.total_rounds == 3


def test_schedule_needs_two_teams(db_conn, service):
    event = service.create_event(db_conn, "Tiny", ["Solo"])
    with pytest.raises(InvalidConfigurationError):
        service.schedule_fixtures(db_conn, event.id, 60, 0, 10, 1)
    assert service.list_matches(db_conn, event.id) == []


def test_schedule_when_nothing_fits(db_conn, service):
    event = service.create_event(db_conn, "Short", ["A", "B"])
    with pytest.raises(InvalidConfigurationError):
        service.schedule_fixtures(db_conn, event.id, 15, 10, 10, 1)


def test_schedule_twice_rejected(db_conn, service, four_team_event):
    with pytest.raises(TournamentTransitionError):
        service.schedule_fixtures(db_conn, four_team_event.id, 30, 0, 10, 2)
    assert len(service.list_matches(db_conn, four_team_event.id)) == 6


def test_submit_round_advances(db_conn, service, four_team_event):
    eid = four_team_event.id
    r1 = _round(service, db_conn, eid, 1)
    state = service.submit_round(db_conn, eid, 1, {r1[0].id: {"home": 2, "away": 1}, r1[1].id: (0, 3)})
    assert state.current_round == 2
    done = {m.id: m for m in _round(service, db_conn, eid, 1)}
    assert (done[r1[0].id].home_score, done[r1[0].id].away_score) == (2, 1)
    assert all(m.status == MatchStatus.COMPLETED and m.is_final for m in done.values())
    assert service.get_event(db_conn, eid).status == EventStatus.ACTIVE


def test_missing_score_defaults_to_nil_nil(db_conn, service, four_team_event):
    eid = four_team_event.id
    service.submit_round(db_conn, eid, 1)
    r2 = _round(service, db_conn, eid, 2)
    state = service.submit_round(db_conn, eid, 2, {r2[0].id: {"home": 4, "away": 4}})
    assert state.current_round == 3
    untouched = next(m for m in _round(service, db_conn, eid, 2) if m.id == r2[1].id)
    assert untouched.status == MatchStatus.COMPLETED
    assert (untouched.home_score, untouched.away_score) == (0, 0)


def test_missing_score_rejected_when_defaulting_disabled(db_conn, service, four_team_event):
    eid = four_team_event.id
    r1 = _round(service, db_conn, eid, 1)
    with pytest.raises(IncompleteRoundError):
        service.submit_round(db_conn, eid, 1, {r1[0].id: (1, 0)}, default_missing=False)
    assert all(m.status == MatchStatus.SCHEDULED for m in _round(service, db_conn, eid, 1))


def test_rounds_must_be_submitted_in_order(db_conn, service, four_team_event):
    eid = four_team_event.id
    with pytest.raises(RoundSequenceError):
        service.submit_round(db_conn, eid, 2)
    assert service.tournament_state(db_conn, eid).current_round == 1
    assert all(m.status == MatchStatus.SCHEDULED for m in _round(service, db_conn, eid, 2))


def test_invalid_score_writes_nothing(db_conn, service, four_team_event):
    eid = four_team_event.id
    r1 = _round(service, db_conn, eid, 1)
    with pytest.raises(InvalidScoreError):
        service.submit_round(db_conn, eid, 1, {r1[0].id: (1, 0), r1[1].id: (-2, 0)})
    assert all(m.status == MatchStatus.SCHEDULED for m in _round(service, db_conn, eid, 1))


def test_score_for_match_outside_round(db_conn, service, four_team_event):
    eid = four_team_event.id
    r2 = _round(service, db_conn, eid, 2)
    with pytest.raises(UnknownMatchError):
        service.submit_round(db_conn, eid, 1, {r2[0].id: (1, 0)})


def test_resubmitting_a_round_is_a_no_op(db_conn, service, four_team_event):
    eid = four_team_event.id
    r1 = _round(service, db_conn, eid, 1)
    service.submit_round(db_conn, eid, 1, {r1[0].id: (1, 0)})
    state = service.submit_round(db_conn, eid, 1, {r1[0].id: (9, 9)})
    assert state.current_round == 2
    first = next(m for m in _round(service, db_conn, eid, 1) if m.id == r1[0].id)
    assert (first.home_score, first.away_score) == (1, 0)


def test_last_round_completes_tournament(db_conn, service, four_team_event):
    eid = four_team_event.id
    for k in (1, 2, 3):
        state = service.submit_round(db_conn, eid, k)
    assert state.phase == TournamentPhase.COMPLETE
    assert state.current_round is None


def test_stale_version_rejected(db_conn, service, four_team_event):
    eid = four_team_event.id
    current = service.get_event(db_conn, eid).version
    with pytest.raises(ConcurrentModificationError):
        service.submit_round(db_conn, eid, 1, expected_version=current - 1)
    state = service.submit_round(db_conn, eid, 1, expected_version=current)
    assert state.current_round == 2
    assert service.get_event(db_conn, eid).version > current


def test_start_round_marks_matches_active(db_conn, service, four_team_event):
    eid = four_team_event.id
    service.start_round(db_conn, eid, 1)
    assert all(m.status == MatchStatus.ACTIVE for m in _round(service, db_conn, eid, 1))
    assert service.tournament_state(db_conn, eid).current_round == 1
    with pytest.raises(RoundSequenceError):
        service.start_round(db_conn, eid, 3)
    state = service.submit_round(db_conn, eid, 1)
    assert state.current_round == 2


def test_cancelled_match_does_not_block_round(db_conn, service, four_team_event):
    eid = four_team_event.id
    r1 = _round(service, db_conn, eid, 1)
    cancelled = service.cancel_match(db_conn, eid, r1[0].id)
    assert cancelled.status == MatchStatus.CANCELLED
    with pytest.raises(TournamentTransitionError):
        service.submit_round(db_conn, eid, 1, {r1[0].id: (1, 0)})
    state = service.submit_round(db_conn, eid, 1, {r1[1].id: (2, 2)})
    assert state.current_round == 2
    still = next(m for m in _round(service, db_conn, eid, 1) if m.id == r1[0].id)
    assert still.status == MatchStatus.CANCELLED


def test_cancel_completed_match_rejected(db_conn, service, four_team_event):
    eid = four_team_event.id
    service.submit_round(db_conn, eid, 1)
    r1 = _round(service, db_conn, eid, 1)
    with pytest.raises(TournamentTransitionError):
        service.cancel_match(db_conn, eid, r1[0].id)


def test_teams_frozen_once_fixtures_exist(db_conn, service, four_team_event):
    eid = four_team_event.id
    with pytest.raises(TeamChangeNotAllowedError):
        service.update_teams(db_conn, eid, ["A", "B", "C", "D", "E"])
    assert service.reset_fixtures(db_conn, eid) == 6
    event = service.get_event(db_conn, eid)
    assert event.mode == EventMode.MANUAL
    teams = service.update_teams(db_conn, eid, ["A", "B", "C", "D", "E"])
    assert len(teams) == 5
    rounds = service.schedule_fixtures(db_conn, eid, 600, 0, 10, 2)
    assert len(rounds) == 5


def test_reset_returns_active_event_to_scheduled(db_conn, service, four_team_event):
    eid = four_team_event.id
    service.submit_round(db_conn, eid, 1)
    service.reset_fixtures(db_conn, eid)
    event = service.get_event(db_conn, eid)
    assert event.status == EventStatus.SCHEDULED
    assert service.tournament_state(db_conn, eid).phase == TournamentPhase.NOT_STARTED


def test_round_operations_need_round_robin_mode(db_conn, service):
    event = service.create_event(db_conn, "Casual", ["A", "B"])
    with pytest.raises(EventModeError):
        service.submit_round(db_conn, event.id, 1)
    with pytest.raises(EventModeError):
        service.start_round(db_conn, event.id, 1)


def test_manual_match_recorded_completed(db_conn, service):
    event = service.create_event(db_conn, "Casual", ["A", "B"])
    match = service.record_manual_match(db_conn, event.id, "A", "B", 3, 2)
    assert match.round_number == 0
    assert match.status == MatchStatus.COMPLETED
    rows = service.standings(db_conn, event.id)
    assert rows[0].team == "A"
    assert rows[0].points == 3
    assert service.tournament_state(db_conn, event.id).phase == TournamentPhase.NOT_STARTED


def test_manual_match_guards(db_conn, service, four_team_event):
    with pytest.raises(EventModeError):
        service.record_manual_match(db_conn, four_team_event.id, "A", "B", 1, 0)
    event = service.create_event(db_conn, "Casual", ["A", "B"])
    with pytest.raises(UnknownTeamError):
        service.record_manual_match(db_conn, event.id, "A", "Z", 1, 0)
    with pytest.raises(InvalidConfigurationError):
        service.record_manual_match(db_conn, event.id, "A", "A", 1, 0)
    with pytest.raises(InvalidScoreError):
        service.record_manual_match(db_conn, event.id, "A", "B", -1, 0)


def test_delete_manual_match(db_conn, service):
    event = service.create_event(db_conn, "Casual", ["A", "B"])
    match = service.record_manual_match(db_conn, event.id, "A", "B", 1, 0)
    service.delete_match(db_conn, event.id, match.id)
    assert service.list_matches(db_conn, event.id) == []
    with pytest.raises(UnknownMatchError):
        service.delete_match(db_conn, event.id, match.id)


def test_removing_team_with_manual_results_rejected(db_conn, service):
    event = service.create_event(db_conn, "Casual", ["A", "B", "C"])
    service.record_manual_match(db_conn, event.id, "A", "B", 1, 0)
    with pytest.raises(TeamChangeNotAllowedError):
        service.update_teams(db_conn, event.id, ["A", "C"])
    assert [t.name for t in service.update_teams(db_conn, event.id, ["B", "A"])] == ["B", "A"]


def test_submit_round_is_all_or_nothing(db_conn, service, four_team_event, monkeypatch):
    """A failure on the second match write leaves the whole round untouched."""
    eid = four_team_event.id
    version = service.get_event(db_conn, eid).version
    original = service._match_repo.complete
    calls = []

    def fail_second(conn, match_id, home_score, away_score):
        calls.append(match_id)
        if len(calls) == 2:
            raise RuntimeError("disk full")
        original(conn, match_id, home_score, away_score)

    monkeypatch.setattr(service._match_repo, "complete", fail_second)
    with pytest.raises(RuntimeError):
        service.submit_round(db_conn, eid, 1, {m.id: (1, 0) for m in _round(service, db_conn, eid, 1)})
    assert len(calls) == 2
    assert not db_conn.in_transaction
    assert all(m.status == MatchStatus.SCHEDULED for m in _round(service, db_conn, eid, 1))
    assert service.get_event(db_conn, eid).version == version
    assert service.tournament_state(db_conn, eid).current_round == 1
