"""
Finalization: record the event winner and MVP award, and close the event.

Effects, applied together in one transaction:
1. clear is_winner on every team membership of the event
2. set is_winner on memberships of the winning team (none for a draw)
3. if the MVP changed: previous holder -1 (floored at 0), new holder +1
4. store winner and MVP on the event, status completed

The event's stored mvp_player_id is the authoritative previous MVP, so running
finalize twice with the same inputs changes no award count the second time.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Sequence

from pickup.exceptions import (
    ConcurrentModificationError,
    InvalidConfigurationError,
    TournamentTransitionError,
    UnknownMatchError,
    UnknownTeamError,
)
from pickup.models import Event, EventMode, EventStatus, Match, MatchStatus, Team, TournamentPhase
from pickup.persistence.db import transaction
from pickup.persistence.repositories import (
    AwardRepository,
    EventRepository,
    MatchRepository,
    MembershipRepository,
    TeamRepository,
)
from pickup.services.progression import derive_state
from pickup.services.standings import compute_standings, leader
from pickup.services.tournament_service import coerce_scores, load_event

logger = logging.getLogger(__name__)


@dataclass
class FinalizeResult:
    event_id: str
    winning_team: str | None  # None for a draw
    mvp_player_id: str | None
    winners: list[str] = field(default_factory=list)  # participant ids flagged is_winner
    edited_matches: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "winning_team": self.winning_team,
            "draw": self.winning_team is None,
            "mvp_player_id": self.mvp_player_id,
            "winners": self.winners,
            "edited_matches": self.edited_matches,
        }


def _normalize_participant(participant_id: str | None) -> str | None:
    return participant_id or None


class Finalizer:
    """Applies (and re-applies) the final result of an event."""

    def __init__(self) -> None:
        self._event_repo = EventRepository()
        self._team_repo = TeamRepository()
        self._match_repo = MatchRepository()
        self._membership_repo = MembershipRepository()
        self._award_repo = AwardRepository()

    def _resolve_winner(
        self,
        teams: Sequence[Team],
        matches: Sequence[Match],
        winning_team: str | None,
        draw: bool = False,
    ) -> str | None:
        """None for a draw; an explicit winner must be configured; otherwise the standings leader."""
        if draw:
            if winning_team is not None:
                raise InvalidConfigurationError("Declare either a winning team or a draw, not both")
            return None
        if winning_team is not None:
            if winning_team not in {t.name for t in teams}:
                raise UnknownTeamError(f"Team {winning_team!r} is not configured for this event")
            return winning_team
        top = leader(compute_standings(teams, matches))
        if top is None:
            raise TournamentTransitionError("No completed matches; declare a winning team or a draw explicitly")
        return top.team

    def _check_previous_mvp(self, event: Event, previous_mvp_id: str | None, new_mvp_id: str | None) -> None:
        """
        previous_mvp_id is an expectation of what is stored; None skips the check, "" means no MVP.
        A stored MVP already equal to the requested one means the call was applied before.
        """
        if previous_mvp_id is None:
            return
        if _normalize_participant(previous_mvp_id) == event.mvp_player_id:
            return
        if event.is_finalized and new_mvp_id == event.mvp_player_id:
            return
        raise ConcurrentModificationError(
            f"Event {event.id} MVP is {event.mvp_player_id!r}, not {previous_mvp_id!r}; reload and retry"
        )

    def _apply(
        self,
        conn: sqlite3.Connection,
        event: Event,
        winning_team: str | None,
        new_mvp_id: str | None,
    ) -> list[str]:
        self._membership_repo.clear_winners(conn, event.id)
        if winning_team is not None:
            self._membership_repo.mark_winners(conn, event.id, winning_team)
        previous = event.mvp_player_id
        if new_mvp_id != previous:
            if previous:
                self._award_repo.decrement(conn, previous)
            if new_mvp_id:
                self._award_repo.increment(conn, new_mvp_id)
            logger.info("Event %s MVP changed: %r -> %r", event.id, previous, new_mvp_id)
        self._event_repo.record_result(conn, event.id, winning_team, new_mvp_id)
        return [
            m.participant_id
            for m in self._membership_repo.list_by_event(conn, event.id)
            if m.is_winner
        ]

    def finalize(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        winning_team: str | None = None,
        mvp_id: str | None = None,
        previous_mvp_id: str | None = None,
        draw: bool = False,
        expected_version: int | None = None,
    ) -> FinalizeResult:
        """
        Close the event with winning_team (or the standings leader when None), or
        with no winner when draw is set. mvp_id None keeps the stored MVP. A
        round-robin event must have no pending round. Calling again with the same
        inputs leaves flags and awards unchanged.
        """
        with transaction(conn):
            event = load_event(self._event_repo, conn, event_id, expected_version)
            if event.status == EventStatus.CANCELLED:
                raise TournamentTransitionError(f"Event {event_id} is cancelled")
            teams = self._team_repo.list_by_event(conn, event_id)
            matches = self._match_repo.list_by_event(conn, event_id)
            if event.mode == EventMode.ROUND_ROBIN:
                state = derive_state(matches)
                if state.phase != TournamentPhase.COMPLETE:
                    raise TournamentTransitionError(
                        f"Event {event_id} still has round {state.current_round} pending; submit it first"
                    )
            winner = self._resolve_winner(teams, matches, winning_team, draw)
            new_mvp = _normalize_participant(mvp_id) if mvp_id is not None else event.mvp_player_id
            self._check_previous_mvp(event, previous_mvp_id, new_mvp)
            winners = self._apply(conn, event, winner, new_mvp)
        logger.info(
            "Event %s finalized: %s, %d winning participants",
            event_id, f"winner {winner}" if winner else "draw", len(winners),
        )
        return FinalizeResult(event_id=event_id, winning_team=winner, mvp_player_id=new_mvp, winners=winners)

    def refinalize(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        score_overrides: Mapping[str, Any] | None = None,
        mvp_id: str | None = None,
        previous_mvp_id: str | None = None,
        winning_team: str | None = None,
        draw: bool = False,
        clear_mvp: bool = False,
        expected_version: int | None = None,
    ) -> FinalizeResult:
        """
        Edit scores of already-completed matches (any round) and re-apply the result.
        Round numbers and statuses are unchanged. The winner is recomputed from the
        edited standings unless winning_team or draw is given. mvp_id None keeps the
        MVP; clear_mvp removes it.
        """
        overrides = coerce_scores(score_overrides)
        with transaction(conn):
            event = load_event(self._event_repo, conn, event_id, expected_version)
            if not event.is_finalized:
                raise TournamentTransitionError(f"Event {event_id} is not finalized; finalize it first")
            teams = self._team_repo.list_by_event(conn, event_id)
            matches = self._match_repo.list_by_event(conn, event_id)
            by_id = {m.id: m for m in matches}
            for match_id in overrides:
                m = by_id.get(match_id)
                if m is None:
                    raise UnknownMatchError(f"Match {match_id} does not belong to event {event_id}")
                if m.status != MatchStatus.COMPLETED:
                    raise TournamentTransitionError(
                        f"Match {match_id} is {m.status.value}; only completed matches can be edited"
                    )
            if clear_mvp:
                new_mvp = None
            elif mvp_id is not None:
                new_mvp = _normalize_participant(mvp_id)
            else:
                new_mvp = event.mvp_player_id
            self._check_previous_mvp(event, previous_mvp_id, new_mvp)

            edited: list[str] = []
            merged: list[Match] = []
            for m in matches:
                entry = overrides.get(m.id)
                if entry is not None and (entry.home, entry.away) != (m.home_score, m.away_score):
                    self._match_repo.update_scores(conn, m.id, entry.home, entry.away)
                    m = replace(m, home_score=entry.home, away_score=entry.away)
                    edited.append(m.id)
                merged.append(m)

            winner = self._resolve_winner(teams, merged, winning_team, draw)
            winners = self._apply(conn, event, winner, new_mvp)
        logger.info(
            "Event %s re-finalized: %d scores edited, winner %s (was %s)",
            event_id, len(edited), winner or "none (draw)", event.winning_team or "none (draw)",
        )
        return FinalizeResult(
            event_id=event_id, winning_team=winner, mvp_player_id=new_mvp,
            winners=winners, edited_matches=edited,
        )
