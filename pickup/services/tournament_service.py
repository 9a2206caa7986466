"""
Event-centric service: teams, fixtures, round progression and manual results.

Round progression is a state machine over the event's matches:
NotStarted (no fixtures) -> InRound(k) -> ... -> Complete (no pending match).
The state is derived from match records on every call, never cached.
Each transition runs in a single transaction; validation happens first.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Any, Mapping, Sequence

from pickup.exceptions import (
    AlreadyFinalizedError,
    ConcurrentModificationError,
    EventModeError,
    EventNotFoundError,
    IncompleteRoundError,
    InvalidConfigurationError,
    RoundSequenceError,
    TeamChangeNotAllowedError,
    TournamentTransitionError,
    UnknownMatchError,
    UnknownTeamError,
)
from pickup.models import (
    Event,
    EventMode,
    EventStatus,
    FixtureRound,
    Match,
    MatchStatus,
    MANUAL_ROUND,
    ScoreEntry,
    StandingRow,
    Team,
    TournamentState,
    validate_score,
)
from pickup.persistence.db import transaction
from pickup.persistence.repositories import EventRepository, MatchRepository, TeamRepository
from pickup.services.progression import derive_state, group_rounds, is_tournament_mode
from pickup.services.scheduling import flatten_fixtures, generate_fixtures
from pickup.services.standings import compute_standings

logger = logging.getLogger(__name__)

DEFAULT_SCORE = ScoreEntry(0, 0)


def normalize_teams(teams: Sequence[Team | str]) -> list[Team]:
    """Teams in configured order; plain names get no color. Names must be unique."""
    result = [t if isinstance(t, Team) else Team(name=t) for t in teams]
    names = [t.name for t in result]
    if len(set(names)) != len(names):
        raise InvalidConfigurationError("Team names must be unique within an event")
    return result


def coerce_scores(scores: Mapping[str, Any] | None) -> dict[str, ScoreEntry]:
    """Validate every submitted score before any write. Raises InvalidScoreError."""
    return {match_id: ScoreEntry.coerce(value) for match_id, value in (scores or {}).items()}


def load_event(
    event_repo: EventRepository,
    conn: sqlite3.Connection,
    event_id: str,
    expected_version: int | None = None,
) -> Event:
    """Fetch event or raise; optionally enforce the caller's last-seen version."""
    event = event_repo.get(conn, event_id)
    if event is None:
        raise EventNotFoundError(event_id)
    if expected_version is not None and event.version != expected_version:
        raise ConcurrentModificationError(
            f"Event {event_id} changed (version {event.version}, expected {expected_version}); reload and retry"
        )
    return event


class TournamentService:
    """
    Domain logic for events: team configuration, fixture scheduling, round
    submission and manual results. Persistence is delegated to repositories.
    """

    def __init__(self) -> None:
        self._event_repo = EventRepository()
        self._team_repo = TeamRepository()
        self._match_repo = MatchRepository()

    # ---------- Events & teams ----------

    def create_event(
        self,
        conn: sqlite3.Connection,
        name: str,
        teams: Sequence[Team | str],
        mode: EventMode = EventMode.MANUAL,
    ) -> Event:
        team_list = normalize_teams(teams)
        with transaction(conn):
            event = self._event_repo.create(conn, name, EventMode(mode))
            self._team_repo.replace_for_event(conn, event.id, team_list)
        logger.info("Created event %s (%s) with %d teams", event.id, event.mode.value, len(team_list))
        return event

    def get_event(self, conn: sqlite3.Connection, event_id: str) -> Event:
        return load_event(self._event_repo, conn, event_id)

    def list_events(self, conn: sqlite3.Connection) -> list[Event]:
        return self._event_repo.list_all(conn)

    def get_teams(self, conn: sqlite3.Connection, event_id: str) -> list[Team]:
        load_event(self._event_repo, conn, event_id)
        return self._team_repo.list_by_event(conn, event_id)

    def update_teams(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        teams: Sequence[Team | str],
        expected_version: int | None = None,
    ) -> list[Team]:
        """
        Replace the event's teams. Rejected once fixtures exist (reset them to start
        a new tournament) or when a manual result names a team being removed.
        """
        team_list = normalize_teams(teams)
        with transaction(conn):
            event = load_event(self._event_repo, conn, event_id, expected_version)
            if event.is_finalized:
                raise AlreadyFinalizedError(f"Event {event_id} is finalized; teams are frozen")
            matches = self._match_repo.list_by_event(conn, event_id)
            if is_tournament_mode(matches):
                raise TeamChangeNotAllowedError(
                    "Cannot change teams after fixtures exist; reset fixtures to start a new tournament"
                )
            keep = {t.name for t in team_list}
            orphaned = sorted({n for m in matches for n in (m.home_team, m.away_team)} - keep)
            if orphaned:
                raise TeamChangeNotAllowedError(f"Recorded matches still reference teams: {', '.join(orphaned)}")
            stored = self._team_repo.replace_for_event(conn, event_id, team_list)
            self._event_repo.touch(conn, event_id)
        logger.info("Event %s teams set to %s", event_id, [t.name for t in stored])
        return stored

    # ---------- Fixtures ----------

    def _generate(
        self,
        teams: list[Team],
        event_duration_minutes: int,
        warmup_minutes: int,
        match_length_minutes: int,
        concurrent_fields: int,
    ) -> list[FixtureRound]:
        if len(teams) < 2:
            raise InvalidConfigurationError("Need at least 2 teams to generate fixtures")
        rounds = generate_fixtures(
            [t.name for t in teams],
            event_duration_minutes,
            warmup_minutes,
            match_length_minutes,
            concurrent_fields,
        )
        if not any(r.pairings for r in rounds):
            raise InvalidConfigurationError(
                "No match fits: event duration minus warmup is shorter than one match"
            )
        return rounds

    def preview_fixtures(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        event_duration_minutes: int,
        warmup_minutes: int,
        match_length_minutes: int,
        concurrent_fields: int,
    ) -> list[FixtureRound]:
        """Fixtures for the event's current teams without saving anything."""
        teams = self.get_teams(conn, event_id)
        return self._generate(teams, event_duration_minutes, warmup_minutes, match_length_minutes, concurrent_fields)

    def schedule_fixtures(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        event_duration_minutes: int,
        warmup_minutes: int,
        match_length_minutes: int,
        concurrent_fields: int,
        expected_version: int | None = None,
    ) -> list[FixtureRound]:
        """
        Generate and save fixtures: one scheduled match per pair, round_number =
        1-based slot, scores zeroed. Switches the event to round-robin mode.
        """
        with transaction(conn):
            event = load_event(self._event_repo, conn, event_id, expected_version)
            if event.is_finalized:
                raise AlreadyFinalizedError(f"Event {event_id} is finalized")
            if event.status == EventStatus.CANCELLED:
                raise TournamentTransitionError(f"Event {event_id} is cancelled")
            if self._match_repo.count_by_event(conn, event_id) > 0:
                raise TournamentTransitionError(
                    f"Event {event_id} already has matches; reset fixtures before generating new ones"
                )
            teams = self._team_repo.list_by_event(conn, event_id)
            rounds = self._generate(
                teams, event_duration_minutes, warmup_minutes, match_length_minutes, concurrent_fields
            )
            fixtures = flatten_fixtures(rounds)
            for f in fixtures:
                self._match_repo.create(
                    conn, event_id,
                    home_team=f["home_team"],
                    away_team=f["away_team"],
                    round_number=f["round_number"],
                )
            self._event_repo.update_mode(conn, event_id, EventMode.ROUND_ROBIN)
        logger.info("Event %s scheduled: %d rounds, %d matches", event_id, len(rounds), len(fixtures))
        return rounds

    def reset_fixtures(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        expected_version: int | None = None,
    ) -> int:
        """Delete every match and return the event to manual mode. Returns matches deleted."""
        with transaction(conn):
            event = load_event(self._event_repo, conn, event_id, expected_version)
            if event.is_finalized:
                raise AlreadyFinalizedError(f"Event {event_id} is finalized; results are frozen")
            deleted = self._match_repo.delete_by_event(conn, event_id)
            self._event_repo.update_mode(conn, event_id, EventMode.MANUAL)
            if event.status == EventStatus.ACTIVE:
                self._event_repo.update_status(conn, event_id, EventStatus.SCHEDULED)
        logger.info("Event %s fixtures reset (%d matches deleted)", event_id, deleted)
        return deleted

    # ---------- Round progression ----------

    def list_matches(self, conn: sqlite3.Connection, event_id: str) -> list[Match]:
        load_event(self._event_repo, conn, event_id)
        return self._match_repo.list_by_event(conn, event_id)

    def tournament_state(self, conn: sqlite3.Connection, event_id: str) -> TournamentState:
        return derive_state(self.list_matches(conn, event_id))

    def _assert_round_robin(self, event: Event) -> None:
        if event.is_finalized:
            raise AlreadyFinalizedError(
                f"Event {event.id} is finalized; edit results through re-finalize"
            )
        if event.status == EventStatus.CANCELLED:
            raise TournamentTransitionError(f"Event {event.id} is cancelled")
        if event.mode != EventMode.ROUND_ROBIN:
            raise EventModeError(f"Event {event.id} is in manual mode; rounds do not apply")

    def _mark_active(self, conn: sqlite3.Connection, event: Event) -> None:
        if event.status == EventStatus.SCHEDULED:
            self._event_repo.update_status(conn, event.id, EventStatus.ACTIVE)
        else:
            self._event_repo.touch(conn, event.id)

    def start_round(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        round_number: int,
        expected_version: int | None = None,
    ) -> TournamentState:
        """Mark the current round's scheduled matches active (in play)."""
        with transaction(conn):
            event = load_event(self._event_repo, conn, event_id, expected_version)
            self._assert_round_robin(event)
            matches = self._match_repo.list_by_event(conn, event_id)
            state = derive_state(matches)
            if state.current_round != round_number:
                raise RoundSequenceError(
                    f"Cannot start round {round_number}: current round is {state.current_round}"
                )
            for m in matches:
                if m.round_number == round_number and m.status == MatchStatus.SCHEDULED:
                    self._match_repo.update_status(conn, m.id, MatchStatus.ACTIVE)
            self._mark_active(conn, event)
        logger.info("Event %s round %d started", event_id, round_number)
        return state

    def submit_round(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        round_number: int,
        scores: Mapping[str, Any] | None = None,
        default_missing: bool = True,
        expected_version: int | None = None,
    ) -> TournamentState:
        """
        Record scores for every pending match of round_number and complete the round.
        Matches already completed are left untouched. A pending match without a
        submitted score is recorded 0-0 unless default_missing is False, in which
        case IncompleteRoundError is raised. A round with no pending match (empty,
        or already submitted) is a no-op. Returns the state after the submission.
        """
        entries = coerce_scores(scores)
        with transaction(conn):
            event = load_event(self._event_repo, conn, event_id, expected_version)
            self._assert_round_robin(event)
            matches = self._match_repo.list_by_event(conn, event_id)
            round_matches = group_rounds(matches).get(round_number, [])
            by_id = {m.id: m for m in round_matches}
            for match_id in entries:
                m = by_id.get(match_id)
                if m is None:
                    raise UnknownMatchError(f"Match {match_id} is not in round {round_number} of event {event_id}")
                if m.status == MatchStatus.CANCELLED:
                    raise TournamentTransitionError(f"Match {match_id} is cancelled and cannot take a score")
            pending = [m for m in round_matches if m.is_pending]
            if not pending:
                logger.info("Event %s round %d has no pending matches; nothing to submit", event_id, round_number)
                return derive_state(matches)
            state = derive_state(matches)
            if state.current_round != round_number:
                raise RoundSequenceError(
                    f"Cannot submit round {round_number}: current round is {state.current_round}"
                )
            missing = [m.id for m in pending if m.id not in entries]
            if missing and not default_missing:
                raise IncompleteRoundError(
                    f"Enter a score for every match in round {round_number} (missing: {len(missing)})"
                )
            for m in pending:
                entry = entries.get(m.id, DEFAULT_SCORE)
                self._match_repo.complete(conn, m.id, entry.home, entry.away)
            self._mark_active(conn, event)
        new_state = derive_state(self._match_repo.list_by_event(conn, event_id))
        logger.info(
            "Event %s round %d submitted (%d matches, %d defaulted to 0-0); now %s round %s",
            event_id, round_number, len(pending), len(missing), new_state.phase.value, new_state.current_round,
        )
        return new_state

    def cancel_match(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        match_id: str,
        expected_version: int | None = None,
    ) -> Match:
        """Cancel a scheduled or active match; it no longer holds its round open."""
        with transaction(conn):
            event = load_event(self._event_repo, conn, event_id, expected_version)
            if event.is_finalized:
                raise AlreadyFinalizedError(f"Event {event_id} is finalized")
            match = self._match_repo.get(conn, match_id)
            if match is None or match.event_id != event_id:
                raise UnknownMatchError(f"Match {match_id} does not belong to event {event_id}")
            if not match.is_pending:
                raise TournamentTransitionError(f"Match {match_id} is {match.status.value}; only pending matches can be cancelled")
            self._match_repo.update_status(conn, match_id, MatchStatus.CANCELLED)
            self._event_repo.touch(conn, event_id)
        match.status = MatchStatus.CANCELLED
        logger.info("Event %s match %s cancelled", event_id, match_id)
        return match

    # ---------- Manual mode ----------

    def record_manual_match(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        home_team: str,
        away_team: str,
        home_score: int = 0,
        away_score: int = 0,
    ) -> Match:
        """Record a finished, non-tournament match (round 0, completed)."""
        validate_score(home_score, "home_score")
        validate_score(away_score, "away_score")
        if home_team == away_team:
            raise InvalidConfigurationError(f"A team cannot play itself: {home_team!r}")
        with transaction(conn):
            event = load_event(self._event_repo, conn, event_id)
            if event.is_finalized:
                raise AlreadyFinalizedError(f"Event {event_id} is finalized; edit results through re-finalize")
            if event.mode != EventMode.MANUAL:
                raise EventModeError(f"Event {event_id} runs a round-robin; manual matches are not allowed")
            names = {t.name for t in self._team_repo.list_by_event(conn, event_id)}
            for team in (home_team, away_team):
                if team not in names:
                    raise UnknownTeamError(f"Team {team!r} is not configured for event {event_id}")
            match = self._match_repo.create(
                conn, event_id, home_team, away_team,
                round_number=MANUAL_ROUND,
                home_score=home_score,
                away_score=away_score,
                status=MatchStatus.COMPLETED,
            )
            self._mark_active(conn, event)
        logger.info("Event %s manual match %s: %s %d-%d %s", event_id, match.id, home_team, home_score, away_score, away_team)
        return match

    def delete_match(self, conn: sqlite3.Connection, event_id: str, match_id: str) -> None:
        """Delete a manual match. Fixtures are removed only through reset_fixtures."""
        with transaction(conn):
            event = load_event(self._event_repo, conn, event_id)
            if event.is_finalized:
                raise AlreadyFinalizedError(f"Event {event_id} is finalized")
            if event.mode != EventMode.MANUAL:
                raise EventModeError(f"Event {event_id} runs a round-robin; reset fixtures instead")
            match = self._match_repo.get(conn, match_id)
            if match is None or match.event_id != event_id:
                raise UnknownMatchError(f"Match {match_id} does not belong to event {event_id}")
            self._match_repo.delete(conn, match_id)
            self._event_repo.touch(conn, event_id)
        logger.info("Event %s manual match %s deleted", event_id, match_id)

    # ---------- Standings ----------

    def standings(self, conn: sqlite3.Connection, event_id: str) -> list[StandingRow]:
        """Live leaderboard recomputed from stored matches."""
        teams = self.get_teams(conn, event_id)
        return compute_standings(teams, self._match_repo.list_by_event(conn, event_id))
