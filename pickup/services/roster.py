"""
Team assignment for an event's participants.
Shuffle, then deal participants across teams in configured order so team sizes
differ by at most one. A seed makes the deal reproducible.
"""
from __future__ import annotations

import logging
import random
import sqlite3
from typing import Sequence

from pickup.exceptions import AlreadyFinalizedError, InvalidConfigurationError, UnknownTeamError
from pickup.models import TeamMembership
from pickup.persistence.db import transaction
from pickup.persistence.repositories import EventRepository, MembershipRepository, TeamRepository
from pickup.services.tournament_service import load_event

logger = logging.getLogger(__name__)


def distribute_members(
    participant_ids: Sequence[str],
    team_names: Sequence[str],
    seed: int | None = None,
) -> dict[str, str]:
    """participant_id -> team name. Deterministic for a given seed and input order."""
    if not team_names:
        raise InvalidConfigurationError("Need at least one team to assign participants")
    if len(set(participant_ids)) != len(participant_ids):
        raise InvalidConfigurationError("Participant ids must be unique")
    shuffled = list(participant_ids)
    random.Random(seed).shuffle(shuffled)
    return {pid: team_names[i % len(team_names)] for i, pid in enumerate(shuffled)}


class RosterService:
    """Writes team-membership records for an event."""

    def __init__(self) -> None:
        self._event_repo = EventRepository()
        self._team_repo = TeamRepository()
        self._membership_repo = MembershipRepository()

    def assign_teams(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        participant_ids: Sequence[str],
        seed: int | None = None,
    ) -> list[TeamMembership]:
        """Deal participants across the event's teams, replacing their current assignment."""
        with transaction(conn):
            event = load_event(self._event_repo, conn, event_id)
            if event.is_finalized:
                raise AlreadyFinalizedError(f"Event {event_id} is finalized; rosters are frozen")
            names = [t.name for t in self._team_repo.list_by_event(conn, event_id)]
            assignment = distribute_members(participant_ids, names, seed=seed)
            for pid in participant_ids:
                self._membership_repo.upsert(conn, event_id, pid, assignment[pid])
        logger.info("Event %s: %d participants dealt into %d teams", event_id, len(participant_ids), len(names))
        return self._membership_repo.list_by_event(conn, event_id)

    def set_assignment(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        participant_id: str,
        team_name: str | None,
    ) -> TeamMembership:
        """Move one participant to team_name, or unassign with None."""
        with transaction(conn):
            event = load_event(self._event_repo, conn, event_id)
            if event.is_finalized:
                raise AlreadyFinalizedError(f"Event {event_id} is finalized; rosters are frozen")
            if team_name is not None:
                names = {t.name for t in self._team_repo.list_by_event(conn, event_id)}
                if team_name not in names:
                    raise UnknownTeamError(f"Team {team_name!r} is not configured for event {event_id}")
            membership = self._membership_repo.upsert(conn, event_id, participant_id, team_name)
        return membership

    def list_assignments(self, conn: sqlite3.Connection, event_id: str) -> list[TeamMembership]:
        load_event(self._event_repo, conn, event_id)
        return self._membership_repo.list_by_event(conn, event_id)
