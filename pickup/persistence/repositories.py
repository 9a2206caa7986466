"""
Repository interfaces for events, teams, matches, memberships and awards.
No business logic, only read/write operations.

Repositories never commit. Each call runs in autocommit mode unless the caller
groups several calls with persistence.db.transaction().
"""
from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone

from pickup.models import (
    AwardEntry,
    Event,
    EventMode,
    EventStatus,
    Match,
    MatchStatus,
    MANUAL_ROUND,
    Team,
    TeamMembership,
)


def _parse_datetime(s: str | None) -> datetime:
    if s is None:
        raise ValueError("expected datetime string")
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


_EVENT_COLS = "id, name, mode, status, winning_team, mvp_player_id, version, created_at"
_MATCH_COLS = (
    "id, event_id, home_team, away_team, home_score, away_score, "
    "round_number, status, is_final, created_at"
)


def _row_to_event(row: sqlite3.Row) -> Event:
    return Event(
        id=row["id"],
        name=row["name"],
        mode=row["mode"],
        status=row["status"],
        created_at=_parse_datetime(row["created_at"]),
        winning_team=row["winning_team"],
        mvp_player_id=row["mvp_player_id"],
        version=row["version"],
    )


def _row_to_match(row: sqlite3.Row) -> Match:
    return Match(
        id=row["id"],
        event_id=row["event_id"],
        home_team=row["home_team"],
        away_team=row["away_team"],
        home_score=row["home_score"],
        away_score=row["away_score"],
        round_number=row["round_number"],
        status=row["status"],
        is_final=bool(row["is_final"]),
        created_at=_parse_datetime(row["created_at"]),
    )


# ---------- EventRepository ----------


class EventRepository:
    """CRUD for events. Every status/mode/result write bumps version."""

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        mode: EventMode = EventMode.MANUAL,
        id: str | None = None,
    ) -> Event:
        eid = id or str(uuid.uuid4())
        now = _now_iso()
        conn.execute(
            "INSERT INTO events (id, name, mode, status, version, created_at) VALUES (?, ?, ?, ?, 0, ?)",
            (eid, name, EventMode(mode).value, EventStatus.SCHEDULED.value, now),
        )
        return Event(
            id=eid, name=name, mode=mode, status=EventStatus.SCHEDULED,
            created_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, event_id: str) -> Event | None:
        row = conn.execute(f"SELECT {_EVENT_COLS} FROM events WHERE id = ?", (event_id,)).fetchone()
        if row is None:
            return None
        return _row_to_event(row)

    def list_all(self, conn: sqlite3.Connection) -> list[Event]:
        rows = conn.execute(f"SELECT {_EVENT_COLS} FROM events ORDER BY created_at DESC").fetchall()
        return [_row_to_event(r) for r in rows]

    def update_status(self, conn: sqlite3.Connection, event_id: str, status: EventStatus) -> None:
        conn.execute(
            "UPDATE events SET status = ?, version = version + 1 WHERE id = ?",
            (EventStatus(status).value, event_id),
        )

    def update_mode(self, conn: sqlite3.Connection, event_id: str, mode: EventMode) -> None:
        conn.execute(
            "UPDATE events SET mode = ?, version = version + 1 WHERE id = ?",
            (EventMode(mode).value, event_id),
        )

    def record_result(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        winning_team: str | None,
        mvp_player_id: str | None,
    ) -> None:
        """Store the finalized winner (None for a draw) and MVP and mark the event completed."""
        conn.execute(
            "UPDATE events SET winning_team = ?, mvp_player_id = ?, status = ?, version = version + 1 WHERE id = ?",
            (winning_team, mvp_player_id, EventStatus.COMPLETED.value, event_id),
        )

    def touch(self, conn: sqlite3.Connection, event_id: str) -> None:
        """Bump version without other changes (match-level transitions)."""
        conn.execute("UPDATE events SET version = version + 1 WHERE id = ?", (event_id,))


# ---------- TeamRepository ----------


class TeamRepository:
    """Teams of an event, in configured order."""

    def replace_for_event(self, conn: sqlite3.Connection, event_id: str, teams: list[Team]) -> list[Team]:
        """Replace the event's teams. position is reassigned from list order."""
        conn.execute("DELETE FROM teams WHERE event_id = ?", (event_id,))
        stored: list[Team] = []
        for pos, t in enumerate(teams):
            conn.execute(
                "INSERT INTO teams (event_id, name, color, position) VALUES (?, ?, ?, ?)",
                (event_id, t.name, t.color, pos),
            )
            stored.append(Team(name=t.name, color=t.color, position=pos))
        return stored

    def list_by_event(self, conn: sqlite3.Connection, event_id: str) -> list[Team]:
        rows = conn.execute(
            "SELECT name, color, position FROM teams WHERE event_id = ? ORDER BY position",
            (event_id,),
        ).fetchall()
        return [Team(name=r["name"], color=r["color"], position=r["position"]) for r in rows]


# ---------- MatchRepository ----------


class MatchRepository:
    """CRUD for matches. No business logic."""

    def create(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        home_team: str,
        away_team: str,
        round_number: int = MANUAL_ROUND,
        home_score: int = 0,
        away_score: int = 0,
        status: MatchStatus = MatchStatus.SCHEDULED,
        is_final: bool = False,
        id: str | None = None,
    ) -> Match:
        mid = id or str(uuid.uuid4())
        now = _now_iso()
        # Validate before touching the table
        match = Match(
            id=mid, event_id=event_id, home_team=home_team, away_team=away_team,
            home_score=home_score, away_score=away_score, round_number=round_number,
            status=status, is_final=is_final, created_at=_parse_datetime(now),
        )
        conn.execute(
            f"INSERT INTO matches ({_MATCH_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                mid, event_id, home_team, away_team, home_score, away_score,
                round_number, match.status.value, 1 if is_final else 0, now,
            ),
        )
        return match

    def get(self, conn: sqlite3.Connection, match_id: str) -> Match | None:
        row = conn.execute(f"SELECT {_MATCH_COLS} FROM matches WHERE id = ?", (match_id,)).fetchone()
        if row is None:
            return None
        return _row_to_match(row)

    def list_by_event(self, conn: sqlite3.Connection, event_id: str) -> list[Match]:
        """All matches of the event, ordered by round then insertion order."""
        rows = conn.execute(
            f"SELECT {_MATCH_COLS} FROM matches WHERE event_id = ? ORDER BY round_number, rowid",
            (event_id,),
        ).fetchall()
        return [_row_to_match(r) for r in rows]

    def count_by_event(self, conn: sqlite3.Connection, event_id: str) -> int:
        row = conn.execute("SELECT COUNT(*) AS n FROM matches WHERE event_id = ?", (event_id,)).fetchone()
        return row["n"]

    def complete(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        home_score: int,
        away_score: int,
    ) -> None:
        """Record a round result: scores, status completed, is_final set."""
        conn.execute(
            "UPDATE matches SET home_score = ?, away_score = ?, status = 'completed', is_final = 1 WHERE id = ?",
            (home_score, away_score, match_id),
        )

    def update_scores(self, conn: sqlite3.Connection, match_id: str, home_score: int, away_score: int) -> None:
        """Overwrite scores only; status and round are unchanged (re-finalize edits)."""
        conn.execute(
            "UPDATE matches SET home_score = ?, away_score = ? WHERE id = ?",
            (home_score, away_score, match_id),
        )

    def update_status(self, conn: sqlite3.Connection, match_id: str, status: MatchStatus) -> None:
        conn.execute("UPDATE matches SET status = ? WHERE id = ?", (MatchStatus(status).value, match_id))

    def delete(self, conn: sqlite3.Connection, match_id: str) -> None:
        conn.execute("DELETE FROM matches WHERE id = ?", (match_id,))

    def delete_by_event(self, conn: sqlite3.Connection, event_id: str) -> int:
        cur = conn.execute("DELETE FROM matches WHERE event_id = ?", (event_id,))
        return cur.rowcount


# ---------- MembershipRepository ----------


class MembershipRepository:
    """team_memberships rows. The booking side owns them; finalization writes is_winner."""

    def upsert(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        participant_id: str,
        team_name: str | None,
    ) -> TeamMembership:
        """Create or reassign. Reassigning keeps the current is_winner flag."""
        conn.execute(
            """INSERT INTO team_memberships (event_id, participant_id, team_name, is_winner)
               VALUES (?, ?, ?, 0)
               ON CONFLICT (event_id, participant_id) DO UPDATE SET team_name = excluded.team_name""",
            (event_id, participant_id, team_name),
        )
        got = self.get(conn, event_id, participant_id)
        if got is None:
            raise sqlite3.DatabaseError(f"Membership {event_id}/{participant_id} missing after upsert")
        return got

    def get(self, conn: sqlite3.Connection, event_id: str, participant_id: str) -> TeamMembership | None:
        row = conn.execute(
            "SELECT event_id, participant_id, team_name, is_winner FROM team_memberships WHERE event_id = ? AND participant_id = ?",
            (event_id, participant_id),
        ).fetchone()
        if row is None:
            return None
        return TeamMembership(
            event_id=row["event_id"], participant_id=row["participant_id"],
            team_name=row["team_name"], is_winner=bool(row["is_winner"]),
        )

    def list_by_event(self, conn: sqlite3.Connection, event_id: str) -> list[TeamMembership]:
        rows = conn.execute(
            "SELECT event_id, participant_id, team_name, is_winner FROM team_memberships WHERE event_id = ? ORDER BY participant_id",
            (event_id,),
        ).fetchall()
        return [
            TeamMembership(
                event_id=r["event_id"], participant_id=r["participant_id"],
                team_name=r["team_name"], is_winner=bool(r["is_winner"]),
            )
            for r in rows
        ]

    def clear_winners(self, conn: sqlite3.Connection, event_id: str) -> None:
        conn.execute("UPDATE team_memberships SET is_winner = 0 WHERE event_id = ?", (event_id,))

    def mark_winners(self, conn: sqlite3.Connection, event_id: str, team_name: str) -> int:
        """Set is_winner on every membership of team_name. Returns rows updated."""
        cur = conn.execute(
            "UPDATE team_memberships SET is_winner = 1 WHERE event_id = ? AND team_name = ?",
            (event_id, team_name),
        )
        return cur.rowcount


# ---------- AwardRepository ----------


class AwardRepository:
    """Per-participant MVP award counts. The profile side owns the ledger."""

    def get(self, conn: sqlite3.Connection, participant_id: str) -> AwardEntry:
        row = conn.execute(
            "SELECT participant_id, mvp_awards FROM award_ledger WHERE participant_id = ?",
            (participant_id,),
        ).fetchone()
        if row is None:
            return AwardEntry(participant_id=participant_id, mvp_awards=0)
        return AwardEntry(participant_id=row["participant_id"], mvp_awards=row["mvp_awards"])

    def get_count(self, conn: sqlite3.Connection, participant_id: str) -> int:
        return self.get(conn, participant_id).mvp_awards

    def increment(self, conn: sqlite3.Connection, participant_id: str) -> None:
        conn.execute(
            """INSERT INTO award_ledger (participant_id, mvp_awards) VALUES (?, 1)
               ON CONFLICT (participant_id) DO UPDATE SET mvp_awards = mvp_awards + 1""",
            (participant_id,),
        )

    def decrement(self, conn: sqlite3.Connection, participant_id: str) -> None:
        """Decrement by one, floored at zero. Missing rows stay missing."""
        conn.execute(
            "UPDATE award_ledger SET mvp_awards = MAX(mvp_awards - 1, 0) WHERE participant_id = ?",
            (participant_id,),
        )
