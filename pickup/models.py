"""
Data models for pickup-event tournaments.
Domain objects only; no persistence or API logic.

An event owns a fixed list of teams and a set of matches. Teams are joined to
matches and to team-membership records by display name, not by surrogate id.
Matches with round_number > MANUAL_ROUND are round-robin fixtures; round 0 is
reserved for manually recorded results.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pickup.exceptions import InvalidScoreError

# Round number reserved for manually recorded, non-tournament matches
MANUAL_ROUND = 0


# ---------- Match status (closed set) ----------
class MatchStatus(str, Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# ---------- Event status ----------
class EventStatus(str, Enum):
    """Event lifecycle: scheduled → active → completed. Cancelled is terminal."""
    SCHEDULED = "scheduled"
    ACTIVE = "active"        # At least one round submitted
    COMPLETED = "completed"  # Finalized; only re-finalize may edit results
    CANCELLED = "cancelled"


# ---------- Event mode (explicit tag) ----------
class EventMode(str, Enum):
    MANUAL = "manual"            # Matches recorded one by one, already completed
    ROUND_ROBIN = "round_robin"  # Generated fixtures, progressed round by round


# ---------- Tournament phase (derived, never stored) ----------
class TournamentPhase(str, Enum):
    NOT_STARTED = "not_started"
    IN_ROUND = "in_round"
    COMPLETE = "complete"


def validate_score(value: Any, label: str = "score") -> int:
    """Return value if it is a non-negative int; raise InvalidScoreError otherwise."""
    # bool is an int subclass; True is not a score
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidScoreError(f"{label} must be a non-negative integer, got {value!r}")
    if value < 0:
        raise InvalidScoreError(f"{label} must be a non-negative integer, got {value}")
    return value


# ---------- Team ----------
@dataclass
class Team:
    """
    One team of an event. name is unique within the event and is the join key
    to matches and memberships. position is the configured order, which is
    also the fixture rotation order.
    """
    name: str
    color: str = ""
    position: int = 0

    def __post_init__(self) -> None:
        self.name = self.name.strip() if isinstance(self.name, str) else self.name
        if not self.name:
            raise ValueError("Team name must be a non-empty string")

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "color": self.color, "position": self.position}


# ---------- Event ----------
@dataclass
class Event:
    """
    A pickup event running either manual results or a round-robin tournament.
    version increments on every committed transition (optimistic checks).
    mvp_player_id is the authoritative current MVP used when re-finalizing.
    """
    id: str
    name: str
    mode: EventMode
    status: EventStatus
    created_at: datetime
    winning_team: str | None = None
    mvp_player_id: str | None = None
    version: int = 0

    def __post_init__(self) -> None:
        self.mode = EventMode(self.mode)
        self.status = EventStatus(self.status)

    @property
    def is_finalized(self) -> bool:
        return self.status == EventStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "mode": self.mode.value,
            "status": self.status.value,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
        }
        if self.winning_team is not None:
            d["winning_team"] = self.winning_team
        if self.mvp_player_id is not None:
            d["mvp_player_id"] = self.mvp_player_id
        return d


# ---------- Match ----------
@dataclass
class Match:
    """
    A single game between two teams of one event.
    Scores are meaningful only when status is completed. is_final marks a
    result that has been submitted through round progression.
    """
    id: str
    event_id: str
    home_team: str
    away_team: str
    home_score: int = 0
    away_score: int = 0
    round_number: int = MANUAL_ROUND
    status: MatchStatus = MatchStatus.SCHEDULED
    is_final: bool = False
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        self.status = MatchStatus(self.status)
        if self.home_team == self.away_team:
            raise ValueError(f"A team cannot play itself: {self.home_team!r}")
        validate_score(self.home_score, "home_score")
        validate_score(self.away_score, "away_score")
        if isinstance(self.round_number, bool) or not isinstance(self.round_number, int) or self.round_number < 0:
            raise ValueError(f"round_number must be a non-negative integer, got {self.round_number!r}")
        self.is_final = bool(self.is_final)

    @property
    def is_tournament(self) -> bool:
        return self.round_number > MANUAL_ROUND

    @property
    def is_pending(self) -> bool:
        """Still waiting for a result (scheduled or in play)."""
        return self.status in (MatchStatus.SCHEDULED, MatchStatus.ACTIVE)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "event_id": self.event_id,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "round_number": self.round_number,
            "status": self.status.value,
            "is_final": self.is_final,
        }
        if self.created_at is not None:
            d["created_at"] = self.created_at.isoformat()
        return d


# ---------- ScoreEntry ----------
@dataclass(frozen=True)
class ScoreEntry:
    """A submitted (home, away) score pair."""
    home: int
    away: int

    def __post_init__(self) -> None:
        validate_score(self.home, "home score")
        validate_score(self.away, "away score")

    @classmethod
    def coerce(cls, value: Any) -> "ScoreEntry":
        """Accept a ScoreEntry, a (home, away) pair or a {"home", "away"} mapping."""
        if isinstance(value, ScoreEntry):
            return value
        if isinstance(value, dict):
            if "home" not in value or "away" not in value:
                raise InvalidScoreError(f"score mapping needs 'home' and 'away', got {value!r}")
            return cls(value["home"], value["away"])
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return cls(value[0], value[1])
        raise InvalidScoreError(f"cannot read a score from {value!r}")


# ---------- FixtureRound ----------
@dataclass
class FixtureRound:
    """
    One time slot of generated fixtures.
    offset_minutes is relative to event start; the caller adds the start time.
    """
    round_number: int  # 1-based slot index
    offset_minutes: int
    pairings: list[tuple[str, str]] = field(default_factory=list)

    @property
    def time_label(self) -> str:
        return f"+{self.offset_minutes} mins"

    def to_dict(self) -> dict[str, Any]:
        return {
            "round_number": self.round_number,
            "offset_minutes": self.offset_minutes,
            "time_label": self.time_label,
            "matches": [{"home": h, "away": a} for h, a in self.pairings],
        }


# ---------- StandingRow ----------
@dataclass
class StandingRow:
    """Aggregate record of one team over completed matches. Never persisted."""
    team: str
    played: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_for: int = 0
    goals_against: int = 0

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against

    @property
    def points(self) -> int:
        return 3 * self.wins + self.draws

    def sort_key(self) -> tuple[int, int, int]:
        """Ascending sort on this key ranks by points, goal difference, goals for (all descending)."""
        return (-self.points, -self.goal_difference, -self.goals_for)

    def to_dict(self) -> dict[str, Any]:
        return {
            "team": self.team,
            "played": self.played,
            "wins": self.wins,
            "draws": self.draws,
            "losses": self.losses,
            "goals_for": self.goals_for,
            "goals_against": self.goals_against,
            "goal_difference": self.goal_difference,
            "points": self.points,
        }


# ---------- TournamentState ----------
@dataclass(frozen=True)
class TournamentState:
    """Derived progression state. current_round is set only while IN_ROUND."""
    phase: TournamentPhase
    current_round: int | None
    total_rounds: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "current_round": self.current_round,
            "total_rounds": self.total_rounds,
        }


# ---------- TeamMembership (owned by bookings) ----------
@dataclass
class TeamMembership:
    """A participant's team assignment for one event; is_winner set by finalization."""
    event_id: str
    participant_id: str
    team_name: str | None
    is_winner: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "participant_id": self.participant_id,
            "team_name": self.team_name,
            "is_winner": self.is_winner,
        }


# ---------- AwardEntry (owned by profiles) ----------
@dataclass
class AwardEntry:
    participant_id: str
    mvp_awards: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"participant_id": self.participant_id, "mvp_awards": self.mvp_awards}
