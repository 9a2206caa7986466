"""
Domain errors for tournament scheduling, round progression and finalization.
Every error is a ValueError so callers that only care about "bad request" can catch one type.
"""
from __future__ import annotations


class TournamentError(ValueError):
    """Base class for all tournament errors."""


class InvalidConfigurationError(TournamentError):
    """Bad team list or timing parameters; nothing was generated or saved."""


class IncompleteRoundError(TournamentError):
    """Round submitted without a score for a pending match (defaulting disabled)."""


class InvalidScoreError(TournamentError):
    """Score is negative or not an integer."""


class UnknownTeamError(TournamentError):
    """Team name is not one of the event's configured teams."""


class UnknownMatchError(TournamentError):
    """Match id does not belong to the event (or round) being edited."""


class AlreadyFinalizedError(TournamentError):
    """Event is completed; use re-finalize to edit results."""


class RoundSequenceError(TournamentError):
    """Rounds must be submitted in order; only the current round accepts scores."""


class TournamentTransitionError(TournamentError):
    """Operation is not valid from the tournament's current state."""


class EventModeError(TournamentError):
    """Operation belongs to the other event mode (manual vs round-robin)."""


class TeamChangeNotAllowedError(TournamentError):
    """Teams cannot change once fixtures exist."""


class ConcurrentModificationError(TournamentError):
    """Stored state changed since the caller last read it."""


class EventNotFoundError(TournamentError):
    """No event with the given id."""

    def __init__(self, event_id: str) -> None:
        self.event_id = event_id
        super().__init__(f"Event not found: {event_id}")
