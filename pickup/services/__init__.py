"""
Service layer: fixture generation, standings, round progression, finalization.
Pure functions (scheduling, standings, progression) never touch the database;
the service classes orchestrate persistence.
"""
from .scheduling import generate_fixtures, round_robin_rotations
from .standings import compute_standings, leader
from .progression import derive_state, group_rounds
from .tournament_service import TournamentService
from .finalizer import Finalizer, FinalizeResult
from .roster import RosterService, distribute_members

__all__ = [
    "generate_fixtures",
    "round_robin_rotations",
    "compute_standings",
    "leader",
    "derive_state",
    "group_rounds",
    "TournamentService",
    "Finalizer",
    "FinalizeResult",
    "RosterService",
    "distribute_members",
]
