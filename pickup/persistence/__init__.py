"""
Persistence layer for events, teams, matches and finalization effects.
No business logic, only read/write interfaces.
"""
from .db import get_connection, init_db, transaction
from .repositories import (
    AwardRepository,
    EventRepository,
    MatchRepository,
    MembershipRepository,
    TeamRepository,
)

__all__ = [
    "get_connection",
    "init_db",
    "transaction",
    "AwardRepository",
    "EventRepository",
    "MatchRepository",
    "MembershipRepository",
    "TeamRepository",
]
