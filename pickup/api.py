"""
REST API for pickup-event tournaments.
Thin wrappers around the services; every domain error maps to a status code.
Authorization is the surrounding application's concern.
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncGenerator, Generator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from pickup.exceptions import (
    AlreadyFinalizedError,
    ConcurrentModificationError,
    EventModeError,
    EventNotFoundError,
    RoundSequenceError,
    TeamChangeNotAllowedError,
    TournamentError,
    TournamentTransitionError,
)
from pickup.models import EventMode, ScoreEntry, Team
from pickup.persistence import AwardRepository, get_connection, init_db
from pickup.persistence.db import get_db_path
from pickup.services import Finalizer, RosterService, TournamentService, leader

logger = logging.getLogger(__name__)


@contextmanager
def db_conn() -> Generator:
    """Yield a DB connection, ensure close on exit."""
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


# ---------- Lifespan ----------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logging.basicConfig(
        level=os.environ.get("PICKUP_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db(db_path=get_db_path())
    yield


def _cors_origins() -> list[str]:
    raw = os.environ.get("PICKUP_CORS_ORIGINS", "http://localhost:3000")
    return [o.strip() for o in raw.split(",") if o.strip()]


# ---------- FastAPI app ----------
app = FastAPI(
    title="Pickup Tournament API",
    description="Round-robin fixtures, round progression, live standings and finalization",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_CONFLICT_ERRORS = (
    AlreadyFinalizedError,
    ConcurrentModificationError,
    EventModeError,
    RoundSequenceError,
    TeamChangeNotAllowedError,
    TournamentTransitionError,
)


@app.exception_handler(TournamentError)
async def tournament_error_handler(request: Request, exc: TournamentError) -> JSONResponse:
    if isinstance(exc, EventNotFoundError):
        status = 404
    elif isinstance(exc, _CONFLICT_ERRORS):
        status = 409
    else:
        status = 400
    logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc), "error": type(exc).__name__})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    # Model validation outside the domain hierarchy (e.g. blank team name)
    logger.warning("Rejected %s: %s", request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": str(exc), "error": "ValueError"})


# ---------- Request models ----------


class TeamIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field("", max_length=50)


class CreateEventRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    teams: list[TeamIn] = Field(default_factory=list)
    mode: EventMode = EventMode.MANUAL


class UpdateTeamsRequest(BaseModel):
    teams: list[TeamIn]
    expected_version: int | None = None


class FixtureRequest(BaseModel):
    event_duration_minutes: int = Field(..., description="Event end minus start, in minutes")
    warmup_minutes: int = 0
    match_length_minutes: int
    concurrent_fields: int = 1
    expected_version: int | None = None


class ScoreIn(BaseModel):
    # Untyped so non-integers and negatives surface as InvalidScoreError (400)
    home: Any = 0
    away: Any = 0


class SubmitRoundRequest(BaseModel):
    scores: dict[str, ScoreIn] = Field(default_factory=dict, description="match_id -> score")
    default_missing: bool = Field(True, description="Record untouched matches as 0-0")
    expected_version: int | None = None


class ManualMatchRequest(BaseModel):
    home_team: str
    away_team: str
    home_score: Any = 0
    away_score: Any = 0


class FinalizeRequest(BaseModel):
    winning_team: str | None = Field(None, description="Omit to crown the standings leader")
    draw: bool = Field(False, description="Close the event with no winning team")
    mvp_id: str | None = None
    previous_mvp_id: str | None = None
    expected_version: int | None = None


class RefinalizeRequest(BaseModel):
    score_overrides: dict[str, ScoreIn] = Field(default_factory=dict)
    mvp_id: str | None = None
    previous_mvp_id: str | None = None
    winning_team: str | None = None
    draw: bool = False
    clear_mvp: bool = False
    expected_version: int | None = None


class AssignTeamsRequest(BaseModel):
    participant_ids: list[str]
    seed: int | None = None


class SetAssignmentRequest(BaseModel):
    team_name: str | None = None


def _scores(scores: dict[str, ScoreIn]) -> dict[str, ScoreEntry]:
    return {mid: ScoreEntry(s.home, s.away) for mid, s in scores.items()}


# ---------- Events ----------


@app.post("/events")
def create_event(req: CreateEventRequest) -> dict[str, Any]:
    with db_conn() as conn:
        svc = TournamentService()
        event = svc.create_event(
            conn, req.name, [Team(name=t.name, color=t.color) for t in req.teams], mode=req.mode
        )
        return {**event.to_dict(), "teams": [t.to_dict() for t in svc.get_teams(conn, event.id)]}


@app.get("/events")
def list_events() -> dict[str, Any]:
    with db_conn() as conn:
        return {"events": [e.to_dict() for e in TournamentService().list_events(conn)]}


@app.get("/events/{event_id}")
def get_event(event_id: str) -> dict[str, Any]:
    """Event with teams and derived tournament state."""
    with db_conn() as conn:
        svc = TournamentService()
        event = svc.get_event(conn, event_id)
        return {
            **event.to_dict(),
            "teams": [t.to_dict() for t in svc.get_teams(conn, event_id)],
            "state": svc.tournament_state(conn, event_id).to_dict(),
        }


@app.put("/events/{event_id}/teams")
def update_teams(event_id: str, req: UpdateTeamsRequest) -> dict[str, Any]:
    with db_conn() as conn:
        teams = TournamentService().update_teams(
            conn, event_id, [Team(name=t.name, color=t.color) for t in req.teams],
            expected_version=req.expected_version,
        )
        return {"event_id": event_id, "teams": [t.to_dict() for t in teams]}


# ---------- Fixtures ----------


@app.post("/events/{event_id}/fixtures/preview")
def preview_fixtures(event_id: str, req: FixtureRequest) -> dict[str, Any]:
    with db_conn() as conn:
        rounds = TournamentService().preview_fixtures(
            conn, event_id, req.event_duration_minutes, req.warmup_minutes,
            req.match_length_minutes, req.concurrent_fields,
        )
        return {"event_id": event_id, "rounds": [r.to_dict() for r in rounds]}


@app.post("/events/{event_id}/fixtures")
def schedule_fixtures(event_id: str, req: FixtureRequest) -> dict[str, Any]:
    with db_conn() as conn:
        svc = TournamentService()
        rounds = svc.schedule_fixtures(
            conn, event_id, req.event_duration_minutes, req.warmup_minutes,
            req.match_length_minutes, req.concurrent_fields,
            expected_version=req.expected_version,
        )
        return {
            "event_id": event_id,
            "rounds": [r.to_dict() for r in rounds],
            "matches_created": sum(len(r.pairings) for r in rounds),
            "state": svc.tournament_state(conn, event_id).to_dict(),
        }


@app.delete("/events/{event_id}/fixtures")
def reset_fixtures(event_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        deleted = TournamentService().reset_fixtures(conn, event_id)
        return {"event_id": event_id, "deleted": deleted}


# ---------- Matches ----------


@app.get("/events/{event_id}/matches")
def list_matches(event_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return {"event_id": event_id, "matches": [m.to_dict() for m in TournamentService().list_matches(conn, event_id)]}


@app.post("/events/{event_id}/matches")
def record_manual_match(event_id: str, req: ManualMatchRequest) -> dict[str, Any]:
    with db_conn() as conn:
        match = TournamentService().record_manual_match(
            conn, event_id, req.home_team, req.away_team, req.home_score, req.away_score
        )
        return match.to_dict()


@app.delete("/events/{event_id}/matches/{match_id}")
def delete_match(event_id: str, match_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        TournamentService().delete_match(conn, event_id, match_id)
        return {"event_id": event_id, "deleted": match_id}


@app.post("/events/{event_id}/matches/{match_id}/cancel")
def cancel_match(event_id: str, match_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return TournamentService().cancel_match(conn, event_id, match_id).to_dict()


# ---------- Rounds ----------


@app.post("/events/{event_id}/rounds/{round_number}/start")
def start_round(event_id: str, round_number: int) -> dict[str, Any]:
    with db_conn() as conn:
        state = TournamentService().start_round(conn, event_id, round_number)
        return {"event_id": event_id, "state": state.to_dict()}


@app.post("/events/{event_id}/rounds/{round_number}/submit")
def submit_round(event_id: str, round_number: int, req: SubmitRoundRequest | None = None) -> dict[str, Any]:
    """Complete the round; untouched matches default to 0-0 unless default_missing is false."""
    req = req or SubmitRoundRequest()
    with db_conn() as conn:
        svc = TournamentService()
        state = svc.submit_round(
            conn, event_id, round_number, _scores(req.scores),
            default_missing=req.default_missing,
            expected_version=req.expected_version,
        )
        return {
            "event_id": event_id,
            "submitted_round": round_number,
            "state": state.to_dict(),
            "standings": [r.to_dict() for r in svc.standings(conn, event_id)],
        }


# ---------- Standings & finalization ----------


@app.get("/events/{event_id}/standings")
def get_standings(event_id: str) -> dict[str, Any]:
    """Live standings; leader is the team offered 'declare winner'."""
    with db_conn() as conn:
        rows = TournamentService().standings(conn, event_id)
        top = leader(rows)
        return {
            "event_id": event_id,
            "standings": [r.to_dict() for r in rows],
            "leader": top.team if top else None,
        }


@app.post("/events/{event_id}/finalize")
def finalize(event_id: str, req: FinalizeRequest | None = None) -> dict[str, Any]:
    req = req or FinalizeRequest()
    with db_conn() as conn:
        result = Finalizer().finalize(
            conn, event_id,
            winning_team=req.winning_team,
            draw=req.draw,
            mvp_id=req.mvp_id,
            previous_mvp_id=req.previous_mvp_id,
            expected_version=req.expected_version,
        )
        return result.to_dict()


@app.post("/events/{event_id}/refinalize")
def refinalize(event_id: str, req: RefinalizeRequest) -> dict[str, Any]:
    with db_conn() as conn:
        result = Finalizer().refinalize(
            conn, event_id,
            score_overrides=_scores(req.score_overrides),
            mvp_id=req.mvp_id,
            previous_mvp_id=req.previous_mvp_id,
            winning_team=req.winning_team,
            draw=req.draw,
            clear_mvp=req.clear_mvp,
            expected_version=req.expected_version,
        )
        return result.to_dict()


# ---------- Rosters & awards ----------


@app.post("/events/{event_id}/assignments")
def assign_teams(event_id: str, req: AssignTeamsRequest) -> dict[str, Any]:
    with db_conn() as conn:
        memberships = RosterService().assign_teams(conn, event_id, req.participant_ids, seed=req.seed)
        return {"event_id": event_id, "assignments": [m.to_dict() for m in memberships]}


@app.put("/events/{event_id}/assignments/{participant_id}")
def set_assignment(event_id: str, participant_id: str, req: SetAssignmentRequest) -> dict[str, Any]:
    with db_conn() as conn:
        return RosterService().set_assignment(conn, event_id, participant_id, req.team_name).to_dict()


@app.get("/events/{event_id}/assignments")
def list_assignments(event_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        memberships = RosterService().list_assignments(conn, event_id)
        return {"event_id": event_id, "assignments": [m.to_dict() for m in memberships]}


@app.get("/awards/{participant_id}")
def get_awards(participant_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return AwardRepository().get(conn, participant_id).to_dict()


# ---------- Run with: uvicorn pickup.api:app --reload ----------
