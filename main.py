# main.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from predictor_api.config import DATA_FILE, FeedConfig, validate_config
from predictor_api.errors import (
    AuthorizationError,
    FeedSyncError,
    NotFoundError,
    PredictorError,
    StateConflictError,
    ValidationError,
)
from predictor_api.logging_config import configure_logging
from predictor_api import room
from predictor_api.storage import RoomStore

logger = logging.getLogger(__name__)

# -----------------------
# App
# -----------------------
app = FastAPI(
    title="T20 Score Predictor API",
    version="0.1.0",
    description="Innings score predictions, toss-driven batting order, nearest-guess scoring and a room leaderboard",
)


@app.on_event("startup")
def on_startup():
    configure_logging()
    validate_config()


@app.get("/health")
def health_check():
    return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}


# -----------------------
# Dependencies
# -----------------------
_store: Optional[RoomStore] = None


def get_store() -> RoomStore:
    global _store
    if _store is None:
        _store = RoomStore(DATA_FILE)
    return _store


def get_feed_config() -> FeedConfig:
    return FeedConfig.from_env()


# -----------------------
# Errors
# -----------------------
_STATUS_BY_ERROR = (
    (ValidationError, 400),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (StateConflictError, 409),
    (FeedSyncError, 502),
)


@app.exception_handler(PredictorError)
def predictor_error_handler(request: Request, exc: PredictorError):
    status = 400
    for cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            status = code
            break
    return JSONResponse(status_code=status, content={"error": exc.message, "code": exc.code})


# -----------------------
# Room state
# -----------------------
@app.get("/api/state")
def get_state(store: RoomStore = Depends(get_store), feed_config: FeedConfig = Depends(get_feed_config)):
    room.refresh_room(store, feed_config)
    with store.transaction() as state:
        return room.public_view(state)


class SetupRequest(BaseModel):
    roomName: str = Field("T20 Score Predictions")
    players: list[str] = Field(default_factory=list, description="At least four player names")
    usePin: bool = False
    adminPin: Optional[str] = None
    currentPin: Optional[str] = Field(None, description="Required when the existing room uses a PIN")
    bonusExact: int = Field(0, ge=0)
    minScore: Optional[int] = Field(None, ge=0)
    maxScore: Optional[int] = Field(None, ge=0)
    lockMinutesBeforeStart: Optional[int] = Field(None, ge=0)
    importSchedule: bool = False


@app.post("/api/setup")
def setup(
    req: SetupRequest,
    store: RoomStore = Depends(get_store),
    feed_config: FeedConfig = Depends(get_feed_config),
):
    with store.transaction() as current:
        fresh, schedule_result, schedule_error = room.setup_room(
            current,
            room_name=req.roomName,
            player_names=req.players,
            use_pin=req.usePin,
            admin_pin=req.adminPin,
            current_pin=req.currentPin,
            bonus_exact=req.bonusExact,
            min_score=req.minScore,
            max_score=req.maxScore,
            lock_minutes_before_start=req.lockMinutesBeforeStart,
            import_schedule_now=req.importSchedule,
            feed_config=feed_config,
        )
        current.settings = fresh.settings
        current.players = fresh.players
        current.matches = fresh.matches
    return {"ok": True, "scheduleResult": schedule_result, "scheduleError": schedule_error}


class AdminRequest(BaseModel):
    adminPin: Optional[str] = None


@app.post("/api/schedule/import")
def schedule_import(
    req: AdminRequest,
    store: RoomStore = Depends(get_store),
    feed_config: FeedConfig = Depends(get_feed_config),
):
    result = room.run_schedule_import(store, feed_config, req.adminPin)
    return {"ok": True, "result": result}


@app.post("/api/toss/sync")
def toss_sync(
    req: AdminRequest,
    store: RoomStore = Depends(get_store),
    feed_config: FeedConfig = Depends(get_feed_config),
):
    result = room.run_toss_sync(store, feed_config, req.adminPin)
    return {"ok": True, "result": result}


# -----------------------
# Matches
# -----------------------
class MatchCreateRequest(AdminRequest):
    teamA: str = ""
    teamB: str = ""
    matchDate: Optional[str] = None
    lockTime: Optional[str] = None
    venue: Optional[str] = None
    group: Optional[str] = None
    stage: Optional[str] = None


@app.post("/api/matches")
def create_match(req: MatchCreateRequest, store: RoomStore = Depends(get_store)):
    with store.transaction() as state:
        match = room.add_match(
            state,
            req.adminPin,
            team_a=req.teamA,
            team_b=req.teamB,
            match_date=req.matchDate,
            lock_time=req.lockTime,
            venue=req.venue,
            group=req.group,
            stage=req.stage,
        )
        return {"ok": True, "match": match.to_dict()}


class PredictRequest(BaseModel):
    innings: int = Field(1, description="1 or 2")
    playerId: str = ""
    score: Any = None


@app.post("/api/matches/{match_id}/predict")
def predict(match_id: str, req: PredictRequest, store: RoomStore = Depends(get_store)):
    with store.transaction() as state:
        stored = room.predict(state, match_id, req.innings, req.playerId, req.score)
    return {"ok": True, "score": stored}


class InningsAdminRequest(AdminRequest):
    innings: int = Field(1, description="1 or 2")


@app.post("/api/matches/{match_id}/lock")
def lock(match_id: str, req: InningsAdminRequest, store: RoomStore = Depends(get_store)):
    with store.transaction() as state:
        room.lock(state, match_id, req.innings, req.adminPin)
    return {"ok": True}


class TossRequest(AdminRequest):
    winner: str = ""
    decision: str = ""


@app.post("/api/matches/{match_id}/toss")
def toss(match_id: str, req: TossRequest, store: RoomStore = Depends(get_store)):
    with store.transaction() as state:
        room.record_toss(state, match_id, req.winner, req.decision, req.adminPin)
    return {"ok": True}


class ScoreRequest(InningsAdminRequest):
    actualScore: Any = None
    innings2StartTime: Optional[str] = None


@app.post("/api/matches/{match_id}/score")
def score(match_id: str, req: ScoreRequest, store: RoomStore = Depends(get_store)):
    with store.transaction() as state:
        room.record_score(state, match_id, req.innings, req.actualScore, req.adminPin, req.innings2StartTime)
    return {"ok": True}


class ReopenRequest(AdminRequest):
    innings: Optional[int] = Field(None, description="1 or 2; omit to reopen the whole match")


@app.post("/api/matches/{match_id}/reopen")
def reopen(match_id: str, req: ReopenRequest, store: RoomStore = Depends(get_store)):
    with store.transaction() as state:
        room.reopen(state, match_id, req.innings, req.adminPin)
    return {"ok": True}
