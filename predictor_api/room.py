# predictor_api/room.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from predictor_api.auth import ensure_admin, hash_pin
from predictor_api.config import FeedConfig
from predictor_api.errors import FeedSyncError, NotFoundError, ValidationError
from predictor_api.innings import (
    create_match,
    lock_innings,
    reopen_innings,
    reopen_match,
    score_innings,
)
from predictor_api.ledger import parse_innings_number, submit_prediction
from predictor_api.models import (
    DEFAULT_ROOM_NAME,
    Match,
    Player,
    RoomSettings,
    RoomState,
    make_id,
    utc_now,
)
from predictor_api.normalizer import normalize_match
from predictor_api import toss_feed
from predictor_api.schedule_feed import apply_schedule_rows, fetch_schedule, import_schedule
from predictor_api.scoreboard import build_scoreboard
from predictor_api.storage import RoomStore
from predictor_api.toss import set_toss

logger = logging.getLogger(__name__)

MIN_PLAYERS = 4
MIN_PIN_LENGTH = 3


# -----------------------
# Reads
# -----------------------
def public_view(state: RoomState) -> Dict[str, Any]:
    """State as served to clients: no PIN hash, scoreboard included."""
    return {
        "settings": state.settings.to_dict(include_secret=False),
        "players": [p.to_dict() for p in state.players],
        "matches": [m.to_dict() for m in state.matches],
        "scoreboard": build_scoreboard(state.matches, state.players, state.settings.bonus_exact),
    }


def refresh_room(store: RoomStore, feed_config: FeedConfig, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Read path: merge tosses from the feed on a best-effort basis.
    The fetch runs outside the room lock; only the throttle check and the
    apply step hold it. A feed failure is logged and never blocks the read.
    """
    now = now or utc_now()
    with store.transaction(now) as state:
        skipped = toss_feed.begin_toss_sync(state, feed_config, now=now)
    if skipped is not None:
        return skipped

    try:
        feed_items = toss_feed.fetch_toss_candidates(feed_config)
    except FeedSyncError as e:
        logger.warning("Toss sync failed during state read: %s", e)
        return {"skipped": True, "reason": "Toss sync failed."}

    with store.transaction(now) as state:
        return toss_feed.finish_toss_sync(state, feed_config, feed_items, now)


def get_match(state: RoomState, match_id: str, now: Optional[datetime] = None) -> Match:
    """Find a match and re-normalize it in place before a transition acts on it."""
    for idx, m in enumerate(state.matches):
        if m.id == match_id:
            fresh = normalize_match(
                m,
                state.settings.lock_minutes_before_start,
                players=state.players,
                now=now,
            )
            state.matches[idx] = fresh
            return fresh
    raise NotFoundError("Match not found.", "MatchNotFound")


# -----------------------
# Room setup
# -----------------------
def _clean_player_names(names: Sequence[Any]) -> List[str]:
    out: List[str] = []
    seen = set()
    for raw in names or []:
        name = str(raw or "").strip()
        if not name or name.casefold() in seen:
            continue
        seen.add(name.casefold())
        out.append(name)
    return out


def _non_negative(value: Any, default: int) -> int:
    try:
        n = int(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        raise ValidationError(f"Expected a whole number, got {value!r}.", "InvalidNumber")
    return max(0, n)


def setup_room(
    current: RoomState,
    *,
    room_name: Optional[str],
    player_names: Sequence[Any],
    use_pin: bool = False,
    admin_pin: Optional[str] = None,
    current_pin: Optional[str] = None,
    bonus_exact: Any = 0,
    min_score: Any = None,
    max_score: Any = None,
    lock_minutes_before_start: Any = None,
    import_schedule_now: bool = False,
    feed_config: Optional[FeedConfig] = None,
    now: Optional[datetime] = None,
) -> Tuple[RoomState, Optional[Dict[str, int]], Optional[str]]:
    """
    Replace the room with a fresh one. A room already protected by a PIN
    can only be replaced with that PIN.
    Returns (new_state, schedule_result, schedule_error).
    """
    ensure_admin(current.settings, current_pin)

    names = _clean_player_names(player_names)
    if len(names) < MIN_PLAYERS:
        raise ValidationError(f"Add at least {MIN_PLAYERS} players.", "NotEnoughPlayers")

    pin = str(admin_pin or "").strip()
    if use_pin and len(pin) < MIN_PIN_LENGTH:
        raise ValidationError(f"Admin PIN must be at least {MIN_PIN_LENGTH} digits.", "PinTooShort")

    defaults = RoomSettings()
    low = _non_negative(min_score, defaults.min_score)
    high = max(low, _non_negative(max_score, defaults.max_score))

    settings = RoomSettings(
        room_name=str(room_name or DEFAULT_ROOM_NAME).strip() or DEFAULT_ROOM_NAME,
        use_pin=bool(use_pin),
        admin_pin_hash=hash_pin(pin) if use_pin else None,
        bonus_exact=_non_negative(bonus_exact, 0),
        min_score=low,
        max_score=high,
        lock_minutes_before_start=_non_negative(lock_minutes_before_start, defaults.lock_minutes_before_start),
    )
    state = RoomState(settings=settings, players=[Player(id=make_id("player"), name=n) for n in names])

    schedule_result = None
    schedule_error = None
    if import_schedule_now:
        try:
            schedule_result = import_schedule(state, feed_config or FeedConfig.from_env(), now=now)
        except FeedSyncError as e:
            logger.warning("Schedule import during setup failed: %s", e)
            schedule_error = e.message or "Schedule sync failed."

    logger.info("Room %r set up with %s players", settings.room_name, len(state.players))
    return state, schedule_result, schedule_error


# -----------------------
# Admin: feeds
# -----------------------
def run_schedule_import(
    store: RoomStore,
    feed_config: FeedConfig,
    admin_pin: Optional[str],
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    with store.transaction(now) as state:
        ensure_admin(state.settings, admin_pin)
    rows = fetch_schedule(feed_config, use_cache=False)
    with store.transaction(now) as state:
        return apply_schedule_rows(state, rows, now)


def run_toss_sync(
    store: RoomStore,
    feed_config: FeedConfig,
    admin_pin: Optional[str],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or utc_now()
    with store.transaction(now) as state:
        ensure_admin(state.settings, admin_pin)
        skipped = toss_feed.begin_toss_sync(state, feed_config, force=True, now=now)
    if skipped is not None:
        return skipped
    feed_items = toss_feed.fetch_toss_candidates(feed_config, use_cache=False)
    with store.transaction(now) as state:
        return toss_feed.finish_toss_sync(state, feed_config, feed_items, now)


# -----------------------
# Match operations
# -----------------------
def add_match(state: RoomState, admin_pin: Optional[str], **fields: Any) -> Match:
    ensure_admin(state.settings, admin_pin)
    match = create_match(state.settings, fields.pop("team_a", ""), fields.pop("team_b", ""), **fields)
    state.matches.append(match)
    return match


def predict(
    state: RoomState,
    match_id: str,
    innings: Any,
    player_id: str,
    score: Any,
    now: Optional[datetime] = None,
) -> int:
    match = get_match(state, match_id, now)
    return submit_prediction(match, innings, player_id, score, state.players, state.settings, now)


def lock(state: RoomState, match_id: str, innings: Any, admin_pin: Optional[str], now: Optional[datetime] = None) -> Match:
    match = get_match(state, match_id, now)
    ensure_admin(state.settings, admin_pin)
    lock_innings(match, innings)
    return match


def record_toss(
    state: RoomState,
    match_id: str,
    winner: str,
    decision: str,
    admin_pin: Optional[str],
    now: Optional[datetime] = None,
) -> Match:
    match = get_match(state, match_id, now)
    ensure_admin(state.settings, admin_pin)
    set_toss(match, winner, decision)
    return match


def record_score(
    state: RoomState,
    match_id: str,
    innings: Any,
    actual_score: Any,
    admin_pin: Optional[str],
    innings2_start_time: Any = None,
    now: Optional[datetime] = None,
) -> Match:
    match = get_match(state, match_id, now)
    ensure_admin(state.settings, admin_pin)
    score_innings(match, innings, actual_score, state.players, state.settings, innings2_start_time)
    return match


def reopen(
    state: RoomState,
    match_id: str,
    innings: Any,
    admin_pin: Optional[str],
    now: Optional[datetime] = None,
) -> Match:
    """innings 1/2 reopens that innings; a missing or zero innings reopens the whole match."""
    match = get_match(state, match_id, now)
    ensure_admin(state.settings, admin_pin)
    if not innings:
        reopen_match(match)
    else:
        reopen_innings(match, parse_innings_number(innings))
    return match
