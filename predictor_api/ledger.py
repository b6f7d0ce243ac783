from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Optional, Sequence

from predictor_api.errors import NotFoundError, StateConflictError, ValidationError
from predictor_api.models import Match, Player, RoomSettings, innings_key
from predictor_api.normalizer import is_innings_locked
from predictor_api.toss import resolve_batting_order


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def parse_innings_number(innings: Any) -> int:
    try:
        n = int(innings)
    except (TypeError, ValueError):
        n = 0
    if n not in (1, 2):
        raise ValidationError("Innings must be 1 or 2.", "InvalidInnings")
    return n


def checked_score(raw_score: Any, settings: RoomSettings, label: str = "Score") -> int:
    """
    Validate a submitted score against the room bounds and round it.
    Bounds are inclusive and apply to the raw value.
    """
    value: Optional[float]
    if raw_score is None or isinstance(raw_score, bool):
        value = None
    else:
        try:
            value = float(raw_score)
        except (TypeError, ValueError):
            value = None

    if value is None or not math.isfinite(value) or value < settings.min_score or value > settings.max_score:
        raise ValidationError(
            f"{label} must be between {settings.min_score} and {settings.max_score}.",
            "ScoreOutOfRange",
        )
    return round_half_up(value)


def submit_prediction(
    match: Match,
    innings: Any,
    player_id: str,
    raw_score: Any,
    players: Sequence[Player],
    settings: RoomSettings,
    now: Optional[datetime] = None,
) -> int:
    """
    Record one player's guess for one innings; later writes overwrite.

    Checked in order (first failure wins):
      1. toss set                         -> StateConflictError TossNotSet
      2. innings open and before lockTime -> StateConflictError InningsNotOpen
      3. known player                     -> NotFoundError UnknownPlayer
      4. score within room bounds         -> ValidationError ScoreOutOfRange
    Returns the stored (rounded) score.
    """
    number = parse_innings_number(innings)
    key = innings_key(number)
    inn = match.innings(number)

    if resolve_batting_order(match) is None:
        raise StateConflictError("Set the toss before predictions.", "TossNotSet")

    if inn.status != "open" or is_innings_locked(inn, now):
        raise StateConflictError("Predictions are not open for this innings.", "InningsNotOpen")

    pid = str(player_id or "")
    if not any(p.id == pid for p in players):
        raise NotFoundError("Invalid player.", "UnknownPlayer")

    score = checked_score(raw_score, settings)
    match.predictions.setdefault(key, {})[pid] = score
    return score
