# predictor_api/normalizer.py
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Sequence, Union

from predictor_api.models import (
    INNINGS_KEYS,
    INNINGS_STATUSES,
    TOSS_DECISIONS,
    Innings,
    InningsResult,
    Match,
    Player,
    Toss,
    make_id,
    parse_instant,
    utc_now,
)
from predictor_api.results import compute_innings_result

logger = logging.getLogger(__name__)


def compute_lock_time(start: Optional[datetime], lock_minutes: Any) -> Optional[datetime]:
    """Lock instant = start - lock_minutes. Non-numeric minutes count as 0."""
    if start is None:
        return None
    try:
        minutes = float(lock_minutes)
    except (TypeError, ValueError):
        minutes = 0.0
    if not math.isfinite(minutes):
        minutes = 0.0
    return start - timedelta(minutes=minutes)


def is_innings_locked(innings: Optional[Innings], now: Optional[datetime] = None) -> bool:
    """
    True when no new predictions may be taken for this innings, either by
    status or because an open innings is already past its lock time.
    """
    if innings is None:
        return True
    if innings.status in ("locked", "scored"):
        return True
    if innings.status == "open" and innings.lock_time is not None:
        return (now or utc_now()) >= innings.lock_time
    return False


def apply_auto_lock(match: Match, now: Optional[datetime] = None) -> bool:
    """Advance open innings past their lock time to locked. Returns True if anything changed."""
    now = now or utc_now()
    changed = False
    for inn in (match.innings1, match.innings2):
        if inn.status == "open" and is_innings_locked(inn, now):
            inn.status = "locked"
            changed = True
    return changed


# -----------------------------
# Coercion helpers (never raise)
# -----------------------------
def _safe_int(x: Any) -> Optional[int]:
    if x is None or isinstance(x, bool):
        return None
    try:
        f = float(str(x).strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(f):
        return None
    return int(math.floor(f + 0.5))


def _opt_str(x: Any) -> Optional[str]:
    if x is None:
        return None
    s = str(x).strip()
    return s or None


def _coerce_innings(raw: Any, default_status: str) -> Innings:
    if isinstance(raw, Innings):
        raw = raw.to_dict()
    if not isinstance(raw, dict):
        raw = {}
    status = raw.get("status")
    if status not in INNINGS_STATUSES:
        status = default_status
    return Innings(
        status=status,
        lock_time=parse_instant(raw.get("lockTime")),
        score=_safe_int(raw.get("score")),
    )


def _coerce_prediction_map(raw: Any) -> Dict[str, int]:
    out: Dict[str, int] = {}
    if not isinstance(raw, dict):
        return out
    for pid, value in raw.items():
        score = _safe_int(value)
        if score is not None:
            out[str(pid)] = score
    return out


def _coerce_predictions(raw: Any) -> Dict[str, Dict[str, int]]:
    if not isinstance(raw, dict):
        raw = {}
    if "innings1" not in raw and "innings2" not in raw:
        # Legacy single-innings shape: {playerId: score}
        return {"innings1": _coerce_prediction_map(raw), "innings2": {}}
    return {key: _coerce_prediction_map(raw.get(key)) for key in INNINGS_KEYS}


def _coerce_toss(raw: Any, team_a: str, team_b: str) -> Optional[Toss]:
    if isinstance(raw, Toss):
        raw = raw.to_dict()
    if not isinstance(raw, dict):
        return None
    winner = raw.get("winner")
    decision = raw.get("decision")
    if not winner or winner not in (team_a, team_b):
        return None
    if decision not in TOSS_DECISIONS:
        return None
    return Toss(winner=winner, decision=decision)


def _coerce_result(raw: Any) -> Optional[Dict[str, Optional[InningsResult]]]:
    if not isinstance(raw, dict):
        return None
    out: Dict[str, Optional[InningsResult]] = {}
    for key in INNINGS_KEYS:
        item = raw.get(key)
        if isinstance(item, InningsResult):
            out[key] = item
        elif isinstance(item, dict):
            winners = item.get("winners") or []
            if not isinstance(winners, (list, tuple, set)):
                winners = []
            out[key] = InningsResult(
                winners=[str(w) for w in winners],
                closest_diff=_safe_int(item.get("closestDiff")),
            )
        else:
            out[key] = None
    return out


# -----------------------------
# Normalizer
# -----------------------------
def normalize_match(
    raw: Union[Dict[str, Any], Match],
    lock_minutes: Any = 0,
    players: Optional[Sequence[Player]] = None,
    now: Optional[datetime] = None,
) -> Match:
    """
    Migrate a stored match of any known shape into the canonical Match.

    Handles:
      - legacy single-innings records (flat status / lockTime / actualScore,
        flat predictions mapping) -> innings1 data
      - partially canonical records with missing innings or prediction maps
      - already canonical Match instances (no-op apart from auto-lock)

    After shape repair, innings2 is promoted pending -> open once innings1 is
    scored, and open innings past their lock time are locked.
    Never raises; malformed values fall back to defaults.
    """
    if isinstance(raw, Match):
        raw = raw.to_dict()
    if not isinstance(raw, dict):
        raw = {}

    team_a = str(raw.get("teamA") or "TBD")
    team_b = str(raw.get("teamB") or "TBD")
    match_date = parse_instant(raw.get("matchDate"))

    if isinstance(raw.get("innings1"), (dict, Innings)):
        innings1 = _coerce_innings(raw.get("innings1"), "open")
    else:
        innings1 = _coerce_innings(
            {
                "status": raw.get("status"),
                "lockTime": raw.get("lockTime"),
                "score": raw.get("actualScore"),
            },
            "open",
        )
        if innings1.lock_time is None:
            innings1.lock_time = compute_lock_time(match_date, lock_minutes)

    if isinstance(raw.get("innings2"), (dict, Innings)):
        innings2 = _coerce_innings(raw.get("innings2"), "pending")
    else:
        innings2 = _coerce_innings(
            {
                "status": "pending",
                "lockTime": raw.get("innings2LockTime"),
                "score": raw.get("innings2Score"),
            },
            "pending",
        )

    for inn in (innings1, innings2):
        if inn.status == "scored" and inn.score is None:
            inn.status = "locked"

    match = Match(
        id=str(raw.get("id") or make_id("match")),
        team_a=team_a,
        team_b=team_b,
        external_id=_opt_str(raw.get("externalId")),
        goalserve_match_id=_opt_str(raw.get("goalserveMatchId")),
        venue=_opt_str(raw.get("venue")),
        group=_opt_str(raw.get("group")),
        stage=_opt_str(raw.get("stage")),
        match_number=_safe_int(raw.get("matchNumber")),
        round_number=_safe_int(raw.get("roundNumber")),
        match_date=match_date,
        toss=_coerce_toss(raw.get("toss"), team_a, team_b),
        innings1=innings1,
        innings2=innings2,
        predictions=_coerce_predictions(raw.get("predictions")),
        result=_coerce_result(raw.get("result")),
    )

    if players is not None:
        _backfill_results(match, players)

    if match.innings1.status == "scored" and match.innings2.status == "pending":
        match.innings2.status = "open"

    apply_auto_lock(match, now)
    return match


def _backfill_results(match: Match, players: Sequence[Player]) -> None:
    for key in INNINGS_KEYS:
        inn = getattr(match, key)
        if inn.status != "scored" or not match.predictions.get(key):
            continue
        if match.result is not None and match.result.get(key) is not None:
            continue
        if match.result is None:
            match.result = {"innings1": None, "innings2": None}
        match.result[key] = compute_innings_result(inn.score, match.predictions[key], players)
        logger.debug("Backfilled %s result for match %s", key, match.id)
