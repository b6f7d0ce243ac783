from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from predictor_api.errors import StateConflictError, ValidationError
from predictor_api.ledger import checked_score, parse_innings_number
from predictor_api.models import (
    Innings,
    InningsResult,
    Match,
    Player,
    RoomSettings,
    innings_key,
    make_id,
    parse_instant,
)
from predictor_api.normalizer import compute_lock_time
from predictor_api.results import compute_innings_result

logger = logging.getLogger(__name__)


def create_match(
    settings: RoomSettings,
    team_a: str,
    team_b: str,
    *,
    match_date: Any = None,
    lock_time: Any = None,
    venue: Optional[str] = None,
    group: Optional[str] = None,
    stage: Optional[str] = None,
) -> Match:
    """
    Custom (admin-entered) fixture: innings1 open, innings2 pending.
    Lock time defaults to match start minus the room lock offset.
    """
    team_a = str(team_a or "").strip()
    team_b = str(team_b or "").strip()
    if not team_a or not team_b:
        raise ValidationError("Provide both team names.", "MissingTeams")

    start = parse_instant(match_date)
    if match_date and start is None:
        raise ValidationError("matchDate is not a valid date/time.", "InvalidDate")
    lock = parse_instant(lock_time)
    if lock_time and lock is None:
        raise ValidationError("lockTime is not a valid date/time.", "InvalidDate")
    if lock is None:
        lock = compute_lock_time(start, settings.lock_minutes_before_start)

    return Match(
        id=make_id("match"),
        team_a=team_a,
        team_b=team_b,
        venue=str(venue).strip() if venue else None,
        group=str(group).strip() if group else None,
        stage=str(stage).strip() if stage else "Custom",
        match_date=start,
        innings1=Innings(status="open", lock_time=lock),
        innings2=Innings(status="pending"),
    )


def lock_innings(match: Match, innings: Any) -> Innings:
    """open -> locked. Already locked/scored is a no-op; pending cannot be locked."""
    number = parse_innings_number(innings)
    inn = match.innings(number)

    if inn.status == "pending":
        raise StateConflictError(f"Innings {number} is not open yet.", "InningsNotStarted")
    if inn.status == "open":
        inn.status = "locked"
        logger.debug("Locked innings %s of match %s", number, match.id)
    return inn


def score_innings(
    match: Match,
    innings: Any,
    actual_score: Any,
    players: Sequence[Player],
    settings: RoomSettings,
    innings2_start_time: Any = None,
) -> Optional[InningsResult]:
    """
    Finalize an innings with its actual score.

    Locking is advisory here: open or locked innings can both be scored.
    Scoring innings1 opens a pending innings2; an innings2 start time, when
    given, schedules innings2's lock time with the room lock offset.
    """
    number = parse_innings_number(innings)
    key = innings_key(number)
    score = checked_score(actual_score, settings, label="Actual score")

    inn = match.innings(number)
    if number == 2 and inn.status == "pending":
        raise StateConflictError("Innings 2 is not open yet.", "InningsNotStarted")

    inn.score = score
    inn.status = "scored"

    if match.result is None:
        match.result = {"innings1": None, "innings2": None}
    result = compute_innings_result(score, match.predictions.get(key, {}), players)
    match.result[key] = result

    if number == 1 and match.innings2.status == "pending":
        match.innings2.status = "open"
        start = parse_instant(innings2_start_time)
        if start is not None:
            match.innings2.lock_time = compute_lock_time(start, settings.lock_minutes_before_start)

    logger.debug("Scored innings %s of match %s: %s", number, match.id, score)
    return result


def reopen_innings(match: Match, innings: Any) -> Innings:
    """Back to open from any state; clears this innings' score and stored result only."""
    number = parse_innings_number(innings)
    key = innings_key(number)
    inn = match.innings(number)

    inn.status = "open"
    inn.score = None
    if match.result is not None:
        match.result[key] = None
    return inn


def reopen_match(match: Match) -> Match:
    """Reset the whole match: innings1 open, innings2 pending without lock time, no result."""
    match.innings1.status = "open"
    match.innings1.score = None
    match.innings2.status = "pending"
    match.innings2.score = None
    match.innings2.lock_time = None
    match.result = None
    return match
