# predictor_api/schedule_feed.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import requests

from predictor_api.cache import get as cache_get, set as cache_set, make_key as cache_key
from predictor_api.config import FeedConfig
from predictor_api.errors import FeedSyncError
from predictor_api.models import Innings, Match, RoomState, make_id, parse_instant, utc_now
from predictor_api.normalizer import compute_lock_time

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; T20-Predictor/1.0)",
    "Accept": "application/json,*/*;q=0.8",
}


@dataclass(frozen=True)
class ScheduleRecord:
    external_id: str
    team_a: str
    team_b: str
    venue: str
    group: Optional[str]
    stage: str
    match_number: Optional[int]
    round_number: Optional[int]
    match_date: Optional[datetime]
    lock_time: Optional[datetime]


def _safe_int(x: Any) -> Optional[int]:
    try:
        if x is None or str(x).strip() == "":
            return None
        return int(float(str(x).strip()))
    except (TypeError, ValueError):
        return None


def derive_stage(match_number: Optional[int], group: Optional[str]) -> str:
    """T20 World Cup numbering: groups, then Super 8 (41-52), semis (53-54), final (55)."""
    if group:
        return "Group Stage"
    if match_number is not None:
        if 41 <= match_number <= 52:
            return "Super 8"
        if 53 <= match_number <= 54:
            return "Semi Final"
        if match_number == 55:
            return "Final"
    return "Knockout"


def normalize_fixture_row(row: Dict[str, Any], lock_minutes: int) -> ScheduleRecord:
    """
    fixturedownload.com row ->
      MatchNumber, RoundNumber, DateUtc ("2026-02-07 05:30:00Z"),
      HomeTeam, AwayTeam, Location, Group
    """
    match_number = _safe_int(row.get("MatchNumber"))
    group = str(row["Group"]) if row.get("Group") else None
    match_date = parse_instant(row.get("DateUtc"))

    return ScheduleRecord(
        external_id=f"fixture_{match_number}",
        team_a=str(row.get("HomeTeam") or "TBD"),
        team_b=str(row.get("AwayTeam") or "TBD"),
        venue=str(row.get("Location") or "TBD"),
        group=group,
        stage=derive_stage(match_number, group),
        match_number=match_number,
        round_number=_safe_int(row.get("RoundNumber")),
        match_date=match_date,
        lock_time=compute_lock_time(match_date, lock_minutes),
    )


def fetch_schedule(config: FeedConfig, *, use_cache: bool = True) -> List[Dict[str, Any]]:
    """Download the schedule feed (a JSON list of fixture rows)."""
    url = config.schedule_feed_url
    if not url:
        raise FeedSyncError("SCHEDULE_FEED_URL not configured.")

    ckey = cache_key("schedule-feed", url)
    if use_cache:
        cached = cache_get(ckey)
        if cached is not None:
            return cached

    try:
        r = requests.get(url, timeout=config.http_timeout_seconds, headers=HEADERS, allow_redirects=True)
        r.raise_for_status()
    except requests.RequestException as e:
        raise FeedSyncError(f"Schedule fetch failed: {e}") from e

    try:
        data = r.json()
    except ValueError as e:
        raise FeedSyncError("Expected JSON but received non-JSON response.") from e

    if not isinstance(data, list):
        raise FeedSyncError("Schedule format is invalid.")

    if use_cache:
        cache_set(ckey, data, config.schedule_cache_ttl_seconds)
    return data


def upsert_schedule(matches: List[Match], records: Sequence[ScheduleRecord]) -> Dict[str, int]:
    """
    Idempotent upsert by external id. Existing matches keep toss,
    predictions, scores and results; only fixture details and the innings1
    lock time are refreshed.
    """
    existing_by_external = {m.external_id: m for m in matches if m.external_id}

    created = 0
    updated = 0
    for rec in records:
        existing = existing_by_external.get(rec.external_id)
        if existing is not None:
            existing.team_a = rec.team_a
            existing.team_b = rec.team_b
            existing.venue = rec.venue
            existing.group = rec.group
            existing.stage = rec.stage
            existing.match_date = rec.match_date
            existing.innings1.lock_time = rec.lock_time
            existing.match_number = rec.match_number
            existing.round_number = rec.round_number
            updated += 1
            continue

        match = Match(
            id=make_id("match"),
            team_a=rec.team_a,
            team_b=rec.team_b,
            external_id=rec.external_id,
            venue=rec.venue,
            group=rec.group,
            stage=rec.stage,
            match_number=rec.match_number,
            round_number=rec.round_number,
            match_date=rec.match_date,
            innings1=Innings(status="open", lock_time=rec.lock_time),
            innings2=Innings(status="pending"),
        )
        matches.append(match)
        existing_by_external[rec.external_id] = match
        created += 1

    return {"created": created, "updated": updated, "total": len(records)}


def apply_schedule_rows(
    state: RoomState,
    rows: Sequence[Any],
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    records = [
        normalize_fixture_row(row, state.settings.lock_minutes_before_start)
        for row in rows
        if isinstance(row, dict)
    ]
    summary = upsert_schedule(state.matches, records)
    summary["total"] = len(rows)
    state.settings.last_schedule_sync = now or utc_now()

    logger.info(
        "Schedule import: created=%s updated=%s total=%s",
        summary["created"], summary["updated"], summary["total"],
    )
    return summary


def import_schedule(
    state: RoomState,
    config: FeedConfig,
    *,
    use_cache: bool = True,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    rows = fetch_schedule(config, use_cache=use_cache)
    return apply_schedule_rows(state, rows, now)
