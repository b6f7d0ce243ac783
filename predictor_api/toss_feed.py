# predictor_api/toss_feed.py
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import requests
from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup

from predictor_api.cache import get as cache_get, set as cache_set, make_key as cache_key
from predictor_api.config import FeedConfig
from predictor_api.errors import FeedSyncError
from predictor_api.models import Match, RoomState, utc_now
from predictor_api.toss import parse_toss_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TossCandidate:
    id: Optional[str]
    local_team: Optional[str]
    visitor_team: Optional[str]
    date: Optional[str]  # dd.mm.yyyy
    time: Optional[str]  # HH:MM (UTC)
    toss_text: Optional[str]


def normalize_team_name(name: Optional[str]) -> str:
    """"Sri Lanka" / "SRI-LANKA" / "sri lanka " -> "srilanka"."""
    return re.sub(r"[^a-z0-9]", "", str(name or "").lower())


def parse_feed_datetime(date_str: Optional[str], time_str: Optional[str]) -> Optional[datetime]:
    """Goalserve dates: "14.02.2026" + optional "13:30", read as UTC."""
    if not date_str:
        return None
    try:
        day, month, year = (int(x) for x in str(date_str).strip().split("."))
    except ValueError:
        return None

    hour = minute = 0
    if time_str:
        parts = str(time_str).strip().split(":")
        try:
            hour = int(parts[0])
            minute = int(parts[1]) if len(parts) > 1 else 0
        except ValueError:
            hour = minute = 0

    try:
        return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
    except ValueError:
        return None


# -----------------------------
# Payload parsing
# -----------------------------
def parse_feed_payload(raw: str) -> Any:
    """JSON bodies -> decoded object; anything else is read as XML into a soup."""
    text = (raw or "").strip()
    if not text:
        raise FeedSyncError("Toss feed returned an empty body.")

    if text.startswith("{") or text.startswith("["):
        try:
            return json.loads(text)
        except ValueError as e:
            raise FeedSyncError(f"Invalid toss feed JSON: {e}") from e

    try:
        soup = BeautifulSoup(text, "xml")
    except ParserRejectedMarkup as e:
        raise FeedSyncError(f"Invalid toss feed XML: {e}") from e
    if soup.find() is None:
        raise FeedSyncError("Toss feed is neither JSON nor XML.")
    return soup


def _as_list(x: Any) -> List[Any]:
    if isinstance(x, list):
        return x
    if x:
        return [x]
    return []


def _get(d: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(d, dict):
            return None
        d = d.get(key)
    return d


def _first(*values: Any) -> Optional[str]:
    for v in values:
        if v is not None and not isinstance(v, (dict, list)) and str(v).strip():
            return str(v).strip()
    return None


def _attr(tag: Any, name: str) -> Optional[str]:
    return tag.get(name) if tag is not None else None


def _candidates_from_xml(soup: BeautifulSoup) -> List[TossCandidate]:
    out: List[TossCandidate] = []
    for m in soup.find_all("match"):
        toss_info = next(
            (i for i in m.find_all("info") if str(i.get("name") or "").lower() == "toss"),
            None,
        )
        local = m.find("localteam") or m.find("home")
        visitor = m.find("visitorteam") or m.find("away")
        out.append(
            TossCandidate(
                id=_first(m.get("id"), m.get("match_id")),
                local_team=_first(_attr(local, "name")),
                visitor_team=_first(_attr(visitor, "name")),
                date=_first(m.get("date")),
                time=_first(m.get("time")),
                toss_text=_first(_attr(toss_info, "value"), _attr(m.find("comment"), "post")),
            )
        )
    return out


def extract_toss_candidates(payload: Any) -> List[TossCandidate]:
    """
    Walk the Goalserve shape:
      scores -> category[] -> match[] -> matchinfo -> info[] (name="toss")
    Falls back to the match's post-match comment for the toss text.
    """
    if isinstance(payload, BeautifulSoup):
        return _candidates_from_xml(payload)

    container = payload
    if isinstance(payload, dict):
        container = (
            payload.get("scores")
            or payload.get("fixtures")
            or payload.get("category")
            or payload.get("data")
            or payload
        )

    if isinstance(container, dict) and container.get("category"):
        categories = _as_list(container.get("category"))
    elif isinstance(container, list):
        categories = container
    else:
        categories = []

    out: List[TossCandidate] = []
    for category in categories:
        if not isinstance(category, dict):
            continue
        for m in _as_list(category.get("match")):
            if not isinstance(m, dict):
                continue

            toss_info = None
            for info in _as_list(_get(m, "matchinfo", "info")):
                if isinstance(info, dict) and str(info.get("name") or "").lower() == "toss":
                    toss_info = info
                    break

            out.append(
                TossCandidate(
                    id=_first(m.get("id"), m.get("match_id"), m.get("mid")),
                    date=_first(m.get("date")),
                    time=_first(m.get("time")),
                    local_team=_first(
                        _get(m, "localteam", "name"),
                        _get(m, "home", "name"),
                        m.get("hometeam"),
                    ),
                    visitor_team=_first(
                        _get(m, "visitorteam", "name"),
                        _get(m, "away", "name"),
                        m.get("awayteam"),
                    ),
                    toss_text=_first(_get(toss_info, "value"), _get(m, "comment", "post")),
                )
            )
    return out


def fetch_toss_candidates(config: FeedConfig, *, use_cache: bool = True) -> List[TossCandidate]:
    url = config.toss_feed_url
    if not url:
        raise FeedSyncError("GOALSERVE_TOSS_FEED_URL not configured.")

    ckey = cache_key("toss-feed", url)
    raw = cache_get(ckey) if use_cache else None
    if raw is None:
        try:
            r = requests.get(url, timeout=config.http_timeout_seconds, allow_redirects=True)
            r.raise_for_status()
        except requests.RequestException as e:
            raise FeedSyncError(f"Toss feed fetch failed: {e}") from e
        raw = r.text
        cache_set(ckey, raw, config.toss_cache_ttl_seconds)

    return extract_toss_candidates(parse_feed_payload(raw))


# -----------------------------
# Correlation
# -----------------------------
def pending_toss_matches(matches: Sequence[Match], now: datetime, window_minutes: int) -> List[Match]:
    """Matches without a toss whose start is unknown or within the window around now."""
    window = timedelta(minutes=window_minutes)
    out: List[Match] = []
    for m in matches:
        if m.toss is not None:
            continue
        if m.match_date is None or abs(m.match_date - now) <= window:
            out.append(m)
    return out


def _correlates(match: Match, item: TossCandidate) -> bool:
    if match.goalserve_match_id and item.id and str(item.id) == str(match.goalserve_match_id):
        return True

    local_key = normalize_team_name(item.local_team)
    visitor_key = normalize_team_name(item.visitor_team)
    if not local_key or not visitor_key:
        return False

    a_key = normalize_team_name(match.team_a)
    b_key = normalize_team_name(match.team_b)
    if {local_key, visitor_key} != {a_key, b_key} or local_key == visitor_key:
        return False

    if match.match_date is None:
        return True
    feed_date = parse_feed_datetime(item.date, item.time)
    if feed_date is None:
        return True
    return feed_date.date() == match.match_date.date()


def apply_toss_candidates(matches: Sequence[Match], candidates: Sequence[TossCandidate]) -> int:
    """Set toss on every match a candidate correlates with. Returns the number updated."""
    updated = 0
    for match in matches:
        item = next((c for c in candidates if _correlates(match, c)), None)
        if item is None or not item.toss_text:
            continue
        toss = parse_toss_text(item.toss_text, match.team_a, match.team_b)
        if toss is None:
            continue

        match.toss = toss
        match.goalserve_match_id = item.id
        updated += 1
        logger.info("Toss for %s vs %s from feed: %s chose to %s", match.team_a, match.team_b, toss.winner, toss.decision)
    return updated


def begin_toss_sync(
    state: RoomState,
    config: FeedConfig,
    *,
    force: bool = False,
    now: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    """
    Decide whether a feed fetch should happen. Returns a skip summary, or
    None when the caller should fetch.

    Skips when no feed URL is configured, auto sync is off, the last
    attempt is inside the sync interval (unless forced), or no match
    lacks a toss inside the window. The attempt time is stamped before
    the fetch, so a failing feed is throttled like a working one.
    """
    now = now or utc_now()
    settings = state.settings

    if not config.toss_feed_url:
        return {"skipped": True, "reason": "GOALSERVE_TOSS_FEED_URL not configured."}
    if not settings.toss_auto_enabled and not force:
        return {"skipped": True, "reason": "Toss auto sync disabled."}
    if not force and settings.last_toss_sync is not None:
        if now - settings.last_toss_sync < timedelta(seconds=config.toss_sync_interval_seconds):
            return {"skipped": True, "reason": "Throttled."}

    settings.last_toss_sync = now
    if not pending_toss_matches(state.matches, now, config.toss_sync_window_minutes):
        return {"skipped": True, "reason": "No pending matches in window."}
    return None


def finish_toss_sync(
    state: RoomState,
    config: FeedConfig,
    feed_items: Sequence[TossCandidate],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Apply fetched candidates to the matches still pending in the window."""
    now = now or utc_now()
    candidates = pending_toss_matches(state.matches, now, config.toss_sync_window_minutes)
    updated = apply_toss_candidates(candidates, feed_items)
    return {"updated": updated, "checked": len(candidates)}


def sync_toss(
    state: RoomState,
    config: FeedConfig,
    *,
    force: bool = False,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Begin, fetch and finish against one in-memory state.
    Raises FeedSyncError on fetch/parse failure.
    """
    now = now or utc_now()
    skipped = begin_toss_sync(state, config, force=force, now=now)
    if skipped is not None:
        return skipped
    feed_items = fetch_toss_candidates(config, use_cache=not force)
    return finish_toss_sync(state, config, feed_items, now)
