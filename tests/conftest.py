from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from predictor_api import cache
from predictor_api.models import Innings, Match, Player, RoomSettings, Toss

NOW = datetime(2026, 2, 14, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _clear_feed_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def players() -> list[Player]:
    return [
        Player(id="p1", name="Asha"),
        Player(id="p2", name="Bilal"),
        Player(id="p3", name="Chen"),
        Player(id="p4", name="Dev"),
    ]


@pytest.fixture
def settings() -> RoomSettings:
    return RoomSettings(min_score=60, max_score=300, bonus_exact=2, lock_minutes_before_start=15)


def build_match(
    match_id: str = "m1",
    team_a: str = "India",
    team_b: str = "Pakistan",
    toss: Toss | None = Toss(winner="India", decision="bat"),
    innings1: Innings | None = None,
    innings2: Innings | None = None,
) -> Match:
    """A canonical match starting two hours after NOW, innings1 open."""
    start = NOW + timedelta(hours=2)
    return Match(
        id=match_id,
        team_a=team_a,
        team_b=team_b,
        match_date=start,
        toss=toss,
        innings1=innings1 or Innings(status="open", lock_time=start - timedelta(minutes=15)),
        innings2=innings2 or Innings(status="pending"),
    )


@pytest.fixture
def match() -> Match:
    return build_match()
