from datetime import datetime, timezone

import pytest
import requests

from predictor_api import schedule_feed
from predictor_api.config import FeedConfig
from predictor_api.errors import FeedSyncError
from predictor_api.models import RoomSettings, RoomState, Toss
from predictor_api.schedule_feed import derive_stage, import_schedule, normalize_fixture_row, upsert_schedule

from conftest import NOW

CONFIG = FeedConfig(schedule_feed_url="https://feed.test/schedule.json")

ROWS = [
    {
        "MatchNumber": 1,
        "RoundNumber": 1,
        "DateUtc": "2026-02-07 05:30:00Z",
        "Location": "Colombo",
        "HomeTeam": "Pakistan",
        "AwayTeam": "Netherlands",
        "Group": "Group A",
    },
    {
        "MatchNumber": 55,
        "RoundNumber": 9,
        "DateUtc": "2026-03-08 13:30:00Z",
        "Location": "Ahmedabad",
        "HomeTeam": "TBD",
        "AwayTeam": "TBD",
        "Group": None,
    },
]


class FakeResponse:
    def __init__(self, payload=None, status=200, text=None):
        self._payload = payload
        self.status_code = status
        self.text = text if text is not None else ""

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


@pytest.mark.parametrize(
    "number,group,expected",
    [
        (3, "Group B", "Group Stage"),
        (41, None, "Super 8"),
        (52, None, "Super 8"),
        (53, None, "Semi Final"),
        (54, None, "Semi Final"),
        (55, None, "Final"),
        (None, None, "Knockout"),
    ],
)
def test_derive_stage(number, group, expected):
    assert derive_stage(number, group) == expected


def test_normalize_fixture_row():
    rec = normalize_fixture_row(ROWS[0], 15)
    assert rec.external_id == "fixture_1"
    assert rec.team_a == "Pakistan"
    assert rec.team_b == "Netherlands"
    assert rec.venue == "Colombo"
    assert rec.stage == "Group Stage"
    assert rec.match_date == datetime(2026, 2, 7, 5, 30, tzinfo=timezone.utc)
    assert rec.lock_time == datetime(2026, 2, 7, 5, 15, tzinfo=timezone.utc)


def test_upsert_creates_then_updates_without_touching_play_state():
    matches = []
    first = upsert_schedule(matches, [normalize_fixture_row(r, 15) for r in ROWS])
    assert first == {"created": 2, "updated": 0, "total": 2}
    assert matches[0].innings1.status == "open"
    assert matches[0].innings2.status == "pending"

    matches[0].toss = Toss("Pakistan", "bat")
    matches[0].predictions["innings1"] = {"p1": 170}
    original_id = matches[0].id

    moved = dict(ROWS[0], DateUtc="2026-02-07 09:30:00Z", Location="Kandy")
    second = upsert_schedule(matches, [normalize_fixture_row(moved, 15)])

    assert second == {"created": 0, "updated": 1, "total": 1}
    assert len(matches) == 2
    assert matches[0].id == original_id
    assert matches[0].venue == "Kandy"
    assert matches[0].innings1.lock_time == datetime(2026, 2, 7, 9, 15, tzinfo=timezone.utc)
    assert matches[0].toss == Toss("Pakistan", "bat")
    assert matches[0].predictions["innings1"] == {"p1": 170}


def test_import_schedule_fetches_and_stamps_sync(monkeypatch):
    calls = []

    def fake_get(url, **kwargs):
        calls.append(url)
        return FakeResponse(ROWS)

    monkeypatch.setattr(schedule_feed.requests, "get", fake_get)
    state = RoomState(settings=RoomSettings(lock_minutes_before_start=30))

    summary = import_schedule(state, CONFIG, now=NOW)

    assert summary == {"created": 2, "updated": 0, "total": 2}
    assert calls == ["https://feed.test/schedule.json"]
    assert state.settings.last_schedule_sync == NOW
    assert state.matches[0].innings1.lock_time == datetime(2026, 2, 7, 5, 0, tzinfo=timezone.utc)

    # second import comes from the cache
    import_schedule(state, CONFIG, now=NOW)
    assert len(calls) == 1


def test_network_failure_becomes_feed_sync_error(monkeypatch):
    def boom(url, **kwargs):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(schedule_feed.requests, "get", boom)
    with pytest.raises(FeedSyncError):
        import_schedule(RoomState(), CONFIG, use_cache=False)


@pytest.mark.parametrize("response", [FakeResponse({"not": "a list"}), FakeResponse(None, text="<html>"), FakeResponse([], status=503)])
def test_bad_payloads_become_feed_sync_error(monkeypatch, response):
    monkeypatch.setattr(schedule_feed.requests, "get", lambda url, **kwargs: response)
    state = RoomState()
    with pytest.raises(FeedSyncError):
        import_schedule(state, CONFIG, use_cache=False)
    assert state.matches == []
    assert state.settings.last_schedule_sync is None


def test_missing_url():
    with pytest.raises(FeedSyncError):
        import_schedule(RoomState(), FeedConfig(schedule_feed_url=""))
