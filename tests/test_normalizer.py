from datetime import datetime, timedelta, timezone

from predictor_api.models import Innings, InningsResult, Toss
from predictor_api.normalizer import apply_auto_lock, compute_lock_time, is_innings_locked, normalize_match

from conftest import NOW, build_match


def test_legacy_single_innings_record(players):
    legacy = {
        "id": "old1",
        "teamA": "India",
        "teamB": "Pakistan",
        "status": "scored",
        "lockTime": "2026-02-01T10:00:00.000Z",
        "actualScore": 160,
        "predictions": {"p1": 150, "p2": 170},
    }

    m = normalize_match(legacy, 15, players=players, now=NOW)

    assert m.id == "old1"
    assert m.innings1 == Innings(status="scored", lock_time=datetime(2026, 2, 1, 10, 0, tzinfo=timezone.utc), score=160)
    assert m.predictions == {"innings1": {"p1": 150, "p2": 170}, "innings2": {}}
    assert m.toss is None
    # innings1 scored -> innings2 opens
    assert m.innings2.status == "open"
    assert m.result["innings1"] == InningsResult(winners=["p1", "p2"], closest_diff=10)


def test_legacy_lock_time_derived_from_match_date():
    m = normalize_match(
        {"id": "old2", "teamA": "A", "teamB": "B", "matchDate": "2026-03-01T14:00:00Z"},
        20,
        now=NOW,
    )
    assert m.innings1.status == "open"
    assert m.innings1.lock_time == datetime(2026, 3, 1, 13, 40, tzinfo=timezone.utc)
    assert m.innings2.status == "pending"


def test_missing_everything_gets_defaults():
    m = normalize_match({}, 15, now=NOW)
    assert m.id.startswith("match_")
    assert m.team_a == "TBD"
    assert m.innings1.status == "open"
    assert m.innings2.status == "pending"
    assert m.predictions == {"innings1": {}, "innings2": {}}
    assert m.result is None


def test_malformed_values_are_coerced():
    raw = {
        "id": "bad",
        "teamA": "India",
        "teamB": "Pakistan",
        "toss": {"winner": "Australia", "decision": "bat"},
        "innings1": {"status": "weird", "lockTime": "not a date", "score": "n/a"},
        "innings2": {"status": "scored", "score": None},
        "predictions": {"innings1": {"p1": "150", "p2": "abc"}, "innings2": None},
    }
    m = normalize_match(raw, 15, now=NOW)

    assert m.toss is None
    assert m.innings1 == Innings(status="open", lock_time=None, score=None)
    assert m.innings2.status == "locked"
    assert m.predictions == {"innings1": {"p1": 150}, "innings2": {}}


def test_bad_toss_decision_is_dropped():
    m = normalize_match({"teamA": "India", "teamB": "Pakistan", "toss": {"winner": "India", "decision": "bowl"}}, now=NOW)
    assert m.toss is None


def test_innings2_promoted_when_innings1_scored():
    raw = build_match(innings1=Innings(status="scored", score=150)).to_dict()
    assert raw["innings2"]["status"] == "pending"
    assert normalize_match(raw, 15, now=NOW).innings2.status == "open"


def test_auto_lock_past_lock_time():
    match = build_match(innings1=Innings(status="open", lock_time=NOW - timedelta(minutes=1)))
    m = normalize_match(match, 15, now=NOW)
    assert m.innings1.status == "locked"


def test_future_lock_time_stays_open(match):
    assert normalize_match(match, 15, now=NOW).innings1.status == "open"


def test_canonical_match_round_trips_unchanged(players):
    match = build_match(
        innings1=Innings(status="scored", lock_time=NOW - timedelta(hours=3), score=171),
        innings2=Innings(status="open", lock_time=NOW + timedelta(hours=1)),
    )
    match.external_id = "fixture_12"
    match.goalserve_match_id = "gs-99"
    match.venue = "Colombo"
    match.group = "A"
    match.stage = "Group Stage"
    match.match_number = 12
    match.round_number = 2
    match.predictions = {"innings1": {"p1": 170, "p2": 180}, "innings2": {"p3": 160}}
    match.result = {"innings1": InningsResult(winners=["p1"], closest_diff=1), "innings2": None}

    once = normalize_match(match, 15, players=players, now=NOW)
    twice = normalize_match(once, 15, players=players, now=NOW)

    assert once == match
    assert twice == once
    assert normalize_match(once.to_dict(), 15, players=players, now=NOW) == once


def test_only_time_changes_the_normalized_record(match):
    early = normalize_match(match, 15, now=NOW)
    late = normalize_match(match, 15, now=NOW + timedelta(hours=5))
    assert early.innings1.status == "open"
    assert late.innings1.status == "locked"
    late.innings1.status = "open"
    assert late == early


def test_apply_auto_lock_reports_changes(match):
    assert apply_auto_lock(match, NOW) is False
    assert apply_auto_lock(match, NOW + timedelta(hours=3)) is True
    assert match.innings1.status == "locked"
    assert match.innings2.status == "pending"


def test_is_innings_locked():
    assert is_innings_locked(None, NOW)
    assert is_innings_locked(Innings(status="scored", score=1), NOW)
    assert not is_innings_locked(Innings(status="open"), NOW)
    assert not is_innings_locked(Innings(status="pending"), NOW)
    assert is_innings_locked(Innings(status="open", lock_time=NOW), NOW)


def test_compute_lock_time():
    start = datetime(2026, 2, 14, 13, 30, tzinfo=timezone.utc)
    assert compute_lock_time(start, 15) == datetime(2026, 2, 14, 13, 15, tzinfo=timezone.utc)
    assert compute_lock_time(start, "x") == start
    assert compute_lock_time(None, 15) is None


def test_toss_survives_normalization(match):
    assert normalize_match(match, 15, now=NOW).toss == Toss("India", "bat")
