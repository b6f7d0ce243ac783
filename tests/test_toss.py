import pytest

from predictor_api.errors import ValidationError
from predictor_api.models import Toss
from predictor_api.toss import BattingOrder, parse_toss_text, resolve_batting_order, set_toss

from conftest import build_match


def test_winner_fielding_bats_second():
    match = build_match(toss=Toss(winner="India", decision="field"))
    assert resolve_batting_order(match) == BattingOrder(innings1="Pakistan", innings2="India")


def test_winner_batting_bats_first():
    match = build_match(toss=Toss(winner="India", decision="bat"))
    assert resolve_batting_order(match) == BattingOrder(innings1="India", innings2="Pakistan")


def test_team_b_winner_resolves_other_team():
    match = build_match(toss=Toss(winner="Pakistan", decision="bat"))
    assert resolve_batting_order(match) == BattingOrder(innings1="Pakistan", innings2="India")


def test_no_toss_no_batting_order():
    assert resolve_batting_order(build_match(toss=None)) is None


def test_set_toss_overwrites():
    match = build_match()
    set_toss(match, "Pakistan", "field")
    assert match.toss == Toss(winner="Pakistan", decision="field")


@pytest.mark.parametrize("winner,decision", [("Australia", "bat"), ("India", "bowl"), ("", "")])
def test_set_toss_rejects_bad_input(winner, decision):
    match = build_match()
    with pytest.raises(ValidationError):
        set_toss(match, winner, decision)
    assert match.toss == Toss(winner="India", decision="bat")


@pytest.mark.parametrize(
    "text,expected",
    [
        ("India won the toss and elected to bat", Toss("India", "bat")),
        ("Pakistan won the toss and opted to bowl", Toss("Pakistan", "field")),
        ("PAKISTAN chose to field first", Toss("Pakistan", "field")),
        ("India won the toss", None),
        ("Rain delays the toss", None),
        (None, None),
    ],
)
def test_parse_toss_text(text, expected):
    assert parse_toss_text(text, "India", "Pakistan") == expected
