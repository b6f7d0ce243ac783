from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from predictor_api.errors import ValidationError
from predictor_api.models import TOSS_DECISIONS, Match, Toss


@dataclass(frozen=True)
class BattingOrder:
    innings1: str
    innings2: str


def resolve_batting_order(match: Match) -> Optional[BattingOrder]:
    """
    Which team bats in which innings, from the toss.

    - bat   -> toss winner bats first
    - field -> toss winner bats second
    None while the toss (or either of its fields) is unset.
    """
    toss = match.toss
    if toss is None or not toss.winner or not toss.decision:
        return None

    other = match.team_b if toss.winner == match.team_a else match.team_a
    if toss.decision == "bat":
        return BattingOrder(innings1=toss.winner, innings2=other)
    if toss.decision == "field":
        return BattingOrder(innings1=other, innings2=toss.winner)
    return None


def set_toss(match: Match, winner: str, decision: str) -> Toss:
    """Admin toss entry. Overwrites any earlier toss."""
    winner = str(winner or "")
    decision = str(decision or "")
    if winner not in (match.team_a, match.team_b):
        raise ValidationError("Toss winner must be Team A or Team B.", "InvalidTossWinner")
    if decision not in TOSS_DECISIONS:
        raise ValidationError("Decision must be bat or field.", "InvalidTossDecision")

    match.toss = Toss(winner=winner, decision=decision)
    return match.toss


_FIELD_RE = re.compile(r"(elected|opted|chose|decided) to (field|bowl)")
_BAT_RE = re.compile(r"(elected|opted|chose|decided) to bat")


def parse_toss_text(text: Optional[str], team_a: str, team_b: str) -> Optional[Toss]:
    """
    Parse feed commentary such as
      "India won the toss and elected to field"
    into a Toss. Needs both a team name and a decision keyword.
    """
    if not text:
        return None
    lower = text.lower()

    winner = None
    for team in (team_a, team_b):
        if team and str(team).lower() in lower:
            winner = team
            break
    if winner is None:
        return None

    if _FIELD_RE.search(lower):
        decision = "field"
    elif _BAT_RE.search(lower):
        decision = "bat"
    else:
        return None

    return Toss(winner=winner, decision=decision)
