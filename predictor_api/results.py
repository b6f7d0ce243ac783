from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from predictor_api.models import InningsResult, Player


def prediction_diffs(
    actual_score: int,
    predictions: Dict[str, int],
    players: Sequence[Player],
) -> List[tuple]:
    """(player_id, |prediction - actual|) for every room player who predicted, in player order."""
    out: List[tuple] = []
    for p in players:
        guess = predictions.get(p.id)
        if guess is None:
            continue
        out.append((p.id, abs(int(guess) - int(actual_score))))
    return out


def compute_innings_result(
    actual_score: Optional[int],
    predictions: Dict[str, int],
    players: Sequence[Player],
) -> Optional[InningsResult]:
    """
    Nearest-guess winners for one innings.

    - None when the innings has no actual score yet.
    - Ties at the minimum difference are shared wins (all tied players win).
    - Nobody predicted -> winners=[], closest_diff=None.
    """
    if actual_score is None:
        return None

    diffs = prediction_diffs(actual_score, predictions or {}, players)
    if not diffs:
        return InningsResult(winners=[], closest_diff=None)

    closest = min(d for _, d in diffs)
    winners = [pid for pid, d in diffs if d == closest]
    return InningsResult(winners=winners, closest_diff=closest)
