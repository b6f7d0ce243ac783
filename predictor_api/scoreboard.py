# predictor_api/scoreboard.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from predictor_api.models import INNINGS_KEYS, Match, Player
from predictor_api.results import compute_innings_result, prediction_diffs


@dataclass
class PlayerRow:
    player_id: str
    name: str
    wins: int = 0
    exact_hits: int = 0
    points: int = 0
    total_diff: int = 0
    predictions: int = 0

    @property
    def avg_diff(self) -> Optional[float]:
        if not self.predictions:
            return None
        avg = Decimal(self.total_diff) / Decimal(self.predictions)
        return float(avg.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _sort_key(r: PlayerRow) -> Tuple[int, int, float, str, str]:
    """
    1) Points (desc)
    2) Average diff (asc); players with no scored predictions rank after everyone
    3) Name (asc)
    """
    avg = r.avg_diff
    return (-r.points, 1 if avg is None else 0, avg if avg is not None else 0.0, r.name.casefold(), r.name)


def accumulate_innings(
    stats: Dict[str, PlayerRow],
    match: Match,
    key: str,
    players: Sequence[Player],
    bonus_exact: int,
) -> None:
    inn = getattr(match, key)
    if inn.status != "scored" or inn.score is None:
        return

    predictions = match.predictions.get(key) or {}
    result = (match.result or {}).get(key) or compute_innings_result(inn.score, predictions, players)
    winners = set(result.winners) if result else set()

    for pid, diff in prediction_diffs(inn.score, predictions, players):
        row = stats[pid]
        row.total_diff += diff
        row.predictions += 1
        if diff == 0:
            row.exact_hits += 1

        if pid in winners:
            row.wins += 1
            row.points += 1
            if diff == 0 and bonus_exact > 0:
                row.points += bonus_exact


def build_scoreboard(
    matches: Sequence[Match],
    players: Sequence[Player],
    bonus_exact: int = 0,
) -> List[dict]:
    """
    Fold every scored innings of every match into per-player standings.
    Each innings is scored independently: 1 point per (shared) win, plus
    bonus_exact when the winning guess was exact.
    """
    stats: Dict[str, PlayerRow] = {p.id: PlayerRow(player_id=p.id, name=p.name) for p in players}

    for m in matches:
        for key in INNINGS_KEYS:
            accumulate_innings(stats, m, key, players, bonus_exact)

    sorted_rows = sorted(stats.values(), key=_sort_key)

    out: List[dict] = []
    for idx, r in enumerate(sorted_rows, start=1):
        out.append({
            "pos": idx,
            "playerId": r.player_id,
            "name": r.name,
            "wins": r.wins,
            "exactHits": r.exact_hits,
            "points": r.points,
            "totalDiff": r.total_diff,
            "predictions": r.predictions,
            "avgDiff": r.avg_diff,
        })
    return out
