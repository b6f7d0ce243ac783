from predictor_api.models import InningsResult, Player
from predictor_api.results import compute_innings_result

PLAYERS = [Player("A", "Asha"), Player("B", "Bilal"), Player("C", "Chen")]


def test_exact_guess_wins_alone():
    result = compute_innings_result(100, {"A": 100, "B": 95, "C": 105}, PLAYERS)
    assert result == InningsResult(winners=["A"], closest_diff=0)


def test_equal_distance_is_a_shared_win():
    result = compute_innings_result(100, {"A": 95, "B": 105}, PLAYERS)
    assert set(result.winners) == {"A", "B"}
    assert result.closest_diff == 5


def test_no_actual_score_means_no_result():
    assert compute_innings_result(None, {"A": 100}, PLAYERS) is None


def test_nobody_predicted():
    result = compute_innings_result(150, {}, PLAYERS)
    assert result.winners == []
    assert result.closest_diff is None


def test_predictions_from_unknown_players_are_ignored():
    result = compute_innings_result(150, {"ghost": 150, "B": 140}, PLAYERS)
    assert result.winners == ["B"]
    assert result.closest_diff == 10
