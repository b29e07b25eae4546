"""
Scoring of predictions against official results.
"""
from typing import Dict, List, Optional

from bracket.fixtures import DEFAULT_GRAPH, FixtureGraph
from bracket.models import RANK_KEYS, normalize_rank


GROUP_RANK_POINTS = {'first': 5, 'second': 3, 'third': 2, 'fourth': 0}


def _positions_from(value) -> Dict[str, Optional[str]]:
    """Accept a list in finishing order or a rank -> team mapping."""
    if value is None:
        return {}
    if isinstance(value, dict):
        return {normalize_rank(rank): team_id for rank, team_id in value.items()}
    return dict(zip(RANK_KEYS, value))


def score_group_predictions(predicted: Dict, official: Dict) -> int:
    """
    Points for group standings.

    Both arguments map group id -> finishing order (list or rank mapping).
    A rank scores when the predicted team is the team that actually finished
    there. Groups without official standings score nothing.
    """
    points = 0
    for group_id, official_order in (official or {}).items():
        actual = _positions_from(official_order)
        guessed = _positions_from((predicted or {}).get(group_id))
        for rank_key, team_id in actual.items():
            if team_id is not None and guessed.get(rank_key) == team_id:
                points += GROUP_RANK_POINTS[rank_key]
    return points


def score_knockout_predictions(predicted: Dict[str, Optional[str]],
                               official: Dict[str, Optional[str]],
                               graph: FixtureGraph = DEFAULT_GRAPH) -> int:
    """Fixture point value for every match whose predicted winner actually won."""
    points = 0
    for match_id, winner in (official or {}).items():
        fixture = graph.get(match_id)
        if fixture is None or winner is None:
            continue
        if (predicted or {}).get(match_id) == winner:
            points += fixture.point_value
    return points


def score_predictions(predictions: Dict, results: Dict, graph: FixtureGraph = DEFAULT_GRAPH) -> Dict:
    """
    Score a serialized bracket (BracketState.to_dict() shape) against results
    of the same shape. Returns group, knockout and total points.
    """
    predictions = predictions or {}
    results = results or {}
    group_points = score_group_predictions(predictions.get('groups'), results.get('groups'))
    knockout_points = score_knockout_predictions(predictions.get('knockout'),
                                                 results.get('knockout'), graph)
    return {
        'group_points': group_points,
        'knockout_points': knockout_points,
        'points': group_points + knockout_points
    }


def max_group_points(num_groups: int) -> int:
    return num_groups * sum(GROUP_RANK_POINTS.values())


def max_points(num_groups: int, graph: FixtureGraph = DEFAULT_GRAPH) -> Dict:
    group_max = max_group_points(num_groups)
    knockout_max = graph.total_points()
    return {
        'max_group_points': group_max,
        'max_knockout_points': knockout_max,
        'max_total_points': group_max + knockout_max
    }


def tiebreaker_distance(predicted_goals: Optional[int], actual_goals: Optional[int]) -> Optional[int]:
    """How far a total-goals guess is from the actual total. None when either is unknown."""
    if predicted_goals is None or actual_goals is None:
        return None
    return abs(predicted_goals - actual_goals)


def count_correct_picks(predicted: Dict[str, Optional[str]], official: Dict[str, Optional[str]]) -> List[str]:
    """Match ids whose winner was predicted correctly."""
    return [
        match_id for match_id, winner in (official or {}).items()
        if winner is not None and (predicted or {}).get(match_id) == winner
    ]
