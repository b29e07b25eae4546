"""
Slot resolution: which team currently fills each knockout slot.

Resolution never raises for missing or inconsistent predictions; a slot that
cannot be determined resolves to None (unresolved).
"""
from typing import Dict, Optional, Tuple

from bracket.fixtures import DEFAULT_GRAPH, STAGE_ORDER, FixtureGraph
from bracket.models import GroupPrediction, GroupRankSource, MatchLoserSource, MatchWinnerSource


# Loser references only look back one stage at a time
MAX_RESOLVE_DEPTH = len(STAGE_ORDER)

Slots = Tuple[Optional[str], Optional[str]]


def resolve_source(source,
                   group_predictions: Dict[str, GroupPrediction],
                   knockout_predictions: Dict[str, Optional[str]],
                   graph: FixtureGraph = DEFAULT_GRAPH,
                   cache: Optional[Dict[str, Slots]] = None,
                   _depth: int = 0) -> Optional[str]:
    """
    Resolve one source expression to a team id, or None when unresolved.

    `cache` maps match id -> already resolved slots and is consulted for
    loser references before walking back through the graph.
    """
    if isinstance(source, GroupRankSource):
        prediction = group_predictions.get(source.group_id)
        if prediction is None:
            return None
        return prediction.get(source.rank)

    if isinstance(source, MatchWinnerSource):
        return knockout_predictions.get(source.match_id)

    if isinstance(source, MatchLoserSource):
        winner = knockout_predictions.get(source.match_id)
        fixture = graph.get(source.match_id)
        if winner is None or fixture is None or _depth >= MAX_RESOLVE_DEPTH:
            return None
        if cache is not None and source.match_id in cache:
            team1, team2 = cache[source.match_id]
        else:
            team1, team2 = (
                resolve_source(fixture_source, group_predictions, knockout_predictions,
                               graph, cache, _depth + 1)
                for fixture_source in fixture.sources
            )
        if team1 is None or team2 is None:
            return None
        if winner == team1:
            return team2
        if winner == team2:
            return team1
        return None

    return None


def resolve_match_slots(match_id: str,
                        group_predictions: Dict[str, GroupPrediction],
                        knockout_predictions: Dict[str, Optional[str]],
                        graph: FixtureGraph = DEFAULT_GRAPH,
                        cache: Optional[Dict[str, Slots]] = None) -> Slots:
    """Resolve both slots of a match. Unknown match ids resolve to (None, None)."""
    fixture = graph.get(match_id)
    if fixture is None:
        return (None, None)
    team1, team2 = (
        resolve_source(source, group_predictions, knockout_predictions, graph, cache)
        for source in fixture.sources
    )
    return (team1, team2)


def resolve_bracket(group_predictions: Dict[str, GroupPrediction],
                    knockout_predictions: Dict[str, Optional[str]],
                    graph: FixtureGraph = DEFAULT_GRAPH) -> Dict[str, Slots]:
    """
    Resolve every match in one topological pass.

    Each match's slots are stored before any later match reads them, so a
    loser reference is answered from the memo instead of recursing.
    """
    resolved: Dict[str, Slots] = {}
    for match_id in graph.match_ids:
        resolved[match_id] = resolve_match_slots(
            match_id, group_predictions, knockout_predictions, graph, cache=resolved
        )
    return resolved


def is_playable(slots: Slots) -> bool:
    """A match can be picked once both slots hold concrete, distinct teams."""
    team1, team2 = slots
    return team1 is not None and team2 is not None and team1 != team2
