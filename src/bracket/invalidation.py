"""
Invalidation of winner picks that no longer match their resolved slots.

After any edit, every stored winner must be one of its match's two resolved
slots. Dependents of the edited group or match are revisited in topological
order; a pick that fails the check is cleared, and since every match that
reads the cleared one is also a dependent and comes later in the order, one
pass reaches the fixpoint.
"""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from bracket.fixtures import DEFAULT_GRAPH, FixtureGraph
from bracket.models import GroupPrediction
from bracket.resolver import resolve_match_slots

logger = logging.getLogger(__name__)


def winner_is_valid(winner: Optional[str], slots: Tuple[Optional[str], Optional[str]]) -> bool:
    return winner is None or winner in slots


def revalidate_matches(match_ids: Iterable[str],
                       group_predictions: Dict[str, GroupPrediction],
                       knockout_predictions: Dict[str, Optional[str]],
                       graph: FixtureGraph = DEFAULT_GRAPH) -> List[str]:
    """
    Clear invalid winner picks among match_ids, cascading downstream.

    Mutates knockout_predictions in place and returns the cleared match ids
    in the order they were cleared.
    """
    pending = set(match_ids)
    cleared = []
    for match_id in graph.match_ids:
        if match_id not in pending:
            continue
        winner = knockout_predictions.get(match_id)
        if winner is None:
            continue
        slots = resolve_match_slots(match_id, group_predictions, knockout_predictions, graph)
        if winner_is_valid(winner, slots):
            continue
        logger.debug("Clearing %s winner %s, slots are now %s", match_id, winner, slots)
        knockout_predictions[match_id] = None
        cleared.append(match_id)
        # Downstream matches may sit outside the requested subset
        pending.update(graph.dependents(('match', match_id)))
    return cleared


def invalidate_after_change(entity: Tuple[str, str],
                            group_predictions: Dict[str, GroupPrediction],
                            knockout_predictions: Dict[str, Optional[str]],
                            graph: FixtureGraph = DEFAULT_GRAPH) -> List[str]:
    """Revalidate every match that depends on the changed group or match."""
    return revalidate_matches(graph.dependents(entity), group_predictions,
                              knockout_predictions, graph)


def validate_all(group_predictions: Dict[str, GroupPrediction],
                 knockout_predictions: Dict[str, Optional[str]],
                 graph: FixtureGraph = DEFAULT_GRAPH) -> List[str]:
    """Revalidate the whole bracket. Running it twice in a row clears nothing the second time."""
    return revalidate_matches(graph.match_ids, group_predictions, knockout_predictions, graph)


def find_invalid_picks(group_predictions: Dict[str, GroupPrediction],
                       knockout_predictions: Dict[str, Optional[str]],
                       graph: FixtureGraph = DEFAULT_GRAPH) -> List[str]:
    """Match ids whose stored winner is not one of their resolved slots (read-only check)."""
    invalid = []
    for match_id in graph.match_ids:
        winner = knockout_predictions.get(match_id)
        slots = resolve_match_slots(match_id, group_predictions, knockout_predictions, graph)
        if not winner_is_valid(winner, slots):
            invalid.append(match_id)
    return invalid
