"""
Bracket state for one participant: group standings, knockout winner picks and
the tiebreaker, plus the derived views shown while predicting.

Resolved slots are never stored; every view is recomputed from the current
predictions.
"""
import logging
from typing import Dict, List, Optional, Tuple

from bracket.fixtures import (DEFAULT_GRAPH, DISPLAY_STAGE_ORDER, STAGE_CONFIG, FixtureGraph,
                              get_stage_label, group_entity, match_entity)
from bracket.invalidation import invalidate_after_change, validate_all
from bracket.models import RANK_KEYS, GroupPrediction, normalize_rank
from bracket.resolver import is_playable, resolve_bracket, resolve_match_slots
from bracket.tiebreaker import MAX_GOALS, MIN_GOALS, parse_tiebreaker_input
from bracket.tournament import DEFAULT_TOURNAMENT, Tournament

logger = logging.getLogger(__name__)


class BracketState:
    def __init__(self, tournament: Tournament = None, graph: FixtureGraph = None,
                 min_goals: int = MIN_GOALS, max_goals: int = MAX_GOALS):
        self.tournament = tournament or DEFAULT_TOURNAMENT
        self.graph = graph or DEFAULT_GRAPH
        self.min_goals = min_goals
        self.max_goals = max_goals
        self.reset()

    def reset(self):
        """Clear every prediction."""
        self.group_predictions: Dict[str, GroupPrediction] = {
            group_id: GroupPrediction(group_id) for group_id in self.tournament.group_ids
        }
        self.knockout_predictions: Dict[str, Optional[str]] = {
            match_id: None for match_id in self.graph.match_ids
        }
        self.total_goals: Optional[int] = None
        # Winner picks cleared by the most recent edit
        self.last_cleared: List[str] = []

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_group_rank(self, group_id: str, rank, team_id: Optional[str]) -> List[str]:
        """
        Put team_id at rank in group_id (None clears the rank).

        The team is removed from any other rank of the same group first.
        Group membership is not checked here. Returns the match ids whose
        winner picks were cleared as a consequence.
        """
        if group_id not in self.group_predictions:
            raise ValueError(f"Unknown group: {group_id}")
        rank_key = normalize_rank(rank)
        self.group_predictions[group_id].assign(rank_key, team_id)
        cleared = invalidate_after_change(group_entity(group_id), self.group_predictions,
                                          self.knockout_predictions, self.graph)
        self.last_cleared = cleared
        if cleared:
            logger.info("Group %s %s -> %s cleared picks for %s", group_id, rank_key, team_id,
                        ', '.join(cleared))
        return cleared

    def set_match_winner(self, match_id: str, team_id: Optional[str]) -> Tuple[bool, Optional[str]]:
        """
        Record the predicted winner of a match. Returns (success, error).

        Only None or one of the match's two currently resolved teams is
        accepted; anything else is rejected and nothing changes.
        """
        if match_id not in self.knockout_predictions:
            raise ValueError(f"Unknown match: {match_id}")
        if team_id is not None and team_id not in self.get_slots(match_id):
            return False, f'Team "{team_id}" is not playing in {match_id}'
        self.last_cleared = []
        if self.knockout_predictions[match_id] == team_id:
            return True, None
        self.knockout_predictions[match_id] = team_id
        cleared = invalidate_after_change(match_entity(match_id), self.group_predictions,
                                          self.knockout_predictions, self.graph)
        self.last_cleared = cleared
        if cleared:
            logger.info("%s -> %s cleared picks for %s", match_id, team_id, ', '.join(cleared))
        return True, None

    def set_tiebreaker(self, raw) -> Tuple[bool, Optional[str]]:
        """Set total goals from user input. Invalid input leaves the tiebreaker unset."""
        value, error = parse_tiebreaker_input(raw, self.min_goals, self.max_goals)
        self.total_goals = value
        return error is None, error

    def revalidate(self) -> List[str]:
        """Clear every winner pick inconsistent with the current slots."""
        return validate_all(self.group_predictions, self.knockout_predictions, self.graph)

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def get_slots(self, match_id: str) -> Tuple[Optional[str], Optional[str]]:
        return resolve_match_slots(match_id, self.group_predictions,
                                   self.knockout_predictions, self.graph)

    def is_playable(self, match_id: str) -> bool:
        return is_playable(self.get_slots(match_id))

    def _team_display(self, team_id: Optional[str]) -> Optional[Dict]:
        team = self.tournament.get_team(team_id)
        if team is None:
            return None
        return {'id': team.id, 'name': team.name, 'code': team.code}

    def _match_view(self, match_id: str, slots) -> Dict:
        fixture = self.graph.get(match_id)
        team1, team2 = slots
        source1, source2 = fixture.source_codes
        return {
            'id': fixture.id,
            'stage': fixture.stage,
            'point_value': fixture.point_value,
            'sources': [source1, source2],
            'teams': [team1, team2],
            'display': [
                self._team_display(team1) or {'placeholder': f'TBD ({source1})'},
                self._team_display(team2) or {'placeholder': f'TBD ({source2})'}
            ],
            'winner': self.knockout_predictions.get(match_id),
            'is_placeholder': team1 is None or team2 is None,
            'is_playable': is_playable(slots)
        }

    def get_match_view(self, match_id: str) -> Dict:
        if match_id not in self.graph:
            raise ValueError(f"Unknown match: {match_id}")
        return self._match_view(match_id, self.get_slots(match_id))

    def get_stage_views(self) -> List[Dict]:
        """Per-stage match lists with resolved teams and completion counts, in display order."""
        resolved = resolve_bracket(self.group_predictions, self.knockout_predictions, self.graph)
        stages = []
        for stage in DISPLAY_STAGE_ORDER:
            fixtures = self.graph.get_by_stage(stage)
            if not fixtures:
                continue
            matches = [self._match_view(fixture.id, resolved[fixture.id]) for fixture in fixtures]
            completed = sum(1 for match in matches if match['winner'] is not None)
            stages.append({
                'stage': stage,
                'label': get_stage_label(stage),
                'short_label': STAGE_CONFIG[stage]['short_label'],
                'point_value': STAGE_CONFIG[stage]['point_value'],
                'matches': matches,
                'completed': completed,
                'total': len(matches),
                'is_complete': completed == len(matches)
            })
        return stages

    def get_group_views(self) -> List[Dict]:
        views = []
        for group in self.tournament.groups:
            prediction = self.group_predictions[group.id]
            views.append({
                'id': group.id,
                'name': group.name,
                'teams': [team.to_dict() for team in group.teams],
                'positions': dict(prediction.positions),
                'filled': prediction.filled_count(),
                'is_complete': prediction.is_complete()
            })
        return views

    def groups_complete(self) -> int:
        return sum(1 for prediction in self.group_predictions.values() if prediction.is_complete())

    def matches_complete(self) -> int:
        return sum(1 for winner in self.knockout_predictions.values() if winner is not None)

    def get_progress(self) -> Dict:
        groups_complete = self.groups_complete()
        matches_complete = self.matches_complete()
        total_groups = len(self.group_predictions)
        total_matches = len(self.knockout_predictions)
        tiebreaker_set = self.total_goals is not None
        return {
            'groups_complete': groups_complete,
            'total_groups': total_groups,
            'matches_complete': matches_complete,
            'total_matches': total_matches,
            'tiebreaker_set': tiebreaker_set,
            'is_groups_complete': groups_complete == total_groups,
            'is_bracket_complete': matches_complete == total_matches,
            'is_complete': (groups_complete == total_groups
                            and matches_complete == total_matches
                            and tiebreaker_set)
        }

    def is_complete(self) -> bool:
        return self.get_progress()['is_complete']

    def get_champion(self) -> Optional[str]:
        final = self.graph.get_by_stage('final')
        if not final:
            return None
        return self.knockout_predictions.get(final[0].id)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict:
        """Serializable form: group -> 4 team ids, match id -> winner id, total goals."""
        return {
            'groups': {
                group_id: prediction.to_list()
                for group_id, prediction in self.group_predictions.items()
            },
            'knockout': dict(self.knockout_predictions),
            'total_goals': self.total_goals
        }

    @classmethod
    def from_dict(cls, data: Dict, tournament: Tournament = None, graph: FixtureGraph = None,
                  min_goals: int = MIN_GOALS, max_goals: int = MAX_GOALS) -> 'BracketState':
        """
        Rebuild a state from to_dict() output.

        Groups may be given as a list in rank order or as a rank -> team
        mapping. Every ranked team must belong to the group and hold a single
        rank, otherwise ValueError is raised. Winner picks that do not fit the
        imported standings are cleared, and an invalid tiebreaker is dropped.
        """
        state = cls(tournament, graph, min_goals, max_goals)
        data = data or {}

        for group_id, positions in (data.get('groups') or {}).items():
            group_id = str(group_id)
            if group_id not in state.group_predictions:
                raise ValueError(f"Unknown group: {group_id}")
            if isinstance(positions, dict):
                prediction = GroupPrediction(group_id, positions)
                team_ids = [team_id for team_id in positions.values() if team_id is not None]
            else:
                positions = list(positions or [])
                if len(positions) > len(RANK_KEYS):
                    raise ValueError(f"Group {group_id} has more than {len(RANK_KEYS)} positions")
                prediction = GroupPrediction(group_id, dict(zip(RANK_KEYS, positions)))
                team_ids = [team_id for team_id in positions if team_id is not None]
            state._check_group_teams(group_id, team_ids)
            state.group_predictions[group_id] = prediction

        for match_id, winner in (data.get('knockout') or {}).items():
            if match_id not in state.knockout_predictions:
                raise ValueError(f"Unknown match: {match_id}")
            state.knockout_predictions[match_id] = winner

        cleared = state.revalidate()
        if cleared:
            logger.warning("Imported bracket had inconsistent picks, cleared %s", ', '.join(cleared))

        state.set_tiebreaker(data.get('total_goals'))
        return state

    def _check_group_teams(self, group_id: str, team_ids: List[str]):
        group = self.tournament.get_group(group_id)
        seen = set()
        for team_id in team_ids:
            if not group.has_team(team_id):
                raise ValueError(f'Team "{team_id}" is not in {group.name}')
            if team_id in seen:
                raise ValueError(f'Team "{team_id}" is ranked more than once in {group.name}')
            seen.add(team_id)

    def __repr__(self):
        progress = self.get_progress()
        return (f"BracketState(groups={progress['groups_complete']}/{progress['total_groups']}, "
                f"matches={progress['matches_complete']}/{progress['total_matches']}, "
                f"total_goals={self.total_goals})")
