"""
Knockout fixture graph: the 32 matches, their stages, point values and slot sources.

Round of 32 slots come from group standings; every later slot is the winner
(or, for the third place match, the loser) of a match in an earlier stage.
"""
from typing import Dict, Iterable, List, Optional, Set, Tuple

from bracket.models import GroupRankSource, MatchFixture, MatchLoserSource, MatchWinnerSource
from bracket.tournament import GROUP_IDS


STAGE_CONFIG = {
    'round_of_32': {'label': 'Round of 32', 'short_label': 'R32', 'point_value': 2},
    'round_of_16': {'label': 'Round of 16', 'short_label': 'R16', 'point_value': 4},
    'quarter_finals': {'label': 'Quarter-finals', 'short_label': 'QF', 'point_value': 8},
    'semi_finals': {'label': 'Semi-finals', 'short_label': 'SF', 'point_value': 15},
    'third_place': {'label': 'Third Place', 'short_label': '3rd', 'point_value': 10},
    'final': {'label': 'Final', 'short_label': 'Final', 'point_value': 25},
}

# Topological order: a stage only references stages with a lower rank.
# Third place and final share a rank; neither feeds the other.
STAGE_RANK = {
    'round_of_32': 0,
    'round_of_16': 1,
    'quarter_finals': 2,
    'semi_finals': 3,
    'third_place': 4,
    'final': 4,
}
STAGE_ORDER = ['round_of_32', 'round_of_16', 'quarter_finals', 'semi_finals', 'third_place', 'final']
DISPLAY_STAGE_ORDER = ['round_of_32', 'round_of_16', 'quarter_finals', 'semi_finals', 'final', 'third_place']

# (match id, stage, slot 1 source, slot 2 source)
KNOCKOUT_MATCHES = [
    ('M1', 'round_of_32', '1A', '2B'),
    ('M2', 'round_of_32', '1C', '2D'),
    ('M3', 'round_of_32', '1E', '2F'),
    ('M4', 'round_of_32', '1G', '2H'),
    ('M5', 'round_of_32', '1I', '2J'),
    ('M6', 'round_of_32', '1K', '2L'),
    ('M7', 'round_of_32', '1B', '2A'),
    ('M8', 'round_of_32', '1D', '2C'),
    ('M9', 'round_of_32', '1F', '2E'),
    ('M10', 'round_of_32', '1H', '2G'),
    ('M11', 'round_of_32', '1J', '2I'),
    ('M12', 'round_of_32', '1L', '2K'),
    ('M13', 'round_of_32', '3A', '3B'),
    ('M14', 'round_of_32', '3C', '3D'),
    ('M15', 'round_of_32', '3E', '3F'),
    ('M16', 'round_of_32', '3G', '3H'),
    ('M17', 'round_of_16', 'M1', 'M2'),
    ('M18', 'round_of_16', 'M3', 'M4'),
    ('M19', 'round_of_16', 'M5', 'M6'),
    ('M20', 'round_of_16', 'M7', 'M8'),
    ('M21', 'round_of_16', 'M9', 'M10'),
    ('M22', 'round_of_16', 'M11', 'M12'),
    ('M23', 'round_of_16', 'M13', 'M14'),
    ('M24', 'round_of_16', 'M15', 'M16'),
    ('M25', 'quarter_finals', 'M17', 'M18'),
    ('M26', 'quarter_finals', 'M19', 'M20'),
    ('M27', 'quarter_finals', 'M21', 'M22'),
    ('M28', 'quarter_finals', 'M23', 'M24'),
    ('M29', 'semi_finals', 'M25', 'M26'),
    ('M30', 'semi_finals', 'M27', 'M28'),
    ('M31', 'third_place', 'L-M29', 'L-M30'),
    ('M32', 'final', 'M29', 'M30'),
]


def get_stage_label(stage: str) -> str:
    return STAGE_CONFIG[stage]['label']


def group_entity(group_id: str) -> Tuple[str, str]:
    """Dependency-index key for a group."""
    return ('group', group_id)


def match_entity(match_id: str) -> Tuple[str, str]:
    """Dependency-index key for a match."""
    return ('match', match_id)


def _source_entity(source) -> Tuple[str, str]:
    if isinstance(source, GroupRankSource):
        return group_entity(source.group_id)
    return match_entity(source.match_id)


def validate_fixtures(fixtures: List[MatchFixture], group_ids: Iterable[str] = GROUP_IDS) -> None:
    """
    Check the structural invariants of a fixture list.

    Raises ValueError when ids repeat, a stage is unknown, a group reference
    names an unknown group or a rank outside 1-3, or a match reference does
    not point at a fixture in a strictly earlier stage. The last rule makes
    the graph acyclic.
    """
    known_groups = set(group_ids)
    by_id = {}
    for fixture in fixtures:
        if fixture.id in by_id:
            raise ValueError(f"Duplicate fixture id: {fixture.id}")
        if fixture.stage not in STAGE_RANK:
            raise ValueError(f"Unknown stage for {fixture.id}: {fixture.stage}")
        by_id[fixture.id] = fixture

    for fixture in fixtures:
        for source in fixture.sources:
            if isinstance(source, GroupRankSource):
                if source.group_id not in known_groups:
                    raise ValueError(f"{fixture.id} references unknown group {source.group_id}")
                if source.rank not in (1, 2, 3):
                    raise ValueError(f"{fixture.id} references invalid rank {source.rank}")
            elif isinstance(source, (MatchWinnerSource, MatchLoserSource)):
                upstream = by_id.get(source.match_id)
                if upstream is None:
                    raise ValueError(f"{fixture.id} references unknown match {source.match_id}")
                if STAGE_RANK[upstream.stage] >= STAGE_RANK[fixture.stage]:
                    raise ValueError(
                        f"{fixture.id} ({fixture.stage}) references {upstream.id} "
                        f"({upstream.stage}) which is not in an earlier stage"
                    )
            else:
                raise ValueError(f"{fixture.id} has an unsupported source: {source!r}")


class FixtureGraph:
    """Lookup and dependency views over a validated list of fixtures."""

    def __init__(self, fixtures: List[MatchFixture], group_ids: Iterable[str] = GROUP_IDS):
        validate_fixtures(fixtures, group_ids)
        self.fixtures = sorted(fixtures, key=lambda f: (STAGE_RANK[f.stage], f.number))
        self._by_id = {fixture.id: fixture for fixture in self.fixtures}
        self._position = {fixture.id: index for index, fixture in enumerate(self.fixtures)}

        # entity -> match ids that read it directly
        self._direct_dependents: Dict[Tuple[str, str], List[str]] = {}
        for fixture in self.fixtures:
            for source in fixture.sources:
                dependents = self._direct_dependents.setdefault(_source_entity(source), [])
                if fixture.id not in dependents:
                    dependents.append(fixture.id)

    @property
    def match_ids(self) -> List[str]:
        """All match ids in topological order."""
        return [fixture.id for fixture in self.fixtures]

    def __len__(self):
        return len(self.fixtures)

    def __contains__(self, match_id):
        return match_id in self._by_id

    def get(self, match_id: str) -> Optional[MatchFixture]:
        return self._by_id.get(match_id)

    def get_by_stage(self, stage: str) -> List[MatchFixture]:
        return [fixture for fixture in self.fixtures if fixture.stage == stage]

    def matches_by_stage(self) -> Dict[str, List[str]]:
        """stage -> ordered match ids, in display order."""
        return {
            stage: [fixture.id for fixture in self.get_by_stage(stage)]
            for stage in DISPLAY_STAGE_ORDER
        }

    def total_points(self) -> int:
        return sum(fixture.point_value for fixture in self.fixtures)

    def topological_sort(self, match_ids: Iterable[str]) -> List[str]:
        return sorted(set(match_ids), key=lambda match_id: self._position[match_id])

    def direct_dependents(self, entity: Tuple[str, str]) -> List[str]:
        return list(self._direct_dependents.get(entity, []))

    def dependents(self, entity: Tuple[str, str]) -> List[str]:
        """Every match whose slots transitively read `entity`, in topological order."""
        found: Set[str] = set()
        pending = self.direct_dependents(entity)
        while pending:
            match_id = pending.pop()
            if match_id in found:
                continue
            found.add(match_id)
            pending.extend(self.direct_dependents(match_entity(match_id)))
        return self.topological_sort(found)

    def to_dict(self) -> Dict:
        return {
            'stages': [
                {
                    'stage': stage,
                    'label': get_stage_label(stage),
                    'short_label': STAGE_CONFIG[stage]['short_label'],
                    'point_value': STAGE_CONFIG[stage]['point_value'],
                    'matches': [fixture.to_dict() for fixture in self.get_by_stage(stage)]
                }
                for stage in DISPLAY_STAGE_ORDER
            ],
            'total_matches': len(self.fixtures),
            'total_points': self.total_points()
        }

    def __repr__(self):
        return f"FixtureGraph(matches={len(self.fixtures)})"


def build_knockout_fixtures() -> List[MatchFixture]:
    return [
        MatchFixture(id=match_id, stage=stage, sources=(source1, source2),
                     point_value=STAGE_CONFIG[stage]['point_value'])
        for match_id, stage, source1, source2 in KNOCKOUT_MATCHES
    ]


DEFAULT_GRAPH = FixtureGraph(build_knockout_fixtures())
