"""
Data models for the prediction bracket: teams, groups, predictions and fixtures.
"""
import re
from typing import Dict, List, Optional, Tuple


RANK_KEYS = ('first', 'second', 'third', 'fourth')
RANK_LABELS = {'first': '1st', 'second': '2nd', 'third': '3rd', 'fourth': '4th'}


def normalize_rank(rank) -> str:
    """Return the rank key ('first'..'fourth') for a key, label or 1-based number."""
    if isinstance(rank, bool):
        raise ValueError(f"Invalid rank: {rank!r}")
    if isinstance(rank, int):
        if 1 <= rank <= len(RANK_KEYS):
            return RANK_KEYS[rank - 1]
        raise ValueError(f"Invalid rank: {rank!r}")
    if isinstance(rank, str):
        value = rank.strip().lower()
        if value in RANK_KEYS:
            return value
        if value.isdigit():
            return normalize_rank(int(value))
        for key, label in RANK_LABELS.items():
            if value == label:
                return key
    raise ValueError(f"Invalid rank: {rank!r}")


class Team:
    def __init__(self, id, name, code, group):
        self.id = id
        self.name = name
        self.code = code  # 3-letter country code
        self.group = group

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'code': self.code, 'group': self.group}

    def __eq__(self, other):
        return isinstance(other, Team) and self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return f"Team(id={self.id}, name={self.name}, code={self.code}, group={self.group})"


class Group:
    def __init__(self, id, teams):
        self.id = id
        self.teams = list(teams)

    @property
    def name(self):
        return f"Group {self.id}"

    @property
    def team_ids(self):
        return [team.id for team in self.teams]

    def has_team(self, team_id) -> bool:
        return team_id in self.team_ids

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'teams': [team.to_dict() for team in self.teams]
        }

    def __repr__(self):
        return f"Group(id={self.id}, teams={self.team_ids})"


class GroupPrediction:
    """Predicted finishing order for one group. Unset ranks hold None."""

    def __init__(self, group_id, positions=None):
        self.group_id = group_id
        self.positions = {key: None for key in RANK_KEYS}
        if positions:
            for key, team_id in positions.items():
                self.positions[normalize_rank(key)] = team_id

    def get(self, rank) -> Optional[str]:
        return self.positions[normalize_rank(rank)]

    def assign(self, rank, team_id: Optional[str]):
        """
        Put team_id at rank. The team is first removed from any other rank in
        this group, so a team holds at most one rank (last write wins).
        """
        key = normalize_rank(rank)
        if team_id is not None:
            for other_key, current in self.positions.items():
                if other_key != key and current == team_id:
                    self.positions[other_key] = None
        self.positions[key] = team_id

    def filled_count(self) -> int:
        return sum(1 for team_id in self.positions.values() if team_id is not None)

    def is_complete(self) -> bool:
        return self.filled_count() == len(RANK_KEYS)

    def to_list(self) -> List[Optional[str]]:
        return [self.positions[key] for key in RANK_KEYS]

    def copy(self):
        return GroupPrediction(self.group_id, dict(self.positions))

    def __eq__(self, other):
        return (isinstance(other, GroupPrediction)
                and self.group_id == other.group_id
                and self.positions == other.positions)

    def __repr__(self):
        return f"GroupPrediction(group_id={self.group_id}, positions={self.positions})"


class GroupRankSource:
    """The team predicted to finish at `rank` in group `group_id`."""
    kind = 'group_rank'

    def __init__(self, rank, group_id):
        self.rank = rank
        self.group_id = group_id

    @property
    def code(self):
        return f"{self.rank}{self.group_id}"

    def __eq__(self, other):
        return isinstance(other, GroupRankSource) and (self.rank, self.group_id) == (other.rank, other.group_id)

    def __hash__(self):
        return hash((self.kind, self.rank, self.group_id))

    def __repr__(self):
        return f"GroupRankSource({self.code})"


class MatchWinnerSource:
    """The team predicted to win match `match_id`."""
    kind = 'match_winner'

    def __init__(self, match_id):
        self.match_id = match_id

    @property
    def code(self):
        return self.match_id

    def __eq__(self, other):
        return isinstance(other, MatchWinnerSource) and self.match_id == other.match_id

    def __hash__(self):
        return hash((self.kind, self.match_id))

    def __repr__(self):
        return f"MatchWinnerSource({self.code})"


class MatchLoserSource:
    """The team predicted to lose match `match_id`."""
    kind = 'match_loser'

    def __init__(self, match_id):
        self.match_id = match_id

    @property
    def code(self):
        return f"L-{self.match_id}"

    def __eq__(self, other):
        return isinstance(other, MatchLoserSource) and self.match_id == other.match_id

    def __hash__(self):
        return hash((self.kind, self.match_id))

    def __repr__(self):
        return f"MatchLoserSource({self.code})"


_GROUP_RANK_RE = re.compile(r'^([123])([A-Z])$')
_MATCH_WINNER_RE = re.compile(r'^M(\d+)$')
_MATCH_LOSER_RE = re.compile(r'^L-M(\d+)$')


def parse_source(code: str):
    """
    Parse a slot source code into a source expression.

    - "1A" .. "3L": group rank reference
    - "M17": winner of match M17
    - "L-M29": loser of match M29
    """
    if not isinstance(code, str):
        raise ValueError(f"Invalid source code: {code!r}")
    code = code.strip()
    group_match = _GROUP_RANK_RE.match(code)
    if group_match:
        return GroupRankSource(int(group_match.group(1)), group_match.group(2))
    winner_match = _MATCH_WINNER_RE.match(code)
    if winner_match:
        return MatchWinnerSource(f"M{int(winner_match.group(1))}")
    loser_match = _MATCH_LOSER_RE.match(code)
    if loser_match:
        return MatchLoserSource(f"M{int(loser_match.group(1))}")
    raise ValueError(f"Invalid source code: {code!r}")


class MatchFixture:
    def __init__(self, id, stage, sources, point_value):
        if len(sources) != 2:
            raise ValueError(f"Fixture {id} needs exactly two sources")
        self.id = id
        self.stage = stage
        self.sources: Tuple = tuple(
            parse_source(source) if isinstance(source, str) else source for source in sources
        )
        self.point_value = point_value

    @property
    def number(self) -> int:
        return int(self.id[1:])

    @property
    def source_codes(self) -> Tuple[str, str]:
        return (self.sources[0].code, self.sources[1].code)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'stage': self.stage,
            'sources': list(self.source_codes),
            'point_value': self.point_value
        }

    def __repr__(self):
        return (f"MatchFixture(id={self.id}, stage={self.stage}, "
                f"sources={self.source_codes}, point_value={self.point_value})")
