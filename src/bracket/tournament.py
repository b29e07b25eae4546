"""
Static tournament configuration: the 48 teams and their 12 groups.
"""
import os
from typing import Dict, List, Optional

import yaml

from bracket.models import Group, Team


GROUP_IDS = ['A', 'B', 'C', 'D', 'E', 'F', 'G', 'H', 'I', 'J', 'K', 'L']
TEAMS_PER_GROUP = 4

# (id, name, code) per group, in draw order
DEFAULT_TEAMS = {
    'A': [('usa', 'United States', 'USA'), ('mex', 'Mexico', 'MEX'),
          ('can', 'Canada', 'CAN'), ('jam', 'Jamaica', 'JAM')],
    'B': [('arg', 'Argentina', 'ARG'), ('col', 'Colombia', 'COL'),
          ('par', 'Paraguay', 'PAR'), ('ecu', 'Ecuador', 'ECU')],
    'C': [('bra', 'Brazil', 'BRA'), ('uru', 'Uruguay', 'URU'),
          ('ven', 'Venezuela', 'VEN'), ('per', 'Peru', 'PER')],
    'D': [('eng', 'England', 'ENG'), ('fra', 'France', 'FRA'),
          ('ned', 'Netherlands', 'NED'), ('wal', 'Wales', 'WAL')],
    'E': [('ger', 'Germany', 'GER'), ('esp', 'Spain', 'ESP'),
          ('por', 'Portugal', 'POR'), ('sui', 'Switzerland', 'SUI')],
    'F': [('ita', 'Italy', 'ITA'), ('bel', 'Belgium', 'BEL'),
          ('cro', 'Croatia', 'CRO'), ('aut', 'Austria', 'AUT')],
    'G': [('jpn', 'Japan', 'JPN'), ('kor', 'South Korea', 'KOR'),
          ('aus', 'Australia', 'AUS'), ('sau', 'Saudi Arabia', 'KSA')],
    'H': [('irn', 'Iran', 'IRN'), ('qat', 'Qatar', 'QAT'),
          ('uae', 'UAE', 'UAE'), ('uzb', 'Uzbekistan', 'UZB')],
    'I': [('sen', 'Senegal', 'SEN'), ('mar', 'Morocco', 'MAR'),
          ('nig', 'Nigeria', 'NGA'), ('cam', 'Cameroon', 'CMR')],
    'J': [('egy', 'Egypt', 'EGY'), ('alg', 'Algeria', 'ALG'),
          ('gha', 'Ghana', 'GHA'), ('tun', 'Tunisia', 'TUN')],
    'K': [('pol', 'Poland', 'POL'), ('den', 'Denmark', 'DEN'),
          ('swe', 'Sweden', 'SWE'), ('cze', 'Czech Republic', 'CZE')],
    'L': [('ser', 'Serbia', 'SRB'), ('ukr', 'Ukraine', 'UKR'),
          ('sco', 'Scotland', 'SCO'), ('nor', 'Norway', 'NOR')],
}


class Tournament:
    """Immutable group/team table with lookups by id."""

    def __init__(self, groups: List[Group]):
        self.groups = list(groups)
        self._groups_by_id = {group.id: group for group in self.groups}
        self._teams_by_id = {}
        for group in self.groups:
            if len(group.teams) != TEAMS_PER_GROUP:
                raise ValueError(
                    f"{group.name} has {len(group.teams)} teams, expected {TEAMS_PER_GROUP}"
                )
            for team in group.teams:
                if team.id in self._teams_by_id:
                    raise ValueError(f"Duplicate team id: {team.id}")
                self._teams_by_id[team.id] = team
        if len(self._groups_by_id) != len(self.groups):
            raise ValueError("Duplicate group id")

    @property
    def group_ids(self) -> List[str]:
        return [group.id for group in self.groups]

    @property
    def teams(self) -> List[Team]:
        return [team for group in self.groups for team in group.teams]

    def get_group(self, group_id: str) -> Optional[Group]:
        return self._groups_by_id.get(group_id)

    def get_team(self, team_id: Optional[str]) -> Optional[Team]:
        if team_id is None:
            return None
        return self._teams_by_id.get(team_id)

    def get_teams_by_group(self, group_id: str) -> List[Team]:
        group = self.get_group(group_id)
        return list(group.teams) if group else []

    def team_in_group(self, team_id: str, group_id: str) -> bool:
        group = self.get_group(group_id)
        return group is not None and group.has_team(team_id)

    def __repr__(self):
        return f"Tournament(groups={self.group_ids})"


def build_tournament(teams_by_group: Dict[str, List]) -> Tournament:
    """
    Build a Tournament from {group_id: [team, ...]}.

    Each team is either an (id, name, code) tuple or a dict with
    'id', 'name' and 'code' keys ('code' defaults to the upper-cased id).
    """
    groups = []
    for group_id in sorted(teams_by_group.keys(), key=str):
        entries = teams_by_group[group_id] or []
        if not isinstance(entries, (list, tuple)):
            raise ValueError(f"Group {group_id} must list its teams")
        teams = []
        for entry in entries:
            if isinstance(entry, dict):
                if 'id' not in entry:
                    raise ValueError(f"Team in group {group_id} is missing an id")
                team_id = str(entry['id'])
                name = entry.get('name', team_id)
                code = entry.get('code', team_id.upper())
            elif isinstance(entry, (list, tuple)) and len(entry) == 3:
                team_id, name, code = entry
            else:
                raise ValueError(f"Malformed team in group {group_id}: {entry!r}")
            teams.append(Team(id=team_id, name=name, code=code, group=str(group_id)))
        groups.append(Group(id=str(group_id), teams=teams))
    return Tournament(groups)


def load_tournament(file_path: str) -> Tournament:
    """Load the group/team table from a YAML file."""
    with open(file_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    if not data or not isinstance(data, dict):
        raise ValueError(f"No groups defined in {file_path}")
    return build_tournament(data)


def load_tournament_or_default(file_path: Optional[str]) -> Tournament:
    """Load the tournament from file_path when it exists, else the built-in table."""
    if file_path and os.path.exists(file_path):
        return load_tournament(file_path)
    return DEFAULT_TOURNAMENT


DEFAULT_TOURNAMENT = build_tournament(DEFAULT_TEAMS)
