"""
Shared pytest fixtures for bracket predictor tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os
import yaml

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bracket.models import RANK_KEYS
from bracket.state import BracketState
from bracket.tournament import DEFAULT_TOURNAMENT


def fill_group(state, group_id, team_ids=None):
    """Rank a group's teams; defaults to draw order."""
    team_ids = team_ids or DEFAULT_TOURNAMENT.get_group(group_id).team_ids
    for rank, team_id in zip(RANK_KEYS, team_ids):
        state.set_group_rank(group_id, rank, team_id)


def fill_all_groups(state):
    for group_id in state.tournament.group_ids:
        fill_group(state, group_id)


def pick_first_slot_everywhere(state):
    """Pick slot 1 as winner of every match, stage by stage."""
    for match_id in state.graph.match_ids:
        team1, team2 = state.get_slots(match_id)
        success, error = state.set_match_winner(match_id, team1)
        assert success, error


@pytest.fixture
def state():
    """A fresh, empty bracket."""
    return BracketState()


@pytest.fixture
def groups_filled_state():
    """All 12 groups ranked in draw order, no knockout picks."""
    s = BracketState()
    fill_all_groups(s)
    return s


@pytest.fixture
def full_state():
    """Every group ranked, every match picked (slot 1 always wins), tiebreaker set."""
    s = BracketState()
    fill_all_groups(s)
    pick_first_slot_everywhere(s)
    s.set_tiebreaker(172)
    return s


@pytest.fixture
def client():
    """Create a test client with a fresh session."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch):
    """Point the app at an empty temporary data directory."""
    import app as app_module
    monkeypatch.setattr(app_module, 'DATA_DIR', str(tmp_path))
    monkeypatch.setattr(app_module, '_bracket_sessions', {})
    return tmp_path


@pytest.fixture
def write_yaml(temp_data_dir):
    """Write a YAML file into the temporary data directory."""
    def _write(filename, data):
        path = temp_data_dir / filename
        path.write_text(yaml.dump(data, default_flow_style=False), encoding='utf-8')
        return path
    return _write
