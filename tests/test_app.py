"""
Unit tests for Flask web application.
"""
import pytest
import sys
import os
from datetime import datetime, timedelta

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from app import (app, format_time_remaining, get_default_settings, load_entries, load_results,
                 load_settings, parse_lock_time, predictions_locked)


def post_group(client, group_id, rank, team_id):
    return client.post('/api/predictions/group',
                       json={'group_id': group_id, 'rank': rank, 'team_id': team_id})


def post_winner(client, match_id, winner_id):
    return client.post('/api/predictions/knockout',
                       json={'match_id': match_id, 'winner_id': winner_id})


def rank_group(client, group_id, team_ids):
    for rank, team_id in enumerate(team_ids, start=1):
        response = post_group(client, group_id, rank, team_id)
        assert response.status_code == 200


class TestSettings:
    """Tests for settings and data file loading."""

    def test_defaults_without_files(self, temp_data_dir):
        """Test defaults are used when no settings file exists."""
        assert load_settings() == get_default_settings()
        assert load_results() == {'groups': {}, 'knockout': {}, 'total_goals': None}
        assert load_entries() == []

    def test_settings_merge_with_defaults(self, write_yaml):
        """Test configured values override defaults and the rest stay."""
        write_yaml('settings.yaml', {'tournament_name': 'Test Cup', 'items_per_page': 10})
        settings = load_settings()
        assert settings['tournament_name'] == 'Test Cup'
        assert settings['items_per_page'] == 10
        assert settings['tiebreaker_min'] == 100

    def test_malformed_settings(self, temp_data_dir):
        """Test unreadable YAML falls back to defaults."""
        (temp_data_dir / 'settings.yaml').write_text('tournament_name: [unclosed')
        assert load_settings() == get_default_settings()

    def test_entries_as_list(self, write_yaml):
        """Test entries may be a bare list."""
        write_yaml('entries.yaml', [{'wallet': 'alice'}])
        assert load_entries() == [{'wallet': 'alice'}]


class TestLockTime:
    """Tests for the prediction lock."""

    def test_parse_lock_time(self):
        """Test ISO strings and datetimes are accepted."""
        assert parse_lock_time('2026-06-11T12:00:00') == datetime(2026, 6, 11, 12, 0, 0)
        assert parse_lock_time(datetime(2026, 6, 11)) == datetime(2026, 6, 11)
        assert parse_lock_time(None) is None
        assert parse_lock_time('not a date') is None

    def test_format_time_remaining(self):
        """Test countdown formatting."""
        now = datetime(2026, 6, 1, 0, 0, 0)
        assert format_time_remaining(now + timedelta(days=2, hours=3, minutes=4), now) == '2d 3h 4m'
        assert format_time_remaining(now + timedelta(hours=5, minutes=30), now) == '5h 30m'
        assert format_time_remaining(now + timedelta(minutes=9), now) == '9m'
        assert format_time_remaining(now - timedelta(minutes=1), now) == 'Predictions locked'
        assert format_time_remaining(None) is None

    def test_not_locked_by_default(self, temp_data_dir):
        """Test predictions are open without a lock time."""
        assert not predictions_locked()

    def test_locked_after_lock_time(self, client, write_yaml):
        """Test edits are rejected once the lock time has passed."""
        write_yaml('settings.yaml', {'lock_time': '2000-01-01T00:00:00'})
        assert predictions_locked()
        response = post_group(client, 'A', 'first', 'usa')
        assert response.status_code == 403
        assert response.get_json()['error'] == 'Predictions are locked.'

    def test_reads_allowed_after_lock(self, client, write_yaml):
        """Test the bracket can still be viewed after locking."""
        write_yaml('settings.yaml', {'lock_time': '2000-01-01T00:00:00'})
        assert client.get('/api/predictions').status_code == 200
        assert client.get('/').get_json()['status'] == 'locked'


class TestStaticRoutes:
    """Tests for tournament information routes."""

    def test_index(self, client, temp_data_dir):
        """Test the tournament summary."""
        data = client.get('/').get_json()
        assert data['name'] == 'World Cup 2026'
        assert data['status'] == 'accepting_predictions'
        assert data['total_teams'] == 48
        assert data['total_groups'] == 12
        assert data['total_knockout_matches'] == 32
        assert data['max_total_points'] == 281
        assert data['time_remaining'] is None

    def test_groups(self, client, temp_data_dir):
        """Test the group listing."""
        groups = client.get('/api/groups').get_json()['groups']
        assert len(groups) == 12
        assert groups[0]['name'] == 'Group A'
        assert [team['id'] for team in groups[0]['teams']] == ['usa', 'mex', 'can', 'jam']

    def test_custom_tournament_file(self, client, write_yaml):
        """Test a tournament file replaces the built-in table."""
        write_yaml('tournament.yaml', {
            'A': [{'id': 'aaa'}, {'id': 'bbb'}, {'id': 'ccc'}, {'id': 'ddd'}],
        })
        groups = client.get('/api/groups').get_json()['groups']
        assert [group['id'] for group in groups] == ['A']

    def test_malformed_tournament_file(self, client, write_yaml):
        """Test an invalid tournament file falls back to the built-in table."""
        write_yaml('tournament.yaml', {
            'A': [{'id': 'aaa'}, {'id': 'bbb'}, {'id': 'ccc'}],
        })
        response = client.get('/api/groups')
        assert response.status_code == 200
        assert len(response.get_json()['groups']) == 12
        assert client.get('/api/predictions').status_code == 200

    def test_unparsable_tournament_file(self, client, temp_data_dir):
        """Test unreadable YAML in the tournament file falls back to the built-in table."""
        (temp_data_dir / 'tournament.yaml').write_text('A: [unclosed')
        assert client.get('/').get_json()['total_teams'] == 48

    def test_fixtures(self, client, temp_data_dir):
        """Test the fixture graph listing."""
        data = client.get('/api/fixtures').get_json()
        assert data['total_matches'] == 32
        assert data['stages'][0]['matches'][0]['sources'] == ['1A', '2B']


class TestGroupPredictions:
    """Tests for the group standings endpoint."""

    def test_empty_bracket(self, client, temp_data_dir):
        """Test a new session starts empty."""
        data = client.get('/api/predictions').get_json()
        assert data['progress']['groups_complete'] == 0
        assert data['champion'] is None
        assert data['stages'][0]['matches'][0]['display'][0] == {'placeholder': 'TBD (1A)'}

    def test_set_rank(self, client, temp_data_dir):
        """Test assigning a rank."""
        response = post_group(client, 'A', 'first', 'usa')
        assert response.status_code == 200
        data = response.get_json()
        assert data['groups'][0]['positions']['first'] == 'usa'
        assert data['cleared'] == []

    def test_session_keeps_bracket(self, client, temp_data_dir):
        """Test edits persist across requests in one session."""
        post_group(client, 'A', 'first', 'usa')
        data = client.get('/api/predictions').get_json()
        assert data['groups'][0]['positions']['first'] == 'usa'

    def test_invalid_rank(self, client, temp_data_dir):
        """Test invalid ranks are rejected."""
        response = post_group(client, 'A', 'fifth', 'usa')
        assert response.status_code == 400

    def test_unknown_group(self, client, temp_data_dir):
        """Test unknown groups are rejected."""
        response = post_group(client, 'Z', 'first', 'usa')
        assert response.status_code == 400
        assert 'not found' in response.get_json()['error']

    def test_team_from_other_group(self, client, temp_data_dir):
        """Test a team can only be ranked in its own group."""
        response = post_group(client, 'A', 'first', 'bra')
        assert response.status_code == 400
        assert 'not in Group A' in response.get_json()['error']

    def test_clear_rank(self, client, temp_data_dir):
        """Test a null team clears the rank."""
        post_group(client, 'A', 'first', 'usa')
        data = post_group(client, 'A', 'first', None).get_json()
        assert data['groups'][0]['positions']['first'] is None


class TestKnockoutPredictions:
    """Tests for the knockout winner endpoint."""

    def test_pick_winner(self, client, temp_data_dir):
        """Test picking a resolved team."""
        rank_group(client, 'A', ['usa', 'mex', 'can', 'jam'])
        rank_group(client, 'B', ['arg', 'col', 'par', 'ecu'])
        response = post_winner(client, 'M1', 'usa')
        assert response.status_code == 200
        match = response.get_json()['stages'][0]['matches'][0]
        assert match['teams'] == ['usa', 'col']
        assert match['winner'] == 'usa'

    def test_pick_team_not_playing(self, client, temp_data_dir):
        """Test a team outside the match is rejected."""
        rank_group(client, 'A', ['usa', 'mex', 'can', 'jam'])
        rank_group(client, 'B', ['arg', 'col', 'par', 'ecu'])
        response = post_winner(client, 'M1', 'bra')
        assert response.status_code == 400
        assert 'not playing' in response.get_json()['error']

    def test_unknown_match(self, client, temp_data_dir):
        """Test unknown match ids are rejected."""
        response = post_winner(client, 'M99', 'usa')
        assert response.status_code == 400

    def test_group_change_reports_cleared(self, client, temp_data_dir):
        """Test changing a group returns the picks it cleared."""
        rank_group(client, 'A', ['usa', 'mex', 'can', 'jam'])
        rank_group(client, 'B', ['arg', 'col', 'par', 'ecu'])
        post_winner(client, 'M1', 'usa')
        data = post_group(client, 'A', 'first', 'mex').get_json()
        assert data['cleared'] == ['M1']
        assert data['stages'][0]['matches'][0]['winner'] is None

    def test_winner_change_reports_cleared(self, client, temp_data_dir, full_state):
        """Test re-picking a match reports downstream picks cleared."""
        client.post('/api/predictions/import', json=full_state.to_dict())
        data = post_winner(client, 'M1', 'col').get_json()
        assert data['cleared'] == ['M17', 'M25', 'M29', 'M31', 'M32']
        assert data['champion'] is None


class TestTiebreakerRoute:
    """Tests for the tiebreaker endpoint."""

    def test_valid(self, client, temp_data_dir):
        """Test a valid total."""
        response = client.post('/api/predictions/tiebreaker', json={'total_goals': '172'})
        assert response.status_code == 200
        assert response.get_json()['total_goals'] == 172

    def test_invalid(self, client, temp_data_dir):
        """Test invalid totals are reported."""
        response = client.post('/api/predictions/tiebreaker', json={'total_goals': 50})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Goals must be between 100 and 300'

    def test_bounds_from_settings(self, client, write_yaml):
        """Test bounds follow settings."""
        write_yaml('settings.yaml', {'tiebreaker_min': 10, 'tiebreaker_max': 60})
        response = client.post('/api/predictions/tiebreaker', json={'total_goals': 50})
        assert response.status_code == 200


class TestImportExport:
    """Tests for bracket import, export and reset."""

    def test_export_incomplete(self, client, temp_data_dir):
        """Test an incomplete bracket cannot be exported."""
        response = client.get('/api/predictions/export')
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Please complete all predictions before submitting.'

    def test_import_then_export(self, client, temp_data_dir, full_state):
        """Test a complete bracket round-trips through import and export."""
        response = client.post('/api/predictions/import', json=full_state.to_dict())
        assert response.status_code == 200
        assert response.get_json()['progress']['is_complete'] is True

        exported = client.get('/api/predictions/export').get_json()
        assert exported['success'] is True
        assert exported['predictions'] == full_state.to_dict()

    def test_import_unknown_group(self, client, temp_data_dir):
        """Test imports with unknown groups are rejected."""
        response = client.post('/api/predictions/import', json={'groups': {'Z': ['usa']}})
        assert response.status_code == 400

    def test_import_requires_object(self, client, temp_data_dir):
        """Test imports must be JSON objects."""
        response = client.post('/api/predictions/import', json=['usa'])
        assert response.status_code == 400

    def test_import_rejects_repeated_team(self, client, temp_data_dir):
        """Test a team ranked twice in one group is rejected and nothing is stored."""
        post_group(client, 'A', 'first', 'mex')
        response = client.post('/api/predictions/import',
                               json={'groups': {'A': ['usa', 'usa', 'can', 'jam']}})
        assert response.status_code == 400
        assert 'more than once' in response.get_json()['error']
        data = client.get('/api/predictions').get_json()
        assert data['groups'][0]['positions']['first'] == 'mex'

    def test_import_rejects_team_from_other_group(self, client, temp_data_dir):
        """Test imported standings may only rank the group's own teams."""
        response = client.post('/api/predictions/import',
                               json={'groups': {'A': ['usa', 'mex', 'arg', 'jam']}})
        assert response.status_code == 400
        assert 'not in Group A' in response.get_json()['error']

    def test_reset(self, client, temp_data_dir, full_state):
        """Test reset clears the session bracket."""
        client.post('/api/predictions/import', json=full_state.to_dict())
        data = client.post('/api/predictions/reset').get_json()
        assert data['progress']['matches_complete'] == 0
        assert data['total_goals'] is None


class TestScoreRoute:
    """Tests for scoring the session bracket."""

    def test_score_against_results(self, client, write_yaml, full_state):
        """Test the bracket is scored against results.yaml."""
        write_yaml('results.yaml', {
            'groups': {'A': ['usa', 'mex', 'can', 'jam']},
            'knockout': {'M1': 'usa', 'M32': 'usa'},
        })
        client.post('/api/predictions/import', json=full_state.to_dict())
        data = client.get('/api/predictions/score').get_json()
        assert data['group_points'] == 10
        assert data['knockout_points'] == 27
        assert data['points'] == 37

    def test_score_without_results(self, client, temp_data_dir):
        """Test nothing scores before results exist."""
        assert client.get('/api/predictions/score').get_json()['points'] == 0


class TestLeaderboardRoutes:
    """Tests for the leaderboard endpoints."""

    @pytest.fixture
    def leaderboard_data(self, write_yaml):
        write_yaml('settings.yaml', {'items_per_page': 2})
        write_yaml('results.yaml', {'groups': {'A': ['usa', 'mex', 'can', 'jam']},
                                    'total_goals': 172})
        write_yaml('entries.yaml', {'entries': [
            {'wallet': '0xaaaaaaaaaaaaaaaa', 'predictions': {'groups': {'A': ['usa', 'mex', 'can', 'jam']}}},
            {'wallet': '0xbbbbbbbbbbbbbbbb', 'predictions': {'groups': {'A': ['usa', 'can', 'mex', 'jam']}}},
            {'wallet': '0xcccccccccccccccc', 'predictions': {'groups': {'A': ['mex', 'usa', 'can', 'jam']}}},
        ]})

    def test_first_page(self, client, leaderboard_data):
        """Test the first page of the ranked board."""
        data = client.get('/api/leaderboard').get_json()
        assert data['total_entries'] == 3
        assert data['total_pages'] == 2
        assert [entry['points'] for entry in data['entries']] == [10, 5]
        assert data['entries'][0]['wallet_short'] == '0xaa...aaaa'
        assert data['page_numbers'] == [1, 2]

    def test_second_page(self, client, leaderboard_data):
        """Test paging."""
        data = client.get('/api/leaderboard?page=2').get_json()
        assert data['page'] == 2
        assert [entry['rank'] for entry in data['entries']] == [3]

    def test_user_entry(self, client, leaderboard_data):
        """Test the connected wallet's entry is included."""
        data = client.get('/api/leaderboard?wallet=0xCCCCCCCCCCCCCCCC').get_json()
        assert data['user_entry']['rank'] == 3

    def test_me(self, client, leaderboard_data):
        """Test locating a wallet's page."""
        data = client.get('/api/leaderboard/me?wallet=0xcccccccccccccccc').get_json()
        assert data['success'] is True
        assert data['page'] == 2
        assert data['entry']['points'] == 2

    def test_me_requires_wallet(self, client, leaderboard_data):
        """Test a wallet is required."""
        assert client.get('/api/leaderboard/me').status_code == 400

    def test_me_unknown_wallet(self, client, leaderboard_data):
        """Test unknown wallets get a 404."""
        assert client.get('/api/leaderboard/me?wallet=0xdead').status_code == 404

    def test_empty_leaderboard(self, client, temp_data_dir):
        """Test an empty board."""
        data = client.get('/api/leaderboard').get_json()
        assert data['entries'] == []
        assert data['total_pages'] == 0
        assert data['page_numbers'] == []

    def test_malformed_entries_do_not_break_board(self, client, write_yaml):
        """Test bad rows are skipped and loosely typed values are coerced."""
        write_yaml('results.yaml', {'groups': {'A': ['usa', 'mex', 'can', 'jam']},
                                    'total_goals': 170})
        write_yaml('entries.yaml', {'entries': [
            {'wallet': 'abc', 'predictions': {'total_goals': '172'}},
            {'wallet': 12345, 'predictions': {'total_goals': 180}},
            {'wallet': 'listy', 'predictions': ['usa']},
            {'wallet': 'badknockout', 'predictions': {'knockout': ['M1']}},
            'not a row',
        ]})
        response = client.get('/api/leaderboard')
        assert response.status_code == 200
        data = response.get_json()
        assert [entry['wallet'] for entry in data['entries']] == ['abc', '12345']
        assert data['entries'][0]['total_goals'] == 172


class TestSessionRegistry:
    """Tests for the in-memory session bracket registry."""

    def test_read_only_requests_register_nothing(self, temp_data_dir):
        """Test GETs from a session without a bracket do not add to the registry."""
        import app as app_module
        for path in ['/api/predictions', '/api/predictions/score', '/api/predictions/export']:
            with app.test_client() as fresh:
                fresh.get(path)
        assert app_module._bracket_sessions == {}

    def test_edit_registers_bracket(self, client, temp_data_dir):
        """Test the first edit stores the session's bracket."""
        import app as app_module
        post_group(client, 'A', 'first', 'usa')
        assert len(app_module._bracket_sessions) == 1

    def test_oldest_sessions_evicted(self, temp_data_dir, monkeypatch):
        """Test the registry is capped and drops its oldest brackets first."""
        import app as app_module
        monkeypatch.setattr(app_module, 'MAX_BRACKET_SESSIONS', 2)
        clients = [app.test_client() for _ in range(3)]
        for fresh in clients:
            post_group(fresh, 'A', 'first', 'usa')
        assert len(app_module._bracket_sessions) == 2

        # The first session starts over with an empty bracket
        data = clients[0].get('/api/predictions').get_json()
        assert data['groups'][0]['positions']['first'] is None
        data = clients[2].get('/api/predictions').get_json()
        assert data['groups'][0]['positions']['first'] == 'usa'
