"""
Flask web application for Bracket Predictor.

Serves the prediction bracket of the current browser session as JSON, plus
the public leaderboard. Predictions live in memory for the session only.
"""
import os
import threading
import uuid
import yaml
from datetime import datetime
from functools import wraps
from flask import Flask, jsonify, request, session
from bracket.fixtures import DEFAULT_GRAPH
from bracket.leaderboard import (DEFAULT_ITEMS_PER_PAGE, build_leaderboard, find_user_entry,
                                 get_page_numbers, get_user_page, paginate)
from bracket.models import normalize_rank
from bracket.scoring import max_points, score_predictions
from bracket.state import BracketState
from bracket.tiebreaker import MAX_GOALS, MIN_GOALS
from bracket.tournament import DEFAULT_TOURNAMENT, load_tournament_or_default

app = Flask(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('BRACKET_DATA_DIR', os.path.join(BASE_DIR, 'data'))

app.secret_key = os.environ.get('SECRET_KEY') or os.urandom(24)

# Per-session brackets: {bracket_id: BracketState}, oldest first
_bracket_sessions = {}
MAX_BRACKET_SESSIONS = int(os.environ.get('BRACKET_MAX_SESSIONS', 1000))
# One edit (mutate, resolve, invalidate) at a time
_bracket_lock = threading.Lock()


def _file_path(filename: str) -> str:
    """Return full path to a data file."""
    return os.path.join(DATA_DIR, filename)


def _load_yaml(filename: str, default):
    """Load a YAML data file, returning default when missing, empty or unreadable."""
    path = _file_path(filename)
    if not os.path.exists(path):
        return default
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        return data if data else default
    except (OSError, yaml.YAMLError) as e:
        app.logger.warning(f'Failed to parse {path}: {e}')
        return default


def get_default_settings():
    """Return default settings."""
    return {
        'tournament_name': 'World Cup 2026',
        'entry_fee': 0.1,
        'lock_time': None,
        'tiebreaker_min': MIN_GOALS,
        'tiebreaker_max': MAX_GOALS,
        'items_per_page': DEFAULT_ITEMS_PER_PAGE,
        'tournament_file': 'tournament.yaml',
    }


def load_settings():
    """Load settings from YAML file, merging with defaults."""
    defaults = get_default_settings()
    data = _load_yaml('settings.yaml', {})
    if not isinstance(data, dict):
        app.logger.warning('settings.yaml is not a mapping, using defaults')
        return defaults
    return {**defaults, **data}


def load_tournament(settings=None):
    """Load the group/team table, falling back to the built-in one."""
    settings = settings or load_settings()
    path = _file_path(settings['tournament_file'])
    try:
        return load_tournament_or_default(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        app.logger.warning(f'Failed to load {path}, using built-in teams: {e}')
        return DEFAULT_TOURNAMENT


def load_results():
    """Load official results (groups, knockout winners, total goals)."""
    data = _load_yaml('results.yaml', {})
    if not isinstance(data, dict):
        return {'groups': {}, 'knockout': {}, 'total_goals': None}
    data.setdefault('groups', {})
    data.setdefault('knockout', {})
    data.setdefault('total_goals', None)
    return data


def load_entries():
    """Load submitted leaderboard entries."""
    data = _load_yaml('entries.yaml', {})
    if isinstance(data, dict):
        return data.get('entries', []) or []
    return data or []


def parse_lock_time(value):
    """Parse the configured lock time (datetime or ISO 8601 string)."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        app.logger.warning(f'Invalid lock_time in settings: {value!r}')
        return None


def format_time_remaining(lock_time, now=None):
    """Human-readable time until predictions lock."""
    if lock_time is None:
        return None
    now = now or datetime.now(lock_time.tzinfo)
    seconds = int((lock_time - now).total_seconds())
    if seconds <= 0:
        return 'Predictions locked'
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    if days > 0:
        return f'{days}d {hours}h {minutes}m'
    if hours > 0:
        return f'{hours}h {minutes}m'
    return f'{minutes}m'


def predictions_locked(settings=None) -> bool:
    """True once the configured lock time has passed."""
    settings = settings or load_settings()
    lock_time = parse_lock_time(settings.get('lock_time'))
    if lock_time is None:
        return False
    return datetime.now(lock_time.tzinfo) >= lock_time


def _new_bracket_state() -> BracketState:
    settings = load_settings()
    return BracketState(
        tournament=load_tournament(settings),
        graph=DEFAULT_GRAPH,
        min_goals=int(settings['tiebreaker_min']),
        max_goals=int(settings['tiebreaker_max']),
    )


def _register_bracket(bracket_id: str, state: BracketState):
    """Store a session bracket, evicting the oldest ones beyond the cap."""
    _bracket_sessions.pop(bracket_id, None)
    while len(_bracket_sessions) >= MAX_BRACKET_SESSIONS:
        oldest = next(iter(_bracket_sessions))
        del _bracket_sessions[oldest]
        app.logger.info(f'Evicted bracket session {oldest}')
    _bracket_sessions[bracket_id] = state


def get_bracket_state(create: bool = True) -> BracketState:
    """
    Return the bracket for the current session.

    With create=False a session without a bracket gets an empty, unregistered
    one, so read-only requests never add to the registry.
    """
    bracket_id = session.get('bracket_id')
    if bracket_id is not None and bracket_id in _bracket_sessions:
        return _bracket_sessions[bracket_id]
    state = _new_bracket_state()
    if create:
        bracket_id = bracket_id or uuid.uuid4().hex
        _register_bracket(bracket_id, state)
        session['bracket_id'] = bracket_id
    return state


def editable_required(f):
    """Reject prediction edits after the lock time."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if predictions_locked():
            return jsonify({'success': False, 'error': 'Predictions are locked.'}), 403
        return f(*args, **kwargs)
    return decorated_function


def _predictions_payload(state: BracketState) -> dict:
    return {
        'success': True,
        'groups': state.get_group_views(),
        'stages': state.get_stage_views(),
        'total_goals': state.total_goals,
        'progress': state.get_progress(),
        'champion': state.get_champion(),
    }


@app.route('/')
def index():
    """Tournament summary."""
    settings = load_settings()
    tournament = load_tournament(settings)
    lock_time = parse_lock_time(settings.get('lock_time'))
    locked = predictions_locked(settings)
    return jsonify({
        'name': settings['tournament_name'],
        'status': 'locked' if locked else 'accepting_predictions',
        'lock_time': lock_time.isoformat() if lock_time else None,
        'time_remaining': format_time_remaining(lock_time),
        'entry_fee': settings['entry_fee'],
        'total_teams': len(tournament.teams),
        'total_groups': len(tournament.groups),
        'total_knockout_matches': len(DEFAULT_GRAPH),
        'total_entries': len(load_entries()),
        **max_points(len(tournament.groups), DEFAULT_GRAPH),
    })


@app.route('/api/groups', methods=['GET'])
def api_groups():
    """Static groups and their teams."""
    tournament = load_tournament()
    return jsonify({'groups': [group.to_dict() for group in tournament.groups]})


@app.route('/api/fixtures', methods=['GET'])
def api_fixtures():
    """Knockout fixture graph."""
    return jsonify(DEFAULT_GRAPH.to_dict())


@app.route('/api/predictions', methods=['GET'])
def api_predictions():
    """Current session bracket with resolved slots and progress."""
    with _bracket_lock:
        state = get_bracket_state(create=False)
        return jsonify(_predictions_payload(state))


@app.route('/api/predictions/group', methods=['POST'])
@editable_required
def api_set_group_rank():
    """Assign a team to a rank in a group (team_id null clears the rank)."""
    data = request.get_json(silent=True) or {}
    group_id = str(data.get('group_id', '')).strip()
    team_id = data.get('team_id') or None

    try:
        rank = normalize_rank(data.get('rank'))
    except ValueError:
        return jsonify({'success': False, 'error': 'Rank must be first, second, third or fourth.'}), 400

    with _bracket_lock:
        state = get_bracket_state()
        group = state.tournament.get_group(group_id)
        if group is None:
            return jsonify({'success': False, 'error': f'Group "{group_id}" not found.'}), 400
        if team_id is not None and not group.has_team(team_id):
            return jsonify({'success': False, 'error': f'Team "{team_id}" is not in {group.name}.'}), 400

        cleared = state.set_group_rank(group_id, rank, team_id)
        payload = _predictions_payload(state)
        payload['cleared'] = cleared
        return jsonify(payload)


@app.route('/api/predictions/knockout', methods=['POST'])
@editable_required
def api_set_match_winner():
    """Pick the winner of a knockout match (winner_id null clears the pick)."""
    data = request.get_json(silent=True) or {}
    match_id = str(data.get('match_id', '')).strip()
    winner_id = data.get('winner_id') or None

    with _bracket_lock:
        state = get_bracket_state()
        if match_id not in state.graph:
            return jsonify({'success': False, 'error': f'Match "{match_id}" not found.'}), 400

        success, error = state.set_match_winner(match_id, winner_id)
        if not success:
            return jsonify({'success': False, 'error': error}), 400

        payload = _predictions_payload(state)
        payload['cleared'] = state.last_cleared
        return jsonify(payload)


@app.route('/api/predictions/tiebreaker', methods=['POST'])
@editable_required
def api_set_tiebreaker():
    """Set the total goals tiebreaker."""
    data = request.get_json(silent=True) or {}
    with _bracket_lock:
        state = get_bracket_state()
        success, error = state.set_tiebreaker(data.get('total_goals'))
        if not success:
            return jsonify({'success': False, 'error': error, 'total_goals': None}), 400
        return jsonify({'success': True, 'total_goals': state.total_goals,
                        'progress': state.get_progress()})


@app.route('/api/predictions/reset', methods=['POST'])
@editable_required
def api_reset_predictions():
    """Clear the session bracket."""
    with _bracket_lock:
        state = get_bracket_state()
        state.reset()
        return jsonify(_predictions_payload(state))


@app.route('/api/predictions/import', methods=['POST'])
@editable_required
def api_import_predictions():
    """Replace the session bracket with a serialized one."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'success': False, 'error': 'Expected a JSON object.'}), 400

    with _bracket_lock:
        current = get_bracket_state(create=False)
        try:
            state = BracketState.from_dict(data, current.tournament, current.graph,
                                           current.min_goals, current.max_goals)
        except ValueError as e:
            return jsonify({'success': False, 'error': str(e)}), 400
        bracket_id = session.get('bracket_id') or uuid.uuid4().hex
        _register_bracket(bracket_id, state)
        session['bracket_id'] = bracket_id
        return jsonify(_predictions_payload(state))


@app.route('/api/predictions/export', methods=['GET'])
def api_export_predictions():
    """Serialized bracket for submission. Only available once complete."""
    with _bracket_lock:
        state = get_bracket_state(create=False)
        progress = state.get_progress()
        if not progress['is_complete']:
            return jsonify({
                'success': False,
                'error': 'Please complete all predictions before submitting.',
                'progress': progress,
            }), 400
        return jsonify({'success': True, 'predictions': state.to_dict()})


@app.route('/api/predictions/score', methods=['GET'])
def api_score_predictions():
    """Score the session bracket against the official results reported so far."""
    results = load_results()
    with _bracket_lock:
        state = get_bracket_state(create=False)
        score = score_predictions(state.to_dict(), results, state.graph)
        return jsonify({'success': True, **score})


def _get_leaderboard(settings=None):
    settings = settings or load_settings()
    return build_leaderboard(load_entries(), load_results(), DEFAULT_GRAPH,
                             int(settings['tiebreaker_min']), int(settings['tiebreaker_max']))


@app.route('/api/leaderboard', methods=['GET'])
def api_leaderboard():
    """Ranked leaderboard, one page at a time."""
    settings = load_settings()
    per_page = int(settings['items_per_page'])
    page = request.args.get('page', 1, type=int)
    wallet = request.args.get('wallet') or None

    entries = _get_leaderboard(settings)
    page_entries, total_pages = paginate(entries, page, per_page)
    current_page = max(1, min(page, total_pages or 1))
    user_entry = find_user_entry(entries, wallet)

    return jsonify({
        'entries': [entry.to_dict() for entry in page_entries],
        'page': current_page,
        'total_pages': total_pages,
        'total_entries': len(entries),
        'page_numbers': get_page_numbers(current_page, total_pages),
        'user_entry': user_entry.to_dict() if user_entry else None,
    })


@app.route('/api/leaderboard/me', methods=['GET'])
def api_leaderboard_me():
    """Locate the connected wallet's entry and the page it is on."""
    wallet = request.args.get('wallet') or None
    if not wallet:
        return jsonify({'success': False, 'error': 'Connect your wallet to find your rank.'}), 400

    settings = load_settings()
    per_page = int(settings['items_per_page'])
    entries = _get_leaderboard(settings)
    user_entry = find_user_entry(entries, wallet)
    if user_entry is None:
        return jsonify({'success': False, 'error': 'No entry found for this wallet.'}), 404

    return jsonify({
        'success': True,
        'entry': user_entry.to_dict(),
        'page': get_user_page(entries, wallet, per_page),
    })


if __name__ == '__main__':
    app.run(debug=True, port=5000)
