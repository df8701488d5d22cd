"""
Flask web application for the badminton session organizer.

JSON API over the core: admins create events and reconcile court usage,
anyone may register for an upcoming event, and bills are computed on demand.
"""
import os
import re
from datetime import datetime, timedelta
from functools import wraps

import yaml
from filelock import FileLock, Timeout
from flask import Flask, jsonify, request, session

from core import matching, registration
from core.billing import editable_times
from core.errors import (
    AlreadyCancelled, CapacityInvariantViolation, NotFoundError, OrganizerError,
    PermissionDenied, PersistenceFailure, ValidationError,
)
from core.events import EventManager
from core.models import Actor
from storage import YamlEventStore, load_settings

app = Flask(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('BADMINTON_DATA_DIR', os.path.join(BASE_DIR, 'data'))


def _get_or_create_secret_key() -> bytes:
    """Get SECRET_KEY from env, or generate and persist to file."""
    env_key = os.environ.get('SECRET_KEY')
    if env_key:
        return env_key.encode() if isinstance(env_key, str) else env_key
    key_file = os.path.join(DATA_DIR, '.secret_key')
    if os.path.exists(key_file):
        with open(key_file, 'rb') as f:
            return f.read()
    key = os.urandom(24)
    os.makedirs(os.path.dirname(key_file), exist_ok=True)
    with open(key_file, 'wb') as f:
        f.write(key)
    return key


app.secret_key = _get_or_create_secret_key()
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(days=30)

ERROR_STATUS = [
    (ValidationError, 400),
    (PermissionDenied, 403),
    (NotFoundError, 404),
    (AlreadyCancelled, 409),
    (CapacityInvariantViolation, 500),
    (PersistenceFailure, 503),
]


def _users_file() -> str:
    return os.path.join(DATA_DIR, 'users.yaml')


def _data_lock() -> FileLock:
    """One mutation at a time across the whole data directory."""
    os.makedirs(DATA_DIR, exist_ok=True)
    return FileLock(os.path.join(DATA_DIR, '.lock'), timeout=10)


def load_users() -> list:
    """Load user registry from YAML."""
    path = _users_file()
    if not os.path.exists(path):
        return []
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        return data.get('users', []) if data else []
    except (OSError, yaml.YAMLError) as e:
        app.logger.warning(f'Failed to parse {path}: {e}')
        return []


def save_users(users: list):
    """Save user registry to YAML."""
    os.makedirs(DATA_DIR, exist_ok=True)
    with open(_users_file(), 'w', encoding='utf-8') as f:
        yaml.dump({'users': users}, f, default_flow_style=False)


def create_user(username: str, password: str, is_admin: bool = False) -> tuple:
    """Create a new user. Returns (success, message)."""
    from werkzeug.security import generate_password_hash
    username = username.lower().strip()
    if not re.match(r'^[a-z0-9][a-z0-9-]*$', username) or len(username) < 2:
        return False, 'Username must be at least 2 characters: letters, numbers, hyphens.'
    if len(password) < 4:
        return False, 'Password must be at least 4 characters.'
    with _data_lock():
        users = load_users()
        if any(u['username'] == username for u in users):
            return False, 'Username already taken.'
        users.append({
            'username': username,
            'password_hash': generate_password_hash(password),
            'role': 'admin' if is_admin else 'user',
            'created': datetime.now().isoformat()
        })
        save_users(users)
    return True, 'Account created successfully.'


def authenticate_user(username: str, password: str) -> bool:
    """Check username/password. Returns True if valid."""
    from werkzeug.security import check_password_hash
    for u in load_users():
        if u['username'] == username.lower().strip():
            return check_password_hash(u['password_hash'], password)
    return False


def is_admin_user(username) -> bool:
    if not username:
        return False
    return any(u['username'] == username and u.get('role') == 'admin' for u in load_users())


def current_actor() -> Actor:
    """Identity of the caller: logged-in user (maybe admin) or anonymous."""
    username = session.get('user')
    return Actor(user_id=username, is_admin=is_admin_user(username),
                 player_ids=session.get('my_players', []))


def login_required(f):
    """Reject anonymous callers."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user' not in session:
            return jsonify({'success': False, 'error': 'Login required.', 'code': 'login_required'}), 401
        return f(*args, **kwargs)
    return decorated_function


def get_manager() -> EventManager:
    """Fresh manager over the on-disk state."""
    settings = load_settings(DATA_DIR)
    return EventManager(YamlEventStore(DATA_DIR), settings)


def _payload() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return request.form.to_dict()
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object.')
    return data


def _flag(value, default=None):
    """Booleans from JSON or form posts; form values arrive as strings like 'false'."""
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def event_to_json(event) -> dict:
    data = event.to_dict()
    data['capacity'] = registration.capacity_summary(event)
    data['is_incomplete'] = event.is_incomplete
    return data


@app.errorhandler(OrganizerError)
def handle_organizer_error(error):
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            break
    else:
        status = 400
    if status >= 500:
        app.logger.error(f'{error.code}: {error.message}')
    return jsonify(error.to_dict()), status


@app.errorhandler(Timeout)
def handle_lock_timeout(error):
    app.logger.error(f'Data lock timed out: {error}')
    return jsonify(PersistenceFailure('The data store is busy, please retry.').to_dict()), 503


# Identity

@app.route('/login', methods=['POST'])
def login_page():
    """Log in with username and password."""
    data = _payload()
    username = data.get('username', '')
    if authenticate_user(username, data.get('password', '')):
        session['user'] = username.lower().strip()
        session.permanent = True
        return jsonify({'success': True, 'user': session['user'], 'is_admin': is_admin_user(session['user'])})
    return jsonify({'success': False, 'error': 'Invalid username or password.'}), 401


@app.route('/signup', methods=['POST'])
def signup_page():
    """Create a regular (non-admin) account and log in."""
    data = _payload()
    ok, msg = create_user(data.get('username', ''), data.get('password', ''))
    if not ok:
        return jsonify({'success': False, 'error': msg}), 400
    session['user'] = data.get('username', '').lower().strip()
    session.permanent = True
    return jsonify({'success': True, 'message': msg})


@app.route('/logout')
def logout():
    """Clear session."""
    session.clear()
    return jsonify({'success': True})


@app.route('/api/me')
def api_me():
    actor = current_actor()
    return jsonify({'user': actor.user_id, 'is_admin': actor.is_admin,
                    'my_players': sorted(actor.player_ids)})


# Events

@app.route('/api/events', methods=['GET'])
def api_list_events():
    """Upcoming and completed events plus dashboard totals. Admins also see incomplete events."""
    manager = get_manager()
    data = {
        'upcoming': [event_to_json(e) for e in manager.upcoming()],
        'completed': [event_to_json(e) for e in manager.completed()],
        'summary': manager.dashboard_summary(),
    }
    if current_actor().is_admin:
        data['incomplete'] = [event_to_json(e) for e in manager.incomplete()]
    return jsonify(data)


@app.route('/api/events/<event_id>', methods=['GET'])
def api_get_event(event_id):
    return jsonify(event_to_json(get_manager().get_event(event_id)))


@app.route('/api/events', methods=['POST'])
@login_required
def api_create_event():
    """Create an event (admin only)."""
    with _data_lock():
        event = get_manager().create_event(_payload(), current_actor())
    app.logger.info(f'Event {event.id} created by {session.get("user")}')
    return jsonify({'success': True, 'event': event_to_json(event)})


@app.route('/api/events/<event_id>/update', methods=['POST'])
@login_required
def api_update_event(event_id):
    """Update scalar event fields (admin only)."""
    with _data_lock():
        event = get_manager().update_event(event_id, _payload(), current_actor())
    return jsonify({'success': True, 'event': event_to_json(event)})


@app.route('/api/events/<event_id>/retry-save', methods=['POST'])
@login_required
def api_retry_save(event_id):
    """
    Rewrite an event after an earlier persistence failure (admin only).
    Post the event's courts to repair an event whose courts were never saved.
    """
    courts = _payload().get('courts')
    with _data_lock():
        event = get_manager().persist(event_id, courts, current_actor())
    app.logger.info(f'Event {event_id} resaved by {session.get("user")}')
    return jsonify({'success': True, 'event': event_to_json(event)})


# Registration

@app.route('/api/events/<event_id>/end-times', methods=['GET'])
def api_end_times(event_id):
    """'Play until' options for the registration form."""
    event = get_manager().get_event(event_id)
    step = load_settings(DATA_DIR).get('time_option_step_minutes', 30)
    return jsonify({'end_times': registration.available_end_times(event, step)})


@app.route('/api/events/<event_id>/register', methods=['POST'])
def api_register(event_id):
    """Register for an event (login not required). Full events put the player on the waitlist."""
    data = _payload()
    draft = {
        'name': data.get('name', ''),
        'email': (data.get('email') or '').strip() or None,
        'start_time': data.get('start_time') or None,
        'end_time': data.get('end_time', ''),
    }
    with _data_lock():
        player = get_manager().register_player(event_id, draft, current_actor())
    session['my_players'] = session.get('my_players', []) + [player.id]
    return jsonify({'success': True, 'player': player.to_dict(), 'status': player.status})


@app.route('/api/events/<event_id>/cancel', methods=['POST'])
def api_cancel(event_id):
    """Cancel a registration; the first waitlisted player takes the freed slot."""
    data = _payload()
    player_id = str(data.get('player_id', '')).strip()
    if not player_id:
        return jsonify({'success': False, 'error': 'Player id is required.'}), 400
    is_event_day = _flag(data.get('is_event_day'))
    with _data_lock():
        promoted = get_manager().cancel_player(event_id, player_id, current_actor(),
                                               is_event_day=is_event_day)
    return jsonify({'success': True, 'promoted': promoted.to_dict() if promoted else None})


@app.route('/api/events/<event_id>/absent', methods=['POST'])
@login_required
def api_mark_absent(event_id):
    """Mark a registered player as a no-show (admin only)."""
    data = _payload()
    with _data_lock():
        player = get_manager().mark_absent(event_id, str(data.get('player_id', '')), current_actor(),
                                           absent=_flag(data.get('absent'), True))
    return jsonify({'success': True, 'player': player.to_dict()})


# Court reconciliation

def _court_index(data) -> int:
    try:
        return int(data.get('court_index'))
    except (TypeError, ValueError):
        raise ValidationError('Court index must be a number.')


@app.route('/api/events/<event_id>/courts/add', methods=['POST'])
@login_required
def api_add_court(event_id):
    with _data_lock():
        court = get_manager().add_court(event_id, current_actor())
    return jsonify({'success': True, 'court': court.to_dict()})


@app.route('/api/events/<event_id>/courts/remove', methods=['POST'])
@login_required
def api_remove_court(event_id):
    index = _court_index(_payload())
    with _data_lock():
        court = get_manager().remove_court(event_id, index, current_actor())
    return jsonify({'success': True, 'removed': court.to_dict()})


@app.route('/api/events/<event_id>/courts/actual', methods=['POST'])
@login_required
def api_set_actual_window(event_id):
    """Record when a court was actually used (admin only)."""
    data = _payload()
    index = _court_index(data)
    with _data_lock():
        court = get_manager().set_actual_window(event_id, index, data.get('actual_start_time'),
                                                data.get('actual_end_time'), current_actor())
    return jsonify({'success': True, 'court': court.to_dict()})


@app.route('/api/events/<event_id>/usage', methods=['POST'])
@login_required
def api_save_usage(event_id):
    """Save reconciled courts and shuttlecock count; the event becomes completed."""
    data = _payload()
    with _data_lock():
        event = get_manager().save_actual_usage(event_id, data.get('courts') or [],
                                                data.get('shuttlecocks_used', 0), current_actor())
    app.logger.info(f'Actual usage saved for event {event_id}')
    return jsonify({'success': True, 'event': event_to_json(event)})


# Billing

def _bill_json(event, lines, totals) -> dict:
    return {
        'success': True,
        'lines': [line.to_dict() for line in lines],
        'totals': totals,
        'editable_times': editable_times(event),
    }


@app.route('/api/events/<event_id>/bill', methods=['GET'])
def api_bill(event_id):
    """Itemised cost split for the event's Registered players."""
    manager = get_manager()
    lines, totals = manager.calculate_bill(event_id)
    return jsonify(_bill_json(manager.get_event(event_id), lines, totals))


@app.route('/api/events/<event_id>/bill/edit', methods=['POST'])
@login_required
def api_edit_bill(event_id):
    """Save a player's corrected times and return the recomputed bill (admin only)."""
    data = _payload()
    with _data_lock():
        manager = get_manager()
        lines, totals = manager.edit_bill_player_window(
            event_id, str(data.get('player_id', '')), current_actor(),
            start_time=data.get('start_time') or None,
            end_time=data.get('end_time') or None,
        )
    return jsonify(_bill_json(manager.get_event(event_id), lines, totals))


@app.route('/api/events/<event_id>/pairs', methods=['POST'])
def api_pairs(event_id):
    """Random pairs of attending players. Different on every call."""
    event = get_manager().get_event(event_id)
    groups = matching.pair_players(event.attending_players())
    return jsonify({'success': True,
                    'pairs': [[{'id': p.id, 'name': p.name} for p in group] for group in groups]})


if __name__ == '__main__':
    app.run(debug=True)
