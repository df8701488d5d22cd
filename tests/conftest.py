"""
Shared pytest fixtures for the badminton organizer tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os
import yaml
from datetime import datetime, timedelta

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
os.environ.setdefault('SECRET_KEY', 'test-secret-key')

from core.errors import PersistenceFailure
from core.models import Court, Event, Player, REGISTERED, WAITLIST, CANCELLED, Actor

BASE_TIME = datetime(2026, 3, 1, 9, 0, 0)


def make_player(pid, end_time='22:00', start_time=None, status=REGISTERED, minutes=0, **kwargs):
    """Player registered ``minutes`` after BASE_TIME."""
    return Player(id=pid, name=pid.upper(), end_time=end_time, start_time=start_time,
                  registered_at=BASE_TIME + timedelta(minutes=minutes), status=status, **kwargs)


def make_event(courts=None, players=None, max_players=4, rate=150, price=20, shuttlecocks=0, **kwargs):
    """Event with one 20:00-22:00 court unless courts are given."""
    if courts is None:
        courts = [Court(1, '20:00', '22:00')]
    return Event(id='evt1', name='Weekly Session', date='2026-03-01', venue='Sports Hall',
                 max_players=max_players, shuttlecock_price=price, court_hourly_rate=rate,
                 courts=courts, players=players or [], shuttlecocks_used=shuttlecocks, **kwargs)


class FakeStore:
    """In-memory persistence collaborator that records every call."""

    def __init__(self, events=None, fail_on=()):
        self.events = events or []
        self.fail_on = set(fail_on)
        self.calls = []

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail_on:
            raise PersistenceFailure(f'{name} failed')

    def load_events(self):
        return list(self.events)

    def save_new_event(self, event):
        self._record('save_new_event', event.id)
        return event.id

    def save_courts(self, event_id, courts):
        self._record('save_courts', event_id, len(courts))

    def save_players(self, event_id, players):
        self._record('save_players', event_id, len(players))

    def update_event_fields(self, event_id, partial):
        self._record('update_event_fields', event_id, dict(partial))


@pytest.fixture
def admin():
    return Actor(user_id='admin', is_admin=True)


@pytest.fixture
def member():
    return Actor(user_id='alice', is_admin=False)


@pytest.fixture
def sample_event():
    """One court 20:00-22:00, room for four players, rate 150, shuttle 20."""
    return make_event()


@pytest.fixture
def event_draft():
    return {
        'name': 'Thursday Night',
        'date': '2026-03-05',
        'venue': 'Sports Hall',
        'max_players': 4,
        'shuttlecock_price': 20,
        'court_hourly_rate': 150,
        'courts': [{'start_time': '20:00', 'end_time': '22:00'}],
    }


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch):
    """Empty data directory with an admin and a regular user, wired into the app module."""
    import app as app_module

    users_file = tmp_path / "users.yaml"
    users_file.write_text(yaml.dump({'users': [
        {'username': 'admin', 'password_hash': 'unused', 'role': 'admin', 'created': '2026-01-01'},
        {'username': 'alice', 'password_hash': 'unused', 'role': 'user', 'created': '2026-01-01'},
    ]}, default_flow_style=False))

    monkeypatch.setattr(app_module, 'DATA_DIR', str(tmp_path))
    return str(tmp_path)


@pytest.fixture
def client():
    """Anonymous test client."""
    from app import app
    app.config['TESTING'] = True
    return app.test_client()


@pytest.fixture
def admin_client():
    """Test client logged in as the admin user."""
    from app import app
    app.config['TESTING'] = True
    client = app.test_client()
    with client.session_transaction() as sess:
        sess['user'] = 'admin'
    return client
