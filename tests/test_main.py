"""
Tests for the command line entry point.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from core.models import Court
from main import main
from storage import YamlEventStore
from conftest import make_event, make_player


@pytest.fixture
def data_dir(tmp_path):
    """Data directory holding one billed event."""
    event = make_event(shuttlecocks=10, players=[
        make_player('p1', start_time='20:00', end_time='22:00'),
        make_player('p2', start_time='21:00', end_time='22:00', minutes=1),
    ], courts=[Court(1, '20:00', '22:00', actual_start_time='20:00', actual_end_time='22:00')])
    store = YamlEventStore(str(tmp_path))
    store.save_new_event(event)
    store.save_courts(event.id, event.courts)
    store.save_players(event.id, event.players)
    return str(tmp_path)


class TestCli:
    """Tests for the events, bill and create-user commands."""

    def test_events_lists_upcoming(self, data_dir, capsys):
        assert main(['--data-dir', data_dir, 'events']) == 0
        out = capsys.readouterr().out
        assert 'Weekly Session @ Sports Hall' in out
        assert '2/4 players' in out

    def test_events_warns_about_incomplete(self, tmp_path, capsys):
        YamlEventStore(str(tmp_path)).save_new_event(make_event(courts=[]))
        assert main(['--data-dir', str(tmp_path), 'events']) == 0
        captured = capsys.readouterr()
        assert 'has no courts' in captured.err
        assert '(none)' in captured.out

    def test_bill(self, data_dir, capsys):
        assert main(['--data-dir', data_dir, 'bill', 'evt1', '--hourly']) == 0
        out = capsys.readouterr().out
        assert '225.00' in out
        assert '75.00' in out
        assert '21:00-22:00: 75.00' in out
        assert '500.00' in out

    def test_bill_unknown_event(self, data_dir, capsys):
        assert main(['--data-dir', data_dir, 'bill', 'missing']) == 1
        assert 'not found' in capsys.readouterr().err

    def test_create_user(self, temp_data_dir, capsys):
        from app import authenticate_user, is_admin_user
        assert main(['--data-dir', temp_data_dir, 'create-user', 'coach', 'secret', '--admin']) == 0
        assert 'created' in capsys.readouterr().out
        assert authenticate_user('coach', 'secret')
        assert is_admin_user('coach')

    def test_create_duplicate_user(self, temp_data_dir, capsys):
        assert main(['--data-dir', temp_data_dir, 'create-user', 'alice', 'secret']) == 1
