"""
Tests for the YAML/CSV event store and settings loading.
"""
import pytest
import sys
import os
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from core.errors import PersistenceFailure
from core.models import Court, WAITLIST
from storage import YamlEventStore, get_default_settings, load_settings, save_settings
from conftest import make_event, make_player


@pytest.fixture
def store(tmp_path):
    return YamlEventStore(str(tmp_path))


def save_whole(store, event):
    store.save_new_event(event)
    store.save_courts(event.id, event.courts)
    store.save_players(event.id, event.players)


class TestEventStore:
    """Tests for saving and loading events."""

    def test_round_trip(self, store):
        event = make_event(
            courts=[Court(1, '20:00', '22:00', actual_start_time='20:15', actual_end_time='21:45'),
                    Court(2, '19:00', '21:00')],
            players=[make_player('a', start_time='20:00', email='a@example.com'),
                     make_player('w', status=WAITLIST, minutes=3)],
            shuttlecocks=4,
        )
        save_whole(store, event)
        loaded = store.load_events()
        assert len(loaded) == 1
        assert loaded[0].to_dict() == event.to_dict()

    def test_files_laid_out_per_event(self, store, tmp_path):
        save_whole(store, make_event())
        event_dir = tmp_path / 'events' / 'evt1'
        assert (event_dir / 'event.yaml').exists()
        assert (event_dir / 'courts.csv').read_text().startswith('court_number,start_time,end_time')
        assert 'players' in yaml.safe_load((event_dir / 'players.yaml').read_text())

    def test_event_without_courts_loads_incomplete(self, store):
        event = make_event()
        store.save_new_event(event)
        loaded = store.load_events()[0]
        assert loaded.courts == []
        assert loaded.is_incomplete is True

    def test_update_event_fields_merges(self, store):
        event = make_event()
        save_whole(store, event)
        store.update_event_fields(event.id, {'status': 'completed', 'shuttlecocks_used': 9})
        loaded = store.load_event(event.id)
        assert loaded.status == 'completed'
        assert loaded.shuttlecocks_used == 9
        assert loaded.venue == 'Sports Hall'

    def test_update_missing_event_fails(self, store):
        with pytest.raises(PersistenceFailure):
            store.update_event_fields('missing', {'status': 'completed'})

    def test_unreadable_event_skipped(self, store, tmp_path):
        save_whole(store, make_event())
        broken_dir = tmp_path / 'events' / 'broken'
        broken_dir.mkdir()
        (broken_dir / 'event.yaml').write_text('name: [unclosed')
        assert [e.id for e in store.load_events()] == ['evt1']

    def test_no_events_dir(self, store):
        assert store.load_events() == []

    def test_write_failure_raises_persistence_failure(self, tmp_path):
        # a file where the events directory should be
        (tmp_path / 'events').write_text('')
        store = YamlEventStore(str(tmp_path))
        with pytest.raises(PersistenceFailure):
            store.save_new_event(make_event())


class TestSettings:
    """Tests for settings.yaml handling."""

    def test_defaults_when_missing(self, tmp_path):
        assert load_settings(str(tmp_path)) == get_default_settings()

    def test_merge_with_defaults(self, tmp_path):
        save_settings(str(tmp_path), {'late_cancellation_fine': 50})
        settings = load_settings(str(tmp_path))
        assert settings['late_cancellation_fine'] == 50
        assert settings['default_court_hourly_rate'] == 150

    def test_corrupt_settings_fall_back(self, tmp_path):
        (tmp_path / 'settings.yaml').write_text('late_cancellation_fine: [')
        assert load_settings(str(tmp_path)) == get_default_settings()
