"""
File-backed persistence for events and settings.

Layout under the data directory:

    settings.yaml
    events/<event_id>/event.yaml    scalar event fields
    events/<event_id>/courts.csv    one row per court
    events/<event_id>/players.yaml  player list

Each write is a separate call with no transaction spanning them, so an
event directory may end up without courts.csv; such events load with an
empty court list and are treated as incomplete by the core.
"""
import csv
import logging
import os

import yaml
from filelock import FileLock, Timeout

from core.errors import PersistenceFailure
from core.models import Court, Event, Player

logger = logging.getLogger(__name__)

COURT_FIELDS = ['court_number', 'start_time', 'end_time', 'actual_start_time', 'actual_end_time']


def get_default_settings():
    """Get default organizer settings."""
    return {
        'late_cancellation_fine': 100,
        'default_max_players': 12,
        'default_shuttlecock_price': 20,
        'default_court_hourly_rate': 150,
        'default_court_start': '20:00',
        'default_court_end': '22:00',
        'time_option_step_minutes': 30,
    }


def load_settings(data_dir):
    """Load settings.yaml, merging with defaults."""
    defaults = get_default_settings()
    path = os.path.join(data_dir, 'settings.yaml')
    if not os.path.exists(path):
        return defaults
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f'Failed to parse {path}: {e}')
        return defaults
    if not data:
        return defaults
    for key, value in defaults.items():
        if key not in data:
            data[key] = value
    return data


def save_settings(data_dir, settings):
    """Save settings to YAML file."""
    os.makedirs(data_dir, exist_ok=True)
    with open(os.path.join(data_dir, 'settings.yaml'), 'w', encoding='utf-8') as f:
        yaml.dump(settings, f, default_flow_style=False)


class YamlEventStore:
    """Persistence collaborator for EventManager."""

    def __init__(self, data_dir, lock_timeout=10):
        self.data_dir = data_dir
        self.events_dir = os.path.join(data_dir, 'events')
        self.lock_timeout = lock_timeout

    def _event_dir(self, event_id):
        return os.path.join(self.events_dir, str(event_id))

    def _write(self, event_id, filename, writer):
        """Run writer(file) for events/<id>/<filename> under the event's lock."""
        event_dir = self._event_dir(event_id)
        path = os.path.join(event_dir, filename)
        try:
            os.makedirs(event_dir, exist_ok=True)
            with FileLock(os.path.join(event_dir, '.lock'), timeout=self.lock_timeout):
                with open(path, 'w', encoding='utf-8', newline='') as f:
                    writer(f)
        except (OSError, yaml.YAMLError, csv.Error, Timeout) as e:
            logger.error(f'Failed to write {path}: {e}')
            raise PersistenceFailure(f'Could not save {filename} for event {event_id}.') from e

    # Reads

    def load_events(self):
        """Load every event directory. Unreadable events are skipped with a warning."""
        if not os.path.isdir(self.events_dir):
            return []
        events = []
        for event_id in sorted(os.listdir(self.events_dir)):
            event_dir = self._event_dir(event_id)
            if not os.path.isdir(event_dir):
                continue
            try:
                event = self.load_event(event_id)
            except (OSError, yaml.YAMLError, csv.Error, KeyError, ValueError) as e:
                logger.warning(f'Skipping unreadable event {event_id}: {e}')
                continue
            if event is not None:
                events.append(event)
        return events

    def load_event(self, event_id):
        event_dir = self._event_dir(event_id)
        event_file = os.path.join(event_dir, 'event.yaml')
        if not os.path.exists(event_file):
            return None
        with open(event_file, 'r', encoding='utf-8') as f:
            fields = yaml.safe_load(f) or {}
        fields.setdefault('id', event_id)
        event = Event.from_dict(fields)
        event.courts = self._load_courts(event_dir)
        event.players = self._load_players(event_dir)
        if event.is_incomplete:
            logger.warning(f'Event {event_id} has no courts; treating it as incomplete')
        return event

    def _load_courts(self, event_dir):
        path = os.path.join(event_dir, 'courts.csv')
        if not os.path.exists(path):
            return []
        courts = []
        with open(path, 'r', encoding='utf-8') as f:
            for row in csv.DictReader(f):
                courts.append(Court(
                    court_number=int(row['court_number']),
                    start_time=row['start_time'].strip(),
                    end_time=row['end_time'].strip(),
                    actual_start_time=(row.get('actual_start_time') or '').strip() or None,
                    actual_end_time=(row.get('actual_end_time') or '').strip() or None,
                ))
        return courts

    def _load_players(self, event_dir):
        path = os.path.join(event_dir, 'players.yaml')
        if not os.path.exists(path):
            return []
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        if not data or 'players' not in data:
            return []
        return [Player.from_dict(p) for p in data['players']]

    # Writes

    def save_new_event(self, event):
        self._write(event.id, 'event.yaml',
                    lambda f: yaml.dump(event.fields_dict(), f, default_flow_style=False))
        return event.id

    def save_courts(self, event_id, courts):
        def write_csv(f):
            writer = csv.DictWriter(f, fieldnames=COURT_FIELDS)
            writer.writeheader()
            for court in courts:
                row = court.to_dict()
                writer.writerow({k: '' if row[k] is None else row[k] for k in COURT_FIELDS})
        self._write(event_id, 'courts.csv', write_csv)

    def save_players(self, event_id, players):
        payload = {'players': [p.to_dict() for p in players]}
        self._write(event_id, 'players.yaml',
                    lambda f: yaml.dump(payload, f, default_flow_style=False, sort_keys=False))

    def update_event_fields(self, event_id, partial):
        """Merge ``partial`` into event.yaml."""
        event_file = os.path.join(self._event_dir(event_id), 'event.yaml')
        try:
            with open(event_file, 'r', encoding='utf-8') as f:
                fields = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f'Failed to read {event_file}: {e}')
            raise PersistenceFailure(f'Could not update event {event_id}.') from e
        fields.update(partial)
        self._write(event_id, 'event.yaml',
                    lambda f: yaml.dump(fields, f, default_flow_style=False))
