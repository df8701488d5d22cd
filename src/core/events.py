"""
Event aggregate: the entry point the application shell talks to.

EventManager keeps the loaded events in memory, checks who may do what,
delegates the actual rules to registration/courts/billing, and hands each
resulting state to the persistence collaborator. A PersistenceFailure
leaves the in-memory state in place so the caller can retry ``persist``.
"""
import logging
import math
import uuid
from datetime import date as date_cls

from core import billing, courts as court_ops, registration
from core.errors import EventNotFound, IncompleteEventError, PermissionDenied, ValidationError
from core.models import (
    COMPLETED, EVENT_STATUSES, UPCOMING, Actor, Court, Event,
)
from core.timeutils import is_valid_time, parse_time

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('name', 'date', 'venue', 'max_players', 'shuttlecock_price',
                   'court_hourly_rate', 'shuttlecocks_used', 'status')


def _require_admin(actor, action):
    if actor is None or not actor.is_admin:
        raise PermissionDenied(f'Only an admin may {action}.')


def _non_negative_number(value, label):
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{label} must be a number.')
    if not math.isfinite(number):
        raise ValidationError(f'{label} must be a finite number.')
    if number < 0:
        raise ValidationError(f'{label} cannot be negative.')
    return int(number) if number == int(number) else number


def _int_at_least(value, minimum, label):
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f'{label} must be a whole number.')
    if number < minimum:
        raise ValidationError(f'{label} must be at least {minimum}.')
    return number


def validate_event_fields(fields):
    """Normalise and check a (partial) dict of scalar event fields."""
    clean = {}
    for key, value in fields.items():
        if key not in EDITABLE_FIELDS:
            raise ValidationError(f'Unknown event field: {key}')
        if key in ('name', 'venue', 'date'):
            value = str(value or '').strip()
            if not value:
                raise ValidationError(f'Event {key} is required.')
        elif key == 'max_players':
            value = _int_at_least(value, 2, 'Max players')
        elif key == 'shuttlecocks_used':
            value = _int_at_least(value, 0, 'Shuttlecocks used')
        elif key in ('shuttlecock_price', 'court_hourly_rate'):
            value = _non_negative_number(value, key.replace('_', ' ').capitalize())
        elif key == 'status' and value not in EVENT_STATUSES:
            raise ValidationError(f'Unknown event status: {value!r}')
        clean[key] = value
    return clean


def build_courts(court_drafts):
    """Courts from dicts; missing court numbers are assigned in order."""
    if court_drafts is not None and not isinstance(court_drafts, (list, tuple)):
        raise ValidationError('Courts must be a list.')
    built = []
    for position, draft in enumerate(court_drafts or [], start=1):
        if isinstance(draft, Court):
            built.append(draft)
            continue
        if not isinstance(draft, dict):
            raise ValidationError(f'Court {position}: expected an object with start and end times.')
        if not draft.get('start_time') or not draft.get('end_time'):
            raise ValidationError(f'Court {position}: start and end times are required.')
        built.append(Court(
            court_number=draft.get('court_number') or position,
            start_time=draft['start_time'],
            end_time=draft['end_time'],
            actual_start_time=draft.get('actual_start_time') or None,
            actual_end_time=draft.get('actual_end_time') or None,
        ))
    court_ops.validate_courts(built)
    return built


def validate_player_draft(draft):
    name = str(draft.get('name') or '').strip()
    if not name:
        raise ValidationError('Player name is required.')
    end_time = draft.get('end_time')
    if not end_time or not is_valid_time(end_time):
        raise ValidationError('A valid end time is required.')
    start_time = draft.get('start_time') or None
    if start_time is not None and parse_time(end_time) <= parse_time(start_time):
        raise ValidationError('End time must be after start time.')
    clean = dict(draft)
    clean['name'] = name
    clean['start_time'] = start_time
    return clean


class EventManager:
    def __init__(self, store=None, settings=None):
        self.store = store
        self.settings = settings or {}
        self.events = {}
        if store is not None:
            for event in store.load_events():
                self.events[event.id] = event

    @property
    def late_cancellation_fine(self):
        return self.settings.get('late_cancellation_fine', billing.DEFAULT_LATE_CANCELLATION_FINE)

    def get_event(self, event_id):
        try:
            return self.events[event_id]
        except KeyError:
            raise EventNotFound(f'Event {event_id} not found.')

    # Status subsets

    def _by_status(self, status):
        return [e for e in self.events.values() if e.status == status and not e.is_incomplete]

    def upcoming(self):
        return self._by_status(UPCOMING)

    def completed(self):
        return self._by_status(COMPLETED)

    def incomplete(self):
        return [e for e in self.events.values() if e.is_incomplete]

    def dashboard_summary(self):
        upcoming = self.upcoming()
        return {
            'upcoming_events': len(upcoming),
            'registered_players': sum(len(e.registered_players()) for e in upcoming),
            'courts': sum(len(e.courts) for e in upcoming),
            'completed_events': len(self.completed()),
        }

    # Event lifecycle

    def create_event(self, draft, actor):
        _require_admin(actor, 'create events')
        fields = validate_event_fields({
            'name': draft.get('name'),
            'date': draft.get('date'),
            'venue': draft.get('venue'),
            'max_players': draft.get('max_players', self.settings.get('default_max_players', 12)),
            'shuttlecock_price': draft.get('shuttlecock_price', self.settings.get('default_shuttlecock_price', 20)),
            'court_hourly_rate': draft.get('court_hourly_rate', self.settings.get('default_court_hourly_rate', 150)),
        })
        event = Event(id=uuid.uuid4().hex, courts=build_courts(draft.get('courts')),
                      created_by=actor.user_id, **fields)
        self.events[event.id] = event
        logger.info('Created event %s (%s) with %d courts', event.id, event.name, len(event.courts))
        if self.store is not None:
            # Two separate writes; a failure between them leaves an incomplete event on disk
            self.store.save_new_event(event)
            self.store.save_courts(event.id, event.courts)
        return event

    def update_event(self, event_id, partial, actor):
        _require_admin(actor, 'edit events')
        event = self.get_event(event_id)
        fields = validate_event_fields(partial)
        if 'max_players' in fields and fields['max_players'] < len(event.registered_players()):
            raise ValidationError(
                f'{len(event.registered_players())} players are registered; max players cannot be lower.')

        for key, value in fields.items():
            setattr(event, key, value)
        promoted = registration.fill_open_slots(event) if 'max_players' in fields else []
        if self.store is not None:
            self.store.update_event_fields(event.id, fields)
            if promoted:
                self.store.save_players(event.id, event.players)
        return event

    def persist(self, event_id, court_drafts=None, actor=None):
        """
        Write the whole event again (retry after a PersistenceFailure).

        An event loaded back without courts cannot be rebuilt from disk, so
        its courts must be supplied; they replace whatever the event holds.
        """
        _require_admin(actor, 'resave events')
        event = self.get_event(event_id)
        if court_drafts is not None:
            event.courts = build_courts(court_drafts)
        elif event.is_incomplete:
            raise IncompleteEventError(f'Event {event_id} has no courts; supply them to repair it.')
        logger.info('Rewriting event %s with %d courts', event.id, len(event.courts))
        if self.store is not None:
            self.store.update_event_fields(event.id, event.fields_dict())
            self.store.save_courts(event.id, event.courts)
            self.store.save_players(event.id, event.players)
        return event

    # Registration

    def register_player(self, event_id, draft, actor=None, now=None):
        event = self.get_event(event_id)
        if event.status != UPCOMING:
            raise ValidationError('Registration is only open for upcoming events.')
        clean = validate_player_draft(draft)
        clean['user_id'] = actor.user_id if actor is not None else None
        player = registration.register(event, clean, now=now)
        self._save_players(event)
        return player

    def cancel_player(self, event_id, player_id, actor=None, is_event_day=None, today=None):
        event = self.get_event(event_id)
        player = event.find_player(player_id)
        actor = actor or Actor()
        owns_entry = (player.user_id is not None and player.user_id == actor.user_id) \
            or player_id in actor.player_ids
        if not (actor.is_admin or owns_entry):
            raise PermissionDenied('You can only cancel your own registration.')
        if is_event_day is None:
            is_event_day = event.date == (today or date_cls.today()).isoformat()
        promoted = registration.cancel(event, player_id, is_event_day)
        self._save_players(event)
        return promoted

    def mark_absent(self, event_id, player_id, actor, absent=True):
        _require_admin(actor, 'mark absentees')
        event = self.get_event(event_id)
        player = registration.mark_absent(event, player_id, absent)
        self._save_players(event)
        return player

    # Court reconciliation

    def set_actual_window(self, event_id, court_index, actual_start, actual_end, actor):
        _require_admin(actor, 'reconcile court usage')
        event = self.get_event(event_id)
        court = court_ops.set_actual_window(court_ops.get_court(event, court_index), actual_start, actual_end)
        self._save_courts(event)
        return court

    def add_court(self, event_id, actor):
        _require_admin(actor, 'add courts')
        event = self.get_event(event_id)
        court = court_ops.add_court(event,
                                    self.settings.get('default_court_start', court_ops.DEFAULT_COURT_START),
                                    self.settings.get('default_court_end', court_ops.DEFAULT_COURT_END))
        self._save_courts(event)
        return court

    def remove_court(self, event_id, court_index, actor):
        _require_admin(actor, 'remove courts')
        event = self.get_event(event_id)
        court = court_ops.remove_court(event, court_index)
        self._save_courts(event)
        return court

    def save_actual_usage(self, event_id, court_drafts, shuttlecocks_used, actor):
        _require_admin(actor, 'save actual usage')
        event = self.get_event(event_id)
        court_ops.save_actual_usage(event, build_courts(court_drafts), shuttlecocks_used)
        if self.store is not None:
            self.store.save_courts(event.id, event.courts)
            self.store.update_event_fields(event.id, {'shuttlecocks_used': event.shuttlecocks_used,
                                                      'status': event.status})
        return event

    # Billing

    def calculate_bill(self, event_id):
        event = self.get_event(event_id)
        lines = billing.compute_bill(event, self.late_cancellation_fine)
        return lines, billing.bill_totals(lines)

    def edit_bill_player_window(self, event_id, player_id, actor, start_time=None, end_time=None):
        """Save edited bill times to the player, then recompute the bill from scratch."""
        _require_admin(actor, 'edit bills')
        event = self.get_event(event_id)
        billing.edit_player_window(event, player_id, start_time, end_time)
        self._save_players(event)
        return self.calculate_bill(event_id)

    def _save_players(self, event):
        if self.store is not None:
            self.store.save_players(event.id, event.players)

    def _save_courts(self, event):
        if self.store is not None:
            self.store.save_courts(event.id, event.courts)
