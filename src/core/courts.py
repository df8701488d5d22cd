"""
Court reconciliation: record what was actually played per court while
keeping the original reservation.
"""
import logging

from core.errors import CourtNotFound, MinimumCourtViolation, ValidationError
from core.models import COMPLETED, Court
from core.timeutils import format_time, parse_time

logger = logging.getLogger(__name__)

DEFAULT_COURT_START = '20:00'
DEFAULT_COURT_END = '22:00'


def set_actual_window(court, actual_start, actual_end):
    """
    Store the actual usage of a court. The actual window may be longer or
    shorter than the reservation; only its own ordering is checked.
    """
    if parse_time(actual_end) <= parse_time(actual_start):
        raise ValidationError(f'Court {court.court_number}: actual end must be after actual start.')
    court.actual_start_time = actual_start
    court.actual_end_time = actual_end
    return court


def clear_actual_window(court):
    court.actual_start_time = None
    court.actual_end_time = None
    return court


def get_court(event, index):
    if not 0 <= index < len(event.courts):
        raise CourtNotFound(f'No court at position {index}.')
    return event.courts[index]


def add_court(event, default_start=DEFAULT_COURT_START, default_end=DEFAULT_COURT_END):
    """Append a court numbered after the highest existing one, mirroring the first court's reservation."""
    next_number = max((c.court_number for c in event.courts), default=0) + 1
    if event.courts:
        template = event.courts[0]
        court = Court(next_number, template.start_time, template.end_time)
    else:
        court = Court(next_number, default_start, default_end)
    event.courts.append(court)
    logger.info('Added court %d to event %s', court.court_number, event.id)
    return court


def remove_court(event, index):
    """Remove the court at ``index``; an event always keeps at least one court."""
    court = get_court(event, index)
    if len(event.courts) <= 1:
        raise MinimumCourtViolation('An event needs at least one court.')
    event.courts.pop(index)
    logger.info('Removed court %d from event %s', court.court_number, event.id)
    return court


def validate_courts(courts):
    """At least one court, unique numbers, well-ordered windows."""
    if not courts:
        raise MinimumCourtViolation('An event needs at least one court.')
    numbers = [c.court_number for c in courts]
    if len(numbers) != len(set(numbers)):
        raise ValidationError('Court numbers must be unique.')
    for court in courts:
        if court.actual_start_time or court.actual_end_time:
            start, end = court.effective_window()
            if parse_time(end) <= parse_time(start):
                raise ValidationError(f'Court {court.court_number}: actual end must be after actual start.')


def global_play_window(courts):
    """(earliest effective start, latest effective end) over all courts, as 'HH:MM'."""
    if not courts:
        raise MinimumCourtViolation('An event needs at least one court.')
    start = min(parse_time(c.effective_start) for c in courts)
    end = max(parse_time(c.effective_end) for c in courts)
    return format_time(start), format_time(end)


def save_actual_usage(event, courts, shuttlecocks_used):
    """Replace the courts with their reconciled versions and mark the event completed."""
    validate_courts(courts)
    try:
        shuttlecocks_used = int(shuttlecocks_used)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f'Shuttlecocks used must be a whole number, got {shuttlecocks_used!r}.')
    if shuttlecocks_used < 0:
        raise ValidationError('Shuttlecocks used cannot be negative.')
    event.courts = list(courts)
    event.shuttlecocks_used = shuttlecocks_used
    event.status = COMPLETED
    logger.info('Saved actual usage for event %s: %d courts, %d shuttlecocks',
                event.id, len(event.courts), event.shuttlecocks_used)
    return event
