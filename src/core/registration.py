"""
Capacity and waitlist management.

Keeps the Registered/Waitlist split of an event's players within
``max_players``. Promotion is FIFO by registration timestamp; equal
timestamps keep insertion order.
"""
import logging
import uuid
from datetime import datetime

from core.errors import AlreadyCancelled, CapacityInvariantViolation, ValidationError
from core.models import CANCELLED, REGISTERED, WAITLIST, Player
from core.timeutils import format_time, parse_time, step_times

logger = logging.getLogger(__name__)


def check_capacity(event):
    """Raise CapacityInvariantViolation if more players are Registered than allowed."""
    registered = len(event.registered_players())
    if registered > event.max_players:
        logger.error('Capacity invariant violated for event %s: %d registered, max %d',
                     event.id, registered, event.max_players)
        raise CapacityInvariantViolation(
            f'Event {event.id} has {registered} registered players but allows {event.max_players}.')


def register(event, draft, now=None):
    """
    Add a player to the event from a draft dict (name, end_time and
    optionally start_time, email, user_id, id).

    The player is Registered while there is room and goes to the Waitlist
    once ``max_players`` are registered. Draft validation is the caller's job.
    """
    status = WAITLIST if event.is_full else REGISTERED
    player = Player(
        id=draft.get('id') or uuid.uuid4().hex,
        name=draft['name'],
        end_time=draft['end_time'],
        start_time=draft.get('start_time'),
        email=draft.get('email'),
        registered_at=now or datetime.now(),
        status=status,
        user_id=draft.get('user_id'),
    )
    event.players.append(player)
    logger.info('Player %s joined event %s as %s', player.name, event.id, status)
    check_capacity(event)
    return player


def next_in_waitlist(event):
    """Earliest waitlisted player, or None."""
    waitlist = event.waitlist_players()
    if not waitlist:
        return None
    # sorted() is stable, so equal timestamps keep insertion order
    return sorted(waitlist, key=lambda p: p.registered_at)[0]


def promote_next(event):
    """Move the earliest waitlisted player up if a slot is open."""
    if event.is_full:
        return None
    candidate = next_in_waitlist(event)
    if candidate is None:
        return None
    candidate.status = REGISTERED
    logger.info('Promoted %s from waitlist in event %s', candidate.name, event.id)
    return candidate


def cancel(event, player_id, is_event_day=False):
    """
    Cancel a player's registration and promote at most one waitlisted
    player into the freed slot. Returns the promoted player (or None).

    Raises PlayerNotFound for unknown ids and AlreadyCancelled when the
    player was cancelled before; neither changes any state.
    """
    player = event.find_player(player_id)
    if player.status == CANCELLED:
        raise AlreadyCancelled(f'{player.name} is already cancelled.')

    was_registered = player.status == REGISTERED
    player.status = CANCELLED
    # Waitlisted players never held a slot, so they are never fined
    player.cancelled_on_event_day = bool(is_event_day) and was_registered
    player.absent = False
    logger.info('Player %s cancelled from event %s (event day: %s)', player.name, event.id, is_event_day)

    promoted = promote_next(event) if was_registered else None
    check_capacity(event)
    return promoted


def fill_open_slots(event):
    """Promote waitlisted players one by one until the event is full."""
    promoted = []
    while True:
        player = promote_next(event)
        if player is None:
            break
        promoted.append(player)
    check_capacity(event)
    return promoted


def mark_absent(event, player_id, absent=True):
    """Flag a Registered player as a no-show (or clear the flag)."""
    player = event.find_player(player_id)
    if player.status != REGISTERED:
        raise ValidationError(f'Only registered players can be marked absent ({player.name} is {player.status}).')
    player.absent = bool(absent)
    logger.info('Player %s absent=%s in event %s', player.name, player.absent, event.id)
    return player


def available_end_times(event, step_minutes=30):
    """'Play until' options: every step after each court's reserved start, merged and sorted."""
    times = set()
    for court in event.courts:
        times.update(step_times(court.start_time, court.end_time, step_minutes))
    return [format_time(m) for m in sorted(parse_time(t) for t in times)]


def capacity_summary(event):
    registered = len(event.registered_players())
    return {
        'registered': registered,
        'waitlist': len(event.waitlist_players()),
        'cancelled': len(event.cancelled_players()),
        'max_players': event.max_players,
        'is_full': registered >= event.max_players,
    }
