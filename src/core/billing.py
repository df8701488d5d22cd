"""
Cost allocation for a played session.

Court time is charged by simultaneous occupancy: the union of the courts'
effective windows is cut into hour buckets counted from the first court's
start (the last bucket may be shorter), and each bucket is further split
at every player start/end that falls inside it. For every slice:

    slice cost = court_hourly_rate * court-hours in use during the slice

and it is shared equally by the Registered players whose window covers the
start of the slice. A slice nobody covers costs nothing.

Shuttlecocks and the fine pool (same-day cancellations plus absentees,
times the per-incident fine) are split evenly across every Registered
player. Absentees keep their slot, so they pay like everyone else.
Each component is rounded to 2 decimals per player; the total is the sum
of the rounded components.
"""
import logging
from decimal import Decimal

from core.courts import global_play_window
from core.errors import IncompleteEventError, ValidationError
from core.models import CostLineItem, round_money
from core.timeutils import (
    MINUTES_PER_HOUR, clamp_to_hour_grid, format_time, hour_grid_points,
    nearest_after, nearest_before, overlap_minutes, parse_time, split_at,
)

logger = logging.getLogger(__name__)

DEFAULT_LATE_CANCELLATION_FINE = 100


def fine_incidents(event):
    """Same-day cancellations plus registered players marked absent."""
    same_day = [p for p in event.cancelled_players() if p.cancelled_on_event_day]
    absent = [p for p in event.registered_players() if p.absent]
    return same_day + absent


def _player_windows(players, default_start):
    return {p.id: p.window(default_start) for p in players}


def _court_minutes_in(courts, slice_start, slice_end):
    window = (format_time(slice_start), format_time(slice_end))
    return sum(overlap_minutes(court.effective_window(), window) for court in courts)


def allocate_court_fees(event, players):
    """
    Raw (unrounded) court fee per player id and per-bucket cost breakdown.

    Returns (fees, breakdown) where breakdown maps player id to a list of
    (bucket_start, bucket_end, cost) for the buckets the player shared.
    """
    event_start, event_end = (parse_time(t) for t in global_play_window(event.courts))
    windows = _player_windows(players, format_time(event_start))

    buckets = clamp_to_hour_grid(event_start, event_end)
    cut_points = [m for window in windows.values() for m in window]

    fees = {p.id: 0.0 for p in players}
    per_bucket = {p.id: {} for p in players}

    for bucket in buckets:
        for slice_start, slice_end in split_at([bucket], cut_points):
            present = [pid for pid, (start, end) in windows.items()
                       if start <= slice_start < end]
            if not present:
                logger.debug('Slice %s-%s has no players; not charged',
                             format_time(slice_start), format_time(slice_end))
                continue
            court_minutes = _court_minutes_in(event.courts, slice_start, slice_end)
            slice_cost = event.court_hourly_rate * court_minutes / MINUTES_PER_HOUR
            share = slice_cost / len(present)
            for pid in present:
                fees[pid] += share
                per_bucket[pid][bucket] = per_bucket[pid].get(bucket, 0.0) + share

    breakdown = {
        pid: [(b_start, b_end, cost) for (b_start, b_end), cost in sorted(entries.items())]
        for pid, entries in per_bucket.items()
    }
    return fees, breakdown


def compute_bill(event, late_cancellation_fine=DEFAULT_LATE_CANCELLATION_FINE):
    """
    Itemised bill for every Registered player of ``event``, absentees included.

    Pure: reads the event, never mutates it, and returns the same list of
    CostLineItem for the same inputs. An event with nobody registered gets
    an empty bill.
    """
    if event.is_incomplete:
        raise IncompleteEventError(f'Event {event.id} has no courts; cannot calculate costs.')
    if late_cancellation_fine < 0:
        raise ValidationError('Fine amount cannot be negative.')

    players = event.registered_players()
    if not players:
        logger.info('Event %s has no registered players; empty bill', event.id)
        return []

    fees, breakdown = allocate_court_fees(event, players)

    consumable_share = event.shuttlecocks_used * event.shuttlecock_price / len(players)
    fine_pool = len(fine_incidents(event)) * late_cancellation_fine
    fine_share = fine_pool / len(players)

    default_start = event.earliest_court_start()
    lines = []
    for player in players:
        hourly = [
            {'hour_window': f'{format_time(b_start)}-{format_time(b_end)}', 'cost': round_money(cost)}
            for b_start, b_end, cost in breakdown[player.id]
        ]
        lines.append(CostLineItem(
            player_id=player.id,
            name=player.name,
            start_time=player.start_time if player.start_time is not None else default_start,
            end_time=player.end_time,
            court_fee=round_money(fees[player.id]),
            consumable_fee=round_money(consumable_share),
            fine=round_money(fine_share),
            hourly_breakdown=hourly,
        ))

    logger.info('Bill for event %s: %d players, total %.2f',
                event.id, len(lines), sum(line.total for line in lines))
    return lines


def _column_sum(values):
    return round_money(sum(Decimal(str(v)) for v in values))


def bill_totals(lines):
    """Column sums of a bill (the totals row)."""
    return {
        'court_fee': _column_sum(line.court_fee for line in lines),
        'consumable_fee': _column_sum(line.consumable_fee for line in lines),
        'fine': _column_sum(line.fine for line in lines),
        'total': _column_sum(line.total for line in lines),
    }


def editable_times(event):
    """Hour-grid instants of the union window; the values a bill edit may use."""
    start, end = global_play_window(event.courts)
    return [format_time(m) for m in hour_grid_points(start, end)]


def edit_player_window(event, player_id, start_time=None, end_time=None):
    """
    Write new bill times back to a player.

    Both bounds must lie on the hour grid of the union window. Moving one
    bound past the other pushes the other to the nearest valid grid value.
    """
    player = event.find_player(player_id)
    grid = [parse_time(t) for t in editable_times(event)]
    current_start, current_end = player.window(format_time(grid[0]))

    for value in (start_time, end_time):
        if value is not None and parse_time(value) not in grid:
            raise ValidationError(f'{value} is not one of the available times.')

    if start_time is not None and end_time is not None:
        new_start, new_end = parse_time(start_time), parse_time(end_time)
        if new_end <= new_start:
            raise ValidationError('End time must be after start time.')
    elif start_time is not None:
        new_start, new_end = parse_time(start_time), current_end
        if new_end <= new_start:
            new_end = nearest_after(grid, new_start)
            if new_end is None:
                raise ValidationError('No valid end time after the chosen start time.')
    elif end_time is not None:
        new_start, new_end = current_start, parse_time(end_time)
        if new_end <= new_start:
            new_start = nearest_before(grid, new_end)
            if new_start is None:
                raise ValidationError('No valid start time before the chosen end time.')
    else:
        return player

    player.start_time = format_time(new_start)
    player.end_time = format_time(new_end)
    logger.info('Player %s window set to %s-%s', player.name, player.start_time, player.end_time)
    return player


def recalculate_after_edit(event, player_id, start_time=None, end_time=None,
                           late_cancellation_fine=DEFAULT_LATE_CANCELLATION_FINE):
    """Apply a bill edit to the player and recompute the whole bill from scratch."""
    edit_player_window(event, player_id, start_time, end_time)
    return compute_bill(event, late_cancellation_fine)
