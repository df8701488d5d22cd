"""
Clock-time arithmetic for same-day sessions.

Times travel through the system as 'HH:MM' strings (what the forms and the
data files hold) and are converted to minutes since midnight for any math.
Windows are half-open: [start, end).
"""
from typing import List, Optional, Tuple

from core.errors import ValidationError

MINUTES_PER_HOUR = 60
END_OF_DAY = 24 * MINUTES_PER_HOUR


def parse_time(value) -> int:
    """Convert 'HH:MM' (or minutes already) to minutes since midnight."""
    if isinstance(value, bool):
        raise ValidationError(f'Invalid time: {value!r}')
    if isinstance(value, int):
        minutes = value
    else:
        parts = str(value).strip().split(':')
        if len(parts) != 2 or not parts[0].isdigit() or not parts[1].isdigit():
            raise ValidationError(f'Invalid time format: {value!r}')
        hours, mins = int(parts[0]), int(parts[1])
        if mins > 59:
            raise ValidationError(f'Invalid time value: {value!r}')
        minutes = hours * MINUTES_PER_HOUR + mins
    if not 0 <= minutes <= END_OF_DAY:
        raise ValidationError(f'Invalid time value: {value!r}')
    return minutes


def format_time(minutes: int) -> str:
    """Convert minutes since midnight back to 'HH:MM'."""
    return f'{minutes // MINUTES_PER_HOUR:02d}:{minutes % MINUTES_PER_HOUR:02d}'


def is_valid_time(value) -> bool:
    try:
        parse_time(value)
    except ValidationError:
        return False
    return True


def duration(start, end) -> float:
    """Length of [start, end) in hours. Never negative."""
    return max(0, parse_time(end) - parse_time(start)) / MINUTES_PER_HOUR


def overlaps(window_a: Tuple, window_b: Tuple) -> bool:
    """Half-open overlap test: a_start < b_end and b_start < a_end."""
    a_start, a_end = (parse_time(t) for t in window_a)
    b_start, b_end = (parse_time(t) for t in window_b)
    return a_start < b_end and b_start < a_end


def overlap_minutes(window_a: Tuple, window_b: Tuple) -> int:
    """Minutes shared by two windows (0 when they don't overlap)."""
    a_start, a_end = (parse_time(t) for t in window_a)
    b_start, b_end = (parse_time(t) for t in window_b)
    return max(0, min(a_end, b_end) - max(a_start, b_start))


def clamp_to_hour_grid(start, end) -> List[Tuple[int, int]]:
    """
    Split [start, end) into consecutive hour-long (start, end) minute pairs,
    counted from ``start``. The last slice keeps whatever is left, so
    20:00-22:30 gives 20:00-21:00, 21:00-22:00, 22:00-22:30.
    Returns [] when end <= start.
    """
    start_m, end_m = parse_time(start), parse_time(end)
    buckets = []
    cursor = start_m
    while cursor < end_m:
        bucket_end = min(cursor + MINUTES_PER_HOUR, end_m)
        buckets.append((cursor, bucket_end))
        cursor = bucket_end
    return buckets


def hour_grid_points(start, end) -> List[int]:
    """Every bucket boundary of the hour grid, including start and end."""
    buckets = clamp_to_hour_grid(start, end)
    if not buckets:
        return []
    return [b[0] for b in buckets] + [buckets[-1][1]]


def split_at(buckets: List[Tuple[int, int]], cut_points) -> List[Tuple[int, int]]:
    """Further split buckets at every cut point lying strictly inside one."""
    cuts = sorted(set(cut_points))
    slices = []
    for b_start, b_end in buckets:
        cursor = b_start
        for cut in cuts:
            if cursor < cut < b_end:
                slices.append((cursor, cut))
                cursor = cut
        slices.append((cursor, b_end))
    return slices


def step_times(start, end, step_minutes: int = 30) -> List[str]:
    """Times strictly after ``start`` up to and including ``end``, every step."""
    if step_minutes <= 0:
        raise ValidationError('Step must be a positive number of minutes.')
    start_m, end_m = parse_time(start), parse_time(end)
    return [format_time(m) for m in range(start_m + step_minutes, end_m + 1, step_minutes)]


def nearest_after(points: List[int], value: int) -> Optional[int]:
    later = [p for p in points if p > value]
    return min(later) if later else None


def nearest_before(points: List[int], value: int) -> Optional[int]:
    earlier = [p for p in points if p < value]
    return max(earlier) if earlier else None
