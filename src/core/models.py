from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from core.errors import PlayerNotFound, ValidationError
from core.timeutils import format_time, parse_time

# Player status
REGISTERED = 'registered'
WAITLIST = 'waitlist'
CANCELLED = 'cancelled'
PLAYER_STATUSES = (REGISTERED, WAITLIST, CANCELLED)

# Event status
UPCOMING = 'upcoming'
COMPLETED = 'completed'
EVENT_CANCELLED = 'cancelled'
EVENT_STATUSES = (UPCOMING, COMPLETED, EVENT_CANCELLED)


def round_money(value):
    """Round half-up to 2 decimals."""
    return float(Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def _parse_timestamp(value):
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class Court:
    def __init__(self, court_number, start_time, end_time, actual_start_time=None, actual_end_time=None):
        try:
            court_number = int(court_number)
        except (TypeError, ValueError, OverflowError):
            raise ValidationError(f'Court number must be a whole number, got {court_number!r}.')
        if court_number < 1:
            raise ValidationError('Court number must be at least 1.')
        if parse_time(end_time) <= parse_time(start_time):
            raise ValidationError(f'Court {court_number}: reserved end must be after reserved start.')
        self.court_number = court_number
        self.start_time = start_time
        self.end_time = end_time
        self.actual_start_time = actual_start_time
        self.actual_end_time = actual_end_time

    @property
    def effective_start(self):
        return self.actual_start_time or self.start_time

    @property
    def effective_end(self):
        return self.actual_end_time or self.end_time

    def effective_window(self):
        """(start, end) actually used; falls back to the reservation."""
        return self.effective_start, self.effective_end

    def to_dict(self):
        return {
            'court_number': self.court_number,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'actual_start_time': self.actual_start_time,
            'actual_end_time': self.actual_end_time,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            court_number=data['court_number'],
            start_time=data['start_time'],
            end_time=data['end_time'],
            actual_start_time=data.get('actual_start_time') or None,
            actual_end_time=data.get('actual_end_time') or None,
        )

    def __repr__(self):
        return (f"Court(court_number={self.court_number}, reserved={self.start_time}-{self.end_time}, "
                f"actual={self.actual_start_time}-{self.actual_end_time})")


class Player:
    def __init__(self, id, name, end_time, start_time=None, email=None, registered_at=None,
                 status=REGISTERED, cancelled_on_event_day=False, absent=False, user_id=None):
        if status not in PLAYER_STATUSES:
            raise ValidationError(f'Unknown player status: {status!r}')
        parse_time(end_time)
        if start_time is not None and parse_time(end_time) <= parse_time(start_time):
            raise ValidationError(f'{name}: end time must be after start time.')
        self.id = id
        self.name = name
        self.email = email
        self.start_time = start_time  # None means "from the first court's start"
        self.end_time = end_time
        self.registered_at = registered_at or datetime.now()
        self.status = status
        self.cancelled_on_event_day = cancelled_on_event_day
        self.absent = absent
        self.user_id = user_id

    def window(self, default_start):
        """Personal [start, end) window in minutes."""
        start = self.start_time if self.start_time is not None else default_start
        return parse_time(start), parse_time(self.end_time)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'registered_at': self.registered_at.isoformat(),
            'status': self.status,
            'cancelled_on_event_day': self.cancelled_on_event_day,
            'absent': self.absent,
            'user_id': self.user_id,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=str(data['id']),
            name=data['name'],
            end_time=data['end_time'],
            start_time=data.get('start_time'),
            email=data.get('email'),
            registered_at=_parse_timestamp(data.get('registered_at')),
            status=data.get('status', REGISTERED),
            cancelled_on_event_day=bool(data.get('cancelled_on_event_day', False)),
            absent=bool(data.get('absent', False)),
            user_id=data.get('user_id'),
        )

    def __repr__(self):
        return f"Player(id={self.id}, name={self.name}, status={self.status}, window={self.start_time}-{self.end_time})"


class Event:
    def __init__(self, id, name, date, venue, max_players, shuttlecock_price, court_hourly_rate,
                 courts=None, players=None, shuttlecocks_used=0, status=UPCOMING, created_by=None):
        self.id = id
        self.name = name
        self.date = date
        self.venue = venue
        self.max_players = max_players
        self.shuttlecock_price = shuttlecock_price
        self.court_hourly_rate = court_hourly_rate
        self.courts = courts if courts is not None else []
        self.players = players if players is not None else []
        self.shuttlecocks_used = shuttlecocks_used
        self.status = status
        self.created_by = created_by

    # Player subsets, always in insertion (registration) order

    def registered_players(self):
        return [p for p in self.players if p.status == REGISTERED]

    def waitlist_players(self):
        return [p for p in self.players if p.status == WAITLIST]

    def cancelled_players(self):
        return [p for p in self.players if p.status == CANCELLED]

    def attending_players(self):
        """Registered players who were not marked absent."""
        return [p for p in self.registered_players() if not p.absent]

    def find_player(self, player_id):
        for player in self.players:
            if player.id == player_id:
                return player
        raise PlayerNotFound(f'Player {player_id} not found.')

    @property
    def is_full(self):
        return len(self.registered_players()) >= self.max_players

    @property
    def is_incomplete(self):
        return not self.courts

    def earliest_court_start(self):
        """Earliest effective court start as 'HH:MM', or None without courts."""
        if not self.courts:
            return None
        return format_time(min(parse_time(c.effective_start) for c in self.courts))

    def fields_dict(self):
        """Scalar fields only (what the store keeps apart from courts and players)."""
        return {
            'id': self.id,
            'name': self.name,
            'date': self.date,
            'venue': self.venue,
            'max_players': self.max_players,
            'shuttlecock_price': self.shuttlecock_price,
            'court_hourly_rate': self.court_hourly_rate,
            'shuttlecocks_used': self.shuttlecocks_used,
            'status': self.status,
            'created_by': self.created_by,
        }

    def to_dict(self):
        data = self.fields_dict()
        data['courts'] = [c.to_dict() for c in self.courts]
        data['players'] = [p.to_dict() for p in self.players]
        return data

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=str(data['id']),
            name=data.get('name', ''),
            date=str(data.get('date', '')),
            venue=data.get('venue', ''),
            max_players=int(data.get('max_players', 0)),
            shuttlecock_price=data.get('shuttlecock_price', 0),
            court_hourly_rate=data.get('court_hourly_rate', 0),
            courts=[Court.from_dict(c) for c in data.get('courts') or []],
            players=[Player.from_dict(p) for p in data.get('players') or []],
            shuttlecocks_used=int(data.get('shuttlecocks_used') or 0),
            status=data.get('status', UPCOMING),
            created_by=data.get('created_by'),
        )

    def __repr__(self):
        return (f"Event(id={self.id}, name={self.name}, date={self.date}, status={self.status}, "
                f"courts={len(self.courts)}, players={len(self.players)})")


class CostLineItem:
    """One row of a bill. Derived on every calculation, never stored."""

    def __init__(self, player_id, name, start_time, end_time, court_fee, consumable_fee, fine,
                 hourly_breakdown=None):
        self.player_id = player_id
        self.name = name
        self.start_time = start_time
        self.end_time = end_time
        self.court_fee = court_fee
        self.consumable_fee = consumable_fee
        self.fine = fine
        # exact decimal sum of the already rounded components
        self.total = round_money(sum(Decimal(str(part)) for part in (court_fee, consumable_fee, fine)))
        self.hourly_breakdown = hourly_breakdown if hourly_breakdown is not None else []

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'name': self.name,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'court_fee': self.court_fee,
            'consumable_fee': self.consumable_fee,
            'fine': self.fine,
            'total': self.total,
            'hourly_breakdown': [dict(entry) for entry in self.hourly_breakdown],
        }

    def __eq__(self, other):
        if not isinstance(other, CostLineItem):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"CostLineItem(name={self.name}, court_fee={self.court_fee}, "
                f"consumable_fee={self.consumable_fee}, fine={self.fine}, total={self.total})")


class Actor:
    """Who is calling: supplied by the identity layer."""

    def __init__(self, user_id=None, is_admin=False, player_ids=()):
        self.user_id = user_id
        self.is_admin = is_admin
        self.player_ids = set(player_ids)  # entries registered anonymously in this session

    def __repr__(self):
        return f"Actor(user_id={self.user_id}, is_admin={self.is_admin})"
