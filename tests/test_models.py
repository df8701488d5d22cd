"""
Unit tests for the data models (Court, Player, Event, CostLineItem).
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from core.errors import PlayerNotFound, ValidationError
from core.models import Court, Player, Event, CostLineItem, REGISTERED, WAITLIST, CANCELLED
from conftest import make_event, make_player


class TestCourt:
    """Tests for the Court model."""

    def test_court_creation(self):
        court = Court(1, '20:00', '22:00')
        assert court.court_number == 1
        assert court.actual_start_time is None
        assert court.effective_window() == ('20:00', '22:00')

    def test_effective_window_prefers_actual(self):
        court = Court(2, '20:00', '22:00', actual_start_time='20:30', actual_end_time='23:00')
        assert court.effective_window() == ('20:30', '23:00')

    def test_reserved_end_must_follow_start(self):
        with pytest.raises(ValidationError):
            Court(1, '22:00', '20:00')

    def test_court_number_positive(self):
        with pytest.raises(ValidationError):
            Court(0, '20:00', '22:00')

    def test_court_repr(self):
        assert 'court_number=3' in repr(Court(3, '19:00', '21:00'))

    def test_dict_round_trip(self):
        court = Court(2, '20:00', '22:00', actual_start_time='20:15', actual_end_time='21:45')
        assert Court.from_dict(court.to_dict()).to_dict() == court.to_dict()


class TestPlayer:
    """Tests for the Player model."""

    def test_default_status_registered(self):
        player = Player(id='p1', name='Ann', end_time='22:00')
        assert player.status == REGISTERED
        assert player.start_time is None
        assert player.absent is False

    def test_window_uses_default_start(self):
        player = Player(id='p1', name='Ann', end_time='22:00')
        assert player.window('20:00') == (1200, 1320)

    def test_end_after_start_enforced(self):
        with pytest.raises(ValidationError):
            Player(id='p1', name='Ann', start_time='21:00', end_time='21:00')

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            Player(id='p1', name='Ann', end_time='22:00', status='maybe')

    def test_dict_round_trip_keeps_timestamp(self):
        player = make_player('p1', start_time='20:00', minutes=5, email='ann@example.com')
        restored = Player.from_dict(player.to_dict())
        assert restored.registered_at == player.registered_at
        assert restored.to_dict() == player.to_dict()


class TestEvent:
    """Tests for the Event aggregate's helpers."""

    def test_player_subsets(self):
        event = make_event(players=[
            make_player('a'),
            make_player('b', status=WAITLIST),
            make_player('c', status=CANCELLED),
            make_player('d', absent=True),
        ])
        assert [p.id for p in event.registered_players()] == ['a', 'd']
        assert [p.id for p in event.waitlist_players()] == ['b']
        assert [p.id for p in event.cancelled_players()] == ['c']
        assert [p.id for p in event.attending_players()] == ['a']

    def test_find_player_missing(self):
        with pytest.raises(PlayerNotFound):
            make_event().find_player('nobody')

    def test_is_full(self):
        event = make_event(max_players=2, players=[make_player('a'), make_player('b')])
        assert event.is_full is True

    def test_incomplete_without_courts(self):
        event = make_event(courts=[])
        assert event.is_incomplete is True
        assert event.earliest_court_start() is None

    def test_earliest_court_start_uses_actual(self):
        event = make_event(courts=[
            Court(1, '20:00', '22:00', actual_start_time='19:30', actual_end_time='22:00'),
            Court(2, '20:00', '22:00'),
        ])
        assert event.earliest_court_start() == '19:30'

    def test_dict_round_trip(self):
        event = make_event(players=[make_player('a'), make_player('b', status=WAITLIST, minutes=1)])
        assert Event.from_dict(event.to_dict()).to_dict() == event.to_dict()


class TestCostLineItem:
    """Tests for bill rows."""

    def test_total_is_sum_of_components(self):
        line = CostLineItem('p1', 'Ann', '20:00', '22:00', court_fee=33.33, consumable_fee=16.67, fine=20.0)
        assert line.total == 70.0

    def test_total_rounds_half_up(self):
        assert CostLineItem('p1', 'Ann', '20:00', '22:00', 1.005, 0.0, 0.0).total == 1.01
        assert CostLineItem('p1', 'Ann', '20:00', '22:00', 0.1, 0.2, 0.0).total == 0.3

    def test_equality_by_content(self):
        a = CostLineItem('p1', 'Ann', '20:00', '22:00', 75.0, 50.0, 0.0)
        b = CostLineItem('p1', 'Ann', '20:00', '22:00', 75.0, 50.0, 0.0)
        assert a == b
