# Command line entry point: list events, print bills, create accounts

import argparse
import os
import sys

from core.errors import OrganizerError
from core.events import EventManager
from storage import YamlEventStore, load_settings


def default_data_dir():
    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.environ.get('BADMINTON_DATA_DIR', os.path.join(base_dir, 'data'))


def load_manager(data_dir):
    return EventManager(YamlEventStore(data_dir), load_settings(data_dir))


def cmd_events(args):
    manager = load_manager(args.data_dir)
    for label, events in (('Upcoming', manager.upcoming()), ('Completed', manager.completed())):
        print(f"--- {label} ---")
        if not events:
            print("  (none)")
        for event in events:
            registered = len(event.registered_players())
            waitlist = len(event.waitlist_players())
            print(f"  {event.id}  {event.date}  {event.name} @ {event.venue}  "
                  f"{registered}/{event.max_players} players, {waitlist} waitlisted, {len(event.courts)} courts")
    for event in manager.incomplete():
        print(f"Warning: event {event.id} has no courts and was skipped", file=sys.stderr)
    return 0


def cmd_bill(args):
    manager = load_manager(args.data_dir)
    lines, totals = manager.calculate_bill(args.event_id)
    if not lines:
        print("No registered players; nothing to bill.")
        return 0

    print(f"{'Player':<20} {'Window':<13} {'Court':>9} {'Shuttle':>9} {'Fine':>9} {'Total':>9}")
    for line in lines:
        window = f"{line.start_time}-{line.end_time}"
        print(f"{line.name:<20} {window:<13} {line.court_fee:>9.2f} {line.consumable_fee:>9.2f} "
              f"{line.fine:>9.2f} {line.total:>9.2f}")
        if args.hourly:
            for entry in line.hourly_breakdown:
                print(f"    {entry['hour_window']}: {entry['cost']:.2f}")
    print(f"{'Total':<20} {'':<13} {totals['court_fee']:>9.2f} {totals['consumable_fee']:>9.2f} "
          f"{totals['fine']:>9.2f} {totals['total']:>9.2f}")
    return 0


def cmd_create_user(args):
    import app as web
    web.DATA_DIR = args.data_dir
    ok, msg = web.create_user(args.username, args.password, is_admin=args.admin)
    print(msg)
    return 0 if ok else 1


def build_parser():
    parser = argparse.ArgumentParser(description="Badminton session organizer")
    parser.add_argument('--data-dir', default=default_data_dir(), help="Data directory")
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('events', help="List upcoming and completed events").set_defaults(func=cmd_events)

    bill = sub.add_parser('bill', help="Print the cost split for an event")
    bill.add_argument('event_id')
    bill.add_argument('--hourly', action='store_true', help="Show per-hour breakdown")
    bill.set_defaults(func=cmd_bill)

    user = sub.add_parser('create-user', help="Create a login")
    user.add_argument('username')
    user.add_argument('password')
    user.add_argument('--admin', action='store_true', help="Grant admin rights")
    user.set_defaults(func=cmd_create_user)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except OrganizerError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
