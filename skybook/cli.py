"""Command line interface for running and administering the storefront."""
from __future__ import annotations

import argparse
import getpass
import sys
from datetime import date
from typing import Iterable, List

from tabulate import tabulate

from . import config
from .auth import create_admin_user, get_admin_user, set_admin_password
from .database import init_db, session_scope
from .dataset import generate_sample_data
from .errors import NotFoundError, SkyBookError
from .flights import search_flights
from .models import Flight
from .stats import flight_stats


def _render_flights(flights: Iterable[Flight]) -> str:
    rows: List[list] = [
        [
            flight.flight_number,
            flight.airline,
            f"{flight.from_city} -> {flight.to_city}",
            flight.departure_time.strftime("%Y-%m-%d %H:%M") if flight.departure_time else "TBA",
            flight.duration,
            f"{flight.available_seats}/{flight.total_seats}",
            f"{flight.price:,.0f}",
        ]
        for flight in flights
    ]
    headers = ["Flight", "Airline", "Route", "Departure", "Duration", "Seats", "Price"]
    return tabulate(rows, headers=headers, tablefmt="github")


def parse_args(argv: Iterable[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Flight search and booking storefront.")
    parser.add_argument(
        "--database-url",
        default=config.DATABASE_URL,
        help="SQLAlchemy database URL (default: SKYBOOK_DATABASE_URL or a local SQLite file).",
    )
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Logging level (default: INFO).")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create the database tables.")

    seed = commands.add_parser("seed", help="Load sample flights and bookings.")
    seed.add_argument("--days", type=int, default=7, help="Days of schedule to create (default: 7).")
    seed.add_argument("--bookings", type=int, default=50, help="Sample bookings to attempt (default: 50).")
    seed.add_argument("--start-date", type=date.fromisoformat, help="First departure day, YYYY-MM-DD.")

    search = commands.add_parser("search", help="Search flights.")
    search.add_argument("--from", dest="from_city", help="Origin city (substring match).")
    search.add_argument("--to", dest="to_city", help="Destination city (substring match).")
    search.add_argument("--date", type=date.fromisoformat, help="Departure day, YYYY-MM-DD.")
    search.add_argument("--passengers", type=int, default=None, help="Minimum seats available.")

    commands.add_parser("stats", help="Print occupancy and revenue figures.")

    admin = commands.add_parser("create-admin", help="Create an administrator account.")
    admin.add_argument("username", help="Login name of the administrator.")
    admin.add_argument("--password", help="Password (prompted when omitted).")

    reset = commands.add_parser("set-password", help="Change an administrator's password.")
    reset.add_argument("username", help="Login name of the administrator.")
    reset.add_argument("--password", help="New password (prompted when omitted).")

    serve = commands.add_parser("serve", help="Run the web application.")
    serve.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1).")
    serve.add_argument("--port", type=int, default=8000, help="Port to listen on (default: 8000).")

    return parser.parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    config.configure_logging(args.log_level)
    try:
        session_factory = init_db(args.database_url)

        if args.command == "init-db":
            print(f"Database ready at {args.database_url}")
        elif args.command == "seed":
            summary = generate_sample_data(
                session_factory,
                start_date=args.start_date,
                days=args.days,
                bookings=args.bookings,
            )
            print(
                f"Seeded {summary['flights']} flights and {summary['bookings']} bookings"
                f" ({summary['admins']} admin account created)"
            )
        elif args.command == "search":
            with session_scope(session_factory) as session:
                flights = search_flights(
                    session,
                    from_city=args.from_city,
                    to_city=args.to_city,
                    departure_date=args.date,
                    min_seats=args.passengers,
                )
                print(f"{len(flights)} flight(s) found")
                if flights:
                    print(_render_flights(flights))
        elif args.command == "stats":
            with session_scope(session_factory) as session:
                stats = flight_stats(session)
            rows = [[key.replace("_", " ").capitalize(), value] for key, value in stats.as_dict().items()]
            print(tabulate(rows, headers=["Metric", "Value"], tablefmt="github", floatfmt=",.2f"))
        elif args.command == "create-admin":
            password = args.password or getpass.getpass("Password: ")
            with session_scope(session_factory) as session:
                create_admin_user(session, username=args.username, password=password)
            print(f"Admin user {args.username} created")
        elif args.command == "set-password":
            password = args.password or getpass.getpass("New password: ")
            with session_scope(session_factory) as session:
                admin = get_admin_user(session, args.username)
                if admin is None:
                    raise NotFoundError(f"admin user '{args.username}' not found")
                set_admin_password(session, admin, password)
            print(f"Password for {args.username} updated")
        elif args.command == "serve":
            import uvicorn

            from .web import create_app

            uvicorn.run(create_app(session_factory), host=args.host, port=args.port)
    except SkyBookError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
