from __future__ import annotations

import pytest

from skybook.auth import authenticate_admin
from skybook.cli import main, parse_args
from skybook.database import init_db, session_scope


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+pysqlite:///{tmp_path / 'cli.db'}"


def test_parse_args_search_options():
    args = parse_args(["search", "--from", "New York", "--to", "Los Angeles", "--date", "2030-03-14"])
    assert args.command == "search"
    assert args.from_city == "New York"
    assert args.to_city == "Los Angeles"
    assert args.date.isoformat() == "2030-03-14"
    assert args.passengers is None


def test_seed_then_search(database_url, capsys):
    assert main(["--database-url", database_url, "init-db"]) == 0
    assert "Database ready" in capsys.readouterr().out

    assert (
        main(
            [
                "--database-url",
                database_url,
                "seed",
                "--days",
                "1",
                "--bookings",
                "5",
                "--start-date",
                "2030-03-14",
            ]
        )
        == 0
    )
    assert "Seeded 13 flights" in capsys.readouterr().out

    assert (
        main(
            [
                "--database-url",
                database_url,
                "search",
                "--from",
                "new york",
                "--to",
                "los angeles",
                "--date",
                "2030-03-14",
            ]
        )
        == 0
    )
    output = capsys.readouterr().out
    assert "3 flight(s) found" in output
    assert output.index("DL303") < output.index("AA101") < output.index("UA202")


def test_stats_and_admin_commands(database_url, capsys):
    assert main(["--database-url", database_url, "stats"]) == 0
    assert "Total flights" in capsys.readouterr().out

    assert main(["--database-url", database_url, "create-admin", "root", "--password", "long enough"]) == 0
    assert "Admin user root created" in capsys.readouterr().out

    assert main(["--database-url", database_url, "create-admin", "root", "--password", "long enough"]) == 1
    assert "already exists" in capsys.readouterr().err


def test_set_password_command(database_url, capsys):
    assert main(["--database-url", database_url, "create-admin", "root", "--password", "long enough"]) == 0
    capsys.readouterr()

    assert main(["--database-url", database_url, "set-password", "root", "--password", "even longer"]) == 0
    assert "Password for root updated" in capsys.readouterr().out

    with session_scope(init_db(database_url)) as session:
        assert authenticate_admin(session, "root", "even longer") is True
        assert authenticate_admin(session, "root", "long enough") is False

    assert main(["--database-url", database_url, "set-password", "nobody", "--password", "even longer"]) == 1
    assert "not found" in capsys.readouterr().err
    assert main(["--database-url", database_url, "set-password", "root", "--password", "short"]) == 1
    assert "at least 8 characters" in capsys.readouterr().err
