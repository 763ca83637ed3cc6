"""Runtime configuration for SkyBook, read from the environment."""
from __future__ import annotations

import logging
import os

DATABASE_URL = os.environ.get("SKYBOOK_DATABASE_URL", "sqlite+pysqlite:///skybook.db")
SECRET_KEY = os.environ.get("SKYBOOK_SECRET_KEY", "skybook-development-secret")
LOG_LEVEL = os.environ.get("SKYBOOK_LOG_LEVEL", "INFO")

# Used by ``skybook seed`` to provision a first administrator.
ADMIN_USERNAME = os.environ.get("SKYBOOK_ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.environ.get("SKYBOOK_ADMIN_PASSWORD", "")

MAX_PASSENGERS = int(os.environ.get("SKYBOOK_MAX_PASSENGERS", 9))

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install a root handler once; later calls only adjust the level."""

    resolved = (level or LOG_LEVEL).upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=resolved, format=_LOG_FORMAT)
    else:
        root.setLevel(resolved)
