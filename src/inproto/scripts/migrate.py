# src/inproto/scripts/migrate.py
"""Apply Alembic migrations to the configured relay database."""
from __future__ import annotations

import argparse
import os

from alembic import command
from alembic.config import Config

from inproto.core.settings import settings

MIGRATIONS_DIR = os.path.join(os.path.dirname(__file__), "..", "..", "..", "migrations")


def build_config(database_url: str | None = None) -> Config:
    """Return an Alembic config pointing at the project's migrations folder."""
    cfg = Config()
    cfg.set_main_option("script_location", os.path.abspath(MIGRATIONS_DIR))
    cfg.set_main_option("sqlalchemy.url", database_url or settings.effective_database_url)
    return cfg


def run_upgrade(revision: str = "head", database_url: str | None = None) -> None:
    command.upgrade(build_config(database_url), revision)


def run_downgrade(revision: str, database_url: str | None = None) -> None:
    command.downgrade(build_config(database_url), revision)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Migrate the inproto relay database")
    parser.add_argument("action", nargs="?", choices=("upgrade", "downgrade"), default="upgrade")
    parser.add_argument("revision", nargs="?", default=None)
    parser.add_argument("--database-url", default=None)
    args = parser.parse_args(argv)

    if args.action == "downgrade":
        if not args.revision:
            parser.error("downgrade needs a target revision")
        run_downgrade(args.revision, args.database_url)
    else:
        run_upgrade(args.revision or "head", args.database_url)


if __name__ == "__main__":
    main()
