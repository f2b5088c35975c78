"""
Release phase: migrate the database, then seed roles, the default church
and its admin user.

Refuses to run without DATABASE_URL, and refuses SQLite when ENV is
production. Seeding never overwrites an existing admin password.

Usage:
  python scripts/release.py
  python scripts/release.py --skip-seed
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _database_url() -> str:
    url = (os.environ.get("DATABASE_URL") or "").strip()
    if not url:
        raise RuntimeError("Missing required environment variable DATABASE_URL.")
    # Heroku-style URLs are not accepted by SQLAlchemy 2
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://") :]
    return url


def _check_environment(db_url: str) -> str:
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if db_url.startswith("sqlite"):
            raise RuntimeError("Refusing to release a production deploy against SQLite. Point DATABASE_URL at Postgres.")
        if not (os.environ.get("APP_ENCRYPTION_KEY") or "").strip():
            print("WARNING: APP_ENCRYPTION_KEY is not set; churches cannot store AI provider keys.", flush=True)
    return env


def _migrate(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")


def run_release(*, seed: bool = True) -> None:
    db_url = _database_url()
    env = _check_environment(db_url)

    print(f"=== flock release (ENV={env or 'unset'}) ===", flush=True)
    print("Upgrading schema to head...", flush=True)
    _migrate(db_url)
    print("Schema is current.", flush=True)

    if not seed:
        print("Seed skipped.", flush=True)
        return
    from scripts import init_db

    print("Seeding roles, default tenant and admin user...", flush=True)
    init_db.seed_only(database_url=db_url)
    print("=== flock release done ===", flush=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Migrate and seed the flock database")
    parser.add_argument("--skip-seed", action="store_true", help="Only run migrations")
    args = parser.parse_args()
    run_release(seed=not args.skip_seed)


if __name__ == "__main__":
    main()
