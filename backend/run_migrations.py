"""Create the evaluation tables for the configured database.

Usage: python run_migrations.py [DATABASE_URL]

Without an argument the `DATABASE_URL` environment variable (or the local
SQLite default) is used. Existing tables are left alone, so running it
twice is harmless.
"""
import sys
from typing import Optional

from sqlalchemy import inspect

from evaluation.config import settings
from evaluation.database import Database


def run(url: Optional[str] = None) -> list:
    """Create any missing tables and return the table names present afterwards."""
    db = Database(url or settings.DATABASE_URL)
    print("Using database:", db.url)
    try:
        before = set(inspect(db.engine).get_table_names())
        db.create_all()
        after = sorted(inspect(db.engine).get_table_names())
        for name in after:
            print("Created:" if name not in before else "Exists: ", name)
    finally:
        db.close()
    print("Schema ready.")
    return after


if __name__ == '__main__':
    run(sys.argv[1] if len(sys.argv) > 1 else None)
