#!/usr/bin/env python3
"""
Database migration script for deployments.

Applies every pending migration to the configured database and exits.
"""

import sys

from notes_lite.database import create_engine_for_url
from notes_lite.migrations import run_migrations


def main():
    """Run all pending database migrations"""
    print("🔄 Running database migrations...")

    try:
        engine = create_engine_for_url()
        print(f"   Database: {engine.url.render_as_string(hide_password=True)}")
        applied = run_migrations(engine)
        engine.dispose()
    except Exception as e:
        print(f"❌ Migration failed: {e}")
        return 1

    for name in applied:
        print(f"   Applied migration: {name}")
    print("✅ Migrations completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
