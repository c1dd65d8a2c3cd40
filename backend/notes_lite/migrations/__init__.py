"""
Forward-only schema migrations.

Versions are Alembic revision modules kept in ``versions/``. They are applied
in file-name order through Alembic's ``Operations`` API, each inside its own
transaction together with its row in the ``migrations`` ledger, so a version
is either fully applied and recorded or not applied at all.
"""

from __future__ import annotations

import importlib.util
import logging
from pathlib import Path
from types import ModuleType
from typing import List, Set, Tuple

from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext
from sqlalchemy import insert, select
from sqlalchemy.engine import Engine

from ..database import MigrationRecord, utcnow

logger = logging.getLogger(__name__)

VERSIONS_DIR = Path(__file__).parent / "versions"


def discover_migrations(directory: Path = VERSIONS_DIR) -> List[Tuple[str, ModuleType]]:
    """Load every version module in ``directory``, sorted by file name."""
    migrations = []
    for path in sorted(Path(directory).glob("*.py")):
        if path.name.startswith("__"):
            continue
        spec = importlib.util.spec_from_file_location(f"notes_lite_migration_{path.stem}", path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load migration {path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        migrations.append((path.stem, module))
    return migrations


def applied_migrations(engine: Engine) -> Set[str]:
    with engine.connect() as conn:
        return set(conn.execute(select(MigrationRecord.name)).scalars())


def run_migrations(engine: Engine, directory: Path = VERSIONS_DIR) -> List[str]:
    """
    Apply pending migrations.

    Returns:
        Names of the migrations applied by this call (empty when up to date).
    """
    MigrationRecord.__table__.create(bind=engine, checkfirst=True)
    applied = applied_migrations(engine)

    newly_applied = []
    for name, module in discover_migrations(directory):
        if name in applied:
            continue
        with engine.begin() as conn:
            context = MigrationContext.configure(conn)
            with Operations.context(context):
                module.upgrade()
            conn.execute(insert(MigrationRecord).values(name=name, applied_at=utcnow()))
        logger.info("Applied migration: %s", name)
        newly_applied.append(name)

    return newly_applied
