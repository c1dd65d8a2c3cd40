"""
Central SQLAlchemy models and session utilities.

These definitions mirror the tables created by the migration versions and
power the runtime ORM queries.
"""

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.sql import func

from .config import Config

logger = logging.getLogger(__name__)

Base = declarative_base()

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


class User(Base):
    """
    Users are created on first touch; there is no registration step.

    ``updated_at`` is bumped by every mutation of the user's notes.
    """
    __tablename__ = "users"

    id = Column(String(255), primary_key=True)
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP, nullable=False, server_default=func.now())


class Note(Base):
    """
    Notes table with user isolation.

    ``pinned``/``archived`` are a denormalized copy of the note's bucket; the
    order record in ``note_orders`` is authoritative and both are written in
    the same transaction.
    """
    __tablename__ = "notes"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False, default="")
    body = Column(Text, nullable=False, default="")
    color = Column(String(7), nullable=False)
    pinned = Column(Boolean, nullable=False, default=False)
    archived = Column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_notes_user_id", "user_id"),
        Index("idx_notes_user_created", "user_id", "created_at"),
    )


class NoteOrder(Base):
    """Position of a note inside one of the user's buckets."""

    __tablename__ = "note_orders"

    user_id = Column(String(255), primary_key=True)
    note_id = Column(String(36), primary_key=True)
    bucket = Column(String(16), nullable=False)
    position = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "bucket", "position", name="uq_note_orders_user_bucket_position"),
        Index("idx_note_orders_user_bucket", "user_id", "bucket", "position"),
    )


class MigrationRecord(Base):
    """Ledger of applied schema migrations."""

    __tablename__ = "migrations"

    name = Column(String(255), primary_key=True)
    applied_at = Column(TIMESTAMP, nullable=False, server_default=func.now())


def get_database_url() -> str:
    """
    Get database URL from environment, defaulting to SQLite.

    Returns:
        Database connection string
    """
    if Config.DATABASE_URL:
        # PostgreSQL
        return Config.DATABASE_URL

    return sqlite_url(Config.DATABASE_PATH)


def sqlite_url(db_path: Path) -> str:
    """Build a SQLite URL, creating the parent directory when missing."""
    resolved = Path(db_path).resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Using SQLite database at %s", resolved)
    return f"sqlite:///{resolved}"


def get_engine():
    """Get (and lazily create) the shared SQLAlchemy engine."""
    global _engine
    if _engine is None:
        _engine = create_engine_for_url()
    return _engine


def get_session_factory() -> sessionmaker:
    """Return the configured session factory."""
    global _SessionFactory
    if _SessionFactory is None:
        _SessionFactory = build_session_factory(get_engine())
    return _SessionFactory


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        future=True,
    )


def create_engine_for_url(database_url: Optional[str] = None) -> Engine:
    """Build a SQLAlchemy engine for the given URL (or default environment)."""
    url = database_url or get_database_url()
    engine = create_engine(
        url,
        future=True,
        echo=False,
        pool_pre_ping=True,
    )

    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _set_sqlite_pragmas)

    return engine


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    """Apply SQLite pragmas for better consistency (WAL, foreign keys)."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every TIMESTAMP column stores."""
    return datetime.now(UTC).replace(tzinfo=None)
