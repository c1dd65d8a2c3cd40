"""
SQLAlchemy-backed note service.

Validates payloads, then runs the row mutation, the order allocation and the
user's ``updated_at`` touch inside one transaction. Reads materialize the
complete per-user store.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Generator, Mapping, Optional, Type, TypeVar
from uuid import uuid4

from pydantic import BaseModel, ValidationError
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..config import Config
from ..database import (
    Note as NoteORM,
    User as UserORM,
    build_session_factory,
    create_engine_for_url,
    get_engine,
    get_session_factory,
    sqlite_url,
    utcnow,
)
from ..errors import BadRequestError, NotFoundError, validation_failed
from ..migrations import run_migrations
from .models import (
    NOTE_BUCKETS,
    Note as NoteDTO,
    NoteBucket,
    NoteCreate,
    NoteUpdate,
    ReorderPayload,
    UserStore,
    bucket_from_flags,
)
from .order_allocator import BucketOrderAllocator

logger = logging.getLogger(__name__)

PayloadModel = TypeVar("PayloadModel", bound=BaseModel)


def _note_to_dto(note: NoteORM) -> NoteDTO:
    return NoteDTO(
        id=note.id,
        title=note.title,
        body=note.body,
        color=note.color,
        pinned=bool(note.pinned),
        archived=bool(note.archived),
        created_at=note.created_at,
        updated_at=note.updated_at,
    )


def _parse(model: Type[PayloadModel], payload: Any) -> PayloadModel:
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise BadRequestError("Validation failed", details=[{"msg": "Request body must be a JSON object"}])
    try:
        return model.model_validate(dict(payload))
    except ValidationError as exc:
        raise validation_failed(exc) from exc


def normalize_id(raw: Optional[str], label: str) -> str:
    """Strip an opaque identifier; blank ids are a 400."""
    value = (raw or "").strip()
    if not value:
        raise BadRequestError(f"{label} id is required")
    return value


def _assert_flags(pinned: bool, archived: bool) -> None:
    if pinned and archived:
        raise BadRequestError("A note cannot be both pinned and archived at the same time")


class NoteService:
    """
    Transactional note operations scoped to a user id.

    Users are created on first touch. Every mutation bumps the user's
    ``updated_at`` as its first write; that row write also serializes
    concurrent mutations of the same user, so position allocation never races.
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        database_url: Optional[str] = None,
        allocator: Optional[BucketOrderAllocator] = None,
        default_color: str = Config.DEFAULT_NOTE_COLOR,
    ):
        self.engine, self.session_factory = self._configure_engine(db_path, database_url)
        self.dialect = self.engine.dialect.name
        self.allocator = allocator or BucketOrderAllocator()
        self.default_color = default_color
        run_migrations(self.engine)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_user_store(self, user_id: str) -> UserStore:
        user_id = normalize_id(user_id, "User")
        with self._session_scope() as session:
            self._ensure_user(session, user_id)
            notes = (
                session.query(NoteORM)
                .filter(NoteORM.user_id == user_id)
                .order_by(NoteORM.created_at, NoteORM.id)
                .all()
            )
            return self.allocator.materialize(session, user_id, [_note_to_dto(n) for n in notes])

    def get_note(self, user_id: str, note_id: str) -> NoteDTO:
        user_id = normalize_id(user_id, "User")
        note_id = normalize_id(note_id, "Note")
        with self._session_scope() as session:
            note = self._find_note(session, user_id, note_id)
            if not note:
                raise NotFoundError("Note not found")
            return _note_to_dto(note)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_note(self, user_id: str, payload: Optional[Mapping[str, Any]] = None) -> NoteDTO:
        user_id = normalize_id(user_id, "User")
        data = _parse(NoteCreate, payload)
        pinned = bool(data.pinned)
        archived = bool(data.archived)
        _assert_flags(pinned, archived)

        now = utcnow()
        note = NoteORM(
            id=str(uuid4()),
            user_id=user_id,
            title=data.title if data.title is not None else "",
            body=data.body if data.body is not None else "",
            color=data.color or self.default_color,
            pinned=pinned,
            archived=archived,
            created_at=now,
            updated_at=now,
        )
        bucket = bucket_from_flags(pinned, archived)

        with self._session_scope() as session:
            self._ensure_user(session, user_id)
            self._touch_user(session, user_id, now)
            session.add(note)
            session.flush()
            self.allocator.append(session, user_id, note.id, bucket)

        logger.debug("Created note %s for user %s in %s", note.id, user_id, bucket.value)
        return _note_to_dto(note)

    def update_note(self, user_id: str, note_id: str, payload: Optional[Mapping[str, Any]]) -> NoteDTO:
        user_id = normalize_id(user_id, "User")
        note_id = normalize_id(note_id, "Note")
        changes = _parse(NoteUpdate, payload)

        with self._session_scope() as session:
            self._ensure_user(session, user_id)
            note = self._find_note(session, user_id, note_id)
            if not note:
                raise NotFoundError("Note not found")

            # Exclusivity is checked on the merged flags, not just the payload.
            pinned = changes.pinned if changes.pinned is not None else bool(note.pinned)
            archived = changes.archived if changes.archived is not None else bool(note.archived)
            _assert_flags(pinned, archived)

            bucket_before = bucket_from_flags(bool(note.pinned), bool(note.archived))
            bucket_after = bucket_from_flags(pinned, archived)

            now = utcnow()
            self._touch_user(session, user_id, now)
            if changes.title is not None:
                note.title = changes.title
            if changes.body is not None:
                note.body = changes.body
            if changes.color is not None:
                note.color = changes.color
            note.pinned = pinned
            note.archived = archived
            note.updated_at = now
            session.flush()

            if bucket_before != bucket_after:
                self.allocator.move(session, user_id, note_id, bucket_after)
                logger.debug(
                    "Moved note %s from %s to %s", note_id, bucket_before.value, bucket_after.value
                )

            return _note_to_dto(note)

    def delete_note(self, user_id: str, note_id: str) -> None:
        user_id = normalize_id(user_id, "User")
        note_id = normalize_id(note_id, "Note")
        with self._session_scope() as session:
            self._ensure_user(session, user_id)
            self._touch_user(session, user_id, utcnow())
            deleted = (
                session.query(NoteORM)
                .filter(NoteORM.id == note_id, NoteORM.user_id == user_id)
                .delete(synchronize_session=False)
            )
            if deleted == 0:
                raise NotFoundError("Note not found")
            self.allocator.remove(session, user_id, note_id)

    def reorder_bucket(self, user_id: str, bucket: str, payload: Optional[Mapping[str, Any]]) -> None:
        user_id = normalize_id(user_id, "User")
        bucket_name = (bucket or "").strip()
        if not bucket_name:
            raise BadRequestError("Bucket is required")
        if bucket_name not in NOTE_BUCKETS:
            raise BadRequestError(f'Unsupported bucket "{bucket_name}"')
        data = _parse(ReorderPayload, payload)

        with self._session_scope() as session:
            self._ensure_user(session, user_id)
            self._touch_user(session, user_id, utcnow())
            self.allocator.rewrite(session, user_id, NoteBucket(bucket_name), data.order)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find_note(self, session: Session, user_id: str, note_id: str) -> Optional[NoteORM]:
        return session.execute(
            select(NoteORM).where(NoteORM.id == note_id, NoteORM.user_id == user_id)
        ).scalar_one_or_none()

    def _ensure_user(self, session: Session, user_id: str) -> None:
        now = utcnow()
        values = {"id": user_id, "created_at": now, "updated_at": now}
        if self.dialect == "postgresql":
            stmt = pg_insert(UserORM).values(**values).on_conflict_do_nothing(index_elements=["id"])
        elif self.dialect == "sqlite":
            stmt = sqlite_insert(UserORM).values(**values).on_conflict_do_nothing(index_elements=["id"])
        else:
            if session.get(UserORM, user_id) is None:
                session.add(UserORM(**values))
                session.flush()
            return
        session.execute(stmt)

    def _touch_user(self, session: Session, user_id: str, when: datetime) -> None:
        session.execute(update(UserORM).where(UserORM.id == user_id).values(updated_at=when))

    def _configure_engine(
        self,
        db_path: Optional[Path],
        database_url: Optional[str],
    ) -> tuple[Engine, sessionmaker]:
        if database_url:
            engine = create_engine_for_url(database_url)
            return engine, build_session_factory(engine)

        if db_path:
            engine = create_engine_for_url(sqlite_url(Path(db_path)))
            return engine, build_session_factory(engine)

        return get_engine(), get_session_factory()

    @contextmanager
    def _session_scope(self) -> Generator[Session, None, None]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        self.engine.dispose()

