"""
Optimistic client-side store for a user's notes.

Every mutation follows the same protocol:

1. snapshot the local store (deep copy);
2. bump the in-flight counter and clear the previous error;
3. apply the optimistic transform, if any, and publish it;
4. call the server;
5. on success replace the whole local store with the server's answer;
6. on failure restore the snapshot, record the error (with a retry closure
   for transport and server failures) and re-raise;
7. drop the in-flight counter.

Mutations are not serialized against each other. When two are in flight the
one whose response arrives last wins, whatever the request order was.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from ..config import Config
from ..services.models import Note, NoteBucket, UserStore
from .api_client import GENERIC_ERROR_MESSAGE, NotesApiClient, NotesApiError
from .temp_ids import TempIdReconciler, find_created_id

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "body", "color", "pinned", "archived")

Listener = Callable[[UserStore], None]


class SessionPhase(str, Enum):
    SIGNED_OUT = "signedOut"
    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True)
class ClientSession:
    """The signed-in user; passed explicitly to every server call."""

    user_id: str


@dataclass(frozen=True)
class ErrorState:
    message: str
    retry: Optional[Callable[[], Any]] = None


def _error_message(error: Exception) -> str:
    if isinstance(error, NotesApiError):
        return error.message
    return GENERIC_ERROR_MESSAGE


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, NotesApiError):
        return error.retryable
    return True


def build_update_payload(changes: Dict[str, Any], default_color: str = Config.DEFAULT_NOTE_COLOR) -> Dict[str, Any]:
    """
    Translate local changes into a PATCH body.

    Raises:
        TypeError for a field that cannot be updated.
    """
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise TypeError(f"Cannot update note field(s): {', '.join(sorted(unknown))}")

    payload: Dict[str, Any] = {}
    if "title" in changes:
        payload["title"] = changes["title"] or ""
    if "body" in changes:
        payload["body"] = changes["body"] or ""
    if "color" in changes:
        payload["color"] = changes["color"] or default_color
    if "pinned" in changes:
        payload["pinned"] = bool(changes["pinned"])
    if "archived" in changes:
        payload["archived"] = bool(changes["archived"])
    return payload


def _move_to_head(store: UserStore, note_id: str, bucket: NoteBucket) -> None:
    for other in NoteBucket:
        store.set_order(other, [nid for nid in store.order_for(other) if nid != note_id])
    store.set_order(bucket, [note_id] + store.order_for(bucket))


class NotesStore:
    """
    Local, disposable view of one user's notes kept in sync with the server.

    ``api`` is anything exposing the ``NotesApiClient`` methods.
    """

    def __init__(
        self,
        api: NotesApiClient,
        id_factory: Optional[Callable[[], str]] = None,
        default_color: str = Config.DEFAULT_NOTE_COLOR,
    ):
        self.api = api
        self.default_color = default_color
        self.temp_ids = TempIdReconciler()
        self._id_factory = id_factory or (lambda: str(uuid4()))
        self._lock = threading.RLock()
        self._session: Optional[ClientSession] = None
        self._store = UserStore.empty()
        self._phase = SessionPhase.SIGNED_OUT
        self._saving_count = 0
        self._error: Optional[ErrorState] = None
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with every published store; returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def session(self) -> Optional[ClientSession]:
        return self._session

    @property
    def current_user(self) -> Optional[str]:
        session = self._session
        return session.user_id if session else None

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def is_loading(self) -> bool:
        return self._phase == SessionPhase.LOADING

    @property
    def saving_count(self) -> int:
        return self._saving_count

    @property
    def is_saving(self) -> bool:
        return self._saving_count > 0

    @property
    def error_message(self) -> Optional[str]:
        error = self._error
        return error.message if error else None

    @property
    def retry(self) -> Optional[Callable[[], Any]]:
        error = self._error
        return error.retry if error else None

    def clear_error(self) -> None:
        with self._lock:
            self._error = None

    def snapshot(self) -> UserStore:
        """Deep copy of the visible store (empty while signed out)."""
        with self._lock:
            if self._session is None:
                return UserStore.empty()
            return self._store.model_copy(deep=True)

    def notes_in(self, bucket: NoteBucket) -> List[Note]:
        store = self.snapshot()
        return [store.notes[nid] for nid in store.order_for(bucket) if nid in store.notes]

    @property
    def pinned_notes(self) -> List[Note]:
        return self.notes_in(NoteBucket.PINNED)

    @property
    def unpinned_notes(self) -> List[Note]:
        return self.notes_in(NoteBucket.UNPINNED)

    @property
    def archived_notes(self) -> List[Note]:
        return self.notes_in(NoteBucket.ARCHIVED)

    def resolve_temp_id(self, temp_id: str) -> Optional[str]:
        return self.temp_ids.resolve(temp_id)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def login(self, name: str) -> bool:
        """Load the named user's store. Blank names are ignored."""
        trimmed = (name or "").strip()
        if not trimmed:
            return False

        session = ClientSession(trimmed)
        with self._lock:
            self._error = None
            self._phase = SessionPhase.LOADING
            self._session = session

        try:
            store = self.api.get_store(session.user_id)
        except Exception as e:
            logger.warning("Failed to load notes for %s: %s", trimmed, e)
            with self._lock:
                if self._session is session:
                    self._session = None
                    self._phase = SessionPhase.SIGNED_OUT
                self._error = ErrorState(_error_message(e), retry=lambda: self.login(trimmed))
            return False

        with self._lock:
            if self._session is not session:
                return False
            self._publish(store)
            self._phase = SessionPhase.READY
        return True

    def sign_out(self) -> None:
        with self._lock:
            self._session = None
            self._phase = SessionPhase.SIGNED_OUT
            self._saving_count = 0
            self._error = None
            self.temp_ids.clear()
            self._publish(UserStore.empty())

    # ------------------------------------------------------------------
    # Mutation protocol
    # ------------------------------------------------------------------

    def run_mutation(
        self,
        session: ClientSession,
        run: Callable[[str], UserStore],
        optimistic: Optional[Callable[[UserStore], UserStore]] = None,
        retry: Optional[Callable[[], Any]] = None,
        note_id: Optional[str] = None,
    ) -> UserStore:
        """
        Apply ``optimistic`` locally, call ``run(user_id)`` and reconcile.

        ``note_id`` names the note the mutation targets; a 404 for it purges
        the id from the local store after the rollback.

        Raises:
            Whatever ``run`` raised, after the snapshot has been restored.
        """
        with self._lock:
            snapshot = self._store.model_copy(deep=True)
            self._saving_count += 1
            self._error = None

        try:
            if optimistic is not None:
                with self._lock:
                    self._publish(optimistic(snapshot.model_copy(deep=True)))
            remote = run(session.user_id)
        except Exception as e:
            with self._lock:
                restored = snapshot
                if note_id and isinstance(e, NotesApiError) and e.is_not_found:
                    restored = snapshot.model_copy(deep=True)
                    restored.discard(note_id)
                    self.temp_ids.discard_target(note_id)
                self._publish(restored)
                self._error = ErrorState(_error_message(e), retry if _is_retryable(e) else None)
            raise
        else:
            with self._lock:
                self._publish(remote)
            return remote
        finally:
            with self._lock:
                self._saving_count = max(0, self._saving_count - 1)

    def _mutate(self, session: ClientSession, action: str, **kwargs: Any) -> Optional[UserStore]:
        try:
            return self.run_mutation(session, **kwargs)
        except NotesApiError as e:
            logger.warning("Failed to %s: %s", action, e)
            return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_note(self, color: Optional[str] = None) -> Optional[str]:
        """
        Create an empty note at the head of the unpinned list.

        Returns:
            The server id of the new note (a temp id -> server id redirection
            is recorded when they differ), or None when signed out or failed.
        """
        session = self._session
        if session is None:
            return None

        temp_id = self._id_factory()
        color = color or self.default_color
        now = datetime.now(UTC)
        optimistic_note = Note(id=temp_id, color=color, created_at=now, updated_at=now)
        with self._lock:
            previous_ids = list(self._store.notes)

        def optimistic(store: UserStore) -> UserStore:
            store.notes[temp_id] = optimistic_note.model_copy()
            store.unpinned_order = [temp_id] + [nid for nid in store.unpinned_order if nid != temp_id]
            return store

        remote = self._mutate(
            session,
            "create note",
            run=lambda user_id: self.api.create_note(user_id, {"color": color}),
            optimistic=optimistic,
            retry=lambda: self.create_note(color),
        )
        if remote is None:
            self.temp_ids.discard(temp_id)
            return None

        new_id = find_created_id(previous_ids, remote.notes)
        if new_id:
            self.temp_ids.record(temp_id, new_id)
        return new_id or temp_id

    def update_note(self, note_id: str, **changes: Any) -> Optional[UserStore]:
        """Merge ``changes`` into the note; an empty change set is a no-op."""
        session = self._session
        if session is None:
            return None
        payload = build_update_payload(changes, self.default_color)
        if not payload:
            return None
        now = datetime.now(UTC)

        def optimistic(store: UserStore) -> UserStore:
            existing = store.notes.get(note_id)
            if existing is not None:
                store.notes[note_id] = existing.model_copy(update={**payload, "updated_at": now})
            return store

        return self._mutate(
            session,
            "update note",
            run=lambda user_id: self.api.update_note(user_id, note_id, payload),
            optimistic=optimistic,
            retry=lambda: self.update_note(note_id, **changes),
            note_id=note_id,
        )

    def toggle_pinned(self, note_id: str) -> Optional[UserStore]:
        """Pin or unpin a note. Archived and unknown notes are ignored."""
        session = self._session
        if session is None:
            return None
        with self._lock:
            existing = self._store.notes.get(note_id)
        if existing is None or existing.archived:
            return None

        next_pinned = not existing.pinned
        destination = NoteBucket.PINNED if next_pinned else NoteBucket.UNPINNED
        now = datetime.now(UTC)

        def optimistic(store: UserStore) -> UserStore:
            note = store.notes.get(note_id)
            if note is None:
                return store
            store.notes[note_id] = note.model_copy(
                update={"pinned": next_pinned, "archived": False, "updated_at": now}
            )
            _move_to_head(store, note_id, destination)
            return store

        return self._mutate(
            session,
            "toggle pin",
            run=lambda user_id: self.api.update_note(user_id, note_id, {"pinned": next_pinned}),
            optimistic=optimistic,
            retry=lambda: self.toggle_pinned(note_id),
            note_id=note_id,
        )

    def toggle_archived(self, note_id: str) -> Optional[UserStore]:
        """Archive (clearing the pin) or unarchive a note back to unpinned."""
        session = self._session
        if session is None:
            return None
        with self._lock:
            existing = self._store.notes.get(note_id)
        if existing is None:
            return None

        next_archived = not existing.archived
        next_pinned = False if next_archived else existing.pinned
        if next_archived:
            destination = NoteBucket.ARCHIVED
        elif next_pinned:
            destination = NoteBucket.PINNED
        else:
            destination = NoteBucket.UNPINNED
        now = datetime.now(UTC)

        def optimistic(store: UserStore) -> UserStore:
            note = store.notes.get(note_id)
            if note is None:
                return store
            store.notes[note_id] = note.model_copy(
                update={"archived": next_archived, "pinned": next_pinned, "updated_at": now}
            )
            _move_to_head(store, note_id, destination)
            return store

        return self._mutate(
            session,
            "toggle archive",
            run=lambda user_id: self.api.update_note(
                user_id, note_id, {"archived": next_archived, "pinned": next_pinned}
            ),
            optimistic=optimistic,
            retry=lambda: self.toggle_archived(note_id),
            note_id=note_id,
        )

    def delete_forever(self, note_id: str) -> Optional[UserStore]:
        session = self._session
        if session is None:
            return None

        def optimistic(store: UserStore) -> UserStore:
            if note_id in store.notes:
                store.discard(note_id)
            return store

        return self._mutate(
            session,
            "delete note",
            run=lambda user_id: self.api.delete_note(user_id, note_id),
            optimistic=optimistic,
            retry=lambda: self.delete_forever(note_id),
            note_id=note_id,
        )

    def reorder_notes(self, bucket: NoteBucket, new_order: List[str]) -> Optional[UserStore]:
        """
        Show ``new_order`` immediately and persist it.

        Locally, ids the store does not know are dropped and known members
        missing from ``new_order`` are kept at the end; the server receives
        ``new_order`` untouched and validates it.
        """
        session = self._session
        if session is None:
            return None
        bucket = NoteBucket(bucket)
        requested = list(new_order)

        def optimistic(store: UserStore) -> UserStore:
            valid = [nid for nid in requested if nid in store.notes]
            missing = [nid for nid in store.order_for(bucket) if nid not in valid]
            store.set_order(bucket, valid + missing)
            return store

        return self._mutate(
            session,
            "reorder notes",
            run=lambda user_id: self.api.reorder_bucket(user_id, bucket.value, requested),
            optimistic=optimistic,
            retry=lambda: self.reorder_notes(bucket, requested),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _publish(self, store: UserStore) -> None:
        """Replace the visible store and notify listeners; a failing listener is logged and skipped."""
        self._store = store
        for listener in list(self._listeners):
            try:
                listener(store)
            except Exception:
                logger.exception("Store listener %r failed", listener)
