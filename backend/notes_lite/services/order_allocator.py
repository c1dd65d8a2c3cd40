"""
Per-bucket position allocation for notes.

Every method takes the caller's session and never commits: the note service
runs allocator calls inside the same transaction as the note row mutation, so
a note and its order record are always written (or rolled back) together.

Positions are unique within ``(user_id, bucket)`` and read back in ascending
order. Gaps left by deletes and bucket moves are harmless and never compacted.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Sequence

from sqlalchemy import delete, func, insert, select
from sqlalchemy.orm import Session

from ..database import NoteOrder
from ..errors import BadRequestError
from .models import NOTE_BUCKETS, Note, NoteBucket, UserStore

logger = logging.getLogger(__name__)


def validate_order(bucket: NoteBucket, current: Sequence[str], proposed: Sequence[str]) -> None:
    """
    Check that ``proposed`` is a permutation of the bucket's current members.

    Raises:
        BadRequestError on duplicates, a size mismatch, or a foreign id.
    """
    if len(proposed) != len(set(proposed)):
        raise BadRequestError("Order contains duplicate note ids")

    if len(proposed) != len(current):
        raise BadRequestError("Order must include all notes in the bucket")

    members = set(current)
    for note_id in proposed:
        if note_id not in members:
            raise BadRequestError(f"Note {note_id} does not belong to bucket {NoteBucket(bucket).value}")


class BucketOrderAllocator:
    """Assigns and rewrites ``note_orders`` rows for one user at a time."""

    def next_position(self, session: Session, user_id: str, bucket: NoteBucket) -> int:
        """``max(position) + 1`` for the bucket, or 0 when it is empty."""
        current_max = session.execute(
            select(func.max(NoteOrder.position)).where(
                NoteOrder.user_id == user_id,
                NoteOrder.bucket == NoteBucket(bucket).value,
            )
        ).scalar_one_or_none()
        return 0 if current_max is None else current_max + 1

    def bucket_members(self, session: Session, user_id: str, bucket: NoteBucket) -> List[str]:
        return list(
            session.execute(
                select(NoteOrder.note_id)
                .where(NoteOrder.user_id == user_id, NoteOrder.bucket == NoteBucket(bucket).value)
                .order_by(NoteOrder.position)
            ).scalars()
        )

    def append(self, session: Session, user_id: str, note_id: str, bucket: NoteBucket) -> int:
        """Insert an order record at the end of ``bucket``; returns its position."""
        position = self.next_position(session, user_id, bucket)
        session.execute(
            insert(NoteOrder).values(
                user_id=user_id,
                note_id=note_id,
                bucket=NoteBucket(bucket).value,
                position=position,
            )
        )
        return position

    def move(self, session: Session, user_id: str, note_id: str, bucket: NoteBucket) -> int:
        """Drop the note's current record and append it to ``bucket``."""
        self.remove(session, user_id, note_id)
        return self.append(session, user_id, note_id, bucket)

    def remove(self, session: Session, user_id: str, note_id: str) -> None:
        session.execute(
            delete(NoteOrder).where(NoteOrder.user_id == user_id, NoteOrder.note_id == note_id)
        )

    def rewrite(self, session: Session, user_id: str, bucket: NoteBucket, proposed: Sequence[str]) -> None:
        """
        Replace the bucket's positions with ``0..n-1`` in ``proposed`` order.

        The bucket's rows are deleted and reinserted so the
        ``(user_id, bucket, position)`` constraint never sees two rows sharing
        a position mid-rewrite.
        """
        current = self.bucket_members(session, user_id, bucket)
        validate_order(bucket, current, proposed)

        if not proposed:
            return

        session.execute(
            delete(NoteOrder).where(
                NoteOrder.user_id == user_id,
                NoteOrder.bucket == NoteBucket(bucket).value,
            )
        )
        session.execute(
            insert(NoteOrder),
            [
                {
                    "user_id": user_id,
                    "note_id": note_id,
                    "bucket": NoteBucket(bucket).value,
                    "position": position,
                }
                for position, note_id in enumerate(proposed)
            ],
        )

    def materialize(self, session: Session, user_id: str, notes: Iterable[Note]) -> UserStore:
        """
        Build the user's store from note rows and order records.

        Order records pointing at a missing note are deleted on the way.
        Notes without an order record are appended to the bucket their flags
        name.
        """
        notes_by_id: Dict[str, Note] = {note.id: note for note in notes}
        buckets: Dict[str, List[str]] = {bucket: [] for bucket in NOTE_BUCKETS}
        seen = set()
        orphans = []

        rows = session.execute(
            select(NoteOrder.note_id, NoteOrder.bucket)
            .where(NoteOrder.user_id == user_id)
            .order_by(NoteOrder.bucket, NoteOrder.position)
        ).all()

        for note_id, bucket in rows:
            if note_id not in notes_by_id:
                orphans.append(note_id)
                continue
            if bucket not in buckets:
                continue
            buckets[bucket].append(note_id)
            seen.add(note_id)

        if orphans:
            logger.info("Discarding %d orphaned order record(s) for user %s", len(orphans), user_id)
            session.execute(
                delete(NoteOrder).where(NoteOrder.user_id == user_id, NoteOrder.note_id.in_(orphans))
            )

        for note_id, note in notes_by_id.items():
            if note_id not in seen:
                buckets[note.bucket.value].append(note_id)

        return UserStore(
            notes=notes_by_id,
            pinned_order=buckets[NoteBucket.PINNED.value],
            unpinned_order=buckets[NoteBucket.UNPINNED.value],
            archived_order=buckets[NoteBucket.ARCHIVED.value],
        )
