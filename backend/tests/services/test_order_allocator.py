from __future__ import annotations

import pytest
from sqlalchemy import insert, select, update

from notes_lite.database import Note as NoteORM, NoteOrder
from notes_lite.errors import BadRequestError
from notes_lite.services.models import NoteBucket
from notes_lite.services.order_allocator import BucketOrderAllocator, validate_order


def test_validate_order_accepts_permutation():
    validate_order(NoteBucket.UNPINNED, ["a", "b", "c"], ["c", "a", "b"])


@pytest.mark.parametrize(
    "proposed, message",
    [
        (["a", "a", "b"], "Order contains duplicate note ids"),
        (["a", "b"], "Order must include all notes in the bucket"),
        (["a", "b", "z"], "Note z does not belong to bucket pinned"),
    ],
)
def test_validate_order_rejects(proposed, message):
    with pytest.raises(BadRequestError) as excinfo:
        validate_order(NoteBucket.PINNED, ["a", "b", "c"], proposed)
    assert excinfo.value.message == message


def test_next_position_starts_at_zero_and_follows_max(service):
    allocator = BucketOrderAllocator()
    with service._session_scope() as session:
        assert allocator.next_position(session, "pat", NoteBucket.PINNED) == 0
        session.execute(
            insert(NoteOrder).values(user_id="pat", note_id="n1", bucket="pinned", position=7)
        )
        assert allocator.next_position(session, "pat", NoteBucket.PINNED) == 8
        assert allocator.next_position(session, "pat", NoteBucket.UNPINNED) == 0
        assert allocator.next_position(session, "other", NoteBucket.PINNED) == 0


def test_orphaned_order_records_are_discarded_on_read(service):
    note = service.create_note("pat")
    with service._session_scope() as session:
        session.execute(
            insert(NoteOrder).values(user_id="pat", note_id="ghost", bucket="unpinned", position=99)
        )

    store = service.get_user_store("pat")
    assert store.unpinned_order == [note.id]

    with service._session_scope() as session:
        remaining = session.execute(
            select(NoteOrder.note_id).where(NoteOrder.user_id == "pat")
        ).scalars().all()
    assert remaining == [note.id]


def test_note_without_order_record_falls_back_to_flag_bucket(service):
    first = service.create_note("pat", {"pinned": True})
    stray = service.create_note("pat", {"archived": True})
    later = service.create_note("pat", {"archived": True})
    with service._session_scope() as session:
        service.allocator.remove(session, "pat", stray.id)

    store = service.get_user_store("pat")
    assert store.pinned_order == [first.id]
    assert store.archived_order == [later.id, stray.id]


def test_order_record_is_authoritative_over_stale_flags(service):
    note = service.create_note("pat")
    with service._session_scope() as session:
        session.execute(
            update(NoteORM).where(NoteORM.id == note.id).values(pinned=True)
        )
    store = service.get_user_store("pat")
    assert store.unpinned_order == [note.id]
    assert store.pinned_order == []


def test_rewrite_is_atomic_with_failed_validation(service):
    a = service.create_note("pat").id
    b = service.create_note("pat").id
    with pytest.raises(BadRequestError):
        with service._session_scope() as session:
            service.allocator.rewrite(session, "pat", NoteBucket.UNPINNED, [b])
    assert service.get_user_store("pat").unpinned_order == [a, b]
