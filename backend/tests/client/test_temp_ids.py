from __future__ import annotations

from notes_lite.client.temp_ids import TempIdReconciler, find_created_id


def test_find_created_id():
    assert find_created_id(["a", "b"], ["a", "b", "c"]) == "c"
    assert find_created_id(["a"], ["a"]) is None
    assert find_created_id([], ["x", "y"]) == "x"


def test_resolve_consumes_the_mapping():
    ids = TempIdReconciler()
    ids.record("temp-1", "srv-1")
    assert "temp-1" in ids
    assert ids.resolve("temp-1") == "srv-1"
    assert ids.resolve("temp-1") is None
    assert len(ids) == 0


def test_unknown_temp_id_resolves_to_none():
    assert TempIdReconciler().resolve("never-created") is None


def test_identical_ids_need_no_redirection():
    ids = TempIdReconciler()
    ids.record("same", "same")
    assert len(ids) == 0


def test_discard_target_drops_every_redirection_to_it():
    ids = TempIdReconciler()
    ids.record("temp-1", "srv-1")
    ids.record("temp-2", "srv-1")
    ids.record("temp-3", "srv-2")
    ids.discard_target("srv-1")
    assert len(ids) == 1
    assert ids.resolve("temp-3") == "srv-2"


def test_discard_and_clear():
    ids = TempIdReconciler()
    ids.record("temp-1", "srv-1")
    ids.record("temp-2", "srv-2")
    ids.discard("temp-1")
    assert "temp-1" not in ids
    ids.clear()
    assert len(ids) == 0
