"""
``NotesApiClient`` against a recorded fake session, plus one end-to-end pass
through the Flask app with the optimistic store on top.
"""
from __future__ import annotations

import json

import pytest
import requests

from notes_lite.client import NotesApiClient, NotesApiError, NotesStore, TransportError
from notes_lite.client.api_client import GENERIC_ERROR_MESSAGE
from notes_lite.services.models import NoteBucket, UserStore

EMPTY_STORE = {"notes": {}, "pinnedOrder": [], "unpinnedOrder": [], "archivedOrder": []}


class FakeResponse:
    def __init__(self, status_code, body=None, text=None):
        self.status_code = status_code
        self.text = text if text is not None else (json.dumps(body) if body is not None else "")

    def json(self):
        return json.loads(self.text)


class RecordingSession:
    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse(200, EMPTY_STORE)
        self.error = error
        self.requests = []

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.requests.append({"method": method, "url": url, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


class FlaskSession:
    """Routes ``requests``-style calls to a Flask test client."""

    def __init__(self, client):
        self.client = client

    def request(self, method, url, json=None, headers=None, timeout=None):
        res = self.client.open(url, method=method, json=json, headers=headers)
        return FakeResponse(res.status_code, text=res.get_data(as_text=True))


def _client(session, **kwargs):
    return NotesApiClient(base_url="http://notes.test/", session=session, timeout=3, **kwargs)


def test_paths_and_bodies():
    session = RecordingSession()
    api = _client(session)

    api.get_store("pat")
    api.create_note("pat")
    api.update_note("pat", "n1", {"title": "x"})
    api.delete_note("pat", "n1")
    api.reorder_bucket("pat", "pinned", ["b", "a"])

    assert [(r["method"], r["url"], r["json"]) for r in session.requests] == [
        ("GET", "http://notes.test/api/users/pat/store", None),
        ("POST", "http://notes.test/api/users/pat/notes", {}),
        ("PATCH", "http://notes.test/api/users/pat/notes/n1", {"title": "x"}),
        ("DELETE", "http://notes.test/api/users/pat/notes/n1", None),
        ("PUT", "http://notes.test/api/users/pat/orders/pinned", {"order": ["b", "a"]}),
    ]
    assert all(r["timeout"] == 3 for r in session.requests)


def test_path_segments_are_encoded():
    session = RecordingSession()
    _client(session).delete_note("pat smith", "a/b?c")
    assert session.requests[0]["url"] == "http://notes.test/api/users/pat%20smith/notes/a%2Fb%3Fc"


def test_success_parses_user_store():
    body = {
        "notes": {
            "n1": {
                "id": "n1",
                "title": "t",
                "body": "",
                "color": "#fde2e4",
                "pinned": True,
                "archived": False,
                "createdAt": "2025-01-01T00:00:00+00:00",
                "updatedAt": "2025-01-01T00:00:00+00:00",
            }
        },
        "pinnedOrder": ["n1"],
        "unpinnedOrder": [],
        "archivedOrder": [],
    }
    store = _client(RecordingSession(FakeResponse(200, body))).get_store("pat")
    assert isinstance(store, UserStore)
    assert store.pinned_order == ["n1"]
    assert store.notes["n1"].pinned is True


def test_error_message_comes_from_body():
    session = RecordingSession(FakeResponse(404, {"message": "Note not found"}))
    with pytest.raises(NotesApiError) as excinfo:
        _client(session).update_note("pat", "n1", {"title": "x"})
    assert excinfo.value.message == "Note not found"
    assert excinfo.value.status == 404
    assert excinfo.value.is_not_found
    assert not excinfo.value.retryable


def test_error_without_message_uses_status():
    session = RecordingSession(FakeResponse(502, text="<html>bad gateway</html>"))
    with pytest.raises(NotesApiError) as excinfo:
        _client(session).get_store("pat")
    assert excinfo.value.message == "Request failed with status 502"
    assert excinfo.value.retryable


def test_empty_success_body_is_an_error():
    session = RecordingSession(FakeResponse(200, text=""))
    with pytest.raises(NotesApiError, match="Received empty response body"):
        _client(session).get_store("pat")


def test_malformed_success_body_is_an_api_error():
    session = RecordingSession(FakeResponse(200, {"notes": "not-a-map"}))
    with pytest.raises(NotesApiError, match="Received malformed response body") as excinfo:
        _client(session).get_store("pat")
    assert excinfo.value.status == 200


def test_malformed_body_fails_the_mutation_instead_of_raising():
    session = RecordingSession()
    notes = NotesStore(_client(session))
    assert notes.login("pat")

    session.response = FakeResponse(201, {"pinnedOrder": 42})
    assert notes.create_note() is None
    assert notes.snapshot().notes == {}
    assert notes.error_message == "Received malformed response body"
    assert notes.saving_count == 0


def test_network_failure_is_transport_error():
    session = RecordingSession(error=requests.ConnectionError("refused"))
    with pytest.raises(TransportError) as excinfo:
        _client(session).get_store("pat")
    assert excinfo.value.status == 0
    assert excinfo.value.message == GENERIC_ERROR_MESSAGE
    assert excinfo.value.retryable


def test_timeout_is_transport_error():
    session = RecordingSession(error=requests.Timeout("slow"))
    with pytest.raises(TransportError):
        _client(session).create_note("pat")


# ============================================================================
# END TO END
# ============================================================================


@pytest.fixture()
def live_store(client):
    api = NotesApiClient(base_url="", session=FlaskSession(client))
    notes = NotesStore(api)
    assert notes.login("pat")
    return notes


def test_store_round_trip_through_http(live_store, service):
    first = live_store.create_note()
    second = live_store.create_note(color="#abcdef")
    assert live_store.snapshot().unpinned_order == [first, second]

    live_store.update_note(first, title="Shopping", body="eggs")
    live_store.toggle_pinned(second)
    live_store.reorder_notes(NoteBucket.UNPINNED, [first])

    server = service.get_user_store("pat")
    local = live_store.snapshot()
    assert local.to_payload() == server.to_payload()
    assert local.pinned_order == [second]
    assert local.notes[first].title == "Shopping"
    assert local.notes[second].color == "#abcdef"

    live_store.toggle_archived(second)
    live_store.delete_forever(first)
    assert live_store.snapshot().archived_order == [second]
    assert live_store.snapshot().unpinned_order == []
    assert live_store.error_message is None


def test_http_validation_error_reaches_the_store(live_store):
    note_id = live_store.create_note()
    assert live_store.update_note(note_id, color="blue") is None
    assert live_store.error_message == "Validation failed"
    assert live_store.retry is None
