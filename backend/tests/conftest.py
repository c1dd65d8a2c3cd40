from __future__ import annotations

from pathlib import Path

import pytest

from notes_lite import create_app
from notes_lite.services.container import Services
from notes_lite.services.note_service import NoteService


@pytest.fixture()
def service(tmp_path: Path):
    svc = NoteService(db_path=tmp_path / "notes_test.db")
    yield svc
    svc.close()


@pytest.fixture()
def app(service: NoteService):
    app = create_app(testing=True, services=Services(notes=service))
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()
