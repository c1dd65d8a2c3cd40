"""
Bridges client-generated note ids to the ids the server assigned.

A created note is rendered under a temporary id before the server answers.
Once the create succeeds the new server id is found by diffing the id sets
before and after the call, and ``tempId -> serverId`` is recorded. Consumers
holding the temporary id follow the redirection exactly once.
"""

from __future__ import annotations

import threading
from typing import Dict, Iterable, Optional


def find_created_id(before: Iterable[str], after: Iterable[str]) -> Optional[str]:
    """First id present in ``after`` but not in ``before``."""
    known = set(before)
    for note_id in after:
        if note_id not in known:
            return note_id
    return None


class TempIdReconciler:
    def __init__(self):
        self._pending: Dict[str, str] = {}
        self._lock = threading.Lock()

    def record(self, temp_id: str, server_id: str) -> None:
        """Remember a redirection; a server id equal to the temp id needs none."""
        if temp_id == server_id:
            return
        with self._lock:
            self._pending[temp_id] = server_id

    def resolve(self, temp_id: str) -> Optional[str]:
        """
        Follow and consume the redirection for ``temp_id``.

        Returns None when there is nothing to follow (the create failed or the
        mapping was already consumed); the caller should then drop its
        reference instead of treating the temp id as valid.
        """
        with self._lock:
            return self._pending.pop(temp_id, None)

    def discard(self, temp_id: str) -> None:
        with self._lock:
            self._pending.pop(temp_id, None)

    def discard_target(self, server_id: str) -> None:
        """Forget every redirection that points at ``server_id``."""
        with self._lock:
            for temp_id in [t for t, s in self._pending.items() if s == server_id]:
                del self._pending[temp_id]

    def clear(self) -> None:
        with self._lock:
            self._pending.clear()

    def __contains__(self, temp_id: str) -> bool:
        with self._lock:
            return temp_id in self._pending

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
