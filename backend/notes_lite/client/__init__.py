from .api_client import NotesApiClient, NotesApiError, TransportError
from .store import ClientSession, ErrorState, NotesStore, SessionPhase
from .temp_ids import TempIdReconciler

__all__ = [
    "ClientSession",
    "ErrorState",
    "NotesApiClient",
    "NotesApiError",
    "NotesStore",
    "SessionPhase",
    "TempIdReconciler",
    "TransportError",
]
