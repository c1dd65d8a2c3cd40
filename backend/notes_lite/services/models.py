"""
Data models for notes and the per-user store.

Uses Pydantic for validation and serialization. The same models describe the
wire format consumed by the client package, so field aliases follow the JSON
contract (``createdAt``, ``pinnedOrder``...).
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictStr,
    field_serializer,
    field_validator,
    model_validator,
)

from ..config import Config


class NoteBucket(str, Enum):
    """Mutually exclusive membership classes for a note."""

    PINNED = "pinned"
    UNPINNED = "unpinned"
    ARCHIVED = "archived"


NOTE_BUCKETS = [bucket.value for bucket in NoteBucket]


def bucket_from_flags(pinned: bool, archived: bool) -> NoteBucket:
    """Archived wins over pinned; everything else is unpinned."""
    if archived:
        return NoteBucket.ARCHIVED
    if pinned:
        return NoteBucket.PINNED
    return NoteBucket.UNPINNED


class NotePayload(BaseModel):
    """Partial note fields accepted by create and update"""
    model_config = ConfigDict(extra="forbid")

    title: Optional[StrictStr] = Field(None, max_length=Config.TITLE_MAX_LENGTH)
    body: Optional[StrictStr] = Field(None, max_length=Config.BODY_MAX_LENGTH)
    color: Optional[StrictStr] = Field(None, pattern=Config.COLOR_PATTERN)
    pinned: Optional[StrictBool] = None
    archived: Optional[StrictBool] = None

    @field_validator("*", mode="before")
    @classmethod
    def _reject_null(cls, value: Any) -> Any:
        # Omitted fields keep their default; an explicit null is not "omitted".
        if value is None:
            raise ValueError("Field may be omitted but must not be null")
        return value


class NoteCreate(NotePayload):
    pass


class NoteUpdate(NotePayload):
    @model_validator(mode="after")
    def _require_any_field(self) -> "NoteUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided when updating a note")
        return self


class ReorderPayload(BaseModel):
    """Body of an explicit bucket reorder"""
    model_config = ConfigDict(extra="forbid")

    order: List[Annotated[StrictStr, Field(min_length=1)]] = Field(default_factory=list)


class Note(BaseModel):
    """Complete note as returned to clients"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = ""
    body: str = ""
    color: str = Config.DEFAULT_NOTE_COLOR
    pinned: bool = False
    archived: bool = False
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @property
    def bucket(self) -> NoteBucket:
        return bucket_from_flags(self.pinned, self.archived)

    @field_serializer("created_at", "updated_at")
    def _serialize_timestamp(self, value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.isoformat()


class UserStore(BaseModel):
    """
    Materialized view of everything a user owns.

    The three order lists partition the keys of ``notes``; list order is the
    user-controlled display order.
    """
    model_config = ConfigDict(populate_by_name=True)

    notes: Dict[str, Note] = Field(default_factory=dict)
    pinned_order: List[str] = Field(default_factory=list, alias="pinnedOrder")
    unpinned_order: List[str] = Field(default_factory=list, alias="unpinnedOrder")
    archived_order: List[str] = Field(default_factory=list, alias="archivedOrder")

    @classmethod
    def empty(cls) -> "UserStore":
        return cls()

    def order_for(self, bucket: NoteBucket) -> List[str]:
        return getattr(self, f"{NoteBucket(bucket).value}_order")

    def set_order(self, bucket: NoteBucket, ids: List[str]) -> None:
        setattr(self, f"{NoteBucket(bucket).value}_order", list(ids))

    def discard(self, note_id: str) -> None:
        """Remove a note id from ``notes`` and from every order list."""
        self.notes.pop(note_id, None)
        for bucket in NoteBucket:
            self.set_order(bucket, [nid for nid in self.order_for(bucket) if nid != note_id])

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
