import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, String
from sqlalchemy.dialects.postgresql import ARRAY
from sqlmodel import Column, Field, SQLModel


def get_utc_now():
    """Helper function to get current UTC time with timezone"""
    return datetime.now(timezone.utc)


def new_note_id() -> str:
    return str(uuid.uuid4())


class NoteBase(SQLModel):
    """Base model with shared fields"""

    title: str = Field(max_length=200)
    content: str = Field(default="")


class Note(NoteBase, table=True):
    """Database model"""

    __tablename__ = "notes"
    __table_args__ = (
        Index("ix_notes_user_id_updated_at", "user_id", "updated_at"),
        Index("ix_notes_tags", "tags", postgresql_using="gin"),
    )

    id: str = Field(default_factory=new_note_id, primary_key=True, max_length=36)
    user_id: str = Field(index=True, max_length=64)
    tags: list[str] = Field(
        default_factory=list,
        sa_column=Column(ARRAY(String(50)), nullable=False, server_default="{}"),
    )
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class NoteCreate(NoteBase):
    """Schema for creating a note"""

    tags: list[str] = Field(default_factory=list)


class NoteUpdate(SQLModel):
    """Schema for updating a note - all fields optional"""

    title: str | None = None
    content: str | None = None
    tags: list[str] | None = None


class NoteResponse(NoteBase):
    """Schema for note responses"""

    id: str
    tags: list[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class NotePage(SQLModel):
    """One page of search results, as stored in the search cache"""

    items: list[NoteResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
