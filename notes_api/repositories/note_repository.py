from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy import func, or_
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from notes_api.models import Note, get_utc_now


@dataclass(frozen=True)
class NoteFilter:
    """Normalized search predicate: owner, optional term, required tags."""

    user_id: str
    term: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)


class NoteStore(Protocol):
    async def find_many(self, note_filter: NoteFilter, skip: int, take: int) -> list[Note]: ...

    async def count(self, note_filter: NoteFilter) -> int: ...

    async def get(self, note_id: str) -> Note | None: ...

    async def create(self, note: Note) -> Note: ...

    async def update(self, note: Note, changes: dict[str, Any]) -> Note: ...

    async def delete(self, note: Note) -> None: ...

    async def list_tags(self, user_id: str) -> list[list[str]]: ...


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class NoteRepository:
    """PostgreSQL note store backed by an async SQLModel session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _conditions(note_filter: NoteFilter) -> list:
        conditions = [col(Note.user_id) == note_filter.user_id]
        if note_filter.term:
            pattern = f"%{_escape_like(note_filter.term)}%"
            conditions.append(
                or_(
                    col(Note.title).ilike(pattern, escape="\\"),
                    col(Note.content).ilike(pattern, escape="\\"),
                )
            )
        if note_filter.tags:
            # ARRAY @> ARRAY: every requested tag must be present
            conditions.append(col(Note.tags).contains(list(note_filter.tags)))
        return conditions

    @classmethod
    def search_query(cls, note_filter: NoteFilter, skip: int, take: int):
        """Most recently modified first, id ascending on ties."""
        return (
            select(Note)
            .where(*cls._conditions(note_filter))
            .order_by(col(Note.updated_at).desc(), col(Note.id).asc())
            .offset(skip)
            .limit(take)
        )

    @classmethod
    def count_query(cls, note_filter: NoteFilter):
        return select(func.count()).select_from(Note).where(*cls._conditions(note_filter))

    async def find_many(self, note_filter: NoteFilter, skip: int, take: int) -> list[Note]:
        result = await self.db.exec(self.search_query(note_filter, skip, take))
        return list(result.all())

    async def count(self, note_filter: NoteFilter) -> int:
        result = await self.db.exec(self.count_query(note_filter))
        return result.one()

    async def get(self, note_id: str) -> Note | None:
        return await self.db.get(Note, note_id)

    async def create(self, note: Note) -> Note:
        self.db.add(note)
        await self.db.commit()
        await self.db.refresh(note)
        return note

    async def update(self, note: Note, changes: dict[str, Any]) -> Note:
        note.sqlmodel_update(changes)
        note.updated_at = get_utc_now()
        self.db.add(note)
        await self.db.commit()
        await self.db.refresh(note)
        return note

    async def delete(self, note: Note) -> None:
        await self.db.delete(note)
        await self.db.commit()

    async def list_tags(self, user_id: str) -> list[list[str]]:
        result = await self.db.exec(select(Note.tags).where(col(Note.user_id) == user_id))
        return [list(tags or []) for tags in result.all()]
