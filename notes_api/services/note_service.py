import logging
import math

from notes_api.cache.keys import build_search_key, user_search_pattern
from notes_api.cache.layer import CacheLayer
from notes_api.core.config import Settings
from notes_api.models import Note, NoteCreate, NotePage, NoteResponse, NoteUpdate
from notes_api.repositories.note_repository import NoteFilter, NoteStore
from notes_api.services.exceptions import ForbiddenError, NotFoundError
from notes_api.services.validators import (
    normalize_page,
    normalize_page_size,
    normalize_search_tags,
    normalize_term,
    validate_content,
    validate_note_id,
    validate_tags,
    validate_title,
    validate_user_id,
)

logger = logging.getLogger(__name__)


class NoteService:
    """
    Note CRUD with a cached, filtered, paginated search.

    Search pages are cached per user for settings.search_cache_ttl_seconds.
    Every successful create/update/delete drops all cached pages of that
    user, so a page computed before a mutation is never served after it.
    """

    def __init__(self, store: NoteStore, cache: CacheLayer, settings: Settings):
        self.store = store
        self.cache = cache
        self.settings = settings

    async def search(
        self,
        user_id: str,
        term: str | None = None,
        tags: list[str] | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> dict:
        user_id = validate_user_id(user_id)
        term = normalize_term(term)
        required_tags = normalize_search_tags(tags)
        page = normalize_page(page)
        page_size = normalize_page_size(
            page_size, self.settings.default_page_size, self.settings.max_page_size
        )

        key = build_search_key(user_id, term, required_tags, page, page_size)

        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        async with self.cache.lock(key):
            # Another request may have filled the key while we waited
            cached = await self.cache.get(key)
            if cached is not None:
                return cached

            note_filter = NoteFilter(user_id=user_id, term=term, tags=required_tags)
            result = await self._load_page(note_filter, page, page_size)
            await self.cache.set(key, result, self.settings.search_cache_ttl_seconds)
            return result

    async def _load_page(self, note_filter: NoteFilter, page: int, page_size: int) -> dict:
        total = await self.store.count(note_filter)
        notes = await self.store.find_many(
            note_filter, skip=(page - 1) * page_size, take=page_size
        )
        result = NotePage(
            items=[NoteResponse.model_validate(note) for note in notes],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if total else 0,
        )
        # JSON form so a cache hit returns exactly what the miss returned
        return result.model_dump(mode="json")

    async def get_note(self, user_id: str, note_id: str) -> Note:
        user_id = validate_user_id(user_id)
        note_id = validate_note_id(note_id)

        note = await self.store.get(note_id)
        if note is None:
            raise NotFoundError(note_id)
        if note.user_id != user_id:
            raise ForbiddenError(note_id)
        return note

    async def create_note(self, user_id: str, note_data: NoteCreate) -> Note:
        user_id = validate_user_id(user_id)
        note = Note(
            user_id=user_id,
            title=validate_title(note_data.title),
            content=validate_content(note_data.content),
            tags=validate_tags(note_data.tags),
        )

        note = await self.store.create(note)
        await self._invalidate_user_searches(user_id)
        logger.info(f"Created note {note.id} for user {user_id}")
        return note

    async def update_note(self, user_id: str, note_id: str, note_data: NoteUpdate) -> Note:
        changes = {}
        update_data = note_data.model_dump(exclude_unset=True)
        if "title" in update_data:
            changes["title"] = validate_title(update_data["title"])
        if "content" in update_data:
            changes["content"] = validate_content(update_data["content"])
        if "tags" in update_data:
            changes["tags"] = validate_tags(update_data["tags"])

        note = await self.get_note(user_id, note_id)
        note = await self.store.update(note, changes)
        await self._invalidate_user_searches(user_id)
        logger.info(f"Updated note {note_id} for user {user_id}")
        return note

    async def delete_note(self, user_id: str, note_id: str) -> None:
        note = await self.get_note(user_id, note_id)
        await self.store.delete(note)
        await self._invalidate_user_searches(user_id)
        logger.info(f"Deleted note {note_id} for user {user_id}")

    async def get_all_tags(self, user_id: str) -> list[str]:
        user_id = validate_user_id(user_id)
        tag_lists = await self.store.list_tags(user_id)
        return sorted({tag for tags in tag_lists for tag in tags})

    async def _invalidate_user_searches(self, user_id: str) -> None:
        # The cache layer logs and swallows failures; the mutation stands either way
        deleted = await self.cache.delete_pattern(user_search_pattern(user_id))
        logger.debug(f"Invalidated {deleted} cached search pages for user {user_id}")
