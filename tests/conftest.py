"""Shared test fixtures: in-memory Redis and note store doubles."""

import asyncio
from datetime import datetime, timedelta, timezone
from fnmatch import fnmatchcase
from typing import Any

import pytest
from redis.exceptions import ConnectionError

from notes_api.cache.layer import CacheLayer
from notes_api.core.config import Settings
from notes_api.models import Note
from notes_api.repositories.note_repository import NoteFilter
from notes_api.services.note_service import NoteService


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the cache layer."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.ping_failures = 0

    async def get(self, key: str):
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None):
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def scan(self, cursor: int, match: str = "*", count: int = 10):
        keys = sorted(k for k in self.data if fnmatchcase(k, match))
        page = keys[cursor : cursor + count]
        next_cursor = cursor + count if cursor + count < len(keys) else 0
        return next_cursor, page

    async def delete(self, *keys: str):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def ping(self):
        if self.ping_failures:
            self.ping_failures -= 1
            raise ConnectionError("connection refused")
        return True

    async def aclose(self):
        pass


class BrokenRedis:
    """Redis that accepted the connection and then went away."""

    async def get(self, key: str):
        raise ConnectionError("redis down")

    async def set(self, key: str, value: str, ex: int | None = None):
        raise ConnectionError("redis down")

    async def scan(self, cursor: int, match: str = "*", count: int = 10):
        raise ConnectionError("redis down")

    async def delete(self, *keys: str):
        raise ConnectionError("redis down")

    async def ping(self):
        raise ConnectionError("redis down")

    async def aclose(self):
        pass


class InMemoryNoteStore:
    """Note store double with a deterministic clock and call counters."""

    def __init__(self):
        self.notes: dict[str, Note] = {}
        self.find_many_calls = 0
        self.count_calls = 0
        self.fail_mutations = False
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def _matches(self, note: Note, note_filter: NoteFilter) -> bool:
        if note.user_id != note_filter.user_id:
            return False
        if note_filter.term:
            term = note_filter.term.lower()
            if term not in note.title.lower() and term not in note.content.lower():
                return False
        return set(note_filter.tags) <= set(note.tags)

    def _check_failure(self):
        if self.fail_mutations:
            raise RuntimeError("database unavailable")

    async def find_many(self, note_filter: NoteFilter, skip: int, take: int) -> list[Note]:
        self.find_many_calls += 1
        matching = [n for n in self.notes.values() if self._matches(n, note_filter)]
        matching.sort(key=lambda n: n.id)
        matching.sort(key=lambda n: n.updated_at, reverse=True)
        return matching[skip : skip + take]

    async def count(self, note_filter: NoteFilter) -> int:
        self.count_calls += 1
        # yield so concurrent searches interleave
        await asyncio.sleep(0)
        return sum(1 for n in self.notes.values() if self._matches(n, note_filter))

    async def get(self, note_id: str) -> Note | None:
        return self.notes.get(note_id)

    async def create(self, note: Note) -> Note:
        self._check_failure()
        note.created_at = note.updated_at = self._tick()
        self.notes[note.id] = note
        return note

    async def update(self, note: Note, changes: dict[str, Any]) -> Note:
        self._check_failure()
        for field, value in changes.items():
            setattr(note, field, value)
        note.updated_at = self._tick()
        return note

    async def delete(self, note: Note) -> None:
        self._check_failure()
        del self.notes[note.id]

    async def list_tags(self, user_id: str) -> list[list[str]]:
        return [list(n.tags) for n in self.notes.values() if n.user_id == user_id]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        cache_namespace="test:",
        cache_timeout_seconds=0.05,
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(settings: Settings, fake_redis: FakeRedis) -> CacheLayer:
    return CacheLayer(settings=settings, redis=fake_redis)


@pytest.fixture
def store() -> InMemoryNoteStore:
    return InMemoryNoteStore()


@pytest.fixture
def service(store: InMemoryNoteStore, cache: CacheLayer, settings: Settings) -> NoteService:
    return NoteService(store, cache, settings)


@pytest.fixture
def broken_cache(settings: Settings) -> CacheLayer:
    return CacheLayer(settings=settings, redis=BrokenRedis())
