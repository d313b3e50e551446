from fastapi import Depends, Header, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession
from typing_extensions import Annotated

from notes_api.cache.layer import cache_layer
from notes_api.core.config import Settings, get_settings
from notes_api.database import get_db
from notes_api.repositories.note_repository import NoteRepository
from notes_api.services.note_service import NoteService


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> str:
    """Opaque user id supplied by the authentication proxy in front of the API."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id.strip()


def get_note_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> NoteService:
    return NoteService(NoteRepository(db), cache_layer, settings)


CurrentUserId = Annotated[str, Depends(get_current_user_id)]
NoteServiceDep = Annotated[NoteService, Depends(get_note_service)]
