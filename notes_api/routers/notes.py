from fastapi import APIRouter, Query, status

from notes_api.dependencies import CurrentUserId, NoteServiceDep
from notes_api.models import NoteCreate, NotePage, NoteResponse, NoteUpdate

router = APIRouter(prefix="/notes", tags=["notes"])


def _split_tags(tags: list[str] | None) -> list[str] | None:
    # Accept both ?tags=a&tags=b and ?tags=a,b
    if not tags:
        return None
    return [tag for value in tags for tag in value.split(",")]


@router.post("", response_model=NoteResponse, status_code=status.HTTP_201_CREATED)
async def create_note(note_data: NoteCreate, user_id: CurrentUserId, service: NoteServiceDep):
    """Create a new note"""
    return await service.create_note(user_id, note_data)


@router.get("", response_model=NotePage)
async def search_notes(
    user_id: CurrentUserId,
    service: NoteServiceDep,
    search: str | None = None,
    tags: list[str] | None = Query(default=None),
    page: int = 1,
    page_size: int | None = None,
):
    """Search notes by term and tags, newest first"""
    return await service.search(
        user_id, term=search, tags=_split_tags(tags), page=page, page_size=page_size
    )


@router.get("/tags", response_model=list[str])
async def get_tags(user_id: CurrentUserId, service: NoteServiceDep):
    """Get all unique tags for the user"""
    return await service.get_all_tags(user_id)


@router.get("/{note_id}", response_model=NoteResponse)
async def get_note(note_id: str, user_id: CurrentUserId, service: NoteServiceDep):
    """Get a specific note by ID"""
    return await service.get_note(user_id, note_id)


@router.patch("/{note_id}", response_model=NoteResponse)
async def update_note(
    note_id: str, note_data: NoteUpdate, user_id: CurrentUserId, service: NoteServiceDep
):
    return await service.update_note(user_id, note_id, note_data)


@router.delete("/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_note(note_id: str, user_id: CurrentUserId, service: NoteServiceDep):
    """Delete a note"""
    await service.delete_note(user_id, note_id)
