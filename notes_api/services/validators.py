"""Input validation and normalization for note operations."""

import re

from notes_api.services.exceptions import ValidationError

MAX_TITLE_LENGTH = 200
MAX_TAG_LENGTH = 50
MAX_USER_ID_LENGTH = 64
TAG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


def validate_user_id(user_id: str) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("User id is required")
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise ValidationError(f"User id exceeds {MAX_USER_ID_LENGTH} characters")
    return user_id


def validate_note_id(note_id: str) -> str:
    if not isinstance(note_id, str) or not note_id.strip():
        raise ValidationError("Note id is required")
    return note_id


def validate_title(title: str | None) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Title cannot be empty")
    title = title.strip()
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Title exceeds {MAX_TITLE_LENGTH} characters")
    return title


def validate_content(content: str | None) -> str:
    if content is None:
        return ""
    if not isinstance(content, str):
        raise ValidationError("Content must be text")
    return content


def validate_tags(tags: list[str] | None) -> list[str]:
    """
    Normalize and validate the tags of a note.

    Tags are lowercased and trimmed; empty entries are dropped and duplicates
    removed, keeping the first occurrence so display order survives.

    Raises:
        ValidationError: If any tag is too long or has invalid characters.
    """
    if tags is None:
        return []
    normalized: list[str] = []
    seen: set[str] = set()
    for tag in tags:
        if not isinstance(tag, str):
            raise ValidationError("Tags must be strings")
        tag = tag.strip().lower()
        if not tag:
            continue
        if len(tag) > MAX_TAG_LENGTH:
            raise ValidationError(f"Tag '{tag}' exceeds {MAX_TAG_LENGTH} characters")
        if not TAG_PATTERN.match(tag):
            raise ValidationError(
                f"Invalid tag format: '{tag}'. "
                "Use lowercase letters, numbers, hyphens and underscores only."
            )
        if tag not in seen:
            seen.add(tag)
            normalized.append(tag)
    return normalized


def normalize_term(term: str | None) -> str | None:
    if term is None:
        return None
    if not isinstance(term, str):
        raise ValidationError("Search term must be text")
    term = term.strip()
    return term or None


def normalize_search_tags(tags: list[str] | None) -> tuple[str, ...]:
    """Lowercase, dedupe and sort filter tags so equivalent filters compare equal."""
    if not tags:
        return ()
    if any(not isinstance(tag, str) for tag in tags):
        raise ValidationError("Tags must be strings")
    normalized = {tag.strip().lower() for tag in tags if tag.strip()}
    for tag in normalized:
        # The store casts filter tags to the column width, which would truncate
        if len(tag) > MAX_TAG_LENGTH:
            raise ValidationError(f"Tag '{tag}' exceeds {MAX_TAG_LENGTH} characters")
    return tuple(sorted(normalized))


def normalize_page(page: int | None) -> int:
    if page is None:
        return 1
    if isinstance(page, bool) or not isinstance(page, int):
        raise ValidationError("Page must be an integer")
    return max(1, page)


def normalize_page_size(page_size: int | None, default: int, maximum: int) -> int:
    if page_size is None:
        page_size = default
    if isinstance(page_size, bool) or not isinstance(page_size, int):
        raise ValidationError("Page size must be an integer")
    return min(max(1, page_size), maximum)
