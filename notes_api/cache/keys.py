import hashlib
import json
import re

SEARCH_KEY_PREFIX = "notes:search"

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def _escape_glob(value: str) -> str:
    return _GLOB_SPECIAL.sub(r"\\\1", value)


def build_search_key(
    user_id: str, term: str | None, tags: tuple[str, ...], page: int, page_size: int
) -> str:
    """
    Derive the cache key of one search page.

    Expects already-normalized inputs (sorted, deduplicated tags). The user id
    stays readable so a user's pages share one prefix; the rest is hashed.
    """
    payload = json.dumps(
        [term or "", list(tags), page, page_size],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"{SEARCH_KEY_PREFIX}:{user_id}:{digest}"


def user_search_pattern(user_id: str) -> str:
    """Glob pattern matching every search key of one user."""
    return f"{SEARCH_KEY_PREFIX}:{_escape_glob(user_id)}:*"
