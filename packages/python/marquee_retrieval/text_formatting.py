from __future__ import annotations

from marquee_core.config import EMBEDDING_MAX_CHARS
from marquee_core.types import MediaItem

# Bump whenever the field order or labels below change: vectors built from
# different versions are not comparable.
EMBEDDING_TEXT_VERSION = 1

_ELLIPSIS = "..."


def format_embedding_text(item: MediaItem) -> str:
    """
    Canonical text for a media item's dense embedding.

    Fields appear in a fixed order and absent fields are skipped.
    """
    year = item.release_date.year if item.release_date else None
    parts = [
        f"Title: {item.title}",
        f"Type: {item.type.value}",
        f"Description: {item.description.strip()}" if item.description.strip() else [],
        f"Genres: {', '.join(item.genres)}" if item.genres else [],
        f"Cast: {', '.join(item.cast[:5])}" if item.cast else [],
        f"Director: {item.director}" if item.director else [],
        f"Year: {year}" if year else [],
        f"Rating: {item.rating:g}/10" if item.rating is not None else [],
        f"Available on: {', '.join(item.platforms)}" if item.platforms else [],
        f"Duration: {item.duration} minutes" if item.duration else [],
        f"Seasons: {item.seasons}" if item.seasons else [],
    ]
    return ". ".join([part for part in parts if part]).strip()


def truncate_text(text: str, *, max_chars: int = EMBEDDING_MAX_CHARS) -> str:
    """Cut to at most `max_chars`; the same long prefix always yields the same output."""
    if len(text) <= max_chars:
        return text
    return text[: max_chars - len(_ELLIPSIS)] + _ELLIPSIS
