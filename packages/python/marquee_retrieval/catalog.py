from __future__ import annotations

import threading
from typing import Dict, Iterable, Optional, Protocol

from marquee_core.types import CatalogPage, MediaId, MediaItem, Pagination, SearchFilters


def item_matches(item: MediaItem, filters: SearchFilters | None) -> bool:
    if filters is None or filters.is_empty():
        return True
    if filters.types and item.type not in filters.types:
        return False
    if filters.genres:
        have = {g.lower() for g in item.genres}
        if not any(g.lower() in have for g in filters.genres):
            return False
    if filters.platforms:
        have = {p.lower() for p in item.platforms}
        if not any(p.lower() in have for p in filters.platforms):
            return False
    if filters.min_rating is not None and (item.rating is None or item.rating < filters.min_rating):
        return False
    year = item.release_date.year if item.release_date else None
    if filters.year_min is not None and (year is None or year < filters.year_min):
        return False
    if filters.year_max is not None and (year is None or year > filters.year_max):
        return False
    return True


class CatalogSource(Protocol):
    """Read-only media catalog."""

    async def find_by_id(self, media_id: MediaId) -> Optional[MediaItem]: ...

    async def search(self, filters: SearchFilters, pagination: Pagination) -> CatalogPage: ...


class InMemoryCatalog:
    """Dict-backed catalog; search pages are ordered by rating, best first."""

    def __init__(self, items: Iterable[MediaItem] = ()):
        self._lock = threading.Lock()
        self._items: Dict[MediaId, MediaItem] = {}
        self.add(items)

    def add(self, items: Iterable[MediaItem]) -> None:
        with self._lock:
            for item in items:
                self._items[item.id] = item

    def __len__(self) -> int:
        return len(self._items)

    async def find_by_id(self, media_id: MediaId) -> Optional[MediaItem]:
        with self._lock:
            return self._items.get(media_id)

    async def search(self, filters: SearchFilters, pagination: Pagination) -> CatalogPage:
        with self._lock:
            items = list(self._items.values())
        hits = [i for i in items if item_matches(i, filters)]
        hits.sort(key=lambda i: (-(i.rating if i.rating is not None else -1.0), i.id))
        page = hits[pagination.offset : pagination.offset + pagination.limit]
        return CatalogPage(items=page, total=len(hits))
