from __future__ import annotations

import threading
from collections import defaultdict
from typing import Dict, List

from .schemas import UserInteraction


class InteractionLog:
    """
    Append-only, per-user, in arrival order.

    Only the newest `embedding_window` entries per user keep their embedding;
    older entries are kept for counts and export with the vector dropped.
    """

    def __init__(self, embedding_window: int = 50) -> None:
        self._lock = threading.Lock()
        self._by_user: Dict[str, List[UserInteraction]] = defaultdict(list)
        self.embedding_window = max(0, embedding_window)

    def append(self, interaction: UserInteraction) -> None:
        with self._lock:
            rows = self._by_user[interaction.user_id]
            rows.append(interaction)
            aged = len(rows) - self.embedding_window - 1
            if aged >= 0 and rows[aged].embedding is not None:
                rows[aged] = rows[aged].model_copy(update={"embedding": None})

    def recent(self, user_id: str, limit: int = 50) -> List[UserInteraction]:
        """Most recently recorded first."""
        if limit <= 0:
            return []
        with self._lock:
            rows = self._by_user.get(user_id, [])
            return rows[-limit:][::-1]

    def all(self, user_id: str) -> List[UserInteraction]:
        with self._lock:
            return list(self._by_user.get(user_id, ()))

    def forget(self, user_id: str) -> int:
        with self._lock:
            return len(self._by_user.pop(user_id, []))
