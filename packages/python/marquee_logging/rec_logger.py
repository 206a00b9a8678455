from __future__ import annotations

import logging
import random
from typing import Any, Literal, Sequence

import httpx
from fastapi.encoders import jsonable_encoder

from marquee_ranking.types import RankedItem, ScoredHit

log = logging.getLogger(__name__)

Endpoint = Literal[
    "search/hybrid",
    "search/similar",
    "recommendations",
]


class TelemetryLogger:
    """
    Best-effort query/result logging to a PostgREST endpoint.

    - rec_queries: one row per request
    - rec_results: one row per returned item

    Disabled when url or key is missing. Failures are logged, never raised
    into the request.
    """

    def __init__(
        self,
        supabase_url: str | None,
        api_key: str | None,
        *,
        client: httpx.AsyncClient | None = None,
        sample: float = 1.0,
        timeout_s: float = 5.0,
    ):
        self.supabase_url = (supabase_url or "").rstrip("/")
        self.api_key = api_key or ""
        self.client = client
        self.sample = float(max(0.0, min(1.0, sample)))
        self.timeout_s = timeout_s

    def _enabled(self) -> bool:
        return bool(self.supabase_url and self.api_key and self.sample > 0)

    def should_log(self) -> bool:
        return self._enabled() and (self.sample >= 1.0 or random.random() < self.sample)

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Prefer": "resolution=merge-duplicates",
        }

    async def _post(self, path: str, payload: list[dict[str, Any]]) -> None:
        if not payload:
            return
        try:
            if self.client is not None:
                r = await self._send(self.client, path, payload)
            else:
                async with httpx.AsyncClient() as client:
                    r = await self._send(client, path, payload)
        except httpx.HTTPError as e:
            log.warning("rec_logger POST %s error: %s", path, e)
            return
        if r.status_code not in (200, 201, 204):
            log.warning("rec_logger POST %s failed %s: %s", path, r.status_code, r.text)

    async def _send(self, client: httpx.AsyncClient, path: str, payload: list[dict[str, Any]]) -> httpx.Response:
        return await client.post(
            f"{self.supabase_url}/rest/v1/{path}",
            headers=self._headers(),
            json=payload,
            timeout=self.timeout_s,
        )

    @staticmethod
    def to_jsonable(x):
        return jsonable_encoder(x, exclude_none=True)

    # ---------- Public APIs ----------
    async def log_search(
        self,
        *,
        endpoint: Endpoint,
        query_id: str,
        query_text: str,
        options: Any,
        hits: Sequence[ScoredHit],
        timings: Any | None = None,
    ) -> None:
        if not self.should_log():
            return
        await self._post(
            "rec_queries",
            [
                {
                    "endpoint": endpoint,
                    "query_id": query_id,
                    "query_text": query_text,
                    "query_options": self.to_jsonable(options),
                    "timings": self.to_jsonable(timings) if timings is not None else None,
                    "batch_size": len(hits),
                }
            ],
        )
        rows = [
            {
                "endpoint": endpoint,
                "query_id": query_id,
                "media_id": h.item.id,
                "rank": rank,
                "title": h.item.title,
                "score_final": h.relevance,
            }
            for rank, h in enumerate(hits, start=1)
        ]
        await self._post("rec_results", rows)

    async def log_recommendations(
        self,
        *,
        query_id: str,
        user_id: str,
        ranked: Sequence[RankedItem],
    ) -> None:
        if not self.should_log():
            return
        await self._post(
            "rec_queries",
            [
                {
                    "endpoint": "recommendations",
                    "query_id": query_id,
                    "user_id": user_id,
                    "batch_size": len(ranked),
                }
            ],
        )
        rows = [
            {
                "endpoint": "recommendations",
                "query_id": query_id,
                "media_id": r.item.id,
                "rank": rank,
                "title": r.item.title,
                "score_final": r.score,
                "meta_breakdown": self.to_jsonable(r.breakdown) if r.breakdown else None,
                "reasons": r.reasons,
            }
            for rank, r in enumerate(ranked, start=1)
        ]
        await self._post("rec_results", rows)
