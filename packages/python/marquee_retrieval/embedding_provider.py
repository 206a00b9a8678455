from __future__ import annotations

import asyncio
import hashlib
import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Protocol, Sequence

import numpy as np
import openai
from anyio import to_thread
from openai import AsyncOpenAI
from sentence_transformers import SentenceTransformer

from marquee_core.config import (
    EMBEDDING_BATCH_SIZE,
    EMBEDDING_DIM,
    EMBEDDING_MAX_CHARS,
    LOCAL_EMBEDDING_MODEL,
    OPENAI_EMBEDDING_MODEL,
)
from marquee_core.errors import EmbeddingUnavailable
from marquee_core.types import MediaId, MediaItem

from .text_formatting import format_embedding_text, truncate_text

log = logging.getLogger(__name__)


class StrategyError(Exception):
    """Classified failure of a single embedding strategy call."""

    def __init__(self, kind: str, *, retryable: bool, message: str = ""):
        super().__init__(message or kind)
        self.kind = kind
        self.retryable = retryable


class EmbeddingStrategy(Protocol):
    name: str

    async def embed(self, texts: List[str]) -> List[np.ndarray]: ...


def resize(vec: np.ndarray, dim: int) -> np.ndarray:
    """Zero-pad or truncate to `dim`."""
    vec = np.asarray(vec, dtype=np.float32).reshape(-1)
    if vec.shape[0] == dim:
        return vec
    if vec.shape[0] > dim:
        return vec[:dim].copy()
    out = np.zeros(dim, dtype=np.float32)
    out[: vec.shape[0]] = vec
    return out


class OpenAIEmbeddingStrategy:
    name = "openai"

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        model: str = OPENAI_EMBEDDING_MODEL,
        dim: int = EMBEDDING_DIM,
    ):
        self.client = client
        self.model = model
        self.dim = dim

    async def embed(self, texts: List[str]) -> List[np.ndarray]:
        try:
            resp = await self.client.embeddings.create(
                model=self.model, input=texts, dimensions=self.dim
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise StrategyError("auth", retryable=False, message=str(e)) from e
        except openai.RateLimitError as e:
            code = getattr(e, "code", None)
            if code == "insufficient_quota":
                raise StrategyError("quota", retryable=False, message=str(e)) from e
            raise StrategyError("unavailable", retryable=True, message=str(e)) from e
        except (openai.BadRequestError, openai.UnprocessableEntityError) as e:
            raise StrategyError("rejected", retryable=False, message=str(e)) from e
        except openai.APITimeoutError as e:
            raise StrategyError("timeout", retryable=True, message=str(e)) from e
        except (openai.APIConnectionError, openai.APIStatusError) as e:
            raise StrategyError("unavailable", retryable=True, message=str(e)) from e

        rows = sorted(resp.data, key=lambda d: d.index)
        out = [np.asarray(r.embedding, dtype=np.float32) for r in rows]
        if len(out) != len(texts) or any(v.shape[0] != self.dim for v in out):
            raise StrategyError("rejected", retryable=False, message="unexpected embedding shape")
        return out


class SentenceTransformerStrategy:
    """
    Local fallback generator.

    Its vectors live in a different space from the hosted model; they are
    resized to the collection dimensionality only so the store accepts them.
    """

    name = "sentence_transformer"

    def __init__(
        self,
        model: SentenceTransformer | None = None,
        *,
        model_name: str = LOCAL_EMBEDDING_MODEL,
        dim: int = EMBEDDING_DIM,
    ):
        self._model = model
        self.model_name = model_name
        self.dim = dim
        self._load_lock = asyncio.Lock()

    async def _get_model(self) -> SentenceTransformer:
        if self._model is None:
            async with self._load_lock:
                if self._model is None:
                    self._model = await to_thread.run_sync(SentenceTransformer, self.model_name)
        return self._model

    async def embed(self, texts: List[str]) -> List[np.ndarray]:
        try:
            model = await self._get_model()
            arr = await to_thread.run_sync(
                lambda: model.encode(texts, convert_to_numpy=True, normalize_embeddings=True)
            )
        except Exception as e:
            raise StrategyError("unavailable", retryable=False, message=str(e)) from e
        return [resize(v, self.dim) for v in arr]


class EmbeddingProvider:
    """
    Text -> vector with an ordered fallback chain.

    Each strategy gets a per-call timeout and bounded retries for transient
    failures. Only results of the primary strategy are cached, so a fallback
    vector is never served once the primary recovers.
    """

    def __init__(
        self,
        strategies: Sequence[EmbeddingStrategy],
        *,
        dim: int = EMBEDDING_DIM,
        batch_size: int = EMBEDDING_BATCH_SIZE,
        max_chars: int = EMBEDDING_MAX_CHARS,
        timeout_s: float = 10.0,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        cache_size: int = 4096,
        max_concurrency: int = 4,
    ):
        if not strategies:
            raise ValueError("at least one embedding strategy is required")
        self.strategies = list(strategies)
        self.dim = dim
        self.batch_size = batch_size
        self.max_chars = max_chars
        self.timeout_s = timeout_s
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.cache_size = cache_size
        self._cache: "OrderedDict[str, np.ndarray]" = OrderedDict()
        self._sem = asyncio.Semaphore(max_concurrency)

    # ---------- cache ----------
    @staticmethod
    def _key(text: str) -> str:
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    def _cache_get(self, key: str) -> Optional[np.ndarray]:
        vec = self._cache.get(key)
        if vec is not None:
            self._cache.move_to_end(key)
        return vec

    def _cache_put(self, key: str, vec: np.ndarray) -> None:
        if self.cache_size <= 0:
            return
        self._cache[key] = vec
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    # ---------- strategy chain ----------
    async def _call_with_retry(self, strategy: EmbeddingStrategy, texts: List[str]) -> List[np.ndarray]:
        for attempt in range(self.max_attempts):
            try:
                return await asyncio.wait_for(strategy.embed(texts), timeout=self.timeout_s)
            except asyncio.TimeoutError:
                err = StrategyError("timeout", retryable=True)
            except StrategyError as e:
                err = e
            if not err.retryable or attempt == self.max_attempts - 1:
                raise err
            wait = self.backoff_base * (2**attempt)
            log.warning(
                "embedding strategy %s failed (%s), retry %d/%d in %.2fs",
                strategy.name, err.kind, attempt + 1, self.max_attempts - 1, wait,
            )
            await asyncio.sleep(wait)
        raise StrategyError("unavailable", retryable=False)

    async def _embed_chunk(self, texts: List[str]) -> tuple[List[np.ndarray], bool]:
        first_error: StrategyError | None = None
        async with self._sem:
            for idx, strategy in enumerate(self.strategies):
                try:
                    vectors = await self._call_with_retry(strategy, texts)
                except StrategyError as e:
                    first_error = first_error or e
                    log.warning("embedding strategy %s gave up: %s", strategy.name, e.kind)
                    continue
                if idx > 0:
                    log.warning("using fallback embedding strategy %s for %d texts", strategy.name, len(texts))
                return [resize(v, self.dim) for v in vectors], idx == 0
        kind = first_error.kind if first_error else "unavailable"
        raise EmbeddingUnavailable(kind)

    # ---------- public ----------
    async def embed(self, text: str) -> np.ndarray:
        (vec,) = await self.embed_batch([text])
        return vec

    async def embed_batch(self, texts: Sequence[str]) -> List[np.ndarray]:
        """Order-preserving batch embed. Empty input text is a caller bug."""
        for t in texts:
            if not isinstance(t, str) or not t.strip():
                raise ValueError("cannot embed empty text")
        if not texts:
            return []

        prepared = [truncate_text(t, max_chars=self.max_chars) for t in texts]
        keys = [self._key(t) for t in prepared]

        found: Dict[str, np.ndarray] = {}
        pending: Dict[str, str] = {}
        for key, text in zip(keys, prepared):
            cached = self._cache_get(key)
            if cached is not None:
                found[key] = cached
            else:
                pending.setdefault(key, text)

        if pending:
            todo = list(pending.items())
            chunks = [todo[i : i + self.batch_size] for i in range(0, len(todo), self.batch_size)]
            results = await asyncio.gather(
                *(self._embed_chunk([text for _, text in chunk]) for chunk in chunks)
            )
            for chunk, (vectors, primary) in zip(chunks, results):
                for (key, _), vec in zip(chunk, vectors):
                    found[key] = vec
                    if primary:
                        self._cache_put(key, vec)

        return [found[k] for k in keys]

    async def embed_item(self, item: MediaItem) -> np.ndarray:
        return await self.embed(format_embedding_text(item))

    async def embed_items(self, items: Sequence[MediaItem]) -> Dict[MediaId, np.ndarray]:
        vectors = await self.embed_batch([format_embedding_text(i) for i in items])
        return {item.id: vec for item, vec in zip(items, vectors)}


def build_embedding_provider(
    *,
    openai_api_key: str | None,
    model: str = OPENAI_EMBEDDING_MODEL,
    dim: int = EMBEDDING_DIM,
    timeout_s: float = 10.0,
    max_attempts: int = 3,
    cache_size: int = 4096,
    local_fallback: bool = True,
    local_model_name: str = LOCAL_EMBEDDING_MODEL,
) -> EmbeddingProvider:
    strategies: List[EmbeddingStrategy] = []
    if openai_api_key:
        client = AsyncOpenAI(api_key=openai_api_key, max_retries=0)
        strategies.append(OpenAIEmbeddingStrategy(client, model=model, dim=dim))
    if local_fallback or not strategies:
        strategies.append(SentenceTransformerStrategy(model_name=local_model_name, dim=dim))
    return EmbeddingProvider(
        strategies,
        dim=dim,
        timeout_s=timeout_s,
        max_attempts=max_attempts,
        cache_size=cache_size,
    )
