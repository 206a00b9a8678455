from __future__ import annotations

import copy
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

import numpy as np
from qdrant_client import QdrantClient
from qdrant_client.http import models as qm

from marquee_core.errors import DimensionMismatch, NotFound

from .similarity import Metric, score_matrix

log = logging.getLogger(__name__)

_KEY_FIELD = "_key"


@dataclass(frozen=True)
class VectorRecord:
    id: str
    vector: np.ndarray
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VectorHit:
    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


def as_vector(values: Sequence[float] | np.ndarray) -> np.ndarray:
    return np.asarray(values, dtype=np.float32).reshape(-1)


def metadata_matches(metadata: Mapping[str, Any], flt: Optional[Mapping[str, Any]]) -> bool:
    """Exact-match conjunction. A list-valued field matches when it contains the value."""
    if not flt:
        return True
    for key, want in flt.items():
        have = metadata.get(key)
        if isinstance(have, (list, tuple)) and not isinstance(want, (list, tuple)):
            if want not in have:
                return False
        elif have != want:
            return False
    return True


class VectorStore(Protocol):
    """Fixed-dimension keyed vector index with metadata and similarity search."""

    dim: int
    metric: Metric

    def insert(self, id: str, vector: Sequence[float] | np.ndarray, metadata: Mapping[str, Any] | None = None) -> None: ...

    def upsert_many(self, records: Iterable[VectorRecord]) -> int: ...

    def get(self, id: str) -> VectorRecord: ...

    def delete(self, id: str) -> bool: ...

    def search(
        self,
        query: Sequence[float] | np.ndarray,
        k: int,
        filter: Mapping[str, Any] | None = None,
        min_score: float | None = None,
    ) -> List[VectorHit]: ...

    def count(self) -> int: ...

    def ids(self) -> List[str]: ...

    def clear(self) -> None: ...


class InMemoryVectorStore:
    """
    Brute-force numpy index. Exact results, O(n * dim) per search.

    Stored vectors are read-only copies, so a reader holding a record never
    sees a later write. Writes and search snapshots share one lock.
    """

    def __init__(self, dim: int, metric: Metric = Metric.COSINE, *, name: str = "default"):
        if dim <= 0:
            raise ValueError("dim must be positive")
        self.dim = int(dim)
        self.metric = Metric(metric)
        self.name = name
        self._lock = threading.Lock()
        self._vectors: Dict[str, np.ndarray] = {}
        self._meta: Dict[str, Dict[str, Any]] = {}

    def _check(self, vec: np.ndarray) -> np.ndarray:
        if vec.shape[0] != self.dim:
            raise DimensionMismatch(self.dim, int(vec.shape[0]))
        frozen = vec.copy()
        frozen.setflags(write=False)
        return frozen

    def insert(self, id, vector, metadata=None) -> None:
        vec = self._check(as_vector(vector))
        meta = copy.deepcopy(dict(metadata or {}))
        with self._lock:
            self._vectors[id] = vec
            self._meta[id] = meta

    def upsert_many(self, records: Iterable[VectorRecord]) -> int:
        # validate everything before touching the index
        staged = [
            (r.id, self._check(as_vector(r.vector)), copy.deepcopy(dict(r.metadata)))
            for r in records
        ]
        with self._lock:
            for rid, vec, meta in staged:
                self._vectors[rid] = vec
                self._meta[rid] = meta
        return len(staged)

    def get(self, id: str) -> VectorRecord:
        with self._lock:
            vec = self._vectors.get(id)
            meta = self._meta.get(id)
        if vec is None:
            raise NotFound(f"vector '{id}' not found in {self.name}")
        return VectorRecord(id=id, vector=vec, metadata=copy.deepcopy(meta or {}))

    def delete(self, id: str) -> bool:
        with self._lock:
            existed = self._vectors.pop(id, None) is not None
            self._meta.pop(id, None)
        return existed

    def search(self, query, k, filter=None, min_score=None) -> List[VectorHit]:
        q = as_vector(query)
        if q.shape[0] != self.dim:
            raise DimensionMismatch(self.dim, int(q.shape[0]))
        if k <= 0:
            return []

        with self._lock:
            keys = [i for i, m in self._meta.items() if metadata_matches(m, filter)]
            rows = [self._vectors[i] for i in keys]
            metas = [self._meta[i] for i in keys]
        if not keys:
            return []

        scores = score_matrix(np.stack(rows), q, self.metric)
        # stable: equal scores keep insertion order
        order = np.argsort(-scores, kind="stable")
        hits: List[VectorHit] = []
        for idx in order:
            s = float(scores[idx])
            if min_score is not None and s < min_score:
                continue
            hits.append(VectorHit(id=keys[idx], score=s, metadata=copy.deepcopy(metas[idx])))
            if len(hits) >= k:
                break
        return hits

    def count(self) -> int:
        with self._lock:
            return len(self._vectors)

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._vectors.keys())

    def clear(self) -> None:
        with self._lock:
            self._vectors.clear()
            self._meta.clear()


_DISTANCE = {
    Metric.COSINE: qm.Distance.COSINE,
    Metric.DOT: qm.Distance.DOT,
    Metric.EUCLIDEAN: qm.Distance.EUCLID,
}


class QdrantVectorStore:
    """
    Same contract over a Qdrant collection (HNSW, approximate).

    Qdrant point ids must be ints or UUIDs, so opaque ids are mapped to a
    deterministic uuid5 and the original id is kept in the payload.
    Cosine collections are unit-normalized on write: get() returns the
    normalized vector.
    """

    def __init__(
        self,
        client: QdrantClient,
        collection: str,
        dim: int,
        metric: Metric = Metric.COSINE,
    ):
        self.client = client
        self.collection = collection
        self.dim = int(dim)
        self.metric = Metric(metric)
        self._ensure_collection()

    def _ensure_collection(self) -> None:
        if self.client.collection_exists(self.collection):
            return
        self.client.create_collection(
            collection_name=self.collection,
            vectors_config=qm.VectorParams(size=self.dim, distance=_DISTANCE[self.metric]),
        )
        log.info("Created qdrant collection %s (dim=%d, %s)", self.collection, self.dim, self.metric.value)

    def _point_id(self, key: str) -> str:
        return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{self.collection}:{key}"))

    def _check(self, vector) -> List[float]:
        vec = as_vector(vector)
        if vec.shape[0] != self.dim:
            raise DimensionMismatch(self.dim, int(vec.shape[0]))
        return vec.tolist()

    def _to_score(self, raw: float) -> float:
        if self.metric == Metric.EUCLIDEAN:
            return 1.0 / (1.0 + float(raw))
        return float(raw)

    def _qfilter(self, flt: Optional[Mapping[str, Any]]) -> Optional[qm.Filter]:
        if not flt:
            return None
        return qm.Filter(
            must=[
                qm.FieldCondition(key=k, match=qm.MatchValue(value=v))
                for k, v in flt.items()
            ]
        )

    def _point(self, key: str, vector, metadata) -> qm.PointStruct:
        payload = dict(metadata or {})
        payload[_KEY_FIELD] = key
        return qm.PointStruct(id=self._point_id(key), vector=self._check(vector), payload=payload)

    def insert(self, id, vector, metadata=None) -> None:
        self.client.upsert(collection_name=self.collection, points=[self._point(id, vector, metadata)])

    def upsert_many(self, records: Iterable[VectorRecord]) -> int:
        points = [self._point(r.id, r.vector, r.metadata) for r in records]
        if points:
            self.client.upsert(collection_name=self.collection, points=points)
        return len(points)

    def get(self, id: str) -> VectorRecord:
        res = self.client.retrieve(
            collection_name=self.collection,
            ids=[self._point_id(id)],
            with_payload=True,
            with_vectors=True,
        )
        if not res:
            raise NotFound(f"vector '{id}' not found in {self.collection}")
        p = res[0]
        payload = dict(p.payload or {})
        payload.pop(_KEY_FIELD, None)
        return VectorRecord(id=id, vector=as_vector(p.vector), metadata=payload)

    def delete(self, id: str) -> bool:
        pid = self._point_id(id)
        existing = self.client.retrieve(
            collection_name=self.collection, ids=[pid], with_payload=False, with_vectors=False
        )
        if not existing:
            return False
        self.client.delete(
            collection_name=self.collection,
            points_selector=qm.PointIdsList(points=[pid]),
        )
        return True

    def search(self, query, k, filter=None, min_score=None) -> List[VectorHit]:
        q = self._check(query)
        if k <= 0:
            return []
        threshold = min_score
        if self.metric == Metric.EUCLIDEAN and min_score is not None:
            # qdrant thresholds euclid on raw distance
            threshold = (1.0 / min_score - 1.0) if min_score > 0 else None
        res = self.client.query_points(
            collection_name=self.collection,
            query=q,
            query_filter=self._qfilter(filter),
            limit=k,
            score_threshold=threshold,
            with_payload=True,
            with_vectors=False,
        )
        hits: List[VectorHit] = []
        for p in res.points:
            payload = dict(p.payload or {})
            key = payload.pop(_KEY_FIELD, str(p.id))
            hits.append(VectorHit(id=key, score=self._to_score(p.score), metadata=payload))
        return hits

    def count(self) -> int:
        return int(self.client.count(collection_name=self.collection, exact=True).count)

    def ids(self) -> List[str]:
        out: List[str] = []
        offset = None
        while True:
            points, offset = self.client.scroll(
                collection_name=self.collection,
                with_payload=[_KEY_FIELD],
                with_vectors=False,
                limit=256,
                offset=offset,
            )
            out.extend(str((p.payload or {}).get(_KEY_FIELD, p.id)) for p in points)
            if offset is None:
                break
        return out

    def clear(self) -> None:
        self.client.delete_collection(collection_name=self.collection)
        self._ensure_collection()


def connect_qdrant(api_key: str | None, endpoint: str | None) -> QdrantClient:
    try:
        client = QdrantClient(url=endpoint, api_key=api_key) if endpoint else QdrantClient(":memory:")
        log.info("Connected to Qdrant (%s)", endpoint or ":memory:")
        return client
    except Exception:
        log.exception("Error connecting to Qdrant")
        raise


def make_vector_store(
    *,
    backend: str,
    collection: str,
    dim: int,
    metric: Metric = Metric.COSINE,
    qdrant: QdrantClient | None = None,
) -> VectorStore:
    if backend == "qdrant":
        if qdrant is None:
            raise ValueError("qdrant backend requires a QdrantClient")
        return QdrantVectorStore(qdrant, collection, dim, metric)
    return InMemoryVectorStore(dim, metric, name=collection)
