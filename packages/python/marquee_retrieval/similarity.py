from __future__ import annotations

from enum import Enum

import numpy as np

# float64 accumulation noise is far below this; snapping keeps cosine(v, v) == 1.0 exact
_DECIMALS = 12


class Metric(str, Enum):
    COSINE = "cosine"
    DOT = "dot"
    EUCLIDEAN = "euclidean"


def _f64(x) -> np.ndarray:
    return np.asarray(x, dtype=np.float64)


def cosine(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity; 0.0 when either side is the zero vector."""
    a, b = _f64(a), _f64(b)
    na2 = float(np.einsum("i,i->", a, a))
    nb2 = float(np.einsum("i,i->", b, b))
    if na2 == 0.0 or nb2 == 0.0:
        return 0.0
    raw = float(np.einsum("i,i->", a, b)) / np.sqrt(na2 * nb2)
    return float(np.clip(np.round(raw, _DECIMALS), -1.0, 1.0))


def dot(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.dot(_f64(a), _f64(b)))


def euclidean(a: np.ndarray, b: np.ndarray) -> float:
    # distance mapped into (0, 1], higher is closer
    return 1.0 / (1.0 + float(np.linalg.norm(_f64(a) - _f64(b))))


def score_matrix(matrix: np.ndarray, query: np.ndarray, metric: Metric) -> np.ndarray:
    """Score every row of `matrix` against `query` in one pass (float64)."""
    if matrix.shape[0] == 0:
        return np.zeros(0, dtype=np.float64)
    m, q = _f64(matrix), _f64(query)
    if metric == Metric.DOT:
        return m @ q
    if metric == Metric.EUCLIDEAN:
        return 1.0 / (1.0 + np.linalg.norm(m - q, axis=1))
    qn2 = float(np.einsum("j,j->", q, q))
    out = np.zeros(m.shape[0], dtype=np.float64)
    if qn2 == 0.0:
        return out
    # row norms and row·query use the same reduction so identical rows score exactly 1
    norms2 = np.einsum("ij,ij->i", m, m)
    raw = np.einsum("ij,j->i", m, q)
    nz = norms2 > 0
    out[nz] = raw[nz] / np.sqrt(norms2[nz] * qn2)
    return np.clip(np.round(out, _DECIMALS), -1.0, 1.0)
