import hashlib
from typing import List

import numpy as np
import pytest

DIM = 16


class HashEmbeddingStrategy:
    """Deterministic stand-in for a hosted model: same text, same unit vector."""

    name = "hash"

    def __init__(self, dim: int = DIM):
        self.dim = dim
        self.calls: List[List[str]] = []

    async def embed(self, texts: List[str]) -> List[np.ndarray]:
        self.calls.append(list(texts))
        out = []
        for t in texts:
            seed = int.from_bytes(hashlib.sha256(t.encode("utf-8")).digest()[:8], "little")
            v = np.random.default_rng(seed).normal(size=self.dim).astype(np.float32)
            out.append(v / np.linalg.norm(v))
        return out


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def dim():
    return DIM


@pytest.fixture
def hash_strategy(dim):
    return HashEmbeddingStrategy(dim)
