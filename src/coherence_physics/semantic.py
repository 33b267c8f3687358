"""Embedding backends for physics runs.

The physics core only ever sees an async ``embed(texts)`` callable that
returns a mapping from text to vector.  This module provides one backed by
SentenceTransformer when it is installed, otherwise by a deterministic
hashing fallback that still gives stable cosine geometry for experiments
and tests.  Backend availability lives in an explicit ``EmbeddingContext``
with a refresh policy instead of module-level flags.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Mapping, Optional, Sequence

import numpy as np

try:  # pragma: no cover - optional dependency
    from sentence_transformers import SentenceTransformer  # type: ignore
except ImportError:  # pragma: no cover - optional dependency
    SentenceTransformer = None  # type: ignore

__all__ = [
    "EmbedFn",
    "EmbeddingConfig",
    "EmbeddingContext",
    "SemanticEmbedder",
    "cosine_similarity",
    "static_embed_fn",
]

LOGGER = logging.getLogger(__name__)

EmbedFn = Callable[[Sequence[str]], Awaitable[Mapping[str, Sequence[float]]]]

DEFAULT_AVAILABILITY_TTL = 30.0


def _normalise(text: str) -> str:
    return " ".join(text.replace("_", " ").split())


def _hash_embedding(texts: Sequence[str], *, dims: int = 256) -> np.ndarray:
    """Return deterministic pseudo-embeddings when no model is available."""
    vectors = np.zeros((len(texts), dims), dtype=np.float64)
    for idx, text in enumerate(texts):
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        repeats = (dims + len(digest) - 1) // len(digest)
        blob = (digest * repeats)[:dims]
        vectors[idx] = np.frombuffer(blob, dtype=np.uint8) / 255.0
        # Mean centre for basic cosine geometry.
        vectors[idx] -= vectors[idx].mean()
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0.0] = 1.0
    return vectors / norms


def _transformers_installed() -> bool:
    return SentenceTransformer is not None


@dataclass
class EmbeddingContext:
    """Cached backend availability with a time-to-live.

    The orchestration layer owns one context per process or session and
    passes it to every embedder it builds; ``refresh`` forces a re-probe.
    """

    ttl_seconds: float = DEFAULT_AVAILABILITY_TTL
    available: Optional[bool] = None
    checked_at: Optional[float] = None

    def is_stale(self, now: Optional[float] = None) -> bool:
        if self.available is None or self.checked_at is None:
            return True
        current = time.monotonic() if now is None else now
        return current - self.checked_at >= self.ttl_seconds

    def refresh(self, probe: Callable[[], bool], now: Optional[float] = None) -> bool:
        self.available = bool(probe())
        self.checked_at = time.monotonic() if now is None else now
        return self.available

    def backend_available(
        self,
        probe: Callable[[], bool] = _transformers_installed,
        now: Optional[float] = None,
    ) -> bool:
        if self.is_stale(now):
            return self.refresh(probe, now)
        return bool(self.available)


@dataclass
class EmbeddingConfig:
    method: str = "auto"
    model_name: str = "all-MiniLM-L6-v2"
    dims: int = 256


class SemanticEmbedder:
    """Encodes strings into vectors using optional transformer models."""

    def __init__(
        self,
        config: Optional[EmbeddingConfig] = None,
        context: Optional[EmbeddingContext] = None,
    ) -> None:
        self.config = config or EmbeddingConfig()
        self.context = context or EmbeddingContext()
        self._model = None
        method = self.config.method.lower()
        if method == "transformer" or (method == "auto" and self.context.backend_available()):
            self._initialise_transformer()
        elif method not in {"auto", "hash"}:
            raise ValueError(f"Unknown embedding method: {self.config.method}")

    @property
    def backend(self) -> str:
        return "transformer" if self._model is not None else "hash"

    def _initialise_transformer(self) -> None:
        if SentenceTransformer is None:
            raise RuntimeError("sentence-transformers is not installed")
        self._model = SentenceTransformer(self.config.model_name)  # type: ignore[arg-type]

    def encode(self, strings: Sequence[str]) -> np.ndarray:
        cleaned = [_normalise(s) for s in strings]
        if self._model is not None:
            vectors = np.asarray(self._model.encode(cleaned, show_progress_bar=False), dtype=np.float64)
            norms = np.linalg.norm(vectors, axis=1, keepdims=True)
            norms[norms == 0.0] = 1.0
            return vectors / norms
        return _hash_embedding(cleaned, dims=self.config.dims)

    async def embed(self, texts: Sequence[str]) -> Dict[str, np.ndarray]:
        """Async collaborator entry point: map each distinct text to its vector."""
        unique = list(dict.fromkeys(texts))
        if not unique:
            return {}
        vectors = await asyncio.to_thread(self.encode, unique)
        LOGGER.debug("embedded %d texts with %s backend", len(unique), self.backend)
        return {text: vectors[idx] for idx, text in enumerate(unique)}

    def as_embed_fn(self) -> EmbedFn:
        return self.embed


def static_embed_fn(table: Mapping[str, Sequence[float]], dims: Optional[int] = None) -> EmbedFn:
    """Wrap a precomputed text-to-vector table as an embedding collaborator.

    Unknown texts come back as zero vectors, matching how remote providers
    report failed items.
    """
    width = dims if dims is not None else len(next(iter(table.values()), ()))

    async def _embed(texts: Sequence[str]) -> Dict[str, np.ndarray]:
        result: Dict[str, np.ndarray] = {}
        for text in texts:
            if text in table:
                result[text] = np.asarray(table[text], dtype=np.float64)
            else:
                result[text] = np.zeros(width, dtype=np.float64)
        return result

    return _embed


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    a_norms = np.linalg.norm(a, axis=1, keepdims=True)
    b_norms = np.linalg.norm(b, axis=1, keepdims=True)
    a_norms[a_norms == 0.0] = 1.0
    b_norms[b_norms == 0.0] = 1.0
    return (a @ b.T) / (a_norms * b_norms.T)
