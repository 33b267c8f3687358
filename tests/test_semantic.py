from __future__ import annotations

import asyncio

import numpy as np
import pytest

from coherence_physics import semantic
from coherence_physics.semantic import (
    EmbeddingConfig,
    EmbeddingContext,
    SemanticEmbedder,
    cosine_similarity,
    static_embed_fn,
)


def test_hash_embeddings_are_deterministic() -> None:
    strings = ["alpha signal", "beta signal", "gamma signal"]
    embedder = SemanticEmbedder(EmbeddingConfig(method="hash", dims=32))
    first = embedder.encode(strings)
    second = embedder.encode(strings)
    assert first.shape == (3, 32)
    assert np.allclose(first, second)
    assert np.allclose(np.linalg.norm(first, axis=1), 1.0)
    assert embedder.backend == "hash"


def test_embed_maps_each_distinct_text_once() -> None:
    embedder = SemanticEmbedder(EmbeddingConfig(method="hash", dims=16))
    table = asyncio.run(embedder.embed(["a b", "c", "a b"]))
    assert list(table) == ["a b", "c"]
    assert table["a b"].shape == (16,)
    assert asyncio.run(embedder.embed([])) == {}


def test_unknown_method_is_rejected() -> None:
    with pytest.raises(ValueError):
        SemanticEmbedder(EmbeddingConfig(method="bag-of-words"))


def test_transformer_method_requires_the_package(monkeypatch) -> None:
    monkeypatch.setattr(semantic, "SentenceTransformer", None)
    with pytest.raises(RuntimeError):
        SemanticEmbedder(EmbeddingConfig(method="transformer"))


def test_auto_falls_back_to_hash_when_backend_unavailable() -> None:
    context = EmbeddingContext()
    context.refresh(lambda: False, now=0.0)
    embedder = SemanticEmbedder(EmbeddingConfig(method="auto", dims=8), context)
    assert embedder.backend == "hash"


def test_context_caches_availability_until_ttl() -> None:
    calls = []

    def probe() -> bool:
        calls.append(1)
        return True

    context = EmbeddingContext(ttl_seconds=30.0)
    assert context.is_stale(now=0.0)
    assert context.backend_available(probe, now=0.0)
    assert context.backend_available(probe, now=29.0)
    assert len(calls) == 1
    assert context.is_stale(now=30.0)
    assert context.backend_available(probe, now=31.0)
    assert len(calls) == 2
    context.refresh(lambda: False, now=32.0)
    assert not context.backend_available(probe, now=33.0)


def test_static_embed_fn_returns_zero_vectors_for_unknown_texts() -> None:
    embed = static_embed_fn({"known": [1.0, 2.0, 3.0]})
    table = asyncio.run(embed(["known", "unknown"]))
    assert np.allclose(table["known"], [1.0, 2.0, 3.0])
    assert np.allclose(table["unknown"], [0.0, 0.0, 0.0])


def test_cosine_similarity_matrix_handles_zero_rows() -> None:
    a = np.array([[1.0, 0.0], [0.0, 0.0]])
    b = np.array([[2.0, 0.0], [0.0, 3.0]])
    sims = cosine_similarity(a, b)
    assert sims.shape == (2, 2)
    assert sims[0, 0] == pytest.approx(1.0)
    assert sims[0, 1] == pytest.approx(0.0)
    assert np.allclose(sims[1], 0.0)
