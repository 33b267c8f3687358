"""Embedding batch diagnostics and usability gating."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence

import numpy as np

from .config import (
    DEFAULT_MIN_VALID_VECTORS,
    IDENTICAL_SIMILARITY,
    MAX_IDENTICAL_PAIRS_RATIO,
    MIN_VALID_NORM,
)
from .precision import precision_cosine_similarity, precision_magnitude, precision_mean

__all__ = [
    "MAX_SAMPLED_PAIRS",
    "EmbeddingDiagnostics",
    "EmbeddingValidation",
    "as_vector",
    "check_dimensions",
    "vector_norm",
    "validate_embeddings",
    "is_usable",
    "count_unique_vectors",
]

MAX_SAMPLED_PAIRS = 50


@dataclass(frozen=True)
class EmbeddingDiagnostics:
    total_vectors: int
    valid_vectors: int
    zero_vectors: int
    degenerate_vectors: int
    avg_norm: float
    min_norm: float
    max_norm: float
    avg_pairwise_similarity: float
    identical_pairs: int
    sampled_pairs: int = 0


@dataclass(frozen=True)
class EmbeddingValidation:
    valid: bool
    degenerate: bool = False
    reason: Optional[str] = None


def as_vector(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=np.float64).reshape(-1)


def check_dimensions(vectors: Iterable[np.ndarray]) -> Optional[int]:
    """Return the shared dimension of ``vectors`` or raise ``ValueError``."""
    dimension: Optional[int] = None
    for vector in vectors:
        size = len(vector)
        if dimension is None:
            dimension = size
        elif size != dimension:
            raise ValueError(f"embedding dimension mismatch: {size} != {dimension}")
    return dimension


def vector_norm(vector: Sequence[float]) -> float:
    return float(precision_magnitude(vector))


def validate_embeddings(vectors: Sequence[Sequence[float]]) -> EmbeddingDiagnostics:
    """Classify vectors by norm and sample pairwise similarity.

    Norm ``0`` counts as zero, ``(0, 0.01)`` as degenerate and anything
    larger as valid.  Pairwise similarity is sampled over the first
    ``min(50, n(n-1)/2)`` pairs taken in ``(i, j > i)`` order; pairs above
    ``0.9999`` count as identical.
    """
    arrays = [as_vector(v) for v in vectors]
    check_dimensions(arrays)
    total = len(arrays)
    if total == 0:
        return EmbeddingDiagnostics(0, 0, 0, 0, 0.0, 0.0, 0.0, 0.0, 0)

    norms: List[float] = []
    valid = zero = degenerate = 0
    for vector in arrays:
        norm = vector_norm(vector)
        norms.append(norm)
        if norm == 0.0:
            zero += 1
        elif norm < MIN_VALID_NORM:
            degenerate += 1
        else:
            valid += 1

    max_pairs = min(MAX_SAMPLED_PAIRS, total * (total - 1) // 2)
    similarities: List[float] = []
    identical = 0
    for i in range(total):
        if len(similarities) >= max_pairs:
            break
        for j in range(i + 1, total):
            if len(similarities) >= max_pairs:
                break
            similarity = float(precision_cosine_similarity(arrays[i], arrays[j]))
            similarities.append(similarity)
            if similarity > IDENTICAL_SIMILARITY:
                identical += 1

    return EmbeddingDiagnostics(
        total_vectors=total,
        valid_vectors=valid,
        zero_vectors=zero,
        degenerate_vectors=degenerate,
        avg_norm=float(precision_mean(norms)),
        min_norm=min(norms),
        max_norm=max(norms),
        avg_pairwise_similarity=float(precision_mean(similarities)) if similarities else 0.0,
        identical_pairs=identical,
        sampled_pairs=len(similarities),
    )


def is_usable(
    diagnostics: EmbeddingDiagnostics,
    min_valid_vectors: int = DEFAULT_MIN_VALID_VECTORS,
) -> EmbeddingValidation:
    """Decide whether a batch can feed the physics computation.

    A batch dominated by identical pairs (ratio to total vectors above
    ``0.8``) is accepted but flagged degenerate so constant corpora yield a
    defined perfect-coherence result instead of an error.
    """
    if diagnostics.total_vectors == 0:
        return EmbeddingValidation(False, reason="No embedding vectors available")

    if diagnostics.valid_vectors < min_valid_vectors:
        return EmbeddingValidation(
            False,
            reason=(
                f"Only {diagnostics.valid_vectors} valid vectors (need {min_valid_vectors}+). "
                f"{diagnostics.zero_vectors} zero, {diagnostics.degenerate_vectors} degenerate."
            ),
        )

    if diagnostics.avg_norm < MIN_VALID_NORM:
        return EmbeddingValidation(
            False,
            reason=f"Average vector norm {diagnostics.avg_norm:.4f} too low (min {MIN_VALID_NORM})",
        )

    ratio = diagnostics.identical_pairs / max(1, diagnostics.total_vectors)
    if ratio > MAX_IDENTICAL_PAIRS_RATIO:
        return EmbeddingValidation(
            True,
            degenerate=True,
            reason=(
                f"{ratio * 100:.0f}% of vector pairs are nearly identical "
                "- degenerate input (e.g., constant corpus)"
            ),
        )

    return EmbeddingValidation(True)


def count_unique_vectors(embeddings: Mapping[str, Sequence[float]]) -> int:
    """Count distinct vectors by a fingerprint of their first ten components."""
    seen = set()
    for vector in embeddings.values():
        seen.add(tuple(f"{float(v):.6f}" for v in list(vector)[:10]))
    return len(seen)
