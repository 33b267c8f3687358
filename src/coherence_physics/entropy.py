"""Information-theoretic summaries of an embedding sequence."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np

from .precision import precision_cosine_similarity

__all__ = [
    "HISTOGRAM_BINS",
    "EntropyMetrics",
    "ZERO_ENTROPY",
    "NAN_ENTROPY",
    "embedding_entropy",
    "mutual_information",
    "compute_entropy_metrics",
]

HISTOGRAM_BINS = 10


@dataclass(frozen=True)
class EntropyMetrics:
    shannon_entropy: float
    normalized_entropy: float
    cross_entropy: float
    kl_divergence: float
    mutual_information: float


ZERO_ENTROPY = EntropyMetrics(0.0, 0.0, 0.0, 0.0, 0.0)
NAN_ENTROPY = EntropyMetrics(math.nan, math.nan, math.nan, math.nan, math.nan)


def _entropy_from_counts(counts: Iterable[int]) -> float:
    counts = list(counts)
    total = sum(counts)
    if total <= 0:
        return 0.0
    entropy = 0.0
    for count in counts:
        if count <= 0:
            continue
        probability = count / total
        entropy -= probability * math.log2(probability)
    return entropy


def embedding_entropy(vectors: Sequence[Sequence[float]]) -> float:
    """Mean per-dimension Shannon entropy over a 10-bin histogram.

    Each dimension is binned between its own minimum and maximum; a
    constant dimension puts every value in the first bin and contributes
    zero entropy.
    """
    if len(vectors) == 0:
        return 0.0
    matrix = np.asarray(vectors, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[1] == 0:
        return 0.0
    total = 0.0
    for column in matrix.T:
        low = float(column.min())
        span = float(column.max()) - low or 1.0
        bins = np.minimum(
            HISTOGRAM_BINS - 1,
            np.floor((column - low) / span * HISTOGRAM_BINS).astype(int),
        )
        total += _entropy_from_counts(np.bincount(bins, minlength=HISTOGRAM_BINS).tolist())
    return total / matrix.shape[1]


def mutual_information(vectors: Sequence[Sequence[float]]) -> float:
    """Adjacent-pair information proxy: mean of ``max(0, log2(1 + sim))``."""
    if len(vectors) < 2:
        return 0.0
    total = 0.0
    for left, right in zip(vectors, vectors[1:]):
        similarity = float(precision_cosine_similarity(left, right))
        total += max(0.0, math.log2(1.0 + similarity)) if similarity > -1.0 else 0.0
    return total / (len(vectors) - 1)


def compute_entropy_metrics(vectors: Sequence[Sequence[float]]) -> EntropyMetrics:
    shannon = embedding_entropy(vectors)
    uniform = math.log2(len(vectors) or 1)
    cross = shannon + abs(shannon - uniform)
    return EntropyMetrics(
        shannon_entropy=shannon,
        normalized_entropy=shannon / math.log2(HISTOGRAM_BINS),
        cross_entropy=cross,
        kl_divergence=max(0.0, cross - shannon),
        mutual_information=mutual_information(vectors),
    )
