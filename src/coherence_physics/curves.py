"""Lagged coherence curves over an ordered embedding sequence."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from .config import DEFAULT_MAX_LAG, MIN_VALID_NORM
from .embeddings import as_vector, check_dimensions, vector_norm
from .precision import precision_cosine_similarity, precision_mean

__all__ = [
    "CoherenceCurve",
    "build_curves",
    "adjacent_similarities",
    "resolve_vectors",
    "lagged_autocorrelation",
]


@dataclass(frozen=True)
class CoherenceCurve:
    """Coherence statistics for one lag.

    ``forward`` and ``backward`` are ``nan`` when no valid pair exists at
    this lag, which is distinct from a measured coherence of zero.
    """

    lag: int
    forward: float
    backward: float
    sample_size: int
    std_dev: float
    std_err: float


def resolve_vectors(
    embeddings_by_key: Mapping[str, Sequence[float]],
    ordered_keys: Sequence[str],
) -> List[Optional[np.ndarray]]:
    """Return the vector for each key, or ``None`` when missing or below the norm floor."""
    cache: Dict[str, Optional[np.ndarray]] = {}
    resolved: List[Optional[np.ndarray]] = []
    for key in ordered_keys:
        if key not in cache:
            raw = embeddings_by_key.get(key)
            vector = None
            if raw is not None:
                candidate = as_vector(raw)
                if vector_norm(candidate) > MIN_VALID_NORM:
                    vector = candidate
            cache[key] = vector
        resolved.append(cache[key])
    check_dimensions(v for v in resolved if v is not None)
    return resolved


def _lagged_similarities(vectors: Sequence[Optional[np.ndarray]], lag: int) -> List[float]:
    values: List[float] = []
    for i in range(len(vectors) - lag):
        current = vectors[i]
        ahead = vectors[i + lag]
        if current is None or ahead is None:
            continue
        values.append(float(precision_cosine_similarity(current, ahead)))
    return values


def build_curves(
    embeddings_by_key: Mapping[str, Sequence[float]],
    ordered_keys: Sequence[str],
    max_lag: int = DEFAULT_MAX_LAG,
) -> List[CoherenceCurve]:
    """Compute forward and backward coherence for lags ``1..max_lag``.

    Forward similarity pairs item ``i`` with ``i + lag`` in the given order,
    backward similarity does the same over the reversed order.  Both
    members of a pair must have a norm above ``0.01``.  ``sample_size`` is
    the smaller of the two pair counts; spread statistics describe the
    forward sample only.
    """
    vectors = resolve_vectors(embeddings_by_key, ordered_keys)
    reversed_vectors = list(reversed(vectors))

    curves: List[CoherenceCurve] = []
    for lag in range(1, max_lag + 1):
        forward_values = _lagged_similarities(vectors, lag)
        backward_values = _lagged_similarities(reversed_vectors, lag)

        count = len(forward_values)
        forward = float(precision_mean(forward_values)) if count else math.nan
        variance = 0.0
        if count > 1:
            variance = sum((v - forward) ** 2 for v in forward_values) / (count - 1)
        std_dev = math.sqrt(variance)
        std_err = std_dev / math.sqrt(count) if count else 0.0
        backward = sum(backward_values) / len(backward_values) if backward_values else math.nan

        curves.append(
            CoherenceCurve(
                lag=lag,
                forward=forward,
                backward=backward,
                sample_size=min(count, len(backward_values)),
                std_dev=std_dev,
                std_err=std_err,
            )
        )
    return curves


def adjacent_similarities(
    embeddings_by_key: Mapping[str, Sequence[float]],
    ordered_keys: Sequence[str],
) -> List[float]:
    """Cosine similarity of each valid ``(i, i + 1)`` pair in order."""
    return _lagged_similarities(resolve_vectors(embeddings_by_key, ordered_keys), 1)


def lagged_autocorrelation(
    embeddings_by_key: Mapping[str, Sequence[float]],
    ordered_keys: Sequence[str],
    max_lag: int = 3,
) -> List[float]:
    """Autocorrelation ``R(k)`` of the adjacent-similarity series.

    Unlike the forward/backward curves this statistic depends on order:
    shuffling a corpus with sequential structure breaks the correlation
    between ``sim(i, i+1)`` and ``sim(i+k, i+k+1)``.  Returns zeros when
    fewer than ``max_lag + 2`` adjacent pairs are available.
    """
    series = adjacent_similarities(embeddings_by_key, ordered_keys)
    if len(series) < max_lag + 2:
        return [0.0] * max_lag

    mean = float(precision_mean(series))
    centred = [value - mean for value in series]
    denominator = sum(value * value for value in centred)
    result: List[float] = []
    for lag in range(1, max_lag + 1):
        numerator = sum(centred[i] * centred[i + lag] for i in range(len(centred) - lag))
        r = numerator / denominator if denominator > 1e-10 else 0.0
        result.append(max(-1.0, min(1.0, r)))
    return result
