"""Layer-separation checks for decay-rate measurements.

Three independent protocols verify that the measured decay rate does not
leak from the control value used to transform a text:

* independence: blind and context-aware measurements must agree;
* baseline stability: transformed corpora must not shift the mean;
* cross-model invariance: rankings must survive a change of embedding model.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Sequence

__all__ = [
    "IndependenceResult",
    "BaselineStabilityResult",
    "CrossModelResult",
    "LayerSeparationValidator",
    "pearson",
    "spearman",
]

LOGGER = logging.getLogger(__name__)

MeasureFn = Callable[..., Awaitable[float]]
TransformFn = Callable[[str, float], Awaitable[str]]


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _std(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    m = _mean(values)
    return math.sqrt(sum((v - m) ** 2 for v in values) / (len(values) - 1))


def pearson(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson correlation; ``0`` for empty, mismatched or constant input."""
    if len(x) != len(y) or not x:
        return 0.0
    mx, my = _mean(x), _mean(y)
    num = den_x = den_y = 0.0
    for a, b in zip(x, y):
        dx, dy = a - mx, b - my
        num += dx * dy
        den_x += dx * dx
        den_y += dy * dy
    if den_x == 0 or den_y == 0:
        return 0.0
    return num / math.sqrt(den_x * den_y)


def _ranks(values: Sequence[float]) -> List[float]:
    # Ties keep input order; no averaging.
    order = sorted(range(len(values)), key=lambda i: values[i])
    ranks = [0.0] * len(values)
    for position, index in enumerate(order):
        ranks[index] = float(position + 1)
    return ranks


def spearman(x: Sequence[float], y: Sequence[float]) -> float:
    return pearson(_ranks(x), _ranks(y))


@dataclass(frozen=True)
class IndependenceResult:
    passed: bool
    correlation: float
    mean_difference: float


@dataclass(frozen=True)
class BaselineStabilityResult:
    passed: bool
    virgin_mean: float
    transformed_mean: float
    z_score: float


@dataclass(frozen=True)
class CrossModelResult:
    passed: bool
    mean_rank_correlation: float
    min_rank_correlation: float


class LayerSeparationValidator:
    """Run the separation protocols against async measurement collaborators.

    Parameters
    ----------
    measure:
        ``await measure(text)`` or ``await measure(text, context)`` returns
        the decay rate of ``text``; ``context`` carries ``lambda_control``
        for the aware measurement.
    transform:
        ``await transform(text, lambda_control)`` returns the transformed text.
    """

    def __init__(self, measure: MeasureFn, transform: TransformFn) -> None:
        self.measure = measure
        self.transform = transform

    async def validate_independence(
        self, corpus: Sequence[str], lambda_values: Sequence[float]
    ) -> IndependenceResult:
        blind: List[float] = []
        aware: List[float] = []
        for text in corpus:
            for control in lambda_values:
                transformed = await self.transform(text, control)
                blind.append(float(await self.measure(transformed)))
                aware.append(float(await self.measure(transformed, {"lambda_control": control})))

        corr = pearson(blind, aware)
        mean_diff = _mean([abs(a - b) for a, b in zip(blind, aware)])
        passed = corr > 0.99 and mean_diff < 0.001
        LOGGER.info("independence: r=%.4f mean|diff|=%.6f passed=%s", corr, mean_diff, passed)
        return IndependenceResult(passed, corr, mean_diff)

    async def validate_baseline_stability(
        self, virgin_corpus: Sequence[str], transformed_corpus: Sequence[str]
    ) -> BaselineStabilityResult:
        virgin = [float(await self.measure(text)) for text in virgin_corpus]
        transformed = [float(await self.measure(text)) for text in transformed_corpus]

        mu_v = _mean(virgin)
        mu_t = _mean(transformed)
        std_err = _std(virgin) / math.sqrt(len(virgin)) if virgin else 0.0
        z = 0.0 if std_err == 0 else (mu_t - mu_v) / std_err
        passed = abs(z) < 2.0
        LOGGER.info("baseline stability: z=%.3f passed=%s", z, passed)
        return BaselineStabilityResult(passed, mu_v, mu_t, z)

    async def validate_cross_model(
        self,
        texts: Sequence[str],
        models: Sequence[str],
        measure_with_model: Callable[[str, str], Awaitable[float]],
    ) -> CrossModelResult:
        """Mean pairwise Spearman correlation of per-model decay rates.

        With fewer than two models there is no pair: the mean is ``0`` and
        the minimum ``nan``, so the check fails.
        """
        results: Dict[str, List[float]] = {model: [] for model in models}
        for text in texts:
            for model in models:
                results[model].append(float(await measure_with_model(text, model)))

        correlations = [
            spearman(results[models[i]], results[models[j]])
            for i in range(len(models))
            for j in range(i + 1, len(models))
        ]
        mean_rho = _mean(correlations)
        min_rho = min(correlations) if correlations else math.nan
        passed = mean_rho > 0.90
        LOGGER.info("cross-model: mean rho=%.4f passed=%s", mean_rho, passed)
        return CrossModelResult(passed, mean_rho, min_rho)
