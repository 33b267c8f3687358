"""Bootstrap scan for the critical sample size N_crit.

For each sample size ``N`` the corpus is resampled with replacement
``bootstrap_b`` times, the analysis function is run on every resample and
the coefficient of variation of the decay rate is recorded.  ``N_crit`` is
the first size whose CV drops below the stability threshold.

All resample indices are drawn from one ``SeededRandom`` stream before any
trial runs, in the order (N ascending, trial ascending, element
ascending).  Trials only read their pre-drawn indices, so a thread pool
produces exactly the serial result.
"""

from __future__ import annotations

import asyncio
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

from .events import EventKind, EventSink, emit
from .rng import SeededRandom

__all__ = [
    "StabilityScanConfig",
    "TrialMetrics",
    "StabilityPoint",
    "NCritResult",
    "plan_resamples",
    "scan_stability",
    "scan_stability_async",
    "generate_recommendation",
    "stability_curve_data",
    "format_ncrit_report",
]

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class StabilityScanConfig:
    min_n: int = 10
    max_n: int = 100
    step: int = 5
    bootstrap_b: int = 500
    cv_threshold: float = 0.05
    seed: int = 42
    workers: int = 1

    def __post_init__(self) -> None:
        if self.min_n < 1:
            raise ValueError("min_n must be at least 1")
        if self.max_n < self.min_n:
            raise ValueError("max_n must not be smaller than min_n")
        if self.step < 1:
            raise ValueError("step must be at least 1")
        if self.bootstrap_b < 1:
            raise ValueError("bootstrap_b must be at least 1")
        if self.cv_threshold <= 0:
            raise ValueError("cv_threshold must be positive")
        if self.workers < 1:
            raise ValueError("workers must be at least 1")


@dataclass(frozen=True)
class TrialMetrics:
    lambda_: float
    kappa: float
    r2: float


@dataclass(frozen=True)
class StabilityPoint:
    n: int
    lambda_mean: float
    lambda_std: float
    lambda_cv: float
    kappa_mean: float
    kappa_std: float
    kappa_cv: float
    r2_mean: float
    r2_std: float
    is_stable: bool
    successes: int = 0


@dataclass(frozen=True)
class NCritResult:
    language: str
    family: str
    n_crit: int
    n_crit_ci: Tuple[int, int]
    stability_threshold: float
    stability_points: Tuple[StabilityPoint, ...]
    recommendation: str
    bootstrap_samples: int
    seed: int
    computed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


TrialOutput = Union[TrialMetrics, Mapping[str, float]]
AnalyseFn = Callable[[List[T]], TrialOutput]
AsyncAnalyseFn = Callable[[List[T]], Awaitable[TrialOutput]]


def _coerce_trial(value: TrialOutput) -> TrialMetrics:
    if isinstance(value, TrialMetrics):
        return value
    lam = value["lambda"] if "lambda" in value else value["lambda_"]
    return TrialMetrics(float(lam), float(value["kappa"]), float(value["r2"]))


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _std(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    m = _mean(values)
    return math.sqrt(sum((v - m) ** 2 for v in values) / (len(values) - 1))


def _sample_sizes(config: StabilityScanConfig, corpus_size: int) -> List[int]:
    return list(range(config.min_n, min(config.max_n, corpus_size) + 1, config.step))


def plan_resamples(corpus_size: int, config: StabilityScanConfig) -> Dict[int, List[List[int]]]:
    """Draw every resample's indices up front, keyed by sample size."""
    rng = SeededRandom(config.seed)
    plan: Dict[int, List[List[int]]] = {}
    for n in _sample_sizes(config, corpus_size):
        plan[n] = [rng.sample_indices(corpus_size, n) for _ in range(config.bootstrap_b)]
    return plan


def _summarise(
    n: int, trials: Sequence[Optional[TrialMetrics]], config: StabilityScanConfig
) -> Optional[StabilityPoint]:
    ok = [t for t in trials if t is not None]
    if len(ok) < config.bootstrap_b * 0.5:
        LOGGER.warning("too many failed trials at N=%d (%d/%d), skipping", n, len(ok), len(trials))
        return None

    lambdas = [t.lambda_ for t in ok]
    kappas = [t.kappa for t in ok]
    r2s = [t.r2 for t in ok]

    lambda_mean = _mean(lambdas)
    lambda_std = _std(lambdas)
    lambda_cv = lambda_std / abs(lambda_mean) if lambda_mean != 0 else math.inf
    kappa_mean = _mean(kappas)
    kappa_std = _std(kappas)
    kappa_cv = kappa_std / abs(kappa_mean) if kappa_mean != 0 else kappa_std

    return StabilityPoint(
        n=n,
        lambda_mean=lambda_mean,
        lambda_std=lambda_std,
        lambda_cv=lambda_cv,
        kappa_mean=kappa_mean,
        kappa_std=kappa_std,
        kappa_cv=kappa_cv,
        r2_mean=_mean(r2s),
        r2_std=_std(r2s),
        is_stable=lambda_cv < config.cv_threshold,
        successes=len(ok),
    )


def _n_crit_ci(
    points: Sequence[StabilityPoint], config: StabilityScanConfig
) -> Tuple[int, int]:
    threshold = config.cv_threshold
    transition = [p.n for p in points if abs(p.lambda_cv - threshold) < threshold * 0.5]
    if transition:
        return min(transition), max(transition)
    if points:
        ns = [p.n for p in points]
        return min(ns), max(ns)
    return config.min_n, config.max_n


def generate_recommendation(n_crit: int, corpus_size: int, threshold: float) -> str:
    if n_crit <= 30:
        return (
            f"Topology stabilizes at N={n_crit} (CV < {threshold}). "
            "Small samples are sufficient for this corpus."
        )
    if n_crit <= 50:
        return (
            f"Topology stabilizes at N={n_crit} (CV < {threshold}). "
            "Standard sample sizes are adequate."
        )
    if n_crit <= corpus_size:
        return f"Topology requires N≥{n_crit} for stability. Ensure corpus exceeds this threshold."
    return (
        "WARNING: Stability not achieved within corpus size. "
        "Consider expanding corpus or loosening CV threshold."
    )


def _assemble(
    points: Sequence[StabilityPoint],
    corpus_size: int,
    config: StabilityScanConfig,
    language: str,
    family: str,
) -> NCritResult:
    n_crit = next((p.n for p in points if p.is_stable), config.max_n)
    return NCritResult(
        language=language,
        family=family,
        n_crit=n_crit,
        n_crit_ci=_n_crit_ci(points, config),
        stability_threshold=config.cv_threshold,
        stability_points=tuple(points),
        recommendation=generate_recommendation(n_crit, corpus_size, config.cv_threshold),
        bootstrap_samples=config.bootstrap_b,
        seed=config.seed,
    )


def _emit_point(events: Optional[EventSink], run_id: str, point: StabilityPoint) -> None:
    emit(
        events,
        EventKind.STABILITY_POINT,
        run_id,
        n=point.n,
        lambda_mean=point.lambda_mean,
        lambda_cv=point.lambda_cv,
        kappa_cv=point.kappa_cv,
        successes=point.successes,
        is_stable=point.is_stable,
    )


def scan_stability(
    corpus: Sequence[T],
    analyse_fn: AnalyseFn,
    config: Optional[StabilityScanConfig] = None,
    *,
    language: str = "unknown",
    family: str = "unknown",
    events: Optional[EventSink] = None,
) -> NCritResult:
    """Find the smallest sample size whose decay-rate CV is below threshold.

    Parameters
    ----------
    corpus:
        Items to resample; each trial receives a list of ``N`` items.
    analyse_fn:
        Returns ``TrialMetrics`` or a mapping with ``lambda``, ``kappa`` and
        ``r2``.  A trial raising ``Exception`` counts as a failure.
    config:
        Scan parameters; ``workers > 1`` runs trials on a thread pool.
    """
    config = config or StabilityScanConfig()
    items = list(corpus)
    plan = plan_resamples(len(items), config)
    LOGGER.info(
        "stability scan N=%d..%d step %d, B=%d", config.min_n, config.max_n, config.step, config.bootstrap_b
    )

    def _trial(indices: List[int]) -> Optional[TrialMetrics]:
        try:
            return _coerce_trial(analyse_fn([items[i] for i in indices]))
        except Exception as exc:  # noqa: BLE001 - failed trials are counted, not raised
            LOGGER.debug("bootstrap trial failed at N=%d: %s", len(indices), exc)
            return None

    points: List[StabilityPoint] = []
    pool = ThreadPoolExecutor(max_workers=config.workers) if config.workers > 1 else None
    try:
        for n, resamples in plan.items():
            if pool is None:
                trials = [_trial(indices) for indices in resamples]
            else:
                trials = list(pool.map(_trial, resamples))
            point = _summarise(n, trials, config)
            if point is not None:
                _emit_point(events, language, point)
                points.append(point)
    finally:
        if pool is not None:
            pool.shutdown()
    return _assemble(points, len(items), config, language, family)


async def scan_stability_async(
    corpus: Sequence[T],
    analyse_fn: AsyncAnalyseFn,
    config: Optional[StabilityScanConfig] = None,
    *,
    language: str = "unknown",
    family: str = "unknown",
    events: Optional[EventSink] = None,
) -> NCritResult:
    """Async variant of :func:`scan_stability`; trials of one N run concurrently."""
    config = config or StabilityScanConfig()
    items = list(corpus)
    plan = plan_resamples(len(items), config)

    async def _trial(indices: List[int]) -> Optional[TrialMetrics]:
        try:
            return _coerce_trial(await analyse_fn([items[i] for i in indices]))
        except Exception as exc:  # noqa: BLE001 - failed trials are counted, not raised
            LOGGER.debug("bootstrap trial failed at N=%d: %s", len(indices), exc)
            return None

    points: List[StabilityPoint] = []
    for n, resamples in plan.items():
        trials = await asyncio.gather(*(_trial(indices) for indices in resamples))
        point = _summarise(n, trials, config)
        if point is not None:
            _emit_point(events, language, point)
            points.append(point)
    return _assemble(points, len(items), config, language, family)


def stability_curve_data(result: NCritResult) -> Dict[str, Any]:
    return {
        "x": [p.n for p in result.stability_points],
        "y_lambda_cv": [p.lambda_cv for p in result.stability_points],
        "y_kappa_cv": [p.kappa_cv for p in result.stability_points],
        "threshold": result.stability_threshold,
        "n_crit": result.n_crit,
    }


def format_ncrit_report(result: NCritResult) -> str:
    lines = [
        f"## Sample Stability Analysis: {result.language}",
        "",
        f"**Family:** {result.family}",
        f"**N_crit:** {result.n_crit} (95% CI: {result.n_crit_ci[0]}-{result.n_crit_ci[1]})",
        f"**Stability Threshold:** CV < {result.stability_threshold}",
        "",
        "### Stability Curve",
        "",
        "| N | λ Mean | λ CV | κ Mean | κ CV | R² Mean | Stable |",
        "|---|--------|------|--------|------|---------|--------|",
    ]
    for p in result.stability_points:
        lines.append(
            f"| {p.n} | {p.lambda_mean:.4f} | {p.lambda_cv:.4f} | {p.kappa_mean:.4f} | "
            f"{p.kappa_cv:.4f} | {p.r2_mean:.4f} | {'yes' if p.is_stable else 'no'} |"
        )
    lines.extend(["", f"**Recommendation:** {result.recommendation}"])
    lines.extend(["", f"*Computed at {result.computed_at} with seed {result.seed}*"])
    return "\n".join(lines)
