"""Seeded random streams for reproducible physics runs.

Two generator families live here.  ``create_rng`` is the physics stream:
seed ``0`` is the canonical deterministic mode (the uniform draw is always
``0.5`` and Gaussian draws collapse to their mean) while positive seeds
use mulberry32 mixing.  ``SeededRandom`` wraps the plain xorshift-multiply
stream used for corpus shuffling and bootstrap resampling.  Zero is a fixed
point of that mixer, so ``SeededRandom(0)`` draws ``0.0`` forever; use a
non-zero seed for resampling.

All arithmetic emulates unsigned 32-bit integers so the sequences match
other implementations of the same mixers bit for bit.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar, Union

__all__ = [
    "REPRODUCIBILITY_VERSION",
    "ALGORITHM_VERSION",
    "DETERMINISTIC_SEEDING_DATE",
    "create_rng",
    "create_gaussian_rng",
    "hash_code",
    "corpus_seed",
    "SeededRandom",
    "generate_diverse_seeds",
    "VarianceStats",
    "compute_variance_stats",
    "PhysicsRunMetadata",
    "create_run_metadata",
    "is_legacy_run",
]

T = TypeVar("T")

_MASK = 0xFFFFFFFF
_TWO_32 = 4294967296.0
_GOLDEN_GAMMA = 0x9E3779B9

REPRODUCIBILITY_VERSION = "1.0.0"
ALGORITHM_VERSION = "mulberry32-djb2-v1"
DETERMINISTIC_SEEDING_DATE = "2025-12-18T00:00:00Z"

# Two-tailed 95% critical values keyed by degrees of freedom.
_T_CRITICAL: Tuple[Tuple[int, float], ...] = (
    (1, 12.706),
    (2, 4.303),
    (3, 3.182),
    (4, 2.776),
    (5, 2.571),
    (6, 2.447),
    (7, 2.365),
    (8, 2.306),
    (9, 2.262),
    (10, 2.228),
    (15, 2.131),
    (20, 2.086),
    (25, 2.060),
    (30, 2.042),
)


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK


def _mix(state: int) -> Tuple[int, float]:
    """Apply the shared xorshift-multiply finaliser to ``state``."""
    t = _imul(state ^ (state >> 15), state | 1)
    t = (t ^ ((t + _imul(t ^ (t >> 7), t | 61)) & _MASK)) & _MASK
    return t, ((t ^ (t >> 14)) & _MASK) / _TWO_32


def create_rng(seed: int) -> Callable[[], float]:
    """Return a uniform generator on ``[0, 1)``.

    Seed ``0`` yields the canonical deterministic stream which always
    returns ``0.5``.  Any other seed is reduced to 32 bits and drives a
    mulberry32 generator.
    """
    if seed == 0:
        return lambda: 0.5

    state = seed & _MASK

    def _next() -> float:
        nonlocal state
        state = (state + 0x6D2B79F5) & _MASK
        _, value = _mix(state)
        return value

    return _next


def create_gaussian_rng(seed: int) -> Callable[..., float]:
    """Return a ``(mean=0.0, std_dev=1.0) -> float`` normal generator.

    Uses the polar Box-Muller method over ``create_rng(seed)``; the second
    variate of each accepted pair is cached and returned on the next call.
    Seed ``0`` returns ``mean`` unconditionally.
    """
    if seed == 0:

        def _deterministic(mean: float = 0.0, std_dev: float = 1.0) -> float:
            return mean

        return _deterministic

    uniform = create_rng(seed)
    spare: List[float] = []

    def _gaussian(mean: float = 0.0, std_dev: float = 1.0) -> float:
        if spare:
            return mean + std_dev * spare.pop()
        while True:
            u = uniform() * 2.0 - 1.0
            v = uniform() * 2.0 - 1.0
            s = u * u + v * v
            if 0.0 < s < 1.0:
                break
        scale = math.sqrt(-2.0 * math.log(s) / s)
        spare.append(v * scale)
        return mean + std_dev * u * scale

    return _gaussian


def hash_code(text: str) -> int:
    """djb2 hash over UTF-16 code units, folded to a non-negative int."""
    value = 5381
    encoded = text.encode("utf-16-le")
    for idx in range(0, len(encoded), 2):
        unit = encoded[idx] | (encoded[idx + 1] << 8)
        value = ((value * 33) & _MASK) ^ unit
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


def corpus_seed(texts: Sequence[str]) -> int:
    """Derive a seed from the first ten texts of a corpus."""
    return hash_code("|||".join(list(texts)[:10]))


class SeededRandom:
    """Stateful generator with shuffling and sampling helpers.

    Every helper consumes exactly one uniform draw per random decision:

    * ``shuffle`` walks ``i = n-1 .. 1`` and swaps ``i`` with
      ``floor(u * (i + 1))``.
    * ``sample_with_replacement`` draws one index per output element.
    * ``sample_without_replacement`` draws one index into the shrinking
      pool per output element.
    * ``weighted_choice`` draws one uniform per call.
    """

    def __init__(self, seed: Union[int, str]) -> None:
        if isinstance(seed, str):
            self.seed = hash_code(seed)
        else:
            self.seed = int(seed) & _MASK
        self._state = self.seed

    def random(self) -> float:
        self._state, value = _mix(self._state)
        return value

    def rand_int(self, low: int, high: int) -> int:
        """Return an integer in ``[low, high)``."""
        return int(math.floor(self.random() * (high - low))) + low

    def rand_index(self, size: int) -> int:
        return int(math.floor(self.random() * size))

    def shuffle(self, items: List[T]) -> List[T]:
        for i in range(len(items) - 1, 0, -1):
            j = self.rand_index(i + 1)
            items[i], items[j] = items[j], items[i]
        return items

    def shuffled(self, items: Sequence[T]) -> List[T]:
        return self.shuffle(list(items))

    def choice(self, items: Sequence[T]) -> T:
        if not items:
            raise ValueError("cannot choose from an empty sequence")
        return items[self.rand_index(len(items))]

    def sample_with_replacement(self, items: Sequence[T], n: int) -> List[T]:
        return [self.choice(items) for _ in range(n)]

    def sample_indices(self, size: int, n: int) -> List[int]:
        """Return ``n`` indices drawn uniformly with replacement from ``range(size)``."""
        return [self.rand_index(size) for _ in range(n)]

    def sample_without_replacement(self, items: Sequence[T], n: int) -> List[T]:
        pool = list(items)
        picked: List[T] = []
        for _ in range(min(n, len(pool))):
            picked.append(pool.pop(self.rand_index(len(pool))))
        return picked

    def weighted_choice(self, items: Sequence[T], weights: Sequence[float]) -> T:
        if len(items) != len(weights) or not items:
            raise ValueError("items and weights must be non-empty and the same length")
        total = float(sum(weights))
        if total <= 0.0:
            raise ValueError("weights must sum to a positive value")
        target = self.random() * total
        cumulative = 0.0
        for item, weight in zip(items, weights):
            cumulative += weight
            if target < cumulative:
                return item
        return items[-1]


def generate_diverse_seeds(base_seed: int, count: int) -> List[int]:
    """Spread ``count`` seeds across the 32-bit range by golden-ratio steps."""
    return [(base_seed + i * _GOLDEN_GAMMA) & _MASK for i in range(count)]


def _t_critical(df: int) -> float:
    for key, value in _T_CRITICAL:
        if df <= key:
            return value
    return 1.96


@dataclass(frozen=True)
class VarianceStats:
    mean: float
    std_dev: float
    ci95: Tuple[float, float]
    count: int
    values: Tuple[float, ...]
    publication_format: str


def compute_variance_stats(values: Sequence[float], metric_name: str = "λ") -> VarianceStats:
    """Summarise repeated measurements with a t-based 95% interval.

    Samples of 30 or more use the normal critical value ``1.96``; smaller
    samples look up the first tabulated degrees of freedom at or above
    ``n - 1``.
    """
    n = len(values)
    if n == 0:
        nan = float("nan")
        return VarianceStats(nan, nan, (nan, nan), 0, (), f"{metric_name} = N/A (no data)")

    mean = sum(values) / n
    variance = sum((v - mean) ** 2 for v in values) / (n - 1) if n > 1 else 0.0
    std_dev = math.sqrt(variance)
    t_value = 1.96 if n >= 30 else _t_critical(n - 1)
    margin = t_value * (std_dev / math.sqrt(n))
    ci95 = (mean - margin, mean + margin)
    text = (
        f"{metric_name} = {mean:.3f} ± {std_dev:.3f} "
        f"(95% CI: [{ci95[0]:.3f}, {ci95[1]:.3f}]), n={n} seeds"
    )
    return VarianceStats(mean, std_dev, ci95, n, tuple(float(v) for v in values), text)


@dataclass(frozen=True)
class PhysicsRunMetadata:
    seed: int
    input_hash: str
    timestamp: str
    software_version: str = REPRODUCIBILITY_VERSION
    algorithm_version: str = ALGORITHM_VERSION
    is_reproducible: bool = True
    random_sources: Tuple[str, ...] = field(default=("sampling", "permutation", "bootstrap"))

    @property
    def run_id(self) -> str:
        return f"{self.timestamp}-{self.input_hash[:8]}"


def create_run_metadata(
    seed: int,
    input_texts: Sequence[str],
    random_sources: Sequence[str] = ("sampling", "permutation", "bootstrap"),
    *,
    now: Optional[datetime] = None,
) -> PhysicsRunMetadata:
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    return PhysicsRunMetadata(
        seed=seed,
        input_hash=format(hash_code("|||".join(input_texts)), "x"),
        timestamp=stamp,
        random_sources=tuple(random_sources),
    )


def is_legacy_run(timestamp: Optional[str], has_seed: bool) -> bool:
    """Return ``True`` for unseeded runs recorded before deterministic seeding."""
    if has_seed:
        return False
    if not timestamp:
        return True
    try:
        run_date = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return True
    if run_date.tzinfo is None:
        run_date = run_date.replace(tzinfo=timezone.utc)
    cutoff = datetime.fromisoformat(DETERMINISTIC_SEEDING_DATE.replace("Z", "+00:00"))
    return run_date < cutoff
