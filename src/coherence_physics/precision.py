"""High-precision statistical primitives.

Every helper evaluates inside a private 128-digit ``decimal`` context so
that decay rates near ``1e-15`` can be told apart from float64 rounding
noise.  Inputs are ordinary floats (converted exactly); outputs are
``Decimal`` values and callers convert with ``float()`` at the boundary.
The process-wide decimal context is never modified.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal, localcontext
from typing import Iterable, List, Sequence, Union

__all__ = [
    "PRECISION",
    "PRECISION_CONTEXT",
    "PrecisionRegression",
    "to_decimal",
    "precision_mean",
    "precision_variance",
    "precision_std_dev",
    "precision_magnitude",
    "precision_cosine_similarity",
    "precision_linear_regression",
    "precision_exp",
]

PRECISION = 128
PRECISION_CONTEXT = Context(prec=PRECISION, rounding=ROUND_HALF_UP)

_ZERO = Decimal(0)
_ONE = Decimal(1)
_SINGULAR_DENOMINATOR = Decimal("1e-20")

Number = Union[int, float, Decimal]


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    return Decimal(float(value))


def _as_decimals(values: Iterable[Number]) -> List[Decimal]:
    return [to_decimal(v) for v in values]


def precision_mean(values: Sequence[Number]) -> Decimal:
    """Arithmetic mean; ``0`` for an empty sequence."""
    if len(values) == 0:
        return _ZERO
    with localcontext(PRECISION_CONTEXT):
        total = sum(_as_decimals(values), _ZERO)
        return total / len(values)


def precision_variance(values: Sequence[Number]) -> Decimal:
    """Sample variance with an ``n - 1`` denominator; ``0`` when ``n < 2``."""
    if len(values) < 2:
        return _ZERO
    mean = precision_mean(values)
    with localcontext(PRECISION_CONTEXT):
        acc = _ZERO
        for value in _as_decimals(values):
            delta = value - mean
            acc += delta * delta
        return acc / (len(values) - 1)


def precision_std_dev(values: Sequence[Number]) -> Decimal:
    variance = precision_variance(values)
    with localcontext(PRECISION_CONTEXT):
        return variance.sqrt()


def precision_magnitude(vector: Sequence[Number]) -> Decimal:
    """L2 norm; ``0`` for an empty vector."""
    if len(vector) == 0:
        return _ZERO
    with localcontext(PRECISION_CONTEXT):
        acc = _ZERO
        for value in _as_decimals(vector):
            acc += value * value
        return acc.sqrt()


def precision_cosine_similarity(vec_a: Sequence[Number], vec_b: Sequence[Number]) -> Decimal:
    """Cosine similarity, or ``0`` for empty, mismatched or zero vectors."""
    if len(vec_a) != len(vec_b) or len(vec_a) == 0:
        return _ZERO
    with localcontext(PRECISION_CONTEXT):
        dot = _ZERO
        sum_sq_a = _ZERO
        sum_sq_b = _ZERO
        for a, b in zip(_as_decimals(vec_a), _as_decimals(vec_b)):
            dot += a * b
            sum_sq_a += a * a
            sum_sq_b += b * b
        denominator = sum_sq_a.sqrt() * sum_sq_b.sqrt()
        if denominator.is_zero():
            return _ZERO
        return dot / denominator


@dataclass(frozen=True)
class PrecisionRegression:
    slope: Decimal
    intercept: Decimal
    r_squared: Decimal


_DEGENERATE_REGRESSION = PrecisionRegression(_ZERO, _ZERO, _ZERO)


def precision_linear_regression(x: Sequence[Number], y: Sequence[Number]) -> PrecisionRegression:
    """Ordinary least squares fit of ``y = slope * x + intercept``.

    Parameters
    ----------
    x, y:
        Equal-length samples.

    Returns
    -------
    PrecisionRegression
        All-zero when fewer than two points are supplied or when
        ``|n * sum(x^2) - sum(x)^2| < 1e-20``.  ``r_squared`` is ``1`` when
        ``y`` has no variance.
    """
    if len(x) != len(y):
        raise ValueError("x and y must have the same length")
    n_points = len(x)
    if n_points < 2:
        return _DEGENERATE_REGRESSION

    xs = _as_decimals(x)
    ys = _as_decimals(y)
    with localcontext(PRECISION_CONTEXT):
        n = Decimal(n_points)
        sum_x = sum(xs, _ZERO)
        sum_y = sum(ys, _ZERO)
        sum_xy = sum((xi * yi for xi, yi in zip(xs, ys)), _ZERO)
        sum_x2 = sum((xi * xi for xi in xs), _ZERO)

        denominator = n * sum_x2 - sum_x * sum_x
        if abs(denominator) < _SINGULAR_DENOMINATOR:
            return _DEGENERATE_REGRESSION

        slope = (n * sum_xy - sum_x * sum_y) / denominator
        intercept = (sum_y - slope * sum_x) / n

        mean_y = sum_y / n
        ss_res = _ZERO
        ss_tot = _ZERO
        for xi, yi in zip(xs, ys):
            residual = yi - (slope * xi + intercept)
            ss_res += residual * residual
            spread = yi - mean_y
            ss_tot += spread * spread
        r_squared = _ONE if ss_tot.is_zero() else _ONE - ss_res / ss_tot
    return PrecisionRegression(slope, intercept, r_squared)


def precision_exp(value: Number) -> Decimal:
    with localcontext(PRECISION_CONTEXT):
        return to_decimal(value).exp()
