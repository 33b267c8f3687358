"""Exponential decay-rate estimation for coherence curves."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

from .curves import CoherenceCurve
from .precision import precision_exp, precision_linear_regression

__all__ = [
    "DecayAnalysis",
    "fit_decay",
    "degenerate_decay",
    "METHOD_PRECISION_FIT",
    "METHOD_INSUFFICIENT",
    "METHOD_DEGENERATE",
]

METHOD_PRECISION_FIT = "exponential_fit (precision)"
METHOD_INSUFFICIENT = "insufficient_data"
METHOD_DEGENERATE = "degenerate_input"


@dataclass(frozen=True)
class DecayAnalysis:
    lambda_: float
    coherence_radius: float
    fit_quality: float
    fitted_c0: float
    coherence_at_lags: Tuple[float, ...]
    method: str


def fit_decay(curves: Sequence[CoherenceCurve]) -> DecayAnalysis:
    """Fit ``C(lag) = C0 * exp(-lambda * lag)`` by log-linear regression.

    Only curves with a finite, positive forward coherence and a non-zero
    sample size take part.  Fewer than two such points yield ``nan``
    estimates tagged ``insufficient_data``.  A rising curve (positive
    slope) is reported as zero decay with an infinite coherence radius.
    """
    observed = tuple(c.forward for c in curves)
    usable = [
        c for c in curves if math.isfinite(c.forward) and c.forward > 0.0 and c.sample_size > 0
    ]
    if len(usable) < 2:
        nan = math.nan
        return DecayAnalysis(nan, nan, nan, nan, observed, METHOD_INSUFFICIENT)

    lags = [c.lag for c in usable]
    log_coherence = [math.log(c.forward) for c in usable]
    regression = precision_linear_regression(lags, log_coherence)

    lambda_ = max(0.0, float(-regression.slope))
    radius = 1.0 / lambda_ if lambda_ > 0.0 else math.inf
    fit_quality = max(0.0, min(1.0, float(regression.r_squared)))
    return DecayAnalysis(
        lambda_=lambda_,
        coherence_radius=radius,
        fit_quality=fit_quality,
        fitted_c0=float(precision_exp(regression.intercept)),
        coherence_at_lags=observed,
        method=METHOD_PRECISION_FIT,
    )


def degenerate_decay(curves: Sequence[CoherenceCurve]) -> DecayAnalysis:
    """Decay record for identical-vector corpora: perfect coherence, no decay."""
    return DecayAnalysis(
        lambda_=0.0,
        coherence_radius=math.inf,
        fit_quality=1.0,
        fitted_c0=1.0,
        coherence_at_lags=tuple(1.0 for _ in curves),
        method=METHOD_DEGENERATE,
    )
