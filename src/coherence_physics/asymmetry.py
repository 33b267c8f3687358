"""Forward/backward coherence asymmetry.

Cosine similarity is symmetric, so the backward curve is the forward
curve read in reverse and ``kappa`` should sit at numerical noise for any
input.  The statistic is kept as a regression and tamper signal: a
non-trivial ``kappa`` means something upstream changed order-dependently.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal, localcontext
from typing import Sequence

from .curves import CoherenceCurve
from .precision import PRECISION_CONTEXT, precision_mean

__all__ = ["AsymmetryAnalysis", "SYMMETRIC_DEFAULT", "analyse_asymmetry", "EPSILON"]

EPSILON = 1e-10
_EPSILON = Decimal("1e-10")


@dataclass(frozen=True)
class AsymmetryAnalysis:
    kappa_max: float
    kappa_sum: float
    delta: float
    forward_mean: float
    backward_mean: float
    isi: float
    isi_exp: float


SYMMETRIC_DEFAULT = AsymmetryAnalysis(
    kappa_max=0.0,
    kappa_sum=0.0,
    delta=0.0,
    forward_mean=0.0,
    backward_mean=0.0,
    isi=1.0,
    isi_exp=1.0,
)


def analyse_asymmetry(curves: Sequence[CoherenceCurve], tau: float = 0.01) -> AsymmetryAnalysis:
    """Compute scale-normalised asymmetry from forward and backward curves.

    Parameters
    ----------
    curves:
        Output of :func:`coherence_physics.curves.build_curves`.  Lags whose
        forward or backward value is not finite, or whose sample size is
        zero, are ignored.
    tau:
        Tolerance of the exponential symmetry index ``exp(-|f - b| / tau)``.
    """
    usable = [
        c
        for c in curves
        if math.isfinite(c.forward) and math.isfinite(c.backward) and c.sample_size > 0
    ]
    if not usable:
        return SYMMETRIC_DEFAULT

    forward = precision_mean([c.forward for c in usable])
    backward = precision_mean([c.backward for c in usable])
    with localcontext(PRECISION_CONTEXT):
        signed = forward - backward
        diff = abs(signed)
        max_coherence = max(forward, backward, _EPSILON)
        sum_coherence = max(forward + backward, _EPSILON)
        kappa_max = diff / max_coherence
        kappa_sum = diff / sum_coherence
        delta = signed / sum_coherence

    kappa_max_f = float(kappa_max)
    return AsymmetryAnalysis(
        kappa_max=kappa_max_f,
        kappa_sum=float(kappa_sum),
        delta=float(delta),
        forward_mean=float(forward),
        backward_mean=float(backward),
        isi=1.0 - min(1.0, kappa_max_f),
        isi_exp=math.exp(-float(diff) / max(tau, EPSILON)),
    )
