from __future__ import annotations

import math
from typing import Optional

import pytest

from coherence_physics.asymmetry import SYMMETRIC_DEFAULT, analyse_asymmetry
from coherence_physics.curves import (
    CoherenceCurve,
    adjacent_similarities,
    build_curves,
    lagged_autocorrelation,
    resolve_vectors,
)
from coherence_physics.decay import (
    METHOD_DEGENERATE,
    METHOD_INSUFFICIENT,
    METHOD_PRECISION_FIT,
    degenerate_decay,
    fit_decay,
)

THETA = 0.3


def _circle(n: int):
    keys = [f"s{i}" for i in range(n)]
    table = {key: [math.cos(THETA * i), math.sin(THETA * i), 0.0] for i, key in enumerate(keys)}
    return table, keys


def _curve(lag: int, forward: float, backward: Optional[float] = None, sample_size: int = 10) -> CoherenceCurve:
    return CoherenceCurve(lag, forward, forward if backward is None else backward, sample_size, 0.0, 0.0)


def test_rotating_sequence_has_cosine_curve() -> None:
    table, keys = _circle(12)
    curves = build_curves(table, keys, max_lag=5)
    assert [c.lag for c in curves] == [1, 2, 3, 4, 5]
    for curve in curves:
        assert curve.forward == pytest.approx(math.cos(THETA * curve.lag), abs=1e-12)
        assert curve.backward == pytest.approx(curve.forward, abs=1e-12)
        assert curve.sample_size == 12 - curve.lag
        assert curve.std_dev == pytest.approx(0.0, abs=1e-9)


def test_lags_without_pairs_are_nan_not_zero() -> None:
    table, keys = _circle(3)
    curves = build_curves(table, keys, max_lag=5)
    assert curves[1].sample_size == 1
    for curve in curves[2:]:
        assert math.isnan(curve.forward)
        assert math.isnan(curve.backward)
        assert curve.sample_size == 0


def test_low_norm_vectors_break_pairs() -> None:
    table, keys = _circle(6)
    table["s2"] = [0.001, 0.0, 0.0]
    vectors = resolve_vectors(table, keys)
    assert vectors[2] is None
    assert len(adjacent_similarities(table, keys)) == 3
    curves = build_curves(table, keys, max_lag=1)
    assert curves[0].sample_size == 3


def test_missing_keys_resolve_to_none() -> None:
    table, keys = _circle(4)
    assert resolve_vectors(table, keys + ["absent"])[-1] is None


def test_lagged_autocorrelation_needs_enough_pairs() -> None:
    table, keys = _circle(4)
    assert lagged_autocorrelation(table, keys) == [0.0, 0.0, 0.0]


def test_lagged_autocorrelation_is_bounded() -> None:
    keys = [f"k{i}" for i in range(16)]
    table = {}
    for i, key in enumerate(keys):
        angle = 0.2 * i + (0.6 if i % 2 else 0.0)
        table[key] = [math.cos(angle), math.sin(angle)]
    values = lagged_autocorrelation(table, keys)
    assert len(values) == 3
    assert all(-1.0 <= v <= 1.0 for v in values)
    # Alternating step sizes make neighbouring similarities anti-correlated.
    assert values[0] < 0.0
    assert values[1] > 0.0


def test_fit_decay_recovers_exponential() -> None:
    c0, lam = 0.9, 0.2
    curves = [_curve(lag, c0 * math.exp(-lam * lag)) for lag in range(1, 6)]
    decay = fit_decay(curves)
    assert decay.method == METHOD_PRECISION_FIT
    assert decay.lambda_ == pytest.approx(lam, rel=1e-6)
    assert decay.fitted_c0 == pytest.approx(c0, rel=1e-6)
    assert decay.fit_quality == pytest.approx(1.0, abs=1e-9)
    assert decay.coherence_radius == pytest.approx(1.0 / lam, rel=1e-6)


def test_fit_decay_ignores_unusable_lags() -> None:
    curves = [
        _curve(1, 0.8),
        _curve(2, math.nan, sample_size=0),
        _curve(3, -0.1),
        _curve(4, 0.8 * math.exp(-0.3)),
    ]
    decay = fit_decay(curves)
    assert decay.lambda_ == pytest.approx(0.1, rel=1e-6)
    assert math.isnan(decay.coherence_at_lags[1])


def test_fit_decay_insufficient_data() -> None:
    decay = fit_decay([_curve(1, 0.5), _curve(2, 0.0), _curve(3, math.nan, sample_size=0)])
    assert decay.method == METHOD_INSUFFICIENT
    assert math.isnan(decay.lambda_)
    assert math.isnan(decay.coherence_radius)


def test_rising_curve_has_zero_decay_and_infinite_radius() -> None:
    decay = fit_decay([_curve(1, 0.2), _curve(2, 0.4), _curve(3, 0.6)])
    assert decay.lambda_ == 0.0
    assert math.isinf(decay.coherence_radius)


def test_degenerate_decay_record() -> None:
    decay = degenerate_decay([_curve(1, 1.0), _curve(2, 1.0)])
    assert decay.method == METHOD_DEGENERATE
    assert decay.lambda_ == 0.0
    assert decay.coherence_at_lags == (1.0, 1.0)


def test_symmetric_curves_have_unit_indices() -> None:
    analysis = analyse_asymmetry([_curve(1, 0.7), _curve(2, 0.5)])
    assert analysis.kappa_max == 0.0
    assert analysis.isi == 1.0
    assert analysis.isi_exp == 1.0


def test_asymmetry_is_scale_normalised() -> None:
    analysis = analyse_asymmetry([_curve(1, 0.8, 0.6)], tau=0.01)
    assert analysis.kappa_max == pytest.approx(0.25)
    assert analysis.kappa_sum == pytest.approx(0.2 / 1.4)
    assert analysis.delta == pytest.approx(0.2 / 1.4)
    assert analysis.isi == pytest.approx(0.75)
    assert analysis.isi_exp == pytest.approx(math.exp(-20.0))

    reversed_analysis = analyse_asymmetry([_curve(1, 0.6, 0.8)])
    assert reversed_analysis.delta == pytest.approx(-analysis.delta)
    assert reversed_analysis.kappa_max == pytest.approx(analysis.kappa_max)


def test_asymmetry_without_usable_lags_is_symmetric_default() -> None:
    assert analyse_asymmetry([]) == SYMMETRIC_DEFAULT
    assert analyse_asymmetry([_curve(1, math.nan, sample_size=0)]) == SYMMETRIC_DEFAULT
