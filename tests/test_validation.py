from __future__ import annotations

import asyncio
import math

import pytest

from coherence_physics.validation import LayerSeparationValidator, pearson, spearman


async def _measure(text, context=None):
    return len(text) * 0.01


async def _leaky_measure(text, context=None):
    base = len(text) * 0.01
    return base + context["lambda_control"] if context else base


async def _transform(text, control):
    return text + "x" * int(control * 10)


def test_correlations() -> None:
    assert pearson([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)
    assert pearson([1, 2, 3], [3, 2, 1]) == pytest.approx(-1.0)
    assert pearson([1, 1, 1], [1, 2, 3]) == 0.0
    assert pearson([], []) == 0.0
    assert pearson([1, 2], [1]) == 0.0
    assert spearman([1, 10, 100], [2, 3, 4]) == pytest.approx(1.0)


def test_blind_and_aware_measurements_agree() -> None:
    validator = LayerSeparationValidator(_measure, _transform)
    result = asyncio.run(validator.validate_independence(["a", "bbb"], [0.1, 0.5, 0.9]))
    assert result.passed
    assert result.correlation == pytest.approx(1.0)
    assert result.mean_difference == 0.0


def test_leaking_control_fails_independence() -> None:
    validator = LayerSeparationValidator(_leaky_measure, _transform)
    result = asyncio.run(validator.validate_independence(["a", "bbb"], [0.1, 0.5, 0.9]))
    assert not result.passed
    assert result.mean_difference == pytest.approx(0.5)


def test_baseline_stability() -> None:
    validator = LayerSeparationValidator(_measure, _transform)
    stable = asyncio.run(validator.validate_baseline_stability(["a", "bb", "ccc"], ["ddd", "ee", "f"]))
    assert stable.passed
    assert stable.z_score == pytest.approx(0.0)

    shifted = asyncio.run(
        validator.validate_baseline_stability(["a", "bb", "ccc"], ["a" * 10, "b" * 11, "c" * 12])
    )
    assert not shifted.passed
    assert shifted.z_score > 2.0

    constant = asyncio.run(validator.validate_baseline_stability(["aa", "bb"], ["cccc"]))
    assert constant.z_score == 0.0
    assert constant.passed


def test_cross_model_rank_agreement() -> None:
    async def measure_with_model(text, model):
        if model == "reversed":
            return -float(len(text))
        return float(len(text)) * (2.0 if model == "large" else 1.0)

    validator = LayerSeparationValidator(_measure, _transform)
    texts = ["a", "bb", "ccc", "dddd"]

    agreeing = asyncio.run(validator.validate_cross_model(texts, ["small", "large"], measure_with_model))
    assert agreeing.passed
    assert agreeing.mean_rank_correlation == pytest.approx(1.0)

    disagreeing = asyncio.run(
        validator.validate_cross_model(texts, ["small", "large", "reversed"], measure_with_model)
    )
    assert not disagreeing.passed
    assert disagreeing.min_rank_correlation == pytest.approx(-1.0)

    single = asyncio.run(validator.validate_cross_model(texts, ["small"], measure_with_model))
    assert not single.passed
    assert single.mean_rank_correlation == 0.0
    assert math.isnan(single.min_rank_correlation)
