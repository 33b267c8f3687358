from __future__ import annotations

import asyncio
import math

import pytest

from coherence_physics.events import CollectingSink, EventKind
from coherence_physics.stability import (
    StabilityScanConfig,
    TrialMetrics,
    format_ncrit_report,
    generate_recommendation,
    plan_resamples,
    scan_stability,
    scan_stability_async,
    stability_curve_data,
)

# Values 1.00 .. 1.45 in equal proportion.
CORPUS = [1.0 + 0.05 * ((i * 7) % 10) for i in range(60)]


def _mean_decay(sample):
    return {"lambda": sum(sample) / len(sample), "kappa": 0.0, "r2": 1.0}


def _config(**overrides) -> StabilityScanConfig:
    params = dict(min_n=10, max_n=60, step=5, bootstrap_b=100, cv_threshold=0.02, seed=42)
    params.update(overrides)
    return StabilityScanConfig(**params)


def _summary(result):
    return [(p.n, p.lambda_mean, p.lambda_cv, p.successes) for p in result.stability_points]


def test_config_validation() -> None:
    for bad in (
        dict(min_n=0),
        dict(min_n=20, max_n=10),
        dict(step=0),
        dict(bootstrap_b=0),
        dict(cv_threshold=0.0),
        dict(workers=0),
    ):
        with pytest.raises(ValueError):
            StabilityScanConfig(**bad)


def test_resample_plan_is_seeded() -> None:
    config = _config(bootstrap_b=3)
    plan = plan_resamples(60, config)
    assert list(plan) == list(range(10, 61, 5))
    assert all(len(trials) == 3 for trials in plan.values())
    assert all(len(indices) == n for n, trials in plan.items() for indices in trials)
    assert plan == plan_resamples(60, config)
    assert plan != plan_resamples(60, _config(bootstrap_b=3, seed=43))


def test_sample_sizes_stop_at_corpus_size() -> None:
    plan = plan_resamples(23, _config(bootstrap_b=1, max_n=100))
    assert list(plan) == [10, 15, 20]


def test_cv_shrinks_and_n_crit_is_found() -> None:
    events = CollectingSink()
    result = scan_stability(CORPUS, _mean_decay, _config(), language="Synthetic", events=events)
    points = result.stability_points
    assert [p.n for p in points] == list(range(10, 61, 5))
    assert points[-1].lambda_cv < points[0].lambda_cv
    assert 20 <= result.n_crit <= 50
    assert not points[0].is_stable
    assert points[0].lambda_mean == pytest.approx(1.225, abs=0.02)
    assert result.n_crit_ci[0] <= result.n_crit_ci[1]
    assert len(events.of_kind(EventKind.STABILITY_POINT)) == len(points)
    assert all(event.run_id == "Synthetic" for event in events.events)


def test_thread_pool_matches_serial_scan() -> None:
    serial = scan_stability(CORPUS, _mean_decay, _config(bootstrap_b=40))
    pooled = scan_stability(CORPUS, _mean_decay, _config(bootstrap_b=40, workers=4))
    assert _summary(serial) == _summary(pooled)
    assert serial.n_crit == pooled.n_crit


def test_async_scan_matches_serial_scan() -> None:
    async def analyse(sample):
        return TrialMetrics(sum(sample) / len(sample), 0.0, 1.0)

    serial = scan_stability(CORPUS, _mean_decay, _config(bootstrap_b=40))
    concurrent = asyncio.run(scan_stability_async(CORPUS, analyse, _config(bootstrap_b=40)))
    assert _summary(serial) == _summary(concurrent)


def test_failed_trials_skip_sample_sizes() -> None:
    def fragile(sample):
        if len(sample) < 20:
            raise RuntimeError("too few samples")
        return _mean_decay(sample)

    result = scan_stability(CORPUS, fragile, _config(bootstrap_b=20))
    assert result.stability_points[0].n == 20


def test_every_trial_failing_gives_no_points() -> None:
    def broken(sample):
        raise RuntimeError("analysis failed")

    config = _config(bootstrap_b=5)
    result = scan_stability(CORPUS, broken, config)
    assert result.stability_points == ()
    assert result.n_crit == config.max_n
    assert result.n_crit_ci == (config.min_n, config.max_n)


def test_zero_mean_decay_has_infinite_cv() -> None:
    result = scan_stability(
        CORPUS, lambda sample: {"lambda": 0.0, "kappa": 0.0, "r2": 0.0}, _config(bootstrap_b=5, max_n=15)
    )
    assert all(math.isinf(p.lambda_cv) for p in result.stability_points)
    assert result.n_crit == 15


def test_recommendation_texts() -> None:
    assert generate_recommendation(25, 100, 0.05) == (
        "Topology stabilizes at N=25 (CV < 0.05). Small samples are sufficient for this corpus."
    )
    assert generate_recommendation(45, 100, 0.05).endswith("Standard sample sizes are adequate.")
    assert generate_recommendation(80, 100, 0.05) == (
        "Topology requires N≥80 for stability. Ensure corpus exceeds this threshold."
    )
    assert generate_recommendation(120, 100, 0.05).startswith("WARNING: Stability not achieved")


def test_curve_data_and_report() -> None:
    result = scan_stability(CORPUS, _mean_decay, _config(bootstrap_b=20), language="Synthetic", family="Test")
    data = stability_curve_data(result)
    assert data["x"] == [p.n for p in result.stability_points]
    assert data["threshold"] == 0.02
    assert data["n_crit"] == result.n_crit

    report = format_ncrit_report(result)
    assert report.startswith("## Sample Stability Analysis: Synthetic")
    assert "**Family:** Test" in report
    assert f"**N_crit:** {result.n_crit} (95% CI: {result.n_crit_ci[0]}-{result.n_crit_ci[1]})" in report
    assert "| 10 |" in report
    assert f"**Recommendation:** {result.recommendation}" in report
