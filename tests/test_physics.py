from __future__ import annotations

import asyncio
import json
import math
from datetime import datetime, timezone

import pytest

from coherence_physics.config import PhysicsSettings
from coherence_physics.events import CollectingSink, EventKind
from coherence_physics.physics import (
    PRIMARY_METRICS,
    PhysicsStatus,
    ValidityTag,
    analyse_physics,
    compare_physics,
    generate_constant_corpus,
    generate_noise_corpus,
    run_order_sensitivity_test,
    run_sanity_tests,
)
from coherence_physics.samples import GlossedSample
from coherence_physics.semantic import EmbeddingConfig, SemanticEmbedder, static_embed_fn

THETA = 0.3


def _rotating_corpus(n: int = 24, theta: float = THETA):
    samples = [GlossedSample(f"sentence {i}") for i in range(n)]
    table = {
        s.original: [math.cos(theta * i), math.sin(theta * i), 0.0] for i, s in enumerate(samples)
    }
    return samples, static_embed_fn(table)


def _hash_embed():
    return SemanticEmbedder(EmbeddingConfig(method="hash")).as_embed_fn()


def _run(samples, embed, settings=None, **kwargs):
    return asyncio.run(analyse_physics(samples, embed, settings, **kwargs))


def test_rotating_corpus_is_computed() -> None:
    samples, embed = _rotating_corpus()
    events = CollectingSink()
    result = _run(samples, embed, language="Test", events=events)

    assert result.status is PhysicsStatus.COMPUTED
    assert result.computed
    assert result.reason is None
    assert result.forward_coherence == pytest.approx(math.cos(THETA), abs=1e-12)
    assert result.backward_coherence == pytest.approx(math.cos(THETA), abs=1e-12)
    assert result.kappa_asymmetry == pytest.approx(0.0, abs=1e-9)
    assert result.lambda_estimate > 0.0
    assert result.mean_energy == pytest.approx(1.0)
    assert len(result.curves) == 5
    assert result.decay.fit_quality > 0.5
    assert result.source_stats.original == 24
    assert result.validity.data_source is ValidityTag.NATIVE

    kinds = events.kinds()
    assert kinds[0] is EventKind.EMBEDDING_INPUTS
    assert EventKind.DECAY_FIT in kinds
    assert kinds[-1] is EventKind.LAB_NOTEBOOK_ENTRY
    assert all(event.run_id == result.run_id for event in events.events)


def test_primary_metrics_are_nan_below_threshold() -> None:
    samples, embed = _rotating_corpus(5)
    result = _run(samples, embed)
    assert result.status is PhysicsStatus.BELOW_THRESHOLD
    assert not result.computed
    assert "Only 5 valid vectors" in result.reason
    metrics = result.primary_metrics()
    assert set(metrics) == set(PRIMARY_METRICS)
    assert all(math.isnan(value) for value in metrics.values())
    assert result.decay is None
    assert result.asymmetry is None
    assert math.isnan(result.entropy.shannon_entropy)
    assert not result.passes_gates()


def test_zero_vectors_skip_physics() -> None:
    samples = [GlossedSample(f"s{i}") for i in range(25)]
    embed = static_embed_fn({}, dims=4)
    events = CollectingSink()
    result = _run(samples, embed, events=events)
    assert result.status is PhysicsStatus.SKIPPED
    assert result.source_stats.failed == 25
    assert "25/25 embeddings failed" in result.reason
    assert events.of_kind(EventKind.PHYSICS_SKIPPED)


def test_empty_corpus_is_skipped() -> None:
    result = _run([], static_embed_fn({}, dims=4))
    assert result.status is PhysicsStatus.SKIPPED
    assert result.sample_count == 0


def test_constant_corpus_is_computed_as_degenerate() -> None:
    settings = PhysicsSettings(min_valid_vectors=10)
    events = CollectingSink()
    result = _run(generate_constant_corpus(), _hash_embed(), settings, events=events)
    assert result.status is PhysicsStatus.COMPUTED
    assert result.reason.startswith("Degenerate input")
    assert result.forward_coherence >= 0.8
    assert result.kappa_asymmetry == 0.0
    assert result.lambda_estimate == 0.0
    assert result.entropy.shannon_entropy == 0.0
    assert math.isinf(result.decay.coherence_radius)
    assert events.of_kind(EventKind.DEGENERATE_INPUT)


def test_noise_corpus_is_less_coherent_than_constant() -> None:
    settings = PhysicsSettings(min_valid_vectors=10)
    embed = _hash_embed()
    corpus = generate_noise_corpus()
    assert len({s.original for s in corpus}) == 10
    assert corpus == generate_noise_corpus()
    noise = _run(corpus, embed, settings)
    constant = _run(generate_constant_corpus(), embed, settings)
    assert noise.status is PhysicsStatus.COMPUTED
    assert noise.forward_coherence < constant.forward_coherence


def test_sanity_suite_passes_with_hash_embeddings() -> None:
    report = asyncio.run(run_sanity_tests(_hash_embed()))
    assert [r.test_name for r in report.results] == ["Constant Sequence", "Noise Corpus"]
    assert report.passed
    assert report.results[0].diagnostics[0].startswith("OK")


def test_analysis_is_idempotent() -> None:
    samples, embed = _rotating_corpus()
    stamp = datetime(2026, 1, 1, tzinfo=timezone.utc)
    first = _run(samples, embed, now=stamp)
    second = _run(samples, embed, now=stamp)
    assert first.run_id == second.run_id
    assert json.dumps(first.to_dict(), sort_keys=True, default=str) == json.dumps(
        second.to_dict(), sort_keys=True, default=str
    )


def test_unfitted_decay_is_partial() -> None:
    samples = [GlossedSample(f"turn {i}") for i in range(24)]
    angle = 2.0 * math.pi / 3.0
    table = {s.original: [math.cos(angle * i), math.sin(angle * i)] for i, s in enumerate(samples)}
    result = _run(samples, static_embed_fn(table))

    assert result.decay.method == "insufficient_data"
    assert result.status is PhysicsStatus.PARTIAL
    assert not result.computed
    assert "decay rate not fitted" in result.reason
    assert math.isnan(result.lambda_estimate)
    assert result.forward_coherence == pytest.approx(-0.5, abs=1e-9)


def test_proxy_mode_selects_field() -> None:
    samples = [GlossedSample(f"o{i}", f"g{i}") for i in range(20)]
    table = {}
    for i in range(20):
        table[f"o{i}"] = [1.0, float(i), 0.0]
        table[f"g{i}"] = [0.0, 2.0, float(i)]
    embed = static_embed_fn(table)
    via_gloss = _run(samples, embed, PhysicsSettings(proxy_mode="gloss"))
    via_original = _run(samples, embed, PhysicsSettings(proxy_mode="original"))
    assert via_gloss.source_stats.gloss == 20
    assert via_original.source_stats.original == 20
    assert via_original.validity.data_source is ValidityTag.NATIVE
    assert via_gloss.validity.data_source is ValidityTag.GLOSS_PROXY
    assert via_gloss.forward_coherence != via_original.forward_coherence


def test_failed_gloss_falls_back_to_original() -> None:
    samples = [GlossedSample(f"o{i}", f"missing{i}") for i in range(20)]
    table = {f"o{i}": [1.0, float(i)] for i in range(20)}
    result = _run(samples, static_embed_fn(table))
    assert result.source_stats.original == 20
    assert result.source_stats.gloss == 0
    assert result.computed


def test_to_dict_carries_status_and_nested_analyses() -> None:
    samples, embed = _rotating_corpus()
    payload = _run(samples, embed, language="Test").to_dict()
    assert payload["physics_status"] == "COMPUTED"
    assert payload["language"] == "Test"
    assert "lambda" in payload["decay_analysis"]
    assert len(payload["coherence_curves"]) == 5
    assert payload["settings"]["mode"] == "balanced"


def test_compare_physics_reports_directional_predictions() -> None:
    samples, embed = _rotating_corpus()
    fast = _run(samples, embed, language="A")
    constant = _run(generate_constant_corpus(), _hash_embed(), PhysicsSettings(min_valid_vectors=10), language="B")
    comparison = compare_physics(fast, constant)
    assert comparison["languages"] == ["A", "B"]
    assert comparison["lambda_differential"]["prediction_holds"]
    assert comparison["lambda_differential"]["ratio"] is None
    assert comparison["validation_summary"]["both_computed"]


def test_monitor_mode_passes_every_computed_result() -> None:
    samples, embed = _rotating_corpus()
    result = _run(samples, embed, PhysicsSettings(mode="monitor"))
    assert result.passes_gates()


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        PhysicsSettings(mode="lenient")
    with pytest.raises(ValueError):
        PhysicsSettings(proxy_mode="phonetic")


def test_shuffling_breaks_order_but_not_kappa() -> None:
    # Narrow arc keeps every lag positive after shuffling.
    samples, embed = _rotating_corpus(theta=0.05)
    outcome = asyncio.run(run_order_sensitivity_test(samples, embed))
    assert outcome.passed
    assert outcome.order_sensitivity_detected
    assert outcome.deltas.order_sensitivity_score == 1.0
    assert abs(outcome.original.kappa_max - outcome.shuffled.kappa_max) < 0.1
    assert outcome.diagnostics[0] == "kappa stable under shuffling"
