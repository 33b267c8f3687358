from __future__ import annotations

import asyncio
import math

import numpy as np
import pytest

from coherence_physics.genealogy import (
    ACCEPTED_GENEALOGY_PAIRS,
    CONTACT_PAIRS,
    FEATURE_NAMES,
    PRIOR_WEIGHTS,
    GenealogyDiscriminator,
    LabeledPair,
    Relationship,
    extract_genealogy_features,
    lexical_overlap,
    raw_cosine_similarity,
    roc_auc_rank,
    run_genealogy_evaluation,
)
from coherence_physics.samples import GlossedSample

DESCENT_RUN = {"kappa": 1.0, "lambda": 1.0, "r2": 0.9}
CONTACT_RUN = {"kappa": 0.0, "lambda": 0.0, "r2": 0.0}


def _pair(run, relationship: Relationship, name: str) -> LabeledPair:
    features = extract_genealogy_features(run, name, "test", relationship)
    return LabeledPair(name, name, features, relationship)


def _training_set():
    descent = [_pair(DESCENT_RUN, Relationship.DESCENT, f"d{i}") for i in range(4)]
    contact = [_pair(CONTACT_RUN, Relationship.CONTACT, f"c{i}") for i in range(4)]
    return descent + contact


def test_feature_extraction_from_curve() -> None:
    run = {"kappa": 0.1, "lambda": 0.2, "r2": 0.8, "coherence_curve": [0.9, 0.8, 0.7, 0.6, 0.5]}
    features = extract_genealogy_features(run, "Latin->Spanish", "Romance", "descent")
    assert features.relationship is Relationship.DESCENT
    assert features.coherence_at_lag1 == 0.9
    assert features.coherence_at_lag5 == 0.5
    assert features.coherence_at_lag_n == 0.5
    assert features.curve_convexity == pytest.approx(0.0)
    assert features.vector().shape == (len(FEATURE_NAMES),)


def test_short_and_empty_curves() -> None:
    short = extract_genealogy_features({"coherence_curve": [0.9, 0.5]}, "x", "f", Relationship.CONTACT)
    assert short.coherence_at_lag5 == 0.9
    assert short.curve_convexity == pytest.approx(0.5 - 0.7)

    empty = extract_genealogy_features({}, "x", "f", Relationship.CONTACT)
    assert (empty.coherence_at_lag1, empty.coherence_at_lag_n, empty.curve_convexity) == (0.0, 0.0, 0.0)

    boot = extract_genealogy_features(
        {"bootstrap": {"lambda_variance": 0.2, "kappa_variance": 0.1}}, "x", "f", "contact"
    )
    assert (boot.lambda_variance, boot.kappa_variance) == (0.2, 0.1)


def test_weights_must_match_features() -> None:
    with pytest.raises(ValueError):
        GenealogyDiscriminator(weights=[0.1, 0.2])
    assert GenealogyDiscriminator().feature_weights()["lambda_"] == 0.3


def test_training_updates_only_prior_weighted_features() -> None:
    discriminator = GenealogyDiscriminator()
    discriminator.train(_training_set())
    weights = discriminator.feature_weights()
    assert weights["kappa"] == 0.0
    assert weights["lambda_"] == 0.5
    assert weights["r2"] == 0.5
    assert weights["coherence_at_lag1"] == 0.15
    assert discriminator.threshold == 0.5


def test_trained_discriminator_separates_classes() -> None:
    pairs = _training_set()
    discriminator = GenealogyDiscriminator()
    discriminator.train(pairs)
    metrics = discriminator.evaluate(pairs)
    assert metrics.accuracy == 1.0
    assert metrics.f1_score == 1.0
    assert metrics.roc_auc == metrics.accuracy
    assert metrics.roc_auc_is_accuracy
    assert metrics.confusion_matrix.true_positives == 4
    assert metrics.confusion_matrix.true_negatives == 4

    prediction = discriminator.predict(pairs[0].features)
    assert prediction.prediction is Relationship.DESCENT
    assert prediction.confidence == pytest.approx(1.0 / (1.0 + math.exp(-0.95)))


def test_training_without_both_classes_keeps_priors() -> None:
    discriminator = GenealogyDiscriminator()
    discriminator.train(_training_set()[:4])
    assert np.allclose(discriminator.weights, PRIOR_WEIGHTS)
    assert discriminator.threshold == 0.5


def test_rank_auc() -> None:
    assert roc_auc_rank([0.9, 0.8, 0.3], [True, False, False]) == 1.0
    assert roc_auc_rank([0.5, 0.5], [True, False]) == 0.5
    assert roc_auc_rank([0.1, 0.9], [True, False]) == 0.0
    assert math.isnan(roc_auc_rank([0.4], [True]))


def test_baseline_similarities() -> None:
    assert raw_cosine_similarity([[1.0, 0.0]], [[1.0, 0.0], [0.0, 1.0]]) == pytest.approx(0.5)
    assert raw_cosine_similarity([[0.0, 0.0]], [[1.0, 0.0]]) == 0.0
    assert raw_cosine_similarity([], [[1.0]]) == 0.0
    a = [GlossedSample("x", "dog run"), GlossedSample("y", None)]
    b = [GlossedSample("z", "Dog sleep")]
    assert lexical_overlap(a, b) == pytest.approx(1 / 3)
    assert lexical_overlap([GlossedSample("x")], [GlossedSample("y")]) == 0.0


def test_pair_lists() -> None:
    assert len(ACCEPTED_GENEALOGY_PAIRS) == 28
    assert len(CONTACT_PAIRS) == 10
    assert all({"source", "target", "family"} <= set(pair) for pair in ACCEPTED_GENEALOGY_PAIRS)


def test_full_evaluation_with_baselines_and_failures() -> None:
    descent = {(p["source"], p["target"]) for p in ACCEPTED_GENEALOGY_PAIRS}

    async def run_pair(source: str, target: str):
        if (source, target) == ("Turkish", "Greek"):
            raise RuntimeError("no parallel corpus")
        base = DESCENT_RUN if (source, target) in descent else CONTACT_RUN
        return {**base, "raw_cosine": 0.8 if base is DESCENT_RUN else 0.2}

    evaluation = asyncio.run(run_genealogy_evaluation(run_pair))
    assert evaluation.failures == ("Turkish->Greek",)
    assert len(evaluation.pairs) == 37
    assert evaluation.physics_f1 == 1.0
    assert evaluation.metrics.accuracy == 1.0
    assert evaluation.raw_cosine_f1 == 1.0
    assert evaluation.lexical_overlap_f1 is None
    assert evaluation.roc_auc_rank == 1.0
    assert all(outcome.correct for outcome in evaluation.pairs)
