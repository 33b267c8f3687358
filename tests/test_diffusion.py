from __future__ import annotations

import numpy as np
import pytest

from coherence_physics.diffusion import (
    SemanticParticle,
    constraint_strength,
    encode_particles,
    simulate_semantic_diffusion,
)
from coherence_physics.samples import GlossedSample


def test_constraint_strength_counts_gloss_joiners() -> None:
    assert constraint_strength(None, "English") == pytest.approx(1.2)
    assert constraint_strength("a-b=c", "Ket") == pytest.approx(3.1)
    assert constraint_strength("-" * 40, "Finnish") == 6.0


def test_encode_particles_uses_gloss_and_translation() -> None:
    samples = [GlossedSample("o", "g", "t"), GlossedSample("bare")]
    embeddings = {
        "o": [1.0, 0.0],
        "g": [1.0, 1.0],
        "t": [0.0, 1.0],
        "bare": [0.5, 0.5],
    }
    particles = encode_particles(samples, embeddings, "English")
    assert np.allclose(particles[0].velocity, [0.0, 1.0])
    assert np.allclose(particles[0].target, [0.0, 1.0])
    assert np.allclose(particles[1].velocity, [0.0, 0.0])
    assert np.allclose(particles[1].target, particles[1].position)
    assert encode_particles(samples, {}, "English") == []


def test_particle_at_rest_without_noise_does_not_move() -> None:
    particle = SemanticParticle(np.ones(3), np.zeros(3), np.ones(3), 1.2)
    metrics = simulate_semantic_diffusion([particle], kappa=0.0, steps=32, seed=0)
    assert metrics.mean_squared_displacement == 0.0
    assert metrics.diffusion_coefficient == 0.0


def test_seed_zero_is_deterministic_drift() -> None:
    particle = SemanticParticle(np.zeros(2), np.zeros(2), np.array([1.0, 0.0]), 1.0)
    first = simulate_semantic_diffusion([particle], kappa=0.2, steps=64, seed=0)
    second = simulate_semantic_diffusion([particle], kappa=0.2, steps=64, seed=0)
    assert first == second
    assert first.mean_squared_displacement > 0.0
    assert first.diffusion_coefficient == pytest.approx(
        first.mean_squared_displacement / (2 * 64 * 0.01)
    )


def test_noise_spreads_particles() -> None:
    particle = SemanticParticle(np.zeros(4), np.zeros(4), np.zeros(4), 1.0)
    quiet = simulate_semantic_diffusion([particle], kappa=0.0, steps=50, seed=0)
    noisy = simulate_semantic_diffusion([particle], kappa=0.0, steps=50, seed=11)
    assert quiet.mean_squared_displacement == 0.0
    assert noisy.mean_squared_displacement > 0.0
    again = simulate_semantic_diffusion([particle], kappa=0.0, steps=50, seed=11)
    assert again.mean_squared_displacement == noisy.mean_squared_displacement


def test_no_particles() -> None:
    metrics = simulate_semantic_diffusion([], kappa=0.1, steps=10, seed=3)
    assert (metrics.mean_squared_displacement, metrics.steps, metrics.seed) == (0.0, 10, 3)
