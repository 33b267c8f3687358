"""Settings and threshold presets for physics runs."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping

__all__ = [
    "MIN_VALID_NORM",
    "MAX_IDENTICAL_PAIRS_RATIO",
    "IDENTICAL_SIMILARITY",
    "DEFAULT_MIN_VALID_VECTORS",
    "DEFAULT_MAX_LAG",
    "DEFAULT_THRESHOLD_KAPPA",
    "DEFAULT_THRESHOLD_ENERGY",
    "DEFAULT_DIFFUSION_STEPS",
    "DEFAULT_DIFFUSION_DT",
    "DEFAULT_DIFFUSION_SEED",
    "PROXY_MODES",
    "PhysicsThresholds",
    "PHYSICS_THRESHOLD_PRESETS",
    "get_thresholds",
    "PhysicsSettings",
]

MIN_VALID_NORM = 0.01
MAX_IDENTICAL_PAIRS_RATIO = 0.8
IDENTICAL_SIMILARITY = 0.9999
DEFAULT_MIN_VALID_VECTORS = 20
DEFAULT_MAX_LAG = 5

DEFAULT_THRESHOLD_KAPPA = 0.08
DEFAULT_THRESHOLD_ENERGY = 1.2

DEFAULT_DIFFUSION_STEPS = 256
DEFAULT_DIFFUSION_DT = 0.01
DEFAULT_DIFFUSION_SEED = 0

# Candidate order per proxy mode when choosing which field represents a sample.
PROXY_MODES: Mapping[str, tuple] = {
    "gloss": ("gloss", "translation", "original"),
    "translation": ("translation", "gloss", "original"),
    "original": ("original", "gloss", "translation"),
}


@dataclass(frozen=True)
class PhysicsThresholds:
    energy_loss_floor: float
    structural_integrity_floor: float
    kappa_threshold: float


PHYSICS_THRESHOLD_PRESETS: Dict[str, PhysicsThresholds] = {
    "strict": PhysicsThresholds(0.10, 0.85, 0.15),
    "balanced": PhysicsThresholds(0.15, 0.82, 0.18),
    # Pass-through preset for benchmarking; nothing is rejected.
    "monitor": PhysicsThresholds(1.0, 0.0, 1.0),
    "galaxy": PhysicsThresholds(0.10, 0.85, 0.15),
    "gravity": PhysicsThresholds(0.10, 0.85, 0.15),
}


def get_thresholds(mode: str) -> PhysicsThresholds:
    try:
        return PHYSICS_THRESHOLD_PRESETS[mode.lower()]
    except KeyError:
        known = ", ".join(sorted(PHYSICS_THRESHOLD_PRESETS))
        raise ValueError(f"Unknown physics mode {mode!r}; expected one of {known}") from None


@dataclass(frozen=True)
class PhysicsSettings:
    """Parameters that shape a single physics analysis."""

    mode: str = "balanced"
    min_valid_vectors: int = DEFAULT_MIN_VALID_VECTORS
    max_lag: int = DEFAULT_MAX_LAG
    proxy_mode: str = "gloss"
    asymmetry_tau: float = 0.01
    diffusion_seed: int = DEFAULT_DIFFUSION_SEED
    diffusion_steps: int = DEFAULT_DIFFUSION_STEPS
    diffusion_dt: float = DEFAULT_DIFFUSION_DT

    def __post_init__(self) -> None:
        get_thresholds(self.mode)
        if self.proxy_mode not in PROXY_MODES:
            raise ValueError(f"Unknown proxy mode {self.proxy_mode!r}")
        if self.min_valid_vectors < 0:
            raise ValueError("min_valid_vectors must be non-negative")
        if self.max_lag < 1:
            raise ValueError("max_lag must be at least 1")

    @property
    def thresholds(self) -> PhysicsThresholds:
        return get_thresholds(self.mode)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["thresholds"] = asdict(self.thresholds)
        return payload
