"""
Top-level package for coherence physics.

The package measures how semantic coherence decays along an ordered
corpus of glossed samples.  Embeddings come from an async collaborator
(see :mod:`coherence_physics.semantic`); everything downstream is
deterministic for a given seed.  Expected data-quality problems never
raise: they are reported through ``PhysicsStatus`` and a reason string.
"""

from .config import PHYSICS_THRESHOLD_PRESETS, PhysicsSettings, PhysicsThresholds, get_thresholds
from .events import CollectingSink, DiagnosticEvent, EventKind, logging_sink
from .rng import SeededRandom, create_gaussian_rng, create_rng, compute_variance_stats
from .samples import GlossedSample
from .curves import CoherenceCurve, build_curves
from .decay import DecayAnalysis, fit_decay
from .asymmetry import AsymmetryAnalysis, analyse_asymmetry
from .embeddings import EmbeddingDiagnostics, is_usable, validate_embeddings
from .physics import (
    ComputedPhysics,
    PhysicsResult,
    PhysicsStatus,
    UncomputedPhysics,
    analyse_physics,
    analyze,
    compare_physics,
    run_order_sensitivity_test,
    run_sanity_tests,
)
from .hierarchical import (
    HCPClassification,
    HCPConfidence,
    HCPResult,
    analyse_hierarchical_coherence,
    classify_sprachbund_precision,
)
from .stability import NCritResult, StabilityScanConfig, scan_stability, scan_stability_async
from .genealogy import GenealogyDiscriminator, GenealogyFeatures, extract_genealogy_features
from .validation import LayerSeparationValidator
from .semantic import EmbeddingConfig, EmbeddingContext, SemanticEmbedder, static_embed_fn

__all__ = [
    "PHYSICS_THRESHOLD_PRESETS",
    "PhysicsSettings",
    "PhysicsThresholds",
    "get_thresholds",
    "CollectingSink",
    "DiagnosticEvent",
    "EventKind",
    "logging_sink",
    "SeededRandom",
    "create_gaussian_rng",
    "create_rng",
    "compute_variance_stats",
    "GlossedSample",
    "CoherenceCurve",
    "build_curves",
    "DecayAnalysis",
    "fit_decay",
    "AsymmetryAnalysis",
    "analyse_asymmetry",
    "EmbeddingDiagnostics",
    "is_usable",
    "validate_embeddings",
    "ComputedPhysics",
    "PhysicsResult",
    "PhysicsStatus",
    "UncomputedPhysics",
    "analyse_physics",
    "analyze",
    "compare_physics",
    "run_order_sensitivity_test",
    "run_sanity_tests",
    "HCPClassification",
    "HCPConfidence",
    "HCPResult",
    "analyse_hierarchical_coherence",
    "classify_sprachbund_precision",
    "NCritResult",
    "StabilityScanConfig",
    "scan_stability",
    "scan_stability_async",
    "GenealogyDiscriminator",
    "GenealogyFeatures",
    "extract_genealogy_features",
    "LayerSeparationValidator",
    "EmbeddingConfig",
    "EmbeddingContext",
    "SemanticEmbedder",
    "static_embed_fn",
]
