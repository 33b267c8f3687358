"""Physics analysis of an ordered corpus of glossed samples.

``analyse_physics`` is the single entry point: it sanitises the samples,
asks the embedding collaborator for vectors once, gates the batch through
the embedding diagnostics and then composes curves, decay, asymmetry,
clause structure, entropy and diffusion into a frozen result.  Expected
data-quality problems never raise; they surface as a ``PhysicsStatus``
plus a reason on an ``UncomputedPhysics`` result.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .asymmetry import AsymmetryAnalysis, analyse_asymmetry
from .clauses import (
    ClauseStructure,
    analyse_clause_structure,
    morpheme_boundary_clarity,
    semantic_density,
)
from .config import (
    DEFAULT_THRESHOLD_ENERGY,
    DEFAULT_THRESHOLD_KAPPA,
    MIN_VALID_NORM,
    PROXY_MODES,
    PhysicsSettings,
)
from .curves import CoherenceCurve, adjacent_similarities, build_curves, lagged_autocorrelation
from .decay import METHOD_INSUFFICIENT, DecayAnalysis, degenerate_decay, fit_decay
from .diffusion import DiffusionMetrics, encode_particles, simulate_semantic_diffusion
from .embeddings import (
    EmbeddingDiagnostics,
    as_vector,
    count_unique_vectors,
    is_usable,
    validate_embeddings,
    vector_norm,
)
from .entropy import NAN_ENTROPY, ZERO_ENTROPY, EntropyMetrics, compute_entropy_metrics
from .events import EventKind, EventSink, emit
from .precision import precision_mean, precision_variance
from .rng import PhysicsRunMetadata, SeededRandom, create_run_metadata
from .samples import GlossedSample, SampleLike, sanitise_samples
from .semantic import EmbedFn

__all__ = [
    "PhysicsStatus",
    "ValidityTag",
    "EmbeddingSourceStats",
    "Validity",
    "EmbeddingInputSummary",
    "HCMFMetrics",
    "Predictions",
    "PhysicsMetrics",
    "PhysicsResult",
    "ComputedPhysics",
    "UncomputedPhysics",
    "PRIMARY_METRICS",
    "analyse_physics",
    "analyze",
    "compare_physics",
    "generate_constant_corpus",
    "generate_noise_corpus",
    "SanityExpectation",
    "SanityTestResult",
    "SanityReport",
    "run_sanity_tests",
    "OrderSensitivityMetrics",
    "OrderSensitivityDeltas",
    "OrderSensitivityResult",
    "run_order_sensitivity_test",
]

LOGGER = logging.getLogger(__name__)

PRIMARY_METRICS = (
    "forward_coherence",
    "backward_coherence",
    "kappa_estimate",
    "kappa_asymmetry",
    "lambda_estimate",
    "mean_energy",
    "max_energy",
    "min_energy",
    "energy_variance",
)

DEFAULT_COMPRESSION_STRATEGY = "glyph"
_SAMPLE_TEXT_LIMIT = 5
_SAMPLE_TEXT_CHARS = 100
_FAILURE_REPORT_LIMIT = 10


class PhysicsStatus(str, Enum):
    COMPUTED = "COMPUTED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"
    BELOW_THRESHOLD = "BELOW_THRESHOLD"


class ValidityTag(str, Enum):
    NATIVE = "NATIVE"
    GLOSS_PROXY = "GLOSS_PROXY"
    TRANSLATION_PROXY = "TRANSLATION_PROXY"
    MIXED = "MIXED"


@dataclass(frozen=True)
class EmbeddingSourceStats:
    """Which sample field supplied each vector."""

    original: int = 0
    gloss: int = 0
    translation: int = 0
    failed: int = 0

    @property
    def succeeded(self) -> int:
        return self.original + self.gloss + self.translation

    @property
    def original_percent(self) -> float:
        if self.succeeded == 0:
            return 0.0
        return round(self.original / self.succeeded * 1000) / 10

    @property
    def fallback_dominant(self) -> bool:
        """True when fewer than half of the vectors come from the target-language text."""
        return self.original_percent < 50

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["original_percent"] = self.original_percent
        payload["fallback_dominant"] = self.fallback_dominant
        return payload


@dataclass(frozen=True)
class Validity:
    is_native: bool
    is_proxy: bool
    syntax_preserved: bool
    data_source: ValidityTag
    proxy_mode: str

    @classmethod
    def from_sources(cls, stats: EmbeddingSourceStats, proxy_mode: str) -> "Validity":
        total = stats.succeeded
        if total == 0:
            return cls(False, False, False, ValidityTag.MIXED, proxy_mode)
        original = stats.original / total
        gloss = stats.gloss / total
        translation = stats.translation / total
        if original > 0.8:
            tag = ValidityTag.NATIVE
        elif gloss > 0.5:
            tag = ValidityTag.GLOSS_PROXY
        elif translation > 0.5:
            tag = ValidityTag.TRANSLATION_PROXY
        else:
            tag = ValidityTag.MIXED
        return cls(
            is_native=original > 0.8,
            is_proxy=(gloss + translation) > 0.5,
            syntax_preserved=(original + gloss) > 0.5,
            data_source=tag,
            proxy_mode=proxy_mode,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["data_source"] = self.data_source.value
        return payload


@dataclass(frozen=True)
class EmbeddingInputSummary:
    total_texts_embedded: int
    source_breakdown: Mapping[str, int]
    avg_char_length: float
    sample_texts: Tuple[Mapping[str, Any], ...] = ()

    @classmethod
    def from_inputs(
        cls, samples: Sequence[GlossedSample], inputs: Sequence[str]
    ) -> "EmbeddingInputSummary":
        originals = {s.original for s in samples}
        glosses = {s.gloss for s in samples if s.gloss}
        translations = {s.translation for s in samples if s.translation}
        breakdown = {"original_only": 0, "gloss_only": 0, "translation_only": 0}
        sample_texts: List[Dict[str, Any]] = []
        for text in inputs:
            source = "original"
            if text in originals:
                breakdown["original_only"] += 1
            elif text in glosses:
                breakdown["gloss_only"] += 1
                source = "gloss"
            elif text in translations:
                breakdown["translation_only"] += 1
                source = "translation"
            if len(sample_texts) < _SAMPLE_TEXT_LIMIT:
                shown = text[:_SAMPLE_TEXT_CHARS] + ("..." if len(text) > _SAMPLE_TEXT_CHARS else "")
                sample_texts.append({"text": shown, "source": source, "char_length": len(text)})
        avg_length = sum(len(t) for t in inputs) / len(inputs) if inputs else 0.0
        return cls(len(inputs), breakdown, avg_length, tuple(sample_texts))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_texts_embedded": self.total_texts_embedded,
            "source_breakdown": dict(self.source_breakdown),
            "avg_char_length": self.avg_char_length,
            "sample_texts": [dict(item) for item in self.sample_texts],
        }


@dataclass(frozen=True)
class HCMFMetrics:
    glyph_potential: float
    morpheme_boundary_clarity: float
    semantic_density: float
    predicted_token_savings: float
    ideal_strategy: str = DEFAULT_COMPRESSION_STRATEGY

    @classmethod
    def from_samples(cls, samples: Sequence[GlossedSample]) -> "HCMFMetrics":
        clarity = morpheme_boundary_clarity(samples)
        density = semantic_density(samples)
        glyph_potential = density * 0.3
        return cls(
            glyph_potential=glyph_potential,
            morpheme_boundary_clarity=clarity,
            semantic_density=density,
            predicted_token_savings=glyph_potential * 20,
        )


@dataclass(frozen=True)
class Predictions:
    high_curvature: bool = False
    compression_resistant: bool = False


@dataclass(frozen=True)
class PhysicsMetrics:
    """Every numeric output of a computed run; no field is optional."""

    forward_coherence: float
    backward_coherence: float
    kappa_estimate: float
    kappa_asymmetry: float
    lambda_estimate: float
    mean_energy: float
    max_energy: float
    min_energy: float
    energy_variance: float
    decay: DecayAnalysis
    asymmetry: AsymmetryAnalysis
    entropy: EntropyMetrics
    diffusion: DiffusionMetrics
    predictions: Predictions
    clause_structure: Optional[ClauseStructure]
    lagged_autocorrelation: Tuple[float, ...] = ()


def _decay_dict(decay: DecayAnalysis) -> Dict[str, Any]:
    payload = asdict(decay)
    payload["lambda"] = payload.pop("lambda_")
    payload["coherence_at_lags"] = list(decay.coherence_at_lags)
    return payload


@dataclass(frozen=True)
class PhysicsResult:
    """Fields shared by every physics outcome."""

    language: str
    sample_count: int
    status: PhysicsStatus
    reason: Optional[str]
    diagnostics: EmbeddingDiagnostics
    curves: Tuple[CoherenceCurve, ...]
    hcmf: HCMFMetrics
    source_stats: EmbeddingSourceStats
    validity: Validity
    embedding_inputs: EmbeddingInputSummary
    run_metadata: PhysicsRunMetadata
    settings: PhysicsSettings
    run_id: str

    @property
    def computed(self) -> bool:
        return self.status is PhysicsStatus.COMPUTED

    def primary_metrics(self) -> Dict[str, float]:
        return {name: math.nan for name in PRIMARY_METRICS}

    @property
    def forward_coherence(self) -> float:
        return self.primary_metrics()["forward_coherence"]

    @property
    def backward_coherence(self) -> float:
        return self.primary_metrics()["backward_coherence"]

    @property
    def lambda_estimate(self) -> float:
        return self.primary_metrics()["lambda_estimate"]

    @property
    def kappa_asymmetry(self) -> float:
        return self.primary_metrics()["kappa_asymmetry"]

    @property
    def mean_energy(self) -> float:
        return self.primary_metrics()["mean_energy"]

    @property
    def decay(self) -> Optional[DecayAnalysis]:
        return None

    @property
    def asymmetry(self) -> Optional[AsymmetryAnalysis]:
        return None

    @property
    def entropy(self) -> EntropyMetrics:
        return NAN_ENTROPY

    @property
    def diffusion(self) -> DiffusionMetrics:
        return DiffusionMetrics(
            math.nan, math.nan, self.settings.diffusion_steps, self.settings.diffusion_seed
        )

    @property
    def predictions(self) -> Predictions:
        return Predictions()

    @property
    def clause_structure(self) -> Optional[ClauseStructure]:
        return None

    @property
    def lagged_autocorrelation(self) -> Tuple[float, ...]:
        return ()

    def passes_gates(self) -> bool:
        """Apply the settings' threshold preset; ``monitor`` accepts everything."""
        if self.settings.mode.lower() == "monitor":
            return True
        if not self.computed:
            return False
        return self.kappa_asymmetry <= self.settings.thresholds.kappa_threshold

    def to_dict(self) -> Dict[str, Any]:
        metadata = asdict(self.run_metadata)
        metadata["random_sources"] = list(self.run_metadata.random_sources)
        payload: Dict[str, Any] = {
            "run_id": self.run_id,
            "language": self.language,
            "sample_count": self.sample_count,
            "physics_status": self.status.value,
            "physics_status_reason": self.reason,
        }
        payload.update(self.primary_metrics())
        payload.update(
            {
                "predictions": asdict(self.predictions),
                "diffusion": asdict(self.diffusion),
                "embedding_diagnostics": asdict(self.diagnostics),
                "coherence_curves": [asdict(curve) for curve in self.curves],
                "decay_analysis": _decay_dict(self.decay) if self.decay else None,
                "asymmetry_analysis": asdict(self.asymmetry) if self.asymmetry else None,
                "entropy": asdict(self.entropy),
                "clause_structure": asdict(self.clause_structure) if self.clause_structure else None,
                "lagged_autocorrelation": list(self.lagged_autocorrelation),
                "hcmf": asdict(self.hcmf),
                "embedding_inputs": self.embedding_inputs.to_dict(),
                "embedding_source_stats": self.source_stats.to_dict(),
                "validity": self.validity.to_dict(),
                "run_metadata": metadata,
                "settings": self.settings.to_dict(),
            }
        )
        return payload


@dataclass(frozen=True)
class ComputedPhysics(PhysicsResult):
    """Result whose metrics were measured (COMPUTED or PARTIAL)."""

    metrics: PhysicsMetrics = field(default=None)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.metrics is None:
            raise ValueError("ComputedPhysics requires a metrics block")

    def primary_metrics(self) -> Dict[str, float]:
        return {name: getattr(self.metrics, name) for name in PRIMARY_METRICS}

    @property
    def decay(self) -> Optional[DecayAnalysis]:
        return self.metrics.decay

    @property
    def asymmetry(self) -> Optional[AsymmetryAnalysis]:
        return self.metrics.asymmetry

    @property
    def entropy(self) -> EntropyMetrics:
        return self.metrics.entropy

    @property
    def diffusion(self) -> DiffusionMetrics:
        return self.metrics.diffusion

    @property
    def predictions(self) -> Predictions:
        return self.metrics.predictions

    @property
    def clause_structure(self) -> Optional[ClauseStructure]:
        return self.metrics.clause_structure

    @property
    def lagged_autocorrelation(self) -> Tuple[float, ...]:
        return self.metrics.lagged_autocorrelation


@dataclass(frozen=True)
class UncomputedPhysics(PhysicsResult):
    """SKIPPED, BELOW_THRESHOLD or FAILED: diagnostics and a reason, no metrics."""


def _select_vector(
    sample: GlossedSample,
    embeddings: Mapping[str, Sequence[float]],
    order: Sequence[str],
) -> Tuple[Optional[np.ndarray], str]:
    for source in order:
        text = sample.field(source)
        if not text:
            continue
        raw = embeddings.get(text)
        if raw is None:
            continue
        vector = as_vector(raw)
        if vector_norm(vector) > MIN_VALID_NORM:
            return vector, source
    return None, "failed"


def _failure_reason(sample: GlossedSample, embeddings: Mapping[str, Sequence[float]]) -> str:
    raw = embeddings.get(sample.original)
    if raw is None:
        return "NOT_IN_MAP"
    norm = vector_norm(as_vector(raw))
    if norm == 0.0:
        return "ZERO_VECTOR"
    return f"LOW_NORM({norm:.4f})"


def _uncomputed_status(diagnostics: EmbeddingDiagnostics, min_valid_vectors: int) -> PhysicsStatus:
    if diagnostics.total_vectors == 0:
        return PhysicsStatus.SKIPPED
    if diagnostics.valid_vectors < min_valid_vectors:
        return PhysicsStatus.BELOW_THRESHOLD
    return PhysicsStatus.FAILED


def _degenerate_metrics(
    diagnostics: EmbeddingDiagnostics,
    curves: Sequence[CoherenceCurve],
    settings: PhysicsSettings,
    lags: Tuple[float, ...],
) -> PhysicsMetrics:
    energy = diagnostics.avg_norm * diagnostics.avg_norm
    return PhysicsMetrics(
        forward_coherence=1.0,
        backward_coherence=1.0,
        kappa_estimate=0.0,
        kappa_asymmetry=0.0,
        lambda_estimate=0.0,
        mean_energy=energy,
        max_energy=energy,
        min_energy=energy,
        energy_variance=0.0,
        decay=degenerate_decay(curves),
        asymmetry=AsymmetryAnalysis(
            kappa_max=0.0,
            kappa_sum=0.0,
            delta=0.0,
            forward_mean=1.0,
            backward_mean=1.0,
            isi=1.0,
            isi_exp=1.0,
        ),
        entropy=ZERO_ENTROPY,
        diffusion=DiffusionMetrics(0.0, 0.0, settings.diffusion_steps, settings.diffusion_seed),
        predictions=Predictions(),
        clause_structure=None,
        lagged_autocorrelation=lags,
    )


async def analyse_physics(
    samples: Sequence[SampleLike],
    embed: EmbedFn,
    settings: Optional[PhysicsSettings] = None,
    *,
    language: str = "unknown",
    run_id: Optional[str] = None,
    events: Optional[EventSink] = None,
    now: Optional[datetime] = None,
) -> PhysicsResult:
    """Measure the coherence physics of an ordered sample corpus.

    Parameters
    ----------
    samples:
        Ordered ``GlossedSample`` objects, mappings with ``original``,
        ``gloss`` and ``translation`` keys, or bare strings.
    embed:
        Async collaborator mapping texts to vectors.  It is awaited exactly
        once; missing or zero vectors count as failed embeddings.
    settings:
        Analysis parameters; defaults to ``PhysicsSettings()``.
    language:
        Language label used for reporting, clause overrides and particle
        stiffness.
    run_id:
        Identifier attached to events and reports; derived from the run
        metadata when omitted.
    events:
        Sink for structured diagnostics; the logging sink when omitted.
    now:
        Timestamp for the run metadata; the current UTC time when omitted.
    """
    settings = settings or PhysicsSettings()
    cleaned = sanitise_samples(samples)
    originals = [sample.original for sample in cleaned]

    metadata = create_run_metadata(settings.diffusion_seed, originals, ("diffusion",), now=now)
    run_id = run_id or metadata.run_id

    inputs = list(dict.fromkeys(text for sample in cleaned for text in sample.texts()))
    input_summary = EmbeddingInputSummary.from_inputs(cleaned, inputs)
    emit(
        events,
        EventKind.EMBEDDING_INPUTS,
        run_id,
        language=language,
        **input_summary.to_dict(),
    )

    embeddings: Mapping[str, Sequence[float]] = (await embed(inputs)) if inputs else {}

    order = PROXY_MODES[settings.proxy_mode]
    embedding_map: Dict[str, np.ndarray] = {}
    counts = {"original": 0, "gloss": 0, "translation": 0, "failed": 0}
    failures: List[Dict[str, Any]] = []
    for sample in cleaned:
        vector, source = _select_vector(sample, embeddings, order)
        counts[source] += 1
        if vector is not None:
            embedding_map[sample.original] = vector
        elif len(failures) < _FAILURE_REPORT_LIMIT:
            failures.append(
                {"original": sample.original[:50], "reason": _failure_reason(sample, embeddings)}
            )
    source_stats = EmbeddingSourceStats(**counts)
    validity = Validity.from_sources(source_stats, settings.proxy_mode)
    emit(
        events,
        EventKind.EMBEDDING_SOURCES,
        run_id,
        language=language,
        proxy_mode=settings.proxy_mode,
        unique_vectors=count_unique_vectors(embeddings),
        failures=failures,
        **source_stats.to_dict(),
    )

    ordered_vectors = [embedding_map[text] for text in originals if text in embedding_map]
    diagnostics = validate_embeddings(ordered_vectors)
    validation = is_usable(diagnostics, settings.min_valid_vectors)
    emit(
        events,
        EventKind.EMBEDDING_DIAGNOSTICS,
        run_id,
        language=language,
        valid_for_physics=validation.valid,
        degenerate=validation.degenerate,
        reason=validation.reason,
        **asdict(diagnostics),
    )

    curves = tuple(build_curves(embedding_map, originals, settings.max_lag))
    emit(
        events,
        EventKind.COHERENCE_CURVES,
        run_id,
        language=language,
        curves=[asdict(curve) for curve in curves],
    )

    common = dict(
        language=language,
        sample_count=len(cleaned),
        diagnostics=diagnostics,
        hcmf=HCMFMetrics.from_samples(cleaned),
        source_stats=source_stats,
        validity=validity,
        embedding_inputs=input_summary,
        run_metadata=metadata,
        settings=settings,
        run_id=run_id,
    )

    if not validation.valid:
        reason = validation.reason or "Embeddings unusable"
        if source_stats.failed > 0:
            reason += f" (Note: {source_stats.failed}/{len(cleaned)} embeddings failed)"
        status = _uncomputed_status(diagnostics, settings.min_valid_vectors)
        emit(events, EventKind.PHYSICS_SKIPPED, run_id, language=language, status=status.value, reason=reason)
        result: PhysicsResult = UncomputedPhysics(
            status=status, reason=reason, curves=curves, **common
        )
        _record_notebook_entry(result, events)
        return result

    lags = tuple(lagged_autocorrelation(embedding_map, originals))

    if validation.degenerate:
        emit(events, EventKind.DEGENERATE_INPUT, run_id, language=language, reason=validation.reason)
        flat_curves = tuple(
            CoherenceCurve(c.lag, 1.0, 1.0, c.sample_size, c.std_dev, c.std_err) for c in curves
        )
        result = ComputedPhysics(
            status=PhysicsStatus.COMPUTED,
            reason=f"Degenerate input: {validation.reason}",
            curves=flat_curves,
            metrics=_degenerate_metrics(diagnostics, flat_curves, settings, lags),
            **common,
        )
        _record_notebook_entry(result, events)
        return result

    valid_keys = [text for text in originals if text in embedding_map]
    forward = adjacent_similarities(embedding_map, valid_keys)
    backward = adjacent_similarities(embedding_map, list(reversed(valid_keys)))
    forward_mean = float(precision_mean(forward)) if forward else 0.0
    backward_mean = float(precision_mean(backward)) if backward else 0.0
    kappa_estimate = abs(forward_mean - backward_mean)

    energies = [vector_norm(embedding_map[text]) ** 2 for text in valid_keys]
    mean_energy = float(precision_mean(energies)) if energies else 0.0

    particles = encode_particles(cleaned, embeddings, language)
    diffusion = simulate_semantic_diffusion(
        particles,
        kappa_estimate,
        steps=settings.diffusion_steps,
        dt=settings.diffusion_dt,
        seed=settings.diffusion_seed,
    )

    status = PhysicsStatus.COMPUTED
    reason: Optional[str] = None
    if not forward or not backward:
        status = PhysicsStatus.PARTIAL
        reason = "Insufficient valid vector pairs for coherence computation"
    elif kappa_estimate == 0.0 and forward_mean == 0.0 and backward_mean == 0.0:
        status = PhysicsStatus.PARTIAL
        reason = "All coherence values are zero - possible embedding issue"

    decay = fit_decay(curves)
    if status is PhysicsStatus.COMPUTED and decay.method == METHOD_INSUFFICIENT:
        status = PhysicsStatus.PARTIAL
        reason = "Fewer than two positive coherence lags; decay rate not fitted"
    asymmetry = analyse_asymmetry(curves, settings.asymmetry_tau)
    emit(
        events,
        EventKind.DECAY_FIT,
        run_id,
        language=language,
        **_decay_dict(decay),
    )
    emit(events, EventKind.ASYMMETRY, run_id, language=language, **asdict(asymmetry))

    clause_structure = analyse_clause_structure(cleaned, embedding_map, language)
    emit(
        events,
        EventKind.CLAUSE_STRUCTURE,
        run_id,
        language=language,
        structure=asdict(clause_structure) if clause_structure else None,
    )

    computed = status is PhysicsStatus.COMPUTED
    metrics = PhysicsMetrics(
        forward_coherence=forward_mean,
        backward_coherence=backward_mean,
        kappa_estimate=kappa_estimate,
        kappa_asymmetry=asymmetry.kappa_max,
        lambda_estimate=decay.lambda_,
        mean_energy=mean_energy,
        max_energy=max(energies) if energies else 0.0,
        min_energy=min(energies) if energies else 0.0,
        energy_variance=float(precision_variance(energies)),
        decay=decay,
        asymmetry=asymmetry,
        entropy=compute_entropy_metrics(ordered_vectors),
        diffusion=diffusion,
        predictions=Predictions(
            high_curvature=computed
            and not math.isnan(decay.lambda_)
            and decay.lambda_ > DEFAULT_THRESHOLD_KAPPA,
            compression_resistant=computed and mean_energy > DEFAULT_THRESHOLD_ENERGY,
        ),
        clause_structure=clause_structure,
        lagged_autocorrelation=lags,
    )
    result = ComputedPhysics(status=status, reason=reason, curves=curves, metrics=metrics, **common)
    _record_notebook_entry(result, events)
    return result


analyze = analyse_physics


def _record_notebook_entry(result: PhysicsResult, events: Optional[EventSink]) -> None:
    emit(
        events,
        EventKind.LAB_NOTEBOOK_ENTRY,
        result.run_id,
        language=result.language,
        status=result.status.value,
        reason=result.reason,
        lambda_estimate=result.lambda_estimate,
        kappa_asymmetry=result.kappa_asymmetry,
        seed=result.run_metadata.seed,
        input_hash=result.run_metadata.input_hash,
        software_version=result.run_metadata.software_version,
        algorithm_version=result.run_metadata.algorithm_version,
    )


def _ratio(left: float, right: float) -> Optional[float]:
    if right == 0 or math.isnan(right):
        return None
    return left / right


def compare_physics(left: PhysicsResult, right: PhysicsResult) -> Dict[str, Any]:
    """Test the directional predictions that ``left`` decays faster and holds more energy."""
    lambda_holds = left.lambda_estimate > right.lambda_estimate
    energy_holds = left.mean_energy > right.mean_energy
    return {
        "languages": [left.language, right.language],
        "lambda_differential": {
            "lang1": left.lambda_estimate,
            "lang2": right.lambda_estimate,
            "ratio": _ratio(left.lambda_estimate, right.lambda_estimate),
            "prediction_holds": lambda_holds,
        },
        "energy_differential": {
            "lang1": left.mean_energy,
            "lang2": right.mean_energy,
            "ratio": _ratio(left.mean_energy, right.mean_energy),
            "prediction_holds": energy_holds,
        },
        "coherence_comparison": {
            "lang1_asymmetry": abs(left.forward_coherence - left.backward_coherence),
            "lang2_asymmetry": abs(right.forward_coherence - right.backward_coherence),
        },
        "validation_summary": {
            "lambda_prediction": lambda_holds,
            "energy_prediction": energy_holds,
            "overall": lambda_holds and energy_holds,
            "both_computed": left.computed and right.computed,
        },
    }


# --- sanity corpora ---------------------------------------------------------

_CONSTANT_SENTENCE = "The quick brown fox jumps over the lazy dog"
_CONSTANT_GLOSS = "DET quick brown fox jump.3SG over DET lazy dog"
_NOISE_WORDS = (
    "apple", "banana", "orange", "grape", "mango",
    "run", "jump", "swim", "fly", "walk",
    "big", "small", "fast", "slow", "red",
    "the", "a", "is", "was", "will",
)
NOISE_CORPUS_SEED = 42
SANITY_MIN_VALID_VECTORS = 10


def generate_constant_corpus() -> List[GlossedSample]:
    """Ten identical sentences: perfect coherence and zero decay expected."""
    return [
        GlossedSample(_CONSTANT_SENTENCE, _CONSTANT_GLOSS, _CONSTANT_SENTENCE) for _ in range(10)
    ]


def generate_noise_corpus(seed: int = NOISE_CORPUS_SEED) -> List[GlossedSample]:
    """Ten sentences of 5-7 shuffled tokens drawn from one seeded stream."""
    rng = SeededRandom(seed)
    corpus = []
    for i in range(10):
        words = rng.shuffled(_NOISE_WORDS)
        corpus.append(GlossedSample(" ".join(words[: 5 + (i % 3)])))
    return corpus


@dataclass(frozen=True)
class SanityExpectation:
    coherence_range: Tuple[float, float]
    kappa_range: Tuple[float, float]
    entropy_range: Tuple[float, float]
    physics_status: PhysicsStatus = PhysicsStatus.COMPUTED


@dataclass(frozen=True)
class SanityTestResult:
    test_name: str
    passed: bool
    expected: SanityExpectation
    forward_coherence: float
    kappa: float
    entropy: float
    physics_status: PhysicsStatus
    diagnostics: Tuple[str, ...]


@dataclass(frozen=True)
class SanityReport:
    passed: bool
    results: Tuple[SanityTestResult, ...]


CONSTANT_EXPECTATION = SanityExpectation((0.8, 1.0), (-0.1, 0.3), (0.0, 1.5))
NOISE_EXPECTATION = SanityExpectation((-0.2, 0.5), (-0.5, 0.5), (1.5, 4.0))


def _status_line(result: PhysicsResult) -> str:
    if result.computed:
        return "OK: physics_status is COMPUTED"
    return f"FAIL: physics_status is {result.status.value}, expected COMPUTED"


async def run_sanity_tests(
    embed: EmbedFn,
    settings: Optional[PhysicsSettings] = None,
    *,
    events: Optional[EventSink] = None,
) -> SanityReport:
    """Run the constant and noise corpora through the full pipeline.

    The constant corpus must be COMPUTED with forward coherence of at least
    ``0.8``; the noise corpus must be COMPUTED.  Whether noise coherence sits
    below constant coherence is reported as a diagnostic.
    """
    settings = settings or PhysicsSettings(min_valid_vectors=SANITY_MIN_VALID_VECTORS)

    constant = await analyse_physics(
        generate_constant_corpus(), embed, settings, language="SanityTest_Constant", events=events
    )
    constant_notes = [_status_line(constant)]
    coherence = constant.forward_coherence
    if math.isnan(coherence):
        constant_notes.append("FAIL: forward coherence is NaN")
    elif coherence >= 0.8:
        constant_notes.append(f"OK: forward coherence {coherence:.3f} >= 0.8")
    else:
        constant_notes.append(f"FAIL: forward coherence {coherence:.3f} < 0.8")
    constant_test = SanityTestResult(
        test_name="Constant Sequence",
        passed=constant.computed and not math.isnan(coherence) and coherence >= 0.8,
        expected=CONSTANT_EXPECTATION,
        forward_coherence=coherence,
        kappa=constant.kappa_asymmetry,
        entropy=constant.entropy.shannon_entropy,
        physics_status=constant.status,
        diagnostics=tuple(constant_notes),
    )

    noise = await analyse_physics(
        generate_noise_corpus(), embed, settings, language="SanityTest_Noise", events=events
    )
    noise_notes = [_status_line(noise)]
    if not math.isnan(noise.forward_coherence) and not math.isnan(coherence):
        relation = "<" if noise.forward_coherence < coherence else ">="
        prefix = "OK" if relation == "<" else "WARN"
        noise_notes.append(
            f"{prefix}: noise coherence ({noise.forward_coherence:.3f}) {relation} "
            f"constant ({coherence:.3f})"
        )
    noise_test = SanityTestResult(
        test_name="Noise Corpus",
        passed=noise.computed,
        expected=NOISE_EXPECTATION,
        forward_coherence=noise.forward_coherence,
        kappa=noise.kappa_asymmetry,
        entropy=noise.entropy.shannon_entropy,
        physics_status=noise.status,
        diagnostics=tuple(noise_notes),
    )

    results = (constant_test, noise_test)
    passed = all(r.passed for r in results)
    for r in results:
        LOGGER.info("sanity %s: %s", r.test_name, "passed" if r.passed else "failed")
        for note in r.diagnostics:
            LOGGER.debug("  %s", note)
    return SanityReport(passed, results)


# --- order sensitivity ------------------------------------------------------


@dataclass(frozen=True)
class OrderSensitivityMetrics:
    mean_coherence: float
    lagged_autocorrelation: Tuple[float, ...]
    kappa_max: float
    isi: float
    auc: float
    lambda_: float
    slope: float


@dataclass(frozen=True)
class OrderSensitivityDeltas:
    coherence_delta: float
    autocorrelation_breakage: float
    order_sensitivity_score: float
    delta_auc: float
    delta_lambda: float
    delta_slope: float


@dataclass(frozen=True)
class OrderSensitivityResult:
    test_name: str
    original: OrderSensitivityMetrics
    shuffled: OrderSensitivityMetrics
    deltas: OrderSensitivityDeltas
    passed: bool
    order_sensitivity_detected: bool
    diagnostics: Tuple[str, ...]


def _nan_to_zero(value: float) -> float:
    return 0.0 if math.isnan(value) else value


def _curve_slope(curves: Sequence[CoherenceCurve]) -> float:
    """Least-squares slope of forward coherence against lag position."""
    n = len(curves)
    if n < 2:
        return 0.0
    x_mean = (n + 1) / 2
    values = [_nan_to_zero(c.forward) for c in curves]
    y_mean = sum(values) / n
    numerator = sum((i + 1 - x_mean) * (values[i] - y_mean) for i in range(n))
    denominator = sum((i + 1 - x_mean) ** 2 for i in range(n))
    return numerator / denominator if denominator > 0 else 0.0


def _order_metrics(result: PhysicsResult) -> OrderSensitivityMetrics:
    asymmetry = result.asymmetry
    return OrderSensitivityMetrics(
        mean_coherence=result.forward_coherence,
        lagged_autocorrelation=result.lagged_autocorrelation,
        kappa_max=asymmetry.kappa_max if asymmetry else 0.0,
        isi=asymmetry.isi if asymmetry else 1.0,
        auc=sum(_nan_to_zero(c.forward) for c in result.curves),
        lambda_=result.lambda_estimate,
        slope=_curve_slope(result.curves),
    )


async def run_order_sensitivity_test(
    corpus: Sequence[SampleLike],
    embed: EmbedFn,
    settings: Optional[PhysicsSettings] = None,
    shuffle_seed: int = NOISE_CORPUS_SEED,
    *,
    events: Optional[EventSink] = None,
) -> OrderSensitivityResult:
    """Compare a corpus with a seeded shuffle of itself.

    ``kappa`` and ISI are invariant under reordering for cosine similarity
    and must move by less than ``0.1``.  The order-sensitivity score
    ``min(1, 2*dAUC + 10*dLambda + 5*dSlope + 5*dCoherence)`` combines the
    shape changes of the coherence curve; NaN deltas count as zero.
    """
    original_result = await analyse_physics(
        corpus, embed, settings, language="OrderTest_Original", events=events
    )
    shuffled_corpus = SeededRandom(shuffle_seed).shuffled(list(corpus))
    shuffled_result = await analyse_physics(
        shuffled_corpus, embed, settings, language="OrderTest_Shuffled", events=events
    )

    original = _order_metrics(original_result)
    shuffled = _order_metrics(shuffled_result)

    delta_auc = abs(original.auc - shuffled.auc)
    delta_lambda = _nan_to_zero(abs(original.lambda_ - shuffled.lambda_))
    delta_slope = abs(original.slope - shuffled.slope)
    coherence_delta = _nan_to_zero(abs(original.mean_coherence - shuffled.mean_coherence))
    score = min(1.0, delta_auc * 2 + delta_lambda * 10 + delta_slope * 5 + coherence_delta * 5)

    paired = list(zip(original.lagged_autocorrelation, shuffled.lagged_autocorrelation))
    breakage = sum(abs(a - b) for a, b in paired) / len(paired) if paired else 0.0

    kappa_stable = abs(original.kappa_max - shuffled.kappa_max) < 0.1
    isi_stable = abs(original.isi - shuffled.isi) < 0.1
    detected = score > 0.01

    diagnostics = [
        "kappa stable under shuffling"
        if kappa_stable
        else "kappa changed under shuffling; symmetric statistic should not move",
    ]
    if isi_stable:
        diagnostics.append("ISI stable under shuffling")
    diagnostics.extend(
        [
            f"dAUC: {delta_auc:.3e} (original {original.auc:.4f}, shuffled {shuffled.auc:.4f})",
            f"dLambda: {delta_lambda:.3e}",
            f"dSlope: {delta_slope:.3e} (original {original.slope:.4f}, shuffled {shuffled.slope:.4f})",
            f"autocorrelation breakage: {breakage:.4f}",
            f"order sensitivity score: {score:.4f} "
            + ("(order matters)" if detected else "(order-invariant)"),
        ]
    )
    if not detected:
        LOGGER.warning("no order sensitivity detected; corpus may be homogeneous")

    passed = kappa_stable and original_result.computed and shuffled_result.computed
    return OrderSensitivityResult(
        test_name="Order Sensitivity (Scramble Test)",
        original=original,
        shuffled=shuffled,
        deltas=OrderSensitivityDeltas(
            coherence_delta=coherence_delta,
            autocorrelation_breakage=breakage,
            order_sensitivity_score=score,
            delta_auc=delta_auc,
            delta_lambda=delta_lambda,
            delta_slope=delta_slope,
        ),
        passed=passed,
        order_sensitivity_detected=detected,
        diagnostics=tuple(diagnostics),
    )
