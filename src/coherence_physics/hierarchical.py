"""Hierarchical coherence profiling (HCP).

Separates inherited structure from areal convergence by measuring
coherence at three granularities:

* ICC, intra-clause coherence: mean pairwise similarity of the gloss
  tokens inside each clause.
* XCC, inter-clause coherence: mean similarity of consecutive clauses.
* MBC, morpheme boundary clarity: coefficient of variation of the token
  count per clause.

Decay rates near zero are bucketed with ``decimal`` comparisons so that a
true zero is not confused with float64 noise at ``1e-15``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .precision import to_decimal
from .rng import SeededRandom
from .semantic import EmbedFn, cosine_similarity

__all__ = [
    "HCPClassification",
    "HCPConfidence",
    "Clause",
    "HCPSegment",
    "HCPDiagnostics",
    "HCPResult",
    "HCPBatchResult",
    "MBCBootstrap",
    "HCP_THRESHOLDS",
    "to_hcp_segment",
    "compute_genealogical_score",
    "classify_relationship",
    "classify_sprachbund_precision",
    "sprachbund_classification",
    "compute_icc",
    "compute_xcc",
    "compute_mbc",
    "analyse_hierarchical_coherence",
    "analyse_hcp_by_language",
    "generate_hcp_report",
    "bootstrap_mbc",
    "lambda_equivalent",
    "analyse_precision_hcp",
]

LOGGER = logging.getLogger(__name__)


class HCPClassification(str, Enum):
    GENEALOGICAL = "GENEALOGICAL"
    AREAL_CONVERGENCE = "AREAL_CONVERGENCE"
    INDETERMINATE = "INDETERMINATE"
    STABLE_SPRACHBUND = "STABLE_SPRACHBUND"
    NEAR_STABLE_SPRACHBUND = "NEAR_STABLE_SPRACHBUND"


class HCPConfidence(str, Enum):
    HIGH = "HIGH"
    MODERATE = "MODERATE"
    LOW = "LOW"


HCP_THRESHOLDS: Mapping[str, float] = {
    "icc_moderate": 0.3,
    "xcc_convergent": 0.4,
    "mbc_genealogical": 0.15,
}

MIN_SIGNIFICANT_LAMBDA = Decimal("1e-15")
_NEAR_STABLE_LAMBDA = Decimal("1e-6")
_SLOW_DECAY_LAMBDA = Decimal("1e-4")

STABLE_LABEL = "Stable Sprachbund (λ < 1e-15) [Ultra-Conserved]"
NEAR_STABLE_LABEL = "Near-Stable Sprachbund [Highly Conserved]"
SLOW_DECAY_LABEL = "Slow-Decay Sprachbund [Conserved]"
DIVERGENT_LABEL = "Genetic Family Pattern [Divergent]"
NEGATIVE_LABEL = "ERROR: Negative decay impossible"

MBC_BOOTSTRAP_THRESHOLD = Decimal("0.07")
MBC_BOOTSTRAP_SUPPORT = 0.63
BORDERLINE_LANGUAGES = ("Ket", "Navajo")


@dataclass(frozen=True)
class Clause:
    tokens: Tuple[str, ...]

    @property
    def text(self) -> str:
        return " ".join(self.tokens)


@dataclass(frozen=True)
class HCPSegment:
    original: str
    gloss: str
    translation: str
    clauses: Tuple[Clause, ...]


@dataclass(frozen=True)
class HCPDiagnostics:
    clause_count: int
    token_count: int
    avg_tokens_per_clause: float
    icc_samples: int
    xcc_samples: int
    precision: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class HCPResult:
    icc: float
    xcc: float
    mbc: float
    genealogical_score: float
    classification: HCPClassification
    confidence: HCPConfidence
    diagnostics: HCPDiagnostics
    precision_classification: Optional[str] = None


@dataclass(frozen=True)
class HCPBatchResult:
    language: str
    family: str
    sprachbund: str
    result: HCPResult


SampleInput = Union[Mapping[str, Any], Any]


def _get(sample: SampleInput, key: str) -> str:
    if isinstance(sample, Mapping):
        value = sample.get(key)
    else:
        value = getattr(sample, key, None)
    return value or ""


def to_hcp_segment(sample: SampleInput) -> HCPSegment:
    """Split a sample's gloss into clauses of whitespace-separated tokens.

    A ``;`` inside the gloss starts a new clause; without one the whole
    gloss line is a single clause.  An empty gloss yields one empty clause.
    """
    gloss = _get(sample, "gloss")
    parts = gloss.split(";") if ";" in gloss else [gloss]
    clauses = tuple(Clause(tuple(part.split())) for part in parts if part.strip() or len(parts) == 1)
    return HCPSegment(
        original=_get(sample, "original"),
        gloss=gloss,
        translation=_get(sample, "translation"),
        clauses=clauses or (Clause(()),),
    )


def compute_genealogical_score(icc: float, xcc: float, mbc: float) -> float:
    """Weighted score: morphology 0.5, syntax 0.3, discourse 0.2."""
    return mbc * 0.5 + icc * 0.3 + xcc * 0.2


def classify_relationship(
    icc: float, xcc: float, mbc: float
) -> Tuple[HCPClassification, HCPConfidence, float]:
    score = compute_genealogical_score(icc, xcc, mbc)
    if score >= 0.6:
        confidence = HCPConfidence.HIGH if score >= 0.8 else HCPConfidence.MODERATE
        return HCPClassification.GENEALOGICAL, confidence, score
    if (
        xcc > HCP_THRESHOLDS["xcc_convergent"]
        and icc < HCP_THRESHOLDS["icc_moderate"]
        and mbc < HCP_THRESHOLDS["mbc_genealogical"]
    ):
        confidence = HCPConfidence.HIGH if xcc > 0.5 and mbc < 0.05 else HCPConfidence.MODERATE
        return HCPClassification.AREAL_CONVERGENCE, confidence, score
    confidence = HCPConfidence.MODERATE if score >= 0.4 else HCPConfidence.LOW
    return HCPClassification.INDETERMINATE, confidence, score


def classify_sprachbund_precision(lambda_: Union[float, str, Decimal]) -> str:
    """Bucket a decay rate with exact decimal comparisons.

    ``lambda_`` may be a float, a ``Decimal`` or a decimal string; strings
    keep digits a float would lose.
    """
    value = Decimal(lambda_) if isinstance(lambda_, str) else to_decimal(lambda_)
    if value < 0:
        return NEGATIVE_LABEL
    if value <= MIN_SIGNIFICANT_LAMBDA:
        return STABLE_LABEL
    if value < _NEAR_STABLE_LAMBDA:
        return NEAR_STABLE_LABEL
    if value < _SLOW_DECAY_LAMBDA:
        return SLOW_DECAY_LABEL
    return DIVERGENT_LABEL


_LABEL_TO_CLASSIFICATION = {
    STABLE_LABEL: HCPClassification.STABLE_SPRACHBUND,
    NEAR_STABLE_LABEL: HCPClassification.NEAR_STABLE_SPRACHBUND,
    SLOW_DECAY_LABEL: HCPClassification.AREAL_CONVERGENCE,
    DIVERGENT_LABEL: HCPClassification.GENEALOGICAL,
    NEGATIVE_LABEL: HCPClassification.INDETERMINATE,
}


def sprachbund_classification(lambda_: Union[float, str, Decimal]) -> HCPClassification:
    return _LABEL_TO_CLASSIFICATION[classify_sprachbund_precision(lambda_)]


def _matrix(texts: Sequence[str], table: Mapping[str, Sequence[float]]) -> np.ndarray:
    return np.vstack([np.asarray(table[text], dtype=np.float64).reshape(-1) for text in texts])


async def compute_icc(segments: Sequence[HCPSegment], embed: EmbedFn) -> Tuple[float, int]:
    """Mean pairwise token similarity over every clause with two or more tokens.

    Pairs from all clauses are pooled before averaging.  Returns the ICC and
    the number of clauses that contributed.
    """
    clauses = [c for seg in segments for c in seg.clauses if len(c.tokens) >= 2]
    if not clauses:
        return 0.0, 0
    tokens = list(dict.fromkeys(token for clause in clauses for token in clause.tokens))
    table = await embed(tokens)

    total = 0.0
    pairs = 0
    for clause in clauses:
        matrix = _matrix(clause.tokens, table)
        sims = cosine_similarity(matrix, matrix)
        upper = np.triu_indices(len(clause.tokens), k=1)
        total += float(sims[upper].sum())
        pairs += len(upper[0])
    return (total / pairs if pairs else 0.0), len(clauses)


async def compute_xcc(segments: Sequence[HCPSegment], embed: EmbedFn) -> Tuple[float, int]:
    """Mean similarity of consecutive clause texts; ``(0, 0)`` below two clauses."""
    texts = [clause.text for seg in segments for clause in seg.clauses]
    if len(texts) < 2:
        return 0.0, 0
    table = await embed(list(dict.fromkeys(texts)))
    matrix = _matrix(texts, table)
    sims = cosine_similarity(matrix[:-1], matrix[1:])
    consecutive = np.diagonal(sims)
    return float(consecutive.mean()), int(consecutive.size)


def _population_cv(counts: Sequence[int]) -> float:
    if not counts:
        return 0.0
    mean = sum(counts) / len(counts)
    if mean == 0:
        return 0.0
    variance = sum((c - mean) ** 2 for c in counts) / len(counts)
    return math.sqrt(variance) / mean


def _token_counts(segments: Sequence[HCPSegment]) -> List[int]:
    return [len(clause.tokens) for seg in segments for clause in seg.clauses]


def compute_mbc(segments: Sequence[HCPSegment]) -> float:
    """Population coefficient of variation of tokens per clause."""
    return _population_cv(_token_counts(segments))


async def analyse_hierarchical_coherence(
    samples: Sequence[SampleInput], embed: EmbedFn
) -> HCPResult:
    segments = [to_hcp_segment(sample) for sample in samples]
    clause_count = sum(len(seg.clauses) for seg in segments)
    token_count = sum(len(c.tokens) for seg in segments for c in seg.clauses)

    icc, icc_samples = await compute_icc(segments, embed)
    xcc, xcc_samples = await compute_xcc(segments, embed)
    mbc = compute_mbc(segments)
    classification, confidence, score = classify_relationship(icc, xcc, mbc)

    return HCPResult(
        icc=icc,
        xcc=xcc,
        mbc=mbc,
        genealogical_score=score,
        classification=classification,
        confidence=confidence,
        diagnostics=HCPDiagnostics(
            clause_count=clause_count,
            token_count=token_count,
            avg_tokens_per_clause=token_count / clause_count if clause_count else 0.0,
            icc_samples=icc_samples,
            xcc_samples=xcc_samples,
        ),
    )


async def analyse_hcp_by_language(
    samples: Sequence[Mapping[str, Any]], embed: EmbedFn
) -> List[HCPBatchResult]:
    """Group samples by their ``language`` key and profile each group.

    Family and sprachbund labels come from the first sample of each group.
    Groups keep first-appearance order.
    """
    grouped: Dict[str, List[Mapping[str, Any]]] = {}
    for sample in samples:
        grouped.setdefault(sample["language"], []).append(sample)

    results: List[HCPBatchResult] = []
    for language, group in grouped.items():
        result = await analyse_hierarchical_coherence(group, embed)
        LOGGER.debug(
            "HCP %s: icc=%.3f xcc=%.3f mbc=%.3f -> %s",
            language,
            result.icc,
            result.xcc,
            result.mbc,
            result.classification.value,
        )
        results.append(
            HCPBatchResult(
                language=language,
                family=group[0].get("family", ""),
                sprachbund=group[0].get("sprachbund", ""),
                result=result,
            )
        )
    return results


def generate_hcp_report(
    results: Sequence[HCPBatchResult],
    *,
    run_timestamp: Optional[str] = None,
    hypothesis: Optional[str] = None,
) -> str:
    """Render batch results as a markdown report."""
    timestamp = run_timestamp or datetime.now(timezone.utc).isoformat()
    lines = [
        "# Hierarchical Coherence Profiling Report",
        "",
        f"**Generated:** {timestamp}",
        f"**Hypothesis:** {hypothesis or 'Distinguish genetic relationship from areal convergence'}",
        "",
        "---",
        "",
        "## Summary",
        "",
        "| Language | Family | ICC | XCC | MBC | Classification |",
        "|----------|--------|-----|-----|-----|----------------|",
    ]
    for r in results:
        res = r.result
        lines.append(
            f"| {r.language} | {r.family} | {res.icc:.3f} | {res.xcc:.3f} | {res.mbc:.3f} "
            f"| {res.classification.value} ({res.confidence.value}) |"
        )
    lines.extend(["", "---", "", "## Detailed Results", ""])

    for r in results:
        res = r.result
        diag = res.diagnostics
        icc_note = "Strong morphosyntactic binding" if res.icc > 0.3 else "Weak intra-clause cohesion"
        xcc_note = "Strong discourse patterns" if res.xcc > 0.4 else "Independent clauses"
        mbc_note = "Consistent morphology" if res.mbc > 0.15 else "Variable segmentation"
        lines.extend(
            [
                f"### {r.language} ({r.family})",
                "",
                "| Metric | Value | Interpretation |",
                "|--------|-------|----------------|",
                f"| ICC (Intra-Clause) | {res.icc:.4f} | {icc_note} |",
                f"| XCC (Inter-Clause) | {res.xcc:.4f} | {xcc_note} |",
                f"| MBC (Morpheme Clarity) | {res.mbc:.4f} | {mbc_note} |",
                f"| **Classification** | {res.classification.value} | Confidence: {res.confidence.value} |",
                "",
            ]
        )
        if res.precision_classification:
            lines.extend([f"*Precision: {res.precision_classification}*", ""])
        lines.extend(
            [
                f"*Diagnostics: {diag.clause_count} clauses, {diag.token_count} tokens, "
                f"{diag.icc_samples} ICC samples, {diag.xcc_samples} XCC samples*",
                "",
            ]
        )
    return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class MBCBootstrap:
    lower_bound: float
    upper_bound: float
    threshold_crossings: int
    iterations: int
    threshold: float = float(MBC_BOOTSTRAP_THRESHOLD)

    @property
    def crossing_fraction(self) -> float:
        return self.threshold_crossings / self.iterations if self.iterations else 0.0


def _percentile(ordered: Sequence[float], q: float) -> float:
    if not ordered:
        return math.nan
    index = min(len(ordered) - 1, max(0, int(math.floor(q * (len(ordered) - 1)))))
    return ordered[index]


def bootstrap_mbc(
    segments: Sequence[HCPSegment],
    iterations: int = 10000,
    seed: int = 42,
    threshold: Decimal = MBC_BOOTSTRAP_THRESHOLD,
) -> MBCBootstrap:
    """Resample per-clause token counts and recompute MBC.

    Counts how many resamples fall below ``threshold`` and reports the 5th
    and 95th percentile of the resampled MBC.
    """
    counts = _token_counts(segments)
    if not counts or iterations <= 0:
        return MBCBootstrap(math.nan, math.nan, 0, max(iterations, 0), float(threshold))

    rng = SeededRandom(seed)
    values: List[float] = []
    crossings = 0
    for _ in range(iterations):
        resample = [counts[i] for i in rng.sample_indices(len(counts), len(counts))]
        mbc = _population_cv(resample)
        values.append(mbc)
        if to_decimal(mbc) < threshold:
            crossings += 1
    values.sort()
    return MBCBootstrap(
        lower_bound=_percentile(values, 0.05),
        upper_bound=_percentile(values, 0.95),
        threshold_crossings=crossings,
        iterations=iterations,
        threshold=float(threshold),
    )


def lambda_equivalent(mbc: Union[float, Decimal]) -> Decimal:
    """Map an MBC value onto the decay-rate scale used for sprachbund buckets."""
    value = to_decimal(mbc)
    if value < Decimal("0.05"):
        return Decimal("1e-3")
    if value < Decimal("0.07"):
        return Decimal("1e-8")
    if value < Decimal("0.10"):
        return Decimal("1e-12")
    return Decimal("1e-15")


async def analyse_precision_hcp(
    language_data: Sequence[Mapping[str, Any]],
    embed: EmbedFn,
    *,
    borderline: Sequence[str] = BORDERLINE_LANGUAGES,
    iterations: int = 10000,
    seed: int = 42,
) -> List[HCPBatchResult]:
    """Profile languages and refine borderline ones with an MBC bootstrap.

    ``language_data`` entries carry ``language``, ``family``, ``sprachbund``
    and ``samples``.  For each language named in ``borderline`` a bootstrap
    with more than 63% of resamples below the MBC threshold promotes the
    result to GENEALOGICAL (MODERATE); otherwise the result is annotated
    with its lambda-equivalent.
    """
    flat = [
        {
            **dict(sample),
            "language": entry["language"],
            "family": entry.get("family", ""),
            "sprachbund": entry.get("sprachbund", ""),
        }
        for entry in language_data
        for sample in entry.get("samples", [])
    ]
    results = await analyse_hcp_by_language(flat, embed)
    segments_by_language: Dict[str, List[HCPSegment]] = {}
    for sample in flat:
        segments_by_language.setdefault(sample["language"], []).append(to_hcp_segment(sample))

    refined: List[HCPBatchResult] = []
    for batch in results:
        if batch.language not in borderline:
            refined.append(batch)
            continue
        boot = bootstrap_mbc(segments_by_language[batch.language], iterations, seed)
        result = batch.result
        if boot.crossing_fraction > MBC_BOOTSTRAP_SUPPORT:
            result = replace(
                result,
                classification=HCPClassification.GENEALOGICAL,
                confidence=HCPConfidence.MODERATE,
                precision_classification=(
                    f"Near-Threshold Genealogical ({boot.crossing_fraction:.0%} bootstrap support)"
                ),
            )
        else:
            result = replace(
                result,
                precision_classification=(
                    "Borderline Indeterminate "
                    f"(λ-equivalent: {lambda_equivalent(result.mbc):.0e})"
                ),
            )
        precision = {
            "bootstrap_samples": boot.iterations,
            "threshold_crossings": boot.threshold_crossings,
            "lower_bound": boot.lower_bound,
            "upper_bound": boot.upper_bound,
        }
        result = replace(result, diagnostics=replace(result.diagnostics, precision=precision))
        refined.append(replace(batch, result=result))
    return refined
