"""Clause-structure and gloss-marker heuristics.

Clause boundaries are estimated from Leipzig-style gloss markers.  These
are surface heuristics; languages whose verb-internal clause structure is
documented in the literature get an explicit override.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from .curves import resolve_vectors
from .precision import precision_cosine_similarity, precision_mean
from .samples import GlossedSample

__all__ = [
    "ClauseStructure",
    "CLAUSE_OVERRIDES",
    "clause_override",
    "estimate_clause_count",
    "analyse_clause_structure",
    "morpheme_boundary_clarity",
    "semantic_density",
]

LOGGER = logging.getLogger(__name__)

# Documented monoclausal (True) and multiclausal (False) verb morphology.
CLAUSE_OVERRIDES: Dict[str, bool] = {
    "ket": True,
    "yugh": True,
    "nivkh": False,
    "gilyak": False,
}

# Each marker contributes at most one boundary per segment.
_BOUNDARY_MARKERS = (
    re.compile(r"\bREL\b"),
    re.compile(r"\bCOMP\b"),
    re.compile(r"\bSUB\b"),
    re.compile(r"\bCONJ\b"),
    re.compile(r"[;:]"),
    re.compile(r"\bSS\b"),
    re.compile(r"\bDS\b"),
    re.compile(r"\band\b", re.IGNORECASE),
    re.compile(r"\bthat\b", re.IGNORECASE),
)

_MONOCLAUSAL_LIMIT = 1.5


@dataclass(frozen=True)
class ClauseStructure:
    avg_clauses_per_segment: float
    intra_clause_coherence: float
    inter_clause_coherence: float
    boundary_markers_found: int
    monoclausal_dominant: bool
    override_applied: bool = False


def clause_override(language: str) -> Optional[bool]:
    normalised = language.lower().strip()
    if normalised in CLAUSE_OVERRIDES:
        return CLAUSE_OVERRIDES[normalised]
    for name, monoclausal in CLAUSE_OVERRIDES.items():
        if name in normalised:
            return monoclausal
    return None


def estimate_clause_count(sample: GlossedSample) -> int:
    """Estimate clauses in a sample from gloss, translation or original text."""
    text = sample.gloss or sample.translation or sample.original
    boundaries = sum(1 for marker in _BOUNDARY_MARKERS if marker.search(text))
    periods = text.count(".")
    return max(1, boundaries + max(0, periods - 1) + 1)


def analyse_clause_structure(
    samples: Sequence[GlossedSample],
    embeddings: Mapping[str, Sequence[float]],
    language: str = "unknown",
) -> Optional[ClauseStructure]:
    """Split adjacent coherence into intra- and inter-clausal pairs.

    Returns ``None`` when no sample carries a gloss.  ``embeddings`` maps
    each sample's original text to the vector chosen for it.
    """
    if not any(sample.gloss for sample in samples):
        return None

    counts = [estimate_clause_count(sample) for sample in samples]
    avg_clauses = float(precision_mean(counts))
    boundary_markers = sum(count - 1 for count in counts)

    vectors = resolve_vectors(embeddings, [sample.original for sample in samples])
    intra: List[float] = []
    inter: List[float] = []
    for i in range(len(samples) - 1):
        left, right = vectors[i], vectors[i + 1]
        if left is None or right is None:
            continue
        similarity = float(precision_cosine_similarity(left, right))
        if counts[i] <= _MONOCLAUSAL_LIMIT and counts[i + 1] <= _MONOCLAUSAL_LIMIT:
            intra.append(similarity)
        else:
            inter.append(similarity)

    monoclausal_count = sum(1 for count in counts if count <= _MONOCLAUSAL_LIMIT)
    heuristic = avg_clauses < _MONOCLAUSAL_LIMIT and monoclausal_count > len(counts) * 0.6
    override = clause_override(language)
    if override is not None and override != heuristic:
        LOGGER.debug(
            "clause override for %s: monoclausal=%s (heuristic said %s)",
            language,
            override,
            heuristic,
        )

    return ClauseStructure(
        avg_clauses_per_segment=avg_clauses,
        intra_clause_coherence=float(precision_mean(intra)),
        inter_clause_coherence=float(precision_mean(inter)),
        boundary_markers_found=boundary_markers,
        monoclausal_dominant=heuristic if override is None else override,
        override_applied=override is not None,
    )


_MORPHEME_MARKER = re.compile(r"[-=.]")
_MORPHEME_SPLIT = re.compile(r"[-=.\s]+")


def morpheme_boundary_clarity(samples: Sequence[GlossedSample]) -> float:
    """Gloss marker density per word, averaged over glossed samples; ``0.5`` without glosses."""
    scores = []
    for sample in samples:
        if not sample.gloss:
            continue
        markers = len(_MORPHEME_MARKER.findall(sample.gloss))
        words = len(re.split(r"\s+", sample.original))
        scores.append(min(1.0, markers / max(1, words * 2)))
    return sum(scores) / len(scores) if scores else 0.5


def semantic_density(samples: Sequence[GlossedSample]) -> float:
    """Morphemes per non-space character of the original, scaled into ``[0, 1]``."""
    densities = []
    for sample in samples:
        if not sample.gloss:
            continue
        characters = len(re.sub(r"\s+", "", sample.original))
        morphemes = len(_MORPHEME_SPLIT.findall(sample.gloss)) + 1
        densities.append(morphemes / max(1, characters))
    if not densities:
        return 0.3
    return min(1.0, sum(densities) / len(densities) * 5)
