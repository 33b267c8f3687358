"""Descent-versus-contact discrimination from physics observables.

A labelled language pair is reduced to a fixed, ordered feature vector
(``FEATURE_NAMES``) and scored against a parallel weight vector.  The
weighted sum goes through a sigmoid and is compared to a decision
threshold tuned on the training pairs.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .physics import PhysicsResult
from .samples import GlossedSample

__all__ = [
    "Relationship",
    "FEATURE_NAMES",
    "PRIOR_WEIGHTS",
    "GenealogyFeatures",
    "LabeledPair",
    "ClassificationResult",
    "ConfusionMatrix",
    "DiscriminationMetrics",
    "GenealogyDiscriminator",
    "extract_genealogy_features",
    "physics_run_summary",
    "raw_cosine_similarity",
    "lexical_overlap",
    "roc_auc_rank",
    "ACCEPTED_GENEALOGY_PAIRS",
    "CONTACT_PAIRS",
    "PairOutcome",
    "GenealogyEvaluation",
    "run_genealogy_evaluation",
]

LOGGER = logging.getLogger(__name__)


class Relationship(str, Enum):
    DESCENT = "descent"
    CONTACT = "contact"


FEATURE_NAMES: Tuple[str, ...] = (
    "kappa",
    "lambda_",
    "r2",
    "coherence_at_lag1",
    "coherence_at_lag5",
    "coherence_at_lag_n",
    "curve_convexity",
    "lambda_variance",
    "kappa_variance",
)

# Positional, aligned with FEATURE_NAMES.
PRIOR_WEIGHTS: Tuple[float, ...] = (0.0, 0.3, 0.2, 0.15, 0.0, 0.0, 0.15, -0.1, -0.1)

_TRAINABLE = tuple(weight != 0.0 for weight in PRIOR_WEIGHTS)
_THRESHOLDS = tuple(round(0.3 + 0.05 * step, 2) for step in range(9))


@dataclass(frozen=True)
class GenealogyFeatures:
    language: str
    family: str
    relationship: Relationship
    kappa: float
    lambda_: float
    r2: float
    coherence_at_lag1: float
    coherence_at_lag5: float
    coherence_at_lag_n: float
    curve_convexity: float
    lambda_variance: float = 0.0
    kappa_variance: float = 0.0

    def vector(self) -> np.ndarray:
        return np.array(
            [
                self.kappa,
                self.lambda_,
                self.r2,
                self.coherence_at_lag1,
                self.coherence_at_lag5,
                self.coherence_at_lag_n,
                self.curve_convexity,
                self.lambda_variance,
                self.kappa_variance,
            ],
            dtype=np.float64,
        )


@dataclass(frozen=True)
class LabeledPair:
    source_language: str
    target_language: str
    features: GenealogyFeatures
    ground_truth: Relationship


@dataclass(frozen=True)
class ClassificationResult:
    prediction: Relationship
    confidence: float
    feature_weights: Dict[str, float]


@dataclass(frozen=True)
class ConfusionMatrix:
    true_positives: int = 0
    true_negatives: int = 0
    false_positives: int = 0
    false_negatives: int = 0


@dataclass(frozen=True)
class DiscriminationMetrics:
    accuracy: float
    precision: float
    recall: float
    f1_score: float
    roc_auc: float
    confusion_matrix: ConfusionMatrix
    roc_auc_is_accuracy: bool = True


def _coerce_relationship(value: Any) -> Relationship:
    return value if isinstance(value, Relationship) else Relationship(str(value))


def extract_genealogy_features(
    run: Mapping[str, Any],
    language: str,
    family: str,
    relationship: Any,
) -> GenealogyFeatures:
    """Build the feature record for one physics run.

    ``run`` carries ``kappa``, ``lambda``, ``r2`` and ``coherence_curve``
    (forward coherence per lag, lag 1 first); an optional ``bootstrap``
    mapping supplies ``lambda_variance`` and ``kappa_variance``.
    Convexity is the midpoint's deviation from the straight line between
    the first and last lag; positive means convex.
    """
    curve = [float(v) for v in run.get("coherence_curve", ())]
    n = len(curve)
    lag1 = curve[0] if n > 0 else 0.0
    lag5 = curve[4] if n > 4 else lag1
    lag_n = curve[-1] if n > 0 else 0.0
    linear_mid = (lag1 + lag_n) / 2.0
    actual_mid = curve[n // 2] if n > 0 else linear_mid
    bootstrap = run.get("bootstrap") or {}
    return GenealogyFeatures(
        language=language,
        family=family,
        relationship=_coerce_relationship(relationship),
        kappa=float(run.get("kappa", 0.0)),
        lambda_=float(run.get("lambda", 0.0)),
        r2=float(run.get("r2", 0.0)),
        coherence_at_lag1=lag1,
        coherence_at_lag5=lag5,
        coherence_at_lag_n=lag_n,
        curve_convexity=actual_mid - linear_mid,
        lambda_variance=float(bootstrap.get("lambda_variance", 0.0)),
        kappa_variance=float(bootstrap.get("kappa_variance", 0.0)),
    )


def physics_run_summary(result: PhysicsResult) -> Dict[str, Any]:
    """Flatten a physics result into the mapping ``extract_genealogy_features`` reads."""
    decay = result.decay
    asymmetry = result.asymmetry
    return {
        "kappa": asymmetry.kappa_max if asymmetry is not None else 0.0,
        "lambda": decay.lambda_ if decay is not None else 0.0,
        "r2": decay.fit_quality if decay is not None else 0.0,
        "coherence_curve": [c.forward for c in result.curves if math.isfinite(c.forward)],
    }


class GenealogyDiscriminator:
    """Weighted-sum classifier with a sigmoid and a tuned threshold."""

    def __init__(self, weights: Optional[Sequence[float]] = None, threshold: float = 0.5) -> None:
        initial = PRIOR_WEIGHTS if weights is None else weights
        if len(initial) != len(FEATURE_NAMES):
            raise ValueError(f"expected {len(FEATURE_NAMES)} weights, got {len(initial)}")
        self.weights = np.asarray(initial, dtype=np.float64)
        self.threshold = threshold

    def feature_weights(self) -> Dict[str, float]:
        return {name: float(w) for name, w in zip(FEATURE_NAMES, self.weights)}

    def train(self, pairs: Sequence[LabeledPair]) -> None:
        descent = [p.features.vector() for p in pairs if p.ground_truth is Relationship.DESCENT]
        contact = [p.features.vector() for p in pairs if p.ground_truth is Relationship.CONTACT]
        if not descent or not contact:
            LOGGER.warning("insufficient training data: %d descent, %d contact", len(descent), len(contact))
            return

        diff = np.mean(descent, axis=0) - np.mean(contact, axis=0)
        for idx, trainable in enumerate(_TRAINABLE):
            if trainable and abs(diff[idx]) > 0.01:
                self.weights[idx] = math.copysign(min(abs(diff[idx]), 0.5), diff[idx])
        self._optimise_threshold(pairs)

    def _optimise_threshold(self, pairs: Sequence[LabeledPair]) -> None:
        best_threshold = 0.5
        best_f1 = 0.0
        for candidate in _THRESHOLDS:
            self.threshold = candidate
            f1 = self.evaluate(pairs).f1_score
            if f1 > best_f1:
                best_f1 = f1
                best_threshold = candidate
        self.threshold = best_threshold
        LOGGER.debug("threshold tuned to %.2f (F1 %.3f)", best_threshold, best_f1)

    def score(self, features: GenealogyFeatures) -> float:
        return 1.0 / (1.0 + math.exp(-float(features.vector() @ self.weights)))

    def predict(self, features: GenealogyFeatures) -> ClassificationResult:
        confidence = self.score(features)
        prediction = Relationship.DESCENT if confidence > self.threshold else Relationship.CONTACT
        return ClassificationResult(prediction, confidence, self.feature_weights())

    def evaluate(self, pairs: Sequence[LabeledPair]) -> DiscriminationMetrics:
        """Confusion-matrix metrics with descent as the positive class.

        ``roc_auc`` reports accuracy, not a ranking AUC; use
        :func:`roc_auc_rank` over :meth:`score` for the real statistic.
        """
        tp = tn = fp = fn = 0
        for pair in pairs:
            predicted = self.predict(pair.features).prediction
            if predicted is Relationship.DESCENT and pair.ground_truth is Relationship.DESCENT:
                tp += 1
            elif predicted is Relationship.CONTACT and pair.ground_truth is Relationship.CONTACT:
                tn += 1
            elif predicted is Relationship.DESCENT:
                fp += 1
            else:
                fn += 1
        precision = tp / (tp + fp) if tp + fp else 0.0
        recall = tp / (tp + fn) if tp + fn else 0.0
        f1 = 2 * precision * recall / (precision + recall) if precision + recall else 0.0
        accuracy = (tp + tn) / len(pairs) if pairs else 0.0
        return DiscriminationMetrics(
            accuracy=accuracy,
            precision=precision,
            recall=recall,
            f1_score=f1,
            roc_auc=accuracy,
            confusion_matrix=ConfusionMatrix(tp, tn, fp, fn),
        )


def roc_auc_rank(scores: Sequence[float], labels: Sequence[bool]) -> float:
    """Mann-Whitney AUC: probability a positive outranks a negative (ties count half)."""
    positives = [s for s, y in zip(scores, labels) if y]
    negatives = [s for s, y in zip(scores, labels) if not y]
    if not positives or not negatives:
        return math.nan
    wins = 0.0
    for p in positives:
        for q in negatives:
            if p > q:
                wins += 1.0
            elif p == q:
                wins += 0.5
    return wins / (len(positives) * len(negatives))


def raw_cosine_similarity(
    embeddings_a: Sequence[Sequence[float]], embeddings_b: Sequence[Sequence[float]]
) -> float:
    """Mean cosine similarity over every cross pair; zero-norm pairs count as 0."""
    a = np.asarray(embeddings_a, dtype=np.float64)
    b = np.asarray(embeddings_b, dtype=np.float64)
    if a.size == 0 or b.size == 0:
        return 0.0
    a_norms = np.linalg.norm(a, axis=1)
    b_norms = np.linalg.norm(b, axis=1)
    denom = np.outer(a_norms, b_norms)
    dots = a @ b.T
    sims = np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)
    return float(sims.mean())


def lexical_overlap(samples_a: Sequence[GlossedSample], samples_b: Sequence[GlossedSample]) -> float:
    """Jaccard overlap of lower-cased gloss words."""
    words_a = {w for s in samples_a if s.gloss for w in s.gloss.lower().split()}
    words_b = {w for s in samples_b if s.gloss for w in s.gloss.lower().split()}
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


ACCEPTED_GENEALOGY_PAIRS: Tuple[Dict[str, Any], ...] = (
    # Romance
    {"source": "Latin", "target": "Modern French", "family": "Romance", "divergence_years": 1500},
    {"source": "Latin", "target": "Romanian", "family": "Romance", "divergence_years": 1700},
    {"source": "Latin", "target": "Spanish", "family": "Romance", "divergence_years": 1500},
    {"source": "Latin", "target": "Italian", "family": "Romance", "divergence_years": 1400},
    {"source": "Latin", "target": "Portuguese", "family": "Romance", "divergence_years": 1500},
    {"source": "Old French", "target": "Modern French", "family": "Romance", "divergence_years": 600},
    # Germanic
    {"source": "Old English", "target": "Middle English", "family": "Germanic", "divergence_years": 400},
    {"source": "Middle English", "target": "Modern English", "family": "Germanic", "divergence_years": 500},
    {"source": "Old High German", "target": "Modern German", "family": "Germanic", "divergence_years": 1000},
    {"source": "Old Norse", "target": "Icelandic", "family": "Germanic", "divergence_years": 800},
    {"source": "Old Norse", "target": "Norwegian", "family": "Germanic", "divergence_years": 800},
    # Slavic
    {"source": "Old Church Slavonic", "target": "Modern Russian", "family": "Slavic", "divergence_years": 1000},
    {"source": "Old Church Slavonic", "target": "Bulgarian", "family": "Slavic", "divergence_years": 1000},
    {"source": "Old Church Slavonic", "target": "Serbian", "family": "Slavic", "divergence_years": 1000},
    {"source": "Old East Slavic", "target": "Ukrainian", "family": "Slavic", "divergence_years": 700},
    # Hellenic
    {"source": "Ancient Greek", "target": "Koine Greek", "family": "Hellenic", "divergence_years": 500},
    {"source": "Koine Greek", "target": "Modern Greek", "family": "Hellenic", "divergence_years": 1500},
    {"source": "Ancient Greek", "target": "Modern Greek", "family": "Hellenic", "divergence_years": 2500},
    # Semitic
    {"source": "Classical Arabic", "target": "Modern Standard Arabic", "family": "Semitic", "divergence_years": 1400},
    {"source": "Biblical Hebrew", "target": "Modern Hebrew", "family": "Semitic", "divergence_years": 2500},
    # Dravidian
    {"source": "Old Tamil", "target": "Modern Tamil", "family": "Dravidian", "divergence_years": 2000},
    {"source": "Old Tamil", "target": "Middle Tamil", "family": "Dravidian", "divergence_years": 1000},
    {"source": "Middle Tamil", "target": "Modern Tamil", "family": "Dravidian", "divergence_years": 800},
    # Sinitic
    {"source": "Ancient Chinese", "target": "Middle Chinese", "family": "Sinitic", "divergence_years": 1500},
    {"source": "Middle Chinese", "target": "Modern Chinese", "family": "Sinitic", "divergence_years": 1000},
    {"source": "Ancient Chinese", "target": "Modern Chinese", "family": "Sinitic", "divergence_years": 2500},
    # Indo-Iranian
    {"source": "Vedic Sanskrit", "target": "Classical Sanskrit", "family": "Indo-Aryan", "divergence_years": 1000},
    {"source": "Old Persian", "target": "Middle Persian", "family": "Iranian", "divergence_years": 800},
)

CONTACT_PAIRS: Tuple[Dict[str, Any], ...] = (
    {"source": "Norman French", "target": "Middle English", "contact_type": "superstrate"},
    {"source": "Arabic", "target": "Spanish", "contact_type": "superstrate"},
    {"source": "Arabic", "target": "Persian", "contact_type": "superstrate"},
    {"source": "Sanskrit", "target": "Old Tamil", "contact_type": "adstrate"},
    {"source": "Chinese", "target": "Japanese", "contact_type": "adstrate"},
    {"source": "Chinese", "target": "Korean", "contact_type": "adstrate"},
    {"source": "Chinese", "target": "Vietnamese", "contact_type": "adstrate"},
    {"source": "Greek", "target": "Albanian", "contact_type": "sprachbund"},
    {"source": "Bulgarian", "target": "Romanian", "contact_type": "sprachbund"},
    {"source": "Turkish", "target": "Greek", "contact_type": "sprachbund"},
)


@dataclass(frozen=True)
class PairOutcome:
    source: str
    target: str
    ground_truth: Relationship
    prediction: Relationship
    confidence: float

    @property
    def correct(self) -> bool:
        return self.prediction is self.ground_truth


@dataclass(frozen=True)
class GenealogyEvaluation:
    metrics: DiscriminationMetrics
    physics_f1: float
    raw_cosine_f1: Optional[float]
    lexical_overlap_f1: Optional[float]
    roc_auc_rank: float
    pairs: Tuple[PairOutcome, ...]
    failures: Tuple[str, ...] = ()


def _best_threshold_f1(scores: Sequence[float], labels: Sequence[bool]) -> float:
    """Best F1 of ``score >= t`` over every observed score used as ``t``."""
    best = 0.0
    for threshold in sorted(set(scores)):
        tp = sum(1 for s, y in zip(scores, labels) if s >= threshold and y)
        fp = sum(1 for s, y in zip(scores, labels) if s >= threshold and not y)
        fn = sum(1 for s, y in zip(scores, labels) if s < threshold and y)
        if tp == 0:
            continue
        precision = tp / (tp + fp)
        recall = tp / (tp + fn)
        best = max(best, 2 * precision * recall / (precision + recall))
    return best


def _baseline_f1(runs: Sequence[Mapping[str, Any]], key: str, labels: Sequence[bool]) -> Optional[float]:
    if not runs or any(key not in run for run in runs):
        return None
    return _best_threshold_f1([float(run[key]) for run in runs], labels)


async def run_genealogy_evaluation(
    run_pair_fn: Callable[[str, str], Awaitable[Mapping[str, Any]]],
    *,
    descent_pairs: Sequence[Mapping[str, Any]] = ACCEPTED_GENEALOGY_PAIRS,
    contact_pairs: Sequence[Mapping[str, Any]] = CONTACT_PAIRS,
) -> GenealogyEvaluation:
    """Train and score the discriminator on accepted descent and contact pairs.

    ``run_pair_fn(source, target)`` returns the run mapping read by
    :func:`extract_genealogy_features`.  When every run also carries
    ``raw_cosine`` or ``lexical_overlap`` scores, the matching baseline F1
    is computed with its best single threshold; otherwise it is ``None``.
    A pair whose run raises is logged and left out.
    """
    labelled: List[Tuple[LabeledPair, Mapping[str, Any]]] = []
    failures: List[str] = []
    plan = [(pair, Relationship.DESCENT, pair.get("family", "unknown")) for pair in descent_pairs]
    plan += [(pair, Relationship.CONTACT, pair.get("contact_type", "contact")) for pair in contact_pairs]

    for pair, relationship, family in plan:
        source, target = pair["source"], pair["target"]
        try:
            run = await run_pair_fn(source, target)
        except Exception as exc:  # noqa: BLE001 - one failed pair must not abort the evaluation
            LOGGER.warning("failed to process %s->%s: %s", source, target, exc)
            failures.append(f"{source}->{target}")
            continue
        features = extract_genealogy_features(run, f"{source}->{target}", family, relationship)
        labelled.append((LabeledPair(source, target, features, relationship), run))

    pairs = [item[0] for item in labelled]
    runs = [item[1] for item in labelled]
    discriminator = GenealogyDiscriminator()
    discriminator.train(pairs)
    metrics = discriminator.evaluate(pairs)

    outcomes = []
    for pair in pairs:
        result = discriminator.predict(pair.features)
        outcomes.append(
            PairOutcome(pair.source_language, pair.target_language, pair.ground_truth, result.prediction, result.confidence)
        )

    labels = [pair.ground_truth is Relationship.DESCENT for pair in pairs]
    LOGGER.info("genealogy evaluation complete: F1 %.3f over %d pairs", metrics.f1_score, len(pairs))
    return GenealogyEvaluation(
        metrics=metrics,
        physics_f1=metrics.f1_score,
        raw_cosine_f1=_baseline_f1(runs, "raw_cosine", labels),
        lexical_overlap_f1=_baseline_f1(runs, "lexical_overlap", labels),
        roc_auc_rank=roc_auc_rank([o.confidence for o in outcomes], labels),
        pairs=tuple(outcomes),
        failures=tuple(failures),
    )
