"""Run reports: strict JSON artefacts, CSV rows and plots."""

from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .physics import PhysicsResult, PhysicsStatus
from .stability import NCritResult, stability_curve_data

__all__ = [
    "REPORT_VERSION",
    "CSV_COLUMNS",
    "RunReport",
    "generate_run_report",
    "report_payload",
    "export_report_json",
    "format_csv_value",
    "report_row",
    "reports_frame",
    "export_report_csv",
    "write_report",
    "plot_coherence_curves",
    "plot_stability_curve",
]

REPORT_VERSION = "1.0"

CSV_COLUMNS = (
    "language",
    "sample_size",
    "physics_status",
    "avg_norm",
    "avg_pairwise_sim",
    "valid_vectors",
    "forward_coherence",
    "backward_coherence",
    "kappa",
    "coherence_radius",
    "fit_quality",
    "shannon_entropy",
    "mutual_info",
    "kl_divergence",
    "avg_clauses",
    "intra_clause_coh",
    "inter_clause_coh",
    "monoclausal_dominant",
    "morphology",
    "generated_at",
)


@dataclass(frozen=True)
class RunReport:
    run_id: str
    generated_at: str
    result: PhysicsResult
    morphology: str = "unknown"
    version: str = REPORT_VERSION
    extra: Mapping[str, Any] = field(default_factory=dict)


def generate_run_report(
    run_id: str,
    result: PhysicsResult,
    morphology: str = "unknown",
    *,
    generated_at: Optional[str] = None,
) -> RunReport:
    return RunReport(
        run_id=run_id,
        generated_at=generated_at or datetime.now(timezone.utc).isoformat(),
        result=result,
        morphology=morphology,
    )


def _radius(lam: float) -> float:
    if math.isnan(lam):
        return math.nan
    return 1.0 / lam if lam > 0 else math.inf


def _legacy_decay(result: PhysicsResult) -> Dict[str, Any]:
    lam = result.lambda_estimate
    return {
        "lambda": lam,
        "coherence_radius": _radius(lam),
        "fit_quality": math.nan,
        "fitted_c0": math.nan,
        "coherence_at_lags": [],
        "method": "legacy",
    }


def report_payload(report: RunReport) -> Dict[str, Any]:
    """Nested report structure with raw floats (NaN and infinities intact)."""
    result = report.result
    full = result.to_dict()
    diagnostics = result.diagnostics
    return {
        "meta": {
            "version": report.version,
            "generated_at": report.generated_at,
            "run_id": report.run_id,
        },
        "language": result.language,
        "sample_size": result.sample_count,
        "physics_status": result.status.value,
        "physics_status_reason": result.reason,
        "embedding": {
            "avg_vector_norm": diagnostics.avg_norm,
            "avg_pairwise_similarity": diagnostics.avg_pairwise_similarity,
            "valid_vectors": diagnostics.valid_vectors,
            "total_vectors": diagnostics.total_vectors,
            "input_sources": full["embedding_inputs"],
        },
        "coherence": {
            "curves": full["coherence_curves"],
            "forward_mean": result.forward_coherence,
            "backward_mean": result.backward_coherence,
        },
        "decay": full["decay_analysis"] or _legacy_decay(result),
        "asymmetry": full["asymmetry_analysis"],
        "entropy": full["entropy"],
        "clause": full["clause_structure"],
        "typology": {"morphological_type": report.morphology},
        "validity": full["validity"],
        **dict(report.extra),
    }


def _coerce_json(value: Any) -> Any:
    if isinstance(value, np.floating):
        value = float(value)
    if isinstance(value, np.integer):
        value = int(value)
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return _coerce_json(asdict(value))
    if isinstance(value, dict):
        return {k: _coerce_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_coerce_json(v) for v in value]
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
    return value


def export_report_json(report: RunReport) -> str:
    """Strict JSON: NaN becomes ``null`` and infinities the strings ``"Infinity"``/``"-Infinity"``."""
    return json.dumps(_coerce_json(report_payload(report)), indent=2, ensure_ascii=False, allow_nan=False)


def format_csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (float, np.floating)):
        value = float(value)
        if math.isnan(value):
            return ""
        if math.isinf(value):
            return "Inf"
        return f"{value:.4f}"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def report_row(report: RunReport) -> Dict[str, str]:
    """One CSV row; the ``kappa`` column carries the decay rate."""
    result = report.result
    diagnostics = result.diagnostics
    decay = result.decay
    entropy = result.entropy
    clause = result.clause_structure
    lam = decay.lambda_ if decay is not None else result.lambda_estimate
    radius = decay.coherence_radius if decay is not None else _radius(lam)
    values = (
        result.language,
        result.sample_count,
        result.status,
        diagnostics.avg_norm,
        diagnostics.avg_pairwise_similarity,
        diagnostics.valid_vectors,
        result.forward_coherence,
        result.backward_coherence,
        lam,
        radius,
        decay.fit_quality if decay is not None else math.nan,
        entropy.shannon_entropy,
        entropy.mutual_information,
        entropy.kl_divergence,
        clause.avg_clauses_per_segment if clause else None,
        clause.intra_clause_coherence if clause else None,
        clause.inter_clause_coherence if clause else None,
        clause.monoclausal_dominant if clause else None,
        report.morphology,
        report.generated_at,
    )
    return {column: format_csv_value(value) for column, value in zip(CSV_COLUMNS, values)}


def reports_frame(reports: Sequence[RunReport]) -> pd.DataFrame:
    """Cross-language comparison table, one formatted row per report."""
    return pd.DataFrame([report_row(r) for r in reports], columns=list(CSV_COLUMNS))


def export_report_csv(report: RunReport) -> str:
    """Header line plus one data line, without a trailing newline."""
    return reports_frame([report]).to_csv(index=False, lineterminator="\n").rstrip("\n")


def write_report(report: RunReport, *, json_path: Optional[Path] = None, csv_path: Optional[Path] = None) -> List[Path]:
    written: List[Path] = []
    if json_path is not None:
        json_path.parent.mkdir(parents=True, exist_ok=True)
        json_path.write_text(export_report_json(report) + "\n", encoding="utf-8")
        written.append(json_path)
    if csv_path is not None:
        csv_path.parent.mkdir(parents=True, exist_ok=True)
        csv_path.write_text(export_report_csv(report) + "\n", encoding="utf-8")
        written.append(csv_path)
    return written


def plot_coherence_curves(result: PhysicsResult, path: Path) -> bool:
    """Plot forward/backward coherence by lag.

    Lags without a measured value are left out rather than drawn as zero,
    and uncomputed results are not plotted at all.  Returns whether a file
    was written.
    """
    if result.status not in (PhysicsStatus.COMPUTED, PhysicsStatus.PARTIAL):
        return False
    measured = [c for c in result.curves if math.isfinite(c.forward)]
    if not measured:
        return False
    lags = [c.lag for c in measured]
    plt.figure(figsize=(8, 4))
    plt.plot(lags, [c.forward for c in measured], marker="o", color="#005f73", label="forward")
    plt.plot(lags, [c.backward for c in measured], marker="s", color="#ee9b00", label="backward")
    plt.title(f"Coherence by Lag ({result.language}, {result.status.value})")
    plt.xlabel("Lag")
    plt.ylabel("Cosine Coherence")
    plt.legend()
    plt.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(path, dpi=150)
    plt.close()
    return True


def plot_stability_curve(result: NCritResult, path: Path) -> bool:
    data = stability_curve_data(result)
    if not data["x"]:
        return False
    plt.figure(figsize=(8, 4))
    plt.plot(data["x"], data["y_lambda_cv"], marker="o", color="#0a9396", label="λ CV")
    plt.plot(data["x"], data["y_kappa_cv"], marker=".", color="#94d2bd", label="κ CV")
    plt.axhline(data["threshold"], color="#ae2012", linestyle="--", label="threshold")
    plt.axvline(data["n_crit"], color="#9b2226", alpha=0.4)
    plt.title(f"Sample Stability ({result.language})")
    plt.xlabel("Sample Size N")
    plt.ylabel("Coefficient of Variation")
    plt.legend()
    plt.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(path, dpi=150)
    plt.close()
    return True
