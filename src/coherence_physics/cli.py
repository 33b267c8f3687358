"""
Command line interface for coherence physics runs.

Commands:

* ``analyse`` runs the full pipeline over a JSON list of samples and
  optionally writes the JSON report, the CSV row and a coherence plot.
* ``sanity`` runs the constant and noise corpora.
* ``hcp`` profiles hierarchical coherence per language.
* ``classify-lambda`` buckets a decay rate with decimal precision.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import math
import sys
from decimal import InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import PHYSICS_THRESHOLD_PRESETS, PROXY_MODES, PhysicsSettings
from .hierarchical import analyse_hcp_by_language, classify_sprachbund_precision, generate_hcp_report
from .physics import analyse_physics, run_sanity_tests
from .report import generate_run_report, plot_coherence_curves, write_report
from .semantic import EmbeddingConfig, SemanticEmbedder

LOGGER = logging.getLogger(__name__)


def _load_samples(path: Path) -> List[Dict[str, Any]]:
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise SystemExit(f"{path}: expected a JSON list of samples")
    return data


def _embedder(args: argparse.Namespace) -> SemanticEmbedder:
    return SemanticEmbedder(EmbeddingConfig(method=args.embedding))


def _fmt(value: float) -> str:
    return "n/a" if math.isnan(value) else f"{value:.4f}"


def cmd_analyse(args: argparse.Namespace) -> int:
    samples = _load_samples(Path(args.samples))
    settings = PhysicsSettings(
        mode=args.mode, min_valid_vectors=args.min_valid, proxy_mode=args.proxy_mode
    )
    embedder = _embedder(args)
    result = asyncio.run(
        analyse_physics(samples, embedder.as_embed_fn(), settings, language=args.language)
    )

    print(f"Language: {result.language} ({result.sample_count} samples, {embedder.backend} embeddings)")
    print(f"Status:   {result.status.value}")
    if result.reason:
        print(f"Reason:   {result.reason}")
    print(f"Forward coherence:  {_fmt(result.forward_coherence)}")
    print(f"Backward coherence: {_fmt(result.backward_coherence)}")
    print(f"Decay rate (λ):     {_fmt(result.lambda_estimate)}")
    print(f"Asymmetry (κ):      {_fmt(result.kappa_asymmetry)}")
    print(f"Passes {settings.mode} gates: {'yes' if result.passes_gates() else 'no'}")

    report = generate_run_report(result.run_id, result, morphology=args.morphology)
    written = write_report(
        report,
        json_path=Path(args.json) if args.json else None,
        csv_path=Path(args.csv) if args.csv else None,
    )
    if args.plot and plot_coherence_curves(result, Path(args.plot)):
        written.append(Path(args.plot))
    for path in written:
        print(f"wrote {path}")
    return 0 if result.computed else 1


def cmd_sanity(args: argparse.Namespace) -> int:
    embedder = _embedder(args)
    report = asyncio.run(run_sanity_tests(embedder.as_embed_fn()))
    for test in report.results:
        print(f"{test.test_name}: {'PASS' if test.passed else 'FAIL'}")
        for note in test.diagnostics:
            print(f"  {note}")
    print("All sanity tests passed." if report.passed else "Sanity tests failed.")
    return 0 if report.passed else 1


def cmd_hcp(args: argparse.Namespace) -> int:
    samples = _load_samples(Path(args.samples))
    missing = [idx for idx, sample in enumerate(samples) if "language" not in sample]
    if missing:
        raise SystemExit(f"samples without a language key at positions {missing[:10]}")
    embedder = _embedder(args)
    results = asyncio.run(analyse_hcp_by_language(samples, embedder.as_embed_fn()))
    markdown = generate_hcp_report(results, hypothesis=args.hypothesis)
    if args.output:
        Path(args.output).write_text(markdown + "\n", encoding="utf-8")
        print(f"wrote {args.output}")
    else:
        print(markdown)
    return 0


def cmd_classify_lambda(args: argparse.Namespace) -> int:
    # Keep the raw string so the decimal classifier sees every digit.
    try:
        label = classify_sprachbund_precision(args.value)
    except InvalidOperation:
        raise SystemExit(f"not a decimal number: {args.value!r}") from None
    print(label)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="coherence-physics", description="Coherence physics CLI")
    parser.add_argument("--log-level", dest="log_level", default="WARNING", help="Python logging level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_analyse = subparsers.add_parser("analyse", help="Run the physics pipeline over a samples JSON file")
    p_analyse.add_argument("samples", help="JSON list of {original, gloss?, translation?} objects")
    p_analyse.add_argument("--language", default="unknown", help="Language label for the run")
    p_analyse.add_argument("--mode", choices=sorted(PHYSICS_THRESHOLD_PRESETS), default="balanced", help="Threshold preset")
    p_analyse.add_argument("--min-valid", dest="min_valid", type=int, default=20, help="Minimum valid vectors required")
    p_analyse.add_argument("--proxy-mode", dest="proxy_mode", choices=sorted(PROXY_MODES), default="gloss", help="Which field represents a sample")
    p_analyse.add_argument("--embedding", choices=("auto", "transformer", "hash"), default="auto", help="Embedding backend")
    p_analyse.add_argument("--morphology", default="unknown", help="Morphological type recorded in the report")
    p_analyse.add_argument("--json", help="Write the JSON report to this path")
    p_analyse.add_argument("--csv", help="Write the CSV row to this path")
    p_analyse.add_argument("--plot", help="Write a coherence-by-lag plot to this path")
    p_analyse.set_defaults(func=cmd_analyse)

    p_sanity = subparsers.add_parser("sanity", help="Run the constant and noise sanity corpora")
    p_sanity.add_argument("--embedding", choices=("auto", "transformer", "hash"), default="auto", help="Embedding backend")
    p_sanity.set_defaults(func=cmd_sanity)

    p_hcp = subparsers.add_parser("hcp", help="Hierarchical coherence profile per language")
    p_hcp.add_argument("samples", help="JSON list of samples carrying a language key")
    p_hcp.add_argument("--embedding", choices=("auto", "transformer", "hash"), default="auto", help="Embedding backend")
    p_hcp.add_argument("--hypothesis", help="Hypothesis line for the report header")
    p_hcp.add_argument("--output", help="Write the markdown report to this path")
    p_hcp.set_defaults(func=cmd_hcp)

    p_lambda = subparsers.add_parser("classify-lambda", help="Classify a decay rate against precision thresholds")
    p_lambda.add_argument("value", help="Decay rate, e.g. 9.99e-16")
    p_lambda.set_defaults(func=cmd_classify_lambda)

    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
