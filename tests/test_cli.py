from __future__ import annotations

import json

import pytest

from coherence_physics.cli import main
from coherence_physics.hierarchical import NEAR_STABLE_LABEL, STABLE_LABEL


def _write_samples(path, count: int = 8, repeat: bool = False, **extra):
    samples = []
    for i in range(count):
        n = 0 if repeat else i
        samples.append(
            {"original": f"sentence number {n} about rivers", "gloss": f"sentence-NOM {n} river-PL", **extra}
        )
    path.write_text(json.dumps(samples), encoding="utf-8")
    return path


def test_classify_lambda_keeps_decimal_digits(capsys) -> None:
    assert main(["classify-lambda", "9.99e-16"]) == 0
    assert capsys.readouterr().out.strip() == STABLE_LABEL
    assert main(["classify-lambda", "1.0000000000000000001e-15"]) == 0
    assert capsys.readouterr().out.strip() == NEAR_STABLE_LABEL


def test_classify_lambda_rejects_garbage() -> None:
    with pytest.raises(SystemExit):
        main(["classify-lambda", "fast"])


def test_analyse_writes_reports(tmp_path, capsys) -> None:
    # Repeated lines embed identically, so the run computes regardless of hash geometry.
    samples = _write_samples(tmp_path / "samples.json", repeat=True)
    json_path = tmp_path / "report.json"
    csv_path = tmp_path / "report.csv"
    code = main(
        [
            "analyse",
            str(samples),
            "--language",
            "Testish",
            "--embedding",
            "hash",
            "--min-valid",
            "5",
            "--json",
            str(json_path),
            "--csv",
            str(csv_path),
        ]
    )
    out = capsys.readouterr().out
    assert code == 0
    assert "Status:   COMPUTED" in out
    assert f"wrote {json_path}" in out
    payload = json.loads(json_path.read_text(encoding="utf-8"))
    assert payload["language"] == "Testish"
    assert payload["sample_size"] == 8
    assert csv_path.read_text(encoding="utf-8").startswith("language,sample_size,physics_status")


def test_analyse_below_threshold_returns_nonzero(tmp_path, capsys) -> None:
    samples = _write_samples(tmp_path / "samples.json", count=3)
    assert main(["analyse", str(samples), "--embedding", "hash"]) == 1
    out = capsys.readouterr().out
    assert "Status:   BELOW_THRESHOLD" in out
    assert "Forward coherence:  n/a" in out


def test_analyse_rejects_non_list_input(tmp_path) -> None:
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"original": "x"}), encoding="utf-8")
    with pytest.raises(SystemExit):
        main(["analyse", str(path), "--embedding", "hash"])


def test_sanity_command(capsys) -> None:
    assert main(["sanity", "--embedding", "hash"]) == 0
    out = capsys.readouterr().out
    assert "Constant Sequence: PASS" in out
    assert "All sanity tests passed." in out


def test_hcp_command(tmp_path, capsys) -> None:
    samples = _write_samples(tmp_path / "samples.json", count=4, language="Ket", family="Yeniseian")
    output = tmp_path / "hcp.md"
    assert main(["hcp", str(samples), "--embedding", "hash", "--output", str(output)]) == 0
    text = output.read_text(encoding="utf-8")
    assert "| Ket | Yeniseian |" in text
    assert f"wrote {output}" in capsys.readouterr().out


def test_hcp_requires_language(tmp_path) -> None:
    samples = _write_samples(tmp_path / "samples.json", count=2)
    with pytest.raises(SystemExit):
        main(["hcp", str(samples), "--embedding", "hash"])
