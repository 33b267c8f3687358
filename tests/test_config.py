from __future__ import annotations

import logging

import pytest

from coherence_physics.config import PHYSICS_THRESHOLD_PRESETS, PhysicsSettings, get_thresholds
from coherence_physics.events import CollectingSink, DiagnosticEvent, EventKind, emit, logging_sink


def test_threshold_presets() -> None:
    assert get_thresholds("Balanced") == PHYSICS_THRESHOLD_PRESETS["balanced"]
    assert get_thresholds("monitor").kappa_threshold == 1.0
    with pytest.raises(ValueError, match="Unknown physics mode"):
        get_thresholds("lenient")


def test_settings_validation_and_serialisation() -> None:
    settings = PhysicsSettings(mode="strict", min_valid_vectors=10)
    payload = settings.to_dict()
    assert payload["mode"] == "strict"
    assert payload["thresholds"]["kappa_threshold"] == 0.15
    with pytest.raises(ValueError):
        PhysicsSettings(max_lag=0)
    with pytest.raises(ValueError):
        PhysicsSettings(min_valid_vectors=-1)


def test_collecting_sink_filters_by_kind() -> None:
    sink = CollectingSink()
    emit(sink, EventKind.DECAY_FIT, "run-1", value=1)
    emit(sink, EventKind.ASYMMETRY, "run-1")
    assert sink.kinds() == [EventKind.DECAY_FIT, EventKind.ASYMMETRY]
    [event] = sink.of_kind(EventKind.DECAY_FIT)
    assert event.to_dict() == {"kind": "decay_fit", "run_id": "run-1", "value": 1}


def test_logging_sink_warns_on_skipped_physics(caplog) -> None:
    with caplog.at_level(logging.DEBUG, logger="coherence_physics.events"):
        logging_sink(DiagnosticEvent(EventKind.PHYSICS_SKIPPED, "r", {"reason": "empty"}))
        emit(None, EventKind.COHERENCE_CURVES, "r", curves=[])
    levels = [record.levelno for record in caplog.records]
    assert levels == [logging.WARNING, logging.DEBUG]
    assert "physics_skipped" in caplog.records[0].getMessage()
