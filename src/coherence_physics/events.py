"""Structured diagnostic events emitted during analysis.

Analysis code never prints.  It hands ``DiagnosticEvent`` records to an
``EventSink`` callable supplied by the caller; the default sink forwards
each event to the module logger so applications control verbosity through
standard ``logging`` configuration.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

__all__ = [
    "EventKind",
    "DiagnosticEvent",
    "EventSink",
    "logging_sink",
    "CollectingSink",
    "emit",
]

LOGGER = logging.getLogger(__name__)


class EventKind(str, Enum):
    EMBEDDING_INPUTS = "embedding_inputs"
    EMBEDDING_SOURCES = "embedding_sources"
    EMBEDDING_DIAGNOSTICS = "embedding_diagnostics"
    PHYSICS_SKIPPED = "physics_skipped"
    DEGENERATE_INPUT = "degenerate_input"
    COHERENCE_CURVES = "coherence_curves"
    DECAY_FIT = "decay_fit"
    ASYMMETRY = "asymmetry"
    CLAUSE_STRUCTURE = "clause_structure"
    STABILITY_POINT = "stability_point"
    LAB_NOTEBOOK_ENTRY = "lab_notebook_entry"


_WARNING_KINDS = {EventKind.PHYSICS_SKIPPED}


@dataclass(frozen=True)
class DiagnosticEvent:
    kind: EventKind
    run_id: str
    payload: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "run_id": self.run_id, **dict(self.payload)}


EventSink = Callable[[DiagnosticEvent], None]


def logging_sink(event: DiagnosticEvent) -> None:
    level = logging.WARNING if event.kind in _WARNING_KINDS else logging.DEBUG
    if not LOGGER.isEnabledFor(level):
        return
    LOGGER.log(level, "%s %s", event.kind.value, json.dumps(event.to_dict(), default=str))


class CollectingSink:
    """Sink that keeps every event in memory, mostly for tests."""

    def __init__(self) -> None:
        self.events: List[DiagnosticEvent] = []

    def __call__(self, event: DiagnosticEvent) -> None:
        self.events.append(event)

    def kinds(self) -> List[EventKind]:
        return [event.kind for event in self.events]

    def of_kind(self, kind: EventKind) -> List[DiagnosticEvent]:
        return [event for event in self.events if event.kind is kind]


def emit(sink: Optional[EventSink], kind: EventKind, run_id: str, **payload: Any) -> None:
    (sink or logging_sink)(DiagnosticEvent(kind, run_id, payload))
