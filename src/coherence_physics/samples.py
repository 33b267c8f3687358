"""Glossed language samples and input clean-up."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Union

__all__ = ["GlossedSample", "coerce_sample", "sanitise_samples", "split_raw_text"]


@dataclass(frozen=True)
class GlossedSample:
    original: str
    gloss: Optional[str] = None
    translation: Optional[str] = None

    def field(self, name: str) -> Optional[str]:
        return {"original": self.original, "gloss": self.gloss, "translation": self.translation}[name]

    def texts(self) -> List[str]:
        return [text for text in (self.original, self.gloss, self.translation) if text]

    def to_dict(self) -> dict:
        return {"original": self.original, "gloss": self.gloss, "translation": self.translation}


SampleLike = Union[GlossedSample, Mapping[str, Any], str]


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def coerce_sample(sample: SampleLike) -> GlossedSample:
    if isinstance(sample, GlossedSample):
        return sample
    if isinstance(sample, str):
        return GlossedSample(sample)
    return GlossedSample(
        original=str(sample.get("original") or ""),
        gloss=sample.get("gloss"),
        translation=sample.get("translation"),
    )


def split_raw_text(text: str) -> List[GlossedSample]:
    """Treat pasted multi-line text as one unglossed sample per non-empty line."""
    return [GlossedSample(line.strip()) for line in text.splitlines() if line.strip()]


def sanitise_samples(samples: Iterable[SampleLike]) -> List[GlossedSample]:
    """Strip every field, blank fields become ``None`` and empty originals are dropped.

    A single sample whose original spans several lines is expanded into one
    sample per line first.
    """
    coerced = [coerce_sample(s) for s in samples]
    if len(coerced) == 1 and "\n" in coerced[0].original:
        expanded = split_raw_text(coerced[0].original)
        if expanded:
            coerced = expanded

    cleaned: List[GlossedSample] = []
    for sample in coerced:
        original = _clean(sample.original)
        if not original:
            continue
        cleaned.append(
            GlossedSample(original, _clean(sample.gloss), _clean(sample.translation))
        )
    return cleaned
