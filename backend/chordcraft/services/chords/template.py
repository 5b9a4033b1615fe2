from __future__ import annotations
import numpy as np
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Sequence, Tuple

NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

# Canonical pattern per quality, rooted at C. Order is the tie-break order.
QUALITY_PATTERNS: dict[str, Tuple[int, ...]] = {
    "": (1, 0, 0, 0, 1, 0, 0, 1, 0, 0, 0, 0),      # major
    "m": (1, 0, 0, 1, 0, 0, 0, 1, 0, 0, 0, 0),     # minor
    "7": (1, 0, 0, 0, 1, 0, 0, 1, 0, 0, 1, 0),     # dominant 7th
    "maj7": (1, 0, 0, 0, 1, 0, 0, 1, 0, 0, 0, 1),
    "m7": (1, 0, 0, 1, 0, 0, 0, 1, 0, 0, 1, 0),
    "dim": (1, 0, 0, 1, 0, 0, 1, 0, 0, 0, 0, 0),
    "aug": (1, 0, 0, 0, 1, 0, 0, 0, 1, 0, 0, 0),
    "sus4": (1, 0, 0, 0, 0, 1, 0, 1, 0, 0, 0, 0),
    "sus2": (1, 0, 1, 0, 0, 0, 0, 1, 0, 0, 0, 0),
}


@dataclass(frozen=True)
class ChordTemplate:
    label: str
    root: int
    quality: str
    pattern: Tuple[int, ...]

    @property
    def vector(self) -> np.ndarray:
        return np.asarray(self.pattern, dtype=np.float32)


def rotate(pattern: Sequence[int], steps: int) -> Tuple[int, ...]:
    """
    Transpose a 12-element pitch-class pattern up by `steps` semitones.
    result[i] == pattern[(i - steps) mod 12]
    """
    return tuple(int(v) for v in np.roll(np.asarray(pattern), int(steps) % 12))


def chord_label(root: int, quality: str) -> str:
    return f"{NOTE_NAMES[int(root) % 12]}{quality}"


@lru_cache(maxsize=1)
def build_chord_templates() -> Tuple[ChordTemplate, ...]:
    """12 roots x 9 qualities, derived by rotating the canonical patterns."""
    out: List[ChordTemplate] = []
    for root in range(12):
        for quality, base in QUALITY_PATTERNS.items():
            out.append(ChordTemplate(label=chord_label(root, quality), root=root, quality=quality, pattern=rotate(base, root)))
    return tuple(out)


@lru_cache(maxsize=1)
def _template_matrix() -> Tuple[List[str], np.ndarray]:
    templates = build_chord_templates()
    labels = [t.label for t in templates]
    T = np.stack([t.vector for t in templates], axis=0).astype(np.float64)
    T /= np.linalg.norm(T, axis=1, keepdims=True)
    return labels, T


def cosine_similarity(a: np.ndarray | Sequence[float], b: np.ndarray | Sequence[float]) -> float:
    """(a.b)/(|a||b|); 0.0 when either vector is all zeros."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    na = float(np.linalg.norm(a))
    nb = float(np.linalg.norm(b))
    if na == 0.0 or nb == 0.0:
        return 0.0
    return float(np.dot(a, b) / (na * nb))


def _scores(chroma: np.ndarray) -> np.ndarray:
    _labels, T = _template_matrix()
    v = np.asarray(chroma, dtype=np.float64).reshape(-1)
    n = float(np.linalg.norm(v))
    if v.shape[0] != 12 or n == 0.0 or not np.isfinite(n):
        return np.zeros(T.shape[0], dtype=np.float64)
    return np.clip(T @ (v / n), 0.0, 1.0)


def match_template(chroma: np.ndarray | Sequence[float]) -> Tuple[str, float]:
    """
    Best-matching chord label and its cosine similarity.
    Returns ("N", 0.0) for a silent (all-zero) vector.
    """
    labels, _T = _template_matrix()
    scores = _scores(np.asarray(chroma))
    if not np.any(scores > 0.0):
        return "N", 0.0
    # argmax keeps the first of equal scores, i.e. template order
    best = int(np.argmax(scores))
    return labels[best], float(scores[best])


def rank_chords(chroma: np.ndarray | Sequence[float], top_n: int = 5) -> List[Tuple[str, float]]:
    labels, _T = _template_matrix()
    scores = _scores(np.asarray(chroma))
    order = np.argsort(-scores, kind="stable")[: max(0, int(top_n))]
    return [(labels[int(i)], float(scores[int(i)])) for i in order]
