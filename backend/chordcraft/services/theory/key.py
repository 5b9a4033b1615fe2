from __future__ import annotations

import logging
from typing import Literal

import librosa
import numpy as np

from chordcraft.schemas import KeyEstimate
from chordcraft.services.chords.chord_vocabulary import NOTE_NAMES_SHARP, NOTE_TO_PC

_LOG = logging.getLogger(__name__)

Mode = Literal["major", "minor"]

# Krumhansl-Kessler key profiles, tonic at index 0.
_MAJOR_PROFILE = np.asarray([6.35, 2.23, 3.48, 2.33, 4.38, 4.09, 2.52, 5.19, 2.39, 3.66, 2.29, 2.88])
_MINOR_PROFILE = np.asarray([6.33, 2.68, 3.52, 5.38, 2.60, 3.53, 2.54, 4.75, 3.98, 2.69, 3.34, 3.17])

_CHROMA_HOP = 2048


def _key_name_and_fifths(pc: int, mode: Mode) -> tuple[str, int]:
    pc = int(pc) % 12

    # Only include musically sensible key signatures within [-7, 7].
    if mode == "major":
        variants: dict[int, list[tuple[str, int]]] = {
            0: [("C", 0)],
            1: [("Db", -5), ("C#", 7)],
            2: [("D", 2)],
            3: [("Eb", -3)],
            4: [("E", 4)],
            5: [("F", -1)],
            6: [("Gb", -6), ("F#", 6)],
            7: [("G", 1)],
            8: [("Ab", -4)],
            9: [("A", 3)],
            10: [("Bb", -2)],
            11: [("B", 5)],
        }
    else:
        variants = {
            9: [("A", 0)],
            4: [("E", 1)],
            11: [("B", 2)],
            6: [("F#", 3)],
            1: [("C#", 4)],
            8: [("G#", 5)],
            3: [("Eb", -6), ("D#", 6)],
            10: [("Bb", -5), ("A#", 7)],
            2: [("D", -1)],
            7: [("G", -2)],
            0: [("C", -3)],
            5: [("F", -4)],
        }

    opts = variants.get(pc, [(NOTE_NAMES_SHARP[pc], 0)])
    # Prefer fewer accidentals; if tie, prefer flats (more common enharmonics).
    tonic, fifths = sorted(opts, key=lambda it: (abs(it[1]), 0 if it[1] < 0 else 1))[0]
    return tonic, int(fifths)


def key_label(pc: int, mode: Mode) -> str:
    tonic, _ = _key_name_and_fifths(pc, mode)
    return f"{tonic}{'m' if mode == 'minor' else ''}"


def related_keys(pc: int, mode: Mode) -> list[str]:
    """Relative, dominant and subdominant keys."""
    pc = int(pc) % 12
    if mode == "major":
        relative = key_label(pc + 9, "minor")
    else:
        relative = key_label(pc + 3, "major")
    return [relative, key_label(pc + 7, mode), key_label(pc + 5, mode)]


def key_uses_flats(key: KeyEstimate) -> bool:
    pc = NOTE_TO_PC.get(key.key)
    if pc is None or key.confidence <= 0.0:
        return False
    _tonic, fifths = _key_name_and_fifths(pc, key.scale)
    return fifths < 0


def pitch_class_profile(y: np.ndarray, sr: int) -> np.ndarray:
    chroma = librosa.feature.chroma_cqt(y=y, sr=sr, hop_length=_CHROMA_HOP)
    return np.asarray(np.mean(chroma, axis=1), dtype=np.float64)


def key_from_profile(profile: np.ndarray) -> tuple[int, Mode, float] | None:
    """Best (tonic pc, mode, correlation) over the 24 rotated key profiles."""
    profile = np.asarray(profile, dtype=np.float64).reshape(-1)
    if profile.shape[0] != 12 or not np.all(np.isfinite(profile)) or float(np.std(profile)) == 0.0:
        return None

    best: tuple[int, Mode, float] | None = None
    for mode, base in (("major", _MAJOR_PROFILE), ("minor", _MINOR_PROFILE)):
        for tonic in range(12):
            r = float(np.corrcoef(profile, np.roll(base, tonic))[0, 1])
            if not np.isfinite(r):
                continue
            if best is None or r > best[2]:
                best = (tonic, mode, r)  # type: ignore[assignment]
    return best


def estimate_key(y: np.ndarray, sr: int) -> KeyEstimate:
    """
    Global key by Krumhansl-Schmuckler profile correlation.
    Never raises; returns a zero-confidence C major when nothing can be said.
    """
    try:
        arr = np.asarray(y, dtype=np.float32).reshape(-1)
        if arr.size == 0 or not np.any(arr):
            return KeyEstimate()
        best = key_from_profile(pitch_class_profile(arr, int(sr)))
    except Exception as exc:  # noqa: BLE001
        _LOG.warning("Key detection failed: %s", exc)
        return KeyEstimate()

    if best is None:
        return KeyEstimate()

    tonic_pc, mode, corr = best
    tonic, _fifths = _key_name_and_fifths(tonic_pc, mode)
    return KeyEstimate(
        key=tonic,
        scale=mode,
        confidence=float(min(1.0, max(0.0, corr))),
        related_keys=related_keys(tonic_pc, mode),
    )
