from __future__ import annotations

import logging

import librosa
import numpy as np

from chordcraft.core.errors import AnalysisError
from chordcraft.schemas import AudioAnalysis

_LOG = logging.getLogger(__name__)


def estimate_difficulty(song_duration: float | None) -> int:
    # Longer songs tend to be more complex.
    duration = float(song_duration or 180.0)
    if duration < 120:
        return 2
    if duration < 240:
        return 3
    if duration < 360:
        return 4
    return 5


def summarize_audio(
    y: np.ndarray,
    sr: int,
    *,
    song_duration: float,
    channels: int = 1,
    bit_depth: int = 16,
) -> AudioAnalysis:
    """Loudness and spectral descriptors of the analysis sample."""
    arr = np.asarray(y, dtype=np.float32).reshape(-1)
    if arr.size == 0:
        raise AnalysisError("Cannot summarize empty audio")

    try:
        rms_level = float(np.sqrt(np.mean(np.square(arr, dtype=np.float64))))
        centroid = librosa.feature.spectral_centroid(y=arr, sr=int(sr))
        zcr = librosa.feature.zero_crossing_rate(arr)
    except Exception as exc:
        raise AnalysisError(f"Audio summary failed: {exc}") from exc

    summary = AudioAnalysis(
        duration=float(song_duration),
        sample_rate=int(sr),
        channels=int(channels),
        bit_depth=int(bit_depth),
        rms_level=rms_level,
        spectral_centroid=float(np.mean(centroid)) if centroid.size else 0.0,
        zero_crossing_rate=float(np.mean(zcr)) if zcr.size else 0.0,
        difficulty=estimate_difficulty(song_duration),
    )
    _LOG.info(
        "Audio summary: rms=%.4f centroid=%.1f zcr=%.4f difficulty=%d",
        summary.rms_level, summary.spectral_centroid, summary.zero_crossing_rate, summary.difficulty,
    )
    return summary
