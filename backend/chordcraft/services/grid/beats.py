from __future__ import annotations

import logging

import librosa
import numpy as np

from chordcraft.schemas import TempoEstimate

_LOG = logging.getLogger(__name__)

_HOP = 512
_MIN_BEATS = 4
# 3/4 only wins when its accent periodicity is clearly stronger than 4/4
_TRIPLE_METER_MARGIN = 1.1


def _estimate_tempo(beat_times: np.ndarray) -> float:
    if beat_times.size < 2:
        return 0.0
    diffs = np.diff(beat_times)
    diffs = diffs[np.isfinite(diffs) & (diffs > 0)]
    if diffs.size == 0:
        return 0.0
    return float(60.0 / float(np.median(diffs)))


def _beat_regularity(beat_times: np.ndarray) -> float:
    """1 - coefficient of variation of the inter-beat intervals, clamped to [0, 1]."""
    diffs = np.diff(beat_times)
    diffs = diffs[np.isfinite(diffs) & (diffs > 0)]
    if diffs.size < 2:
        return 0.0
    cv = float(np.std(diffs) / (np.mean(diffs) + 1e-9))
    return float(min(1.0, max(0.0, 1.0 - cv)))


def _infer_meter(beat_strengths: np.ndarray) -> str:
    s = np.asarray(beat_strengths, dtype=np.float64)
    if s.size < 8 or float(np.std(s)) == 0.0:
        return "4/4"
    s = s - np.mean(s)

    def _acf(lag: int) -> float:
        return float(np.dot(s[:-lag], s[lag:]) / (s.size - lag))

    if _acf(3) > _acf(4) * _TRIPLE_METER_MARGIN and _acf(3) > 0:
        return "3/4"
    return "4/4"


def estimate_tempo(y: np.ndarray, sr: int) -> TempoEstimate:
    """
    Beat tracking via librosa onset strength + dynamic programming.
    Never raises; returns 120 BPM / 4/4 with zero confidence when undetectable.
    """
    try:
        arr = np.asarray(y, dtype=np.float32).reshape(-1)
        if arr.size == 0 or not np.any(arr):
            return TempoEstimate()

        onset_env = librosa.onset.onset_strength(y=arr, sr=int(sr), hop_length=_HOP)
        _tempo, beat_frames = librosa.beat.beat_track(onset_envelope=onset_env, sr=int(sr), hop_length=_HOP)
        beat_frames = np.asarray(beat_frames, dtype=np.int64).reshape(-1)
        if beat_frames.size < _MIN_BEATS:
            return TempoEstimate()

        beat_times = librosa.frames_to_time(beat_frames, sr=int(sr), hop_length=_HOP)
        bpm = _estimate_tempo(np.asarray(beat_times, dtype=np.float64))
        if bpm <= 0.0 or not np.isfinite(bpm):
            return TempoEstimate()

        strengths = onset_env[np.clip(beat_frames, 0, onset_env.size - 1)]
        meter = _infer_meter(strengths)
        confidence = _beat_regularity(np.asarray(beat_times, dtype=np.float64))
    except Exception as exc:  # noqa: BLE001
        _LOG.warning("Tempo detection failed: %s", exc)
        return TempoEstimate()

    _LOG.info("Tempo %.1f BPM (confidence %.2f, meter %s)", bpm, confidence, meter)
    return TempoEstimate(bpm=round(float(bpm), 1), confidence=round(confidence, 3), time_signature=meter)
