from __future__ import annotations

import logging
from typing import List

import numpy as np

from chordcraft.core.errors import AnalysisError
from chordcraft.schemas import ChordDetection
from chordcraft.services.chords.chroma import compute_chromagram
from chordcraft.services.chords.segment import Segment, segment_chromagram
from chordcraft.services.chords.template import match_template

_LOG = logging.getLogger(__name__)


def label_segments(segments: List[Segment]) -> List[ChordDetection]:
    out: List[ChordDetection] = []
    for seg in segments:
        label, conf = match_template(seg.chroma)
        out.append(
            ChordDetection(
                chord=label,
                start_time=float(seg.start),
                duration=float(seg.end - seg.start),
                confidence=float(min(1.0, max(0.0, conf))),
            )
        )
    return out


def filter_detections(chords: List[ChordDetection], threshold: float = 0.4) -> List[ChordDetection]:
    """Keep detections with confidence strictly above the threshold."""
    return [c for c in chords if c.confidence > float(threshold)]


def merge_consecutive(chords: List[ChordDetection]) -> List[ChordDetection]:
    """
    Collapse runs of consecutive detections sharing a label into one,
    spanning first start to last end with the mean confidence of the run.
    Idempotent: the output never has two neighbours with the same label.
    """
    if not chords:
        return []

    merged: List[ChordDetection] = []
    run = [chords[0]]
    for c in chords[1:]:
        if c.chord == run[-1].chord:
            run.append(c)
            continue
        merged.append(_collapse(run))
        run = [c]
    merged.append(_collapse(run))
    return merged


def _collapse(run: List[ChordDetection]) -> ChordDetection:
    if len(run) == 1:
        return run[0]
    start = float(run[0].start_time)
    end = float(run[-1].start_time + run[-1].duration)
    conf = float(np.mean([c.confidence for c in run]))
    return ChordDetection(chord=run[0].chord, start_time=start, duration=end - start, confidence=conf)


def detect_chords(
    y: np.ndarray,
    sr: int,
    *,
    frame_size: int = 4096,
    hop_length: int = 2048,
    fmin: float = 80.0,
    fmax: float = 1000.0,
    similarity_threshold: float = 0.7,
    min_segment_frames: int = 4,
    confidence_threshold: float = 0.4,
) -> List[ChordDetection]:
    """
    Chromagram -> segmentation -> template matching -> threshold -> merge.
    Raises AnalysisError for input it cannot analyse.
    """
    arr = np.asarray(y, dtype=np.float32)
    if arr.ndim != 1:
        raise AnalysisError(f"Chord detection expects mono audio, got shape {arr.shape}")
    if sr <= 0:
        raise AnalysisError(f"Invalid sample rate: {sr}")
    if frame_size < 2 or hop_length < 1:
        raise AnalysisError(f"Invalid framing: frame_size={frame_size} hop_length={hop_length}")
    if not np.all(np.isfinite(arr)):
        raise AnalysisError("Audio contains non-finite samples")

    chromagram = compute_chromagram(
        arr,
        int(sr),
        frame_size=int(frame_size),
        hop_length=int(hop_length),
        fmin=float(fmin),
        fmax=float(fmax),
    )
    segments = segment_chromagram(
        chromagram,
        similarity_threshold=float(similarity_threshold),
        min_frames=int(min_segment_frames),
    )
    raw = label_segments(segments)
    kept = filter_detections(raw, confidence_threshold)
    merged = merge_consecutive(kept)

    _LOG.info(
        "Chord detection: %d frames, %d segments, %d above %.2f, %d after merge",
        len(chromagram), len(segments), len(kept), confidence_threshold, len(merged),
    )
    return merged
