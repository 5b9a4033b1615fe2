from __future__ import annotations

from dataclasses import dataclass
from typing import List

import numpy as np

from chordcraft.services.chords.chroma import Chromagram
from chordcraft.services.chords.template import cosine_similarity


@dataclass
class Segment:
    start: float
    end: float
    chroma: np.ndarray  # averaged, [12]
    frame_count: int


def segment_chromagram(
    chromagram: Chromagram,
    *,
    similarity_threshold: float = 0.7,
    min_frames: int = 4,
) -> List[Segment]:
    """
    Split frames into runs of similar harmonic content.

    The open segment keeps a running sum; a frame closes it when its cosine
    similarity to the running average is below the threshold and the segment
    already holds at least `min_frames` frames. The final partial segment is
    always emitted and ends at the sample duration, so segments are contiguous
    and cover [0, duration).
    """
    frames = chromagram.frames
    n = int(frames.shape[0])
    if n == 0:
        return []

    step = float(chromagram.hop_length) / float(chromagram.sample_rate)
    segs: List[Segment] = []

    acc = np.zeros(12, dtype=np.float64)
    count = 0
    start_frame = 0
    for i in range(n):
        chroma = frames[i]
        if count > 0:
            avg = acc / count
            if count >= int(min_frames) and cosine_similarity(avg, chroma) < float(similarity_threshold):
                segs.append(Segment(start=start_frame * step, end=i * step, chroma=avg, frame_count=count))
                acc = np.zeros(12, dtype=np.float64)
                count = 0
                start_frame = i
        acc += chroma
        count += 1

    end = float(chromagram.duration) if chromagram.duration > 0 else n * step
    end = max(end, start_frame * step)
    segs.append(Segment(start=start_frame * step, end=end, chroma=acc / count, frame_count=count))
    return segs
