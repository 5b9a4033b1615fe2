from __future__ import annotations

from dataclasses import dataclass

import numpy as np

# Frames are transformed in blocks to bound memory on long inputs.
_BLOCK_FRAMES = 256


@dataclass(frozen=True)
class Chromagram:
    """
    frames: [n_frames, 12], each row sums to 1 (or is all zeros for silence)
    times:  [n_frames] frame start times in seconds
    """
    frames: np.ndarray
    times: np.ndarray
    sample_rate: int
    frame_size: int
    hop_length: int
    duration: float

    def __len__(self) -> int:
        return int(self.frames.shape[0])


def hamming_window(n: int) -> np.ndarray:
    """w[i] = 0.54 - 0.46 * cos(2*pi*i / (n - 1))"""
    if n <= 1:
        return np.ones(max(n, 0), dtype=np.float64)
    i = np.arange(n, dtype=np.float64)
    return 0.54 - 0.46 * np.cos(2.0 * np.pi * i / float(n - 1))


def frame_signal(y: np.ndarray, frame_size: int, hop_length: int) -> np.ndarray:
    """
    [n_frames, frame_size] strided view of y. A non-empty signal shorter than
    one frame is zero-padded to a single frame.
    """
    y = np.asarray(y, dtype=np.float32).reshape(-1)
    if y.size == 0:
        return np.zeros((0, int(frame_size)), dtype=np.float32)
    if y.size < frame_size:
        y = np.pad(y, (0, int(frame_size) - y.size))
    view = np.lib.stride_tricks.sliding_window_view(y, int(frame_size))
    return view[:: int(hop_length)]


def pitch_class_map(sample_rate: int, frame_size: int, fmin: float = 80.0, fmax: float = 1000.0) -> np.ndarray:
    """
    [frame_size // 2, 12] one-hot matrix sending each spectrum bin in
    [fmin, fmax] to round(69 + 12*log2(f/440)) mod 12. Other bins map nowhere.
    """
    n_bins = int(frame_size) // 2
    freqs = np.arange(n_bins, dtype=np.float64) * float(sample_rate) / float(frame_size)
    M = np.zeros((n_bins, 12), dtype=np.float64)
    in_band = (freqs >= float(fmin)) & (freqs <= float(fmax)) & (freqs > 0.0)
    idx = np.nonzero(in_band)[0]
    if idx.size == 0:
        return M
    midi = 69.0 + 12.0 * np.log2(freqs[idx] / 440.0)
    # round half up
    pcs = np.mod(np.floor(midi + 0.5).astype(np.int64), 12)
    M[idx, pcs] = 1.0
    return M


def magnitude_spectrum(frames: np.ndarray, window: np.ndarray) -> np.ndarray:
    """|DFT| of each windowed frame, first N/2 bins."""
    n = frames.shape[1]
    spec = np.fft.rfft(frames.astype(np.float64) * window[None, :], axis=1)
    return np.abs(spec[:, : n // 2])


def normalize_rows(chroma: np.ndarray) -> np.ndarray:
    sums = np.sum(chroma, axis=1, keepdims=True)
    out = np.zeros_like(chroma)
    nz = sums[:, 0] > 0.0
    out[nz] = chroma[nz] / sums[nz]
    return out


def compute_chromagram(
    y: np.ndarray,
    sr: int,
    *,
    frame_size: int = 4096,
    hop_length: int = 2048,
    fmin: float = 80.0,
    fmax: float = 1000.0,
) -> Chromagram:
    y = np.asarray(y, dtype=np.float32).reshape(-1)
    frames = frame_signal(y, frame_size, hop_length)
    window = hamming_window(frame_size)
    pc_map = pitch_class_map(sr, frame_size, fmin, fmax)

    n_frames = frames.shape[0]
    chroma = np.zeros((n_frames, 12), dtype=np.float64)
    for a in range(0, n_frames, _BLOCK_FRAMES):
        b = min(a + _BLOCK_FRAMES, n_frames)
        mag = magnitude_spectrum(frames[a:b], window)
        chroma[a:b] = mag @ pc_map

    times = np.arange(n_frames, dtype=np.float64) * float(hop_length) / float(sr)
    return Chromagram(
        frames=normalize_rows(chroma),
        times=times,
        sample_rate=int(sr),
        frame_size=int(frame_size),
        hop_length=int(hop_length),
        duration=float(y.size) / float(sr) if sr else 0.0,
    )
