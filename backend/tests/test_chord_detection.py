import unittest

import numpy as np

from chordcraft.core.errors import AnalysisError
from chordcraft.schemas import ChordDetection
from chordcraft.services.chords.chroma import (
    compute_chromagram,
    frame_signal,
    hamming_window,
    pitch_class_map,
)
from chordcraft.services.chords.extract import (
    detect_chords,
    filter_detections,
    merge_consecutive,
)
from chordcraft.services.chords.segment import segment_chromagram

SR = 44100

E4, GS4, B4 = 329.63, 415.30, 493.88
A3, C4 = 220.0, 261.63


def _tones(freqs: list[float], seconds: float, sr: int = SR) -> np.ndarray:
    t = np.arange(int(seconds * sr), dtype=np.float64) / float(sr)
    y = sum(np.sin(2.0 * np.pi * f * t) for f in freqs)
    return (0.2 * y / len(freqs)).astype(np.float32)


class ChromagramTests(unittest.TestCase):
    def test_hamming_window_formula(self) -> None:
        np.testing.assert_allclose(hamming_window(4096), np.hamming(4096), atol=1e-12)

    def test_frame_signal_shape(self) -> None:
        y = np.zeros(10000, dtype=np.float32)
        frames = frame_signal(y, 4096, 2048)
        self.assertEqual(frames.shape, (3, 4096))
        # shorter than one frame is padded to one frame
        self.assertEqual(frame_signal(np.ones(100), 4096, 2048).shape, (1, 4096))
        self.assertEqual(frame_signal(np.zeros(0), 4096, 2048).shape, (0, 4096))

    def test_pitch_class_map_band_limits(self) -> None:
        M = pitch_class_map(SR, 4096, 80.0, 1000.0)
        self.assertEqual(M.shape, (2048, 12))
        freqs = np.arange(2048) * SR / 4096.0
        mapped = M.sum(axis=1)
        self.assertTrue(np.all(mapped[freqs < 80.0] == 0.0))
        self.assertTrue(np.all(mapped[freqs > 1000.0] == 0.0))
        self.assertTrue(np.all(mapped[(freqs >= 80.0) & (freqs <= 1000.0)] == 1.0))
        a4_bin = int(round(440.0 * 4096 / SR))
        self.assertEqual(int(np.argmax(M[a4_bin])), 9)

    def test_pure_tone_lands_on_its_pitch_class(self) -> None:
        chroma = compute_chromagram(_tones([440.0], 2.0), SR)
        self.assertGreater(len(chroma), 0)
        np.testing.assert_allclose(chroma.frames.sum(axis=1), 1.0, atol=1e-9)
        self.assertTrue(np.all(np.argmax(chroma.frames, axis=1) == 9))
        self.assertAlmostEqual(chroma.times[1] - chroma.times[0], 2048 / SR)

    def test_silence_gives_zero_rows(self) -> None:
        chroma = compute_chromagram(np.zeros(SR, dtype=np.float32), SR)
        self.assertTrue(np.all(chroma.frames == 0.0))


class SegmentationTests(unittest.TestCase):
    def _assert_covers(self, segments, duration: float) -> None:
        self.assertAlmostEqual(segments[0].start, 0.0)
        for prev, nxt in zip(segments, segments[1:]):
            self.assertAlmostEqual(prev.end, nxt.start)
        for seg in segments:
            self.assertGreater(seg.end, seg.start)
        self.assertAlmostEqual(segments[-1].end, duration)

    def test_segments_are_contiguous_and_cover_sample(self) -> None:
        # one pitch class per second: C4, F#4, A3, D#4, E4
        blocks = [261.63, 369.99, 220.0, 311.13, 329.63]
        y = np.concatenate([_tones([f], 1.0) for f in blocks])
        segments = segment_chromagram(compute_chromagram(y, SR), min_frames=4)
        self.assertGreaterEqual(len(segments), len(blocks))
        self._assert_covers(segments, 5.0)
        for prev, nxt in zip(segments, segments[1:]):
            self.assertLessEqual(prev.end, nxt.start)
        covered = sum(seg.end - seg.start for seg in segments)
        self.assertAlmostEqual(covered, 5.0)

    def test_min_frames_holds_before_a_split(self) -> None:
        y = np.concatenate([_tones([E4, GS4, B4], 4.0), _tones([A3, C4, E4], 4.0)])
        segments = segment_chromagram(compute_chromagram(y, SR), min_frames=4)
        for seg in segments[:-1]:
            self.assertGreaterEqual(seg.frame_count, 4)
        self._assert_covers(segments, 8.0)

    def test_single_frame_input(self) -> None:
        segments = segment_chromagram(compute_chromagram(_tones([440.0], 0.05), SR))
        self.assertEqual(len(segments), 1)
        self.assertAlmostEqual(segments[0].start, 0.0)


class MergeAndFilterTests(unittest.TestCase):
    def _det(self, chord: str, start: float, conf: float = 0.8, dur: float = 1.0) -> ChordDetection:
        return ChordDetection(chord=chord, start_time=start, duration=dur, confidence=conf)

    def test_filter_is_strictly_above_threshold(self) -> None:
        dets = [self._det("C", 0, 0.4), self._det("G", 1, 0.41), self._det("Am", 2, 0.1)]
        self.assertEqual([d.chord for d in filter_detections(dets, 0.4)], ["G"])

    def test_merge_collapses_runs(self) -> None:
        dets = [
            self._det("C", 0.0, 0.6),
            self._det("C", 1.0, 0.8),
            self._det("G", 2.0),
            self._det("G", 3.0),
            self._det("G", 4.0),
            self._det("Am", 5.0),
            self._det("C", 6.0),
        ]
        merged = merge_consecutive(dets)
        self.assertEqual([d.chord for d in merged], ["C", "G", "Am", "C"])
        self.assertAlmostEqual(merged[0].start_time, 0.0)
        self.assertAlmostEqual(merged[0].duration, 2.0)
        self.assertAlmostEqual(merged[0].confidence, 0.7)
        self.assertAlmostEqual(merged[1].duration, 3.0)

    def test_merge_is_idempotent(self) -> None:
        dets = [self._det(c, float(i)) for i, c in enumerate("C C G G D D D C".split())]
        once = merge_consecutive(dets)
        self.assertEqual(merge_consecutive(once), once)
        for a, b in zip(once, once[1:]):
            self.assertNotEqual(a.chord, b.chord)

    def test_merge_empty(self) -> None:
        self.assertEqual(merge_consecutive([]), [])


class DetectChordsTests(unittest.TestCase):
    def test_major_minor_major_progression(self) -> None:
        y = np.concatenate([
            _tones([E4, GS4, B4], 10.0),
            _tones([A3, C4, E4], 10.0),
            _tones([E4, GS4, B4], 10.0),
        ])
        chords = detect_chords(y, SR)

        self.assertGreaterEqual(len(chords), 2)
        labels = [c.chord for c in chords]
        self.assertEqual(labels[0], "E")
        self.assertIn("Am", labels)
        self.assertEqual(labels[-1], "E")
        for c in chords:
            self.assertGreater(c.confidence, 0.4)
            self.assertLessEqual(c.confidence, 1.0)
        for a, b in zip(chords, chords[1:]):
            self.assertNotEqual(a.chord, b.chord)
            self.assertLessEqual(a.start_time, b.start_time)

    def test_silence_yields_no_chords(self) -> None:
        self.assertEqual(detect_chords(np.zeros(5 * SR, dtype=np.float32), SR), [])

    def test_rejects_bad_input(self) -> None:
        with self.assertRaises(AnalysisError):
            detect_chords(np.zeros((2, 100), dtype=np.float32), SR)
        with self.assertRaises(AnalysisError):
            detect_chords(np.array([0.0, np.nan] * 1000, dtype=np.float32), SR)
        with self.assertRaises(AnalysisError):
            detect_chords(np.zeros(1000, dtype=np.float32), 0)


if __name__ == "__main__":
    unittest.main()
