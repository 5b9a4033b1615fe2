import os
import tempfile
import time
import unittest
import uuid
from pathlib import Path
from unittest import mock

import numpy as np
import redis
import soundfile as sf

from chordcraft.core.config import Settings
from chordcraft.core.errors import AnalysisError, ConversionError, JobNotFoundError, ValidationError
from chordcraft.services.jobs.cache import ResultCache
from chordcraft.services.pipeline import STEPS, PipelineOrchestrator

SR = 22050
_STATUS_RANK = ["queued", "downloading", "converting", "sampling", "analyzing", "tab-generation", "completed"]


def _write_progression(path: Path) -> None:
    t = np.arange(4 * SR) / float(SR)

    def chord(freqs):
        return sum(np.sin(2 * np.pi * f * t) for f in freqs) * 0.2 / len(freqs)

    y = np.concatenate([chord([329.63, 415.30, 493.88]), chord([220.0, 261.63, 329.63])])
    sf.write(str(path), y.astype(np.float32), SR, subtype="PCM_16")


def fake_convert(input_path, out_wav, **_kwargs):
    y, sr = sf.read(str(input_path), dtype="float32")
    sf.write(str(out_wav), y, sr, subtype="PCM_16")
    return out_wav


def fake_sample(wav_path, out_wav, *, offset, duration, **_kwargs):
    y, sr = sf.read(str(wav_path), dtype="float32")
    a = int(offset * sr)
    sf.write(str(out_wav), y[a:a + int(duration * sr)], sr, subtype="PCM_16")
    return out_wav


def failing_runner(video_id, dest_dir, strategy, config):
    (dest_dir / "raw.webm.part").write_bytes(b"half")
    raise RuntimeError(f"{strategy.name}: HTTP Error 403: Forbidden")


class FakeRedis:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def setex(self, key, ttl, value):
        self.data[key] = value

    def get(self, key):
        return self.data.get(key)


class DownRedis:
    def setex(self, key, ttl, value):
        raise redis.ConnectionError("connection refused")

    def get(self, key):
        raise redis.ConnectionError("connection refused")


class OrchestratorTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.config = Settings(
            DATA_DIR=str(self.tmp / "data"),
            RESULT_CACHE_ENABLED=False,
            CELERY_ENABLED=False,
            SAMPLE_DURATION_SEC=6.0,
            MAX_UPLOAD_MB=1,
        )
        self.dispatched: list[str] = []

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _orchestrator(self, **kwargs) -> PipelineOrchestrator:
        kwargs.setdefault("dispatch", self.dispatched.append)
        kwargs.setdefault("metadata_tiers", [])
        return PipelineOrchestrator(config=self.config, **kwargs)

    def _record_saves(self, orch: PipelineOrchestrator) -> list[tuple[str, int, str]]:
        seen: list[tuple[str, int, str]] = []
        original = orch.store.save

        def recording_save(job):
            seen.append((job.status, job.progress_percentage, job.current_step))
            original(job)

        orch.store.save = recording_save
        return seen

    def _audio_file(self, name: str = "My Song.wav") -> Path:
        path = self.tmp / name
        _write_progression(path)
        return path

    def _run_with_fake_ffmpeg(self, orch: PipelineOrchestrator, job_id: str):
        with mock.patch("chordcraft.services.pipeline.ffmpeg_to_wav_mono", side_effect=fake_convert), \
                mock.patch("chordcraft.services.pipeline.extract_sample", side_effect=fake_sample):
            return orch.run_job(job_id)

    def test_file_job_runs_to_completion(self) -> None:
        orch = self._orchestrator()
        src = self._audio_file()
        job = orch.submit_file_job(src, "My Song.wav", {"difficulty": "beginner"})
        self.assertEqual(self.dispatched, [job.job_id])

        status = orch.get_job_status(job.job_id)
        self.assertEqual((status.status, status.progress_percentage), ("queued", 0))

        seen = self._record_saves(orch)
        result = self._run_with_fake_ffmpeg(orch, job.job_id)

        self.assertIsNotNone(result)
        progress = [p for _s, p, _step in seen]
        self.assertEqual(progress, sorted(progress))
        ranks = [_STATUS_RANK.index(s) for s, _p, _step in seen]
        self.assertEqual(ranks, sorted(ranks))
        self.assertEqual(seen[-1][:2], ("completed", 100))
        self.assertEqual(
            [step for _s, _p, step in seen],
            ["file_intake", "audio_conversion", "sample_extraction", "audio_analysis",
             "chord_detection", "tempo_detection", "key_detection", "tab_generation", "completion"],
        )

        self.assertEqual(result.metadata.title, "My Song")
        self.assertEqual(result.metadata.artist, "Unknown Artist")
        self.assertAlmostEqual(result.metadata.duration, 8.0, places=2)
        self.assertEqual(result.user_preferences, {"difficulty": "beginner"})
        self.assertEqual(result.tablature.tuning, ["E", "A", "D", "G", "B", "E"])
        self.assertIsNotNone(result.analysis)
        for c in result.chords:
            self.assertGreater(c.confidence, 0.4)

        final = orch.get_job_status(job.job_id)
        self.assertEqual((final.status, final.progress_percentage, final.estimated_remaining_seconds), ("completed", 100, 0))
        self.assertFalse(orch.storage.work_path(job.job_id).exists())
        self.assertTrue(src.exists())
        self.assertEqual(orch.get_job_result(job.job_id), result)

    def test_all_download_strategies_failing_ends_in_error(self) -> None:
        runners = {"ytdlp_api": failing_runner, "ytdlp_cli": failing_runner}
        orch = self._orchestrator(download_runners=runners)
        job = orch.submit_youtube_job("https://youtu.be/dQw4w9WgXcQ")

        seen = self._record_saves(orch)
        self.assertIsNone(orch.run_job(job.job_id))

        info = orch.get_job_status(job.job_id)
        self.assertEqual(info.status, "error")
        self.assertEqual(info.failed_step, "downloading_audio")
        for name in self.config.download_strategies:
            self.assertIn(f"{name}: HTTP Error 403", info.error)
        self.assertNotIn("Traceback", info.error)
        self.assertFalse(orch.storage.work_path(job.job_id).exists())
        self.assertIsNone(orch.get_job_result(job.job_id))

        progress = [p for _s, p, _step in seen]
        self.assertEqual(progress, sorted(progress))
        self.assertEqual(info.progress_percentage, STEPS["downloading_audio"][1])

        # terminal exactly once
        saves = len(seen)
        self.assertIsNone(orch.run_job(job.job_id))
        self.assertEqual(len(seen), saves)

    def test_conversion_failure_is_fatal_and_cleans_up(self) -> None:
        orch = self._orchestrator()
        job = orch.submit_file_job(self._audio_file(), "My Song.wav")
        with mock.patch("chordcraft.services.pipeline.ffmpeg_to_wav_mono", side_effect=ConversionError("ffmpeg failed (exit 1)")):
            self.assertIsNone(orch.run_job(job.job_id))

        info = orch.get_job_status(job.job_id)
        self.assertEqual((info.status, info.failed_step), ("error", "audio_conversion"))
        self.assertEqual(info.error, "ffmpeg failed (exit 1)")
        self.assertFalse(orch.storage.work_path(job.job_id).exists())

    def test_analysis_error_is_absorbed(self) -> None:
        orch = self._orchestrator()
        job = orch.submit_file_job(self._audio_file(), "My Song.wav")
        with mock.patch("chordcraft.services.pipeline.detect_chords", side_effect=AnalysisError("bad chroma")):
            result = self._run_with_fake_ffmpeg(orch, job.job_id)

        self.assertIsNotNone(result)
        self.assertEqual(result.chords, [])
        self.assertEqual(result.tablature.notes, [])
        self.assertEqual(orch.get_job_status(job.job_id).status, "completed")

    def test_unexpected_stage_error_is_fatal(self) -> None:
        orch = self._orchestrator()
        job = orch.submit_file_job(self._audio_file(), "My Song.wav")
        with mock.patch("chordcraft.services.pipeline.detect_chords", side_effect=ValueError("shape mismatch")):
            self.assertIsNone(self._run_with_fake_ffmpeg(orch, job.job_id))

        info = orch.get_job_status(job.job_id)
        self.assertEqual((info.status, info.failed_step), ("error", "chord_detection"))
        self.assertIn("shape mismatch", info.error)
        self.assertFalse(orch.storage.work_path(job.job_id).exists())

    def test_cache_failure_is_absorbed(self) -> None:
        orch = self._orchestrator(cache=ResultCache(client=DownRedis()))
        job = orch.submit_file_job(self._audio_file(), "My Song.wav")
        result = self._run_with_fake_ffmpeg(orch, job.job_id)

        self.assertIsNotNone(result)
        self.assertEqual(orch.get_job_status(job.job_id).status, "completed")
        self.assertEqual(orch.get_job_result(job.job_id), result)

    def test_result_is_served_from_cache(self) -> None:
        client = FakeRedis()
        orch = self._orchestrator(cache=ResultCache(client=client))
        job = orch.submit_file_job(self._audio_file(), "My Song.wav")
        result = self._run_with_fake_ffmpeg(orch, job.job_id)

        self.assertIn(f"chordcraft:result:{job.job_id}", client.data)
        with mock.patch.object(orch.store, "load_result", side_effect=AssertionError("cache should answer")):
            self.assertEqual(orch.get_job_result(job.job_id), result)

    def test_malformed_cache_entry_falls_back_to_job_record(self) -> None:
        client = FakeRedis()
        orch = self._orchestrator(cache=ResultCache(client=client))
        job = orch.submit_file_job(self._audio_file(), "My Song.wav")
        key = f"chordcraft:result:{job.job_id}"

        client.data[key] = '{"job_id": "%s"}' % job.job_id
        with self.assertLogs("chordcraft.services.pipeline", level="WARNING"):
            self.assertIsNone(orch.get_job_result(job.job_id))

        result = self._run_with_fake_ffmpeg(orch, job.job_id)
        client.data[key] = '{"job_id": "%s"}' % job.job_id
        self.assertEqual(orch.get_job_result(job.job_id), result)

    def test_background_crash_is_logged(self) -> None:
        orch = self._orchestrator()
        with mock.patch.object(orch, "run_job", side_effect=OSError("disk full")):
            with self.assertLogs("chordcraft.services.pipeline", level="ERROR") as logs:
                orch._run_quietly("a" * 32)
        self.assertIn("disk full", "\n".join(logs.output))

    def test_invalid_url_fails_before_anything_starts(self) -> None:
        runner = mock.Mock()
        orch = self._orchestrator(download_runners={"ytdlp_api": runner, "ytdlp_cli": runner})
        with self.assertRaises(ValidationError):
            orch.submit_youtube_job("https://example.com/not-a-video")
        runner.assert_not_called()
        self.assertEqual(self.dispatched, [])
        jobs_root = orch.storage.jobs_root()
        self.assertFalse(jobs_root.exists() and any(jobs_root.iterdir()))

    def test_rejected_upload_leaves_no_files(self) -> None:
        orch = self._orchestrator()
        bad = self.tmp / "notes.txt"
        bad.write_text("hello")
        with self.assertRaises(ValidationError):
            orch.submit_file_job(bad, "notes.txt", consume=True)
        self.assertFalse(bad.exists())

        big = self.tmp / "big.wav"
        big.write_bytes(b"\0" * (2 * 1024 * 1024))
        with self.assertRaises(ValidationError) as ctx:
            orch.submit_file_job(big, "big.wav", consume=True)
        self.assertEqual(ctx.exception.status_code, 413)
        self.assertFalse(big.exists())

        self.assertEqual(self.dispatched, [])
        self.assertFalse(orch.storage.jobs_root().exists() and any(orch.storage.jobs_root().iterdir()))
        self.assertFalse((orch.storage.base / "tmp").exists() and any((orch.storage.base / "tmp").iterdir()))

    def test_unknown_jobs(self) -> None:
        orch = self._orchestrator()
        self.assertIsNone(orch.get_job_status("nope"))
        self.assertIsNone(orch.get_job_status("../../etc/passwd"))
        self.assertIsNone(orch.get_job_result(uuid.uuid4().hex))
        with self.assertRaises(JobNotFoundError):
            orch.run_job(uuid.uuid4().hex)

    def test_expired_jobs_are_purged_on_submit(self) -> None:
        orch = self._orchestrator()
        old = orch.submit_youtube_job("https://youtu.be/dQw4w9WgXcQ")
        record = orch.storage.job_dir(old.job_id, create=False) / "job.json"
        stale = time.time() - self.config.JOB_RETENTION_SEC - 60
        os.utime(record, (stale, stale))

        new = orch.submit_youtube_job("https://youtu.be/dQw4w9WgXcQ")
        self.assertIsNone(orch.get_job_status(old.job_id))
        self.assertIsNotNone(orch.get_job_status(new.job_id))


if __name__ == "__main__":
    unittest.main()
