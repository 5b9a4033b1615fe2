from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

import pydantic

from chordcraft.core.config import Settings, settings
from chordcraft.core.errors import (
    AnalysisError,
    CacheError,
    JobNotFoundError,
    PipelineError,
    ValidationError,
)
from chordcraft.schemas import (
    AudioAnalysis,
    ChordDetection,
    Job,
    JobInfo,
    JobSource,
    JobStatus,
    ProcessingResult,
    SongMetadata,
    VideoMetadata,
)
from chordcraft.services.acquisition.download import DownloadConfig, download_audio, resolve_strategies
from chordcraft.services.acquisition.upload import file_extension, take_upload, validate_upload
from chordcraft.services.acquisition.youtube import fetch_metadata, require_video_id, watch_url
from chordcraft.services.analysis import summarize_audio
from chordcraft.services.audio import (
    audio_info,
    extract_sample,
    ffmpeg_to_wav_mono,
    load_wav,
    measure_duration,
    sample_offset,
)
from chordcraft.services.chords.chord_vocabulary import spell_chord_label
from chordcraft.services.chords.extract import detect_chords
from chordcraft.services.grid.beats import estimate_tempo
from chordcraft.services.guitar import generate_tablature
from chordcraft.services.jobs.cache import ResultCache
from chordcraft.services.jobs.store import JobStore, now_iso
from chordcraft.services.storage.local import LocalStorage
from chordcraft.services.theory.key import estimate_key, key_uses_flats

_LOG = logging.getLogger(__name__)

T = TypeVar("T")
Dispatch = Callable[[str], None]

UNKNOWN_ARTIST = "Unknown Artist"

# current_step -> (status, progress %, estimated remaining seconds)
STEPS: dict[str, tuple[JobStatus, int, int]] = {
    "queued": ("queued", 0, 120),
    "metadata_extraction": ("downloading", 10, 90),
    "downloading_audio": ("downloading", 20, 80),
    "file_intake": ("downloading", 10, 60),
    "audio_conversion": ("converting", 40, 60),
    "sample_extraction": ("sampling", 50, 45),
    "audio_analysis": ("analyzing", 60, 35),
    "chord_detection": ("analyzing", 75, 25),
    "tempo_detection": ("analyzing", 85, 15),
    "key_detection": ("analyzing", 90, 10),
    "tab_generation": ("tab-generation", 95, 5),
    "completion": ("completed", 100, 0),
}

_STATUS_ORDER: dict[str, int] = {
    "queued": 0,
    "downloading": 1,
    "converting": 2,
    "sampling": 3,
    "analyzing": 4,
    "tab-generation": 5,
    "completed": 6,
    "error": 6,
}

TERMINAL_STATUSES = ("completed", "error")


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def _song_metadata(job: Job, video: VideoMetadata | None, song_duration: float) -> SongMetadata:
    # Duration always comes from the decoded audio, never from the source.
    if video is not None:
        return SongMetadata(
            title=video.title,
            artist=video.artist,
            duration=round(song_duration, 3),
            video_url=watch_url(video.video_id),
            video_id=video.video_id,
            thumbnail=video.thumbnail,
        )
    name = job.source.original_name or Path(job.source.local_path or "audio").name
    return SongMetadata(title=Path(name).stem or "Untitled", artist=UNKNOWN_ARTIST, duration=round(song_duration, 3))


class PipelineOrchestrator:
    """
    Runs jobs through acquisition, normalization, analysis and tablature,
    and is the only writer of job records.

    Stages run sequentially inside a job. Jobs are handed to ``dispatch``
    (thread pool or Celery) and proceed independently of each other.
    """

    def __init__(
        self,
        *,
        config: Settings | None = None,
        storage: LocalStorage | None = None,
        cache: ResultCache | None = None,
        dispatch: Dispatch | None = None,
        download_runners: dict | None = None,
        metadata_tiers: list | None = None,
    ):
        self.config = config or settings
        self.storage = storage or LocalStorage(self.config.DATA_DIR)
        self.store = JobStore(self.storage)
        if cache is None and self.config.RESULT_CACHE_ENABLED and self.config.REDIS_URL:
            cache = ResultCache(self.config.REDIS_URL, ttl_seconds=self.config.RESULT_CACHE_TTL_SEC)
        self.cache = cache
        self._dispatch = dispatch or self._default_dispatch
        self._download_runners = download_runners
        self._metadata_tiers = metadata_tiers
        self._executor: ThreadPoolExecutor | None = None
        self._executor_lock = threading.Lock()

    # ---- submission ----

    def submit_youtube_job(self, youtube_url: str, preferences: Optional[Dict[str, Any]] = None) -> Job:
        video_id = require_video_id(youtube_url)
        source = JobSource(origin="url", url=youtube_url.strip(), video_id=video_id)
        return self._enqueue(source, preferences)

    def submit_file_job(
        self,
        local_path: str | Path,
        original_name: str | None,
        preferences: Optional[Dict[str, Any]] = None,
        *,
        content_type: str | None = None,
        consume: bool = False,
    ) -> Job:
        path = Path(local_path)
        try:
            validate_upload(
                path,
                original_name,
                content_type=content_type,
                allowed=self.config.allowed_formats,
                max_bytes=self.config.max_upload_bytes,
            )
        except ValidationError:
            # A rejected upload we own must not linger on disk.
            if consume:
                path.unlink(missing_ok=True)
            raise

        source = JobSource(
            origin="file",
            local_path=str(path.resolve()),
            original_name=original_name or path.name,
            content_type=content_type,
            consume=consume,
        )
        return self._enqueue(source, preferences)

    def _enqueue(self, source: JobSource, preferences: Optional[Dict[str, Any]]) -> Job:
        try:
            self.store.purge_expired(self.config.JOB_RETENTION_SEC)
        except OSError as exc:
            _LOG.warning("Job retention purge failed: %s", exc)

        ts = now_iso()
        job = Job(
            job_id=uuid.uuid4().hex,
            source=source,
            preferences=dict(preferences or {}),
            status="queued",
            current_step="queued",
            progress_percentage=0,
            estimated_remaining_seconds=STEPS["queued"][2],
            created_at=ts,
            updated_at=ts,
        )
        self.store.create(job)
        _LOG.info("Job %s queued (%s source)", job.job_id, source.origin)
        self._dispatch(job.job_id)
        return job

    def _default_dispatch(self, job_id: str) -> None:
        if self.config.CELERY_ENABLED:
            from chordcraft.workers.tasks import process_job

            process_job.delay(job_id)
            return
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=max(1, int(self.config.WORKER_THREADS)),
                    thread_name_prefix="chordcraft-job",
                )
        self._executor.submit(self._run_quietly, job_id)

    def _run_quietly(self, job_id: str) -> None:
        try:
            self.run_job(job_id)
        except JobNotFoundError as exc:
            _LOG.warning("%s", exc)
        except Exception:
            _LOG.exception("Job %s crashed outside the pipeline", job_id)

    # ---- queries ----

    def get_job(self, job_id: str) -> Job | None:
        return self.store.get(job_id)

    def get_job_status(self, job_id: str) -> JobInfo | None:
        job = self.store.get(job_id)
        if job is None:
            return None
        return JobInfo(
            job_id=job.job_id,
            status=job.status,
            current_step=job.current_step,
            progress_percentage=job.progress_percentage,
            estimated_remaining_seconds=job.estimated_remaining_seconds,
            error=job.error,
            failed_step=job.failed_step,
            updated_at=job.updated_at,
        )

    def get_job_result(self, job_id: str) -> ProcessingResult | None:
        if self.cache is not None:
            try:
                cached = self.cache.get(job_id)
            except CacheError as exc:
                _LOG.warning("Result cache read failed for job %s: %s", job_id, exc)
                cached = None
            if cached is not None:
                try:
                    return ProcessingResult.model_validate(cached)
                except pydantic.ValidationError as exc:
                    _LOG.warning("Ignoring malformed cached result for job %s: %s", job_id, exc)
        return self.store.load_result(job_id)

    # ---- execution ----

    def run_job(self, job_id: str) -> ProcessingResult | None:
        """
        Drive one job to a terminal state. Returns the result, or None when
        the job ended in error. Scratch files are removed on both outcomes.
        """
        job = self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        if is_terminal(job.status):
            _LOG.info("Job %s already %s, not running again", job_id, job.status)
            return self.store.load_result(job_id) if job.status == "completed" else None

        work = self.storage.work_dir(job_id)
        try:
            result = self._execute(job, work)
        except Exception as exc:
            self._cleanup(job_id)
            self._fail(job, exc)
            return None

        self._cache_result(job_id, result)
        self._advance(job, "completion")
        return result

    def _execute(self, job: Job, work: Path) -> ProcessingResult:
        cfg = self.config
        source = job.source
        video: VideoMetadata | None = None

        if source.origin == "url":
            video_id = source.video_id or require_video_id(source.url or "")
            self._advance(job, "metadata_extraction")
            video = fetch_metadata(
                video_id,
                api_key=cfg.YOUTUBE_API_KEY,
                timeout=cfg.METADATA_TIMEOUT_SEC,
                tiers=self._metadata_tiers,
            )
            self._advance(job, "downloading_audio")
            raw = download_audio(
                video_id,
                work,
                resolve_strategies(cfg.download_strategies),
                config=DownloadConfig(
                    timeout_sec=cfg.DOWNLOAD_TIMEOUT_SEC,
                    socket_timeout_sec=cfg.DOWNLOAD_SOCKET_TIMEOUT_SEC,
                    ytdlp_binary=cfg.YTDLP_BINARY,
                    cookies_file=cfg.YTDLP_COOKIES_FILE,
                ),
                runners=self._download_runners,
            )
        else:
            self._advance(job, "file_intake")
            ext = file_extension(source.original_name or source.local_path)
            raw = take_upload(source.local_path or "", work, ext, consume=source.consume)

        self._advance(job, "audio_conversion")
        normalized = ffmpeg_to_wav_mono(
            raw,
            work / "normalized.wav",
            sample_rate=cfg.SAMPLE_RATE,
            binary=cfg.FFMPEG_BINARY,
            timeout=cfg.FFMPEG_TIMEOUT_SEC,
        )
        song_duration = measure_duration(normalized)

        self._advance(job, "sample_extraction")
        offset = sample_offset(song_duration, cfg.SAMPLE_DURATION_SEC, cfg.SAMPLE_MAX_OFFSET_SEC)
        sample = extract_sample(
            normalized,
            work / "sample.wav",
            offset=offset,
            duration=cfg.SAMPLE_DURATION_SEC,
            sample_rate=cfg.SAMPLE_RATE,
            binary=cfg.FFMPEG_BINARY,
            timeout=cfg.FFMPEG_TIMEOUT_SEC,
        )
        y, sr = load_wav(sample)
        info = audio_info(normalized)
        _LOG.info(
            "Job %s: song %.1fs, sample %.1fs at offset %.1fs",
            job.job_id, song_duration, len(y) / float(sr), offset,
        )

        self._advance(job, "audio_analysis")
        analysis: AudioAnalysis | None = self._absorb(
            job,
            lambda: summarize_audio(
                y,
                sr,
                song_duration=song_duration,
                channels=info["channels"],
                bit_depth=info["bit_depth"],
            ),
            None,
        )

        self._advance(job, "chord_detection")
        chords: list[ChordDetection] = self._absorb(
            job,
            lambda: detect_chords(
                y,
                sr,
                frame_size=cfg.CHROMA_FRAME_SIZE,
                hop_length=cfg.CHROMA_HOP_LENGTH,
                fmin=cfg.CHROMA_MIN_FREQ,
                fmax=cfg.CHROMA_MAX_FREQ,
                similarity_threshold=cfg.SEGMENT_SIMILARITY_THRESHOLD,
                min_segment_frames=cfg.MIN_SEGMENT_FRAMES,
                confidence_threshold=cfg.CHORD_CONFIDENCE_THRESHOLD,
            ),
            [],
        )

        self._advance(job, "tempo_detection")
        tempo = estimate_tempo(y, sr)

        self._advance(job, "key_detection")
        key = estimate_key(y, sr)
        if key_uses_flats(key):
            chords = [c.model_copy(update={"chord": spell_chord_label(c.chord, True)}) for c in chords]

        self._advance(job, "tab_generation")
        tablature = generate_tablature(chords, tuning_name=cfg.GUITAR_TUNING)

        result = ProcessingResult(
            job_id=job.job_id,
            metadata=_song_metadata(job, video, song_duration),
            analysis=analysis,
            chords=chords,
            tempo=tempo,
            key=key,
            tablature=tablature,
            processed_at=now_iso(),
            user_preferences=dict(job.preferences),
        )
        self._cleanup(job.job_id)
        self.store.save_result(job.job_id, result)
        return result

    def _absorb(self, job: Job, stage: Callable[[], T], default: T) -> T:
        try:
            return stage()
        except AnalysisError as exc:
            _LOG.warning("Job %s: %s failed, continuing with default: %s", job.job_id, job.current_step, exc)
            return default

    def _cache_result(self, job_id: str, result: ProcessingResult) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set(job_id, result.model_dump())
        except CacheError as exc:
            _LOG.warning("Result cache write failed for job %s: %s", job_id, exc)

    def _cleanup(self, job_id: str) -> None:
        self.storage.remove_tree(self.storage.work_path(job_id))

    # ---- state transitions ----

    def _advance(self, job: Job, step: str) -> None:
        if is_terminal(job.status):
            return
        status, progress, eta = STEPS[step]
        if _STATUS_ORDER[status] >= _STATUS_ORDER[job.status]:
            job.status = status
        job.current_step = step
        job.progress_percentage = max(job.progress_percentage, progress)
        job.estimated_remaining_seconds = eta
        job.updated_at = now_iso()
        if status == "completed":
            job.completed_at = job.updated_at
        self.store.save(job)
        _LOG.info("Job %s: %s (%s, %d%%)", job.job_id, step, job.status, job.progress_percentage)

    def _fail(self, job: Job, exc: BaseException) -> None:
        if is_terminal(job.status):
            return
        if isinstance(exc, PipelineError):
            message = str(exc)
        else:
            message = f"Unexpected error during {job.current_step}: {exc}"
        _LOG.exception("Job %s failed at %s: %s", job.job_id, job.current_step, message)
        job.status = "error"
        job.error = message
        job.failed_step = job.current_step
        job.estimated_remaining_seconds = 0
        job.updated_at = now_iso()
        job.completed_at = job.updated_at
        self.store.save(job)


_ORCHESTRATOR: PipelineOrchestrator | None = None
_ORCHESTRATOR_LOCK = threading.Lock()


def get_orchestrator() -> PipelineOrchestrator:
    global _ORCHESTRATOR
    with _ORCHESTRATOR_LOCK:
        if _ORCHESTRATOR is None:
            _ORCHESTRATOR = PipelineOrchestrator()
        return _ORCHESTRATOR
