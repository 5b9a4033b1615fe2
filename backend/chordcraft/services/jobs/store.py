from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timezone
from pathlib import Path

from chordcraft.schemas import Job, ProcessingResult
from chordcraft.services.storage.local import LocalStorage

_LOG = logging.getLogger(__name__)

_JOB_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_valid_job_id(job_id: str) -> bool:
    return bool(_JOB_ID_RE.match(str(job_id or "")))


class JobStore:
    """
    Job records keyed by job id, one JSON file per job.

    Records live on disk so a Celery worker and the API process share them.
    Each job is written by exactly one orchestrator run, so writes never contend.
    """

    def __init__(self, storage: LocalStorage):
        self.storage = storage

    def _job_path(self, job_id: str) -> Path:
        return self.storage.job_dir(job_id, create=False) / "job.json"

    def _result_path(self, job_id: str) -> Path:
        return self.storage.job_dir(job_id, create=False) / "result.json"

    def create(self, job: Job) -> Job:
        self.storage.job_dir(job.job_id)
        self.save(job)
        return job

    def save(self, job: Job) -> None:
        self.storage.write_json(self._job_path(job.job_id), job.model_dump())

    def get(self, job_id: str) -> Job | None:
        if not is_valid_job_id(job_id):
            return None
        path = self._job_path(job_id)
        if not path.exists():
            return None
        return Job(**self.storage.read_json(path))

    def save_result(self, job_id: str, result: ProcessingResult) -> None:
        self.storage.write_json(self._result_path(job_id), result.model_dump())

    def load_result(self, job_id: str) -> ProcessingResult | None:
        if not is_valid_job_id(job_id):
            return None
        path = self._result_path(job_id)
        if not path.exists():
            return None
        return ProcessingResult(**self.storage.read_json(path))

    def purge_expired(self, max_age_sec: float) -> int:
        root = self.storage.jobs_root()
        if not root.exists():
            return 0
        cutoff = time.time() - float(max_age_sec)
        removed = 0
        for job_dir in root.iterdir():
            record = job_dir / "job.json"
            try:
                if record.exists() and record.stat().st_mtime < cutoff:
                    self.storage.remove_tree(job_dir)
                    removed += 1
            except OSError as exc:
                _LOG.warning("Failed to purge job record %s: %s", job_dir.name, exc)
        if removed:
            _LOG.info("Purged %d expired job record(s)", removed)
        return removed
