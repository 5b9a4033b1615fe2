from pathlib import Path
import json
import logging
import os
import shutil

_LOG = logging.getLogger(__name__)

class LocalStorage:
    def __init__(self, base_dir: str):
        self.base = Path(base_dir).resolve()
        self.base.mkdir(parents=True, exist_ok=True)

    def job_dir(self, job_id: str, *, create: bool = True) -> Path:
        p = self.base / "jobs" / job_id
        if create:
            p.mkdir(parents=True, exist_ok=True)
        return p

    def jobs_root(self) -> Path:
        return self.base / "jobs"

    def work_dir(self, job_id: str) -> Path:
        """Scratch directory owned by one job; removed when the job ends."""
        p = self.base / "tmp" / job_id
        p.mkdir(parents=True, exist_ok=True)
        return p

    def work_path(self, job_id: str) -> Path:
        return self.base / "tmp" / job_id

    def uploads_dir(self) -> Path:
        p = self.base / "uploads"
        p.mkdir(parents=True, exist_ok=True)
        return p

    def write_json(self, path: Path, data: dict) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".part")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, path)

    def read_json(self, path: Path) -> dict:
        return json.loads(path.read_text(encoding="utf-8"))

    def remove_tree(self, path: Path) -> None:
        # Idempotent: a missing directory is fine.
        if not path.exists():
            return
        shutil.rmtree(path, ignore_errors=True)
        if path.exists():
            _LOG.warning("Could not fully remove %s", path)
        else:
            _LOG.info("Removed %s", path)
