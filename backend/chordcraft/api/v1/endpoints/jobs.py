from __future__ import annotations
from fastapi import APIRouter, UploadFile, File, Form, HTTPException
from pathlib import Path
import json
import uuid

from chordcraft.core.errors import ValidationError
from chordcraft.schemas import JobCreateResponse, JobInfo, ProcessingResult, YouTubeJobRequest
from chordcraft.services.acquisition.upload import validate_format
from chordcraft.services.pipeline import get_orchestrator

router = APIRouter()

def _parse_preferences(raw: str | None) -> dict:
    if not raw:
        return {}
    try:
        prefs = json.loads(raw)
    except ValueError:
        raise HTTPException(400, "user_preferences must be a JSON object")
    if not isinstance(prefs, dict):
        raise HTTPException(400, "user_preferences must be a JSON object")
    return prefs

@router.post("/youtube", response_model=JobCreateResponse)
def create_youtube_job(req: YouTubeJobRequest):
    try:
        job = get_orchestrator().submit_youtube_job(req.youtube_url, req.user_preferences)
    except ValidationError as e:
        raise HTTPException(e.status_code, str(e))
    return JobCreateResponse(job_id=job.job_id, status=job.status)

@router.post("/upload", response_model=JobCreateResponse)
async def create_upload_job(
    file: UploadFile = File(...),
    user_preferences: str | None = Form(None),
):
    orchestrator = get_orchestrator()
    cfg = orchestrator.config
    prefs = _parse_preferences(user_preferences)
    try:
        ext = validate_format(file.filename, file.content_type, cfg.allowed_formats)
    except ValidationError as e:
        await file.close()
        raise HTTPException(e.status_code, str(e))

    raw_path = orchestrator.storage.uploads_dir() / f"{uuid.uuid4().hex}.{ext}"
    max_bytes = cfg.max_upload_bytes
    bytes_written = 0
    chunk_size = 1024 * 1024
    try:
        with raw_path.open("wb") as out:
            while True:
                chunk = await file.read(chunk_size)
                if not chunk:
                    break
                bytes_written += len(chunk)
                if bytes_written > max_bytes:
                    raise HTTPException(413, f"File exceeds {cfg.MAX_UPLOAD_MB} MB limit")
                out.write(chunk)
    except HTTPException:
        raw_path.unlink(missing_ok=True)
        raise
    finally:
        await file.close()

    try:
        job = orchestrator.submit_file_job(
            raw_path,
            Path(file.filename or raw_path.name).name,
            prefs,
            content_type=file.content_type,
            consume=True,
        )
    except ValidationError as e:
        raise HTTPException(e.status_code, str(e))
    return JobCreateResponse(job_id=job.job_id, status=job.status)

@router.get("/{job_id}", response_model=JobInfo)
def get_job(job_id: str):
    info = get_orchestrator().get_job_status(job_id)
    if info is None:
        raise HTTPException(404, "Job not found")
    return info

@router.get("/{job_id}/result", response_model=ProcessingResult)
def get_result(job_id: str):
    orchestrator = get_orchestrator()
    if orchestrator.get_job(job_id) is None:
        raise HTTPException(404, "Job not found")
    result = orchestrator.get_job_result(job_id)
    if result is None:
        raise HTTPException(404, "Result not ready")
    return result
