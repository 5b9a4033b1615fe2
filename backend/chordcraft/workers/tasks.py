from __future__ import annotations

from celery.utils.log import get_task_logger

from chordcraft.core.errors import JobNotFoundError
from chordcraft.services.pipeline import get_orchestrator
from chordcraft.workers.celery_app import celery

logger = get_task_logger(__name__)


@celery.task(name="chordcraft.workers.tasks.process_job")
def process_job(job_id: str) -> dict:
    try:
        result = get_orchestrator().run_job(job_id)
    except JobNotFoundError as e:
        logger.warning("Job %s vanished before it ran: %s", job_id, e)
        return {"ok": False, "error": str(e)}

    if result is None:
        job = get_orchestrator().get_job(job_id)
        return {"ok": False, "error": job.error if job else None}
    return {"ok": True, "chords": len(result.chords)}
