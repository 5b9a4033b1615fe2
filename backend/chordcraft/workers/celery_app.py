from celery import Celery
from chordcraft.core.config import settings

celery = Celery(
    "chordcraft",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["chordcraft.workers.tasks"],
)

celery.conf.update(
    task_routes={
        "chordcraft.workers.tasks.process_job": {"queue": "audio"},
    },
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # One job holds a worker slot for its whole run
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)
