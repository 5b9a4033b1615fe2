"""Redis-backed result cache.

Results are stored as JSON under ``chordcraft:result:<job_id>`` with a TTL.
Every failure surfaces as ``CacheError`` so the caller decides whether to
absorb it; the pipeline always does.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis

from chordcraft.core.errors import CacheError

_LOG = logging.getLogger(__name__)

_NS = "chordcraft:result:"
_DEFAULT_TTL_SECONDS = 3600


def _key(job_id: str) -> str:
    return f"{_NS}{job_id}"


class ResultCache:
    """TTL-bound cache of completed job results.

    Args:
        redis_url: Redis connection URL.
        ttl_seconds: Lifetime of every entry.
        client: Pre-built client (tests inject a fake here).
    """

    def __init__(
        self,
        redis_url: str | None = None,
        ttl_seconds: int = _DEFAULT_TTL_SECONDS,
        *,
        client: Any = None,
    ) -> None:
        self._ttl = int(ttl_seconds)
        self._client = client
        if self._client is None and redis_url:
            # from_url is lazy: nothing connects until the first command.
            self._client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_timeout=2.0,
                socket_connect_timeout=2.0,
            )

    @property
    def ttl(self) -> int:
        return self._ttl

    def set(self, job_id: str, payload: dict[str, Any]) -> None:
        if self._client is None:
            raise CacheError("Result cache is not configured")
        try:
            self._client.setex(_key(job_id), self._ttl, json.dumps(payload, ensure_ascii=False))
        except (redis.RedisError, OSError, TypeError, ValueError) as exc:
            raise CacheError(f"Cache set failed for job {job_id}: {exc}") from exc
        _LOG.debug("Cached result for job %s (ttl=%ss)", job_id, self._ttl)

    def get(self, job_id: str) -> dict[str, Any] | None:
        if self._client is None:
            raise CacheError("Result cache is not configured")
        try:
            raw = self._client.get(_key(job_id))
        except (redis.RedisError, OSError) as exc:
            raise CacheError(f"Cache get failed for job {job_id}: {exc}") from exc
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise CacheError(f"Corrupt cache entry for job {job_id}: {exc}") from exc
        return data if isinstance(data, dict) else None

    def delete(self, job_id: str) -> None:
        if self._client is None:
            return
        try:
            self._client.delete(_key(job_id))
        except (redis.RedisError, OSError) as exc:
            raise CacheError(f"Cache delete failed for job {job_id}: {exc}") from exc
