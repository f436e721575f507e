"""Where import jobs live between the upload and the progress/result lookups.

Both stores expire jobs after a TTL; the in-memory store is also bounded in
size so a long-running process cannot accumulate jobs forever.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from datetime import timedelta
from functools import lru_cache
from typing import Protocol

from pydantic import ValidationError
from redis import Redis
from redis.exceptions import RedisError

from gestionale_import.core.config import Settings, get_settings
from gestionale_import.services.import_state import ImportJob
from gestionale_import.utils.redis_client import create_redis_client

logger = logging.getLogger(__name__)

JOB_PREFIX = "imports:job:"
CANCEL_PREFIX = "imports:cancel:"
DEFAULT_TTL = timedelta(hours=24)


class JobStore(Protocol):
    def save(self, job: ImportJob) -> None: ...

    def get(self, job_id: str) -> ImportJob | None: ...

    def request_cancel(self, job_id: str) -> bool: ...

    def is_cancel_requested(self, job_id: str) -> bool: ...


class MemoryJobStore:
    """Process-local store with TTL expiry and a cap on retained jobs."""

    def __init__(self, ttl: timedelta = DEFAULT_TTL, max_entries: int = 500, clock=time.monotonic):
        self._ttl = ttl.total_seconds()
        self._max_entries = max_entries
        self._clock = clock
        self._jobs: OrderedDict[str, tuple[float, ImportJob]] = OrderedDict()
        self._cancelled: set[str] = set()
        self._lock = threading.Lock()

    def _purge(self) -> None:
        now = self._clock()
        expired = [job_id for job_id, (expires_at, _) in self._jobs.items() if expires_at <= now]
        for job_id in expired:
            self._drop(job_id)
        while len(self._jobs) > self._max_entries:
            oldest = next(iter(self._jobs))
            logger.info(f"Evicting import job {oldest} from memory store")
            self._drop(oldest)

    def _drop(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)
        self._cancelled.discard(job_id)

    def save(self, job: ImportJob) -> None:
        with self._lock:
            expires_at = self._clock() + self._ttl
            self._jobs[job.id] = (expires_at, job.model_copy(deep=True))
            self._purge()

    def get(self, job_id: str) -> ImportJob | None:
        with self._lock:
            self._purge()
            entry = self._jobs.get(job_id)
            if entry is None:
                return None
            job = entry[1].model_copy(deep=True)
            job.cancel_requested = job_id in self._cancelled
            return job

    def request_cancel(self, job_id: str) -> bool:
        with self._lock:
            if job_id not in self._jobs:
                return False
            self._cancelled.add(job_id)
            return True

    def is_cancel_requested(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._cancelled

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


class RedisJobStore:
    """Jobs serialized as JSON in Redis with a TTL.

    Redis availability should not break an import: write failures are
    logged and dropped, read failures look like a missing job.
    """

    def __init__(self, client: Redis, ttl: timedelta = DEFAULT_TTL):
        self._client = client
        self._ttl = int(ttl.total_seconds())

    @staticmethod
    def _key(job_id: str) -> str:
        return f"{JOB_PREFIX}{job_id}"

    def save(self, job: ImportJob) -> None:
        try:
            self._client.set(self._key(job.id), job.model_dump_json(by_alias=True), ex=self._ttl)
        except RedisError as exc:
            logger.warning(f"Failed to persist import job {job.id} to Redis: {exc}")

    def get(self, job_id: str) -> ImportJob | None:
        try:
            raw = self._client.get(self._key(job_id))
            cancelled = bool(self._client.exists(f"{CANCEL_PREFIX}{job_id}"))
        except RedisError as exc:
            logger.warning(f"Failed to read import job {job_id} from Redis: {exc}")
            return None
        if not raw:
            return None
        try:
            job = ImportJob.model_validate_json(raw)
        except ValidationError as exc:
            logger.error(f"Corrupt import job payload for {job_id}: {exc}")
            return None
        job.cancel_requested = cancelled
        return job

    def request_cancel(self, job_id: str) -> bool:
        try:
            if not self._client.exists(self._key(job_id)):
                return False
            self._client.set(f"{CANCEL_PREFIX}{job_id}", "1", ex=self._ttl)
            return True
        except RedisError as exc:
            logger.warning(f"Failed to flag import job {job_id} for cancellation: {exc}")
            return False

    def is_cancel_requested(self, job_id: str) -> bool:
        try:
            return bool(self._client.exists(f"{CANCEL_PREFIX}{job_id}"))
        except RedisError:
            return False


def build_job_store(settings: Settings) -> JobStore:
    ttl = timedelta(seconds=settings.job_ttl_seconds)
    if settings.job_store_backend == "redis":
        client = create_redis_client(settings.redis_url, decode_responses=True)
        return RedisJobStore(client, ttl=ttl)
    return MemoryJobStore(ttl=ttl, max_entries=settings.job_store_max_entries)


@lru_cache
def get_job_store() -> JobStore:
    """Process-wide job store configured from settings."""
    return build_job_store(get_settings())
