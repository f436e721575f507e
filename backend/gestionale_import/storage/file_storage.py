"""Stage uploaded CSV bytes in Redis so a separate worker process can read them."""

from __future__ import annotations

import logging

from redis.exceptions import RedisError

from gestionale_import.core.config import get_settings
from gestionale_import.utils.redis_client import create_redis_client

logger = logging.getLogger(__name__)

FILE_STORAGE_PREFIX = "imports:upload:"
# Redis has practical value-size limits on managed tiers
MAX_STAGED_BYTES = 100 * 1024 * 1024


def _client():
    settings = get_settings()
    return create_redis_client(settings.redis_url, decode_responses=False)


def store_upload(job_id: str, content: bytes) -> bool:
    """Store upload content under the job id; False when it could not be staged."""
    if len(content) > MAX_STAGED_BYTES:
        logger.warning(f"Upload for job {job_id} too large for Redis staging ({len(content)} bytes)")
        return False
    settings = get_settings()
    try:
        client = _client()
        client.set(f"{FILE_STORAGE_PREFIX}{job_id}", content, ex=settings.job_ttl_seconds)
        client.close()
    except RedisError as e:
        logger.warning(f"Failed to stage upload for job {job_id} in Redis: {e}")
        return False
    logger.info(f"Staged upload for job {job_id} in Redis ({len(content)} bytes)")
    return True


def fetch_upload(job_id: str) -> bytes | None:
    """Return staged content for ``job_id``, or None if missing or unreachable."""
    try:
        client = _client()
        content = client.get(f"{FILE_STORAGE_PREFIX}{job_id}")
        client.close()
    except RedisError as e:
        logger.warning(f"Failed to read staged upload for job {job_id}: {e}")
        return None
    return content


def delete_upload(job_id: str) -> None:
    """Drop the staged content once the job has consumed it."""
    try:
        client = _client()
        client.delete(f"{FILE_STORAGE_PREFIX}{job_id}")
        client.close()
    except RedisError as e:
        logger.warning(f"Failed to delete staged upload for job {job_id}: {e}")
