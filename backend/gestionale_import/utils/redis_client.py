"""Redis client construction shared by the job store, upload staging and health checks."""

from __future__ import annotations

import ssl
from typing import Any

from redis import Redis

DEFAULT_SOCKET_TIMEOUT = 5


def create_redis_client(url: str, **kwargs: Any) -> Redis:
    """Create a Redis client, relaxing certificate checks for TLS URLs.

    Managed providers (Upstash and similar) serve ``rediss://`` with
    certificates the default store does not know.

    Args:
        url: Redis connection URL (redis:// or rediss://)
        **kwargs: Extra client arguments (decode_responses, socket_connect_timeout, ...)
    """
    if ".upstash.io" in url and url.startswith("redis://"):
        url = url.replace("redis://", "rediss://", 1)

    kwargs.setdefault("socket_connect_timeout", DEFAULT_SOCKET_TIMEOUT)
    kwargs.setdefault("socket_timeout", DEFAULT_SOCKET_TIMEOUT)
    if url.startswith("rediss://"):
        kwargs.setdefault("ssl_cert_reqs", ssl.CERT_NONE)

    return Redis.from_url(url, **kwargs)
