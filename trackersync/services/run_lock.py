"""
Run-level lock: at most one reconciliation run at a time.

Two concurrent runs could both auto-apply conflicting mappings for the
same vehicle, so a second run is refused (RunInProgressError) rather
than queued. The memory backend serializes runs inside one process; the
redis backend serializes across API workers and CLI invocations.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

import redis.asyncio as redis

from trackersync.config import settings
from trackersync.errors import RunInProgressError

logger = logging.getLogger(__name__)

# Redis client (created on first use of the redis backend)
redis_client: redis.Redis | None = None


async def get_redis_client() -> redis.Redis:
    """Get or create Redis client."""
    global redis_client
    if redis_client is None:
        redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            password=settings.redis_password,
            decode_responses=True,
        )
    return redis_client


async def close_redis_client():
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None


class RunLock:
    def __init__(self, backend: str | None = None, name: str | None = None, ttl_seconds: int | None = None):
        self.backend = backend or settings.run_lock_backend
        self.name = name or settings.run_lock_name
        self.ttl_seconds = ttl_seconds or settings.run_lock_ttl_seconds
        self._local = asyncio.Lock()

    @property
    def locked(self) -> bool:
        return self._local.locked()

    @asynccontextmanager
    async def hold(self):
        """Hold the lock for the duration of a run; raise if it is taken."""
        if self._local.locked():
            raise RunInProgressError("A reconciliation run is already in progress")

        async with self._local:
            if self.backend != "redis":
                yield
                return

            client = await get_redis_client()
            lock = client.lock(self.name, timeout=self.ttl_seconds)
            if not await lock.acquire(blocking=False):
                raise RunInProgressError("A reconciliation run is already in progress on another worker")
            try:
                yield
            finally:
                try:
                    await lock.release()
                except redis.RedisError as e:
                    # the TTL expired mid-run; the next run may already hold it
                    logger.warning(f"Failed to release run lock {self.name}: {e}")


_default_lock: RunLock | None = None


def get_run_lock() -> RunLock:
    """Process-wide lock shared by the API and CLI entry points."""
    global _default_lock
    if _default_lock is None:
        _default_lock = RunLock()
    return _default_lock
