"""Tests for the run-level lock (memory and redis backends)."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import LockError

import trackersync.services.run_lock as run_lock_mod
from trackersync.errors import RunInProgressError
from trackersync.services.run_lock import RunLock, get_run_lock


def _redis_with_lock(acquired=True, release_error=None):
    lock = MagicMock()
    lock.acquire = AsyncMock(return_value=acquired)
    lock.release = AsyncMock(side_effect=release_error)
    client = MagicMock()
    client.lock = MagicMock(return_value=lock)
    return client, lock


class TestMemoryBackend:
    @pytest.mark.asyncio
    async def test_second_holder_refused(self):
        lock = RunLock(backend="memory")
        async with lock.hold():
            assert lock.locked
            with pytest.raises(RunInProgressError):
                async with lock.hold():
                    pass
        assert not lock.locked

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        lock = RunLock(backend="memory")
        with pytest.raises(ValueError):
            async with lock.hold():
                raise ValueError("boom")
        assert not lock.locked

    def test_default_lock_is_shared(self):
        assert get_run_lock() is get_run_lock()


class TestRedisBackend:
    @pytest.mark.asyncio
    async def test_acquires_and_releases(self):
        client, redis_lock = _redis_with_lock()
        with patch.object(run_lock_mod, "get_redis_client", AsyncMock(return_value=client)):
            lock = RunLock(backend="redis", name="trackersync:test", ttl_seconds=60)
            async with lock.hold():
                pass

        client.lock.assert_called_once_with("trackersync:test", timeout=60)
        redis_lock.acquire.assert_awaited_once_with(blocking=False)
        redis_lock.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_held_elsewhere_refused(self):
        client, redis_lock = _redis_with_lock(acquired=False)
        with patch.object(run_lock_mod, "get_redis_client", AsyncMock(return_value=client)):
            lock = RunLock(backend="redis")
            with pytest.raises(RunInProgressError, match="another worker"):
                async with lock.hold():
                    pass

        redis_lock.release.assert_not_awaited()
        assert not lock.locked

    @pytest.mark.asyncio
    async def test_release_failure_is_logged_not_raised(self):
        client, _ = _redis_with_lock(release_error=LockError("expired"))
        with patch.object(run_lock_mod, "get_redis_client", AsyncMock(return_value=client)):
            lock = RunLock(backend="redis")
            async with lock.hold():
                pass
        assert not lock.locked
