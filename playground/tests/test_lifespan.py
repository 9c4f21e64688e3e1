"""Tests for lifespan management."""

import pytest
from unittest.mock import MagicMock, patch

from playground.config import clear_settings_cache


@pytest.fixture
def fresh_settings(monkeypatch, tmp_path):
    monkeypatch.setenv("SANDBOX_JOBS_DIR", str(tmp_path / "jobs"))
    monkeypatch.setenv("SANDBOX_CLEANUP_DELAY_SEC", "0")
    monkeypatch.delenv("REDIS_ENABLED", raising=False)
    clear_settings_cache()
    yield monkeypatch
    clear_settings_cache()


class TestBuildAdmission:
    def test_shared_pool(self, fresh_settings):
        from playground.lifespan import build_admission

        batch, interactive = build_admission()
        assert batch is interactive
        assert batch.limit == 4

    def test_dedicated_pool(self, fresh_settings):
        from playground.lifespan import build_admission

        fresh_settings.setenv("SANDBOX_INTERACTIVE_SHARES_POOL", "0")
        fresh_settings.setenv("SANDBOX_INTERACTIVE_MAX_CONCURRENCY", "2")
        clear_settings_cache()

        batch, interactive = build_admission()
        assert batch is not interactive
        assert interactive.limit == 2
        assert interactive.name == "interactive"


class TestInitRedis:
    @pytest.mark.asyncio
    async def test_disabled_returns_none(self, fresh_settings):
        from playground.lifespan import init_redis

        assert await init_redis() is None

    @pytest.mark.asyncio
    async def test_enabled_creates_client(self, fresh_settings):
        from playground.lifespan import init_redis

        fresh_settings.setenv("REDIS_ENABLED", "1")
        clear_settings_cache()

        mock_client = MagicMock(spec=["ping", "get", "setex"])
        with patch("playground.lifespan.redis.Redis", return_value=mock_client) as mock_redis_class:
            client = await init_redis()

        assert client is mock_client
        mock_redis_class.assert_called_once()


class TestSetupAndCleanup:
    @pytest.mark.asyncio
    async def test_setup_publishes_state_and_cleanup_clears_it(self, fresh_settings, tmp_path):
        from playground import state
        from playground.lifespan import cleanup_resources, setup_resources

        resources = await setup_resources()
        try:
            assert (tmp_path / "jobs").is_dir()
            assert state.batch_executor is resources.batch_executor
            assert state.batch_executor.pipeline is resources.pipeline
            assert state.interactive_admission is state.batch_admission
            assert state.redis_client is None
        finally:
            await cleanup_resources(resources)

        assert state.batch_executor is None
        assert state.pipeline is None
        assert state.janitor is None
