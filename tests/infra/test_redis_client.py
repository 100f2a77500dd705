# tests/infra/test_redis_client.py
"""
Тесты для клиента Redis.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from src.core.catalog.models import HelperProfile
from src.infra.redis_client import RedisClient


class TestRedisClient:
    """Тесты для RedisClient."""

    @pytest.fixture
    def redis_client(self) -> RedisClient:
        """Свежий экземпляр с моком redis.asyncio."""
        RedisClient._instance = None
        client = RedisClient()
        yield client
        RedisClient._instance = None

    @pytest.fixture
    def connected(self, redis_client: RedisClient) -> AsyncMock:
        mock = AsyncMock()
        redis_client._client = mock
        return mock

    def test_singleton(self, redis_client: RedisClient) -> None:
        assert RedisClient() is redis_client

    def test_client_not_initialized(self, redis_client: RedisClient) -> None:
        assert redis_client.is_connected is False
        with pytest.raises(RuntimeError, match="не инициализирован"):
            _ = redis_client.client

    def test_make_key(self, redis_client: RedisClient) -> None:
        assert redis_client._make_key("helper_profile:2001") == "hub:helper_profile:2001"

    @pytest.mark.asyncio
    async def test_connect(self, redis_client: RedisClient) -> None:
        mock = AsyncMock()
        with patch("redis.asyncio.from_url", return_value=mock) as from_url:
            await redis_client.connect(url="redis://localhost:6379/0", max_connections=5, namespace="hub_test")

        from_url.assert_called_once_with("redis://localhost:6379/0", max_connections=5, decode_responses=True)
        mock.ping.assert_awaited_once()
        assert redis_client.is_connected
        assert redis_client._make_key("k") == "hub_test:k"

    @pytest.mark.asyncio
    async def test_connect_already_connected(self, redis_client: RedisClient, connected: AsyncMock) -> None:
        with patch("redis.asyncio.from_url") as from_url:
            await redis_client.connect(url="redis://localhost:6379/0")

        from_url.assert_not_called()

    @pytest.mark.asyncio
    async def test_disconnect(self, redis_client: RedisClient, connected: AsyncMock) -> None:
        await redis_client.disconnect()

        connected.aclose.assert_awaited_once()
        assert redis_client.is_connected is False

    @pytest.mark.asyncio
    async def test_set_with_ttl(self, redis_client: RedisClient, connected: AsyncMock) -> None:
        connected.set.return_value = True

        assert await redis_client.set("key", "value", ttl=60)

        connected.set.assert_awaited_once_with("hub:key", "value", ex=60)

    @pytest.mark.asyncio
    async def test_delete(self, redis_client: RedisClient, connected: AsyncMock) -> None:
        connected.delete.return_value = 2

        assert await redis_client.delete("a", "b") == 2
        connected.delete.assert_awaited_once_with("hub:a", "hub:b")

    @pytest.mark.asyncio
    async def test_delete_nothing(self, redis_client: RedisClient, connected: AsyncMock) -> None:
        assert await redis_client.delete() == 0
        connected.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_model(self, redis_client: RedisClient, connected: AsyncMock) -> None:
        connected.get.return_value = HelperProfile(user_id=2001, rating=4.5).model_dump_json()

        profile = await redis_client.get_model("helper_profile:2001", HelperProfile)

        assert profile == HelperProfile(user_id=2001, rating=4.5)

    @pytest.mark.asyncio
    async def test_get_model_invalid_json(self, redis_client: RedisClient, connected: AsyncMock) -> None:
        """Повреждённая запись считается промахом."""
        connected.get.return_value = "{not json"

        assert await redis_client.get_model("helper_profile:2001", HelperProfile) is None

    @pytest.mark.asyncio
    async def test_get_models_skips_missing_and_corrupt(self, redis_client: RedisClient, connected: AsyncMock) -> None:
        connected.mget.return_value = [
            HelperProfile(user_id=1, rating=3.0).model_dump_json(),
            None,
            "garbage",
        ]

        found = await redis_client.get_models(["p:1", "p:2", "p:3"], HelperProfile)

        connected.mget.assert_awaited_once_with(["hub:p:1", "hub:p:2", "hub:p:3"])
        assert list(found) == ["p:1"]
        assert found["p:1"].rating == 3.0

    @pytest.mark.asyncio
    async def test_get_models_empty(self, redis_client: RedisClient, connected: AsyncMock) -> None:
        assert await redis_client.get_models([], HelperProfile) == {}
        connected.mget.assert_not_called()

    @pytest.mark.asyncio
    async def test_set_model(self, redis_client: RedisClient, connected: AsyncMock) -> None:
        profile = HelperProfile(user_id=2001, completed_services=3)

        await redis_client.set_model("helper_profile:2001", profile, ttl=300)

        connected.set.assert_awaited_once_with("hub:helper_profile:2001", profile.model_dump_json(), ex=300)

    @pytest.mark.asyncio
    async def test_health_check(self, redis_client: RedisClient, connected: AsyncMock) -> None:
        connected.ping.return_value = True
        assert await redis_client.health_check() is True

        connected.ping.side_effect = ConnectionError("down")
        assert await redis_client.health_check() is False

    @pytest.mark.asyncio
    async def test_health_check_not_connected(self, redis_client: RedisClient) -> None:
        assert await redis_client.health_check() is False
