# src/core/matching/profiles.py
"""
Профили помощников для ранжирования с кэшированием в Redis.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

from redis.exceptions import RedisError

from src.common.logger import log_debug, log_warning
from src.core.catalog.models import HelperProfile

if TYPE_CHECKING:
    from src.core.catalog.store import CatalogStore
    from src.infra.redis_client import RedisClient


class HelperDirectory:
    """
    Читает профили помощников (cache-aside).

    Без Redis работает напрямую с хранилищем. Недоступный Redis не
    ломает подбор: профили читаются из хранилища.
    """

    def __init__(
        self,
        store: "CatalogStore",
        redis: Optional["RedisClient"] = None,
        ttl: int | None = None,
    ) -> None:
        """
        Args:
            store: Хранилище каталога
            redis: Клиент Redis (опционально)
            ttl: Время жизни записи кэша (по умолчанию PROFILE_TTL из конфига)
        """
        if redis is not None and ttl is None:
            from src.config import settings
            ttl = settings.redis_ttl.PROFILE_TTL

        self._store = store
        self._redis = redis
        self._ttl = ttl

    @staticmethod
    def _cache_key(user_id: int) -> str:
        return f"helper_profile:{user_id}"

    async def get_profiles(self, user_ids: Sequence[int]) -> dict[int, HelperProfile]:
        """
        Профили по списку пользователей.

        Для пользователя без профиля возвращается нулевой профиль.
        """
        unique_ids = list(dict.fromkeys(user_ids))
        profiles: dict[int, HelperProfile] = {}

        if self._redis is not None and unique_ids:
            try:
                cached = await self._redis.get_models(
                    [self._cache_key(uid) for uid in unique_ids],
                    HelperProfile,
                )
                for profile in cached.values():
                    profiles[profile.user_id] = profile
            except RedisError as e:
                await log_warning(f"Кэш профилей недоступен: {e}")

        missing = [uid for uid in unique_ids if uid not in profiles]
        if missing:
            loaded = await self._store.get_helper_profiles(missing)
            profiles.update(loaded)
            await self._fill_cache(loaded.values())

        for uid in unique_ids:
            profiles.setdefault(uid, HelperProfile(user_id=uid))

        await log_debug(f"Профили помощников: {len(unique_ids)} запрошено, {len(missing)} из хранилища")
        return profiles

    async def invalidate(self, user_id: int) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.delete(self._cache_key(user_id))
        except RedisError as e:
            await log_warning(f"Не удалось сбросить кэш профиля {user_id}: {e}")

    async def _fill_cache(self, profiles) -> None:
        if self._redis is None:
            return
        try:
            for profile in profiles:
                await self._redis.set_model(self._cache_key(profile.user_id), profile, ttl=self._ttl)
        except RedisError as e:
            await log_warning(f"Не удалось записать профили в кэш: {e}")
