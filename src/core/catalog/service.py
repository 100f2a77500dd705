# src/core/catalog/service.py
"""
Сервис объявлений: публикация запросов и предложений.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from src.common.constants import EntityKind, ServiceCategory
from src.common.errors import ConflictError, ErrorCode, NotFoundError, ValidationError
from src.common.identity import Actor
from src.common.logger import log_info
from src.common.result import operation
from src.core.catalog.models import HelperProfile, ServiceOffer, ServiceRequest
from src.core.catalog.operations import update_of

if TYPE_CHECKING:
    from src.core.catalog.store import CatalogStore
    from src.core.matching.profiles import HelperDirectory


class ListingService:
    """Публикация и чтение запросов и предложений."""

    def __init__(
        self,
        store: "CatalogStore",
        profiles: Optional["HelperDirectory"] = None,
    ) -> None:
        self._store = store
        self._profiles = profiles

    # =========================================================================
    # ПРОВЕРКИ
    # =========================================================================

    @staticmethod
    def _ensure_airports(*codes: Optional[str]) -> None:
        from src.config import settings

        supported = set(settings.matching.SUPPORTED_AIRPORTS)
        unknown = [code for code in codes if code and code not in supported]
        if unknown:
            raise ValidationError(
                f"Аэропорты не поддерживаются: {', '.join(unknown)}",
                details={"airports": unknown},
            )

    @staticmethod
    def _ensure_route(category: ServiceCategory, destination_airport: Optional[str]) -> None:
        if category == ServiceCategory.FLIGHT_COMPANION and not destination_airport:
            raise ValidationError("Для сопровождения нужен аэропорт прилёта")

    @staticmethod
    def _ensure_self(actor: Actor, user_id: int, what: str) -> None:
        if not actor.is_admin and actor.user_id != user_id:
            raise ValidationError(
                f"Пользователь {actor.user_id} не может публиковать {what} за {user_id}",
                code=ErrorCode.FORBIDDEN_ACTOR,
                details={"user_id": actor.user_id},
            )

    # =========================================================================
    # ЗАПРОСЫ
    # =========================================================================

    @operation
    async def publish_request(self, request: ServiceRequest, actor: Actor) -> ServiceRequest:
        self._ensure_self(actor, request.requester_id, "запрос")
        self._ensure_route(request.category, request.destination_airport)
        self._ensure_airports(request.origin_airport, request.destination_airport)

        fresh = request.model_copy(update={
            "is_active": True,
            "is_matched": False,
            "matched_offer_id": None,
            "matched_at": None,
            "version": 1,
        })
        created = await self._store.add_request(fresh)
        await log_info(f"Опубликован запрос {created.id} ({created.category.value}) пользователем {actor.user_id}")
        return created

    @operation
    async def get_request(self, request_id: str) -> ServiceRequest:
        request = await self._store.get_request(request_id)
        if request is None:
            raise NotFoundError(
                f"Запрос {request_id} не найден",
                code=ErrorCode.REQUEST_NOT_FOUND,
                details={"request_id": request_id},
            )
        return request

    @operation
    async def close_request(self, request_id: str, actor: Actor) -> ServiceRequest:
        """Снимает несопоставленный запрос с публикации."""
        request = (await self.get_request(request_id)).unwrap()
        self._ensure_self(actor, request.requester_id, "запрос")
        if request.is_matched:
            raise ConflictError(
                f"Запрос {request.id} уже сопоставлен",
                code=ErrorCode.REQUEST_ALREADY_MATCHED,
                details={"request_id": request.id},
            )
        if not request.is_active:
            return request

        (closed,) = await self._store.apply([
            update_of(request, EntityKind.REQUEST, is_active=False),
        ])
        await log_info(f"Запрос {request.id} закрыт")
        return closed  # type: ignore[return-value]

    # =========================================================================
    # ПРЕДЛОЖЕНИЯ
    # =========================================================================

    @operation
    async def publish_offer(self, offer: ServiceOffer, actor: Actor) -> ServiceOffer:
        self._ensure_self(actor, offer.helper_id, "предложение")
        self._ensure_route(offer.category, offer.destination_airport)
        self._ensure_airports(offer.origin_airport, offer.destination_airport)

        created = await self._store.add_offer(offer.model_copy(update={"is_available": True, "version": 1}))
        await log_info(f"Опубликовано предложение {created.id} помощником {offer.helper_id}")
        return created

    @operation
    async def get_offer(self, offer_id: str) -> ServiceOffer:
        offer = await self._store.get_offer(offer_id)
        if offer is None:
            raise NotFoundError(
                f"Предложение {offer_id} не найдено",
                code=ErrorCode.OFFER_NOT_FOUND,
                details={"offer_id": offer_id},
            )
        return offer

    # =========================================================================
    # ПРОФИЛИ
    # =========================================================================

    @operation
    async def update_helper_profile(self, profile: HelperProfile, actor: Actor) -> HelperProfile:
        """Рейтинг и статистику помощника обновляет только администратор."""
        if not actor.is_admin:
            raise ValidationError(
                "Профиль помощника обновляет только администратор",
                code=ErrorCode.FORBIDDEN_ACTOR,
            )
        await self._store.upsert_helper_profile(profile)
        if self._profiles is not None:
            await self._profiles.invalidate(profile.user_id)
        return profile
