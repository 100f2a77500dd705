# src/core/matching/service.py
"""
Движок подбора предложений.
Находит совместимые предложения помощников для запроса и ранжирует их.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field

from src.common.constants import ServiceCategory
from src.common.errors import ErrorCode, NotFoundError, ValidationError
from src.common.logger import log_info, log_warning
from src.common.result import operation
from src.core.catalog.models import HelperProfile, OfferCriteria, ServiceOffer, ServiceRequest
from src.core.matching.compatibility import broken_constraints
from src.core.matching.profiles import HelperDirectory

if TYPE_CHECKING:
    from src.core.catalog.store import CatalogStore


# Пороги для текстовых причин рекомендации
HIGH_RATING_THRESHOLD = 4.5
EXPERIENCED_THRESHOLD = 10


class MatchCandidate(BaseModel):
    """Кандидат для запроса с данными ранжирования."""

    offer: ServiceOffer
    rating: float = Field(0.0, description="Рейтинг помощника")
    completed_services: int = Field(0, description="Выполнено услуг")
    is_verified: bool = Field(False, description="Подтверждённый помощник")
    reasons: list[str] = Field(default_factory=list, description="Почему предложение подходит")


class MatchingEngine:
    """
    Подбор предложений для запроса.

    Только чтение: состояние каталога не меняется.
    """

    def __init__(
        self,
        store: "CatalogStore",
        profiles: Optional[HelperDirectory] = None,
    ) -> None:
        """
        Args:
            store: Хранилище каталога
            profiles: Справочник профилей (по умолчанию без кэша)
        """
        self._store = store
        self._profiles = profiles or HelperDirectory(store)

    @staticmethod
    def _resolve_limit(max_results: int | None) -> int:
        from src.config import settings

        if max_results is None:
            return settings.matching.DEFAULT_MAX_RESULTS
        if max_results <= 0:
            raise ValidationError(
                "max_results должен быть положительным",
                details={"max_results": max_results},
            )
        return min(max_results, settings.matching.MAX_RESULTS_LIMIT)

    async def _load_request(self, request_id: str) -> ServiceRequest:
        if not request_id or not request_id.strip():
            raise ValidationError("Не указан ID запроса")
        request = await self._store.get_request(request_id)
        if request is None:
            raise NotFoundError(
                f"Запрос {request_id} не найден",
                code=ErrorCode.REQUEST_NOT_FOUND,
                details={"request_id": request_id},
            )
        return request

    @staticmethod
    def _rank_key(candidate: MatchCandidate) -> tuple:
        offer = candidate.offer
        return (
            -candidate.rating,
            offer.price,
            -candidate.completed_services,
            offer.created_at,
            offer.id,
        )

    @staticmethod
    def _reasons(request: ServiceRequest, offer: ServiceOffer, profile: HelperProfile) -> list[str]:
        reasons = []
        if profile.rating >= HIGH_RATING_THRESHOLD:
            reasons.append(f"Highly rated helper ({profile.rating:.1f}/5.0)")
        if profile.is_verified:
            reasons.append("Verified helper")
        if profile.completed_services >= EXPERIENCED_THRESHOLD:
            reasons.append(f"Experienced helper ({profile.completed_services} services completed)")
        if offer.price <= request.offered_amount:
            reasons.append("Within your budget")
        if request.has_luggage:
            reasons.append("Can carry luggage")
        if not reasons:
            reasons.append("Matches your route and schedule")
        return reasons

    async def _rank(self, request_id: str, max_results: int | None) -> list[MatchCandidate]:
        limit = self._resolve_limit(max_results)
        request = await self._load_request(request_id)

        if request.is_matched or not request.is_active:
            await log_warning(
                f"Подбор для запроса {request.id} пропущен: "
                f"matched={request.is_matched}, active={request.is_active}"
            )
            return []

        criteria = OfferCriteria(
            category=request.category,
            origin_airport=request.origin_airport,
            destination_airport=(
                request.destination_airport
                if request.category == ServiceCategory.FLIGHT_COMPANION
                else None
            ),
            available_only=True,
            exclude_helper_id=request.requester_id,
        )
        offers = [
            offer
            for offer in await self._store.find_offers(criteria)
            if offer.is_available and not broken_constraints(request, offer)
        ]
        if not offers:
            await log_info(f"Для запроса {request.id} совместимых предложений нет")
            return []

        profiles = await self._profiles.get_profiles([offer.helper_id for offer in offers])
        candidates = []
        for offer in offers:
            profile = profiles[offer.helper_id]
            candidates.append(MatchCandidate(
                offer=offer,
                rating=profile.rating,
                completed_services=profile.completed_services,
                is_verified=profile.is_verified,
                reasons=self._reasons(request, offer, profile),
            ))

        candidates.sort(key=self._rank_key)
        await log_info(
            f"Запрос {request.id}: найдено {len(candidates)} предложений, возвращаем {min(limit, len(candidates))}"
        )
        return candidates[:limit]

    @operation
    async def find_candidates(self, request_id: str, max_results: int | None = None) -> list[ServiceOffer]:
        """
        Совместимые доступные предложения, лучшие первыми.

        Порядок: рейтинг (убыв.), цена (возр.), опыт (убыв.), время
        создания и ID предложения.

        Args:
            request_id: ID запроса
            max_results: Максимум результатов (по умолчанию из конфига)
        """
        return [candidate.offer for candidate in await self._rank(request_id, max_results)]

    @operation
    async def find_scored_candidates(
        self,
        request_id: str,
        max_results: int | None = None,
    ) -> list[MatchCandidate]:
        """То же, что find_candidates, но с данными ранжирования."""
        return await self._rank(request_id, max_results)
