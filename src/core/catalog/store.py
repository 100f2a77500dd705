# src/core/catalog/store.py
"""
Контракт хранилища каталога.

Хранилище владеет строками запросов, предложений, платежей, эскроу и
споров. Чтения выполняются параллельно без блокировок. Запись возможна
только через apply(): пакет условных обновлений и вставок, который
фиксируется целиком либо отклоняется с ConflictError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from pydantic import BaseModel

from src.common.constants import DisputeStatus, EntityKind
from src.core.catalog.models import HelperProfile, OfferCriteria, ServiceOffer, ServiceRequest
from src.core.catalog.operations import Insert, WriteOperation
from src.core.disputes.models import Dispute
from src.core.escrow.models import Escrow, Payment


ENTITY_MODELS: dict[EntityKind, type[BaseModel]] = {
    EntityKind.REQUEST: ServiceRequest,
    EntityKind.OFFER: ServiceOffer,
    EntityKind.PAYMENT: Payment,
    EntityKind.ESCROW: Escrow,
    EntityKind.DISPUTE: Dispute,
}


class CatalogStore(ABC):
    """Абстрактное хранилище с compare-and-swap записью."""

    # === ЗАПРОСЫ И ПРЕДЛОЖЕНИЯ ===

    @abstractmethod
    async def get_request(self, request_id: str) -> Optional[ServiceRequest]:
        ...

    @abstractmethod
    async def get_offer(self, offer_id: str) -> Optional[ServiceOffer]:
        ...

    @abstractmethod
    async def find_offers(self, criteria: OfferCriteria) -> list[ServiceOffer]:
        """
        Возвращает предложения, прошедшие грубый фильтр.

        Фильтруются категория, маршрут, доступность и автор. Остальные
        ограничения проверяет движок подбора.
        """

    @abstractmethod
    async def get_helper_profiles(self, user_ids: Sequence[int]) -> dict[int, HelperProfile]:
        ...

    @abstractmethod
    async def upsert_helper_profile(self, profile: HelperProfile) -> None:
        ...

    # === ПЛАТЕЖИ ===

    @abstractmethod
    async def get_payment(self, payment_id: str) -> Optional[Payment]:
        ...

    @abstractmethod
    async def get_payment_for_match(self, request_id: str, offer_id: str) -> Optional[Payment]:
        """Последний платёж по паре запрос/предложение."""

    @abstractmethod
    async def get_escrow_for_payment(self, payment_id: str) -> Optional[Escrow]:
        ...

    @abstractmethod
    async def list_payments_for_user(self, user_id: int, limit: int = 50) -> list[Payment]:
        """Платежи, где пользователь плательщик или получатель, новые первыми."""

    # === СПОРЫ ===

    @abstractmethod
    async def get_dispute(self, dispute_id: str) -> Optional[Dispute]:
        ...

    @abstractmethod
    async def get_active_dispute(self, payment_id: str) -> Optional[Dispute]:
        ...

    @abstractmethod
    async def list_disputes(
        self,
        raised_by: Optional[int] = None,
        status: Optional[DisputeStatus] = None,
    ) -> list[Dispute]:
        ...

    # === ЗАПИСЬ ===

    @abstractmethod
    async def apply(self, operations: Sequence[WriteOperation]) -> list[BaseModel]:
        """
        Атомарно применяет пакет операций.

        Args:
            operations: Условные обновления и вставки

        Returns:
            Итоговые версии затронутых сущностей в порядке операций

        Raises:
            ConflictError: версия строки не совпала, строки нет или ID занят.
                Ни одна операция пакета при этом не применяется.
        """

    async def add_request(self, request: ServiceRequest) -> ServiceRequest:
        """Сохраняет новый запрос."""
        (created,) = await self.apply([Insert(EntityKind.REQUEST, request)])
        return created  # type: ignore[return-value]

    async def add_offer(self, offer: ServiceOffer) -> ServiceOffer:
        """Сохраняет новое предложение."""
        (created,) = await self.apply([Insert(EntityKind.OFFER, offer)])
        return created  # type: ignore[return-value]
