# src/core/matching/coordinator.py
"""
Координатор сопоставлений.

Фиксирует выбранное предложение за запросом и открывает удержание
средств. Запрос и предложение меняются одним пакетом условных записей
против проверенных версий, поэтому из двух конкурентных фиксаций
побеждает ровно одна.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from src.common.constants import EntityKind, PaymentStatus
from src.common.errors import (
    ConflictError,
    ErrorCode,
    NotFoundError,
    StateTransitionError,
    ValidationError,
)
from src.common.identity import Actor
from src.common.logger import log_error, log_info, log_warning
from src.common.result import operation
from src.common.utils import utc_now
from src.core.catalog.models import ServiceOffer, ServiceRequest
from src.core.catalog.operations import update_of
from src.core.escrow.models import Payment
from src.core.matching.compatibility import broken_constraints
from src.infra.event_bus import EventTypes

if TYPE_CHECKING:
    from src.core.catalog.store import CatalogStore
    from src.core.escrow.service import EscrowLedger
    from src.core.notifications.service import NotificationDispatcher


class Match(BaseModel):
    """Зафиксированное сопоставление."""

    request: ServiceRequest
    offer: ServiceOffer
    payment: Payment
    matched_at: datetime = Field(..., description="Время фиксации")

    @property
    def request_id(self) -> str:
        return self.request.id

    @property
    def offer_id(self) -> str:
        return self.offer.id


class MatchCoordinator:
    """Владелец состояния сопоставления запросов и предложений."""

    def __init__(
        self,
        store: "CatalogStore",
        ledger: "EscrowLedger",
        notifications: "NotificationDispatcher",
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._notifications = notifications

    # =========================================================================
    # ВСПОМОГАТЕЛЬНОЕ
    # =========================================================================

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

    async def _load_offer(self, offer_id: str) -> ServiceOffer:
        if not offer_id or not offer_id.strip():
            raise ValidationError("Не указан ID предложения")
        offer = await self._store.get_offer(offer_id)
        if offer is None:
            raise NotFoundError(
                f"Предложение {offer_id} не найдено",
                code=ErrorCode.OFFER_NOT_FOUND,
                details={"offer_id": offer_id},
            )
        return offer

    @staticmethod
    def _ensure_state(request: ServiceRequest, offer: ServiceOffer) -> None:
        if not request.is_active:
            raise ConflictError(
                f"Запрос {request.id} неактивен",
                code=ErrorCode.REQUEST_INACTIVE,
                details={"request_id": request.id},
            )
        if request.is_matched:
            raise ConflictError(
                f"Запрос {request.id} уже сопоставлен",
                code=ErrorCode.REQUEST_ALREADY_MATCHED,
                details={"request_id": request.id, "matched_offer_id": request.matched_offer_id},
            )
        if not offer.is_available:
            raise ConflictError(
                f"Предложение {offer.id} уже занято",
                code=ErrorCode.OFFER_UNAVAILABLE,
                details={"offer_id": offer.id},
            )

    @staticmethod
    def _unmatch(request: ServiceRequest, offer: ServiceOffer) -> list:
        return [
            update_of(request, EntityKind.REQUEST, is_matched=False, matched_offer_id=None, matched_at=None),
            update_of(offer, EntityKind.OFFER, is_available=True),
        ]

    # =========================================================================
    # ФИКСАЦИЯ
    # =========================================================================

    @operation
    async def commit_match(self, request_id: str, offer_id: str, actor: Actor) -> Match:
        """
        Фиксирует предложение за запросом и удерживает оплату.

        Если удержание не удалось, запрос и предложение возвращаются в
        исходное состояние, ошибка процессора пробрасывается.

        Args:
            request_id: ID запроса
            offer_id: ID предложения
            actor: Заказчик или администратор
        """
        request = await self._load_request(request_id)
        offer = await self._load_offer(offer_id)

        if not actor.is_admin and actor.user_id != request.requester_id:
            raise ValidationError(
                f"Пользователь {actor.user_id} не может выбирать предложение для запроса {request.id}",
                code=ErrorCode.FORBIDDEN_ACTOR,
                details={"request_id": request.id, "user_id": actor.user_id},
            )

        self._ensure_state(request, offer)

        broken = broken_constraints(request, offer)
        if broken:
            raise ValidationError(
                f"Предложение {offer.id} несовместимо с запросом {request.id}",
                code=ErrorCode.INCOMPATIBLE_OFFER,
                details={"request_id": request.id, "offer_id": offer.id, "broken": broken},
            )

        matched_at = utc_now()
        try:
            matched_request, taken_offer = await self._store.apply([
                update_of(
                    request,
                    EntityKind.REQUEST,
                    is_matched=True,
                    matched_offer_id=offer.id,
                    matched_at=matched_at,
                ),
                update_of(offer, EntityKind.OFFER, is_available=False),
            ])
        except ConflictError:
            await log_warning(f"Фиксация {request.id} -> {offer.id} проиграла гонку")
            raise

        try:
            payment = (await self._ledger.open_hold(
                request_id=request.id,
                offer_id=offer.id,
                payer_id=request.requester_id,
                payee_id=offer.helper_id,
                amount=request.offered_amount,
                currency=request.currency,
            )).unwrap()
        except BaseException as e:
            # Отмена задачи тоже откатывает сопоставление
            await log_warning(f"Удержание для {request.id} -> {offer.id} не удалось: {e!r}. Откатываем сопоставление")
            try:
                await asyncio.shield(
                    self._store.apply(self._unmatch(matched_request, taken_offer))  # type: ignore[arg-type]
                )
            except ConflictError as rollback_error:
                await log_error(
                    f"Не удалось откатить сопоставление {request.id} -> {offer.id}: {rollback_error.message}"
                )
            raise

        await log_info(
            f"Сопоставление зафиксировано: запрос {request.id} -> предложение {offer.id}, платёж {payment.id}"
        )
        self._notifications.dispatch(
            (request.requester_id, offer.helper_id),
            EventTypes.MATCH_COMMITTED,
            {"request_id": request.id, "offer_id": offer.id, "payment_id": payment.id},
        )
        return Match(
            request=matched_request,
            offer=taken_offer,
            payment=payment,
            matched_at=matched_at,
        )

    # =========================================================================
    # ОТМЕНА
    # =========================================================================

    @operation
    async def cancel_match(self, request_id: str, actor: Actor) -> ServiceRequest:
        """
        Отменяет сопоставление до оказания услуги.

        Удержание возвращается плательщику, затем запрос снова свободен,
        а предложение снова доступно. Платёж в споре отменить нельзя.
        """
        request = await self._load_request(request_id)
        if not request.is_matched or not request.matched_offer_id:
            raise StateTransitionError(
                f"Запрос {request.id} не сопоставлен",
                details={"request_id": request.id},
            )

        offer = await self._load_offer(request.matched_offer_id)
        if not actor.is_admin and actor.user_id not in (request.requester_id, offer.helper_id):
            raise ValidationError(
                f"Пользователь {actor.user_id} не участвует в сопоставлении {request.id}",
                code=ErrorCode.FORBIDDEN_ACTOR,
                details={"request_id": request.id, "user_id": actor.user_id},
            )

        payment = await self._store.get_payment_for_match(request.id, offer.id)
        if payment is None:
            raise NotFoundError(
                f"Платёж для запроса {request.id} не найден",
                code=ErrorCode.PAYMENT_NOT_FOUND,
                details={"request_id": request.id, "offer_id": offer.id},
            )
        if payment.status == PaymentStatus.DISPUTED:
            raise StateTransitionError(
                f"Платёж {payment.id} в споре, отмена невозможна",
                details={"payment_id": payment.id, "status": payment.status.value},
            )

        refunded = (await self._ledger.refund(payment.id, actor)).unwrap()

        try:
            released_request, _ = await self._store.apply(self._unmatch(request, offer))
        except ConflictError:
            current = await self._store.get_request(request.id)
            if current is not None and not current.is_matched:
                # Конкурентная отмена уже освободила запрос
                await log_info(f"Сопоставление {request.id} -> {offer.id} уже отменено, повторный вызов")
                return current
            raise

        await log_info(f"Сопоставление {request.id} -> {offer.id} отменено, платёж {refunded.id} возвращён")
        self._notifications.dispatch(
            (request.requester_id, offer.helper_id),
            EventTypes.MATCH_CANCELLED,
            {"request_id": request.id, "offer_id": offer.id, "payment_id": refunded.id},
        )
        return released_request  # type: ignore[return-value]
