# src/core/escrow/service.py
"""
Реестр эскроу: жизненный цикл платежа.

Created -> HeldInEscrow -> {Released, Refunded, Disputed}
Disputed -> {Released, Refunded} (только через разрешение спора)

Переходы, вызывающие платёжный процессор, сначала захватывают строку
платежа (pending_operation) условной записью. Процессор вызывает только
владелец захвата, поэтому для одного платежа не бывает двух вызовов
release или refund.
"""

from __future__ import annotations

import asyncio
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Awaitable, Callable, Sequence

from src.common.constants import EntityKind, EscrowStatus, PaymentStatus, PendingOperation
from src.common.errors import (
    ConflictError,
    ErrorCode,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from src.common.identity import Actor
from src.common.logger import log_error, log_info, log_warning
from src.common.result import operation
from src.common.utils import quantize_money, utc_now
from src.core.catalog.operations import ConditionalUpdate, Insert, WriteOperation, update_of
from src.core.escrow.models import Escrow, Payment
from src.core.escrow.state_machine import PaymentStateMachine
from src.infra.event_bus import EventTypes

if TYPE_CHECKING:
    from src.core.catalog.store import CatalogStore
    from src.core.escrow.processor import PaymentProcessor
    from src.core.notifications.service import NotificationDispatcher


_ESCROW_STATUS_FOR = {
    PaymentStatus.RELEASED: EscrowStatus.RELEASED,
    PaymentStatus.REFUNDED: EscrowStatus.REFUNDED,
}

_EVENT_FOR = {
    PaymentStatus.HELD_IN_ESCROW: EventTypes.PAYMENT_HELD,
    PaymentStatus.RELEASED: EventTypes.PAYMENT_RELEASED,
    PaymentStatus.REFUNDED: EventTypes.PAYMENT_REFUNDED,
    PaymentStatus.DISPUTED: EventTypes.PAYMENT_DISPUTED,
}


def calculate_platform_fee(amount: Decimal, fee_percent: float) -> Decimal:
    """Комиссия платформы, округлённая до центов."""
    fee = Decimal(amount) * Decimal(str(fee_percent)) / Decimal(100)
    return fee.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class EscrowLedger:
    """Владелец строк платежей и эскроу."""

    def __init__(
        self,
        store: "CatalogStore",
        processor: "PaymentProcessor",
        notifications: "NotificationDispatcher",
        fee_percent: float | None = None,
        hold_timeout: float | None = None,
    ) -> None:
        """
        Args:
            store: Хранилище каталога
            processor: Платёжный процессор
            notifications: Диспетчер уведомлений
            fee_percent: Комиссия платформы в процентах (по умолчанию из конфига)
            hold_timeout: Лимит времени на удержание средств (по умолчанию из конфига)
        """
        if fee_percent is None or hold_timeout is None:
            from src.config import settings
            fee_percent = settings.payments.PLATFORM_FEE_PERCENT if fee_percent is None else fee_percent
            hold_timeout = settings.payments.HOLD_TIMEOUT_SECONDS if hold_timeout is None else hold_timeout

        self._store = store
        self._processor = processor
        self._notifications = notifications
        self._fee_percent = fee_percent
        self._hold_timeout = hold_timeout

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def _load(self, payment_id: str) -> Payment:
        if not payment_id or not payment_id.strip():
            raise ValidationError("Не указан ID платежа")
        payment = await self._store.get_payment(payment_id)
        if payment is None:
            raise NotFoundError(
                f"Платёж {payment_id} не найден",
                code=ErrorCode.PAYMENT_NOT_FOUND,
                details={"payment_id": payment_id},
            )
        return payment

    async def _load_escrow(self, payment: Payment) -> Escrow:
        escrow = await self._store.get_escrow_for_payment(payment.id)
        if escrow is None:
            # Платёж в эскроу всегда создаётся вместе со строкой эскроу
            raise NotFoundError(
                f"Эскроу для платежа {payment.id} не найдено",
                code=ErrorCode.PAYMENT_NOT_FOUND,
                details={"payment_id": payment.id},
            )
        return escrow

    @staticmethod
    def _ensure_party(payment: Payment, actor: Actor) -> None:
        if not actor.is_admin and not payment.involves(actor.user_id):
            raise ValidationError(
                f"Пользователь {actor.user_id} не является стороной платежа {payment.id}",
                code=ErrorCode.FORBIDDEN_ACTOR,
                details={"payment_id": payment.id, "user_id": actor.user_id},
            )

    @operation
    async def get_payment(self, payment_id: str, actor: Actor) -> Payment:
        payment = await self._load(payment_id)
        self._ensure_party(payment, actor)
        return payment

    @operation
    async def get_escrow(self, payment_id: str, actor: Actor) -> Escrow:
        payment = await self._load(payment_id)
        self._ensure_party(payment, actor)
        return await self._load_escrow(payment)

    @operation
    async def payment_history(self, user_id: int, actor: Actor, limit: int = 50) -> list[Payment]:
        """Платежи пользователя (как плательщика и как получателя), новые первыми."""
        if not actor.is_admin and actor.user_id != user_id:
            raise ValidationError(
                "Историю платежей может смотреть только владелец или администратор",
                code=ErrorCode.FORBIDDEN_ACTOR,
            )
        if limit <= 0:
            raise ValidationError("limit должен быть положительным", details={"limit": limit})
        return await self._store.list_payments_for_user(user_id, limit=limit)

    # =========================================================================
    # Created -> HeldInEscrow
    # =========================================================================

    @operation
    async def open_hold(
        self,
        request_id: str,
        offer_id: str,
        payer_id: int,
        payee_id: int,
        amount: Decimal,
        currency: str,
    ) -> Payment:
        """
        Удерживает средства плательщика и создаёт платёж в статусе HeldInEscrow.

        Вызывается координатором сразу после фиксации сопоставления.
        Строки платежа и эскроу записываются одним пакетом только после
        успешного удержания у процессора.
        """
        if amount is None or Decimal(amount) <= 0:
            raise ValidationError("Сумма удержания должна быть положительной", details={"amount": str(amount)})

        amount = quantize_money(amount)
        payment = Payment(
            request_id=request_id,
            offer_id=offer_id,
            payer_id=payer_id,
            payee_id=payee_id,
            amount=amount,
            currency=currency,
            platform_fee=calculate_platform_fee(amount, self._fee_percent),
        )
        PaymentStateMachine.ensure(payment.status, PaymentStatus.HELD_IN_ESCROW, payment.id)

        try:
            reference = await asyncio.wait_for(
                self._processor.authorize_hold(
                    amount=amount,
                    currency=currency,
                    payer_id=payer_id,
                    payee_id=payee_id,
                    idempotency_key=payment.id,
                ),
                timeout=self._hold_timeout,
            )
        except asyncio.TimeoutError as e:
            await log_error(f"Удержание для платежа {payment.id} не завершилось за {self._hold_timeout} с")
            raise ExternalServiceError(
                "Платёжный процессор не подтвердил удержание вовремя",
                code=ErrorCode.PROCESSOR_TIMEOUT,
                details={"payment_id": payment.id},
            ) from e

        now = utc_now()
        held = payment.model_copy(update={"status": PaymentStatus.HELD_IN_ESCROW, "created_at": now})
        escrow = Escrow(
            payment_id=held.id,
            amount=held.amount,
            currency=held.currency,
            processor_reference=reference,
            created_at=now,
        )

        try:
            created, _ = await self._store.apply([
                Insert(EntityKind.PAYMENT, held),
                Insert(EntityKind.ESCROW, escrow),
            ])
        except Exception:
            # Средства удержаны, но строка не записана: возвращаем деньги
            await log_error(f"Не удалось записать платёж {held.id}, отменяем удержание {reference}")
            try:
                await self._processor.refund(reference)
            except ExternalServiceError as refund_error:
                await log_error(f"Удержание {reference} осталось у процессора: {refund_error.message}")
            raise

        await log_info(
            f"Платёж {held.id}: {held.amount} {held.currency} удержан в эскроу "
            f"(запрос {request_id}, предложение {offer_id})"
        )
        self._notify(created, PaymentStatus.HELD_IN_ESCROW)  # type: ignore[arg-type]
        return created  # type: ignore[return-value]

    # =========================================================================
    # HeldInEscrow -> Released / Refunded
    # =========================================================================

    @operation
    async def mark_completed(self, payment_id: str, actor: Actor) -> Payment:
        """
        Подтверждает оказание услуги и выплачивает средства получателю.

        Повторный вызов для уже выплаченного платежа возвращает его без
        обращения к процессору.
        """
        payment = await self._load(payment_id)
        self._ensure_party(payment, actor)

        if payment.status == PaymentStatus.RELEASED:
            await log_info(f"Платёж {payment.id} уже выплачен, повторный вызов")
            return payment

        self._ensure_not_claimed(payment)
        PaymentStateMachine.ensure(payment.status, PaymentStatus.RELEASED, payment.id)

        return await self._transition_via_processor(
            payment,
            PendingOperation.RELEASE,
            PaymentStatus.RELEASED,
            self._processor.release,
        )

    @operation
    async def refund(self, payment_id: str, actor: Actor) -> Payment:
        """
        Возврат удержания плательщику при отмене сопоставления.

        Вызывается только из MatchCoordinator.cancel_match, который после
        возврата освобождает запрос и предложение. Отдельного HTTP-маршрута нет.

        Повторный вызов для уже возвращённого платежа возвращает его без
        обращения к процессору.
        """
        payment = await self._load(payment_id)
        self._ensure_party(payment, actor)

        if payment.status == PaymentStatus.REFUNDED:
            await log_info(f"Платёж {payment.id} уже возвращён, повторный вызов")
            return payment

        self._ensure_not_claimed(payment)
        # Возврат из Disputed возможен только через разрешение спора
        PaymentStateMachine.require_source(payment.status, PaymentStatus.HELD_IN_ESCROW, payment.id, "возврат")
        PaymentStateMachine.ensure(payment.status, PaymentStatus.REFUNDED, payment.id)

        return await self._transition_via_processor(
            payment,
            PendingOperation.REFUND,
            PaymentStatus.REFUNDED,
            self._processor.refund,
        )

    # =========================================================================
    # ВЫЗОВЫ РАЗРЕШИТЕЛЯ СПОРОВ
    # =========================================================================

    async def prepare_dispute(self, payment: Payment) -> ConditionalUpdate:
        """
        Условная запись HeldInEscrow -> Disputed для пакета открытия спора.

        Raises:
            ConflictError: по платежу идёт выплата или возврат
            StateTransitionError: платёж не в эскроу
        """
        self._ensure_not_claimed(payment)
        PaymentStateMachine.ensure(payment.status, PaymentStatus.DISPUTED, payment.id)
        return update_of(payment, EntityKind.PAYMENT, status=PaymentStatus.DISPUTED)

    def notify_disputed(self, payment: Payment) -> None:
        self._notify(payment, PaymentStatus.DISPUTED)

    async def settle_dispute(
        self,
        payment_id: str,
        target: PaymentStatus,
        extra_operations: Sequence[WriteOperation] = (),
    ) -> Payment:
        """
        Disputed -> Released / Refunded по решению администратора.

        Args:
            payment_id: ID платежа
            target: RELEASED или REFUNDED
            extra_operations: Записи, фиксируемые в одном пакете с платежом
                (закрытие спора)
        """
        payment = await self._load(payment_id)
        self._ensure_not_claimed(payment)
        PaymentStateMachine.require_source(payment.status, PaymentStatus.DISPUTED, payment.id, "урегулирование спора")
        PaymentStateMachine.ensure(payment.status, target, payment.id)

        call = self._processor.release if target == PaymentStatus.RELEASED else self._processor.refund
        return await self._transition_via_processor(
            payment,
            PendingOperation.SETTLE,
            target,
            call,
            extra_operations=extra_operations,
        )

    # =========================================================================
    # ВНУТРЕННЕЕ
    # =========================================================================

    @staticmethod
    def _ensure_not_claimed(payment: Payment) -> None:
        if payment.pending_operation is not None:
            raise ConflictError(
                f"По платежу {payment.id} уже выполняется операция {payment.pending_operation.value}",
                code=ErrorCode.OPERATION_IN_PROGRESS,
                details={"payment_id": payment.id, "pending": payment.pending_operation.value},
            )

    async def _transition_via_processor(
        self,
        payment: Payment,
        pending: PendingOperation,
        target: PaymentStatus,
        processor_call: Callable[[str], Awaitable[None]],
        extra_operations: Sequence[WriteOperation] = (),
    ) -> Payment:
        """
        Захват -> вызов процессора -> финальная запись.

        Если процессор отказал, захват снимается, статус не меняется.
        """
        escrow = await self._load_escrow(payment)

        try:
            (claimed,) = await self._store.apply([
                update_of(payment, EntityKind.PAYMENT, pending_operation=pending),
            ])
        except ConflictError:
            current = await self._store.get_payment(payment.id)
            if current is not None and current.status == target and current.pending_operation is None:
                # Конкурентный вызов уже довёл платёж до того же состояния
                return current
            raise

        try:
            await processor_call(escrow.processor_reference)
        except BaseException as e:
            # Отмена задачи тоже снимает захват
            await log_warning(
                f"Процессор отказал для платежа {payment.id} ({pending.value}): {e!r}. Снимаем захват"
            )
            await asyncio.shield(self._store.apply([
                update_of(claimed, EntityKind.PAYMENT, pending_operation=None),
            ]))
            raise

        now = utc_now()
        try:
            results = await self._store.apply([
                update_of(claimed, EntityKind.PAYMENT, status=target, pending_operation=None, completed_at=now),
                update_of(escrow, EntityKind.ESCROW, status=_ESCROW_STATUS_FOR[target], released_at=now),
                *extra_operations,
            ])
        except Exception:
            # Деньги уже перемещены, захват остаётся для ручной сверки
            await log_error(
                f"Платёж {payment.id}: процессор выполнил {pending.value}, но запись статуса не удалась",
                exc_info=True,
            )
            raise
        final: Payment = results[0]  # type: ignore[assignment]

        await log_info(f"Платёж {final.id}: {payment.status.value} -> {target.value}")
        self._notify(final, target)
        return final

    def _notify(self, payment: Payment, status: PaymentStatus) -> None:
        self._notifications.dispatch(
            (payment.payer_id, payment.payee_id),
            _EVENT_FOR[status],
            {
                "payment_id": payment.id,
                "request_id": payment.request_id,
                "amount": str(payment.amount),
                "currency": payment.currency,
                "status": payment.status.value,
            },
        )
