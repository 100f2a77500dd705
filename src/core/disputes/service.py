# src/core/disputes/service.py
"""
Разрешение споров по платежам.

Open -> UnderReview -> {Resolved, Refunded, Rejected}

Resolved и Rejected выплачивают удержание получателю, Refunded
возвращает его плательщику. Разрешение спора захватывает строку спора
(pending_operation), поэтому два администратора не могут урегулировать
один спор одновременно.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Optional

from src.common.constants import DisputeOutcome, DisputeStatus, EntityKind, PaymentStatus, PendingOperation
from src.common.errors import ConflictError, ErrorCode, NotFoundError, StateTransitionError, ValidationError
from src.common.identity import Actor
from src.common.logger import log_info, log_warning
from src.common.result import operation
from src.common.utils import utc_now
from src.core.catalog.operations import Insert, update_of
from src.core.disputes.models import Dispute
from src.core.disputes.state_machine import DisputeStateMachine
from src.core.escrow.models import Payment
from src.infra.event_bus import EventTypes

if TYPE_CHECKING:
    from src.core.catalog.store import CatalogStore
    from src.core.escrow.service import EscrowLedger
    from src.core.notifications.service import NotificationDispatcher


class DisputeResolver:
    """Владелец строк споров."""

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

    async def _load_payment(self, payment_id: str) -> Payment:
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

    async def _load(self, dispute_id: str) -> Dispute:
        if not dispute_id or not dispute_id.strip():
            raise ValidationError("Не указан ID спора")
        dispute = await self._store.get_dispute(dispute_id)
        if dispute is None:
            raise NotFoundError(
                f"Спор {dispute_id} не найден",
                code=ErrorCode.DISPUTE_NOT_FOUND,
                details={"dispute_id": dispute_id},
            )
        return dispute

    @staticmethod
    def _ensure_admin(actor: Actor) -> None:
        if not actor.is_admin:
            raise ValidationError(
                "Операция доступна только администратору",
                code=ErrorCode.FORBIDDEN_ACTOR,
                details={"user_id": actor.user_id},
            )

    @staticmethod
    def _ensure_not_claimed(dispute: Dispute) -> None:
        if dispute.pending_operation is not None:
            raise ConflictError(
                f"Спор {dispute.id} уже урегулируется",
                code=ErrorCode.OPERATION_IN_PROGRESS,
                details={"dispute_id": dispute.id},
            )

    def _notify(self, payment: Payment, event_type: str, dispute: Dispute) -> None:
        self._notifications.dispatch(
            (payment.payer_id, payment.payee_id),
            event_type,
            {
                "dispute_id": dispute.id,
                "payment_id": payment.id,
                "status": dispute.status.value,
            },
        )

    # =========================================================================
    # ОПЕРАЦИИ
    # =========================================================================

    @operation
    async def open_dispute(
        self,
        payment_id: str,
        actor: Actor,
        reason: str,
        evidence_url: Optional[str] = None,
    ) -> Dispute:
        """
        Открывает спор по платежу в эскроу.

        Платёж переходит в Disputed одним пакетом с созданием спора.
        После выплаты или возврата окно споров закрыто.
        """
        if not reason or not reason.strip():
            raise ValidationError("Причина спора обязательна")

        payment = await self._load_payment(payment_id)
        if not payment.involves(actor.user_id):
            raise ValidationError(
                f"Пользователь {actor.user_id} не является стороной платежа {payment.id}",
                code=ErrorCode.FORBIDDEN_ACTOR,
                details={"payment_id": payment.id, "user_id": actor.user_id},
            )

        if payment.is_final:
            raise StateTransitionError(
                f"Платёж {payment.id} уже {payment.status.value}, спор открыть нельзя",
                details={"payment_id": payment.id, "status": payment.status.value},
            )

        if await self._store.get_active_dispute(payment.id) is not None:
            raise ConflictError(
                f"По платежу {payment.id} уже открыт спор",
                code=ErrorCode.DUPLICATE_DISPUTE,
                details={"payment_id": payment.id},
            )

        payment_update = await self._ledger.prepare_dispute(payment)
        dispute = Dispute(
            payment_id=payment.id,
            raised_by_user_id=actor.user_id,
            reason=reason.strip(),
            evidence_url=evidence_url,
        )

        try:
            updated_payment, created = await self._store.apply([
                payment_update,
                Insert(EntityKind.DISPUTE, dispute),
            ])
        except ConflictError:
            if await self._store.get_active_dispute(payment.id) is not None:
                raise ConflictError(
                    f"По платежу {payment.id} уже открыт спор",
                    code=ErrorCode.DUPLICATE_DISPUTE,
                    details={"payment_id": payment.id},
                )
            raise

        await log_info(f"Открыт спор {dispute.id} по платежу {payment.id} (user={actor.user_id})")
        self._ledger.notify_disputed(updated_payment)  # type: ignore[arg-type]
        self._notify(payment, EventTypes.DISPUTE_OPENED, created)  # type: ignore[arg-type]
        return created  # type: ignore[return-value]

    @operation
    async def begin_review(self, dispute_id: str, actor: Actor) -> Dispute:
        """Администратор берёт спор в работу: Open -> UnderReview."""
        self._ensure_admin(actor)
        dispute = await self._load(dispute_id)
        self._ensure_not_claimed(dispute)
        DisputeStateMachine.ensure(dispute.status, DisputeStatus.UNDER_REVIEW, dispute.id)

        (reviewed,) = await self._store.apply([
            update_of(dispute, EntityKind.DISPUTE, status=DisputeStatus.UNDER_REVIEW, reviewed_at=utc_now()),
        ])

        await log_info(f"Спор {dispute.id} взят на рассмотрение администратором {actor.user_id}")
        payment = await self._store.get_payment(dispute.payment_id)
        if payment is not None:
            self._notify(payment, EventTypes.DISPUTE_UNDER_REVIEW, reviewed)  # type: ignore[arg-type]
        return reviewed  # type: ignore[return-value]

    @operation
    async def resolve(
        self,
        dispute_id: str,
        outcome: DisputeOutcome,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> Dispute:
        """
        Выносит решение по спору и урегулирует платёж.

        Args:
            dispute_id: ID спора
            outcome: Resolved / Rejected (выплата) или Refunded (возврат)
            actor: Администратор
            notes: Заметки администратора
        """
        self._ensure_admin(actor)
        try:
            outcome = DisputeOutcome(outcome)
        except ValueError as e:
            raise ValidationError(
                f"Недопустимое решение по спору: {outcome}",
                details={"outcome": str(outcome), "allowed": [o.value for o in DisputeOutcome]},
            ) from e
        dispute = await self._load(dispute_id)
        self._ensure_not_claimed(dispute)

        target_status = DisputeStatus(outcome.value)
        DisputeStateMachine.ensure(dispute.status, target_status, dispute.id)

        (claimed,) = await self._store.apply([
            update_of(dispute, EntityKind.DISPUTE, pending_operation=PendingOperation.SETTLE),
        ])

        close_dispute = update_of(
            claimed,
            EntityKind.DISPUTE,
            status=target_status,
            pending_operation=None,
            admin_notes=notes,
            resolved_by_admin_id=actor.user_id,
            resolved_at=utc_now(),
        )
        payment_target = DisputeStateMachine.PAYMENT_OUTCOME[outcome]

        try:
            payment = await self._ledger.settle_dispute(
                dispute.payment_id,
                payment_target,
                extra_operations=[close_dispute],
            )
        except BaseException as e:
            await log_warning(f"Урегулирование спора {dispute.id} не удалось: {e!r}. Снимаем захват")
            await asyncio.shield(self._store.apply([
                update_of(claimed, EntityKind.DISPUTE, pending_operation=None),
            ]))
            raise

        resolved = await self._load(dispute.id)
        await log_info(
            f"Спор {dispute.id} закрыт: {target_status.value}, платёж {payment.id} -> "
            f"{PaymentStatus(payment.status).value} (admin={actor.user_id})"
        )
        self._notify(payment, EventTypes.DISPUTE_RESOLVED, resolved)
        return resolved

    @operation
    async def get_dispute(self, dispute_id: str, actor: Actor) -> Dispute:
        dispute = await self._load(dispute_id)
        if actor.is_admin or dispute.raised_by_user_id == actor.user_id:
            return dispute
        payment = await self._store.get_payment(dispute.payment_id)
        if payment is None or not payment.involves(actor.user_id):
            raise ValidationError(
                "Спор доступен только сторонам платежа и администратору",
                code=ErrorCode.FORBIDDEN_ACTOR,
            )
        return dispute

    @operation
    async def list_disputes(self, actor: Actor, status: Optional[DisputeStatus] = None) -> list[Dispute]:
        """Администратор видит все споры, пользователь только открытые им."""
        raised_by = None if actor.is_admin else actor.user_id
        return await self._store.list_disputes(raised_by=raised_by, status=status)
