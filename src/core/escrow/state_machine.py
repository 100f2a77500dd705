# src/core/escrow/state_machine.py
"""
Машина состояний платежа.
"""

from __future__ import annotations

from src.common.constants import PaymentStatus
from src.common.errors import StateTransitionError


class PaymentStateMachine:
    ALLOWED_TRANSITIONS = {
        PaymentStatus.CREATED: [PaymentStatus.HELD_IN_ESCROW],
        PaymentStatus.HELD_IN_ESCROW: [
            PaymentStatus.RELEASED,
            PaymentStatus.REFUNDED,
            PaymentStatus.DISPUTED,
        ],
        PaymentStatus.DISPUTED: [PaymentStatus.RELEASED, PaymentStatus.REFUNDED],
        PaymentStatus.RELEASED: [],
        PaymentStatus.REFUNDED: [],
    }

    @staticmethod
    def can_transition(current_status: str, new_status: str) -> bool:
        try:
            curr = PaymentStatus(current_status)
            new = PaymentStatus(new_status)
        except ValueError:
            return False
        return new in PaymentStateMachine.ALLOWED_TRANSITIONS.get(curr, [])

    @staticmethod
    def require_source(current_status: PaymentStatus, expected: PaymentStatus, payment_id: str, action: str) -> None:
        """Операция допустима только из одного исходного статуса."""
        if current_status != expected:
            raise StateTransitionError(
                f"Платёж {payment_id}: {action} невозможен из статуса {PaymentStatus(current_status).value}",
                details={
                    "payment_id": payment_id,
                    "from": PaymentStatus(current_status).value,
                    "required": expected.value,
                },
            )

    @staticmethod
    def ensure(current_status: PaymentStatus, new_status: PaymentStatus, payment_id: str = "") -> None:
        """Бросает StateTransitionError, если переход запрещён."""
        if not PaymentStateMachine.can_transition(current_status, new_status):
            raise StateTransitionError(
                f"Платёж {payment_id}: переход {PaymentStatus(current_status).value} -> "
                f"{PaymentStatus(new_status).value} запрещён",
                details={
                    "payment_id": payment_id,
                    "from": PaymentStatus(current_status).value,
                    "to": PaymentStatus(new_status).value,
                },
            )
