# src/core/disputes/state_machine.py
"""
Машина состояний спора.
"""

from __future__ import annotations

from src.common.constants import DisputeOutcome, DisputeStatus, PaymentStatus
from src.common.errors import StateTransitionError


class DisputeStateMachine:
    ALLOWED_TRANSITIONS = {
        DisputeStatus.OPEN: [
            DisputeStatus.UNDER_REVIEW,
            DisputeStatus.RESOLVED,
            DisputeStatus.REFUNDED,
            DisputeStatus.REJECTED,
        ],
        DisputeStatus.UNDER_REVIEW: [
            DisputeStatus.RESOLVED,
            DisputeStatus.REFUNDED,
            DisputeStatus.REJECTED,
        ],
        DisputeStatus.RESOLVED: [],
        DisputeStatus.REFUNDED: [],
        DisputeStatus.REJECTED: [],
    }

    # Итог спора определяет судьбу удержанных средств
    PAYMENT_OUTCOME = {
        DisputeOutcome.RESOLVED: PaymentStatus.RELEASED,
        DisputeOutcome.REJECTED: PaymentStatus.RELEASED,
        DisputeOutcome.REFUNDED: PaymentStatus.REFUNDED,
    }

    @staticmethod
    def can_transition(current_status: str, new_status: str) -> bool:
        try:
            curr = DisputeStatus(current_status)
            new = DisputeStatus(new_status)
        except ValueError:
            return False
        return new in DisputeStateMachine.ALLOWED_TRANSITIONS.get(curr, [])

    @staticmethod
    def ensure(current_status: DisputeStatus, new_status: DisputeStatus, dispute_id: str = "") -> None:
        if not DisputeStateMachine.can_transition(current_status, new_status):
            raise StateTransitionError(
                f"Спор {dispute_id}: переход {DisputeStatus(current_status).value} -> "
                f"{DisputeStatus(new_status).value} запрещён",
                details={
                    "dispute_id": dispute_id,
                    "from": DisputeStatus(current_status).value,
                    "to": DisputeStatus(new_status).value,
                },
            )
