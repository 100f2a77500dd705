# tests/core/test_state_machines.py
"""
Тесты для машин состояний платежа и спора.
"""

import pytest

from src.common.constants import DisputeOutcome, DisputeStatus, PaymentStatus
from src.common.errors import StateTransitionError
from src.core.disputes.state_machine import DisputeStateMachine
from src.core.escrow.state_machine import PaymentStateMachine


class TestPaymentStateMachine:
    """Тесты для PaymentStateMachine."""

    @pytest.mark.parametrize(
        "current, new",
        [
            (PaymentStatus.CREATED, PaymentStatus.HELD_IN_ESCROW),
            (PaymentStatus.HELD_IN_ESCROW, PaymentStatus.RELEASED),
            (PaymentStatus.HELD_IN_ESCROW, PaymentStatus.REFUNDED),
            (PaymentStatus.HELD_IN_ESCROW, PaymentStatus.DISPUTED),
            (PaymentStatus.DISPUTED, PaymentStatus.RELEASED),
            (PaymentStatus.DISPUTED, PaymentStatus.REFUNDED),
        ],
    )
    def test_allowed(self, current, new) -> None:
        assert PaymentStateMachine.can_transition(current, new)

    @pytest.mark.parametrize(
        "current, new",
        [
            (PaymentStatus.CREATED, PaymentStatus.RELEASED),
            (PaymentStatus.RELEASED, PaymentStatus.REFUNDED),
            (PaymentStatus.REFUNDED, PaymentStatus.RELEASED),
            (PaymentStatus.RELEASED, PaymentStatus.DISPUTED),
            (PaymentStatus.DISPUTED, PaymentStatus.HELD_IN_ESCROW),
            (PaymentStatus.DISPUTED, PaymentStatus.DISPUTED),
        ],
    )
    def test_forbidden(self, current, new) -> None:
        assert not PaymentStateMachine.can_transition(current, new)

    def test_final_statuses_have_no_exits(self) -> None:
        assert PaymentStateMachine.ALLOWED_TRANSITIONS[PaymentStatus.RELEASED] == []
        assert PaymentStateMachine.ALLOWED_TRANSITIONS[PaymentStatus.REFUNDED] == []

    def test_unknown_status(self) -> None:
        assert not PaymentStateMachine.can_transition("unknown", "released")

    def test_accepts_raw_values(self) -> None:
        assert PaymentStateMachine.can_transition("held_in_escrow", "disputed")

    def test_ensure_raises_with_details(self) -> None:
        with pytest.raises(StateTransitionError) as exc_info:
            PaymentStateMachine.ensure(PaymentStatus.RELEASED, PaymentStatus.REFUNDED, "pay-1")

        assert exc_info.value.details == {"payment_id": "pay-1", "from": "released", "to": "refunded"}

    def test_require_source(self) -> None:
        PaymentStateMachine.require_source(
            PaymentStatus.HELD_IN_ESCROW, PaymentStatus.HELD_IN_ESCROW, "pay-1", "возврат",
        )
        with pytest.raises(StateTransitionError):
            PaymentStateMachine.require_source(
                PaymentStatus.DISPUTED, PaymentStatus.HELD_IN_ESCROW, "pay-1", "возврат",
            )


class TestDisputeStateMachine:
    """Тесты для DisputeStateMachine."""

    @pytest.mark.parametrize("start", [DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW])
    @pytest.mark.parametrize("outcome", list(DisputeOutcome))
    def test_outcomes_reachable_from_active(self, start, outcome) -> None:
        assert DisputeStateMachine.can_transition(start, DisputeStatus(outcome.value))

    def test_review_only_from_open(self) -> None:
        assert DisputeStateMachine.can_transition(DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW)
        assert not DisputeStateMachine.can_transition(DisputeStatus.UNDER_REVIEW, DisputeStatus.OPEN)

    @pytest.mark.parametrize("final", [DisputeStatus.RESOLVED, DisputeStatus.REFUNDED, DisputeStatus.REJECTED])
    def test_closed_is_final(self, final) -> None:
        assert all(not DisputeStateMachine.can_transition(final, target) for target in DisputeStatus)

    def test_outcome_decides_payment(self) -> None:
        assert DisputeStateMachine.PAYMENT_OUTCOME == {
            DisputeOutcome.RESOLVED: PaymentStatus.RELEASED,
            DisputeOutcome.REJECTED: PaymentStatus.RELEASED,
            DisputeOutcome.REFUNDED: PaymentStatus.REFUNDED,
        }

    def test_ensure_raises(self) -> None:
        with pytest.raises(StateTransitionError):
            DisputeStateMachine.ensure(DisputeStatus.REJECTED, DisputeStatus.REFUNDED, "d-1")
