# tests/common/test_constants.py
"""
Тесты для модуля констант.
"""

import pytest

from src.common.constants import (
    DisputeOutcome,
    DisputeStatus,
    EntityKind,
    PaymentStatus,
    ServiceCategory,
    TypeMsg,
    UserRole,
)


class TestTypeMsg:
    """Тесты для enum TypeMsg."""

    def test_type_msg_values(self) -> None:
        """Проверяет значения типов сообщений."""
        assert TypeMsg.DEBUG.value == "debug"
        assert TypeMsg.INFO.value == "info"
        assert TypeMsg.WARNING.value == "warning"
        assert TypeMsg.ERROR.value == "error"
        assert TypeMsg.CRITICAL.value == "critical"

    def test_type_msg_is_str_enum(self) -> None:
        assert isinstance(TypeMsg.DEBUG, str)
        assert TypeMsg.INFO == "info"


class TestUserRole:
    """Тесты для enum UserRole."""

    def test_roles(self) -> None:
        assert [role.value for role in UserRole] == ["user", "admin"]

    def test_from_header_value(self) -> None:
        assert UserRole("admin") is UserRole.ADMIN


class TestPaymentStatus:
    """Тесты для enum PaymentStatus."""

    def test_all_statuses_exist(self) -> None:
        assert {status.value for status in PaymentStatus} == {
            "created",
            "held_in_escrow",
            "released",
            "refunded",
            "disputed",
        }


class TestDisputeEnums:
    """Тесты для статусов и итогов спора."""

    def test_every_outcome_is_a_status(self) -> None:
        """Итог спора напрямую становится его статусом."""
        for outcome in DisputeOutcome:
            assert DisputeStatus(outcome.value).value == outcome.value

    @pytest.mark.parametrize("status", [DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW])
    def test_active_statuses_are_not_outcomes(self, status) -> None:
        with pytest.raises(ValueError):
            DisputeOutcome(status.value)


class TestMisc:
    def test_categories(self) -> None:
        assert ServiceCategory("flight_companion") is ServiceCategory.FLIGHT_COMPANION
        assert ServiceCategory("pickup") is ServiceCategory.PICKUP

    def test_entity_kinds_cover_catalog(self) -> None:
        assert len(list(EntityKind)) == 5
