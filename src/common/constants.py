# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class UserRole(str, Enum):
    """Роли пользователей."""
    USER = "user"
    ADMIN = "admin"


class ServiceCategory(str, Enum):
    """Категории услуг."""
    FLIGHT_COMPANION = "flight_companion"
    PICKUP = "pickup"


class PaymentStatus(str, Enum):
    """Статусы платежа."""
    CREATED = "created"
    HELD_IN_ESCROW = "held_in_escrow"
    RELEASED = "released"
    REFUNDED = "refunded"
    DISPUTED = "disputed"


class EscrowStatus(str, Enum):
    """Статусы эскроу."""
    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"


class DisputeStatus(str, Enum):
    """Статусы спора."""
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    REFUNDED = "refunded"
    REJECTED = "rejected"


class DisputeOutcome(str, Enum):
    """Итоговые решения по спору."""
    RESOLVED = "resolved"
    REFUNDED = "refunded"
    REJECTED = "rejected"


class PendingOperation(str, Enum):
    """Маркеры захвата строки перед вызовом платёжного процессора."""
    RELEASE = "release"
    REFUND = "refund"
    SETTLE = "settle"


class EntityKind(str, Enum):
    """Типы сущностей хранилища каталога."""
    REQUEST = "request"
    OFFER = "offer"
    PAYMENT = "payment"
    ESCROW = "escrow"
    DISPUTE = "dispute"
