# src/common/errors.py
"""
Типизированные ошибки доменного слоя.

Каждая ошибка несёт вид (kind), машинный код (code), сообщение
и признак повторяемости операции (retryable).
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Виды ошибок."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STATE_TRANSITION = "state_transition"
    EXTERNAL_SERVICE = "external_service"


class ErrorCode(str, Enum):
    """Машинные коды ошибок."""
    INVALID_ARGUMENT = "invalid_argument"
    INCOMPATIBLE_OFFER = "incompatible_offer"
    FORBIDDEN_ACTOR = "forbidden_actor"

    REQUEST_NOT_FOUND = "request_not_found"
    OFFER_NOT_FOUND = "offer_not_found"
    PAYMENT_NOT_FOUND = "payment_not_found"
    DISPUTE_NOT_FOUND = "dispute_not_found"

    REQUEST_INACTIVE = "request_inactive"
    REQUEST_ALREADY_MATCHED = "request_already_matched"
    OFFER_UNAVAILABLE = "offer_unavailable"
    CONCURRENT_UPDATE = "concurrent_update"
    OPERATION_IN_PROGRESS = "operation_in_progress"
    DUPLICATE_DISPUTE = "duplicate_dispute"

    INVALID_TRANSITION = "invalid_transition"

    PROCESSOR_FAILURE = "processor_failure"
    PROCESSOR_TIMEOUT = "processor_timeout"


class DomainError(Exception):
    """Базовая ошибка доменного слоя."""

    kind: ErrorKind = ErrorKind.VALIDATION
    default_code: ErrorCode = ErrorCode.INVALID_ARGUMENT
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value!r}, message={self.message!r})"


class ValidationError(DomainError):
    """Некорректные входные данные или нарушенные ограничения совместимости."""
    kind = ErrorKind.VALIDATION
    default_code = ErrorCode.INVALID_ARGUMENT


class NotFoundError(DomainError):
    """Сущность не найдена."""
    kind = ErrorKind.NOT_FOUND
    default_code = ErrorCode.REQUEST_NOT_FOUND


class ConflictError(DomainError):
    """Состояние изменилось конкурентно. Можно обновить данные и повторить."""
    kind = ErrorKind.CONFLICT
    default_code = ErrorCode.CONCURRENT_UPDATE
    retryable = True


class StateTransitionError(DomainError):
    """Переход запрещён из текущего состояния."""
    kind = ErrorKind.STATE_TRANSITION
    default_code = ErrorCode.INVALID_TRANSITION


class ExternalServiceError(DomainError):
    """Ошибка или таймаут внешнего сервиса (платёжный процессор)."""
    kind = ErrorKind.EXTERNAL_SERVICE
    default_code = ErrorCode.PROCESSOR_FAILURE
    retryable = True
