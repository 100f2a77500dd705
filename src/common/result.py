# src/common/result.py
"""
Результат публичной операции.

Публичные методы сервисов возвращают OperationResult: либо обновлённую
сущность, либо типизированную ошибку. Внутри сервисы бросают DomainError,
декоратор @operation превращает их в результат.
"""

from __future__ import annotations

import functools
from typing import Any, Awaitable, Callable, Generic, TypeVar

from pydantic import BaseModel, PrivateAttr

from src.common.errors import (
    ConflictError,
    DomainError,
    ErrorCode,
    ErrorKind,
    ExternalServiceError,
    NotFoundError,
    StateTransitionError,
    ValidationError,
)


T = TypeVar("T")

_ERROR_CLASSES: dict[ErrorKind, type[DomainError]] = {
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.CONFLICT: ConflictError,
    ErrorKind.STATE_TRANSITION: StateTransitionError,
    ErrorKind.EXTERNAL_SERVICE: ExternalServiceError,
}


class ErrorInfo(BaseModel):
    """Сериализуемое описание ошибки."""

    kind: ErrorKind
    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] | None = None

    @classmethod
    def from_error(cls, error: DomainError) -> "ErrorInfo":
        return cls(
            kind=error.kind,
            code=error.code,
            message=error.message,
            retryable=error.retryable,
            details=error.details or None,
        )

    def to_exception(self) -> DomainError:
        error_cls = _ERROR_CLASSES[self.kind]
        return error_cls(self.message, code=self.code, details=self.details)


class OperationResult(BaseModel, Generic[T]):
    """Успешное значение либо ошибка."""

    ok: bool
    value: T | None = None
    error: ErrorInfo | None = None

    _exception: DomainError | None = PrivateAttr(default=None)

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: DomainError) -> "OperationResult[T]":
        result = cls(ok=False, error=ErrorInfo.from_error(error))
        result._exception = error
        return result

    def unwrap(self) -> T:
        """
        Возвращает значение или бросает исходную ошибку.

        Используется при композиции сервисов, когда ошибка вложенной
        операции должна прервать внешнюю.
        """
        if self.ok:
            return self.value  # type: ignore[return-value]
        if self._exception is not None:
            raise self._exception
        assert self.error is not None
        raise self.error.to_exception()


def operation(
    func: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[OperationResult[T]]]:
    """
    Декоратор публичной операции сервиса.

    DomainError превращается в OperationResult.failure.
    Любое другое исключение считается сбоем: логируется и пробрасывается.
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> OperationResult[T]:
        from src.common.logger import log_error, log_warning

        try:
            value = await func(*args, **kwargs)
        except DomainError as e:
            await log_warning(
                f"Операция {func.__qualname__} отклонена: {e.code.value} ({e.message})",
                extra={"error_kind": e.kind.value, "error_code": e.code.value},
            )
            return OperationResult.failure(e)
        except Exception as e:
            await log_error(f"Сбой операции {func.__qualname__}: {e}", exc_info=True)
            raise
        return OperationResult.success(value)

    return wrapper
