# src/common/__init__.py
"""
Общие утилиты: константы, логгер, ошибки и результаты операций.
"""

from src.common.logger import get_logger, log_info, log_error, log_warning, log_debug
from src.common.constants import TypeMsg
from src.common.errors import (
    DomainError,
    ValidationError,
    NotFoundError,
    ConflictError,
    StateTransitionError,
    ExternalServiceError,
    ErrorCode,
    ErrorKind,
)
from src.common.result import OperationResult, ErrorInfo, operation

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "TypeMsg",
    "DomainError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "StateTransitionError",
    "ExternalServiceError",
    "ErrorCode",
    "ErrorKind",
    "OperationResult",
    "ErrorInfo",
    "operation",
]
