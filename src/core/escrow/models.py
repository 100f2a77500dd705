# src/core/escrow/models.py
"""
Модели платежей и эскроу.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from src.common.constants import EscrowStatus, PaymentStatus, PendingOperation
from src.common.utils import utc_now


class Payment(BaseModel):
    """Платёж за сопоставленную услугу."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="UUID платежа")
    request_id: str = Field(..., description="ID запроса")
    offer_id: str = Field(..., description="ID предложения")
    payer_id: int = Field(..., description="Плательщик (заказчик)")
    payee_id: int = Field(..., description="Получатель (помощник)")

    amount: Decimal = Field(..., gt=0, description="Сумма")
    currency: str = Field("NZD", description="Валюта")
    platform_fee: Decimal = Field(Decimal("0.00"), ge=0, description="Комиссия платформы")

    status: PaymentStatus = Field(PaymentStatus.CREATED, description="Статус")
    pending_operation: Optional[PendingOperation] = Field(
        None, description="Захват строки на время вызова процессора"
    )

    created_at: datetime = Field(default_factory=utc_now, description="Время создания")
    completed_at: Optional[datetime] = Field(None, description="Время выплаты или возврата")
    version: int = Field(1, ge=1, description="Версия строки")

    class Config:
        from_attributes = True

    @property
    def is_final(self) -> bool:
        return self.status in (PaymentStatus.RELEASED, PaymentStatus.REFUNDED)

    def involves(self, user_id: int) -> bool:
        """Является ли пользователь стороной платежа."""
        return user_id in (self.payer_id, self.payee_id)


class Escrow(BaseModel):
    """Удержание средств у платёжного процессора."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="UUID эскроу")
    payment_id: str = Field(..., description="ID платежа (1:1)")
    amount: Decimal = Field(..., gt=0, description="Удержанная сумма")
    currency: str = Field("NZD", description="Валюта")
    processor_reference: str = Field(..., description="Ссылка процессора на удержание")
    status: EscrowStatus = Field(EscrowStatus.HELD, description="Статус")

    created_at: datetime = Field(default_factory=utc_now, description="Время создания")
    released_at: Optional[datetime] = Field(None, description="Время выплаты или возврата")
    version: int = Field(1, ge=1, description="Версия строки")

    class Config:
        from_attributes = True
