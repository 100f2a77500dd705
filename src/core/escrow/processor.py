# src/core/escrow/processor.py
"""
Контракт платёжного процессора.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol


class PaymentProcessor(Protocol):
    """
    Внешний процессор, который реально двигает деньги.

    release и refund идемпотентны по ссылке на удержание.
    Ошибки сообщаются через ExternalServiceError.
    """

    async def authorize_hold(
        self,
        amount: Decimal,
        currency: str,
        payer_id: int,
        payee_id: int,
        idempotency_key: str,
    ) -> str:
        """Удерживает средства плательщика. Возвращает ссылку на удержание."""
        ...

    async def release(self, reference: str) -> None:
        """Выплачивает удержанные средства получателю."""
        ...

    async def refund(self, reference: str) -> None:
        """Возвращает удержанные средства плательщику."""
        ...
