# src/common/utils.py
"""
Мелкие общие функции: время и деньги.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def utc_now() -> datetime:
    """Текущее время в UTC (aware)."""
    return datetime.now(timezone.utc)


def quantize_money(value: Decimal | int | str) -> Decimal:
    """Округляет денежную сумму до центов."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
