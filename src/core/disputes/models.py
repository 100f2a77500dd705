# src/core/disputes/models.py
"""
Модель спора по платежу.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from src.common.constants import DisputeStatus, PendingOperation
from src.common.utils import utc_now


class Dispute(BaseModel):
    """Спор по платежу."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="UUID спора")
    payment_id: str = Field(..., description="ID платежа")
    raised_by_user_id: int = Field(..., description="Кто открыл спор")
    reason: str = Field(..., min_length=1, description="Причина")
    evidence_url: Optional[str] = Field(None, description="Ссылка на доказательства")

    status: DisputeStatus = Field(DisputeStatus.OPEN, description="Статус")
    admin_notes: Optional[str] = Field(None, description="Заметки администратора")
    resolved_by_admin_id: Optional[int] = Field(None, description="Кто вынес решение")
    pending_operation: Optional[PendingOperation] = Field(
        None, description="Захват строки на время урегулирования"
    )

    created_at: datetime = Field(default_factory=utc_now, description="Время открытия")
    reviewed_at: Optional[datetime] = Field(None, description="Время начала рассмотрения")
    resolved_at: Optional[datetime] = Field(None, description="Время решения")
    version: int = Field(1, ge=1, description="Версия строки")

    class Config:
        from_attributes = True

    @property
    def is_active(self) -> bool:
        """Спор ещё не закрыт."""
        return self.status in (DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW)
