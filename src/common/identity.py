# src/common/identity.py
"""
Аутентифицированный участник операции.

Идентичность устанавливает внешний провайдер; сюда она приходит
уже проверенной.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from src.common.constants import UserRole


class Actor(BaseModel):
    """Кто выполняет операцию."""

    user_id: int = Field(..., description="ID пользователя")
    role: UserRole = Field(UserRole.USER, description="Роль")

    class Config:
        frozen = True

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
