# src/core/notifications/gateway.py
"""
Контракт шлюза уведомлений.
"""

from __future__ import annotations

from typing import Any, Protocol


class NotificationGateway(Protocol):
    """Доставляет уведомление пользователю. Может отказать или зависнуть."""

    async def notify(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None:
        ...
