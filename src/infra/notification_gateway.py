# src/infra/notification_gateway.py
"""
Шлюз уведомлений поверх шины событий.

Доставку сообщения пользователю выполняет внешний потребитель очереди
notification.send.
"""

from __future__ import annotations

from typing import Any

from src.infra.event_bus import DomainEvent, EventBus, EventTypes


class EventBusNotificationGateway:
    """Публикует запрос на уведомление в RabbitMQ."""

    def __init__(self, event_bus: EventBus) -> None:
        self._event_bus = event_bus

    async def notify(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None:
        """
        Ставит уведомление в очередь.

        Args:
            user_id: Получатель
            event_type: Доменное событие, о котором уведомляем
            payload: Данные для шаблона сообщения
        """
        await self._event_bus.publish(DomainEvent(
            event_type=EventTypes.NOTIFICATION_SEND,
            payload={
                "user_id": user_id,
                "event": event_type,
                "data": payload,
            },
        ))
