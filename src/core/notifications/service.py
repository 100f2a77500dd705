# src/core/notifications/service.py
"""
Диспетчер уведомлений.

Уведомления отправляются в фоне и никогда не влияют на результат
операции, которая их породила.
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterable

from src.common.logger import log_debug, log_error, log_warning
from src.core.notifications.gateway import NotificationGateway


class NotificationDispatcher:
    """
    Отправляет уведомления через шлюз в фоновых задачах.

    Ошибки и таймауты шлюза логируются и подавляются.
    """

    def __init__(self, gateway: NotificationGateway, send_timeout: float = 10.0) -> None:
        """
        Args:
            gateway: Шлюз доставки
            send_timeout: Максимальное время одной отправки (секунды)
        """
        self._gateway = gateway
        self._send_timeout = send_timeout
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Количество незавершённых отправок."""
        return len(self._tasks)

    def dispatch(self, user_ids: Iterable[int], event_type: str, payload: dict[str, Any]) -> None:
        """
        Планирует отправку уведомления каждому получателю и сразу возвращает управление.

        Args:
            user_ids: Получатели
            event_type: Тип события (EventTypes)
            payload: Данные события
        """
        for user_id in dict.fromkeys(user_ids):
            task = asyncio.create_task(self._send(user_id, event_type, payload))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _send(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None:
        try:
            await asyncio.wait_for(
                self._gateway.notify(user_id, event_type, payload),
                timeout=self._send_timeout,
            )
            await log_debug(f"Уведомление отправлено: user={user_id}, event={event_type}")
        except asyncio.TimeoutError:
            await log_warning(f"Таймаут отправки уведомления: user={user_id}, event={event_type}")
        except Exception as e:
            await log_error(f"Ошибка отправки уведомления user={user_id}, event={event_type}: {e}")

    async def drain(self) -> None:
        """Дожидается завершения всех запланированных отправок."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
