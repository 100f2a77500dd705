# src/core/notifications/__init__.py
"""
Домен уведомлений.
Фоновая отправка уведомлений сторонам сделки.
"""

from src.core.notifications.gateway import NotificationGateway
from src.core.notifications.service import NotificationDispatcher

__all__ = [
    "NotificationGateway",
    "NotificationDispatcher",
]
