# tests/core/test_notifications.py
"""
Тесты для диспетчера уведомлений.
"""

from __future__ import annotations

import asyncio

import pytest

from src.core.notifications.service import NotificationDispatcher


class SlowGateway:
    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.sent: list[int] = []

    async def notify(self, user_id, event_type, payload) -> None:
        await asyncio.sleep(self.delay)
        self.sent.append(user_id)


class TestNotificationDispatcher:
    """Тесты для NotificationDispatcher."""

    @pytest.mark.asyncio
    async def test_dispatch_returns_immediately(self, gateway) -> None:
        dispatcher = NotificationDispatcher(gateway)

        dispatcher.dispatch([1, 2], "match.committed", {"request_id": "r"})

        assert gateway.sent == []
        assert dispatcher.pending == 2
        await dispatcher.drain()
        assert [uid for uid, _, _ in gateway.sent] == [1, 2]
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_duplicate_recipients_notified_once(self, dispatcher, gateway) -> None:
        dispatcher.dispatch([1, 1, 2], "payment.held", {})
        await dispatcher.drain()

        assert gateway.events_for(1) == ["payment.held"]

    @pytest.mark.asyncio
    async def test_gateway_errors_are_swallowed(self, dispatcher, gateway) -> None:
        gateway.error = RuntimeError("smtp down")

        dispatcher.dispatch([1], "payment.held", {})
        await dispatcher.drain()

        assert gateway.sent == []

    @pytest.mark.asyncio
    async def test_slow_gateway_times_out(self) -> None:
        gateway = SlowGateway(delay=1.0)
        dispatcher = NotificationDispatcher(gateway, send_timeout=0.01)

        dispatcher.dispatch([1], "payment.held", {})
        await dispatcher.drain()

        assert gateway.sent == []

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_operation(self, dispatcher, gateway, matched) -> None:
        gateway.error = ConnectionError("broker unreachable")

        match = await matched()
        await dispatcher.drain()

        assert match.payment.id
        assert gateway.sent == []
