# src/core/__init__.py
"""
Доменный слой (Core Domain).
Чистая бизнес-логика, независимая от инфраструктуры.

Подпакеты: catalog, matching, escrow, disputes, notifications.
"""
