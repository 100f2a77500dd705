# src/services/__init__.py
"""
HTTP-сервисы приложения.

- marketplace: публикация запросов и предложений, подбор, эскроу и споры.
  Состояние в PostgreSQL, кэш профилей в Redis, события в RabbitMQ.
"""

__all__: list[str] = []
