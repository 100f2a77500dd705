# src/infra/payment_processor.py
"""
HTTP-клиент платёжного процессора.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

import httpx

from src.common.errors import ErrorCode, ExternalServiceError
from src.common.logger import log_error, log_info


class HttpPaymentProcessor:
    """
    Адаптер процессора по HTTP.

    Endpoints процессора:
    - POST /holds - удержать средства, ответ {"reference": "..."}
    - POST /holds/{reference}/release - выплатить получателю
    - POST /holds/{reference}/refund - вернуть плательщику
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 8.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Args:
            base_url: Адрес процессора
            api_key: Ключ API (Bearer)
            timeout: Таймаут HTTP-запроса в секундах
            client: Готовый клиент (для тестов с MockTransport)
        """
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout, headers=headers)

    @classmethod
    def from_settings(cls) -> "HttpPaymentProcessor":
        from src.config import settings

        return cls(
            base_url=settings.payments.PROCESSOR_URL,
            api_key=settings.payments.PROCESSOR_API_KEY,
            timeout=settings.payments.PROCESSOR_TIMEOUT_SECONDS,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, json: dict[str, Any] | None = None, idempotency_key: str | None = None) -> Any:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        try:
            response = await self._client.post(path, json=json, headers=headers)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            await log_error(f"Таймаут платёжного процессора: POST {path}")
            raise ExternalServiceError(
                "Платёжный процессор не ответил вовремя",
                code=ErrorCode.PROCESSOR_TIMEOUT,
                details={"path": path},
            ) from e
        except httpx.HTTPStatusError as e:
            await log_error(f"Платёжный процессор вернул {e.response.status_code}: POST {path}")
            raise ExternalServiceError(
                f"Платёжный процессор отклонил запрос ({e.response.status_code})",
                code=ErrorCode.PROCESSOR_FAILURE,
                details={"path": path, "status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            await log_error(f"Ошибка связи с платёжным процессором: POST {path}: {e}")
            raise ExternalServiceError(
                "Платёжный процессор недоступен",
                code=ErrorCode.PROCESSOR_FAILURE,
                details={"path": path},
            ) from e

        return response.json() if response.content else None

    async def authorize_hold(
        self,
        amount: Decimal,
        currency: str,
        payer_id: int,
        payee_id: int,
        idempotency_key: str,
    ) -> str:
        data = await self._post(
            "/holds",
            json={
                "amount": str(amount),
                "currency": currency,
                "payer_id": payer_id,
                "payee_id": payee_id,
            },
            idempotency_key=idempotency_key,
        )
        reference = (data or {}).get("reference")
        if not reference:
            raise ExternalServiceError(
                "Платёжный процессор не вернул ссылку на удержание",
                code=ErrorCode.PROCESSOR_FAILURE,
            )
        await log_info(f"Процессор удержал {amount} {currency}: {reference}")
        return reference

    async def release(self, reference: str) -> None:
        await self._post(f"/holds/{reference}/release", idempotency_key=f"release:{reference}")
        await log_info(f"Процессор выплатил удержание {reference}")

    async def refund(self, reference: str) -> None:
        await self._post(f"/holds/{reference}/refund", idempotency_key=f"refund:{reference}")
        await log_info(f"Процессор вернул удержание {reference}")
