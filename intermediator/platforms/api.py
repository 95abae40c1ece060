"""HTTP client for the Plus and Saboritte APIs.

Both platforms share the same auth style: ``email``/``senha`` query
parameters plus a static ``x-Secret`` header. Requests go through a
Playwright ``APIRequestContext``; GETs are retried with linear backoff on
5xx/429 and network errors, the order POST is sent exactly once so a slow
response can never duplicate an order on the target side.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Mapping, Type, TypeVar

from playwright.async_api import APIRequestContext
from playwright.async_api import Error as PlaywrightError
from pydantic import BaseModel, ValidationError

from intermediator.config import PlatformConfig
from intermediator.json_logger import JsonLogger, log_event
from intermediator.platforms.schemas import (
    MenuResponse,
    SaboritteClient,
    SaboritteClientsResponse,
    SaboritteMenuResponse,
    SourceOrder,
    SourceOrdersResponse,
    SubmitResponse,
)

REQUEST_ACCEPT = "application/json, text/plain, */*"
RETRY_BASE_SECONDS = 0.5
ORDERS_PATH = "/pedidos"
MENU_PATH = "/cardapio"
SUBMIT_PATH = "/enviapedido"
CLIENTS_PATH = "/buscar-clientes-sab"
SABORITTE_MENU_PATH = "/cardapio-sab"

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)


class TransportError(RuntimeError):
    """Network or HTTP failure talking to a platform."""

    def __init__(self, message: str, *, status_code: int | None = None, url: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class InvalidResponseError(TransportError):
    """The platform answered but the body is not the documented shape."""


@dataclass
class SubmitOutcome:
    ok: bool
    status_code: int
    data: Any = None
    error: str | None = None


def _is_retryable(status: int) -> bool:
    return status >= 500 or status == 429


class PlatformApi:
    def __init__(
        self,
        request: APIRequestContext,
        *,
        platform: PlatformConfig,
        logger: JsonLogger,
        retry_base_seconds: float = RETRY_BASE_SECONDS,
    ) -> None:
        self.request = request
        self.platform = platform
        self.logger = logger
        self.retry_base_seconds = retry_base_seconds

    @property
    def timeout_ms(self) -> int:
        return self.platform.settings.http_timeout_ms

    @property
    def max_retries(self) -> int:
        return self.platform.settings.http_max_retries

    def _url(self, path: str) -> str:
        return f"{self.platform.credentials.api_url}{path}"

    def _params(self) -> dict[str, str]:
        credentials = self.platform.credentials
        return {"email": credentials.email, "senha": credentials.senha}

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": REQUEST_ACCEPT,
            "Content-Type": "application/json",
            "x-Secret": self.platform.credentials.api_secret,
        }

    async def _get_json(self, path: str) -> Any:
        url = self._url(path)
        last_error: str | None = None
        last_status: int | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self.request.get(
                    url, params=self._params(), headers=self._headers(), timeout=self.timeout_ms
                )
                status = response.status
                if _is_retryable(status):
                    last_status = status
                    last_error = f"http_status_{status}"
                elif status >= 400:
                    self.logger.warn(
                        phase="platform_api",
                        message="platform request rejected",
                        platform=self.platform.name,
                        url=url,
                        attempt=attempt,
                        status_code=status,
                    )
                    raise TransportError(
                        f"{self.platform.name} respondeu HTTP {status}", status_code=status, url=url
                    )
                else:
                    body = await response.text()
                    try:
                        return json.loads(body)
                    except ValueError as exc:
                        raise InvalidResponseError(
                            f"{self.platform.name} retornou resposta não-JSON", status_code=status, url=url
                        ) from exc
            except PlaywrightError as exc:
                last_status = None
                last_error = str(exc)

            self.logger.warn(
                phase="platform_api",
                message="platform request failed; will retry" if attempt < self.max_retries else "platform request failed",
                platform=self.platform.name,
                url=url,
                attempt=attempt,
                error=last_error,
            )
            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_base_seconds * attempt)

        raise TransportError(
            f"Falha ao conectar com {self.platform.name}: {last_error}", status_code=last_status, url=url
        )

    async def _get_model(self, path: str, model: Type[ResponseModel], *, label: str) -> ResponseModel:
        payload = await self._get_json(path)
        if not isinstance(payload, Mapping):
            raise InvalidResponseError(f"resposta de {label} inválida", url=self._url(path))
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise InvalidResponseError(
                f"resposta de {label} inválida: {exc.error_count()} erro(s)", url=self._url(path)
            ) from exc

    async def fetch_orders(self) -> list[SourceOrder]:
        parsed = await self._get_model(ORDERS_PATH, SourceOrdersResponse, label="pedidos")
        log_event(
            logger=self.logger,
            phase="platform_api",
            message="orders fetched",
            platform=self.platform.name,
            order_count=len(parsed.pedidos),
        )
        return parsed.pedidos

    async def fetch_menu(self) -> MenuResponse:
        return await self._get_model(MENU_PATH, MenuResponse, label="cardápio")

    async def fetch_saboritte_menu(self) -> SaboritteMenuResponse:
        return await self._get_model(SABORITTE_MENU_PATH, SaboritteMenuResponse, label="cardápio")

    async def fetch_clients(self) -> list[SaboritteClient]:
        parsed = await self._get_model(CLIENTS_PATH, SaboritteClientsResponse, label="clientes")
        if not parsed.sucesso:
            raise InvalidResponseError("resposta de clientes sem sucesso", url=self._url(CLIENTS_PATH))
        log_event(
            logger=self.logger,
            phase="platform_api",
            message="clients fetched",
            platform=self.platform.name,
            client_count=len(parsed.clientes),
            reported_total=parsed.total_clientes,
        )
        return parsed.clientes

    async def submit_order(self, payload: Mapping[str, Any]) -> SubmitOutcome:
        """POST one order. Network failures raise, HTTP answers are returned as-is."""

        url = self._url(SUBMIT_PATH)
        try:
            response = await self.request.post(
                url,
                params=self._params(),
                headers=self._headers(),
                data=dict(payload),
                timeout=self.timeout_ms,
            )
            body = await response.text()
        except PlaywrightError as exc:
            log_event(
                logger=self.logger,
                phase="platform_api",
                status="error",
                message="order submit failed",
                platform=self.platform.name,
                url=url,
                order_id=payload.get("id"),
                error=str(exc),
            )
            raise TransportError(str(exc), url=url) from exc

        status = response.status
        try:
            data: Any = json.loads(body)
        except ValueError:
            return SubmitOutcome(ok=False, status_code=status, data=None, error=body)

        if not 200 <= status < 300:
            message = (data.get("error") or data.get("mensagem")) if isinstance(data, Mapping) else None
            return SubmitOutcome(ok=False, status_code=status, data=data, error=message or f"HTTP {status}")
        try:
            parsed = SubmitResponse.model_validate(data)
        except ValidationError:
            return SubmitOutcome(ok=False, status_code=status, data=data, error="Erro desconhecido")
        if not parsed.sucesso:
            return SubmitOutcome(ok=False, status_code=status, data=data, error=parsed.mensagem or "Erro desconhecido")
        return SubmitOutcome(ok=True, status_code=status, data=data)
