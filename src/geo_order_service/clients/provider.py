"""HTTP client for the remote geospatial data provider."""
from __future__ import annotations

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Any

import aiohttp
import structlog
from pydantic import BaseModel

from geo_order_service.core.exceptions import (
    ProviderRequestError,
    ProviderUnavailableError,
)
from geo_order_service.otel import get_tracer, outbound_span

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)


class PriceEstimate(BaseModel):
    estimated_total: Decimal
    currency: str = "USD"


class ProviderResource(BaseModel):
    """Identifier and initial status returned when the provider accepts a request."""

    id: str
    status: str | None = None


class ProviderStatus(BaseModel):
    status: str


class ProviderClient:
    """Stateless request/response wrapper; every call may raise a :class:`ProviderError`.

    The underlying :class:`aiohttp.ClientSession` is created lazily and closed
    by :meth:`close`, which is registered as an ``on_cleanup`` hook.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str = "",
        timeout_seconds: float = 30.0,
        user_agent: str = "geo-order-service",
        session: aiohttp.ClientSession | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._user_agent = user_agent
        self._session = session

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self, _app: Any = None) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _request(
        self, method: str, path: str, *, payload: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        with outbound_span(
            tracer,
            f"provider {method} {path.split('/')[1]}",
            **{"http.method": method, "http.url": url},
        ) as span:
            try:
                async with self._get_session().request(
                    method, url, json=payload, headers=self._headers()
                ) as resp:
                    span.set_attribute("http.status_code", resp.status)
                    if resp.status >= 500:
                        text = await resp.text()
                        logger.warning(
                            "provider unavailable", method=method, path=path, status=resp.status
                        )
                        raise ProviderUnavailableError(
                            f"Provider returned HTTP {resp.status}: {text[:500]}",
                            status=resp.status,
                        )
                    if resp.status >= 400:
                        text = await resp.text()
                        logger.warning(
                            "provider rejected request", method=method, path=path, status=resp.status
                        )
                        raise ProviderRequestError(
                            f"Provider returned HTTP {resp.status}: {text[:500]}",
                            status=resp.status,
                        )
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError as exc:
                        logger.warning(
                            "provider returned invalid JSON", method=method, path=path, status=resp.status
                        )
                        raise ProviderRequestError(
                            "Provider returned an invalid JSON body", status=resp.status
                        ) from exc
            except asyncio.TimeoutError as exc:
                logger.warning("provider request timed out", method=method, path=path)
                raise ProviderUnavailableError("Provider request timed out") from exc
            except aiohttp.ClientError as exc:
                logger.warning("provider request failed", method=method, path=path, error=str(exc))
                raise ProviderUnavailableError(f"Provider request failed: {exc}") from exc
        if not isinstance(data, dict):
            raise ProviderRequestError("Provider returned a non-object response")
        return data

    async def estimate_price(self, params: dict[str, Any]) -> PriceEstimate:
        data = await self._request("POST", "/pricing/estimate", payload=params)
        total = data.get("estimatedTotal", data.get("price"))
        if total is None:
            raise ProviderRequestError("Price estimate missing estimatedTotal")
        try:
            estimated_total = Decimal(str(total))
        except InvalidOperation as exc:
            raise ProviderRequestError(f"Price estimate is not a number: {total!r}") from exc
        if not estimated_total.is_finite():
            raise ProviderRequestError(f"Price estimate is not a number: {total!r}")
        return PriceEstimate(
            estimated_total=estimated_total,
            currency=data.get("currency") or "USD",
        )

    async def create_order(self, params: dict[str, Any]) -> ProviderResource:
        data = await self._request("POST", "/orders", payload=params)
        return _resource(data, "order")

    async def get_order_status(self, provider_order_id: str) -> ProviderStatus:
        data = await self._request("GET", f"/orders/{provider_order_id}")
        return ProviderStatus(status=str(data.get("status", "")))

    async def setup_monitoring(
        self,
        aoi: dict[str, Any],
        webhook_url: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> ProviderResource:
        payload: dict[str, Any] = {"aoi": aoi}
        if webhook_url:
            payload["webhookUrl"] = webhook_url
        if config:
            payload.update(config)
        data = await self._request("POST", "/monitoring", payload=payload)
        return _resource(data, "monitoring")

    async def get_monitoring_status(self, provider_monitoring_id: str) -> ProviderStatus:
        data = await self._request("GET", f"/monitoring/{provider_monitoring_id}")
        return ProviderStatus(status=str(data.get("status", "")))


def _resource(data: dict[str, Any], kind: str) -> ProviderResource:
    resource_id = data.get("id") or data.get(f"{kind}Id")
    if not resource_id:
        raise ProviderRequestError(f"Provider response missing {kind} id")
    status = data.get("status")
    return ProviderResource(id=str(resource_id), status=str(status) if status else None)
