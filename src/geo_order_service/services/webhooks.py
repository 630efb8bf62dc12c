"""Webhook delivery pipeline: HTTP POST with bounded retry and a durable ledger."""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List
from uuid import UUID

import aiohttp
import structlog

from geo_order_service.core.exceptions import DeliveryFailedError, NotFoundError
from geo_order_service.domain.dto import DeliveryAttemptDTO, DeliveryCreateDTO
from geo_order_service.domain.enums import DeliveryStatus
from geo_order_service.domain.models import WebhookDelivery
from geo_order_service.otel import get_tracer, outbound_span
from geo_order_service.repositories.monitoring import MonitoringRepository
from geo_order_service.repositories.orders import OrderRepository
from geo_order_service.repositories.webhooks import WebhookDeliveryRepository

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class ResourceRef:
    """Ledger ownership of a delivery. Both ids ``None`` means orphaned."""

    owner_id: UUID | None = None
    order_id: UUID | None = None
    monitoring_id: UUID | None = None


@dataclass(frozen=True)
class RetryPlan:
    entry: WebhookDelivery
    target_url: str


def backoff_seconds(base_delay: float, attempt: int) -> float:
    # attempt is 1-based
    return base_delay * 2 ** (attempt - 1)


def build_body(event_type: str, payload: Any, timestamp: datetime | None = None) -> bytes:
    occurred_at = (timestamp or datetime.now(timezone.utc)).isoformat()
    body = {"event": event_type, "data": payload, "timestamp": occurred_at}
    return json.dumps(body, default=str, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class WebhookService:
    def __init__(
        self,
        repository: WebhookDeliveryRepository,
        order_repository: OrderRepository,
        monitoring_repository: MonitoringRepository,
        *,
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        user_agent: str = "geo-order-service-webhooks",
        session: aiohttp.ClientSession | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._repository = repository
        self._orders = order_repository
        self._monitoring = monitoring_repository
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._retry_delay_seconds = retry_delay_seconds
        self._user_agent = user_agent
        self._session = session
        self._sleep = sleep

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout_seconds)
            )
        return self._session

    async def close(self, _app: Any = None) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _post(self, url: str, event_type: str, body: bytes) -> tuple[bool, str | None]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
        }
        with outbound_span(
            tracer, "webhook POST", **{"http.url": url, "webhook.event_type": event_type}
        ) as span:
            try:
                async with self._get_session().post(
                    url,
                    data=body,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self._timeout_seconds),
                ) as resp:
                    span.set_attribute("http.status_code", resp.status)
                    if 200 <= resp.status < 300:
                        return True, None
                    text = await resp.text()
                    return False, f"HTTP {resp.status}: {text[:2000]}"
            except asyncio.TimeoutError:
                return False, f"Timed out after {self._timeout_seconds}s"
            except aiohttp.ClientError as exc:
                return False, str(exc) or type(exc).__name__

    async def _open_entry(
        self,
        url: str,
        event_type: str,
        payload: Any,
        ref: ResourceRef | None,
        retried_from_id: UUID | None = None,
    ) -> WebhookDelivery:
        ref = ref or ResourceRef()
        return await self._repository.create(
            DeliveryCreateDTO(
                owner_id=ref.owner_id,
                order_id=ref.order_id,
                monitoring_id=ref.monitoring_id,
                event_type=event_type,
                payload=payload,
                target_url=url,
                retried_from_id=retried_from_id,
            )
        )

    async def deliver(
        self,
        url: str,
        event_type: str,
        payload: Any,
        *,
        ref: ResourceRef | None = None,
    ) -> WebhookDelivery:
        """Single delivery attempt. The ledger entry is written whatever the outcome."""
        entry = await self._open_entry(url, event_type, payload, ref)
        ok, error = await self._post(url, event_type, build_body(event_type, payload))
        if ok:
            entry = await self._repository.record_attempt(
                entry.id,
                DeliveryAttemptDTO(
                    status=DeliveryStatus.DELIVERED,
                    retry_count=1,
                    delivered_at=datetime.now(timezone.utc),
                ),
            )
            logger.info("webhook delivered", delivery_id=str(entry.id), event_type=event_type)
            return entry
        entry = await self._repository.record_attempt(
            entry.id,
            DeliveryAttemptDTO(status=DeliveryStatus.FAILED, retry_count=1, last_error=error),
        )
        logger.warning(
            "webhook delivery failed",
            delivery_id=str(entry.id),
            event_type=event_type,
            error=error,
        )
        raise DeliveryFailedError(
            f"Failed to deliver webhook: {error}", delivery_id=entry.id, attempts=1
        )

    async def deliver_with_retry(
        self,
        url: str,
        event_type: str,
        payload: Any,
        *,
        ref: ResourceRef | None = None,
        retried_from_id: UUID | None = None,
    ) -> WebhookDelivery:
        """Deliver with exponential backoff; one ledger entry per attempt sequence.

        Raises :class:`DeliveryFailedError` once ``max_retries`` attempts have
        failed; the entry is then ``failed`` with ``retry_count == max_retries``.
        """
        entry = await self._open_entry(url, event_type, payload, ref, retried_from_id)
        body = build_body(event_type, payload)
        error: str | None = None
        for attempt in range(1, self._max_retries + 1):
            ok, error = await self._post(url, event_type, body)
            if ok:
                entry = await self._repository.record_attempt(
                    entry.id,
                    DeliveryAttemptDTO(
                        status=DeliveryStatus.DELIVERED,
                        retry_count=attempt,
                        delivered_at=datetime.now(timezone.utc),
                    ),
                )
                logger.info(
                    "webhook delivered",
                    delivery_id=str(entry.id),
                    event_type=event_type,
                    attempt=attempt,
                )
                return entry

            logger.warning(
                "webhook attempt failed",
                delivery_id=str(entry.id),
                event_type=event_type,
                attempt=attempt,
                max_retries=self._max_retries,
                error=error,
            )
            if attempt < self._max_retries:
                entry = await self._repository.record_attempt(
                    entry.id,
                    DeliveryAttemptDTO(
                        status=DeliveryStatus.PENDING, retry_count=attempt, last_error=error
                    ),
                )
                await self._sleep(backoff_seconds(self._retry_delay_seconds, attempt))

        entry = await self._repository.record_attempt(
            entry.id,
            DeliveryAttemptDTO(
                status=DeliveryStatus.FAILED,
                retry_count=self._max_retries,
                last_error=error,
            ),
        )
        logger.error(
            "webhook delivery exhausted retries",
            delivery_id=str(entry.id),
            event_type=event_type,
            attempts=self._max_retries,
        )
        raise DeliveryFailedError(
            f"Webhook delivery failed after {self._max_retries} attempts: {error}",
            delivery_id=entry.id,
            attempts=self._max_retries,
        )

    async def resolve_retry(self, delivery_id: UUID, owner_id: UUID) -> RetryPlan:
        """Find the entry and its owning resource's current webhook URL, or raise NotFoundError."""
        entry = await self._repository.get(delivery_id, owner_id)
        if entry.is_orphaned:
            raise NotFoundError("Owning resource no longer exists")
        if entry.order_id is not None:
            resource = await self._orders.get(entry.order_id, owner_id)
        else:
            resource = await self._monitoring.get(entry.monitoring_id, owner_id)
        if not resource.webhook_url:
            raise NotFoundError("Webhook URL not found")
        return RetryPlan(entry=entry, target_url=resource.webhook_url)

    async def run_retry(self, plan: RetryPlan) -> WebhookDelivery:
        """Start a new attempt sequence for ``plan.entry``; flip the original on success."""
        original = plan.entry
        logger.info(
            "webhook manual retry",
            delivery_id=str(original.id),
            event_type=original.event_type,
        )
        delivered = await self.deliver_with_retry(
            plan.target_url,
            original.event_type,
            original.payload,
            ref=ResourceRef(
                owner_id=original.owner_id,
                order_id=original.order_id,
                monitoring_id=original.monitoring_id,
            ),
            retried_from_id=original.id,
        )
        await self._repository.record_attempt(
            original.id,
            DeliveryAttemptDTO(
                status=DeliveryStatus.DELIVERED,
                retry_count=original.retry_count,
                delivered_at=delivered.delivered_at or datetime.now(timezone.utc),
            ),
        )
        return delivered

    async def retry(self, delivery_id: UUID, owner_id: UUID) -> WebhookDelivery:
        plan = await self.resolve_retry(delivery_id, owner_id)
        return await self.run_retry(plan)

    async def get_delivery_status(self, delivery_id: UUID, owner_id: UUID) -> WebhookDelivery:
        return await self._repository.get(delivery_id, owner_id)

    async def list_deliveries(
        self,
        owner_id: UUID,
        *,
        status: DeliveryStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[List[WebhookDelivery], int]:
        return await self._repository.list_by_owner(
            owner_id, status=status, limit=limit, offset=offset
        )
