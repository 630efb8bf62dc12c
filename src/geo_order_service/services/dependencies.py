"""Service wiring and request-scoped accessors for aiohttp handlers."""
from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from aiohttp import web
from asyncpg import Pool  # type: ignore[import-untyped]

from backend_common.middleware.trace import USER_ID_HEADER
from geo_order_service.clients.provider import ProviderClient
from geo_order_service.events.broadcaster import EventBroadcaster
from geo_order_service.events.subscriptions import SubscriptionMultiplexer
from geo_order_service.repositories import (
    MonitoringRepository,
    OrderRepository,
    WebhookDeliveryRepository,
)
from geo_order_service.services.monitoring import MonitoringService
from geo_order_service.services.notifier import EventNotifier
from geo_order_service.services.orders import OrderService
from geo_order_service.services.tasks import BackgroundTaskRunner
from geo_order_service.services.webhooks import WebhookService
from geo_order_service.settings import Settings

CONTAINER_KEY = "geo_order_services"


@dataclass
class ServiceContainer:
    """Process-wide collaborators shared by every request."""

    broadcaster: EventBroadcaster
    multiplexer: SubscriptionMultiplexer
    runner: BackgroundTaskRunner
    webhook_runner: BackgroundTaskRunner
    provider: ProviderClient
    orders: OrderService
    monitoring: MonitoringService
    webhooks: WebhookService
    order_repository: OrderRepository
    monitoring_repository: MonitoringRepository
    delivery_repository: WebhookDeliveryRepository

    async def drain(self) -> None:
        """Wait for provider sync and the webhook deliveries it schedules."""
        while self.runner.pending or self.webhook_runner.pending:
            await self.runner.drain()
            await self.webhook_runner.drain()

    async def shutdown(self) -> None:
        await self.multiplexer.close_all()
        await self.runner.stop()
        await self.webhook_runner.stop()
        await self.webhooks.close()
        await self.provider.close()


def build_container(
    settings: Settings,
    *,
    order_repository: OrderRepository,
    monitoring_repository: MonitoringRepository,
    delivery_repository: WebhookDeliveryRepository,
    provider: ProviderClient | None = None,
    webhooks: WebhookService | None = None,
) -> ServiceContainer:
    broadcaster = EventBroadcaster(max_subscribers=settings.event_max_subscribers)
    multiplexer = SubscriptionMultiplexer(
        broadcaster,
        heartbeat_seconds=settings.sse_heartbeat_seconds,
        queue_size=settings.subscription_queue_size,
    )
    runner = BackgroundTaskRunner(
        max_concurrency=settings.background_max_concurrency,
        failure_history=settings.background_failure_history,
    )
    # a delivery holds its slot through every backoff sleep
    webhook_runner = BackgroundTaskRunner(
        max_concurrency=settings.webhook_max_concurrency,
        failure_history=settings.background_failure_history,
    )
    if provider is None:
        provider = ProviderClient(
            str(settings.provider_api_url),
            api_key=settings.provider_api_key,
            timeout_seconds=settings.provider_timeout_seconds,
            user_agent=settings.provider_user_agent,
        )
    if webhooks is None:
        webhooks = WebhookService(
            delivery_repository,
            order_repository,
            monitoring_repository,
            timeout_seconds=settings.webhook_timeout_seconds,
            max_retries=settings.webhook_max_retries,
            retry_delay_seconds=settings.webhook_retry_delay_seconds,
            user_agent=settings.webhook_user_agent,
        )
    notifier = EventNotifier(broadcaster, webhooks, webhook_runner)
    return ServiceContainer(
        broadcaster=broadcaster,
        multiplexer=multiplexer,
        runner=runner,
        webhook_runner=webhook_runner,
        provider=provider,
        orders=OrderService(order_repository, provider, notifier, runner),
        monitoring=MonitoringService(monitoring_repository, provider, notifier, runner),
        webhooks=webhooks,
        order_repository=order_repository,
        monitoring_repository=monitoring_repository,
        delivery_repository=delivery_repository,
    )


def build_pool_container(settings: Settings, pool: Pool) -> ServiceContainer:
    return build_container(
        settings,
        order_repository=OrderRepository(pool),
        monitoring_repository=MonitoringRepository(pool),
        delivery_repository=WebhookDeliveryRepository(pool),
    )


def get_container(request_or_app: web.Request | web.Application) -> ServiceContainer:
    app = request_or_app.app if isinstance(request_or_app, web.Request) else request_or_app
    container = app.get(CONTAINER_KEY)
    if container is None:
        raise web.HTTPServiceUnavailable(text="Service is not ready")
    return container


def get_order_service(request: web.Request) -> OrderService:
    return get_container(request).orders


def get_monitoring_service(request: web.Request) -> MonitoringService:
    return get_container(request).monitoring


def get_webhook_service(request: web.Request) -> WebhookService:
    return get_container(request).webhooks


async def require_current_user(request: web.Request) -> UUID:
    """Owner id from the gateway-provided ``X-User-Id`` header."""
    user_header = request.headers.get(USER_ID_HEADER)
    if user_header is None:
        raise web.HTTPUnauthorized(reason=f"Header {USER_ID_HEADER} is required")
    try:
        return UUID(user_header)
    except ValueError as exc:
        raise web.HTTPBadRequest(text=f"Invalid {USER_ID_HEADER}") from exc
