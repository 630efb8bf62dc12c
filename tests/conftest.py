from __future__ import annotations

from pathlib import Path
from uuid import UUID, uuid4

import asyncpg
import pytest
from aiohttp import web
from testsuite.databases.pgsql import discover

from geo_order_service.main import create_app
from geo_order_service.services.dependencies import ServiceContainer, build_container
from geo_order_service.services.webhooks import WebhookService
from geo_order_service.settings import Settings

from tests.fakes import (
    FakeDeliveryRepository,
    FakeMonitoringRepository,
    FakeOrderRepository,
    FakeProviderClient,
)

pytest_plugins = (
    "testsuite.pytest_plugin",
    "testsuite.databases.pgsql.pytest_plugin",
)

PG_SCHEMAS_PATH = Path(__file__).parent / "schemas" / "postgresql"

VALID_POLYGON = {
    "type": "Polygon",
    "coordinates": [[[-122.5, 37.7], [-122.3, 37.7], [-122.3, 37.8], [-122.5, 37.8], [-122.5, 37.7]]],
}


class SleepRecorder:
    """Replaces ``asyncio.sleep`` in the webhook pipeline; records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class HookRecorder:
    """Local webhook target; answers with scripted statuses, then 200."""

    def __init__(self):
        self.requests: list[dict] = []
        self.statuses: list[int] = []
        self.url = ""

    async def handle(self, request: web.Request) -> web.Response:
        self.requests.append({"headers": dict(request.headers), "body": await request.json()})
        status = self.statuses.pop(0) if self.statuses else 200
        return web.Response(status=status, text="ok" if status < 400 else "nope")


@pytest.fixture(scope="session")
def pgsql_local(pgsql_local_create):
    databases = discover.find_schemas(
        service_name=None,
        schema_dirs=[PG_SCHEMAS_PATH],
    )
    return pgsql_local_create(list(databases.values()))


@pytest.fixture
async def db_pool(pgsql):
    """asyncpg pool on the testsuite PostgreSQL database built from migrations/."""
    conninfo = pgsql["geo_order_service"].conninfo
    pool = await asyncpg.create_pool(dsn=conninfo.get_uri())
    try:
        yield pool
    finally:
        await pool.close()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        webhook_max_retries=3,
        webhook_retry_delay_seconds=1.0,
        webhook_timeout_seconds=2.0,
        sse_heartbeat_seconds=30.0,
        event_max_subscribers=100,
    )


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def other_owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def order_repo() -> FakeOrderRepository:
    return FakeOrderRepository()


@pytest.fixture
def delivery_repo(order_repo) -> FakeDeliveryRepository:
    return FakeDeliveryRepository(orders=order_repo.items)


@pytest.fixture
def monitoring_repo(delivery_repo) -> FakeMonitoringRepository:
    repo = FakeMonitoringRepository(deliveries=delivery_repo)
    delivery_repo.monitoring = repo.items
    return repo


@pytest.fixture
def provider() -> FakeProviderClient:
    return FakeProviderClient()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
async def webhook_service(test_settings, delivery_repo, order_repo, monitoring_repo, sleeper):
    service = WebhookService(
        delivery_repo,
        order_repo,
        monitoring_repo,
        timeout_seconds=test_settings.webhook_timeout_seconds,
        max_retries=test_settings.webhook_max_retries,
        retry_delay_seconds=test_settings.webhook_retry_delay_seconds,
        user_agent="geo-order-service-tests/1.0",
        sleep=sleeper,
    )
    yield service
    await service.close()


@pytest.fixture
async def container(
    test_settings, order_repo, monitoring_repo, delivery_repo, provider, webhook_service
) -> ServiceContainer:
    built = build_container(
        test_settings,
        order_repository=order_repo,
        monitoring_repository=monitoring_repo,
        delivery_repository=delivery_repo,
        provider=provider,
        webhooks=webhook_service,
    )
    yield built
    await built.runner.stop(timeout=1.0)
    await built.webhook_runner.stop(timeout=1.0)


@pytest.fixture
async def hook_server(aiohttp_server) -> HookRecorder:
    recorder = HookRecorder()
    app = web.Application()
    app.router.add_post("/hook", recorder.handle)
    server = await aiohttp_server(app)
    recorder.url = str(server.make_url("/hook"))
    return recorder


@pytest.fixture
def capture_events(container):
    """Collect (event_type, data) published to an owner for the given event type."""

    def _capture(owner: UUID, event_type: str) -> list:
        received: list = []
        container.broadcaster.subscribe(
            container.broadcaster.topic_for(event_type, owner),
            lambda et, data: received.append((et, data)),
        )
        return received

    return _capture


@pytest.fixture
async def service_client(aiohttp_client, container):
    """Client for calling the service API over the in-memory collaborators."""
    app = create_app(container=container)
    return await aiohttp_client(app)
