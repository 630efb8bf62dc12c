"""aiohttp application entrypoint."""
from __future__ import annotations

from pathlib import Path

import structlog
from aiohttp import web

from backend_common.aiohttp_app import add_cors_to_routes, create_base_app
from backend_common.db.migrations import create_migration_runner
from backend_common.db.pool import close_pool, init_pool
from backend_common.logging_config import configure_logging

from geo_order_service.api.router import setup_routes
from geo_order_service.otel import setup_otel, shutdown_otel, tracing_enabled
from geo_order_service.services.dependencies import (
    CONTAINER_KEY,
    ServiceContainer,
    build_pool_container,
)
from geo_order_service.settings import settings
from geo_order_service.workers import build_worker

logger = structlog.get_logger(__name__)

_WORKER_KEY = "geo_order_worker"

MIGRATION_PATHS = [
    Path(__file__).resolve().parent.parent.parent / "migrations",  # /app/migrations in container
    Path("/app/migrations"),
    Path.cwd() / "migrations",
]


async def healthcheck(request: web.Request) -> web.Response:
    container: ServiceContainer | None = request.app.get(CONTAINER_KEY)
    if container is None:
        return web.json_response(
            {"status": "starting", "service": settings.app_name, "env": settings.env},
            status=503,
        )
    return web.json_response(
        {
            "status": "ok",
            "service": settings.app_name,
            "env": settings.env,
            "tracing": tracing_enabled(),
            "background_tasks": container.runner.stats(),
            "webhook_tasks": container.webhook_runner.stats(),
            "subscriptions": {
                "connections": container.multiplexer.active_count,
                "listeners": container.broadcaster.listener_count(),
            },
        }
    )


async def _build_services(app: web.Application) -> None:
    pool = await init_pool(str(settings.database_url), settings.db_pool_size)
    container = build_pool_container(settings, pool)
    app[CONTAINER_KEY] = container
    worker = build_worker(container, settings)
    app[_WORKER_KEY] = worker
    await worker.start(app)
    logger.info("services started", service=settings.app_name)


async def _close_streams(app: web.Application) -> None:
    # open SSE handlers would otherwise hold graceful shutdown until its timeout
    container: ServiceContainer | None = app.get(CONTAINER_KEY)
    if container is not None:
        await container.multiplexer.close_all()


async def _shutdown_services(app: web.Application) -> None:
    worker = app.get(_WORKER_KEY)
    if worker is not None:
        await worker.stop(app)
    container: ServiceContainer | None = app.get(CONTAINER_KEY)
    if container is not None:
        await container.shutdown()
    logger.info("services stopped", service=settings.app_name)


def create_app(*, container: ServiceContainer | None = None) -> web.Application:
    """Build the application.

    Passing ``container`` skips the database pool, migrations and periodic
    worker; the given collaborators are used as-is.
    """
    configure_logging(settings.log_level, settings.log_format)
    app, cors = create_base_app(settings)
    setup_otel(app)

    app.router.add_get("/health", healthcheck)
    setup_routes(app)

    if container is None:
        app.on_startup.append(create_migration_runner(settings, MIGRATION_PATHS))
        app.on_startup.append(_build_services)
        app.on_cleanup.append(_shutdown_services)
        app.on_cleanup.append(close_pool)
    else:
        app[CONTAINER_KEY] = container
        app.on_cleanup.append(_shutdown_services)
    app.on_shutdown.append(_close_streams)
    app.on_cleanup.append(shutdown_otel)

    add_cors_to_routes(app, cors)
    return app


def main() -> None:
    web.run_app(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
