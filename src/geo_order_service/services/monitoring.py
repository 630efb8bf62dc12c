"""Monitoring lifecycle service."""
from __future__ import annotations

from typing import Any, List
from uuid import UUID

import structlog

from geo_order_service.clients.provider import ProviderClient
from geo_order_service.core.exceptions import NotFoundError, ProviderError, ValidationError
from geo_order_service.domain.dto import MonitoringCreateDTO, MonitoringUpdateDTO
from geo_order_service.domain.enums import EventType, MonitoringStatus
from geo_order_service.domain.models import Monitoring
from geo_order_service.repositories.monitoring import MonitoringRepository
from geo_order_service.services.notifier import EventNotifier
from geo_order_service.services.state_machine import validate_monitoring_transition
from geo_order_service.services.tasks import BackgroundTaskRunner
from geo_order_service.services.validation import validate_aoi, validate_webhook_url
from geo_order_service.services.webhooks import ResourceRef

logger = structlog.get_logger(__name__)


def monitoring_event(monitoring: Monitoring) -> dict[str, Any]:
    return {
        "monitoring_id": str(monitoring.id),
        "status": monitoring.status.value,
        "provider_monitoring_id": monitoring.provider_monitoring_id,
        "updated_at": monitoring.updated_at.isoformat(),
    }


def parse_remote_monitoring_status(raw: str | None) -> MonitoringStatus | None:
    if not raw:
        return None
    try:
        return MonitoringStatus(raw.strip().lower())
    except ValueError:
        return None


class MonitoringService:
    def __init__(
        self,
        repository: MonitoringRepository,
        provider: ProviderClient,
        notifier: EventNotifier,
        runner: BackgroundTaskRunner,
    ):
        self._repository = repository
        self._provider = provider
        self._notifier = notifier
        self._runner = runner

    def _publish(self, monitoring: Monitoring) -> None:
        self._notifier.notify(
            monitoring.owner_id,
            EventType.MONITORING_UPDATE.value,
            monitoring_event(monitoring),
            webhook_url=monitoring.webhook_url,
            ref=ResourceRef(owner_id=monitoring.owner_id, monitoring_id=monitoring.id),
        )

    async def create_monitoring(self, owner_id: UUID, data: MonitoringCreateDTO) -> Monitoring:
        validate_aoi(data.aoi_data)
        validate_webhook_url(data.webhook_url)
        monitoring = await self._repository.create(owner_id, data)
        logger.info("monitoring created", monitoring_id=str(monitoring.id), owner_id=str(owner_id))
        self._runner.spawn(
            "monitoring_setup",
            lambda: self._setup(monitoring),
            monitoring_id=monitoring.id,
        )
        self._publish(monitoring)
        return monitoring

    async def _setup(self, monitoring: Monitoring) -> None:
        """Register the AOI with the provider; success activates a still-inactive configuration.

        A provider failure leaves the record ``inactive`` and propagates to the
        task runner, which keeps it in its failure history.
        """
        try:
            remote = await self._provider.setup_monitoring(
                monitoring.aoi_data, monitoring.webhook_url, monitoring.config
            )
        except ProviderError as exc:
            logger.warning(
                "provider monitoring setup failed",
                monitoring_id=str(monitoring.id),
                error=str(exc),
            )
            raise
        try:
            current = await self._repository.get(monitoring.id)
            # a status the user set while the call was in flight wins
            if current.status == MonitoringStatus.INACTIVE:
                updates = MonitoringUpdateDTO(
                    status=MonitoringStatus.ACTIVE, provider_monitoring_id=remote.id
                )
            else:
                updates = MonitoringUpdateDTO(provider_monitoring_id=remote.id)
            updated = await self._repository.update(monitoring.id, updates)
        except NotFoundError:
            logger.info(
                "monitoring deleted before provider setup completed",
                monitoring_id=str(monitoring.id),
                provider_monitoring_id=remote.id,
            )
            return
        logger.info(
            "monitoring registered with provider",
            monitoring_id=str(monitoring.id),
            provider_monitoring_id=remote.id,
            status=updated.status.value,
        )
        self._publish(updated)

    async def get_monitoring(self, monitoring_id: UUID, owner_id: UUID) -> Monitoring:
        return await self._repository.get(monitoring_id, owner_id)

    async def get_monitoring_status(self, monitoring_id: UUID, owner_id: UUID) -> Monitoring:
        monitoring = await self._repository.get(monitoring_id, owner_id)
        if not monitoring.provider_monitoring_id:
            return monitoring
        try:
            remote = await self._provider.get_monitoring_status(monitoring.provider_monitoring_id)
        except ProviderError as exc:
            logger.warning(
                "provider status unavailable, using local status",
                monitoring_id=str(monitoring_id),
                error=str(exc),
            )
            return monitoring
        remote_status = parse_remote_monitoring_status(remote.status)
        if remote_status is None or remote_status == monitoring.status:
            return monitoring
        updated = await self._repository.update(
            monitoring_id, MonitoringUpdateDTO(status=remote_status)
        )
        logger.info(
            "monitoring reconciled",
            monitoring_id=str(monitoring_id),
            from_status=monitoring.status.value,
            to_status=remote_status.value,
        )
        self._publish(updated)
        return updated

    async def update_monitoring(
        self, monitoring_id: UUID, owner_id: UUID, updates: MonitoringUpdateDTO
    ) -> Monitoring:
        current = await self._repository.get(monitoring_id, owner_id)
        fields = updates.model_fields_set
        if "aoi_data" in fields:
            validate_aoi(updates.aoi_data)
        if "webhook_url" in fields:
            validate_webhook_url(updates.webhook_url)
        if "status" in fields:
            if updates.status is None:
                raise ValidationError("status cannot be null")
            validate_monitoring_transition(current.status, updates.status)
        updated = await self._repository.update(monitoring_id, updates)
        logger.info(
            "monitoring updated",
            monitoring_id=str(monitoring_id),
            fields=sorted(fields),
        )
        self._publish(updated)
        return updated

    async def _set_status(
        self, monitoring_id: UUID, owner_id: UUID, status: MonitoringStatus
    ) -> Monitoring:
        monitoring = await self._repository.get(monitoring_id, owner_id)
        if monitoring.status == status:
            return monitoring
        updated = await self._repository.update(monitoring_id, MonitoringUpdateDTO(status=status))
        logger.info(
            "monitoring status changed",
            monitoring_id=str(monitoring_id),
            from_status=monitoring.status.value,
            to_status=status.value,
        )
        self._publish(updated)
        return updated

    async def activate_monitoring(self, monitoring_id: UUID, owner_id: UUID) -> Monitoring:
        return await self._set_status(monitoring_id, owner_id, MonitoringStatus.ACTIVE)

    async def deactivate_monitoring(self, monitoring_id: UUID, owner_id: UUID) -> Monitoring:
        return await self._set_status(monitoring_id, owner_id, MonitoringStatus.INACTIVE)

    async def delete_monitoring(self, monitoring_id: UUID, owner_id: UUID) -> None:
        monitoring = await self._repository.get(monitoring_id, owner_id)
        await self._repository.delete(monitoring_id, owner_id)
        logger.info("monitoring deleted", monitoring_id=str(monitoring_id), owner_id=str(owner_id))
        # the row is gone, so the ledger entry for this event starts orphaned
        self._notifier.notify(
            owner_id,
            EventType.MONITORING_UPDATE.value,
            {"monitoring_id": str(monitoring_id), "deleted": True},
            webhook_url=monitoring.webhook_url,
            ref=ResourceRef(owner_id=owner_id),
        )

    async def get_user_monitoring(
        self, owner_id: UUID, *, limit: int = 50, offset: int = 0
    ) -> tuple[List[Monitoring], int]:
        return await self._repository.list_by_owner(owner_id, limit=limit, offset=offset)
