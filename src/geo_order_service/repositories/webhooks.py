"""Webhook delivery ledger repository."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from geo_order_service.core.exceptions import NotFoundError
from geo_order_service.domain.dto import DeliveryAttemptDTO, DeliveryCreateDTO
from geo_order_service.domain.enums import DeliveryStatus
from geo_order_service.domain.models import WebhookDelivery
from geo_order_service.repositories.base import BaseRepository


class WebhookDeliveryRepository(BaseRepository):
    """Persistence for webhook attempt sequences."""

    JSONB_COLUMNS = frozenset({"payload"})

    def __init__(self, pool: Pool):
        super().__init__(pool)

    @classmethod
    def _to_model(cls, record: Record | dict) -> WebhookDelivery:
        return WebhookDelivery.model_validate(cls._decode(record))

    async def create(self, data: DeliveryCreateDTO) -> WebhookDelivery:
        """Open a ledger entry; references to rows deleted meanwhile are stored as NULL."""
        record = await self._fetchrow(
            """
            INSERT INTO webhook_deliveries (
                owner_id,
                order_id,
                monitoring_id,
                event_type,
                payload,
                target_url,
                status,
                retry_count,
                retried_from_id
            )
            VALUES (
                $1,
                (SELECT id FROM orders WHERE id = $2),
                (SELECT id FROM monitoring WHERE id = $3),
                $4,
                $5::jsonb,
                $6,
                $7,
                0,
                (SELECT id FROM webhook_deliveries WHERE id = $8)
            )
            RETURNING *
            """,
            data.owner_id,
            data.order_id,
            data.monitoring_id,
            data.event_type,
            json.dumps(data.payload, default=str),
            data.target_url,
            DeliveryStatus.PENDING.value,
            data.retried_from_id,
        )
        assert record is not None
        return self._to_model(record)

    async def get(self, delivery_id: UUID, owner_id: UUID | None = None) -> WebhookDelivery:
        if owner_id is None:
            record = await self._fetchrow(
                "SELECT * FROM webhook_deliveries WHERE id = $1", delivery_id
            )
        else:
            record = await self._fetchrow(
                "SELECT * FROM webhook_deliveries WHERE id = $1 AND owner_id = $2",
                delivery_id,
                owner_id,
            )
        if record is None:
            raise NotFoundError("Webhook delivery not found")
        return self._to_model(record)

    async def record_attempt(
        self, delivery_id: UUID, attempt: DeliveryAttemptDTO
    ) -> WebhookDelivery:
        # GREATEST keeps retry_count monotonic even if attempts are recorded out of order
        record = await self._fetchrow(
            """
            UPDATE webhook_deliveries
            SET status = $2,
                retry_count = GREATEST(retry_count, $3),
                last_error = $4,
                delivered_at = COALESCE($5, delivered_at),
                updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            delivery_id,
            attempt.status.value,
            attempt.retry_count,
            attempt.last_error,
            attempt.delivered_at,
        )
        if record is None:
            raise NotFoundError("Webhook delivery not found")
        return self._to_model(record)

    async def list_by_owner(
        self,
        owner_id: UUID,
        *,
        status: DeliveryStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[WebhookDelivery], int]:
        where = ["owner_id = $1"]
        values: list[Any] = [owner_id]
        idx = 2
        if status is not None:
            where.append(f"status = ${idx}")
            values.append(status.value)
            idx += 1
        where_sql = " AND ".join(where)
        records = await self._fetch(
            f"""
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM webhook_deliveries
            WHERE {where_sql}
            ORDER BY created_at DESC
            LIMIT ${idx} OFFSET ${idx + 1}
            """,
            *values,
            limit,
            offset,
        )
        rows, total = self._rows_with_total(records)
        if total is None:
            record = await self._fetchrow(
                f"SELECT COUNT(*) AS total FROM webhook_deliveries WHERE {where_sql}",
                *values,
            )
            total = int(record["total"]) if record else 0
        return [self._to_model(row) for row in rows], total

    async def delete_delivered_before(self, created_before: datetime) -> int:
        """Purge delivered entries older than *created_before*. Returns count."""
        result = await self._execute(
            "DELETE FROM webhook_deliveries WHERE status = $1 AND created_at < $2",
            DeliveryStatus.DELIVERED.value,
            created_before,
        )
        return int(result.split()[-1])
