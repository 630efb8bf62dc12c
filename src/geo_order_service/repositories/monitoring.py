"""Monitoring configuration repository."""
from __future__ import annotations

import json
from typing import List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from geo_order_service.core.exceptions import NotFoundError
from geo_order_service.domain.dto import MonitoringCreateDTO, MonitoringUpdateDTO
from geo_order_service.domain.enums import MonitoringStatus
from geo_order_service.domain.models import Monitoring
from geo_order_service.repositories.base import BaseRepository


class MonitoringRepository(BaseRepository):
    """CRUD helpers for monitoring configurations (hard delete)."""

    JSONB_COLUMNS = frozenset({"aoi_data", "config"})

    def __init__(self, pool: Pool):
        super().__init__(pool)

    @classmethod
    def _to_model(cls, record: Record | dict) -> Monitoring:
        return Monitoring.model_validate(cls._decode(record))

    async def create(self, owner_id: UUID, data: MonitoringCreateDTO) -> Monitoring:
        record = await self._fetchrow(
            """
            INSERT INTO monitoring (owner_id, aoi_data, webhook_url, status, config)
            VALUES ($1, $2::jsonb, $3, $4, $5::jsonb)
            RETURNING *
            """,
            owner_id,
            json.dumps(data.aoi_data),
            data.webhook_url,
            MonitoringStatus.INACTIVE.value,
            json.dumps(data.config) if data.config is not None else None,
        )
        assert record is not None
        return self._to_model(record)

    async def get(self, monitoring_id: UUID, owner_id: UUID | None = None) -> Monitoring:
        if owner_id is None:
            record = await self._fetchrow("SELECT * FROM monitoring WHERE id = $1", monitoring_id)
        else:
            record = await self._fetchrow(
                "SELECT * FROM monitoring WHERE id = $1 AND owner_id = $2",
                monitoring_id,
                owner_id,
            )
        if record is None:
            raise NotFoundError("Monitoring not found")
        return self._to_model(record)

    async def update(self, monitoring_id: UUID, updates: MonitoringUpdateDTO) -> Monitoring:
        # exclude_unset: an explicit null clears the column, an omitted field is untouched
        fields = updates.model_dump(exclude_unset=True)
        if not fields:
            return await self.get(monitoring_id)
        assignments, values, idx = self._update_assignments(fields)
        values.append(monitoring_id)
        record = await self._fetchrow(
            f"""
            UPDATE monitoring
            SET {', '.join(assignments)}
            WHERE id = ${idx}
            RETURNING *
            """,
            *values,
        )
        if record is None:
            raise NotFoundError("Monitoring not found")
        return self._to_model(record)

    async def list_by_owner(
        self, owner_id: UUID, *, limit: int = 50, offset: int = 0
    ) -> Tuple[List[Monitoring], int]:
        records = await self._fetch(
            """
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM monitoring
            WHERE owner_id = $1
            ORDER BY created_at DESC
            LIMIT $2 OFFSET $3
            """,
            owner_id,
            limit,
            offset,
        )
        rows, total = self._rows_with_total(records)
        if total is None:
            record = await self._fetchrow(
                "SELECT COUNT(*) AS total FROM monitoring WHERE owner_id = $1",
                owner_id,
            )
            total = int(record["total"]) if record else 0
        return [self._to_model(row) for row in rows], total

    async def delete(self, monitoring_id: UUID, owner_id: UUID) -> None:
        record = await self._fetchrow(
            "DELETE FROM monitoring WHERE id = $1 AND owner_id = $2 RETURNING id",
            monitoring_id,
            owner_id,
        )
        if record is None:
            raise NotFoundError("Monitoring not found")
