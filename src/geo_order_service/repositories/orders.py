"""Order repository layer."""
from __future__ import annotations

import json
from typing import List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from geo_order_service.core.exceptions import NotFoundError
from geo_order_service.domain.dto import NewOrderRecord, OrderUpdateDTO
from geo_order_service.domain.enums import OrderStatus
from geo_order_service.domain.models import Order
from geo_order_service.repositories.base import BaseRepository


class OrderRepository(BaseRepository):
    """CRUD helpers for orders. Orders are never deleted."""

    JSONB_COLUMNS = frozenset({"order_data"})

    def __init__(self, pool: Pool):
        super().__init__(pool)

    @classmethod
    def _to_model(cls, record: Record | dict) -> Order:
        return Order.model_validate(cls._decode(record))

    async def create(self, data: NewOrderRecord) -> Order:
        record = await self._fetchrow(
            """
            INSERT INTO orders (owner_id, order_data, price, webhook_url, status)
            VALUES ($1, $2::jsonb, $3, $4, $5)
            RETURNING *
            """,
            data.owner_id,
            json.dumps(data.order_data),
            data.price,
            data.webhook_url,
            OrderStatus.PENDING.value,
        )
        assert record is not None
        return self._to_model(record)

    async def get(self, order_id: UUID, owner_id: UUID | None = None) -> Order:
        if owner_id is None:
            record = await self._fetchrow("SELECT * FROM orders WHERE id = $1", order_id)
        else:
            record = await self._fetchrow(
                "SELECT * FROM orders WHERE id = $1 AND owner_id = $2",
                order_id,
                owner_id,
            )
        if record is None:
            raise NotFoundError("Order not found")
        return self._to_model(record)

    async def update(self, order_id: UUID, updates: OrderUpdateDTO) -> Order:
        fields = updates.model_dump(exclude_none=True)
        if not fields:
            return await self.get(order_id)
        assignments, values, idx = self._update_assignments(fields)
        values.append(order_id)
        record = await self._fetchrow(
            f"""
            UPDATE orders
            SET {', '.join(assignments)}
            WHERE id = ${idx}
            RETURNING *
            """,
            *values,
        )
        if record is None:
            raise NotFoundError("Order not found")
        return self._to_model(record)

    async def list_by_owner(
        self, owner_id: UUID, *, limit: int = 50, offset: int = 0
    ) -> Tuple[List[Order], int]:
        records = await self._fetch(
            """
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM orders
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
            total = await self._count_by_owner(owner_id)
        return [self._to_model(row) for row in rows], total

    async def _count_by_owner(self, owner_id: UUID) -> int:
        record = await self._fetchrow(
            "SELECT COUNT(*) AS total FROM orders WHERE owner_id = $1",
            owner_id,
        )
        return int(record["total"]) if record else 0

    async def list_awaiting_provider(self, *, limit: int = 100) -> List[Order]:
        """Processing orders with a provider id, least recently touched first."""
        records = await self._fetch(
            """
            SELECT *
            FROM orders
            WHERE status = $1 AND provider_order_id IS NOT NULL
            ORDER BY updated_at ASC
            LIMIT $2
            """,
            OrderStatus.PROCESSING.value,
            limit,
        )
        return [self._to_model(r) for r in records]
