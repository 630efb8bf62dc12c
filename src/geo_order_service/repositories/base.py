"""Shared asyncpg helpers for repositories."""
from __future__ import annotations

import json
from typing import Any, Iterable

import asyncpg  # type: ignore[import-untyped]


class BaseRepository:
    """Thin wrapper over asyncpg pool operations."""

    JSONB_COLUMNS: frozenset[str] = frozenset()

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def _fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        async with self._pool.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def _fetch(self, query: str, *args: Any) -> Iterable[asyncpg.Record]:
        async with self._pool.acquire() as conn:
            return await conn.fetch(query, *args)

    async def _execute(self, query: str, *args: Any) -> str:
        async with self._pool.acquire() as conn:
            return await conn.execute(query, *args)

    @classmethod
    def _decode(cls, record: asyncpg.Record | dict[str, Any]) -> dict[str, Any]:
        payload = dict(record)
        for column in cls.JSONB_COLUMNS:
            value = payload.get(column)
            if isinstance(value, str):
                payload[column] = json.loads(value)
        return payload

    def _update_assignments(
        self, fields: dict[str, Any], *, start: int = 1
    ) -> tuple[list[str], list[Any], int]:
        """Build ``col = $n`` fragments for a partial update; returns next placeholder index."""
        assignments: list[str] = []
        values: list[Any] = []
        idx = start
        for column, value in fields.items():
            if column in self.JSONB_COLUMNS:
                assignments.append(f"{column} = ${idx}::jsonb")
                values.append(json.dumps(value) if value is not None else None)
            else:
                assignments.append(f"{column} = ${idx}")
                values.append(value.value if hasattr(value, "value") else value)
            idx += 1
        assignments.append("updated_at = now()")
        return assignments, values, idx

    @staticmethod
    def _rows_with_total(records: Iterable[asyncpg.Record]) -> tuple[list[dict[str, Any]], int | None]:
        rows: list[dict[str, Any]] = []
        total: int | None = None
        for rec in records:
            rec_dict = dict(rec)
            total_value = rec_dict.pop("total_count", None)
            if total_value is not None:
                total = int(total_value)
            rows.append(rec_dict)
        return rows, total
