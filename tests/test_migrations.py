"""SQL migration runner, exercised against a recording connection."""
from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

import pytest

from backend_common.db.migrations import (
    apply_pending,
    checksum,
    create_migration_runner,
    load_migrations,
)
from geo_order_service.main import MIGRATION_PATHS
from geo_order_service.settings import Settings


class RecordingConnection:
    def __init__(self, applied: dict[str, str] | None = None):
        self.applied = dict(applied or {})
        self.statements: list[str] = []

    async def execute(self, sql: str, *args):
        self.statements.append(sql)
        if sql.startswith("INSERT INTO schema_migrations"):
            version, digest = args
            self.applied[version] = digest

    async def fetch(self, sql: str):
        return [{"version": v, "checksum": c} for v, c in self.applied.items()]

    @asynccontextmanager
    async def transaction(self):
        yield


def _write(directory: Path, name: str, sql: str) -> Path:
    path = directory / name
    path.write_text(sql, encoding="utf-8")
    return path


def test_repository_schema_is_discoverable():
    migrations_dir = next(path for path in MIGRATION_PATHS if path.exists())

    migrations = load_migrations(migrations_dir)

    assert "001_initial_schema" in migrations
    sql = migrations["001_initial_schema"].read_text(encoding="utf-8")
    for table in ("orders", "monitoring", "webhook_deliveries"):
        assert f"CREATE TABLE IF NOT EXISTS {table}" in sql


def test_testsuite_schema_matches_migrations():
    migrations_dir = next(path for path in MIGRATION_PATHS if path.exists())
    schema = (
        Path(__file__).parent / "schemas" / "postgresql" / "geo_order_service.sql"
    ).read_text(encoding="utf-8")

    for version, path in load_migrations(migrations_dir).items():
        assert f"-- Migration: {path.name}\n{path.read_text(encoding='utf-8')}" in schema, version


def test_load_migrations_sorted(tmp_path):
    _write(tmp_path, "002_b.sql", "SELECT 2;")
    _write(tmp_path, "001_a.sql", "SELECT 1;")
    _write(tmp_path, "notes.txt", "ignored")

    assert list(load_migrations(tmp_path)) == ["001_a", "002_b"]


@pytest.mark.asyncio
async def test_apply_pending_skips_applied(tmp_path):
    _write(tmp_path, "001_a.sql", "SELECT 1;")
    _write(tmp_path, "002_b.sql", "SELECT 2;")
    conn = RecordingConnection(applied={"001_a": checksum("SELECT 1;")})

    applied = await apply_pending(conn, load_migrations(tmp_path))

    assert applied == 1
    assert "SELECT 2;" in conn.statements
    assert "SELECT 1;" not in conn.statements
    assert set(conn.applied) == {"001_a", "002_b"}


@pytest.mark.asyncio
async def test_apply_pending_detects_edited_migration(tmp_path):
    _write(tmp_path, "001_a.sql", "SELECT 1 + 1;")
    conn = RecordingConnection(applied={"001_a": checksum("SELECT 1;")})

    with pytest.raises(RuntimeError, match="Checksum mismatch"):
        await apply_pending(conn, load_migrations(tmp_path))


@pytest.mark.asyncio
async def test_runner_skips_without_migrations_dir(tmp_path):
    runner = create_migration_runner(Settings(), [tmp_path / "missing"])

    await runner(None)
