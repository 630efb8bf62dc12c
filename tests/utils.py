from __future__ import annotations

from uuid import UUID


def make_headers(owner_id: UUID) -> dict[str, str]:
    return {"X-User-Id": str(owner_id)}
