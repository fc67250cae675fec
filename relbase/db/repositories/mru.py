"""SQLite implementation of the MRU repository."""
from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite


class SqliteMruRepository:
    """Ordered (most recent first) identity lists keyed by picker scope."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def get_entries(self, scope: str) -> list[str]:
        async with self.db.execute(
            "SELECT identity FROM mru_entries WHERE scope = ? ORDER BY position",
            (scope,),
        ) as cur:
            return [r["identity"] for r in await cur.fetchall()]

    async def replace_entries(self, scope: str, identities: list[str]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        await self.db.execute("DELETE FROM mru_entries WHERE scope = ?", (scope,))
        await self.db.executemany(
            """INSERT INTO mru_entries (scope, identity, position, selected_at)
               VALUES (?, ?, ?, ?)""",
            [(scope, identity, position, now) for position, identity in enumerate(identities)],
        )
        await self.db.commit()

    async def list_scopes(self) -> list[str]:
        async with self.db.execute(
            "SELECT DISTINCT scope FROM mru_entries ORDER BY scope"
        ) as cur:
            return [r["scope"] for r in await cur.fetchall()]
