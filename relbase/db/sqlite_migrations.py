"""Database schema creation and versioning.

Uses IF NOT EXISTS for idempotent runs.
"""
from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger("relbase.db")

SCHEMA_VERSION = 1

_TABLES = """
-- ── Schema version tracking ────────────────────────────────────────
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- ── Most-recently-used relation picks, per picker scope ────────────
CREATE TABLE IF NOT EXISTS mru_entries (
    scope        TEXT NOT NULL,
    identity     TEXT NOT NULL,
    position     INTEGER NOT NULL,
    selected_at  TEXT NOT NULL,
    PRIMARY KEY (scope, identity)
);

CREATE INDEX IF NOT EXISTS idx_mru_scope_position ON mru_entries(scope, position);
"""


async def _current_version(db: aiosqlite.Connection) -> int:
    async with db.execute("SELECT MAX(version) FROM schema_version") as cur:
        row = await cur.fetchone()
    return int(row[0] or 0) if row else 0


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Create all tables and record the schema version."""
    await db.executescript(_TABLES)

    if await _current_version(db) >= SCHEMA_VERSION:
        return

    await db.execute(
        "INSERT INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    await db.commit()
    logger.info(f"Migrations complete, schema version {SCHEMA_VERSION}")
