"""Most-recently-used relation picks per picker scope.

Only affects suggestion ordering in pickers, never correctness, so
persistence failures are logged and otherwise ignored.
"""
from __future__ import annotations

import logging
from typing import Optional

from relbase import config
from relbase.db.repositories.mru import SqliteMruRepository

logger = logging.getLogger("relbase.mru")

GLOBAL_SCOPE = ""


class MruService:
    def __init__(self, repository: Optional[SqliteMruRepository] = None, max_entries: int = config.MRU_MAX_ENTRIES):
        self.repository = repository
        self.max_entries = max_entries
        self._scopes: dict[str, list[str]] = {}

    async def load(self) -> None:
        if self.repository is None:
            return
        try:
            for scope in await self.repository.list_scopes():
                entries = await self.repository.get_entries(scope)
                self._scopes[scope] = entries[: self.max_entries]
        except Exception as e:
            logger.error(f"Failed to load MRU entries: {e}")

    def get_recent(self, scope: str | None) -> list[str]:
        return list(self._scopes.get(scope or GLOBAL_SCOPE, []))

    async def record_selection(self, scope: str | None, identity: str) -> list[str]:
        key = scope or GLOBAL_SCOPE
        entries = [i for i in self._scopes.get(key, []) if i != identity]
        entries.insert(0, identity)
        entries = entries[: self.max_entries]
        self._scopes[key] = entries

        if self.repository is not None:
            try:
                await self.repository.replace_entries(key, entries)
            except Exception as e:
                logger.error(f"Failed to persist MRU entries for scope {key!r}: {e}")
        return list(entries)
