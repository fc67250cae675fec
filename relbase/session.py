"""Per-session composition of the relation engines.

A ``RelationalSession`` owns one write queue and wires the resolver,
classifier, rollup engine and back-link sync around it. Sessions are looked
up through a ``SessionRegistry`` that the application constructs once and
passes to its consumers.
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from relbase import config
from relbase.classifier import RelationClassifier, detect_column_type, infer_base_folder
from relbase.models import ColumnMeta, RelationColumnLabel, ViewConfig, ViewResponse, ViewRow
from relbase.references import property_name_of
from relbase.resolver import NoteResolver
from relbase.rollup import RollupEngine
from relbase.rows import Row, rows_from_documents
from relbase.store.vault import DocumentStore
from relbase.sync_engine import SyncEngine
from relbase.values import NullValue, PropertyValue, scalar_text, string_items, to_plain
from relbase.view_config import find_bidi_rule
from relbase.write_queue import WriteQueue

logger = logging.getLogger("relbase.session")

QUICK_ACTIONS_COLUMN = "__quickActions"


def _display_name(property_id: str) -> str:
    return property_name_of(property_id) or property_id


def _links_of(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value if isinstance(v, str)]
    if isinstance(value, str) and value.strip():
        return [value]
    return []


class RelationalSession:
    def __init__(
        self,
        session_id: str,
        store: DocumentStore,
        debounce_seconds: float = config.DEBOUNCE_MS / 1000,
        inter_op_delay_seconds: float = config.INTER_OP_DELAY_MS / 1000,
    ):
        self.session_id = session_id
        self.store = store
        self.resolver = NoteResolver(store)
        self.classifier = RelationClassifier(self.resolver)
        self.rollups = RollupEngine(store, self.resolver)
        self.write_queue = WriteQueue(
            store,
            debounce_seconds=debounce_seconds,
            inter_op_delay_seconds=inter_op_delay_seconds,
        )
        self.sync = SyncEngine(store, self.resolver, self.write_queue)
        self.labels: dict[str, RelationColumnLabel] = {}

    # ── Rendering pass ─────────────────────────────────────────────

    def build_view(
        self,
        property_ids: Sequence[str],
        view_config: ViewConfig,
        folder: Optional[str] = None,
    ) -> ViewResponse:
        """Rows, column labels and rollup values for one rendering pass."""
        rows = rows_from_documents(self.store.documents(folder), property_ids)
        return self.build_view_from_rows(rows, property_ids, view_config)

    def build_view_from_rows(
        self,
        rows: Sequence[Row],
        property_ids: Sequence[str],
        view_config: ViewConfig,
    ) -> ViewResponse:
        base_folder = infer_base_folder(row.identity for row in rows)
        self.labels = self.classifier.classify_columns(property_ids, rows, base_folder)
        registered_types = self.store.property_types()

        columns: list[ColumnMeta] = []
        for pid in property_ids:
            label = self.labels[pid]
            columns.append(
                ColumnMeta(
                    propertyId=pid,
                    displayName=_display_name(pid),
                    isRelation=label.isRelation,
                    columnType=detect_column_type(pid, rows, label.isRelation, registered_types),
                    relationFolderFilter=label.inferredScope,
                )
            )

        rollup_values: list[dict[str, Any]] = [{} for _ in rows]
        if view_config.rollups:
            rollup_values = self.rollups.compute_rollups(rows, view_config.rollups)
            for definition in view_config.rollups:
                columns.append(
                    ColumnMeta(
                        propertyId=definition.id,
                        displayName=definition.displayName or definition.id,
                        isRollup=True,
                        rollupConfig=definition,
                        columnType="rollup",
                    )
                )

        if view_config.quickActions:
            columns.append(
                ColumnMeta(
                    propertyId=QUICK_ACTIONS_COLUMN,
                    displayName="Actions",
                    isQuickActions=True,
                    columnType="actions",
                )
            )

        view_rows = []
        for row, computed in zip(rows, rollup_values):
            values = {pid: to_plain(row.get(pid)) for pid in property_ids}
            values.update(computed)
            view_rows.append(ViewRow(identity=row.identity, values=values))

        return ViewResponse(baseFolder=base_folder, columns=columns, rows=view_rows)

    def is_relation(self, property_name: str) -> bool:
        return self.classifier.is_relation(property_name)

    # ── Edits ──────────────────────────────────────────────────────

    def enqueue(self, identity: str, property_id: str, value: Any) -> None:
        """Cell edit intake."""
        self.write_queue.enqueue(identity, property_name_of(property_id), value)

    def current_links(self, identity: str, property_name: str) -> list[str]:
        """Latest known value of a relation cell.

        A queued edit wins, then one from the batch being written, then disk.
        """
        found, queued = self.write_queue.latest_value(identity, property_name)
        if found:
            return _links_of(queued)

        doc = self.store.get(identity)
        if doc is None:
            return []
        value: PropertyValue = doc.properties.get(property_name, NullValue())
        items = string_items(value)
        if items is not None:
            return items
        text = scalar_text(value)
        return [text] if text and text.strip() else []

    async def update_relation(
        self,
        identity: str,
        property_id: str,
        new_links: list[str],
        view_config: ViewConfig,
    ) -> dict[str, int]:
        """Persist a relation edit and sync back-links when a rule watches it."""
        property_name = property_name_of(property_id)
        old_links = self.current_links(identity, property_name)

        self.write_queue.enqueue(identity, property_name, list(new_links))

        rule = find_bidi_rule(view_config.bidiRules, property_id)
        if rule is None:
            return {"added": 0, "removed": 0, "unresolved": 0, "failed": 0}
        try:
            return await self.sync.sync_back_links(identity, rule.backLinkPropertyName, old_links, new_links)
        except Exception as e:
            logger.error(f"Back-link sync failed for {identity}:{property_name}: {e}")
            return {"added": 0, "removed": 0, "unresolved": 0, "failed": 1}

    async def flush(self) -> None:
        await self.write_queue.flush()

    async def close(self) -> None:
        await self.write_queue.close()


class SessionRegistry:
    """Explicit registry of active sessions, one write queue each."""

    def __init__(self, store: DocumentStore, **session_options: Any):
        self.store = store
        self.session_options = session_options
        self._sessions: dict[str, RelationalSession] = {}

    def get(self, session_id: str) -> Optional[RelationalSession]:
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str) -> RelationalSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = RelationalSession(session_id, self.store, **self.session_options)
            self._sessions[session_id] = session
            logger.info(f"Session {session_id} opened")
        return session

    def list_sessions(self) -> list[str]:
        return sorted(self._sessions)

    async def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.close()
        logger.info(f"Session {session_id} closed")
        return True

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)
