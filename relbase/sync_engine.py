"""Bidirectional relation sync.

When a relation on note A changes, the targets that were added gain a
back-link to A and the targets that were removed lose it. Mutations only
ever append to or remove from list properties: a target property that
exists but is not a list is left untouched.

Every mutation is a read-modify-write against the target's current state on
disk (through the write queue when one is wired in, otherwise directly via
the store primitive), so concurrent edits from different sources to the same
target do not drop each other's entries.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Iterable, Optional

from relbase.references import diff_references, format_wikilink
from relbase.resolver import NoteResolver
from relbase.store.vault import DocumentStore
from relbase.values import NullValue, ScalarValue, unwrap_value
from relbase.write_queue import UNCHANGED, PendingEdit, Updater, WriteQueue

logger = logging.getLogger("relbase.sync")


class SyncEngine:
    def __init__(
        self,
        store: DocumentStore,
        resolver: NoteResolver,
        write_queue: Optional[WriteQueue] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.write_queue = write_queue

    def source_reference(self, source_identity: str) -> str:
        """Canonical encoded reference written into back-link lists."""
        doc = self.resolver.resolve_exact(source_identity)
        return format_wikilink(doc.path if doc else source_identity)

    def diff(self, old_refs: Iterable[str], new_refs: Iterable[str]) -> tuple[list[str], list[str]]:
        return diff_references(old_refs, new_refs, key=self.resolver.reference_key)

    async def sync_back_links(
        self,
        source_identity: str,
        property_name: str,
        old_refs: Iterable[str],
        new_refs: Iterable[str],
    ) -> dict[str, int]:
        """Add/remove back-links in ``property_name`` on every changed target."""
        stats = {"added": 0, "removed": 0, "unresolved": 0, "failed": 0}
        added, removed = self.diff(old_refs, new_refs)
        if not added and not removed:
            return stats

        back_link = self.source_reference(source_identity)

        for link in added:
            target = self.resolver.resolve_reference(link)
            if target is None:
                stats["unresolved"] += 1
                continue
            try:
                await self.add_back_link(target.path, property_name, back_link)
                stats["added"] += 1
            except Exception as e:
                stats["failed"] += 1
                logger.error(f"Failed to add back-link {back_link} to {target.path}:{property_name}: {e}")

        for link in removed:
            target = self.resolver.resolve_reference(link)
            if target is None:
                stats["unresolved"] += 1
                continue
            try:
                await self.remove_back_link(target.path, property_name, back_link)
                stats["removed"] += 1
            except Exception as e:
                stats["failed"] += 1
                logger.error(f"Failed to remove back-link {back_link} from {target.path}:{property_name}: {e}")

        logger.debug(f"Back-link sync for {source_identity} ({property_name}): {stats}")
        return stats

    async def add_back_link(self, target_identity: str, property_name: str, back_link: str) -> None:
        await self._submit(target_identity, property_name, self._append_updater(target_identity, property_name, back_link))

    async def remove_back_link(self, target_identity: str, property_name: str, back_link: str) -> None:
        await self._submit(target_identity, property_name, self._remove_updater(back_link))

    # ── Internals ──────────────────────────────────────────────────

    def _entry_key(self, raw_item: Any) -> str | None:
        if isinstance(raw_item, (date, dict)):
            return None
        item = unwrap_value(raw_item)
        if isinstance(item, ScalarValue) and isinstance(item.value, str):
            return self.resolver.reference_key(item.value)
        return None

    def _append_updater(self, target_identity: str, property_name: str, back_link: str) -> Updater:
        back_key = self.resolver.reference_key(back_link)

        def append(current: Any):
            if isinstance(unwrap_value(current), NullValue):
                return [back_link]
            if not isinstance(current, list):
                logger.debug(
                    f"Not adding back-link to {target_identity}:{property_name}, existing value is not a list"
                )
                return UNCHANGED
            if any(self._entry_key(item) == back_key for item in current):
                return UNCHANGED
            # other entries are carried over as parsed, never re-serialized
            return current + [back_link]

        return append

    def _remove_updater(self, back_link: str) -> Updater:
        back_key = self.resolver.reference_key(back_link)

        def remove(current: Any):
            if not isinstance(current, list):
                return UNCHANGED
            kept = [item for item in current if self._entry_key(item) != back_key]
            if len(kept) == len(current):
                return UNCHANGED
            return kept

        return remove

    async def _submit(self, target_identity: str, property_name: str, updater: Updater) -> None:
        if self.write_queue is not None:
            self.write_queue.enqueue_update(target_identity, property_name, updater)
            return
        edit = PendingEdit(target_identity, property_name, updaters=[updater])
        await self.store.process_frontmatter(target_identity, edit.apply)
