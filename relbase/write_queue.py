"""Debounced, coalescing write queue for frontmatter edits.

Edits accumulate per (note, property) key; a later edit for the same key
replaces the pending one in place. Every enqueue restarts the debounce
timer. When it fires, the queue is snapshotted and cleared and the batch is
written sequentially, with a short pause between writes so the store is not
flooded. Edits that arrive while a batch is being written wait for the next
debounce cycle, which starts only after the current batch is done.

Each write is one atomic read-modify-write of a single property. A failed
write is logged and skipped; there is no retry.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from relbase import config
from relbase.references import normalize_identity
from relbase.store.vault import DocumentStore
from relbase.values import ListValue, NullValue, ScalarValue, to_plain

logger = logging.getLogger("relbase.queue")


class _Unchanged:
    def __repr__(self) -> str:
        return "UNCHANGED"


UNCHANGED = _Unchanged()
_UNSET = object()

# Updaters see the raw frontmatter value and return the raw replacement.
Updater = Callable[[Any], Union[Any, _Unchanged]]


@dataclass
class PendingEdit:
    document_identity: str
    property_name: str
    new_value: Any = _UNSET
    enqueue_time: float = field(default_factory=time.monotonic)
    updaters: list[Updater] = field(default_factory=list)

    @property
    def key(self) -> tuple[str, str]:
        return normalize_identity(self.document_identity), self.property_name

    @property
    def has_value(self) -> bool:
        return self.new_value is not _UNSET

    def apply(self, fm: dict[str, Any]) -> bool:
        """Apply this edit to a frontmatter mapping; True when it changed."""
        changed = False
        if self.has_value:
            fm[self.property_name] = self.new_value
            changed = True
        for updater in self.updaters:
            result = updater(fm.get(self.property_name))
            if result is UNCHANGED:
                continue
            fm[self.property_name] = result
            changed = True
        return changed


class WriteQueue:
    """One queue per host session; never share it across sessions."""

    def __init__(
        self,
        store: DocumentStore,
        debounce_seconds: float = config.DEBOUNCE_MS / 1000,
        inter_op_delay_seconds: float = config.INTER_OP_DELAY_MS / 1000,
    ):
        self.store = store
        self.debounce_seconds = debounce_seconds
        self.inter_op_delay_seconds = inter_op_delay_seconds
        self._pending: dict[tuple[str, str], PendingEdit] = {}
        # batch being written; entries leave once they are on disk
        self._in_flight: dict[tuple[str, str], PendingEdit] = {}
        self._timer: Optional[asyncio.TimerHandle] = None
        self._flush_task: Optional[asyncio.Task] = None
        self._processing = False
        self.stats = {"batches": 0, "written": 0, "unchanged": 0, "failed": 0}

    # ── Intake ─────────────────────────────────────────────────────

    def enqueue(self, identity: str, property_name: str, value: Any) -> None:
        """Queue a plain value write; last value wins for the same key.

        Outside a running event loop the edit is kept but no timer is armed;
        it goes out with the next in-loop enqueue or an explicit ``flush``.
        """
        if isinstance(value, (NullValue, ScalarValue, ListValue)):
            value = to_plain(value)
        edit = PendingEdit(identity, property_name, new_value=value)
        # dict assignment keeps the original position of an existing key
        self._pending[edit.key] = edit
        self._schedule()

    def enqueue_update(self, identity: str, property_name: str, updater: Updater) -> None:
        """Queue a read-modify-write updater, composed with any pending edit for the key."""
        edit = PendingEdit(identity, property_name, updaters=[updater])
        existing = self._pending.get(edit.key)
        if existing:
            existing.updaters.append(updater)
            existing.enqueue_time = edit.enqueue_time
        else:
            self._pending[edit.key] = edit
        self._schedule()

    @property
    def pending(self) -> list[PendingEdit]:
        return list(self._pending.values())

    @property
    def in_flight(self) -> list[PendingEdit]:
        return list(self._in_flight.values())

    @property
    def is_processing(self) -> bool:
        return self._processing

    def latest_value(self, identity: str, property_name: str) -> tuple[bool, Any]:
        """Most recent queued value for a key that has not reached disk yet."""
        key = PendingEdit(identity, property_name).key
        for edits in (self._pending, self._in_flight):
            edit = edits.get(key)
            if edit is not None and edit.has_value:
                return True, edit.new_value
        return False, None

    # ── Scheduling ─────────────────────────────────────────────────

    def _schedule(self) -> None:
        if self._processing:
            # picked up once the in-flight batch completes
            return
        if self._timer:
            self._timer.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._timer = None
            logger.warning(f"No running event loop, {len(self._pending)} edits wait for flush")
            return
        self._timer = loop.call_later(self.debounce_seconds, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._flush_task = asyncio.ensure_future(self._process_batch())

    async def _process_batch(self) -> None:
        if self._processing or not self._pending:
            return
        self._processing = True

        batch = list(self._pending.values())
        self._in_flight = self._pending
        self._pending = {}
        self.stats["batches"] += 1
        logger.debug(f"Flushing {len(batch)} queued edits")

        try:
            for index, edit in enumerate(batch):
                await self._persist(edit)
                self._in_flight.pop(edit.key, None)
                if index < len(batch) - 1 and self.inter_op_delay_seconds > 0:
                    await asyncio.sleep(self.inter_op_delay_seconds)
        finally:
            self._in_flight = {}
            self._processing = False

        if self._pending:
            self._schedule()

    async def _persist(self, edit: PendingEdit) -> None:
        try:
            changed = await self.store.process_frontmatter(edit.document_identity, edit.apply)
        except Exception as e:
            self.stats["failed"] += 1
            logger.error(f"Failed to update {edit.document_identity}:{edit.property_name}: {e}")
            return
        if changed:
            self.stats["written"] += 1
        else:
            self.stats["unchanged"] += 1

    # ── Draining ───────────────────────────────────────────────────

    async def flush(self) -> None:
        """Write everything pending now, after any batch already in flight."""
        while True:
            if self._timer:
                self._timer.cancel()
                self._timer = None
            task = self._flush_task
            if task and not task.done():
                await task
                continue
            if not self._pending:
                return
            self._flush_task = asyncio.ensure_future(self._process_batch())
            await self._flush_task

    async def close(self) -> None:
        await self.flush()
        logger.info(f"Write queue closed: {self.stats}")
