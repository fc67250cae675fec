"""Rollup computation.

For each row and rollup definition: resolve the row's relation value into
documents, read the target property from each resolved document and
aggregate. Reads go through a cache scoped to a single ``compute_rollups``
call, so a note referenced from many rows is read once per pass. Nothing here
writes to the store.
"""
from __future__ import annotations

import json
import logging
import math
from typing import Any, Iterable, Optional, Sequence

from relbase.models import RollupDefinition
from relbase.references import normalize_identity, parse_wikilink
from relbase.resolver import NoteResolver
from relbase.rows import Row
from relbase.store.vault import Document, DocumentStore
from relbase.values import (
    NULL,
    ListValue,
    NullValue,
    PropertyValue,
    ScalarValue,
    is_empty,
    to_plain,
)

logger = logging.getLogger("relbase.rollup")


def _to_number(value: PropertyValue) -> int | float | None:
    if not isinstance(value, ScalarValue):
        return None
    raw = value.value
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return raw if math.isfinite(raw) else None
    token = str(raw).strip()
    if not token:
        return None
    try:
        return int(token)
    except ValueError:
        pass
    try:
        parsed = float(token)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def _numbers(values: Iterable[PropertyValue]) -> list[int | float]:
    result = []
    for value in values:
        number = _to_number(value)
        if number is not None:
            result.append(number)
    return result


def _percent(count: int, total: int) -> str:
    if total <= 0:
        return "(0/0) 0%"
    pct = int(math.floor(count / total * 100 + 0.5))
    return f"({count}/{total}) {pct}%"


class RollupEngine:
    def __init__(self, store: DocumentStore, resolver: NoteResolver):
        self.store = store
        self.resolver = resolver

    def compute_rollups(
        self,
        rows: Sequence[Row],
        definitions: Sequence[RollupDefinition],
    ) -> list[dict[str, Any]]:
        """Return one ``{definition_id: value}`` mapping per row, in row order."""
        cache: dict[str, dict[str, PropertyValue]] = {}
        results: list[dict[str, Any]] = []
        for row in rows:
            row_values: dict[str, Any] = {}
            for definition in definitions:
                try:
                    documents = self.resolve_links(row.get(definition.relationPropertyName))
                    values = [
                        self._read_property(doc, definition.targetPropertyName, cache)
                        for doc in documents
                    ]
                    row_values[definition.id] = self.aggregate(
                        values, definition.aggregationKind, len(documents)
                    )
                except Exception as e:
                    logger.error(f"Rollup {definition.id} failed for {row.identity}: {e}")
                    row_values[definition.id] = None
            results.append(row_values)
        return results

    def resolve_links(self, raw: PropertyValue) -> list[Document]:
        """Resolve a relation cell into documents, dropping unresolved entries.

        Accepts a single text reference (encoded or plain) or a list of them.
        """
        if isinstance(raw, ScalarValue):
            if not isinstance(raw.value, str) or not raw.value.strip():
                return []
            doc = self.resolver.resolve_reference(raw.value)
            return [doc] if doc else []

        if not isinstance(raw, ListValue):
            return []

        documents: list[Document] = []
        for item in raw.items:
            if not isinstance(item, ScalarValue) or not isinstance(item.value, str):
                continue
            doc = self.resolver.resolve_reference(item.value)
            if doc:
                documents.append(doc)
        return documents

    def _read_property(
        self,
        doc: Document,
        property_name: str,
        cache: dict[str, dict[str, PropertyValue]],
    ) -> PropertyValue:
        key = normalize_identity(doc.path)
        if key not in cache:
            cache[key] = self.store.read_properties(doc.path)
        return cache[key].get(property_name, NULL)

    # ── Aggregation ────────────────────────────────────────────────

    def aggregate(self, values: list[PropertyValue], kind: str, total: Optional[int] = None) -> Any:
        """Apply an aggregation.

        ``total`` is the number of resolved documents, including those whose
        target property is missing; it defaults to ``len(values)``.
        """
        total = len(values) if total is None else total
        non_null = [v for v in values if not isinstance(v, NullValue)]

        if kind == "count":
            return total
        if kind == "count_values":
            return len(non_null)
        if kind == "sum":
            return sum(_numbers(values))
        if kind == "average":
            nums = _numbers(values)
            if not nums:
                return 0
            return sum(nums) / len(nums)
        if kind == "min":
            nums = _numbers(values)
            return min(nums) if nums else None
        if kind == "max":
            nums = _numbers(values)
            return max(nums) if nums else None
        if kind == "list":
            return self._flatten(non_null)
        if kind == "unique":
            return self._unique(self._flatten(non_null))
        if kind == "percent_true":
            true_count = sum(
                1 for v in values if isinstance(v, ScalarValue) and v.value is True
            )
            return _percent(true_count, total)
        if kind == "percent_not_empty":
            return _percent(sum(1 for v in values if not is_empty(v)), total)

        logger.warning(f"Unknown aggregation {kind!r}")
        return None

    def _render_item(self, item: PropertyValue) -> Any:
        if isinstance(item, ScalarValue) and isinstance(item.value, str):
            parsed = parse_wikilink(item.value)
            if parsed:
                doc = self.resolver.resolve_link(parsed.path)
                return {"path": doc.path if doc else parsed.path, "label": parsed.display}
        return to_plain(item)

    def _flatten(self, values: list[PropertyValue]) -> list[Any]:
        result: list[Any] = []
        for value in values:
            items = value.items if isinstance(value, ListValue) else (value,)
            for item in items:
                if isinstance(item, NullValue):
                    continue
                result.append(self._render_item(item))
        return result

    @staticmethod
    def _unique(items: list[Any]) -> list[Any]:
        seen: set[str] = set()
        ordered: list[Any] = []
        for item in items:
            if isinstance(item, dict) and "path" in item:
                key = "ref:" + normalize_identity(item["path"])
            else:
                key = "value:" + json.dumps(item, sort_keys=True, default=str)
            if key in seen:
                continue
            seen.add(key)
            ordered.append(item)
        return ordered
