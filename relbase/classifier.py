"""Heuristic detection of relation columns.

A property is a relation when any of four independent heuristics fires over
a small sample of rows:

1. every non-empty value is a list of encoded references (``[[...]]``);
2. every non-empty value is a list of plain strings that resolve to notes;
3. more than half of the plain scalar strings resolve to notes (needs at
   least two samples);
4. the property name matches a folder directly under the dataset's root
   (``project`` -> ``projects/``), which catches relational columns that are
   still empty.

Absence of evidence means "not a relation".
"""
from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Iterable, Optional, Sequence

from relbase import config
from relbase.models import ColumnType, RelationColumnLabel
from relbase.references import is_note_property, is_wikilink, property_name_of
from relbase.resolver import NoteResolver
from relbase.rows import Row
from relbase.values import ListValue, PropertyValue, ScalarValue, is_empty, scalar_text, string_items

logger = logging.getLogger("relbase.classifier")

_TEXT_REFERENCE_THRESHOLD = 0.5
_MIN_TEXT_REFERENCE_SAMPLES = 2

_REGISTERED_TYPE_MAP: dict[str, ColumnType] = {
    "multitext": "list",
    "aliases": "list",
    "tags": "tags",
    "checkbox": "checkbox",
    "number": "number",
    "date": "date",
    "datetime": "datetime",
}


def infer_base_folder(identities: Iterable[str]) -> Optional[str]:
    """Common parent folder of all rows, one level up to include siblings.

    ``tasks/a.md`` and ``tasks/b.md`` under ``work/`` -> ``work``.
    """
    folders = [PurePosixPath(i).parent.parts for i in identities if i]
    if not folders:
        return None

    common = list(folders[0])
    for parts in folders[1:]:
        size = 0
        for left, right in zip(common, parts):
            if left != right:
                break
            size += 1
        common = common[:size]
        if not common:
            return None
    if not common:
        return None
    if len(common) > 1:
        common = common[:-1]
    return "/".join(common)


def _sample_values(rows: Sequence[Row], property_id: str, sample_size: int) -> list[PropertyValue]:
    return [row.get(property_id) for row in rows[:sample_size]]


class RelationClassifier:
    def __init__(self, resolver: NoteResolver, sample_size: int = config.SAMPLE_ROWS):
        self.resolver = resolver
        self.sample_size = sample_size
        self._labels: dict[str, RelationColumnLabel] = {}

    # ── Heuristics ─────────────────────────────────────────────────

    def _all_lists_of(self, values: list[PropertyValue], predicate) -> bool:
        non_empty = [v for v in values if not is_empty(v)]
        if not non_empty:
            return False
        for value in non_empty:
            items = string_items(value)
            if not items:
                return False
            if not all(predicate(item) for item in items):
                return False
        return True

    def _resolves(self, text: str, scope: str | None) -> bool:
        if self.resolver.resolve_by_text(text, scope) is not None:
            return True
        if "/" in text:
            doc = self.resolver.resolve_exact(text)
            return doc is not None
        return False

    def _encoded_reference_lists(self, values: list[PropertyValue]) -> bool:
        return self._all_lists_of(values, is_wikilink)

    def _resolving_text_lists(self, values: list[PropertyValue], scope: str | None) -> bool:
        return self._all_lists_of(values, lambda item: self._resolves(item, scope))

    def _scalar_text_references(self, values: list[PropertyValue], scope: str | None) -> bool:
        samples = 0
        hits = 0
        for value in values:
            text = scalar_text(value)
            if text is None or not text.strip():
                continue
            if is_wikilink(text):
                continue
            samples += 1
            if self._resolves(text, scope):
                hits += 1
        if samples < _MIN_TEXT_REFERENCE_SAMPLES:
            return False
        return hits / samples > _TEXT_REFERENCE_THRESHOLD

    def match_relation_subfolder(self, property_id: str, base_folder: str | None) -> Optional[str]:
        """Folder under ``base_folder`` named after the property, if any."""
        if not base_folder:
            return None
        name = property_name_of(property_id).strip().lower()
        if not name:
            return None
        candidates = [f"{base_folder}/{name}", f"{base_folder}/{name}s"]
        if name.endswith("s") and len(name) > 1:
            candidates.append(f"{base_folder}/{name[:-1]}")
        for candidate in candidates:
            found = self.resolver.find_folder(candidate)
            if found:
                return found
        return None

    # ── Classification ─────────────────────────────────────────────

    def classify(
        self,
        property_id: str,
        rows: Sequence[Row],
        base_folder: str | None = None,
    ) -> RelationColumnLabel:
        name = property_name_of(property_id)
        if not is_note_property(property_id):
            return RelationColumnLabel(propertyName=name, isRelation=False)

        try:
            values = _sample_values(rows, property_id, self.sample_size)
            subfolder = self.match_relation_subfolder(property_id, base_folder)
            is_relation = (
                self._encoded_reference_lists(values)
                or self._resolving_text_lists(values, base_folder)
                or self._scalar_text_references(values, base_folder)
                or subfolder is not None
            )
        except Exception as e:
            logger.warning(f"Relation detection failed for {property_id}: {e}")
            return RelationColumnLabel(propertyName=name, isRelation=False)

        return RelationColumnLabel(
            propertyName=name,
            isRelation=is_relation,
            inferredScope=(subfolder or base_folder) if is_relation else None,
        )

    def classify_columns(
        self,
        property_ids: Iterable[str],
        rows: Sequence[Row],
        base_folder: str | None = None,
    ) -> dict[str, RelationColumnLabel]:
        """Label every column for one pass and remember the result for ``is_relation``."""
        if base_folder is None:
            base_folder = infer_base_folder(row.identity for row in rows)
        labels = {pid: self.classify(pid, rows, base_folder) for pid in property_ids}
        self._labels = {label.propertyName: label for label in labels.values()}
        return labels

    def is_relation(self, property_name: str) -> bool:
        label = self._labels.get(property_name_of(property_name))
        return bool(label and label.isRelation)

    def relation_properties(self) -> list[str]:
        return [name for name, label in self._labels.items() if label.isRelation]


def detect_column_type(
    property_id: str,
    rows: Sequence[Row],
    is_relation: bool,
    registered_types: dict[str, str] | None = None,
    sample_size: int = config.SAMPLE_ROWS,
) -> ColumnType:
    """Header type: registered property type first, then value sniffing."""
    if property_id in ("file.name", "file.basename"):
        return "file"
    if is_relation:
        return "relation"
    if property_id in ("note.tags", "tags") or property_id.endswith(".tags"):
        return "tags"

    registered = (registered_types or {}).get(property_name_of(property_id))
    if registered in _REGISTERED_TYPE_MAP:
        return _REGISTERED_TYPE_MAP[registered]

    for row in rows[:sample_size]:
        value = row.get(property_id)
        if isinstance(value, ListValue):
            return "list"
        if isinstance(value, ScalarValue):
            if isinstance(value.value, bool):
                return "checkbox"
            if isinstance(value.value, (int, float)):
                return "number"
            return "text"
    return "text"
