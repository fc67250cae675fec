"""Rows handed to the engines by the query layer."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from relbase.references import property_name_of
from relbase.store.vault import Document
from relbase.values import NULL, PropertyValue, ScalarValue, unwrap_value


@dataclass
class Row:
    identity: str
    values: dict[str, PropertyValue] = field(default_factory=dict)

    def get(self, property_id: str) -> PropertyValue:
        if property_id in self.values:
            return self.values[property_id]
        return self.values.get(property_name_of(property_id), NULL)


def row_from_mapping(identity: str, mapping: Mapping[str, Any]) -> Row:
    """Build a Row from raw host values, unwrapping each one."""
    return Row(identity=identity, values={str(k): unwrap_value(v) for k, v in mapping.items()})


def _document_value(doc: Document, property_id: str) -> PropertyValue:
    if property_id == "file.name":
        return ScalarValue(doc.basename)
    if property_id == "file.path":
        return ScalarValue(doc.path)
    if property_id == "file.folder":
        return ScalarValue(doc.folder)
    return doc.properties.get(property_name_of(property_id), NULL)


def rows_from_documents(documents: Iterable[Document], property_ids: Iterable[str] | None = None) -> list[Row]:
    ids = list(property_ids or [])
    rows: list[Row] = []
    for doc in sorted(documents, key=lambda d: d.path.lower()):
        if ids:
            values = {pid: _document_value(doc, pid) for pid in ids}
        else:
            values = dict(doc.properties)
        rows.append(Row(identity=doc.path, values=values))
    return rows
