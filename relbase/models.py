"""Pydantic models shared by the engines and the API layer."""
from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

AggregationKind = Literal[
    "count",
    "count_values",
    "sum",
    "average",
    "min",
    "max",
    "list",
    "unique",
    "percent_true",
    "percent_not_empty",
]

ColumnType = Literal[
    "file", "relation", "tags", "list", "checkbox", "number",
    "text", "date", "datetime", "rollup", "actions",
]


# ── Relation configuration ─────────────────────────────────────────

class RollupDefinition(BaseModel):
    id: str
    relationPropertyName: str
    targetPropertyName: str
    aggregationKind: AggregationKind = "count"
    displayName: str = ""


class BidiSyncRule(BaseModel):
    watchedRelationPropertyName: str
    backLinkPropertyName: str


class RelationColumnLabel(BaseModel):
    propertyName: str
    isRelation: bool = False
    inferredScope: Optional[str] = None


class ColumnMeta(BaseModel):
    propertyId: str
    displayName: str
    isRelation: bool = False
    isRollup: bool = False
    rollupConfig: Optional[RollupDefinition] = None
    relationFolderFilter: Optional[str] = None
    isQuickActions: bool = False
    columnType: ColumnType = "text"


# ── Quick actions ──────────────────────────────────────────────────

class QuickActionUpdate(BaseModel):
    property: str
    value: str  # raw value, may contain TODAY/NOW/TRUE/FALSE


class QuickActionConfig(BaseModel):
    id: str
    label: str
    updates: list[QuickActionUpdate] = Field(default_factory=list)


class ViewConfig(BaseModel):
    rollups: list[RollupDefinition] = Field(default_factory=list)
    bidiRules: list[BidiSyncRule] = Field(default_factory=list)
    quickActions: list[QuickActionConfig] = Field(default_factory=list)


# ── API payloads ───────────────────────────────────────────────────

class ViewRequest(BaseModel):
    folder: Optional[str] = None
    properties: list[str] = Field(default_factory=list)
    options: dict[str, Any] = Field(default_factory=dict)


class ViewRow(BaseModel):
    identity: str
    values: dict[str, Any] = Field(default_factory=dict)


class ViewResponse(BaseModel):
    baseFolder: Optional[str] = None
    columns: list[ColumnMeta] = Field(default_factory=list)
    rows: list[ViewRow] = Field(default_factory=list)


class CellEdit(BaseModel):
    identity: str = Field(..., min_length=1)
    propertyId: str = Field(..., min_length=1)
    value: Any = None


class RelationEdit(BaseModel):
    identity: str = Field(..., min_length=1)
    propertyId: str = Field(..., min_length=1)
    links: list[str] = Field(default_factory=list)
    options: dict[str, Any] = Field(default_factory=dict)


class QuickActionRequest(BaseModel):
    identity: str = Field(..., min_length=1)
    action: QuickActionConfig


class MruSelection(BaseModel):
    identity: str = Field(..., min_length=1)
