"""Parse flat key/value view options into typed configuration.

Recognized keys::

    rollupCount, rollup{i}_relation, rollup{i}_target,
    rollup{i}_aggregation, rollup{i}_name          (i = 1..3)
    bidiCount, bidi{i}_column, bidi{i}_reverse     (i = 1..3)
    quickActions                                    (quick action DSL)
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

from pydantic import ValidationError

from relbase import config
from relbase.models import BidiSyncRule, RollupDefinition, ViewConfig
from relbase.quick_actions import parse_dsl
from relbase.references import property_name_of

logger = logging.getLogger("relbase.config")


class ViewConfigError(ValueError):
    """Raised for view options that cannot be turned into a valid configuration."""


def _count(options: Mapping[str, Any], key: str, maximum: int) -> int:
    raw = options.get(key)
    if raw is None or raw == "":
        return 0
    try:
        value = int(str(raw).strip())
    except ValueError:
        logger.warning(f"Ignoring non-numeric {key}={raw!r}")
        return 0
    return max(0, min(value, maximum))


def _text(options: Mapping[str, Any], key: str) -> str:
    raw = options.get(key)
    return str(raw).strip() if raw is not None else ""


def parse_rollups(options: Mapping[str, Any]) -> list[RollupDefinition]:
    definitions: list[RollupDefinition] = []
    for i in range(1, _count(options, "rollupCount", config.MAX_ROLLUPS) + 1):
        relation = _text(options, f"rollup{i}_relation")
        target = _text(options, f"rollup{i}_target")
        if not relation or not target:
            continue
        try:
            definitions.append(
                RollupDefinition(
                    id=f"rollup_{i}",
                    relationPropertyName=relation,
                    targetPropertyName=property_name_of(target),
                    aggregationKind=_text(options, f"rollup{i}_aggregation") or "count",
                    displayName=_text(options, f"rollup{i}_name") or f"Rollup {i}",
                )
            )
        except ValidationError as exc:
            raise ViewConfigError(f"Invalid rollup {i}: {exc.errors()[0].get('msg', exc)}") from exc
    return definitions


def parse_bidi_rules(options: Mapping[str, Any]) -> list[BidiSyncRule]:
    rules: list[BidiSyncRule] = []
    for i in range(1, _count(options, "bidiCount", config.MAX_BIDI_RULES) + 1):
        column = _text(options, f"bidi{i}_column")
        reverse = _text(options, f"bidi{i}_reverse")
        if column and reverse:
            rules.append(
                BidiSyncRule(
                    watchedRelationPropertyName=property_name_of(column),
                    backLinkPropertyName=reverse,
                )
            )
    return rules


def parse_view_config(options: Mapping[str, Any] | None) -> ViewConfig:
    opts = options or {}
    return ViewConfig(
        rollups=parse_rollups(opts),
        bidiRules=parse_bidi_rules(opts),
        quickActions=parse_dsl(_text(opts, "quickActions")),
    )


def find_bidi_rule(rules: Sequence[BidiSyncRule], property_id: str) -> Optional[BidiSyncRule]:
    """Match a rule whether it names ``project`` or ``note.project``."""
    name = property_name_of(property_id)
    for rule in rules:
        if property_name_of(rule.watchedRelationPropertyName) == name:
            return rule
    return None
