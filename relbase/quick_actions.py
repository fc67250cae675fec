"""Quick actions: one-click frontmatter updates described by a small DSL.

DSL format: ``label:prop=value,prop=value;label:prop=value``
e.g. ``Done:status=done,completed=TODAY;Archive:archived=TRUE``

Special values are resolved at execution time, not parse time:
``TODAY`` (YYYY-MM-DD), ``NOW`` (ISO 8601 UTC), ``TRUE``, ``FALSE``; numeric
literals become numbers; anything else stays a string.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Optional, Sequence

from relbase.models import QuickActionConfig, QuickActionUpdate
from relbase.store.vault import DocumentStore

_NUMBER_PATTERN = re.compile(r"^-?\d+(\.\d+)?$")


def parse_updates(text: str) -> list[QuickActionUpdate]:
    updates: list[QuickActionUpdate] = []
    for pair in (text or "").split(","):
        token = pair.strip()
        if not token or "=" not in token:
            continue
        prop, value = token.split("=", 1)
        prop = prop.strip()
        if not prop:
            continue
        updates.append(QuickActionUpdate(property=prop, value=value.strip()))
    return updates


def parse_dsl(dsl: str | None) -> list[QuickActionConfig]:
    if not dsl or not dsl.strip():
        return []

    configs: list[QuickActionConfig] = []
    for index, action in enumerate(dsl.split(";")):
        action = action.strip()
        if ":" not in action:
            continue
        # labels may not contain colons
        label, updates_text = action.split(":", 1)
        label = label.strip()
        updates = parse_updates(updates_text)
        if not label or not updates:
            continue
        configs.append(QuickActionConfig(id=f"quickAction_{index}", label=label, updates=updates))
    return configs


def resolve_value(value: str, now: Optional[datetime] = None) -> Any:
    current = now or datetime.now(timezone.utc)
    token = value.strip().upper()
    if token == "TODAY":
        local = current.astimezone() if current.tzinfo else current
        return date(local.year, local.month, local.day).isoformat()
    if token == "NOW":
        stamp = current.astimezone(timezone.utc) if current.tzinfo else current
        return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    if token == "TRUE":
        return True
    if token == "FALSE":
        return False
    if _NUMBER_PATTERN.match(value.strip()):
        return float(value) if "." in value else int(value)
    return value


async def execute(
    store: DocumentStore,
    identity: str,
    updates: Sequence[QuickActionUpdate],
    now: Optional[datetime] = None,
) -> bool:
    """Apply every update of one action in a single atomic read-modify-write."""
    resolved = [(update.property, resolve_value(update.value, now)) for update in updates]

    def mutate(fm: dict[str, Any]) -> bool:
        for prop, value in resolved:
            fm[prop] = value
        return bool(resolved)

    return await store.process_frontmatter(identity, mutate)
