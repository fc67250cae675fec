"""Shared helpers for document references.

These helpers centralize wikilink parsing, identity normalization and
reference diffing so the resolver, rollups and back-link sync all use the
same equivalence semantics: two references are the same iff their
normalized identities match.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional


_WIKILINK_PATTERN = re.compile(
    r"^\s*!?\[\[(?P<path>[^\[\]|#^]*)(?P<anchor>[#^][^\[\]|]*)?(?:\|(?P<display>[^\[\]]*))?\]\]\s*$"
)
_MARKDOWN_EXTENSION = ".md"


@dataclass(frozen=True)
class WikiLink:
    raw: str
    path: str
    display: str


@dataclass(frozen=True)
class Reference:
    raw_text: str
    resolved_identity: Optional[str]
    display_label: str

    @property
    def key(self) -> str:
        if self.resolved_identity:
            return normalize_identity(self.resolved_identity)
        return normalize_identity(link_target(self.raw_text))


def _unique(values: Iterable[str], key: Callable[[str], str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for raw in values:
        value = (raw or "").strip()
        if not value:
            continue
        token = key(value)
        if token in seen:
            continue
        seen.add(token)
        ordered.append(value)
    return ordered


def parse_wikilink(text: str) -> WikiLink | None:
    if not isinstance(text, str):
        return None
    match = _WIKILINK_PATTERN.match(text)
    if not match:
        return None
    path = match.group("path").strip()
    if not path:
        return None
    display = (match.group("display") or "").strip() or path
    return WikiLink(raw=text.strip(), path=path, display=display)


def is_wikilink(text: str) -> bool:
    return parse_wikilink(text) is not None


def strip_extension(path_value: str) -> str:
    if path_value.lower().endswith(_MARKDOWN_EXTENSION):
        return path_value[: -len(_MARKDOWN_EXTENSION)]
    return path_value


def normalize_identity(raw: str) -> str:
    """Case-insensitive, extension-stripped, slash-normalized identity."""
    value = (raw or "").replace("\\", "/").lower()
    previous = None
    while value != previous:
        previous = value
        value = value.strip()
        while value.startswith("./"):
            value = value[2:]
        value = strip_extension(value.strip("/"))
    return value


def link_target(text: str) -> str:
    """Return the path a reference points at (wikilink path, or the plain text)."""
    parsed = parse_wikilink(text)
    if parsed:
        return parsed.path
    return (text or "").strip()


def format_wikilink(identity: str, display: str | None = None) -> str:
    """Canonical encoded reference for a document identity."""
    target = strip_extension((identity or "").strip().replace("\\", "/"))
    if display and display != target:
        return f"[[{target}|{display}]]"
    return f"[[{target}]]"


def diff_references(
    old_refs: Iterable[str],
    new_refs: Iterable[str],
    key: Callable[[str], str] | None = None,
) -> tuple[list[str], list[str]]:
    """Split an edit into (added, removed) by normalized identity.

    ``key`` maps raw reference text to its comparison identity; the default
    compares normalized link targets without consulting any index.
    """
    keyfn = key or (lambda value: normalize_identity(link_target(value)))
    old_list = _unique(old_refs, keyfn)
    new_list = _unique(new_refs, keyfn)
    old_keys = {keyfn(v) for v in old_list}
    new_keys = {keyfn(v) for v in new_list}
    added = [v for v in new_list if keyfn(v) not in old_keys]
    removed = [v for v in old_list if keyfn(v) not in new_keys]
    return added, removed


def property_name_of(property_id: str) -> str:
    """Extract the frontmatter key from a host property id.

    ``note.related-projects`` -> ``related-projects``
    """
    value = (property_id or "").strip()
    dot = value.find(".")
    if dot >= 0 and value[:dot] in {"note", "file", "formula"}:
        return value[dot + 1:]
    return value


def is_note_property(property_id: str) -> bool:
    value = (property_id or "").strip()
    if value.startswith("file.") or value.startswith("formula."):
        return False
    return bool(property_name_of(value))
