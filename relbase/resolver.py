"""Resolve references to documents in a DocumentStore.

Broken or absent references are an expected steady state, so every lookup
here returns ``None`` on failure instead of raising.
"""
from __future__ import annotations

import logging
from typing import Optional

from relbase.references import Reference, link_target, normalize_identity, parse_wikilink
from relbase.store.vault import Document, DocumentStore

logger = logging.getLogger("relbase.resolver")


def _scope_prefix(scope: str | None) -> str:
    token = (scope or "").strip().replace("\\", "/").strip("/")
    return f"{token.lower()}/" if token else ""


class NoteResolver:
    def __init__(self, store: DocumentStore):
        self.store = store

    def _candidates(self, scope: str | None = None) -> list[Document]:
        prefix = _scope_prefix(scope)
        docs = sorted(self.store.documents(), key=lambda d: d.path.lower())
        if not prefix:
            return docs
        return [d for d in docs if d.path.lower().startswith(prefix)]

    def resolve_exact(self, identity: str) -> Optional[Document]:
        try:
            return self.store.get(identity)
        except Exception as e:
            logger.debug(f"Exact resolution failed for {identity!r}: {e}")
            return None

    def resolve_by_text(self, text: str, scope: str | None = None) -> Optional[Document]:
        """Basename match within scope first, then alias match."""
        if not isinstance(text, str):
            return None
        needle = text.strip().lower()
        if not needle:
            return None

        candidates = self._candidates(scope)
        for doc in candidates:
            if doc.basename.lower() == needle:
                return doc
        for doc in candidates:
            if any(alias.lower() == needle for alias in doc.aliases):
                return doc
        return None

    def resolve_link(self, link_path: str, scope: str | None = None) -> Optional[Document]:
        """Resolve the target of an encoded reference (``[[path]]``)."""
        target = (link_path or "").strip()
        if not target:
            return None
        doc = self.resolve_exact(target)
        if doc:
            return doc
        if "/" in target.replace("\\", "/"):
            # folder-qualified link whose folder part does not match; fall back to the name
            target = target.replace("\\", "/").rsplit("/", 1)[-1]
        if target.lower().endswith(".md"):
            target = target[:-3]
        return self.resolve_by_text(target, scope)

    def resolve_reference(self, text: str, scope: str | None = None) -> Optional[Document]:
        """Resolve encoded or plain-text references."""
        if not isinstance(text, str) or not text.strip():
            return None
        parsed = parse_wikilink(text)
        if parsed:
            return self.resolve_link(parsed.path, scope)
        doc = self.resolve_by_text(text, scope)
        if doc is None and "/" in text.replace("\\", "/"):
            doc = self.resolve_exact(text)
        return doc

    def reference(self, text: str, scope: str | None = None) -> Reference:
        doc = self.resolve_reference(text, scope)
        parsed = parse_wikilink(text)
        label = parsed.display if parsed else (text or "").strip()
        return Reference(
            raw_text=text,
            resolved_identity=doc.path if doc else None,
            display_label=label,
        )

    def reference_key(self, text: str) -> str:
        """Comparison identity: resolved path when resolvable, else the link target."""
        doc = self.resolve_reference(text)
        if doc:
            return normalize_identity(doc.path)
        return normalize_identity(link_target(text))

    def search(self, prefix: str, scope: str | None = None, limit: int = 50) -> list[Document]:
        needle = (prefix or "").strip().lower()
        matches = [d for d in self._candidates(scope) if needle in d.basename.lower()]
        matches.sort(key=lambda d: (d.basename.lower(), d.path.lower()))
        return matches[: max(0, limit)]

    def all_documents(self, scope: str | None = None) -> list[Document]:
        docs = self._candidates(scope)
        docs.sort(key=lambda d: (d.basename.lower(), d.path.lower()))
        return docs

    def folder_exists(self, folder: str) -> bool:
        return self.store.folder_exists(folder)

    def find_folder(self, folder: str) -> Optional[str]:
        return self.store.find_folder(folder)
