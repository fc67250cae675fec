"""Filesystem-backed document store.

A vault is a directory tree of markdown notes. The store keeps an in-memory
index (identity, basename, aliases, last-seen properties) for resolution and
exposes one write primitive, ``process_frontmatter``, which performs an
atomic read-modify-write of a single note's frontmatter against the state
currently on disk.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Iterable, Optional

from relbase.frontmatter import (
    aliases_from_frontmatter,
    extract_frontmatter,
    load_frontmatter_dict,
    rebuild_file,
    split_frontmatter,
)
from relbase.references import normalize_identity
from relbase.values import PropertyValue, unwrap_value

logger = logging.getLogger("relbase.store")

FrontmatterMutator = Callable[[dict[str, Any]], bool]


class DocumentNotFoundError(LookupError):
    """Raised by the write primitive when the identity is not in the vault."""


@dataclass
class Document:
    path: str
    basename: str
    aliases: tuple[str, ...] = ()
    properties: dict[str, PropertyValue] = field(default_factory=dict)

    @property
    def folder(self) -> str:
        parent = PurePosixPath(self.path).parent.as_posix()
        return "" if parent == "." else parent


def _build_document(rel_path: str, fm: dict[str, Any]) -> Document:
    return Document(
        path=rel_path,
        basename=PurePosixPath(rel_path).stem,
        aliases=tuple(aliases_from_frontmatter(fm)),
        properties={str(k): unwrap_value(v) for k, v in fm.items()},
    )


def _atomic_write(path: Path, text: str) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=".relbase-", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


class DocumentStore:
    """Markdown vault with an identity index and an atomic frontmatter writer."""

    def __init__(self, root: Path, config_dir: str = ".obsidian"):
        self.root = Path(root)
        self.config_dir = config_dir
        self._documents: dict[str, Document] = {}
        self._folders: dict[str, str] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    # ── Index ──────────────────────────────────────────────────────

    def identity_for(self, path: Path) -> str:
        try:
            rel = path.resolve(strict=False).relative_to(self.root.resolve(strict=False))
        except ValueError:
            rel = path
        return PurePosixPath(*Path(rel).parts).as_posix()

    def _is_hidden(self, rel_path: str) -> bool:
        return any(part.startswith(".") for part in PurePosixPath(rel_path).parts)

    def refresh(self) -> int:
        """Rescan the whole vault. Returns the number of indexed notes."""
        documents: dict[str, Document] = {}
        folders: dict[str, str] = {}
        if not self.root.exists():
            logger.warning(f"Vault directory does not exist: {self.root}")
            self._documents, self._folders = documents, folders
            return 0

        for path in sorted(self.root.rglob("*")):
            rel_path = self.identity_for(path)
            if self._is_hidden(rel_path):
                continue
            if path.is_dir():
                folders[rel_path.lower()] = rel_path
                continue
            if path.suffix.lower() != ".md":
                continue
            doc = self._read_document(path, rel_path)
            if doc:
                documents[normalize_identity(rel_path)] = doc

        self._documents, self._folders = documents, folders
        logger.info(f"Indexed {len(documents)} notes and {len(folders)} folders under {self.root}")
        return len(documents)

    def refresh_paths(self, changes: Iterable[tuple[str, Path]]) -> int:
        """Apply (change_type, path) pairs from the file watcher to the index."""
        applied = 0
        for change_type, path in changes:
            rel_path = self.identity_for(path)
            if self._is_hidden(rel_path):
                continue
            key = normalize_identity(rel_path)
            if change_type == "deleted":
                if self._documents.pop(key, None) is not None:
                    applied += 1
                self._folders.pop(rel_path.lower(), None)
                continue
            if path.is_dir():
                self._folders[rel_path.lower()] = rel_path
                continue
            if path.suffix.lower() != ".md":
                continue
            doc = self._read_document(path, rel_path)
            if doc:
                self._documents[key] = doc
                self._register_parent_folders(rel_path)
                applied += 1
        return applied

    def _register_parent_folders(self, rel_path: str) -> None:
        for parent in PurePosixPath(rel_path).parents:
            token = parent.as_posix()
            if token in ("", "."):
                continue
            self._folders.setdefault(token.lower(), token)

    def _read_document(self, path: Path, rel_path: str) -> Document | None:
        try:
            text = path.read_text(encoding="utf-8")
        except Exception as e:
            logger.debug(f"Skipping unreadable note {path}: {e}")
            return None
        fm, _body, _had_frontmatter = extract_frontmatter(text)
        return _build_document(rel_path, fm)

    def documents(self, folder: str | None = None) -> list[Document]:
        docs = list(self._documents.values())
        if folder:
            prefix = folder.strip("/").lower() + "/"
            docs = [d for d in docs if d.path.lower().startswith(prefix)]
        return docs

    def get(self, identity: str) -> Optional[Document]:
        key = normalize_identity(identity)
        if not key:
            return None
        return self._documents.get(key)

    def find_folder(self, folder: str) -> Optional[str]:
        """Return the folder's actual path if it exists (case-insensitive)."""
        token = (folder or "").strip().strip("/").replace("\\", "/")
        if not token:
            return None
        return self._folders.get(token.lower())

    def folder_exists(self, folder: str) -> bool:
        return self.find_folder(folder) is not None

    # ── Reads ──────────────────────────────────────────────────────

    def read_properties(self, identity: str) -> dict[str, PropertyValue]:
        """Read a note's frontmatter from disk. Missing/broken notes read as {}."""
        doc = self.get(identity)
        if doc is None:
            return {}
        path = self.root / doc.path
        try:
            text = path.read_text(encoding="utf-8")
        except Exception as e:
            logger.debug(f"Failed to read {doc.path}: {e}")
            return {}
        fm, _body, _had_frontmatter = extract_frontmatter(text)
        return {str(k): unwrap_value(v) for k, v in fm.items()}

    def property_types(self) -> dict[str, str]:
        """Registered property types from ``<config_dir>/types.json``."""
        types_path = self.root / self.config_dir / "types.json"
        if not types_path.exists():
            return {}
        try:
            parsed = json.loads(types_path.read_text(encoding="utf-8"))
        except Exception as e:
            logger.warning(f"Failed to load {types_path}: {e}")
            return {}
        types = parsed.get("types") if isinstance(parsed, dict) else None
        if not isinstance(types, dict):
            return {}
        return {str(k): str(v) for k, v in types.items()}

    # ── Atomic write primitive ─────────────────────────────────────

    async def process_frontmatter(self, identity: str, mutate: FrontmatterMutator) -> bool:
        """Atomically read, mutate and write one note's frontmatter.

        ``mutate`` receives the frontmatter mapping as currently on disk and
        returns True when it changed something; nothing is written otherwise.
        Writers to the same note are serialized.
        """
        doc = self.get(identity)
        if doc is None:
            raise DocumentNotFoundError(identity)

        lock = self._locks.setdefault(normalize_identity(doc.path), asyncio.Lock())
        async with lock:
            path = self.root / doc.path
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
            fm_text, body = split_frontmatter(text)
            fm = {} if fm_text is None else load_frontmatter_dict(fm_text, path)

            if not mutate(fm):
                return False

            await asyncio.to_thread(_atomic_write, path, rebuild_file(fm, body))
            self._documents[normalize_identity(doc.path)] = _build_document(doc.path, fm)
            return True
