"""Document store package."""

from .vault import Document, DocumentNotFoundError, DocumentStore
from .file_watcher import FileWatcher

__all__ = [
    "Document",
    "DocumentNotFoundError",
    "DocumentStore",
    "FileWatcher",
]
