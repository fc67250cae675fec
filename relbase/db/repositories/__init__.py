"""Repository package for database access."""

from .mru import SqliteMruRepository

__all__ = [
    "SqliteMruRepository",
]
