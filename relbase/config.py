"""relbase configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default

# Project root (one level up from relbase/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Vault (directory of markdown notes with YAML frontmatter)
VAULT_DIR = Path(os.getenv("RELBASE_VAULT_DIR", str(PROJECT_ROOT / "vault")))
VAULT_CONFIG_DIR = os.getenv("RELBASE_VAULT_CONFIG_DIR", ".obsidian")

# Database (MRU persistence)
DB_PATH = Path(os.getenv("RELBASE_DB_PATH", str(PROJECT_ROOT / "data" / "relbase.db")))

# Write queue tuning
DEBOUNCE_MS = _env_int("RELBASE_DEBOUNCE_MS", 250)
INTER_OP_DELAY_MS = _env_int("RELBASE_INTER_OP_DELAY_MS", 25)

# Relation detection / pickers
SAMPLE_ROWS = _env_int("RELBASE_SAMPLE_ROWS", 10)
MRU_MAX_ENTRIES = _env_int("RELBASE_MRU_MAX_ENTRIES", 20)
SEARCH_LIMIT = _env_int("RELBASE_SEARCH_LIMIT", 50)
MAX_ROLLUPS = 3
MAX_BIDI_RULES = 3

# File watcher
WATCH_ENABLED = _env_bool("RELBASE_WATCH_ENABLED", True)

# Logging
LOG_LEVEL = os.getenv("RELBASE_LOG_LEVEL", "INFO").upper()

# Server settings
HOST = os.getenv("RELBASE_HOST", "0.0.0.0")
PORT = _env_int("RELBASE_PORT", 8000)

# CORS
FRONTEND_ORIGIN = os.getenv("RELBASE_FRONTEND_ORIGIN", "http://localhost:3000")
