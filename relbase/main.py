"""relbase FastAPI application entry point."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from relbase import config
from relbase.db import connection, sqlite_migrations
from relbase.db.repositories.mru import SqliteMruRepository
from relbase.mru import MruService
from relbase.routers.api import mru_router, notes_router, quick_actions_router, sessions_router
from relbase.session import SessionRegistry
from relbase.store.file_watcher import FileWatcher
from relbase.store.vault import DocumentStore

logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))
logger = logging.getLogger("relbase")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("relbase starting up")

    # 1. Index the vault
    store = DocumentStore(config.VAULT_DIR, config_dir=config.VAULT_CONFIG_DIR)
    await asyncio.to_thread(store.refresh)
    app.state.store = store

    # 2. MRU persistence
    db = await connection.get_connection()
    await sqlite_migrations.run_migrations(db)
    mru = MruService(SqliteMruRepository(db))
    await mru.load()
    app.state.mru = mru

    # 3. Sessions (one write queue each)
    app.state.sessions = SessionRegistry(store)

    # 4. File watcher
    watcher = FileWatcher(store)
    app.state.watcher = watcher
    if config.WATCH_ENABLED:
        await watcher.start()

    yield

    logger.info("relbase shutting down")
    await watcher.stop()
    # drain queued edits before the process goes away
    await app.state.sessions.close_all()
    await connection.close_connection()


app = FastAPI(
    title="relbase API",
    description="Relations, rollups and back-link sync for markdown vaults",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(sessions_router)
app.include_router(notes_router)
app.include_router(mru_router)
app.include_router(quick_actions_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    watcher = getattr(app.state, "watcher", None)
    store = getattr(app.state, "store", None)
    return {
        "status": "ok",
        "db": "connected" if connection._connection else "disconnected",
        "watcher": "running" if watcher and watcher.is_running else "stopped",
        "notes": len(store.documents()) if store else 0,
    }
