"""Relation view, edit intake, note picker and quick action API."""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from relbase import config
from relbase import quick_actions
from relbase.models import (
    CellEdit,
    MruSelection,
    QuickActionRequest,
    RelationEdit,
    ViewRequest,
    ViewResponse,
)
from relbase.mru import MruService
from relbase.references import property_name_of
from relbase.resolver import NoteResolver
from relbase.session import RelationalSession, SessionRegistry
from relbase.store.vault import Document, DocumentStore
from relbase.view_config import ViewConfigError, parse_view_config

logger = logging.getLogger("relbase.api")

sessions_router = APIRouter(prefix="/api/sessions", tags=["sessions"])
notes_router = APIRouter(prefix="/api/notes", tags=["notes"])
mru_router = APIRouter(prefix="/api/mru", tags=["mru"])
quick_actions_router = APIRouter(prefix="/api/quick-actions", tags=["quick-actions"])


class NoteSummary(BaseModel):
    path: str
    basename: str
    aliases: list[str] = Field(default_factory=list)


class ResolvedReference(BaseModel):
    rawText: str
    displayLabel: str
    note: NoteSummary


def _summary(doc: Document) -> NoteSummary:
    return NoteSummary(path=doc.path, basename=doc.basename, aliases=list(doc.aliases))


def _get_registry(request: Request) -> SessionRegistry:
    registry = getattr(request.app.state, "sessions", None)
    if not registry:
        raise HTTPException(status_code=503, detail="Session registry not initialized")
    return registry


def _get_store(request: Request) -> DocumentStore:
    store = getattr(request.app.state, "store", None)
    if not store:
        raise HTTPException(status_code=503, detail="Document store not initialized")
    return store


def _get_mru(request: Request) -> MruService:
    mru = getattr(request.app.state, "mru", None)
    if not mru:
        raise HTTPException(status_code=503, detail="MRU service not initialized")
    return mru


def _get_session(request: Request, session_id: str) -> RelationalSession:
    session = _get_registry(request).get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return session


def _require_document(store: DocumentStore, identity: str) -> Document:
    doc = store.get(identity)
    if not doc:
        raise HTTPException(status_code=404, detail=f"Note {identity} not found")
    return doc


def _parse_options(options: dict[str, Any]):
    try:
        return parse_view_config(options)
    except ViewConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


# ── Sessions ───────────────────────────────────────────────────────

@sessions_router.post("/{session_id}/view", response_model=ViewResponse)
async def build_view(request: Request, session_id: str, req: ViewRequest):
    """Classify columns and compute rollups for a folder query."""
    session = _get_registry(request).get_or_create(session_id)
    view_config = _parse_options(req.options)
    return session.build_view(req.properties, view_config, folder=req.folder)


@sessions_router.get("/{session_id}/relations")
async def list_relation_properties(request: Request, session_id: str):
    session = _get_session(request, session_id)
    return {"items": session.classifier.relation_properties()}


@sessions_router.get("/{session_id}/relations/{property_name}")
async def get_relation_status(request: Request, session_id: str, property_name: str):
    session = _get_session(request, session_id)
    return {
        "propertyName": property_name_of(property_name),
        "isRelation": session.is_relation(property_name),
    }


@sessions_router.post("/{session_id}/edits")
async def enqueue_edit(request: Request, session_id: str, req: CellEdit):
    """Queue a cell edit; it is written after the debounce window."""
    session = _get_registry(request).get_or_create(session_id)
    doc = _require_document(session.store, req.identity)
    session.enqueue(doc.path, req.propertyId, req.value)
    return {"status": "queued", "pending": len(session.write_queue.pending)}


@sessions_router.post("/{session_id}/relations")
async def update_relation(request: Request, session_id: str, req: RelationEdit):
    """Queue a relation edit and the back-link updates it implies."""
    session = _get_registry(request).get_or_create(session_id)
    doc = _require_document(session.store, req.identity)
    view_config = _parse_options(req.options)
    stats = await session.update_relation(doc.path, req.propertyId, req.links, view_config)
    return {"status": "queued", "backLinks": stats}


@sessions_router.post("/{session_id}/flush")
async def flush_session(request: Request, session_id: str):
    session = _get_session(request, session_id)
    await session.flush()
    return {"status": "ok", "stats": dict(session.write_queue.stats)}


@sessions_router.delete("/{session_id}")
async def close_session(request: Request, session_id: str):
    closed = await _get_registry(request).close(session_id)
    if not closed:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return {"status": "closed"}


# ── Note picker ────────────────────────────────────────────────────

@notes_router.get("/search")
async def search_notes(
    request: Request,
    q: str = Query(""),
    scope: Optional[str] = Query(None),
    limit: int = Query(config.SEARCH_LIMIT, ge=1, le=500),
):
    """Basename search for the relation picker, with recent picks for the scope."""
    resolver = NoteResolver(_get_store(request))
    if q.strip():
        docs = resolver.search(q, scope=scope, limit=limit)
    else:
        docs = resolver.all_documents(scope)[:limit]

    recent: list[NoteSummary] = []
    mru = getattr(request.app.state, "mru", None)
    if mru:
        for identity in mru.get_recent(scope):
            doc = resolver.resolve_exact(identity)
            if doc:
                recent.append(_summary(doc))

    return {
        "count": len(docs),
        "items": [_summary(d) for d in docs],
        "recent": recent,
    }


@notes_router.get("/resolve")
async def resolve_note(request: Request, ref: str = Query(..., min_length=1), scope: Optional[str] = Query(None)):
    store = _get_store(request)
    reference = NoteResolver(store).reference(ref, scope)
    doc = store.get(reference.resolved_identity) if reference.resolved_identity else None
    if not doc:
        raise HTTPException(status_code=404, detail=f"Reference {ref} does not resolve")
    return ResolvedReference(rawText=reference.raw_text, displayLabel=reference.display_label, note=_summary(doc))


# ── MRU ────────────────────────────────────────────────────────────

@mru_router.get("")
async def get_recent(request: Request, scope: Optional[str] = Query(None)):
    return {"scope": scope or "", "items": _get_mru(request).get_recent(scope)}


@mru_router.post("")
async def record_selection(request: Request, req: MruSelection, scope: Optional[str] = Query(None)):
    items = await _get_mru(request).record_selection(scope, req.identity)
    return {"scope": scope or "", "items": items}


# ── Quick actions ──────────────────────────────────────────────────

@quick_actions_router.post("/execute")
async def execute_quick_action(request: Request, req: QuickActionRequest):
    store = _get_store(request)
    doc = _require_document(store, req.identity)
    try:
        changed = await quick_actions.execute(store, doc.path, req.action.updates)
    except Exception as e:
        logger.error(f"Quick action {req.action.label!r} failed on {doc.path}: {e}")
        return {"status": "error", "detail": str(e)}
    return {"status": "ok", "changed": changed}
