"""FastAPI app exposing Studio editor sessions over JSON."""

from __future__ import annotations

import os
import re
import sys
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

import logging
import time

from app.db import fetch_one, get_conn, get_db_stats, reset_db_stats
from app.stores import MemoryComponentRegistry, MemorySnapshotBackend
from app.stores_db import DbSnapshotBackend
from page_document import ROOT_ID
from snapshot_store import SnapshotContextError, SnapshotStorageError
from studio_session import DocumentInvalidError, EditorSession, StudioSessions


app = FastAPI(title="Studio")
logger = logging.getLogger("studio")
logging.basicConfig(level=logging.INFO)
_LOCAL_CORS_ORIGINS = {
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
}
_LOCAL_CORS_REGEX = re.compile(r"^http://(localhost|127\.0\.0\.1):\d+$")
_EXTRA_CORS_ORIGINS = {
    origin.strip().rstrip("/")
    for origin in os.getenv("STUDIO_CORS_ORIGINS", "").split(",")
    if origin.strip()
}
_CORS_ORIGINS = _LOCAL_CORS_ORIGINS | _EXTRA_CORS_ORIGINS

USE_DB = os.getenv("USE_DB", "").strip() == "1"
APP_ENV = os.getenv("APP_ENV", os.getenv("ENV", "dev")).strip().lower() or "dev"
IS_DEV = APP_ENV == "dev"
REQ_SLOW_MS = float(os.getenv("STUDIO_REQ_SLOW_MS", "250"))
HISTORY_LIMIT = int(os.getenv("STUDIO_HISTORY_LIMIT", "50"))

if USE_DB:
    snapshot_backend = DbSnapshotBackend()
else:
    snapshot_backend = MemorySnapshotBackend()
component_registry = MemoryComponentRegistry()
sessions = StudioSessions(snapshot_backend, registry=component_registry, max_history=HISTORY_LIMIT)


@app.middleware("http")
async def local_cors_fallback_middleware(request: Request, call_next):
    origin = request.headers.get("origin")
    if request.method == "OPTIONS":
        response = JSONResponse({}, status_code=200)
    else:
        response = await call_next(request)
    normalized_origin = origin.rstrip("/") if isinstance(origin, str) else origin
    if normalized_origin and (normalized_origin in _CORS_ORIGINS or _LOCAL_CORS_REGEX.match(normalized_origin)):
        response.headers.setdefault("Access-Control-Allow-Origin", origin)
        response.headers.setdefault("Access-Control-Allow-Credentials", "true")
        response.headers.setdefault("Access-Control-Allow-Headers", "*")
        response.headers.setdefault("Access-Control-Allow-Methods", "*")
        response.headers.setdefault("Vary", "Origin")
    return response


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    reset_db_stats()
    start = time.perf_counter()
    response = await call_next(request)
    total_ms = (time.perf_counter() - start) * 1000
    db_stats = get_db_stats()
    route = request.scope.get("route")
    route_name = getattr(route, "name", None) or "unknown"
    logger.info(
        "%s %s %s route=%s total_ms=%.1f db_ms=%.1f db_q=%s",
        request.method,
        request.url.path,
        response.status_code,
        route_name,
        total_ms,
        db_stats.get("total_ms", 0.0),
        db_stats.get("queries", 0),
    )
    if total_ms >= REQ_SLOW_MS:
        logger.warning(
            "slow_request method=%s path=%s route=%s total_ms=%.1f status=%s",
            request.method,
            request.url.path,
            route_name,
            total_ms,
            response.status_code,
        )
    if IS_DEV:
        response.headers["X-Req-MS"] = f"{total_ms:.1f}"
        response.headers["X-Queries"] = str(db_stats.get("queries", 0))
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s", request.url.path)
    return _error_response("INTERNAL_ERROR", "Unexpected server error", detail={"error": str(exc)}, status=500)


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": True, **payload, "errors": [], "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _issue(code: str, message: str, path: str | None = None) -> dict:
    return {"code": code, "message": message, "path": path}


async def _safe_json(request: Request) -> dict:
    try:
        body = await request.json()
    except Exception:
        return {}
    return body if isinstance(body, dict) else {}


def _session_missing(page_id: str) -> JSONResponse:
    return _error_response("SESSION_NOT_FOUND", "No open session for page", "page_id", {"page_id": page_id}, status=404)


def _edit_error(exc: Exception) -> JSONResponse:
    if isinstance(exc, DocumentInvalidError):
        return _error_response("DOCUMENT_INVALID", exc.message, "document", {"issues": exc.issues})
    if isinstance(exc, KeyError):
        return _error_response("COMPONENT_NOT_FOUND", "Component not found", "component_id", status=404)
    return _error_response("INVALID_REQUEST", str(exc))


def _state_response(session: EditorSession, **extra) -> JSONResponse:
    return _ok_response({**extra, "session": session.state()})


def _optional_int(value) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("index must be integer")
    return value


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.get("/ops/db_ping")
async def db_ping():
    if not USE_DB:
        return _ok_response({"db": False})
    start = time.perf_counter()
    with get_conn() as conn:
        fetch_one(conn, "select 1 as ok", query_name="ops.db_ping")
    elapsed_ms = (time.perf_counter() - start) * 1000
    return _ok_response({"db": True, "ms": round(elapsed_ms, 2)})


# -- sessions ---------------------------------------------------------------


@app.post("/studio/sessions")
async def open_session(request: Request):
    body = await _safe_json(request)
    site_id = body.get("site_id")
    page_id = body.get("page_id")
    document = body.get("document")
    if not isinstance(site_id, str) or not site_id or not isinstance(page_id, str) or not page_id:
        return _error_response("INVALID_REQUEST", "site_id and page_id required", "page_id")
    if document is not None and not isinstance(document, dict):
        return _error_response("DOCUMENT_INVALID", "document must be object", "document")
    try:
        session = sessions.open(site_id, page_id, document)
    except DocumentInvalidError as exc:
        return _edit_error(exc)
    return _state_response(session)


@app.get("/studio/sessions/{page_id}")
async def get_session(page_id: str):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    return _state_response(session)


@app.delete("/studio/sessions/{page_id}")
async def close_session(page_id: str):
    if not sessions.close(page_id):
        return _session_missing(page_id)
    return _ok_response({"page_id": page_id})


@app.post("/studio/sessions/{page_id}/document")
async def record_document(page_id: str, request: Request):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    body = await _safe_json(request)
    action = body.get("action")
    document = body.get("document")
    if not isinstance(action, str) or not action:
        return _error_response("INVALID_REQUEST", "action required", "action")
    if not isinstance(document, dict):
        return _error_response("DOCUMENT_INVALID", "document must be object", "document")
    try:
        entry = session.record(
            action,
            document,
            component_id=body.get("component_id"),
            component_type=body.get("component_type"),
            custom_description=body.get("description"),
        )
    except DocumentInvalidError as exc:
        return _edit_error(exc)
    return _state_response(session, entry_id=entry["id"], description=entry["description"])


@app.post("/studio/sessions/{page_id}/save")
async def mark_saved(page_id: str):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    session.mark_saved()
    return _state_response(session)


# -- components -------------------------------------------------------------


@app.post("/studio/sessions/{page_id}/components")
async def add_component(page_id: str, request: Request):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    body = await _safe_json(request)
    props = body.get("props")
    if props is not None and not isinstance(props, dict):
        return _error_response("INVALID_REQUEST", "props must be object", "props")
    try:
        component_id = session.add_component(
            body.get("type"),
            props,
            parent_id=body.get("parent_id") or ROOT_ID,
            index=_optional_int(body.get("index")),
        )
    except (KeyError, ValueError) as exc:
        return _edit_error(exc)
    return _state_response(session, component_id=component_id)


@app.patch("/studio/sessions/{page_id}/components/{component_id}")
async def update_component(page_id: str, component_id: str, request: Request):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    body = await _safe_json(request)
    props = body.get("props")
    if props is not None and not isinstance(props, dict):
        return _error_response("INVALID_REQUEST", "props must be object", "props")
    try:
        if props is not None:
            session.update_props(component_id, props)
        if "locked" in body:
            session.set_locked(component_id, bool(body["locked"]))
        if "hidden" in body:
            session.set_hidden(component_id, bool(body["hidden"]))
    except (KeyError, ValueError) as exc:
        return _edit_error(exc)
    return _state_response(session)


@app.post("/studio/sessions/{page_id}/components/{component_id}/move")
async def move_component(page_id: str, component_id: str, request: Request):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    body = await _safe_json(request)
    try:
        session.move_component(component_id, body.get("parent_id") or ROOT_ID, _optional_int(body.get("index")))
    except (KeyError, ValueError) as exc:
        return _edit_error(exc)
    return _state_response(session)


@app.post("/studio/sessions/{page_id}/components/{component_id}/duplicate")
async def duplicate_component(page_id: str, component_id: str):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    try:
        new_id = session.duplicate_component(component_id)
    except KeyError as exc:
        return _edit_error(exc)
    return _state_response(session, component_id=new_id)


@app.delete("/studio/sessions/{page_id}/components/{component_id}")
async def delete_component(page_id: str, component_id: str):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    try:
        removed = session.delete_component(component_id)
    except KeyError as exc:
        return _edit_error(exc)
    return _state_response(session, removed=removed)


# -- history ----------------------------------------------------------------


@app.get("/studio/sessions/{page_id}/history")
async def list_history(page_id: str):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    return _ok_response(
        {
            "entries": session.history.list_entries(),
            "current_index": session.history.current_index,
            "undo_description": session.history.get_undo_description(),
            "redo_description": session.history.get_redo_description(),
        }
    )


@app.post("/studio/sessions/{page_id}/undo")
async def undo(page_id: str):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    applied = session.undo() is not None
    return _state_response(session, applied=applied)


@app.post("/studio/sessions/{page_id}/redo")
async def redo(page_id: str):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    applied = session.redo() is not None
    return _state_response(session, applied=applied)


@app.post("/studio/sessions/{page_id}/history/{entry_id}/jump")
async def jump_to_entry(page_id: str, entry_id: str):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    if session.jump_to(entry_id) is None:
        return _error_response("HISTORY_ENTRY_NOT_FOUND", "History entry not found", "entry_id", status=404)
    return _state_response(session)


# -- layers -----------------------------------------------------------------


@app.get("/studio/sessions/{page_id}/layers")
async def get_layers(page_id: str, q: str | None = None, flat: bool = False):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    if flat:
        return _ok_response({"rows": session.visible_layers(q)})
    return _ok_response({"tree": session.layers(q)})


@app.post("/studio/sessions/{page_id}/selection")
async def select_component(page_id: str, request: Request):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    body = await _safe_json(request)
    component_id = body.get("component_id")
    try:
        session.select(component_id)
        if component_id is not None and body.get("reveal"):
            session.reveal(component_id)
    except KeyError as exc:
        return _edit_error(exc)
    return _ok_response({"selected_id": session.selected_id, "expanded_ids": sorted(session.expanded_ids)})


@app.post("/studio/sessions/{page_id}/layers/{component_id}/toggle")
async def toggle_layer(page_id: str, component_id: str):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    expanded = session.toggle_expanded(component_id)
    return _ok_response({"component_id": component_id, "is_expanded": expanded})


# -- snapshots --------------------------------------------------------------


@app.get("/studio/sessions/{page_id}/snapshots")
async def list_snapshots(page_id: str):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    try:
        await session.snapshots.load_snapshots()
    except SnapshotContextError as exc:
        return _error_response(exc.code, exc.message)
    warnings = []
    if session.snapshots.error:
        warnings.append(_issue("SNAPSHOT_STORAGE_FAILED", session.snapshots.error))
    return _ok_response({"snapshots": session.snapshots.list_snapshots()}, warnings=warnings)


@app.post("/studio/sessions/{page_id}/snapshots")
async def save_snapshot(page_id: str, request: Request):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    body = await _safe_json(request)
    name = body.get("name")
    if not isinstance(name, str) or not name.strip():
        return _error_response("INVALID_REQUEST", "name required", "name")
    try:
        snapshot = await session.save_snapshot(name.strip(), body.get("description"), body.get("thumbnail"))
    except SnapshotContextError as exc:
        return _error_response(exc.code, exc.message)
    except SnapshotStorageError as exc:
        return _error_response(exc.code, exc.message, status=500)
    snapshot.pop("data", None)
    return _ok_response({"snapshot": snapshot}, status=201)


@app.get("/studio/sessions/{page_id}/snapshots/compare")
async def compare_snapshots(page_id: str, a: str, b: str):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    diff = session.snapshots.compare_snapshots(a, b)
    if diff is None:
        return _error_response("SNAPSHOT_NOT_FOUND", "Snapshot not found", "snapshot_id", status=404)
    return _ok_response({"diff": diff})


@app.get("/studio/sessions/{page_id}/snapshots/{snapshot_id}/diff")
async def diff_snapshot(page_id: str, snapshot_id: str):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    diff = session.compare_to_current(snapshot_id)
    if diff is None:
        return _error_response("SNAPSHOT_NOT_FOUND", "Snapshot not found", "snapshot_id", status=404)
    return _ok_response({"diff": diff})


@app.post("/studio/sessions/{page_id}/snapshots/{snapshot_id}/restore")
async def restore_snapshot(page_id: str, snapshot_id: str):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    if session.restore_snapshot(snapshot_id) is None:
        return _error_response("SNAPSHOT_NOT_FOUND", "Snapshot not found", "snapshot_id", status=404)
    return _state_response(session)


@app.delete("/studio/sessions/{page_id}/snapshots/{snapshot_id}")
async def delete_snapshot(page_id: str, snapshot_id: str):
    session = sessions.get(page_id)
    if session is None:
        return _session_missing(page_id)
    if session.snapshots.get_snapshot(snapshot_id) is None:
        return _error_response("SNAPSHOT_NOT_FOUND", "Snapshot not found", "snapshot_id", status=404)
    try:
        await session.snapshots.delete_snapshot(snapshot_id)
    except SnapshotStorageError as exc:
        return _error_response(exc.code, exc.message, status=500)
    return _ok_response({"snapshot_id": snapshot_id})
