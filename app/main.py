"""FastAPI app for the MycoLab creation workflow."""

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

import time
import logging

from app.db import get_db_stats, reset_db_stats
from app.stores import MemoryDraftStackStore, MemoryLabData, MemoryNotificationStore
from creation_session import CreationSession, DraftStackError
from entity_config import CREATION_ROUTES, ENTITY_CONFIGS, parse_entity_type
from event_bus import EventBus
from form_dispatch import handle_change, render_form
from myco import temperature, weight
from outbox import Outbox
from submission import SubmissionController


app = FastAPI(title="MycoLab")
logger = logging.getLogger("myco")
logging.basicConfig(level=logging.INFO)
_LOCAL_CORS_REGEX = re.compile(r"^http://(localhost|127\.0\.0\.1):\d+$")
_CORS_ORIGINS = {
    origin.strip().rstrip("/")
    for origin in os.getenv("MYCO_CORS_ORIGINS", "").split(",")
    if origin.strip()
}

USE_DB = os.getenv("USE_DB", "").strip() == "1"
APP_ENV = os.getenv("APP_ENV", os.getenv("ENV", "dev")).strip().lower() or "dev"
IS_DEV = APP_ENV == "dev"
REQ_SLOW_MS = float(os.getenv("MYCO_REQ_SLOW_MS", "250"))
SESSION_HEADER = "X-Session-Id"
DEFAULT_SESSION = "default"

if USE_DB:
    from app.db import init_schema
    from app.stores_db import DbDraftStackStore, DbLabData

    init_schema()
    lab_data = DbLabData()
    draft_store = DbDraftStackStore()
else:
    lab_data = MemoryLabData()
    draft_store = MemoryDraftStackStore()

notification_store = MemoryNotificationStore()
outbox = Outbox()
event_bus = EventBus(outbox)
_sessions: dict[str, CreationSession] = {}
_controllers: dict[str, SubmissionController] = {}
logger.info("use_db=%s app_env=%s cors_origins=%s", USE_DB, APP_ENV, sorted(_CORS_ORIGINS))


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
    logger.info(
        "%s %s %s total_ms=%.1f db_q=%s db_ms=%.1f",
        request.method,
        request.url.path,
        response.status_code,
        total_ms,
        db_stats.get("queries", 0),
        db_stats.get("total_ms", 0.0),
    )
    if total_ms > REQ_SLOW_MS:
        logger.warning("req_slow method=%s path=%s total_ms=%.1f budget_ms=%.1f", request.method, request.url.path, total_ms, REQ_SLOW_MS)
    if IS_DEV:
        response.headers["X-Req-MS"] = f"{total_ms:.1f}"
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error method=%s path=%s", request.method, request.url.path)
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


async def _safe_json(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _session_id(request: Request) -> str:
    value = (request.headers.get(SESSION_HEADER) or "").strip()
    return value or DEFAULT_SESSION


def _get_session(session_id: str) -> CreationSession:
    session = _sessions.get(session_id)
    if session is None:
        session = CreationSession.restore(draft_store.get_stack(session_id), session_id)
        _sessions[session_id] = session
        logger.info("session_opened session=%s depth=%s", session_id, session.stack_depth)
    return session


def _get_controller(session: CreationSession) -> SubmissionController:
    controller = _controllers.get(session.session_id)
    if controller is None:
        controller = SubmissionController(session, lab_data, events=event_bus, notifications=notification_store)
        _controllers[session.session_id] = controller
    return controller


def _persist(session: CreationSession) -> None:
    if session.is_creating:
        draft_store.save_stack(session.session_id, session.snapshot())
    else:
        draft_store.delete_stack(session.session_id)


def _stack_view(session: CreationSession) -> dict:
    current = session.current_draft
    return {
        "session_id": session.session_id,
        "draft_stack": [d.to_dict() for d in session.draft_stack],
        "current_draft": current.to_dict() if current else None,
        "stack_depth": session.stack_depth,
        "is_creating": session.is_creating,
        "show_back": session.stack_depth > 1,
        "breadcrumb": session.breadcrumb() if session.stack_depth > 1 else [],
    }


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.get("/entity-types")
async def list_entity_types() -> JSONResponse:
    items = []
    for entity_type, config in ENTITY_CONFIGS.items():
        items.append({"entity_type": entity_type.value, "creatable": entity_type in CREATION_ROUTES, **config.to_dict()})
    return _ok_response({"entity_types": items})


@app.get("/creation")
async def get_creation_stack(request: Request) -> JSONResponse:
    return _ok_response(_stack_view(_get_session(_session_id(request))))


@app.post("/creation")
async def start_creation(request: Request) -> JSONResponse:
    body = await _safe_json(request)
    entity_type = parse_entity_type(body.get("entity_type"))
    if entity_type is None:
        return _error_response("UNKNOWN_ENTITY_TYPE", f"Unknown entity type: {body.get('entity_type')}", "entity_type")
    initial_data = body.get("initial_data")
    if initial_data is not None and not isinstance(initial_data, dict):
        return _error_response("INVALID_PAYLOAD", "initial_data must be an object", "initial_data")
    session = _get_session(_session_id(request))
    draft_id = session.start_creation(
        entity_type,
        field_to_fill=body.get("field_to_fill") or None,
        label=body.get("label") or None,
        initial_data=initial_data,
    )
    _persist(session)
    return _ok_response({"draft_id": draft_id, **_stack_view(session)}, status=201)


@app.delete("/creation")
async def clear_creation_stack(request: Request) -> JSONResponse:
    session = _get_session(_session_id(request))
    session.clear_all_drafts()
    _persist(session)
    return _ok_response(_stack_view(session))


@app.get("/creation/current/form")
async def get_current_form(request: Request) -> JSONResponse:
    session = _get_session(_session_id(request))
    form = render_form(session.current_draft, state=lab_data.state)
    if form is None:
        return _error_response("NO_ACTIVE_DRAFT", "Nothing is being created", status=404)
    return _ok_response({"form": form, "stack_depth": session.stack_depth, "show_back": session.stack_depth > 1})


@app.patch("/creation/drafts/{draft_id}")
async def update_draft(request: Request, draft_id: str) -> JSONResponse:
    body = await _safe_json(request)
    updates = body.get("updates")
    if not isinstance(updates, dict):
        return _error_response("INVALID_PAYLOAD", "updates must be an object", "updates")
    session = _get_session(_session_id(request))
    draft = handle_change(session, draft_id, updates)
    if draft is None:
        return _error_response("DRAFT_NOT_FOUND", "Draft not found on creation stack", "draft_id", status=404)
    _persist(session)
    return _ok_response({"draft": draft.to_dict()})


@app.post("/creation/drafts/{draft_id}/submit")
async def submit_draft(request: Request, draft_id: str) -> JSONResponse:
    session = _get_session(_session_id(request))
    controller = _get_controller(session)
    result = await controller.submit(draft_id)
    if result["ok"]:
        _persist(session)
        return JSONResponse(jsonable_encoder({**result, "stack": _stack_view(session)}), status_code=200)
    code = result["errors"][0]["code"] if result["errors"] else None
    status = {
        "DRAFT_NOT_FOUND": 404,
        "SUBMIT_IN_PROGRESS": 409,
        "REQUIRED_FIELD": 422,
        "UNKNOWN_ENTITY_TYPE": 422,
        "PERSIST_FAILED": 502,
    }.get(code, 400)
    draft = session.get_draft(draft_id)
    body = {**result, "form": render_form(draft, result["field_errors"], lab_data.state) if draft else None}
    return JSONResponse(jsonable_encoder(body), status_code=status)


@app.post("/creation/drafts/{draft_id}/cancel")
async def cancel_draft(request: Request, draft_id: str) -> JSONResponse:
    session = _get_session(_session_id(request))
    try:
        parent = session.cancel_creation(draft_id)
    except DraftStackError as exc:
        return _error_response(exc.code, exc.message, exc.path, status=404)
    _persist(session)
    return _ok_response({"parent": parent.to_dict() if parent else None, "close": parent is None, "stack": _stack_view(session)})


@app.get("/entities/{entity_type}")
async def list_entities(entity_type: str) -> JSONResponse:
    parsed = parse_entity_type(entity_type)
    if parsed is None or parsed not in CREATION_ROUTES:
        return _error_response("UNKNOWN_ENTITY_TYPE", f"Unknown entity type: {entity_type}", "entity_type", status=404)
    return _ok_response({"entity_type": parsed.value, "items": lab_data.list(parsed)})


@app.get("/notifications")
async def list_notifications(request: Request, unread_only: bool = False) -> JSONResponse:
    items = notification_store.list(_session_id(request), unread_only=unread_only)
    return _ok_response({"notifications": items})


@app.post("/notifications/{notification_id}/read")
async def mark_notification_read(notification_id: str) -> JSONResponse:
    item = notification_store.mark_read(notification_id)
    if item is None:
        return _error_response("NOTIFICATION_NOT_FOUND", "Notification not found", "notification_id", status=404)
    return _ok_response({"notification": item})


@app.get("/events")
async def list_pending_events(request: Request) -> JSONResponse:
    return _ok_response({"events": outbox.pending(_session_id(request))})


@app.post("/events/{event_id}/ack")
async def ack_event(request: Request, event_id: str) -> JSONResponse:
    session_id = _session_id(request)
    if not any(e["meta"]["event_id"] == event_id for e in outbox.pending(session_id)):
        return _error_response("EVENT_NOT_FOUND", "Event not pending for this session", "event_id", status=404)
    outbox.ack(event_id)
    logger.info("event_acked session=%s event_id=%s", session_id, event_id)
    return _ok_response({"event_id": event_id})


@app.get("/units/temperature")
async def temperature_display(value_f: float, system: str = "imperial") -> JSONResponse:
    if system not in ("metric", "imperial"):
        return _error_response("INVALID_SYSTEM", "system must be metric or imperial", "system")
    return _ok_response(
        {
            "value_f": value_f,
            "display": temperature.format_temperature(value_f, system),
            "unit": temperature.temperature_unit_symbol(system),
        }
    )


@app.get("/units/weight")
async def weight_display(text: str, system: str = "metric", default_unit: str = "g") -> JSONResponse:
    if system not in ("metric", "imperial"):
        return _error_response("INVALID_SYSTEM", "system must be metric or imperial", "system")
    if default_unit not in ("g", "kg", "oz", "lb"):
        return _error_response("INVALID_UNIT", "default_unit must be one of g, kg, oz, lb", "default_unit")
    parsed = weight.parse_weight(text, default_unit)
    if not parsed.is_valid:
        return _error_response("INVALID_WEIGHT", f"Could not read a weight from {text!r}", "text", detail={"examples": _weight_examples(system)})
    return _ok_response(
        {
            "grams": parsed.grams,
            "detected_unit": parsed.detected_unit,
            "display": weight.format_weight_compound(parsed.grams, system),
            "hint": weight.conversion_hint(parsed.grams, parsed.detected_unit or default_unit),
        }
    )


def _weight_examples(system: str) -> list[str]:
    if system == "metric":
        return ["500", "500g", "1.5kg", "1500 grams"]
    return ["8oz", "2lb", "2 lb 8 oz", "1.5 pounds"]
