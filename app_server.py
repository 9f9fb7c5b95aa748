import logging
import time
import uuid
from collections import OrderedDict
from typing import Any, Callable

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict

import settings
from batch_generator import build_archive, summarize
from editor_session import EditorSession
from errors import (
    ConfigurationError,
    FieldNotFoundError,
    SessionNotFoundError,
    SourceParseError,
)
from field_model import Field, FieldStyle

settings.configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Certificate Batch API")

# ── CORS ──────────────────────────────────────────────────────────────────────
# Allow the editor front-end (Vite dev server by default) to reach the API.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Certificates-Succeeded", "X-Certificates-Failed"],
)

# ── SESSIONS ──────────────────────────────────────────────────────────────────
# Editing sessions live only in process memory. Idle sessions expire after
# SESSION_TTL_SECONDS and the least recently used ones are dropped once
# MAX_SESSIONS is reached.


class SessionStore:
    def __init__(
        self,
        ttl_seconds: float = settings.SESSION_TTL_SECONDS,
        max_sessions: int = settings.MAX_SESSIONS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions
        self.clock = clock
        self._entries: OrderedDict[str, tuple[EditorSession, float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    def _expire(self, now: float) -> None:
        # Entries are kept in access order, so the stalest ones come first.
        while self._entries:
            session_id, (_, last_seen) = next(iter(self._entries.items()))
            if now - last_seen < self.ttl_seconds:
                break
            del self._entries[session_id]
            logger.info("Expired idle session %s", session_id)

    def create(self) -> tuple[str, EditorSession]:
        now = self.clock()
        self._expire(now)
        while len(self._entries) >= self.max_sessions:
            evicted, _ = self._entries.popitem(last=False)
            logger.info("Evicted session %s (limit %d)", evicted, self.max_sessions)
        session_id = uuid.uuid4().hex
        session = EditorSession()
        self._entries[session_id] = (session, now)
        return session_id, session

    def get(self, session_id: str) -> EditorSession:
        now = self.clock()
        self._expire(now)
        entry = self._entries.get(session_id)
        if entry is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        self._entries[session_id] = (entry[0], now)
        self._entries.move_to_end(session_id)
        return entry[0]

    def delete(self, session_id: str) -> None:
        self.get(session_id)
        del self._entries[session_id]

    def clear(self) -> None:
        self._entries.clear()


_SESSIONS = SessionStore()


def get_session(session_id: str) -> EditorSession:
    return _SESSIONS.get(session_id)


# ── ERRORS ────────────────────────────────────────────────────────────────────


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "message": "Request validation failed.",
            "detail": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(SourceParseError)
async def source_parse_error_handler(request: Request, exc: SourceParseError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(FieldNotFoundError)
@app.exception_handler(SessionNotFoundError)
async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


# ── MODELS ────────────────────────────────────────────────────────────────────


class DisplayRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    displayed_width: float


class ZoomRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    zoom: float


class AddFieldRequest(BaseModel):
    name: str


class PositionRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    x: float
    y: float


class DragRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    dx: float
    dy: float


class OffsetRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    offset_x: float = 0.0
    offset_y: float = 0.0


def session_state(session_id: str, session: EditorSession) -> dict[str, Any]:
    template = session.template
    return {
        "session_id": session_id,
        "template": (
            {
                "page_count": template.page_count,
                "page_width": template.page_width,
                "page_height": template.page_height,
            }
            if template
            else None
        ),
        "columns": list(session.table.columns),
        "row_count": len(session.table.rows),
        "fields": [field.model_dump() for field in session.fields],
        "zoom": session.zoom,
        "scale_ratio": session.scale_ratio,
    }


def read_upload(upload: UploadFile) -> bytes:
    contents = upload.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(contents) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"Upload exceeds {settings.MAX_UPLOAD_BYTES // (1024 * 1024)} MB.",
        )
    return contents


# ── ROUTES ────────────────────────────────────────────────────────────────────


@app.get("/api/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/sessions", status_code=201)
def create_session() -> dict[str, Any]:
    session_id, session = _SESSIONS.create()
    logger.info("Created session %s", session_id)
    return session_state(session_id, session)


@app.get("/api/sessions/{session_id}")
def read_session(session_id: str) -> dict[str, Any]:
    return session_state(session_id, get_session(session_id))


@app.delete("/api/sessions/{session_id}")
def delete_session(session_id: str) -> dict[str, str]:
    _SESSIONS.delete(session_id)
    return {"message": f"Deleted session {session_id}"}


@app.post("/api/sessions/{session_id}/template")
def upload_template(session_id: str, template: UploadFile = File(...)) -> dict[str, Any]:
    session = get_session(session_id)
    session.load_template(read_upload(template))
    return session_state(session_id, session)


@app.post("/api/sessions/{session_id}/data")
def upload_data(session_id: str, data_file: UploadFile = File(...)) -> dict[str, Any]:
    session = get_session(session_id)
    session.load_data(read_upload(data_file), data_file.filename or "")
    return session_state(session_id, session)


@app.put("/api/sessions/{session_id}/display")
def set_display(session_id: str, request: DisplayRequest) -> dict[str, Any]:
    session = get_session(session_id)
    session.set_display_width(request.displayed_width)
    return session_state(session_id, session)


@app.put("/api/sessions/{session_id}/zoom")
def set_zoom(session_id: str, request: ZoomRequest) -> dict[str, Any]:
    session = get_session(session_id)
    session.set_zoom(request.zoom)
    return session_state(session_id, session)


@app.post("/api/sessions/{session_id}/fields", status_code=201)
def add_field(session_id: str, request: AddFieldRequest) -> Field:
    session = get_session(session_id)
    if request.name not in session.table.columns:
        raise HTTPException(status_code=400, detail=f"Unknown column: {request.name}")
    return session.add_field(request.name)


@app.delete("/api/sessions/{session_id}/fields/{field_id}")
def remove_field(session_id: str, field_id: str) -> dict[str, str]:
    get_session(session_id).remove_field(field_id)
    return {"message": f"Removed field {field_id}"}


@app.put("/api/sessions/{session_id}/fields/{field_id}/position")
def move_field(session_id: str, field_id: str, request: PositionRequest) -> Field:
    return get_session(session_id).move_field(field_id, request.x, request.y)


@app.post("/api/sessions/{session_id}/fields/{field_id}/drag")
def drag_field(session_id: str, field_id: str, request: DragRequest) -> Field:
    return get_session(session_id).drag_field(field_id, request.dx, request.dy)


@app.put("/api/sessions/{session_id}/fields/{field_id}/style")
def update_style(session_id: str, field_id: str, style: FieldStyle) -> Field:
    return get_session(session_id).update_style(field_id, style)


@app.put("/api/sessions/{session_id}/fields/{field_id}/offset")
def update_offset(session_id: str, field_id: str, request: OffsetRequest) -> Field:
    return get_session(session_id).update_offset(field_id, request.offset_x, request.offset_y)


@app.post("/api/sessions/{session_id}/generate")
def generate(session_id: str) -> Response:
    session = get_session(session_id)
    results = list(session.generate())
    summary = summarize(results)
    if summary.succeeded == 0:
        raise HTTPException(
            status_code=500,
            detail={
                "message": "No certificates could be generated.",
                "errors": [str(err) for err in summary.errors],
            },
        )
    return Response(
        content=build_archive(results),
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{settings.ARCHIVE_NAME}"',
            "X-Certificates-Succeeded": str(summary.succeeded),
            "X-Certificates-Failed": str(summary.failed),
        },
    )
