"""FastAPI application for InviteFlow."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from urllib.parse import urlencode
import tomllib

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import workflows
from .config import settings
from .database import SessionLocal
from .errors import ErrorKind, Result
from .identity import Identity, identity_for_token
from .links import signin_redirect_url
from .models import RESPONSE_STATUSES
from .storage import init_db

# Use uvicorn's error logger so messages get the level prefix in the default log
# format (needed for downstream filtering like Loki).
logger = logging.getLogger("uvicorn.error")


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("inviteflow")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    yield


app = FastAPI(title="InviteFlow", version=APP_VERSION, lifespan=lifespan)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _get_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization") or ""
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def get_identity(request: Request, db: Session = Depends(get_db)) -> Identity | None:
    """Identity for the bearer token, or ``None`` so workflows can demand sign-in."""
    return identity_for_token(db, _get_bearer_token(request))


def _parse_datetime(raw: str) -> datetime:
    try:
        return datetime.fromisoformat(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid datetime") from exc


def _local_to_utc(dt: datetime, offset_minutes: int) -> datetime:
    """Normalize a naive local datetime to UTC (still naive)."""
    if dt.tzinfo is not None:
        return dt
    try:
        offset = int(offset_minutes)
    except (TypeError, ValueError):
        offset = 0
    return dt + timedelta(minutes=offset)


def _result_response(result: Result, *, success_status: int = 200) -> JSONResponse:
    status_code = success_status if result.success else result.status_code
    return JSONResponse(result.to_dict(), status_code=status_code)


def _normalize_response(raw: str | None) -> str | None:
    normalized = (raw or "").strip().lower()
    return normalized if normalized in RESPONSE_STATUSES else None


def _redirect(path: str, **params: str) -> RedirectResponse:
    query = urlencode({k: v for k, v in params.items() if v is not None})
    target = f"{path}?{query}" if query else path
    return RedirectResponse(target, status_code=303)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    if "database is locked" in raw.lower():
        logger.error(
            "SQLite database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        detail = "The database is busy at the moment. Please wait a few seconds and try again."
        status = 503
    else:
        logger.error(
            "Operational database error on %s %s: %s",
            request.method,
            request.url.path,
            raw,
        )
        detail = "We hit a database issue. Please try again."
        status = 500
    return JSONResponse({"detail": detail}, status_code=status)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"detail": exc.errors()}, status_code=422)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Gracefully handle unexpected errors."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


class EventCreatePayload(BaseModel):
    title: str
    description: str | None = None
    event_date: str = Field(..., description="ISO datetime string")
    timezone_offset_minutes: int = 0
    location: str | None = None


class EventUpdatePayload(BaseModel):
    title: str | None = None
    description: str | None = None
    event_date: str | None = Field(None, description="ISO datetime string")
    timezone_offset_minutes: int | None = None
    location: str | None = None


class EventBatchDeletePayload(BaseModel):
    event_ids: list[str]


class InviteCodePayload(BaseModel):
    regenerate: bool = False


class InvitationCreatePayload(BaseModel):
    email: str
    name: str | None = None


class JoinPayload(BaseModel):
    invite_code: str


class RespondPayload(BaseModel):
    response: str


class EventRespondPayload(BaseModel):
    code: str
    response: str


@app.get("/api/health")
def health_check():
    return {"status": "ok", "version": APP_VERSION}


# -------- JSON API (v1) --------


@app.get("/api/v1/events")
def api_list_events(
    limit: int = Query(settings.events_per_page, ge=1, le=200),
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    return _result_response(workflows.list_owned_events(db, identity, limit=limit))


@app.post("/api/v1/events", status_code=201)
def api_create_event(
    payload: EventCreatePayload,
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    event_date = _local_to_utc(
        _parse_datetime(payload.event_date), payload.timezone_offset_minutes
    )
    result = workflows.create_event(
        db,
        identity,
        title=payload.title,
        description=payload.description,
        event_date=event_date,
        location=payload.location,
    )
    return _result_response(result, success_status=201)


@app.patch("/api/v1/events/{event_id}")
def api_update_event(
    event_id: str,
    payload: EventUpdatePayload,
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    data = payload.model_dump(exclude_unset=True)
    tz_offset = int(data.pop("timezone_offset_minutes", 0) or 0)
    if data.get("event_date"):
        data["event_date"] = _local_to_utc(_parse_datetime(data["event_date"]), tz_offset)
    return _result_response(workflows.update_event(db, event_id, identity, **data))


@app.delete("/api/v1/events/{event_id}")
def api_delete_event(
    event_id: str,
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    return _result_response(workflows.delete_event(db, event_id, identity))


@app.post("/api/v1/events/delete")
def api_delete_events(
    payload: EventBatchDeletePayload,
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    return _result_response(workflows.delete_events(db, payload.event_ids, identity))


@app.post("/api/v1/events/{event_id}/invite-code")
def api_generate_invite_code(
    event_id: str,
    payload: InviteCodePayload | None = None,
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    regenerate = payload.regenerate if payload else False
    result = workflows.generate_invite_code(
        db, event_id, identity, regenerate=regenerate
    )
    return _result_response(result)


@app.get("/api/v1/events/{event_id}/invitations")
def api_list_event_invitations(
    event_id: str,
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    return _result_response(workflows.list_event_invitations(db, event_id, identity))


@app.post("/api/v1/events/{event_id}/invitations", status_code=201)
def api_create_invitation(
    event_id: str,
    payload: InvitationCreatePayload,
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    result = workflows.create_invitation(
        db, event_id, payload.email, payload.name, identity
    )
    return _result_response(result, success_status=201)


@app.post("/api/v1/join")
def api_join_event(
    payload: JoinPayload,
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    return _result_response(
        workflows.join_event_by_code(db, payload.invite_code, identity)
    )


@app.post("/api/v1/rsvp")
def api_respond_to_event(
    payload: EventRespondPayload,
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    return _result_response(
        workflows.respond_to_event(db, payload.code, payload.response, identity)
    )


@app.get("/api/v1/invitations")
def api_my_invitations(
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    return _result_response(workflows.list_invitations_for_identity(db, identity))


@app.get("/api/v1/invitations/{token}")
def api_get_invitation(
    token: str,
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    return _result_response(workflows.resolve_invitation(db, token, identity))


@app.post("/api/v1/invitations/{token}/respond")
def api_respond_to_invitation(
    token: str,
    payload: RespondPayload,
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    return _result_response(
        workflows.respond_to_invitation(db, token, payload.response, identity)
    )


@app.post("/api/v1/invitations/{invitation_id}/resend")
def api_resend_invitation(
    invitation_id: str,
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    return _result_response(workflows.resend_invitation(db, invitation_id, identity))


@app.get("/api/v1/activity")
def api_activity(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    return _result_response(workflows.list_activity(db, identity, limit=limit))


# -------- Link entry points --------


@app.get("/i/{token}/respond/{response}")
def quick_response(
    token: str,
    response: str,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    """Answer an invitation straight from an emailed or QR-encoded link."""
    invite_path = f"/invites/{token}"
    normalized = _normalize_response(response)
    if normalized is None:
        return _redirect(invite_path, error="invalid_response")
    if identity is None:
        return RedirectResponse(
            signin_redirect_url(
                request.url.path, code=token, intended_response=normalized
            ),
            status_code=303,
        )
    result = workflows.respond_to_invitation(db, token, normalized, identity)
    if result.success:
        return _redirect(
            f"/events/{result.data['event_id']}",
            response_success="true",
            response=normalized,
        )
    if result.kind == ErrorKind.WRONG_EMAIL:
        return _redirect(
            invite_path,
            error="wrong_email",
            email=result.error.extra.get("invitation_email", ""),
        )
    if result.kind == ErrorKind.NOT_FOUND:
        return _redirect(invite_path, error="not_found")
    return _redirect(invite_path, error=result.error.message)


@app.get("/j/{code}")
def join_link(
    code: str,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    """Join an event from a shared link, sending anonymous callers to sign in first."""
    if identity is None:
        return RedirectResponse(
            signin_redirect_url(request.url.path, code=code), status_code=303
        )
    result = workflows.join_event_by_code(db, code, identity)
    if result.success:
        return _redirect(
            f"/events/{result.data['event']['id']}", joined=result.data["status"]
        )
    return _redirect("/join", code=code, error=result.error.message)


@app.get("/e/{code}/respond/{response}")
def event_quick_response(
    code: str,
    response: str,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    """Answer an event from its QR code, creating the caller's invitation if needed."""
    normalized = _normalize_response(response)
    if normalized is None:
        return _redirect("/join", code=code, error="invalid_response")
    if identity is None:
        return RedirectResponse(
            signin_redirect_url(
                request.url.path, code=code, intended_response=normalized
            ),
            status_code=303,
        )
    result = workflows.respond_to_event(db, code, normalized, identity)
    if result.success:
        return _redirect(
            f"/events/{result.data['event_id']}",
            response_success="true",
            response=normalized,
        )
    if result.kind == ErrorKind.NOT_FOUND:
        return _redirect("/join", code=code, error="not_found")
    return _redirect("/join", code=code, error=result.error.message)
