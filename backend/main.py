import logging
from typing import Literal
from fastapi import FastAPI, Depends, Query, Request, Response as HttpResponse
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

import forms as form_store
from analytics import AnalyticsAggregator, track_event
from config import ANALYTICS_DEFAULT_DAYS, LOG_LEVEL, ORIGINS, RESPONSES_LIMIT
from db import Base, engine, get_db
from errors import AppError, ValidationFailed
from export import build_rows, to_csv, to_json
from ingestion import ClientInfo, ResponseIngestor
from models import Form
from schemas import *
from security import current_user_id

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Form Builder API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)


def log_notification_targets(form: Form, response_id: str) -> None:
    """Default submit hook: record which notification targets a response is due for."""
    targets = (form.settings or {}).get("notifications") or {}
    for channel, target in targets.items():
        if target:
            logger.info("Response %s for form %s pending %s notification to %s",
                        response_id, form.id, channel, target)


app.state.submit_hooks = [log_notification_targets]

# ------------------------
# Error boundary: every failure is rendered as {"error": ...}
# ------------------------
@app.exception_handler(ValidationFailed)
def _validation_failed(request: Request, exc: ValidationFailed):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "errors": exc.errors})

@app.exception_handler(AppError)
def _app_error(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

@app.exception_handler(StarletteHTTPException)
def _http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

@app.exception_handler(RequestValidationError)
def _request_invalid(request: Request, exc: RequestValidationError):
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", "invalid"))
    return JSONResponse(status_code=400, content={"error": "; ".join(parts) or "Invalid request"})

@app.exception_handler(SQLAlchemyError)
def _db_error(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})

@app.exception_handler(Exception)
def _unexpected(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})

# ------------------------
# Dependencies
# ------------------------
def get_ingestor(request: Request, db: Session = Depends(get_db)) -> ResponseIngestor:
    return ResponseIngestor(db, hooks=request.app.state.submit_hooks)

def get_aggregator(db: Session = Depends(get_db)) -> AnalyticsAggregator:
    return AnalyticsAggregator(db)

def client_info(request: Request) -> ClientInfo:
    """Best-effort client ip (proxy headers first) and user agent."""
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() or request.headers.get("x-real-ip")
    if not ip and request.client:
        ip = request.client.host
    return ClientInfo(ip_address=ip or None, user_agent=request.headers.get("user-agent"))

@app.get("/health")
def health():
    """Basic readiness probe.

    Returns:
        dict: {"ok": True}
    """
    return {"ok": True}

# ------------------------
# Constructor: forms
# ------------------------
@app.get("/forms")
def list_forms(db: Session = Depends(get_db), user_id: str = Depends(current_user_id)):
    """List the current user's forms, most recently updated first.

    Returns:
        dict: {"forms": [...]}
    """
    return {"forms": [form_store.form_to_dict(f) for f in form_store.list_forms(db, user_id)]}

@app.post("/forms", status_code=201)
def create_form(payload: FormCreate, db: Session = Depends(get_db), user_id: str = Depends(current_user_id)):
    """Create a draft form.

    Args:
        payload (FormCreate): Title (required), description, settings.

    Returns:
        dict: {"form": {...}}

    Raises:
        BadRequest: if the title is missing or blank.
    """
    form = form_store.create_form(db, user_id, payload)
    return {"form": form_store.form_to_dict(form)}

@app.get("/forms/{form_id}")
def get_form(form_id: str, db: Session = Depends(get_db)):
    """Get a form with its fields ordered by position.

    Returns:
        dict: {"form": {..., "fields": [...]}}

    Raises:
        NotFound: if the form does not exist.
    """
    return {"form": form_store.form_to_dict(form_store.get_form(db, form_id), with_fields=True)}

@app.patch("/forms/{form_id}")
def update_form(form_id: str, payload: FormUpdate, db: Session = Depends(get_db)):
    """Partially update title, description, settings or status.

    Setting status to "published" stamps published_at.

    Returns:
        dict: {"form": {..., "fields": [...]}}
    """
    form = form_store.update_form(db, form_id, payload)
    return {"form": form_store.form_to_dict(form, with_fields=True)}

@app.delete("/forms/{form_id}")
def delete_form(form_id: str, db: Session = Depends(get_db)):
    """Delete a form together with its fields, responses, answers and events.

    Returns:
        dict: {"success": True}
    """
    form_store.delete_form(db, form_id)
    return {"success": True}

# ------------------------
# Constructor: fields
# ------------------------
@app.get("/forms/{form_id}/fields")
def list_fields(form_id: str, db: Session = Depends(get_db)):
    return {"fields": [form_store.field_to_dict(f) for f in form_store.list_fields(db, form_id)]}

@app.post("/forms/{form_id}/fields", status_code=201)
def create_field(form_id: str, payload: FieldCreate, db: Session = Depends(get_db)):
    """Add a field to a form.

    Args:
        form_id (str): Owning form.
        payload (FieldCreate): {type, label, options?, validation?, position?, settings?}

    Returns:
        dict: {"field": {...}}
    """
    field = form_store.create_field(db, form_id, payload)
    return {"field": form_store.field_to_dict(field)}

@app.patch("/forms/{form_id}/fields/{field_id}")
def update_field(form_id: str, field_id: str, payload: FieldUpdate, db: Session = Depends(get_db)):
    """Partially update one field; reorders push one position at a time.

    Returns:
        dict: {"field": {...}}
    """
    field = form_store.update_field(db, form_id, field_id, payload)
    return {"field": form_store.field_to_dict(field)}

@app.delete("/forms/{form_id}/fields/{field_id}")
def delete_field(form_id: str, field_id: str, db: Session = Depends(get_db)):
    form_store.delete_field(db, form_id, field_id)
    return {"success": True}

# ------------------------
# Public: form loading & events
# ------------------------
@app.get("/public/forms/{form_id}")
def load_public_form(form_id: str, db: Session = Depends(get_db)):
    """Resolve a published form for the public renderer and count the view.

    Returns:
        dict: {"form": {..., "fields": [...]}}

    Raises:
        NotFound: if the form is missing or not published.
    """
    form = form_store.record_view(db, form_id)
    return {"form": form_store.form_to_dict(form, with_fields=True)}

@app.post("/forms/{form_id}/events", status_code=201)
def create_event(form_id: str, body: EventCreate, db: Session = Depends(get_db)):
    """Record a renderer event (view/start/field_complete/abandon).

    Returns:
        dict: {"event": {"id", "event_type", "created_at"}}

    Raises:
        NotFound: unknown form, or a responseId that is not one of its responses.
    """
    form_store.get_form(db, form_id)
    if body.response_id:
        form_store.get_response(db, form_id, body.response_id)
    row = track_event(db, form_id, body.event_type, response_id=body.response_id,
                      field_id=body.field_id, metadata=body.metadata)
    return {"event": {"id": row.id, "event_type": row.event_type, "created_at": row.created_at}}

# ------------------------
# Responses
# ------------------------
@app.get("/forms/{form_id}/responses")
def list_responses(form_id: str, limit: int = Query(default=RESPONSES_LIMIT, ge=1, le=1000),
                   db: Session = Depends(get_db)):
    """List the newest responses of a form with their answers.

    Returns:
        dict: {"responses": [{..., "answers": [...]}]}
    """
    rows = form_store.list_responses(db, form_id, limit)
    return {"responses": [form_store.response_to_dict(r) for r in rows]}

@app.post("/forms/{form_id}/responses", status_code=201)
def submit_response(form_id: str, body: ResponseSubmit, request: Request,
                    ingestor: ResponseIngestor = Depends(get_ingestor)):
    """Submit a completed response to a published form.

    Args:
        form_id (str): Target form.
        body (ResponseSubmit): {answers: [{fieldId, value}], metadata: {...}}

    Returns:
        dict: {"responseId": str}

    Raises:
        NotFound: form missing or not published.
        ValidationFailed: 422 with {"errors": {fieldId: message}}.
        FormClosed / DuplicateResponse: a form limit rejects the submission.
    """
    response = ingestor.submit(form_id, body.answers, body.metadata, client_info(request))
    return {"responseId": response.id}

# ------------------------
# Analytics & export
# ------------------------
@app.get("/forms/{form_id}/analytics")
def form_analytics(form_id: str, days: int = Query(default=ANALYTICS_DEFAULT_DAYS, ge=1, le=3650),
                   aggregator: AnalyticsAggregator = Depends(get_aggregator)):
    """Aggregate events and responses over the trailing window.

    Returns:
        dict: {"analytics": {eventCounts, responsesByDay, deviceBreakdown, countryBreakdown, summary}}
    """
    return {"analytics": aggregator.aggregate(form_id, days)}

@app.get("/forms/{form_id}/export")
def export_responses(form_id: str, format: Literal["csv", "json"] = "csv",
                     limit: int = Query(default=RESPONSES_LIMIT, ge=1, le=10000),
                     db: Session = Depends(get_db)):
    """Export completed responses keyed by current field labels.

    Returns:
        Response: `form-<id>-responses.csv|json` attachment.
    """
    form = form_store.get_form(db, form_id)
    responses = [r for r in form_store.list_responses(db, form_id, limit) if r.completed]
    rows = build_rows(responses, form.fields)
    if format == "csv":
        content, media_type = to_csv(rows), "text/csv"
    else:
        content, media_type = to_json(rows), "application/json"
    return HttpResponse(content=content.encode("utf-8"), media_type=media_type,
                        headers={"Content-Disposition": f"attachment; filename=form-{form_id}-responses.{format}"})
