"""Form and field persistence helpers used by the constructor endpoints."""
from __future__ import annotations

import logging

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from analytics import track_event
from errors import BadRequest, NotFound
from models import Form, FormField, Response, now_ts
from schemas import FieldCreate, FieldUpdate, FormCreate, FormUpdate, dump_config

logger = logging.getLogger(__name__)

# ------------------------
# Serialization
# ------------------------
def form_to_dict(form: Form, with_fields: bool = False) -> dict:
    out = {
        "id": form.id,
        "user_id": form.user_id,
        "title": form.title,
        "description": form.description,
        "settings": form.settings or {},
        "status": form.status,
        "view_count": form.view_count,
        "response_count": form.response_count,
        "created_at": form.created_at,
        "updated_at": form.updated_at,
        "published_at": form.published_at,
    }
    if with_fields:
        out["fields"] = [field_to_dict(f) for f in form.fields]
    return out

def field_to_dict(field: FormField) -> dict:
    return {
        "id": field.id,
        "form_id": field.form_id,
        "type": field.type,
        "label": field.label,
        "description": field.description,
        "placeholder": field.placeholder,
        "options": field.options,
        "validation": field.validation or {},
        "position": field.position,
        "settings": field.settings or {},
        "created_at": field.created_at,
    }

def response_to_dict(resp: Response) -> dict:
    return {
        "id": resp.id,
        "form_id": resp.form_id,
        "user_fingerprint": resp.user_fingerprint,
        "ip_address": resp.ip_address,
        "user_agent": resp.user_agent,
        "country": resp.country,
        "city": resp.city,
        "device_type": resp.device_type,
        "referrer": resp.referrer,
        "completed": bool(resp.completed),
        "completion_time": resp.completion_time,
        "created_at": resp.created_at,
        "answers": [
            {"id": a.id, "response_id": a.response_id, "field_id": a.field_id,
             "value": a.value, "created_at": a.created_at}
            for a in resp.answers
        ],
    }

# ------------------------
# Forms
# ------------------------
def get_form(db: Session, form_id: str) -> Form:
    form = db.get(Form, form_id)
    if not form:
        raise NotFound("Form not found")
    return form

def list_forms(db: Session, user_id: str) -> list[Form]:
    return db.execute(
        select(Form).where(Form.user_id == user_id).order_by(Form.updated_at.desc(), Form.created_at.desc())
    ).scalars().all()

def create_form(db: Session, user_id: str, payload: FormCreate) -> Form:
    title = (payload.title or "").strip()
    if not title:
        raise BadRequest("Title is required")
    form = Form(
        user_id=user_id,
        title=title,
        description=(payload.description or "").strip() or None,
        settings=dump_config(payload.settings),
    )
    db.add(form)
    db.commit()
    logger.info("Created form %s for user %s", form.id, user_id)
    return form

def update_form(db: Session, form_id: str, payload: FormUpdate) -> Form:
    """Apply a partial update; publishing stamps `published_at`."""
    form = get_form(db, form_id)
    now = now_ts()
    updates = payload.model_fields_set

    if "title" in updates:
        title = (payload.title or "").strip()
        if not title:
            raise BadRequest("Title is required")
        form.title = title
    if "description" in updates:
        form.description = payload.description
    if "settings" in updates:
        form.settings = dump_config(payload.settings) if payload.settings else {}
    if "status" in updates and payload.status is not None:
        form.status = payload.status
        if payload.status == "published":
            form.published_at = now

    form.updated_at = now
    db.commit()
    return form

def delete_form(db: Session, form_id: str) -> None:
    """Delete a form with its fields, responses, answers and events."""
    form = get_form(db, form_id)
    db.delete(form)
    db.commit()
    logger.info("Deleted form %s", form_id)

def record_view(db: Session, form_id: str) -> Form:
    """Load a published form for the public renderer and count the view."""
    form = db.get(Form, form_id)
    if not form or form.status != "published":
        raise NotFound("Form not found")
    form.view_count = Form.view_count + 1
    track_event(db, form_id, "view", commit=False)
    db.commit()
    db.refresh(form)
    return form

# ------------------------
# Fields
# ------------------------
def get_field(db: Session, form_id: str, field_id: str) -> FormField:
    field = db.get(FormField, field_id)
    if not field or field.form_id != form_id:
        raise NotFound("Field not found")
    return field

def list_fields(db: Session, form_id: str) -> list[FormField]:
    get_form(db, form_id)
    return db.execute(
        select(FormField).where(FormField.form_id == form_id).order_by(FormField.position)
    ).scalars().all()

def create_field(db: Session, form_id: str, payload: FieldCreate) -> FormField:
    form = get_form(db, form_id)
    position = payload.position
    if position is None:
        last = db.execute(
            select(func.max(FormField.position)).where(FormField.form_id == form_id)
        ).scalar_one()
        position = 0 if last is None else last + 1

    field = FormField(
        form_id=form_id,
        type=payload.type,
        label=payload.label,
        description=payload.description or None,
        placeholder=payload.placeholder or None,
        options=payload.options or None,
        validation=dump_config(payload.validation),
        position=position,
        settings=dump_config(payload.settings),
    )
    db.add(field)
    form.updated_at = now_ts()
    db.commit()
    return field

def update_field(db: Session, form_id: str, field_id: str, payload: FieldUpdate) -> FormField:
    """Partial update: only keys present in the request body are written."""
    field = get_field(db, form_id, field_id)
    for key in payload.model_fields_set:
        value = getattr(payload, key)
        if key in ("validation", "settings"):
            value = dump_config(value) if value is not None else {}
        elif key in ("type", "label", "position") and value is None:
            raise BadRequest(f"{key} cannot be null")
        setattr(field, key, value)
    field.form.updated_at = now_ts()
    db.commit()
    return field

def delete_field(db: Session, form_id: str, field_id: str) -> None:
    field = get_field(db, form_id, field_id)
    db.delete(field)
    db.commit()
    logger.info("Deleted field %s from form %s", field_id, form_id)

# ------------------------
# Responses
# ------------------------
def list_responses(db: Session, form_id: str, limit: int) -> list[Response]:
    get_form(db, form_id)
    return db.execute(
        select(Response).where(Response.form_id == form_id)
        .order_by(Response.created_at.desc()).limit(limit)
    ).scalars().all()

def get_response(db: Session, form_id: str, response_id: str) -> Response:
    resp = db.get(Response, response_id)
    if not resp or resp.form_id != form_id:
        raise NotFound("Response not found")
    return resp
