import secrets
import string
import time

from sqlalchemy import Column, Integer, String, Text, ForeignKey, Boolean, JSON
from sqlalchemy.orm import relationship
from db import Base

_BASE36 = string.digits + string.ascii_lowercase


def now_ts() -> int:
    """Current time as integer unix seconds."""
    return int(time.time())


def generate_id(prefix: str) -> str:
    """Opaque id: `<prefix>_<millis>_<7 random base36 chars>`."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(7))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class Form(Base):
    __tablename__ = "forms"
    id = Column(String(64), primary_key=True, default=lambda: generate_id("form"))
    user_id = Column(String(64), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    settings = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="draft")
    view_count = Column(Integer, nullable=False, default=0)
    response_count = Column(Integer, nullable=False, default=0)
    created_at = Column(Integer, nullable=False, default=now_ts)
    updated_at = Column(Integer, nullable=False, default=now_ts)
    published_at = Column(Integer, nullable=True)
    fields = relationship("FormField", back_populates="form", cascade="all, delete-orphan",
                          order_by="FormField.position")
    responses = relationship("Response", back_populates="form", cascade="all, delete-orphan")
    events = relationship("AnalyticsEvent", back_populates="form", cascade="all, delete-orphan")

class FormField(Base):
    __tablename__ = "form_fields"
    id = Column(String(64), primary_key=True, default=lambda: generate_id("field"))
    form_id = Column(String(64), ForeignKey("forms.id", ondelete="CASCADE"), index=True, nullable=False)
    type = Column(String(20), nullable=False)
    label = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    placeholder = Column(Text, nullable=True)
    options = Column(JSON, nullable=True)
    validation = Column(JSON, nullable=False, default=dict)
    position = Column(Integer, nullable=False, default=0)
    settings = Column(JSON, nullable=False, default=dict)
    created_at = Column(Integer, nullable=False, default=now_ts)
    form = relationship("Form", back_populates="fields")

class Response(Base):
    __tablename__ = "responses"
    id = Column(String(64), primary_key=True, default=lambda: generate_id("resp"))
    form_id = Column(String(64), ForeignKey("forms.id", ondelete="CASCADE"), index=True, nullable=False)
    user_fingerprint = Column(String(64), index=True, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    country = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    device_type = Column(String(20), nullable=True)
    referrer = Column(Text, nullable=True)
    completed = Column(Boolean, nullable=False, default=False)
    completion_time = Column(Integer, nullable=True)
    created_at = Column(Integer, index=True, nullable=False, default=now_ts)
    form = relationship("Form", back_populates="responses")
    answers = relationship("ResponseAnswer", back_populates="response", cascade="all, delete-orphan",
                           order_by="ResponseAnswer.seq")

class ResponseAnswer(Base):
    __tablename__ = "response_answers"
    # insertion order within a response
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(64), unique=True, nullable=False, default=lambda: generate_id("ans"))
    response_id = Column(String(64), ForeignKey("responses.id", ondelete="CASCADE"), index=True, nullable=False)
    # no FK: answers outlive the field they were recorded against
    field_id = Column(String(64), index=True, nullable=False)
    value = Column(JSON, nullable=True)
    created_at = Column(Integer, nullable=False, default=now_ts)
    response = relationship("Response", back_populates="answers")

class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"
    id = Column(String(64), primary_key=True, default=lambda: generate_id("evt"))
    form_id = Column(String(64), ForeignKey("forms.id", ondelete="CASCADE"), index=True, nullable=False)
    response_id = Column(String(64), ForeignKey("responses.id", ondelete="SET NULL"), nullable=True)
    event_type = Column(String(20), nullable=False)
    field_id = Column(String(64), nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)
    created_at = Column(Integer, index=True, nullable=False, default=now_ts)
    form = relationship("Form", back_populates="events")
