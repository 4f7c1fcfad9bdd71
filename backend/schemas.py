# schemas.py
import re
from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Optional, Literal

FieldType = Literal[
    "text", "email", "number", "textarea", "select", "checkbox", "radio", "file",
    "date", "time", "datetime", "slider", "rating", "matrix", "geolocation",
]
FormStatus = Literal["draft", "published", "archived"]
DeviceType = Literal["mobile", "tablet", "desktop"]
ClientEventType = Literal["view", "start", "field_complete", "abandon"]

# ------------------------
# Sparse config objects: unknown keys are ignored (pydantic default)
# ------------------------
class FieldValidation(BaseModel):
    required: Optional[bool] = None
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None
    min_length: Optional[int] = Field(default=None, alias="minLength", ge=0)
    max_length: Optional[int] = Field(default=None, alias="maxLength", ge=0)

    class Config:
        populate_by_name = True

    @field_validator("pattern")
    @classmethod
    def _pattern_compiles(cls, v):
        if v:
            try:
                re.compile(v)
            except re.error as exc:
                raise ValueError(f"invalid pattern: {exc}")
        return v

class ConditionalRule(BaseModel):
    field_id: str = Field(alias="fieldId")
    operator: Literal["equals", "contains", "gt", "lt"]
    value: str

    class Config:
        populate_by_name = True

class FieldSettings(BaseModel):
    conditional: Optional[ConditionalRule] = None
    score: Optional[float] = None  # quiz weight

class ThemeSettings(BaseModel):
    background_color: Optional[str] = Field(default=None, alias="backgroundColor")
    text_color: Optional[str] = Field(default=None, alias="textColor")
    accent_color: Optional[str] = Field(default=None, alias="accentColor")
    font: Optional[str] = None

    class Config:
        populate_by_name = True

class CaptchaSettings(BaseModel):
    enabled: bool = False
    provider: Literal["astra", "none"] = "none"

class LimitSettings(BaseModel):
    one_response_per_user: bool = Field(default=False, alias="oneResponsePerUser")
    close_after_responses: Optional[int] = Field(default=None, alias="closeAfterResponses", ge=0)
    close_after_date: Optional[int] = Field(default=None, alias="closeAfterDate")  # unix seconds

    class Config:
        populate_by_name = True

class NotificationSettings(BaseModel):
    email: Optional[str] = None
    telegram: Optional[str] = None

class RedirectSettings(BaseModel):
    enabled: bool = False
    url: Optional[str] = None
    message: Optional[str] = None

class FormSettings(BaseModel):
    theme: Optional[ThemeSettings] = None
    captcha: Optional[CaptchaSettings] = None
    limits: Optional[LimitSettings] = None
    notifications: Optional[NotificationSettings] = None
    redirect: Optional[RedirectSettings] = None

def dump_config(model: BaseModel) -> dict:
    """Serialize a config object the way it is stored: wire keys, no empty keys."""
    return model.model_dump(by_alias=True, exclude_none=True)

# ------------------------
# Forms & fields
# ------------------------
class FormCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    settings: FormSettings = FormSettings()

class FormUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    settings: Optional[FormSettings] = None
    status: Optional[FormStatus] = None

class FieldCreate(BaseModel):
    type: FieldType
    label: str
    description: Optional[str] = None
    placeholder: Optional[str] = None
    options: Optional[List[str]] = None
    validation: FieldValidation = FieldValidation()
    position: Optional[int] = None   # appended after the last field when omitted
    settings: FieldSettings = FieldSettings()

class FieldUpdate(BaseModel):
    type: Optional[FieldType] = None
    label: Optional[str] = None
    description: Optional[str] = None
    placeholder: Optional[str] = None
    options: Optional[List[str]] = None
    validation: Optional[FieldValidation] = None
    position: Optional[int] = None
    settings: Optional[FieldSettings] = None

# ------------------------
# Submissions & events
# ------------------------
class AnswerIn(BaseModel):
    field_id: str = Field(alias="fieldId")
    value: Any = None

    class Config:
        populate_by_name = True

class SubmissionMetadata(BaseModel):
    fingerprint: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    device_type: Optional[DeviceType] = Field(default=None, alias="deviceType")
    referrer: Optional[str] = None
    completion_time: Optional[int] = Field(default=None, alias="completionTime", ge=0)

    class Config:
        populate_by_name = True

class ResponseSubmit(BaseModel):
    answers: List[AnswerIn] = []
    metadata: SubmissionMetadata = SubmissionMetadata()

class EventCreate(BaseModel):
    event_type: ClientEventType = Field(alias="eventType")
    response_id: Optional[str] = Field(default=None, alias="responseId")
    field_id: Optional[str] = Field(default=None, alias="fieldId")
    metadata: Optional[dict] = None

    class Config:
        populate_by_name = True
