"""Public response submission: validate, persist, count, emit."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from analytics import track_event
from errors import DuplicateResponse, FormClosed, NotFound, PersistenceError, ValidationFailed
from fingerprint import has_prior_response
from models import Form, Response, ResponseAnswer, now_ts
from schemas import AnswerIn, LimitSettings, SubmissionMetadata
from validation import build_validator

logger = logging.getLogger(__name__)

# called after commit with (form, response_id)
SubmitHook = Callable[[Form, str], None]


@dataclass
class ClientInfo:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class ResponseIngestor:
    def __init__(self, db: Session, hooks: Iterable[SubmitHook] = ()):
        self.db = db
        self.hooks = list(hooks)

    def submit(self, form_id: str, answers: list[AnswerIn], metadata: SubmissionMetadata,
               client: Optional[ClientInfo] = None) -> Response:
        """Accept one completed submission for a published form.

        Args:
            form_id (str): Target form.
            answers (list[AnswerIn]): Submitted {fieldId, value} pairs.
            metadata (SubmissionMetadata): Client-reported fingerprint/geo/device/timing.
            client (ClientInfo|None): Request-derived ip and user agent.

        Returns:
            Response: The persisted response row.

        Raises:
            NotFound: form missing or not published.
            FormClosed / DuplicateResponse: a configured limit rejects the submission.
            ValidationFailed: field-indexed errors; nothing is written.
            PersistenceError: the store rejected the write.
        """
        client = client or ClientInfo()
        form = self.db.get(Form, form_id)
        if not form or form.status != "published":
            raise NotFound("Form not found")

        self._check_limits(form, metadata)

        # a repeated field id is checked by its first answer; every answer is stored
        submitted = {}
        for a in answers:
            submitted.setdefault(a.field_id, a.value)

        validator = build_validator(form.fields)
        try:
            validator.validate(submitted)
        except ValidationFailed as exc:
            logger.info("Rejected submission for form %s: %d field error(s)", form_id, len(exc.errors))
            raise

        response = Response(
            form_id=form.id,
            user_fingerprint=metadata.fingerprint or None,
            ip_address=client.ip_address or None,
            user_agent=client.user_agent or None,
            country=metadata.country or None,
            city=metadata.city or None,
            device_type=metadata.device_type,
            referrer=metadata.referrer or None,
            completed=True,
            completion_time=metadata.completion_time,
        )
        # raw submitted values, in submission order
        response.answers = [ResponseAnswer(field_id=a.field_id, value=a.value) for a in answers]

        try:
            self.db.add(response)
            self.db.flush()
            form.response_count = Form.response_count + 1
            track_event(self.db, form.id, "submit", response_id=response.id, commit=False)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Failed to persist response for form %s", form_id)
            raise PersistenceError() from exc

        logger.info("Stored response %s for form %s (%d answers)", response.id, form_id, len(answers))
        self._run_hooks(form, response.id)
        return response

    def _check_limits(self, form: Form, metadata: SubmissionMetadata) -> None:
        limits = LimitSettings.model_validate((form.settings or {}).get("limits") or {})
        if limits.close_after_date is not None and now_ts() > limits.close_after_date:
            raise FormClosed("Form is closed")
        if limits.close_after_responses is not None and form.response_count >= limits.close_after_responses:
            raise FormClosed("Form has reached its response limit")
        if limits.one_response_per_user and has_prior_response(self.db, form.id, metadata.fingerprint):
            logger.info("Duplicate submission for form %s from fingerprint %s", form.id, metadata.fingerprint)
            raise DuplicateResponse()

    def _run_hooks(self, form: Form, response_id: str) -> None:
        for hook in self.hooks:
            try:
                hook(form, response_id)
            except Exception:
                # the response is already committed
                logger.exception("Submit hook %r failed for response %s", hook, response_id)
