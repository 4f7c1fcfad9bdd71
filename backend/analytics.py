"""Analytics event log and windowed aggregates for a form."""
from __future__ import annotations

import logging
import time
from typing import Optional

import pandas as pd
from sqlalchemy import select
from sqlalchemy.orm import Session

from errors import NotFound
from models import AnalyticsEvent, Form, Response

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60
COUNTRY_LIMIT = 10


def track_event(db: Session, form_id: str, event_type: str, response_id: Optional[str] = None,
                field_id: Optional[str] = None, metadata: Optional[dict] = None,
                commit: bool = True) -> AnalyticsEvent:
    """Append one event to the form's analytics log."""
    row = AnalyticsEvent(
        form_id=form_id,
        response_id=response_id,
        event_type=event_type,
        field_id=field_id,
        metadata_=metadata or None,
    )
    db.add(row)
    if commit:
        db.commit()
    return row


class AnalyticsAggregator:
    """Recomputes grouped statistics from source rows on every call."""

    def __init__(self, db: Session):
        self.db = db

    def aggregate(self, form_id: str, window_days: int, now: Optional[float] = None) -> dict:
        """Compute event counts, daily responses and breakdowns for a window.

        Args:
            form_id (str): Form id.
            window_days (int): Trailing window length in days.
            now (float|None): Unix time the window ends at; defaults to the clock.

        Returns:
            dict: {eventCounts, responsesByDay, deviceBreakdown, countryBreakdown, summary}

        Raises:
            NotFound: if the form does not exist.
        """
        form = self.db.get(Form, form_id)
        if not form:
            raise NotFound("Form not found")

        now = int(time.time() if now is None else now)
        since = now - window_days * SECONDS_PER_DAY
        logger.debug("Aggregating form %s over %s days (since %s)", form_id, window_days, since)

        events = pd.read_sql(
            select(AnalyticsEvent.event_type)
            .where(AnalyticsEvent.form_id == form_id, AnalyticsEvent.created_at >= since),
            self.db.connection(),
        )
        responses = pd.read_sql(
            select(Response.created_at, Response.device_type, Response.country, Response.completion_time)
            .where(Response.form_id == form_id, Response.created_at >= since),
            self.db.connection(),
        )

        return {
            "eventCounts": self._event_counts(events),
            "responsesByDay": self._responses_by_day(responses),
            "deviceBreakdown": self._device_breakdown(responses),
            "countryBreakdown": self._country_breakdown(responses),
            "summary": self._summary(form, responses),
        }

    @staticmethod
    def _event_counts(events: pd.DataFrame) -> list[dict]:
        if events.empty:
            return []
        counts = events["event_type"].value_counts().sort_index()
        return [{"event_type": k, "count": int(v)} for k, v in counts.items()]

    @staticmethod
    def _responses_by_day(responses: pd.DataFrame) -> list[dict]:
        if responses.empty:
            return []
        days = pd.to_datetime(responses["created_at"].astype("int64"), unit="s", utc=True).dt.strftime("%Y-%m-%d")
        counts = days.value_counts().sort_index()
        return [{"date": k, "count": int(v)} for k, v in counts.items()]

    @staticmethod
    def _device_breakdown(responses: pd.DataFrame) -> list[dict]:
        if responses.empty:
            return []
        counts = responses["device_type"].value_counts(dropna=False)
        out = [
            {"device_type": None if pd.isna(k) else k, "count": int(v)}
            for k, v in counts.items()
        ]
        # known types alphabetically, null bucket last
        return sorted(out, key=lambda r: (r["device_type"] is None, r["device_type"] or ""))

    @staticmethod
    def _country_breakdown(responses: pd.DataFrame) -> list[dict]:
        if responses.empty:
            return []
        counts = responses["country"].dropna().value_counts()
        out = [{"country": k, "count": int(v)} for k, v in counts.items()]
        out.sort(key=lambda r: (-r["count"], r["country"]))
        return out[:COUNTRY_LIMIT]

    @staticmethod
    def _summary(form: Form, responses: pd.DataFrame) -> dict:
        views = form.view_count or 0
        total = form.response_count or 0
        conversion = round(total / views * 100, 1) if views > 0 else 0.0
        if responses.empty:
            avg_time = 0
        else:
            avg_time = int(round(float(pd.to_numeric(responses["completion_time"], errors="coerce").fillna(0).mean())))
        return {
            "totalViews": views,
            "totalResponses": total,
            "conversionRate": conversion,
            "avgCompletionTime": avg_time,
        }
