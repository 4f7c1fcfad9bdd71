"""Best-effort client identity used for the "one response per user" limit.

The public form computes the fingerprint in the browser; `compute_fingerprint`
reproduces the same hash so callers (tests, server-side renderers, import
scripts) can derive it from the same signals. It is collidable and is not a
security boundary.
"""
from __future__ import annotations

import string
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import Response

_DIGITS = string.digits + string.ascii_lowercase


@dataclass
class ClientSignals:
    user_agent: str = ""
    language: str = ""
    timezone_offset: int = 0  # minutes, as reported by the browser
    canvas_signature: str = ""
    screen_width: int = 0
    screen_height: int = 0
    color_depth: int = 0

    def joined(self) -> str:
        parts = [
            self.user_agent, self.language, self.timezone_offset, self.canvas_signature,
            self.screen_width, self.screen_height, self.color_depth,
        ]
        return "|".join(str(p) for p in parts)


def string_hash(text: str) -> int:
    """32-bit signed `h = h * 31 + unit` over UTF-16 code units."""
    data = text.encode("utf-16-le")
    h = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = ((h << 5) - h + unit) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def to_base36(n: int) -> str:
    if n == 0:
        return "0"
    sign = "-" if n < 0 else ""
    n = abs(n)
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_DIGITS[r])
    return sign + "".join(reversed(out))


def compute_fingerprint(signals: ClientSignals) -> str:
    return to_base36(string_hash(signals.joined()))


def device_type_for_width(width: int) -> str:
    if width < 768:
        return "mobile"
    if width < 1024:
        return "tablet"
    return "desktop"


def has_prior_response(db: Session, form_id: str, fingerprint: Optional[str]) -> bool:
    """Whether a completed response with this fingerprint already exists for the form."""
    if not fingerprint:
        return False
    found = db.execute(
        select(Response.id).where(
            Response.form_id == form_id,
            Response.user_fingerprint == fingerprint,
            Response.completed == True,
        ).limit(1)
    ).first()
    return found is not None
