"""Response export keyed by field label.

The CSV dialect is the one the dashboard has always produced: every cell is
the JSON encoding of its value, cells are joined with bare commas and lines
with "\\n". Cells are never RFC-4180 escaped, so a cell holding `"a,b"`
parses back with `json.loads`, not with the `csv` module.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Iterable

FIXED_COLUMNS = ["id", "created_at", "completed", "device_type", "country"]


def iso_timestamp(ts: int) -> str:
    """Unix seconds -> `YYYY-MM-DDTHH:MM:SS.mmmZ`."""
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def build_rows(responses: Iterable[Any], fields: Iterable[Any]) -> list[dict]:
    """One dict per response: fixed columns, then answers under the field's current label.

    Answers whose field no longer exists are left out.
    """
    labels = {f.id: f.label for f in fields}
    rows = []
    for r in responses:
        row = {
            "id": r.id,
            "created_at": iso_timestamp(r.created_at),
            "completed": bool(r.completed),
            "device_type": r.device_type,
            "country": r.country,
        }
        for a in r.answers:
            label = labels.get(a.field_id)
            if label is not None:
                row[label] = a.value
        rows.append(row)
    return rows


def _is_blank(value: Any) -> bool:
    # JSON-falsy values export as an empty string
    if value is None or value is False or value == "":
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0 or value != value
    return False


def encode_cell(value: Any) -> str:
    if _is_blank(value):
        value = ""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def columns_for(rows: list[dict]) -> list[str]:
    columns: list[str] = []
    seen = set()
    for row in rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                columns.append(key)
    return columns


def to_csv(rows: list[dict]) -> str:
    if not rows:
        return ""
    columns = columns_for(rows)
    lines = [",".join(columns)]
    for row in rows:
        lines.append(",".join(encode_cell(row.get(col)) for col in columns))
    return "\n".join(lines)


def to_json(rows: list[dict]) -> str:
    return json.dumps(rows, ensure_ascii=False, indent=2)
