"""
Per-session log records.

A record is a flat, self-describing mapping: the fixed lead columns plus
one boolean per control key seen during the session. Any key the sink has
never seen before becomes a new column; see logsink.csv_sink.
"""

import re
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

LEAD_FIELDS = ("name", "nationality", "email", "phone")
BASE_COLUMNS = ("timestamp",) + LEAD_FIELDS

# keys that describe the wire message, not the session
ENVELOPE_KEYS = ("type",)

_VIDEO_KEY = re.compile(r"^video(\d+)$", re.IGNORECASE)


def build_record(lead_data: Mapping, button_status: Mapping,
                 timestamp: Optional[datetime] = None) -> dict:
    """
    Flatten one session into a log record.

    Args:
        lead_data:     captured form fields; missing ones become ""
        button_status: control key -> whether it was activated
        timestamp:     session end time, defaults to now (UTC)
    """
    if timestamp is None:
        timestamp = datetime.now(timezone.utc)

    record = {"timestamp": timestamp.isoformat() if isinstance(timestamp, datetime) else str(timestamp)}
    for name in LEAD_FIELDS:
        record[name] = lead_data.get(name) or ""
    for key, pressed in button_status.items():
        if key in record:
            continue
        record[key] = bool(pressed)
    return record


def _extra_sort_key(key: str):
    match = _VIDEO_KEY.match(key)
    if match:
        return (0, int(match.group(1)), "")
    return (1, 0, key)


def column_order(keys: Iterable[str]) -> list[str]:
    """
    Base columns first, then extras: videoN keys in numeric order, then
    everything else alphabetically.
    """
    extras = {k for k in keys if k not in BASE_COLUMNS and k not in ENVELOPE_KEYS}
    return list(BASE_COLUMNS) + sorted(extras, key=_extra_sort_key)
