"""UTC timestamps for run summaries."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with second precision."""

    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()
