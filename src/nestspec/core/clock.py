from __future__ import annotations

import os
from datetime import datetime, timezone


def now_utc() -> datetime:
    """Return the current time in UTC.

    Tests can override via `NESTSPEC_TEST_NOW_ISO` so run timestamps are deterministic.
    """
    override = os.environ.get("NESTSPEC_TEST_NOW_ISO")
    if override:
        return parse_utc_iso(override)
    return datetime.now(timezone.utc)


def parse_utc_iso(s: str) -> datetime:
    """Parse an ISO-8601 timestamp into a UTC datetime.

    Accepts either an explicit offset (e.g. `...+00:00`) or `Z`.
    """
    if s.endswith("Z"):
        s = f"{s[:-1]}+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        raise ValueError("Timestamp must be timezone-aware (include +00:00 or Z)")
    return dt.astimezone(timezone.utc)
