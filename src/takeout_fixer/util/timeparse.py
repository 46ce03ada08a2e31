from __future__ import annotations

import re
from datetime import datetime, tzinfo
from dateutil import tz

# Sidecar timestamps are decimal strings of epoch seconds, e.g. "1609459200".
# Some exports carry surrounding whitespace; anything else is rejected.
EPOCH_SECONDS_REGEX = re.compile(r"^\s*(?P<s>-?\d+)\s*$")

def parse_epoch_seconds(value: object) -> datetime | None:
    """Parse a sidecar epoch-seconds string into a UTC-aware datetime.

    Returns None when the value is missing or unparsable. The caller decides
    what an invalid capture time means; it is never coerced to the epoch.
    """
    if value is None:
        return None
    m = EPOCH_SECONDS_REGEX.match(str(value))
    if not m:
        return None
    try:
        return datetime.fromtimestamp(int(m.group("s")), tz=tz.UTC)
    except (OverflowError, OSError, ValueError):
        return None

def resolve_timezone(name: str) -> tzinfo:
    """Map a settings value to a tzinfo.

    - "" / "UTC" -> UTC
    - "local" -> the machine's local zone
    - anything else -> dateutil.tz.gettz(name), falling back to UTC
    """
    v = (name or "").strip()
    if not v or v.upper() == "UTC":
        return tz.UTC
    if v.lower() == "local":
        return tz.tzlocal()
    return tz.gettz(v) or tz.UTC

def to_exif_timezone(dt: datetime, name: str = "UTC") -> datetime:
    return dt.astimezone(resolve_timezone(name))

def format_exif_datetime(dt: datetime) -> str:
    """Format datetime to EXIF DateTimeOriginal format: YYYY:MM:DD HH:MM:SS."""
    return dt.strftime("%Y:%m:%d %H:%M:%S")
