# Time helpers. Timestamps are stored as naive UTC datetimes.

from datetime import datetime, timezone


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso(value):
    # Serialize a stored timestamp for JSON payloads
    if value is None:
        return None
    return value.isoformat(timespec='microseconds') + 'Z'
