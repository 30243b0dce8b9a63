from datetime import datetime

import pytz


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column is stored in."""
    return datetime.now(pytz.utc).replace(tzinfo=None)


def parse_datetime(value) -> datetime:
    """Parse an ISO 8601 string into naive UTC. Naive input is taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(pytz.utc).replace(tzinfo=None)
    return parsed


def format_local(value: datetime, tz_name: str, fmt: str = "%b %d, %Y %I:%M %p") -> str:
    local = pytz.utc.localize(value).astimezone(pytz.timezone(tz_name))
    return local.strftime(fmt)
