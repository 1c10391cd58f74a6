from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from ..config import get_settings


def local_zone() -> ZoneInfo:
    return ZoneInfo(get_settings().local_timezone)


def local_today() -> date:
    return datetime.now(timezone.utc).astimezone(local_zone()).date()


def to_local(dt: datetime) -> datetime:
    """Aware datetimes are converted to the desk's zone; naive ones are assumed local already."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=local_zone())
    return dt.astimezone(local_zone())


def remaining_until(expires_at: datetime, now: datetime | None = None) -> timedelta:
    current = now or datetime.now(timezone.utc)
    left = to_local(expires_at) - to_local(current)
    return max(left, timedelta(0))
