from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from daypass.core.config import get_settings

settings = get_settings()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def business_zone() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def to_local(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(business_zone())


def local_today(now: datetime | None = None) -> date:
    return to_local(now or utcnow()).date()


def cutoff_time() -> time:
    hours, _, minutes = settings.CHECKIN_CUTOFF.partition(":")
    return time(int(hours), int(minutes or 0))


def is_after_cutoff(now: datetime | None = None) -> bool:
    local = to_local(now or utcnow())
    return local.time().replace(second=0, microsecond=0) >= cutoff_time()


def visit_expiration(checked_in_at: datetime) -> datetime:
    return checked_in_at + timedelta(hours=settings.VISIT_DURATION_HOURS)


def rolling_window_start(now: datetime | None = None) -> datetime:
    return (now or utcnow()) - timedelta(days=settings.ROLLING_WINDOW_DAYS)


def next_eligible_date(counted_visit_at: datetime) -> datetime:
    return counted_visit_at + timedelta(days=settings.ROLLING_WINDOW_DAYS)


def qr_token_expiration(now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(minutes=settings.QR_TOKEN_TTL_MINUTES)


def format_local_date(moment: datetime) -> str:
    return to_local(moment).strftime("%m/%d/%Y")
