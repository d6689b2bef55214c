import calendar
from datetime import datetime, date, timedelta, timezone


PERIODS = ("daily", "weekly", "monthly")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def adjusted_now(now: datetime | None = None, day_end_offset_minutes: int = 0) -> datetime:
    """Shift an instant back by the user's day-end offset, in UTC."""
    current = _as_utc(now or utcnow())
    return current - timedelta(minutes=int(day_end_offset_minutes or 0))


def logical_date(now: datetime | None = None, day_end_offset_minutes: int = 0) -> date:
    return adjusted_now(now, day_end_offset_minutes).date()


def start_of_week(d: date) -> date:
    """Return Monday of the week containing d."""
    return d - timedelta(days=d.weekday())


def start_of_month(d: date) -> date:
    return d.replace(day=1)


def sunday_based_weekday(d: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return (d.weekday() + 1) % 7


def normalize_period(period: str | None) -> str:
    value = str(period or "").strip().lower()
    if value not in PERIODS:
        raise ValueError(f"period must be one of {'|'.join(PERIODS)}")
    return value


def _period_start_for(period: str, d: date) -> date:
    if period == "daily":
        return d
    if period == "weekly":
        return start_of_week(d)
    return start_of_month(d)


def compute_period_start(
    period: str,
    now: datetime | None = None,
    day_end_offset_minutes: int = 0,
) -> str:
    """
    Canonical start date (YYYY-MM-DD) of the period window containing ``now``.

    The instant is shifted back by ``day_end_offset_minutes`` before the UTC
    calendar date is taken, so a user whose day ends at 02:00 still sees
    01:30 as part of the previous day. Weeks start on Monday.
    """
    normalized = normalize_period(period)
    d = logical_date(now, day_end_offset_minutes)
    return _period_start_for(normalized, d).isoformat()


def adjusted_day_of_week(now: datetime | None = None, day_end_offset_minutes: int = 0) -> int:
    return sunday_based_weekday(logical_date(now, day_end_offset_minutes))


def generate_period_starts(
    period: str,
    count: int,
    now: datetime | None = None,
    day_end_offset_minutes: int = 0,
) -> list[str]:
    """Start dates of the last ``count`` periods, oldest first."""
    normalized = normalize_period(period)
    anchor = _period_start_for(normalized, logical_date(now, day_end_offset_minutes))
    starts: list[date] = []
    for i in range(max(int(count), 0) - 1, -1, -1):
        if normalized == "daily":
            starts.append(anchor - timedelta(days=i))
        elif normalized == "weekly":
            starts.append(anchor - timedelta(days=7 * i))
        else:
            months = anchor.year * 12 + (anchor.month - 1) - i
            starts.append(date(months // 12, months % 12 + 1, 1))
    return [d.isoformat() for d in starts]


def calendar_period_starts(period: str, year: int, month: int) -> list[str]:
    """Every period start whose window overlaps the given month."""
    normalized = normalize_period(period)
    first_day = date(year, month, 1)
    last_day = date(year, month, calendar.monthrange(year, month)[1])

    if normalized == "daily":
        return [date(year, month, day).isoformat() for day in range(1, last_day.day + 1)]
    if normalized == "weekly":
        starts = []
        current = start_of_week(first_day)
        while current <= last_day:
            starts.append(current.isoformat())
            current += timedelta(days=7)
        return starts
    return [first_day.isoformat()]


def parse_iso_date(raw: str) -> date:
    value = str(raw or "").strip()
    if len(value) != 10:
        raise ValueError("date must be formatted as YYYY-MM-DD")
    return date.fromisoformat(value)
