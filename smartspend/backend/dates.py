"""
Week and month helpers.

Weeks follow ISO-8601: they start on Monday and week 1 is the week that
contains the year's first Thursday.
"""

from datetime import date, datetime, time, timedelta


def parse_date(value) -> datetime:
    """Accept a datetime, a date or an ISO string and return a naive local datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def week_identifier(value=None) -> str:
    d = parse_date(value) if value is not None else datetime.now()
    iso_year, iso_week, _ = d.isocalendar()
    return f"{iso_year}-W{iso_week}"


def month_identifier(value=None) -> str:
    d = parse_date(value) if value is not None else datetime.now()
    return d.strftime("%Y-%m")


def month_name(month_id: str) -> str:
    """'2024-06' -> 'June 2024'"""
    return datetime.strptime(month_id, "%Y-%m").strftime("%B %Y")


def today_iso(now=None) -> str:
    return (now or datetime.now()).strftime("%Y-%m-%d")


def _week_start(value) -> date:
    d = parse_date(value).date()
    # isoweekday: Monday=1 ... Sunday=7
    return d - timedelta(days=d.isoweekday() - 1)


def is_same_week(a, b) -> bool:
    return _week_start(a) == _week_start(b)


def week_range(value=None):
    """Return (start, end): Monday 00:00:00.000 through Sunday 23:59:59.999."""
    start_day = _week_start(value if value is not None else datetime.now())
    start = datetime.combine(start_day, time.min)
    end = datetime.combine(start_day + timedelta(days=6), time(23, 59, 59, 999000))
    return start, end


def week_range_for_id(week_id: str):
    """Inverse of week_identifier: '2024-W25' -> (monday_start, sunday_end)."""
    year, week = week_id.split('-W')
    monday = date.fromisocalendar(int(year), int(week), 1)
    return week_range(monday)
