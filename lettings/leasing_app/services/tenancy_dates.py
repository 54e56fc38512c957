from datetime import date, datetime, time, timezone as dt_timezone

from dateutil.relativedelta import relativedelta
from django.utils import timezone


def compute_end_date(move_in_date, duration_months):
    # accurate calendar month maths
    return move_in_date + relativedelta(months=+int(duration_months))


def from_timestamp(value):
    """Unix seconds (as sent by the payment gateway) -> aware datetime, or None."""
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)


def to_timestamp(value) -> int:
    """date/datetime -> unix seconds; naive dates are taken as midnight UTC."""
    if isinstance(value, datetime):
        if timezone.is_naive(value):
            value = timezone.make_aware(value, dt_timezone.utc)
        return int(value.timestamp())
    if isinstance(value, date):
        return int(datetime.combine(value, time.min, tzinfo=dt_timezone.utc).timestamp())
    return int(value)


def days_between(earlier, later) -> int:
    """Whole days from ``earlier`` to ``later`` (negative when later is before earlier)."""
    return int((later - earlier).total_seconds() // 86400)


def next_billing_anchor(payment_day: int, now=None) -> datetime:
    """
    The next occurrence of ``payment_day`` (1-28) at midnight UTC, strictly
    after ``now``. Used as the subscription billing anchor.
    """
    now = now or timezone.now()
    now_utc = now.astimezone(dt_timezone.utc)
    candidate = datetime(now_utc.year, now_utc.month, int(payment_day), tzinfo=dt_timezone.utc)
    if candidate <= now_utc:
        candidate = candidate + relativedelta(months=+1)
    return candidate
