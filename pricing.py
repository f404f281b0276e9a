"""
Rental duration and pricing.

A rental is charged in whole days. Time running past the last full day is
forgiven up to a grace window; from LATENESS_GRACE_MINUTES onwards it costs
one more day.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from errors import InvalidIntervalError

MINUTES_PER_DAY = 1440
LATENESS_GRACE_MINUTES = 90
MIN_CHARGED_DAYS = 1

CENTS = Decimal("0.01")

DateLike = Union[date, str]
TimeLike = Union[time, str]


@dataclass(frozen=True)
class ChargeBreakdown:
    full_days: int
    lateness_minutes: int
    charged_days: int
    duration_minutes: int

    @property
    def lateness_fee_applied(self) -> bool:
        return self.lateness_minutes >= LATENESS_GRACE_MINUTES


def parse_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError:
        raise InvalidIntervalError(f"Invalid date: {value!r}")


def parse_time(value: TimeLike) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    raw = str(value).strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(raw, fmt).time().replace(second=0)
        except ValueError:
            continue
    raise InvalidIntervalError(f"Invalid time: {value!r}")


def combine(day: DateLike, at: TimeLike) -> datetime:
    """Date and time-of-day as one naive instant, no timezone shift."""
    return datetime.combine(parse_date(day), parse_time(at))


def calculate_charge_between(start: datetime, end: datetime) -> ChargeBreakdown:
    duration_minutes = (end - start) // timedelta(minutes=1)
    if duration_minutes <= 0:
        raise InvalidIntervalError()

    full_days = duration_minutes // MINUTES_PER_DAY
    lateness_minutes = duration_minutes - full_days * MINUTES_PER_DAY

    charged_days = full_days + 1 if lateness_minutes >= LATENESS_GRACE_MINUTES else full_days
    charged_days = max(MIN_CHARGED_DAYS, charged_days)

    return ChargeBreakdown(
        full_days=full_days,
        lateness_minutes=lateness_minutes,
        charged_days=charged_days,
        duration_minutes=duration_minutes,
    )


def calculate_charged_days(
    pickup_date: DateLike,
    return_date: DateLike,
    pickup_time: TimeLike,
    return_time: TimeLike,
) -> ChargeBreakdown:
    """Whole days to bill for a pickup/return pair.

    Raises InvalidIntervalError when the return is not strictly after the
    pickup or when any part is malformed.
    """
    return calculate_charge_between(combine(pickup_date, pickup_time), combine(return_date, return_time))


def to_cents(amount) -> Decimal:
    return Decimal(str(amount)).quantize(CENTS, rounding=ROUND_HALF_UP)


def charge_amount(daily_rate, charged_days: int) -> Decimal:
    return to_cents(Decimal(str(daily_rate)) * charged_days)


def describe_lateness(breakdown: ChargeBreakdown) -> str:
    hours, minutes = divmod(breakdown.lateness_minutes, 60)
    if breakdown.lateness_fee_applied:
        return (
            f"Return runs {hours}h {minutes}m past the last full day "
            f"({LATENESS_GRACE_MINUTES} minute grace period exceeded, one extra day charged)"
        )
    if breakdown.lateness_minutes:
        return f"Within {LATENESS_GRACE_MINUTES} minute grace period ({hours}h {minutes}m over)"
    return "Exact number of days"
