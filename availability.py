"""
Vehicle availability.

Only confirmed and active bookings hold a vehicle. Intervals are compared
at minute precision on combined date + time instants, so a rental may start
at the exact instant the previous one is returned.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional

from errors import InvalidIntervalError
from pricing import DateLike, TimeLike, combine
from schemas import Booking, BookingStatus

BLOCKING_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.ACTIVE})

# Returns at or after this hour are handed over the next morning
LATE_RETURN_CUTOFF_HOUR = 20


@dataclass(frozen=True)
class RentalInterval:
    start: datetime
    end: datetime

    @classmethod
    def from_parts(
        cls,
        pickup_date: DateLike,
        return_date: DateLike,
        pickup_time: TimeLike,
        return_time: TimeLike,
    ) -> "RentalInterval":
        start = combine(pickup_date, pickup_time)
        end = combine(return_date, return_time)
        if end <= start:
            raise InvalidIntervalError()
        return cls(start, end)

    @classmethod
    def of_booking(cls, booking: Booking) -> "RentalInterval":
        # Stored bookings were validated on the way in
        return cls(
            combine(booking.pickup_date, booking.pickup_time),
            combine(booking.return_date, booking.return_time),
        )

    def overlaps(self, other: "RentalInterval") -> bool:
        if self.start == other.end or self.end == other.start:
            return False
        return self.start < other.end and self.end > other.start


@dataclass
class AvailabilityResult:
    is_available: bool
    conflicts: List[Booking] = field(default_factory=list)


def is_blocking(booking: Booking) -> bool:
    return booking.status in BLOCKING_STATUSES


def check_availability(
    existing_bookings: Iterable[Booking],
    candidate: RentalInterval,
    exclude_booking_id: Optional[str] = None,
) -> AvailabilityResult:
    """Compare a candidate window against a vehicle's existing bookings.

    The caller fetches the bookings; `exclude_booking_id` drops the booking
    being re-validated so it does not conflict with itself.
    """
    blocking = [
        b for b in existing_bookings
        if is_blocking(b) and (exclude_booking_id is None or b.id != exclude_booking_id)
    ]
    conflicts = [b for b in blocking if candidate.overlaps(RentalInterval.of_booking(b))]
    return AvailabilityResult(is_available=not conflicts, conflicts=conflicts)


@dataclass
class VehicleCalendar:
    available_now: bool
    blocked_dates: List[date]
    booked_periods: List[Booking]
    current_booking: Optional[Booking] = None
    upcoming_booking: Optional[Booking] = None
    next_available_date: Optional[date] = None
    next_available_time: Optional[time] = None


def _daterange(start: date, end: date):
    cur = start
    while cur <= end:
        yield cur
        cur += timedelta(days=1)


def build_vehicle_calendar(
    bookings: Iterable[Booking],
    window_start: date,
    window_end: date,
    now: datetime,
) -> VehicleCalendar:
    """Blocked dates and hand-over times of one vehicle inside a window."""
    window = [
        b for b in bookings
        if is_blocking(b) and b.pickup_date <= window_end and b.return_date >= window_start
    ]
    window.sort(key=lambda b: RentalInterval.of_booking(b).start)

    blocked = set()
    for b in window:
        blocked.update(_daterange(max(b.pickup_date, window_start), min(b.return_date, window_end)))

    current = None
    upcoming = None
    for b in window:
        interval = RentalInterval.of_booking(b)
        if interval.start <= now < interval.end and current is None:
            current = b
        elif interval.start > now and upcoming is None:
            upcoming = b

    calendar = VehicleCalendar(
        available_now=current is None,
        blocked_dates=sorted(blocked),
        booked_periods=window,
        current_booking=current,
        upcoming_booking=upcoming,
    )
    if current is not None:
        next_date = current.return_date
        if current.return_time.hour >= LATE_RETURN_CUTOFF_HOUR:
            next_date += timedelta(days=1)
        calendar.next_available_date = next_date
        calendar.next_available_time = current.return_time
    return calendar
