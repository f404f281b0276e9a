"""
Booking lifecycle.

    pending -> confirmed -> active -> completed
    pending | confirmed -> cancelled

Every function here takes the booking (and, where needed, the vehicle's
other bookings) as input and returns a new booking plus the vehicle
availability flag to write. Nothing is persisted here.
"""
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Tuple, Union

from availability import RentalInterval, check_availability
from errors import BookingConflictError, InvalidTransitionError, StillConflictingError
from pricing import MIN_CHARGED_DAYS, calculate_charge_between, calculate_charged_days, charge_amount, combine, to_cents
from schemas import Booking, BookingSource, BookingStatus


class BookingEvent(str, Enum):
    CONFIRM = "confirm"
    PICKUP = "pickup"
    RETURN = "return"
    CANCEL = "cancel"


TRANSITIONS = {
    BookingEvent.CONFIRM: ({BookingStatus.PENDING}, BookingStatus.CONFIRMED),
    BookingEvent.PICKUP: ({BookingStatus.CONFIRMED}, BookingStatus.ACTIVE),
    BookingEvent.RETURN: ({BookingStatus.ACTIVE}, BookingStatus.COMPLETED),
    BookingEvent.CANCEL: ({BookingStatus.PENDING, BookingStatus.CONFIRMED}, BookingStatus.CANCELLED),
}

DEFAULT_CANCELLATION_REASON = "Cancelled by admin"


@dataclass(frozen=True)
class LateReturn:
    scheduled_days: int
    settled_days: int
    surplus_days: int
    fee: Decimal
    original_amount: Decimal
    final_amount: Decimal


@dataclass(frozen=True)
class TransitionResult:
    booking: Booking
    # None leaves the vehicle flag untouched
    vehicle_available: Optional[bool] = None
    late_return: Optional[LateReturn] = None
    # Booking now counts towards customer and vehicle totals
    count_booking: bool = False


def recalculate_charge(booking: Booking, charged_days: Optional[int] = None) -> Booking:
    """Copy of `booking` with charged days and total amount brought in line.

    Without `charged_days` the booking's own scheduled window is re-priced.
    """
    if charged_days is None:
        charged_days = calculate_charged_days(
            booking.pickup_date, booking.return_date, booking.pickup_time, booking.return_time
        ).charged_days
    return booking.model_copy(update={
        "charged_days": charged_days,
        "total_amount": charge_amount(booking.daily_rate, charged_days),
    })


def settle_return(booking: Booking, actual_return: datetime) -> Tuple[Booking, Optional[LateReturn]]:
    """Bill any extra days a late return ran into. Early returns are not refunded."""
    scheduled_end = combine(booking.return_date, booking.return_time)
    if actual_return <= scheduled_end:
        return booking, None

    pickup_at = combine(booking.pickup_date, booking.pickup_time)
    actual = calculate_charge_between(pickup_at, actual_return)
    if actual.charged_days <= booking.charged_days:
        return booking, None

    surplus_days = actual.charged_days - booking.charged_days
    fee = charge_amount(booking.daily_rate, surplus_days)
    settled = recalculate_charge(booking, actual.charged_days)
    settled = settled.model_copy(update={"late_return_fee": fee})
    return settled, LateReturn(
        scheduled_days=booking.charged_days,
        settled_days=settled.charged_days,
        surplus_days=surplus_days,
        fee=fee,
        original_amount=booking.total_amount,
        final_amount=settled.total_amount,
    )


def open_booking(
    *,
    booking_number: str,
    vehicle_id: str,
    customer_id: str,
    pickup_date: Union[date, str],
    return_date: Union[date, str],
    pickup_time: Union[time, str],
    return_time: Union[time, str],
    daily_rate,
    source: BookingSource,
    existing_bookings: Iterable[Booking],
    now: datetime,
    actor: Optional[str] = None,
    pickup_location: Optional[str] = None,
    return_location: Optional[str] = None,
) -> TransitionResult:
    """Create a booking: pending from the website, confirmed straight away for admins."""
    interval = RentalInterval.from_parts(pickup_date, return_date, pickup_time, return_time)

    availability = check_availability(existing_bookings, interval)
    if not availability.is_available:
        raise BookingConflictError(availability.conflicts)

    is_admin = BookingSource(source) is BookingSource.ADMIN

    booking = Booking(
        booking_number=booking_number,
        vehicle_id=vehicle_id,
        customer_id=customer_id,
        pickup_date=interval.start.date(),
        return_date=interval.end.date(),
        pickup_time=interval.start.time(),
        return_time=interval.end.time(),
        pickup_location=pickup_location,
        return_location=return_location,
        daily_rate=to_cents(daily_rate),
        charged_days=MIN_CHARGED_DAYS,
        total_amount=Decimal("0"),
        status=BookingStatus.CONFIRMED if is_admin else BookingStatus.PENDING,
        source=BookingSource(source),
        created_by=actor,
        confirmed_by=actor if is_admin else None,
        confirmed_at=now if is_admin else None,
    )
    booking = recalculate_charge(booking)
    if not is_admin:
        return TransitionResult(booking)
    return TransitionResult(
        booking,
        vehicle_available=False if interval.start <= now else None,
        count_booking=True,
    )


def transition_booking(
    booking: Booking,
    event: Union[BookingEvent, str],
    now: datetime,
    existing_bookings: Iterable[Booking] = (),
    actor: Optional[str] = None,
    reason: Optional[str] = None,
) -> TransitionResult:
    """Apply `event` to `booking` as of `now`.

    `existing_bookings` are the vehicle's bookings, needed to re-check the
    window on confirm. Raises InvalidTransitionError when the booking is not
    in an origin state for the event, StillConflictingError when a confirm
    finds the window taken in the meantime.
    """
    event = BookingEvent(event)
    origins, target = TRANSITIONS[event]
    if booking.status not in origins:
        raise InvalidTransitionError(
            f"Cannot {event.value} a booking that is {booking.status.value}"
        )

    if event is BookingEvent.CONFIRM:
        interval = RentalInterval.of_booking(booking)
        availability = check_availability(existing_bookings, interval, exclude_booking_id=booking.id)
        if not availability.is_available:
            raise StillConflictingError(availability.conflicts)
        updated = booking.model_copy(update={
            "status": target,
            "confirmed_by": actor,
            "confirmed_at": now,
        })
        return TransitionResult(
            updated,
            vehicle_available=False if interval.start <= now else None,
            count_booking=True,
        )

    if event is BookingEvent.PICKUP:
        updated = booking.model_copy(update={"status": target, "picked_up_at": now})
        return TransitionResult(updated, vehicle_available=False)

    if event is BookingEvent.RETURN:
        settled, late_return = settle_return(booking, now)
        updated = settled.model_copy(update={"status": target, "returned_at": now})
        return TransitionResult(updated, vehicle_available=True, late_return=late_return)

    updated = booking.model_copy(update={
        "status": target,
        "cancelled_by": actor,
        "cancelled_at": now,
        "cancellation_reason": reason or DEFAULT_CANCELLATION_REASON,
    })
    return TransitionResult(updated, vehicle_available=True)


FROZEN_STATUSES = {BookingStatus.COMPLETED, BookingStatus.CANCELLED}
DELETABLE_STATUSES = {BookingStatus.PENDING, BookingStatus.CANCELLED}


def reschedule_booking(
    booking: Booking,
    existing_bookings: Iterable[Booking],
    *,
    pickup_date: Union[date, str, None] = None,
    return_date: Union[date, str, None] = None,
    pickup_time: Union[time, str, None] = None,
    return_time: Union[time, str, None] = None,
    pickup_location: Optional[str] = None,
    return_location: Optional[str] = None,
) -> Booking:
    """Move a booking to a new window and re-price it at its frozen rate.

    Parts left as None keep their current value. The booking's own row in
    `existing_bookings` never counts as a conflict.
    """
    if booking.status in FROZEN_STATUSES:
        raise InvalidTransitionError("Cannot update completed or cancelled bookings")

    interval = RentalInterval.from_parts(
        pickup_date or booking.pickup_date,
        return_date or booking.return_date,
        pickup_time or booking.pickup_time,
        return_time or booking.return_time,
    )
    availability = check_availability(existing_bookings, interval, exclude_booking_id=booking.id)
    if not availability.is_available:
        raise BookingConflictError(availability.conflicts, "Vehicle is not available for the updated dates")

    changes = {
        "pickup_date": interval.start.date(),
        "return_date": interval.end.date(),
        "pickup_time": interval.start.time(),
        "return_time": interval.end.time(),
    }
    if pickup_location is not None:
        changes["pickup_location"] = pickup_location
    if return_location is not None:
        changes["return_location"] = return_location
    return recalculate_charge(booking.model_copy(update=changes))


def ensure_deletable(booking: Booking) -> None:
    if booking.status not in DELETABLE_STATUSES:
        raise InvalidTransitionError("Only pending or cancelled bookings can be deleted")
