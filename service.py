"""
Booking service: the booking core wired to a store.

Writes that can create an overlap (new bookings and confirmations) follow
one pattern: read the vehicle's booking version, read its blocking bookings,
decide, write, then bump the version only if nobody else did in between.
A lost race rolls the write back and starts over.
"""
import logging
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from typing import Callable, List, Optional, Union

from availability import RentalInterval, VehicleCalendar, build_vehicle_calendar, check_availability
from booking_numbers import BookingNumberAllocator
from config import Config
from errors import (
    DuplicateBookingNumberError,
    InvalidIntervalError,
    InvalidTransitionError,
    NotFoundError,
    VehicleBusyError,
)
from pricing import calculate_charge_between, charge_amount, describe_lateness
from repository import BookingStore
from schemas import Booking, BookingSource, BookingStatus, Customer
from workflow import (
    BookingEvent,
    TransitionResult,
    ensure_deletable,
    open_booking,
    reschedule_booking,
    transition_booking,
)

logger = logging.getLogger(__name__)

DateLike = Union[date, str]
TimeLike = Union[time, str]


class BookingService:
    def __init__(
        self,
        store: BookingStore,
        clock: Callable[[], datetime] = datetime.now,
        booking_number_prefix: str = Config.BOOKING_NUMBER_PREFIX,
        booking_number_width: int = Config.BOOKING_NUMBER_WIDTH,
        booking_number_max_attempts: int = Config.BOOKING_NUMBER_MAX_ATTEMPTS,
        commit_retries: int = Config.AVAILABILITY_COMMIT_RETRIES,
        admin_min_rental_minutes: int = Config.ADMIN_MIN_RENTAL_MINUTES,
        calendar_window_days: int = Config.CALENDAR_WINDOW_DAYS,
    ):
        self.store = store
        self.clock = clock
        self.commit_retries = commit_retries
        self.admin_min_rental_minutes = admin_min_rental_minutes
        self.calendar_window_days = calendar_window_days
        self.allocator = BookingNumberAllocator(
            next_sequence=store.next_booking_sequence,
            exists=store.booking_number_exists,
            prefix=booking_number_prefix,
            width=booking_number_width,
            max_attempts=booking_number_max_attempts,
        )

    # Lookups
    def require_vehicle(self, vehicle_id: str) -> dict:
        vehicle = self.store.get_vehicle(vehicle_id)
        if not vehicle:
            raise NotFoundError("Vehicle not found")
        return vehicle

    def require_customer(self, customer_id: str) -> dict:
        customer = self.store.get_customer(customer_id)
        if not customer:
            raise NotFoundError("Customer not found")
        return customer

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.store.get_booking(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    def list_bookings(self, status=None, vehicle_id=None, customer_id=None) -> List[Booking]:
        return self.store.list_bookings(status=status, vehicle_id=vehicle_id, customer_id=customer_id)

    # Availability
    def preview(
        self,
        vehicle_id: str,
        pickup_date: DateLike,
        return_date: DateLike,
        pickup_time: TimeLike,
        return_time: TimeLike,
    ) -> dict:
        """Availability of a vehicle for a window, with the price it would cost."""
        vehicle = self.require_vehicle(vehicle_id)
        interval = RentalInterval.from_parts(pickup_date, return_date, pickup_time, return_time)
        result = check_availability(self.store.find_active_bookings_for_vehicle(vehicle_id), interval)
        breakdown = calculate_charge_between(interval.start, interval.end)
        return {
            "vehicle_id": vehicle_id,
            "available": result.is_available,
            "conflicting_bookings": result.conflicts,
            "pricing": {
                "duration_minutes": breakdown.duration_minutes,
                "full_days": breakdown.full_days,
                "lateness_minutes": breakdown.lateness_minutes,
                "charged_days": breakdown.charged_days,
                "lateness_fee_applied": breakdown.lateness_fee_applied,
                "lateness_message": describe_lateness(breakdown),
                "daily_rate": vehicle["daily_rate"],
                "total_amount": charge_amount(vehicle["daily_rate"], breakdown.charged_days),
            },
        }

    def calendar(
        self,
        vehicle_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> VehicleCalendar:
        self.require_vehicle(vehicle_id)
        now = self.clock()
        start_date = start_date or now.date()
        end_date = end_date or start_date + timedelta(days=self.calendar_window_days)
        if end_date < start_date:
            raise InvalidIntervalError("Calendar end date must not be before its start date")
        bookings = self.store.find_active_bookings_for_vehicle(vehicle_id)
        return build_vehicle_calendar(bookings, start_date, end_date, now)

    # Creation
    def create_booking(
        self,
        *,
        vehicle_id: str,
        customer_id: str,
        pickup_date: DateLike,
        return_date: DateLike,
        pickup_time: TimeLike,
        return_time: TimeLike,
        source: BookingSource = BookingSource.WEBSITE,
        actor: Optional[str] = None,
        pickup_location: Optional[str] = None,
        return_location: Optional[str] = None,
    ) -> TransitionResult:
        source = BookingSource(source)
        vehicle = self.require_vehicle(vehicle_id)
        self.require_customer(customer_id)

        now = self.clock()
        interval = RentalInterval.from_parts(pickup_date, return_date, pickup_time, return_time)
        if interval.start.date() < now.date():
            raise InvalidIntervalError("Pickup date cannot be in the past")
        if source is BookingSource.ADMIN and interval.end - interval.start < timedelta(minutes=self.admin_min_rental_minutes):
            raise InvalidIntervalError(f"Minimum rental period is {self.admin_min_rental_minutes} minutes")

        booking_number = self.allocator.allocate()
        for _ in range(self.commit_retries):
            version = self.store.vehicle_booking_version(vehicle_id)
            result = open_booking(
                booking_number=booking_number,
                vehicle_id=vehicle_id,
                customer_id=customer_id,
                pickup_date=interval.start.date(),
                return_date=interval.end.date(),
                pickup_time=interval.start.time(),
                return_time=interval.end.time(),
                daily_rate=vehicle["daily_rate"],
                source=source,
                existing_bookings=self.store.find_active_bookings_for_vehicle(vehicle_id),
                now=now,
                actor=actor,
                pickup_location=pickup_location,
                return_location=return_location,
            )
            try:
                created = self.store.insert_booking(result.booking)
            except DuplicateBookingNumberError:
                booking_number = self.allocator.allocate()
                continue

            if self.store.claim_vehicle_version(vehicle_id, version):
                result = replace(result, booking=created)
                self._apply_side_effects(result)
                logger.info(
                    "Created %s booking %s for vehicle %s: %s days, %s",
                    created.status.value, created.booking_number, vehicle_id,
                    created.charged_days, created.total_amount,
                )
                return result

            logger.info("Vehicle %s changed while booking %s was written, retrying", vehicle_id, booking_number)
            self.store.delete_booking(created.id)

        raise VehicleBusyError()

    def create_website_booking(
        self,
        *,
        vehicle_id: str,
        first_name: str,
        last_name: str,
        phone: str,
        email: Optional[str] = None,
        **interval,
    ) -> TransitionResult:
        customer = self.store.find_customer_by_contact(phone, email)
        if customer is None:
            customer = self.store.create_customer(
                Customer(first_name=first_name, last_name=last_name, phone=phone, email=email)
            )
            logger.info("Created customer %s from website booking", customer["id"])
        return self.create_booking(
            vehicle_id=vehicle_id,
            customer_id=customer["id"],
            source=BookingSource.WEBSITE,
            **interval,
        )

    # Changes
    def update_booking(
        self,
        booking_id: str,
        *,
        pickup_date: Optional[DateLike] = None,
        return_date: Optional[DateLike] = None,
        pickup_time: Optional[TimeLike] = None,
        return_time: Optional[TimeLike] = None,
        pickup_location: Optional[str] = None,
        return_location: Optional[str] = None,
    ) -> Booking:
        """Move a booking to new dates or times, re-checked and re-priced under the vehicle lock."""
        for _ in range(self.commit_retries):
            booking = self.get_booking(booking_id)
            version = self.store.vehicle_booking_version(booking.vehicle_id)
            updated = reschedule_booking(
                booking,
                self.store.find_active_bookings_for_vehicle(booking.vehicle_id),
                pickup_date=pickup_date,
                return_date=return_date,
                pickup_time=pickup_time,
                return_time=return_time,
                pickup_location=pickup_location,
                return_location=return_location,
            )
            if not self.store.update_booking_if_status(updated, booking.status):
                raise InvalidTransitionError("Booking was changed by another request")

            if self.store.claim_vehicle_version(booking.vehicle_id, version):
                logger.info(
                    "Booking %s moved to %s %s - %s %s: %s days, %s",
                    booking.booking_number, updated.pickup_date, updated.pickup_time,
                    updated.return_date, updated.return_time, updated.charged_days, updated.total_amount,
                )
                return updated

            logger.info("Vehicle %s changed while updating %s, retrying", booking.vehicle_id, booking.booking_number)
            self.store.update_booking_if_status(booking, booking.status)

        raise VehicleBusyError()

    def delete_booking(self, booking_id: str) -> None:
        booking = self.get_booking(booking_id)
        ensure_deletable(booking)
        if not self.store.delete_booking(booking.id, expected_status=booking.status):
            raise InvalidTransitionError("Booking was changed by another request")
        logger.info("Deleted %s booking %s", booking.status.value, booking.booking_number)

    # Transitions
    def transition(
        self,
        booking_id: str,
        event: Union[BookingEvent, str],
        actor: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        event = BookingEvent(event)
        booking = self.get_booking(booking_id)
        if event is BookingEvent.CONFIRM:
            return self._confirm(booking, actor)

        result = transition_booking(booking, event, self.clock(), actor=actor, reason=reason)
        if not self.store.update_booking_if_status(result.booking, booking.status):
            raise InvalidTransitionError("Booking was changed by another request")
        self._apply_side_effects(result)
        if result.late_return:
            logger.info(
                "Booking %s returned late: %s -> %s days, fee %s",
                booking.booking_number, result.late_return.scheduled_days,
                result.late_return.settled_days, result.late_return.fee,
            )
        logger.info("Booking %s: %s -> %s", booking.booking_number, booking.status.value, result.booking.status.value)
        return result

    def _confirm(self, booking: Booking, actor: Optional[str]) -> TransitionResult:
        for _ in range(self.commit_retries):
            version = self.store.vehicle_booking_version(booking.vehicle_id)
            existing = self.store.find_active_bookings_for_vehicle(booking.vehicle_id)
            result = transition_booking(booking, BookingEvent.CONFIRM, self.clock(), existing, actor=actor)
            if not self.store.update_booking_if_status(result.booking, BookingStatus.PENDING):
                raise InvalidTransitionError("Booking was changed by another request")

            if self.store.claim_vehicle_version(booking.vehicle_id, version):
                self._apply_side_effects(result)
                logger.info("Booking %s confirmed by %s", booking.booking_number, actor)
                return result

            logger.info("Vehicle %s changed while confirming %s, retrying", booking.vehicle_id, booking.booking_number)
            self.store.update_booking_if_status(booking, BookingStatus.CONFIRMED)

        raise VehicleBusyError()

    def _apply_side_effects(self, result: TransitionResult) -> None:
        booking = result.booking
        if result.vehicle_available is not None:
            self.store.set_vehicle_available(booking.vehicle_id, result.vehicle_available)
        if result.count_booking:
            self.store.record_booking_stats(booking.customer_id, booking.vehicle_id, booking.total_amount, self.clock())
