from datetime import datetime
from decimal import Decimal

import pytest
from bson import ObjectId

from errors import DuplicateBookingNumberError
from repository import BookingStore
from schemas import Booking, BookingSource, BookingStatus, Customer, Vehicle
from service import BookingService


class InMemoryBookingStore(BookingStore):
    def __init__(self):
        self.vehicles = {}
        self.customers = {}
        self.bookings = {}
        self.sequence = 0

    @staticmethod
    def _new_id():
        return str(ObjectId())

    # Vehicles
    def list_vehicles(self):
        return [dict(v) for v in self.vehicles.values()]

    def get_vehicle(self, vehicle_id):
        v = self.vehicles.get(vehicle_id)
        return dict(v) if v else None

    def create_vehicle(self, vehicle: Vehicle):
        doc = vehicle.model_dump()
        doc["id"] = self._new_id()
        self.vehicles[doc["id"]] = doc
        return dict(doc)

    def plate_number_exists(self, plate_number):
        return any(v["plate_number"] == plate_number for v in self.vehicles.values())

    def set_vehicle_available(self, vehicle_id, available):
        self.vehicles[vehicle_id]["available"] = available

    def vehicle_booking_version(self, vehicle_id):
        return self.vehicles[vehicle_id].get("booking_version", 0)

    def claim_vehicle_version(self, vehicle_id, version):
        if self.vehicle_booking_version(vehicle_id) != version:
            return False
        self.vehicles[vehicle_id]["booking_version"] = version + 1
        return True

    # Customers
    def list_customers(self):
        return [dict(c) for c in self.customers.values()]

    def get_customer(self, customer_id):
        c = self.customers.get(customer_id)
        return dict(c) if c else None

    def create_customer(self, customer: Customer):
        doc = customer.model_dump()
        doc["id"] = self._new_id()
        self.customers[doc["id"]] = doc
        return dict(doc)

    def find_customer_by_contact(self, phone, email=None):
        for c in self.customers.values():
            if c["phone"] == phone:
                return dict(c)
        if email:
            for c in self.customers.values():
                if c["email"] == email:
                    return dict(c)
        return None

    def record_booking_stats(self, customer_id, vehicle_id, amount, at):
        customer = self.customers[customer_id]
        customer["total_bookings"] += 1
        customer["total_spent"] += amount
        customer["last_booking_at"] = at
        self.vehicles[vehicle_id]["bookings"] += 1

    # Bookings
    def get_booking(self, booking_id):
        return self.bookings.get(booking_id)

    def list_bookings(self, status=None, vehicle_id=None, customer_id=None):
        out = list(self.bookings.values())
        if status is not None:
            out = [b for b in out if b.status == BookingStatus(status)]
        if vehicle_id:
            out = [b for b in out if b.vehicle_id == vehicle_id]
        if customer_id:
            out = [b for b in out if b.customer_id == customer_id]
        return out

    def find_active_bookings_for_vehicle(self, vehicle_id):
        return [
            b for b in self.bookings.values()
            if b.vehicle_id == vehicle_id and b.status in (BookingStatus.CONFIRMED, BookingStatus.ACTIVE)
        ]

    def insert_booking(self, booking):
        # unique index
        if any(b.booking_number == booking.booking_number for b in self.bookings.values()):
            raise DuplicateBookingNumberError()
        created = booking.model_copy(update={"id": self._new_id()})
        self.bookings[created.id] = created
        return created

    def delete_booking(self, booking_id, expected_status=None):
        stored = self.bookings.get(booking_id)
        if stored is None or (expected_status is not None and stored.status != expected_status):
            return False
        del self.bookings[booking_id]
        return True

    def update_booking_if_status(self, booking, expected_status):
        stored = self.bookings.get(booking.id)
        if stored is None or stored.status != expected_status:
            return False
        self.bookings[booking.id] = booking
        return True

    def next_booking_sequence(self):
        self.sequence += 1
        return self.sequence

    def booking_number_exists(self, booking_number):
        return any(b.booking_number == booking_number for b in self.bookings.values())


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def store():
    return InMemoryBookingStore()


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 1, 9, 0))


@pytest.fixture
def service(store, clock):
    return BookingService(store, clock=clock)


@pytest.fixture
def vehicle(store):
    return store.create_vehicle(Vehicle(
        name="Clio 5",
        brand="Renault",
        model="Clio",
        year=2023,
        plate_number="12345-A-40",
        daily_rate=Decimal("300.00"),
    ))


@pytest.fixture
def customer(store):
    return store.create_customer(Customer(first_name="Sara", last_name="Alaoui", phone="+212600000001"))


@pytest.fixture
def make_booking():
    counter = {"n": 0}

    def factory(
        pickup="2025-01-08 10:00",
        ret="2025-01-10 11:00",
        status=BookingStatus.CONFIRMED,
        daily_rate="300.00",
        charged_days=2,
        **extra,
    ):
        counter["n"] += 1
        pickup_at = datetime.strptime(pickup, "%Y-%m-%d %H:%M")
        return_at = datetime.strptime(ret, "%Y-%m-%d %H:%M")
        fields = dict(
            id=f"b{counter['n']}",
            booking_number=f"BK{counter['n']:03d}",
            vehicle_id="v1",
            customer_id="c1",
            pickup_date=pickup_at.date(),
            return_date=return_at.date(),
            pickup_time=pickup_at.time(),
            return_time=return_at.time(),
            daily_rate=Decimal(daily_rate),
            charged_days=charged_days,
            total_amount=Decimal(daily_rate) * charged_days,
            status=status,
            source=BookingSource.WEBSITE,
        )
        fields.update(extra)
        return Booking(**fields)

    return factory


@pytest.fixture
def window():
    def factory(pickup="2025-01-10 11:00", ret="2025-01-12 11:00"):
        pickup_at = datetime.strptime(pickup, "%Y-%m-%d %H:%M")
        return_at = datetime.strptime(ret, "%Y-%m-%d %H:%M")
        return {
            "pickup_date": pickup_at.date(),
            "return_date": return_at.date(),
            "pickup_time": pickup_at.time(),
            "return_time": return_at.time(),
        }

    return factory
