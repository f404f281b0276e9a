from datetime import date, time
from decimal import Decimal

import mongomock
import pytest
from bson import ObjectId
from bson.decimal128 import Decimal128

from errors import DuplicateBookingNumberError
from repository import MongoBookingStore
from schemas import BookingStatus, Customer, Vehicle


@pytest.fixture
def mongo():
    return mongomock.MongoClient()["rental_test"]


@pytest.fixture
def mongo_store(mongo):
    store = MongoBookingStore(mongo)
    store.ensure_indexes()
    return store


@pytest.fixture
def stored_vehicle(mongo_store):
    return mongo_store.create_vehicle(Vehicle(
        name="Clio 5", brand="Renault", model="Clio", year=2023,
        plate_number="12345-A-40", daily_rate=Decimal("300.00"),
    ))


def test_counter_starts_at_one(mongo_store):
    assert mongo_store.next_booking_sequence() == 1
    assert mongo_store.next_booking_sequence() == 2


def test_counter_is_seeded_above_existing_numbers(mongo, mongo_store):
    mongo["booking"].insert_many([
        {"booking_number": "BK007"},
        {"booking_number": "BK003"},
        {"booking_number": "BK250101ABC123"},
    ])
    assert mongo_store.next_booking_sequence() == 8
    assert mongo_store.next_booking_sequence() == 9


def test_counter_seed_never_moves_backwards(mongo, mongo_store):
    mongo["counter"].insert_one({"_id": "booking_number", "seq": 40})
    mongo["booking"].insert_one({"booking_number": "BK005"})
    assert mongo_store.next_booking_sequence() == 41


def test_vehicle_without_version_field_claims_as_zero(mongo, mongo_store):
    vehicle_id = str(mongo["vehicle"].insert_one({"name": "Legacy", "plate_number": "1-A-1"}).inserted_id)

    assert mongo_store.vehicle_booking_version(vehicle_id) == 0
    assert mongo_store.claim_vehicle_version(vehicle_id, 0)
    assert mongo_store.vehicle_booking_version(vehicle_id) == 1


def test_stale_version_claim_fails(mongo_store, stored_vehicle):
    vehicle_id = stored_vehicle["id"]
    assert mongo_store.claim_vehicle_version(vehicle_id, 0)
    # a second writer read version 0 too
    assert not mongo_store.claim_vehicle_version(vehicle_id, 0)
    assert mongo_store.vehicle_booking_version(vehicle_id) == 1


def test_duplicate_booking_number_raises(mongo_store, stored_vehicle, make_booking):
    booking = make_booking(id=None, vehicle_id=stored_vehicle["id"], booking_number="BK001")
    mongo_store.insert_booking(booking)
    with pytest.raises(DuplicateBookingNumberError):
        mongo_store.insert_booking(booking)
    assert mongo_store.booking_number_exists("BK001")
    assert not mongo_store.booking_number_exists("BK002")


def test_booking_round_trip(mongo, mongo_store, stored_vehicle, make_booking):
    booking = make_booking(id=None, vehicle_id=stored_vehicle["id"], pickup="2025-01-10 10:00", ret="2025-01-12 11:30")
    created = mongo_store.insert_booking(booking)

    raw = mongo["booking"].find_one({"_id": ObjectId(created.id)})
    assert raw["daily_rate"] == Decimal128("300.00")
    assert raw["pickup_date"] == "2025-01-10"
    assert raw["return_time"] == "11:30"
    assert raw["status"] == "confirmed"

    fetched = mongo_store.get_booking(created.id)
    assert fetched == created
    assert fetched.daily_rate == Decimal("300.00")
    assert fetched.return_date == date(2025, 1, 12)
    assert fetched.return_time == time(11, 30)
    assert fetched.status is BookingStatus.CONFIRMED


def test_vehicle_money_comes_back_as_decimal(mongo_store, stored_vehicle):
    assert stored_vehicle["daily_rate"] == Decimal("300.00")
    assert stored_vehicle["booking_version"] == 0
    assert mongo_store.plate_number_exists("12345-A-40")
    assert [v["id"] for v in mongo_store.list_vehicles()] == [stored_vehicle["id"]]


def test_status_guarded_update(mongo_store, stored_vehicle, make_booking):
    created = mongo_store.insert_booking(
        make_booking(id=None, vehicle_id=stored_vehicle["id"], status=BookingStatus.PENDING)
    )
    confirmed = created.model_copy(update={"status": BookingStatus.CONFIRMED})

    assert mongo_store.update_booking_if_status(confirmed, BookingStatus.PENDING)
    # the same write from a stale read no longer matches
    assert not mongo_store.update_booking_if_status(confirmed, BookingStatus.PENDING)
    assert mongo_store.get_booking(created.id).status is BookingStatus.CONFIRMED


def test_status_guarded_delete(mongo_store, stored_vehicle, make_booking):
    created = mongo_store.insert_booking(
        make_booking(id=None, vehicle_id=stored_vehicle["id"], status=BookingStatus.CONFIRMED)
    )
    assert not mongo_store.delete_booking(created.id, expected_status=BookingStatus.PENDING)
    assert mongo_store.get_booking(created.id) is not None
    assert mongo_store.delete_booking(created.id, expected_status=BookingStatus.CONFIRMED)
    assert mongo_store.get_booking(created.id) is None


def test_only_confirmed_and_active_bookings_are_fetched_for_checks(mongo_store, stored_vehicle, make_booking):
    vehicle_id = stored_vehicle["id"]
    for status in BookingStatus:
        mongo_store.insert_booking(make_booking(id=None, vehicle_id=vehicle_id, status=status))

    active = mongo_store.find_active_bookings_for_vehicle(vehicle_id)
    assert sorted(b.status.value for b in active) == ["active", "confirmed"]
    assert len(mongo_store.list_bookings(vehicle_id=vehicle_id)) == 5
    assert [b.status for b in mongo_store.list_bookings(status="pending")] == [BookingStatus.PENDING]


def test_customer_lookup_by_phone_then_email(mongo_store):
    created = mongo_store.create_customer(
        Customer(first_name="Sara", last_name="Alaoui", phone="+212600000001", email="sara@example.com")
    )
    assert mongo_store.find_customer_by_contact("+212600000001")["id"] == created["id"]
    assert mongo_store.find_customer_by_contact("+212699999999", "sara@example.com")["id"] == created["id"]
    assert mongo_store.find_customer_by_contact("+212699999999") is None
    assert mongo_store.get_customer("not-an-id") is None
