"""
Persistence boundary for the booking service.

`BookingStore` is everything the service needs from storage. The booking
core never builds queries; the service fetches bookings through a store and
hands them over as plain lists.
"""
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from bson import ObjectId
from bson.decimal128 import Decimal128
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from booking_numbers import DEFAULT_PREFIX, highest_sequence
from database import create_document, get_documents
from errors import DuplicateBookingNumberError
from schemas import Booking, BookingStatus, Customer, Vehicle

logger = logging.getLogger(__name__)

BLOCKING_STATUS_VALUES = [BookingStatus.CONFIRMED.value, BookingStatus.ACTIVE.value]


class BookingStore(ABC):
    # Vehicles
    @abstractmethod
    def list_vehicles(self) -> List[dict]: ...

    @abstractmethod
    def get_vehicle(self, vehicle_id: str) -> Optional[dict]: ...

    @abstractmethod
    def create_vehicle(self, vehicle: Vehicle) -> dict: ...

    @abstractmethod
    def plate_number_exists(self, plate_number: str) -> bool: ...

    @abstractmethod
    def set_vehicle_available(self, vehicle_id: str, available: bool) -> None: ...

    @abstractmethod
    def vehicle_booking_version(self, vehicle_id: str) -> int: ...

    @abstractmethod
    def claim_vehicle_version(self, vehicle_id: str, version: int) -> bool:
        """Bump the vehicle's booking version if it still equals `version`."""

    # Customers
    @abstractmethod
    def list_customers(self) -> List[dict]: ...

    @abstractmethod
    def get_customer(self, customer_id: str) -> Optional[dict]: ...

    @abstractmethod
    def create_customer(self, customer: Customer) -> dict: ...

    @abstractmethod
    def find_customer_by_contact(self, phone: str, email: Optional[str] = None) -> Optional[dict]: ...

    @abstractmethod
    def record_booking_stats(self, customer_id: str, vehicle_id: str, amount: Decimal, at: datetime) -> None: ...

    # Bookings
    @abstractmethod
    def get_booking(self, booking_id: str) -> Optional[Booking]: ...

    @abstractmethod
    def list_bookings(
        self,
        status: Optional[BookingStatus] = None,
        vehicle_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> List[Booking]: ...

    @abstractmethod
    def find_active_bookings_for_vehicle(self, vehicle_id: str) -> List[Booking]:
        """Confirmed and active bookings of one vehicle."""

    @abstractmethod
    def insert_booking(self, booking: Booking) -> Booking:
        """Persist a new booking; DuplicateBookingNumberError if the number is taken."""

    @abstractmethod
    def delete_booking(self, booking_id: str, expected_status: Optional[BookingStatus] = None) -> bool:
        """Remove a booking, only while it is in `expected_status` when one is given."""

    @abstractmethod
    def update_booking_if_status(self, booking: Booking, expected_status: BookingStatus) -> bool:
        """Overwrite the stored booking only while it is still in `expected_status`."""

    @abstractmethod
    def next_booking_sequence(self) -> int: ...

    @abstractmethod
    def booking_number_exists(self, booking_number: str) -> bool: ...


def to_mongo(value):
    if isinstance(value, dict):
        return {k: to_mongo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_mongo(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return Decimal128(str(value))
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return value


def from_mongo(doc: dict) -> dict:
    out = {}
    for k, v in doc.items():
        if k == "_id":
            out["id"] = str(v)
        elif isinstance(v, Decimal128):
            out[k] = v.to_decimal()
        elif isinstance(v, ObjectId):
            out[k] = str(v)
        else:
            out[k] = v
    return out


def _oid(value: str) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


class MongoBookingStore(BookingStore):
    def __init__(self, database, booking_number_prefix: str = DEFAULT_PREFIX):
        self.db = database
        self.booking_number_prefix = booking_number_prefix
        self._counter_seeded = False

    def ensure_indexes(self):
        self.db["booking"].create_index("booking_number", unique=True)
        self.db["booking"].create_index([("vehicle_id", ASCENDING), ("status", ASCENDING)])
        self.db["vehicle"].create_index("plate_number", unique=True)
        self.db["customer"].create_index("phone")

    # Vehicles
    def list_vehicles(self):
        return [from_mongo(v) for v in get_documents("vehicle", database=self.db)]

    def get_vehicle(self, vehicle_id):
        oid = _oid(vehicle_id)
        doc = self.db["vehicle"].find_one({"_id": oid}) if oid else None
        return from_mongo(doc) if doc else None

    def create_vehicle(self, vehicle):
        vehicle_id = create_document("vehicle", to_mongo(vehicle.model_dump()), database=self.db)
        return self.get_vehicle(vehicle_id)

    def plate_number_exists(self, plate_number):
        return self.db["vehicle"].count_documents({"plate_number": plate_number}, limit=1) > 0

    def set_vehicle_available(self, vehicle_id, available):
        self.db["vehicle"].update_one(
            {"_id": _oid(vehicle_id)},
            {"$set": {"available": available, "updated_at": datetime.now(timezone.utc)}},
        )

    def vehicle_booking_version(self, vehicle_id):
        doc = self.db["vehicle"].find_one({"_id": _oid(vehicle_id)}, {"booking_version": 1})
        return int((doc or {}).get("booking_version") or 0)

    def claim_vehicle_version(self, vehicle_id, version):
        # Vehicles written before the version field existed match as 0
        current = version if version else {"$in": [0, None]}
        result = self.db["vehicle"].update_one(
            {"_id": _oid(vehicle_id), "booking_version": current},
            {"$set": {"booking_version": version + 1}},
        )
        return result.matched_count == 1

    # Customers
    def list_customers(self):
        return [from_mongo(c) for c in get_documents("customer", database=self.db)]

    def get_customer(self, customer_id):
        oid = _oid(customer_id)
        doc = self.db["customer"].find_one({"_id": oid}) if oid else None
        return from_mongo(doc) if doc else None

    def create_customer(self, customer):
        customer_id = create_document("customer", to_mongo(customer.model_dump()), database=self.db)
        return self.get_customer(customer_id)

    def find_customer_by_contact(self, phone, email=None):
        doc = self.db["customer"].find_one({"phone": phone})
        if not doc and email:
            doc = self.db["customer"].find_one({"email": email})
        return from_mongo(doc) if doc else None

    def record_booking_stats(self, customer_id, vehicle_id, amount, at):
        self.db["customer"].update_one(
            {"_id": _oid(customer_id)},
            {
                "$inc": {"total_bookings": 1, "total_spent": Decimal128(str(amount))},
                "$set": {"last_booking_at": at},
            },
        )
        self.db["vehicle"].update_one({"_id": _oid(vehicle_id)}, {"$inc": {"bookings": 1}})

    # Bookings
    def _booking_document(self, booking):
        return to_mongo(booking.model_dump(exclude={"id"}))

    def get_booking(self, booking_id):
        oid = _oid(booking_id)
        doc = self.db["booking"].find_one({"_id": oid}) if oid else None
        return Booking.model_validate(from_mongo(doc)) if doc else None

    def list_bookings(self, status=None, vehicle_id=None, customer_id=None):
        query = {}
        if status is not None:
            query["status"] = BookingStatus(status).value
        if vehicle_id:
            query["vehicle_id"] = vehicle_id
        if customer_id:
            query["customer_id"] = customer_id
        cursor = self.db["booking"].find(query).sort("created_at", -1)
        return [Booking.model_validate(from_mongo(d)) for d in cursor]

    def find_active_bookings_for_vehicle(self, vehicle_id):
        docs = get_documents("booking", {"vehicle_id": vehicle_id, "status": {"$in": BLOCKING_STATUS_VALUES}}, database=self.db)
        return [Booking.model_validate(from_mongo(d)) for d in docs]

    def insert_booking(self, booking):
        try:
            booking_id = create_document("booking", self._booking_document(booking), database=self.db)
        except DuplicateKeyError:
            logger.warning("Booking number %s already taken", booking.booking_number)
            raise DuplicateBookingNumberError(f"Booking number {booking.booking_number} already exists")
        return booking.model_copy(update={"id": booking_id})

    def delete_booking(self, booking_id, expected_status=None):
        query = {"_id": _oid(booking_id)}
        if expected_status is not None:
            query["status"] = BookingStatus(expected_status).value
        return self.db["booking"].delete_one(query).deleted_count == 1

    def update_booking_if_status(self, booking, expected_status):
        fields = self._booking_document(booking)
        fields["updated_at"] = datetime.now(timezone.utc)
        result = self.db["booking"].update_one(
            {"_id": _oid(booking.id), "status": BookingStatus(expected_status).value},
            {"$set": fields},
        )
        return result.matched_count == 1

    def next_booking_sequence(self):
        if not self._counter_seeded:
            # Start above numbers issued before the counter existed
            numbers = [d.get("booking_number") for d in self.db["booking"].find({}, {"booking_number": 1})]
            self.db["counter"].update_one(
                {"_id": "booking_number"},
                {"$max": {"seq": highest_sequence(numbers, self.booking_number_prefix)}},
                upsert=True,
            )
            self._counter_seeded = True
        doc = self.db["counter"].find_one_and_update(
            {"_id": "booking_number"},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(doc["seq"])

    def booking_number_exists(self, booking_number):
        return self.db["booking"].count_documents({"booking_number": booking_number}, limit=1) > 0
