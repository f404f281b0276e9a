"""
Database Schemas

Vehicle Rental back office schemas using Pydantic models.
Each Pydantic model maps to a MongoDB collection using the lowercase class name.
- Vehicle -> "vehicle"
- Customer -> "customer"
- Booking -> "booking"
"""

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingSource(str, Enum):
    WEBSITE = "website"
    ADMIN = "admin"


class Vehicle(BaseModel):
    """
    Vehicles available for rent
    Collection: "vehicle"
    """
    name: str = Field(..., description="Display name, e.g., Clio 5")
    brand: str = Field(..., description="Manufacturer, e.g., Renault")
    model: str = Field(..., description="Model, e.g., Clio")
    year: int = Field(..., ge=1900, le=2100, description="Year of manufacture")
    plate_number: str = Field(..., description="Unique registration number")
    daily_rate: Decimal = Field(..., ge=0, decimal_places=2, description="Daily rental rate")
    location: Optional[str] = Field(None, description="Where the vehicle is parked")
    available: bool = Field(True, description="Cached availability flag, maintained by booking transitions")
    bookings: int = Field(0, ge=0, description="Number of confirmed bookings")
    booking_version: int = Field(0, ge=0, description="Bumped on every change to the vehicle's blocking bookings")


class Customer(BaseModel):
    """
    Renters
    Collection: "customer"
    """
    first_name: str
    last_name: str
    phone: str = Field(..., description="Primary contact, used to match returning website customers")
    email: Optional[str] = None
    total_bookings: int = Field(0, ge=0)
    total_spent: Decimal = Field(Decimal("0"), ge=0)
    last_booking_at: Optional[datetime] = None


class Booking(BaseModel):
    """
    Bookings of one vehicle by one customer
    Collection: "booking"
    """
    id: Optional[str] = Field(None, description="Persistent identifier, set by the store")
    booking_number: str = Field(..., description="Human readable number, e.g., BK003")
    vehicle_id: str
    customer_id: str

    pickup_date: date
    return_date: date
    pickup_time: time
    return_time: time
    pickup_location: Optional[str] = None
    return_location: Optional[str] = None

    daily_rate: Decimal = Field(..., ge=0, decimal_places=2, description="Vehicle rate frozen at booking time")
    charged_days: int = Field(..., ge=1)
    total_amount: Decimal = Field(..., ge=0)
    late_return_fee: Decimal = Field(Decimal("0"), ge=0)

    status: BookingStatus = BookingStatus.PENDING
    source: BookingSource = BookingSource.WEBSITE

    created_by: Optional[str] = None
    confirmed_by: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
