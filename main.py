import logging
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from bson import ObjectId
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import Config
from database import db
from errors import (
    BookingConflictError,
    BookingError,
    CapacityExhaustedError,
    InvalidIntervalError,
    InvalidTransitionError,
    NotFoundError,
    StillConflictingError,
    VehicleBusyError,
)
from repository import MongoBookingStore
from schemas import Booking, BookingSource, BookingStatus, Customer, Vehicle
from service import BookingService
from workflow import BookingEvent

logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Utilities to serialize MongoDB documents and bookings
def serialize_value(v):
    if isinstance(v, ObjectId):
        return str(v)
    if isinstance(v, datetime):
        return v.astimezone(timezone.utc).isoformat() if v.tzinfo else v.isoformat()
    if isinstance(v, (date, time)):
        return v.isoformat()
    if isinstance(v, Decimal):
        return str(v)
    if isinstance(v, Enum):
        return v.value
    return v


def serialize_doc(doc: dict):
    return {k: serialize_value(v) for k, v in doc.items()}


def serialize_booking(booking: Booking):
    return booking.model_dump(mode="json")


def conflict_summary(booking: Booking) -> str:
    return f"{booking.booking_number} ({booking.pickup_date} {booking.pickup_time:%H:%M} to {booking.return_date} {booking.return_time:%H:%M})"


app = FastAPI(title="Vehicle Rental Back Office API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    InvalidIntervalError: 400,
    InvalidTransitionError: 400,
    NotFoundError: 404,
    BookingConflictError: 409,
    StillConflictingError: 409,
    CapacityExhaustedError: 500,
    VehicleBusyError: 503,
}


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    status_code = next((ERROR_STATUS[c] for c in type(exc).__mro__ if c in ERROR_STATUS), 500)
    content = {"detail": exc.message}

    conflicts = getattr(exc, "conflicts", None)
    if conflicts:
        content["detail"] = f"{exc.message}. Conflicting bookings: " + ", ".join(conflict_summary(b) for b in conflicts)
        content["conflicting_bookings"] = [serialize_booking(b) for b in conflicts]

    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=content)


_service: Optional[BookingService] = None


def get_service() -> BookingService:
    global _service
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    if _service is None:
        store = MongoBookingStore(db, booking_number_prefix=Config.BOOKING_NUMBER_PREFIX)
        store.ensure_indexes()
        _service = BookingService(store)
    return _service


def require_object_id(value: str, name: str):
    if not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail=f"Invalid {name}")


@app.get("/")
def read_root():
    return {"message": "Vehicle Rental Backend is running"}


# Vehicles Endpoints
@app.get("/api/vehicles")
def list_vehicles(service: BookingService = Depends(get_service)):
    return [serialize_doc(v) for v in service.store.list_vehicles()]


class CreateVehicleRequest(BaseModel):
    name: str
    brand: str
    model: str
    year: int
    plate_number: str
    daily_rate: Decimal = Field(..., ge=0, decimal_places=2)
    location: Optional[str] = None


@app.post("/api/vehicles", status_code=201)
def add_vehicle(payload: CreateVehicleRequest, service: BookingService = Depends(get_service)):
    # Ensure unique plate number
    if service.store.plate_number_exists(payload.plate_number):
        raise HTTPException(status_code=400, detail="Plate number already exists")

    vehicle = Vehicle(**payload.model_dump(), available=True)
    return serialize_doc(service.store.create_vehicle(vehicle))


@app.get("/api/vehicles/{vehicle_id}")
def get_vehicle(vehicle_id: str, service: BookingService = Depends(get_service)):
    require_object_id(vehicle_id, "vehicle_id")
    return serialize_doc(service.require_vehicle(vehicle_id))


# Customers Endpoints
@app.get("/api/customers")
def list_customers(service: BookingService = Depends(get_service)):
    return [serialize_doc(c) for c in service.store.list_customers()]


class CreateCustomerRequest(BaseModel):
    first_name: str
    last_name: str
    phone: str
    email: Optional[str] = None


@app.post("/api/customers", status_code=201)
def add_customer(payload: CreateCustomerRequest, service: BookingService = Depends(get_service)):
    if service.store.find_customer_by_contact(payload.phone):
        raise HTTPException(status_code=400, detail="A customer with this phone number already exists")
    return serialize_doc(service.store.create_customer(Customer(**payload.model_dump())))


@app.get("/api/customers/{customer_id}")
def get_customer(customer_id: str, service: BookingService = Depends(get_service)):
    require_object_id(customer_id, "customer_id")
    return serialize_doc(service.require_customer(customer_id))


# Bookings Endpoints
class RentalWindow(BaseModel):
    pickup_date: date
    return_date: date
    pickup_time: time
    return_time: time
    pickup_location: Optional[str] = None
    return_location: Optional[str] = None


class WebsiteBookingRequest(RentalWindow):
    vehicle_id: str
    first_name: str
    last_name: str
    phone: str
    email: Optional[str] = None


class AdminBookingRequest(RentalWindow):
    vehicle_id: str
    customer_id: str
    admin_id: Optional[str] = None


class TransitionRequest(BaseModel):
    admin_id: Optional[str] = None
    cancellation_reason: Optional[str] = None


@app.get("/api/bookings")
def list_bookings(
    status: Optional[BookingStatus] = None,
    vehicle_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    service: BookingService = Depends(get_service),
):
    bookings = service.list_bookings(status=status, vehicle_id=vehicle_id, customer_id=customer_id)
    return [serialize_booking(b) for b in bookings]


@app.get("/api/bookings/availability/{vehicle_id}")
def check_vehicle_availability(
    vehicle_id: str,
    pickup_date: date,
    return_date: date,
    pickup_time: time,
    return_time: time,
    service: BookingService = Depends(get_service),
):
    require_object_id(vehicle_id, "vehicle_id")
    preview = service.preview(vehicle_id, pickup_date, return_date, pickup_time, return_time)
    preview["conflicting_bookings"] = [serialize_booking(b) for b in preview["conflicting_bookings"]]
    preview["pricing"] = serialize_doc(preview["pricing"])
    return preview


@app.get("/api/bookings/calendar/{vehicle_id}")
def get_vehicle_calendar(
    vehicle_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    service: BookingService = Depends(get_service),
):
    require_object_id(vehicle_id, "vehicle_id")
    calendar = service.calendar(vehicle_id, start_date, end_date)
    return {
        "vehicle_id": vehicle_id,
        "available": calendar.available_now,
        "current_booking": serialize_booking(calendar.current_booking) if calendar.current_booking else None,
        "upcoming_booking": serialize_booking(calendar.upcoming_booking) if calendar.upcoming_booking else None,
        "next_available_date": serialize_value(calendar.next_available_date),
        "next_available_time": calendar.next_available_time.strftime("%H:%M") if calendar.next_available_time else None,
        "blocked_dates": [d.isoformat() for d in calendar.blocked_dates],
        "booked_periods": [serialize_booking(b) for b in calendar.booked_periods],
    }


@app.get("/api/bookings/{booking_id}")
def get_booking(booking_id: str, service: BookingService = Depends(get_service)):
    require_object_id(booking_id, "booking_id")
    return serialize_booking(service.get_booking(booking_id))


@app.post("/api/bookings/website", status_code=201)
def create_website_booking(payload: WebsiteBookingRequest, service: BookingService = Depends(get_service)):
    require_object_id(payload.vehicle_id, "vehicle_id")
    result = service.create_website_booking(**payload.model_dump())
    booking = result.booking
    return {
        "message": "Booking request submitted successfully. We will contact you soon to confirm.",
        "booking": serialize_booking(booking),
    }


@app.post("/api/bookings", status_code=201)
def create_admin_booking(payload: AdminBookingRequest, service: BookingService = Depends(get_service)):
    require_object_id(payload.vehicle_id, "vehicle_id")
    require_object_id(payload.customer_id, "customer_id")
    fields = payload.model_dump(exclude={"admin_id"})
    result = service.create_booking(source=BookingSource.ADMIN, actor=payload.admin_id, **fields)
    return {
        "message": "Booking created successfully",
        "booking": serialize_booking(result.booking),
    }


class UpdateBookingRequest(BaseModel):
    pickup_date: Optional[date] = None
    return_date: Optional[date] = None
    pickup_time: Optional[time] = None
    return_time: Optional[time] = None
    pickup_location: Optional[str] = None
    return_location: Optional[str] = None


@app.put("/api/bookings/{booking_id}")
def update_booking(booking_id: str, payload: UpdateBookingRequest, service: BookingService = Depends(get_service)):
    require_object_id(booking_id, "booking_id")
    booking = service.update_booking(booking_id, **payload.model_dump())
    return {"message": "Booking updated successfully", "booking": serialize_booking(booking)}


@app.delete("/api/bookings/{booking_id}")
def delete_booking(booking_id: str, service: BookingService = Depends(get_service)):
    require_object_id(booking_id, "booking_id")
    service.delete_booking(booking_id)
    return {"message": "Booking deleted successfully"}


def run_transition(booking_id: str, event: BookingEvent, payload: Optional[TransitionRequest], service: BookingService):
    require_object_id(booking_id, "booking_id")
    payload = payload or TransitionRequest()
    return service.transition(booking_id, event, actor=payload.admin_id, reason=payload.cancellation_reason)


@app.put("/api/bookings/{booking_id}/confirm")
def confirm_booking(booking_id: str, payload: Optional[TransitionRequest] = None, service: BookingService = Depends(get_service)):
    result = run_transition(booking_id, BookingEvent.CONFIRM, payload, service)
    return {"message": "Booking confirmed successfully", "booking": serialize_booking(result.booking)}


@app.put("/api/bookings/{booking_id}/pickup")
def pickup_vehicle(booking_id: str, payload: Optional[TransitionRequest] = None, service: BookingService = Depends(get_service)):
    result = run_transition(booking_id, BookingEvent.PICKUP, payload, service)
    return {"message": "Booking marked as active (vehicle picked up)", "booking": serialize_booking(result.booking)}


@app.put("/api/bookings/{booking_id}/return")
def return_vehicle(booking_id: str, payload: Optional[TransitionRequest] = None, service: BookingService = Depends(get_service)):
    result = run_transition(booking_id, BookingEvent.RETURN, payload, service)
    late = result.late_return
    return {
        "message": "Booking completed successfully with late return fee applied" if late else "Booking completed successfully",
        "booking": serialize_booking(result.booking),
        "late_return": {
            "was_late": True,
            "original_charged_days": late.scheduled_days,
            "final_charged_days": late.settled_days,
            "late_return_fee": str(late.fee),
            "original_amount": str(late.original_amount),
            "final_amount": str(late.final_amount),
        } if late else {"was_late": False},
    }


@app.put("/api/bookings/{booking_id}/cancel")
def cancel_booking(booking_id: str, payload: Optional[TransitionRequest] = None, service: BookingService = Depends(get_service)):
    result = run_transition(booking_id, BookingEvent.CANCEL, payload, service)
    return {"message": "Booking cancelled successfully", "booking": serialize_booking(result.booking)}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }

    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = db.name if hasattr(db, "name") else "✅ Connected"
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"

    # Check environment variables
    response["database_url"] = "✅ Set" if Config.DATABASE_URL else "❌ Not Set"
    response["database_name"] = "✅ Set" if Config.DATABASE_NAME else "❌ Not Set"

    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Config.PORT)
