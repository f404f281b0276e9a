import os


class Config:
    # Database
    DATABASE_URL = os.getenv("DATABASE_URL")
    DATABASE_NAME = os.getenv("DATABASE_NAME")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    PORT = int(os.getenv("PORT", 8000))

    # Booking numbers, e.g. BK003
    BOOKING_NUMBER_PREFIX = os.getenv("BOOKING_NUMBER_PREFIX", "BK")
    BOOKING_NUMBER_WIDTH = int(os.getenv("BOOKING_NUMBER_WIDTH", "3"))
    BOOKING_NUMBER_MAX_ATTEMPTS = int(os.getenv("BOOKING_NUMBER_MAX_ATTEMPTS", "999999"))

    # Shortest rental an admin may enter
    ADMIN_MIN_RENTAL_MINUTES = int(os.getenv("ADMIN_MIN_RENTAL_MINUTES", "15"))

    # Optimistic vehicle lock retries before giving up with 503
    AVAILABILITY_COMMIT_RETRIES = int(os.getenv("AVAILABILITY_COMMIT_RETRIES", "5"))

    CALENDAR_WINDOW_DAYS = int(os.getenv("CALENDAR_WINDOW_DAYS", "90"))
