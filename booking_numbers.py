"""
Booking numbers: short sequential identifiers such as BK003.

Numbers are never handed out twice, even after the booking holding one is
deleted, so the sequence only moves forward.
"""
import re
from typing import Callable, Iterable, Optional

from errors import CapacityExhaustedError

DEFAULT_PREFIX = "BK"
DEFAULT_WIDTH = 3
MAX_ATTEMPTS = 999_999


def format_booking_number(sequence: int, prefix: str = DEFAULT_PREFIX, width: int = DEFAULT_WIDTH) -> str:
    return f"{prefix}{sequence:0{width}d}"


def parse_booking_number(number: Optional[str], prefix: str = DEFAULT_PREFIX) -> Optional[int]:
    """Numeric suffix of a booking number, or None if it is not one of ours."""
    if not number:
        return None
    m = re.fullmatch(re.escape(prefix) + r"(\d+)", number.strip())
    return int(m.group(1)) if m else None


def highest_sequence(numbers: Iterable[str], prefix: str = DEFAULT_PREFIX) -> int:
    parsed = (parse_booking_number(n, prefix) for n in numbers)
    return max((n for n in parsed if n is not None), default=0)


def allocate_booking_number(
    existing_numbers: Iterable[str],
    prefix: str = DEFAULT_PREFIX,
    width: int = DEFAULT_WIDTH,
    max_attempts: int = MAX_ATTEMPTS,
) -> str:
    taken = existing_numbers if isinstance(existing_numbers, (set, frozenset)) else set(existing_numbers)
    sequence = highest_sequence(taken, prefix)
    for _ in range(max_attempts):
        sequence += 1
        candidate = format_booking_number(sequence, prefix, width)
        if candidate not in taken:
            return candidate
    raise CapacityExhaustedError()


def next_booking_number(
    last_used: Optional[str] = None,
    prefix: str = DEFAULT_PREFIX,
    width: int = DEFAULT_WIDTH,
) -> str:
    return format_booking_number((parse_booking_number(last_used, prefix) or 0) + 1, prefix, width)


class BookingNumberAllocator:
    """Allocates numbers from an atomic counter.

    `next_sequence` must return a fresh integer on every call (a database
    `$inc`, for instance); `exists` guards against numbers written before
    the counter was introduced.
    """

    def __init__(
        self,
        next_sequence: Callable[[], int],
        exists: Callable[[str], bool],
        prefix: str = DEFAULT_PREFIX,
        width: int = DEFAULT_WIDTH,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self.next_sequence = next_sequence
        self.exists = exists
        self.prefix = prefix
        self.width = width
        self.max_attempts = max_attempts

    def allocate(self) -> str:
        for _ in range(self.max_attempts):
            candidate = format_booking_number(self.next_sequence(), self.prefix, self.width)
            if not self.exists(candidate):
                return candidate
        raise CapacityExhaustedError()
