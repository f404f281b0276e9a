import pytest

from booking_numbers import (
    BookingNumberAllocator,
    allocate_booking_number,
    format_booking_number,
    highest_sequence,
    next_booking_number,
    parse_booking_number,
)
from errors import CapacityExhaustedError


def test_format_and_parse():
    assert format_booking_number(3) == "BK003"
    assert format_booking_number(1234) == "BK1234"
    assert parse_booking_number("BK003") == 3
    assert parse_booking_number("BK1234") == 1234
    assert parse_booking_number("BK250101ABC123") is None
    assert parse_booking_number("XY003") is None
    assert parse_booking_number(None) is None


def test_allocate_first_number():
    assert allocate_booking_number([]) == "BK001"


def test_allocate_after_highest_existing():
    assert allocate_booking_number(["BK001", "BK007", "BK003"]) == "BK008"


def test_allocate_ignores_legacy_numbers():
    assert highest_sequence(["BK250101ABC123", "BK002"]) == 2
    assert allocate_booking_number(["BK250101ABC123", "BK002"]) == "BK003"


def test_allocate_with_wider_padding():
    assert allocate_booking_number(["BK000041"], width=6) == "BK000042"


def test_allocate_gives_up_after_bound():
    class AlwaysTaken(set):
        def __contains__(self, item):
            return True

    with pytest.raises(CapacityExhaustedError):
        allocate_booking_number(AlwaysTaken(), max_attempts=50)


def test_next_booking_number():
    assert next_booking_number() == "BK001"
    assert next_booking_number("BK041") == "BK042"
    assert next_booking_number("BK999") == "BK1000"


def test_allocator_skips_numbers_already_in_use():
    counter = iter(range(1, 100))
    in_use = {"BK001", "BK002"}
    allocator = BookingNumberAllocator(next_sequence=lambda: next(counter), exists=in_use.__contains__)
    assert allocator.allocate() == "BK003"


def test_allocator_raises_when_exhausted():
    counter = iter(range(1, 100))
    allocator = BookingNumberAllocator(
        next_sequence=lambda: next(counter), exists=lambda n: True, max_attempts=10
    )
    with pytest.raises(CapacityExhaustedError):
        allocator.allocate()


def test_ten_thousand_allocations_are_unique():
    state = {"seq": 0}
    issued = set()

    def next_sequence():
        state["seq"] += 1
        return state["seq"]

    allocator = BookingNumberAllocator(next_sequence=next_sequence, exists=issued.__contains__)
    numbers = []
    for _ in range(10_000):
        number = allocator.allocate()
        issued.add(number)
        numbers.append(number)

    assert len(set(numbers)) == 10_000
    assert numbers[0] == "BK001"
    assert numbers[-1] == "BK10000"


def test_numbers_are_not_reused_after_deletion():
    state = {"seq": 0}
    issued = set()

    def next_sequence():
        state["seq"] += 1
        return state["seq"]

    allocator = BookingNumberAllocator(next_sequence=next_sequence, exists=issued.__contains__)
    first = allocator.allocate()
    issued.add(first)
    issued.discard(first)
    assert allocator.allocate() != first
