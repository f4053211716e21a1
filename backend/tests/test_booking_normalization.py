from __future__ import annotations

from datetime import date

from lodging.domain.booking_normalization import booking_holds_unit, normalize_booking
from lodging.schemas import RoomType


DELUXE = RoomType(id="rt_deluxe", name="Deluxe", price_per_night=200_000, room_numbers=["201", "202"])


def test_legacy_single_room_booking_becomes_one_allocation() -> None:
    doc = {
        "_id": "bk_legacy",
        "check_in": "2025-06-01",
        "check_out": "2025-06-03",
        "room_id": "rt_deluxe",
        "allocated_room_number": "202",
        "status": "confirmed",
        "total_price": 380_000,
        "total_nights": 2,
    }

    booking = normalize_booking(doc, [], {"rt_deluxe": DELUXE})

    assert booking.id == "bk_legacy"
    assert booking.check_in == date(2025, 6, 1)
    assert len(booking.allocations) == 1
    alloc = booking.allocations[0]
    assert (alloc.room_type_id, alloc.room_number) == ("rt_deluxe", "202")
    assert alloc.price_per_night == 200_000
    assert booking_holds_unit(booking, "rt_deluxe", "202")
    assert not booking_holds_unit(booking, "rt_deluxe", "201")


def test_legacy_rate_falls_back_to_recorded_total_without_room_type() -> None:
    doc = {
        "_id": "bk_legacy",
        "check_in": "2025-06-01",
        "check_out": "2025-06-03",
        "room_id": "rt_gone",
        "allocated_room_number": "9",
        "total_price": 380_000,
        "total_nights": 2,
    }

    booking = normalize_booking(doc)

    assert booking.allocations[0].price_per_night == 190_000


def test_allocation_rows_win_over_legacy_fields() -> None:
    doc = {
        "_id": "bk_multi",
        "check_in": "2025-06-01",
        "check_out": "2025-06-03",
        "room_id": "rt_deluxe",
        "allocated_room_number": "201",
    }
    rows = [
        {"booking_id": "bk_multi", "room_type_id": "rt_deluxe", "room_number": "201", "price_per_night": 180_000},
        {"booking_id": "bk_multi", "room_type_id": "rt_deluxe", "room_number": "202", "price_per_night": 180_000},
    ]

    booking = normalize_booking(doc, rows, {"rt_deluxe": DELUXE})

    assert [a.room_number for a in booking.allocations] == ["201", "202"]
    assert all(a.booking_id == "bk_multi" for a in booking.allocations)


def test_booking_without_any_unit_has_no_allocations() -> None:
    booking = normalize_booking({"_id": "bk_empty", "check_in": "2025-06-01", "check_out": "2025-06-02"})
    assert booking.allocations == []
