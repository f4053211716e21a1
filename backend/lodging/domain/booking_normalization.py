"""Fold the two stored booking shapes into one.

Older bookings carry a single ``room_id`` / ``allocated_room_number`` pair on
the booking document itself; newer ones own rows in ``booking_rooms``. The
engine only ever sees the multi-room shape.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional

from lodging.schemas import Booking, RoomAllocation, RoomType


def _legacy_price_per_night(doc: Mapping[str, Any], room_type: Optional[RoomType]) -> int:
    if room_type is not None:
        return room_type.price_per_night
    nights = int(doc.get("total_nights") or 0)
    total = int(doc.get("total_price") or 0)
    if nights > 0 and total > 0:
        return total // nights
    return 0


def normalize_booking(
    doc: Mapping[str, Any],
    allocation_docs: Iterable[Mapping[str, Any]] = (),
    room_types: Optional[Mapping[str, RoomType]] = None,
) -> Booking:
    """Build a Booking whose ``allocations`` list is always authoritative."""

    data: Dict[str, Any] = dict(doc)
    if "_id" in data and "id" not in data:
        data["id"] = str(data.pop("_id"))
    data.pop("allocations", None)

    booking = Booking.model_validate(data)

    allocations = [
        RoomAllocation.model_validate({**dict(a), "booking_id": booking.id})
        for a in allocation_docs
    ]

    if not allocations and booking.room_id and booking.allocated_room_number:
        room_type = (room_types or {}).get(booking.room_id)
        allocations = [
            RoomAllocation(
                booking_id=booking.id,
                room_type_id=booking.room_id,
                room_number=booking.allocated_room_number,
                price_per_night=_legacy_price_per_night(data, room_type),
            )
        ]

    booking.allocations = allocations
    return booking


def booking_holds_unit(booking: Booking, room_type_id: str, room_number: str) -> bool:
    return any(
        a.room_type_id == room_type_id and a.room_number == room_number
        for a in booking.allocations
    )
