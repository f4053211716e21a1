"""Per-room-type availability.

Every unit label is run through the conflict detector on its own. Unit counts
per property are in the tens, so a brute-force scan keeps the overlap rules
in exactly one place.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import List, Optional

from lodging.domain.overlap import validate_stay_range
from lodging.errors import DataAccessError, NotFoundError
from lodging.repositories.reservation_repository import ReservationRepository
from lodging.schemas import RoomType, RoomTypeAvailability
from lodging.services.conflict_detector import ConflictQuery, check_conflict

logger = logging.getLogger(__name__)


def _not_computed(room_type: RoomType) -> RoomTypeAvailability:
    units = list(room_type.room_numbers)
    return RoomTypeAvailability(
        room_type_id=room_type.id,
        room_type_name=room_type.name,
        total_units=len(units),
        booked_units=[],
        available_units=units,
        available_count=len(units),
        price_per_night=room_type.price_per_night,
        priority=room_type.priority,
        computed=False,
    )


async def compute_room_type_availability(
    repo: ReservationRepository,
    room_type: RoomType,
    check_in: Optional[date],
    check_out: Optional[date],
    exclude_booking_id: Optional[str] = None,
) -> RoomTypeAvailability:
    # Partial input from an eager caller: nothing to compute yet.
    if check_in is None or check_out is None:
        return _not_computed(room_type)

    validate_stay_range(check_in, check_out)

    units = list(room_type.room_numbers)
    checks = await asyncio.gather(
        *(
            check_conflict(
                repo,
                ConflictQuery(
                    room_type_id=room_type.id,
                    room_number=unit,
                    check_in=check_in,
                    check_out=check_out,
                    exclude_booking_id=exclude_booking_id,
                ),
            )
            for unit in units
        )
    )

    failed = [c for c in checks if c.status == "error"]
    if failed:
        raise DataAccessError(
            f"Availability for {room_type.name} could not be computed",
            {
                "room_type_id": room_type.id,
                "units": [c.room_number for c in failed],
                "reason": failed[0].error,
            },
        )

    booked = [c.room_number for c in checks if c.has_conflict]
    available = [c.room_number for c in checks if c.is_clear]

    if room_type.room_count != len(units):
        logger.debug(
            "room type %s declares %d units but lists %d labels; using the labels",
            room_type.id,
            room_type.room_count,
            len(units),
        )

    return RoomTypeAvailability(
        room_type_id=room_type.id,
        room_type_name=room_type.name,
        total_units=len(units),
        booked_units=booked,
        available_units=available,
        available_count=len(available),
        price_per_night=room_type.price_per_night,
        priority=room_type.priority,
        computed=True,
    )


async def get_room_type_availability(
    repo: ReservationRepository,
    check_in: Optional[date],
    check_out: Optional[date],
    exclude_booking_id: Optional[str] = None,
) -> List[RoomTypeAvailability]:
    """One availability entry per bookable room type."""

    room_types = await repo.find_all_room_types()
    return [
        await compute_room_type_availability(repo, rt, check_in, check_out, exclude_booking_id)
        for rt in room_types
    ]


async def check_room_type_availability(
    repo: ReservationRepository,
    room_type_id: str,
    check_in: Optional[date],
    check_out: Optional[date],
    exclude_booking_id: Optional[str] = None,
) -> RoomTypeAvailability:
    room_type = await repo.get_room_type(room_type_id)
    if room_type is None:
        raise NotFoundError("Room type", room_type_id)
    return await compute_room_type_availability(repo, room_type, check_in, check_out, exclude_booking_id)


async def find_alternative_room_types(
    repo: ReservationRepository,
    check_in: Optional[date],
    check_out: Optional[date],
    exclude_room_type_id: Optional[str] = None,
    exclude_booking_id: Optional[str] = None,
) -> List[RoomTypeAvailability]:
    """Room types that still have capacity, best candidates first.

    Ranked by room type priority, then by number of free units.
    """

    entries = await get_room_type_availability(repo, check_in, check_out, exclude_booking_id)
    candidates = [
        e for e in entries
        if e.room_type_id != exclude_room_type_id and e.available_count > 0
    ]
    candidates.sort(key=lambda e: (-e.priority, -e.available_count, e.room_type_name))
    return candidates
