from __future__ import annotations

from datetime import date, time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from lodging.domain.overlap import validate_stay_range
from lodging.errors import ErrorCode
from lodging.repositories.reservation_repository import ReservationRepository
from lodging.routers.deps import UnitRef, get_repository
from lodging.schemas import SelectedUnit
from lodging.services.conflict_detector import check_units_conflicts
from lodging.services.room_availability import (
    check_room_type_availability,
    find_alternative_room_types,
    get_room_type_availability,
)

router = APIRouter(prefix="/api/availability", tags=["availability"])


class ConflictCheckIn(BaseModel):
    units: List[UnitRef] = Field(min_length=1)
    check_in: date
    check_out: date
    check_in_time: Optional[time] = None
    check_out_time: Optional[time] = None
    exclude_booking_id: Optional[str] = None


@router.get("")
async def list_availability(
    check_in: Optional[date] = Query(None),
    check_out: Optional[date] = Query(None),
    exclude_booking_id: Optional[str] = Query(None),
    repo: ReservationRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Free and booked units of every bookable room type.

    Without both dates the entries are returned uncomputed (every unit listed
    as free, ``computed`` false).
    """

    items = await get_room_type_availability(repo, check_in, check_out, exclude_booking_id)
    return {"items": [i.model_dump() for i in items]}


@router.get("/{room_type_id}")
async def room_type_availability(
    room_type_id: str,
    check_in: date = Query(...),
    check_out: date = Query(...),
    exclude_booking_id: Optional[str] = Query(None),
    repo: ReservationRepository = Depends(get_repository),
) -> Dict[str, Any]:
    availability = await check_room_type_availability(
        repo, room_type_id, check_in, check_out, exclude_booking_id=exclude_booking_id
    )

    sold_out = availability.computed and availability.available_count == 0
    alternatives = []
    if sold_out:
        alternatives = await find_alternative_room_types(
            repo,
            check_in,
            check_out,
            exclude_room_type_id=room_type_id,
            exclude_booking_id=exclude_booking_id,
        )

    return {
        "status": ErrorCode.NO_AVAILABILITY.value if sold_out else "available",
        "availability": availability.model_dump(),
        "alternatives": [a.model_dump() for a in alternatives],
    }


@router.post("/conflicts")
async def check_conflicts(
    payload: ConflictCheckIn,
    repo: ReservationRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Per-unit conflict verdicts.

    A unit whose check failed comes back with ``status="error"``; the
    top-level ``status`` is "error" whenever any unit could not be checked.
    """

    validate_stay_range(payload.check_in, payload.check_out)
    checks = await check_units_conflicts(
        repo,
        [SelectedUnit(room_type_id=u.room_type_id, room_number=u.room_number, price_per_night=0) for u in payload.units],
        payload.check_in,
        payload.check_out,
        check_in_time=payload.check_in_time,
        check_out_time=payload.check_out_time,
        exclude_booking_id=payload.exclude_booking_id,
    )

    if any(c.status == "error" for c in checks):
        status = "error"
    elif any(c.has_conflict for c in checks):
        status = "conflict"
    else:
        status = "clear"
    return {"status": status, "items": [c.model_dump() for c in checks]}
