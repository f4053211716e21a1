from __future__ import annotations

import asyncio
import logging
from datetime import date, time
from typing import Iterable, List, Literal, Optional

from pydantic import BaseModel

from lodging import config
from lodging.domain.booking_normalization import booking_holds_unit
from lodging.domain.overlap import InvalidStayRange, stays_overlap, validate_stay_range
from lodging.errors import DataAccessError
from lodging.repositories.reservation_repository import ReservationRepository
from lodging.schemas import INACTIVE_BOOKING_STATUSES, Booking, SelectedUnit

logger = logging.getLogger(__name__)


ConflictStatus = Literal["clear", "conflict", "error"]


class ConflictQuery(BaseModel):
    room_type_id: str
    room_number: str
    check_in: date
    check_out: date
    check_in_time: Optional[time] = None
    check_out_time: Optional[time] = None
    exclude_booking_id: Optional[str] = None


class ConflictCheck(BaseModel):
    room_type_id: str
    room_number: str
    status: ConflictStatus
    reason: Optional[str] = None
    conflicting_booking_id: Optional[str] = None
    conflicting_booking_code: Optional[str] = None
    error: Optional[str] = None

    @property
    def has_conflict(self) -> bool:
        return self.status == "conflict"

    @property
    def is_clear(self) -> bool:
        # An error is never clear.
        return self.status == "clear"


def _hhmm(value: Optional[time], default: time) -> str:
    return (value or default).strftime("%H:%M")


def _conflict_reason(query: ConflictQuery, existing: Booking) -> str:
    guest = existing.guest_name or existing.booking_code or existing.id
    if existing.check_out == query.check_in:
        return (
            f"Room {query.room_number} is not vacated yet: {guest} checks out at "
            f"{_hhmm(existing.check_out_time, config.DEFAULT_CHECK_OUT_TIME)} on {existing.check_out}"
        )
    if query.check_out == existing.check_in:
        return (
            f"Room {query.room_number} is booked for the next guest: {guest} checks in at "
            f"{_hhmm(existing.check_in_time, config.DEFAULT_CHECK_IN_TIME)} on {existing.check_in}"
        )
    return (
        f"Room {query.room_number} is booked by {guest} "
        f"from {existing.check_in} to {existing.check_out}"
    )


async def _find_conflict(repo: ReservationRepository, query: ConflictQuery) -> ConflictCheck:
    candidates = await repo.find_active_bookings_for_unit(
        query.room_type_id,
        query.room_number,
        query.check_in,
        query.check_out,
        exclude_booking_id=query.exclude_booking_id,
    )

    for existing in candidates:
        # Re-applied here so a loose repository can never leak these through.
        if existing.status in INACTIVE_BOOKING_STATUSES:
            continue
        if query.exclude_booking_id and existing.id == query.exclude_booking_id:
            continue
        if not booking_holds_unit(existing, query.room_type_id, query.room_number):
            continue

        try:
            overlaps = stays_overlap(
                query.check_in,
                query.check_out,
                existing.check_in,
                existing.check_out,
                a_check_in_time=query.check_in_time,
                a_check_out_time=query.check_out_time,
                b_check_in_time=existing.check_in_time,
                b_check_out_time=existing.check_out_time,
            )
        except InvalidStayRange as exc:
            # A stored row with an inverted range cannot be judged either way.
            raise DataAccessError(
                f"Booking {existing.id} has an invalid stored stay range",
                {"booking_id": existing.id, "check_in": str(exc.check_in), "check_out": str(exc.check_out)},
            ) from exc

        if overlaps:
            return ConflictCheck(
                room_type_id=query.room_type_id,
                room_number=query.room_number,
                status="conflict",
                reason=_conflict_reason(query, existing),
                conflicting_booking_id=existing.id,
                conflicting_booking_code=existing.booking_code or None,
            )

    blocks = await repo.find_unit_blocks(
        query.room_type_id,
        query.room_number,
        query.check_in,
        query.check_out,
    )
    if blocks:
        first = min(blocks, key=lambda b: b.unavailable_date)
        return ConflictCheck(
            room_type_id=query.room_type_id,
            room_number=query.room_number,
            status="conflict",
            reason=f"Room {query.room_number} is blocked on {first.unavailable_date}"
            + (f" ({first.reason})" if first.reason else ""),
        )

    return ConflictCheck(room_type_id=query.room_type_id, room_number=query.room_number, status="clear")


async def check_conflict(
    repo: ReservationRepository,
    query: ConflictQuery,
    timeout: Optional[float] = None,
) -> ConflictCheck:
    """Decide whether ``query`` collides with an active booking of the same unit.

    Read-only and stateless. Data store failures and timeouts come back as
    ``status="error"``, never as "clear". Raises InvalidStayRange for an
    empty or inverted range.
    """

    validate_stay_range(query.check_in, query.check_out)
    limit = config.CONFLICT_CHECK_TIMEOUT_SECONDS if timeout is None else timeout

    try:
        return await asyncio.wait_for(_find_conflict(repo, query), timeout=limit)
    except asyncio.TimeoutError:
        logger.warning(
            "conflict check timed out for %s/%s after %ss",
            query.room_type_id,
            query.room_number,
            limit,
        )
        return ConflictCheck(
            room_type_id=query.room_type_id,
            room_number=query.room_number,
            status="error",
            error=f"Conflict check timed out after {limit}s",
        )
    except DataAccessError as exc:
        logger.warning(
            "conflict check failed for %s/%s: %s",
            query.room_type_id,
            query.room_number,
            exc.message,
        )
        return ConflictCheck(
            room_type_id=query.room_type_id,
            room_number=query.room_number,
            status="error",
            error=exc.message,
        )


async def check_units_conflicts(
    repo: ReservationRepository,
    units: Iterable[SelectedUnit],
    check_in: date,
    check_out: date,
    *,
    check_in_time: Optional[time] = None,
    check_out_time: Optional[time] = None,
    exclude_booking_id: Optional[str] = None,
) -> List[ConflictCheck]:
    """Run the detector for every unit of a multi-room selection."""

    queries = [
        ConflictQuery(
            room_type_id=u.room_type_id,
            room_number=u.room_number,
            check_in=check_in,
            check_out=check_out,
            check_in_time=check_in_time,
            check_out_time=check_out_time,
            exclude_booking_id=exclude_booking_id,
        )
        for u in units
    ]
    return list(await asyncio.gather(*(check_conflict(repo, q) for q in queries)))
