from __future__ import annotations

import logging
from typing import get_args

from lodging.errors import AppError, ErrorCode, NotFoundError
from lodging.repositories.reservation_repository import ReservationRepository
from lodging.schemas import Booking, BookingStatus

logger = logging.getLogger(__name__)

BOOKING_STATUSES: frozenset[str] = frozenset(get_args(BookingStatus))


async def set_booking_status(repo: ReservationRepository, booking_id: str, status: str) -> Booking:
    if status not in BOOKING_STATUSES:
        raise AppError(
            422,
            ErrorCode.VALIDATION_ERROR.value,
            f"Unknown booking status: {status}",
            {"field": "status", "allowed": sorted(BOOKING_STATUSES)},
        )

    updated = await repo.update_booking_status(booking_id, status)
    if updated is None:
        raise NotFoundError("Booking", booking_id)

    logger.info("booking %s status -> %s", updated.booking_code or booking_id, status)
    return updated


async def cancel_booking(repo: ReservationRepository, booking_id: str) -> Booking:
    """Logical delete: the booking stops holding its units."""
    return await set_booking_status(repo, booking_id, "cancelled")


async def reject_booking(repo: ReservationRepository, booking_id: str) -> Booking:
    return await set_booking_status(repo, booking_id, "rejected")


async def delete_booking(repo: ReservationRepository, booking_id: str) -> None:
    """Hard delete by staff action; allocations go with the booking."""

    deleted = await repo.delete_booking(booking_id)
    if not deleted:
        raise NotFoundError("Booking", booking_id)
    logger.info("booking %s deleted", booking_id)
