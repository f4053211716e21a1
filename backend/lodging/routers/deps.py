from __future__ import annotations

from typing import List

from pydantic import BaseModel

from lodging.db import get_db
from lodging.errors import AppError, DataAccessError, ErrorCode
from lodging.repositories.reservation_repository import MongoReservationRepository, ReservationRepository
from lodging.schemas import ValidationIssue
from lodging.services.booking_editor import StepResult


class UnitRef(BaseModel):
    room_type_id: str
    room_number: str


async def get_repository() -> ReservationRepository:
    """Request-scoped repository; tests swap it via dependency_overrides."""
    db = await get_db()
    return MongoReservationRepository(db)


def validation_failed(issues: List[ValidationIssue], message: str = "Request is not valid") -> AppError:
    return AppError(
        422,
        ErrorCode.VALIDATION_ERROR.value,
        message,
        {"errors": [i.model_dump() for i in issues]},
    )


def raise_for_step(result: StepResult) -> None:
    if result.data_access_error:
        raise DataAccessError(result.data_access_error)
    if result.issues:
        raise validation_failed(result.issues)
