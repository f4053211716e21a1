from __future__ import annotations

from datetime import date, time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, EmailStr, Field

from lodging.errors import AppError, DataAccessError, ErrorCode, NotFoundError
from lodging.repositories.reservation_repository import ReservationRepository
from lodging.routers.deps import UnitRef, get_repository, raise_for_step
from lodging.schemas import (
    AddOnSelection,
    BookingSource,
    BookingStatus,
    CustomPriceOverride,
    PaymentStatus,
)
from lodging.services import booking_lifecycle
from lodging.services.booking_editor import BookingEditor, EditSession, SubmitResult


router = APIRouter(prefix="/api/bookings", tags=["bookings"])


class BookingIn(BaseModel):
    rooms: List[UnitRef] = Field(default_factory=list)
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    check_in_time: Optional[time] = None
    check_out_time: Optional[time] = None

    guest_name: str = ""
    guest_email: Optional[EmailStr] = None
    guest_phone: Optional[str] = None
    num_guests: int = 1
    special_requests: Optional[str] = None

    status: BookingStatus = "pending"
    payment_status: PaymentStatus = "unpaid"
    payment_amount: Optional[int] = None
    booking_source: BookingSource = "direct"
    ota_name: str = ""
    other_source: str = ""

    override: CustomPriceOverride = Field(default_factory=CustomPriceOverride)
    add_ons: List[AddOnSelection] = Field(default_factory=list)


def _apply_fields(session: EditSession, payload: BookingIn) -> None:
    session.guest_name = payload.guest_name
    session.guest_email = payload.guest_email or ""
    session.guest_phone = payload.guest_phone
    session.num_guests = payload.num_guests
    session.special_requests = payload.special_requests
    session.status = payload.status
    session.payment_status = payload.payment_status
    session.payment_amount = payload.payment_amount
    session.booking_source = payload.booking_source
    session.ota_name = payload.ota_name
    session.other_source = payload.other_source
    session.override = payload.override
    session.add_ons = payload.add_ons


def _submit_response(result: SubmitResult) -> Dict[str, Any]:
    if result.data_access_error:
        raise DataAccessError(result.data_access_error)
    if result.conflicts:
        raise AppError(
            409,
            ErrorCode.CONFLICT_DETECTED.value,
            "Selected rooms are not available for these dates",
            {
                "errors": [e.model_dump() for e in result.errors],
                "conflicts": [c.model_dump() for c in result.conflicts],
            },
        )
    if not result.ok or result.booking is None or result.price is None:
        raise AppError(
            422,
            ErrorCode.VALIDATION_ERROR.value,
            "Booking is not valid",
            {"errors": [e.model_dump() for e in result.errors]},
        )
    return {"booking": result.booking.model_dump(), "price": result.price.model_dump()}


async def _run_session(editor: BookingEditor, session: EditSession, payload: BookingIn) -> Dict[str, Any]:
    if payload.rooms:
        raise_for_step(await editor.select_units(session, [(r.room_type_id, r.room_number) for r in payload.rooms]))
    else:
        session.selected_units = []

    _apply_fields(session, payload)
    if payload.check_in is not None and payload.check_out is not None:
        raise_for_step(
            await editor.change_dates(
                session,
                payload.check_in,
                payload.check_out,
                payload.check_in_time,
                payload.check_out_time,
            )
        )
    else:
        session.check_in, session.check_out = payload.check_in, payload.check_out

    return _submit_response(await editor.submit(session))


@router.get("/{booking_id}")
async def get_booking(booking_id: str, repo: ReservationRepository = Depends(get_repository)) -> Dict[str, Any]:
    booking = await repo.get_booking(booking_id)
    if booking is None:
        raise NotFoundError("Booking", booking_id)
    return {"booking": booking.model_dump()}


@router.post("", status_code=201)
async def create_booking(payload: BookingIn, repo: ReservationRepository = Depends(get_repository)) -> Dict[str, Any]:
    editor = BookingEditor(repo)
    session = editor.start_new(payload.check_in, payload.check_out, payload.num_guests)
    return await _run_session(editor, session, payload)


@router.put("/{booking_id}")
async def update_booking(
    booking_id: str,
    payload: BookingIn,
    repo: ReservationRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Replace the editable fields of a booking; the booking never conflicts with itself."""

    editor = BookingEditor(repo)
    session = await editor.start_edit(booking_id)
    return await _run_session(editor, session, payload)


@router.post("/{booking_id}/cancel")
async def cancel_booking(booking_id: str, repo: ReservationRepository = Depends(get_repository)) -> Dict[str, Any]:
    booking = await booking_lifecycle.cancel_booking(repo, booking_id)
    return {"booking": booking.model_dump()}


@router.post("/{booking_id}/reject")
async def reject_booking(booking_id: str, repo: ReservationRepository = Depends(get_repository)) -> Dict[str, Any]:
    booking = await booking_lifecycle.reject_booking(repo, booking_id)
    return {"booking": booking.model_dump()}


@router.delete("/{booking_id}", status_code=204)
async def delete_booking(booking_id: str, repo: ReservationRepository = Depends(get_repository)) -> Response:
    await booking_lifecycle.delete_booking(repo, booking_id)
    return Response(status_code=204)
