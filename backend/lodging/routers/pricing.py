from __future__ import annotations

from datetime import date
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from lodging.errors import AppError, ErrorCode
from lodging.repositories.reservation_repository import ReservationRepository
from lodging.routers.deps import UnitRef, get_repository, raise_for_step, validation_failed
from lodging.schemas import AddOnSelection, CustomPriceOverride
from lodging.services import pricing
from lodging.services.booking_editor import BookingEditor

router = APIRouter(prefix="/api/pricing", tags=["pricing"])


class QuoteIn(BaseModel):
    units: List[UnitRef] = Field(min_length=1)
    check_in: date
    check_out: date
    num_guests: int = Field(default=1, ge=1)
    override: CustomPriceOverride = Field(default_factory=CustomPriceOverride)
    add_ons: List[AddOnSelection] = Field(default_factory=list)


class DiscountIn(BaseModel):
    units: List[UnitRef] = Field(default_factory=list)
    percent: float
    override: CustomPriceOverride = Field(default_factory=CustomPriceOverride)


@router.post("/quote")
async def quote(payload: QuoteIn, repo: ReservationRepository = Depends(get_repository)) -> Dict[str, Any]:
    """Price a selection without writing anything."""

    editor = BookingEditor(repo)
    session = editor.start_new(payload.check_in, payload.check_out, payload.num_guests)
    raise_for_step(await editor.select_units(session, [(u.room_type_id, u.room_number) for u in payload.units]))

    issues = editor.set_override(session, payload.override)
    if issues:
        raise validation_failed(issues, "Custom price is not valid")

    session.add_ons = payload.add_ons
    if session.add_ons:
        catalog = await editor.add_on_catalog(session)
        issues = pricing.validate_add_on_selections(session.add_ons, catalog, session.selected_room_type_ids)
        if issues:
            raise validation_failed(issues, "Add-on selection is not valid")

    price = await editor.quote(session)
    return {"price": price.model_dump()}


@router.post("/discount")
async def discount(payload: DiscountIn, repo: ReservationRepository = Depends(get_repository)) -> Dict[str, Any]:
    """Turn a quick-discount percentage into a per-night custom price."""

    editor = BookingEditor(repo)
    session = editor.start_new()
    if payload.units:
        raise_for_step(await editor.select_units(session, [(u.room_type_id, u.room_number) for u in payload.units]))
    session.override = payload.override

    try:
        override = editor.apply_discount(session, payload.percent)
    except ValueError as exc:
        raise AppError(
            422,
            ErrorCode.VALIDATION_ERROR.value,
            str(exc),
            {"field": "percent"},
        ) from exc
    return {"override": override.model_dump()}
