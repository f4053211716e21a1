"""Booking create/edit workflow.

An ``EditSession`` holds the in-progress selection. Every step except
``submit`` is pure recomputation plus read-only queries; ``submit`` is the
only place that writes, and it writes the booking and its allocations in one
repository call or not at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, time
from typing import Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, TypeAdapter, ValidationError

from lodging import config
from lodging.domain.edit_session_state_machine import EditSessionState, validate_transition
from lodging.errors import DataAccessError, NotFoundError
from lodging.repositories.reservation_repository import ReservationRepository
from lodging.schemas import (
    AddOn,
    AddOnSelection,
    Booking,
    BookingAddOn,
    BookingSource,
    BookingStatus,
    CustomPriceOverride,
    PaymentStatus,
    PriceBreakdown,
    RoomAllocation,
    RoomTypeAvailability,
    SelectedUnit,
    ValidationIssue,
)
from lodging.services import pricing
from lodging.services.conflict_detector import ConflictCheck, check_units_conflicts
from lodging.services.room_availability import (
    check_room_type_availability,
    find_alternative_room_types,
)
from lodging.utils import generate_booking_code, new_id

logger = logging.getLogger(__name__)

_EMAIL = TypeAdapter(EmailStr)


@dataclass
class EditSession:
    booking_id: Optional[str] = None
    state: EditSessionState = "idle"

    room_type_id: Optional[str] = None
    selected_units: List[SelectedUnit] = field(default_factory=list)
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    check_in_time: Optional[time] = None
    check_out_time: Optional[time] = None

    guest_name: str = ""
    guest_email: str = ""
    guest_phone: Optional[str] = None
    num_guests: int = 1
    special_requests: Optional[str] = None

    status: BookingStatus = "pending"
    payment_status: PaymentStatus = "unpaid"
    payment_amount: Optional[int] = None
    booking_source: BookingSource = "direct"
    ota_name: str = ""
    other_source: str = ""

    override: CustomPriceOverride = field(default_factory=CustomPriceOverride)
    add_ons: List[AddOnSelection] = field(default_factory=list)

    # Snapshot for the current room type and range; never reused across sessions.
    availability: Optional[RoomTypeAvailability] = None
    alternatives: List[RoomTypeAvailability] = field(default_factory=list)
    warnings: List[ConflictCheck] = field(default_factory=list)
    original: Optional[Booking] = None

    @property
    def exclude_booking_id(self) -> Optional[str]:
        return self.booking_id

    @property
    def nights(self) -> Optional[int]:
        if self.check_in is None or self.check_out is None:
            return None
        return (self.check_out - self.check_in).days

    @property
    def selected_room_type_ids(self) -> List[str]:
        seen: Dict[str, None] = {}
        for u in self.selected_units:
            seen.setdefault(u.room_type_id, None)
        if self.room_type_id:
            seen.setdefault(self.room_type_id, None)
        return list(seen)


class StepResult(BaseModel):
    state: EditSessionState
    issues: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ConflictCheck] = Field(default_factory=list)
    availability: Optional[RoomTypeAvailability] = None
    alternatives: List[RoomTypeAvailability] = Field(default_factory=list)
    data_access_error: Optional[str] = None


class SubmitResult(BaseModel):
    ok: bool
    booking: Optional[Booking] = None
    price: Optional[PriceBreakdown] = None
    errors: List[ValidationIssue] = Field(default_factory=list)
    conflicts: List[ConflictCheck] = Field(default_factory=list)
    data_access_error: Optional[str] = None


def _issue(field_name: str, code: str, message: str) -> ValidationIssue:
    return ValidationIssue(field=field_name, code=code, message=message)


class BookingEditor:
    """Drives a single create or edit session against a repository."""

    def __init__(self, repo: ReservationRepository) -> None:
        self.repo = repo

    # ------------------------------------------------------------------
    # Session start
    # ------------------------------------------------------------------

    def start_new(
        self,
        check_in: Optional[date] = None,
        check_out: Optional[date] = None,
        num_guests: int = 1,
    ) -> EditSession:
        return EditSession(check_in=check_in, check_out=check_out, num_guests=num_guests)

    async def start_edit(self, booking_id: str) -> EditSession:
        """Load a booking into a session that is excluded from its own checks."""

        booking = await self.repo.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)

        units: List[SelectedUnit] = []
        normal_nightly = 0
        for alloc in booking.allocations:
            room_type = await self.repo.get_room_type(alloc.room_type_id)
            rate = room_type.price_per_night if room_type else alloc.price_per_night
            normal_nightly += rate
            units.append(
                SelectedUnit(
                    room_type_id=alloc.room_type_id,
                    room_number=alloc.room_number,
                    price_per_night=rate,
                )
            )

        session = EditSession(
            booking_id=booking.id,
            room_type_id=units[0].room_type_id if units else booking.room_id,
            selected_units=units,
            check_in=booking.check_in,
            check_out=booking.check_out,
            check_in_time=booking.check_in_time,
            check_out_time=booking.check_out_time,
            guest_name=booking.guest_name,
            guest_email=booking.guest_email,
            guest_phone=booking.guest_phone,
            num_guests=booking.num_guests,
            special_requests=booking.special_requests,
            status=booking.status,
            payment_status=booking.payment_status,
            payment_amount=booking.payment_amount,
            booking_source=booking.booking_source,
            ota_name=(booking.ota_name or "") if booking.booking_source == "ota" else "",
            other_source=(booking.other_source or "") if booking.booking_source == "other" else "",
            override=pricing.detect_custom_override(booking, normal_nightly),
            add_ons=[AddOnSelection(add_on_id=a.add_on_id, quantity=a.quantity) for a in booking.add_ons],
            original=booking,
        )

        if session.room_type_id:
            session.availability = await check_room_type_availability(
                self.repo,
                session.room_type_id,
                session.check_in,
                session.check_out,
                exclude_booking_id=booking.id,
            )
        if units:
            validate_transition(session.state, "units_selected")
            session.state = "units_selected"
        return session

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def select_room_type(self, session: EditSession, room_type_id: str) -> StepResult:
        try:
            snapshot = await check_room_type_availability(
                self.repo,
                room_type_id,
                session.check_in,
                session.check_out,
                exclude_booking_id=session.exclude_booking_id,
            )
            sold_out = snapshot.computed and snapshot.available_count == 0
            alternatives: List[RoomTypeAvailability] = []
            if sold_out:
                alternatives = await find_alternative_room_types(
                    self.repo,
                    session.check_in,
                    session.check_out,
                    exclude_room_type_id=room_type_id,
                    exclude_booking_id=session.exclude_booking_id,
                )
        except DataAccessError as exc:
            return StepResult(state=session.state, data_access_error=exc.message)

        target: EditSessionState = "no_availability" if sold_out else "room_type_selected"
        validate_transition(session.state, target)

        if room_type_id != session.room_type_id:
            session.selected_units = []
        session.room_type_id = room_type_id
        session.availability = snapshot
        session.alternatives = alternatives
        session.state = target

        if target == "no_availability":
            logger.info(
                "room type %s sold out for %s..%s; %d alternative(s)",
                room_type_id,
                session.check_in,
                session.check_out,
                len(alternatives),
            )
        return StepResult(state=session.state, availability=snapshot, alternatives=alternatives)

    def toggle_unit(self, session: EditSession, room_number: str) -> StepResult:
        """Add or remove a unit using the cached availability snapshot only."""

        selected = next(
            (u for u in session.selected_units
             if u.room_number == room_number and u.room_type_id == session.room_type_id),
            None,
        )
        if selected is not None:
            # Removing a unit never needs a free room; a sold-out session stays sold out.
            target: EditSessionState = "no_availability" if session.state == "no_availability" else "units_selected"
            validate_transition(session.state, target)
            session.selected_units = [u for u in session.selected_units if u is not selected]
            session.state = target
            return StepResult(state=session.state, availability=session.availability)

        snapshot = session.availability
        if snapshot is None or snapshot.room_type_id != session.room_type_id:
            return StepResult(
                state=session.state,
                issues=[_issue("room_type_id", "room_type_not_selected", "Select a room type first")],
            )
        if room_number not in snapshot.available_units:
            return StepResult(
                state=session.state,
                availability=snapshot,
                issues=[_issue("room_number", "unit_unavailable", f"Room {room_number} is not available")],
            )

        validate_transition(session.state, "units_selected")
        session.selected_units = [
            *session.selected_units,
            SelectedUnit(
                room_type_id=snapshot.room_type_id,
                room_number=room_number,
                price_per_night=snapshot.price_per_night,
            ),
        ]
        session.state = "units_selected"
        return StepResult(state=session.state, availability=snapshot)

    async def select_units(self, session: EditSession, units: List[tuple[str, str]]) -> StepResult:
        """Replace the selection with ``(room_type_id, room_number)`` pairs.

        Used by the multi-room selector, which may span room types. Rates
        come from the room types; availability is left to ``submit``.
        """

        issues: List[ValidationIssue] = []
        selection: List[SelectedUnit] = []
        try:
            for idx, (room_type_id, room_number) in enumerate(units):
                room_type = await self.repo.get_room_type(room_type_id)
                if room_type is None:
                    issues.append(_issue(f"rooms[{idx}].room_type_id", "unknown_room_type", f"Room type {room_type_id} does not exist"))
                    continue
                if room_number not in room_type.room_numbers:
                    issues.append(
                        _issue(f"rooms[{idx}].room_number", "unknown_unit", f"Room {room_number} is not a {room_type.name} unit")
                    )
                    continue
                if any(u.room_type_id == room_type_id and u.room_number == room_number for u in selection):
                    continue
                selection.append(
                    SelectedUnit(
                        room_type_id=room_type_id,
                        room_number=room_number,
                        price_per_night=room_type.price_per_night,
                    )
                )
        except DataAccessError as exc:
            return StepResult(state=session.state, data_access_error=exc.message)

        if issues:
            return StepResult(state=session.state, issues=issues)

        validate_transition(session.state, "units_selected")
        if selection and selection[0].room_type_id != session.room_type_id:
            session.room_type_id = selection[0].room_type_id
            session.availability = None
        session.selected_units = selection
        session.state = "units_selected"
        return StepResult(state=session.state)

    async def change_dates(
        self,
        session: EditSession,
        check_in: Optional[date],
        check_out: Optional[date],
        check_in_time: Optional[time] = None,
        check_out_time: Optional[time] = None,
    ) -> StepResult:
        """Re-validate the selection for new dates.

        Conflicts are returned as warnings; the selection is left for the
        user to change.
        """

        if check_in is None or check_out is None:
            session.check_in, session.check_out = check_in, check_out
            session.availability = None
            return StepResult(state=session.state)

        if check_out <= check_in:
            return StepResult(
                state=session.state,
                issues=[_issue("check_out", "invalid_stay_range", "Check-out must be after check-in")],
            )

        warnings: List[ConflictCheck] = []
        if session.selected_units:
            warnings = await check_units_conflicts(
                self.repo,
                session.selected_units,
                check_in,
                check_out,
                check_in_time=check_in_time or session.check_in_time,
                check_out_time=check_out_time or session.check_out_time,
                exclude_booking_id=session.exclude_booking_id,
            )

        snapshot = session.availability
        data_error: Optional[str] = next((w.error for w in warnings if w.status == "error"), None)
        if session.room_type_id:
            try:
                snapshot = await check_room_type_availability(
                    self.repo,
                    session.room_type_id,
                    check_in,
                    check_out,
                    exclude_booking_id=session.exclude_booking_id,
                )
            except DataAccessError as exc:
                data_error = data_error or exc.message
                snapshot = None

        validate_transition(session.state, "dates_confirmed")
        session.check_in, session.check_out = check_in, check_out
        if check_in_time is not None:
            session.check_in_time = check_in_time
        if check_out_time is not None:
            session.check_out_time = check_out_time
        session.availability = snapshot
        session.warnings = [w for w in warnings if not w.is_clear]
        session.state = "dates_confirmed"

        for w in session.warnings:
            if w.has_conflict:
                logger.info("date change conflict on room %s: %s", w.room_number, w.reason)

        return StepResult(
            state=session.state,
            warnings=session.warnings,
            availability=snapshot,
            data_access_error=data_error,
        )

    def apply_discount(self, session: EditSession, percent: float) -> CustomPriceOverride:
        fallback = session.availability.price_per_night if session.availability else 0
        session.override = pricing.apply_discount(session.override, percent, session.selected_units, fallback)
        return session.override

    def set_override(self, session: EditSession, override: CustomPriceOverride) -> List[ValidationIssue]:
        session.override = override
        return pricing.validate_override(override)

    async def add_on_catalog(self, session: EditSession) -> Dict[str, AddOn]:
        catalog: Dict[str, AddOn] = {}
        type_ids = session.selected_room_type_ids or [None]
        for room_type_id in type_ids:
            for add_on in await self.repo.find_active_add_ons(room_type_id):
                catalog[add_on.id] = add_on
        return catalog

    async def quote(self, session: EditSession) -> PriceBreakdown:
        """Current price of the session. Raises PricingError on unusable input."""

        catalog = await self.add_on_catalog(session) if session.add_ons else {}
        return pricing.compute_total(
            pricing.PricingRequest(
                selected_units=session.selected_units,
                nights=session.nights or 0,
                override=session.override,
                add_ons=session.add_ons,
                num_guests=session.num_guests,
            ),
            catalog,
        )

    # ------------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------------

    def validate(self, session: EditSession) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []

        if not session.selected_units:
            issues.append(_issue("selected_units", "required", "Select at least one room"))

        if session.check_in is None:
            issues.append(_issue("check_in", "required", "Check-in date is required"))
        if session.check_out is None:
            issues.append(_issue("check_out", "required", "Check-out date is required"))
        nights = session.nights
        if nights is not None:
            if nights <= 0:
                issues.append(_issue("check_out", "invalid_stay_range", "Check-out must be after check-in"))
            elif nights < config.MIN_STAY_NIGHTS:
                issues.append(
                    _issue("check_out", "stay_too_short", f"Minimum stay is {config.MIN_STAY_NIGHTS} night(s)")
                )
            elif nights > config.MAX_STAY_NIGHTS:
                issues.append(
                    _issue("check_out", "stay_too_long", f"Maximum stay is {config.MAX_STAY_NIGHTS} nights")
                )

        if len(session.guest_name.strip()) < 2:
            issues.append(_issue("guest_name", "required", "Guest name must have at least 2 characters"))
        if session.guest_email.strip():
            try:
                _EMAIL.validate_python(session.guest_email.strip())
            except ValidationError:
                issues.append(_issue("guest_email", "invalid_format", "Guest email is not valid"))
        if session.num_guests < 1:
            issues.append(_issue("num_guests", "invalid", "At least one guest is required"))

        if session.booking_source == "ota" and not session.ota_name.strip():
            issues.append(_issue("ota_name", "required", "OTA name is required"))
        if session.booking_source == "other" and not session.other_source.strip():
            issues.append(_issue("other_source", "required", "Booking source description is required"))

        issues.extend(pricing.validate_override(session.override))
        return issues

    def _build_booking(self, session: EditSession, price: PriceBreakdown) -> tuple[Booking, List[RoomAllocation]]:
        if session.check_in is None or session.check_out is None:
            raise ValueError("Cannot build a booking without a stay range")
        booking_id = session.booking_id or new_id()
        rates = pricing.charged_price_per_night(session.selected_units, price.nights, session.override)
        allocations = [
            RoomAllocation(
                booking_id=booking_id,
                room_type_id=u.room_type_id,
                room_number=u.room_number,
                price_per_night=rate,
            )
            for u, rate in zip(session.selected_units, rates)
        ]
        original = session.original
        booking = Booking(
            id=booking_id,
            booking_code=original.booking_code if original and original.booking_code else generate_booking_code(),
            guest_name=session.guest_name.strip(),
            guest_email=session.guest_email.strip(),
            guest_phone=session.guest_phone,
            num_guests=session.num_guests,
            check_in=session.check_in,
            check_out=session.check_out,
            check_in_time=session.check_in_time,
            check_out_time=session.check_out_time,
            status=session.status,
            payment_status=session.payment_status,
            payment_amount=session.payment_amount if session.payment_status in ("partial", "down_payment") else None,
            total_price=price.total_price,
            total_nights=price.nights,
            booking_source=session.booking_source,
            ota_name=session.ota_name.strip() if session.booking_source == "ota" else None,
            other_source=session.other_source.strip() if session.booking_source == "other" else None,
            special_requests=session.special_requests,
            created_at=original.created_at if original else None,
            room_id=allocations[0].room_type_id,
            allocated_room_number=allocations[0].room_number,
            allocations=allocations,
            add_ons=[
                BookingAddOn(
                    add_on_id=c.add_on_id,
                    quantity=c.quantity,
                    unit_price=c.unit_price,
                    total_price=c.total_price,
                )
                for c in price.add_on_charges
            ],
        )
        return booking, allocations

    async def submit(self, session: EditSession) -> SubmitResult:
        """Validate, re-check conflicts and persist. Writes nothing on failure."""

        if session.state == "saved":
            validate_transition(session.state, "saved")

        issues = self.validate(session)
        if issues:
            return SubmitResult(ok=False, errors=issues)

        try:
            catalog = await self.add_on_catalog(session) if session.add_ons else {}
        except DataAccessError as exc:
            return SubmitResult(ok=False, data_access_error=exc.message)

        add_on_issues = pricing.validate_add_on_selections(
            session.add_ons, catalog, session.selected_room_type_ids
        )
        if add_on_issues:
            return SubmitResult(ok=False, errors=add_on_issues)

        if session.check_in is None or session.check_out is None:
            return SubmitResult(
                ok=False,
                errors=[_issue("check_in", "required", "Check-in and check-out dates are required")],
            )
        checks = await check_units_conflicts(
            self.repo,
            session.selected_units,
            session.check_in,
            session.check_out,
            check_in_time=session.check_in_time,
            check_out_time=session.check_out_time,
            exclude_booking_id=session.exclude_booking_id,
        )
        failed = [c for c in checks if c.status == "error"]
        if failed:
            return SubmitResult(ok=False, data_access_error=failed[0].error)
        conflicts = [c for c in checks if c.has_conflict]
        if conflicts:
            return SubmitResult(
                ok=False,
                conflicts=conflicts,
                errors=[
                    _issue(f"selected_units.{c.room_number}", "conflict_detected", c.reason or "Room is already booked")
                    for c in conflicts
                ],
            )

        price = pricing.compute_total(
            pricing.PricingRequest(
                selected_units=session.selected_units,
                nights=session.nights or 0,
                override=session.override,
                add_ons=session.add_ons,
                num_guests=session.num_guests,
            ),
            catalog,
        )
        booking, allocations = self._build_booking(session, price)

        validate_transition(session.state, "saved")
        try:
            saved = await self.repo.save_booking(booking, allocations)
        except DataAccessError as exc:
            return SubmitResult(ok=False, price=price, data_access_error=exc.message)

        session.booking_id = saved.id
        session.original = saved
        session.state = "saved"
        logger.info(
            "booking %s %s: %d room(s), %d night(s), total %d",
            saved.booking_code,
            "updated" if booking.created_at else "created",
            len(allocations),
            price.nights,
            price.total_price,
        )
        return SubmitResult(ok=True, booking=saved, price=price)
