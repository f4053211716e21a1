"""Stay pricing: room totals, custom overrides, quick discounts and add-ons.

All amounts are integers in the smallest currency unit. Rounding is half-up.
"""

from __future__ import annotations

import math
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from lodging import config
from lodging.schemas import (
    AddOn,
    AddOnCharge,
    AddOnSelection,
    Booking,
    CustomPriceOverride,
    PriceBreakdown,
    SelectedUnit,
    ValidationIssue,
)
from lodging.utils import round_half_up


class PricingError(ValueError):
    """Raised when a price cannot be computed from the given input."""

    def __init__(self, issues: List[ValidationIssue]) -> None:
        super().__init__("; ".join(i.message for i in issues))
        self.issues = issues


class PricingRequest(BaseModel):
    selected_units: List[SelectedUnit] = Field(default_factory=list)
    nights: int
    override: Optional[CustomPriceOverride] = None
    add_ons: List[AddOnSelection] = Field(default_factory=list)
    num_guests: int = Field(default=1, ge=1)


# ----------------------------------------------------------------------
# Custom price input
# ----------------------------------------------------------------------


def parse_price(value: Any) -> Optional[float]:
    """Parse user-entered price input; None when missing or not a finite number."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def validate_override(
    override: Optional[CustomPriceOverride],
    min_price: Optional[int] = None,
) -> List[ValidationIssue]:
    """Check the active mode's value of an enabled override."""

    if override is None or not override.enabled:
        return []

    floor = config.MIN_CUSTOM_PRICE if min_price is None else min_price
    field = f"override.{override.active_field}"
    raw = override.active_value

    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return [ValidationIssue(field=field, code="required", message="Custom price is required")]

    value = parse_price(raw)
    if value is None:
        return [ValidationIssue(field=field, code="not_a_number", message="Custom price must be a number")]
    if value <= 0:
        return [ValidationIssue(field=field, code="not_positive", message="Custom price must be a positive number")]
    if value < floor:
        return [
            ValidationIssue(
                field=field,
                code="below_minimum",
                message=f"Custom price must be at least {floor}",
            )
        ]
    return []


# ----------------------------------------------------------------------
# Room rates
# ----------------------------------------------------------------------


def normal_price_per_night(units: Sequence[SelectedUnit]) -> int:
    """Nightly rates of every selected unit, summed."""
    return sum(u.price_per_night for u in units)


def baseline_per_unit_rate(units: Sequence[SelectedUnit], fallback_rate: int = 0) -> int:
    if not units:
        return fallback_rate
    return round_half_up(Decimal(normal_price_per_night(units)) / Decimal(len(units)))


def _override_value(override: CustomPriceOverride) -> int:
    issues = validate_override(override)
    if issues:
        raise PricingError(issues)
    value = parse_price(override.active_value)
    if value is None:
        raise PricingError(
            [ValidationIssue(field=f"override.{override.active_field}", code="required", message="Custom price is required")]
        )
    return round_half_up(value)


def room_total(
    units: Sequence[SelectedUnit],
    nights: int,
    override: Optional[CustomPriceOverride] = None,
) -> int:
    if override is not None and override.enabled:
        value = _override_value(override)
        if override.mode == "per_night":
            # A custom nightly price is per unit, not for the whole booking.
            return value * nights * len(units)
        return value
    return normal_price_per_night(units) * nights


def charged_price_per_night(
    units: Sequence[SelectedUnit],
    nights: int,
    override: Optional[CustomPriceOverride] = None,
) -> List[int]:
    """Nightly price recorded on each allocation, in unit order."""

    if override is None or not override.enabled or not units:
        return [u.price_per_night for u in units]
    value = _override_value(override)
    if override.mode == "per_night":
        return [value for _ in units]
    share = round_half_up(Decimal(value) / Decimal(nights) / Decimal(len(units)))
    return [share for _ in units]


# ----------------------------------------------------------------------
# Quick discounts
# ----------------------------------------------------------------------


def apply_discount(
    state: CustomPriceOverride,
    percent: float,
    units: Sequence[SelectedUnit],
    fallback_rate: int = 0,
) -> CustomPriceOverride:
    """Return a new override state with a ``percent`` discount off the per-unit rate."""

    if percent < 0 or percent > 100:
        raise ValueError("Discount percentage must be between 0 and 100")

    base = baseline_per_unit_rate(units, fallback_rate)
    discounted = Decimal(base) * (Decimal(100) - Decimal(str(percent))) / Decimal(100)
    return state.model_copy(
        update={
            "enabled": True,
            "mode": "per_night",
            "price_per_night": round_half_up(discounted),
        }
    )


# ----------------------------------------------------------------------
# Add-ons
# ----------------------------------------------------------------------


def calculate_add_on_price(add_on: AddOn, quantity: int, nights: int, num_guests: int) -> int:
    base = add_on.price * quantity

    if add_on.price_type == "per_night":
        return base * nights
    if add_on.price_type == "per_person_per_night":
        return base * nights * num_guests
    if add_on.price_type == "per_person":
        return base * num_guests
    return base


def validate_add_on_selections(
    selections: Iterable[AddOnSelection],
    catalog: Mapping[str, AddOn],
    room_type_ids: Iterable[str] = (),
) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    scope = set(room_type_ids)

    for idx, sel in enumerate(selections):
        field = f"add_ons[{idx}]"
        add_on = catalog.get(sel.add_on_id)
        if add_on is None or not add_on.is_active:
            issues.append(ValidationIssue(field=field, code="unknown_add_on", message=f"Add-on {sel.add_on_id} is not available"))
            continue
        if add_on.room_type_id is not None and scope and add_on.room_type_id not in scope:
            issues.append(
                ValidationIssue(
                    field=field,
                    code="add_on_not_applicable",
                    message=f"{add_on.name} is not offered for the selected room type",
                )
            )
        if sel.quantity > add_on.max_quantity:
            issues.append(
                ValidationIssue(
                    field=f"{field}.quantity",
                    code="above_maximum",
                    message=f"{add_on.name} allows at most {add_on.max_quantity}",
                )
            )
    return issues


def price_add_ons(
    selections: Iterable[AddOnSelection],
    catalog: Mapping[str, AddOn],
    nights: int,
    num_guests: int,
) -> List[AddOnCharge]:
    charges: List[AddOnCharge] = []
    for sel in selections:
        add_on = catalog[sel.add_on_id]
        charges.append(
            AddOnCharge(
                add_on_id=add_on.id,
                name=add_on.name,
                price_type=add_on.price_type,
                quantity=sel.quantity,
                unit_price=add_on.price,
                total_price=calculate_add_on_price(add_on, sel.quantity, nights, num_guests),
            )
        )
    return charges


# ----------------------------------------------------------------------
# Totals
# ----------------------------------------------------------------------


def compute_total(
    request: PricingRequest,
    add_on_catalog: Optional[Mapping[str, AddOn]] = None,
) -> PriceBreakdown:
    """Price a stay. Raises PricingError for unusable input."""

    if request.nights <= 0:
        raise PricingError(
            [ValidationIssue(field="nights", code="invalid_nights", message="A stay must last at least one night")]
        )

    catalog = add_on_catalog or {}
    unknown = [s.add_on_id for s in request.add_ons if s.add_on_id not in catalog]
    if unknown:
        raise PricingError(
            [
                ValidationIssue(field="add_ons", code="unknown_add_on", message=f"Add-on {add_on_id} is not available")
                for add_on_id in unknown
            ]
        )

    units = request.selected_units
    normal_nightly = normal_price_per_night(units)
    normal_total = normal_nightly * request.nights
    rooms = room_total(units, request.nights, request.override)
    charges = price_add_ons(request.add_ons, catalog, request.nights, request.num_guests)
    add_ons_total = sum(c.total_price for c in charges)

    discount_amount = normal_total - rooms
    discount_percentage = round(discount_amount / normal_total * 100, 2) if normal_total > 0 else 0.0

    return PriceBreakdown(
        nights=request.nights,
        unit_count=len(units),
        normal_price_per_night=normal_nightly,
        normal_total=normal_total,
        room_total=rooms,
        add_ons_total=add_ons_total,
        total_price=rooms + add_ons_total,
        per_night_equivalent=rooms / request.nights,
        discount_amount=discount_amount,
        discount_percentage=discount_percentage,
        custom_price_applied=bool(request.override and request.override.enabled),
        add_on_charges=charges,
    )


def detect_custom_override(
    booking: Booking,
    normal_nightly_rate: int,
    tolerance: Optional[int] = None,
) -> CustomPriceOverride:
    """Reconstruct the override a stored booking was priced with, if any.

    A recorded nightly price further than ``tolerance`` from the normal rate
    means the booking was custom-priced; the per-unit nightly price is
    restored in ``per_night`` mode.
    """

    limit = config.CUSTOM_PRICE_DETECTION_TOLERANCE if tolerance is None else tolerance
    nights = booking.total_nights or (booking.check_out - booking.check_in).days
    if nights <= 0:
        return CustomPriceOverride()

    rooms_only = booking.total_price - sum(a.total_price for a in booking.add_ons)
    actual_nightly = Decimal(rooms_only) / Decimal(nights)
    if abs(actual_nightly - Decimal(normal_nightly_rate)) <= limit:
        return CustomPriceOverride()

    unit_count = max(1, len(booking.allocations))
    return CustomPriceOverride(
        enabled=True,
        mode="per_night",
        price_per_night=round_half_up(actual_nightly / Decimal(unit_count)),
    )
