from __future__ import annotations

from datetime import date

import pytest

from lodging.schemas import (
    AddOn,
    AddOnSelection,
    Booking,
    BookingAddOn,
    CustomPriceOverride,
    RoomAllocation,
    SelectedUnit,
)
from lodging.services import pricing
from lodging.services.pricing import PricingError, PricingRequest, compute_total


def _unit(number: str, rate: int, room_type_id: str = "rt_deluxe") -> SelectedUnit:
    return SelectedUnit(room_type_id=room_type_id, room_number=number, price_per_night=rate)


TWO_UNITS = [_unit("201", 100_000), _unit("202", 150_000)]

BREAKFAST = AddOn(id="breakfast", name="Breakfast", price=25_000, price_type="per_person_per_night")


def test_baseline_total_sums_unit_rates_over_nights() -> None:
    price = compute_total(PricingRequest(selected_units=TWO_UNITS, nights=3))

    assert price.room_total == 750_000
    assert price.total_price == 750_000
    assert price.normal_total == 750_000
    assert price.normal_price_per_night == 250_000
    assert price.discount_amount == 0
    assert price.custom_price_applied is False


def test_per_night_override_is_per_unit() -> None:
    override = CustomPriceOverride(enabled=True, mode="per_night", price_per_night=90_000)

    price = compute_total(PricingRequest(selected_units=TWO_UNITS, nights=3, override=override))

    assert price.room_total == 540_000
    assert price.custom_price_applied is True
    assert price.discount_amount == 210_000
    assert price.discount_percentage == 28.0


def test_total_override_is_taken_verbatim() -> None:
    override = CustomPriceOverride(enabled=True, mode="total", total_price="500000")

    price = compute_total(PricingRequest(selected_units=[_unit("201", 150_000)], nights=4, override=override))

    assert price.room_total == 500_000
    assert price.per_night_equivalent == 125_000


def test_disabled_override_is_ignored() -> None:
    override = CustomPriceOverride(enabled=False, mode="per_night", price_per_night=1)

    price = compute_total(PricingRequest(selected_units=TWO_UNITS, nights=1, override=override))

    assert price.room_total == 250_000


def test_quick_discount_sets_per_night_override() -> None:
    state = CustomPriceOverride(mode="total", total_price=999_999)

    new_state = pricing.apply_discount(state, 20, [_unit("201", 200_000)])

    assert new_state.enabled is True
    assert new_state.mode == "per_night"
    assert new_state.price_per_night == 160_000
    # pure transition
    assert state.enabled is False
    assert state.mode == "total"


def test_quick_discount_uses_average_unit_rate() -> None:
    new_state = pricing.apply_discount(CustomPriceOverride(), 10, TWO_UNITS)
    # average 125000, minus 10% = 112500
    assert new_state.price_per_night == 112_500


def test_quick_discount_without_units_uses_fallback_rate() -> None:
    new_state = pricing.apply_discount(CustomPriceOverride(), 15, [], fallback_rate=333_333)
    # 283333.05 rounds half-up to 283333
    assert new_state.price_per_night == 283_333


@pytest.mark.parametrize("percent", [-1, 101])
def test_quick_discount_rejects_out_of_range_percent(percent: float) -> None:
    with pytest.raises(ValueError):
        pricing.apply_discount(CustomPriceOverride(), percent, TWO_UNITS)


def test_add_on_per_person_per_night_on_top_of_rooms() -> None:
    price = compute_total(
        PricingRequest(
            selected_units=TWO_UNITS,
            nights=3,
            num_guests=2,
            add_ons=[AddOnSelection(add_on_id="breakfast", quantity=1)],
        ),
        {"breakfast": BREAKFAST},
    )

    assert price.add_ons_total == 150_000
    assert price.total_price == 750_000 + 150_000
    assert price.add_on_charges[0].total_price == 150_000


@pytest.mark.parametrize(
    "price_type, expected",
    [
        ("per_night", 10_000 * 2 * 3),
        ("per_person_per_night", 10_000 * 2 * 3 * 4),
        ("per_person", 10_000 * 2 * 4),
        ("once", 10_000 * 2),
    ],
)
def test_add_on_price_types(price_type: str, expected: int) -> None:
    add_on = AddOn(id="x", name="X", price=10_000, price_type=price_type, max_quantity=5)
    assert pricing.calculate_add_on_price(add_on, quantity=2, nights=3, num_guests=4) == expected


def test_add_on_selection_validation() -> None:
    catalog = {
        "bed": AddOn(id="bed", name="Extra bed", price=50_000, price_type="per_night", max_quantity=2),
        "spa": AddOn(id="spa", name="Spa", price=80_000, room_type_id="rt_suite"),
    }
    selections = [
        AddOnSelection(add_on_id="bed", quantity=3),
        AddOnSelection(add_on_id="spa", quantity=1),
        AddOnSelection(add_on_id="ghost", quantity=1),
    ]

    issues = pricing.validate_add_on_selections(selections, catalog, ["rt_deluxe"])

    assert [(i.field, i.code) for i in issues] == [
        ("add_ons[0].quantity", "above_maximum"),
        ("add_ons[1]", "add_on_not_applicable"),
        ("add_ons[2]", "unknown_add_on"),
    ]


def test_unknown_add_on_cannot_be_priced() -> None:
    with pytest.raises(PricingError):
        compute_total(
            PricingRequest(selected_units=TWO_UNITS, nights=1, add_ons=[AddOnSelection(add_on_id="ghost")]),
            {},
        )


@pytest.mark.parametrize("nights", [0, -2])
def test_non_positive_nights_are_rejected(nights: int) -> None:
    with pytest.raises(PricingError) as exc:
        compute_total(PricingRequest(selected_units=TWO_UNITS, nights=nights))
    assert exc.value.issues[0].code == "invalid_nights"


@pytest.mark.parametrize(
    "value, code",
    [
        (None, "required"),
        ("  ", "required"),
        ("abc", "not_a_number"),
        ("nan", "not_a_number"),
        (0, "not_positive"),
        (-5_000, "not_positive"),
        (9_999, "below_minimum"),
    ],
)
def test_override_validation(value, code: str) -> None:
    issues = pricing.validate_override(CustomPriceOverride(enabled=True, mode="per_night", price_per_night=value))

    assert len(issues) == 1
    assert issues[0].code == code
    assert issues[0].field == "override.price_per_night"


def test_override_validation_checks_active_mode_only() -> None:
    override = CustomPriceOverride(enabled=True, mode="total", price_per_night="junk", total_price=10_000)
    assert pricing.validate_override(override) == []


def test_invalid_override_cannot_be_priced() -> None:
    override = CustomPriceOverride(enabled=True, mode="per_night", price_per_night=500)
    with pytest.raises(PricingError):
        compute_total(PricingRequest(selected_units=TWO_UNITS, nights=1, override=override))


def test_total_override_is_spread_over_allocations() -> None:
    override = CustomPriceOverride(enabled=True, mode="total", total_price=600_000)
    assert pricing.charged_price_per_night(TWO_UNITS, 3, override) == [100_000, 100_000]


def test_fractional_price_rounds_half_up() -> None:
    override = CustomPriceOverride(enabled=True, mode="per_night", price_per_night="12500.5")
    price = compute_total(PricingRequest(selected_units=[_unit("201", 20_000)], nights=1, override=override))
    assert price.room_total == 12_501


def _stored_booking(total_price: int, nights: int = 2, add_on_total: int = 0) -> Booking:
    return Booking(
        id="bk1",
        check_in=date(2025, 6, 1),
        check_out=date(2025, 6, 1 + nights),
        total_price=total_price,
        total_nights=nights,
        allocations=[RoomAllocation(room_type_id="rt_deluxe", room_number="201", price_per_night=200_000)],
        add_ons=[BookingAddOn(add_on_id="bed", quantity=1, unit_price=add_on_total, total_price=add_on_total)]
        if add_on_total
        else [],
    )


def test_detect_custom_override_within_tolerance() -> None:
    assert pricing.detect_custom_override(_stored_booking(400_100), 200_000).enabled is False


def test_detect_custom_override_restores_nightly_price() -> None:
    detected = pricing.detect_custom_override(_stored_booking(300_000, add_on_total=50_000), 200_000)

    assert detected.enabled is True
    assert detected.mode == "per_night"
    assert detected.price_per_night == 125_000
