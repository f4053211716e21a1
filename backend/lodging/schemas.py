from __future__ import annotations

from datetime import date, datetime, time
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


BookingStatus = Literal[
    "pending",
    "confirmed",
    "checked_in",
    "checked_out",
    "cancelled",
    "rejected",
    "maintenance",
]
PaymentStatus = Literal["paid", "unpaid", "pay_at_hotel", "partial", "down_payment"]
BookingSource = Literal["direct", "ota", "walk_in", "other"]
AddOnPriceType = Literal["per_night", "per_person_per_night", "per_person", "once"]
CustomPriceMode = Literal["per_night", "total"]

# Bookings in these states never occupy a unit.
INACTIVE_BOOKING_STATUSES: frozenset[str] = frozenset({"cancelled", "rejected"})


# ---- Inventory ----


class RoomType(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    price_per_night: int = Field(ge=0)
    room_count: int = Field(default=0, ge=0)
    room_numbers: list[str] = Field(default_factory=list)
    priority: int = 0
    available: bool = True
    # Carried for display only; unit labels drive availability.
    allotment: Optional[int] = None


class AddOn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    price: int = Field(ge=0)
    price_type: AddOnPriceType = "once"
    max_quantity: int = Field(default=1, ge=1)
    room_type_id: Optional[str] = None
    is_active: bool = True


class UnitBlock(BaseModel):
    """A unit taken out of service for a single date."""

    model_config = ConfigDict(extra="ignore")

    room_type_id: str
    room_number: str
    unavailable_date: date
    reason: Optional[str] = None


# ---- Bookings ----


class RoomAllocation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    booking_id: Optional[str] = None
    room_type_id: str
    room_number: str
    price_per_night: int = Field(ge=0)


class BookingAddOn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    add_on_id: str
    quantity: int = Field(ge=1)
    unit_price: int = Field(ge=0)
    total_price: int = Field(ge=0)


class Booking(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    booking_code: str = ""
    guest_name: str = ""
    guest_email: str = ""
    guest_phone: Optional[str] = None
    num_guests: int = Field(default=1, ge=1)
    check_in: date
    check_out: date
    check_in_time: Optional[time] = None
    check_out_time: Optional[time] = None
    status: BookingStatus = "pending"
    payment_status: PaymentStatus = "unpaid"
    payment_amount: Optional[int] = None
    total_price: int = 0
    total_nights: int = 0
    booking_source: BookingSource = "direct"
    ota_name: Optional[str] = None
    other_source: Optional[str] = None
    special_requests: Optional[str] = None
    created_at: Optional[datetime] = None

    # Legacy single-room shape, folded into `allocations` on load
    room_id: Optional[str] = None
    allocated_room_number: Optional[str] = None

    allocations: list[RoomAllocation] = Field(default_factory=list)
    add_ons: list[BookingAddOn] = Field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_BOOKING_STATUSES


# ---- Derived ----


class RoomTypeAvailability(BaseModel):
    room_type_id: str
    room_type_name: str
    total_units: int
    booked_units: list[str] = Field(default_factory=list)
    available_units: list[str] = Field(default_factory=list)
    available_count: int = 0
    price_per_night: int = 0
    priority: int = 0
    computed: bool = True


class CustomPriceOverride(BaseModel):
    """Editor-only custom pricing state. Values may arrive as raw user input."""

    enabled: bool = False
    mode: CustomPriceMode = "per_night"
    price_per_night: Optional[Union[int, float, str]] = None
    total_price: Optional[Union[int, float, str]] = None

    @property
    def active_field(self) -> str:
        return "price_per_night" if self.mode == "per_night" else "total_price"

    @property
    def active_value(self) -> Optional[Union[int, float, str]]:
        return self.price_per_night if self.mode == "per_night" else self.total_price


class SelectedUnit(BaseModel):
    room_type_id: str
    room_number: str
    price_per_night: int = Field(ge=0)


class AddOnSelection(BaseModel):
    add_on_id: str
    quantity: int = Field(default=1, ge=1)


class AddOnCharge(BaseModel):
    add_on_id: str
    name: str
    price_type: AddOnPriceType
    quantity: int
    unit_price: int
    total_price: int


class PriceBreakdown(BaseModel):
    nights: int
    unit_count: int
    normal_price_per_night: int
    normal_total: int
    room_total: int
    add_ons_total: int = 0
    total_price: int
    per_night_equivalent: float
    discount_amount: int = 0
    discount_percentage: float = 0.0
    custom_price_applied: bool = False
    add_on_charges: list[AddOnCharge] = Field(default_factory=list)


class ValidationIssue(BaseModel):
    field: str
    code: str
    message: str
