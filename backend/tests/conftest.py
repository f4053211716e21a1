"""Shared test configuration and fixtures for backend tests.

Key principles:
- All HTTP calls go through the local ASGI app.
- Engine and API tests run against an in-memory repository; only the Mongo
  repository tests need a database and they skip when none is reachable.
- AnyIO is the single async runner (@pytest.mark.anyio).
"""

from typing import Any, AsyncGenerator, Callable, Dict, Iterable, List, Optional

import asyncio
import os
import sys
import uuid
from datetime import date
from pathlib import Path

import httpx
import pytest
from httpx import ASGITransport
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

# Ensure backend root is on sys.path so that `server` module is importable
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from server import app
from lodging.domain.booking_normalization import booking_holds_unit
from lodging.errors import DataAccessError
from lodging.repositories.reservation_repository import ReservationRepository
from lodging.routers.deps import get_repository
from lodging.schemas import (
    INACTIVE_BOOKING_STATUSES,
    AddOn,
    Booking,
    RoomAllocation,
    RoomType,
    UnitBlock,
)
from lodging.utils import now_utc


MONGO_URL = os.environ.get("MONGO_URL", "mongodb://localhost:27017")


class InMemoryReservationRepository(ReservationRepository):
    """Dict-backed repository with the same filtering rules as the Mongo one.

    ``fail_reads`` makes every read raise DataAccessError; ``read_delay``
    slows down booking lookups so caller-side timeouts can be exercised.
    """

    def __init__(
        self,
        room_types: Iterable[RoomType] = (),
        add_ons: Iterable[AddOn] = (),
        bookings: Iterable[Booking] = (),
        blocks: Iterable[UnitBlock] = (),
    ) -> None:
        self.room_types: Dict[str, RoomType] = {rt.id: rt for rt in room_types}
        self.add_ons: List[AddOn] = list(add_ons)
        self.bookings: Dict[str, Booking] = {b.id: b for b in bookings}
        self.blocks: List[UnitBlock] = list(blocks)
        self.writes = 0
        self.fail_reads = False
        self.fail_writes = False
        self.read_delay = 0.0

    def _check_read(self) -> None:
        if self.fail_reads:
            raise DataAccessError("Data store failure (test)")

    def _check_write(self) -> None:
        if self.fail_writes:
            raise DataAccessError("Data store failure (test)")

    async def find_active_bookings_for_unit(
        self,
        room_type_id: str,
        room_number: str,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        self._check_read()
        found = [
            b
            for b in self.bookings.values()
            if b.status not in INACTIVE_BOOKING_STATUSES
            and b.id != exclude_booking_id
            and booking_holds_unit(b, room_type_id, room_number)
            and b.check_in <= check_out
            and b.check_out >= check_in
        ]
        return sorted(found, key=lambda b: b.check_in)

    async def find_all_room_types(self, include_unavailable: bool = False) -> List[RoomType]:
        self._check_read()
        items = [rt for rt in self.room_types.values() if include_unavailable or rt.available]
        return sorted(items, key=lambda rt: rt.name)

    async def get_room_type(self, room_type_id: str) -> Optional[RoomType]:
        self._check_read()
        return self.room_types.get(room_type_id)

    async def find_active_add_ons(self, room_type_id: Optional[str] = None) -> List[AddOn]:
        self._check_read()
        return [
            a
            for a in self.add_ons
            if a.is_active and (a.room_type_id is None or (room_type_id and a.room_type_id == room_type_id))
        ]

    async def find_unit_blocks(
        self,
        room_type_id: str,
        room_number: str,
        check_in: date,
        check_out: date,
    ) -> List[UnitBlock]:
        self._check_read()
        return [
            b
            for b in self.blocks
            if b.room_type_id == room_type_id
            and b.room_number == room_number
            and check_in <= b.unavailable_date < check_out
        ]

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        self._check_read()
        return self.bookings.get(booking_id)

    async def save_booking(self, booking: Booking, allocations: List[RoomAllocation]) -> Booking:
        self._check_write()
        self.writes += 1
        stored = booking.model_copy(
            update={
                "allocations": [a.model_copy(update={"booking_id": booking.id}) for a in allocations],
                "created_at": booking.created_at or now_utc(),
            }
        )
        self.bookings[stored.id] = stored
        return stored

    async def replace_allocations(self, booking_id: str, allocations: List[RoomAllocation]) -> None:
        self._check_write()
        booking = self.bookings[booking_id]
        self.bookings[booking_id] = booking.model_copy(update={"allocations": list(allocations)})

    async def update_booking_status(self, booking_id: str, status: str) -> Optional[Booking]:
        self._check_write()
        booking = self.bookings.get(booking_id)
        if booking is None:
            return None
        self.writes += 1
        updated = booking.model_copy(update={"status": status})
        self.bookings[booking_id] = updated
        return updated

    async def delete_booking(self, booking_id: str) -> bool:
        self._check_write()
        self.writes += 1
        return self.bookings.pop(booking_id, None) is not None


ROOM_TYPES = [
    RoomType(id="rt_deluxe", name="Deluxe", price_per_night=200_000, room_count=3,
             room_numbers=["201", "202", "203"], priority=20),
    RoomType(id="rt_superior", name="Superior", price_per_night=100_000, room_count=2,
             room_numbers=["101", "102"], priority=10),
    RoomType(id="rt_suite", name="Suite", price_per_night=150_000, room_count=1,
             room_numbers=["301"], priority=30),
]

ADD_ONS = [
    AddOn(id="addon_breakfast", name="Breakfast", price=25_000, price_type="per_person_per_night", max_quantity=1),
    AddOn(id="addon_extra_bed", name="Extra bed", price=50_000, price_type="per_night", max_quantity=2),
    AddOn(id="addon_spa", name="Spa package", price=80_000, price_type="once", room_type_id="rt_suite"),
    AddOn(id="addon_retired", name="Minibar", price=10_000, price_type="once", is_active=False),
]


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Force pytest-anyio to use asyncio event loop."""

    return "asyncio"


@pytest.fixture
def make_booking() -> Callable[..., Booking]:
    """Factory for active bookings holding one or more (room type, unit) pairs."""

    def _make(
        units: List[tuple],
        check_in: date,
        check_out: date,
        **fields: Any,
    ) -> Booking:
        booking_id = fields.pop("id", None) or f"bk_{uuid.uuid4().hex[:8]}"
        rates = {rt.id: rt.price_per_night for rt in ROOM_TYPES}
        allocations = [
            RoomAllocation(
                booking_id=booking_id,
                room_type_id=room_type_id,
                room_number=room_number,
                price_per_night=rates.get(room_type_id, 0),
            )
            for room_type_id, room_number in units
        ]
        nights = (check_out - check_in).days
        fields.setdefault("guest_name", "Existing Guest")
        fields.setdefault("status", "confirmed")
        fields.setdefault("total_nights", nights)
        fields.setdefault("total_price", sum(a.price_per_night for a in allocations) * nights)
        return Booking(
            id=booking_id,
            booking_code=f"BK-{booking_id}",
            check_in=check_in,
            check_out=check_out,
            allocations=allocations,
            **fields,
        )

    return _make


@pytest.fixture
def repo() -> InMemoryReservationRepository:
    """Fresh inventory for every test; no bookings."""

    return InMemoryReservationRepository(room_types=ROOM_TYPES, add_ons=ADD_ONS)


@pytest.fixture(scope="function")
async def app_with_overrides(repo: InMemoryReservationRepository) -> AsyncGenerator[Any, None]:
    """FastAPI app instance whose repository dependency points to the in-memory repo."""

    async def override_get_repository():
        return repo

    app.dependency_overrides[get_repository] = override_get_repository
    try:
        yield app
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def async_client(app_with_overrides) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = ASGITransport(app=app_with_overrides)
    async with httpx.AsyncClient(transport=transport, base_url="http://test", timeout=30.0) as client:
        yield client


@pytest.fixture(scope="function")
async def mongo_db() -> AsyncGenerator[Any, None]:
    """Function-scoped throwaway database; skips when MongoDB is not reachable."""

    client = AsyncIOMotorClient(MONGO_URL, serverSelectionTimeoutMS=1000, tz_aware=True)
    try:
        await client.admin.command("ping")
    except PyMongoError:
        client.close()
        pytest.skip(f"MongoDB not reachable at {MONGO_URL}")

    db_name = f"lodging_test_{uuid.uuid4().hex}"
    try:
        yield client[db_name]
    finally:
        await client.drop_database(db_name)
        client.close()
