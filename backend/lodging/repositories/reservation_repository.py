"""Data access for rooms, bookings and add-ons.

There is no reservation token and no row lock anywhere in this interface:
``save_booking`` is last-write-wins. Callers run the conflict detector as an
advisory pre-check, so two editors racing on the same unit can both pass it
and both write.
"""

from __future__ import annotations

import abc
import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from lodging import config
from lodging.domain.booking_normalization import normalize_booking
from lodging.repositories.base_repository import get_collection, guarded
from lodging.schemas import (
    INACTIVE_BOOKING_STATUSES,
    AddOn,
    Booking,
    RoomAllocation,
    RoomType,
    UnitBlock,
)
from lodging.utils import date_to_str, now_utc, time_to_str

logger = logging.getLogger(__name__)


class ReservationRepository(abc.ABC):
    """Read/write contract the engine needs from the data store."""

    @abc.abstractmethod
    async def find_active_bookings_for_unit(
        self,
        room_type_id: str,
        room_number: str,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """Bookings holding the unit whose dates touch ``[check_in, check_out]``.

        Touching (not only overlapping) ranges are returned so the caller can
        apply the turnover-day time rule. Cancelled/rejected bookings and the
        excluded booking are left out.
        """

    @abc.abstractmethod
    async def find_all_room_types(self, include_unavailable: bool = False) -> List[RoomType]:
        ...

    @abc.abstractmethod
    async def get_room_type(self, room_type_id: str) -> Optional[RoomType]:
        ...

    @abc.abstractmethod
    async def find_active_add_ons(self, room_type_id: Optional[str] = None) -> List[AddOn]:
        """Active add-ons for the room type plus those scoped to every type."""

    @abc.abstractmethod
    async def find_unit_blocks(
        self,
        room_type_id: str,
        room_number: str,
        check_in: date,
        check_out: date,
    ) -> List[UnitBlock]:
        """Blocks on nights inside ``[check_in, check_out)``."""

    @abc.abstractmethod
    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        ...

    @abc.abstractmethod
    async def save_booking(self, booking: Booking, allocations: List[RoomAllocation]) -> Booking:
        """Insert or update the booking and replace all of its allocations."""

    @abc.abstractmethod
    async def replace_allocations(self, booking_id: str, allocations: List[RoomAllocation]) -> None:
        ...

    @abc.abstractmethod
    async def update_booking_status(self, booking_id: str, status: str) -> Optional[Booking]:
        ...

    @abc.abstractmethod
    async def delete_booking(self, booking_id: str) -> bool:
        ...


def booking_to_doc(booking: Booking) -> Dict[str, Any]:
    """Serialise a booking for the ``bookings`` collection.

    Allocations live in ``booking_rooms``; the first one is mirrored onto the
    legacy ``room_id`` / ``allocated_room_number`` fields for older readers.
    """

    doc = booking.model_dump(exclude={"id", "allocations"})
    doc["_id"] = booking.id
    doc["check_in"] = date_to_str(booking.check_in)
    doc["check_out"] = date_to_str(booking.check_out)
    doc["check_in_time"] = time_to_str(booking.check_in_time)
    doc["check_out_time"] = time_to_str(booking.check_out_time)
    if booking.allocations:
        doc["room_id"] = booking.allocations[0].room_type_id
        doc["allocated_room_number"] = booking.allocations[0].room_number
    return doc


class MongoReservationRepository(ReservationRepository):
    def __init__(self, db: AsyncIOMotorDatabase, timeout: Optional[float] = None) -> None:
        self._db = db
        self._timeout = config.CONFLICT_CHECK_TIMEOUT_SECONDS if timeout is None else timeout
        self._room_types = get_collection(db, "room_types")
        self._bookings = get_collection(db, "bookings")
        self._booking_rooms = get_collection(db, "booking_rooms")
        self._add_ons = get_collection(db, "room_addons")
        self._unit_blocks = get_collection(db, "room_unit_blocks")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _room_types_by_id(self) -> Dict[str, RoomType]:
        room_types = await self.find_all_room_types(include_unavailable=True)
        return {rt.id: rt for rt in room_types}

    async def _allocations_by_booking(self, booking_ids: Iterable[str]) -> Dict[str, List[Dict[str, Any]]]:
        ids = list(booking_ids)
        if not ids:
            return {}
        docs = await guarded(
            "booking_rooms.find",
            self._booking_rooms.find({"booking_id": {"$in": ids}}).to_list(length=None),
            self._timeout,
        )
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for d in docs:
            grouped.setdefault(str(d["booking_id"]), []).append(d)
        return grouped

    async def _normalize_many(self, docs: List[Dict[str, Any]]) -> List[Booking]:
        if not docs:
            return []
        allocations = await self._allocations_by_booking(str(d["_id"]) for d in docs)
        room_types = await self._room_types_by_id()
        return [
            normalize_booking(d, allocations.get(str(d["_id"]), []), room_types)
            for d in docs
        ]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_active_bookings_for_unit(
        self,
        room_type_id: str,
        room_number: str,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        rows = await guarded(
            "booking_rooms.find",
            self._booking_rooms.find(
                {"room_type_id": room_type_id, "room_number": room_number},
                {"booking_id": 1},
            ).to_list(length=None),
            self._timeout,
        )
        allocated_ids = sorted({str(r["booking_id"]) for r in rows})

        flt: Dict[str, Any] = {
            "$or": [
                {"_id": {"$in": allocated_ids}},
                {"room_id": room_type_id, "allocated_room_number": room_number},
            ],
            "status": {"$nin": sorted(INACTIVE_BOOKING_STATUSES)},
            "check_in": {"$lte": date_to_str(check_out)},
            "check_out": {"$gte": date_to_str(check_in)},
        }
        if exclude_booking_id:
            flt["_id"] = {"$ne": exclude_booking_id}

        docs = await guarded(
            "bookings.find",
            self._bookings.find(flt).sort("check_in", 1).to_list(length=None),
            self._timeout,
        )
        return await self._normalize_many(docs)

    async def find_all_room_types(self, include_unavailable: bool = False) -> List[RoomType]:
        flt: Dict[str, Any] = {} if include_unavailable else {"available": {"$ne": False}}
        docs = await guarded(
            "room_types.find",
            self._room_types.find(flt).sort("name", 1).to_list(length=None),
            self._timeout,
        )
        return [RoomType.model_validate({**d, "id": str(d["_id"])}) for d in docs]

    async def get_room_type(self, room_type_id: str) -> Optional[RoomType]:
        doc = await guarded(
            "room_types.find_one",
            self._room_types.find_one({"_id": room_type_id}),
            self._timeout,
        )
        if not doc:
            return None
        return RoomType.model_validate({**doc, "id": str(doc["_id"])})

    async def find_active_add_ons(self, room_type_id: Optional[str] = None) -> List[AddOn]:
        flt: Dict[str, Any] = {"is_active": True}
        if room_type_id:
            flt["$or"] = [{"room_type_id": None}, {"room_type_id": room_type_id}]
        else:
            flt["room_type_id"] = None
        docs = await guarded(
            "room_addons.find",
            self._add_ons.find(flt).sort("display_order", 1).to_list(length=None),
            self._timeout,
        )
        return [AddOn.model_validate({**d, "id": str(d["_id"])}) for d in docs]

    async def find_unit_blocks(
        self,
        room_type_id: str,
        room_number: str,
        check_in: date,
        check_out: date,
    ) -> List[UnitBlock]:
        docs = await guarded(
            "room_unit_blocks.find",
            self._unit_blocks.find(
                {
                    "room_type_id": room_type_id,
                    "room_number": room_number,
                    "unavailable_date": {"$gte": date_to_str(check_in), "$lt": date_to_str(check_out)},
                }
            ).to_list(length=None),
            self._timeout,
        )
        return [UnitBlock.model_validate(d) for d in docs]

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        doc = await guarded(
            "bookings.find_one",
            self._bookings.find_one({"_id": booking_id}),
            self._timeout,
        )
        if not doc:
            return None
        bookings = await self._normalize_many([doc])
        return bookings[0]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save_booking(self, booking: Booking, allocations: List[RoomAllocation]) -> Booking:
        stored = booking.model_copy(
            update={
                "allocations": [a.model_copy(update={"booking_id": booking.id}) for a in allocations],
                "created_at": booking.created_at or now_utc(),
            }
        )
        doc = booking_to_doc(stored)
        doc["updated_at"] = now_utc()

        await guarded(
            "bookings.replace_one",
            self._bookings.replace_one({"_id": stored.id}, doc, upsert=True),
        )
        await self.replace_allocations(stored.id, stored.allocations)
        logger.info(
            "booking %s saved with %d allocation(s)",
            stored.booking_code or stored.id,
            len(stored.allocations),
        )
        return stored

    async def replace_allocations(self, booking_id: str, allocations: List[RoomAllocation]) -> None:
        await guarded(
            "booking_rooms.delete_many",
            self._booking_rooms.delete_many({"booking_id": booking_id}),
        )
        if not allocations:
            return
        docs = [
            {
                "booking_id": booking_id,
                "room_type_id": a.room_type_id,
                "room_number": a.room_number,
                "price_per_night": a.price_per_night,
                "created_at": now_utc(),
            }
            for a in allocations
        ]
        await guarded("booking_rooms.insert_many", self._booking_rooms.insert_many(docs))

    async def update_booking_status(self, booking_id: str, status: str) -> Optional[Booking]:
        res = await guarded(
            "bookings.update_one",
            self._bookings.update_one(
                {"_id": booking_id},
                {"$set": {"status": status, "updated_at": now_utc()}},
            ),
        )
        if res.matched_count == 0:
            return None
        return await self.get_booking(booking_id)

    async def delete_booking(self, booking_id: str) -> bool:
        res = await guarded("bookings.delete_one", self._bookings.delete_one({"_id": booking_id}))
        await guarded(
            "booking_rooms.delete_many",
            self._booking_rooms.delete_many({"booking_id": booking_id}),
        )
        return res.deleted_count > 0
