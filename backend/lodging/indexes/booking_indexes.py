from __future__ import annotations

from pymongo import ASCENDING
from pymongo.errors import OperationFailure
import logging

logger = logging.getLogger(__name__)


async def ensure_booking_indexes(db):
    """Ensure indexes behind the conflict and availability queries.

    Same pattern as the other index modules: keep an existing index whose
    options differ, but log it.
    """

    async def _safe_create(collection, *args, **kwargs):
        try:
            await collection.create_index(*args, **kwargs)
        except OperationFailure as e:
            msg = str(e).lower()
            if (
                "indexoptionsconflict" in msg
                or "indexkeyspecsconflict" in msg
                or "already exists" in msg
            ):
                logger.warning(
                    "[booking_indexes] Keeping legacy index for %s (name=%s): %s",
                    collection.name,
                    kwargs.get("name"),
                    msg,
                )
                return
            raise

    # Allocation rows: unit lookup for conflict checks, booking lookup for loads
    await _safe_create(
        db.booking_rooms,
        [("room_type_id", ASCENDING), ("room_number", ASCENDING)],
        name="booking_rooms_unit",
    )
    await _safe_create(
        db.booking_rooms,
        [("booking_id", ASCENDING)],
        name="booking_rooms_booking",
    )

    # Legacy single-room bookings are matched on the denormalised unit fields
    await _safe_create(
        db.bookings,
        [("room_id", ASCENDING), ("allocated_room_number", ASCENDING), ("status", ASCENDING)],
        name="bookings_legacy_unit_status",
    )
    await _safe_create(
        db.bookings,
        [("check_in", ASCENDING), ("check_out", ASCENDING)],
        name="bookings_stay_range",
    )
    await _safe_create(
        db.bookings,
        [("booking_code", ASCENDING)],
        name="bookings_code",
        unique=True,
        sparse=True,
    )

    await _safe_create(
        db.room_addons,
        [("is_active", ASCENDING), ("room_type_id", ASCENDING), ("display_order", ASCENDING)],
        name="room_addons_active_scope",
    )
    await _safe_create(
        db.room_unit_blocks,
        [("room_type_id", ASCENDING), ("room_number", ASCENDING), ("unavailable_date", ASCENDING)],
        name="room_unit_blocks_unit_date",
    )
