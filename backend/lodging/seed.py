from __future__ import annotations

import logging

from lodging.utils import now_utc

logger = logging.getLogger(__name__)


DEMO_ROOM_TYPES = [
    {
        "_id": "rt_deluxe",
        "name": "Deluxe",
        "price_per_night": 450_000,
        "room_count": 4,
        "room_numbers": ["201", "202", "203", "204"],
        "priority": 20,
        "available": True,
    },
    {
        "_id": "rt_superior",
        "name": "Superior",
        "price_per_night": 350_000,
        "room_count": 4,
        "room_numbers": ["101", "102", "103", "104"],
        "priority": 10,
        "available": True,
    },
    {
        "_id": "rt_family",
        "name": "Family Suite",
        "price_per_night": 750_000,
        "room_count": 2,
        "room_numbers": ["301", "302"],
        "priority": 5,
        "available": True,
    },
]

DEMO_ADD_ONS = [
    {
        "_id": "addon_breakfast",
        "name": "Breakfast",
        "price": 50_000,
        "price_type": "per_person_per_night",
        "max_quantity": 1,
        "room_type_id": None,
        "is_active": True,
        "display_order": 1,
    },
    {
        "_id": "addon_extra_bed",
        "name": "Extra bed",
        "price": 150_000,
        "price_type": "per_night",
        "max_quantity": 2,
        "room_type_id": None,
        "is_active": True,
        "display_order": 2,
    },
    {
        "_id": "addon_airport_pickup",
        "name": "Airport pickup",
        "price": 200_000,
        "price_type": "once",
        "max_quantity": 1,
        "room_type_id": None,
        "is_active": True,
        "display_order": 3,
    },
]


async def ensure_seed_data(db) -> None:
    """Insert demo room types and add-ons when the collections are empty."""

    if await db.room_types.count_documents({}) == 0:
        now = now_utc()
        await db.room_types.insert_many([{**rt, "created_at": now} for rt in DEMO_ROOM_TYPES])
        logger.info("seeded %d demo room types", len(DEMO_ROOM_TYPES))

    if await db.room_addons.count_documents({}) == 0:
        now = now_utc()
        await db.room_addons.insert_many([{**a, "created_at": now} for a in DEMO_ADD_ONS])
        logger.info("seeded %d demo add-ons", len(DEMO_ADD_ONS))
