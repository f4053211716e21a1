from __future__ import annotations

from datetime import date

import pytest

from lodging.errors import DataAccessError, NotFoundError
from lodging.schemas import UnitBlock
from lodging.services.room_availability import (
    check_room_type_availability,
    find_alternative_room_types,
    get_room_type_availability,
)


JUN_1, JUN_3, JUN_5 = date(2025, 6, 1), date(2025, 6, 3), date(2025, 6, 5)


@pytest.mark.anyio
async def test_partition_is_exhaustive_and_disjoint(repo, make_booking) -> None:
    for unit in ("201", "203"):
        b = make_booking([("rt_deluxe", unit)], JUN_1, JUN_5)
        repo.bookings[b.id] = b

    result = await check_room_type_availability(repo, "rt_deluxe", JUN_3, JUN_5)

    assert result.computed is True
    assert result.booked_units == ["201", "203"]
    assert result.available_units == ["202"]
    assert result.available_count == 1
    assert set(result.booked_units) | set(result.available_units) == {"201", "202", "203"}
    assert not set(result.booked_units) & set(result.available_units)
    assert result.total_units == 3


@pytest.mark.anyio
async def test_blocked_unit_is_reported_as_booked(repo) -> None:
    repo.blocks.append(UnitBlock(room_type_id="rt_superior", room_number="101", unavailable_date=JUN_3))

    result = await check_room_type_availability(repo, "rt_superior", JUN_3, JUN_5)

    assert result.booked_units == ["101"]
    assert result.available_units == ["102"]


@pytest.mark.anyio
async def test_incomplete_range_is_not_computed(repo, make_booking) -> None:
    b = make_booking([("rt_deluxe", "201")], JUN_1, JUN_5)
    repo.bookings[b.id] = b

    result = await check_room_type_availability(repo, "rt_deluxe", JUN_3, None)

    assert result.computed is False
    assert result.available_units == ["201", "202", "203"]
    assert result.booked_units == []


@pytest.mark.anyio
async def test_excluded_booking_frees_its_own_unit(repo, make_booking) -> None:
    b = make_booking([("rt_suite", "301")], JUN_1, JUN_5)
    repo.bookings[b.id] = b

    without = await check_room_type_availability(repo, "rt_suite", JUN_3, JUN_5)
    with_exclusion = await check_room_type_availability(repo, "rt_suite", JUN_3, JUN_5, exclude_booking_id=b.id)

    assert without.available_count == 0
    assert with_exclusion.available_units == ["301"]


@pytest.mark.anyio
async def test_any_unit_failure_fails_the_whole_room_type(repo) -> None:
    repo.fail_reads = True
    with pytest.raises(DataAccessError):
        await get_room_type_availability(repo, JUN_3, JUN_5)


@pytest.mark.anyio
async def test_unknown_room_type_is_not_found(repo) -> None:
    with pytest.raises(NotFoundError):
        await check_room_type_availability(repo, "rt_missing", JUN_3, JUN_5)


@pytest.mark.anyio
async def test_unavailable_room_types_are_skipped(repo) -> None:
    repo.room_types["rt_suite"] = repo.room_types["rt_suite"].model_copy(update={"available": False})

    entries = await get_room_type_availability(repo, JUN_3, JUN_5)

    assert [e.room_type_id for e in entries] == ["rt_deluxe", "rt_superior"]


@pytest.mark.anyio
async def test_alternatives_ranked_by_priority_then_free_units(repo, make_booking) -> None:
    # Deluxe sold out; Suite (priority 30, 1 free) must rank above Superior (priority 10, 2 free)
    for unit in ("201", "202", "203"):
        b = make_booking([("rt_deluxe", unit)], JUN_1, JUN_5)
        repo.bookings[b.id] = b

    alternatives = await find_alternative_room_types(repo, JUN_3, JUN_5, exclude_room_type_id="rt_deluxe")

    assert [a.room_type_id for a in alternatives] == ["rt_suite", "rt_superior"]
    assert alternatives[1].available_count == 2


@pytest.mark.anyio
async def test_equal_priority_prefers_more_free_units(repo, make_booking) -> None:
    repo.room_types["rt_suite"] = repo.room_types["rt_suite"].model_copy(update={"priority": 10})

    alternatives = await find_alternative_room_types(repo, JUN_3, JUN_5, exclude_room_type_id="rt_deluxe")

    assert [a.room_type_id for a in alternatives] == ["rt_superior", "rt_suite"]


@pytest.mark.anyio
async def test_sold_out_types_are_not_alternatives(repo, make_booking) -> None:
    b = make_booking([("rt_suite", "301")], JUN_1, JUN_5)
    repo.bookings[b.id] = b

    alternatives = await find_alternative_room_types(repo, JUN_3, JUN_5, exclude_room_type_id="rt_deluxe")

    assert [a.room_type_id for a in alternatives] == ["rt_superior"]
