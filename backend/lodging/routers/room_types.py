from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from lodging.repositories.reservation_repository import ReservationRepository
from lodging.routers.deps import get_repository

router = APIRouter(prefix="/api", tags=["inventory"])


@router.get("/room-types")
async def list_room_types(
    include_unavailable: bool = Query(False),
    repo: ReservationRepository = Depends(get_repository),
) -> Dict[str, List[Dict[str, Any]]]:
    room_types = await repo.find_all_room_types(include_unavailable=include_unavailable)
    return {"items": [rt.model_dump() for rt in room_types]}


@router.get("/add-ons")
async def list_add_ons(
    room_type_id: Optional[str] = Query(None),
    repo: ReservationRepository = Depends(get_repository),
) -> Dict[str, List[Dict[str, Any]]]:
    """Active add-ons offered with ``room_type_id`` (plus those offered with every type)."""

    add_ons = await repo.find_active_add_ons(room_type_id)
    return {"items": [a.model_dump() for a in add_ons]}
