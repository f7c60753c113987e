"""
Trash bin endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends

from ..system import PawnshopSystem
from .deps import document, get_actor, get_system, http_errors


router = APIRouter()


@router.get("")
async def list_trash(
    item_type: Optional[str] = None,
    system: PawnshopSystem = Depends(get_system)
):
    items = system.trash_bin.list_items(item_type)
    return {"items": document(items), "total": len(items)}


@router.get("/logs")
async def trash_logs(limit: Optional[int] = None, system: PawnshopSystem = Depends(get_system)):
    """Trash actions, newest first"""
    events = system.trash_bin.logs(limit)
    return {"logs": [event.to_dict() for event in events]}


@router.delete("")
async def empty_trash(
    item_type: Optional[str] = None,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        count = system.trash_bin.empty(item_type, deleted_by=actor)
    return {"deleted_count": count}


@router.get("/{trash_id}")
async def get_trash_item(trash_id: str, system: PawnshopSystem = Depends(get_system)):
    with http_errors():
        item = system.trash_bin.require_item(trash_id)
    return document(item)


@router.post("/{trash_id}/restore")
async def restore_trash_item(
    trash_id: str,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """Put a deleted record back where it came from"""
    with http_errors():
        system.trash_bin.restore(trash_id, restored_by=actor)
    return {"message": "Item restored successfully"}


@router.delete("/{trash_id}")
async def delete_trash_item(
    trash_id: str,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        system.trash_bin.delete_permanently(trash_id, deleted_by=actor)
    return {"message": "Item permanently deleted"}
