"""
Jewel catalogue and metal rate endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from ..system import PawnshopSystem
from .deps import changes_of, document, get_actor, get_system, http_errors
from .schemas import CreateJewelRequest, JewelRateRequest, UpdateJewelRequest


router = APIRouter()
rates_router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_jewel(
    request: CreateJewelRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        jewel = system.jewel_manager.create_jewel(**request.dict(), created_by=actor)
    return document(jewel)


@router.get("")
async def list_jewels(
    category: Optional[str] = None,
    material: Optional[str] = None,
    system: PawnshopSystem = Depends(get_system)
):
    with http_errors():
        jewels = system.jewel_manager.list_jewels(category, material)
    return {"jewels": document(jewels), "total": len(jewels)}


@router.get("/{item_id}")
async def get_jewel(item_id: str, system: PawnshopSystem = Depends(get_system)):
    with http_errors():
        jewel = system.jewel_manager.require_jewel(item_id)
    return document(jewel)


@router.put("/{item_id}")
async def update_jewel(
    item_id: str,
    request: UpdateJewelRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        jewel = system.jewel_manager.update_jewel(item_id, changes_of(request), actor)
    return document(jewel)


@router.delete("/{item_id}")
async def delete_jewel(
    item_id: str,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        system.jewel_manager.delete_jewel(item_id, deleted_by=actor)
    return {"message": "Jewel moved to trash"}


@rates_router.get("")
async def list_jewel_rates(system: PawnshopSystem = Depends(get_system)):
    with http_errors():
        rates = system.jewel_rate_manager.list_rates()
    return {"rates": document(rates)}


@rates_router.post("")
async def set_jewel_rate(
    request: JewelRateRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """Create or replace the per-gram rate of a metal"""
    with http_errors():
        jewel_rate = system.jewel_rate_manager.set_rate(
            request.metal_type, request.rate, request.date, updated_by=actor
        )
    return document(jewel_rate)


@rates_router.get("/{metal_type}")
async def get_jewel_rate(metal_type: str, system: PawnshopSystem = Depends(get_system)):
    with http_errors():
        jewel_rate = system.jewel_rate_manager.require_rate(metal_type)
    return document(jewel_rate)


@rates_router.get("/{metal_type}/value")
async def metal_value(
    metal_type: str,
    weight: str,
    system: PawnshopSystem = Depends(get_system)
):
    """Metal value of a weight in grams at the current rate"""
    with http_errors():
        value = system.jewel_rate_manager.value_of(metal_type, weight)
    return {"metal_type": metal_type.lower(), "weight": weight, "value": str(value)}


@rates_router.delete("/{metal_type}")
async def delete_jewel_rate(
    metal_type: str,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        system.jewel_rate_manager.delete_rate(metal_type, deleted_by=actor)
    return {"message": "Jewel rate deleted successfully"}
