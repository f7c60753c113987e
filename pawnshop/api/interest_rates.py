"""
Interest rate card endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from ..system import PawnshopSystem
from .deps import changes_of, document, get_actor, get_system, http_errors
from .schemas import CreateInterestRateRequest, UpdateInterestRateRequest


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_interest_rate(
    request: CreateInterestRateRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        band = system.interest_rate_manager.create_rate(**request.dict(), created_by=actor)
    return document(band)


@router.get("")
async def list_interest_rates(
    metal_type: Optional[str] = None,
    system: PawnshopSystem = Depends(get_system)
):
    with http_errors():
        bands = system.interest_rate_manager.list_rates(metal_type)
    return {"rates": document(bands)}


@router.get("/lookup")
async def lookup_interest_rate(
    metal_type: str,
    amount: str,
    system: PawnshopSystem = Depends(get_system)
):
    """Band covering a loan amount"""
    with http_errors():
        band = system.interest_rate_manager.rate_for(metal_type, amount)
    return document(band)


@router.get("/{rate_id}")
async def get_interest_rate(rate_id: str, system: PawnshopSystem = Depends(get_system)):
    with http_errors():
        band = system.interest_rate_manager.require_rate(rate_id)
    return document(band)


@router.put("/{rate_id}")
async def update_interest_rate(
    rate_id: str,
    request: UpdateInterestRateRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        band = system.interest_rate_manager.update_rate(rate_id, changes_of(request), actor)
    return document(band)


@router.delete("/{rate_id}")
async def delete_interest_rate(
    rate_id: str,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        system.interest_rate_manager.delete_rate(rate_id, deleted_by=actor)
    return {"message": "Interest rate moved to trash"}
