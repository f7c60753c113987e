"""
Financial year endpoints
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from ..financial_years import FinancialYear
from ..system import PawnshopSystem
from .deps import changes_of, document, get_actor, get_system, http_errors
from .schemas import CreateFinancialYearRequest, UpdateFinancialYearRequest


router = APIRouter()


def year_response(financial_year: FinancialYear) -> Dict[str, Any]:
    body = document(financial_year)
    body['period'] = financial_year.period
    return body


@router.post("")
async def create_financial_year(
    request: CreateFinancialYearRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        financial_year = system.financial_year_manager.create_year(
            **request.dict(), created_by=actor
        )
    return year_response(financial_year)


@router.get("")
async def list_financial_years(system: PawnshopSystem = Depends(get_system)):
    with http_errors():
        years = system.financial_year_manager.list_years()
    return {"financial_years": [year_response(y) for y in years]}


@router.get("/active")
async def get_active_financial_year(system: PawnshopSystem = Depends(get_system)):
    with http_errors():
        financial_year = system.financial_year_manager.active_year()
    return year_response(financial_year)


@router.get("/summary/{year}")
async def financial_year_summary(year: int, system: PawnshopSystem = Depends(get_system)):
    with http_errors():
        summary = system.financial_year_manager.summary(year)
    return document(summary)


@router.put("/{year_id}")
async def update_financial_year(
    year_id: str,
    request: UpdateFinancialYearRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        financial_year = system.financial_year_manager.update_year(
            year_id, changes_of(request), actor
        )
    return year_response(financial_year)


@router.delete("/{year_id}")
async def delete_financial_year(
    year_id: str,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        system.financial_year_manager.delete_year(year_id, deleted_by=actor)
    return {"message": "Financial year moved to trash"}
