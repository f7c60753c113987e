"""
Ledger, stock summary, day book and overview endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..system import PawnshopSystem
from .deps import document, get_actor, get_system, http_errors, page_limit
from .loans import loan_response


ledger_router = APIRouter()
stock_router = APIRouter()
day_book_router = APIRouter()
overview_router = APIRouter()


@ledger_router.get("")
async def get_ledger(
    day: Optional[str] = Query(None, alias="date"),
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """Regenerate and return the ledger for a date (today by default)"""
    with http_errors():
        report = system.ledger.rebuild(day, requested_by=actor)
    return document(report)


@ledger_router.get("/entries")
async def get_ledger_entries(
    day: str = Query(..., alias="date"),
    system: PawnshopSystem = Depends(get_system)
):
    """Stored ledger entries for a date, without regenerating"""
    with http_errors():
        entries = system.ledger.entries(day)
    return {"entries": document(entries), "total": len(entries)}


@stock_router.get("")
async def get_stock_summary(
    search: Optional[str] = None,
    date_filter: Optional[str] = Query(None, alias="date"),
    status_filter: Optional[str] = Query(None, alias="status"),
    jewel_type: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
    system: PawnshopSystem = Depends(get_system)
):
    with http_errors():
        result = system.stock_summary.get(
            search=search, date_filter=date_filter, status_filter=status_filter,
            jewel_type=jewel_type, page=page, limit=page_limit(limit, system)
        )
    return document(result)


@stock_router.post("/rebuild")
async def rebuild_stock_summary(
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        summary = system.stock_summary.rebuild(requested_by=actor)
    return document({
        "record_count": len(summary['items']),
        "totals": summary['totals'],
        "errors": summary['errors'],
        "last_updated": summary['last_updated'],
    })


@stock_router.get("/dashboard")
async def stock_dashboard(system: PawnshopSystem = Depends(get_system)):
    with http_errors():
        return document(system.stock_summary.dashboard())


@day_book_router.get("/{day}")
async def get_day_book(
    day: str,
    regenerate: bool = False,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """New loans, interest received and closures for a date"""
    with http_errors():
        book = system.day_book.generate(day, regenerate=regenerate, requested_by=actor)
    return document(book)


@overview_router.get("")
async def get_overview(
    day: Optional[str] = Query(None, alias="date"),
    system: PawnshopSystem = Depends(get_system)
):
    with http_errors():
        return document(system.overview.dashboard(day))


@overview_router.get("/loans")
async def get_overview_loans(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    system: PawnshopSystem = Depends(get_system)
):
    """Loans starting inside a date range"""
    with http_errors():
        loans = system.overview.loans_between(start_date, end_date)
    return {"loans": [loan_response(loan) for loan in loans], "total_count": len(loans)}


@overview_router.get("/due")
async def get_due_loans(
    period: str,
    day: str = Query(..., alias="date"),
    system: PawnshopSystem = Depends(get_system)
):
    """Loans of a frequency with an unpaid installment due in the period"""
    with http_errors():
        loans = system.overview.due_loans(period, day)
    return {"loans": [loan_response(loan) for loan in loans]}


@overview_router.get("/received-payments")
async def get_received_payments(
    day: str = Query(..., alias="date"),
    system: PawnshopSystem = Depends(get_system)
):
    with http_errors():
        return {"payments": document(system.overview.received_payments(day))}
