"""
Collection desk endpoints
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from ..collections import Collection
from ..dates import format_display
from ..system import PawnshopSystem
from .deps import document, get_actor, get_system, http_errors, page_limit
from .loans import engine_response, payment_response
from .schemas import AssignCollectionRequest, PaymentRequest, StatusRequest


router = APIRouter()


def collection_response(collection: Collection) -> Dict[str, Any]:
    return document({
        "loan_id": collection.loan_id,
        "customer_id": collection.customer_id,
        "customer_name": collection.customer_name,
        "customer_phone": collection.customer_phone,
        "customer_address": collection.customer_address,
        "customer_father_spouse": collection.customer_father_spouse,
        "customer_alt_phone": collection.customer_alt_phone,
        "original_loan_amount": collection.original_loan_amount,
        "total_amount": collection.total_amount,
        "total_interest": collection.total_interest,
        "number_of_installments": collection.number_of_installments,
        "installment_frequency": collection.installment_frequency,
        "collection_status": collection.collection_status,
        "total_paid_amount": collection.total_paid_amount,
        "total_fines_paid": collection.total_fines_paid,
        "remaining_balance": collection.remaining_balance,
        "paid_installments": collection.paid_installments,
        "pending_installments": collection.pending_installments,
        "overdue_installments": collection.overdue_installments,
        "next_due_date": format_display(collection.next_due_date),
        "next_due_amount": collection.next_due_amount,
        "next_installment_no": collection.next_installment_no,
        "installments": [i.to_display() for i in collection.installments],
        "payments": [payment_response(p) for p in collection.payments],
        "first_payment_date": format_display(collection.first_payment_date),
        "last_payment_date": format_display(collection.last_payment_date),
        "assigned_to": collection.assigned_to,
        "collection_route": collection.collection_route,
        "priority": collection.priority,
        "notes": collection.notes,
        "synced_at": collection.synced_at,
    })


@router.get("")
async def list_collections(
    search: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
    system: PawnshopSystem = Depends(get_system)
):
    """Collections on the desk, soonest due first"""
    with http_errors():
        result = system.collections_manager.list_collections(
            search=search, page=page, limit=page_limit(limit, system)
        )
    result['collections'] = [collection_response(c) for c in result['collections']]
    return result


@router.get("/dashboard")
async def collections_dashboard(system: PawnshopSystem = Depends(get_system)):
    return document(system.collections_manager.dashboard())


@router.post("/sync-all")
async def sync_all_collections(system: PawnshopSystem = Depends(get_system)):
    """Create or refresh the collection of every open loan"""
    with http_errors():
        return system.collections_manager.sync_all()


@router.get("/{loan_id}")
async def get_collection(loan_id: str, system: PawnshopSystem = Depends(get_system)):
    with http_errors():
        collection = system.collections_manager.get_for_collection(loan_id)
    return collection_response(collection)


@router.get("/{loan_id}/summary")
async def get_collection_summary(loan_id: str, system: PawnshopSystem = Depends(get_system)):
    with http_errors():
        summary = system.collections_manager.summary(loan_id)
    summary['next_due_date'] = format_display(summary['next_due_date'])
    return document(summary)


@router.post("/{loan_id}/sync")
async def sync_collection(loan_id: str, system: PawnshopSystem = Depends(get_system)):
    with http_errors():
        collection = system.collections_manager.sync_with_loan(loan_id)
    return collection_response(collection)


@router.post("/{loan_id}/resync")
async def resync_collection(loan_id: str, system: PawnshopSystem = Depends(get_system)):
    """Rebuild the collection entirely from its loan"""
    with http_errors():
        collection = system.collections_manager.resync(loan_id)
    return collection_response(collection)


@router.put("/{loan_id}/assign")
async def assign_collection(
    loan_id: str,
    request: AssignCollectionRequest,
    system: PawnshopSystem = Depends(get_system)
):
    with http_errors():
        collection = system.collections_manager.assign(
            loan_id, request.assigned_to,
            collection_route=request.collection_route, notes=request.notes
        )
    return collection_response(collection)


@router.put("/{loan_id}/status")
async def set_collection_status(
    loan_id: str,
    request: StatusRequest,
    system: PawnshopSystem = Depends(get_system)
):
    """Suspend or reactivate collection work"""
    with http_errors():
        collection = system.collections_manager.set_collection_status(loan_id, request.status)
    return collection_response(collection)


@router.post("/{loan_id}/payments")
async def collect_payment(
    loan_id: str,
    request: PaymentRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """Installment payment taken by a collection agent"""
    with http_errors():
        result = system.payment_engine.apply_payment(
            loan_id,
            request.installment_no,
            request.paid_amount,
            fine_amount=request.fine_amount,
            payment_method=request.payment_method,
            notes=request.notes,
            collected_by=actor,
            payment_date=request.payment_date
        )
    return engine_response(result)
