"""
Loan endpoints

Installment and payment dates are rendered as DD/MM/YYYY for the collection
desk clients; request dates may use either format.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from ..dates import format_display
from ..loans import Loan, Payment
from ..schedule import generate_schedule
from ..system import PawnshopSystem
from .deps import changes_of, document, get_actor, get_system, http_errors
from .schemas import (
    BulkUpdateLoansRequest, CloseRequest, CreateLoanRequest, PartialPaymentRequest,
    PaymentRequest, ScheduleRequest, StatusRequest, UpdateLoanRequest,
)


router = APIRouter()


def payment_response(payment: Payment) -> Dict[str, Any]:
    data = payment.to_dict()
    data['payment_date'] = format_display(payment.payment_date)
    return data


def loan_response(loan: Loan) -> Dict[str, Any]:
    upcoming = loan.next_due_installment
    return {
        "loan_id": loan.id,
        "customer_id": loan.customer_id,
        "customer_name": loan.customer_name,
        "customer_phone": loan.customer_phone,
        "customer_father_spouse": loan.customer_father_spouse,
        "customer_alt_phone": loan.customer_alt_phone,
        "customer_address": loan.customer_address,
        "customer_gov_id_type": loan.customer_gov_id_type,
        "customer_gov_id_number": loan.customer_gov_id_number,
        "loan_amount": str(loan.loan_amount),
        "interest_rate": str(loan.interest_rate),
        "number_of_installments": loan.number_of_installments,
        "installment_frequency": loan.installment_frequency.value,
        "start_date": format_display(loan.start_date),
        "total_interest": str(loan.total_interest),
        "total_amount": str(loan.total_amount),
        "paid_amount": str(loan.paid_amount),
        "remaining_balance": str(loan.remaining_balance),
        "status": loan.status.value,
        "next_due_date": format_display(upcoming.due_date) if upcoming else None,
        "installments": [i.to_display() for i in loan.installments],
        "payments": [payment_response(p) for p in loan.payments],
        "notes": loan.notes,
        "created_by": loan.created_by,
        "last_updated_by": loan.last_updated_by,
        "closed_date": format_display(loan.closed_date),
        "payment_method": loan.payment_method,
        "version": loan.version,
    }


def engine_response(result: Dict[str, Any]) -> Dict[str, Any]:
    """Payment engine result with display dates"""
    body = dict(result)
    body['next_due_date'] = format_display(result['next_due_date'])
    if 'payment' in result:
        body['payment'] = payment_response(result['payment'])
    return document(body)


@router.post("/schedule")
async def preview_schedule(request: ScheduleRequest):
    """Installment schedule for prospective terms, nothing is stored"""
    with http_errors():
        installments = generate_schedule(
            request.loan_amount, request.interest_rate, request.number_of_installments,
            request.installment_frequency, request.start_date
        )
    return {"installments": [i.to_display() for i in installments]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """Create a loan with its schedule and open its collection"""
    with http_errors():
        loan = system.loan_manager.create_loan(
            loan_amount=request.loan_amount,
            interest_rate=request.interest_rate,
            number_of_installments=request.number_of_installments,
            installment_frequency=request.installment_frequency,
            start_date=request.start_date,
            customer_id=request.customer_id,
            notes=request.notes,
            created_by=actor,
            **request.customer_fields()
        )
        system.collections_manager.create_from_loan(loan)
    return {
        "loan": loan_response(loan),
        "message": "Loan created successfully"
    }


@router.get("")
async def list_loans(
    status_filter: Optional[str] = Query(None, alias="status"),
    customer_id: Optional[str] = None,
    frequency: Optional[str] = None,
    search: Optional[str] = None,
    system: PawnshopSystem = Depends(get_system)
):
    with http_errors():
        if search:
            loans = system.loan_manager.search(search)
        else:
            loans = system.loan_manager.list_loans(
                status=status_filter, customer_id=customer_id, frequency=frequency
            )
    return {"loans": [loan_response(loan) for loan in loans], "total": len(loans)}


@router.get("/statistics")
async def loan_statistics(system: PawnshopSystem = Depends(get_system)):
    return document(system.loan_manager.statistics())


@router.get("/collection-report")
async def collection_report(
    day: Optional[str] = Query(None, alias="date"),
    period: str = "daily",
    system: PawnshopSystem = Depends(get_system)
):
    """Unpaid installments due in the day, week or month of ``date``"""
    with http_errors():
        report = system.loan_manager.collection_report(day or system.clock.today(), period)
    for row in report['installments']:
        row['due_date'] = format_display(row['due_date'])
    report['start_date'] = format_display(report['start_date'])
    report['end_date'] = format_display(report['end_date'])
    return document(report)


@router.post("/bulk-update")
async def bulk_update_loans(
    request: BulkUpdateLoansRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """Best effort: failures are listed per loan"""
    with http_errors():
        result = system.loan_manager.bulk_update(request.loan_ids, request.changes, actor)
        for loan_id in result['updated']:
            system.collections_manager.sync_with_loan(loan_id)
    return result


@router.get("/{loan_id}")
async def get_loan(loan_id: str, system: PawnshopSystem = Depends(get_system)):
    with http_errors():
        loan = system.loan_manager.require_loan(loan_id)
    return loan_response(loan)


@router.get("/{loan_id}/stats")
async def get_loan_stats(loan_id: str, system: PawnshopSystem = Depends(get_system)):
    with http_errors():
        stats = system.loan_manager.loan_stats(loan_id)
    return document(stats)


@router.put("/{loan_id}")
async def update_loan(
    loan_id: str,
    request: UpdateLoanRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        loan = system.loan_manager.update_loan(loan_id, changes_of(request), actor)
        system.collections_manager.sync_with_loan(loan_id)
    return loan_response(loan)


@router.delete("/{loan_id}")
async def delete_loan(
    loan_id: str,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """Move a loan to the trash bin"""
    with http_errors():
        system.loan_manager.delete_loan(loan_id, deleted_by=actor)
    return {"message": "Loan moved to trash"}


@router.post("/{loan_id}/payments")
async def apply_payment(
    loan_id: str,
    request: PaymentRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """Pay one installment in full"""
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


@router.post("/{loan_id}/partial-payments")
async def record_partial_payment(
    loan_id: str,
    request: PartialPaymentRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        result = system.payment_engine.record_partial_payment(
            loan_id,
            request.amount,
            fine_amount=request.fine_amount,
            payment_method=request.payment_method,
            notes=request.notes,
            collected_by=actor,
            payment_date=request.payment_date
        )
    return engine_response(result)


@router.post("/{loan_id}/installments/{installment_no}/undo")
async def undo_payment(
    loan_id: str,
    installment_no: int,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """Revert a paid installment to Pending"""
    with http_errors():
        result = system.payment_engine.undo_payment(loan_id, installment_no, undone_by=actor)
    return engine_response(result)


@router.put("/{loan_id}/status")
async def update_loan_status(
    loan_id: str,
    request: StatusRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        result = system.payment_engine.update_status(loan_id, request.status, updated_by=actor)
    return engine_response(result)


@router.post("/{loan_id}/close")
async def close_loan(
    loan_id: str,
    request: CloseRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """Close a fully paid loan"""
    with http_errors():
        result = system.payment_engine.close_loan(
            loan_id, payment_method=request.payment_method, closed_by=actor
        )
    body = result.to_dict()
    body['closed_date'] = format_display(result.closed_date)
    return body
