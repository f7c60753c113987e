"""
Customer endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ..customers import Customer
from ..system import PawnshopSystem
from .deps import changes_of, document, get_actor, get_system, http_errors
from .schemas import CreateCustomerRequest, UpdateCustomerRequest


router = APIRouter()


def customer_response(customer: Customer) -> dict:
    data = document(customer)
    data['customer_id'] = customer.id
    return data


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_customer(
    request: CreateCustomerRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """Register a new customer"""
    with http_errors():
        customer = system.customer_manager.create_customer(**request.dict(), created_by=actor)
    return {
        "customer": customer_response(customer),
        "message": "Customer created successfully"
    }


@router.get("")
async def list_customers(
    search: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    system: PawnshopSystem = Depends(get_system)
):
    customers = system.customer_manager.list_customers(search=search, status=status_filter)
    return {"customers": [customer_response(c) for c in customers], "total": len(customers)}


@router.get("/{customer_id}")
async def get_customer(customer_id: str, system: PawnshopSystem = Depends(get_system)):
    with http_errors():
        customer = system.customer_manager.require_customer(customer_id)
    return customer_response(customer)


@router.get("/{customer_id}/loans")
async def get_customer_loans(customer_id: str, system: PawnshopSystem = Depends(get_system)):
    """Vouchers and personal loans held by a customer"""
    with http_errors():
        system.customer_manager.require_customer(customer_id)
        vouchers = system.voucher_manager.list_vouchers(customer_id=customer_id)
        loans = system.loan_manager.list_loans(customer_id=customer_id)
    return {
        "customer_id": customer_id,
        "vouchers": document(vouchers),
        "loans": [{"loan_id": l.id, "status": l.status.value,
                   "loan_amount": str(l.loan_amount),
                   "remaining_balance": str(l.remaining_balance)} for l in loans],
    }


@router.put("/{customer_id}")
async def update_customer(
    customer_id: str,
    request: UpdateCustomerRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        customer = system.customer_manager.update_customer(
            customer_id, changes_of(request), updated_by=actor
        )
    return customer_response(customer)


@router.delete("/{customer_id}")
async def delete_customer(
    customer_id: str,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """Move a customer to the trash bin"""
    with http_errors():
        system.customer_manager.delete_customer(customer_id, deleted_by=actor)
    return {"message": "Customer moved to trash"}
