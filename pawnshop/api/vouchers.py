"""
Voucher (pawn loan) endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ..system import PawnshopSystem
from .deps import changes_of, document, get_actor, get_system, http_errors
from .schemas import (
    AuctionRequest, CloseRequest, CreateVoucherRequest, InterestPaymentRequest,
    RevertAndDeleteRequest, UpdateVoucherRequest,
)


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_voucher(
    request: CreateVoucherRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """Issue a voucher against pledged jewelry"""
    with http_errors():
        voucher = system.voucher_manager.create_voucher(**request.dict(), created_by=actor)
    return {
        "voucher": document(voucher),
        "message": "Voucher created successfully"
    }


@router.get("")
async def list_vouchers(
    status_filter: Optional[str] = Query(None, alias="status"),
    customer_id: Optional[str] = None,
    system: PawnshopSystem = Depends(get_system)
):
    vouchers = system.voucher_manager.list_vouchers(status=status_filter, customer_id=customer_id)
    return {"vouchers": document(vouchers), "total": len(vouchers)}


@router.get("/closed")
async def list_closed_vouchers(system: PawnshopSystem = Depends(get_system)):
    """Closed vouchers, most recently closed first"""
    vouchers = system.voucher_manager.closed_vouchers()
    return {"vouchers": document(vouchers), "total": len(vouchers)}


@router.get("/interest-payments")
async def list_interest_payments(system: PawnshopSystem = Depends(get_system)):
    return {"payments": document(system.voucher_manager.list_interest_payments())}


@router.get("/{voucher_id}")
async def get_voucher(voucher_id: str, system: PawnshopSystem = Depends(get_system)):
    with http_errors():
        voucher = system.voucher_manager.require_voucher(voucher_id)
    return document(voucher)


@router.put("/{voucher_id}")
async def update_voucher(
    voucher_id: str,
    request: UpdateVoucherRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        voucher = system.voucher_manager.update_voucher(voucher_id, changes_of(request), actor)
    return document(voucher)


@router.delete("/{voucher_id}")
async def delete_voucher(
    voucher_id: str,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """Move a voucher to the trash bin"""
    with http_errors():
        system.voucher_manager.delete_voucher(voucher_id, deleted_by=actor)
    return {"message": "Voucher moved to trash"}


@router.post("/{voucher_id}/close")
async def close_voucher(
    voucher_id: str,
    request: CloseRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """Settle a voucher: principal plus unpaid accrued interest"""
    with http_errors():
        result = system.voucher_manager.close_voucher(
            voucher_id, payment_method=request.payment_method, closed_by=actor
        )
    return {**result.to_dict(), "message": "Loan closed successfully"}


@router.post("/{voucher_id}/revert-closure")
async def revert_voucher_closure(
    voucher_id: str,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        voucher = system.voucher_manager.revert_closure(voucher_id, reverted_by=actor)
    return document(voucher)


@router.post("/{voucher_id}/revert-and-delete")
async def revert_and_delete_voucher(
    voucher_id: str,
    request: RevertAndDeleteRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    """Undo a closure and move the voucher to the trash bin"""
    with http_errors():
        system.voucher_manager.revert_and_delete(
            voucher_id, request.original_status, deleted_by=actor
        )
    return {"message": "Voucher reverted and moved to trash"}


@router.post("/{voucher_id}/auction")
async def transfer_to_auction(
    voucher_id: str,
    request: AuctionRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        voucher = system.voucher_manager.transfer_to_auction(
            voucher_id, transferred_by=actor, notes=request.notes,
            transfer_date=request.transfer_date
        )
    return document(voucher)


@router.post("/{voucher_id}/revert-auction")
async def revert_auction(
    voucher_id: str,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        voucher = system.voucher_manager.revert_auction(voucher_id, reverted_by=actor)
    return document(voucher)


@router.post("/{voucher_id}/interest-payments", status_code=status.HTTP_201_CREATED)
async def record_interest_payment(
    voucher_id: str,
    request: InterestPaymentRequest,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        payment = system.voucher_manager.record_interest_payment(
            voucher_id, request.amount, request.months,
            payment_date=request.date, recorded_by=actor
        )
    return document(payment)


@router.delete("/{voucher_id}/interest-payments/{payment_id}")
async def delete_interest_payment(
    voucher_id: str,
    payment_id: str,
    system: PawnshopSystem = Depends(get_system),
    actor: Optional[str] = Depends(get_actor)
):
    with http_errors():
        system.voucher_manager.delete_interest_payment(voucher_id, payment_id, deleted_by=actor)
    return {"message": "Payment deleted"}
