"""
Loan status rules.

Payments move a loan between Active and Completed on their own. Closed and
Defaulted are only ever entered or left through an explicit administrative
transition, never as a side effect of a payment or an undo.
"""

from enum import Enum
from typing import Any, Sequence

from .exceptions import AlreadyClosedError, NotAllPaidError, ValidationError
from .schedule import Installment


class LoanStatus(Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CLOSED = "Closed"
    DEFAULTED = "Defaulted"

    @classmethod
    def parse(cls, value: Any) -> 'LoanStatus':
        if isinstance(value, cls):
            return value
        for member in cls:
            if str(value).strip().lower() == member.value.lower():
                return member
        raise ValidationError("Invalid status")


ADMINISTRATIVE_TARGETS = (LoanStatus.ACTIVE, LoanStatus.CLOSED, LoanStatus.DEFAULTED)


def all_paid(installments: Sequence[Installment]) -> bool:
    return bool(installments) and all(i.is_paid for i in installments)


def derive_status(current: LoanStatus, installments: Sequence[Installment]) -> LoanStatus:
    """Status after a payment event"""
    if current == LoanStatus.ACTIVE and all_paid(installments):
        return LoanStatus.COMPLETED
    if current == LoanStatus.COMPLETED and not all_paid(installments):
        return LoanStatus.ACTIVE
    return current


def check_transition(current: LoanStatus, target: Any,
                     installments: Sequence[Installment]) -> LoanStatus:
    """
    Validate an administrative status change and return the status to store.

    Raises ValidationError for targets other than Active/Closed/Defaulted,
    AlreadyClosedError when closing a closed loan and NotAllPaidError when
    closing with unpaid installments. Reopening a fully paid loan lands in
    Completed.
    """
    target = LoanStatus.parse(target)
    if target not in ADMINISTRATIVE_TARGETS:
        raise ValidationError("Invalid status")

    if target == LoanStatus.CLOSED:
        if current == LoanStatus.CLOSED:
            raise AlreadyClosedError("Loan is already closed")
        if not all_paid(installments):
            raise NotAllPaidError("Cannot close loan: not all installments are paid")
        return target

    return derive_status(target, installments)


def collection_status_for(status: LoanStatus) -> str:
    """Collection desk status mirroring a loan status"""
    if status in (LoanStatus.CLOSED, LoanStatus.COMPLETED):
        return "Completed"
    if status == LoanStatus.DEFAULTED:
        return "Defaulted"
    return "Active"
