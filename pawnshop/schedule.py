"""
Installment Schedule Module

Flat-rate equal-installment schedules for personal loans. The whole interest
is charged up front (principal x rate%), the total is split into equal EMIs,
and every EMI carries the same interest share.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .dates import add_months, format_display, format_iso, parse_date, require_date
from .exceptions import ValidationError
from .money import ZERO, round_money, to_decimal


class InstallmentFrequency(Enum):
    """How often an installment falls due"""
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"

    @classmethod
    def parse(cls, value: Any) -> 'InstallmentFrequency':
        if isinstance(value, cls):
            return value
        for member in cls:
            if str(value).strip().lower() == member.value.lower():
                return member
        raise ValidationError(f"Invalid installment frequency: {value}")


class InstallmentStatus(Enum):
    PENDING = "Pending"
    PAID = "Paid"
    OVERDUE = "Overdue"
    PARTIAL = "Partial"


@dataclass
class Installment:
    """One scheduled repayment of a loan"""
    installment_no: int
    due_date: date
    emi_amount: Decimal
    principal_amount: Decimal
    interest_amount: Decimal
    remaining_balance: Decimal
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_amount: Decimal = ZERO
    paid_date: Optional[date] = None

    @property
    def is_paid(self) -> bool:
        return self.status == InstallmentStatus.PAID

    @property
    def outstanding(self) -> Decimal:
        return max(ZERO, round_money(self.emi_amount - self.paid_amount))

    def is_overdue_on(self, today: date) -> bool:
        return not self.is_paid and today > self.due_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            'installment_no': self.installment_no,
            'due_date': format_iso(self.due_date),
            'emi_amount': str(self.emi_amount),
            'principal_amount': str(self.principal_amount),
            'interest_amount': str(self.interest_amount),
            'remaining_balance': str(self.remaining_balance),
            'status': self.status.value,
            'paid_amount': str(self.paid_amount),
            'paid_date': format_iso(self.paid_date),
        }

    def to_display(self) -> Dict[str, Any]:
        """API shape: amounts as strings, dates as DD/MM/YYYY"""
        data = self.to_dict()
        data['due_date'] = format_display(self.due_date)
        data['paid_date'] = format_display(self.paid_date)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Installment':
        return cls(
            installment_no=int(data['installment_no']),
            due_date=require_date(data['due_date'], 'due_date'),
            emi_amount=round_money(data['emi_amount']),
            principal_amount=round_money(data['principal_amount']),
            interest_amount=round_money(data['interest_amount']),
            remaining_balance=round_money(data['remaining_balance']),
            status=InstallmentStatus(data.get('status', 'Pending')),
            paid_amount=round_money(data.get('paid_amount', '0')),
            paid_date=parse_date(data.get('paid_date')),
        )


def due_date_for(start_date: date, frequency: InstallmentFrequency, number: int) -> date:
    """Due date of installment ``number`` (1-based)"""
    if frequency == InstallmentFrequency.DAILY:
        return start_date + timedelta(days=number)
    if frequency == InstallmentFrequency.WEEKLY:
        return start_date + timedelta(days=7 * number)
    return add_months(start_date, number)


def loan_totals(principal: Decimal, rate: Decimal) -> Dict[str, Decimal]:
    total_interest = round_money(principal * rate / Decimal("100"))
    return {
        'total_interest': total_interest,
        'total_amount': round_money(principal + total_interest),
    }


def generate_schedule(principal: Any, rate: Any, count: int,
                      frequency: Any, start_date: Any) -> List[Installment]:
    """
    Build the installment list for a flat-rate loan.

    Args:
        principal: Loan amount, must be positive
        rate: Flat interest percentage for the whole term, must not be negative
        count: Number of installments, at least 1
        frequency: Daily, Weekly or Monthly
        start_date: Disbursement date; installment i falls due i periods later

    Every non-final EMI is total_amount / count rounded to paise. The final
    EMI takes whatever remains so the EMIs add up to total_amount exactly.
    Remaining balance is carried at full precision and floored at zero, so
    the printed balances can end a few paise away from the principal split.
    """
    principal = to_decimal(principal, 'principal')
    rate = to_decimal(rate, 'interest rate')
    frequency = InstallmentFrequency.parse(frequency)
    start_date = require_date(start_date, 'start_date')

    if principal <= 0:
        raise ValidationError("Principal must be greater than zero")
    if rate < 0:
        raise ValidationError("Interest rate cannot be negative")
    if not isinstance(count, int) or isinstance(count, bool) or count < 1:
        raise ValidationError("Number of installments must be at least 1")

    totals = loan_totals(principal, rate)
    total_interest = totals['total_interest']
    total_amount = totals['total_amount']

    exact_emi = total_amount / count
    rounded_emi = round_money(exact_emi)
    interest_share = total_interest / total_amount

    installments = []
    remaining = principal
    for number in range(1, count + 1):
        if number < count:
            emi_exact = exact_emi
            emi = rounded_emi
        else:
            emi = round_money(total_amount - rounded_emi * (count - 1))
            emi_exact = emi

        interest_exact = emi_exact * interest_share
        interest = round_money(interest_exact)
        remaining = max(Decimal("0"), remaining - (emi_exact - interest_exact))

        installments.append(Installment(
            installment_no=number,
            due_date=due_date_for(start_date, frequency, number),
            emi_amount=emi,
            principal_amount=round_money(emi - interest),
            interest_amount=interest,
            remaining_balance=round_money(remaining),
        ))

    return installments
