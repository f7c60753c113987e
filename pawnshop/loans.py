"""
Personal Loan Module

Canonical installment loans: the Loan record with its embedded installments
and payments, and the LoanManager that owns their persistence, search,
statistics and administrative status changes. Payment application lives in
``payments``; the collection desk projection lives in ``collections``.
"""

import secrets
import string
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .audit import AuditEventType, AuditTrail
from .dates import Clock, add_months, format_iso, parse_date, require_date
from .exceptions import NotFoundError, PawnshopError, ValidationError
from .loan_status import LoanStatus, check_transition, derive_status
from .logging_config import get_logger, log_action
from .money import ZERO, percent, round_money, sum_money, to_decimal
from .schedule import (
    Installment, InstallmentFrequency, InstallmentStatus, generate_schedule, loan_totals
)
from .storage import StorageInterface, StorageRecord


class PaymentMethod(Enum):
    CASH = "Cash"
    UPI = "UPI"
    BANK_TRANSFER = "Bank Transfer"
    CHEQUE = "Cheque"
    NEFT = "NEFT"
    RTGS = "RTGS"

    @classmethod
    def parse(cls, value: Any) -> 'PaymentMethod':
        if value is None or value == "":
            return cls.CASH
        if isinstance(value, cls):
            return value
        for member in cls:
            if str(value).strip().lower() == member.value.lower():
                return member
        raise ValidationError(f"Invalid payment method: {value}")


class PaymentStatus(Enum):
    RECEIVED = "Received"
    PENDING = "Pending"
    FAILED = "Failed"
    REFUNDED = "Refunded"


@dataclass
class Payment:
    """A payment received against one installment"""
    payment_id: str
    installment_no: int
    amount: Decimal
    fine_amount: Decimal
    total_amount: Decimal
    payment_date: date
    payment_method: PaymentMethod = PaymentMethod.CASH
    status: PaymentStatus = PaymentStatus.RECEIVED
    excess_amount: Decimal = ZERO
    notes: str = ""
    collected_by: Optional[str] = None

    @staticmethod
    def new_id() -> str:
        return "PAY" + uuid.uuid4().hex[:8].upper()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'payment_id': self.payment_id,
            'installment_no': self.installment_no,
            'amount': str(self.amount),
            'fine_amount': str(self.fine_amount),
            'total_amount': str(self.total_amount),
            'excess_amount': str(self.excess_amount),
            'payment_date': format_iso(self.payment_date),
            'payment_method': self.payment_method.value,
            'status': self.status.value,
            'notes': self.notes,
            'collected_by': self.collected_by,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Payment':
        return cls(
            payment_id=data['payment_id'],
            installment_no=int(data['installment_no']),
            amount=round_money(data['amount']),
            fine_amount=round_money(data.get('fine_amount', '0')),
            total_amount=round_money(data['total_amount']),
            excess_amount=round_money(data.get('excess_amount', '0')),
            payment_date=require_date(data['payment_date'], 'payment_date'),
            payment_method=PaymentMethod.parse(data.get('payment_method')),
            status=PaymentStatus(data.get('status', 'Received')),
            notes=data.get('notes') or "",
            collected_by=data.get('collected_by'),
        )


@dataclass
class Loan(StorageRecord):
    """
    Canonical personal loan record.

    Customer display fields are copied onto the loan at creation so that
    reports never have to join against customers.
    """
    customer_id: Optional[str]
    customer_name: str
    customer_phone: str
    loan_amount: Decimal
    interest_rate: Decimal
    number_of_installments: int
    installment_frequency: InstallmentFrequency
    start_date: date
    total_interest: Decimal
    total_amount: Decimal
    paid_amount: Decimal = ZERO
    status: LoanStatus = LoanStatus.ACTIVE
    installments: List[Installment] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)
    customer_father_spouse: str = ""
    customer_alt_phone: str = ""
    customer_address: str = ""
    customer_gov_id_type: str = ""
    customer_gov_id_number: str = ""
    notes: str = ""
    created_by: Optional[str] = None
    last_updated_by: Optional[str] = None
    closed_date: Optional[date] = None
    payment_method: Optional[str] = None
    version: int = 0

    @property
    def remaining_balance(self) -> Decimal:
        return max(ZERO, round_money(self.total_amount - self.paid_amount))

    @property
    def next_due_installment(self) -> Optional[Installment]:
        for installment in self.installments:
            if not installment.is_paid:
                return installment
        return None

    def installment(self, installment_no: int) -> Installment:
        for installment in self.installments:
            if installment.installment_no == installment_no:
                return installment
        raise NotFoundError("Installment not found")

    def recalculate(self) -> None:
        """Re-derive paid amount and automatic status from installments"""
        self.paid_amount = sum_money(i.paid_amount for i in self.installments)
        self.status = derive_status(self.status, self.installments)


@dataclass
class ClosureResult:
    """Outcome of closing a loan or voucher"""
    final_amount: Decimal
    months_paid: int
    closed_date: date
    payment_method: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'final_amount': str(self.final_amount),
            'months_paid': self.months_paid,
            'closed_date': self.closed_date.isoformat(),
            'payment_method': self.payment_method,
        }


def whole_months_between(start: date, end: date) -> int:
    """Elapsed 30-day months, never negative"""
    return max(0, (end - start).days // 30)


def period_window(day: date, period: str):
    """First and last day of the day, Monday-based week or month holding ``day``"""
    if period == "daily":
        return day, day
    if period == "weekly":
        start = day - timedelta(days=day.weekday())
        return start, start + timedelta(days=6)
    if period == "monthly":
        start = day.replace(day=1)
        return start, add_months(start, 1) - timedelta(days=1)
    raise ValidationError("Period must be daily, weekly or monthly")


IMMUTABLE_FIELDS = {
    'id', 'loan_id', 'created_at', 'updated_at', 'version',
    'installments', 'payments', 'paid_amount', 'status',
}

CUSTOMER_FIELDS = (
    'customer_name', 'customer_phone', 'customer_father_spouse', 'customer_alt_phone',
    'customer_address', 'customer_gov_id_type', 'customer_gov_id_number',
)

TERM_FIELDS = (
    'loan_amount', 'interest_rate', 'number_of_installments',
    'installment_frequency', 'start_date',
)


class LoanManager:
    """
    Manages personal loans
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 clock: Optional[Clock] = None, customer_manager=None, trash_bin=None,
                 min_loan_amount: Any = "1000", max_interest_rate: Any = "100"):
        self.storage = storage
        self.audit_trail = audit_trail
        self.clock = clock or Clock()
        self.customer_manager = customer_manager
        self.trash_bin = trash_bin
        self.min_loan_amount = to_decimal(min_loan_amount)
        self.max_interest_rate = to_decimal(max_interest_rate)
        self.logger = get_logger("pawnshop.loans")

        self.loans_table = "loans"
        self.collections_table = "collections"

    # ------------------------------------------------------------------
    # Creation and lookup

    def _new_loan_id(self) -> str:
        while True:
            suffix = "".join(secrets.choice(string.ascii_uppercase) for _ in range(3))
            loan_id = f"LOAN{int(time.time() * 1000)}{suffix}"
            if not self.storage.exists(self.loans_table, loan_id):
                return loan_id

    def _validate_terms(self, loan_amount: Decimal, interest_rate: Decimal,
                        number_of_installments: int) -> None:
        if loan_amount < self.min_loan_amount:
            raise ValidationError(f"Loan amount must be at least {self.min_loan_amount}")
        if interest_rate < 0 or interest_rate > self.max_interest_rate:
            raise ValidationError(
                f"Interest rate must be between 0 and {self.max_interest_rate}"
            )
        if number_of_installments < 1:
            raise ValidationError("Number of installments must be at least 1")

    def _customer_fields(self, customer_id: Optional[str], supplied: Dict[str, Any]) -> Dict[str, str]:
        """Denormalized customer fields, filled from the customer record when known"""
        fields = {name: (supplied.get(name) or "") for name in CUSTOMER_FIELDS}
        if customer_id and self.customer_manager is not None:
            customer = self.customer_manager.get_customer(customer_id)
            if customer is None:
                raise NotFoundError(f"Customer {customer_id} not found")
            defaults = {
                'customer_name': customer.full_name,
                'customer_phone': customer.phone_number,
                'customer_father_spouse': customer.father_spouse,
                'customer_alt_phone': customer.alt_phone_number,
                'customer_address': customer.address,
                'customer_gov_id_type': customer.gov_id_type,
                'customer_gov_id_number': customer.gov_id_number,
            }
            for name, value in defaults.items():
                if not fields[name]:
                    fields[name] = value or ""
        if not fields['customer_name'].strip():
            raise ValidationError("Customer name is required")
        if not fields['customer_phone'].strip():
            raise ValidationError("Customer phone is required")
        return fields

    def create_loan(
        self,
        loan_amount: Any,
        interest_rate: Any,
        number_of_installments: int,
        installment_frequency: Any,
        start_date: Any,
        customer_id: Optional[str] = None,
        notes: str = "",
        created_by: Optional[str] = None,
        **customer_fields
    ) -> Loan:
        """
        Create a loan and its full installment schedule

        Args:
            loan_amount: Principal
            interest_rate: Flat percentage over the whole term
            number_of_installments: Count of equal installments
            installment_frequency: Daily, Weekly or Monthly
            start_date: Disbursement date (ISO or DD/MM/YYYY)
            customer_id: Optional customer reference
            notes: Free text
            created_by: Staff member creating the loan
            **customer_fields: customer_name, customer_phone and the other
                denormalized display fields

        Returns:
            Persisted Loan
        """
        unknown = set(customer_fields) - set(CUSTOMER_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown loan fields: {', '.join(sorted(unknown))}")

        principal = round_money(loan_amount)
        rate = to_decimal(interest_rate, 'interest rate')
        self._validate_terms(principal, rate, number_of_installments)
        start = require_date(start_date, 'start_date')
        frequency = InstallmentFrequency.parse(installment_frequency)
        fields = self._customer_fields(customer_id, customer_fields)

        installments = generate_schedule(principal, rate, number_of_installments, frequency, start)
        totals = loan_totals(principal, rate)

        now = datetime.now(timezone.utc)
        loan = Loan(
            id=self._new_loan_id(),
            created_at=now,
            updated_at=now,
            customer_id=customer_id,
            loan_amount=principal,
            interest_rate=rate,
            number_of_installments=number_of_installments,
            installment_frequency=frequency,
            start_date=start,
            total_interest=totals['total_interest'],
            total_amount=totals['total_amount'],
            installments=installments,
            notes=notes or "",
            created_by=created_by,
            last_updated_by=created_by,
            **fields
        )

        self.save_loan(loan)

        self.audit_trail.log_event(
            AuditEventType.LOAN_CREATED,
            "loan",
            loan.id,
            {
                'customer_name': loan.customer_name,
                'loan_amount': loan.loan_amount,
                'total_amount': loan.total_amount,
                'installments': loan.number_of_installments,
                'frequency': loan.installment_frequency.value,
            },
            user_id=created_by
        )
        log_action(self.logger, "info", f"Created loan {loan.id}",
                   user_id=created_by, action="loan_created", resource=loan.id,
                   extra={'total_amount': str(loan.total_amount)})

        return loan

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        data = self.storage.load(self.loans_table, loan_id)
        if data:
            return self._loan_from_dict(data)
        return None

    def require_loan(self, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id)
        if loan is None:
            raise NotFoundError("Loan not found")
        return loan

    def list_loans(self, status: Optional[str] = None, customer_id: Optional[str] = None,
                   frequency: Optional[str] = None) -> List[Loan]:
        loans = [self._loan_from_dict(data) for data in self.storage.load_all(self.loans_table)]
        if status:
            wanted = LoanStatus.parse(status)
            loans = [loan for loan in loans if loan.status == wanted]
        if customer_id:
            loans = [loan for loan in loans if loan.customer_id == customer_id]
        if frequency:
            wanted_frequency = InstallmentFrequency.parse(frequency)
            loans = [loan for loan in loans if loan.installment_frequency == wanted_frequency]
        loans.sort(key=lambda loan: loan.created_at, reverse=True)
        return loans

    def search(self, query: str) -> List[Loan]:
        """Case-insensitive substring search over name, customer id, loan id and phone"""
        needle = (query or "").strip().lower()
        if not needle:
            return self.list_loans()
        return [
            loan for loan in self.list_loans()
            if needle in loan.customer_name.lower()
            or needle in (loan.customer_id or "").lower()
            or needle in loan.id.lower()
            or needle in loan.customer_phone.lower()
        ]

    # ------------------------------------------------------------------
    # Updates

    def save_loan(self, loan: Loan) -> None:
        """Compare-and-swap save; bumps the loan's version on success"""
        expected = loan.version
        loan.version = expected + 1
        loan.updated_at = datetime.now(timezone.utc)
        try:
            self.storage.save_versioned(
                self.loans_table, loan.id, self._loan_to_dict(loan), expected
            )
        except PawnshopError:
            loan.version = expected
            raise

    def update_loan(self, loan_id: str, changes: Dict[str, Any],
                    updated_by: Optional[str] = None) -> Loan:
        """
        Update editable loan fields.

        Term changes regenerate the schedule and are refused once any payment
        has been received.
        """
        loan = self.require_loan(loan_id)
        changes = {k: v for k, v in changes.items() if k not in IMMUTABLE_FIELDS and v is not None}

        unknown = set(changes) - set(CUSTOMER_FIELDS) - set(TERM_FIELDS) - {'notes', 'customer_id'}
        if unknown:
            raise ValidationError(f"Unknown loan fields: {', '.join(sorted(unknown))}")

        for name in CUSTOMER_FIELDS + ('notes', 'customer_id'):
            if name in changes:
                setattr(loan, name, changes[name])

        if any(name in changes for name in TERM_FIELDS):
            if loan.payments or loan.paid_amount > 0:
                raise ValidationError("Cannot change loan terms after payments have been received")
            loan.loan_amount = round_money(changes.get('loan_amount', loan.loan_amount))
            loan.interest_rate = to_decimal(changes.get('interest_rate', loan.interest_rate))
            loan.number_of_installments = int(changes.get('number_of_installments', loan.number_of_installments))
            loan.installment_frequency = InstallmentFrequency.parse(
                changes.get('installment_frequency', loan.installment_frequency)
            )
            loan.start_date = require_date(changes.get('start_date', loan.start_date), 'start_date')
            self._validate_terms(loan.loan_amount, loan.interest_rate, loan.number_of_installments)
            loan.installments = generate_schedule(
                loan.loan_amount, loan.interest_rate, loan.number_of_installments,
                loan.installment_frequency, loan.start_date
            )
            totals = loan_totals(loan.loan_amount, loan.interest_rate)
            loan.total_interest = totals['total_interest']
            loan.total_amount = totals['total_amount']

        loan.last_updated_by = updated_by
        loan.recalculate()
        self.save_loan(loan)

        self.audit_trail.log_event(
            AuditEventType.LOAN_UPDATED, "loan", loan.id,
            {'fields': sorted(changes)}, user_id=updated_by
        )
        return loan

    def bulk_update(self, loan_ids: List[str], changes: Dict[str, Any],
                    updated_by: Optional[str] = None) -> Dict[str, Any]:
        """Apply the same change to many loans, collecting per-loan errors"""
        updated = []
        errors = []
        for loan_id in loan_ids:
            try:
                self.update_loan(loan_id, changes, updated_by)
                updated.append(loan_id)
            except PawnshopError as e:
                errors.append({'loan_id': loan_id, 'error': str(e)})
                log_action(self.logger, "warning", f"Bulk update skipped loan {loan_id}: {e}",
                           action="loan_bulk_update", resource=loan_id)
        return {'updated_count': len(updated), 'updated': updated, 'errors': errors}

    def update_status(self, loan_id: str, status: Any, updated_by: Optional[str] = None,
                      payment_method: Optional[PaymentMethod] = None) -> Loan:
        """Administrative status change (Active, Closed or Defaulted)"""
        loan = self.require_loan(loan_id)
        previous = loan.status
        loan.status = check_transition(loan.status, status, loan.installments)
        closed = loan.status == LoanStatus.CLOSED
        loan.closed_date = self.clock.today() if closed else None
        loan.payment_method = payment_method.value if closed and payment_method else None
        loan.last_updated_by = updated_by
        self.save_loan(loan)

        self.audit_trail.log_event(
            AuditEventType.LOAN_STATUS_CHANGED, "loan", loan.id,
            {'from': previous.value, 'to': loan.status.value}, user_id=updated_by
        )
        log_action(self.logger, "info",
                   f"Loan {loan.id} status {previous.value} -> {loan.status.value}",
                   user_id=updated_by, action="loan_status_changed", resource=loan.id)
        return loan

    def close_loan(self, loan_id: str, payment_method: Any = None,
                   closed_by: Optional[str] = None) -> ClosureResult:
        """Strict close: every installment must already be Paid"""
        self.require_loan(loan_id)
        method = PaymentMethod.parse(payment_method)
        loan = self.update_status(loan_id, LoanStatus.CLOSED, updated_by=closed_by,
                                  payment_method=method)
        result = ClosureResult(
            final_amount=loan.paid_amount,
            months_paid=whole_months_between(loan.start_date, loan.closed_date),
            closed_date=loan.closed_date,
            payment_method=loan.payment_method,
        )
        self.audit_trail.log_event(
            AuditEventType.LOAN_CLOSED, "loan", loan.id, result.to_dict(), user_id=closed_by
        )
        return result

    def refresh_overdue(self, loan_id: str) -> Loan:
        """Mark Pending installments whose due date has passed as Overdue"""
        loan = self.require_loan(loan_id)
        today = self.clock.today()
        changed = False
        for installment in loan.installments:
            if installment.status == InstallmentStatus.PENDING and installment.is_overdue_on(today):
                installment.status = InstallmentStatus.OVERDUE
                changed = True
        if changed:
            self.save_loan(loan)
        return loan

    def delete_loan(self, loan_id: str, deleted_by: Optional[str] = None) -> None:
        """Move a loan to the trash bin and drop its collection projection"""
        loan = self.require_loan(loan_id)
        if self.trash_bin is not None:
            self.trash_bin.move_to_trash(
                "loan", loan.id, self._loan_to_dict(loan),
                original_status=loan.status.value, deleted_by=deleted_by
            )
        self.storage.delete(self.loans_table, loan.id)
        self.storage.delete(self.collections_table, loan.id)
        log_action(self.logger, "info", f"Deleted loan {loan.id}",
                   user_id=deleted_by, action="loan_deleted", resource=loan.id)

    def restore(self, data: Dict[str, Any]) -> Loan:
        """Trash bin restorer"""
        loan = self._loan_from_dict(dict(data))
        if self.storage.exists(self.loans_table, loan.id):
            raise ValidationError(f"Loan {loan.id} already exists")
        loan.version = 0
        self.save_loan(loan)
        return loan

    # ------------------------------------------------------------------
    # Statistics and reports

    def loan_stats(self, loan_id: str) -> Dict[str, Any]:
        loan = self.require_loan(loan_id)
        paid = [i for i in loan.installments if i.is_paid]
        return {
            'loan_id': loan.id,
            'active_installments': len(loan.installments) - len(paid),
            'paid_installments': len(paid),
            'total_paid_amount': loan.paid_amount,
            'remaining_amount': loan.remaining_balance,
            'payment_progress': percent(loan.paid_amount, loan.total_amount),
        }

    def statistics(self) -> Dict[str, Any]:
        loans = self.list_loans()
        by_status: Dict[str, int] = {status.value: 0 for status in LoanStatus}
        by_frequency: Dict[str, int] = {f.value: 0 for f in InstallmentFrequency}
        for loan in loans:
            by_status[loan.status.value] += 1
            by_frequency[loan.installment_frequency.value] += 1

        return {
            'total_loans': len(loans),
            'total_loan_amount': sum_money(loan.loan_amount for loan in loans),
            'total_interest': sum_money(loan.total_interest for loan in loans),
            'total_amount': sum_money(loan.total_amount for loan in loans),
            'total_paid_amount': sum_money(loan.paid_amount for loan in loans),
            'total_outstanding': sum_money(
                loan.remaining_balance for loan in loans
                if loan.status in (LoanStatus.ACTIVE, LoanStatus.DEFAULTED)
            ),
            'by_status': by_status,
            'by_frequency': by_frequency,
        }

    def collection_report(self, day: Any, period: str) -> Dict[str, Any]:
        """
        Unpaid installments falling due in the day, ISO week or month of ``day``
        """
        start, end = period_window(require_date(day, 'date'), period)

        rows = []
        for loan in self.list_loans():
            if loan.status in (LoanStatus.CLOSED, LoanStatus.COMPLETED):
                continue
            for installment in loan.installments:
                if installment.is_paid or not (start <= installment.due_date <= end):
                    continue
                rows.append({
                    'loan_id': loan.id,
                    'customer_name': loan.customer_name,
                    'customer_phone': loan.customer_phone,
                    'installment_no': installment.installment_no,
                    'due_date': installment.due_date,
                    'amount_due': installment.outstanding,
                    'status': installment.status.value,
                })
        rows.sort(key=lambda row: (row['due_date'], row['loan_id'], row['installment_no']))

        return {
            'period': period,
            'start_date': start,
            'end_date': end,
            'installments': rows,
            'total_due': sum_money(row['amount_due'] for row in rows),
        }

    # ------------------------------------------------------------------
    # Serialization

    def _loan_to_dict(self, loan: Loan) -> Dict[str, Any]:
        return {
            'id': loan.id,
            'created_at': loan.created_at.isoformat(),
            'updated_at': loan.updated_at.isoformat(),
            'customer_id': loan.customer_id,
            'customer_name': loan.customer_name,
            'customer_phone': loan.customer_phone,
            'customer_father_spouse': loan.customer_father_spouse,
            'customer_alt_phone': loan.customer_alt_phone,
            'customer_address': loan.customer_address,
            'customer_gov_id_type': loan.customer_gov_id_type,
            'customer_gov_id_number': loan.customer_gov_id_number,
            'loan_amount': str(loan.loan_amount),
            'interest_rate': str(loan.interest_rate),
            'number_of_installments': loan.number_of_installments,
            'installment_frequency': loan.installment_frequency.value,
            'start_date': loan.start_date.isoformat(),
            'total_interest': str(loan.total_interest),
            'total_amount': str(loan.total_amount),
            'paid_amount': str(loan.paid_amount),
            'status': loan.status.value,
            'installments': [i.to_dict() for i in loan.installments],
            'payments': [p.to_dict() for p in loan.payments],
            'notes': loan.notes,
            'created_by': loan.created_by,
            'last_updated_by': loan.last_updated_by,
            'closed_date': format_iso(loan.closed_date),
            'payment_method': loan.payment_method,
            'version': loan.version,
        }

    def _loan_from_dict(self, data: Dict[str, Any]) -> Loan:
        return Loan(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            customer_id=data.get('customer_id'),
            customer_name=data.get('customer_name') or "",
            customer_phone=data.get('customer_phone') or "",
            customer_father_spouse=data.get('customer_father_spouse') or "",
            customer_alt_phone=data.get('customer_alt_phone') or "",
            customer_address=data.get('customer_address') or "",
            customer_gov_id_type=data.get('customer_gov_id_type') or "",
            customer_gov_id_number=data.get('customer_gov_id_number') or "",
            loan_amount=round_money(data['loan_amount']),
            interest_rate=to_decimal(data['interest_rate']),
            number_of_installments=int(data['number_of_installments']),
            installment_frequency=InstallmentFrequency.parse(data['installment_frequency']),
            start_date=require_date(data['start_date'], 'start_date'),
            total_interest=round_money(data['total_interest']),
            total_amount=round_money(data['total_amount']),
            paid_amount=round_money(data.get('paid_amount', '0')),
            status=LoanStatus.parse(data.get('status', 'Active')),
            installments=[Installment.from_dict(i) for i in data.get('installments', [])],
            payments=[Payment.from_dict(p) for p in data.get('payments', [])],
            notes=data.get('notes') or "",
            created_by=data.get('created_by'),
            last_updated_by=data.get('last_updated_by'),
            closed_date=parse_date(data.get('closed_date')),
            payment_method=data.get('payment_method'),
            version=int(data.get('version', 0)),
        )
