"""
Voucher Module

Jewelry-collateral pawn loans. A voucher carries a principal, a flat monthly
interest rate, the pledged items and the interest payments received so far.
Closing settles principal plus whatever interest has accrued for the elapsed
whole months and not yet been paid.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .audit import AuditEventType, AuditTrail
from .dates import Clock, add_months, parse_date, require_date
from .exceptions import AlreadyClosedError, NotFoundError, ValidationError
from .interest_rates import InterestRateManager, MetalType
from .loans import ClosureResult, PaymentMethod, whole_months_between
from .logging_config import get_logger, log_action
from .money import ZERO, round_money, sum_money, to_decimal
from .storage import StorageInterface, StorageRecord


class VoucherStatus(Enum):
    ACTIVE = "Active"
    CLOSED = "Closed"
    PENDING = "Pending"
    AUCTION_TRANSFERRED = "Auction Transferred"


@dataclass
class JewelryItem:
    category: str
    name: str
    sno: Optional[int] = None
    remarks: str = ""
    stone: str = ""
    count: int = 1
    purity: str = ""


@dataclass
class InterestPayment:
    """Interest received on a voucher for a number of months"""
    id: str
    amount: Decimal
    months: int
    date: date


@dataclass
class Voucher(StorageRecord):
    bill_no: str
    customer_id: str
    jewel_type: MetalType
    gross_weight: Decimal
    net_weight: Decimal
    loan_amount: Decimal
    final_loan_amount: Decimal
    interest_rate: Decimal
    interest_amount: Decimal
    overall_loan_amount: Decimal
    disbursement_date: date
    due_date: date
    deduction_weight: Decimal = ZERO
    loan_type: str = "Personal Loan"
    processing_fees: Decimal = ZERO
    status: VoucherStatus = VoucherStatus.ACTIVE
    closed_date: Optional[date] = None
    months_paid: int = 0
    total_interest_paid: Decimal = ZERO
    final_amount_paid: Decimal = ZERO
    payment_method: str = "Cash"
    auction_transfer_date: Optional[date] = None
    auction_transferred_by: Optional[str] = None
    auction_notes: Optional[str] = None
    payment_history: List[InterestPayment] = field(default_factory=list)
    jewelry_items: List[JewelryItem] = field(default_factory=list)
    notes: str = ""

    @property
    def interest_received(self) -> Decimal:
        return sum_money(p.amount for p in self.payment_history)

    @property
    def monthly_interest(self) -> Decimal:
        return round_money(self.final_loan_amount * self.interest_rate / Decimal("100"))


EDITABLE_FIELDS = (
    'customer_id', 'jewel_type', 'gross_weight', 'deduction_weight', 'net_weight',
    'loan_amount', 'final_loan_amount', 'interest_rate', 'interest_amount',
    'overall_loan_amount', 'loan_type', 'processing_fees', 'disbursement_date',
    'due_date', 'jewelry_items', 'notes', 'status',
)

DECIMAL_FIELDS = (
    'gross_weight', 'deduction_weight', 'net_weight', 'loan_amount', 'final_loan_amount',
    'interest_rate', 'interest_amount', 'overall_loan_amount', 'processing_fees',
)


class VoucherManager:
    """
    Manages pawn vouchers
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 customer_manager, clock: Optional[Clock] = None,
                 interest_rates: Optional[InterestRateManager] = None, trash_bin=None,
                 default_term_months: int = 12):
        self.storage = storage
        self.audit_trail = audit_trail
        self.customer_manager = customer_manager
        self.clock = clock or Clock()
        self.interest_rates = interest_rates
        self.trash_bin = trash_bin
        self.default_term_months = default_term_months
        self.logger = get_logger("pawnshop.vouchers")

        self.vouchers_table = "vouchers"

    # ------------------------------------------------------------------
    # CRUD

    def create_voucher(
        self,
        bill_no: str,
        customer_id: str,
        jewel_type: Any,
        gross_weight: Any,
        loan_amount: Any,
        interest_rate: Any = None,
        deduction_weight: Any = 0,
        net_weight: Any = None,
        final_loan_amount: Any = None,
        interest_amount: Any = None,
        overall_loan_amount: Any = None,
        loan_type: str = "Personal Loan",
        processing_fees: Any = 0,
        disbursement_date: Any = None,
        due_date: Any = None,
        jewelry_items: Optional[List[Dict[str, Any]]] = None,
        notes: str = "",
        created_by: Optional[str] = None
    ) -> Voucher:
        """
        Issue a voucher against pledged jewelry

        Net weight defaults to gross minus deduction, the final loan amount
        to the loan amount, the rate to the rate card band for the amount, the
        interest amount to one month of interest and the due date to the
        configured term after disbursement.
        """
        bill_no = (bill_no or "").strip()
        if not bill_no:
            raise ValidationError("Bill number is required")
        if self.storage.find(self.vouchers_table, {'bill_no': bill_no}):
            raise ValidationError(f"Bill number {bill_no} already exists")
        self.customer_manager.require_customer(customer_id)

        metal = MetalType.parse(jewel_type)
        gross = to_decimal(gross_weight, 'gross weight')
        deduction = to_decimal(deduction_weight, 'deduction weight')
        net = to_decimal(net_weight, 'net weight') if net_weight is not None else gross - deduction
        principal = round_money(loan_amount)
        final = round_money(final_loan_amount) if final_loan_amount is not None else principal

        if gross <= 0:
            raise ValidationError("Gross weight must be greater than zero")
        if deduction < 0 or net < 0:
            raise ValidationError("Weights cannot be negative")
        if principal <= 0 or final <= 0:
            raise ValidationError("Loan amount must be greater than zero")

        if interest_rate is None:
            if self.interest_rates is None:
                raise ValidationError("Interest rate is required")
            rate = self.interest_rates.rate_for(metal, final).interest
        else:
            rate = to_decimal(interest_rate, 'interest rate')
        if rate < 0:
            raise ValidationError("Interest rate cannot be negative")

        disbursed = parse_date(disbursement_date) or self.clock.today()
        due = parse_date(due_date) or add_months(disbursed, self.default_term_months)
        if due < disbursed:
            raise ValidationError("Due date cannot be before the disbursement date")

        monthly = round_money(final * rate / Decimal("100"))
        interest = round_money(interest_amount) if interest_amount is not None else monthly
        overall = (round_money(overall_loan_amount) if overall_loan_amount is not None
                   else round_money(final + interest))

        now = datetime.now(timezone.utc)
        voucher = Voucher(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            bill_no=bill_no,
            customer_id=customer_id,
            jewel_type=metal,
            gross_weight=gross,
            deduction_weight=deduction,
            net_weight=net,
            loan_amount=principal,
            final_loan_amount=final,
            interest_rate=rate,
            interest_amount=interest,
            overall_loan_amount=overall,
            loan_type=loan_type or "Personal Loan",
            processing_fees=round_money(processing_fees),
            disbursement_date=disbursed,
            due_date=due,
            jewelry_items=[self._item_from_dict(i) for i in (jewelry_items or [])],
            notes=notes or "",
        )
        self._save_voucher(voucher)

        self.audit_trail.log_event(
            AuditEventType.VOUCHER_CREATED, "voucher", voucher.id,
            {'bill_no': voucher.bill_no, 'customer_id': customer_id,
             'final_loan_amount': voucher.final_loan_amount},
            user_id=created_by
        )
        log_action(self.logger, "info", f"Created voucher {voucher.bill_no}",
                   user_id=created_by, action="voucher_created", resource=voucher.id)
        return voucher

    def get_voucher(self, voucher_id: str) -> Optional[Voucher]:
        data = self.storage.load(self.vouchers_table, voucher_id)
        if data:
            return self._voucher_from_dict(data)
        return None

    def require_voucher(self, voucher_id: str) -> Voucher:
        voucher = self.get_voucher(voucher_id)
        if voucher is None:
            raise NotFoundError("Voucher not found")
        return voucher

    def list_vouchers(self, status: Optional[str] = None,
                      customer_id: Optional[str] = None) -> List[Voucher]:
        vouchers = [self._voucher_from_dict(d) for d in self.storage.load_all(self.vouchers_table)]
        if status:
            vouchers = [v for v in vouchers if v.status.value.lower() == status.lower()]
        if customer_id:
            vouchers = [v for v in vouchers if v.customer_id == customer_id]
        vouchers.sort(key=lambda v: v.bill_no)
        return vouchers

    def closed_vouchers(self) -> List[Voucher]:
        vouchers = self.list_vouchers(VoucherStatus.CLOSED.value)
        vouchers.sort(key=lambda v: v.closed_date or date.min, reverse=True)
        return vouchers

    def update_voucher(self, voucher_id: str, changes: Dict[str, Any],
                       updated_by: Optional[str] = None) -> Voucher:
        voucher = self.require_voucher(voucher_id)
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown voucher fields: {', '.join(sorted(unknown))}")

        for name, value in changes.items():
            if value is None:
                continue
            if name in DECIMAL_FIELDS:
                value = to_decimal(value, name.replace('_', ' '))
            elif name == 'jewel_type':
                value = MetalType.parse(value)
            elif name in ('disbursement_date', 'due_date'):
                value = require_date(value, name)
            elif name == 'jewelry_items':
                value = [self._item_from_dict(i) for i in value]
            elif name == 'status':
                value = self._parse_status(value)
                if value == VoucherStatus.CLOSED:
                    raise ValidationError("Use the close operation to close a voucher")
            elif name == 'customer_id':
                self.customer_manager.require_customer(value)
            setattr(voucher, name, value)

        if voucher.due_date < voucher.disbursement_date:
            raise ValidationError("Due date cannot be before the disbursement date")

        voucher.updated_at = datetime.now(timezone.utc)
        self._save_voucher(voucher)
        self.audit_trail.log_event(
            AuditEventType.VOUCHER_UPDATED, "voucher", voucher.id,
            {'fields': sorted(k for k, v in changes.items() if v is not None)},
            user_id=updated_by
        )
        return voucher

    def delete_voucher(self, voucher_id: str, deleted_by: Optional[str] = None) -> None:
        """Move a voucher to the trash bin"""
        voucher = self.require_voucher(voucher_id)
        self._trash(voucher, deleted_by)

    def revert_and_delete(self, voucher_id: str, original_status: str,
                          deleted_by: Optional[str] = None) -> Voucher:
        """Undo the closure of a voucher and move it to the trash bin"""
        if original_status not in ("Active", "Overdue"):
            raise ValidationError("Original status must be Active or Overdue")
        voucher = self.require_voucher(voucher_id)
        if voucher.status != VoucherStatus.CLOSED:
            raise ValidationError("Can only revert closed vouchers")

        self._clear_closure(voucher)
        self._trash(voucher, deleted_by, details={
            'reverted_from': VoucherStatus.CLOSED.value,
            'reverted_to': original_status,
        })
        return voucher

    def restore(self, data: Dict[str, Any]) -> Voucher:
        """Trash bin restorer"""
        voucher = self._voucher_from_dict(dict(data))
        if self.storage.exists(self.vouchers_table, voucher.id):
            raise ValidationError(f"Voucher {voucher.bill_no} already exists")
        if self.storage.find(self.vouchers_table, {'bill_no': voucher.bill_no}):
            raise ValidationError(f"Bill number {voucher.bill_no} already exists")
        self._save_voucher(voucher)
        return voucher

    # ------------------------------------------------------------------
    # Interest payments

    def record_interest_payment(self, voucher_id: str, amount: Any, months: int,
                                payment_date: Any = None,
                                recorded_by: Optional[str] = None) -> InterestPayment:
        voucher = self.require_voucher(voucher_id)
        if voucher.status == VoucherStatus.CLOSED:
            raise AlreadyClosedError("Loan is already closed")
        value = round_money(amount)
        if value <= 0:
            raise ValidationError("Payment amount must be greater than zero")
        if int(months) < 1:
            raise ValidationError("Months must be at least 1")

        payment = InterestPayment(
            id=str(uuid.uuid4()),
            amount=value,
            months=int(months),
            date=parse_date(payment_date) or self.clock.today(),
        )
        voucher.payment_history.append(payment)
        voucher.updated_at = datetime.now(timezone.utc)
        self._save_voucher(voucher)

        self.audit_trail.log_event(
            AuditEventType.INTEREST_PAYMENT_RECORDED, "voucher", voucher.id,
            {'payment_id': payment.id, 'amount': value, 'months': payment.months},
            user_id=recorded_by
        )
        return payment

    def delete_interest_payment(self, voucher_id: str, payment_id: str,
                                deleted_by: Optional[str] = None) -> None:
        voucher = self.require_voucher(voucher_id)
        remaining = [p for p in voucher.payment_history if p.id != payment_id]
        if len(remaining) == len(voucher.payment_history):
            raise NotFoundError("Payment not found")
        voucher.payment_history = remaining
        voucher.updated_at = datetime.now(timezone.utc)
        self._save_voucher(voucher)
        self.audit_trail.log_event(
            AuditEventType.INTEREST_PAYMENT_DELETED, "voucher", voucher.id,
            {'payment_id': payment_id}, user_id=deleted_by
        )

    def list_interest_payments(self) -> List[Dict[str, Any]]:
        """Every interest payment across vouchers, newest first"""
        rows = []
        for voucher in self.list_vouchers():
            for payment in voucher.payment_history:
                rows.append({
                    'voucher_id': voucher.id,
                    'bill_no': voucher.bill_no,
                    'payment': payment,
                })
        rows.sort(key=lambda r: r['payment'].date, reverse=True)
        return rows

    # ------------------------------------------------------------------
    # Settlement and auction

    def close_voucher(self, voucher_id: str, payment_method: Any = None,
                      closed_by: Optional[str] = None) -> ClosureResult:
        """
        Settle a voucher: principal plus accrued interest still unpaid.

        Accrued interest is the monthly interest times the whole 30-day
        months since disbursement; interest already received is deducted
        and the difference is never negative.
        """
        voucher = self.require_voucher(voucher_id)
        if voucher.status == VoucherStatus.CLOSED:
            raise AlreadyClosedError("Loan is already closed")
        method = PaymentMethod.parse(payment_method)

        today = self.clock.today()
        months = whole_months_between(voucher.disbursement_date, today)
        already_paid = voucher.interest_received
        accrued = round_money(voucher.monthly_interest * months)
        outstanding_interest = max(ZERO, round_money(accrued - already_paid))
        final_amount = round_money(voucher.final_loan_amount + outstanding_interest)

        voucher.status = VoucherStatus.CLOSED
        voucher.closed_date = today
        voucher.months_paid = months
        voucher.total_interest_paid = round_money(already_paid + outstanding_interest)
        voucher.final_amount_paid = final_amount
        voucher.payment_method = method.value
        voucher.updated_at = datetime.now(timezone.utc)
        self._save_voucher(voucher)

        result = ClosureResult(final_amount=final_amount, months_paid=months, closed_date=today,
                               payment_method=method.value)
        self.audit_trail.log_event(
            AuditEventType.VOUCHER_CLOSED, "voucher", voucher.id,
            {'bill_no': voucher.bill_no, **result.to_dict()}, user_id=closed_by
        )
        log_action(self.logger, "info", f"Closed voucher {voucher.bill_no}",
                   user_id=closed_by, action="voucher_closed", resource=voucher.id,
                   extra={'final_amount': str(final_amount), 'months': months})
        return result

    def revert_closure(self, voucher_id: str, reverted_by: Optional[str] = None) -> Voucher:
        voucher = self.require_voucher(voucher_id)
        if voucher.status != VoucherStatus.CLOSED:
            raise ValidationError("Can only revert closed vouchers")
        self._clear_closure(voucher)
        self._save_voucher(voucher)
        self.audit_trail.log_event(
            AuditEventType.VOUCHER_CLOSURE_REVERTED, "voucher", voucher.id,
            {'bill_no': voucher.bill_no}, user_id=reverted_by
        )
        return voucher

    def transfer_to_auction(self, voucher_id: str, transferred_by: Optional[str] = None,
                            notes: Optional[str] = None, transfer_date: Any = None) -> Voucher:
        voucher = self.require_voucher(voucher_id)
        if voucher.status == VoucherStatus.CLOSED:
            raise AlreadyClosedError("Loan is already closed")
        if voucher.status == VoucherStatus.AUCTION_TRANSFERRED:
            raise ValidationError("Voucher is already transferred to auction")

        voucher.status = VoucherStatus.AUCTION_TRANSFERRED
        voucher.auction_transfer_date = parse_date(transfer_date) or self.clock.today()
        voucher.auction_transferred_by = transferred_by
        voucher.auction_notes = notes
        voucher.updated_at = datetime.now(timezone.utc)
        self._save_voucher(voucher)
        self.audit_trail.log_event(
            AuditEventType.VOUCHER_AUCTIONED, "voucher", voucher.id,
            {'bill_no': voucher.bill_no}, user_id=transferred_by
        )
        return voucher

    def revert_auction(self, voucher_id: str, reverted_by: Optional[str] = None) -> Voucher:
        voucher = self.require_voucher(voucher_id)
        if voucher.status != VoucherStatus.AUCTION_TRANSFERRED:
            raise ValidationError("Voucher is not transferred to auction")
        voucher.status = VoucherStatus.ACTIVE
        voucher.auction_transfer_date = None
        voucher.auction_transferred_by = None
        voucher.auction_notes = None
        voucher.updated_at = datetime.now(timezone.utc)
        self._save_voucher(voucher)
        self.audit_trail.log_event(
            AuditEventType.VOUCHER_AUCTION_REVERTED, "voucher", voucher.id,
            {'bill_no': voucher.bill_no}, user_id=reverted_by
        )
        return voucher

    # ------------------------------------------------------------------
    # Internals

    @staticmethod
    def _parse_status(value: Any) -> VoucherStatus:
        for member in VoucherStatus:
            if str(value).strip().lower() == member.value.lower():
                return member
        raise ValidationError(f"Invalid voucher status: {value}")

    @staticmethod
    def _clear_closure(voucher: Voucher) -> None:
        voucher.status = VoucherStatus.ACTIVE
        voucher.closed_date = None
        voucher.months_paid = 0
        voucher.total_interest_paid = ZERO
        voucher.final_amount_paid = ZERO
        voucher.updated_at = datetime.now(timezone.utc)

    def _trash(self, voucher: Voucher, deleted_by: Optional[str],
               details: Optional[Dict[str, Any]] = None) -> None:
        if self.trash_bin is not None:
            self.trash_bin.move_to_trash(
                "voucher", voucher.id, self._voucher_to_dict(voucher),
                original_status=voucher.status.value, deleted_by=deleted_by, details=details
            )
        self.storage.delete(self.vouchers_table, voucher.id)
        log_action(self.logger, "info", f"Deleted voucher {voucher.bill_no}",
                   user_id=deleted_by, action="voucher_deleted", resource=voucher.id)

    @staticmethod
    def _item_from_dict(data: Dict[str, Any]) -> JewelryItem:
        if not data.get('category') or not data.get('name'):
            raise ValidationError("Jewelry items need a category and a name")
        return JewelryItem(
            category=data['category'],
            name=data['name'],
            sno=data.get('sno'),
            remarks=data.get('remarks') or "",
            stone=data.get('stone') or "",
            count=int(data.get('count') or 1),
            purity=data.get('purity') or "",
        )

    def _save_voucher(self, voucher: Voucher) -> None:
        self.storage.save(self.vouchers_table, voucher.id, self._voucher_to_dict(voucher))

    def _voucher_to_dict(self, voucher: Voucher) -> Dict[str, Any]:
        return voucher.to_dict()

    def _voucher_from_dict(self, data: Dict[str, Any]) -> Voucher:
        return Voucher(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            bill_no=data['bill_no'],
            customer_id=data['customer_id'],
            jewel_type=MetalType.parse(data['jewel_type']),
            gross_weight=to_decimal(data['gross_weight']),
            deduction_weight=to_decimal(data.get('deduction_weight', '0')),
            net_weight=to_decimal(data['net_weight']),
            loan_amount=round_money(data['loan_amount']),
            final_loan_amount=round_money(data['final_loan_amount']),
            interest_rate=to_decimal(data['interest_rate']),
            interest_amount=round_money(data['interest_amount']),
            overall_loan_amount=round_money(data['overall_loan_amount']),
            loan_type=data.get('loan_type') or "Personal Loan",
            processing_fees=round_money(data.get('processing_fees', '0')),
            disbursement_date=require_date(data['disbursement_date'], 'disbursement_date'),
            due_date=require_date(data['due_date'], 'due_date'),
            status=self._parse_status(data.get('status', 'Active')),
            closed_date=parse_date(data.get('closed_date')),
            months_paid=int(data.get('months_paid', 0)),
            total_interest_paid=round_money(data.get('total_interest_paid', '0')),
            final_amount_paid=round_money(data.get('final_amount_paid', '0')),
            payment_method=data.get('payment_method') or "Cash",
            auction_transfer_date=parse_date(data.get('auction_transfer_date')),
            auction_transferred_by=data.get('auction_transferred_by'),
            auction_notes=data.get('auction_notes'),
            payment_history=[
                InterestPayment(
                    id=p['id'],
                    amount=round_money(p['amount']),
                    months=int(p['months']),
                    date=require_date(p['date'], 'date'),
                )
                for p in data.get('payment_history', [])
            ],
            jewelry_items=[self._item_from_dict(i) for i in data.get('jewelry_items', [])],
            notes=data.get('notes') or "",
        )
