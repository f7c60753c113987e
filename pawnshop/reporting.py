"""
Reporting Module

Read models derived from vouchers: the dated ledger, the stock summary and
the day book. All are full recomputes: prior entries for the key are deleted and the fresh
set written in one storage transaction. Readers outside that transaction may
briefly see an empty or partial set on backends without isolation; callers
treat these tables as rebuildable caches, never as the source of truth.
"""

import math
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .audit import AuditEventType, AuditTrail
from .customers import Customer, CustomerManager
from .dates import Clock, format_iso, parse_date, require_date, start_of_day
from .exceptions import ValidationError
from .interest_rates import MetalType
from .logging_config import get_logger, log_action
from .money import ZERO, round_money, sum_money, to_decimal
from .storage import StorageInterface, to_document
from .vouchers import Voucher, VoucherManager, VoucherStatus


class LoanCategory(Enum):
    ACTIVE = "active"
    OVERDUE = "overdue"
    CLOSED = "closed"
    INACTIVE = "inactive"


STATUS_FILTERS = ("active", "overdue", "closed")

MONEY_FIELDS = (
    'gross_weight', 'net_weight', 'final_loan_amount', 'interest_rate', 'interest_amount',
    'total_amount', 'repaid_amount', 'interest_paid', 'balance',
)


@dataclass
class LoanSnapshot:
    """Derived view of one voucher at a point in time"""
    voucher_id: str
    bill_no: str
    customer_id: str
    customer_name: str
    customer_phone: str
    customer_address: str
    jewel_type: str
    gross_weight: Decimal
    net_weight: Decimal
    final_loan_amount: Decimal
    interest_rate: Decimal
    interest_amount: Decimal
    total_amount: Decimal
    repaid_amount: Decimal
    interest_paid: Decimal
    balance: Decimal
    disbursement_date: date
    due_date: date
    status: str
    loan_status: LoanCategory
    is_overdue: bool
    days_overdue: int
    payment_progress: int
    loan_duration: int
    months_paid: int = 0
    closed_date: Optional[date] = None
    jewelry_items: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return to_document(asdict(self))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanSnapshot':
        values = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        for name in MONEY_FIELDS:
            values[name] = to_decimal(values[name])
        values['disbursement_date'] = require_date(values['disbursement_date'])
        values['due_date'] = require_date(values['due_date'])
        values['closed_date'] = parse_date(values.get('closed_date'))
        values['loan_status'] = LoanCategory(values['loan_status'])
        return cls(**values)


def _progress(repaid: Decimal, total: Decimal) -> int:
    if total <= 0:
        return 0
    ratio = (repaid / total * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return min(100, int(ratio))


def voucher_snapshot(voucher: Voucher, customer: Customer, now: datetime) -> LoanSnapshot:
    """
    Derive ledger and stock fields for a voucher.

    Repaid is the settlement amount once closed, otherwise the interest
    recorded as paid. A live voucher is overdue when its due date (taken at
    midnight) is before ``now`` and a balance remains; days overdue rounds
    up partial days.
    """
    repaid = voucher.final_amount_paid or voucher.total_interest_paid
    balance = max(ZERO, round_money(voucher.final_loan_amount - repaid))
    due_at = start_of_day(voucher.due_date)

    if voucher.status == VoucherStatus.CLOSED:
        category = LoanCategory.CLOSED
    elif voucher.status in (VoucherStatus.ACTIVE, VoucherStatus.PENDING):
        if balance <= 0:
            category = LoanCategory.CLOSED
        elif due_at < now:
            category = LoanCategory.OVERDUE
        else:
            category = LoanCategory.ACTIVE
    else:
        category = LoanCategory.INACTIVE

    days_overdue = 0
    if category == LoanCategory.OVERDUE:
        days_overdue = max(0, math.ceil((now - due_at).total_seconds() / 86400))

    return LoanSnapshot(
        voucher_id=voucher.id,
        bill_no=voucher.bill_no,
        customer_id=customer.id,
        customer_name=customer.full_name,
        customer_phone=customer.phone_number,
        customer_address=customer.address,
        jewel_type=voucher.jewel_type.value,
        gross_weight=voucher.gross_weight,
        net_weight=voucher.net_weight,
        final_loan_amount=voucher.final_loan_amount,
        interest_rate=voucher.interest_rate,
        interest_amount=voucher.interest_amount,
        total_amount=voucher.overall_loan_amount or voucher.final_loan_amount,
        repaid_amount=repaid,
        interest_paid=voucher.total_interest_paid,
        balance=balance,
        disbursement_date=voucher.disbursement_date,
        due_date=voucher.due_date,
        status=voucher.status.value,
        loan_status=category,
        is_overdue=category == LoanCategory.OVERDUE,
        days_overdue=days_overdue,
        payment_progress=_progress(repaid, voucher.final_loan_amount),
        loan_duration=(voucher.due_date - voucher.disbursement_date).days,
        months_paid=voucher.months_paid,
        closed_date=voucher.closed_date,
        jewelry_items=[item.name for item in voucher.jewelry_items],
    )


def _rate(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return int((Decimal(part) / Decimal(whole) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def summarize(items: List[LoanSnapshot]) -> Dict[str, Any]:
    """Counts, amounts and rates over a set of snapshots"""
    def of(category):
        return [i for i in items if i.loan_status == category]

    active, overdue, closed = of(LoanCategory.ACTIVE), of(LoanCategory.OVERDUE), of(LoanCategory.CLOSED)
    total_amount = sum_money(i.final_loan_amount for i in items)
    repaid = sum_money(i.repaid_amount for i in items)

    collection_rate = 0
    if total_amount > 0:
        collection_rate = int((repaid / total_amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    return {
        'total_loans': len(items),
        'active_loans': len(active),
        'overdue_loans': len(overdue),
        'closed_loans': len(closed),
        'inactive_loans': len(of(LoanCategory.INACTIVE)),
        'total_loan_amount': total_amount,
        'total_active_loan_amount': sum_money(i.final_loan_amount for i in active),
        'total_overdue_loan_amount': sum_money(i.final_loan_amount for i in overdue),
        'total_closed_loan_amount': sum_money(i.final_loan_amount for i in closed),
        'total_repaid_amount': repaid,
        'total_balance_amount': sum_money(i.balance for i in items),
        'total_interest_amount': sum_money(i.interest_amount for i in items),
        'overdue_rate': _rate(len(overdue), len(items)),
        'collection_rate': collection_rate,
        'average_loan_amount': round_money(total_amount / len(items)) if items else ZERO,
    }


def jewel_type_summary(items: List[LoanSnapshot]) -> Dict[str, Dict[str, Any]]:
    summary = {}
    for metal in MetalType:
        typed = [i for i in items if i.jewel_type == metal.value]
        total = sum_money(i.final_loan_amount for i in typed)
        summary[metal.value] = {
            'count': len(typed),
            'active': sum(1 for i in typed if i.loan_status == LoanCategory.ACTIVE),
            'overdue': sum(1 for i in typed if i.loan_status == LoanCategory.OVERDUE),
            'closed': sum(1 for i in typed if i.loan_status == LoanCategory.CLOSED),
            'total_amount': total,
            'average_amount': round_money(total / len(typed)) if typed else ZERO,
        }
    return summary


def monthly_stats(items: List[LoanSnapshot]) -> List[Dict[str, Any]]:
    """Loans issued and closed per calendar month"""
    months: Dict[Tuple[int, int], Dict[str, Any]] = defaultdict(lambda: {
        'loans_issued': 0,
        'loans_closed': 0,
        'amount_disbursed': ZERO,
        'amount_collected': ZERO,
        'interest_collected': ZERO,
    })
    for item in items:
        issued = months[(item.disbursement_date.year, item.disbursement_date.month)]
        issued['loans_issued'] += 1
        issued['amount_disbursed'] = round_money(issued['amount_disbursed'] + item.final_loan_amount)
        if item.closed_date is not None:
            closed = months[(item.closed_date.year, item.closed_date.month)]
            closed['loans_closed'] += 1
            closed['amount_collected'] = round_money(closed['amount_collected'] + item.repaid_amount)
            closed['interest_collected'] = round_money(closed['interest_collected'] + item.interest_paid)

    return [
        {
            'year': year,
            'month': month,
            'month_name': date(year, month, 1).strftime("%B"),
            **stats,
        }
        for (year, month), stats in sorted(months.items())
    ]


class _SnapshotSource:
    """Shared voucher-to-snapshot pass for both read models"""

    def __init__(self, storage: StorageInterface, voucher_manager: VoucherManager,
                 customer_manager: CustomerManager, audit_trail: AuditTrail,
                 clock: Optional[Clock] = None):
        self.storage = storage
        self.voucher_manager = voucher_manager
        self.customer_manager = customer_manager
        self.audit_trail = audit_trail
        self.clock = clock or Clock()

    def _snapshots(self) -> Tuple[List[LoanSnapshot], List[Dict[str, str]]]:
        now = self.clock.now()
        items, errors = [], []
        for voucher in self.voucher_manager.list_vouchers():
            customer = self.customer_manager.get_customer(voucher.customer_id)
            if customer is None:
                errors.append({
                    'voucher_id': voucher.id,
                    'bill_no': voucher.bill_no,
                    'error': "Customer not found",
                })
                self.logger.warning(f"Skipping voucher {voucher.bill_no}: customer "
                                    f"{voucher.customer_id} not found")
                continue
            items.append(voucher_snapshot(voucher, customer, now))
        return items, errors


class LedgerRebuilder(_SnapshotSource):
    """
    Per-date ledger of every voucher
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.logger = get_logger("pawnshop.reporting.ledger")
        self.ledger_table = "ledger"

    def rebuild(self, query_date: Any = None, requested_by: Optional[str] = None) -> Dict[str, Any]:
        """
        Regenerate the ledger for a date

        Returns:
            Dict with ``all_loans``, ``active_loans``, ``overdue_loans`` and
            ``closed_loans`` snapshot lists (bill number order), category
            counts and the vouchers that were skipped
        """
        day = parse_date(query_date) or self.clock.today()
        key = format_iso(day)
        items, errors = self._snapshots()

        with self.storage.atomic():
            removed = self.storage.delete_where(self.ledger_table, {'query_date': key})
            for item in items:
                entry_id = f"{key}:{item.voucher_id}"
                self.storage.save(self.ledger_table, entry_id,
                                  {'id': entry_id, 'query_date': key, **item.to_dict()})

        self.audit_trail.log_event(
            AuditEventType.LEDGER_REBUILT, "ledger", key,
            {'entries': len(items), 'replaced': removed, 'errors': len(errors)},
            user_id=requested_by
        )
        log_action(self.logger, "info", f"Rebuilt ledger for {key}",
                   user_id=requested_by, action="ledger_rebuilt", resource=key,
                   extra={'entries': len(items), 'errors': len(errors)})
        return self._report(key, items, errors)

    def entries(self, query_date: Any) -> List[LoanSnapshot]:
        """Stored entries for a date without regenerating them"""
        key = format_iso(require_date(query_date, 'query_date'))
        items = [LoanSnapshot.from_dict(d)
                 for d in self.storage.find(self.ledger_table, {'query_date': key})]
        items.sort(key=lambda i: i.bill_no)
        return items

    @staticmethod
    def _report(key: str, items: List[LoanSnapshot], errors: List[Dict[str, str]]) -> Dict[str, Any]:
        by_category = {c: [i for i in items if i.loan_status == c] for c in LoanCategory}
        return {
            'query_date': key,
            'all_loans': items,
            'active_loans': by_category[LoanCategory.ACTIVE],
            'overdue_loans': by_category[LoanCategory.OVERDUE],
            'closed_loans': by_category[LoanCategory.CLOSED],
            'category_counts': {
                'all': len(items),
                **{c.value: len(v) for c, v in by_category.items()},
            },
            'errors': errors,
        }


class StockSummaryBuilder(_SnapshotSource):
    """
    Single "latest" stock summary across all vouchers
    """

    SUMMARY_ID = "latest"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.logger = get_logger("pawnshop.reporting.stock")
        self.summary_table = "stock_summary"

    def rebuild(self, requested_by: Optional[str] = None) -> Dict[str, Any]:
        items, errors = self._snapshots()
        document = {
            'id': self.SUMMARY_ID,
            'last_updated': datetime.now(timezone.utc).isoformat(),
            'record_count': len(items),
            'items': [item.to_dict() for item in items],
            'totals': to_document(summarize(items)),
            'jewel_type_summary': to_document(jewel_type_summary(items)),
            'monthly_stats': to_document(monthly_stats(items)),
            'errors': errors,
        }

        with self.storage.atomic():
            self.storage.delete(self.summary_table, self.SUMMARY_ID)
            self.storage.save(self.summary_table, self.SUMMARY_ID, document)

        self.audit_trail.log_event(
            AuditEventType.STOCK_SUMMARY_REBUILT, "stock_summary", self.SUMMARY_ID,
            {'items': len(items), 'errors': len(errors)}, user_id=requested_by
        )
        log_action(self.logger, "info", "Rebuilt stock summary",
                   user_id=requested_by, action="stock_summary_rebuilt",
                   resource=self.SUMMARY_ID, extra={'items': len(items), 'errors': len(errors)})
        return self._summary_from_dict(document)

    def latest(self) -> Dict[str, Any]:
        """Stored summary, rebuilt first if there is none"""
        document = self.storage.load(self.summary_table, self.SUMMARY_ID)
        if document is None:
            return self.rebuild()
        return self._summary_from_dict(document)

    def get(self, search: Optional[str] = None, date_filter: Any = None,
            status_filter: Optional[str] = None, jewel_type: Optional[str] = None,
            page: int = 1, limit: int = 100) -> Dict[str, Any]:
        """Filtered, paginated view of the stock summary"""
        if page < 1 or limit < 1:
            raise ValidationError("Page and limit must be positive")
        summary = self.latest()
        items = summary['items']

        needle = (search or "").strip().lower()
        if needle:
            items = [
                i for i in items
                if needle in i.bill_no.lower()
                or needle in i.customer_name.lower()
                or needle in i.customer_id.lower()
                or needle in i.customer_phone
            ]
        day = parse_date(date_filter)
        if day is not None:
            items = [i for i in items if i.disbursement_date == day]
        if status_filter and status_filter != "all":
            if status_filter not in STATUS_FILTERS:
                raise ValidationError(f"Invalid status filter: {status_filter}")
            items = [i for i in items if i.loan_status.value == status_filter]
        if jewel_type:
            wanted = MetalType.parse(jewel_type).value
            items = [i for i in items if i.jewel_type == wanted]

        total = len(items)
        start = (page - 1) * limit
        return {
            'items': items[start:start + limit],
            'pagination': {
                'page': page,
                'limit': limit,
                'total': total,
                'pages': math.ceil(total / limit) if total else 0,
            },
            'statistics': summarize(items),
            'jewel_type_summary': summary['jewel_type_summary'],
            'summary': summary['totals'],
            'last_updated': summary['last_updated'],
        }

    def dashboard(self) -> Dict[str, Any]:
        summary = self.latest()
        items = summary['items']
        overdue = sorted((i for i in items if i.is_overdue),
                         key=lambda i: (-i.days_overdue, i.bill_no))
        recent = sorted(items, key=lambda i: (i.disbursement_date, i.bill_no), reverse=True)
        return {
            'summary': summary['totals'],
            'jewel_type_summary': summary['jewel_type_summary'],
            'monthly_stats': summary['monthly_stats'],
            'top_overdue': overdue[:5],
            'recent_loans': recent[:5],
            'last_updated': summary['last_updated'],
        }

    @staticmethod
    def _summary_from_dict(data: Dict[str, Any]) -> Dict[str, Any]:
        items = [LoanSnapshot.from_dict(i) for i in data.get('items', [])]
        return {
            'items': items,
            'totals': summarize(items),
            'jewel_type_summary': jewel_type_summary(items),
            'monthly_stats': monthly_stats(items),
            'errors': data.get('errors', []),
            'last_updated': datetime.fromisoformat(data['last_updated']),
        }


DAY_BOOK_SECTIONS = ('new_loans', 'interest_received', 'closed_loans')

DAY_BOOK_MONEY = ('amount', 'net_weight', 'interest_rate', 'original_amount', 'interest_paid',
                  'total_settled')
DAY_BOOK_DATES = ('disbursement_date', 'payment_date', 'closure_date')


def _day_book_row(data: Dict[str, Any]) -> Dict[str, Any]:
    row = dict(data)
    for name in DAY_BOOK_MONEY:
        if name in row:
            row[name] = to_decimal(row[name])
    for name in DAY_BOOK_DATES:
        if name in row:
            row[name] = parse_date(row[name])
    return row


def _section(rows: List[Dict[str, Any]], amount_field: str) -> Dict[str, Any]:
    return {
        'count': len(rows),
        'total_amount': sum_money(row[amount_field] for row in rows),
        'transactions': rows,
    }


def day_book_entries(day: date, vouchers: List[Voucher],
                     customers: Dict[str, Customer]) -> Dict[str, Any]:
    """
    Counter activity for one day.

    New loans are vouchers disbursed or entered that day, interest received
    is every interest payment dated that day and closed loans are vouchers
    settled that day. Vouchers whose customer is gone still count, with the
    customer shown as N/A.
    """
    new_loans, interest, closed = [], [], []
    for voucher in sorted(vouchers, key=lambda v: v.bill_no):
        customer = customers.get(voucher.customer_id)
        who = {
            'voucher_id': voucher.id,
            'bill_no': voucher.bill_no,
            'customer_id': customer.id if customer else "N/A",
            'customer_name': customer.full_name if customer else "N/A",
        }

        if voucher.disbursement_date == day or voucher.created_at.date() == day:
            new_loans.append({
                **who,
                'amount': voucher.final_loan_amount,
                'jewel_type': voucher.jewel_type.value,
                'net_weight': voucher.net_weight,
                'interest_rate': voucher.interest_rate,
                'disbursement_date': voucher.disbursement_date,
            })

        for index, payment in enumerate(voucher.payment_history, start=1):
            if payment.date == day:
                interest.append({
                    **who,
                    'payment_id': payment.id,
                    'amount': payment.amount,
                    'months': payment.months,
                    'receipt_no': f"RCP-{voucher.bill_no}-{index}",
                    'payment_date': payment.date,
                })

        if voucher.status == VoucherStatus.CLOSED and voucher.closed_date == day:
            settled = voucher.final_amount_paid or round_money(
                voucher.final_loan_amount + voucher.total_interest_paid)
            closed.append({
                **who,
                'original_amount': voucher.final_loan_amount,
                'interest_paid': voucher.total_interest_paid,
                'total_settled': settled,
                'months_paid': voucher.months_paid,
                'payment_method': voucher.payment_method,
                'closure_date': voucher.closed_date,
            })

    summary = {
        'new_loans': _section(new_loans, 'amount'),
        'interest_received': _section(interest, 'amount'),
        'closed_loans': _section(closed, 'total_settled'),
    }
    return {
        'date': day,
        'summary': summary,
        'total_activity': sum_money(summary[name]['total_amount'] for name in DAY_BOOK_SECTIONS),
    }


class DayBookBuilder(_SnapshotSource):
    """
    Stored day book per business date
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.logger = get_logger("pawnshop.reporting.daybook")
        self.day_book_table = "day_book"

    def generate(self, query_date: Any = None, regenerate: bool = False,
                 requested_by: Optional[str] = None) -> Dict[str, Any]:
        """
        Day book for a date, computed on first request and served from
        storage afterwards unless ``regenerate`` is set
        """
        day = parse_date(query_date) or self.clock.today()
        key = format_iso(day)

        stored = self.storage.load(self.day_book_table, key)
        if stored is not None and not regenerate:
            return self._from_dict(stored)

        customers = {c.id: c for c in self.customer_manager.list_customers()}
        book = day_book_entries(day, self.voucher_manager.list_vouchers(), customers)
        document = {
            'id': key,
            'generated_at': datetime.now(timezone.utc).isoformat(),
            **to_document(book),
        }
        with self.storage.atomic():
            self.storage.delete(self.day_book_table, key)
            self.storage.save(self.day_book_table, key, document)

        counts = {name: book['summary'][name]['count'] for name in DAY_BOOK_SECTIONS}
        self.audit_trail.log_event(
            AuditEventType.DAY_BOOK_GENERATED, "day_book", key, counts, user_id=requested_by
        )
        log_action(self.logger, "info", f"Generated day book for {key}",
                   user_id=requested_by, action="day_book_generated", resource=key,
                   extra=counts)
        return self._from_dict(document)

    @staticmethod
    def _from_dict(data: Dict[str, Any]) -> Dict[str, Any]:
        summary = {}
        for name in DAY_BOOK_SECTIONS:
            section = data['summary'][name]
            summary[name] = {
                'count': section['count'],
                'total_amount': to_decimal(section['total_amount']),
                'transactions': [_day_book_row(row) for row in section['transactions']],
            }
        return {
            'date': require_date(data['date']),
            'summary': summary,
            'total_activity': to_decimal(data['total_activity']),
            'generated_at': datetime.fromisoformat(data['generated_at']),
        }
