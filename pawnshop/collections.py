"""
Collections Management Module

Read-optimized projection of personal loans for the collection desk. The Loan
record stays authoritative: a Collection is created lazily from it, refreshed
after every payment or status change, and rebuilt from it whenever the
embedded installment/payment arrays no longer match.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .dates import Clock, format_iso, parse_date
from .exceptions import NotFoundError, ValidationError
from .loan_status import LoanStatus, collection_status_for
from .loans import Loan, LoanManager, Payment
from .logging_config import get_logger, log_action
from .money import ZERO, percent, round_money, sum_money
from .schedule import Installment
from .storage import StorageInterface, StorageRecord


class CollectionStatus(Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"
    DEFAULTED = "Defaulted"
    SUSPENDED = "Suspended"


class CollectionPriority(Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


PRIORITY_RANK = {
    CollectionPriority.CRITICAL: 0,
    CollectionPriority.HIGH: 1,
    CollectionPriority.MEDIUM: 2,
    CollectionPriority.LOW: 3,
}

SYNC_USER = "sync_system"


@dataclass
class Collection(StorageRecord):
    """Collection desk view of one loan; ``id`` is the loan id"""
    customer_id: Optional[str]
    customer_name: str
    customer_phone: str
    original_loan_amount: Decimal
    total_amount: Decimal
    total_interest: Decimal
    number_of_installments: int
    installment_frequency: str
    customer_address: str = ""
    customer_father_spouse: str = ""
    customer_alt_phone: str = ""
    collection_status: CollectionStatus = CollectionStatus.ACTIVE
    total_paid_amount: Decimal = ZERO
    total_fines_paid: Decimal = ZERO
    remaining_balance: Decimal = ZERO
    paid_installments: int = 0
    pending_installments: int = 0
    overdue_installments: int = 0
    next_due_date: Optional[date] = None
    next_due_amount: Decimal = ZERO
    next_installment_no: Optional[int] = None
    installments: List[Installment] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)
    first_payment_date: Optional[date] = None
    last_payment_date: Optional[date] = None
    assigned_to: Optional[str] = None
    collection_route: Optional[str] = None
    priority: CollectionPriority = CollectionPriority.MEDIUM
    notes: str = ""
    last_updated_by: Optional[str] = None
    synced_at: Optional[datetime] = None

    @property
    def loan_id(self) -> str:
        return self.id


class CollectionsManager:
    """
    Keeps Collection records in step with their loans
    """

    def __init__(self, storage: StorageInterface, loan_manager: LoanManager,
                 clock: Optional[Clock] = None, critical_overdue_threshold: int = 2):
        self.storage = storage
        self.loan_manager = loan_manager
        self.clock = clock or Clock()
        self.critical_overdue_threshold = critical_overdue_threshold
        self.logger = get_logger("pawnshop.collections")

        self.collections_table = "collections"

    # ------------------------------------------------------------------
    # Synchronizer

    def create_from_loan(self, loan: Loan) -> Collection:
        """Return the loan's collection, building it the first time"""
        existing = self.get_collection(loan.id)
        if existing is not None:
            return existing

        now = datetime.now(timezone.utc)
        collection = Collection(
            id=loan.id,
            created_at=now,
            updated_at=now,
            customer_id=loan.customer_id,
            customer_name=loan.customer_name,
            customer_phone=loan.customer_phone,
            customer_address=loan.customer_address,
            customer_father_spouse=loan.customer_father_spouse,
            customer_alt_phone=loan.customer_alt_phone,
            original_loan_amount=loan.loan_amount,
            total_amount=loan.total_amount,
            total_interest=loan.total_interest,
            number_of_installments=loan.number_of_installments,
            installment_frequency=loan.installment_frequency.value,
            last_updated_by=SYNC_USER,
        )
        self._copy_arrays(collection, loan)
        self._apply_loan_summary(collection, loan)
        self._save_collection(collection)

        log_action(self.logger, "info", f"Created collection for loan {loan.id}",
                   action="collection_created", resource=loan.id)
        return collection

    def sync_with_loan(self, loan_id: str) -> Collection:
        """
        Refresh summary fields from the loan.

        The embedded arrays are only re-derived when they have drifted from
        the loan's arrays (different statuses, paid amounts or payment ids).
        """
        loan = self.loan_manager.get_loan(loan_id)
        if loan is None:
            raise NotFoundError("Loan not found")

        collection = self.get_collection(loan_id)
        if collection is None:
            return self.create_from_loan(loan)

        if self._arrays_diverge(collection, loan):
            self._copy_arrays(collection, loan)
            log_action(self.logger, "info", f"Collection for loan {loan_id} re-derived from loan",
                       action="collection_rederived", resource=loan_id)

        self._apply_loan_summary(collection, loan)
        self._save_collection(collection)
        return collection

    def resync(self, loan_id: str) -> Collection:
        """Rebuild the whole projection from the loan, keeping desk-only fields"""
        loan = self.loan_manager.get_loan(loan_id)
        if loan is None:
            raise NotFoundError("Loan not found")

        collection = self.get_collection(loan_id)
        if collection is None:
            return self.create_from_loan(loan)

        collection.customer_id = loan.customer_id
        collection.customer_name = loan.customer_name
        collection.customer_phone = loan.customer_phone
        collection.customer_address = loan.customer_address
        collection.customer_father_spouse = loan.customer_father_spouse
        collection.customer_alt_phone = loan.customer_alt_phone
        collection.original_loan_amount = loan.loan_amount
        collection.total_amount = loan.total_amount
        collection.total_interest = loan.total_interest
        collection.number_of_installments = loan.number_of_installments
        collection.installment_frequency = loan.installment_frequency.value
        self._copy_arrays(collection, loan)
        self._apply_loan_summary(collection, loan)
        self._save_collection(collection)
        return collection

    def sync_all(self) -> Dict[str, Any]:
        """
        Create or refresh collections for every loan that is not Closed.

        Rows that fail are reported in ``errors`` and do not stop the batch.
        """
        results = {
            'total_loans': 0,
            'synced_count': 0,
            'created_count': 0,
            'error_count': 0,
            'errors': [],
        }

        for data in self.storage.load_all(self.loan_manager.loans_table):
            loan_id = data.get('id')
            if data.get('status') == LoanStatus.CLOSED.value:
                continue
            results['total_loans'] += 1
            try:
                existed = self.storage.exists(self.collections_table, loan_id)
                if existed:
                    self.sync_with_loan(loan_id)
                    results['synced_count'] += 1
                else:
                    self.create_from_loan(self.loan_manager.require_loan(loan_id))
                    results['created_count'] += 1
            except (KeyError, TypeError, ValueError) as e:
                results['error_count'] += 1
                results['errors'].append({'loan_id': loan_id, 'error': str(e)})
                log_action(self.logger, "warning", f"Collection sync failed for loan {loan_id}: {e}",
                           action="collection_sync_failed", resource=loan_id)

        log_action(self.logger, "info", "Collection sync completed",
                   action="collection_sync_all",
                   extra={k: v for k, v in results.items() if k != 'errors'})
        return results

    # ------------------------------------------------------------------
    # Desk operations

    def get_collection(self, loan_id: str) -> Optional[Collection]:
        data = self.storage.load(self.collections_table, loan_id)
        if data:
            return self._collection_from_dict(data)
        return None

    def get_for_collection(self, loan_id: str) -> Collection:
        """Collection for a loan, created on first view and refreshed every time"""
        loan = self.loan_manager.get_loan(loan_id)
        if loan is None:
            raise NotFoundError("Loan not found")
        self.create_from_loan(loan)
        return self.sync_with_loan(loan_id)

    def list_collections(self, search: Optional[str] = None, page: int = 1,
                         limit: int = 10, statuses: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Collections on the desk (Active and Suspended by default), soonest due
        first and most urgent first within the same day
        """
        if self.storage.count(self.collections_table) == 0:
            self.sync_all()

        wanted = {CollectionStatus(s) for s in statuses} if statuses else {
            CollectionStatus.ACTIVE, CollectionStatus.SUSPENDED
        }
        collections = [
            c for c in (self._collection_from_dict(d)
                        for d in self.storage.load_all(self.collections_table))
            if c.collection_status in wanted
        ]

        needle = (search or "").strip().lower()
        if needle:
            collections = [
                c for c in collections
                if needle in c.loan_id.lower()
                or needle in c.customer_name.lower()
                or needle in c.customer_phone.lower()
            ]

        collections.sort(key=lambda c: (
            c.next_due_date is None,
            c.next_due_date or date.max,
            PRIORITY_RANK[c.priority],
        ))

        page = max(1, page)
        limit = max(1, limit)
        total = len(collections)
        start = (page - 1) * limit
        return {
            'collections': collections[start:start + limit],
            'total': total,
            'page': page,
            'pages': (total + limit - 1) // limit,
        }

    def assign(self, loan_id: str, assigned_to: Optional[str],
               collection_route: Optional[str] = None, notes: Optional[str] = None) -> Collection:
        collection = self.get_for_collection(loan_id)
        collection.assigned_to = assigned_to
        if collection_route is not None:
            collection.collection_route = collection_route
        if notes is not None:
            collection.notes = notes
        self._save_collection(collection)
        log_action(self.logger, "info", f"Collection for loan {loan_id} assigned to {assigned_to}",
                   user_id=assigned_to, action="collection_assigned", resource=loan_id)
        return collection

    def set_collection_status(self, loan_id: str, status: str) -> Collection:
        """Suspend or reactivate collection work; loan-driven states come from sync"""
        try:
            target = CollectionStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid collection status: {status}")
        if target not in (CollectionStatus.ACTIVE, CollectionStatus.SUSPENDED):
            raise ValidationError("Collection status can only be set to Active or Suspended")

        collection = self.get_for_collection(loan_id)
        if collection.collection_status not in (CollectionStatus.ACTIVE, CollectionStatus.SUSPENDED):
            raise ValidationError(
                f"Collection is {collection.collection_status.value} and follows its loan"
            )
        collection.collection_status = target
        self._save_collection(collection)
        return collection

    def summary(self, loan_id: str) -> Dict[str, Any]:
        collection = self.get_for_collection(loan_id)
        return {
            'loan_id': collection.loan_id,
            'collection_status': collection.collection_status.value,
            'priority': collection.priority.value,
            'total_amount': collection.total_amount,
            'total_paid_amount': collection.total_paid_amount,
            'remaining_balance': collection.remaining_balance,
            'payment_progress': percent(collection.total_paid_amount, collection.total_amount),
            'completion_rate': percent(
                Decimal(collection.paid_installments), Decimal(collection.number_of_installments)
            ),
            'overdue_installments': collection.overdue_installments,
            'next_due_date': collection.next_due_date,
            'next_due_amount': collection.next_due_amount,
        }

    def dashboard(self) -> Dict[str, Any]:
        today = self.clock.today()
        collections = [self._collection_from_dict(d)
                       for d in self.storage.load_all(self.collections_table)]
        active = [c for c in collections if c.collection_status == CollectionStatus.ACTIVE]
        due_today = [c for c in active if c.next_due_date == today]

        breakdown = {p.value: 0 for p in CollectionPriority}
        for collection in active:
            breakdown[collection.priority.value] += 1

        total_amount = sum_money(c.total_amount for c in collections)
        total_paid = sum_money(c.total_paid_amount for c in collections)

        return {
            'total_active_loans': len(active),
            'total_outstanding': sum_money(c.remaining_balance for c in active),
            'total_overdue': len([c for c in active if c.overdue_installments > 0]),
            'today_due': len(due_today),
            'today_due_amount': sum_money(c.next_due_amount for c in due_today),
            'priority_breakdown': breakdown,
            'average_loan_amount': (
                round_money(sum_money(c.original_loan_amount for c in active) / len(active))
                if active else ZERO
            ),
            'collection_efficiency': percent(total_paid, total_amount),
        }

    # ------------------------------------------------------------------
    # Internals

    def _copy_arrays(self, collection: Collection, loan: Loan) -> None:
        collection.installments = [Installment.from_dict(i.to_dict()) for i in loan.installments]
        collection.payments = [Payment.from_dict(p.to_dict()) for p in loan.payments]

    @staticmethod
    def _arrays_diverge(collection: Collection, loan: Loan) -> bool:
        def installment_keys(items):
            return [(i.installment_no, i.status, i.paid_amount, i.due_date, i.emi_amount)
                    for i in items]

        if installment_keys(collection.installments) != installment_keys(loan.installments):
            return True
        return [p.payment_id for p in collection.payments] != [p.payment_id for p in loan.payments]

    def _apply_loan_summary(self, collection: Collection, loan: Loan) -> None:
        mapped = CollectionStatus(collection_status_for(loan.status))
        if not (collection.collection_status == CollectionStatus.SUSPENDED
                and mapped == CollectionStatus.ACTIVE):
            collection.collection_status = mapped

        paid = [i for i in loan.installments if i.is_paid]
        collection.total_paid_amount = loan.paid_amount
        collection.total_fines_paid = sum_money(p.fine_amount for p in loan.payments)
        collection.remaining_balance = loan.remaining_balance
        collection.paid_installments = len(paid)
        collection.pending_installments = len(loan.installments) - len(paid)

        upcoming = loan.next_due_installment
        collection.next_due_date = upcoming.due_date if upcoming else None
        collection.next_due_amount = upcoming.outstanding if upcoming else ZERO
        collection.next_installment_no = upcoming.installment_no if upcoming else None

        payment_dates = sorted(p.payment_date for p in loan.payments)
        collection.first_payment_date = payment_dates[0] if payment_dates else None
        collection.last_payment_date = payment_dates[-1] if payment_dates else None

        collection.synced_at = datetime.now(timezone.utc)
        collection.last_updated_by = SYNC_USER

    def _priority_for(self, overdue: int) -> CollectionPriority:
        if overdue > self.critical_overdue_threshold:
            return CollectionPriority.CRITICAL
        if overdue > 0:
            return CollectionPriority.HIGH
        return CollectionPriority.MEDIUM

    def _save_collection(self, collection: Collection) -> None:
        """Persist, recounting overdue installments and priority against today"""
        today = self.clock.today()
        collection.overdue_installments = len(
            [i for i in collection.installments if i.is_overdue_on(today)]
        )
        collection.priority = self._priority_for(collection.overdue_installments)
        collection.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.collections_table, collection.id,
                          self._collection_to_dict(collection))

    def _collection_to_dict(self, collection: Collection) -> Dict[str, Any]:
        return {
            'id': collection.id,
            'loan_id': collection.id,
            'created_at': collection.created_at.isoformat(),
            'updated_at': collection.updated_at.isoformat(),
            'customer_id': collection.customer_id,
            'customer_name': collection.customer_name,
            'customer_phone': collection.customer_phone,
            'customer_address': collection.customer_address,
            'customer_father_spouse': collection.customer_father_spouse,
            'customer_alt_phone': collection.customer_alt_phone,
            'original_loan_amount': str(collection.original_loan_amount),
            'total_amount': str(collection.total_amount),
            'total_interest': str(collection.total_interest),
            'number_of_installments': collection.number_of_installments,
            'installment_frequency': collection.installment_frequency,
            'collection_status': collection.collection_status.value,
            'total_paid_amount': str(collection.total_paid_amount),
            'total_fines_paid': str(collection.total_fines_paid),
            'remaining_balance': str(collection.remaining_balance),
            'paid_installments': collection.paid_installments,
            'pending_installments': collection.pending_installments,
            'overdue_installments': collection.overdue_installments,
            'next_due_date': format_iso(collection.next_due_date),
            'next_due_amount': str(collection.next_due_amount),
            'next_installment_no': collection.next_installment_no,
            'installments': [i.to_dict() for i in collection.installments],
            'payments': [p.to_dict() for p in collection.payments],
            'first_payment_date': format_iso(collection.first_payment_date),
            'last_payment_date': format_iso(collection.last_payment_date),
            'assigned_to': collection.assigned_to,
            'collection_route': collection.collection_route,
            'priority': collection.priority.value,
            'notes': collection.notes,
            'last_updated_by': collection.last_updated_by,
            'synced_at': collection.synced_at.isoformat() if collection.synced_at else None,
        }

    def _collection_from_dict(self, data: Dict[str, Any]) -> Collection:
        return Collection(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            customer_id=data.get('customer_id'),
            customer_name=data.get('customer_name') or "",
            customer_phone=data.get('customer_phone') or "",
            customer_address=data.get('customer_address') or "",
            customer_father_spouse=data.get('customer_father_spouse') or "",
            customer_alt_phone=data.get('customer_alt_phone') or "",
            original_loan_amount=round_money(data['original_loan_amount']),
            total_amount=round_money(data['total_amount']),
            total_interest=round_money(data['total_interest']),
            number_of_installments=int(data['number_of_installments']),
            installment_frequency=data['installment_frequency'],
            collection_status=CollectionStatus(data.get('collection_status', 'Active')),
            total_paid_amount=round_money(data.get('total_paid_amount', '0')),
            total_fines_paid=round_money(data.get('total_fines_paid', '0')),
            remaining_balance=round_money(data.get('remaining_balance', '0')),
            paid_installments=int(data.get('paid_installments', 0)),
            pending_installments=int(data.get('pending_installments', 0)),
            overdue_installments=int(data.get('overdue_installments', 0)),
            next_due_date=parse_date(data.get('next_due_date')),
            next_due_amount=round_money(data.get('next_due_amount', '0')),
            next_installment_no=data.get('next_installment_no'),
            installments=[Installment.from_dict(i) for i in data.get('installments', [])],
            payments=[Payment.from_dict(p) for p in data.get('payments', [])],
            first_payment_date=parse_date(data.get('first_payment_date')),
            last_payment_date=parse_date(data.get('last_payment_date')),
            assigned_to=data.get('assigned_to'),
            collection_route=data.get('collection_route'),
            priority=CollectionPriority(data.get('priority', 'Medium')),
            notes=data.get('notes') or "",
            last_updated_by=data.get('last_updated_by'),
            synced_at=datetime.fromisoformat(data['synced_at']) if data.get('synced_at') else None,
        )
