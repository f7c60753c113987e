"""
Financial Year Module

Indian financial years run from 1 April to 31 March. At most one year is
active at a time; creating a year makes it the active one. The yearly summary
is derived from vouchers: principal disbursed and interest received inside
the year, against the opening and closing stock values entered by staff.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .audit import AuditEventType, AuditTrail
from .customers import CustomerStatus
from .dates import require_date
from .exceptions import NotFoundError, ValidationError
from .logging_config import get_logger, log_action
from .money import ZERO, round_money, sum_money, to_decimal
from .storage import StorageInterface, StorageRecord
from .vouchers import VoucherStatus


@dataclass
class FinancialYear(StorageRecord):
    year: int
    start_date: date
    end_date: date
    is_active: bool = False
    initial_stock_value: Decimal = ZERO
    final_stock_value: Decimal = ZERO

    @property
    def period(self) -> str:
        return f"01/04/{self.year} - 31/03/{self.year + 1}"

    def covers(self, day: Optional[date]) -> bool:
        return day is not None and self.start_date <= day <= self.end_date

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FinancialYear':
        data['year'] = int(data['year'])
        data['start_date'] = require_date(data['start_date'])
        data['end_date'] = require_date(data['end_date'])
        data['initial_stock_value'] = round_money(data.get('initial_stock_value', '0'))
        data['final_stock_value'] = round_money(data.get('final_stock_value', '0'))
        return super().from_dict(data)


class FinancialYearManager:
    """
    Manages financial years and their summaries
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 voucher_manager, customer_manager, trash_bin=None):
        self.storage = storage
        self.audit_trail = audit_trail
        self.voucher_manager = voucher_manager
        self.customer_manager = customer_manager
        self.trash_bin = trash_bin
        self.logger = get_logger("pawnshop.financial_years")

        self.years_table = "financial_years"

    @staticmethod
    def _stock_value(value: Any, field: str) -> Decimal:
        amount = round_money(to_decimal(value, field))
        if amount < 0:
            raise ValidationError(f"{field.replace('_', ' ').capitalize()} cannot be negative")
        return amount

    def _by_year(self, year: int) -> Optional[FinancialYear]:
        for data in self.storage.find(self.years_table, {'year': year}):
            return FinancialYear.from_dict(data)
        return None

    def _deactivate_others(self, keep_id: str) -> None:
        for other in self.list_years():
            if other.id != keep_id and other.is_active:
                other.is_active = False
                other.updated_at = datetime.now(timezone.utc)
                self.storage.save(self.years_table, other.id, other.to_dict())

    def create_year(self, year: Any, initial_stock_value: Any = 0, final_stock_value: Any = 0,
                    created_by: Optional[str] = None) -> FinancialYear:
        """Open the year starting 1 April ``year`` and make it the active one"""
        try:
            year = int(year)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid financial year: {year}")
        if not 1900 <= year <= 9998:
            raise ValidationError(f"Invalid financial year: {year}")
        if self._by_year(year) is not None:
            raise ValidationError("Financial year already exists")

        now = datetime.now(timezone.utc)
        financial_year = FinancialYear(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            year=year,
            start_date=date(year, 4, 1),
            end_date=date(year + 1, 3, 31),
            is_active=True,
            initial_stock_value=self._stock_value(initial_stock_value, 'initial_stock_value'),
            final_stock_value=self._stock_value(final_stock_value, 'final_stock_value'),
        )
        with self.storage.atomic():
            self._deactivate_others(financial_year.id)
            self.storage.save(self.years_table, financial_year.id, financial_year.to_dict())

        self.audit_trail.log_event(
            AuditEventType.FINANCIAL_YEAR_CHANGED, "financial_year", financial_year.id,
            {'action': 'created', 'year': year}, user_id=created_by
        )
        log_action(self.logger, "info", f"Opened financial year {financial_year.period}",
                   user_id=created_by, action="financial_year_created",
                   resource=financial_year.id)
        return financial_year

    def get_year(self, year_id: str) -> Optional[FinancialYear]:
        data = self.storage.load(self.years_table, year_id)
        if data:
            return FinancialYear.from_dict(data)
        return None

    def require_year(self, year_id: str) -> FinancialYear:
        financial_year = self.get_year(year_id)
        if financial_year is None:
            raise NotFoundError("Financial year not found")
        return financial_year

    def list_years(self) -> List[FinancialYear]:
        """Latest year first"""
        years = [FinancialYear.from_dict(d) for d in self.storage.load_all(self.years_table)]
        years.sort(key=lambda y: y.year, reverse=True)
        return years

    def active_year(self) -> FinancialYear:
        for financial_year in self.list_years():
            if financial_year.is_active:
                return financial_year
        raise NotFoundError("No active financial year found")

    def update_year(self, year_id: str, changes: Dict[str, Any],
                    updated_by: Optional[str] = None) -> FinancialYear:
        """Stock values and activation; activating a year deactivates the rest"""
        financial_year = self.require_year(year_id)
        for name in ('initial_stock_value', 'final_stock_value'):
            if changes.get(name) is not None:
                setattr(financial_year, name, self._stock_value(changes[name], name))
        if changes.get('is_active') is not None:
            financial_year.is_active = bool(changes['is_active'])
        financial_year.updated_at = datetime.now(timezone.utc)

        with self.storage.atomic():
            if financial_year.is_active:
                self._deactivate_others(financial_year.id)
            self.storage.save(self.years_table, financial_year.id, financial_year.to_dict())

        self.audit_trail.log_event(
            AuditEventType.FINANCIAL_YEAR_CHANGED, "financial_year", financial_year.id,
            {'action': 'updated', 'is_active': financial_year.is_active}, user_id=updated_by
        )
        return financial_year

    def delete_year(self, year_id: str, deleted_by: Optional[str] = None) -> None:
        financial_year = self.require_year(year_id)
        if self.trash_bin is not None:
            self.trash_bin.move_to_trash(
                "financialYear", financial_year.id, financial_year.to_dict(),
                original_status="active" if financial_year.is_active else "inactive",
                deleted_by=deleted_by, details={'year': financial_year.year}
            )
        self.storage.delete(self.years_table, financial_year.id)
        log_action(self.logger, "info", f"Deleted financial year {financial_year.period}",
                   user_id=deleted_by, action="financial_year_deleted",
                   resource=financial_year.id)

    def restore(self, data: Dict[str, Any]) -> FinancialYear:
        """Trash bin restorer; comes back inactive if another year took over"""
        financial_year = FinancialYear.from_dict(dict(data))
        if self._by_year(financial_year.year) is not None:
            raise ValidationError("Financial year already exists")
        if financial_year.is_active and any(y.is_active for y in self.list_years()):
            financial_year.is_active = False
        self.storage.save(self.years_table, financial_year.id, financial_year.to_dict())
        return financial_year

    def summary(self, year: Any) -> Dict[str, Any]:
        """
        Totals for one financial year

        Total loans is the principal of vouchers disbursed in the year.
        Total interest is the interest payments dated in the year plus the
        unpaid interest settled when a voucher closed in the year. Net profit
        is the stock movement plus that interest.
        """
        financial_year = self._by_year(int(year))
        if financial_year is None:
            raise NotFoundError("Financial year not found")

        vouchers = self.voucher_manager.list_vouchers()
        disbursed = [v for v in vouchers if financial_year.covers(v.disbursement_date)]
        interest_payments = sum_money(
            p.amount for v in vouchers for p in v.payment_history if financial_year.covers(p.date)
        )
        settled_interest = sum_money(
            max(ZERO, v.total_interest_paid - v.interest_received) for v in vouchers
            if v.status == VoucherStatus.CLOSED and financial_year.covers(v.closed_date)
        )
        total_interest = round_money(interest_payments + settled_interest)
        net_profit = round_money(
            financial_year.final_stock_value - financial_year.initial_stock_value + total_interest
        )
        customers = self.customer_manager.list_customers()

        return {
            'year': financial_year.year,
            'period': financial_year.period,
            'is_active': financial_year.is_active,
            'voucher_count': len(disbursed),
            'total_loans': sum_money(v.final_loan_amount for v in disbursed),
            'total_interest': total_interest,
            'initial_stock_value': financial_year.initial_stock_value,
            'final_stock_value': financial_year.final_stock_value,
            'net_profit': net_profit,
            'active_customers': sum(1 for c in customers if c.status == CustomerStatus.ACTIVE),
        }
