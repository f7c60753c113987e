"""
Test suite for financial years and their summaries
"""

import pytest
from decimal import Decimal
from datetime import date

from pawnshop.audit import AuditTrail
from pawnshop.customers import CustomerManager
from pawnshop.dates import Clock
from pawnshop.exceptions import NotFoundError, ValidationError
from pawnshop.financial_years import FinancialYearManager
from pawnshop.storage import InMemoryStorage
from pawnshop.trash import TrashBin
from pawnshop.vouchers import VoucherManager


class TestFinancialYears:
    """Opening, activating and summarizing financial years"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.clock = Clock(date(2024, 6, 15))
        self.trash_bin = TrashBin(self.storage, self.audit_trail)
        self.customers = CustomerManager(self.storage, self.audit_trail, self.clock)
        self.vouchers = VoucherManager(self.storage, self.audit_trail, self.customers, self.clock)
        self.years = FinancialYearManager(self.storage, self.audit_trail, self.vouchers,
                                          self.customers, trash_bin=self.trash_bin)
        self.trash_bin.register_restorer("financialYear", self.years.restore)

    def test_create_opens_april_to_march(self):
        financial_year = self.years.create_year(2024, initial_stock_value="100000")

        assert financial_year.period == "01/04/2024 - 31/03/2025"
        assert financial_year.start_date == date(2024, 4, 1)
        assert financial_year.end_date == date(2025, 3, 31)
        assert financial_year.is_active is True
        assert financial_year.initial_stock_value == Decimal("100000.00")

    def test_newest_year_becomes_active(self):
        old = self.years.create_year(2023)
        new = self.years.create_year("2024")

        assert self.years.get_year(old.id).is_active is False
        assert self.years.active_year().id == new.id
        assert [y.year for y in self.years.list_years()] == [2024, 2023]

    @pytest.mark.parametrize("year", ["twenty", 1800, None])
    def test_invalid_year(self, year):
        with pytest.raises(ValidationError):
            self.years.create_year(year)

    def test_duplicate_year(self):
        self.years.create_year(2024)

        with pytest.raises(ValidationError, match="already exists"):
            self.years.create_year(2024)

    def test_no_active_year(self):
        with pytest.raises(NotFoundError):
            self.years.active_year()

    def test_update_activation_is_exclusive(self):
        old = self.years.create_year(2023)
        new = self.years.create_year(2024)

        self.years.update_year(old.id, {'is_active': True, 'final_stock_value': "250000"})

        assert self.years.active_year().id == old.id
        assert self.years.get_year(new.id).is_active is False
        assert self.years.get_year(old.id).final_stock_value == Decimal("250000.00")

    def test_negative_stock_value_rejected(self):
        financial_year = self.years.create_year(2024)

        with pytest.raises(ValidationError, match="cannot be negative"):
            self.years.update_year(financial_year.id, {'initial_stock_value': "-1"})

    def test_delete_moves_to_trash(self):
        financial_year = self.years.create_year(2024)

        self.years.delete_year(financial_year.id, deleted_by="manager")

        assert self.years.get_year(financial_year.id) is None
        item = self.trash_bin.list_items("financialYear")[0]
        assert item.original_status == "active"
        self.trash_bin.restore(item.id)
        assert self.years.active_year().id == financial_year.id

    def test_summary(self):
        self.years.create_year(2024, initial_stock_value="100000", final_stock_value="150000")
        lakshmi = self.customers.create_customer("Lakshmi Devi", "9000000001")
        ravi = self.customers.create_customer("Ravi Kumar", "9000000002")

        current = self.vouchers.create_voucher(
            "B001", lakshmi.id, "gold", "25", "10000", interest_rate="2",
            disbursement_date="2024-04-10"
        )
        self.vouchers.record_interest_payment(current.id, "200", 1, payment_date="2024-06-01")
        earlier = self.vouchers.create_voucher(
            "B002", ravi.id, "silver", "100", "5000", interest_rate="3",
            disbursement_date="2024-02-01"
        )
        self.vouchers.record_interest_payment(earlier.id, "150", 1, payment_date="2024-03-15")
        settled = self.vouchers.create_voucher(
            "B003", lakshmi.id, "gold", "40", "20000", interest_rate="2",
            disbursement_date="2024-05-01"
        )
        self.vouchers.record_interest_payment(settled.id, "200", 1, payment_date="2024-05-20")
        self.vouchers.close_voucher(settled.id)

        summary = self.years.summary(2024)

        assert summary['period'] == "01/04/2024 - 31/03/2025"
        assert summary['voucher_count'] == 2
        assert summary['total_loans'] == Decimal("30000.00")
        assert summary['total_interest'] == Decimal("600.00")
        assert summary['net_profit'] == Decimal("50600.00")
        assert summary['active_customers'] == 2

    def test_summary_unknown_year(self):
        with pytest.raises(NotFoundError):
            self.years.summary(2030)
