"""
Test suite for the personal loan overview
"""

import pytest
from decimal import Decimal
from datetime import date

from pawnshop.audit import AuditTrail
from pawnshop.collections import CollectionsManager
from pawnshop.dates import Clock
from pawnshop.exceptions import ValidationError
from pawnshop.loans import LoanManager
from pawnshop.overview import LoanOverview
from pawnshop.payments import PaymentEngine
from pawnshop.storage import InMemoryStorage


class TestLoanOverview:
    """Dashboard figures per installment frequency"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.clock = Clock(date(2024, 6, 15))
        self.loan_manager = LoanManager(self.storage, self.audit_trail, self.clock)
        self.collections = CollectionsManager(self.storage, self.loan_manager, self.clock)
        self.engine = PaymentEngine(self.loan_manager, self.collections, self.audit_trail, self.clock)
        self.overview = LoanOverview(self.loan_manager, self.clock)

        self.monthly = self.create_loan("12000", 12, "Monthly", "2024-01-01", "Ravi Kumar")
        self.weekly = self.create_loan("4000", 4, "Weekly", "2024-06-01", "Lakshmi Devi")
        self.daily = self.create_loan("2000", 2, "Daily", "2024-06-14", "Meena Iyer")
        self.finished_daily = self.create_loan("2000", 2, "Daily", "2024-06-01", "Arjun Rao")

        self.engine.apply_payment(self.monthly.id, 1, "1000", fine_amount="50")
        self.engine.apply_payment(self.weekly.id, 1, "1000", payment_date="2024-06-12")

    def create_loan(self, amount, count, frequency, start, name):
        loan = self.loan_manager.create_loan(
            loan_amount=amount,
            interest_rate="0",
            number_of_installments=count,
            installment_frequency=frequency,
            start_date=start,
            customer_name=name,
            customer_phone="9876543210",
        )
        self.collections.create_from_loan(loan)
        return loan

    def test_dashboard(self):
        dashboard = self.overview.dashboard()

        assert dashboard['date'] == date(2024, 6, 15)
        assert dashboard['daily_loans'] == 1
        assert dashboard['weekly_loans'] == 1
        assert dashboard['monthly_loans'] == 1
        assert dashboard['daily_collection'] == Decimal("0.00")
        assert dashboard['weekly_collection'] == Decimal("1000.00")
        assert dashboard['monthly_collection'] == Decimal("1050.00")
        assert dashboard['total_capital'] == Decimal("20000.00")

    def test_collections_stay_inside_the_window(self):
        dashboard = self.overview.dashboard("2024-06-17")

        assert dashboard['weekly_collection'] == Decimal("0.00")
        assert dashboard['monthly_collection'] == Decimal("1050.00")

    def test_due_loans(self):
        weekly = self.overview.due_loans("weekly", "2024-06-15")
        daily = self.overview.due_loans("Daily", "15/06/2024")

        assert [loan.id for loan in weekly] == [self.weekly.id]
        assert [loan.id for loan in daily] == [self.daily.id]
        assert self.overview.due_loans("daily", "2024-06-20") == []

    def test_invalid_period(self):
        with pytest.raises(ValidationError, match="Invalid period"):
            self.overview.due_loans("yearly", "2024-06-15")

    def test_received_payments(self):
        rows = self.overview.received_payments("2024-06-15")

        assert len(rows) == 1
        row = rows[0]
        assert row['loan_id'] == self.monthly.id
        assert row['customer_name'] == "Ravi Kumar"
        assert row['paid_amount'] == Decimal("1000.00")
        assert row['total_amount'] == Decimal("1050.00")
        assert row['outstanding_amount'] == Decimal("11000.00")
        assert row['frequency'] == "Monthly"

    def test_loans_between(self):
        june = self.overview.loans_between("2024-06-01", "2024-06-30")

        assert {loan.id for loan in june} == {self.weekly.id, self.daily.id, self.finished_daily.id}
        assert len(self.overview.loans_between()) == 4
        with pytest.raises(ValidationError):
            self.overview.loans_between("2024-06-30", "2024-06-01")
