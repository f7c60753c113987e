"""
Test suite for pawn vouchers

Tests voucher issue with rate card defaults, interest payments, settlement of
accrued interest on close, closure reversal and auction transfer.
"""

import pytest
from decimal import Decimal
from datetime import date

from pawnshop.audit import AuditEventType, AuditTrail
from pawnshop.customers import CustomerManager
from pawnshop.dates import Clock
from pawnshop.exceptions import AlreadyClosedError, NotFoundError, ValidationError
from pawnshop.interest_rates import InterestRateManager, MetalType
from pawnshop.storage import InMemoryStorage
from pawnshop.trash import TrashBin
from pawnshop.vouchers import VoucherManager, VoucherStatus


class VoucherTestBase:

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.clock = Clock(date(2024, 6, 15))
        self.trash_bin = TrashBin(self.storage, self.audit_trail)
        self.customers = CustomerManager(self.storage, self.audit_trail, self.clock)
        self.rates = InterestRateManager(self.storage, self.audit_trail)
        self.vouchers = VoucherManager(
            self.storage, self.audit_trail, self.customers, self.clock,
            interest_rates=self.rates, trash_bin=self.trash_bin
        )
        self.trash_bin.register_restorer("voucher", self.vouchers.restore)
        self.customer = self.customers.create_customer(
            full_name="Lakshmi Devi", phone_number="9000000001"
        )

    def issue(self, bill_no="B001", **overrides):
        params = {
            'customer_id': self.customer.id,
            'jewel_type': "gold",
            'gross_weight': "25.5",
            'deduction_weight': "0.5",
            'loan_amount': "10000",
            'interest_rate': "2",
            'disbursement_date': "2024-04-11",
        }
        params.update(overrides)
        return self.vouchers.create_voucher(bill_no, **params)


class TestVoucherIssue(VoucherTestBase):
    """Creating vouchers"""

    def test_create_voucher(self):
        voucher = self.issue(jewelry_items=[{'category': "Necklace", 'name': "Gold chain"}])

        assert voucher.bill_no == "B001"
        assert voucher.jewel_type == MetalType.GOLD
        assert voucher.net_weight == Decimal("25.0")
        assert voucher.final_loan_amount == Decimal("10000.00")
        assert voucher.interest_amount == Decimal("200.00")
        assert voucher.overall_loan_amount == Decimal("10200.00")
        assert voucher.due_date == date(2025, 4, 11)
        assert voucher.status == VoucherStatus.ACTIVE
        assert voucher.jewelry_items[0].name == "Gold chain"

        stored = self.vouchers.get_voucher(voucher.id)
        assert stored == voucher

    def test_rate_defaults_from_rate_card(self):
        self.rates.create_rate("gold", "0", "50000", "1.5")

        voucher = self.issue(interest_rate=None)

        assert voucher.interest_rate == Decimal("1.5")
        assert voucher.interest_amount == Decimal("150.00")

    def test_no_band_for_amount(self):
        self.rates.create_rate("gold", "0", "5000", "1.5")

        with pytest.raises(NotFoundError):
            self.issue(interest_rate=None)

    def test_duplicate_bill_number(self):
        self.issue()

        with pytest.raises(ValidationError, match="B001 already exists"):
            self.issue()

    @pytest.mark.parametrize("bill_no,overrides,message", [
        ("", {}, "Bill number is required"),
        ("B002", {'gross_weight': "0"}, "Gross weight"),
        ("B003", {'loan_amount': "0"}, "Loan amount"),
        ("B004", {'due_date': "2024-04-01"}, "Due date"),
        ("B005", {'jewel_type': "platinum"}, "Invalid metal type"),
        ("B006", {'jewelry_items': [{'category': "Ring"}]}, "category and a name"),
    ])
    def test_invalid_vouchers(self, bill_no, overrides, message):
        with pytest.raises(ValidationError, match=message):
            self.issue(bill_no, **overrides)

    def test_unknown_customer(self):
        with pytest.raises(NotFoundError):
            self.issue(customer_id="2406999")

    def test_list_sorted_by_bill_number(self):
        self.issue("B003")
        self.issue("B001")
        self.issue("B002")

        assert [v.bill_no for v in self.vouchers.list_vouchers()] == ["B001", "B002", "B003"]
        assert self.vouchers.list_vouchers(status="closed") == []

    def test_update_voucher(self):
        voucher = self.issue()

        updated = self.vouchers.update_voucher(voucher.id, {'notes': "Re-weighed", 'net_weight': "24.8"})

        assert updated.notes == "Re-weighed"
        assert updated.net_weight == Decimal("24.8")

    def test_update_cannot_close(self):
        voucher = self.issue()

        with pytest.raises(ValidationError, match="close operation"):
            self.vouchers.update_voucher(voucher.id, {'status': "Closed"})


class TestVoucherSettlement(VoucherTestBase):
    """Interest payments and closing"""

    def test_close_settles_unpaid_interest(self):
        """65 days at 2% on 10000 with 100 already paid settles at 10300"""
        voucher = self.issue()
        self.vouchers.record_interest_payment(voucher.id, "100", 1, payment_date="2024-05-11")

        result = self.vouchers.close_voucher(voucher.id, payment_method="UPI", closed_by="cashier")

        assert result.months_paid == 2
        assert result.final_amount == Decimal("10300.00")
        assert result.closed_date == date(2024, 6, 15)

        closed = self.vouchers.get_voucher(voucher.id)
        assert closed.status == VoucherStatus.CLOSED
        assert closed.total_interest_paid == Decimal("400.00")
        assert closed.final_amount_paid == Decimal("10300.00")
        assert closed.payment_method == "UPI"

    def test_interest_paid_ahead_is_not_refunded(self):
        voucher = self.issue()
        self.vouchers.record_interest_payment(voucher.id, "1000", 5)

        result = self.vouchers.close_voucher(voucher.id)

        assert result.final_amount == Decimal("10000.00")

    def test_close_same_day(self):
        voucher = self.issue(disbursement_date="2024-06-15")

        result = self.vouchers.close_voucher(voucher.id)

        assert result.months_paid == 0
        assert result.final_amount == Decimal("10000.00")

    def test_close_twice(self):
        voucher = self.issue()
        self.vouchers.close_voucher(voucher.id)

        with pytest.raises(AlreadyClosedError):
            self.vouchers.close_voucher(voucher.id)
        with pytest.raises(AlreadyClosedError):
            self.vouchers.record_interest_payment(voucher.id, "100", 1)

    def test_close_is_audited(self):
        voucher = self.issue()
        self.vouchers.close_voucher(voucher.id, closed_by="cashier")

        events = self.audit_trail.get_events(
            event_types=[AuditEventType.VOUCHER_CLOSED], entity_id=voucher.id
        )
        assert events[0].metadata['final_amount'] == "10400.00"
        assert events[0].user_id == "cashier"

    def test_interest_payment_validation(self):
        voucher = self.issue()

        with pytest.raises(ValidationError):
            self.vouchers.record_interest_payment(voucher.id, "0", 1)
        with pytest.raises(ValidationError):
            self.vouchers.record_interest_payment(voucher.id, "100", 0)

    def test_list_and_delete_interest_payments(self):
        first = self.issue("B001")
        second = self.issue("B002")
        old = self.vouchers.record_interest_payment(first.id, "200", 1, payment_date="2024-05-11")
        self.vouchers.record_interest_payment(second.id, "200", 1, payment_date="2024-06-11")

        rows = self.vouchers.list_interest_payments()
        assert [r['bill_no'] for r in rows] == ["B002", "B001"]

        self.vouchers.delete_interest_payment(first.id, old.id)
        assert self.vouchers.get_voucher(first.id).payment_history == []
        with pytest.raises(NotFoundError, match="Payment not found"):
            self.vouchers.delete_interest_payment(first.id, old.id)

    def test_closed_vouchers(self):
        self.issue("B001")
        closed = self.issue("B002")
        self.vouchers.close_voucher(closed.id)

        assert [v.bill_no for v in self.vouchers.closed_vouchers()] == ["B002"]


class TestVoucherReversal(VoucherTestBase):
    """Reverting closures and auctions"""

    def test_revert_closure(self):
        voucher = self.issue()
        self.vouchers.close_voucher(voucher.id)

        reverted = self.vouchers.revert_closure(voucher.id)

        assert reverted.status == VoucherStatus.ACTIVE
        assert reverted.closed_date is None
        assert reverted.final_amount_paid == Decimal("0.00")
        assert reverted.months_paid == 0

    def test_revert_open_voucher(self):
        voucher = self.issue()

        with pytest.raises(ValidationError, match="Can only revert closed vouchers"):
            self.vouchers.revert_closure(voucher.id)

    def test_revert_and_delete(self):
        voucher = self.issue()
        self.vouchers.close_voucher(voucher.id)

        self.vouchers.revert_and_delete(voucher.id, "Overdue", deleted_by="manager")

        assert self.vouchers.get_voucher(voucher.id) is None
        item = self.trash_bin.list_items("voucher")[0]
        assert item.details == {'reverted_from': "Closed", 'reverted_to': "Overdue"}
        assert item.data['status'] == "Active"
        assert item.data['closed_date'] is None

    def test_revert_and_delete_rules(self):
        voucher = self.issue()

        with pytest.raises(ValidationError, match="Active or Overdue"):
            self.vouchers.revert_and_delete(voucher.id, "Closed")
        with pytest.raises(ValidationError, match="Can only revert closed vouchers"):
            self.vouchers.revert_and_delete(voucher.id, "Active")

    def test_delete_and_restore(self):
        voucher = self.issue()
        self.vouchers.delete_voucher(voucher.id)

        self.trash_bin.restore(self.trash_bin.list_items("voucher")[0].id)

        assert self.vouchers.get_voucher(voucher.id).bill_no == "B001"

    def test_restore_refuses_reused_bill_number(self):
        voucher = self.issue()
        self.vouchers.delete_voucher(voucher.id)
        self.issue()

        with pytest.raises(ValidationError, match="already exists"):
            self.trash_bin.restore(self.trash_bin.list_items("voucher")[0].id)

    def test_auction_round_trip(self):
        voucher = self.issue()

        auctioned = self.vouchers.transfer_to_auction(voucher.id, "manager", notes="Unclaimed")
        assert auctioned.status == VoucherStatus.AUCTION_TRANSFERRED
        assert auctioned.auction_transfer_date == date(2024, 6, 15)
        assert auctioned.auction_transferred_by == "manager"
        assert auctioned.auction_notes == "Unclaimed"

        with pytest.raises(ValidationError, match="already transferred"):
            self.vouchers.transfer_to_auction(voucher.id, "manager")

        restored = self.vouchers.revert_auction(voucher.id)
        assert restored.status == VoucherStatus.ACTIVE
        assert restored.auction_transfer_date is None

        with pytest.raises(ValidationError, match="not transferred"):
            self.vouchers.revert_auction(voucher.id)

    def test_closed_voucher_cannot_go_to_auction(self):
        voucher = self.issue()
        self.vouchers.close_voucher(voucher.id)

        with pytest.raises(AlreadyClosedError):
            self.vouchers.transfer_to_auction(voucher.id, "manager")
