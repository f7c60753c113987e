"""
Test suite for the ledger and stock summary read models
"""

import pytest
from decimal import Decimal
from datetime import date, datetime

from pawnshop.audit import AuditEventType, AuditTrail
from pawnshop.customers import CustomerManager
from pawnshop.dates import Clock
from pawnshop.exceptions import ValidationError
from pawnshop.reporting import (
    DayBookBuilder, LedgerRebuilder, LoanCategory, LoanSnapshot, StockSummaryBuilder,
    voucher_snapshot
)
from pawnshop.storage import InMemoryStorage
from pawnshop.vouchers import VoucherManager


# Global fixtures
@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def clock():
    return Clock(date(2024, 6, 15))


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


@pytest.fixture
def customers(storage, audit_trail, clock):
    return CustomerManager(storage, audit_trail, clock)


@pytest.fixture
def vouchers(storage, audit_trail, customers, clock):
    return VoucherManager(storage, audit_trail, customers, clock)


@pytest.fixture
def book(customers, vouchers):
    """
    Four vouchers, one per category:
    B001 overdue, B002 active, B003 closed, B004 at auction
    """
    lakshmi = customers.create_customer(full_name="Lakshmi Devi", phone_number="9000000001")
    ravi = customers.create_customer(full_name="Ravi Kumar", phone_number="9000000002")

    overdue = vouchers.create_voucher(
        "B001", lakshmi.id, "gold", "25.5", "10000", interest_rate="2",
        disbursement_date="2024-04-11", due_date="2024-06-10",
        jewelry_items=[{'category': "Necklace", 'name': "Gold chain"}]
    )
    active = vouchers.create_voucher(
        "B002", ravi.id, "silver", "120", "5000", interest_rate="3",
        disbursement_date="2024-06-01"
    )
    closed = vouchers.create_voucher(
        "B003", lakshmi.id, "gold", "40", "20000", interest_rate="2",
        disbursement_date="2024-05-01"
    )
    vouchers.close_voucher(closed.id)
    auctioned = vouchers.create_voucher(
        "B004", lakshmi.id, "gold", "15", "8000", interest_rate="2",
        disbursement_date="2024-03-01"
    )
    vouchers.transfer_to_auction(auctioned.id, "manager")

    return {
        'lakshmi': lakshmi, 'ravi': ravi,
        'overdue': overdue, 'active': active, 'closed': closed, 'auctioned': auctioned,
    }


@pytest.fixture
def ledger(storage, vouchers, customers, audit_trail, clock):
    return LedgerRebuilder(storage, vouchers, customers, audit_trail, clock)


@pytest.fixture
def stock(storage, vouchers, customers, audit_trail, clock):
    return StockSummaryBuilder(storage, vouchers, customers, audit_trail, clock)


@pytest.fixture
def day_book(storage, vouchers, customers, audit_trail, clock):
    return DayBookBuilder(storage, vouchers, customers, audit_trail, clock)


class TestVoucherSnapshot:
    """Derived fields for a single voucher"""

    def test_overdue_voucher(self, book, vouchers, clock):
        voucher = vouchers.get_voucher(book['overdue'].id)

        snapshot = voucher_snapshot(voucher, book['lakshmi'], clock.now())

        assert snapshot.loan_status == LoanCategory.OVERDUE
        assert snapshot.is_overdue is True
        assert snapshot.days_overdue == 6
        assert snapshot.balance == Decimal("10000.00")
        assert snapshot.payment_progress == 0
        assert snapshot.loan_duration == 60
        assert snapshot.customer_name == "Lakshmi Devi"
        assert snapshot.jewelry_items == ["Gold chain"]

    def test_closed_voucher(self, book, vouchers, clock):
        voucher = vouchers.get_voucher(book['closed'].id)

        snapshot = voucher_snapshot(voucher, book['lakshmi'], clock.now())

        assert snapshot.loan_status == LoanCategory.CLOSED
        assert snapshot.repaid_amount == Decimal("20400.00")
        assert snapshot.balance == Decimal("0.00")
        assert snapshot.payment_progress == 100
        assert snapshot.days_overdue == 0

    def test_auctioned_voucher_is_inactive(self, book, vouchers, clock):
        voucher = vouchers.get_voucher(book['auctioned'].id)

        snapshot = voucher_snapshot(voucher, book['lakshmi'], clock.now())

        assert snapshot.loan_status == LoanCategory.INACTIVE
        assert snapshot.is_overdue is False

    def test_due_today_counts_from_midnight(self, book, vouchers):
        voucher = vouchers.get_voucher(book['active'].id)
        voucher.due_date = date(2024, 6, 15)

        before = voucher_snapshot(voucher, book['ravi'], datetime(2024, 6, 15, 0, 0))
        after = voucher_snapshot(voucher, book['ravi'], datetime(2024, 6, 15, 9, 30))

        assert before.loan_status == LoanCategory.ACTIVE
        assert after.loan_status == LoanCategory.OVERDUE
        assert after.days_overdue == 1

    def test_snapshot_document_round_trip(self, book, vouchers, clock):
        voucher = vouchers.get_voucher(book['overdue'].id)
        snapshot = voucher_snapshot(voucher, book['lakshmi'], clock.now())

        document = snapshot.to_dict()

        assert document['final_loan_amount'] == "10000.00"
        assert document['due_date'] == "2024-06-10"
        assert document['loan_status'] == "overdue"
        assert LoanSnapshot.from_dict(document) == snapshot


class TestLedger:
    """Per-date ledger rebuilds"""

    def test_rebuild_categorizes(self, book, ledger):
        report = ledger.rebuild(date(2024, 6, 15))

        assert report['query_date'] == "2024-06-15"
        assert [i.bill_no for i in report['all_loans']] == ["B001", "B002", "B003", "B004"]
        assert [i.bill_no for i in report['active_loans']] == ["B002"]
        assert [i.bill_no for i in report['overdue_loans']] == ["B001"]
        assert [i.bill_no for i in report['closed_loans']] == ["B003"]
        assert report['category_counts'] == {
            'all': 4, 'active': 1, 'overdue': 1, 'closed': 1, 'inactive': 1,
        }
        assert report['errors'] == []

    def test_rebuild_is_deterministic(self, book, ledger, storage):
        """Rebuilding replaces the date's entries rather than adding to them"""
        first = ledger.rebuild("2024-06-15")
        stored_first = ledger.entries("2024-06-15")
        second = ledger.rebuild("2024-06-15")
        stored_second = ledger.entries("2024-06-15")

        assert first['all_loans'] == second['all_loans']
        assert stored_first == stored_second
        assert stored_second == second['all_loans']
        assert storage.count("ledger") == 4

    def test_dates_are_kept_apart(self, book, ledger, storage):
        ledger.rebuild("2024-06-14")
        ledger.rebuild("15/06/2024")

        assert storage.count("ledger") == 8
        assert len(ledger.entries("2024-06-14")) == 4

    def test_defaults_to_today(self, book, ledger):
        assert ledger.rebuild()['query_date'] == "2024-06-15"

    def test_missing_customer_is_reported(self, book, ledger, customers):
        customers.delete_customer(book['ravi'].id)

        report = ledger.rebuild("2024-06-15")

        assert report['category_counts']['all'] == 3
        assert report['errors'] == [{
            'voucher_id': book['active'].id,
            'bill_no': "B002",
            'error': "Customer not found",
        }]

    def test_rebuild_is_audited(self, book, ledger, audit_trail):
        ledger.rebuild("2024-06-15", requested_by="manager")

        events = audit_trail.get_events(event_types=[AuditEventType.LEDGER_REBUILT])
        assert len(events) == 1
        assert events[0].entity_id == "2024-06-15"
        assert events[0].metadata['entries'] == 4
        assert events[0].user_id == "manager"

    def test_entries_need_a_date(self, ledger):
        with pytest.raises(ValidationError):
            ledger.entries(None)


class TestStockSummary:
    """The single latest stock summary"""

    def test_rebuild_totals(self, book, stock):
        summary = stock.rebuild()

        totals = summary['totals']
        assert totals['total_loans'] == 4
        assert totals['total_loan_amount'] == Decimal("43000.00")
        assert totals['total_repaid_amount'] == Decimal("20400.00")
        assert totals['overdue_rate'] == 25
        assert totals['collection_rate'] == 47

        gold = summary['jewel_type_summary']['gold']
        assert gold['count'] == 3
        assert gold['overdue'] == 1
        assert gold['closed'] == 1
        assert gold['total_amount'] == Decimal("38000.00")
        assert gold['average_amount'] == Decimal("12666.67")
        assert summary['jewel_type_summary']['silver']['count'] == 1

    def test_monthly_stats(self, book, stock):
        stats = {(s['year'], s['month']): s for s in stock.rebuild()['monthly_stats']}

        assert sorted(stats) == [(2024, 3), (2024, 4), (2024, 5), (2024, 6)]
        june = stats[(2024, 6)]
        assert june['month_name'] == "June"
        assert june['loans_issued'] == 1
        assert june['loans_closed'] == 1
        assert june['amount_collected'] == Decimal("20400.00")

    def test_get_builds_lazily(self, book, stock, storage):
        assert storage.count("stock_summary") == 0

        result = stock.get()

        assert storage.count("stock_summary") == 1
        assert result['pagination'] == {'page': 1, 'limit': 100, 'total': 4, 'pages': 1}

    @pytest.mark.parametrize("filters,expected", [
        ({'status_filter': "overdue"}, ["B001"]),
        ({'status_filter': "all"}, ["B001", "B002", "B003", "B004"]),
        ({'search': "ravi"}, ["B002"]),
        ({'search': "9000000001"}, ["B001", "B003", "B004"]),
        ({'search': "b00"}, ["B001", "B002", "B003", "B004"]),
        ({'date_filter': "2024-06-01"}, ["B002"]),
        ({'jewel_type': "Silver"}, ["B002"]),
        ({'jewel_type': "gold", 'status_filter': "closed"}, ["B003"]),
    ])
    def test_filters(self, book, stock, filters, expected):
        result = stock.get(**filters)

        assert [i.bill_no for i in result['items']] == expected
        assert result['statistics']['total_loans'] == len(expected)
        assert result['summary']['total_loans'] == 4

    def test_pagination(self, book, stock):
        result = stock.get(page=2, limit=3)

        assert [i.bill_no for i in result['items']] == ["B004"]
        assert result['pagination'] == {'page': 2, 'limit': 3, 'total': 4, 'pages': 2}

    @pytest.mark.parametrize("filters", [
        {'status_filter': "pending"},
        {'jewel_type': "platinum"},
        {'page': 0},
        {'limit': 0},
    ])
    def test_invalid_queries(self, book, stock, filters):
        with pytest.raises(ValidationError):
            stock.get(**filters)

    def test_summary_is_stale_until_rebuilt(self, book, stock, vouchers):
        stock.rebuild()
        vouchers.create_voucher("B005", book['ravi'].id, "silver", "50", "3000",
                                interest_rate="3", disbursement_date="2024-06-14")

        assert stock.get()['pagination']['total'] == 4
        stock.rebuild()
        assert stock.get()['pagination']['total'] == 5

    def test_dashboard(self, book, stock):
        dashboard = stock.dashboard()

        assert [i.bill_no for i in dashboard['top_overdue']] == ["B001"]
        assert dashboard['recent_loans'][0].bill_no == "B002"
        assert dashboard['summary']['total_loans'] == 4


class TestDayBook:
    """Counter activity per date"""

    def test_closing_day(self, book, day_book, vouchers):
        vouchers.record_interest_payment(book['overdue'].id, "200", 1, payment_date="2024-06-15")

        result = day_book.generate("2024-06-15")

        summary = result['summary']
        assert summary['new_loans']['count'] == 0
        interest = summary['interest_received']
        assert interest['count'] == 1
        assert interest['transactions'][0]['receipt_no'] == "RCP-B001-1"
        assert interest['transactions'][0]['customer_name'] == "Lakshmi Devi"
        closed = summary['closed_loans']['transactions']
        assert [row['bill_no'] for row in closed] == ["B003"]
        assert closed[0]['total_settled'] == Decimal("20400.00")
        assert closed[0]['interest_paid'] == Decimal("400.00")
        assert closed[0]['months_paid'] == 1
        assert result['total_activity'] == Decimal("20600.00")

    def test_disbursement_day(self, book, day_book):
        result = day_book.generate("2024-06-01")

        new_loans = result['summary']['new_loans']
        assert new_loans['count'] == 1
        assert new_loans['total_amount'] == Decimal("5000.00")
        row = new_loans['transactions'][0]
        assert row['bill_no'] == "B002"
        assert row['jewel_type'] == "silver"
        assert row['disbursement_date'] == date(2024, 6, 1)

    def test_stored_until_regenerated(self, book, day_book, vouchers):
        day_book.generate("2024-06-15")
        vouchers.record_interest_payment(book['active'].id, "150", 1, payment_date="2024-06-15")

        assert day_book.generate("2024-06-15")['summary']['interest_received']['count'] == 0
        fresh = day_book.generate("2024-06-15", regenerate=True)
        assert fresh['summary']['interest_received']['count'] == 1

    def test_missing_customer_shows_na(self, book, day_book, customers):
        customers.delete_customer(book['ravi'].id)

        row = day_book.generate("2024-06-01")['summary']['new_loans']['transactions'][0]

        assert row['customer_id'] == "N/A"
        assert row['customer_name'] == "N/A"

    def test_generation_is_audited(self, book, day_book, audit_trail):
        day_book.generate(requested_by="manager")

        events = audit_trail.get_events(event_types=[AuditEventType.DAY_BOOK_GENERATED])
        assert events[0].entity_id == "2024-06-15"
        assert events[0].metadata['closed_loans'] == 1
        assert events[0].user_id == "manager"
