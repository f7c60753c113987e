"""
Pawnshop system wiring
"""

from typing import Optional

from .audit import AuditTrail
from .collections import CollectionsManager
from .config import PawnshopConfig, get_config
from .customers import CustomerManager
from .dates import Clock
from .financial_years import FinancialYearManager
from .interest_rates import InterestRateManager
from .jewels import JewelManager, JewelRateManager
from .loans import LoanManager
from .logging_config import get_logger
from .overview import LoanOverview
from .payments import PaymentEngine
from .reporting import DayBookBuilder, LedgerRebuilder, StockSummaryBuilder
from .storage import StorageInterface, create_storage
from .trash import TrashBin
from .vouchers import VoucherManager


class PawnshopSystem:
    """Pawnshop backend with all components initialized"""

    def __init__(self, config: Optional[PawnshopConfig] = None,
                 storage: Optional[StorageInterface] = None,
                 clock: Optional[Clock] = None):
        self.config = config or get_config()
        self.logger = get_logger("pawnshop.system")

        # Initialize storage
        self.storage = storage or create_storage(self.config.database_url)
        self.clock = clock or Clock(self.config.business_date)

        # Initialize core components
        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.trash_bin = TrashBin(self.storage, self.audit_trail, self.config.trash_item_types)
        self.customer_manager = CustomerManager(
            self.storage, self.audit_trail, self.clock, trash_bin=self.trash_bin
        )
        self.interest_rate_manager = InterestRateManager(
            self.storage, self.audit_trail, trash_bin=self.trash_bin
        )
        self.jewel_manager = JewelManager(self.storage, self.audit_trail, trash_bin=self.trash_bin)
        self.jewel_rate_manager = JewelRateManager(self.storage, self.audit_trail, self.clock)
        self.voucher_manager = VoucherManager(
            self.storage, self.audit_trail, self.customer_manager, self.clock,
            interest_rates=self.interest_rate_manager, trash_bin=self.trash_bin,
            default_term_months=self.config.default_voucher_term_months
        )
        self.loan_manager = LoanManager(
            self.storage, self.audit_trail, self.clock,
            customer_manager=self.customer_manager, trash_bin=self.trash_bin,
            min_loan_amount=self.config.min_loan_amount,
            max_interest_rate=self.config.max_interest_rate
        )
        self.collections_manager = CollectionsManager(
            self.storage, self.loan_manager, self.clock,
            critical_overdue_threshold=self.config.critical_overdue_threshold
        )
        self.payment_engine = PaymentEngine(
            self.loan_manager, self.collections_manager, self.audit_trail, self.clock
        )
        self.financial_year_manager = FinancialYearManager(
            self.storage, self.audit_trail, self.voucher_manager, self.customer_manager,
            trash_bin=self.trash_bin
        )

        # Read models
        self.ledger = LedgerRebuilder(
            self.storage, self.voucher_manager, self.customer_manager, self.audit_trail, self.clock
        )
        self.stock_summary = StockSummaryBuilder(
            self.storage, self.voucher_manager, self.customer_manager, self.audit_trail, self.clock
        )
        self.day_book = DayBookBuilder(
            self.storage, self.voucher_manager, self.customer_manager, self.audit_trail, self.clock
        )
        self.overview = LoanOverview(self.loan_manager, self.clock)

        self._register_restorers()

    def _register_restorers(self) -> None:
        restorers = {
            "customer": self.customer_manager.restore,
            "voucher": self.voucher_manager.restore,
            "loan": self._restore_loan,
            "interestRate": self.interest_rate_manager.restore,
            "jewel": self.jewel_manager.restore,
            "financialYear": self.financial_year_manager.restore,
        }
        for item_type, restorer in restorers.items():
            if item_type in self.trash_bin.item_types:
                self.trash_bin.register_restorer(item_type, restorer)

    def _restore_loan(self, data):
        loan = self.loan_manager.restore(data)
        self.collections_manager.resync(loan.id)
        return loan

    def close(self) -> None:
        self.storage.close()
