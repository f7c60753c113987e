"""
Test suite for the trash bin

Restores are driven through the assembled system so each record type comes
back through its own manager.
"""

import pytest
import time
from datetime import date

from pawnshop.audit import AuditEventType
from pawnshop.config import PawnshopConfig
from pawnshop.dates import Clock
from pawnshop.exceptions import NotFoundError, ValidationError
from pawnshop.system import PawnshopSystem
from pawnshop.trash import TrashBin


class TestTrashBin:
    """Soft delete, restore and permanent delete"""

    def setup_method(self):
        """Set up test fixtures"""
        self.system = PawnshopSystem(
            PawnshopConfig(database_url="memory://"), clock=Clock(date(2024, 6, 15))
        )
        self.trash = self.system.trash_bin
        self.customer = self.system.customer_manager.create_customer("Lakshmi Devi", "9000000001")

    def create_loan(self):
        loan = self.system.loan_manager.create_loan(
            "50000", "10", 5, "Monthly", "2024-05-01", customer_id=self.customer.id
        )
        self.system.collections_manager.create_from_loan(loan)
        return loan

    def test_type_without_restorer(self):
        bare = TrashBin(self.system.storage, self.system.audit_trail)
        item = bare.move_to_trash("jewel", "J1", {'id': "J1"})

        with pytest.raises(ValidationError, match="cannot be restored"):
            bare.restore(item.id)

    @pytest.mark.parametrize("item_type", ["spaceship", "employee"])
    def test_unknown_type(self, item_type):
        with pytest.raises(ValidationError):
            self.trash.move_to_trash(item_type, "S1", {})

    def test_jewel_restore(self):
        jewel = self.system.jewel_manager.create_jewel("Temple necklace", "necklace", "gold")
        self.system.jewel_manager.delete_jewel(jewel.id, deleted_by="manager")
        assert self.system.jewel_manager.get_jewel(jewel.id) is None

        self.trash.restore(self.trash.list_items("jewel")[0].id)

        assert self.system.jewel_manager.get_jewel(jewel.id).name == "Temple necklace"

    def test_financial_year_restore_comes_back_inactive(self):
        years = self.system.financial_year_manager
        old = years.create_year(2023)
        years.delete_year(old.id)
        current = years.create_year(2024)

        self.trash.restore(self.trash.list_items("financialYear")[0].id)

        assert years.get_year(old.id).is_active is False
        assert years.active_year().id == current.id

    def test_loan_restore_rebuilds_collection(self):
        loan = self.create_loan()
        self.system.loan_manager.delete_loan(loan.id, deleted_by="manager")
        assert self.system.collections_manager.get_collection(loan.id) is None

        item = self.trash.list_items("loan")[0]
        self.trash.restore(item.id, restored_by="manager")

        assert self.system.loan_manager.get_loan(loan.id) is not None
        collection = self.system.collections_manager.get_collection(loan.id)
        assert collection.customer_name == "Lakshmi Devi"

    def test_voucher_restore(self):
        voucher = self.system.voucher_manager.create_voucher(
            "B001", self.customer.id, "gold", "10", "10000", interest_rate="2"
        )
        self.system.voucher_manager.delete_voucher(voucher.id)

        self.trash.restore(self.trash.list_items("voucher")[0].id)

        assert self.system.voucher_manager.get_voucher(voucher.id).bill_no == "B001"

    def test_list_newest_first(self):
        first = self.trash.move_to_trash("jewel", "J1", {})
        time.sleep(0.01)
        second = self.trash.move_to_trash("financialYear", "F1", {})

        assert [i.id for i in self.trash.list_items()] == [second.id, first.id]
        assert [i.id for i in self.trash.list_items("jewel")] == [first.id]

    def test_missing_item(self):
        with pytest.raises(NotFoundError):
            self.trash.restore("nope")
        with pytest.raises(NotFoundError):
            self.trash.delete_permanently("nope")

    def test_delete_permanently(self):
        item = self.trash.move_to_trash("jewel", "J1", {})

        self.trash.delete_permanently(item.id, deleted_by="manager")

        assert self.trash.get_item(item.id) is None

    def test_empty(self):
        self.trash.move_to_trash("jewel", "J1", {})
        self.trash.move_to_trash("jewel", "J2", {})
        self.trash.move_to_trash("financialYear", "F1", {})

        assert self.trash.empty("jewel") == 2
        assert len(self.trash.list_items()) == 1
        assert self.trash.empty() == 1

    def test_logs_newest_first(self):
        item = self.trash.move_to_trash("jewel", "J1", {}, deleted_by="clerk")
        self.trash.delete_permanently(item.id, deleted_by="manager")

        logs = self.trash.logs()

        assert [e.event_type for e in logs] == [
            AuditEventType.TRASH_DELETED, AuditEventType.TRASH_MOVED
        ]
        assert logs[0].metadata['trash_id'] == item.id
        assert logs[1].user_id == "clerk"
        assert len(self.trash.logs(limit=1)) == 1

    def test_audit_chain_stays_valid(self):
        self.create_loan()
        item = self.trash.move_to_trash("jewel", "J1", {})
        self.trash.delete_permanently(item.id)

        assert self.system.audit_trail.verify_integrity()['valid'] is True
