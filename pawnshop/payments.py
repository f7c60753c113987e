"""
Payment Application Module

Applies installment payments to loans and reverses them. Every operation is a
read-modify-write of one loan document, serialized per loan id in-process and
guarded across processes by the loan's version (compare-and-swap save). After
the loan is saved, the collection projection is refreshed.
"""

import threading
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Optional

from .audit import AuditEventType, AuditTrail
from .collections import CollectionsManager
from .dates import Clock, parse_date
from .exceptions import AlreadyPaidError, InvalidAmountError, NotPaidError
from .loans import ClosureResult, Loan, LoanManager, Payment, PaymentMethod
from .logging_config import get_logger, log_action
from .money import ZERO, format_inr, round_money, sum_money, to_decimal
from .schedule import InstallmentStatus


LOCK_STRIPES = 64


class PaymentEngine:
    """
    Applies and undoes payments against loan installments
    """

    def __init__(self, loan_manager: LoanManager, collections_manager: CollectionsManager,
                 audit_trail: AuditTrail, clock: Optional[Clock] = None):
        self.loan_manager = loan_manager
        self.collections_manager = collections_manager
        self.audit_trail = audit_trail
        self.clock = clock or Clock()
        self.logger = get_logger("pawnshop.payments")

        self._lock_stripes = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _stripe_for(self, loan_id: str) -> threading.Lock:
        return self._lock_stripes[hash(loan_id) % LOCK_STRIPES]

    @contextmanager
    def loan_lock(self, loan_id: str):
        """
        Serialize read-modify-write sequences on one loan.

        Loans hash onto a fixed pool of locks.
        """
        with self._stripe_for(loan_id):
            yield

    @staticmethod
    def _validate_amounts(paid_amount: Any, fine_amount: Any) -> Dict[str, Decimal]:
        paid = to_decimal(paid_amount, 'paid amount')
        fine = to_decimal(fine_amount, 'fine amount')
        if paid <= 0:
            raise InvalidAmountError("Invalid paid amount")
        if fine < 0:
            raise InvalidAmountError("Fine amount cannot be negative")
        return {'paid': round_money(paid), 'fine': round_money(fine)}

    def _result(self, loan: Loan, **extra) -> Dict[str, Any]:
        collection = self.collections_manager.sync_with_loan(loan.id)
        upcoming = loan.next_due_installment
        result = {
            'loan_id': loan.id,
            'loan_status': loan.status.value,
            'collection_status': collection.collection_status.value,
            'remaining_balance': loan.remaining_balance,
            'next_due_date': upcoming.due_date if upcoming else None,
            'next_due_amount': upcoming.outstanding if upcoming else ZERO,
        }
        result.update(extra)
        return result

    def apply_payment(
        self,
        loan_id: str,
        installment_no: int,
        paid_amount: Any,
        fine_amount: Any = 0,
        payment_method: Any = None,
        notes: str = "",
        collected_by: Optional[str] = None,
        payment_date: Any = None
    ) -> Dict[str, Any]:
        """
        Mark one installment Paid and record the payment

        Args:
            loan_id: Loan to pay against
            installment_no: 1-based installment number
            paid_amount: Amount received, at least the installment's EMI
                (or what is left of it after partial payments)
            fine_amount: Late fine collected on top, not counted as repayment
            payment_method: Cash, UPI, Bank Transfer, Cheque, NEFT or RTGS
            notes: Free text stored on the payment
            collected_by: Agent or cashier
            payment_date: Defaults to today

        Returns:
            Dict with the payment, loan and collection status, remaining
            balance, next due installment and a receipt message

        Raises:
            InvalidAmountError: amount not positive, fine negative, below the
                EMI or above the loan's remaining balance
            NotFoundError: unknown loan or installment
            AlreadyPaidError: installment already Paid
        """
        amounts = self._validate_amounts(paid_amount, fine_amount)
        paid, fine = amounts['paid'], amounts['fine']
        method = PaymentMethod.parse(payment_method)
        paid_on = parse_date(payment_date) or self.clock.today()

        with self.loan_lock(loan_id):
            loan = self.loan_manager.require_loan(loan_id)
            installment = loan.installment(installment_no)

            if installment.is_paid:
                raise AlreadyPaidError("Installment already paid")
            if paid < installment.outstanding:
                raise InvalidAmountError("Paid amount must be at least the EMI amount")
            if paid > loan.remaining_balance:
                raise InvalidAmountError("Paid amount cannot exceed remaining balance")

            # Only the EMI counts as repayment; the excess stays on the receipt
            excess = round_money(paid - installment.outstanding)
            installment.status = InstallmentStatus.PAID
            installment.paid_amount = installment.emi_amount
            installment.paid_date = paid_on

            payment = Payment(
                payment_id=Payment.new_id(),
                installment_no=installment_no,
                amount=paid,
                fine_amount=fine,
                total_amount=round_money(paid + fine),
                excess_amount=excess,
                payment_date=paid_on,
                payment_method=method,
                notes=notes or "",
                collected_by=collected_by,
            )
            loan.payments.append(payment)
            loan.last_updated_by = collected_by
            loan.recalculate()
            self.loan_manager.save_loan(loan)

            self.audit_trail.log_event(
                AuditEventType.PAYMENT_APPLIED,
                "loan",
                loan.id,
                {
                    'payment_id': payment.payment_id,
                    'installment_no': installment_no,
                    'amount': paid,
                    'fine_amount': fine,
                    'loan_status': loan.status.value,
                },
                user_id=collected_by
            )
            log_action(self.logger, "info",
                       f"Payment {payment.payment_id} applied to loan {loan.id} installment {installment_no}",
                       user_id=collected_by, action="payment_applied", resource=loan.id,
                       extra={'amount': str(paid), 'fine_amount': str(fine)})

            message = f"Payment of {format_inr(paid)} received successfully!"
            if fine > 0:
                message += f" (Fine: {format_inr(fine)})"

            return self._result(
                loan,
                installment_no=installment_no,
                payment=payment,
                message=message,
            )

    def undo_payment(self, loan_id: str, installment_no: int,
                     undone_by: Optional[str] = None) -> Dict[str, Any]:
        """
        Revert the payment that settled an installment

        Only the last payment against the installment is dropped. Earlier
        partial receipts stay, leaving the installment Partial; without them
        it goes back to Pending.

        Raises:
            NotFoundError: unknown loan or installment
            NotPaidError: installment is not Paid
        """
        with self.loan_lock(loan_id):
            loan = self.loan_manager.require_loan(loan_id)
            installment = loan.installment(installment_no)

            if not installment.is_paid:
                raise NotPaidError("Installment is not in paid status")

            own = [p for p in loan.payments if p.installment_no == installment_no]
            removed = own[-1:]
            kept = own[:-1]
            removed_ids = {p.payment_id for p in removed}
            loan.payments = [p for p in loan.payments if p.payment_id not in removed_ids]

            repaid = sum_money(p.amount - p.excess_amount for p in kept)
            installment.paid_amount = min(repaid, installment.emi_amount)
            if repaid > 0:
                installment.status = InstallmentStatus.PARTIAL
                installment.paid_date = kept[-1].payment_date
            else:
                installment.status = InstallmentStatus.PENDING
                installment.paid_date = None
            loan.last_updated_by = undone_by
            loan.recalculate()
            self.loan_manager.save_loan(loan)

            self.audit_trail.log_event(
                AuditEventType.PAYMENT_UNDONE,
                "loan",
                loan.id,
                {
                    'installment_no': installment_no,
                    'removed_payments': [p.payment_id for p in removed],
                    'loan_status': loan.status.value,
                },
                user_id=undone_by
            )
            log_action(self.logger, "info",
                       f"Payment undone on loan {loan.id} installment {installment_no}",
                       user_id=undone_by, action="payment_undone", resource=loan.id)

            return self._result(
                loan,
                installment_no=installment_no,
                removed_payments=[p.payment_id for p in removed],
            )

    def record_partial_payment(
        self,
        loan_id: str,
        amount: Any,
        fine_amount: Any = 0,
        payment_method: Any = None,
        notes: str = "",
        collected_by: Optional[str] = None,
        payment_date: Any = None
    ) -> Dict[str, Any]:
        """
        Put money against the first unpaid installment.

        Short amounts leave the installment Partial; once its cumulative paid
        amount reaches the EMI it becomes Paid. Amounts above what is left of
        the installment are rejected, nothing rolls over to the next one.
        """
        amounts = self._validate_amounts(amount, fine_amount)
        paid, fine = amounts['paid'], amounts['fine']
        method = PaymentMethod.parse(payment_method)
        paid_on = parse_date(payment_date) or self.clock.today()

        with self.loan_lock(loan_id):
            loan = self.loan_manager.require_loan(loan_id)
            installment = loan.next_due_installment
            if installment is None:
                raise AlreadyPaidError("All installments are already paid")
            if paid > installment.outstanding:
                raise InvalidAmountError("Payment amount exceeds remaining installment amount")

            installment.paid_amount = round_money(installment.paid_amount + paid)
            installment.paid_date = paid_on
            if installment.paid_amount >= installment.emi_amount:
                installment.status = InstallmentStatus.PAID
            else:
                installment.status = InstallmentStatus.PARTIAL

            payment = Payment(
                payment_id=Payment.new_id(),
                installment_no=installment.installment_no,
                amount=paid,
                fine_amount=fine,
                total_amount=round_money(paid + fine),
                payment_date=paid_on,
                payment_method=method,
                notes=notes or "",
                collected_by=collected_by,
            )
            loan.payments.append(payment)
            loan.last_updated_by = collected_by
            loan.recalculate()
            self.loan_manager.save_loan(loan)

            self.audit_trail.log_event(
                AuditEventType.PAYMENT_APPLIED,
                "loan",
                loan.id,
                {
                    'payment_id': payment.payment_id,
                    'installment_no': installment.installment_no,
                    'amount': paid,
                    'partial': installment.status == InstallmentStatus.PARTIAL,
                },
                user_id=collected_by
            )
            log_action(self.logger, "info",
                       f"Partial payment {payment.payment_id} on loan {loan.id}",
                       user_id=collected_by, action="partial_payment_applied", resource=loan.id,
                       extra={'amount': str(paid)})

            return self._result(
                loan,
                installment_no=installment.installment_no,
                installment_status=installment.status.value,
                payment=payment,
            )

    def update_status(self, loan_id: str, status: Any,
                      updated_by: Optional[str] = None) -> Dict[str, Any]:
        """Administrative status change followed by a collection refresh"""
        with self.loan_lock(loan_id):
            loan = self.loan_manager.update_status(loan_id, status, updated_by)
            return self._result(loan)

    def close_loan(self, loan_id: str, payment_method: Any = None,
                   closed_by: Optional[str] = None) -> ClosureResult:
        """Strict close; the collection follows the loan to Completed"""
        with self.loan_lock(loan_id):
            result = self.loan_manager.close_loan(loan_id, payment_method, closed_by)
            self.collections_manager.sync_with_loan(loan_id)
            return result
