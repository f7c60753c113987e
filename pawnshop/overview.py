"""
Personal loan overview for the collection desk dashboard.

Each installment frequency is read against its own window: daily loans
against the day, weekly loans against the Monday-based week and monthly
loans against the calendar month holding the chosen date.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from .dates import Clock, parse_date, require_date
from .exceptions import ValidationError
from .loans import Loan, LoanManager, period_window
from .money import sum_money
from .schedule import InstallmentFrequency


PERIODS = {
    "daily": InstallmentFrequency.DAILY,
    "weekly": InstallmentFrequency.WEEKLY,
    "monthly": InstallmentFrequency.MONTHLY,
}


def _period(value: str) -> str:
    period = (value or "").strip().lower()
    if period not in PERIODS:
        raise ValidationError("Invalid period")
    return period


class LoanOverview:
    """Read-only dashboard figures over personal loans"""

    def __init__(self, loan_manager: LoanManager, clock: Optional[Clock] = None):
        self.loan_manager = loan_manager
        self.clock = clock or Clock()

    def _due_in(self, loan: Loan, start: date, end: date) -> bool:
        return any(
            not installment.is_paid and start <= installment.due_date <= end
            for installment in loan.installments
        )

    def due_loans(self, period: str, day: Any) -> List[Loan]:
        """Loans of the period's frequency with an unpaid installment due in its window"""
        period = _period(period)
        start, end = period_window(require_date(day, 'date'), period)
        return [
            loan for loan in self.loan_manager.list_loans(frequency=PERIODS[period].value)
            if self._due_in(loan, start, end)
        ]

    def dashboard(self, day: Any = None) -> Dict[str, Any]:
        """
        Loans due and money collected per frequency, plus capital lent out.

        Collections count payment totals (fines included) received inside
        each frequency's window.
        """
        day = parse_date(day) or self.clock.today()
        loans = self.loan_manager.list_loans()
        result: Dict[str, Any] = {'date': day}

        for period, frequency in PERIODS.items():
            start, end = period_window(day, period)
            own = [loan for loan in loans if loan.installment_frequency == frequency]
            result[f'{period}_loans'] = sum(1 for loan in own if self._due_in(loan, start, end))
            result[f'{period}_collection'] = sum_money(
                payment.total_amount
                for loan in own for payment in loan.payments
                if start <= payment.payment_date <= end
            )

        result['total_capital'] = sum_money(loan.loan_amount for loan in loans)
        return result

    def received_payments(self, day: Any) -> List[Dict[str, Any]]:
        """Every payment received on a day, with the loan's balance as it stands"""
        day = require_date(day, 'date')
        rows = []
        for loan in self.loan_manager.list_loans():
            for payment in loan.payments:
                if payment.payment_date != day:
                    continue
                rows.append({
                    'payment_id': payment.payment_id,
                    'loan_id': loan.id,
                    'customer_name': loan.customer_name,
                    'installment_no': payment.installment_no,
                    'loan_amount': loan.loan_amount,
                    'paid_amount': payment.amount,
                    'fine_amount': payment.fine_amount,
                    'total_amount': payment.total_amount,
                    'outstanding_amount': loan.remaining_balance,
                    'payment_method': payment.payment_method.value,
                    'frequency': loan.installment_frequency.value,
                })
        rows.sort(key=lambda row: (row['loan_id'], row['installment_no']))
        return rows

    def loans_between(self, start_date: Any = None, end_date: Any = None) -> List[Loan]:
        """Loans starting inside an inclusive date range; no range means all loans"""
        start, end = parse_date(start_date), parse_date(end_date)
        loans = self.loan_manager.list_loans()
        if start is None or end is None:
            return loans
        if start > end:
            raise ValidationError("Start date must not be after end date")
        return [loan for loan in loans if start <= loan.start_date <= end]
