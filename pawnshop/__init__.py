"""
Pawnshop Loan Backend

Loan lifecycle engine for a pawn and personal-loan counter: installment
schedules, payment application, loan status, the collection desk projection
and the voucher ledger and stock summary, all in Decimal money with a
hash-chained audit trail.
"""

__version__ = "1.0.0"
