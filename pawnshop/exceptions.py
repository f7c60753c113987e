"""Exception hierarchy for the pawnshop backend.

All domain errors derive from ``PawnshopError``, which is a ``ValueError`` so
callers that only care about rejected input can keep catching ``ValueError``.
"""


class PawnshopError(ValueError):
    """Base exception for all pawnshop errors."""


class NotFoundError(PawnshopError):
    """Raised when a loan, installment, customer or other record is absent."""


class ValidationError(PawnshopError):
    """Raised when input is out of range or a transition is malformed."""


class AlreadyInStateError(PawnshopError):
    """Raised when the target record is already in the requested state."""


class AlreadyPaidError(AlreadyInStateError):
    """Raised when paying an installment that is already Paid."""


class AlreadyClosedError(AlreadyInStateError):
    """Raised when closing a loan or voucher that is already closed."""


class NotPaidError(PawnshopError):
    """Raised when undoing a payment on an installment that is not Paid."""


class NotAllPaidError(PawnshopError):
    """Raised when a strict close is attempted with unpaid installments."""


class ConcurrencyConflictError(PawnshopError):
    """Raised when a versioned save loses a race with another writer."""


class PersistenceError(PawnshopError):
    """Raised when the storage backend fails."""


class InvalidAmountError(ValidationError):
    """Raised when a payment amount is outside what the installment accepts."""
