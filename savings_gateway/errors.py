"""Error taxonomy for payment creation and notification handling."""


class PaymentError(Exception):
    """Base class for every error raised by the payment bridge."""


class ValidationError(PaymentError):
    """Bad input from the caller (amount, user id, request body)."""


class IntegrityError(PaymentError):
    """Signature on an inbound notification is missing or does not match."""


class NotFoundError(PaymentError):
    """Referenced user does not exist."""


class TransientStoreError(PaymentError):
    """Both ledger write strategies failed; the gateway is expected to retry."""


class ConflictError(PaymentError):
    """Registration clashes with an existing username or user id."""
