"""Inbound payment notification (ITN) handling.

Every notification ends in exactly one outcome, and each outcome has a fixed
HTTP status. The gateway retries anything that is not a 2xx.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import List, NamedTuple, Optional, Tuple
from urllib.parse import parse_qsl

from savings_gateway.errors import IntegrityError, NotFoundError, TransientStoreError, ValidationError
from savings_gateway.logging import logger, payment_id_ctx
from savings_gateway.signature import verify_signature

CENTS = Decimal("0.01")


class Outcome(str, Enum):
    APPLIED = "applied"
    IGNORED = "ignored"
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    MISSING_DATA = "missing_data"
    UNKNOWN_USER = "unknown_user"
    STORE_FAILURE = "store_failure"


RESPONSES = {
    Outcome.APPLIED: (200, "OK"),
    Outcome.IGNORED: (200, "OK"),
    Outcome.MALFORMED: (400, "Malformed body"),
    Outcome.BAD_SIGNATURE: (400, "Invalid signature"),
    Outcome.MISSING_DATA: (400, "Missing data"),
    Outcome.UNKNOWN_USER: (400, "Unknown user"),
    Outcome.STORE_FAILURE: (500, "Internal Server Error"),
}


class NotificationResult(NamedTuple):
    outcome: Outcome
    payment_id: Optional[str] = None
    user_id: Optional[str] = None
    amount: Optional[Decimal] = None

    @property
    def status_code(self) -> int:
        return RESPONSES[self.outcome][0]

    @property
    def message(self) -> str:
        return RESPONSES[self.outcome][1]


def parse_notification(body: bytes) -> List[Tuple[str, str]]:
    """Parse a form-encoded body into ordered (key, value) pairs."""

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        raise ValidationError("Notification body is not valid UTF-8")
    if not text.strip():
        raise ValidationError("Empty notification body")
    try:
        return parse_qsl(text.strip(), keep_blank_values=True, strict_parsing=True)
    except ValueError as exc:
        raise ValidationError(f"Malformed notification body: {exc}")


def check_signature(pairs: List[Tuple[str, str]], passphrase: Optional[str]) -> List[Tuple[str, str]]:
    """Return the signed fields, or raise IntegrityError if the signature does not match."""

    received = None
    fields = []
    for key, value in pairs:
        if key == "signature":
            received = value
        else:
            fields.append((key, value))
    if not verify_signature(fields, received, passphrase):
        raise IntegrityError("Notification signature mismatch")
    return fields


def _first(data: dict, *keys: str) -> Optional[str]:
    for key in keys:
        value = data.get(key, "").strip()
        if value:
            return value
    return None


def _parse_amount(raw: Optional[str]) -> Optional[Decimal]:
    if raw is None:
        return None
    try:
        amount = Decimal(raw)
        if not amount.is_finite():
            return None
        amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None
    if amount <= 0:
        return None
    return amount


def process_notification(body: bytes, store, settings) -> NotificationResult:
    try:
        pairs = parse_notification(body)
    except ValidationError as exc:
        logger.error("notification rejected: %s", exc)
        return NotificationResult(Outcome.MALFORMED)

    try:
        fields = check_signature(pairs, settings.passphrase)
    except IntegrityError:
        logger.error("notification rejected: invalid signature keys=%s", [key for key, _ in pairs])
        return NotificationResult(Outcome.BAD_SIGNATURE)

    data = dict(fields)
    payment_id = data.get("m_payment_id")
    token = payment_id_ctx.set(payment_id or "")
    try:
        return _apply(data, payment_id, store)
    finally:
        payment_id_ctx.reset(token)


def _apply(data: dict, payment_id: Optional[str], store) -> NotificationResult:
    status = data.get("payment_status", "")
    if status.strip().upper() != "COMPLETE":
        logger.info("notification ignored payment_status=%s", status)
        return NotificationResult(Outcome.IGNORED, payment_id=payment_id)

    user_id = _first(data, "custom_str1", "custom_int1")
    amount = _parse_amount(_first(data, "amount_gross", "amount"))
    if user_id is None or amount is None:
        logger.error("notification rejected: missing user id or amount")
        return NotificationResult(Outcome.MISSING_DATA, payment_id=payment_id)

    if store.get_user(user_id) is None:
        logger.error("notification rejected: unknown user_id=%s", user_id)
        return NotificationResult(Outcome.UNKNOWN_USER, payment_id=payment_id, user_id=user_id)

    try:
        store.apply_deposit(user_id, amount, payment_id=payment_id, reference=data.get("pf_payment_id"))
    except NotFoundError:
        logger.error("notification rejected: user_id=%s disappeared before credit", user_id)
        return NotificationResult(Outcome.UNKNOWN_USER, payment_id=payment_id, user_id=user_id)
    except TransientStoreError as exc:
        logger.error("notification not applied, awaiting redelivery: %s", exc)
        return NotificationResult(Outcome.STORE_FAILURE, payment_id=payment_id, user_id=user_id, amount=amount)

    logger.info("deposit applied user_id=%s amount=%s", user_id, amount)
    return NotificationResult(Outcome.APPLIED, payment_id=payment_id, user_id=user_id, amount=amount)
