import math
import time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import NamedTuple
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from savings_gateway.errors import ValidationError
from savings_gateway.logging import logger, payment_id_ctx
from savings_gateway.signature import build_signature

ITEM_NAME = "Savings Deposit"


class PaymentIntent(NamedTuple):
    payment_id: str
    amount: str
    user_id: str
    fields: dict
    signature: str
    url: str


def format_amount(raw) -> str:
    """Return ``raw`` as a two-place currency string, e.g. ``100`` -> ``"100.00"``."""

    if raw is None or isinstance(raw, bool):
        raise ValidationError("Invalid amount")
    if isinstance(raw, float) and not math.isfinite(raw):
        raise ValidationError("Invalid amount")
    try:
        value = Decimal(str(raw).strip())
        if not value.is_finite():
            raise ValidationError("Invalid amount")
        value = value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError("Invalid amount")
    if value <= 0:
        raise ValidationError("Amount must be greater than zero")
    return f"{value:.2f}"


def new_payment_id() -> str:
    return f"pay_{int(time.time() * 1000)}_{uuid4().hex[:8]}"


def build_payment_intent(amount, user_id, settings) -> PaymentIntent:
    """Assemble the signed redirect for one deposit attempt."""

    if user_id is None or not str(user_id).strip():
        raise ValidationError("Missing required field: userId")
    user_id = str(user_id).strip()
    formatted = format_amount(amount)
    payment_id = new_payment_id()

    # Order matches the gateway's form field order and must not be sorted.
    fields = {
        "merchant_id": settings.merchant_id,
        "merchant_key": settings.merchant_key,
        "return_url": settings.return_url,
        "cancel_url": settings.cancel_url,
        "notify_url": settings.notify_url,
        "m_payment_id": payment_id,
        "amount": formatted,
        "item_name": ITEM_NAME,
        "custom_str1": user_id,
    }
    result = build_signature(fields, settings.passphrase)
    url = f"{settings.payfast_base_url}?{result.param_string}&signature={result.signature}"

    return PaymentIntent(
        payment_id=payment_id,
        amount=formatted,
        user_id=user_id,
        fields=fields,
        signature=result.signature,
        url=url,
    )


def create_payment(amount, user_id, store, settings) -> PaymentIntent:
    """Build the intent and record it as pending before handing back the redirect."""

    intent = build_payment_intent(amount, user_id, settings)
    token = payment_id_ctx.set(intent.payment_id)
    try:
        logger.info("payment intent created user_id=%s amount=%s", intent.user_id, intent.amount)
        try:
            store.record_pending_payment(intent.payment_id, intent.user_id, intent.amount)
        except SQLAlchemyError as exc:
            logger.warning("could not store pending payment: %s", exc)
        return intent
    finally:
        payment_id_ctx.reset(token)
