from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core import config
from app.core.request_context import bind_order
from app.models.order import (
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_PENDING,
    PAYMENT_METHOD_TRANSFER,
    Order,
    utcnow,
)
from app.services.receipts import next_receipt_code
from app.services.text import normalize_transfer_text

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("x-signature", "x-webhook-signature", "x-hmac-signature", "signature")
AMOUNT_KEYS = ("amount", "transferAmount", "value", "transactionAmount")
CONTENT_KEYS = ("content", "description", "addInfo", "message")
TRANSACTION_ID_KEYS = ("transactionId", "transaction_id", "txnId", "reference", "id")

_SIGNATURE_PREFIX = re.compile(r"^sha256=", re.IGNORECASE)


@dataclass
class WebhookResult:
    status_code: int
    body: dict[str, Any]


@dataclass
class TransferNotification:
    amount: float | None
    content: str
    transaction_id: str | None
    payload: dict[str, Any] = field(default_factory=dict)


def _error(status_code: int, error: str) -> WebhookResult:
    return WebhookResult(status_code, {"ok": False, "error": error})


# =========================
# SIGNATURE
# =========================
def extract_signature(headers: Mapping[str, str]) -> str:
    lowered = {str(key).lower(): value for key, value in headers.items()}
    for name in SIGNATURE_HEADERS:
        value = lowered.get(name)
        if value and value.strip():
            return _SIGNATURE_PREFIX.sub("", value.strip())
    return ""


def compute_signatures(raw_body: bytes, secret: str) -> tuple[str, str]:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return digest.hex(), base64.b64encode(digest).decode("ascii")


def verify_signature(raw_body: bytes, signature: str, secret: str) -> bool:
    if not signature:
        return False
    expected_hex, expected_b64 = compute_signatures(raw_body, secret)
    provided = signature.encode("utf-8")
    return hmac.compare_digest(provided.lower(), expected_hex.encode("ascii")) or hmac.compare_digest(
        provided, expected_b64.encode("ascii")
    )


# =========================
# EXTRACTION
# =========================
def to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        cleaned = re.sub(r"[^\d.-]", "", value)
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def _first_present(payload: Mapping[str, Any], keys: Iterable[str]) -> Any:
    data = payload.get("data")
    scopes = [payload]
    if isinstance(data, Mapping):
        scopes.append(data)
    for scope in scopes:
        for key in keys:
            value = scope.get(key)
            if value is not None:
                return value
    return None


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def extract_notification(payload: Any) -> TransferNotification:
    if not isinstance(payload, dict):
        payload = {}
    return TransferNotification(
        amount=to_number(_first_present(payload, AMOUNT_KEYS)),
        content=_as_text(_first_present(payload, CONTENT_KEYS)) or "",
        transaction_id=(_as_text(_first_present(payload, TRANSACTION_ID_KEYS)) or "").strip() or None,
        payload=payload,
    )


# =========================
# MATCHING
# =========================
def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def find_matching_order(candidates: Iterable[Order], amount: float, content: str) -> Order | None:
    """First candidate (newest first) with the same rounded amount whose transfer
    content or order number appears in the notified text."""
    target_amount = round_half_up(amount)
    normalized_content = normalize_transfer_text(content)
    for order in candidates:
        if round_half_up(float(order.total_amount or 0)) != target_amount:
            continue
        expected = normalize_transfer_text(order.transfer_content)
        order_number = normalize_transfer_text(order.order_number)
        if (expected and expected in normalized_content) or (order_number and order_number in normalized_content):
            return order
    return None


def load_candidates(db: Session, limit: int | None = None) -> list[Order]:
    return (
        db.query(Order)
        .filter(
            Order.payment_method == PAYMENT_METHOD_TRANSFER,
            Order.status.in_([ORDER_STATUS_PENDING, ORDER_STATUS_COMPLETED]),
        )
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit or config.BANK_WEBHOOK_LOOKBACK_LIMIT)
        .all()
    )


def _order_ref(order: Order) -> dict[str, Any]:
    return {"order_id": order.id, "order_number": order.order_number}


def reconcile_transfer(
    db: Session,
    notification: TransferNotification,
    *,
    lookback_limit: int | None = None,
    now: datetime | None = None,
) -> WebhookResult:
    if notification.amount is None or not notification.content.strip():
        return _error(400, "missing_amount_or_content")

    try:
        candidates = load_candidates(db, lookback_limit)
    except SQLAlchemyError:
        logger.exception("Bank webhook candidate query failed")
        db.rollback()
        return _error(500, "query_failed")

    match = find_matching_order(candidates, notification.amount, notification.content)
    if match is None:
        logger.info("Bank webhook without matching order amount=%s", notification.amount)
        return WebhookResult(202, {"ok": True, "matched": False, "reason": "no_order_match"})

    ref = _order_ref(match)
    bind_order(match.id, match.order_number)
    if match.status == ORDER_STATUS_COMPLETED:
        return WebhookResult(
            200, {"ok": True, "matched": True, "updated": False, **ref, "reason": "already_completed"}
        )

    now = now or utcnow()
    try:
        updated = (
            db.query(Order)
            .filter(Order.id == match.id, Order.status == ORDER_STATUS_PENDING)
            .update(
                {
                    Order.status: ORDER_STATUS_COMPLETED,
                    Order.paid_at: now,
                    Order.income_receipt_code: next_receipt_code(db, now),
                    Order.payment_payload: notification.payload,
                    Order.payment_transaction_id: notification.transaction_id,
                    Order.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        if updated == 0:
            db.rollback()
            logger.info("Bank webhook lost the race for a pending order")
            return WebhookResult(
                200, {"ok": True, "matched": True, "updated": False, **ref, "reason": "order_not_pending"}
            )
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Bank webhook transaction id already processed: %s", notification.transaction_id)
        return WebhookResult(
            200, {"ok": True, "matched": True, "updated": False, **ref, "reason": "duplicate_transaction_id"}
        )
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Bank webhook update failed")
        return _error(500, "update_failed")

    logger.info("Order completed by bank transfer")
    return WebhookResult(200, {"ok": True, "matched": True, "updated": True, **ref})


def process_bank_notification(
    db: Session,
    *,
    raw_body: bytes,
    headers: Mapping[str, str],
    secret: str | None = None,
    lookback_limit: int | None = None,
) -> WebhookResult:
    """Verify, parse and reconcile one notification; never raises for bad input."""
    secret = config.BANK_WEBHOOK_SECRET if secret is None else secret
    if secret:
        signature = extract_signature(headers)
        if not signature:
            logger.warning("Bank webhook rejected: missing signature")
            return _error(401, "missing_signature")
        if not verify_signature(raw_body, signature, secret):
            logger.warning("Bank webhook rejected: invalid signature")
            return _error(401, "invalid_signature")

    try:
        payload = json.loads(raw_body or b"")
    except ValueError:
        logger.warning("Bank webhook rejected: invalid JSON body")
        return _error(400, "invalid_json")

    return reconcile_transfer(db, extract_notification(payload), lookback_limit=lookback_limit)
