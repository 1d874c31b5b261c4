from __future__ import annotations

import re
import unicodedata
from datetime import datetime, timezone
from urllib.parse import quote

from app.core import config

_BASE36_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
ORDER_NUMBER_PREFIX = "000OD"
TRANSFER_CONTENT_PREFIX = "DH"


def strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def normalize_transfer_text(value) -> str:
    """Upper-case, accent-free, whitespace-collapsed form used for bank matching."""
    if value is None:
        return ""
    text = strip_accents(str(value)).upper()
    return re.sub(r"\s+", " ", text).strip()


def sanitize_transfer_content(value: str) -> str:
    return re.sub(r"[^A-Z0-9]", "", strip_accents(value or "").upper())


def build_transfer_content(order_number: str) -> str:
    upper = (order_number or "").upper()
    _, separator, tail = upper.partition("OD")
    return sanitize_transfer_content(TRANSFER_CONTENT_PREFIX + (tail if separator else upper))


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def order_number_suffix(timestamp_ms: int) -> str:
    seed = timestamp_ms & 0xFFFFFFFF
    salt = (seed ^ (seed >> 7) ^ (seed >> 13)) & 0xFFFFFFFF
    return _to_base36(salt)[-3:].rjust(3, "0")


def generate_order_number(now: datetime | None = None, *, offset_ms: int = 0) -> str:
    """000OD + DDMMYY + three base-36 characters derived from the millisecond clock."""
    moment = now or datetime.now(timezone.utc)
    timestamp_ms = int(moment.timestamp() * 1000) + offset_ms
    return f"{ORDER_NUMBER_PREFIX}{moment.strftime('%d%m%y')}{order_number_suffix(timestamp_ms)}"


def parse_amount_input(raw) -> int | None:
    """Cash keypad input: keeps digits only, so "50.000" means 50000."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw)
    digits = re.sub(r"\D", "", str(raw))
    if not digits:
        return None
    return int(digits)


def build_transfer_qr_url(amount: int, transfer_content: str) -> str | None:
    if not config.TRANSFER_BANK_BIN or not config.TRANSFER_ACCOUNT_NUMBER:
        return None
    return (
        f"https://img.vietqr.io/image/{config.TRANSFER_BANK_BIN}-{config.TRANSFER_ACCOUNT_NUMBER}"
        f"-{config.TRANSFER_QR_TEMPLATE}.png?amount={int(amount)}&addInfo={quote(transfer_content, safe='')}"
    )
