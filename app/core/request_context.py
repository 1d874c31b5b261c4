from __future__ import annotations

from contextvars import ContextVar
from typing import Any


_REQUEST_ID_CTX: ContextVar[str | None] = ContextVar("request_id", default=None)
_USER_ID_CTX: ContextVar[str | None] = ContextVar("user_id", default=None)
# Mutable holder: endpoints run in a copied context, the access log reads it afterwards.
_ORDER_CTX: ContextVar[dict[str, Any] | None] = ContextVar("order", default=None)


def set_request_context(*, request_id: str | None = None, user_id: str | None = None) -> None:
    if request_id is not None:
        _REQUEST_ID_CTX.set(request_id)
        _ORDER_CTX.set({})
    if user_id is not None:
        _USER_ID_CTX.set(user_id)


def bind_order(order_id: int | None, order_number: str | None = None) -> None:
    """Tag every following log line of this request with the order it touches."""
    holder = _ORDER_CTX.get()
    if holder is None:
        holder = {}
        _ORDER_CTX.set(holder)
    holder["order_id"] = order_id
    holder["order_number"] = order_number


def get_request_id() -> str | None:
    return _REQUEST_ID_CTX.get()


def get_user_id() -> str | None:
    return _USER_ID_CTX.get()


def get_order_context() -> dict[str, Any]:
    return dict(_ORDER_CTX.get() or {})


def clear_request_context() -> None:
    _REQUEST_ID_CTX.set(None)
    _USER_ID_CTX.set(None)
    _ORDER_CTX.set(None)
