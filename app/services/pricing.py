from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from app.core.exceptions import PricingError
from app.models.product import Product

logger = logging.getLogger(__name__)


def _coerce_id(raw: Any, label: str) -> int:
    if isinstance(raw, bool):
        raise PricingError(f"Invalid {label}: {raw}")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise PricingError(f"Invalid {label}: {raw}") from exc


def _normalize_selections(selections: Mapping[Any, Iterable[Any]] | None) -> dict[int, list[int]]:
    normalized: dict[int, list[int]] = {}
    for raw_group_id, raw_option_ids in (selections or {}).items():
        group_id = _coerce_id(raw_group_id, "classification group")
        if raw_option_ids is None:
            continue
        if isinstance(raw_option_ids, (str, int)):
            raw_option_ids = [raw_option_ids]
        option_ids: list[int] = []
        for raw_option_id in raw_option_ids:
            option_id = _coerce_id(raw_option_id, "classification option")
            if option_id not in option_ids:
                option_ids.append(option_id)
        normalized[group_id] = option_ids
    return normalized


def compute_unit_price(base_price: int, surcharges: Iterable[int]) -> int:
    return int(base_price or 0) + sum(int(value or 0) for value in surcharges)


def price_cart_line(
    product: Product,
    selections: Mapping[Any, Iterable[Any]] | None = None,
    *,
    qty: int = 1,
    note: str | None = None,
) -> dict:
    """Price one cart line from a stored product and the chosen classification options.

    Raises PricingError (nothing else is touched) when an option does not belong
    to the product, a single-select group gets several options, or a required
    group is left empty.
    """
    if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
        raise PricingError("Quantity must be a positive integer")

    chosen = _normalize_selections(selections)
    groups = list(product.classification_groups or [])
    known_group_ids = {group.id for group in groups}
    unknown_groups = sorted(set(chosen) - known_group_ids)
    if unknown_groups:
        raise PricingError(f"Unknown classification group: {unknown_groups[0]}")

    surcharges: list[int] = []
    labels: list[str] = []
    key_parts: list[str] = []

    for group in groups:
        selected_ids = chosen.get(group.id, [])
        options_by_id = {option.id: option for option in group.options if option.is_active}

        for option_id in selected_ids:
            if option_id not in options_by_id:
                raise PricingError(f"Unknown option {option_id} for {group.name}")

        if not selected_ids:
            if group.is_required:
                raise PricingError(f"Please select {group.name}")
            continue

        if not group.allow_multiple and len(selected_ids) > 1:
            raise PricingError(f"{group.name} allows a single choice")

        # catalog order, not click order
        picked = [option for option in group.options if option.id in selected_ids]
        surcharges.extend(option.extra_price for option in picked)
        labels.append(f"{group.name}: {', '.join(option.name for option in picked)}")
        key_parts.append(f"{group.id}:{','.join(str(option_id) for option_id in sorted(selected_ids))}")

    unit_price = compute_unit_price(product.selling_price, surcharges)
    line_key = "|".join([str(product.id), *key_parts])

    return {
        "product_id": product.id,
        "product_name": product.name,
        "unit_price": unit_price,
        "qty": qty,
        "subtotal": unit_price * qty,
        "classification_labels": labels,
        "line_key": line_key,
        "note": (note or "").strip() or None,
    }


def cart_total(lines: Iterable[Mapping[str, Any]]) -> int:
    return sum(int(line["unit_price"]) * int(line["qty"]) for line in lines)
