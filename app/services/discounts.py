from __future__ import annotations

from dataclasses import asdict, dataclass

from app.core import config
from app.core.exceptions import DiscountError, LoyaltyError

DISCOUNT_KIND_PERCENT = "percent"
DISCOUNT_KIND_FIXED = "fixed"


@dataclass(frozen=True)
class DiscountRule:
    code: str
    kind: str
    value: int
    max_discount: int | None = None


DISCOUNT_RULES: dict[str, DiscountRule] = {
    "GIAM10": DiscountRule("GIAM10", DISCOUNT_KIND_PERCENT, 10, 100000),
    "GIAM20": DiscountRule("GIAM20", DISCOUNT_KIND_PERCENT, 20, 150000),
    "GIAM30K": DiscountRule("GIAM30K", DISCOUNT_KIND_FIXED, 30000),
    "GIAM50K": DiscountRule("GIAM50K", DISCOUNT_KIND_FIXED, 50000),
}


@dataclass
class CheckoutAmounts:
    cart_total: int
    discount_code: str | None
    discount_amount: int
    amount_after_discount: int
    max_points_usable: int
    points_used: int
    loyalty_discount: int
    final_amount: int
    points_earned: int

    def to_dict(self) -> dict:
        return asdict(self)


def normalize_discount_code(code: str | None) -> str:
    return (code or "").strip().upper()


def find_discount_rule(code: str | None) -> DiscountRule:
    normalized = normalize_discount_code(code)
    if not normalized:
        raise DiscountError("Discount code is required")
    rule = DISCOUNT_RULES.get(normalized)
    if rule is None:
        raise DiscountError(f"Invalid discount code: {normalized}")
    return rule


def compute_discount_amount(cart_total: int, rule: DiscountRule) -> int:
    cart_total = max(0, int(cart_total))
    if rule.kind == DISCOUNT_KIND_FIXED:
        amount = rule.value
    else:
        amount = cart_total * rule.value // 100
        if rule.max_discount is not None:
            amount = min(amount, rule.max_discount)
    return max(0, min(amount, cart_total))


def max_points_usable(balance: int, amount_after_discount: int, point_value: int | None = None) -> int:
    point_value = point_value or config.LOYALTY_POINT_VALUE
    return max(0, min(int(balance or 0), max(0, amount_after_discount) // point_value))


def points_earned_for(final_amount: int, earn_divisor: int | None = None) -> int:
    earn_divisor = earn_divisor or config.LOYALTY_EARN_DIVISOR
    return max(0, final_amount) // earn_divisor


def resolve_checkout_amounts(
    cart_total: int,
    *,
    discount_code: str | None = None,
    customer_points: int = 0,
    points_to_use: int | None = None,
    use_loyalty: bool = False,
    point_value: int | None = None,
    earn_divisor: int | None = None,
) -> CheckoutAmounts:
    """Apply the discount code first, then loyalty redemption on what is left.

    ``discount_code=None`` means no code; an empty string means the cashier
    asked for a code and left it blank, which is rejected. ``points_to_use=None``
    means no redemption.
    """
    point_value = point_value or config.LOYALTY_POINT_VALUE
    cart_total = max(0, int(cart_total))

    applied_code = None
    discount_amount = 0
    if discount_code is not None:
        rule = find_discount_rule(discount_code)
        applied_code = rule.code
        discount_amount = compute_discount_amount(cart_total, rule)

    amount_after_discount = max(0, cart_total - discount_amount)
    by_amount = amount_after_discount // point_value
    usable = max_points_usable(customer_points, amount_after_discount, point_value)

    points_used = 0
    if points_to_use is not None:
        if not use_loyalty:
            raise LoyaltyError("Loyalty points require a loyalty customer")
        if isinstance(points_to_use, bool) or not isinstance(points_to_use, int) or points_to_use <= 0:
            raise LoyaltyError("Points to use must be a positive integer")
        if points_to_use > usable:
            raise LoyaltyError(
                f"Cannot use {points_to_use} points: max {usable} "
                f"(balance {max(0, int(customer_points or 0))}, order covers max {by_amount})"
            )
        points_used = points_to_use

    loyalty_discount = points_used * point_value
    final_amount = max(0, amount_after_discount - loyalty_discount)
    points_earned = points_earned_for(final_amount, earn_divisor) if use_loyalty else 0

    return CheckoutAmounts(
        cart_total=cart_total,
        discount_code=applied_code,
        discount_amount=discount_amount,
        amount_after_discount=amount_after_discount,
        max_points_usable=usable,
        points_used=points_used,
        loyalty_discount=loyalty_discount,
        final_amount=final_amount,
        points_earned=points_earned,
    )
