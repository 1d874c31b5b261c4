import pytest

from app.core.exceptions import DiscountError, LoyaltyError
from app.services.discounts import (
    DISCOUNT_RULES,
    compute_discount_amount,
    find_discount_rule,
    max_points_usable,
    resolve_checkout_amounts,
)


def test_percent_code_scenario_a():
    amounts = resolve_checkout_amounts(100000, discount_code="GIAM10")

    assert amounts.discount_amount == 10000
    assert amounts.amount_after_discount == 90000
    assert amounts.final_amount == 90000
    assert amounts.discount_code == "GIAM10"


def test_redeeming_more_points_than_allowed_scenario_b():
    with pytest.raises(LoyaltyError) as exc:
        resolve_checkout_amounts(
            100000,
            discount_code="GIAM10",
            customer_points=50,
            points_to_use=200,
            use_loyalty=True,
        )

    message = str(exc.value)
    assert "max 50" in message
    assert "max 90" in message


def test_codes_are_trimmed_and_uppercased():
    assert find_discount_rule("  giam20 ").code == "GIAM20"


@pytest.mark.parametrize("code", ["GIAM99", "giam", "FREE"])
def test_unknown_codes_are_rejected(code):
    with pytest.raises(DiscountError):
        resolve_checkout_amounts(100000, discount_code=code)


def test_blank_code_is_rejected_but_none_means_no_code():
    with pytest.raises(DiscountError):
        resolve_checkout_amounts(100000, discount_code="   ")

    assert resolve_checkout_amounts(100000, discount_code=None).discount_amount == 0


@pytest.mark.parametrize("cart_total", [0, 5000, 99999, 100000, 500000, 760000, 2000000])
@pytest.mark.parametrize("code", ["GIAM10", "GIAM20"])
def test_percent_discount_respects_cap_and_cart_total(code, cart_total):
    rule = DISCOUNT_RULES[code]
    amount = compute_discount_amount(cart_total, rule)

    assert amount == min(rule.max_discount, cart_total * rule.value // 100)
    assert amount <= cart_total


def test_fixed_discount_never_exceeds_cart_total():
    assert compute_discount_amount(20000, DISCOUNT_RULES["GIAM30K"]) == 20000
    assert compute_discount_amount(200000, DISCOUNT_RULES["GIAM50K"]) == 50000


def test_points_are_capped_by_balance_and_post_discount_amount():
    assert max_points_usable(50, 90000) == 50
    assert max_points_usable(500, 90000) == 90
    assert max_points_usable(10, 999) == 0


def test_loyalty_is_applied_after_discount_code():
    amounts = resolve_checkout_amounts(
        100000,
        discount_code="GIAM30K",
        customer_points=100,
        points_to_use=70,
        use_loyalty=True,
    )

    assert amounts.max_points_usable == 70
    assert amounts.loyalty_discount == 70000
    assert amounts.final_amount == 0
    assert amounts.points_earned == 0


@pytest.mark.parametrize("points", [0, -5])
def test_points_to_use_must_be_positive(points):
    with pytest.raises(LoyaltyError):
        resolve_checkout_amounts(100000, customer_points=100, points_to_use=points, use_loyalty=True)


def test_points_require_loyalty_opt_in():
    with pytest.raises(LoyaltyError):
        resolve_checkout_amounts(100000, customer_points=100, points_to_use=5)


@pytest.mark.parametrize("cart_total", [0, 1000, 45000, 100000])
@pytest.mark.parametrize("code", [None, "GIAM10", "GIAM20", "GIAM30K", "GIAM50K"])
def test_final_amount_is_never_negative(cart_total, code):
    balance = 1000
    usable = resolve_checkout_amounts(cart_total, discount_code=code, customer_points=balance, use_loyalty=True)
    points = usable.max_points_usable or None

    amounts = resolve_checkout_amounts(
        cart_total,
        discount_code=code,
        customer_points=balance,
        points_to_use=points,
        use_loyalty=True,
    )

    assert amounts.final_amount >= 0
    assert amounts.points_used <= min(balance, amounts.amount_after_discount // 1000)


def test_points_earned_only_with_loyalty():
    assert resolve_checkout_amounts(125000, use_loyalty=True).points_earned == 12
    assert resolve_checkout_amounts(125000).points_earned == 0
