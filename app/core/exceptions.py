class CheckoutValidationError(ValueError):
    """Rejected before any write; the message is shown to the cashier."""


class PricingError(CheckoutValidationError):
    pass


class DiscountError(CheckoutValidationError):
    pass


class LoyaltyError(CheckoutValidationError):
    pass


class InsufficientCashError(CheckoutValidationError):
    pass


class OrderStateError(Exception):
    """Forbidden order status transition (e.g. cancelling a paid order)."""
