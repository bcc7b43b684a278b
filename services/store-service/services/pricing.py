"""Order pricing: totals, shipping fee policy and order numbers.

Money is handled as ``Decimal``. Each aggregate (subtotal, discount, tax) is
rounded half-even to cents exactly once; line amounts are never rounded. The
final amount is the sum of the rounded aggregates, so

    final_amount == subtotal - discount + shipping_fee + tax

holds exactly for every order.
"""
import secrets
import string
import time
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Iterable, Optional

from models import DeliveryOption

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

TAX_RATE = Decimal("0.10")
FREE_SHIPPING_THRESHOLD = Decimal("500")
STANDARD_SHIPPING_FEE = Decimal("29.99")
EXPRESS_SHIPPING_FEE = Decimal("49.99")

ORDER_NUMBER_PREFIX = "TS"
GUEST_ORDER_NUMBER_PREFIX = "TSG"

_BASE36 = string.digits + string.ascii_uppercase


def to_money(value) -> Decimal:
    """Round a value to cents, half-even."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_EVEN)


@dataclass(frozen=True)
class PricedLine:
    """Price inputs for one validated line item."""
    price: Decimal
    discount_percent: int
    quantity: int

    @property
    def item_total(self) -> Decimal:
        return Decimal(self.price) * self.quantity

    @property
    def item_discount(self) -> Decimal:
        if self.discount_percent <= 0:
            return Decimal(0)
        return Decimal(self.price) * Decimal(self.discount_percent) / Decimal(100) * self.quantity


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount: Decimal
    shipping_fee: Decimal
    tax: Decimal
    final_amount: Decimal


def calculate_shipping_fee(delivery_option: DeliveryOption, subtotal: Decimal) -> Decimal:
    """
    Flat shipping fee for an order.

    Express is always 49.99. Standard is free only when the subtotal is
    strictly greater than 500, otherwise 29.99. Pickup is free.

    Args:
        delivery_option: Selected delivery option
        subtotal: Order subtotal before discount

    Returns:
        Shipping fee

    Raises:
        ValueError: For options that have no flat order fee (priority)
    """
    option = DeliveryOption(delivery_option)
    if option is DeliveryOption.EXPRESS:
        return EXPRESS_SHIPPING_FEE
    if option is DeliveryOption.STANDARD:
        return ZERO if subtotal > FREE_SHIPPING_THRESHOLD else STANDARD_SHIPPING_FEE
    if option is DeliveryOption.PICKUP:
        return ZERO
    raise ValueError(f"Delivery option {option.value} is not available for orders")


def calculate_totals(lines: Iterable[PricedLine], delivery_option: DeliveryOption) -> OrderTotals:
    """
    Compute subtotal, discount, shipping, tax and final amount.

    Args:
        lines: Validated line items
        delivery_option: Selected delivery option

    Returns:
        Order totals
    """
    raw_subtotal = Decimal(0)
    raw_discount = Decimal(0)
    for line in lines:
        raw_subtotal += line.item_total
        raw_discount += line.item_discount

    subtotal = to_money(raw_subtotal)
    discount = to_money(raw_discount)
    shipping_fee = calculate_shipping_fee(delivery_option, subtotal)
    tax = to_money(raw_subtotal * TAX_RATE)
    final_amount = subtotal - discount + shipping_fee + tax

    return OrderTotals(
        subtotal=subtotal,
        discount=discount,
        shipping_fee=shipping_fee,
        tax=tax,
        final_amount=final_amount,
    )


def random_base36(length: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def generate_order_number(guest: bool = False, now_ms: Optional[int] = None) -> str:
    """
    Build a human-readable order number.

    Format: prefix + epoch milliseconds + 6 random base-36 characters.
    Uniqueness is enforced by the orders table, not here.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    prefix = GUEST_ORDER_NUMBER_PREFIX if guest else ORDER_NUMBER_PREFIX
    return f"{prefix}{now_ms}{random_base36(6)}"
