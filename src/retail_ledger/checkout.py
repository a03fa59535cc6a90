"""Checkout calculation engine.

Stateless arithmetic over a cart of :class:`CartLine` values plus one
cart-level discount amount. Nothing here touches the ledger; the core layer
turns the result into a :class:`~retail_ledger.models.SaleDraft` with
:func:`build_sale_draft` and posts it.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Tuple

from . import log
from .constants import DiscountType, PaymentMethod
from .errors import InsufficientTenderError
from .models import ZERO, LineItem, SaleDraft, coerce_decimal


HUNDRED = Decimal("100")


@dataclass(frozen=True)
class CartLine:
    """One product line in the cart; ``discount_value`` is read per ``discount_type``."""

    product_id: str
    unit_price: Decimal
    quantity: Decimal
    discount_value: Decimal = ZERO
    discount_type: DiscountType = DiscountType.AMOUNT

    def __post_init__(self) -> None:
        object.__setattr__(self, "unit_price", coerce_decimal(self.unit_price))
        object.__setattr__(self, "quantity", coerce_decimal(self.quantity))
        object.__setattr__(self, "discount_value", coerce_decimal(self.discount_value))
        object.__setattr__(self, "discount_type", DiscountType(self.discount_type))

    @property
    def gross(self) -> Decimal:
        return self.quantity * self.unit_price

    @property
    def discount_amount(self) -> Decimal:
        if self.discount_type is DiscountType.PERCENT:
            return self.gross * self.discount_value / HUNDRED
        return self.discount_value


@dataclass(frozen=True)
class CheckoutTotals:
    gross_subtotal: Decimal
    line_savings_total: Decimal
    net_before_cart_discount: Decimal
    cart_discount: Decimal
    final_total: Decimal

    @property
    def total_discount(self) -> Decimal:
        """Informational discount recorded on the resulting sale."""

        return self.line_savings_total + self.cart_discount


@dataclass(frozen=True)
class PosSession:
    """In-progress cart kept between terminal sessions."""

    lines: Tuple[CartLine, ...] = ()
    cart_discount: Decimal = ZERO
    payment_method: PaymentMethod = PaymentMethod.CASH
    account_id: Optional[str] = None

    @property
    def totals(self) -> CheckoutTotals:
        return compute_totals(self.lines, self.cart_discount)


def compute_totals(lines: Iterable[CartLine], cart_discount: object = ZERO) -> CheckoutTotals:
    """Compute cart totals; the final total never drops below zero.

    Args:
        lines: Cart lines in any order.
        cart_discount: Absolute cart-level discount. Non-numeric input counts
            as zero.

    Returns:
        CheckoutTotals with every intermediate figure.
    """

    gross = ZERO
    savings = ZERO
    for line in lines:
        gross += line.gross
        savings += line.discount_amount
    net = gross - savings
    discount = coerce_decimal(cart_discount)
    final = max(ZERO, net - discount)
    return CheckoutTotals(
        gross_subtotal=gross,
        line_savings_total=savings,
        net_before_cart_discount=net,
        cart_discount=discount,
        final_total=final,
    )


def change_due(tendered: object, final_total: Decimal) -> Decimal:
    return max(ZERO, coerce_decimal(tendered) - final_total)


def require_sufficient_tender(tendered: object, final_total: Decimal) -> Decimal:
    """Return the change for a cash tender, refusing one below the payable.

    Raises:
        InsufficientTenderError: If ``tendered`` is less than ``final_total``.
    """

    amount = coerce_decimal(tendered)
    if amount < final_total:
        log.error("Cash tender %s is below the payable %s", amount, final_total)
        raise InsufficientTenderError(f"Tendered {amount} does not cover the total of {final_total}")
    return amount - final_total


def build_sale_items(lines: Iterable[CartLine]) -> Tuple[LineItem, ...]:
    """Sale line items carrying the computed discount amount of each cart line."""

    return tuple(
        LineItem(
            product_id=line.product_id,
            quantity=line.quantity,
            price=line.unit_price,
            discount=line.discount_amount,
        )
        for line in lines
    )


def build_sale_draft(
    lines: Sequence[CartLine],
    *,
    cart_discount: object = ZERO,
    payment_method: PaymentMethod = PaymentMethod.CASH,
    account_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    cheque_number: Optional[str] = None,
    cheque_date: Optional[object] = None,
) -> SaleDraft:
    """Translate a cart into the SALE draft the ledger posts."""

    totals = compute_totals(lines, cart_discount)
    return SaleDraft(
        amount=totals.final_total,
        discount=totals.total_discount,
        payment_method=PaymentMethod(payment_method),
        account_id=account_id,
        customer_id=customer_id,
        description=f"Terminal Sale: {len(lines)} line items",
        items=build_sale_items(lines),
        cheque_number=cheque_number,
        cheque_date=cheque_date,
    )


__all__ = [
    "CartLine",
    "CheckoutTotals",
    "PosSession",
    "compute_totals",
    "change_due",
    "require_sufficient_tender",
    "build_sale_items",
    "build_sale_draft",
]
