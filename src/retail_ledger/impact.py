"""Ledger impact calculator.

Pure functions that translate a :class:`~retail_ledger.models.Transaction`
into the balance and stock deltas it implies. The ledger applies an impact to
post a transaction and applies :meth:`LedgerImpact.inverted` to reverse it, so
both directions always come from the same rule table:

=============== ================ ================================ ===========================
type            method           account                          party / stock
=============== ================ ================================ ===========================
SALE            CASH/BANK/CARD   account += amount                stock -= qty
SALE            CREDIT           none                             customer credit += amount
PURCHASE        CASH/BANK/CARD   account -= amount                stock += qty
PURCHASE        CREDIT           none                             vendor payable += amount
EXPENSE         CASH/BANK/CARD   account -= amount                vendor payable -= amount
                                                                  (CASH/BANK, vendor set)
CREDIT_PAYMENT  non-credit       account += amount                customer credit -= amount
TRANSFER        any              source -= amount, dest += amount none
=============== ================ ================================ ===========================

CHEQUE postings never move an account balance; their party and stock effects
still apply.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Mapping

from .constants import VENDOR_SETTLING_METHODS, PaymentMethod, TransactionType
from .models import ZERO, Transaction


INFLOW_TYPES = frozenset({TransactionType.SALE, TransactionType.CREDIT_PAYMENT})


@dataclass(frozen=True)
class LedgerImpact:
    """Signed deltas keyed by aggregate id."""

    accounts: Mapping[str, Decimal] = field(default_factory=dict)
    customers: Mapping[str, Decimal] = field(default_factory=dict)
    vendors: Mapping[str, Decimal] = field(default_factory=dict)
    stock: Mapping[str, Decimal] = field(default_factory=dict)

    def inverted(self) -> "LedgerImpact":
        """Return the additive inverse, used to revert a posting."""

        return LedgerImpact(
            accounts=_negate(self.accounts),
            customers=_negate(self.customers),
            vendors=_negate(self.vendors),
            stock=_negate(self.stock),
        )

    def combined(self, other: "LedgerImpact") -> "LedgerImpact":
        """Sum two impacts bucket by bucket."""

        return LedgerImpact(
            accounts=_merge(self.accounts, other.accounts),
            customers=_merge(self.customers, other.customers),
            vendors=_merge(self.vendors, other.vendors),
            stock=_merge(self.stock, other.stock),
        )

    def is_empty(self) -> bool:
        return not any(
            delta != ZERO
            for bucket in (self.accounts, self.customers, self.vendors, self.stock)
            for delta in bucket.values()
        )


def _negate(bucket: Mapping[str, Decimal]) -> Dict[str, Decimal]:
    return {key: -delta for key, delta in bucket.items()}


def _merge(left: Mapping[str, Decimal], right: Mapping[str, Decimal]) -> Dict[str, Decimal]:
    merged: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for bucket in (left, right):
        for key, delta in bucket.items():
            merged[key] += delta
    return dict(merged)


def compute_impact(transaction: Transaction) -> LedgerImpact:
    """Compute the deltas that posting ``transaction`` applies to aggregates."""

    amount = transaction.amount
    tx_type = transaction.type

    if tx_type is TransactionType.TRANSFER:
        return LedgerImpact(
            accounts={
                transaction.account_id: -amount,
                transaction.destination_account_id: amount,
            }
        )

    accounts: Dict[str, Decimal] = {}
    target = transaction.resolved_account_id()
    if target is not None:
        accounts[target] = amount if tx_type in INFLOW_TYPES else -amount

    customers: Dict[str, Decimal] = {}
    if transaction.customer_id:
        if tx_type is TransactionType.SALE and transaction.payment_method is PaymentMethod.CREDIT:
            customers[transaction.customer_id] = amount
        elif tx_type is TransactionType.CREDIT_PAYMENT:
            customers[transaction.customer_id] = -amount

    vendors: Dict[str, Decimal] = {}
    if transaction.vendor_id:
        if tx_type is TransactionType.PURCHASE and transaction.payment_method is PaymentMethod.CREDIT:
            vendors[transaction.vendor_id] = amount
        elif tx_type is TransactionType.EXPENSE and transaction.payment_method in VENDOR_SETTLING_METHODS:
            vendors[transaction.vendor_id] = -amount

    return LedgerImpact(
        accounts=accounts,
        customers=customers,
        vendors=vendors,
        stock=compute_stock_deltas(transaction),
    )


def compute_stock_deltas(transaction: Transaction) -> Dict[str, Decimal]:
    """Sum line quantities per product; sales deplete, purchases replenish.

    Several lines for the same product are summed rather than collapsed to
    the first match.
    """

    if transaction.type is TransactionType.SALE:
        sign = Decimal("-1")
    elif transaction.type is TransactionType.PURCHASE:
        sign = Decimal("1")
    else:
        return {}

    deltas: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for item in transaction.items:
        deltas[item.product_id] += sign * item.quantity
    return dict(deltas)


def compute_reversal(transaction: Transaction) -> LedgerImpact:
    """Compute the deltas that undo a previously posted ``transaction``."""

    return compute_impact(transaction).inverted()


__all__ = [
    "LedgerImpact",
    "compute_impact",
    "compute_stock_deltas",
    "compute_reversal",
]
