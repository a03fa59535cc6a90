"""Domain records for the retail ledger.

Aggregates (accounts, customers, vendors, products) are frozen dataclasses;
the ledger swaps them for updated copies with :func:`dataclasses.replace`
whenever a transaction impact is applied or reverted.

Transactions enter the system as *drafts*: one dataclass per transaction kind,
each carrying only the fields that kind may legally use. The ledger then
materializes a draft into the uniform :class:`Transaction` record that is
stored, edited, and persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar, Optional, Tuple, Union

from .constants import (
    CASH_ACCOUNT_ID,
    DEFAULT_BANK_ACCOUNT_ID,
    NON_ACCOUNT_METHODS,
    Frequency,
    PaymentMethod,
    PurchaseOrderStatus,
    SessionStatus,
    TransactionType,
)
from .errors import InvalidTransactionError


ZERO = Decimal("0")


def coerce_decimal(value: Any) -> Decimal:
    """Convert loosely typed numeric input into a :class:`Decimal`.

    Anything that cannot be read as a finite number (``None``, blank strings,
    free text, booleans, NaN) becomes zero rather than raising.
    """

    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    if value is None or isinstance(value, bool):
        return ZERO
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return ZERO
    return result if result.is_finite() else ZERO


def coerce_timestamp(value: Any) -> Optional[datetime]:
    """Normalize a timestamp to an aware UTC :class:`datetime`.

    Accepts datetimes, dates (midnight), and ISO-8601 strings including the
    ``Z`` suffix produced by JavaScript clients. Returns ``None`` for blanks.
    """

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def coerce_date(value: Any) -> Optional[date]:
    """Reduce a date, datetime, or ISO string to a calendar :class:`date`."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def calendar_day(value: Any) -> str:
    """Return the ``YYYY-MM-DD`` key used for day sessions and day filters."""

    day = coerce_date(value)
    if day is None:
        raise ValueError("A calendar day requires a date value")
    return day.isoformat()


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BankAccount:
    """Cash drawer or bank ledger account."""

    id: str
    name: str
    balance: Decimal = ZERO
    account_number: Optional[str] = None


@dataclass(frozen=True)
class Customer:
    """Credit customer; ``total_credit`` is the running balance owed."""

    id: str
    name: str
    phone: str = ""
    credit_limit: Decimal = ZERO
    total_credit: Decimal = ZERO


@dataclass(frozen=True)
class Vendor:
    """Supplier; ``total_balance`` is what the store owes them."""

    id: str
    name: str
    total_balance: Decimal = ZERO
    phone: str = ""


@dataclass(frozen=True)
class Product:
    id: str
    sku: str
    name: str
    price: Decimal
    stock: Decimal = ZERO
    cost: Decimal = ZERO
    category_id: Optional[str] = None


@dataclass(frozen=True)
class Category:
    id: str
    name: str


@dataclass(frozen=True)
class UserProfile:
    name: str = ""
    branch: str = ""
    logo: str = ""


@dataclass(frozen=True)
class DaySession:
    """Cash-drawer accounting period for one calendar date."""

    date: str
    opening_balance: Decimal
    status: SessionStatus = SessionStatus.OPEN
    expected_closing: Optional[Decimal] = None
    actual_closing: Optional[Decimal] = None

    @property
    def variance(self) -> Optional[Decimal]:
        """Counted cash minus expected cash, once the session is closed."""

        if self.actual_closing is None or self.expected_closing is None:
            return None
        return self.actual_closing - self.expected_closing


@dataclass(frozen=True)
class RecurringExpense:
    """Schedule that the scheduler turns into EXPENSE transactions."""

    id: str
    description: str
    amount: Decimal
    payment_method: PaymentMethod
    frequency: Frequency
    start_date: date
    account_id: Optional[str] = None
    last_processed_date: Optional[date] = None


@dataclass(frozen=True)
class PurchaseOrderLine:
    product_id: str
    quantity: Decimal
    cost: Decimal


@dataclass(frozen=True)
class PurchaseOrder:
    """Vendor order; receiving it posts a PURCHASE to the ledger."""

    id: str
    vendor_id: str
    items: Tuple[PurchaseOrderLine, ...]
    total_amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.CREDIT
    account_id: Optional[str] = None
    status: PurchaseOrderStatus = PurchaseOrderStatus.PENDING
    created_date: Optional[datetime] = None
    received_date: Optional[datetime] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[date] = None


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineItem:
    """Product line on a SALE or PURCHASE; ``discount`` is an absolute amount."""

    product_id: str
    quantity: Decimal
    price: Decimal
    discount: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", coerce_decimal(self.quantity))
        object.__setattr__(self, "price", coerce_decimal(self.price))
        object.__setattr__(self, "discount", coerce_decimal(self.discount))


ITEM_BEARING_TYPES = frozenset({TransactionType.SALE, TransactionType.PURCHASE})
CREDIT_CAPABLE_TYPES = frozenset({TransactionType.SALE, TransactionType.PURCHASE})


@dataclass(frozen=True)
class Transaction:
    """Stored ledger entry.

    Instances are replaced, never mutated: an edit builds a new record with
    :func:`dataclasses.replace` and hands it to the ledger, which re-runs the
    shape checks in ``__post_init__``.
    """

    id: str
    type: TransactionType
    amount: Decimal
    payment_method: PaymentMethod
    date: datetime
    discount: Decimal = ZERO
    account_id: Optional[str] = None
    destination_account_id: Optional[str] = None
    customer_id: Optional[str] = None
    vendor_id: Optional[str] = None
    items: Tuple[LineItem, ...] = ()
    description: Optional[str] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[date] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", TransactionType(self.type))
        object.__setattr__(self, "payment_method", PaymentMethod(self.payment_method))
        object.__setattr__(self, "amount", coerce_decimal(self.amount))
        object.__setattr__(self, "discount", coerce_decimal(self.discount))
        object.__setattr__(self, "date", coerce_timestamp(self.date))
        object.__setattr__(self, "cheque_date", coerce_date(self.cheque_date))
        object.__setattr__(self, "items", tuple(self.items or ()))
        validate_transaction_shape(self)

    @property
    def calendar_day(self) -> str:
        return calendar_day(self.date)

    @property
    def touches_account(self) -> bool:
        """True when posting moves money in or out of an account balance."""

        return self.payment_method not in NON_ACCOUNT_METHODS

    def resolved_account_id(self) -> Optional[str]:
        """Account a non-transfer posting lands on, falling back by method."""

        if not self.touches_account:
            return None
        if self.account_id:
            return self.account_id
        if self.payment_method is PaymentMethod.CASH:
            return CASH_ACCOUNT_ID
        return DEFAULT_BANK_ACCOUNT_ID


def validate_transaction_shape(transaction: Transaction) -> None:
    """Reject field combinations that are illegal for the transaction type."""

    tx_type = transaction.type
    method = transaction.payment_method
    if transaction.amount < ZERO:
        raise InvalidTransactionError(f"Transaction '{transaction.id}' has a negative amount")
    if transaction.discount < ZERO:
        raise InvalidTransactionError(f"Transaction '{transaction.id}' has a negative discount")
    if transaction.date is None:
        raise InvalidTransactionError(f"Transaction '{transaction.id}' has no date")

    if tx_type is TransactionType.TRANSFER:
        if not transaction.account_id or not transaction.destination_account_id:
            raise InvalidTransactionError("A transfer needs both a source and a destination account")
        if transaction.account_id == transaction.destination_account_id:
            raise InvalidTransactionError("Source and destination accounts must be different")
        if method in NON_ACCOUNT_METHODS:
            raise InvalidTransactionError(f"A transfer cannot use the {method.value} method")
    elif transaction.destination_account_id is not None:
        raise InvalidTransactionError("Only transfers may name a destination account")

    if method is PaymentMethod.CREDIT and tx_type not in CREDIT_CAPABLE_TYPES:
        raise InvalidTransactionError(f"{tx_type.value} transactions cannot be posted on credit")
    if transaction.items and tx_type not in ITEM_BEARING_TYPES:
        raise InvalidTransactionError(f"{tx_type.value} transactions cannot carry line items")
    if method is not PaymentMethod.CHEQUE and (
        transaction.cheque_number is not None or transaction.cheque_date is not None
    ):
        raise InvalidTransactionError("Cheque details are only valid for cheque payments")


# Drafts: one variant per transaction kind. ``id`` and ``date`` are optional;
# the ledger assigns them when absent.


@dataclass(frozen=True)
class SaleDraft:
    transaction_type: ClassVar[TransactionType] = TransactionType.SALE

    amount: Any
    payment_method: PaymentMethod
    items: Tuple[LineItem, ...] = ()
    discount: Any = ZERO
    account_id: Optional[str] = None
    customer_id: Optional[str] = None
    description: Optional[str] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[date] = None
    id: Optional[str] = None
    date: Optional[datetime] = None


@dataclass(frozen=True)
class PurchaseDraft:
    transaction_type: ClassVar[TransactionType] = TransactionType.PURCHASE

    amount: Any
    payment_method: PaymentMethod
    items: Tuple[LineItem, ...] = ()
    discount: Any = ZERO
    account_id: Optional[str] = None
    vendor_id: Optional[str] = None
    description: Optional[str] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[date] = None
    id: Optional[str] = None
    date: Optional[datetime] = None


@dataclass(frozen=True)
class ExpenseDraft:
    transaction_type: ClassVar[TransactionType] = TransactionType.EXPENSE

    amount: Any
    payment_method: PaymentMethod
    description: Optional[str] = None
    account_id: Optional[str] = None
    vendor_id: Optional[str] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[date] = None
    id: Optional[str] = None
    date: Optional[datetime] = None


@dataclass(frozen=True)
class CreditPaymentDraft:
    transaction_type: ClassVar[TransactionType] = TransactionType.CREDIT_PAYMENT

    amount: Any
    customer_id: str
    payment_method: PaymentMethod = PaymentMethod.CASH
    account_id: Optional[str] = None
    description: Optional[str] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[date] = None
    id: Optional[str] = None
    date: Optional[datetime] = None


@dataclass(frozen=True)
class TransferDraft:
    transaction_type: ClassVar[TransactionType] = TransactionType.TRANSFER

    amount: Any
    account_id: str
    destination_account_id: str
    payment_method: PaymentMethod = PaymentMethod.BANK
    description: Optional[str] = "INTERNAL FUND TRANSFER"
    id: Optional[str] = None
    date: Optional[datetime] = None


TransactionDraft = Union[SaleDraft, PurchaseDraft, ExpenseDraft, CreditPaymentDraft, TransferDraft]


def materialize_draft(draft: TransactionDraft, *, transaction_id: str, timestamp: datetime) -> Transaction:
    """Turn a draft into a stored :class:`Transaction` record.

    Raises:
        InvalidTransactionError: If the draft's fields are illegal for its
            transaction type.
    """

    payload = {
        spec.name: getattr(draft, spec.name)
        for spec in fields(draft)
        if spec.name not in ("id", "date")
    }
    payload["items"] = tuple(payload.get("items") or ())
    return Transaction(
        id=transaction_id,
        type=draft.transaction_type,
        date=timestamp,
        **payload,
    )


__all__ = [
    "ZERO",
    "coerce_decimal",
    "coerce_timestamp",
    "coerce_date",
    "calendar_day",
    "BankAccount",
    "Customer",
    "Vendor",
    "Product",
    "Category",
    "UserProfile",
    "DaySession",
    "RecurringExpense",
    "PurchaseOrderLine",
    "PurchaseOrder",
    "LineItem",
    "Transaction",
    "validate_transaction_shape",
    "SaleDraft",
    "PurchaseDraft",
    "ExpenseDraft",
    "CreditPaymentDraft",
    "TransferDraft",
    "TransactionDraft",
    "materialize_draft",
]
