"""Snapshot conversion, JSON export/import, and startup reconciliation.

A *snapshot* is the plain, JSON-serializable ``dict`` exchanged with the blob
stores and written by the export command. Collections are keyed by their
camelCase names (``products``, ``purchaseOrders``, ``daySessions`` ...) and
records use camelCase field names. Money and quantities are written as decimal
strings; reading accepts numbers too.

:class:`LedgerState` is the typed counterpart the core layer captures from and
restores into the live components.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from . import log
from .checkout import CartLine, PosSession
from .constants import (
    EXPORT_VERSION,
    DiscountType,
    Frequency,
    PaymentMethod,
    PurchaseOrderStatus,
    SessionStatus,
)
from .errors import IMPORT_FAILED_MESSAGE, BusinessRuleViolation, ImportFormatError
from .models import (
    BankAccount,
    Category,
    Customer,
    DaySession,
    LineItem,
    Product,
    PurchaseOrder,
    PurchaseOrderLine,
    RecurringExpense,
    Transaction,
    UserProfile,
    Vendor,
    calendar_day,
    coerce_date,
    coerce_decimal,
    coerce_timestamp,
)


@dataclass(frozen=True)
class LedgerState:
    """Every persisted collection, typed."""

    accounts: Tuple[BankAccount, ...] = ()
    customers: Tuple[Customer, ...] = ()
    vendors: Tuple[Vendor, ...] = ()
    products: Tuple[Product, ...] = ()
    categories: Tuple[Category, ...] = ()
    purchase_orders: Tuple[PurchaseOrder, ...] = ()
    transactions: Tuple[Transaction, ...] = ()
    recurring_expenses: Tuple[RecurringExpense, ...] = ()
    day_sessions: Tuple[DaySession, ...] = ()
    user_profile: UserProfile = field(default_factory=UserProfile)
    pos_session: PosSession = field(default_factory=PosSession)


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _money(value: Any) -> str:
    return str(coerce_decimal(value))


def _optional_money(value: Any) -> Optional[str]:
    return None if value is None else _money(value)


def _optional_decimal(value: Any):
    return None if value is None or value == "" else coerce_decimal(value)


def _iso(value: Any) -> Optional[str]:
    return None if value is None else value.isoformat()


def _text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


# Cart discount types written by older terminals.
_DISCOUNT_TYPE_ALIASES = {"AMT": DiscountType.AMOUNT, "PCT": DiscountType.PERCENT}


def _discount_type(value: Any) -> DiscountType:
    if value is None or value == "":
        return DiscountType.AMOUNT
    return _DISCOUNT_TYPE_ALIASES.get(value) or DiscountType(value)


# ---------------------------------------------------------------------------
# Record writers
# ---------------------------------------------------------------------------


def dump_account(account: BankAccount) -> Dict[str, Any]:
    return {
        "id": account.id,
        "name": account.name,
        "balance": _money(account.balance),
        "accountNumber": account.account_number,
    }


def dump_customer(customer: Customer) -> Dict[str, Any]:
    return {
        "id": customer.id,
        "name": customer.name,
        "phone": customer.phone,
        "creditLimit": _money(customer.credit_limit),
        "totalCredit": _money(customer.total_credit),
    }


def dump_vendor(vendor: Vendor) -> Dict[str, Any]:
    return {
        "id": vendor.id,
        "name": vendor.name,
        "phone": vendor.phone,
        "totalBalance": _money(vendor.total_balance),
    }


def dump_product(product: Product) -> Dict[str, Any]:
    return {
        "id": product.id,
        "sku": product.sku,
        "name": product.name,
        "price": _money(product.price),
        "cost": _money(product.cost),
        "stock": _money(product.stock),
        "categoryId": product.category_id,
    }


def dump_category(category: Category) -> Dict[str, Any]:
    return {"id": category.id, "name": category.name}


def dump_transaction(transaction: Transaction) -> Dict[str, Any]:
    return {
        "id": transaction.id,
        "type": transaction.type.value,
        "amount": _money(transaction.amount),
        "discount": _money(transaction.discount),
        "paymentMethod": transaction.payment_method.value,
        "accountId": transaction.account_id,
        "destinationAccountId": transaction.destination_account_id,
        "customerId": transaction.customer_id,
        "vendorId": transaction.vendor_id,
        "items": [
            {
                "productId": item.product_id,
                "quantity": _money(item.quantity),
                "price": _money(item.price),
                "discount": _money(item.discount),
            }
            for item in transaction.items
        ],
        "description": transaction.description,
        "date": _iso(transaction.date),
        "chequeNumber": transaction.cheque_number,
        "chequeDate": _iso(transaction.cheque_date),
    }


def dump_purchase_order(order: PurchaseOrder) -> Dict[str, Any]:
    return {
        "id": order.id,
        "vendorId": order.vendor_id,
        "items": [
            {"productId": line.product_id, "quantity": _money(line.quantity), "cost": _money(line.cost)}
            for line in order.items
        ],
        "totalAmount": _money(order.total_amount),
        "paymentMethod": order.payment_method.value,
        "accountId": order.account_id,
        "status": order.status.value,
        "createdDate": _iso(order.created_date),
        "receivedDate": _iso(order.received_date),
        "chequeNumber": order.cheque_number,
        "chequeDate": _iso(order.cheque_date),
    }


def dump_recurring_expense(schedule: RecurringExpense) -> Dict[str, Any]:
    return {
        "id": schedule.id,
        "description": schedule.description,
        "amount": _money(schedule.amount),
        "paymentMethod": schedule.payment_method.value,
        "accountId": schedule.account_id,
        "frequency": schedule.frequency.value,
        "startDate": _iso(schedule.start_date),
        "lastProcessedDate": _iso(schedule.last_processed_date),
    }


def dump_day_session(session: DaySession) -> Dict[str, Any]:
    return {
        "date": session.date,
        "openingBalance": _money(session.opening_balance),
        "expectedClosing": _optional_money(session.expected_closing),
        "actualClosing": _optional_money(session.actual_closing),
        "status": session.status.value,
    }


def dump_user_profile(profile: UserProfile) -> Dict[str, Any]:
    return {"name": profile.name, "branch": profile.branch, "logo": profile.logo}


def dump_pos_session(session: PosSession) -> Dict[str, Any]:
    return {
        "cart": [
            {
                "productId": line.product_id,
                "unitPrice": _money(line.unit_price),
                "quantity": _money(line.quantity),
                "discountValue": _money(line.discount_value),
                "discountType": line.discount_type.value,
            }
            for line in session.lines
        ],
        "discount": _money(session.cart_discount),
        "paymentMethod": session.payment_method.value,
        "accountId": session.account_id,
    }


# ---------------------------------------------------------------------------
# Record readers
# ---------------------------------------------------------------------------


def load_account(raw: Mapping[str, Any]) -> BankAccount:
    return BankAccount(
        id=str(raw["id"]),
        name=str(raw.get("name") or raw["id"]),
        balance=coerce_decimal(raw.get("balance")),
        account_number=_text(raw.get("accountNumber")),
    )


def load_customer(raw: Mapping[str, Any]) -> Customer:
    return Customer(
        id=str(raw["id"]),
        name=str(raw.get("name") or ""),
        phone=str(raw.get("phone") or ""),
        credit_limit=coerce_decimal(raw.get("creditLimit")),
        total_credit=coerce_decimal(raw.get("totalCredit")),
    )


def load_vendor(raw: Mapping[str, Any]) -> Vendor:
    return Vendor(
        id=str(raw["id"]),
        name=str(raw.get("name") or ""),
        phone=str(raw.get("phone") or ""),
        total_balance=coerce_decimal(raw.get("totalBalance")),
    )


def load_product(raw: Mapping[str, Any]) -> Product:
    return Product(
        id=str(raw["id"]),
        sku=str(raw.get("sku") or raw["id"]),
        name=str(raw.get("name") or ""),
        price=coerce_decimal(raw.get("price")),
        cost=coerce_decimal(raw.get("cost")),
        stock=coerce_decimal(raw.get("stock")),
        category_id=_text(raw.get("categoryId")),
    )


def load_category(raw: Mapping[str, Any]) -> Category:
    return Category(id=str(raw["id"]), name=str(raw.get("name") or ""))


def load_transaction(raw: Mapping[str, Any]) -> Transaction:
    return Transaction(
        id=str(raw["id"]),
        type=raw["type"],
        amount=raw.get("amount"),
        discount=raw.get("discount"),
        payment_method=raw["paymentMethod"],
        account_id=_text(raw.get("accountId")),
        destination_account_id=_text(raw.get("destinationAccountId")),
        customer_id=_text(raw.get("customerId")),
        vendor_id=_text(raw.get("vendorId")),
        items=tuple(
            LineItem(
                product_id=str(item["productId"]),
                quantity=item.get("quantity"),
                price=item.get("price"),
                discount=item.get("discount"),
            )
            for item in raw.get("items") or ()
        ),
        description=_text(raw.get("description")),
        date=raw["date"],
        cheque_number=_text(raw.get("chequeNumber")),
        cheque_date=raw.get("chequeDate"),
    )


def load_purchase_order(raw: Mapping[str, Any]) -> PurchaseOrder:
    return PurchaseOrder(
        id=str(raw["id"]),
        vendor_id=str(raw["vendorId"]),
        items=tuple(
            PurchaseOrderLine(
                product_id=str(line["productId"]),
                quantity=coerce_decimal(line.get("quantity")),
                cost=coerce_decimal(line.get("cost")),
            )
            for line in raw.get("items") or ()
        ),
        total_amount=coerce_decimal(raw.get("totalAmount")),
        payment_method=PaymentMethod(raw.get("paymentMethod") or "CREDIT"),
        account_id=_text(raw.get("accountId")),
        status=PurchaseOrderStatus(raw.get("status") or "PENDING"),
        created_date=coerce_timestamp(raw.get("createdDate")),
        received_date=coerce_timestamp(raw.get("receivedDate")),
        cheque_number=_text(raw.get("chequeNumber")),
        cheque_date=coerce_date(raw.get("chequeDate")),
    )


def load_recurring_expense(raw: Mapping[str, Any]) -> RecurringExpense:
    return RecurringExpense(
        id=str(raw["id"]),
        description=str(raw.get("description") or ""),
        amount=coerce_decimal(raw.get("amount")),
        payment_method=PaymentMethod(raw.get("paymentMethod") or "CASH"),
        account_id=_text(raw.get("accountId")),
        frequency=Frequency(raw["frequency"]),
        start_date=coerce_date(raw["startDate"]),
        last_processed_date=coerce_date(raw.get("lastProcessedDate")),
    )


def load_day_session(raw: Mapping[str, Any]) -> DaySession:
    return DaySession(
        date=calendar_day(raw["date"]),
        opening_balance=coerce_decimal(raw.get("openingBalance")),
        expected_closing=_optional_decimal(raw.get("expectedClosing")),
        actual_closing=_optional_decimal(raw.get("actualClosing")),
        status=SessionStatus(raw.get("status") or "OPEN"),
    )


def load_user_profile(raw: Mapping[str, Any]) -> UserProfile:
    return UserProfile(
        name=str(raw.get("name") or ""),
        branch=str(raw.get("branch") or ""),
        logo=str(raw.get("logo") or ""),
    )


def load_pos_session(raw: Mapping[str, Any]) -> PosSession:
    return PosSession(
        lines=tuple(
            CartLine(
                product_id=str(line["productId"]),
                unit_price=line.get("unitPrice"),
                quantity=line.get("quantity"),
                discount_value=line.get("discountValue"),
                discount_type=_discount_type(line.get("discountType")),
            )
            for line in raw.get("cart") or ()
        ),
        cart_discount=coerce_decimal(raw.get("discount")),
        payment_method=PaymentMethod(raw.get("paymentMethod") or "CASH"),
        account_id=_text(raw.get("accountId")),
    )


# attribute name -> (snapshot key, writer, reader)
COLLECTIONS: Dict[str, Tuple[str, Callable, Callable]] = {
    "products": ("products", dump_product, load_product),
    "categories": ("categories", dump_category, load_category),
    "transactions": ("transactions", dump_transaction, load_transaction),
    "accounts": ("accounts", dump_account, load_account),
    "purchase_orders": ("purchaseOrders", dump_purchase_order, load_purchase_order),
    "vendors": ("vendors", dump_vendor, load_vendor),
    "customers": ("customers", dump_customer, load_customer),
    "recurring_expenses": ("recurringExpenses", dump_recurring_expense, load_recurring_expense),
    "day_sessions": ("daySessions", dump_day_session, load_day_session),
}


# ---------------------------------------------------------------------------
# Snapshot conversion
# ---------------------------------------------------------------------------


def to_snapshot(state: LedgerState, *, include_pos_session: bool = True) -> Dict[str, Any]:
    """Serialize ``state`` into the snapshot ``dict`` exchanged with blob stores."""

    snapshot: Dict[str, Any] = {}
    for attribute, (key, writer, _reader) in COLLECTIONS.items():
        snapshot[key] = [writer(record) for record in getattr(state, attribute)]
    snapshot["userProfile"] = dump_user_profile(state.user_profile)
    if include_pos_session:
        snapshot["posSession"] = dump_pos_session(state.pos_session)
    return snapshot


def from_snapshot(
    payload: Any,
    base: Optional[LedgerState] = None,
    *,
    include_pos_session: bool = True,
) -> LedgerState:
    """Build a :class:`LedgerState` from a snapshot ``dict``.

    Only collections present as lists replace the corresponding collection of
    ``base``; anything missing or of another type keeps the ``base`` value.

    Raises:
        ImportFormatError: If the payload or any record in it cannot be read.
    """

    if not isinstance(payload, Mapping):
        raise ImportFormatError(IMPORT_FAILED_MESSAGE)

    updates: Dict[str, Any] = {}
    try:
        for attribute, (key, _writer, reader) in COLLECTIONS.items():
            records = payload.get(key)
            if isinstance(records, list):
                updates[attribute] = tuple(reader(record) for record in records)
        profile = payload.get("userProfile")
        if isinstance(profile, Mapping):
            updates["user_profile"] = load_user_profile(profile)
        pos_session = payload.get("posSession")
        if include_pos_session and isinstance(pos_session, Mapping):
            updates["pos_session"] = load_pos_session(pos_session)
    except (KeyError, TypeError, ValueError, AttributeError, BusinessRuleViolation) as exc:
        log.error("Snapshot rejected: %s", exc)
        raise ImportFormatError(IMPORT_FAILED_MESSAGE) from exc

    return replace(base or LedgerState(), **updates)


def has_products(snapshot: Optional[Mapping[str, Any]]) -> bool:
    if not snapshot:
        return False
    products = snapshot.get("products")
    return isinstance(products, list) and len(products) > 0


def reconcile_sources(
    local: Optional[Mapping[str, Any]],
    remote: Optional[Mapping[str, Any]],
) -> Optional[Mapping[str, Any]]:
    """Pick the startup snapshot: the local cache when it has products, else the remote copy."""

    if has_products(local):
        log.info("Starting from the local cache")
        return local
    if remote is not None:
        log.info("Local cache is empty; starting from the durable store")
    return remote


# ---------------------------------------------------------------------------
# Export / import
# ---------------------------------------------------------------------------


def export_json(state: LedgerState, *, now: Optional[datetime] = None) -> str:
    """Pretty-printed JSON backup carrying ``version`` and ``exportDate``."""

    payload: Dict[str, Any] = {
        "version": EXPORT_VERSION,
        "exportDate": (now or datetime.now(UTC)).isoformat(),
    }
    payload.update(to_snapshot(state, include_pos_session=False))
    return json.dumps(payload, indent=2)


def import_json(text: str, base: LedgerState) -> LedgerState:
    """Parse a JSON backup on top of ``base``.

    The whole file is parsed before anything is returned, so a failure leaves
    the caller's state untouched.

    Raises:
        ImportFormatError: With :data:`IMPORT_FAILED_MESSAGE` for any
            malformed input.
    """

    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as exc:
        log.error("Import rejected: %s", exc)
        raise ImportFormatError(IMPORT_FAILED_MESSAGE) from exc
    state = from_snapshot(payload, base, include_pos_session=False)
    log.info("Imported backup dated %s", payload.get("exportDate", "unknown"))
    return state


__all__ = [
    "LedgerState",
    "COLLECTIONS",
    "to_snapshot",
    "from_snapshot",
    "has_products",
    "reconcile_sources",
    "export_json",
    "import_json",
]
