"""Transaction store and owner of every derived balance.

:class:`Ledger` keeps the newest-first transaction list together with the
aggregates the transactions affect (accounts, customers, vendors, products).
Every posting path (add, update, delete, PO receipt, settlement) runs under a
single re-entrant lock and applies its whole impact before releasing it, so a
reader never sees the transaction list and the balances out of step.

Only two paths write a balance directly: :meth:`Ledger.upsert_account` when an
account is first registered, and :meth:`Ledger.set_opening_balance`, used by
the day-session book to place the drawer float.
"""

from __future__ import annotations

import secrets
import string
import threading
from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional

from . import log
from .constants import (
    CASH_ACCOUNT_ID,
    DEFAULT_BANK_ACCOUNT_ID,
    NON_ACCOUNT_METHODS,
    PaymentMethod,
    PurchaseOrderStatus,
    TransactionType,
)
from .errors import BusinessRuleViolation, MissingReferenceError
from .impact import LedgerImpact, compute_impact, compute_reversal
from .models import (
    ZERO,
    BankAccount,
    Category,
    Customer,
    LineItem,
    Product,
    PurchaseDraft,
    PurchaseOrder,
    Transaction,
    TransactionDraft,
    Vendor,
    calendar_day,
    coerce_date,
    coerce_decimal,
    materialize_draft,
)
from .notifications import ChangeNotifier


_ID_ALPHABET = string.ascii_uppercase + string.digits

RESERVED_ACCOUNTS = (
    BankAccount(id=CASH_ACCOUNT_ID, name="Main Cash Drawer"),
    BankAccount(id=DEFAULT_BANK_ACCOUNT_ID, name="Commercial Bank"),
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def generate_transaction_id(*, prefix: str = "TX", when: Optional[datetime] = None) -> str:
    """Build ``{prefix}-{epoch millis}-{5 random characters}``.

    The millisecond timestamp keeps ids roughly sortable; the random suffix
    keeps two postings within the same millisecond apart.
    """

    when = when or _utcnow()
    millis = int(when.timestamp() * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(5))
    return f"{prefix}-{millis}-{suffix}"


class Ledger(ChangeNotifier):
    """Ordered transaction store plus the aggregates derived from it."""

    def __init__(
        self,
        *,
        accounts: Iterable[BankAccount] = (),
        customers: Iterable[Customer] = (),
        vendors: Iterable[Vendor] = (),
        products: Iterable[Product] = (),
        categories: Iterable[Category] = (),
        purchase_orders: Iterable[PurchaseOrder] = (),
        transactions: Iterable[Transaction] = (),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        super().__init__()
        self._lock = threading.RLock()
        self._clock = clock
        self._accounts: Dict[str, BankAccount] = {}
        self._customers: Dict[str, Customer] = {}
        self._vendors: Dict[str, Vendor] = {}
        self._products: Dict[str, Product] = {}
        self._categories: Dict[str, Category] = {}
        self._purchase_orders: Dict[str, PurchaseOrder] = {}
        self._transactions: List[Transaction] = []
        self._load(
            accounts=accounts,
            customers=customers,
            vendors=vendors,
            products=products,
            categories=categories,
            purchase_orders=purchase_orders,
            transactions=transactions,
        )

    # ------------------------------------------------------------------
    # State loading and change notification
    # ------------------------------------------------------------------

    def _load(self, *, accounts, customers, vendors, products, categories, purchase_orders, transactions) -> None:
        self._accounts = {account.id: account for account in accounts}
        for reserved in RESERVED_ACCOUNTS:
            self._accounts.setdefault(reserved.id, reserved)
        self._customers = {customer.id: customer for customer in customers}
        self._vendors = {vendor.id: vendor for vendor in vendors}
        self._products = {product.id: product for product in products}
        self._categories = {category.id: category for category in categories}
        self._purchase_orders = {order.id: order for order in purchase_orders}
        self._transactions = list(transactions)

    def replace_state(self, *, notify: bool = True, **collections: Iterable) -> None:
        """Swap in loaded collections wholesale.

        Collections not passed keep their current contents. Stored balances are
        taken as-is: a snapshot already reflects every posted transaction.
        """

        with self._lock:
            current = {
                "accounts": self._accounts.values(),
                "customers": self._customers.values(),
                "vendors": self._vendors.values(),
                "products": self._products.values(),
                "categories": self._categories.values(),
                "purchase_orders": self._purchase_orders.values(),
                "transactions": self._transactions,
            }
            unknown = set(collections) - set(current)
            if unknown:
                raise KeyError(f"Unknown ledger collections: {', '.join(sorted(unknown))}")
            merged = {name: list(collections.get(name, values)) for name, values in current.items()}
            self._load(**merged)
            log.info("Replaced ledger state (%d transactions)", len(self._transactions))
        if notify:
            self._notify("replace_state")

    # ------------------------------------------------------------------
    # Impact application
    # ------------------------------------------------------------------

    def _apply_impact(self, impact: LedgerImpact) -> None:
        """Apply signed deltas; ids with no matching aggregate are skipped."""

        for account_id, delta in impact.accounts.items():
            account = self._accounts.get(account_id)
            if account is None:
                log.warning("Skipping balance change for unknown account '%s'", account_id)
                continue
            self._accounts[account_id] = replace(account, balance=account.balance + delta)

        for customer_id, delta in impact.customers.items():
            customer = self._customers.get(customer_id)
            if customer is None:
                log.warning("Skipping credit change for unknown customer '%s'", customer_id)
                continue
            self._customers[customer_id] = replace(customer, total_credit=customer.total_credit + delta)

        for vendor_id, delta in impact.vendors.items():
            vendor = self._vendors.get(vendor_id)
            if vendor is None:
                log.warning("Skipping payable change for unknown vendor '%s'", vendor_id)
                continue
            self._vendors[vendor_id] = replace(vendor, total_balance=vendor.total_balance + delta)

        for product_id, delta in impact.stock.items():
            product = self._products.get(product_id)
            if product is None:
                log.debug("Skipping stock change for missing product '%s'", product_id)
                continue
            self._products[product_id] = replace(product, stock=product.stock + delta)

    def _index_of(self, transaction_id: str) -> Optional[int]:
        for index, transaction in enumerate(self._transactions):
            if transaction.id == transaction_id:
                return index
        return None

    # ------------------------------------------------------------------
    # Transaction store
    # ------------------------------------------------------------------

    def add(self, draft: TransactionDraft) -> Transaction:
        """Post a new transaction and apply its impact.

        The id and timestamp come from the draft when provided, otherwise they
        are generated here. The record is prepended, keeping the list
        newest-first.

        Raises:
            InvalidTransactionError: If the draft is illegal for its type.
            BusinessRuleViolation: If the draft reuses an existing id.
        """

        with self._lock:
            timestamp = draft.date or self._clock()
            transaction_id = draft.id or generate_transaction_id(when=timestamp)
            if self._index_of(transaction_id) is not None:
                raise BusinessRuleViolation(f"Transaction id already exists: {transaction_id}")
            transaction = materialize_draft(draft, transaction_id=transaction_id, timestamp=timestamp)
            self._transactions.insert(0, transaction)
            self._apply_impact(compute_impact(transaction))
        log.info(
            "Posted %s '%s' (%s, amount=%s)",
            transaction.type.value,
            transaction.id,
            transaction.payment_method.value,
            transaction.amount,
        )
        self._notify("add")
        return transaction

    def update(self, transaction: Transaction) -> Optional[Transaction]:
        """Replace a stored transaction, reverting the old impact and applying the new one.

        Unknown ids are ignored and ``None`` is returned; the caller decides
        whether that matters.
        """

        with self._lock:
            index = self._index_of(transaction.id)
            if index is None:
                log.warning("Ignoring update for unknown transaction '%s'", transaction.id)
                return None
            original = self._transactions[index]
            self._apply_impact(compute_reversal(original).combined(compute_impact(transaction)))
            self._transactions[index] = transaction
        log.info(
            "Updated %s '%s' (%s -> %s, amount %s -> %s)",
            transaction.type.value,
            transaction.id,
            original.payment_method.value,
            transaction.payment_method.value,
            original.amount,
            transaction.amount,
        )
        self._notify("update")
        return transaction

    def delete(self, transaction_id: str) -> Optional[Transaction]:
        """Remove a transaction and revert its impact; unknown ids are ignored."""

        with self._lock:
            index = self._index_of(transaction_id)
            if index is None:
                log.warning("Ignoring delete for unknown transaction '%s'", transaction_id)
                return None
            removed = self._transactions.pop(index)
            self._apply_impact(compute_reversal(removed))
        log.info("Deleted %s '%s' (amount=%s)", removed.type.value, removed.id, removed.amount)
        self._notify("delete")
        return removed

    def settle_credit_sale(
        self,
        transaction_id: str,
        payment_method: PaymentMethod,
        account_id: Optional[str] = None,
    ) -> Transaction:
        """Convert a CREDIT sale into a paid one against a concrete account.

        Raises:
            MissingReferenceError: If the transaction does not exist.
            BusinessRuleViolation: If it is not an outstanding credit sale or
                the settlement method does not move money.
        """

        payment_method = PaymentMethod(payment_method)
        with self._lock:
            original = self.get_transaction(transaction_id)
            if original.type is not TransactionType.SALE or original.payment_method is not PaymentMethod.CREDIT:
                log.error("Settlement rejected: '%s' is not an outstanding credit sale", transaction_id)
                raise BusinessRuleViolation("Only outstanding credit sales can be settled")
            if payment_method in NON_ACCOUNT_METHODS:
                raise BusinessRuleViolation(f"Cannot settle with the {payment_method.value} method")
            settled = replace(
                original,
                payment_method=payment_method,
                account_id=account_id,
                description=f"Settled Credit: {original.description or ''}".rstrip(),
            )
            return self.update(settled)

    def contains(self, transaction_id: str) -> bool:
        with self._lock:
            return self._index_of(transaction_id) is not None

    def find_transaction(self, transaction_id: str) -> Optional[Transaction]:
        with self._lock:
            index = self._index_of(transaction_id)
            return None if index is None else self._transactions[index]

    def get_transaction(self, transaction_id: str) -> Transaction:
        """Resolve a transaction by id.

        Raises:
            MissingReferenceError: If no transaction carries ``transaction_id``.
        """

        transaction = self.find_transaction(transaction_id)
        if transaction is None:
            log.warning("Transaction lookup failed for id '%s'", transaction_id)
            raise MissingReferenceError(f"Unknown transaction id: {transaction_id}")
        return transaction

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def transactions(self) -> List[Transaction]:
        """Copy of the transaction list in stored (newest-first) order."""

        with self._lock:
            return list(self._transactions)

    def filter_transactions(
        self,
        *,
        transaction_type: Optional[TransactionType] = None,
        day: Optional[object] = None,
        payment_method: Optional[PaymentMethod] = None,
    ) -> List[Transaction]:
        """Filter by type, calendar day (``YYYY-MM-DD``), and payment method."""

        day_key = calendar_day(day) if day is not None else None
        wanted_type = TransactionType(transaction_type) if transaction_type is not None else None
        wanted_method = PaymentMethod(payment_method) if payment_method is not None else None
        return [
            transaction
            for transaction in self.transactions()
            if (wanted_type is None or transaction.type is wanted_type)
            and (day_key is None or transaction.calendar_day == day_key)
            and (wanted_method is None or transaction.payment_method is wanted_method)
        ]

    def sorted_by_date(self, transactions: Optional[Iterable[Transaction]] = None) -> List[Transaction]:
        """Newest first, for display."""

        source = self.transactions() if transactions is None else list(transactions)
        return sorted(source, key=lambda transaction: transaction.date, reverse=True)

    def pending_cheques(self, *, as_of: Optional[object] = None) -> List[Transaction]:
        """Cheque postings ordered by maturity, optionally only those maturing on/after ``as_of``."""

        cutoff = coerce_date(as_of)
        cheques = [
            transaction
            for transaction in self.transactions()
            if transaction.payment_method is PaymentMethod.CHEQUE
            and transaction.cheque_date is not None
            and (cutoff is None or transaction.cheque_date >= cutoff)
        ]
        return sorted(cheques, key=lambda transaction: transaction.cheque_date)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def upsert_account(
        self,
        account_id: str,
        name: str,
        *,
        opening_balance: Decimal = ZERO,
        account_number: Optional[str] = None,
    ) -> BankAccount:
        """Register a new account with its opening balance, or rename an existing one.

        An existing account keeps its balance; only the descriptive fields change.
        """

        with self._lock:
            existing = self._accounts.get(account_id)
            if existing is None:
                account = BankAccount(
                    id=account_id,
                    name=name,
                    balance=coerce_decimal(opening_balance),
                    account_number=account_number,
                )
                log.info("Registered account '%s' with opening balance %s", account_id, account.balance)
            else:
                account = replace(existing, name=name, account_number=account_number)
                log.info("Renamed account '%s' to '%s'", account_id, name)
            self._accounts[account_id] = account
        self._notify("account")
        return account

    def set_opening_balance(self, account_id: str, balance: Decimal) -> BankAccount:
        """Force an account balance; reserved for placing the day-open float."""

        with self._lock:
            account = self.get_account(account_id)
            updated = replace(account, balance=coerce_decimal(balance))
            self._accounts[account_id] = updated
        log.info("Set balance of account '%s' to %s", account_id, updated.balance)
        self._notify("account")
        return updated

    def get_account(self, account_id: str) -> BankAccount:
        with self._lock:
            try:
                return self._accounts[account_id]
            except KeyError as exc:
                log.warning("Account lookup failed for id '%s'", account_id)
                raise MissingReferenceError(f"Unknown account id: {account_id}") from exc

    def list_accounts(self) -> List[BankAccount]:
        with self._lock:
            return list(self._accounts.values())

    def total_account_balance(self) -> Decimal:
        with self._lock:
            return sum((account.balance for account in self._accounts.values()), ZERO)

    # ------------------------------------------------------------------
    # Parties, catalog
    # ------------------------------------------------------------------

    def upsert_customer(self, customer: Customer) -> Customer:
        """Add a customer, or update contact details while keeping the credit balance."""

        with self._lock:
            existing = self._customers.get(customer.id)
            if existing is not None:
                customer = replace(customer, total_credit=existing.total_credit)
            self._customers[customer.id] = customer
        log.info("Saved customer '%s'", customer.id)
        self._notify("customer")
        return customer

    def get_customer(self, customer_id: str) -> Customer:
        with self._lock:
            try:
                return self._customers[customer_id]
            except KeyError as exc:
                log.warning("Customer lookup failed for id '%s'", customer_id)
                raise MissingReferenceError(f"Unknown customer id: {customer_id}") from exc

    def list_customers(self) -> List[Customer]:
        with self._lock:
            return list(self._customers.values())

    def upsert_vendor(self, vendor: Vendor) -> Vendor:
        """Add a vendor, or update contact details while keeping the payable."""

        with self._lock:
            existing = self._vendors.get(vendor.id)
            if existing is not None:
                vendor = replace(vendor, total_balance=existing.total_balance)
            self._vendors[vendor.id] = vendor
        log.info("Saved vendor '%s'", vendor.id)
        self._notify("vendor")
        return vendor

    def get_vendor(self, vendor_id: str) -> Vendor:
        with self._lock:
            try:
                return self._vendors[vendor_id]
            except KeyError as exc:
                log.warning("Vendor lookup failed for id '%s'", vendor_id)
                raise MissingReferenceError(f"Unknown vendor id: {vendor_id}") from exc

    def list_vendors(self) -> List[Vendor]:
        with self._lock:
            return list(self._vendors.values())

    def upsert_product(self, product: Product) -> Product:
        """Add a product with its initial stock, or update catalog fields keeping stock."""

        with self._lock:
            existing = self._products.get(product.id)
            if existing is not None:
                product = replace(product, stock=existing.stock)
            self._products[product.id] = product
        log.info("Saved product '%s' (%s)", product.id, product.name)
        self._notify("product")
        return product

    def remove_product(self, product_id: str) -> Optional[Product]:
        """Drop a product from the catalog; past transactions keep referencing it."""

        with self._lock:
            removed = self._products.pop(product_id, None)
        if removed is not None:
            log.info("Removed product '%s'", product_id)
            self._notify("product")
        return removed

    def get_product(self, product_id: str) -> Product:
        with self._lock:
            try:
                return self._products[product_id]
            except KeyError as exc:
                log.warning("Product lookup failed for id '%s'", product_id)
                raise MissingReferenceError(f"Unknown product id: {product_id}") from exc

    def list_products(self) -> List[Product]:
        with self._lock:
            return list(self._products.values())

    def upsert_category(self, category: Category) -> Category:
        with self._lock:
            self._categories[category.id] = category
        self._notify("category")
        return category

    def list_categories(self) -> List[Category]:
        with self._lock:
            return list(self._categories.values())

    # ------------------------------------------------------------------
    # Purchase orders
    # ------------------------------------------------------------------

    def upsert_purchase_order(self, order: PurchaseOrder) -> PurchaseOrder:
        with self._lock:
            self._purchase_orders[order.id] = order
        log.info("Saved purchase order '%s' (%s)", order.id, order.status.value)
        self._notify("purchase_order")
        return order

    def get_purchase_order(self, order_id: str) -> PurchaseOrder:
        with self._lock:
            try:
                return self._purchase_orders[order_id]
            except KeyError as exc:
                log.warning("Purchase order lookup failed for id '%s'", order_id)
                raise MissingReferenceError(f"Unknown purchase order id: {order_id}") from exc

    def list_purchase_orders(self) -> List[PurchaseOrder]:
        with self._lock:
            return list(self._purchase_orders.values())

    def receive_purchase_order(self, order_id: str) -> Transaction:
        """Post the PURCHASE implied by a purchase order and mark it RECEIVED.

        Raises:
            MissingReferenceError: If the order does not exist.
            BusinessRuleViolation: If the order was already received.
        """

        with self._lock:
            order = self.get_purchase_order(order_id)
            if order.status is PurchaseOrderStatus.RECEIVED:
                log.error("Purchase order '%s' was already received", order_id)
                raise BusinessRuleViolation(f"Purchase order '{order_id}' was already received")
            draft = PurchaseDraft(
                amount=order.total_amount,
                payment_method=order.payment_method,
                account_id=order.account_id,
                vendor_id=order.vendor_id,
                description=f"Inward Stock Receipt: {order.id}",
                cheque_number=order.cheque_number,
                cheque_date=order.cheque_date,
                items=tuple(
                    LineItem(product_id=line.product_id, quantity=line.quantity, price=line.cost)
                    for line in order.items
                ),
            )
            transaction = self.add(draft)
            self.upsert_purchase_order(
                replace(order, status=PurchaseOrderStatus.RECEIVED, received_date=self._clock())
            )
        log.info("Received purchase order '%s' as transaction '%s'", order_id, transaction.id)
        return transaction


__all__ = ["Ledger", "RESERVED_ACCOUNTS", "generate_transaction_id"]
