"""Business logic layer for the retail ledger.

This module orchestrates the ledger components behind user intents. Each
``record_*`` function validates a frozen command object, enforces the rules
that sit above the ledger (the cash-drawer gate, party existence, tender
checks), posts through :class:`~retail_ledger.ledger.Ledger`, and logs the
outcome. Persistence is never triggered directly: every component reports its
mutations to the :class:`~retail_ledger.sync.SaveCoordinator` wired up by
:func:`build_context`.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from . import data_manager, log
from .checkout import (
    CartLine,
    CheckoutTotals,
    PosSession,
    build_sale_draft,
    compute_totals,
    require_sufficient_tender,
)
from .constants import (
    EXPECTED_SCHEMA_VERSION,
    NON_ACCOUNT_METHODS,
    Frequency,
    PaymentMethod,
    PurchaseOrderStatus,
    TransactionType,
)
from .data_manager import BlobStore, ConfigSettings
from .day_session import CashSummary, DaySessionBook
from .errors import BusinessRuleViolation, DayNotOpenError, MissingReferenceError
from .ledger import Ledger, generate_transaction_id
from .models import (
    ZERO,
    BankAccount,
    Category,
    Customer,
    CreditPaymentDraft,
    DaySession,
    ExpenseDraft,
    LineItem,
    Product,
    PurchaseDraft,
    PurchaseOrder,
    PurchaseOrderLine,
    RecurringExpense,
    Transaction,
    TransferDraft,
    UserProfile,
    Vendor,
    calendar_day,
    coerce_date,
    coerce_decimal,
)
from .scheduler import RecurringExpenseScheduler
from .snapshot import LedgerState, export_json, from_snapshot, import_json, reconcile_sources, to_snapshot
from .sync import SaveCoordinator


DEFAULT_CREDIT_LIMIT = Decimal("50000")


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and the live components used by the BLL."""

    settings: ConfigSettings
    ledger: Ledger
    sessions: DaySessionBook
    scheduler: RecurringExpenseScheduler
    coordinator: SaveCoordinator
    store: BlobStore
    cache: Optional[BlobStore] = None
    clock: Callable[[], datetime] = _utcnow
    _state: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SaleCommand:
    """User intent for checking out a cart as a ``SALE``."""

    lines: Tuple[CartLine, ...]
    payment_method: PaymentMethod
    cart_discount: Decimal = ZERO
    amount_tendered: Optional[Decimal] = None
    account_id: Optional[str] = None
    customer_id: Optional[str] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[date] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PurchaseCommand:
    """User intent for recording stock bought from a vendor."""

    amount: Decimal
    payment_method: PaymentMethod
    vendor_id: Optional[str] = None
    items: Tuple[LineItem, ...] = ()
    account_id: Optional[str] = None
    description: Optional[str] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[date] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class ExpenseCommand:
    """User intent for an ``EXPENSE``, optionally settling a vendor payable."""

    amount: Decimal
    payment_method: PaymentMethod
    description: str
    account_id: Optional[str] = None
    vendor_id: Optional[str] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[date] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class CreditPaymentCommand:
    """User intent for a customer paying down their credit balance."""

    customer_id: str
    amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.CASH
    account_id: Optional[str] = None
    description: Optional[str] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[date] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class TransferCommand:
    """Move money between two ledger accounts."""

    amount: Decimal
    source_account_id: str
    destination_account_id: str
    description: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class RecurringExpenseCommand:
    """Schedule definition; ``schedule_id`` is generated when omitted."""

    description: str
    amount: Decimal
    payment_method: PaymentMethod
    frequency: Frequency
    start_date: date
    account_id: Optional[str] = None
    schedule_id: Optional[str] = None


@dataclass(frozen=True)
class PurchaseOrderCommand:
    """Vendor order to be received later; ``order_id`` is generated when omitted."""

    vendor_id: str
    lines: Tuple[PurchaseOrderLine, ...]
    payment_method: PaymentMethod = PaymentMethod.CREDIT
    account_id: Optional[str] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[date] = None
    order_id: Optional[str] = None


TransactionCommand = Union[
    SaleCommand,
    PurchaseCommand,
    ExpenseCommand,
    CreditPaymentCommand,
    TransferCommand,
]


@dataclass(frozen=True)
class CheckoutResult:
    transaction: Transaction
    totals: CheckoutTotals
    change_due: Decimal


@dataclass(frozen=True)
class SalesHistory:
    """Sales in a date range with paid and outstanding totals."""

    sales: List[Transaction]
    paid_total: Decimal
    due_total: Decimal


# ---------------------------------------------------------------------------
# Context lifecycle
# ---------------------------------------------------------------------------


def build_context(
    settings: ConfigSettings,
    store: BlobStore,
    cache: Optional[BlobStore] = None,
    *,
    clock: Callable[[], datetime] = _utcnow,
    monotonic: Callable[[], float] = time.monotonic,
) -> RuntimeContext:
    """Assemble the live components, restore persisted state, and wire saving.

    The durable store and the local cache are reconciled first (the cache wins
    when it holds products). Change subscriptions are attached only after the
    restore, so loading never schedules a save by itself.

    Raises:
        FileNotFoundError: If the durable store's backing file is missing.
    """

    ledger = Ledger(clock=clock)
    sessions = DaySessionBook(ledger)
    scheduler = RecurringExpenseScheduler(ledger, today=lambda: clock().date())

    def snapshot_source() -> Dict[str, Any]:
        return to_snapshot(capture_state(context))

    coordinator = SaveCoordinator(
        snapshot_source,
        store,
        cache=cache,
        debounce_seconds=settings.debounce_seconds,
        max_retries=settings.max_retries,
        backoff_base=settings.backoff_base,
        clock=monotonic,
    )
    context = RuntimeContext(
        settings=settings,
        ledger=ledger,
        sessions=sessions,
        scheduler=scheduler,
        coordinator=coordinator,
        store=store,
        cache=cache,
        clock=clock,
    )

    remote = store.load()
    local = cache.load() if cache is not None else None
    source = reconcile_sources(local, remote)
    if source is not None:
        restore_state(context, from_snapshot(source), notify=False)

    for component in (ledger, sessions, scheduler):
        component.subscribe(coordinator.request_save)
    return context


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and the persisted ledger for the BLL.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer searches upward from the current
            working directory.

    Returns:
        RuntimeContext: Fully populated context ready for orchestration
            functions.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """

    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    context = build_context(
        settings,
        data_manager.WorkbookStore(settings.data_file),
        data_manager.JsonFileStore(settings.cache_file),
    )
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return context


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """

    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )
    log.debug("Schema version '%s' validated", context.settings.schema_version)


def capture_state(context: RuntimeContext) -> LedgerState:
    """Freeze every live collection into a :class:`LedgerState`."""

    ledger = context.ledger
    return LedgerState(
        accounts=tuple(ledger.list_accounts()),
        customers=tuple(ledger.list_customers()),
        vendors=tuple(ledger.list_vendors()),
        products=tuple(ledger.list_products()),
        categories=tuple(ledger.list_categories()),
        purchase_orders=tuple(ledger.list_purchase_orders()),
        transactions=tuple(ledger.transactions()),
        recurring_expenses=tuple(context.scheduler.list_schedules()),
        day_sessions=tuple(context.sessions.list_sessions()),
        user_profile=get_user_profile(context),
        pos_session=get_pos_session(context),
    )


def restore_state(context: RuntimeContext, state: LedgerState, *, notify: bool = True) -> None:
    """Swap ``state`` into the live components.

    With ``notify`` the swap schedules a save like any other mutation.
    """

    ledger_collections = dict(
        accounts=state.accounts,
        customers=state.customers,
        vendors=state.vendors,
        products=state.products,
        categories=state.categories,
        purchase_orders=state.purchase_orders,
        transactions=state.transactions,
    )
    context.ledger.replace_state(notify=notify, **ledger_collections)
    context.sessions.replace_sessions(state.day_sessions, notify=notify)
    context.scheduler.replace_schedules(state.recurring_expenses, notify=notify)
    context._state["user_profile"] = state.user_profile
    context._state["pos_session"] = state.pos_session


def persist_context(context: RuntimeContext) -> bool:
    """Flush pending changes to the cache and the durable store.

    Retries with exponential backoff; returns ``False`` once retries are
    exhausted, leaving in-memory state as it is.
    """

    saved = context.coordinator.flush_blocking()
    if saved:
        log.info("Persisted ledger to '%s'", context.settings.data_file)
    else:
        log.error("Ledger changes could not be persisted to '%s'", context.settings.data_file)
    return saved


def process_tick(context: RuntimeContext, now: Optional[float] = None) -> List[Transaction]:
    """Periodic housekeeping: materialize due schedules, then flush a due save."""

    created = context.scheduler.run_due(context.clock().date())
    context.coordinator.tick(now)
    return created


# ---------------------------------------------------------------------------
# Profile and terminal session
# ---------------------------------------------------------------------------


def get_user_profile(context: RuntimeContext) -> UserProfile:
    return context._state.get("user_profile") or UserProfile(name=context.settings.store_name)


def set_user_profile(context: RuntimeContext, profile: UserProfile) -> UserProfile:
    context._state["user_profile"] = profile
    log.info("Updated store profile '%s'", profile.name)
    context.coordinator.request_save("user_profile")
    return profile


def get_pos_session(context: RuntimeContext) -> PosSession:
    return context._state.get("pos_session") or PosSession()


def set_pos_session(context: RuntimeContext, session: PosSession) -> PosSession:
    context._state["pos_session"] = session
    context.coordinator.request_save("pos_session")
    return session


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def current_day(context: RuntimeContext) -> date:
    return context.clock().date()


def require_open_day(
    context: RuntimeContext,
    payment_method: PaymentMethod,
    *,
    when: Optional[datetime] = None,
) -> None:
    """Refuse a CASH posting unless today's session is OPEN.

    A backdated posting additionally needs the session of its own date to
    still be OPEN.

    Raises:
        DayNotOpenError: If ``payment_method`` is CASH and today (or the
            posting date) has no OPEN session.
    """

    if PaymentMethod(payment_method) is not PaymentMethod.CASH:
        return
    days = [calendar_day(current_day(context))]
    if when is not None and calendar_day(when) != days[0]:
        days.append(calendar_day(when))
    for day in days:
        if not context.sessions.is_open(day):
            log.warning("Cash posting blocked: no open session for %s", day)
            raise DayNotOpenError(f"Open the day session for {day} before posting cash")


def require_positive_amount(amount: Decimal) -> Decimal:
    """Coerce ``amount`` and insist it is greater than zero.

    Raises:
        BusinessRuleViolation: If the coerced amount is zero or negative.
    """

    value = coerce_decimal(amount)
    if value <= ZERO:
        log.error("Rejected non-positive amount: %s", amount)
        raise BusinessRuleViolation("Amount must be greater than zero")
    return value


# ---------------------------------------------------------------------------
# Postings
# ---------------------------------------------------------------------------


def checkout(context: RuntimeContext, command: SaleCommand) -> CheckoutResult:
    """Price a cart, check tender and stock, and post the resulting ``SALE``.

    Args:
        context (RuntimeContext): Runtime context with the live ledger.
        command (SaleCommand): Cart lines plus payment details.

    Returns:
        CheckoutResult: Posted transaction, cart totals, and change due.

    Raises:
        BusinessRuleViolation: For an empty cart, a non-positive or
            over-stock quantity, or a credit sale without a customer.
        MissingReferenceError: If a product or customer is unknown.
        DayNotOpenError: For a CASH sale without an OPEN session.
        InsufficientTenderError: If cash tendered is below the total.
    """

    method = PaymentMethod(command.payment_method)
    if not command.lines:
        raise BusinessRuleViolation("Cannot check out an empty cart")
    requested: Dict[str, Decimal] = {}
    for line in command.lines:
        context.ledger.get_product(line.product_id)
        if line.quantity <= ZERO:
            raise BusinessRuleViolation(f"Quantity for '{line.product_id}' must be positive")
        requested[line.product_id] = requested.get(line.product_id, ZERO) + line.quantity
    for product_id, quantity in requested.items():
        product = context.ledger.get_product(product_id)
        if quantity > product.stock:
            log.warning(
                "Sale of %s x '%s' exceeds stock of %s",
                quantity,
                product_id,
                product.stock,
            )
            raise BusinessRuleViolation(f"Only {product.stock} of '{product.name}' in stock")

    require_open_day(context, method, when=command.timestamp)
    customer = context.ledger.get_customer(command.customer_id) if command.customer_id else None
    if method is PaymentMethod.CREDIT and customer is None:
        raise BusinessRuleViolation("Credit sales need a customer")

    totals = compute_totals(command.lines, command.cart_discount)
    change = ZERO
    if method is PaymentMethod.CASH and command.amount_tendered is not None:
        change = require_sufficient_tender(command.amount_tendered, totals.final_total)
    if customer is not None and method is PaymentMethod.CREDIT:
        exposure = customer.total_credit + totals.final_total
        if customer.credit_limit and exposure > customer.credit_limit:
            log.warning(
                "Customer '%s' credit of %s will exceed limit %s",
                customer.id,
                exposure,
                customer.credit_limit,
            )

    draft = build_sale_draft(
        command.lines,
        cart_discount=command.cart_discount,
        payment_method=method,
        account_id=command.account_id,
        customer_id=command.customer_id,
        cheque_number=command.cheque_number,
        cheque_date=command.cheque_date,
    )
    transaction = context.ledger.add(replace(draft, date=command.timestamp))
    context._state["pos_session"] = PosSession()
    log.info(
        "Checked out sale '%s' (total=%s, change=%s)",
        transaction.id,
        totals.final_total,
        change,
    )
    return CheckoutResult(transaction=transaction, totals=totals, change_due=change)


def record_purchase(context: RuntimeContext, command: PurchaseCommand) -> Transaction:
    """Post a ``PURCHASE``; CREDIT purchases add to the vendor payable.

    Raises:
        BusinessRuleViolation: If the amount is not positive or a CREDIT
            purchase names no vendor.
        MissingReferenceError: If the vendor is unknown.
        DayNotOpenError: For a CASH purchase without an OPEN session.
    """

    amount = require_positive_amount(command.amount)
    method = PaymentMethod(command.payment_method)
    if command.vendor_id:
        context.ledger.get_vendor(command.vendor_id)
    elif method is PaymentMethod.CREDIT:
        raise BusinessRuleViolation("Credit purchases need a vendor")
    require_open_day(context, method, when=command.timestamp)
    transaction = context.ledger.add(
        PurchaseDraft(
            amount=amount,
            payment_method=method,
            items=tuple(command.items),
            account_id=command.account_id,
            vendor_id=command.vendor_id,
            description=command.description,
            cheque_number=command.cheque_number,
            cheque_date=command.cheque_date,
            date=command.timestamp,
        )
    )
    log.info("Recorded PURCHASE '%s' from vendor '%s'", transaction.id, command.vendor_id)
    return transaction


def record_expense(context: RuntimeContext, command: ExpenseCommand) -> Transaction:
    """Post an ``EXPENSE``.

    Raises:
        BusinessRuleViolation: If the amount is not positive or the
            description is blank.
        MissingReferenceError: If the vendor is unknown.
        DayNotOpenError: For a CASH expense without an OPEN session.
    """

    amount = require_positive_amount(command.amount)
    if not (command.description or "").strip():
        raise BusinessRuleViolation("Expenses need a description")
    method = PaymentMethod(command.payment_method)
    if command.vendor_id:
        context.ledger.get_vendor(command.vendor_id)
    require_open_day(context, method, when=command.timestamp)
    transaction = context.ledger.add(
        ExpenseDraft(
            amount=amount,
            payment_method=method,
            description=command.description,
            account_id=command.account_id,
            vendor_id=command.vendor_id,
            cheque_number=command.cheque_number,
            cheque_date=command.cheque_date,
            date=command.timestamp,
        )
    )
    log.info("Recorded EXPENSE '%s' (%s)", transaction.id, command.description)
    return transaction


def record_credit_payment(context: RuntimeContext, command: CreditPaymentCommand) -> Transaction:
    """Post a ``CREDIT_PAYMENT`` reducing the customer's outstanding credit.

    Raises:
        BusinessRuleViolation: If the amount is not positive.
        MissingReferenceError: If the customer is unknown.
        DayNotOpenError: For a CASH payment without an OPEN session.
    """

    amount = require_positive_amount(command.amount)
    customer = context.ledger.get_customer(command.customer_id)
    method = PaymentMethod(command.payment_method)
    require_open_day(context, method, when=command.timestamp)
    if amount > customer.total_credit:
        log.warning(
            "Payment of %s exceeds outstanding credit %s for customer '%s'",
            amount,
            customer.total_credit,
            customer.id,
        )
    transaction = context.ledger.add(
        CreditPaymentDraft(
            amount=amount,
            customer_id=customer.id,
            payment_method=method,
            account_id=command.account_id,
            description=command.description or f"Credit payment: {customer.name}",
            cheque_number=command.cheque_number,
            cheque_date=command.cheque_date,
            date=command.timestamp,
        )
    )
    log.info("Recorded CREDIT_PAYMENT '%s' for customer '%s'", transaction.id, customer.id)
    return transaction


def record_transfer(context: RuntimeContext, command: TransferCommand) -> Transaction:
    """Post a ``TRANSFER`` between two registered accounts.

    Raises:
        BusinessRuleViolation: If the amount is not positive.
        MissingReferenceError: If either account is unknown.
        InvalidTransactionError: If source and destination are the same.
    """

    amount = require_positive_amount(command.amount)
    context.ledger.get_account(command.source_account_id)
    context.ledger.get_account(command.destination_account_id)
    draft = TransferDraft(
        amount=amount,
        account_id=command.source_account_id,
        destination_account_id=command.destination_account_id,
        date=command.timestamp,
    )
    if command.description:
        draft = replace(draft, description=command.description)
    transaction = context.ledger.add(draft)
    log.info(
        "Recorded TRANSFER '%s' from '%s' to '%s'",
        transaction.id,
        command.source_account_id,
        command.destination_account_id,
    )
    return transaction


def record_transaction(context: RuntimeContext, command: TransactionCommand) -> Any:
    """Dispatch any transaction command to its ``record_*`` function."""

    handlers = {
        SaleCommand: checkout,
        PurchaseCommand: record_purchase,
        ExpenseCommand: record_expense,
        CreditPaymentCommand: record_credit_payment,
        TransferCommand: record_transfer,
    }
    handler = handlers.get(type(command))
    if handler is None:
        raise TypeError(f"Unsupported command: {type(command).__name__}")
    return handler(context, command)


def settle_credit_sale(
    context: RuntimeContext,
    transaction_id: str,
    payment_method: PaymentMethod,
    account_id: Optional[str] = None,
) -> Transaction:
    """Convert an outstanding CREDIT sale into a paid one.

    Raises:
        MissingReferenceError: If the transaction or account is unknown.
        BusinessRuleViolation: If the sale is not an outstanding credit sale.
        DayNotOpenError: When settling in CASH without an OPEN session.
    """

    method = PaymentMethod(payment_method)
    if account_id:
        context.ledger.get_account(account_id)
    require_open_day(context, method)
    return context.ledger.settle_credit_sale(transaction_id, method, account_id)


def update_transaction(context: RuntimeContext, transaction: Transaction) -> Optional[Transaction]:
    """Replace a stored transaction; unknown ids are a logged no-op."""

    return context.ledger.update(transaction)


def edit_sale(context: RuntimeContext, transaction_id: str, items: Tuple[LineItem, ...]) -> Transaction:
    """Replace the items of a posted ``SALE`` and recompute its amount.

    The new amount is the sum of ``quantity * price - discount`` over the
    edited items; ``discount`` becomes the sum of the line discounts. Stock
    is checked against what the edit adds on top of the original sale.

    Raises:
        MissingReferenceError: If the transaction or a product is unknown.
        BusinessRuleViolation: If the transaction is not a sale, no items
            remain, a quantity is not positive, or stock would go negative.
        DayNotOpenError: When editing a CASH sale without an OPEN session.
    """

    original = context.ledger.get_transaction(transaction_id)
    if original.type is not TransactionType.SALE:
        raise BusinessRuleViolation(f"Transaction '{transaction_id}' is not a sale")
    items = tuple(items)
    if not items:
        raise BusinessRuleViolation("A sale needs at least one item; delete it instead")

    delta: Dict[str, Decimal] = {}
    for item in items:
        context.ledger.get_product(item.product_id)
        if item.quantity <= ZERO:
            raise BusinessRuleViolation(f"Quantity for '{item.product_id}' must be positive")
        delta[item.product_id] = delta.get(item.product_id, ZERO) + item.quantity
    for item in original.items:
        delta[item.product_id] = delta.get(item.product_id, ZERO) - item.quantity
    catalog = {product.id: product for product in context.ledger.list_products()}
    for product_id, extra in delta.items():
        product = catalog.get(product_id)
        if product is not None and extra > product.stock:
            raise BusinessRuleViolation(f"Only {product.stock} more of '{product.name}' in stock")

    require_open_day(context, original.payment_method)
    gross = sum((item.quantity * item.price - item.discount for item in items), ZERO)
    edited = replace(
        original,
        items=items,
        amount=max(ZERO, gross),
        discount=sum((item.discount for item in items), ZERO),
    )
    updated = update_transaction(context, edited)
    log.info("Edited sale '%s' (amount %s -> %s)", transaction_id, original.amount, updated.amount)
    return updated


def delete_transaction(context: RuntimeContext, transaction_id: str) -> Optional[Transaction]:
    """Delete a transaction and revert its impact; unknown ids are a logged no-op."""

    return context.ledger.delete(transaction_id)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_account(
    context: RuntimeContext,
    account_id: str,
    name: str,
    *,
    opening_balance: Decimal = ZERO,
    account_number: Optional[str] = None,
) -> BankAccount:
    return context.ledger.upsert_account(
        account_id,
        name,
        opening_balance=coerce_decimal(opening_balance),
        account_number=account_number,
    )


def add_product(
    context: RuntimeContext,
    *,
    product_id: str,
    name: str,
    price: Decimal,
    sku: Optional[str] = None,
    cost: Decimal = ZERO,
    stock: Decimal = ZERO,
    category_id: Optional[str] = None,
) -> Product:
    """Register a product, or update its catalog fields keeping current stock."""

    if category_id:
        known = {category.id for category in context.ledger.list_categories()}
        if category_id not in known:
            context.ledger.upsert_category(Category(id=category_id, name=category_id))
    return context.ledger.upsert_product(
        Product(
            id=product_id,
            sku=sku or product_id,
            name=name,
            price=coerce_decimal(price),
            cost=coerce_decimal(cost),
            stock=coerce_decimal(stock),
            category_id=category_id,
        )
    )


def add_customer(
    context: RuntimeContext,
    *,
    customer_id: str,
    name: str,
    phone: str = "",
    credit_limit: Decimal = DEFAULT_CREDIT_LIMIT,
) -> Customer:
    return context.ledger.upsert_customer(
        Customer(id=customer_id, name=name, phone=phone, credit_limit=coerce_decimal(credit_limit))
    )


def add_vendor(context: RuntimeContext, *, vendor_id: str, name: str, phone: str = "") -> Vendor:
    return context.ledger.upsert_vendor(Vendor(id=vendor_id, name=name, phone=phone))


def add_recurring_expense(context: RuntimeContext, command: RecurringExpenseCommand) -> RecurringExpense:
    """Store a schedule and evaluate it immediately, as any schedule change does.

    Raises:
        BusinessRuleViolation: If the amount is not positive, the description
            is blank, or the method cannot post without a counterparty.
        MissingReferenceError: If the named account is unknown.
    """

    amount = require_positive_amount(command.amount)
    method = PaymentMethod(command.payment_method)
    if method in NON_ACCOUNT_METHODS:
        raise BusinessRuleViolation(f"Recurring expenses cannot be paid by {method.value}")
    if not (command.description or "").strip():
        raise BusinessRuleViolation("Recurring expenses need a description")
    if command.account_id:
        context.ledger.get_account(command.account_id)
    schedule_id = command.schedule_id or f"REC-{int(context.clock().timestamp() * 1000)}"
    schedule = context.scheduler.add_schedule(
        RecurringExpense(
            id=schedule_id,
            description=command.description,
            amount=amount,
            payment_method=method,
            frequency=Frequency(command.frequency),
            start_date=coerce_date(command.start_date),
            account_id=command.account_id,
        )
    )
    context.scheduler.run_due(current_day(context))
    return context.scheduler.get_schedule(schedule.id) or schedule


def run_recurring(context: RuntimeContext, today: Optional[date] = None) -> List[Transaction]:
    return context.scheduler.run_due(today or current_day(context))


def remove_recurring_expense(context: RuntimeContext, schedule_id: str) -> RecurringExpense:
    """Stop a schedule; expenses it already posted stay in the ledger.

    Raises:
        MissingReferenceError: If no schedule has ``schedule_id``.
    """

    removed = context.scheduler.remove_schedule(schedule_id)
    if removed is None:
        raise MissingReferenceError(f"Unknown recurring expense id: {schedule_id}")
    return removed


def create_purchase_order(context: RuntimeContext, command: PurchaseOrderCommand) -> PurchaseOrder:
    """Register a PENDING purchase order; its total is the sum of line costs.

    Raises:
        BusinessRuleViolation: If the order has no lines.
        MissingReferenceError: If the vendor is unknown.
    """

    if not command.lines:
        raise BusinessRuleViolation("Purchase orders need at least one line")
    context.ledger.get_vendor(command.vendor_id)
    now = context.clock()
    total = sum((line.quantity * line.cost for line in command.lines), ZERO)
    order = PurchaseOrder(
        id=command.order_id or generate_transaction_id(prefix="PO", when=now),
        vendor_id=command.vendor_id,
        items=tuple(command.lines),
        total_amount=total,
        payment_method=PaymentMethod(command.payment_method),
        account_id=command.account_id,
        status=PurchaseOrderStatus.PENDING,
        created_date=now,
        cheque_number=command.cheque_number,
        cheque_date=command.cheque_date,
    )
    return context.ledger.upsert_purchase_order(order)


def receive_purchase_order(context: RuntimeContext, order_id: str) -> Transaction:
    """Receive stock for a purchase order, posting its ``PURCHASE``.

    Raises:
        MissingReferenceError: If the order is unknown.
        BusinessRuleViolation: If the order was already received.
        DayNotOpenError: For a CASH order without an OPEN session.
    """

    order = context.ledger.get_purchase_order(order_id)
    require_open_day(context, order.payment_method)
    return context.ledger.receive_purchase_order(order_id)


# ---------------------------------------------------------------------------
# Day sessions
# ---------------------------------------------------------------------------


def open_day(context: RuntimeContext, opening_balance: Decimal, day: Optional[object] = None) -> DaySession:
    return context.sessions.open_day(day or current_day(context), opening_balance)


def close_day(context: RuntimeContext, actual_closing: Decimal, day: Optional[object] = None) -> DaySession:
    return context.sessions.close_day(day or current_day(context), actual_closing)


def cash_report(context: RuntimeContext, day: Optional[object] = None) -> CashSummary:
    return context.sessions.cash_summary(day or current_day(context))


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def list_transactions(
    context: RuntimeContext,
    *,
    transaction_type: Optional[TransactionType] = None,
    day: Optional[object] = None,
    payment_method: Optional[PaymentMethod] = None,
) -> List[Transaction]:
    """Transactions matching every given filter, newest first."""

    matches = context.ledger.filter_transactions(
        transaction_type=transaction_type,
        day=day,
        payment_method=payment_method,
    )
    return context.ledger.sorted_by_date(matches)


def pending_cheques(context: RuntimeContext, as_of: Optional[object] = None) -> List[Transaction]:
    """Cheques maturing today or later, soonest first."""

    return context.ledger.pending_cheques(as_of=as_of or current_day(context))


def sales_history(
    context: RuntimeContext,
    *,
    start: Optional[object] = None,
    end: Optional[object] = None,
) -> SalesHistory:
    """Sales dated within ``start``..``end`` (inclusive), newest first.

    CREDIT sales count as due; every other method counts as paid.
    """

    first = calendar_day(start) if start is not None else None
    last = calendar_day(end) if end is not None else None
    sales = [
        transaction
        for transaction in context.ledger.filter_transactions(transaction_type=TransactionType.SALE)
        if (first is None or transaction.calendar_day >= first)
        and (last is None or transaction.calendar_day <= last)
    ]
    due = [sale for sale in sales if sale.payment_method is PaymentMethod.CREDIT]
    paid = [sale for sale in sales if sale.payment_method is not PaymentMethod.CREDIT]
    return SalesHistory(
        sales=context.ledger.sorted_by_date(sales),
        paid_total=sum((sale.amount for sale in paid), ZERO),
        due_total=sum((sale.amount for sale in due), ZERO),
    )


def stock_report(context: RuntimeContext) -> Dict[str, Decimal]:
    return {product.id: product.stock for product in context.ledger.list_products()}


def account_balances(context: RuntimeContext) -> Dict[str, Decimal]:
    return {account.id: account.balance for account in context.ledger.list_accounts()}


def outstanding_credit(context: RuntimeContext) -> Dict[str, Decimal]:
    return {
        customer.id: customer.total_credit
        for customer in context.ledger.list_customers()
        if customer.total_credit != ZERO
    }


def vendor_payables(context: RuntimeContext) -> Dict[str, Decimal]:
    return {
        vendor.id: vendor.total_balance
        for vendor in context.ledger.list_vendors()
        if vendor.total_balance != ZERO
    }


# ---------------------------------------------------------------------------
# Backup
# ---------------------------------------------------------------------------


def export_backup(context: RuntimeContext) -> str:
    return export_json(capture_state(context), now=context.clock())


def import_backup(context: RuntimeContext, text: str) -> LedgerState:
    """Replace collections from a JSON backup.

    The file is parsed in full before any component is touched.

    Raises:
        ImportFormatError: If the file is not a valid ledger export.
    """

    state = import_json(text, capture_state(context))
    restore_state(context, state)
    context.coordinator.request_save("import")
    log.info("Restored ledger from backup (%d transactions)", len(state.transactions))
    return state
