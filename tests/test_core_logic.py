"""Unit tests verifying the business logic layer over an in-memory store."""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from conftest import FIXED_NOW, MemoryStore
from retail_ledger import core_logic
from retail_ledger.checkout import CartLine, PosSession
from retail_ledger.constants import (
    DiscountType,
    Frequency,
    PaymentMethod,
    PurchaseOrderStatus,
    SyncStatus,
    TransactionType,
)
from retail_ledger.errors import (
    BusinessRuleViolation,
    DayNotOpenError,
    ImportFormatError,
    InsufficientTenderError,
    InvalidTransactionError,
    MissingReferenceError,
)
from retail_ledger.models import LineItem, PurchaseOrderLine, UserProfile


def _sale(*lines, method=PaymentMethod.CASH, **extra) -> core_logic.SaleCommand:
    return core_logic.SaleCommand(lines=tuple(lines), payment_method=method, **extra)


def _line(product_id="P1", quantity="2", price="50", **extra) -> CartLine:
    return CartLine(product_id=product_id, unit_price=Decimal(price), quantity=Decimal(quantity), **extra)


# ---------------------------------------------------------------------------
# Context lifecycle
# ---------------------------------------------------------------------------


def test_build_context_starts_clean(context, memory_store):
    assert {account.id for account in context.ledger.list_accounts()} == {"cash", "bank_default"}
    assert not context.coordinator.pending
    assert core_logic.get_user_profile(context).name == "Test Store"


def test_build_context_prefers_cache_with_products(settings):
    remote = MemoryStore({"products": [{"id": "REMOTE", "name": "Remote", "price": "1"}]})
    cache = MemoryStore({"products": [{"id": "LOCAL", "name": "Local", "price": "1"}]})

    context = core_logic.build_context(settings, remote, cache, clock=lambda: FIXED_NOW)

    assert [product.id for product in context.ledger.list_products()] == ["LOCAL"]
    assert not context.coordinator.pending


def test_build_context_falls_back_to_remote_when_cache_empty(settings):
    remote = MemoryStore({"products": [{"id": "REMOTE", "name": "Remote", "price": "1"}]})
    cache = MemoryStore({"products": []})

    context = core_logic.build_context(settings, remote, cache, clock=lambda: FIXED_NOW)

    assert [product.id for product in context.ledger.list_products()] == ["REMOTE"]


def test_ensure_schema_version_mismatch(context):
    broken = replace(context, settings=replace(context.settings, schema_version="0.9"))

    with pytest.raises(RuntimeError):
        core_logic.ensure_schema_version(broken)
    core_logic.ensure_schema_version(context)


def test_mutations_schedule_a_single_save(stocked_context, memory_store, monotonic):
    context = stocked_context

    assert context.coordinator.pending
    monotonic.advance(5)
    core_logic.process_tick(context)

    assert len(memory_store.saves) == 1
    assert context.coordinator.status is SyncStatus.IDLE
    assert [product["id"] for product in memory_store.snapshot["products"]] == ["P1", "P2"]


def test_persist_context_flushes_immediately(stocked_context, memory_store):
    assert core_logic.persist_context(stocked_context) is True
    assert memory_store.snapshot["customers"][0]["id"] == "C1"


def test_persist_context_reports_failure(settings, monotonic):
    store = MemoryStore(results=[False, False, False])
    context = core_logic.build_context(settings, store, clock=lambda: FIXED_NOW, monotonic=monotonic)
    core_logic.add_vendor(context, vendor_id="V1", name="Wholesale Co")

    assert core_logic.persist_context(context) is False
    assert context.coordinator.status is SyncStatus.ERROR
    assert context.ledger.get_vendor("V1").name == "Wholesale Co"


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


def test_cash_sale_requires_open_day(stocked_context):
    with pytest.raises(DayNotOpenError):
        core_logic.checkout(stocked_context, _sale(_line()))

    assert stocked_context.ledger.transactions() == []


def test_bank_sale_does_not_need_open_day(stocked_context):
    result = core_logic.checkout(stocked_context, _sale(_line(), method=PaymentMethod.BANK))

    assert result.transaction.payment_method is PaymentMethod.BANK
    assert stocked_context.ledger.get_account("bank_default").balance == Decimal("100")


def test_cash_checkout_posts_sale(stocked_context):
    context = stocked_context
    core_logic.open_day(context, Decimal("1000"))
    core_logic.set_pos_session(context, PosSession(lines=(_line(),)))

    result = core_logic.checkout(
        context,
        _sale(
            _line("P1", "2", "50", discount_value=Decimal("10"), discount_type=DiscountType.PERCENT),
            _line("P2", "1", "30"),
            cart_discount=Decimal("20"),
            amount_tendered=Decimal("100"),
        ),
    )

    transaction = result.transaction
    assert result.totals.final_total == Decimal("100")
    assert result.change_due == Decimal("0")
    assert transaction.amount == Decimal("100")
    assert transaction.discount == Decimal("30")
    assert transaction.description == "Terminal Sale: 2 line items"
    assert transaction.date == FIXED_NOW
    assert context.ledger.get_product("P1").stock == Decimal("8")
    assert context.ledger.get_account("cash").balance == Decimal("1100")
    assert core_logic.get_pos_session(context) == PosSession()


def test_checkout_rejects_short_tender(stocked_context):
    core_logic.open_day(stocked_context, Decimal("0"))

    with pytest.raises(InsufficientTenderError):
        core_logic.checkout(stocked_context, _sale(_line(), amount_tendered=Decimal("99")))
    assert stocked_context.ledger.get_product("P1").stock == Decimal("10")


@pytest.mark.parametrize(
    "command, error",
    [
        (_sale(), BusinessRuleViolation),
        (_sale(_line(quantity="11")), BusinessRuleViolation),
        (_sale(_line(quantity="0")), BusinessRuleViolation),
        (_sale(_line(product_id="GHOST")), MissingReferenceError),
        (_sale(_line(), method=PaymentMethod.CREDIT), BusinessRuleViolation),
        (_sale(_line(), method=PaymentMethod.CREDIT, customer_id="NOBODY"), MissingReferenceError),
    ],
)
def test_checkout_validation(stocked_context, command, error):
    core_logic.open_day(stocked_context, Decimal("0"))

    with pytest.raises(error):
        core_logic.checkout(stocked_context, command)


def test_checkout_sums_repeated_lines_against_stock(stocked_context):
    context = stocked_context
    core_logic.open_day(context, Decimal("0"))

    with pytest.raises(BusinessRuleViolation, match="Only 10"):
        core_logic.checkout(context, _sale(_line("P1", "10"), _line("P1", "10")))
    assert context.ledger.get_product("P1").stock == Decimal("10")
    assert context.ledger.transactions() == []

    core_logic.checkout(context, _sale(_line("P1", "5"), _line("P1", "5")))
    assert context.ledger.get_product("P1").stock == Decimal("0")


def test_backdated_cash_sale_still_needs_todays_session(stocked_context):
    context = stocked_context
    core_logic.open_day(context, Decimal("0"), day=date(2024, 4, 30))

    with pytest.raises(DayNotOpenError, match="2024-05-01"):
        core_logic.checkout(context, _sale(_line(), timestamp=datetime(2024, 4, 30, 18, 0, tzinfo=UTC)))
    assert context.ledger.transactions() == []


def test_backdated_cash_sale_needs_its_own_session_too(stocked_context):
    context = stocked_context
    core_logic.open_day(context, Decimal("0"))
    backdated = _sale(_line(), timestamp=datetime(2024, 4, 29, 18, 0, tzinfo=UTC))

    with pytest.raises(DayNotOpenError, match="2024-04-29"):
        core_logic.checkout(context, backdated)

    core_logic.open_day(context, Decimal("0"), day=date(2024, 4, 29))
    result = core_logic.checkout(context, backdated)
    assert result.transaction.calendar_day == "2024-04-29"


def test_credit_sale_over_limit_is_logged_not_blocked(stocked_context, caplog):
    core_logic.add_product(stocked_context, product_id="TV", name="Television", price=Decimal("2000"), stock=Decimal("1"))

    result = core_logic.checkout(
        stocked_context,
        _sale(_line("TV", "1", "2000"), method=PaymentMethod.CREDIT, customer_id="C1"),
    )

    assert stocked_context.ledger.get_customer("C1").total_credit == Decimal("2000")
    assert result.transaction.customer_id == "C1"
    assert "exceed limit" in caplog.text


# ---------------------------------------------------------------------------
# Other postings
# ---------------------------------------------------------------------------


def test_expected_cash_flow(stocked_context):
    context = stocked_context
    core_logic.open_day(context, Decimal("1000"))
    core_logic.checkout(context, _sale(_line("P1", "10", "50")))
    core_logic.record_expense(
        context,
        core_logic.ExpenseCommand(amount=Decimal("200"), payment_method=PaymentMethod.CASH, description="Cleaning"),
    )

    summary = core_logic.cash_report(context)
    assert summary.expected_closing == Decimal("1300")

    closed = core_logic.close_day(context, Decimal("1300"))
    assert closed.variance == Decimal("0")


def test_credit_lifecycle_through_core(stocked_context):
    context = stocked_context
    core_logic.open_day(context, Decimal("0"))
    sale = core_logic.checkout(context, _sale(_line("P1", "6", "50"), method=PaymentMethod.CREDIT, customer_id="C1"))
    assert context.ledger.get_customer("C1").total_credit == Decimal("300")

    payment = core_logic.record_credit_payment(
        context, core_logic.CreditPaymentCommand(customer_id="C1", amount=Decimal("300"))
    )
    assert payment.description == "Credit payment: Nimal"
    assert context.ledger.get_customer("C1").total_credit == Decimal("0")

    core_logic.delete_transaction(context, payment.id)
    assert context.ledger.get_customer("C1").total_credit == Decimal("300")
    assert sale.transaction.type is TransactionType.SALE


def test_cash_postings_are_gated(stocked_context):
    context = stocked_context
    commands = [
        core_logic.PurchaseCommand(amount=Decimal("10"), payment_method=PaymentMethod.CASH, vendor_id="V1"),
        core_logic.ExpenseCommand(amount=Decimal("10"), payment_method=PaymentMethod.CASH, description="Tea"),
        core_logic.CreditPaymentCommand(customer_id="C1", amount=Decimal("10")),
    ]

    for command in commands:
        with pytest.raises(DayNotOpenError):
            core_logic.record_transaction(context, command)
    assert context.ledger.transactions() == []


def test_purchase_validation(stocked_context):
    with pytest.raises(BusinessRuleViolation):
        core_logic.record_purchase(
            stocked_context, core_logic.PurchaseCommand(amount=Decimal("10"), payment_method=PaymentMethod.CREDIT)
        )
    with pytest.raises(BusinessRuleViolation):
        core_logic.record_purchase(
            stocked_context,
            core_logic.PurchaseCommand(amount=Decimal("-1"), payment_method=PaymentMethod.BANK, vendor_id="V1"),
        )

    transaction = core_logic.record_purchase(
        stocked_context,
        core_logic.PurchaseCommand(
            amount=Decimal("100"),
            payment_method=PaymentMethod.CREDIT,
            vendor_id="V1",
            items=(LineItem("P1", Decimal("5"), Decimal("20")),),
        ),
    )
    assert transaction.vendor_id == "V1"
    assert stocked_context.ledger.get_vendor("V1").total_balance == Decimal("100")
    assert stocked_context.ledger.get_product("P1").stock == Decimal("15")


def test_expense_needs_description(stocked_context):
    with pytest.raises(BusinessRuleViolation):
        core_logic.record_expense(
            stocked_context,
            core_logic.ExpenseCommand(amount=Decimal("10"), payment_method=PaymentMethod.BANK, description="  "),
        )


def test_transfer_between_registered_accounts(stocked_context):
    context = stocked_context
    core_logic.register_account(context, "hnb", "HNB Current", opening_balance=Decimal("500"))

    core_logic.record_transfer(
        context,
        core_logic.TransferCommand(amount=Decimal("200"), source_account_id="hnb", destination_account_id="cash"),
    )

    balances = core_logic.account_balances(context)
    assert balances["hnb"] == Decimal("300")
    assert balances["cash"] == Decimal("200")
    with pytest.raises(MissingReferenceError):
        core_logic.record_transfer(
            context,
            core_logic.TransferCommand(amount=Decimal("1"), source_account_id="hnb", destination_account_id="ghost"),
        )
    with pytest.raises(InvalidTransactionError):
        core_logic.record_transfer(
            context,
            core_logic.TransferCommand(amount=Decimal("1"), source_account_id="hnb", destination_account_id="hnb"),
        )


def test_settle_credit_sale_in_cash_needs_open_day(stocked_context):
    context = stocked_context
    sale = core_logic.checkout(context, _sale(_line(), method=PaymentMethod.CREDIT, customer_id="C1"))

    with pytest.raises(DayNotOpenError):
        core_logic.settle_credit_sale(context, sale.transaction.id, PaymentMethod.CASH)

    settled = core_logic.settle_credit_sale(context, sale.transaction.id, PaymentMethod.BANK)
    assert settled.payment_method is PaymentMethod.BANK
    assert core_logic.outstanding_credit(context) == {}


def test_update_and_delete_unknown_are_no_ops(stocked_context):
    assert core_logic.delete_transaction(stocked_context, "TX-missing") is None


def test_edit_sale_recomputes_amount_and_stock(stocked_context):
    context = stocked_context
    sale = core_logic.checkout(context, _sale(_line("P1", "2", "50"), method=PaymentMethod.BANK)).transaction

    edited = core_logic.edit_sale(
        context,
        sale.id,
        (LineItem("P1", 3, 50, discount=Decimal("10")), LineItem("P2", 1, 30)),
    )

    assert edited.amount == Decimal("170")
    assert edited.discount == Decimal("10")
    assert context.ledger.get_transaction(sale.id) == edited
    assert context.ledger.get_product("P1").stock == Decimal("7")
    assert context.ledger.get_product("P2").stock == Decimal("4")
    assert context.ledger.get_account("bank_default").balance == Decimal("170")


def test_edit_sale_checks_stock_against_the_net_change(stocked_context):
    context = stocked_context
    sale = core_logic.checkout(context, _sale(_line("P1", "3", "50"), method=PaymentMethod.BANK)).transaction

    with pytest.raises(BusinessRuleViolation, match="Only 7 more"):
        core_logic.edit_sale(context, sale.id, (LineItem("P1", 11, 50),))
    assert context.ledger.get_product("P1").stock == Decimal("7")

    core_logic.edit_sale(context, sale.id, (LineItem("P1", 10, 50),))
    assert context.ledger.get_product("P1").stock == Decimal("0")


def test_edit_sale_validation(stocked_context):
    context = stocked_context
    sale = core_logic.checkout(context, _sale(_line(), method=PaymentMethod.BANK)).transaction
    expense = core_logic.record_expense(
        context,
        core_logic.ExpenseCommand(amount=Decimal("10"), payment_method=PaymentMethod.BANK, description="Tea"),
    )

    with pytest.raises(BusinessRuleViolation, match="not a sale"):
        core_logic.edit_sale(context, expense.id, (LineItem("P1", 1, 50),))
    with pytest.raises(BusinessRuleViolation, match="delete it instead"):
        core_logic.edit_sale(context, sale.id, ())
    with pytest.raises(BusinessRuleViolation):
        core_logic.edit_sale(context, sale.id, (LineItem("P1", 0, 50),))
    with pytest.raises(MissingReferenceError):
        core_logic.edit_sale(context, "TX-missing", (LineItem("P1", 1, 50),))
    assert context.ledger.get_transaction(sale.id).amount == Decimal("100")


def test_edit_cash_sale_after_close_is_gated(stocked_context):
    context = stocked_context
    core_logic.open_day(context, Decimal("0"))
    sale = core_logic.checkout(context, _sale(_line())).transaction
    core_logic.close_day(context, Decimal("100"))

    with pytest.raises(DayNotOpenError):
        core_logic.edit_sale(context, sale.id, (LineItem("P1", 1, 50),))
    assert context.ledger.get_product("P1").stock == Decimal("8")


def test_record_transaction_rejects_unknown_commands(context):
    with pytest.raises(TypeError):
        core_logic.record_transaction(context, object())


# ---------------------------------------------------------------------------
# Registration, schedules, purchase orders
# ---------------------------------------------------------------------------


def test_add_product_creates_category_and_keeps_stock(context):
    core_logic.add_product(context, product_id="P9", name="Soap", price=Decimal("3"), stock=Decimal("4"), category_id="HOME")
    product = core_logic.add_product(context, product_id="P9", name="Soap Bar", price=Decimal("3.5"), stock=Decimal("99"))

    assert [category.id for category in context.ledger.list_categories()] == ["HOME"]
    assert product.stock == Decimal("4")
    assert product.sku == "P9"


def test_add_customer_defaults_credit_limit(context):
    customer = core_logic.add_customer(context, customer_id="C9", name="Kamal")

    assert customer.credit_limit == Decimal("50000")


def test_add_recurring_expense_runs_immediately(context):
    schedule = core_logic.add_recurring_expense(
        context,
        core_logic.RecurringExpenseCommand(
            description="Shop rent",
            amount=Decimal("100"),
            payment_method=PaymentMethod.BANK,
            frequency=Frequency.MONTHLY,
            start_date=date(2024, 4, 1),
        ),
    )

    assert schedule.id == f"REC-{int(FIXED_NOW.timestamp() * 1000)}"
    assert schedule.last_processed_date == FIXED_NOW.date()
    assert context.ledger.contains(f"RECUR-{schedule.id}-2024-05-01")
    assert core_logic.run_recurring(context) == []


def test_recurring_cash_expense_bypasses_day_gate(context):
    core_logic.add_recurring_expense(
        context,
        core_logic.RecurringExpenseCommand(
            description="Watchman",
            amount=Decimal("25"),
            payment_method=PaymentMethod.CASH,
            frequency=Frequency.DAILY,
            start_date=date(2024, 4, 30),
            schedule_id="R-WATCH",
        ),
    )

    assert context.ledger.get_account("cash").balance == Decimal("-25")


@pytest.mark.parametrize(
    "overrides",
    [
        {"amount": Decimal("-5")},
        {"amount": Decimal("0")},
        {"payment_method": PaymentMethod.CREDIT},
        {"payment_method": PaymentMethod.CHEQUE},
        {"description": "   "},
    ],
    ids=["negative", "zero", "credit", "cheque", "blank-description"],
)
def test_add_recurring_expense_rejects_invalid_schedules(context, overrides):
    values = dict(
        description="Shop rent",
        amount=Decimal("100"),
        payment_method=PaymentMethod.BANK,
        frequency=Frequency.MONTHLY,
        start_date=date(2024, 4, 1),
    )
    values.update(overrides)

    with pytest.raises(BusinessRuleViolation):
        core_logic.add_recurring_expense(context, core_logic.RecurringExpenseCommand(**values))
    assert context.scheduler.list_schedules() == []
    assert context.ledger.transactions() == []


def test_add_recurring_expense_needs_a_known_account(context):
    with pytest.raises(MissingReferenceError):
        core_logic.add_recurring_expense(
            context,
            core_logic.RecurringExpenseCommand(
                description="Loan",
                amount=Decimal("100"),
                payment_method=PaymentMethod.BANK,
                frequency=Frequency.MONTHLY,
                start_date=date(2024, 4, 1),
                account_id="nowhere",
            ),
        )
    assert context.scheduler.list_schedules() == []


def test_remove_recurring_expense_keeps_posted_expenses(context):
    core_logic.add_recurring_expense(
        context,
        core_logic.RecurringExpenseCommand(
            description="Shop rent",
            amount=Decimal("100"),
            payment_method=PaymentMethod.BANK,
            frequency=Frequency.MONTHLY,
            start_date=date(2024, 4, 1),
            schedule_id="R-RENT",
        ),
    )

    removed = core_logic.remove_recurring_expense(context, "R-RENT")

    assert removed.id == "R-RENT"
    assert context.scheduler.list_schedules() == []
    assert context.ledger.contains("RECUR-R-RENT-2024-05-01")
    with pytest.raises(MissingReferenceError):
        core_logic.remove_recurring_expense(context, "R-RENT")


def test_purchase_order_lifecycle(stocked_context):
    context = stocked_context
    order = core_logic.create_purchase_order(
        context,
        core_logic.PurchaseOrderCommand(
            vendor_id="V1",
            lines=(PurchaseOrderLine("P1", Decimal("4"), Decimal("25")), PurchaseOrderLine("P2", Decimal("2"), Decimal("10"))),
        ),
    )

    assert order.id.startswith("PO-")
    assert order.total_amount == Decimal("120")
    assert order.status is PurchaseOrderStatus.PENDING

    core_logic.receive_purchase_order(context, order.id)

    assert context.ledger.get_purchase_order(order.id).status is PurchaseOrderStatus.RECEIVED
    assert core_logic.vendor_payables(context) == {"V1": Decimal("120")}
    assert core_logic.stock_report(context) == {"P1": Decimal("14"), "P2": Decimal("7")}


def test_cash_purchase_order_receipt_is_gated(stocked_context):
    order = core_logic.create_purchase_order(
        stocked_context,
        core_logic.PurchaseOrderCommand(
            vendor_id="V1",
            lines=(PurchaseOrderLine("P1", Decimal("1"), Decimal("25")),),
            payment_method=PaymentMethod.CASH,
            order_id="PO-CASH",
        ),
    )

    with pytest.raises(DayNotOpenError):
        core_logic.receive_purchase_order(stocked_context, order.id)
    with pytest.raises(BusinessRuleViolation):
        core_logic.create_purchase_order(stocked_context, core_logic.PurchaseOrderCommand(vendor_id="V1", lines=()))


# ---------------------------------------------------------------------------
# Reports and backups
# ---------------------------------------------------------------------------


def test_list_transactions_and_cheques(stocked_context):
    context = stocked_context
    core_logic.record_expense(
        context,
        core_logic.ExpenseCommand(
            amount=Decimal("40"),
            payment_method=PaymentMethod.CHEQUE,
            description="Electricity",
            cheque_number="778899",
            cheque_date=date(2024, 5, 15),
        ),
    )
    core_logic.record_expense(
        context,
        core_logic.ExpenseCommand(amount=Decimal("10"), payment_method=PaymentMethod.BANK, description="Fees"),
    )

    assert len(core_logic.list_transactions(context, transaction_type=TransactionType.EXPENSE)) == 2
    assert len(core_logic.list_transactions(context, payment_method=PaymentMethod.CHEQUE)) == 1
    assert [cheque.cheque_number for cheque in core_logic.pending_cheques(context)] == ["778899"]
    assert core_logic.pending_cheques(context, as_of=date(2024, 6, 1)) == []


def test_sales_history_filters_by_range_and_splits_paid_from_due(stocked_context):
    context = stocked_context
    core_logic.checkout(context, _sale(_line("P1", "2", "50"), method=PaymentMethod.BANK))
    core_logic.checkout(
        context,
        _sale(
            _line("P2", "1", "30"),
            method=PaymentMethod.CREDIT,
            customer_id="C1",
            timestamp=datetime(2024, 4, 28, 12, 0, tzinfo=UTC),
        ),
    )
    core_logic.checkout(
        context,
        _sale(_line("P1", "1", "50"), method=PaymentMethod.CARD, timestamp=datetime(2024, 4, 20, 12, 0, tzinfo=UTC)),
    )
    core_logic.record_expense(
        context,
        core_logic.ExpenseCommand(amount=Decimal("10"), payment_method=PaymentMethod.BANK, description="Fees"),
    )

    recent = core_logic.sales_history(context, start=date(2024, 4, 25), end=date(2024, 5, 1))

    assert [sale.calendar_day for sale in recent.sales] == ["2024-05-01", "2024-04-28"]
    assert recent.paid_total == Decimal("100")
    assert recent.due_total == Decimal("30")

    everything = core_logic.sales_history(context)

    assert len(everything.sales) == 3
    assert everything.paid_total == Decimal("150")
    assert core_logic.sales_history(context, end=date(2024, 4, 19)).sales == []


def test_export_then_import_round_trip(stocked_context, settings, monotonic):
    core_logic.set_user_profile(stocked_context, UserProfile(name="Test Store", branch="Kandy"))
    core_logic.checkout(stocked_context, _sale(_line(), method=PaymentMethod.BANK))
    backup = core_logic.export_backup(stocked_context)

    target = core_logic.build_context(settings, MemoryStore(), clock=lambda: FIXED_NOW, monotonic=monotonic)
    state = core_logic.import_backup(target, backup)

    assert json.loads(backup)["exportDate"] == FIXED_NOW.isoformat()
    assert len(state.transactions) == 1
    assert target.ledger.get_product("P1").stock == Decimal("8")
    assert core_logic.get_user_profile(target).branch == "Kandy"
    assert target.coordinator.pending


def test_failed_import_leaves_state_untouched(stocked_context):
    before = core_logic.capture_state(stocked_context)

    with pytest.raises(ImportFormatError):
        core_logic.import_backup(stocked_context, json.dumps({"products": [{"name": "no id"}]}))

    assert core_logic.capture_state(stocked_context) == before


def test_capture_state_includes_sessions_and_schedules(stocked_context):
    core_logic.open_day(stocked_context, Decimal("10"))

    state = core_logic.capture_state(stocked_context)

    assert state.day_sessions[0].date == "2024-05-01"
    assert state.recurring_expenses == ()
    assert state.user_profile.name == "Test Store"
