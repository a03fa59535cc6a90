"""Unit tests for the transaction store and its derived balances."""

from __future__ import annotations

import re
from dataclasses import replace
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest

from retail_ledger.constants import PaymentMethod, PurchaseOrderStatus, TransactionType
from retail_ledger.errors import BusinessRuleViolation, MissingReferenceError
from retail_ledger.impact import compute_impact
from retail_ledger.ledger import RESERVED_ACCOUNTS, Ledger, generate_transaction_id
from retail_ledger.models import (
    Customer,
    CreditPaymentDraft,
    ExpenseDraft,
    LineItem,
    Product,
    PurchaseDraft,
    PurchaseOrder,
    PurchaseOrderLine,
    SaleDraft,
    TransferDraft,
    Vendor,
)


FIXED_NOW = datetime(2024, 5, 1, 9, 30, tzinfo=UTC)


def _aggregates(ledger: Ledger) -> dict:
    return {
        "accounts": {account.id: account.balance for account in ledger.list_accounts()},
        "customers": {customer.id: customer.total_credit for customer in ledger.list_customers()},
        "vendors": {vendor.id: vendor.total_balance for vendor in ledger.list_vendors()},
        "stock": {product.id: product.stock for product in ledger.list_products()},
    }


def _fresh_ledger() -> Ledger:
    return Ledger(
        products=[Product(id="P1", sku="SKU-1", name="Rice 5kg", price=Decimal("50"), stock=Decimal("10"))],
        customers=[Customer(id="C1", name="Nimal")],
        vendors=[Vendor(id="V1", name="Wholesale Co")],
        clock=lambda: FIXED_NOW,
    )


def test_reserved_accounts_always_exist():
    ledger = Ledger()

    assert {account.id for account in ledger.list_accounts()} == {account.id for account in RESERVED_ACCOUNTS}


def test_generate_transaction_id_format():
    transaction_id = generate_transaction_id(when=FIXED_NOW)

    assert re.fullmatch(r"TX-\d+-[A-Z0-9]{5}", transaction_id)
    assert transaction_id.startswith(f"TX-{int(FIXED_NOW.timestamp() * 1000)}-")


def test_add_prepends_and_applies_impact(ledger):
    first = ledger.add(SaleDraft(amount=Decimal("150"), payment_method=PaymentMethod.CASH, items=(LineItem("P1", 3, 50),)))
    second = ledger.add(ExpenseDraft(amount=Decimal("20"), payment_method=PaymentMethod.CASH, description="Tea"))

    assert [transaction.id for transaction in ledger.transactions()] == [second.id, first.id]
    assert first.date == FIXED_NOW
    assert ledger.get_account("cash").balance == Decimal("130")
    assert ledger.get_product("P1").stock == Decimal("7")


def test_add_keeps_explicit_id_and_rejects_duplicates(ledger):
    ledger.add(ExpenseDraft(id="RECUR-R1-2024-05-01", amount=Decimal("10"), payment_method=PaymentMethod.BANK))

    assert ledger.contains("RECUR-R1-2024-05-01")
    with pytest.raises(BusinessRuleViolation):
        ledger.add(ExpenseDraft(id="RECUR-R1-2024-05-01", amount=Decimal("10"), payment_method=PaymentMethod.BANK))


def _draft_table():
    sale_items = (LineItem("P1", 2, 50),)
    purchase_items = (LineItem("P1", 4, 20),)
    rows = []
    for method in PaymentMethod:
        extra = {"customer_id": "C1"} if method is PaymentMethod.CREDIT else {}
        rows.append(pytest.param(SaleDraft(amount=Decimal("100"), payment_method=method, items=sale_items, **extra), id=f"sale-{method.value}"))
    for method in PaymentMethod:
        rows.append(
            pytest.param(
                PurchaseDraft(amount=Decimal("80"), payment_method=method, vendor_id="V1", items=purchase_items),
                id=f"purchase-{method.value}",
            )
        )
    for method in (PaymentMethod.CASH, PaymentMethod.BANK, PaymentMethod.CARD):
        rows.append(pytest.param(ExpenseDraft(amount=Decimal("40"), payment_method=method), id=f"expense-{method.value}"))
        rows.append(
            pytest.param(
                ExpenseDraft(amount=Decimal("40"), payment_method=method, vendor_id="V1"),
                id=f"expense-{method.value}-vendor",
            )
        )
    rows.append(pytest.param(ExpenseDraft(amount=Decimal("40"), payment_method=PaymentMethod.CHEQUE), id="expense-CHEQUE"))
    for method in (PaymentMethod.CASH, PaymentMethod.BANK, PaymentMethod.CARD, PaymentMethod.CHEQUE):
        rows.append(
            pytest.param(
                CreditPaymentDraft(amount=Decimal("60"), customer_id="C1", payment_method=method),
                id=f"credit-payment-{method.value}",
            )
        )
    rows.append(
        pytest.param(
            TransferDraft(amount=Decimal("25"), account_id="cash", destination_account_id="bank_default"),
            id="transfer",
        )
    )
    return rows


def _shifted(before: dict, impact) -> dict:
    expected = {bucket: dict(values) for bucket, values in before.items()}
    for bucket, deltas in (
        ("accounts", impact.accounts),
        ("customers", impact.customers),
        ("vendors", impact.vendors),
        ("stock", impact.stock),
    ):
        for key, delta in deltas.items():
            expected[bucket][key] += delta
    return expected


@pytest.mark.parametrize("draft", _draft_table())
def test_add_then_delete_restores_every_aggregate(ledger, draft):
    before = _aggregates(ledger)

    transaction = ledger.add(draft)

    assert _aggregates(ledger) == _shifted(before, compute_impact(transaction))

    ledger.delete(transaction.id)

    assert _aggregates(ledger) == before
    assert ledger.transactions() == []


def test_update_equals_posting_the_new_version_directly():
    edited = _fresh_ledger()
    original = edited.add(
        SaleDraft(amount=Decimal("100"), payment_method=PaymentMethod.CASH, items=(LineItem("P1", 2, 50),))
    )
    edited.update(
        replace(
            original,
            amount=Decimal("150"),
            payment_method=PaymentMethod.CREDIT,
            customer_id="C1",
            items=(LineItem("P1", 3, 50),),
        )
    )

    direct = _fresh_ledger()
    direct.add(
        SaleDraft(
            amount=Decimal("150"),
            payment_method=PaymentMethod.CREDIT,
            customer_id="C1",
            items=(LineItem("P1", 3, 50),),
        )
    )

    assert _aggregates(edited) == _aggregates(direct)
    assert edited.get_transaction(original.id).amount == Decimal("150")


def test_update_and_delete_of_unknown_ids_are_ignored(ledger):
    ledger.add(ExpenseDraft(amount=Decimal("10"), payment_method=PaymentMethod.CASH))
    before = _aggregates(ledger)
    phantom = replace(ledger.transactions()[0], id="TX-missing")

    assert ledger.update(phantom) is None
    assert ledger.delete("TX-missing") is None
    assert _aggregates(ledger) == before
    assert len(ledger.transactions()) == 1


def test_stock_lifecycle(ledger):
    sale = ledger.add(SaleDraft(amount=Decimal("150"), payment_method=PaymentMethod.CASH, items=(LineItem("P1", 3, 50),)))
    assert ledger.get_product("P1").stock == Decimal("7")

    ledger.delete(sale.id)
    assert ledger.get_product("P1").stock == Decimal("10")

    ledger.add(PurchaseDraft(amount=Decimal("100"), payment_method=PaymentMethod.CASH, items=(LineItem("P1", 5, 20),)))
    assert ledger.get_product("P1").stock == Decimal("15")


def test_credit_lifecycle(ledger):
    ledger.add(SaleDraft(amount=Decimal("300"), payment_method=PaymentMethod.CREDIT, customer_id="C1"))
    assert ledger.get_customer("C1").total_credit == Decimal("300")

    payment = ledger.add(CreditPaymentDraft(amount=Decimal("300"), customer_id="C1"))
    assert ledger.get_customer("C1").total_credit == Decimal("0")

    ledger.delete(payment.id)
    assert ledger.get_customer("C1").total_credit == Decimal("300")


def test_transfer_preserves_total_balance(ledger):
    ledger.upsert_account("hnb", "HNB Current", opening_balance=Decimal("500"))
    total = ledger.total_account_balance()

    ledger.add(TransferDraft(amount=Decimal("200"), account_id="hnb", destination_account_id="cash"))

    assert ledger.total_account_balance() == total
    assert ledger.get_account("hnb").balance == Decimal("300")
    assert ledger.get_account("cash").balance == Decimal("200")


def test_items_for_missing_products_are_skipped(ledger):
    ledger.add(SaleDraft(amount=Decimal("10"), payment_method=PaymentMethod.CASH, items=(LineItem("GONE", 1, 10),)))

    assert ledger.get_account("cash").balance == Decimal("10")
    assert "GONE" not in {product.id for product in ledger.list_products()}


def test_settle_credit_sale_moves_balance_to_account(ledger):
    sale = ledger.add(
        SaleDraft(amount=Decimal("300"), payment_method=PaymentMethod.CREDIT, customer_id="C1", description="Terminal Sale: 1 line items")
    )

    settled = ledger.settle_credit_sale(sale.id, PaymentMethod.CASH)

    assert settled.payment_method is PaymentMethod.CASH
    assert settled.description == "Settled Credit: Terminal Sale: 1 line items"
    assert ledger.get_customer("C1").total_credit == Decimal("0")
    assert ledger.get_account("cash").balance == Decimal("300")


def test_settle_rejects_non_credit_sales(ledger):
    sale = ledger.add(SaleDraft(amount=Decimal("10"), payment_method=PaymentMethod.CASH))

    with pytest.raises(BusinessRuleViolation):
        ledger.settle_credit_sale(sale.id, PaymentMethod.BANK)
    with pytest.raises(MissingReferenceError):
        ledger.settle_credit_sale("TX-missing", PaymentMethod.BANK)


def test_filters_and_sorting(ledger):
    earlier = FIXED_NOW - timedelta(days=1)
    old = ledger.add(SaleDraft(amount=Decimal("10"), payment_method=PaymentMethod.CASH, date=earlier))
    new = ledger.add(ExpenseDraft(amount=Decimal("5"), payment_method=PaymentMethod.BANK))

    assert ledger.filter_transactions(transaction_type=TransactionType.SALE) == [old]
    assert ledger.filter_transactions(day="2024-05-01") == [new]
    assert ledger.filter_transactions(payment_method=PaymentMethod.BANK) == [new]
    assert [transaction.id for transaction in ledger.sorted_by_date()] == [new.id, old.id]


def test_pending_cheques_sorted_by_maturity(ledger):
    late = ledger.add(
        SaleDraft(amount=Decimal("10"), payment_method=PaymentMethod.CHEQUE, cheque_number="2", cheque_date=date(2024, 6, 1))
    )
    soon = ledger.add(
        SaleDraft(amount=Decimal("10"), payment_method=PaymentMethod.CHEQUE, cheque_number="1", cheque_date=date(2024, 5, 10))
    )
    ledger.add(
        SaleDraft(amount=Decimal("10"), payment_method=PaymentMethod.CHEQUE, cheque_number="0", cheque_date=date(2024, 4, 1))
    )

    assert [cheque.id for cheque in ledger.pending_cheques(as_of=date(2024, 5, 1))] == [soon.id, late.id]
    assert len(ledger.pending_cheques()) == 3
    assert ledger.get_account("cash").balance == Decimal("0")


def test_receive_purchase_order_posts_purchase(ledger):
    ledger.upsert_purchase_order(
        PurchaseOrder(
            id="PO-1",
            vendor_id="V1",
            items=(PurchaseOrderLine("P1", Decimal("4"), Decimal("25")),),
            total_amount=Decimal("100"),
        )
    )

    transaction = ledger.receive_purchase_order("PO-1")

    assert transaction.type is TransactionType.PURCHASE
    assert transaction.items[0].price == Decimal("25")
    assert ledger.get_vendor("V1").total_balance == Decimal("100")
    assert ledger.get_product("P1").stock == Decimal("14")
    order = ledger.get_purchase_order("PO-1")
    assert order.status is PurchaseOrderStatus.RECEIVED
    assert order.received_date == FIXED_NOW
    with pytest.raises(BusinessRuleViolation):
        ledger.receive_purchase_order("PO-1")


def test_upserts_keep_derived_balances(ledger):
    ledger.add(SaleDraft(amount=Decimal("300"), payment_method=PaymentMethod.CREDIT, customer_id="C1"))
    ledger.upsert_account("cash", "Front Drawer", opening_balance=Decimal("999"))

    customer = ledger.upsert_customer(Customer(id="C1", name="Nimal Perera", phone="0771234567"))
    product = ledger.upsert_product(Product(id="P1", sku="SKU-1", name="Rice 10kg", price=Decimal("95"), stock=Decimal("0")))

    assert customer.total_credit == Decimal("300")
    assert product.stock == Decimal("10")
    assert ledger.get_account("cash").name == "Front Drawer"
    assert ledger.get_account("cash").balance == Decimal("0")


def test_mutations_notify_listeners(ledger):
    reasons = []
    unsubscribe = ledger.subscribe(reasons.append)

    transaction = ledger.add(ExpenseDraft(amount=Decimal("5"), payment_method=PaymentMethod.BANK))
    ledger.delete(transaction.id)
    unsubscribe()
    ledger.add(ExpenseDraft(amount=Decimal("5"), payment_method=PaymentMethod.BANK))

    assert reasons == ["add", "delete"]


def test_replace_state_keeps_reserved_accounts_and_can_stay_quiet(ledger):
    reasons = []
    ledger.subscribe(reasons.append)

    ledger.replace_state(notify=False, accounts=[], transactions=[])

    assert {account.id for account in ledger.list_accounts()} == {"cash", "bank_default"}
    assert ledger.get_product("P1").stock == Decimal("10")
    assert reasons == []
    with pytest.raises(KeyError):
        ledger.replace_state(unknown=[])


def test_lookups_raise_missing_reference(ledger):
    with pytest.raises(MissingReferenceError):
        ledger.get_product("nope")
    with pytest.raises(MissingReferenceError):
        ledger.get_customer("nope")
    with pytest.raises(MissingReferenceError):
        ledger.get_account("nope")
