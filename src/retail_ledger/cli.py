"""Command-line entry points for the retail ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the command objects consumed by the business
layer, and printing reports. Keeping the CLI thin lets tests and other
front-ends reuse the same parser configuration.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, log
from .checkout import CartLine
from .constants import DiscountType, Frequency, PaymentMethod, TransactionType
from .errors import BusinessRuleViolation
from .models import LineItem, PurchaseOrderLine, Transaction


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


PAYMENT_CHOICES = [member.value for member in PaymentMethod]


# ---------------------------------------------------------------------------
# Argument types
# ---------------------------------------------------------------------------


def decimal_arg(text: str) -> Decimal:
    """argparse ``type`` for money and quantities."""

    try:
        return Decimal(text)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"not a number: {text!r}") from exc


def date_arg(text: str) -> date:
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {text!r}") from exc


def _split_spec(text: str, minimum: int, maximum: int) -> List[str]:
    parts = text.split(":")
    if not minimum <= len(parts) <= maximum or not parts[0]:
        raise argparse.ArgumentTypeError(f"malformed item {text!r}")
    return parts


def cart_item_arg(text: str) -> tuple:
    """``PRODUCT:QTY`` or ``PRODUCT:QTY:DISCOUNT`` where DISCOUNT may end in ``%``."""

    parts = _split_spec(text, 2, 3)
    discount_type = DiscountType.AMOUNT
    discount = Decimal("0")
    if len(parts) == 3 and parts[2]:
        raw = parts[2]
        if raw.endswith("%"):
            discount_type = DiscountType.PERCENT
            raw = raw[:-1]
        discount = decimal_arg(raw)
    return parts[0], decimal_arg(parts[1]), discount, discount_type


def priced_item_arg(text: str) -> tuple:
    """``PRODUCT:QTY:PRICE`` for purchases and purchase orders."""

    parts = _split_spec(text, 3, 3)
    return parts[0], decimal_arg(parts[1]), decimal_arg(parts[2])


def _add_cheque_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--cheque-number", default=None)
    parser.add_argument("--cheque-date", type=date_arg, default=None)


# ---------------------------------------------------------------------------
# Parser wiring
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="retail-cli",
        description="Command-line tools for the retail ledger.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to searching upward from the current directory).",
    )
    return parser


def configure_subcommands(parser: argparse.ArgumentParser) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def _simple_spec(
    name: str,
    help_text: str,
    arguments: Callable[[argparse.ArgumentParser], None],
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
) -> CommandSpec:
    def registrar(action: argparse._SubParsersAction) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


def register_write_commands(subparsers: argparse._SubParsersAction) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands."""
    specs = {
        "add-account": register_add_account_command(),
        "add-product": register_add_product_command(),
        "add-customer": register_add_customer_command(),
        "add-vendor": register_add_vendor_command(),
        "open-day": register_open_day_command(),
        "close-day": register_close_day_command(),
        "sale": register_sale_command(),
        "purchase": register_purchase_command(),
        "expense": register_expense_command(),
        "pay-credit": register_pay_credit_command(),
        "transfer": register_transfer_command(),
        "settle": register_settle_command(),
        "delete": register_delete_command(),
        "edit-sale": register_edit_sale_command(),
        "add-recurring": register_add_recurring_command(),
        "run-recurring": register_run_recurring_command(),
        "remove-recurring": register_remove_recurring_command(),
        "add-po": register_add_po_command(),
        "receive-po": register_receive_po_command(),
        "import": register_import_command(),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(subparsers: argparse._SubParsersAction) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "cash-report": register_cash_report_command(),
        "cheques": register_cheques_command(),
        "log": register_log_command(),
        "sales": register_sales_command(),
        "stock": register_stock_command(),
        "balances": register_balances_command(),
        "export": register_export_command(),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_add_account_command() -> CommandSpec:
    """Register the parser and executor for ``add-account``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--account-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--opening-balance", type=decimal_arg, default=Decimal("0"))
        parser.add_argument("--account-number", default=None)

    return _simple_spec("add-account", "Register a cash or bank account.", arguments, run_add_account)


def register_add_product_command() -> CommandSpec:
    """Register the parser and executor for ``add-product``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--price", type=decimal_arg, required=True)
        parser.add_argument("--sku", default=None)
        parser.add_argument("--cost", type=decimal_arg, default=Decimal("0"))
        parser.add_argument("--stock", type=decimal_arg, default=Decimal("0"), help="Initial stock for new products.")
        parser.add_argument("--category-id", default=None)

    return _simple_spec("add-product", "Register or update a catalog product.", arguments, run_add_product)


def register_add_customer_command() -> CommandSpec:
    """Register the parser and executor for ``add-customer``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--customer-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--phone", default="")
        parser.add_argument("--credit-limit", type=decimal_arg, default=core_logic.DEFAULT_CREDIT_LIMIT)

    return _simple_spec("add-customer", "Register a credit customer.", arguments, run_add_customer)


def register_add_vendor_command() -> CommandSpec:
    """Register the parser and executor for ``add-vendor``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--vendor-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--phone", default="")

    return _simple_spec("add-vendor", "Register a vendor.", arguments, run_add_vendor)


def register_open_day_command() -> CommandSpec:
    """Register the parser and executor for ``open-day``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--opening-balance", type=decimal_arg, required=True)
        parser.add_argument("--date", type=date_arg, default=None, help="Defaults to today.")

    return _simple_spec("open-day", "Open the cash drawer with a float.", arguments, run_open_day)


def register_close_day_command() -> CommandSpec:
    """Register the parser and executor for ``close-day``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--actual-closing", type=decimal_arg, required=True)
        parser.add_argument("--date", type=date_arg, default=None, help="Defaults to today.")

    return _simple_spec("close-day", "Close the cash drawer with the counted cash.", arguments, run_close_day)


def register_sale_command() -> CommandSpec:
    """Register the parser and executor for ``sale``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            type=cart_item_arg,
            required=True,
            help="PRODUCT:QTY[:DISCOUNT[%%]]; repeat for each line.",
        )
        parser.add_argument("--payment-method", choices=PAYMENT_CHOICES, default=PaymentMethod.CASH.value)
        parser.add_argument("--cart-discount", type=decimal_arg, default=Decimal("0"))
        parser.add_argument("--tendered", type=decimal_arg, default=None)
        parser.add_argument("--account-id", default=None)
        parser.add_argument("--customer-id", default=None)
        _add_cheque_arguments(parser)

    return _simple_spec("sale", "Check out a cart.", arguments, run_sale)


def register_purchase_command() -> CommandSpec:
    """Register the parser and executor for ``purchase``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--amount", type=decimal_arg, required=True)
        parser.add_argument("--payment-method", choices=PAYMENT_CHOICES, required=True)
        parser.add_argument("--vendor-id", default=None)
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            type=priced_item_arg,
            default=[],
            help="PRODUCT:QTY:PRICE; repeat for each line.",
        )
        parser.add_argument("--account-id", default=None)
        parser.add_argument("--description", default=None)
        _add_cheque_arguments(parser)

    return _simple_spec("purchase", "Record a stock purchase.", arguments, run_purchase)


def register_expense_command() -> CommandSpec:
    """Register the parser and executor for ``expense``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--amount", type=decimal_arg, required=True)
        parser.add_argument("--payment-method", choices=PAYMENT_CHOICES, required=True)
        parser.add_argument("--description", required=True)
        parser.add_argument("--account-id", default=None)
        parser.add_argument("--vendor-id", default=None)
        _add_cheque_arguments(parser)

    return _simple_spec("expense", "Record an expense.", arguments, run_expense)


def register_pay_credit_command() -> CommandSpec:
    """Register the parser and executor for ``pay-credit``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--customer-id", required=True)
        parser.add_argument("--amount", type=decimal_arg, required=True)
        parser.add_argument("--payment-method", choices=PAYMENT_CHOICES, default=PaymentMethod.CASH.value)
        parser.add_argument("--account-id", default=None)
        parser.add_argument("--description", default=None)
        _add_cheque_arguments(parser)

    return _simple_spec("pay-credit", "Record a customer credit payment.", arguments, run_pay_credit)


def register_transfer_command() -> CommandSpec:
    """Register the parser and executor for ``transfer``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--amount", type=decimal_arg, required=True)
        parser.add_argument("--from", dest="source", required=True)
        parser.add_argument("--to", dest="destination", required=True)
        parser.add_argument("--description", default=None)

    return _simple_spec("transfer", "Move money between accounts.", arguments, run_transfer)


def register_settle_command() -> CommandSpec:
    """Register the parser and executor for ``settle``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--transaction-id", required=True)
        parser.add_argument(
            "--payment-method",
            choices=[PaymentMethod.CASH.value, PaymentMethod.BANK.value, PaymentMethod.CARD.value],
            required=True,
        )
        parser.add_argument("--account-id", default=None)

    return _simple_spec("settle", "Settle an outstanding credit sale.", arguments, run_settle)


def register_delete_command() -> CommandSpec:
    """Register the parser and executor for ``delete``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--transaction-id", required=True)

    return _simple_spec("delete", "Delete a transaction and revert its effects.", arguments, run_delete)


def register_edit_sale_command() -> CommandSpec:
    """Register the parser and executor for ``edit-sale``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--transaction-id", required=True)
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            type=priced_item_arg,
            required=True,
            help="PRODUCT:QTY:PRICE; repeat for each line kept in the sale.",
        )

    return _simple_spec("edit-sale", "Replace the items of a sale and recompute its amount.", arguments, run_edit_sale)


def register_add_recurring_command() -> CommandSpec:
    """Register the parser and executor for ``add-recurring``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--description", required=True)
        parser.add_argument("--amount", type=decimal_arg, required=True)
        parser.add_argument(
            "--payment-method",
            choices=[PaymentMethod.CASH.value, PaymentMethod.BANK.value, PaymentMethod.CARD.value],
            default=PaymentMethod.CASH.value,
        )
        parser.add_argument("--frequency", choices=[member.value for member in Frequency], required=True)
        parser.add_argument("--start-date", type=date_arg, default=None, help="Defaults to today.")
        parser.add_argument("--account-id", default=None)
        parser.add_argument("--schedule-id", default=None)

    return _simple_spec("add-recurring", "Schedule a recurring expense.", arguments, run_add_recurring)


def register_run_recurring_command() -> CommandSpec:
    """Register the parser and executor for ``run-recurring``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--date", type=date_arg, default=None, help="Defaults to today.")

    return _simple_spec("run-recurring", "Post every recurring expense that is due.", arguments, run_run_recurring)


def register_remove_recurring_command() -> CommandSpec:
    """Register the parser and executor for ``remove-recurring``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--schedule-id", required=True)

    return _simple_spec("remove-recurring", "Stop a recurring expense.", arguments, run_remove_recurring)


def register_add_po_command() -> CommandSpec:
    """Register the parser and executor for ``add-po``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--vendor-id", required=True)
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            type=priced_item_arg,
            required=True,
            help="PRODUCT:QTY:COST; repeat for each line.",
        )
        parser.add_argument("--payment-method", choices=PAYMENT_CHOICES, default=PaymentMethod.CREDIT.value)
        parser.add_argument("--account-id", default=None)
        parser.add_argument("--order-id", default=None)
        _add_cheque_arguments(parser)

    return _simple_spec("add-po", "Create a pending purchase order.", arguments, run_add_po)


def register_receive_po_command() -> CommandSpec:
    """Register the parser and executor for ``receive-po``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--order-id", required=True)

    return _simple_spec("receive-po", "Receive a purchase order into stock.", arguments, run_receive_po)


def register_import_command() -> CommandSpec:
    """Register the parser and executor for ``import``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--file", type=Path, required=True)

    return _simple_spec("import", "Restore collections from a JSON backup.", arguments, run_import)


def register_cash_report_command() -> CommandSpec:
    """Register the parser and executor for ``cash-report``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--date", type=date_arg, default=None, help="Defaults to today.")

    return _simple_spec("cash-report", "Display the cash drawer summary for a day.", arguments, run_cash_report)


def register_cheques_command() -> CommandSpec:
    """Register the parser and executor for ``cheques``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--as-of", type=date_arg, default=None, help="Defaults to today.")

    return _simple_spec("cheques", "Display pending cheques by maturity.", arguments, run_cheques_report)


def register_log_command() -> CommandSpec:
    """Register the parser and executor for ``log``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--type", dest="transaction_type", choices=[member.value for member in TransactionType])
        parser.add_argument("--date", type=date_arg, default=None)
        parser.add_argument("--payment-method", choices=PAYMENT_CHOICES, default=None)

    return _simple_spec("log", "Display the transaction log.", arguments, run_log_report)


def register_sales_command() -> CommandSpec:
    """Register the parser and executor for ``sales``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--from", dest="start", type=date_arg, default=None)
        parser.add_argument("--to", dest="end", type=date_arg, default=None)
        parser.add_argument("--status", choices=["ALL", "PAID", "DUE"], default="ALL")

    return _simple_spec("sales", "Display sales history with paid and due totals.", arguments, run_sales_report)


def register_stock_command() -> CommandSpec:
    """Register the parser and executor for ``stock``."""
    return _simple_spec("stock", "Display current stock levels.", lambda parser: None, run_stock_report)


def register_balances_command() -> CommandSpec:
    """Register the parser and executor for ``balances``."""
    return _simple_spec(
        "balances",
        "Display account balances, customer credit, and vendor payables.",
        lambda parser: None,
        run_balances_report,
    )


def register_export_command() -> CommandSpec:
    """Register the parser and executor for ``export``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--output", type=Path, default=None, help="Write to a file instead of stdout.")

    return _simple_spec("export", "Write a JSON backup.", arguments, run_export)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    return core_logic.load_runtime_context(config_path)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(specs: Iterable[CommandSpec]) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def translate_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.SaleCommand:
    """Translate CLI args into a sale command priced from the catalog."""
    lines = []
    for product_id, quantity, discount, discount_type in args.items:
        product = context.ledger.get_product(product_id)
        lines.append(
            CartLine(
                product_id=product_id,
                unit_price=product.price,
                quantity=quantity,
                discount_value=discount,
                discount_type=discount_type,
            )
        )
    return core_logic.SaleCommand(
        lines=tuple(lines),
        payment_method=PaymentMethod(args.payment_method),
        cart_discount=args.cart_discount,
        amount_tendered=args.tendered,
        account_id=args.account_id,
        customer_id=args.customer_id,
        cheque_number=args.cheque_number,
        cheque_date=args.cheque_date,
    )


def translate_purchase(args: argparse.Namespace) -> core_logic.PurchaseCommand:
    """Translate CLI args into a purchase command object."""
    return core_logic.PurchaseCommand(
        amount=args.amount,
        payment_method=PaymentMethod(args.payment_method),
        vendor_id=args.vendor_id,
        items=tuple(
            LineItem(product_id=product_id, quantity=quantity, price=price)
            for product_id, quantity, price in args.items
        ),
        account_id=args.account_id,
        description=args.description,
        cheque_number=args.cheque_number,
        cheque_date=args.cheque_date,
    )


def translate_sale_items(args: argparse.Namespace) -> tuple:
    """Translate ``PRODUCT:QTY:PRICE`` items into sale line items."""
    return tuple(
        LineItem(product_id=product_id, quantity=quantity, price=price)
        for product_id, quantity, price in args.items
    )


def translate_expense(args: argparse.Namespace) -> core_logic.ExpenseCommand:
    """Translate CLI args into an expense command object."""
    return core_logic.ExpenseCommand(
        amount=args.amount,
        payment_method=PaymentMethod(args.payment_method),
        description=args.description,
        account_id=args.account_id,
        vendor_id=args.vendor_id,
        cheque_number=args.cheque_number,
        cheque_date=args.cheque_date,
    )


def translate_pay_credit(args: argparse.Namespace) -> core_logic.CreditPaymentCommand:
    """Translate CLI args into a credit payment command object."""
    return core_logic.CreditPaymentCommand(
        customer_id=args.customer_id,
        amount=args.amount,
        payment_method=PaymentMethod(args.payment_method),
        account_id=args.account_id,
        description=args.description,
        cheque_number=args.cheque_number,
        cheque_date=args.cheque_date,
    )


def translate_transfer(args: argparse.Namespace) -> core_logic.TransferCommand:
    """Translate CLI args into a transfer command object."""
    return core_logic.TransferCommand(
        amount=args.amount,
        source_account_id=args.source,
        destination_account_id=args.destination,
        description=args.description,
    )


def translate_add_recurring(
    context: core_logic.RuntimeContext, args: argparse.Namespace
) -> core_logic.RecurringExpenseCommand:
    """Translate CLI args into a recurring expense definition."""
    return core_logic.RecurringExpenseCommand(
        description=args.description,
        amount=args.amount,
        payment_method=PaymentMethod(args.payment_method),
        frequency=Frequency(args.frequency),
        start_date=args.start_date or core_logic.current_day(context),
        account_id=args.account_id,
        schedule_id=args.schedule_id,
    )


def translate_add_po(args: argparse.Namespace) -> core_logic.PurchaseOrderCommand:
    """Translate CLI args into a purchase order command object."""
    return core_logic.PurchaseOrderCommand(
        vendor_id=args.vendor_id,
        lines=tuple(
            PurchaseOrderLine(product_id=product_id, quantity=quantity, cost=cost)
            for product_id, quantity, cost in args.items
        ),
        payment_method=PaymentMethod(args.payment_method),
        account_id=args.account_id,
        cheque_number=args.cheque_number,
        cheque_date=args.cheque_date,
        order_id=args.order_id,
    )


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def format_transaction(transaction: Transaction) -> str:
    parties = transaction.customer_id or transaction.vendor_id or ""
    account = transaction.account_id or ""
    if transaction.destination_account_id:
        account = f"{account}->{transaction.destination_account_id}"
    return " | ".join(
        [
            transaction.date.strftime("%Y-%m-%d %H:%M"),
            transaction.id,
            transaction.type.value,
            transaction.payment_method.value,
            f"{transaction.amount:.2f}",
            account,
            parties,
            transaction.description or "",
        ]
    )


def run_add_account(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    account = core_logic.register_account(
        context,
        args.account_id,
        args.name,
        opening_balance=args.opening_balance,
        account_number=args.account_number,
    )
    print(f"Account {account.id}: {account.name} ({account.balance:.2f})")
    return 0


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    product = core_logic.add_product(
        context,
        product_id=args.product_id,
        name=args.name,
        price=args.price,
        sku=args.sku,
        cost=args.cost,
        stock=args.stock,
        category_id=args.category_id,
    )
    print(f"Product {product.id}: {product.name} @ {product.price:.2f}, stock {product.stock}")
    return 0


def run_add_customer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    customer = core_logic.add_customer(
        context,
        customer_id=args.customer_id,
        name=args.name,
        phone=args.phone,
        credit_limit=args.credit_limit,
    )
    print(f"Customer {customer.id}: {customer.name}")
    return 0


def run_add_vendor(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    vendor = core_logic.add_vendor(context, vendor_id=args.vendor_id, name=args.name, phone=args.phone)
    print(f"Vendor {vendor.id}: {vendor.name}")
    return 0


def run_open_day(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    session = core_logic.open_day(context, args.opening_balance, args.date)
    print(f"Day {session.date} OPEN with float {session.opening_balance:.2f}")
    return 0


def run_close_day(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    session = core_logic.close_day(context, args.actual_closing, args.date)
    print(
        f"Day {session.date} CLOSED: expected {session.expected_closing:.2f}, "
        f"counted {session.actual_closing:.2f}, variance {session.variance:.2f}"
    )
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.checkout(context, translate_sale(context, args))
    print(f"Sale {result.transaction.id}: total {result.totals.final_total:.2f}, change {result.change_due:.2f}")
    return 0


def run_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    transaction = core_logic.record_purchase(context, translate_purchase(args))
    print(f"Purchase {transaction.id} recorded")
    return 0


def run_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    transaction = core_logic.record_expense(context, translate_expense(args))
    print(f"Expense {transaction.id} recorded")
    return 0


def run_pay_credit(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    transaction = core_logic.record_credit_payment(context, translate_pay_credit(args))
    print(f"Credit payment {transaction.id} recorded")
    return 0


def run_transfer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    transaction = core_logic.record_transfer(context, translate_transfer(args))
    print(f"Transfer {transaction.id} recorded")
    return 0


def run_settle(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    transaction = core_logic.settle_credit_sale(
        context,
        args.transaction_id,
        PaymentMethod(args.payment_method),
        args.account_id,
    )
    print(f"Settled {transaction.id} by {transaction.payment_method.value}")
    return 0


def run_delete(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    removed = core_logic.delete_transaction(context, args.transaction_id)
    if removed is None:
        print(f"No transaction {args.transaction_id}; nothing deleted")
    else:
        print(f"Deleted {removed.id}")
    return 0


def run_edit_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    transaction = core_logic.edit_sale(context, args.transaction_id, translate_sale_items(args))
    print(f"Sale {transaction.id} now {transaction.amount:.2f} over {len(transaction.items)} line(s)")
    return 0


def run_add_recurring(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    schedule = core_logic.add_recurring_expense(context, translate_add_recurring(context, args))
    print(f"Recurring expense {schedule.id} ({schedule.frequency.value}) scheduled")
    return 0


def run_run_recurring(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    created = core_logic.run_recurring(context, args.date)
    for transaction in created:
        print(format_transaction(transaction))
    print(f"{len(created)} recurring expense(s) posted")
    return 0


def run_remove_recurring(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    schedule = core_logic.remove_recurring_expense(context, args.schedule_id)
    print(f"Recurring expense {schedule.id} removed")
    return 0


def run_add_po(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    order = core_logic.create_purchase_order(context, translate_add_po(args))
    print(f"Purchase order {order.id}: {order.total_amount:.2f} ({order.status.value})")
    return 0


def run_receive_po(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    transaction = core_logic.receive_purchase_order(context, args.order_id)
    print(f"Received {args.order_id} as {transaction.id}")
    return 0


def run_import(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    text = Path(args.file).read_text(encoding="utf-8")
    state = core_logic.import_backup(context, text)
    print(f"Imported {len(state.transactions)} transactions")
    return 0


def run_cash_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    summary = core_logic.cash_report(context, args.date)
    print(f"Cash report for {summary.date}")
    print(f"  Opening:  {summary.opening_balance:.2f}")
    print(f"  Cash in:  {summary.cash_in:.2f}")
    print(f"  Cash out: {summary.cash_out:.2f}")
    print(f"  Expected: {summary.expected_closing:.2f}")
    if summary.actual_closing is not None:
        print(f"  Counted:  {summary.actual_closing:.2f}")
        print(f"  Variance: {summary.variance:.2f}")
    return 0


def run_cheques_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for transaction in core_logic.pending_cheques(context, args.as_of):
        print(f"{transaction.cheque_date} | {transaction.cheque_number or ''} | {format_transaction(transaction)}")
    return 0


def run_log_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    transactions = core_logic.list_transactions(
        context,
        transaction_type=TransactionType(args.transaction_type) if args.transaction_type else None,
        day=args.date,
        payment_method=PaymentMethod(args.payment_method) if args.payment_method else None,
    )
    for transaction in transactions:
        print(format_transaction(transaction))
    return 0


def run_sales_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    history = core_logic.sales_history(context, start=args.start, end=args.end)
    for transaction in history.sales:
        is_due = transaction.payment_method is PaymentMethod.CREDIT
        if args.status == "ALL" or (args.status == "DUE") == is_due:
            print(format_transaction(transaction))
    print(f"Paid: {history.paid_total:.2f}")
    print(f"Due:  {history.due_total:.2f}")
    return 0


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for product_id, stock in sorted(core_logic.stock_report(context).items()):
        print(f"{product_id}: {stock}")
    return 0


def run_balances_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    print("Accounts")
    for account_id, balance in core_logic.account_balances(context).items():
        print(f"  {account_id}: {balance:.2f}")
    print("Customer credit")
    for customer_id, balance in core_logic.outstanding_credit(context).items():
        print(f"  {customer_id}: {balance:.2f}")
    print("Vendor payables")
    for vendor_id, balance in core_logic.vendor_payables(context).items():
        print(f"  {vendor_id}: {balance:.2f}")
    return 0


def run_export(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    payload = core_logic.export_backup(context)
    if args.output is None:
        print(payload)
    else:
        Path(args.output).write_text(payload, encoding="utf-8")
        print(f"Backup written to {args.output}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_changes(context: core_logic.RuntimeContext) -> None:
    """Flush pending changes after successful execution."""
    if not context.coordinator.pending:
        return
    if not core_logic.persist_context(context):
        raise RuntimeError(f"Unable to save ledger to '{context.settings.data_file}'")


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        core_logic.run_recurring(context)
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0:
            persist_changes(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
