"""Enumerations and reserved identifiers shared across the retail ledger.

The ledger, the persistence layer, and the CLI all import their identifiers
from here so that a payment method or sheet name is spelled exactly once.
"""

from __future__ import annotations

from enum import Enum


# Schema version the workbook store and config.ini must agree on.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Version tag written into JSON exports.
EXPORT_VERSION = "5.0"

CASH_ACCOUNT_ID = "cash"
DEFAULT_BANK_ACCOUNT_ID = "bank_default"


class TransactionType(str, Enum):
    """Enumerate the financial events the ledger records."""

    SALE = "SALE"
    PURCHASE = "PURCHASE"
    EXPENSE = "EXPENSE"
    CREDIT_PAYMENT = "CREDIT_PAYMENT"
    TRANSFER = "TRANSFER"


class PaymentMethod(str, Enum):
    """Enumerate how money moved (or did not move) for a transaction."""

    CASH = "CASH"
    BANK = "BANK"
    CARD = "CARD"
    CREDIT = "CREDIT"
    CHEQUE = "CHEQUE"


# Methods that never touch an account balance when posted.
NON_ACCOUNT_METHODS = frozenset({PaymentMethod.CREDIT, PaymentMethod.CHEQUE})

# Methods an EXPENSE may use to reduce a vendor payable.
VENDOR_SETTLING_METHODS = frozenset({PaymentMethod.CASH, PaymentMethod.BANK})


class SessionStatus(str, Enum):
    """Lifecycle states of a cash-drawer day session."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"


class Frequency(str, Enum):
    """Recurrence cadence for scheduled expenses."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


# Days that must elapse before a schedule is due again. MONTHLY is a fixed
# 30-day approximation, not calendar-month aware.
FREQUENCY_INTERVAL_DAYS = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: 7,
    Frequency.MONTHLY: 30,
}


class DiscountType(str, Enum):
    """How a cart line discount value is interpreted."""

    AMOUNT = "AMOUNT"
    PERCENT = "PERCENT"


class PurchaseOrderStatus(str, Enum):
    """Lifecycle states of a vendor purchase order."""

    PENDING = "PENDING"
    RECEIVED = "RECEIVED"


class SyncStatus(str, Enum):
    """Status flag surfaced to the UI for background persistence."""

    IDLE = "IDLE"
    SYNCING = "SYNCING"
    ERROR = "ERROR"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the data layer."""

    PRODUCTS = "Products"
    CATEGORIES = "Categories"
    TRANSACTIONS = "Transactions"
    ACCOUNTS = "Accounts"
    PURCHASE_ORDERS = "PurchaseOrders"
    VENDORS = "Vendors"
    CUSTOMERS = "Customers"
    RECURRING_EXPENSES = "RecurringExpenses"
    DAY_SESSIONS = "DaySessions"
    USER_PROFILE = "UserProfile"
    POS_SESSION = "PosSession"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "EXPORT_VERSION",
    "CASH_ACCOUNT_ID",
    "DEFAULT_BANK_ACCOUNT_ID",
    "TransactionType",
    "PaymentMethod",
    "NON_ACCOUNT_METHODS",
    "VENDOR_SETTLING_METHODS",
    "SessionStatus",
    "Frequency",
    "FREQUENCY_INTERVAL_DAYS",
    "DiscountType",
    "PurchaseOrderStatus",
    "SyncStatus",
    "SheetName",
]
