"""Cash-drawer day sessions.

Each calendar date moves through ``no session -> OPEN -> CLOSED``. Opening a
day places the float in the cash account; closing it records the counted cash
next to the amount the ledger says should be in the drawer.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from . import log
from .constants import CASH_ACCOUNT_ID, PaymentMethod, SessionStatus, TransactionType
from .errors import BusinessRuleViolation, MissingReferenceError
from .ledger import Ledger
from .models import ZERO, DaySession, Transaction, calendar_day, coerce_decimal
from .notifications import ChangeNotifier


CASH_INFLOW_TYPES = frozenset({TransactionType.SALE, TransactionType.CREDIT_PAYMENT})
CASH_OUTFLOW_TYPES = frozenset({TransactionType.EXPENSE, TransactionType.PURCHASE})


@dataclass(frozen=True)
class CashSummary:
    """Drawer arithmetic for one day."""

    date: str
    opening_balance: Decimal
    cash_in: Decimal
    cash_out: Decimal
    expected_closing: Decimal
    actual_closing: Optional[Decimal] = None

    @property
    def variance(self) -> Optional[Decimal]:
        if self.actual_closing is None:
            return None
        return self.actual_closing - self.expected_closing


def is_cash_inflow(transaction: Transaction) -> bool:
    if transaction.type is TransactionType.TRANSFER:
        return transaction.destination_account_id == CASH_ACCOUNT_ID
    return transaction.payment_method is PaymentMethod.CASH and transaction.type in CASH_INFLOW_TYPES


def is_cash_outflow(transaction: Transaction) -> bool:
    if transaction.type is TransactionType.TRANSFER:
        return transaction.account_id == CASH_ACCOUNT_ID
    return transaction.payment_method is PaymentMethod.CASH and transaction.type in CASH_OUTFLOW_TYPES


class DaySessionBook(ChangeNotifier):
    """Holds at most one session per date and gates cash posting."""

    def __init__(self, ledger: Ledger, sessions: Iterable[DaySession] = ()) -> None:
        super().__init__()
        self._ledger = ledger
        self._sessions: Dict[str, DaySession] = {}
        self.replace_sessions(sessions, notify=False)

    def replace_sessions(self, sessions: Iterable[DaySession], *, notify: bool = True) -> None:
        self._sessions = {session.date: session for session in sessions}
        if notify:
            self._notify("day_sessions")

    def list_sessions(self) -> List[DaySession]:
        """Sessions newest date first."""

        return sorted(self._sessions.values(), key=lambda session: session.date, reverse=True)

    def get_session(self, day: object) -> Optional[DaySession]:
        return self._sessions.get(calendar_day(day))

    def is_open(self, day: object) -> bool:
        """True when ``day`` has a session in the OPEN state."""

        session = self.get_session(day)
        return session is not None and session.status is SessionStatus.OPEN

    def open_day(self, day: object, opening_balance: object) -> DaySession:
        """Open (or re-open) the session for ``day`` and set the cash float.

        Any existing session for the same date is superseded. The cash account
        balance is set to ``opening_balance`` directly, not through a posting.
        """

        key = calendar_day(day)
        opening = coerce_decimal(opening_balance)
        session = DaySession(
            date=key,
            opening_balance=opening,
            status=SessionStatus.OPEN,
            expected_closing=opening,
        )
        if key in self._sessions:
            log.info("Replacing existing session for %s", key)
        self._sessions[key] = session
        self._ledger.set_opening_balance(CASH_ACCOUNT_ID, opening)
        log.info("Opened day %s with float %s", key, opening)
        self._notify("open_day")
        return session

    def close_day(self, day: object, actual_closing: object) -> DaySession:
        """Close the session for ``day`` recording counted and expected cash.

        Raises:
            MissingReferenceError: If no session exists for ``day``.
            BusinessRuleViolation: If the session is already closed.
        """

        key = calendar_day(day)
        session = self._sessions.get(key)
        if session is None:
            log.warning("Close requested for %s but no session exists", key)
            raise MissingReferenceError(f"No day session exists for {key}")
        if session.status is SessionStatus.CLOSED:
            log.error("Session for %s is already closed", key)
            raise BusinessRuleViolation(f"Day session for {key} is already closed")

        summary = self.cash_summary(key)
        closed = replace(
            session,
            status=SessionStatus.CLOSED,
            actual_closing=coerce_decimal(actual_closing),
            expected_closing=summary.expected_closing,
        )
        self._sessions[key] = closed
        log.info(
            "Closed day %s: expected=%s actual=%s variance=%s",
            key,
            closed.expected_closing,
            closed.actual_closing,
            closed.variance,
        )
        self._notify("close_day")
        return closed

    def cash_summary(self, day: object) -> CashSummary:
        """Compute opening + cash in - cash out for ``day``.

        A day without a session counts from an opening balance of zero.
        """

        key = calendar_day(day)
        session = self._sessions.get(key)
        opening = session.opening_balance if session is not None else ZERO
        cash_in = ZERO
        cash_out = ZERO
        for transaction in self._ledger.filter_transactions(day=key):
            if is_cash_inflow(transaction):
                cash_in += transaction.amount
            elif is_cash_outflow(transaction):
                cash_out += transaction.amount
        expected = opening + cash_in - cash_out
        log.debug("Cash summary for %s: in=%s out=%s expected=%s", key, cash_in, cash_out, expected)
        return CashSummary(
            date=key,
            opening_balance=opening,
            cash_in=cash_in,
            cash_out=cash_out,
            expected_closing=expected,
            actual_closing=session.actual_closing if session is not None else None,
        )

    def expected_closing(self, day: object) -> Decimal:
        return self.cash_summary(day).expected_closing


__all__ = ["CashSummary", "DaySessionBook", "is_cash_inflow", "is_cash_outflow"]
