"""Recurring expense scheduler.

Evaluation is cooperative: callers run :meth:`RecurringExpenseScheduler.run_due`
whenever the schedule list changes or on a periodic tick. Each due schedule
produces one EXPENSE per day at most, identified as
``RECUR-<schedule id>-<YYYY-MM-DD>`` so a second evaluation on the same day
finds the existing posting and skips it.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, date, datetime
from typing import Callable, Dict, Iterable, List, Optional

from . import log
from .constants import FREQUENCY_INTERVAL_DAYS, Frequency
from .errors import BusinessRuleViolation
from .ledger import Ledger
from .models import ExpenseDraft, RecurringExpense, Transaction, coerce_date
from .notifications import ChangeNotifier


def _today() -> date:
    return datetime.now(UTC).date()


def recurring_transaction_id(schedule_id: str, day: date) -> str:
    return f"RECUR-{schedule_id}-{day.isoformat()}"


def days_since_last_run(schedule: RecurringExpense, today: date) -> int:
    """Whole days between the last run (or start date) and ``today``."""

    anchor = schedule.last_processed_date or schedule.start_date
    return (today - anchor).days


def is_due(schedule: RecurringExpense, today: date) -> bool:
    """DAILY after 1 day, WEEKLY after 7, MONTHLY after a flat 30."""

    interval = FREQUENCY_INTERVAL_DAYS[Frequency(schedule.frequency)]
    return days_since_last_run(schedule, today) >= interval


class RecurringExpenseScheduler(ChangeNotifier):
    """Owns the schedule list and materializes due schedules into the ledger."""

    def __init__(
        self,
        ledger: Ledger,
        schedules: Iterable[RecurringExpense] = (),
        *,
        today: Callable[[], date] = _today,
    ) -> None:
        super().__init__()
        self._ledger = ledger
        self._today = today
        self._schedules: Dict[str, RecurringExpense] = {}
        self.replace_schedules(schedules, notify=False)

    def replace_schedules(self, schedules: Iterable[RecurringExpense], *, notify: bool = True) -> None:
        self._schedules = {schedule.id: schedule for schedule in schedules}
        if notify:
            self._notify("recurring_expenses")

    def list_schedules(self) -> List[RecurringExpense]:
        return list(self._schedules.values())

    def get_schedule(self, schedule_id: str) -> Optional[RecurringExpense]:
        return self._schedules.get(schedule_id)

    def add_schedule(self, schedule: RecurringExpense) -> RecurringExpense:
        """Store a schedule; ``last_processed_date`` is reset because only the scheduler sets it."""

        schedule = replace(schedule, last_processed_date=None)
        self._schedules[schedule.id] = schedule
        log.info(
            "Added %s recurring expense '%s' (%s, amount=%s)",
            schedule.frequency.value,
            schedule.id,
            schedule.description,
            schedule.amount,
        )
        self._notify("recurring_expenses")
        return schedule

    def remove_schedule(self, schedule_id: str) -> Optional[RecurringExpense]:
        removed = self._schedules.pop(schedule_id, None)
        if removed is not None:
            log.info("Removed recurring expense '%s'", schedule_id)
            self._notify("recurring_expenses")
        return removed

    def run_due(self, today: Optional[object] = None) -> List[Transaction]:
        """Post every due schedule once for ``today`` and stamp it as processed.

        Returns the transactions created by this run; an empty list when
        nothing was due or everything due was already posted today.
        """

        run_day = coerce_date(today) or self._today()
        posted_at = datetime(run_day.year, run_day.month, run_day.day, tzinfo=UTC)
        created: List[Transaction] = []

        for schedule in list(self._schedules.values()):
            if not is_due(schedule, run_day):
                continue
            transaction_id = recurring_transaction_id(schedule.id, run_day)
            if self._ledger.contains(transaction_id):
                log.debug("Recurring expense '%s' already posted as '%s'", schedule.id, transaction_id)
                continue
            draft = ExpenseDraft(
                id=transaction_id,
                date=posted_at,
                amount=schedule.amount,
                payment_method=schedule.payment_method,
                account_id=schedule.account_id,
                description=f"[RECURRING] {schedule.description}",
            )
            try:
                created.append(self._ledger.add(draft))
            except BusinessRuleViolation as exc:
                log.error("Skipped recurring expense '%s': %s", schedule.id, exc)
                continue
            self._schedules[schedule.id] = replace(schedule, last_processed_date=run_day)
            log.info("Materialized recurring expense '%s' as '%s'", schedule.id, transaction_id)

        if created:
            self._notify("recurring_expenses")
        return created


__all__ = [
    "RecurringExpenseScheduler",
    "recurring_transaction_id",
    "days_since_last_run",
    "is_due",
]
