# tightbudget/recurring.py
"""Scheduling and generation of recurring transactions.

Templates live in the database; :func:`process_due` turns every due template
into a concrete :class:`Transaction` and moves its next occurrence forward
according to the configured advance policy.
"""
from __future__ import annotations

import logging
import uuid
from calendar import monthrange
from datetime import datetime, timedelta
from typing import List, Optional

from tightbudget import database
from tightbudget.core.models import (
    Frequency,
    RecurringTransaction,
    Transaction,
    UnrecognizedFrequency,
    parse_frequency,
)
from tightbudget.timeutil import (
    MILLIS_PER_DAY,
    from_millis,
    now_millis,
    to_millis,
    utc_day_key,
)

logger = logging.getLogger(__name__)

CALENDAR = "calendar"
FIXED = "fixed"

_FIXED_DAYS = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: 7,
    Frequency.MONTHLY: 30,
    Frequency.YEARLY: 365,
}

LAST_RUN_KEY = "last_processed_day"


class UnsupportedFrequencyError(ValueError):
    pass


def _add_months(original: datetime, months: int, anchor_day: int) -> datetime:
    month_index = original.month - 1 + months
    year = original.year + month_index // 12
    month = month_index % 12 + 1
    day = min(anchor_day, monthrange(year, month)[1])
    return original.replace(year=year, month=month, day=day)


def advance_timestamp(
    timestamp: int,
    frequency: str,
    policy: str = CALENDAR,
    anchor_day: int | None = None,
) -> int:
    """Return the occurrence one interval after ``timestamp``.

    ``anchor_day`` is the day of month a calendar schedule returns to after a
    short month clamped it; it defaults to the day of ``timestamp``.
    """
    schedule = parse_frequency(frequency)
    if isinstance(schedule, UnrecognizedFrequency):
        raise UnsupportedFrequencyError(f"Unsupported frequency '{frequency}'.")

    if policy == FIXED:
        return timestamp + _FIXED_DAYS[schedule] * MILLIS_PER_DAY
    if policy != CALENDAR:
        raise ValueError(f"Unknown advance policy '{policy}'.")

    current = from_millis(timestamp)
    if schedule is Frequency.DAILY:
        nxt = current + timedelta(days=1)
    elif schedule is Frequency.WEEKLY:
        nxt = current + timedelta(weeks=1)
    else:
        months = 1 if schedule is Frequency.MONTHLY else 12
        nxt = _add_months(current, months, anchor_day or current.day)
    return to_millis(nxt)


def _schedule_day(template: RecurringTransaction) -> int:
    """Day of month the template's calendar schedule is pinned to.

    An occurrence on the last day of a month is either a clamp of a later
    start day (Jan 31 -> Feb 28) or a month-end schedule, which keeps
    landing on the last day.
    """
    current = template.next_occurrence
    if current.day < monthrange(current.year, current.month)[1]:
        return current.day
    start_day = template.start_date.day
    return start_day if start_day >= current.day else 31


def next_occurrence_after(template: RecurringTransaction, policy: str = CALENDAR) -> int:
    return advance_timestamp(
        template.next_occurrence_timestamp,
        template.frequency,
        policy,
        anchor_day=_schedule_day(template),
    )


def new_recurring_transaction(
    user_id: int,
    merchant: str,
    category: str,
    amount,
    is_expense: bool = True,
    frequency: str = Frequency.MONTHLY.value,
    start_date_timestamp: int | None = None,
    next_occurrence_timestamp: int | None = None,
    description: str | None = None,
    receipt_path: str | None = None,
    template_id: str | None = None,
    now: int | None = None,
) -> RecurringTransaction:
    created = now if now is not None else now_millis()
    start = start_date_timestamp if start_date_timestamp is not None else created
    nxt = next_occurrence_timestamp if next_occurrence_timestamp is not None else start
    if nxt < start:
        raise ValueError(
            f"Next occurrence {from_millis(nxt).isoformat()} is before the "
            f"start date {from_millis(start).isoformat()}."
        )
    return RecurringTransaction(
        id=template_id or uuid.uuid4().hex,
        user_id=user_id,
        merchant=merchant,
        category=category,
        amount=amount,
        is_expense=is_expense,
        description=description,
        receipt_path=receipt_path,
        frequency=frequency,
        start_date_timestamp=start,
        next_occurrence_timestamp=nxt,
        last_processed_timestamp=0,
        is_active=True,
        created_at=created,
    )


def create_from_transaction(
    base: Transaction,
    frequency: str = Frequency.MONTHLY.value,
    policy: str = CALENDAR,
    now: int | None = None,
) -> RecurringTransaction:
    """Build a template from a transaction the user marked as recurring.

    The base transaction itself is the first instance, so the first scheduled
    occurrence is one interval after its date.
    """
    start = to_millis(base.date)
    return new_recurring_transaction(
        user_id=base.user_id,
        merchant=base.merchant,
        category=base.category,
        amount=base.amount,
        is_expense=base.is_expense,
        frequency=frequency,
        start_date_timestamp=start,
        next_occurrence_timestamp=advance_timestamp(start, frequency, policy),
        description=base.description,
        receipt_path=base.receipt_path,
        now=now,
    )


def materialize(template: RecurringTransaction) -> Transaction:
    """Concrete transaction for the template's pending occurrence."""
    if template.description:
        description = f"{template.description} (Recurring)"
    else:
        description = "(Recurring)"
    return Transaction(
        user_id=template.user_id,
        merchant=template.merchant,
        category=template.category,
        amount=template.amount,
        date=template.next_occurrence,
        is_expense=template.is_expense,
        description=description,
        receipt_path=None,
        is_recurring=False,
    )


def _process_template(
    db_path: str,
    template: RecurringTransaction,
    now: int,
    policy: str,
    catch_up: bool,
    max_catch_up: int,
) -> List[Transaction]:
    generated: List[Transaction] = []
    while template.is_due(now):
        nxt = next_occurrence_after(template, policy)
        stored = database.record_occurrence(
            db_path, template, materialize(template), nxt, now
        )
        if stored is None:
            logger.info(
                "Recurring template %s was already processed for %s",
                template.id, template.next_occurrence.isoformat(),
            )
            break
        generated.append(stored)
        logger.debug(
            "Created instance %s of %s; next occurrence %s",
            stored.id, template.id, from_millis(nxt).isoformat(),
        )
        template.next_occurrence_timestamp = nxt
        template.last_processed_timestamp = now
        if not catch_up or len(generated) >= max_catch_up:
            break
    return generated


def process_due(
    db_path: str,
    now: int | None = None,
    policy: str = CALENDAR,
    catch_up: bool = False,
    max_catch_up: int = 366,
) -> List[Transaction]:
    """Generate transactions for every active template that is due at ``now``.

    Without ``catch_up`` each due template yields a single occurrence per
    run. A template whose frequency cannot be advanced is skipped.
    """
    current = now if now is not None else now_millis()
    logger.info("Processing due recurring transactions at %s", from_millis(current).isoformat())

    generated: List[Transaction] = []
    for template in database.list_recurring(db_path, active_only=True):
        if not template.is_due(current):
            continue
        try:
            generated.extend(
                _process_template(db_path, template, current, policy, catch_up, max_catch_up)
            )
        except UnsupportedFrequencyError as exc:
            logger.warning("Skipping recurring template %s: %s", template.id, exc)

    logger.info("Processed %d recurring transaction(s)", len(generated))
    return generated


def process_if_needed(
    db_path: str,
    now: int | None = None,
    force: bool = False,
    **options,
) -> Optional[List[Transaction]]:
    """Run :func:`process_due` at most once per UTC day.

    Returns ``None`` when today's run already happened, unless ``force``.
    """
    current = now if now is not None else now_millis()
    today = utc_day_key(current)
    if not force and database.get_state(db_path, LAST_RUN_KEY) == today:
        logger.debug("Recurring transactions already processed for %s", today)
        return None

    generated = process_due(db_path, current, **options)
    database.set_state(db_path, LAST_RUN_KEY, today)
    return generated


def has_due(db_path: str, user_id: int, now: int | None = None) -> bool:
    current = now if now is not None else now_millis()
    return any(t.is_due(current) for t in database.list_recurring(db_path, user_id=user_id))


def cancel(db_path: str, template_id: str) -> bool:
    found = database.set_active(db_path, template_id, False)
    if found:
        logger.info("Recurring transaction %s cancelled", template_id)
    return found
