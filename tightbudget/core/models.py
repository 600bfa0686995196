# tightbudget/core/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Union

from tightbudget.timeutil import MILLIS_PER_DAY, from_millis, now_millis


class Frequency(Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class UnrecognizedFrequency:
    """A stored frequency string this version does not know how to schedule."""

    raw: str

    @property
    def label(self) -> str:
        return self.raw


def parse_frequency(raw: str) -> Union[Frequency, UnrecognizedFrequency]:
    try:
        return Frequency(raw)
    except ValueError:
        return UnrecognizedFrequency(raw)


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() first so floats like 12.34 don't pick up binary noise
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount


@dataclass
class Transaction:
    user_id: int
    merchant: str
    category: str
    amount: Decimal
    date: datetime
    is_expense: bool = True
    description: Optional[str] = None
    receipt_path: Optional[str] = None
    is_recurring: bool = False
    id: Optional[int] = None

    def __post_init__(self):
        self.amount = _to_decimal(self.amount)

    @property
    def signed_amount(self) -> Decimal:
        return -self.amount if self.is_expense else self.amount


@dataclass
class RecurringTransaction:
    """Template that generates concrete transactions on a schedule.

    All timestamps are epoch milliseconds. ``last_processed_timestamp`` is 0
    until the first occurrence has been materialized.
    """

    id: str = ""
    user_id: int = 0
    merchant: str = ""
    category: str = ""
    amount: Decimal = Decimal("0")
    is_expense: bool = True
    description: Optional[str] = None
    receipt_path: Optional[str] = None
    frequency: str = Frequency.MONTHLY.value
    start_date_timestamp: int = field(default_factory=now_millis)
    next_occurrence_timestamp: int = field(default_factory=now_millis)
    last_processed_timestamp: int = 0
    is_active: bool = True
    created_at: int = field(default_factory=now_millis)

    def __post_init__(self):
        self.amount = _to_decimal(self.amount)
        if self.amount < 0:
            raise ValueError(
                f"Recurring transaction amount must not be negative: {self.amount}"
            )

    @property
    def start_date(self) -> datetime:
        return from_millis(self.start_date_timestamp)

    @property
    def next_occurrence(self) -> datetime:
        return from_millis(self.next_occurrence_timestamp)

    @property
    def last_processed(self) -> Optional[datetime]:
        if self.last_processed_timestamp > 0:
            return from_millis(self.last_processed_timestamp)
        return None

    @property
    def has_been_processed(self) -> bool:
        return self.last_processed_timestamp > 0

    @property
    def schedule(self) -> Union[Frequency, UnrecognizedFrequency]:
        return parse_frequency(self.frequency)

    def is_due(self, current_time: int) -> bool:
        return self.is_active and self.next_occurrence_timestamp <= current_time

    def frequency_label(self) -> str:
        return self.schedule.label

    def days_until_next(self, current_time: int) -> int:
        """Whole days of elapsed time until the next occurrence.

        Truncates toward zero and is negative when the occurrence is overdue.
        Not aligned to midnight.
        """
        diff = self.next_occurrence_timestamp - current_time
        days = abs(diff) // MILLIS_PER_DAY
        return days if diff >= 0 else -days
