"""
Quarters -- Fiscal quarter identifiers, calendar, and edit locking.

Responsibility:
    Names the four reporting quarters, maps calendar dates onto the
    July-June fiscal year, and decides which quarter of a report is
    editable, locked, or visible.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.  The current date is
    always supplied by the caller (normally from an injected Clock).

Invariants enforced:
    - Exactly one quarter is editable: the current one.
    - Accumulated surplus rows are never editable; they are seeded once
      from the prior fiscal year.
    - Computed rows are never editable in any quarter.

Failure modes:
    - InvalidQuarterError from ``Quarter.parse`` on unrecognised input.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING

from execution_kernel.domain.activities import LineRole
from execution_kernel.exceptions import InvalidQuarterError

if TYPE_CHECKING:
    from execution_kernel.domain.activities import Activity
    from execution_kernel.domain.clock import Clock
    from execution_kernel.domain.values import ActivityValue

FISCAL_YEAR_START_MONTH = 7


class Quarter(str, Enum):
    """Reporting quarter of a fiscal year."""

    Q1 = "Q1"
    Q2 = "Q2"
    Q3 = "Q3"
    Q4 = "Q4"

    @property
    def position(self) -> int:
        return int(self.value[1]) - 1

    @property
    def slot(self) -> str:
        """Field name of this quarter on quarter-indexed records."""
        return self.value.lower()

    @property
    def previous(self) -> Quarter | None:
        return _ORDER[self.position - 1] if self.position > 0 else None

    @property
    def next(self) -> Quarter | None:
        return _ORDER[self.position + 1] if self.position < 3 else None

    @classmethod
    def parse(cls, value: object) -> Quarter:
        """Accept a Quarter, "Q1"/"q1", or an integer 1..4."""
        if isinstance(value, Quarter):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            if 1 <= value <= 4:
                return _ORDER[value - 1]
            raise InvalidQuarterError(value)
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                raise InvalidQuarterError(value) from None
        raise InvalidQuarterError(value)

    def up_to(self) -> tuple[Quarter, ...]:
        """All quarters from Q1 through this one, in order."""
        return _ORDER[: self.position + 1]


_ORDER: tuple[Quarter, ...] = (Quarter.Q1, Quarter.Q2, Quarter.Q3, Quarter.Q4)
QUARTERS = _ORDER


# ---------------------------------------------------------------------------
# Fiscal calendar
# ---------------------------------------------------------------------------


def fiscal_quarter_for(day: date) -> tuple[int, Quarter]:
    """Return ``(fiscal_year, quarter)`` for a calendar date.

    The fiscal year is labelled by the calendar year in which it starts:
    Q1 = Jul-Sep, Q2 = Oct-Dec, Q3 = Jan-Mar (year+1), Q4 = Apr-Jun (year+1).
    """
    if day.month >= FISCAL_YEAR_START_MONTH:
        quarter = Quarter.Q1 if day.month <= 9 else Quarter.Q2
        return day.year, quarter
    quarter = Quarter.Q3 if day.month <= 3 else Quarter.Q4
    return day.year - 1, quarter


def quarter_date_range(fiscal_year: int, quarter: Quarter) -> tuple[date, date]:
    """Inclusive calendar bounds of a fiscal quarter."""
    ranges = {
        Quarter.Q1: (date(fiscal_year, 7, 1), date(fiscal_year, 9, 30)),
        Quarter.Q2: (date(fiscal_year, 10, 1), date(fiscal_year, 12, 31)),
        Quarter.Q3: (date(fiscal_year + 1, 1, 1), date(fiscal_year + 1, 3, 31)),
        Quarter.Q4: (date(fiscal_year + 1, 4, 1), date(fiscal_year + 1, 6, 30)),
    }
    return ranges[quarter]


# ---------------------------------------------------------------------------
# Quarter context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QuarterContext:
    """
    Which quarter of a report is current, and what that implies.

    Contract:
        ``current`` is the only editable quarter.  Quarters after it are
        not yet active; quarters before it are locked history.

    Guarantees:
        - ``locked_quarters()`` is every quarter except ``current``.
        - ``is_visible()`` shows the current quarter plus any quarter that
          carries a positive amount on some activity.
    """

    current: Quarter
    fiscal_year: int | None = None

    @classmethod
    def from_date(cls, day: date) -> QuarterContext:
        fiscal_year, quarter = fiscal_quarter_for(day)
        return cls(current=quarter, fiscal_year=fiscal_year)

    @classmethod
    def from_clock(cls, clock: Clock) -> QuarterContext:
        return cls.from_date(clock.today())

    def is_editable(self, quarter: Quarter) -> bool:
        return quarter == self.current

    def locked_quarters(self) -> tuple[Quarter, ...]:
        return tuple(q for q in QUARTERS if q != self.current)

    def active_quarters(self) -> tuple[Quarter, ...]:
        return self.current.up_to()

    def is_future(self, quarter: Quarter) -> bool:
        return quarter.position > self.current.position

    def is_visible(self, quarter: Quarter, values: Iterable[ActivityValue]) -> bool:
        if quarter == self.current:
            return True
        return any(value.amounts.get(quarter) > 0 for value in values)

    def row_lock_reason(self, activity: Activity, quarter: Quarter) -> str | None:
        """Why ``activity`` cannot be edited in ``quarter``, or None if it can."""
        if activity.role == LineRole.ACCUMULATED_SURPLUS:
            return "accumulated surplus is carried from the prior fiscal year"
        if activity.is_computed or not activity.is_editable:
            return "value is computed"
        if not self.is_editable(quarter):
            return f"quarter {quarter.value} is locked"
        return None
