"""
Mapping between the editing taxonomy of recurrence categories and the
general recurrence rule model.

``classify`` reads a ``Recurrence`` and names its category; ``apply``
rebuilds the rule for a category. Rules the taxonomy cannot describe are
reported as ``CUSTOM`` and are never rewritten by ``apply``.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from .recurrence import Days, Frequency, MonthPosition, Recurrence, RecurrenceRule


class RecurrenceCategory(Enum):
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    WEEKLY_BY_DAYS = "weekly-by-days"
    MONTHLY = "monthly"
    MONTHLY_BY_DAY_OF_WEEK = "monthly-by-day-of-week"
    MONTHLY_BY_LAST_DAY_OF_WEEK = "monthly-by-last-day-of-week"
    YEARLY = "yearly"
    CUSTOM = "custom"


# Categories whose rule depends on more than the category value itself
# (weekday set or start date), so they are rebuilt on every apply().
ALWAYS_REBUILT = frozenset({
    RecurrenceCategory.MONTHLY_BY_DAY_OF_WEEK,
    RecurrenceCategory.MONTHLY_BY_LAST_DAY_OF_WEEK,
    RecurrenceCategory.WEEKLY_BY_DAYS,
})


def _single_rule(recurrence: Optional[Recurrence]) -> Optional[RecurrenceRule]:
    if recurrence is None or not recurrence.recurs or len(recurrence.rrules) != 1:
        return None
    return recurrence.rrules[0]


def classify(recurrence: Optional[Recurrence], reference_start) -> RecurrenceCategory:
    """
    Name the category of a recurrence.

    Args:
        recurrence: The event's recurrence, or None for a singular event.
        reference_start: Event start (date or datetime); monthly positional
            rules only match a category when their weekday is the start's.

    Returns:
        The matching category; CUSTOM for anything the taxonomy can't express.
    """
    if recurrence is None or not recurrence.recurs:
        return RecurrenceCategory.ONCE

    rule = _single_rule(recurrence)
    if rule is None or rule.extra:
        return RecurrenceCategory.CUSTOM

    freq = rule.frequency
    interval = rule.interval

    if freq == Frequency.DAILY and interval == 1:
        return RecurrenceCategory.DAILY
    elif freq == Frequency.WEEKLY and interval == 1:
        if rule.by_day == Days.NO_DAYS:
            return RecurrenceCategory.WEEKLY
        return RecurrenceCategory.WEEKLY_BY_DAYS
    elif freq == Frequency.WEEKLY and interval == 2 and rule.by_day == Days.NO_DAYS:
        return RecurrenceCategory.BIWEEKLY
    elif freq == Frequency.MONTHLY_BY_DAY and interval == 1:
        return RecurrenceCategory.MONTHLY
    elif freq == Frequency.MONTHLY_BY_POS and interval == 1:
        positions = rule.by_month_positions
        if len(positions) == 1 and positions[0].weekday == reference_start.weekday():
            if positions[0].pos > 0:
                return RecurrenceCategory.MONTHLY_BY_DAY_OF_WEEK
            elif positions[0].pos == -1:
                return RecurrenceCategory.MONTHLY_BY_LAST_DAY_OF_WEEK
    elif freq == Frequency.YEARLY_BY_MONTH and interval == 1:
        return RecurrenceCategory.YEARLY

    return RecurrenceCategory.CUSTOM


def weekly_days(recurrence: Optional[Recurrence]) -> Days:
    """Weekday set of a plain weekly rule; NO_DAYS for any other recurrence."""
    rule = _single_rule(recurrence)
    if rule is None or rule.frequency != Frequency.WEEKLY or rule.interval != 1:
        return Days.NO_DAYS
    return rule.by_day


def recurrence_end_date(recurrence: Optional[Recurrence]) -> Optional[date]:
    """Inclusive end date of the default rule, if the recurrence has one."""
    if recurrence is None or not recurrence.recurs:
        return None
    return recurrence.default_rrule.end_date


def week_of_month(day: date) -> int:
    """1 for days 1-7, 2 for days 8-14, and so on."""
    return (day.day - 1) // 7 + 1


def build_rule(category: RecurrenceCategory, days: Days, reference_start) -> Optional[RecurrenceRule]:
    """
    Fresh rule for a category, or None for ONCE and CUSTOM.

    ``reference_start`` anchors the monthly positional categories.
    """
    if category == RecurrenceCategory.DAILY:
        return RecurrenceRule(frequency=Frequency.DAILY)
    elif category == RecurrenceCategory.WEEKLY:
        return RecurrenceRule(frequency=Frequency.WEEKLY)
    elif category == RecurrenceCategory.BIWEEKLY:
        return RecurrenceRule(frequency=Frequency.WEEKLY, interval=2)
    elif category == RecurrenceCategory.WEEKLY_BY_DAYS:
        return RecurrenceRule(frequency=Frequency.WEEKLY, by_day=Days(days or Days.NO_DAYS))
    elif category == RecurrenceCategory.MONTHLY:
        return RecurrenceRule(frequency=Frequency.MONTHLY_BY_DAY)
    elif category == RecurrenceCategory.MONTHLY_BY_DAY_OF_WEEK:
        position = MonthPosition(week_of_month(reference_start), reference_start.weekday())
        return RecurrenceRule(frequency=Frequency.MONTHLY_BY_POS, by_month_positions=[position])
    elif category == RecurrenceCategory.MONTHLY_BY_LAST_DAY_OF_WEEK:
        position = MonthPosition(-1, reference_start.weekday())
        return RecurrenceRule(frequency=Frequency.MONTHLY_BY_POS, by_month_positions=[position])
    elif category == RecurrenceCategory.YEARLY:
        return RecurrenceRule(frequency=Frequency.YEARLY_BY_MONTH)
    return None


def apply(category: RecurrenceCategory,
          days: Days,
          end_date: Optional[date],
          reference_start,
          recurrence: Recurrence) -> Recurrence:
    """
    Rewrite ``recurrence`` so it describes ``category``.

    Args:
        category: Requested category.
        days: Weekday set, used by WEEKLY_BY_DAYS.
        end_date: Inclusive end date; None recurs indefinitely.
        reference_start: Event start anchoring the monthly positional rules.
        recurrence: Modified in place.

    Returns:
        The same ``recurrence`` object.
    """
    if isinstance(end_date, datetime):
        end_date = end_date.date()

    if category == RecurrenceCategory.ONCE:
        recurrence.clear()
        return recurrence

    current = classify(recurrence, reference_start)
    if current != category or category in ALWAYS_REBUILT:
        rule = build_rule(category, days, reference_start)
        if rule is not None:
            recurrence.set_rule(rule)

    if category == RecurrenceCategory.CUSTOM:
        # Only an explicit change of end date touches a custom rule
        if recurrence.recurs and recurrence_end_date(recurrence) != end_date:
            recurrence.set_end_date(end_date)
    else:
        recurrence.set_end_date(end_date)
    return recurrence
