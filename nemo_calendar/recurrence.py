"""
Recurrence data model.

A ``Recurrence`` holds the RRULE expressions and excluded dates of one
event. Each ``RecurrenceRule`` is a tagged value mirroring the RFC 5545
rule model closely enough to round-trip through ``icalendar.vRecur`` and
to expand with ``dateutil.rrule``.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, date, MAXYEAR
from enum import Enum, IntFlag
from typing import Optional

import pytz
from dateutil import rrule as du_rrule
from icalendar import vRecur

from .timezone_utils import as_datetime, localize, to_local_datetime, to_zone_naive


DAY_CODES = ["MO", "TU", "WE", "TH", "FR", "SA", "SU"]

# The Gregorian calendar repeats exactly (weekdays, leap years, week
# numbers) every 400 years
GREGORIAN_CYCLE_YEARS = 400


class Frequency(Enum):
    """Rule frequency, with monthly and yearly split by what they anchor on."""
    NONE = "none"
    SECONDLY = "secondly"
    MINUTELY = "minutely"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY_BY_DAY = "monthly-by-day"      # day of month
    MONTHLY_BY_POS = "monthly-by-pos"      # Nth weekday of month
    YEARLY_BY_MONTH = "yearly-by-month"
    YEARLY_BY_DAY = "yearly-by-day"        # day of year
    YEARLY_BY_POS = "yearly-by-pos"


_ICAL_FREQ = {
    Frequency.SECONDLY: 'SECONDLY',
    Frequency.MINUTELY: 'MINUTELY',
    Frequency.HOURLY: 'HOURLY',
    Frequency.DAILY: 'DAILY',
    Frequency.WEEKLY: 'WEEKLY',
    Frequency.MONTHLY_BY_DAY: 'MONTHLY',
    Frequency.MONTHLY_BY_POS: 'MONTHLY',
    Frequency.YEARLY_BY_MONTH: 'YEARLY',
    Frequency.YEARLY_BY_DAY: 'YEARLY',
    Frequency.YEARLY_BY_POS: 'YEARLY',
}

_SIMPLE_FREQ = {
    'SECONDLY': Frequency.SECONDLY,
    'MINUTELY': Frequency.MINUTELY,
    'HOURLY': Frequency.HOURLY,
    'DAILY': Frequency.DAILY,
    'WEEKLY': Frequency.WEEKLY,
}

_DATEUTIL_FREQ = {
    'SECONDLY': du_rrule.SECONDLY,
    'MINUTELY': du_rrule.MINUTELY,
    'HOURLY': du_rrule.HOURLY,
    'DAILY': du_rrule.DAILY,
    'WEEKLY': du_rrule.WEEKLY,
    'MONTHLY': du_rrule.MONTHLY,
    'YEARLY': du_rrule.YEARLY,
}

# RFC 5545 parts kept verbatim, and their dateutil keyword
_EXTRA_PARTS = {
    'BYSETPOS': 'bysetpos',
    'BYHOUR': 'byhour',
    'BYMINUTE': 'byminute',
    'BYSECOND': 'bysecond',
    'BYWEEKNO': 'byweekno',
    'WKST': 'wkst',
}

_DU_WEEKDAYS = [du_rrule.MO, du_rrule.TU, du_rrule.WE, du_rrule.TH,
                du_rrule.FR, du_rrule.SA, du_rrule.SU]


class Days(IntFlag):
    """Weekday bitmask, Monday first."""
    NO_DAYS = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 4
    THURSDAY = 8
    FRIDAY = 16
    SATURDAY = 32
    SUNDAY = 64

    @classmethod
    def from_weekday(cls, weekday: int) -> 'Days':
        """Flag for a ``date.weekday()`` value (0 = Monday)."""
        return cls(1 << weekday)

    @classmethod
    def from_weekdays(cls, weekdays) -> 'Days':
        days = cls.NO_DAYS
        for weekday in weekdays:
            days |= cls.from_weekday(weekday)
        return days

    def weekdays(self) -> list[int]:
        """Weekday numbers (0 = Monday) set in this mask, in order."""
        return [i for i in range(7) if self & (1 << i)]


@dataclass(frozen=True)
class MonthPosition:
    """
    A weekday at a position within the month.

    ``pos`` > 0 is the Nth such weekday, -1 the last one, 0 every one.
    ``weekday`` follows ``date.weekday()``.
    """
    pos: int
    weekday: int

    def to_ical(self) -> str:
        prefix = str(self.pos) if self.pos else ''
        return f"{prefix}{DAY_CODES[self.weekday]}"

    @classmethod
    def from_ical(cls, value) -> 'MonthPosition':
        text = str(value).strip().upper()
        code = text[-2:]
        if code not in DAY_CODES:
            raise ValueError(f"Invalid BYDAY value: {value!r}")
        number = text[:-2]
        return cls(pos=int(number) if number not in ('', '+') else 0,
                   weekday=DAY_CODES.index(code))


@dataclass
class RecurrenceRule:
    """One recurrence expression (an RRULE)."""
    frequency: Frequency = Frequency.NONE
    interval: int = 1
    by_day: Days = Days.NO_DAYS
    by_month_positions: list[MonthPosition] = field(default_factory=list)
    by_month_days: list[int] = field(default_factory=list)
    by_months: list[int] = field(default_factory=list)
    by_year_days: list[int] = field(default_factory=list)
    end_date: Optional[date] = None  # Inclusive
    count: Optional[int] = None
    # Parts the model does not interpret, e.g. {'BYSETPOS': [-1]}
    extra: dict = field(default_factory=dict)

    @property
    def recurs_forever(self) -> bool:
        return self.end_date is None and self.count is None

    def set_end_date(self, end_date: Optional[date]) -> None:
        """Set an inclusive end date; None means recur indefinitely."""
        if isinstance(end_date, datetime):
            end_date = end_date.date()
        self.end_date = end_date
        self.count = None

    # ==================== iCalendar ====================

    def to_ical(self, dtstart: Optional[datetime] = None) -> vRecur:
        """
        Build the ``icalendar.vRecur`` for this rule.

        Args:
            dtstart: The event start; decides whether UNTIL is written as a
                date, a floating datetime or a UTC datetime.
        """
        if self.frequency == Frequency.NONE:
            raise ValueError("Cannot serialize an empty recurrence rule")

        parts = {'FREQ': _ICAL_FREQ[self.frequency]}
        if self.interval != 1:
            parts['INTERVAL'] = self.interval
        if self.count is not None:
            parts['COUNT'] = self.count
        elif self.end_date is not None:
            parts['UNTIL'] = _until_value(self.end_date, dtstart)

        byday = [DAY_CODES[d] for d in self.by_day.weekdays()]
        byday += [p.to_ical() for p in self.by_month_positions]
        if byday:
            parts['BYDAY'] = byday
        if self.by_month_days:
            parts['BYMONTHDAY'] = list(self.by_month_days)
        if self.by_year_days:
            parts['BYYEARDAY'] = list(self.by_year_days)
        if self.by_months:
            parts['BYMONTH'] = list(self.by_months)
        for key, value in self.extra.items():
            parts[key] = list(value)
        return vRecur(parts)

    @classmethod
    def from_ical(cls, value, dtstart=None) -> 'RecurrenceRule':
        """
        Build a rule from a ``vRecur`` (or its text form).

        Args:
            value: The RRULE value.
            dtstart: The event start; a UTC UNTIL is read as a date in its
                zone (in the local zone when it has none).
        """
        if isinstance(value, (str, bytes)):
            if isinstance(value, bytes):
                value = value.decode('utf-8')
            value = vRecur.from_ical(value)

        parts = {str(k).upper(): v if isinstance(v, list) else [v] for k, v in value.items()}
        freq = str(parts.get('FREQ', [''])[0]).upper()
        if freq not in _DATEUTIL_FREQ:
            raise ValueError(f"Unsupported recurrence frequency: {freq!r}")

        positions = [MonthPosition.from_ical(v) for v in parts.get('BYDAY', [])]
        rule = cls(
            interval=int(parts.get('INTERVAL', [1])[0]),
            by_month_days=[int(v) for v in parts.get('BYMONTHDAY', [])],
            by_months=[int(v) for v in parts.get('BYMONTH', [])],
            by_year_days=[int(v) for v in parts.get('BYYEARDAY', [])],
            extra={k: list(parts[k]) for k in _EXTRA_PARTS if k in parts},
        )

        if freq == 'MONTHLY':
            if positions:
                rule.frequency = Frequency.MONTHLY_BY_POS
                rule.by_month_positions = positions
            else:
                rule.frequency = Frequency.MONTHLY_BY_DAY
        elif freq == 'YEARLY':
            if rule.by_year_days:
                rule.frequency = Frequency.YEARLY_BY_DAY
            elif positions:
                rule.frequency = Frequency.YEARLY_BY_POS
                rule.by_month_positions = positions
            else:
                rule.frequency = Frequency.YEARLY_BY_MONTH
        else:
            rule.frequency = _SIMPLE_FREQ[freq]
            if any(p.pos for p in positions):
                # Positional BYDAY outside monthly/yearly rules: keep as-is
                rule.extra['BYDAY'] = [p.to_ical() for p in positions]
            else:
                rule.by_day = Days.from_weekdays(p.weekday for p in positions)

        if 'COUNT' in parts:
            rule.count = int(parts['COUNT'][0])
        elif 'UNTIL' in parts:
            rule.end_date = _until_date(parts['UNTIL'][0], dtstart)
        return rule

    # ==================== Expansion ====================

    def to_dateutil(self, dtstart: datetime, cycles: int = 0) -> du_rrule.rrule:
        """
        Build a ``dateutil`` rule anchored at a wall-clock (naive) start.

        The inclusive end date becomes an UNTIL at the start's time of day
        on that date.

        Args:
            dtstart: Naive start of the series.
            cycles: Number of 400-year calendar cycles to move the rule
                forward; the shifted rule generates the same instances,
                each moved by the same number of years.
        """
        if self.frequency == Frequency.NONE:
            raise ValueError("Cannot expand an empty recurrence rule")

        kwargs = {
            'dtstart': shift_cycles(dtstart, cycles),
            'interval': self.interval,
        }
        if self.count is not None:
            kwargs['count'] = self.count
        elif self.end_date is not None:
            until = datetime.combine(self.end_date, dtstart.time())
            if until.year + GREGORIAN_CYCLE_YEARS * cycles <= MAXYEAR:
                kwargs['until'] = shift_cycles(until, cycles)

        weekdays = [_DU_WEEKDAYS[d] for d in self.by_day.weekdays()]
        weekdays += [_DU_WEEKDAYS[p.weekday](p.pos) if p.pos else _DU_WEEKDAYS[p.weekday]
                     for p in self.by_month_positions]
        if 'BYDAY' in self.extra:
            weekdays += [_du_weekday(MonthPosition.from_ical(v)) for v in self.extra['BYDAY']]
        if weekdays:
            kwargs['byweekday'] = weekdays
        if self.by_month_days:
            kwargs['bymonthday'] = self.by_month_days
        if self.by_months:
            kwargs['bymonth'] = self.by_months
        if self.by_year_days:
            kwargs['byyearday'] = self.by_year_days
        for key, keyword in _EXTRA_PARTS.items():
            if key not in self.extra:
                continue
            values = self.extra[key]
            if key == 'WKST':
                kwargs[keyword] = DAY_CODES.index(str(values[0]).upper())
            else:
                kwargs[keyword] = [int(v) for v in values]

        return du_rrule.rrule(_DATEUTIL_FREQ[_ICAL_FREQ[self.frequency]], **kwargs)


@dataclass
class Recurrence:
    """All recurrence data of an event: its rules and excluded instances."""
    rrules: list[RecurrenceRule] = field(default_factory=list)
    exdates: list[datetime] = field(default_factory=list)

    @property
    def recurs(self) -> bool:
        return any(r.frequency != Frequency.NONE for r in self.rrules)

    @property
    def default_rrule(self) -> Optional[RecurrenceRule]:
        """The first rule, the one the category taxonomy describes."""
        return self.rrules[0] if self.rrules else None

    def clear(self) -> None:
        """Drop every rule and exception date; the event becomes singular."""
        self.rrules = []
        self.exdates = []

    def set_rule(self, rule: RecurrenceRule) -> None:
        """Replace every rule with ``rule``."""
        self.rrules = [rule]

    def set_end_date(self, end_date: Optional[date]) -> None:
        rule = self.default_rrule
        if rule is not None:
            rule.set_end_date(end_date)

    def add_exdate(self, dt: datetime) -> None:
        dt = as_datetime(dt)
        if dt not in self.exdates:
            self.exdates.append(dt)

    def copy(self) -> 'Recurrence':
        return copy.deepcopy(self)


def _du_weekday(position: MonthPosition):
    weekday = _DU_WEEKDAYS[position.weekday]
    return weekday(position.pos) if position.pos else weekday


def _until_value(end_date: date, dtstart: Optional[datetime]):
    """UNTIL must have the value type of DTSTART (RFC 5545, 3.3.10)."""
    if dtstart is None or (isinstance(dtstart, date) and not isinstance(dtstart, datetime)):
        return end_date
    until = datetime.combine(end_date, dtstart.time())
    if dtstart.tzinfo is None:
        return until
    return localize(dtstart.tzinfo, until).astimezone(pytz.UTC)


def _until_date(until, dtstart) -> date:
    """Inclusive end date for an UNTIL value, read in the event's zone."""
    if not isinstance(until, datetime):
        return until
    if until.tzinfo is None:
        return until.date()
    zone = getattr(dtstart, 'tzinfo', None)
    if zone is not None:
        return to_zone_naive(until, zone).date()
    return to_local_datetime(until).date()


def shift_cycles(dt: datetime, cycles: int) -> datetime:
    """Move a datetime by whole 400-year cycles; negative moves back."""
    if not cycles:
        return dt
    return dt.replace(year=dt.year + GREGORIAN_CYCLE_YEARS * cycles)
