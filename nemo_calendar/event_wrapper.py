"""
Plain-value event model with iCalendar conversion.

``CalendarEvent`` carries the fields the recurrence core works on: start,
end, all-day flag, recurrence and recurrence id. It converts to and from
``icalendar.Event`` so events can come from, and go back to, any iCalendar
source.
"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, date, timedelta
from typing import Optional

from icalendar import Event as ICalEvent, Calendar as ICalCalendar

from .recurrence import Recurrence, RecurrenceRule
from .timezone_utils import as_datetime, to_local_datetime


DEFAULT_PROD_ID = '-//nemo-calendar//NONSGML v1.0//EN'


def new_uid() -> str:
    """Generate an upper-case event UID."""
    return str(uuid.uuid4()).upper()


@dataclass
class CalendarEvent:
    """
    A calendar event: a singular event, a recurring series, or a detached
    instance of a series (``recurrence_id`` set).

    ``start``/``end`` are aware datetimes, or naive ones for floating time.
    All-day events always use naive midnight datetimes; their ``end`` is
    exclusive as in iCalendar.
    """
    uid: str = field(default_factory=new_uid)
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    all_day: bool = False
    summary: str = ''
    description: str = ''
    location: str = ''
    recurrence: Recurrence = field(default_factory=Recurrence)

    # Original slot start for a detached occurrence of a series
    recurrence_id: Optional[datetime] = None

    # ==================== Convenience Properties ====================

    @property
    def recurs(self) -> bool:
        """Check if this event has recurrence rules."""
        return self.recurrence.recurs

    @property
    def is_exception(self) -> bool:
        """Check if this event replaces one occurrence of a series."""
        return self.recurrence_id is not None

    @property
    def effective_end(self) -> Optional[datetime]:
        """End time, falling back to the start when no end is set."""
        return self.end if self.end is not None else self.start

    @property
    def duration(self) -> timedelta:
        """Fixed duration copied onto every occurrence of a series."""
        if self.start is None or self.end is None:
            return timedelta(0)
        return self.end - self.start

    @property
    def rrule(self) -> Optional[str]:
        """Get the default RRULE as a string, if present."""
        rule = self.recurrence.default_rrule
        if rule is None or not self.recurs:
            return None
        return rule.to_ical(self._ical_time(self.start)).to_ical().decode('utf-8')

    def copy(self) -> 'CalendarEvent':
        return copy.deepcopy(self)

    # ==================== iCalendar ====================

    def to_ical(self) -> ICalEvent:
        """Build an ``icalendar.Event`` for this event."""
        vevent = ICalEvent()
        vevent.add('uid', self.uid)
        if self.summary:
            vevent.add('summary', self.summary)
        if self.description:
            vevent.add('description', self.description)
        if self.location:
            vevent.add('location', self.location)

        if self.start is not None:
            vevent.add('dtstart', self._ical_time(self.start))
        if self.end is not None:
            vevent.add('dtend', self._ical_time(self.end))
        if self.recurrence_id is not None:
            vevent.add('recurrence-id', self._ical_time(self.recurrence_id))

        for rule in self.recurrence.rrules:
            vevent.add('rrule', rule.to_ical(self._ical_time(self.start)))
        if self.recurrence.exdates:
            vevent.add('exdate', [self._ical_time(dt) for dt in self.recurrence.exdates])
        return vevent

    def _ical_time(self, dt: datetime):
        if self.all_day:
            return dt.date() if isinstance(dt, datetime) else dt
        return dt

    @classmethod
    def from_ical(cls, vevent: ICalEvent) -> 'CalendarEvent':
        """
        Create a CalendarEvent from an ``icalendar.Event``.

        Date-valued DTSTART marks an all-day event; its times become
        floating midnight datetimes.
        """
        uid = vevent.get('UID')
        dtstart = vevent.get('DTSTART')
        dtend = vevent.get('DTEND')
        start = dtstart.dt if dtstart is not None else None
        all_day = isinstance(start, date) and not isinstance(start, datetime)

        end = None
        if dtend is not None:
            end = dtend.dt
        elif vevent.get('DURATION') is not None and start is not None:
            end = start + vevent.get('DURATION').dt

        recurrence = Recurrence(
            rrules=[RecurrenceRule.from_ical(r, start) for r in _as_list(vevent.get('RRULE'))],
            exdates=[as_datetime(d.dt) for exdate in _as_list(vevent.get('EXDATE'))
                     for d in exdate.dts],
        )

        recurrence_id = vevent.get('RECURRENCE-ID')
        return cls(
            uid=str(uid) if uid else new_uid(),
            start=as_datetime(start) if start is not None else None,
            end=as_datetime(end) if end is not None else None,
            all_day=all_day,
            summary=str(vevent.get('SUMMARY', '')),
            description=str(vevent.get('DESCRIPTION', '')),
            location=str(vevent.get('LOCATION', '')),
            recurrence=recurrence,
            recurrence_id=as_datetime(recurrence_id.dt) if recurrence_id is not None else None,
        )

    def __repr__(self):
        return (f"CalendarEvent(uid={self.uid!r}, summary={self.summary!r}, "
                f"start={self.start}, recurrence_id={self.recurrence_id})")


@dataclass
class EventOccurrence:
    """One concrete instance of an event, computed on demand."""
    event_uid: str
    recurrence_id: Optional[datetime]
    start: datetime
    end: datetime
    all_day: bool = False

    @property
    def recurrence_id_string(self) -> str:
        if self.recurrence_id is None:
            return ''
        return recurrence_id_to_string(self.recurrence_id)


def recurrence_id_to_string(dt: datetime) -> str:
    """
    ISO 8601 text for a recurrence id.

    Aware values always include their UTC offset; floating values are
    written without one.
    """
    if dt.tzinfo is None:
        return dt.isoformat(timespec='seconds')
    return to_local_datetime(dt).isoformat(timespec='seconds')


def recurrence_id_from_string(text: str) -> Optional[datetime]:
    """Inverse of ``recurrence_id_to_string``; empty text means no id."""
    if not text:
        return None
    return datetime.fromisoformat(text)


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def parse_icalendar(ical_text: str) -> ICalCalendar:
    """
    Parse iCalendar text into an icalendar.Calendar object.

    Args:
        ical_text: Raw iCalendar text (VCALENDAR)

    Returns:
        Parsed Calendar object
    """
    return ICalCalendar.from_ical(ical_text)


def events_from_icalendar(ical_text: str) -> list[CalendarEvent]:
    """All VEVENTs of an iCalendar document, masters and exceptions alike."""
    vcal = parse_icalendar(ical_text)
    return [CalendarEvent.from_ical(component)
            for component in vcal.walk()
            if component.name == 'VEVENT']


def events_to_icalendar(events: list[CalendarEvent], prod_id: Optional[str] = None) -> str:
    """Serialize events into one VCALENDAR document."""
    vcal = ICalCalendar()
    vcal.add('prodid', prod_id or DEFAULT_PROD_ID)
    vcal.add('version', '2.0')
    for event in events:
        vcal.add_component(event.to_ical())
    return vcal.to_ical().decode('utf-8')
