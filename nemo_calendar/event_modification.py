"""
Editing session for a calendar event.

Collects changes to an event, including its recurrence category, and
writes them to a repository on save. The recurrence rule itself is only
regenerated on save, from the category, weekday set and end date.
"""

from datetime import date, datetime
from typing import Optional

from .event_repository import EventRepository
from .event_wrapper import CalendarEvent, EventOccurrence
from .recurrence import Days
from .recurrence_pattern import (
    RecurrenceCategory, apply, classify, recurrence_end_date, weekly_days
)
from .timezone_utils import localize, lookup_timezone


class EventModification:
    """Pending changes to an existing event, or a new one."""

    def __init__(self, event: Optional[CalendarEvent] = None):
        if event is None:
            self._event = CalendarEvent()
            self.recur = RecurrenceCategory.ONCE
            self.recur_weekly_days = Days.NO_DAYS
            self._recur_end_date: Optional[date] = None
        else:
            self._event = event.copy()
            self.recur = classify(event.recurrence, event.start)
            self.recur_weekly_days = weekly_days(event.recurrence)
            self._recur_end_date = recurrence_end_date(event.recurrence)

    # ==================== Fields ====================

    @property
    def uid(self) -> str:
        return self._event.uid

    @property
    def summary(self) -> str:
        return self._event.summary

    @summary.setter
    def summary(self, value: str):
        self._event.summary = value

    @property
    def description(self) -> str:
        return self._event.description

    @description.setter
    def description(self, value: str):
        self._event.description = value

    @property
    def location(self) -> str:
        return self._event.location

    @location.setter
    def location(self, value: str):
        self._event.location = value

    @property
    def all_day(self) -> bool:
        return self._event.all_day

    @all_day.setter
    def all_day(self, value: bool):
        self._event.all_day = value

    @property
    def start_time(self) -> Optional[datetime]:
        return self._event.start

    @property
    def end_time(self) -> Optional[datetime]:
        return self._event.end

    def set_start_time(self, dt: datetime, timezone_name: Optional[str] = None) -> None:
        """
        Set the start, optionally as wall-clock time in a named zone.

        An unknown zone name keeps the zone the start had before.
        """
        self._event.start = self._zoned(dt, timezone_name, self._event.start)

    def set_end_time(self, dt: datetime, timezone_name: Optional[str] = None) -> None:
        """Same as ``set_start_time`` for the end."""
        self._event.end = self._zoned(dt, timezone_name, self._event.end)

    def _zoned(self, dt: datetime, timezone_name: Optional[str], previous: Optional[datetime]) -> datetime:
        if self._event.all_day or timezone_name is None:
            return dt.replace(tzinfo=None) if self._event.all_day else dt
        tz = lookup_timezone(timezone_name)
        if tz is None:
            # Fall back to the zone the field had
            tz = previous.tzinfo if previous is not None else None
            if tz is None:
                return dt.replace(tzinfo=None)
        return localize(tz, dt.replace(tzinfo=None))

    # ==================== Recurrence ====================

    @property
    def recur_end_date(self) -> Optional[date]:
        return self._recur_end_date

    @property
    def has_recur_end_date(self) -> bool:
        return self._recur_end_date is not None

    def set_recur_end_date(self, value) -> None:
        """Set the last day of the recurrence (day precision)."""
        if isinstance(value, datetime):
            value = value.date()
        self._recur_end_date = value

    def unset_recur_end_date(self) -> None:
        self._recur_end_date = None

    @property
    def recurrence_id(self) -> Optional[datetime]:
        return self._event.recurrence_id

    # ==================== Saving ====================

    def build(self) -> CalendarEvent:
        """The modified event, with its recurrence rule regenerated."""
        event = self._event.copy()
        if event.is_exception:
            return event
        apply(self.recur, self.recur_weekly_days, self._recur_end_date,
              event.start, event.recurrence)
        return event

    def save(self, repository: EventRepository) -> CalendarEvent:
        """Store the modified event and return it."""
        if self._event.start is None:
            raise ValueError("Cannot save an event without a start time")
        event = self.build()
        repository.add_event(event)
        self._event = event.copy()
        return event

    def replace_occurrence(self, repository: EventRepository,
                           occurrence: EventOccurrence) -> CalendarEvent:
        """
        Store this modification as an exception of one occurrence.

        The occurrence is identified by its recurrence id, i.e. the slot
        start it had in the series.
        """
        slot = occurrence.recurrence_id or occurrence.start
        return repository.replace_occurrence(occurrence.event_uid, slot, self._event)
