"""
Event repository storing series masters and their detached instances.

Provides occurrence lookup over the stored events and the exception
workflow: detaching or replacing one occurrence, deleting one occurrence,
and removing a whole series. Events move in and out as iCalendar text.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional, Union
import sys

from .config import is_debug
from .event_wrapper import (
    CalendarEvent, EventOccurrence,
    events_from_icalendar, events_to_icalendar
)
from .occurrence_exceptions import ExceptionIndex, detach
from .occurrence_locator import SeriesExpansion, locate


def _debug_print(msg: str) -> None:
    if is_debug():
        timestamp = datetime.now().strftime("%H:%M:%S")
        print(f"[{timestamp}] REPO: {msg}", file=sys.stderr)


class EventRepository:
    """
    Repository for CalendarEvent objects.

    Stores masters (and singular events) by UID; detached instances live in
    an ``ExceptionIndex`` keyed by UID and recurrence id.
    """

    def __init__(self):
        self._events: dict[str, CalendarEvent] = {}
        self._exceptions = ExceptionIndex()

    # ==================== Event Storage ====================

    def add_event(self, event: CalendarEvent) -> None:
        """Add or update a single CalendarEvent."""
        if event.is_exception:
            self._exceptions.add(event)
        else:
            self._events[event.uid] = event

    def get_event(self, uid: str, recurrence_id: Optional[datetime] = None) -> Optional[CalendarEvent]:
        """Get a master by UID, or one of its detached instances."""
        if recurrence_id is not None:
            return self._exceptions.get(uid, recurrence_id)
        return self._events.get(uid)

    def get_exceptions(self, uid: str) -> list[CalendarEvent]:
        """Detached instances of a series."""
        return self._exceptions.for_series(uid)

    def get_all_events(self) -> list[CalendarEvent]:
        """All masters and singular events."""
        return list(self._events.values())

    def remove_event(self, uid: str, recurrence_id: Optional[datetime] = None) -> bool:
        """
        Remove one stored event.

        Removing a detached instance leaves the series' exception date in
        place, so its slot stays empty. Removing a master drops the whole
        series.
        """
        if recurrence_id is not None:
            removed = self._exceptions.remove(uid, recurrence_id)
            if removed is None:
                _debug_print(f"{uid} at {recurrence_id}: exception already deleted")
            return removed is not None
        if uid not in self._events:
            _debug_print(f"{uid}: event already deleted")
            return False
        return self.remove_all(uid)

    def remove_all(self, uid: str) -> bool:
        """Remove a series together with all its detached instances."""
        master = self._events.pop(uid, None)
        instances = self._exceptions.remove_series(uid)
        _debug_print(f"remove_all({uid}): master={master is not None}, exceptions={len(instances)}")
        return master is not None or bool(instances)

    # ==================== Occurrences ====================

    def _require_series(self, uid: str) -> CalendarEvent:
        master = self._events.get(uid)
        if master is None:
            raise ValueError(f"Unknown event: {uid}")
        return master

    def delete_occurrence(self, uid: str, occurrence_start: datetime) -> bool:
        """
        Hide one occurrence of a series by adding an exception date.

        No event is removed. Returns False for unknown or singular events,
        and for a start that is not one of the series' occurrences.
        """
        master = self._events.get(uid)
        if master is None or not master.recurs:
            _debug_print(f"delete_occurrence({uid}): no recurring event")
            return False
        expansion = SeriesExpansion(master)
        wall = expansion.to_wall(occurrence_start)
        try:
            if not expansion.recurs_at(wall):
                _debug_print(f"delete_occurrence({uid}): no occurrence at {occurrence_start}")
                return False
        except (ValueError, OverflowError) as e:
            print(f"Warning: cannot expand recurrence of {uid}: {e}", file=sys.stderr)
            return False
        master.recurrence.add_exdate(expansion.to_instant(wall))
        return True

    def detach(self, uid: str, occurrence_start: datetime) -> CalendarEvent:
        """
        Turn one occurrence of a series into a stored detached instance.

        Raises:
            ValueError: for an unknown series or a start that is not one of
                its occurrences.
        """
        master = self._require_series(uid)
        exdates, detached = detach(master, occurrence_start)
        master.recurrence.exdates = exdates
        self._exceptions.add(detached)
        _debug_print(f"detach({uid}): exception at {detached.recurrence_id}")
        return detached

    def replace_occurrence(self, uid: str, occurrence_start: datetime,
                           replacement: CalendarEvent) -> CalendarEvent:
        """
        Detach an occurrence and give it the times and texts of ``replacement``.

        Returns:
            The stored detached instance.
        """
        detached = self.detach(uid, occurrence_start)
        detached.start = replacement.start
        detached.end = replacement.end
        detached.all_day = replacement.all_day
        detached.summary = replacement.summary
        detached.description = replacement.description
        detached.location = replacement.location
        return detached

    def locate(self, uid: str,
               target_start: Optional[datetime] = None,
               recurrence_id: Optional[datetime] = None) -> Optional[EventOccurrence]:
        """
        Occurrence of a stored event near ``target_start``.

        With ``recurrence_id`` the matching detached instance is returned as
        it is; otherwise the series is searched with its exceptions applied.
        """
        if recurrence_id is not None:
            detached = self._exceptions.get(uid, recurrence_id)
            return locate(detached) if detached is not None else None

        master = self._events.get(uid)
        if master is None:
            return None
        return locate(master, target_start, self._exceptions.for_series(uid))

    def stranded_exceptions(self, uid: str) -> list[CalendarEvent]:
        """Detached instances whose slot the series no longer generates."""
        master = self._events.get(uid)
        if master is None:
            return self._exceptions.for_series(uid)
        return self._exceptions.stranded(master)

    # ==================== iCalendar ====================

    def import_ics(self, ical_text: str) -> int:
        """
        Add every VEVENT of an iCalendar document.

        Returns number of events imported.
        """
        events = events_from_icalendar(ical_text)
        for event in events:
            self.add_event(event)
        _debug_print(f"Imported {len(events)} events")
        return len(events)

    def import_file(self, path: Union[str, Path]) -> bool:
        """Import an ``.ics`` file; False (with a warning) when that fails."""
        path = Path(path)
        if path.suffix.lower() != '.ics':
            print(f"Warning: unsupported file format {path}", file=sys.stderr)
            return False
        try:
            ical_text = path.read_text(encoding='utf-8')
        except OSError as e:
            print(f"Warning: unable to open file for reading {path}: {e}", file=sys.stderr)
            return False
        try:
            self.import_ics(ical_text)
        except ValueError as e:
            print(f"Warning: failed to import from file {path}: {e}", file=sys.stderr)
            return False
        return True

    def export_ics(self, uid: str, prod_id: Optional[str] = None) -> str:
        """VCALENDAR text with a series and its detached instances."""
        master = self._events.get(uid)
        if master is None:
            print(f"Warning: no event with uid {uid}, unable to create iCalendar", file=sys.stderr)
            return ''
        return events_to_icalendar([master] + self._exceptions.for_series(uid), prod_id)
