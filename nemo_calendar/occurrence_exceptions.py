"""
Single-occurrence exceptions of recurring series.

A detached instance shares its series' UID and records, as its recurrence
id, the slot start it replaces. ``ExceptionIndex`` keeps them addressable
by ``(uid, recurrence id)``; ``detach`` creates one from a series slot.

Detaching is one-way: there is no operation restoring the slot to the
series once its start has been added to the exception dates.
"""

from datetime import datetime
from typing import Optional
import sys

from .event_wrapper import CalendarEvent
from .occurrence_locator import SeriesExpansion
from .recurrence import Recurrence
from .timezone_utils import to_utc_datetime


def recurrence_key(recurrence_id: datetime) -> datetime:
    """Index key: aware ids compare as UTC instants, floating ids as-is."""
    if recurrence_id.tzinfo is None:
        return recurrence_id
    return to_utc_datetime(recurrence_id)


def detach(event: CalendarEvent, target_start: datetime) -> tuple[list[datetime], CalendarEvent]:
    """
    Split one occurrence off a recurring series.

    Args:
        event: The series master. It is not modified.
        target_start: Start of the occurrence to detach; for all-day series
            it is read as a floating local date.

    Returns:
        (the master's exception dates including the detached slot,
        the new detached instance)

    Raises:
        ValueError: if the event is not a series master or the series has no
            (remaining) occurrence at ``target_start``.
    """
    if not event.recurs or event.is_exception:
        raise ValueError(f"Event {event.uid} is not a recurring series")

    expansion = SeriesExpansion(event)
    wall = expansion.to_wall(target_start)
    excluded = {expansion.to_wall(dt) for dt in event.recurrence.exdates}
    if wall in excluded or not expansion.recurs_at(wall):
        raise ValueError(f"No occurrence of {event.uid} at {target_start}")

    recurrence_id = expansion.to_instant(wall)

    detached = event.copy()
    detached.recurrence = Recurrence()
    detached.recurrence_id = recurrence_id
    detached.start = recurrence_id
    detached.end = expansion.shift(recurrence_id, event.duration) if event.end is not None else None

    exdates = list(event.recurrence.exdates)
    exdates.append(recurrence_id)
    return exdates, detached


def stranded(event: CalendarEvent, exceptions) -> list[CalendarEvent]:
    """
    Detached instances whose recurrence id the series no longer generates.

    A series whose rule cannot be expanded reports none (with a warning).
    """
    if not event.recurs:
        return list(exceptions)
    expansion = SeriesExpansion(event)
    try:
        return [e for e in exceptions
                if not expansion.recurs_at(expansion.to_wall(e.recurrence_id))]
    except (ValueError, OverflowError) as e:
        print(f"Warning: cannot expand recurrence of {event.uid}: {e}", file=sys.stderr)
        return []


class ExceptionIndex:
    """Detached instances by series UID and recurrence id."""

    def __init__(self):
        self._instances: dict[str, dict[datetime, CalendarEvent]] = {}

    def add(self, event: CalendarEvent) -> None:
        """Add or replace a detached instance."""
        if event.recurrence_id is None:
            raise ValueError(f"Event {event.uid} has no recurrence id")
        series = self._instances.setdefault(event.uid, {})
        series[recurrence_key(event.recurrence_id)] = event

    def get(self, uid: str, recurrence_id: datetime) -> Optional[CalendarEvent]:
        return self._instances.get(uid, {}).get(recurrence_key(recurrence_id))

    def remove(self, uid: str, recurrence_id: datetime) -> Optional[CalendarEvent]:
        series = self._instances.get(uid)
        if not series:
            return None
        removed = series.pop(recurrence_key(recurrence_id), None)
        if not series:
            del self._instances[uid]
        return removed

    def for_series(self, uid: str) -> list[CalendarEvent]:
        """Detached instances of a series, ordered by recurrence id."""
        series = self._instances.get(uid, {})
        return [series[k] for k in sorted(series, key=_sort_key)]

    def remove_series(self, uid: str) -> list[CalendarEvent]:
        removed = self.for_series(uid)
        self._instances.pop(uid, None)
        return removed

    def stranded(self, master: CalendarEvent) -> list[CalendarEvent]:
        """Detached instances of ``master`` left without a matching slot."""
        result = stranded(master, self.for_series(master.uid))
        for event in result:
            print(f"Warning: exception {event.uid} at {event.recurrence_id} "
                  f"no longer matches its series", file=sys.stderr)
        return result

    def __contains__(self, item) -> bool:
        uid, recurrence_id = item
        return self.get(uid, recurrence_id) is not None

    def __len__(self) -> int:
        return sum(len(series) for series in self._instances.values())


def _sort_key(key: datetime):
    # Floating and aware ids cannot be compared directly
    return (key.tzinfo is not None, key.replace(tzinfo=None))
