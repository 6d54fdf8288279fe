"""
Occurrence lookup for singular and recurring events.

``locate`` finds the occurrence of an event at, or nearest after, a
requested instant, falling back to the nearest one before it when the
series has ended. Detached instances replace the occurrence whose slot
they took over, unless the series no longer generates that slot.

Instances are generated as wall-clock times in the event's own zone and
compared as instants; results are expressed in the canonical local zone.
All-day and floating events stay zone-less throughout.
"""

from datetime import datetime, timedelta, MAXYEAR
from typing import Iterable, Optional
import sys

from dateutil import rrule as du_rrule

from .config import DEFAULT_HORIZON_YEARS, DEFAULT_MAX_INSTANCES, is_debug
from .event_wrapper import CalendarEvent, EventOccurrence
from .recurrence import GREGORIAN_CYCLE_YEARS, Frequency, shift_cycles
from .timezone_utils import (
    localize, to_local_datetime, to_local_naive, to_utc_datetime, to_zone_naive
)


_max_instances: int = DEFAULT_MAX_INSTANCES
_horizon_years: int = DEFAULT_HORIZON_YEARS


def set_max_instances(limit: int) -> None:
    """Bound on the instances generated per lookup."""
    global _max_instances
    _max_instances = limit


def set_horizon_years(years: int) -> None:
    """How far past the requested time (or the series start) to search."""
    global _horizon_years
    _horizon_years = years


def _debug_print(msg: str) -> None:
    if is_debug():
        timestamp = datetime.now().strftime("%H:%M:%S")
        print(f"[{timestamp}] LOCATE: {msg}", file=sys.stderr)


class SeriesExpansion:
    """
    Instance generation for one recurring event.

    Works on wall-clock datetimes in the event's zone ("walls"); ``key``
    turns a wall into something comparable with a target instant.
    """

    def __init__(self, event: CalendarEvent,
                 max_instances: Optional[int] = None,
                 horizon_years: Optional[int] = None):
        self.event = event
        self.max_instances = _max_instances if max_instances is None else max_instances
        self.horizon_years = _horizon_years if horizon_years is None else horizon_years
        self.floating = event.all_day or event.start.tzinfo is None
        self.zone = None if self.floating else event.start.tzinfo
        self.dtstart = event.start.replace(tzinfo=None)

    # ==================== Conversions ====================

    def to_wall(self, dt: datetime) -> datetime:
        """Wall-clock reading of any datetime in this series' zone."""
        if self.floating:
            return to_local_naive(dt)
        return to_zone_naive(dt, self.zone)

    def to_instant(self, wall: datetime) -> datetime:
        """Datetime in the event's own zone (naive when floating)."""
        if self.floating:
            return wall
        return localize(self.zone, wall)

    def key(self, wall: datetime) -> datetime:
        if self.floating:
            return wall
        return to_utc_datetime(self.to_instant(wall))

    def target_key(self, target: datetime) -> datetime:
        if self.floating:
            return to_local_naive(target)
        return to_utc_datetime(target)

    def shift(self, instant: datetime, delta: timedelta) -> datetime:
        """Add an absolute duration, keeping the zone's offset correct."""
        if instant.tzinfo is None:
            return instant + delta
        shifted = to_utc_datetime(instant) + delta
        return shifted.astimezone(instant.tzinfo)

    # ==================== Searching ====================

    def horizon(self, reference: Optional[datetime] = None) -> datetime:
        """Last wall time looked at by a search around ``reference``."""
        start = self.dtstart if reference is None else max(reference, self.dtstart)
        return datetime(min(start.year + self.horizon_years, MAXYEAR), 12, 31, 23, 59, 59)

    def _ruleset(self, cycles: int) -> du_rrule.rruleset:
        ruleset = du_rrule.rruleset()
        for rule in self.event.recurrence.rrules:
            if rule.frequency != Frequency.NONE:
                ruleset.rrule(rule.to_dateutil(self.dtstart, cycles))
        return ruleset

    def walls(self, reference: Optional[datetime] = None):
        """
        Generated instances in order, up to the horizon around ``reference``
        and at most ``max_instances`` of them.

        dateutil only stops an empty search at ``MAXYEAR``, so the rules are
        expanded whole calendar cycles later, with the horizon in the last
        cycle before it, and the instances moved back.
        """
        horizon = self.horizon(reference)
        cycles = (MAXYEAR - horizon.year) // GREGORIAN_CYCLE_YEARS
        for count, shifted in enumerate(self._ruleset(cycles)):
            if count >= self.max_instances:
                _debug_print(f"{self.event.uid}: stopped after {count} instances")
                return
            wall = shift_cycles(shifted, -cycles)
            if wall > horizon:
                _debug_print(f"{self.event.uid}: stopped at horizon {horizon}")
                return
            yield wall

    def recurs_at(self, wall: datetime) -> bool:
        """True when the rules generate ``wall``, exception dates ignored."""
        for candidate in self.walls(wall):
            if candidate >= wall:
                return candidate == wall
        return False

    def scan(self, target_key: datetime, excluded: set) -> tuple[Optional[datetime], Optional[datetime]]:
        """
        Walk the series up to the target.

        Returns:
            (first instance at or after the target, last instance before it);
            either may be None.
        """
        previous = None
        for wall in self.walls(self.to_wall(target_key)):
            if wall in excluded:
                continue
            if self.key(wall) >= target_key:
                return wall, previous
            previous = wall
        return None, previous


def _present(dt: datetime) -> datetime:
    """Express a datetime in the canonical zone; floating values unchanged."""
    if dt.tzinfo is None:
        return dt
    return to_local_datetime(dt)


def occurrence_of(event: CalendarEvent) -> EventOccurrence:
    """The event's own start/end as an occurrence."""
    return EventOccurrence(
        event_uid=event.uid,
        recurrence_id=_present(event.recurrence_id) if event.recurrence_id is not None else None,
        start=_present(event.start),
        end=_present(event.effective_end),
        all_day=event.all_day,
    )


def live_exceptions(expansion: SeriesExpansion,
                    exceptions: Iterable[CalendarEvent]) -> dict[datetime, CalendarEvent]:
    """
    Detached instances whose slot the series still generates, by wall time.

    Instances of other series, and stranded ones, are left out.
    """
    live = {}
    for detached in exceptions or ():
        if detached.uid != expansion.event.uid or detached.recurrence_id is None:
            continue
        wall = expansion.to_wall(detached.recurrence_id)
        if expansion.recurs_at(wall):
            live[wall] = detached
        else:
            _debug_print(f"{detached.uid}: stranded exception at {detached.recurrence_id}")
    return live


def locate(event: CalendarEvent,
           target_start: Optional[datetime] = None,
           exceptions: Optional[Iterable[CalendarEvent]] = None,
           max_instances: Optional[int] = None) -> Optional[EventOccurrence]:
    """
    Find the occurrence of ``event`` matching ``target_start``.

    Args:
        event: A singular event, a series master or a detached instance.
        target_start: Requested start; naive values are local time. None
            returns the series' defining instance.
        exceptions: Detached instances of the series.
        max_instances: Override for the generation bound.

    Returns:
        The exact instance at ``target_start``, else the first one after
        it, else the last one before it; None when the series has no
        instances.
    """
    if event.start is None:
        return None

    if not event.recurs or event.is_exception or target_start is None:
        occurrence = occurrence_of(event)
        if event.recurs and not event.is_exception:
            occurrence.recurrence_id = occurrence.start
        return occurrence

    try:
        expansion = SeriesExpansion(event, max_instances)
        live = live_exceptions(expansion, exceptions)
        # Slots taken over by a live detached instance stay matchable
        excluded = {expansion.to_wall(dt) for dt in event.recurrence.exdates} - set(live)
        following, previous = expansion.scan(expansion.target_key(target_start), excluded)
    except (ValueError, OverflowError) as e:
        print(f"Warning: cannot expand recurrence of {event.uid}: {e}", file=sys.stderr)
        return None

    match = following if following is not None else previous
    if match is None:
        _debug_print(f"{event.uid}: no instance near {target_start}")
        return None

    detached = live.get(match)
    if detached is not None:
        return occurrence_of(detached)

    start = expansion.to_instant(match)
    return EventOccurrence(
        event_uid=event.uid,
        recurrence_id=_present(start),
        start=_present(start),
        end=_present(expansion.shift(start, event.duration)),
        all_day=event.all_day,
    )
