"""Tests for EventRepository: series storage, exceptions and iCalendar I/O."""

from datetime import date, datetime, timedelta

import pytest
import pytz

from nemo_calendar.event_modification import EventModification
from nemo_calendar.event_repository import EventRepository
from nemo_calendar.event_wrapper import CalendarEvent
from nemo_calendar.recurrence import Frequency, Recurrence, RecurrenceRule
from nemo_calendar.recurrence_pattern import RecurrenceCategory

UTC = pytz.UTC
HELSINKI = pytz.timezone("Europe/Helsinki")
NEW_YORK = pytz.timezone("America/New_York")

ICS_SERIES = "\r\n".join([
    "BEGIN:VCALENDAR",
    "VERSION:2.0",
    "PRODID:-//nemo-calendar tests//EN",
    "BEGIN:VEVENT",
    "UID:series-1",
    "DTSTART:20240101T100000Z",
    "DTEND:20240101T110000Z",
    "RRULE:FREQ=WEEKLY",
    "EXDATE:20240108T100000Z",
    "SUMMARY:Standup",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "UID:series-1",
    "RECURRENCE-ID:20240108T100000Z",
    "DTSTART:20240108T113000Z",
    "DTEND:20240108T123000Z",
    "SUMMARY:Standup (moved)",
    "END:VEVENT",
    "END:VCALENDAR",
    "",
])


def _helsinki(*args) -> datetime:
    return HELSINKI.localize(datetime(*args))


def _utc(*args) -> datetime:
    return UTC.localize(datetime(*args))


@pytest.fixture
def repo():
    return EventRepository()


@pytest.fixture
def series(repo):
    """Weekly series on Saturdays 12:00-12:30 Helsinki time."""
    modification = EventModification()
    modification.summary = 'Weekly'
    modification.set_start_time(datetime(2014, 6, 7, 12, 0), 'Europe/Helsinki')
    modification.set_end_time(datetime(2014, 6, 7, 12, 30), 'Europe/Helsinki')
    modification.recur = RecurrenceCategory.WEEKLY
    return modification.save(repo)


@pytest.fixture
def moved(repo, series):
    """The series with its second occurrence moved to 12:10-12:20."""
    occurrence = repo.locate(series.uid, _helsinki(2014, 6, 14, 12, 0))
    modification = EventModification()
    modification.summary = 'Moved'
    modification.set_start_time(datetime(2014, 6, 14, 12, 10), 'Europe/Helsinki')
    modification.set_end_time(datetime(2014, 6, 14, 12, 20), 'Europe/Helsinki')
    return modification.replace_occurrence(repo, occurrence)


class TestStorage:
    def test_add_and_get(self, repo, series):
        assert repo.get_event(series.uid) is series
        assert repo.get_all_events() == [series]
        assert repo.get_exceptions(series.uid) == []

    def test_add_routes_exceptions(self, repo, series):
        detached = series.copy()
        detached.recurrence.clear()
        detached.recurrence_id = series.start
        repo.add_event(detached)
        assert repo.get_event(series.uid) is series
        assert repo.get_event(series.uid, series.start) is detached

    def test_remove_master_drops_series(self, repo, series, moved):
        assert repo.remove_event(series.uid)
        assert repo.get_event(series.uid) is None
        assert repo.get_exceptions(series.uid) == []
        assert not repo.remove_event(series.uid)

    def test_remove_all(self, repo, series, moved):
        assert repo.remove_all(series.uid)
        assert repo.locate(series.uid, series.start) is None
        assert repo.get_event(series.uid, moved.recurrence_id) is None
        assert not repo.remove_all(series.uid)


class TestOccurrences:
    def test_locate(self, repo, series):
        second = _helsinki(2014, 6, 14, 12, 0)
        occurrence = repo.locate(series.uid, second)
        assert occurrence.start == second
        assert occurrence.end == _helsinki(2014, 6, 14, 12, 30)
        assert occurrence.event_uid == series.uid

    def test_locate_unknown(self, repo):
        assert repo.locate('missing', _utc(2024, 1, 1)) is None

    def test_replace_occurrence(self, repo, series, moved):
        second = _helsinki(2014, 6, 14, 12, 0)
        assert moved.recurrence_id == second
        assert moved.start == _helsinki(2014, 6, 14, 12, 10)
        assert moved.summary == 'Moved'
        assert repo.get_event(series.uid, second) is moved
        assert second in series.recurrence.exdates

        by_id = repo.locate(series.uid, recurrence_id=second)
        assert by_id.start == _helsinki(2014, 6, 14, 12, 10)
        assert by_id.end == _helsinki(2014, 6, 14, 12, 20)

    def test_locate_around_exception(self, repo, series, moved):
        start = series.start
        assert repo.locate(series.uid, start - timedelta(days=1)).start == start
        assert repo.locate(series.uid, start + timedelta(days=1)).start == moved.start
        assert (repo.locate(series.uid, _helsinki(2014, 6, 15, 12, 0)).start
                == _helsinki(2014, 6, 21, 12, 0))

    def test_moved_series_strands_exception(self, repo, series, moved):
        modification = EventModification(repo.get_event(series.uid))
        modification.set_start_time(datetime(2014, 6, 7, 12, 40), 'Europe/Helsinki')
        modification.set_end_time(datetime(2014, 6, 7, 13, 10), 'Europe/Helsinki')
        modification.save(repo)

        assert repo.stranded_exceptions(series.uid) == [moved]
        occurrence = repo.locate(series.uid, _helsinki(2014, 6, 8, 12, 0))
        assert occurrence.start == _helsinki(2014, 6, 14, 12, 40)
        assert occurrence.end == _helsinki(2014, 6, 14, 13, 10)

    def test_remove_exception_leaves_slot_empty(self, repo, series, moved):
        second = _helsinki(2014, 6, 14, 12, 0)
        assert repo.remove_event(series.uid, second)
        assert not repo.remove_event(series.uid, second)
        assert repo.locate(series.uid, second).start == _helsinki(2014, 6, 21, 12, 0)

    def test_delete_occurrence(self, repo, series):
        second = _helsinki(2014, 6, 14, 12, 0)
        assert repo.delete_occurrence(series.uid, second)
        assert repo.locate(series.uid, second).start == _helsinki(2014, 6, 21, 12, 0)
        assert repo.get_exceptions(series.uid) == []

    def test_delete_occurrence_outside_series(self, repo, series):
        assert not repo.delete_occurrence(series.uid, _helsinki(2014, 6, 14, 13, 0))
        assert series.recurrence.exdates == []

    def test_delete_occurrence_of_unexpandable_series(self, repo, capsys):
        rule = RecurrenceRule.from_ical("FREQ=MONTHLY;BYDAY=MO;BYSETPOS=0")
        event = CalendarEvent(uid='broken', start=_utc(2024, 1, 1, 10),
                              recurrence=Recurrence(rrules=[rule]))
        repo.add_event(event)
        assert not repo.delete_occurrence('broken', _utc(2024, 1, 1, 10))
        assert event.recurrence.exdates == []
        assert 'cannot expand recurrence of broken' in capsys.readouterr().err

    def test_stranded_exceptions_of_unexpandable_series(self, repo, capsys):
        rule = RecurrenceRule.from_ical("FREQ=MONTHLY;BYDAY=MO;BYSETPOS=0")
        repo.add_event(CalendarEvent(uid='broken', start=_utc(2024, 1, 1, 10),
                                     recurrence=Recurrence(rrules=[rule])))
        repo.add_event(CalendarEvent(uid='broken', start=_utc(2024, 1, 8, 11),
                                     recurrence_id=_utc(2024, 1, 8, 10)))
        assert repo.stranded_exceptions('broken') == []
        assert 'cannot expand recurrence of broken' in capsys.readouterr().err

    def test_delete_occurrence_of_singular_event(self, repo):
        event = CalendarEvent(start=_utc(2024, 1, 1, 10))
        repo.add_event(event)
        assert not repo.delete_occurrence(event.uid, event.start)
        assert not repo.delete_occurrence('missing', event.start)

    def test_detach_unknown_series(self, repo):
        with pytest.raises(ValueError):
            repo.detach('missing', _utc(2024, 1, 1))

    def test_detach_outside_series(self, repo, series):
        with pytest.raises(ValueError):
            repo.detach(series.uid, _helsinki(2014, 6, 14, 13, 0))

    def test_exceptions_without_master_are_stranded(self, repo):
        detached = CalendarEvent(uid='orphan', start=_utc(2024, 1, 8, 11),
                                 recurrence_id=_utc(2024, 1, 8, 10))
        repo.add_event(detached)
        assert repo.stranded_exceptions('orphan') == [detached]


class TestICalendar:
    def test_import(self, repo):
        assert repo.import_ics(ICS_SERIES) == 2
        master = repo.get_event('series-1')
        assert master.summary == 'Standup'
        assert master.recurs
        assert len(repo.get_exceptions('series-1')) == 1

        occurrence = repo.locate('series-1', _utc(2024, 1, 8, 10))
        assert occurrence.start == _utc(2024, 1, 8, 11, 30)
        assert occurrence.end == _utc(2024, 1, 8, 12, 30)

    def test_export_round_trip(self, repo):
        repo.import_ics(ICS_SERIES)
        text = repo.export_ics('series-1')
        assert 'RRULE:FREQ=WEEKLY' in text
        assert 'RECURRENCE-ID' in text
        assert 'EXDATE' in text

        copy = EventRepository()
        assert copy.import_ics(text) == 2
        assert copy.locate('series-1', _utc(2024, 1, 8, 10)).start == _utc(2024, 1, 8, 11, 30)
        assert copy.locate('series-1', _utc(2024, 1, 9)).start == _utc(2024, 1, 15, 10)

    def test_round_trip_keeps_end_date_in_event_zone(self, repo):
        # 20:00 in New York is already the next day in UTC
        start = NEW_YORK.localize(datetime(2024, 1, 1, 20, 0))
        event = CalendarEvent(
            uid='evening', start=start, end=start + timedelta(hours=1),
            recurrence=Recurrence(rrules=[RecurrenceRule(frequency=Frequency.DAILY,
                                                         end_date=date(2024, 1, 15))]),
        )
        repo.add_event(event)
        text = repo.export_ics('evening')
        assert 'UNTIL=20240116T010000Z' in text

        copy = EventRepository()
        copy.import_ics(text)
        assert copy.get_event('evening').recurrence.default_rrule.end_date == date(2024, 1, 15)

        target = NEW_YORK.localize(datetime(2024, 1, 16, 12, 0))
        last = _utc(2024, 1, 16, 1, 0)
        assert repo.locate('evening', target).start == last
        assert copy.locate('evening', target).start == last

    def test_export_unknown(self, repo, capsys):
        assert repo.export_ics('missing') == ''
        assert 'Warning' in capsys.readouterr().err

    def test_import_file(self, repo, tmp_path):
        path = tmp_path / 'calendar.ics'
        path.write_text(ICS_SERIES, encoding='utf-8')
        assert repo.import_file(path)
        assert repo.get_event('series-1') is not None

    def test_import_file_unsupported_format(self, repo, tmp_path, capsys):
        path = tmp_path / 'calendar.vcs'
        path.write_text(ICS_SERIES, encoding='utf-8')
        assert not repo.import_file(path)
        assert 'unsupported file format' in capsys.readouterr().err

    def test_import_missing_file(self, repo, tmp_path):
        assert not repo.import_file(tmp_path / 'missing.ics')
