"""Tests for nearest-occurrence lookup."""

from datetime import date, datetime, timedelta

import pytz

from nemo_calendar import timezone_utils
from nemo_calendar.event_wrapper import CalendarEvent
from nemo_calendar.occurrence_locator import locate, set_horizon_years, set_max_instances
from nemo_calendar.recurrence import Frequency, Recurrence, RecurrenceRule

UTC = pytz.UTC
HELSINKI = pytz.timezone("Europe/Helsinki")


def _utc(*args) -> datetime:
    return UTC.localize(datetime(*args))


def _series(start, end=None, all_day=False, exdates=None, **rule) -> CalendarEvent:
    rule.setdefault('frequency', Frequency.WEEKLY)
    return CalendarEvent(
        uid='series',
        start=start,
        end=end,
        all_day=all_day,
        recurrence=Recurrence(rrules=[RecurrenceRule(**rule)], exdates=list(exdates or [])),
    )


class TestSingularEvents:
    def test_target_is_ignored(self):
        event = CalendarEvent(start=_utc(2024, 1, 1, 10), end=_utc(2024, 1, 1, 11))
        occurrence = locate(event, _utc(2025, 6, 1, 0))
        assert occurrence.start == _utc(2024, 1, 1, 10)
        assert occurrence.end == _utc(2024, 1, 1, 11)
        assert occurrence.recurrence_id is None

    def test_missing_end_uses_start(self):
        event = CalendarEvent(start=_utc(2024, 1, 1, 10))
        assert locate(event).end == _utc(2024, 1, 1, 10)

    def test_event_without_start(self):
        assert locate(CalendarEvent()) is None


class TestWeeklySeries:
    def setup_method(self):
        self.event = _series(_utc(2024, 1, 1, 10), _utc(2024, 1, 1, 11))

    def test_exact_match(self):
        occurrence = locate(self.event, _utc(2024, 1, 8, 10))
        assert occurrence.start == _utc(2024, 1, 8, 10)
        assert occurrence.recurrence_id == _utc(2024, 1, 8, 10)

    def test_following_occurrence(self):
        assert locate(self.event, _utc(2024, 1, 9, 10)).start == _utc(2024, 1, 15, 10)

    def test_target_before_series(self):
        assert locate(self.event, _utc(2023, 6, 1)).start == _utc(2024, 1, 1, 10)

    def test_no_target_returns_defining_instance(self):
        occurrence = locate(self.event)
        assert occurrence.start == _utc(2024, 1, 1, 10)
        assert occurrence.recurrence_id == _utc(2024, 1, 1, 10)

    def test_duration_is_preserved(self):
        for target in (_utc(2024, 1, 3), _utc(2024, 3, 4, 10), _utc(2025, 1, 1)):
            occurrence = locate(self.event, target)
            assert occurrence.end - occurrence.start == timedelta(hours=1)

    def test_preceding_occurrence_after_end_date(self):
        self.event.recurrence.set_end_date(date(2024, 1, 14))
        assert locate(self.event, _utc(2024, 1, 9, 10)).start == _utc(2024, 1, 8, 10)
        assert locate(self.event, _utc(2024, 6, 1)).start == _utc(2024, 1, 8, 10)

    def test_naive_target_is_local_time(self):
        timezone_utils.set_timezone("Europe/Helsinki")
        # 12:00 in Helsinki is the 10:00 UTC occurrence
        assert locate(self.event, datetime(2024, 1, 8, 12)).start == _utc(2024, 1, 8, 10)

    def test_excluded_occurrence_is_skipped(self):
        self.event.recurrence.add_exdate(_utc(2024, 1, 8, 10))
        assert locate(self.event, _utc(2024, 1, 8, 10)).start == _utc(2024, 1, 15, 10)

    def test_all_instances_excluded(self):
        event = _series(_utc(2024, 1, 1, 10), count=2,
                        exdates=[_utc(2024, 1, 1, 10), _utc(2024, 1, 8, 10)])
        assert locate(event, _utc(2024, 1, 1)) is None


class TestTimeZones:
    def test_wall_clock_kept_across_dst(self):
        event = _series(HELSINKI.localize(datetime(2024, 1, 1, 10)),
                        HELSINKI.localize(datetime(2024, 1, 1, 11)))
        winter = locate(event, _utc(2024, 1, 8, 8))
        assert winter.start == _utc(2024, 1, 8, 8)

        # 2024-07-01 is a Monday; 10:00 EEST is 07:00 UTC
        summer = locate(event, _utc(2024, 7, 1, 0))
        assert summer.start == _utc(2024, 7, 1, 7)
        assert summer.end == _utc(2024, 7, 1, 8)

    def test_results_use_canonical_zone(self):
        timezone_utils.set_timezone("Europe/Helsinki")
        event = _series(_utc(2024, 1, 1, 10), _utc(2024, 1, 1, 11))
        occurrence = locate(event, _utc(2024, 1, 8, 10))
        assert occurrence.start.tzinfo.zone == "Europe/Helsinki"
        assert occurrence.start.replace(tzinfo=None) == datetime(2024, 1, 8, 12)


class TestFloatingSeries:
    def setup_method(self):
        self.event = _series(datetime(2024, 1, 1), datetime(2024, 1, 2), all_day=True,
                             frequency=Frequency.DAILY)

    def test_exact_day(self):
        occurrence = locate(self.event, datetime(2024, 1, 5))
        assert occurrence.start == datetime(2024, 1, 5)
        assert occurrence.end == datetime(2024, 1, 6)
        assert occurrence.all_day

    def test_aware_target_read_in_local_zone(self):
        occurrence = locate(self.event, _utc(2024, 1, 5, 12))
        assert occurrence.start == datetime(2024, 1, 6)
        assert occurrence.start.tzinfo is None

    def test_local_zone_decides_the_day(self):
        timezone_utils.set_timezone("Europe/Helsinki")
        # 23:00 UTC is already 01:00 on the next day in Helsinki
        assert locate(self.event, _utc(2024, 1, 5, 23)).start == datetime(2024, 1, 7)


class TestBounds:
    def setup_method(self):
        self.event = _series(_utc(2024, 1, 1), frequency=Frequency.MINUTELY)

    def test_explicit_limit(self):
        occurrence = locate(self.event, _utc(2024, 6, 1), max_instances=10)
        assert occurrence.start == _utc(2024, 1, 1, 0, 9)

    def test_configured_limit(self):
        set_max_instances(5)
        assert locate(self.event, _utc(2024, 6, 1)).start == _utc(2024, 1, 1, 0, 4)

    def test_zero_limit_generates_nothing(self):
        assert locate(self.event, _utc(2024, 6, 1), max_instances=0) is None


class TestHorizon:
    def test_rule_that_never_matches(self):
        set_horizon_years(1)
        # February never has a 30th
        event = _series(_utc(2024, 1, 1), frequency=Frequency.HOURLY,
                        by_months=[2], by_month_days=[30])
        assert locate(event, _utc(2024, 3, 1)) is None

    def test_sparse_series_beyond_horizon(self):
        event = _series(_utc(2024, 2, 29, 10), frequency=Frequency.YEARLY_BY_MONTH,
                        by_months=[2], by_month_days=[29])
        assert locate(event, _utc(2024, 6, 1)).start == _utc(2028, 2, 29, 10)

        set_horizon_years(3)
        assert locate(event, _utc(2024, 6, 1)).start == _utc(2024, 2, 29, 10)

    def test_distant_target(self):
        event = _series(_utc(2024, 1, 1, 10), frequency=Frequency.DAILY)
        assert locate(event, _utc(2150, 6, 1, 10)).start == _utc(2150, 6, 1, 10)
        assert locate(event, _utc(2150, 6, 1, 11)).start == _utc(2150, 6, 2, 10)


class TestMalformedRules:
    def test_unexpandable_rule(self, capsys):
        rule = RecurrenceRule.from_ical("FREQ=MONTHLY;BYDAY=MO;BYSETPOS=0")
        event = CalendarEvent(uid='broken', start=_utc(2024, 1, 1, 10),
                              recurrence=Recurrence(rrules=[rule]))
        assert locate(event, _utc(2024, 2, 1)) is None
        assert 'cannot expand recurrence of broken' in capsys.readouterr().err

    def test_unexpandable_rule_without_target(self):
        rule = RecurrenceRule.from_ical("FREQ=MONTHLY;BYDAY=MO;BYSETPOS=0")
        event = CalendarEvent(start=_utc(2024, 1, 1, 10), recurrence=Recurrence(rrules=[rule]))
        assert locate(event).start == _utc(2024, 1, 1, 10)
