"""Unit tests for HabitXP recurrence rules."""
from __future__ import annotations

from datetime import date

from custom_components.habitxp.models import RecurrenceType, Template
from custom_components.habitxp.recurrence import applies, in_range, should_generate

from .conftest import at


def make(recurrence=RecurrenceType.DAILY, days=None, **kwargs) -> Template:
    return Template(id="t1", name="Habit", reward=5, recurrence=recurrence, days=days or [], **kwargs)


class TestShouldGenerate:
    """Test should_generate."""

    def test_daily(self):
        assert should_generate(make(), date(2024, 1, 1))

    def test_none(self):
        assert not should_generate(make(RecurrenceType.NONE), date(2024, 1, 1))

    def test_weekly(self):
        # 2024-01-01 is a Monday
        template = make(RecurrenceType.WEEKLY, [1, 3])
        assert should_generate(template, date(2024, 1, 1))
        assert not should_generate(template, date(2024, 1, 2))
        assert should_generate(template, date(2024, 1, 3))

    def test_weekly_sunday(self):
        assert should_generate(make(RecurrenceType.WEEKLY, [7]), date(2024, 1, 7))

    def test_weekly_without_days(self):
        assert not should_generate(make(RecurrenceType.WEEKLY), date(2024, 1, 1))

    def test_monthly(self):
        template = make(RecurrenceType.MONTHLY, [1, 15])
        assert should_generate(template, date(2024, 2, 1))
        assert should_generate(template, date(2024, 2, 15))
        assert not should_generate(template, date(2024, 2, 16))

    def test_monthly_day_missing_from_month(self):
        """Day 31 never fires in a 30-day month."""
        template = make(RecurrenceType.MONTHLY, [31])
        assert not any(should_generate(template, date(2024, 4, d)) for d in range(1, 31))

    def test_custom(self):
        assert should_generate(make(RecurrenceType.CUSTOM, [2]), date(2024, 1, 1))
        assert not should_generate(make(RecurrenceType.CUSTOM), date(2024, 1, 1))

    def test_accepts_datetime(self):
        assert should_generate(make(RecurrenceType.WEEKLY, [1]), at(2024, 1, 1, 23, 59))

    def test_ignores_active_flag(self):
        assert should_generate(make(active=False), date(2024, 1, 1))

    def test_pure(self):
        """Repeated evaluation gives the same answer and leaves the template untouched."""
        template = make(RecurrenceType.WEEKLY, [2, 4])
        before = repr(template)
        results = {should_generate(template, date(2024, 1, 2)) for _ in range(5)}
        assert results == {True}
        assert repr(template) == before


class TestRange:
    """Test start/end window handling."""

    def test_inclusive_bounds(self):
        template = make(start_day=date(2024, 1, 10), end_day=date(2024, 1, 12))
        assert not in_range(template, date(2024, 1, 9))
        assert in_range(template, date(2024, 1, 10))
        assert in_range(template, date(2024, 1, 12))
        assert not in_range(template, date(2024, 1, 13))

    def test_open_ended(self):
        assert in_range(make(start_day=date(2024, 1, 10)), date(2030, 1, 1))
        assert in_range(make(end_day=date(2024, 1, 10)), date(2000, 1, 1))

    def test_out_of_range_not_generated(self):
        template = make(start_day=date(2024, 1, 10))
        assert not should_generate(template, date(2024, 1, 9))


class TestApplies:
    """Test applies."""

    def test_active(self):
        assert applies(make(), date(2024, 1, 1))

    def test_inactive(self):
        assert not applies(make(active=False), date(2024, 1, 1))
