"""Recurrence rules for HabitXP templates."""
from __future__ import annotations

from datetime import date, datetime

from .models import RecurrenceType, Template


def as_day(value: date | datetime) -> date:
    """Strip the time part, keeping the calendar day."""
    if isinstance(value, datetime):
        return value.date()
    return value


def in_range(template: Template, day: date) -> bool:
    """Check the template's inclusive [start_day, end_day] window."""
    if template.start_day is not None and day < as_day(template.start_day):
        return False
    if template.end_day is not None and day > as_day(template.end_day):
        return False
    return True


def should_generate(template: Template, day: date | datetime) -> bool:
    """Return whether the template's rule selects the given day.

    Pure function of the template snapshot and the day. The active flag is
    not considered here, see `applies`.
    """
    day = as_day(day)
    if not in_range(template, day):
        return False

    rule = template.recurrence
    if rule is RecurrenceType.DAILY:
        return True
    if rule is RecurrenceType.WEEKLY:
        return day.isoweekday() in template.days
    if rule is RecurrenceType.MONTHLY:
        return day.day in template.days
    if rule is RecurrenceType.CUSTOM:
        # No selection rule is defined for custom values yet
        return bool(template.days)
    return False


def applies(template: Template, day: date | datetime) -> bool:
    """Active template whose rule selects the day."""
    return template.active and should_generate(template, day)
