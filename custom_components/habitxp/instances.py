"""Per-day habit instances generated from templates."""
from __future__ import annotations

from bisect import bisect_right, insort
from collections.abc import Iterator
from datetime import date, datetime, time, timedelta
import logging

from .const import GRACE_HOURS
from .exceptions import InstanceNotFound, InvalidTransition
from .models import Instance, InstanceKey, TaskStatus, Template, UserData
from .recurrence import applies

_LOGGER = logging.getLogger(__name__)


def is_late(day: date, now: datetime) -> bool:
    """A day's instance is late once the grace window of the next day has passed."""
    deadline = datetime.combine(day + timedelta(days=1), time(GRACE_HOURS), tzinfo=now.tzinfo)
    return now > deadline


class InstanceStore:
    """Materializes and mutates one user's instances.

    Rows live in ``user.instances`` (day -> template id -> Instance). A sorted
    index of materialized days is kept alongside and updated on every insert
    and removal, so callers never scan the whole store to find days.
    """

    def __init__(self, user: UserData) -> None:
        self._user = user
        self._days: list[date] = sorted(user.instances)

    @property
    def templates(self) -> dict[str, Template]:
        return self._user.templates

    @property
    def days(self) -> list[date]:
        """Materialized days, oldest first."""
        return list(self._days)

    def has_day(self, day: date) -> bool:
        return day in self._user.instances

    def get(self, key: InstanceKey) -> Instance | None:
        row = self._user.instances.get(key.day)
        if row is None:
            return None
        return row.get(key.template_id)

    def instances_on(self, day: date) -> list[Instance]:
        """Stored instances for a day, without generating anything."""
        return list(self._user.instances.get(day, {}).values())

    def iter_rows(self) -> Iterator[tuple[date, dict[str, Instance]]]:
        for day in self._days:
            yield day, self._user.instances[day]

    def _row(self, day: date) -> dict[str, Instance]:
        row = self._user.instances.get(day)
        if row is None:
            row = self._user.instances[day] = {}
            insort(self._days, day)
        return row

    def _drop_row(self, day: date) -> None:
        self._user.instances.pop(day, None)
        if day in self._days:
            self._days.remove(day)

    def _new_instance(self, template: Template, day: date, now: datetime) -> Instance:
        return Instance(
            template_id=template.id,
            day=day,
            name=template.name,
            reward=template.reward,
            created_at=now,
            updated_at=now,
        )

    def get_instances_for_day(self, day: date, now: datetime) -> list[Instance]:
        """Return the day's instances, generating them on first read."""
        row = self._user.instances.get(day)
        if row is not None:
            return list(row.values())

        row = self._row(day)
        for template in self.templates.values():
            if applies(template, day):
                row[template.id] = self._new_instance(template, day, now)
        _LOGGER.debug("Generated %d instances for %s", len(row), day)
        return list(row.values())

    def regenerate_day(self, day: date, now: datetime) -> bool:
        """Bring a day in line with the current templates. Returns True if anything changed.

        Existing instances keep their status; only name and reward are refreshed.
        Pending instances of templates that no longer apply are removed for today
        and later days. Past days are history and keep whatever they hold.
        """
        row = self._row(day)
        today = now.date()
        changed = False

        for template in self.templates.values():
            existing = row.get(template.id)
            selected = applies(template, day)

            if existing is None:
                if selected:
                    row[template.id] = self._new_instance(template, day, now)
                    changed = True
                continue

            if selected:
                if existing.name != template.name or existing.reward != template.reward:
                    existing.name = template.name
                    existing.reward = template.reward
                    existing.touch(now)
                    changed = True
            elif existing.status is TaskStatus.PENDING and day >= today:
                del row[template.id]
                changed = True

        if not row and day > today:
            self._drop_row(day)
        return changed

    def regenerate_all_days(self, now: datetime) -> int:
        """Regenerate every materialized day. Returns the number of days changed."""
        changed = 0
        for day in list(self._days):
            if self.regenerate_day(day, now):
                changed += 1
        _LOGGER.debug("Regenerated %d of %d days", changed, len(self._days))
        return changed

    def update_status(self, key: InstanceKey, new_status: TaskStatus, now: datetime) -> TaskStatus:
        """Move an instance between pending and a logged status.

        Returns the previous status so the caller can settle rewards.
        """
        instance = self.get(key)
        if instance is None:
            raise InstanceNotFound(f"No instance for {key.encode()}")

        previous = instance.status
        if previous.is_logged == new_status.is_logged:
            raise InvalidTransition(
                f"Cannot change {key.encode()} from {previous.value} to {new_status.value}"
            )

        if new_status.is_logged:
            instance.is_late = is_late(key.day, now)
            instance.completed_at = now
        else:
            instance.completed_at = None
        instance.status = new_status
        instance.touch(now)
        return previous

    def remove_future_pending(self, template_id: str, today: date) -> list[date]:
        """Drop a template's pending instances scheduled after today."""
        removed = []
        for day in self._days[bisect_right(self._days, today):]:
            row = self._user.instances[day]
            instance = row.get(template_id)
            if instance is not None and instance.status is TaskStatus.PENDING:
                del row[template_id]
                removed.append(day)
                if not row:
                    self._drop_row(day)
        return removed
