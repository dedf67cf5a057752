"""Unit tests for HabitXP instance generation."""
from __future__ import annotations

from datetime import date

import pytest

from custom_components.habitxp.exceptions import InstanceNotFound, InvalidTransition
from custom_components.habitxp.instances import InstanceStore, is_late
from custom_components.habitxp.models import (
    InstanceKey,
    RecurrenceType,
    TaskStatus,
    Template,
    UserData,
)

from .conftest import at

NOW = at(2024, 1, 10, 12)
TODAY = date(2024, 1, 10)


@pytest.fixture
def user():
    user = UserData(id="alice", name="Alice")
    user.templates["read"] = Template(id="read", name="Read", reward=5)
    user.templates["gym"] = Template(
        id="gym", name="Gym", reward=10, recurrence=RecurrenceType.WEEKLY, days=[3]
    )
    return user


@pytest.fixture
def store(user):
    return InstanceStore(user)


class TestIsLate:
    """Test the lateness window."""

    def test_same_day(self):
        assert not is_late(date(2024, 1, 1), at(2024, 1, 1, 23, 59))

    def test_grace_window(self):
        assert not is_late(date(2024, 1, 1), at(2024, 1, 2, 1, 59))
        assert not is_late(date(2024, 1, 1), at(2024, 1, 2, 2, 0))

    def test_after_grace(self):
        assert is_late(date(2024, 1, 1), at(2024, 1, 2, 2, 0, 1))

    def test_future_day(self):
        assert not is_late(date(2024, 1, 5), at(2024, 1, 1, 10))


class TestGeneration:
    """Test lazy generation of days."""

    def test_generates_applicable_templates(self, store):
        # 2024-01-10 is a Wednesday
        instances = store.get_instances_for_day(TODAY, NOW)
        assert {i.template_id for i in instances} == {"read", "gym"}
        assert all(i.status is TaskStatus.PENDING for i in instances)

    def test_skips_non_applicable(self, store):
        instances = store.get_instances_for_day(date(2024, 1, 11), NOW)
        assert [i.template_id for i in instances] == ["read"]

    def test_second_read_returns_stored(self, store, user):
        first = store.get_instances_for_day(TODAY, NOW)
        user.templates["new"] = Template(id="new", name="New", reward=1)
        second = store.get_instances_for_day(TODAY, NOW)
        assert {i.template_id for i in second} == {i.template_id for i in first}

    def test_at_most_one_instance_per_key(self, store):
        store.get_instances_for_day(TODAY, NOW)
        store.regenerate_day(TODAY, NOW)
        store.regenerate_day(TODAY, NOW)
        assert len(store.instances_on(TODAY)) == 2

    def test_inactive_template_not_generated(self, store, user):
        user.templates["read"].active = False
        instances = store.get_instances_for_day(TODAY, NOW)
        assert [i.template_id for i in instances] == ["gym"]

    def test_empty_day_is_materialized(self, store, user):
        user.templates.clear()
        assert store.get_instances_for_day(TODAY, NOW) == []
        assert store.has_day(TODAY)

    def test_days_sorted(self, store):
        for day in (date(2024, 1, 12), date(2024, 1, 8), TODAY):
            store.get_instances_for_day(day, NOW)
        assert store.days == [date(2024, 1, 8), TODAY, date(2024, 1, 12)]


class TestRegeneration:
    """Test regenerate_day and regenerate_all_days."""

    def test_preserves_status(self, store, user):
        store.get_instances_for_day(TODAY, NOW)
        store.update_status(InstanceKey("read", TODAY), TaskStatus.COMPLETED, NOW)
        user.templates["read"].name = "Read a book"
        assert store.regenerate_day(TODAY, NOW)

        instance = store.get(InstanceKey("read", TODAY))
        assert instance.status is TaskStatus.COMPLETED
        assert instance.name == "Read a book"

    def test_no_change(self, store):
        store.get_instances_for_day(TODAY, NOW)
        assert not store.regenerate_day(TODAY, NOW)

    def test_adds_new_template(self, store, user):
        store.get_instances_for_day(TODAY, NOW)
        user.templates["new"] = Template(id="new", name="New", reward=1)
        assert store.regenerate_all_days(NOW) == 1
        assert store.get(InstanceKey("new", TODAY)) is not None

    def test_removes_pending_when_rule_stops_applying(self, store, user):
        store.get_instances_for_day(TODAY, NOW)
        user.templates["gym"].days = [1]
        store.regenerate_day(TODAY, NOW)
        assert store.get(InstanceKey("gym", TODAY)) is None

    def test_keeps_logged_when_rule_stops_applying(self, store, user):
        store.get_instances_for_day(TODAY, NOW)
        store.update_status(InstanceKey("gym", TODAY), TaskStatus.COMPLETED, NOW)
        user.templates["gym"].days = [1]
        store.regenerate_day(TODAY, NOW)
        assert store.get(InstanceKey("gym", TODAY)).status is TaskStatus.COMPLETED

    def test_past_days_are_history(self, store, user):
        past = date(2024, 1, 3)
        store.get_instances_for_day(past, NOW)
        user.templates["gym"].days = [1]
        store.regenerate_day(past, NOW)
        assert store.get(InstanceKey("gym", past)) is not None

    def test_empty_future_row_dropped(self, store, user):
        future = date(2024, 1, 17)
        store.get_instances_for_day(future, NOW)
        user.templates["read"].active = False
        user.templates["gym"].active = False
        store.regenerate_day(future, NOW)
        assert not store.has_day(future)
        assert future not in store.days


class TestUpdateStatus:
    """Test status transitions."""

    def test_complete(self, store):
        store.get_instances_for_day(TODAY, NOW)
        key = InstanceKey("read", TODAY)
        previous = store.update_status(key, TaskStatus.COMPLETED, NOW)

        instance = store.get(key)
        assert previous is TaskStatus.PENDING
        assert instance.status is TaskStatus.COMPLETED
        assert instance.completed_at == NOW
        assert not instance.is_late
        assert instance.updated_at >= NOW

    def test_late(self, store):
        past = date(2024, 1, 5)
        store.get_instances_for_day(past, NOW)
        store.update_status(InstanceKey("read", past), TaskStatus.NOT_DID, NOW)
        assert store.get(InstanceKey("read", past)).is_late

    def test_revert_to_pending(self, store):
        store.get_instances_for_day(TODAY, NOW)
        key = InstanceKey("read", TODAY)
        store.update_status(key, TaskStatus.COMPLETED, NOW)
        previous = store.update_status(key, TaskStatus.PENDING, NOW)

        assert previous is TaskStatus.COMPLETED
        assert store.get(key).completed_at is None

    def test_logged_to_logged_rejected(self, store):
        store.get_instances_for_day(TODAY, NOW)
        key = InstanceKey("read", TODAY)
        store.update_status(key, TaskStatus.COMPLETED, NOW)
        with pytest.raises(InvalidTransition):
            store.update_status(key, TaskStatus.NOT_DID, NOW)

    def test_pending_to_pending_rejected(self, store):
        store.get_instances_for_day(TODAY, NOW)
        with pytest.raises(InvalidTransition):
            store.update_status(InstanceKey("read", TODAY), TaskStatus.PENDING, NOW)

    def test_missing_instance(self, store):
        with pytest.raises(InstanceNotFound):
            store.update_status(InstanceKey("read", TODAY), TaskStatus.COMPLETED, NOW)


class TestRemoveFuturePending:
    """Test pruning of future instances."""

    def test_prunes_only_future_pending(self, store):
        for day in (date(2024, 1, 9), TODAY, date(2024, 1, 11), date(2024, 1, 12)):
            store.get_instances_for_day(day, NOW)
        store.update_status(InstanceKey("read", date(2024, 1, 12)), TaskStatus.NOT_NECESSARY, NOW)

        removed = store.remove_future_pending("read", TODAY)

        assert removed == [date(2024, 1, 11)]
        assert store.get(InstanceKey("read", date(2024, 1, 9))) is not None
        assert store.get(InstanceKey("read", TODAY)) is not None
        assert store.get(InstanceKey("read", date(2024, 1, 12))) is not None

    def test_drops_emptied_rows(self, store):
        tomorrow = date(2024, 1, 11)
        store.get_instances_for_day(tomorrow, NOW)
        store.remove_future_pending("read", TODAY)
        assert not store.has_day(tomorrow)
