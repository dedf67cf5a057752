"""Todo entities for HabitXP integration."""
from __future__ import annotations

import logging

from homeassistant.components.todo import TodoItem, TodoItemStatus, TodoListEntity, TodoListEntityFeature
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import CONF_USE_TODO, DOMAIN
from .coordinator import HabitXPCoordinator
from .ledger import logical_day
from .models import Instance, InstanceKey, TaskStatus

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry, add_entities: AddEntitiesCallback):
    if not entry.options.get(CONF_USE_TODO, entry.data.get(CONF_USE_TODO, True)):
        return
    coordinator: HabitXPCoordinator = hass.data[DOMAIN][entry.entry_id]
    add_entities([UserHabitList(coordinator, user_id) for user_id in coordinator.user_ids()], True)


def to_todo_item(instance: Instance) -> TodoItem:
    summary = f"{instance.name} (+{instance.reward})" if instance.reward else instance.name
    if instance.status not in (TaskStatus.PENDING, TaskStatus.COMPLETED):
        summary = f"{summary} [{instance.status.value.replace('_', ' ')}]"
    return TodoItem(
        summary=summary,
        uid=instance.key.encode(),
        status=TodoItemStatus.COMPLETED if instance.status.is_logged else TodoItemStatus.NEEDS_ACTION,
    )


class UserHabitList(TodoListEntity):
    """Today's habits for one user. Checking an item completes it."""

    _attr_should_poll = False
    _attr_supported_features = TodoListEntityFeature.UPDATE_TODO_ITEM

    def __init__(self, coord: HabitXPCoordinator, user_id: str):
        self._coord = coord
        self._user_id = user_id
        self._attr_name = f"{user_id.capitalize()} Habits"
        self._attr_unique_id = f"{DOMAIN}_todo_{user_id}"
        self._attr_todo_items = []
        coord.register_entity(user_id, self)

    async def async_update(self) -> None:
        """Load today's instances, generating them if needed."""
        day = logical_day(self._coord.now())
        instances = await self._coord.async_get_instances_for_day(self._user_id, day)
        self._attr_todo_items = [to_todo_item(i) for i in sorted(instances, key=lambda i: i.name)]

    async def async_update_todo_item(self, item: TodoItem) -> None:
        """Map checkbox changes onto status changes."""
        key = InstanceKey.decode(item.uid)
        current = next((i for i in self._attr_todo_items if i.uid == item.uid), None)
        if current is None or current.status == item.status:
            _LOGGER.debug("Ignoring todo update without status change: %s", item.uid)
            return

        status = TaskStatus.COMPLETED if item.status == TodoItemStatus.COMPLETED else TaskStatus.PENDING
        await self._coord.async_set_status(self._user_id, key.template_id, key.day, status)
        await self.async_update()
        self.async_write_ha_state()
