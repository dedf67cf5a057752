"""Sensor entities for HabitXP integration."""
from __future__ import annotations

from homeassistant.components.sensor import SensorEntity, SensorStateClass
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN
from .coordinator import HabitXPCoordinator
from .exceptions import TemplateNotFound
from .models import Template


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry, add_entities: AddEntitiesCallback):
    coordinator: HabitXPCoordinator = hass.data[DOMAIN][entry.entry_id]

    entities = []
    for user_id in coordinator.user_ids():
        entities.append(HabitXPTotalXPSensor(coordinator, user_id))
        entities.append(HabitXPLevelSensor(coordinator, user_id))
        entities.append(HabitXPCoinsSensor(coordinator, user_id))
        entities.append(HabitXPDiamondsSensor(coordinator, user_id))
        entities.append(HabitXPGlobalStreakSensor(coordinator, user_id))
        for template in coordinator.get_templates(user_id):
            entities.append(HabitXPTemplateStreakSensor(coordinator, user_id, template))

    def _template_created(user_id: str, template: Template) -> None:
        add_entities([HabitXPTemplateStreakSensor(coordinator, user_id, template)])

    coordinator.add_template_listener(_template_created)
    add_entities(entities, True)


class HabitXPUserSensor(SensorEntity):
    """Base for sensors bound to one user."""

    _attr_should_poll = False
    _key = ""
    _label = ""

    def __init__(self, coord: HabitXPCoordinator, user_id: str):
        self._coord = coord
        self._user_id = user_id
        self._attr_unique_id = f"{DOMAIN}_{user_id}_{self._key}"
        self._attr_name = f"HabitXP {user_id.capitalize()} {self._label}"
        coord.register_entity(user_id, self)

    @property
    def available(self) -> bool:
        """Check if coordinator is ready."""
        return self._coord.model is not None


class HabitXPTotalXPSensor(HabitXPUserSensor):
    _key = "total_xp"
    _label = "Total XP"
    _attr_icon = "mdi:star-four-points"
    _attr_state_class = SensorStateClass.TOTAL

    @property
    def native_value(self):
        return self._coord.get_total_xp(self._user_id)

    @property
    def extra_state_attributes(self):
        return self._coord.get_ledger_summary(self._user_id)


class HabitXPLevelSensor(HabitXPUserSensor):
    _key = "level"
    _label = "Level"
    _attr_icon = "mdi:trophy"

    @property
    def native_value(self):
        return self._coord.get_level_info(self._user_id)["level"]

    @property
    def extra_state_attributes(self):
        info = self._coord.get_level_info(self._user_id)
        return {
            "total_xp": info["total_xp"],
            "current_level_xp": info["current_level_xp"],
            "next_level_xp": info["next_level_xp"],
            "progress_percentage": int(info["progress"] * 100),
        }


class HabitXPCoinsSensor(HabitXPUserSensor):
    _key = "coins"
    _label = "Coins"
    _attr_icon = "mdi:hand-coin"

    @property
    def native_value(self):
        return self._coord.get_wallet(self._user_id).coins


class HabitXPDiamondsSensor(HabitXPUserSensor):
    _key = "diamonds"
    _label = "Diamonds"
    _attr_icon = "mdi:diamond-stone"

    @property
    def native_value(self):
        return self._coord.get_wallet(self._user_id).diamonds


class HabitXPGlobalStreakSensor(HabitXPUserSensor):
    _key = "logging_streak"
    _label = "Logging Streak"
    _attr_icon = "mdi:fire"
    _attr_native_unit_of_measurement = "days"

    @property
    def native_value(self):
        return self._coord.get_global_streak(self._user_id).current_streak

    @property
    def extra_state_attributes(self):
        record = self._coord.get_global_streak(self._user_id)
        return {
            "best_streak": record.best_streak,
            "days_logged": record.total_completions,
            "last_logged_day": record.last_completed_day.isoformat() if record.last_completed_day else None,
        }


class HabitXPTemplateStreakSensor(SensorEntity):
    """Current streak of one habit template."""

    _attr_should_poll = False
    _attr_icon = "mdi:calendar-check"
    _attr_native_unit_of_measurement = "days"

    def __init__(self, coord: HabitXPCoordinator, user_id: str, template: Template):
        self._coord = coord
        self._user_id = user_id
        self._template_id = template.id
        self._attr_unique_id = f"{DOMAIN}_{user_id}_{template.id}_streak"
        self._attr_name = f"{user_id.capitalize()} Streak: {template.name}"
        coord.register_entity(user_id, self)

    def _template(self) -> Template | None:
        if self._coord.model is None:
            return None
        try:
            return self._coord.get_template(self._user_id, self._template_id)
        except TemplateNotFound:
            return None

    @property
    def native_value(self):
        if self._template() is None:
            return None
        return self._coord.get_template_streak(self._user_id, self._template_id).current_streak

    @property
    def extra_state_attributes(self):
        template = self._template()
        if template is None:
            return {"template_id": self._template_id}
        record = self._coord.get_template_streak(self._user_id, self._template_id)
        return {
            "template_id": template.id,
            "template_name": template.name,
            "recurrence": template.recurrence.value,
            "best_streak": record.best_streak,
            "total_completions": record.total_completions,
            "current_streak_start": (
                record.current_streak_start_day.isoformat() if record.current_streak_start_day else None
            ),
            "last_completed": record.last_completed_day.isoformat() if record.last_completed_day else None,
        }

    @property
    def available(self) -> bool:
        """Unavailable once the template is deleted."""
        return self._coord.model is not None and self._template() is not None
