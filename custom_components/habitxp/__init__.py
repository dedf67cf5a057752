"""The HabitXP integration."""
from __future__ import annotations

import asyncio
from datetime import datetime
import logging
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, ServiceCall
from homeassistant.exceptions import ConfigEntryNotReady, HomeAssistantError
import homeassistant.helpers.config_validation as cv
from homeassistant.helpers.event import async_track_time_change
from homeassistant.helpers.typing import ConfigType
import voluptuous as vol

from .const import (
    CONF_USERS,
    DOMAIN,
    PLATFORMS,
    SERVICE_CREATE_TEMPLATE,
    SERVICE_DELETE_TEMPLATE,
    SERVICE_REGENERATE_DAYS,
    SERVICE_ROLLOVER,
    SERVICE_SET_STATUS,
    SERVICE_SPEND,
    SERVICE_UPDATE_TEMPLATE,
    SERVICES,
    SWEEP_TIME,
)
from .coordinator import HabitXPCoordinator
from .ledger import logical_day
from .models import RecurrenceType, TaskStatus

_LOGGER = logging.getLogger(__name__)

RECURRENCES = [r.value for r in RecurrenceType]
STATUSES = [s.value for s in TaskStatus]
NON_NEGATIVE_INT = vol.All(vol.Coerce(int), vol.Range(min=0))
DAY_LIST = vol.All(cv.ensure_list, [vol.Coerce(int)])


def parse_users(raw: str) -> list[str]:
    """Split the configured comma-separated user ids."""
    return [u.strip() for u in (raw or "").split(",") if u.strip()]


async def async_setup(hass: HomeAssistant, config: ConfigType) -> bool:
    """Set up the HabitXP component."""
    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up HabitXP from a config entry."""
    try:
        coordinator = HabitXPCoordinator(hass)
        await coordinator.async_init()
        for user_id in parse_users(entry.data.get(CONF_USERS, "")):
            await coordinator.ensure_user(user_id)
    except (asyncio.TimeoutError, OSError) as ex:
        raise ConfigEntryNotReady(f"Failed to initialize HabitXP coordinator: {ex}") from ex
    except Exception as ex:
        _LOGGER.exception("Unexpected error setting up HabitXP")
        raise ConfigEntryNotReady(f"Setup failed: {ex}") from ex

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = coordinator

    try:
        await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    except Exception as ex:
        _LOGGER.exception("Failed to set up platforms")
        raise ConfigEntryNotReady(f"Failed to set up platforms: {ex}") from ex

    async def _sweep(now: datetime) -> None:
        rolled = await coordinator.async_rollover()
        _LOGGER.debug("Scheduled rollover sweep at %s, rolled over: %s", now, rolled)

    hour, minute, second = SWEEP_TIME
    entry.async_on_unload(
        async_track_time_change(hass, _sweep, hour=hour, minute=minute, second=second)
    )

    # ---- Services ----
    async def _run(name: str, handler, call: ServiceCall) -> Any:
        try:
            return await handler(call.data)
        except HomeAssistantError:
            raise
        except KeyError as ex:
            _LOGGER.error("Missing required parameter in %s service: %s", name, ex)
            raise HomeAssistantError(f"Missing required parameter: {ex}") from ex
        except (ValueError, TypeError) as ex:
            _LOGGER.error("Invalid parameter value in %s service: %s", name, ex)
            raise HomeAssistantError(f"Invalid parameter: {ex}") from ex
        except Exception as ex:
            _LOGGER.exception("Unexpected error in %s service", name)
            raise HomeAssistantError(f"Service failed: {ex}") from ex

    async def _create_template(data: dict[str, Any]) -> None:
        template_id = await coordinator.async_create_template(
            data["user"],
            data["name"],
            data["reward"],
            recurrence=RecurrenceType(data.get("recurrence", RecurrenceType.DAILY.value)),
            days=data.get("days"),
            start_day=data.get("start_day"),
            end_day=data.get("end_day"),
            active=data.get("active", True),
        )
        _LOGGER.info("Successfully created template %s for %s", template_id, data["user"])

    async def _update_template(data: dict[str, Any]) -> None:
        changes = {k: v for k, v in data.items() if k not in ("user", "template_id")}
        if "recurrence" in changes:
            changes["recurrence"] = RecurrenceType(changes["recurrence"])
        await coordinator.async_update_template(data["user"], data["template_id"], **changes)

    async def _delete_template(data: dict[str, Any]) -> None:
        await coordinator.async_delete_template(data["user"], data["template_id"])

    async def _set_status(data: dict[str, Any]) -> None:
        day = data.get("day") or logical_day(coordinator.now())
        change = await coordinator.async_set_status(
            data["user"], data["template_id"], day, TaskStatus(data["status"])
        )
        if change.level_up:
            _LOGGER.info(
                "%s reached level %d (+%d diamonds)",
                data["user"], change.level_up.new_level, change.level_up.diamonds_awarded,
            )

    async def _regenerate_days(data: dict[str, Any]) -> None:
        changed = await coordinator.async_regenerate_days(data["user"], data.get("day"))
        _LOGGER.info("Regenerated %d days for %s", changed, data["user"])

    async def _rollover(data: dict[str, Any]) -> None:
        rolled = await coordinator.async_rollover(data.get("user"))
        _LOGGER.info("Rollover done for: %s", ", ".join(rolled) or "nobody")

    async def _spend(data: dict[str, Any]) -> None:
        user_id, amount = data["user"], data["amount"]
        if data["currency"] == "diamonds":
            ok = await coordinator.spend_diamonds(user_id, amount)
        else:
            ok = await coordinator.spend_coins(user_id, amount)
        if not ok:
            raise HomeAssistantError(f"{user_id} does not have {amount} {data['currency']}")

    # Service schemas
    rule_fields = {
        vol.Optional("days"): DAY_LIST,
        vol.Optional("start_day"): cv.date,
        vol.Optional("end_day"): cv.date,
    }

    create_template_schema = vol.Schema({
        vol.Required("user"): cv.string,
        vol.Required("name"): cv.string,
        vol.Required("reward"): NON_NEGATIVE_INT,
        vol.Optional("recurrence", default=RecurrenceType.DAILY.value): vol.In(RECURRENCES),
        vol.Optional("active", default=True): cv.boolean,
        **rule_fields,
    })

    update_template_schema = vol.Schema({
        vol.Required("user"): cv.string,
        vol.Required("template_id"): cv.string,
        vol.Optional("name"): cv.string,
        vol.Optional("reward"): NON_NEGATIVE_INT,
        vol.Optional("recurrence"): vol.In(RECURRENCES),
        vol.Optional("active"): cv.boolean,
        **rule_fields,
    })

    delete_template_schema = vol.Schema({
        vol.Required("user"): cv.string,
        vol.Required("template_id"): cv.string,
    })

    set_status_schema = vol.Schema({
        vol.Required("user"): cv.string,
        vol.Required("template_id"): cv.string,
        vol.Required("status"): vol.In(STATUSES),
        vol.Optional("day"): cv.date,
    })

    regenerate_days_schema = vol.Schema({
        vol.Required("user"): cv.string,
        vol.Optional("day"): cv.date,
    })

    rollover_schema = vol.Schema({
        vol.Optional("user"): cv.string,
    })

    spend_schema = vol.Schema({
        vol.Required("user"): cv.string,
        vol.Required("currency"): vol.In(["coins", "diamonds"]),
        vol.Required("amount"): cv.positive_int,
    })

    handlers = {
        SERVICE_CREATE_TEMPLATE: (_create_template, create_template_schema),
        SERVICE_UPDATE_TEMPLATE: (_update_template, update_template_schema),
        SERVICE_DELETE_TEMPLATE: (_delete_template, delete_template_schema),
        SERVICE_SET_STATUS: (_set_status, set_status_schema),
        SERVICE_REGENERATE_DAYS: (_regenerate_days, regenerate_days_schema),
        SERVICE_ROLLOVER: (_rollover, rollover_schema),
        SERVICE_SPEND: (_spend, spend_schema),
    }
    for name, (handler, schema) in handlers.items():

        async def _service(call: ServiceCall, name=name, handler=handler) -> None:
            await _run(name, handler, call)

        hass.services.async_register(DOMAIN, name, _service, schema=schema)

    entry.async_on_unload(entry.add_update_listener(async_reload_entry))
    return True


async def async_reload_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Reload after the options changed so the todo platform follows use_todo."""
    await hass.config_entries.async_reload(entry.entry_id)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unload_ok:
        hass.data[DOMAIN].pop(entry.entry_id, None)
        # Unregister services if this is the last instance
        if not hass.data[DOMAIN]:
            for service in SERVICES:
                hass.services.async_remove(DOMAIN, service)
    return unload_ok
