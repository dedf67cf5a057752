"""Config flow for HabitXP integration."""
from __future__ import annotations

import re
from typing import Any

from homeassistant import config_entries
from homeassistant.core import callback
import voluptuous as vol

from . import parse_users
from .const import CONF_USE_TODO, CONF_USERS, DOMAIN

# User ids end up in entity ids and unique ids
USER_ID_PATTERN = re.compile(r"^[a-z0-9_]+$")


def validate_users(raw: str) -> tuple[str, str | None]:
    """Return the normalized user list and an error key, if any."""
    users = [u.lower() for u in parse_users(raw)]
    if not users:
        return "", "no_users"
    if any(not USER_ID_PATTERN.match(u) for u in users):
        return "", "invalid_user"
    if len(set(users)) != len(users):
        return "", "duplicate_user"
    return ",".join(users), None


class HabitXPConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    VERSION = 1

    async def async_step_user(self, user_input: dict[str, Any] | None = None):
        if self._async_current_entries():
            return self.async_abort(reason="single_instance_allowed")

        errors = {}
        if user_input is not None:
            users, error = validate_users(user_input[CONF_USERS])
            if error:
                errors[CONF_USERS] = error
            else:
                return self.async_create_entry(
                    title="HabitXP",
                    data={CONF_USERS: users, CONF_USE_TODO: user_input.get(CONF_USE_TODO, True)},
                )

        default_users = user_input[CONF_USERS] if user_input else "me"
        data_schema = vol.Schema({
            vol.Required(CONF_USERS, default=default_users): str,
            vol.Optional(CONF_USE_TODO, default=True): bool,
        })
        return self.async_show_form(step_id="user", data_schema=data_schema, errors=errors)

    @staticmethod
    @callback
    def async_get_options_flow(config_entry):
        return HabitXPOptionsFlow(config_entry)


class HabitXPOptionsFlow(config_entries.OptionsFlow):
    """Toggle the per-user todo lists."""

    def __init__(self, entry):
        self.entry = entry

    async def async_step_init(self, user_input=None):
        if user_input is not None:
            return self.async_create_entry(title="", data=user_input)

        current = self.entry.options.get(CONF_USE_TODO, self.entry.data.get(CONF_USE_TODO, True))
        data_schema = vol.Schema({
            vol.Optional(CONF_USE_TODO, default=current): bool,
        })
        return self.async_show_form(step_id="init", data_schema=data_schema)
