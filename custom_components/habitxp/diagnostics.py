"""Diagnostics support for HabitXP integration."""
from __future__ import annotations

from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant

from .const import DOMAIN
from .coordinator import HabitXPCoordinator
from .models import TaskStatus


async def async_get_config_entry_diagnostics(
    hass: HomeAssistant, entry: ConfigEntry
) -> dict[str, Any]:
    """Return diagnostics for a config entry."""
    coordinator: HabitXPCoordinator = hass.data[DOMAIN][entry.entry_id]

    if not coordinator.model:
        return {"error": "Coordinator model not initialized"}

    users = {}
    for user_id in coordinator.user_ids():
        session = coordinator.session(user_id)
        user = session.user

        # Count instances by status
        by_status = {status.value: 0 for status in TaskStatus}
        for _, row in session.instances.iter_rows():
            for instance in row.values():
                by_status[instance.status.value] += 1

        days = session.instances.days
        users[user_id] = {
            "name": user.name,
            "templates": len(user.templates),
            "active_templates": sum(1 for t in user.templates.values() if t.active),
            "materialized_days": len(days),
            "first_day": days[0].isoformat() if days else None,
            "last_day": days[-1].isoformat() if days else None,
            "instances_by_status": by_status,
            "ledger": coordinator.get_ledger_summary(user_id),
            "level": coordinator.get_level_info(user_id),
            "wallet": vars(user.wallet).copy(),
            "streak_engine": session.streaks.stats(),
        }

    return {
        "config_data": {
            "users": entry.data.get("users", ""),
            "use_todo": entry.data.get("use_todo", True),
        },
        "users": users,
        "storage_status": {
            "model_loaded": coordinator.model is not None,
            "storage_version": coordinator.store._store.version,
            "storage_key": coordinator.store._store.key,
        },
    }
