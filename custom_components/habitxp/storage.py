"""Storage utilities for HabitXP integration."""
from __future__ import annotations

from datetime import date, datetime
import logging
from typing import Any

from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store
from homeassistant.util import dt as dt_util

from .const import STORAGE_KEY, STORAGE_VERSION
from .models import (
    Instance,
    InstanceKey,
    LedgerState,
    RecurrenceType,
    StorageModel,
    StreakRecord,
    TaskStatus,
    Template,
    UserData,
    Wallet,
)

_LOGGER = logging.getLogger(__name__)


def _dt(value: str | None) -> datetime | None:
    return dt_util.parse_datetime(value) if value else None


def _day(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def streak_to_dict(record: StreakRecord) -> dict[str, Any]:
    return {
        "current_streak": record.current_streak,
        "best_streak": record.best_streak,
        "total_completions": record.total_completions,
        "last_completed_day": _iso(record.last_completed_day),
        "current_streak_start_day": _iso(record.current_streak_start_day),
        "last_calculated": _iso(record.last_calculated),
        "template_version": _iso(record.template_version),
    }


def streak_from_dict(data: dict[str, Any]) -> StreakRecord:
    return StreakRecord(
        current_streak=data.get("current_streak", 0),
        best_streak=data.get("best_streak", 0),
        total_completions=data.get("total_completions", 0),
        last_completed_day=_day(data.get("last_completed_day")),
        current_streak_start_day=_day(data.get("current_streak_start_day")),
        last_calculated=_dt(data.get("last_calculated")),
        template_version=_dt(data.get("template_version")),
    )


def template_to_dict(template: Template) -> dict[str, Any]:
    return {
        "id": template.id,
        "name": template.name,
        "reward": template.reward,
        "recurrence": template.recurrence.value,
        "days": list(template.days),
        "active": template.active,
        "start_day": _iso(template.start_day),
        "end_day": _iso(template.end_day),
        "created_at": _iso(template.created_at),
        "last_modified": _iso(template.last_modified),
        "streak": streak_to_dict(template.streak),
    }


def template_from_dict(data: dict[str, Any]) -> Template:
    return Template(
        id=data["id"],
        name=data["name"],
        reward=data.get("reward", 0),
        recurrence=RecurrenceType(data.get("recurrence", RecurrenceType.DAILY.value)),
        days=list(data.get("days") or []),
        active=data.get("active", True),
        start_day=_day(data.get("start_day")),
        end_day=_day(data.get("end_day")),
        created_at=_dt(data.get("created_at")),
        last_modified=_dt(data.get("last_modified")),
        streak=streak_from_dict(data.get("streak") or {}),
    )


def instance_to_dict(instance: Instance) -> dict[str, Any]:
    return {
        "name": instance.name,
        "reward": instance.reward,
        "status": instance.status.value,
        "completed_at": _iso(instance.completed_at),
        "is_late": instance.is_late,
        "created_at": _iso(instance.created_at),
        "updated_at": _iso(instance.updated_at),
    }


def instance_from_dict(key: InstanceKey, data: dict[str, Any]) -> Instance:
    return Instance(
        template_id=key.template_id,
        day=key.day,
        name=data["name"],
        reward=data.get("reward", 0),
        status=TaskStatus(data.get("status", TaskStatus.PENDING.value)),
        completed_at=_dt(data.get("completed_at")),
        is_late=data.get("is_late", False),
        created_at=_dt(data.get("created_at")),
        updated_at=_dt(data.get("updated_at")),
    )


def user_to_dict(user: UserData) -> dict[str, Any]:
    instances = {}
    days = []
    for day, row in user.instances.items():
        days.append(day.isoformat())
        for instance in row.values():
            instances[instance.key.encode()] = instance_to_dict(instance)
    ledger = user.ledger
    return {
        "id": user.id,
        "name": user.name,
        "templates": {k: template_to_dict(v) for k, v in user.templates.items()},
        "days": days,
        "instances": instances,
        "ledger": {
            "base_xp": ledger.base_xp,
            "today_xp": ledger.today_xp,
            "tomorrow_xp": ledger.tomorrow_xp,
            "last_rollover_day": _iso(ledger.last_rollover_day),
            "version": ledger.version,
            "last_seen": _iso(ledger.last_seen),
        },
        "wallet": vars(user.wallet).copy(),
        "global_streak": streak_to_dict(user.global_streak),
    }


def user_from_dict(data: dict[str, Any]) -> UserData:
    templates = {k: template_from_dict(v) for k, v in data.get("templates", {}).items()}

    # Materialized days, including ones that generated nothing
    instances: dict[date, dict[str, Instance]] = {
        date.fromisoformat(day): {} for day in data.get("days", [])
    }
    for raw_key, raw in data.get("instances", {}).items():
        try:
            key = InstanceKey.decode(raw_key)
            instance = instance_from_dict(key, raw)
        except (KeyError, ValueError) as ex:
            _LOGGER.error("Skipping unreadable instance %s: %s", raw_key, ex)
            continue
        instances.setdefault(key.day, {})[key.template_id] = instance

    ledger_data = data.get("ledger", {})
    ledger = LedgerState(
        base_xp=ledger_data.get("base_xp", 0),
        today_xp=ledger_data.get("today_xp", 0),
        tomorrow_xp=ledger_data.get("tomorrow_xp", 0),
        last_rollover_day=_day(ledger_data.get("last_rollover_day")),
        version=ledger_data.get("version", 0),
        last_seen=_dt(ledger_data.get("last_seen")),
    )
    return UserData(
        id=data["id"],
        name=data.get("name", data["id"]),
        templates=templates,
        instances=instances,
        ledger=ledger,
        wallet=Wallet(**data.get("wallet", {})),
        global_streak=streak_from_dict(data.get("global_streak") or {}),
    )


class HabitXPStore:
    def __init__(self, hass: HomeAssistant):
        self._store: Store[dict] = Store(hass, STORAGE_VERSION, STORAGE_KEY)

    async def async_load(self) -> StorageModel:
        data = await self._store.async_load() or {}
        users = {k: user_from_dict(v) for k, v in data.get("users", {}).items()}
        return StorageModel(users=users)

    async def async_save(self, model: StorageModel) -> None:
        data = {"users": {k: user_to_dict(v) for k, v in model.users.items()}}
        await self._store.async_save(data)
