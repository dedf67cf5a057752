"""Data coordinator for HabitXP integration."""
from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import date, datetime
import logging
from typing import Any
import uuid

from homeassistant.core import HomeAssistant
from homeassistant.util import dt as dt_util

from .const import EVENT_LEVEL_UP, XP_COMPLETED, XP_LOGGED
from .exceptions import TemplateNotFound, UserNotFound
from .instances import InstanceStore
from .ledger import XPLedger, credited_day, logical_day
from .levels import apply_level, level_for_xp, level_progress, required_xp
from .models import (
    Instance,
    InstanceKey,
    RecurrenceType,
    StatusChange,
    StorageModel,
    StreakRecord,
    TaskStatus,
    Template,
    UserData,
    Wallet,
)
from .storage import HabitXPStore
from .streaks import StreakEngine

_LOGGER = logging.getLogger(__name__)

TEMPLATE_FIELDS = {"name", "reward", "recurrence", "days", "active", "start_day", "end_day"}


def xp_for(status: TaskStatus, late: bool) -> int:
    """XP granted by a logged status. Late logging earns nothing."""
    if status is TaskStatus.PENDING or late:
        return 0
    return XP_COMPLETED if status is TaskStatus.COMPLETED else XP_LOGGED


def validate_rule(recurrence: RecurrenceType, days: list[int]) -> None:
    if recurrence is RecurrenceType.WEEKLY and any(d < 1 or d > 7 for d in days):
        raise ValueError("Weekly days must be 1 (Monday) to 7 (Sunday)")
    if recurrence is RecurrenceType.MONTHLY and any(d < 1 or d > 31 for d in days):
        raise ValueError("Monthly days must be 1 to 31")


class UserSession:
    """Engines bound to one user's data, plus the lock serializing its mutations."""

    def __init__(self, user: UserData, clock: Callable[[], datetime]) -> None:
        self.user = user
        self.instances = InstanceStore(user)
        self.ledger = XPLedger(user.ledger)
        self.streaks = StreakEngine(self.instances, clock)
        self.lock = asyncio.Lock()
        self._last_day: date | None = None

    def tick(self, now: datetime) -> bool:
        """Settle the ledger and drop day-relative caches when the date changes."""
        rolled = self.ledger.ensure_rolled_over(now)
        if self._last_day != now.date():
            # Current streaks are relative to today
            self.streaks.invalidate_cache()
            self._last_day = now.date()
        return rolled


class HabitXPCoordinator:
    """Coordinates data operations for HabitXP integration."""

    def __init__(self, hass: HomeAssistant, clock: Callable[[], datetime] = dt_util.now) -> None:
        """Initialize the coordinator."""
        self.hass = hass
        self.store = HabitXPStore(hass)
        self.model: StorageModel | None = None
        self._clock = clock
        self._sessions: dict[str, UserSession] = {}
        self._entities: dict[str, list[Any]] = {}
        self._template_listeners: list[Callable[[str, Template], None]] = []

    def now(self) -> datetime:
        return self._clock()

    async def async_init(self) -> None:
        """Initialize the coordinator by loading data."""
        self.model = await self.store.async_load()
        self._sessions = {}

    async def async_save(self) -> None:
        """Save the model data."""
        if self.model is None:
            raise RuntimeError("Model not initialized")
        await self.store.async_save(self.model)

    # ---- users ----
    async def ensure_user(self, user_id: str, name: str | None = None) -> None:
        """Ensure a user exists in the system."""
        if self.model is None:
            raise RuntimeError("Model not initialized")
        if user_id not in self.model.users:
            self.model.users[user_id] = UserData(id=user_id, name=name or user_id)
            await self.async_save()

    def user_ids(self) -> list[str]:
        if not self.model:
            return []
        return list(self.model.users)

    def session(self, user_id: str) -> UserSession:
        if self.model is None:
            raise RuntimeError("Model not initialized")
        user = self.model.users.get(user_id)
        if user is None:
            raise UserNotFound(f"Unknown user: {user_id}")
        session = self._sessions.get(user_id)
        if session is None or session.user is not user:
            session = self._sessions[user_id] = UserSession(user, self._clock)
        return session

    # ---- entity updates ----
    def register_entity(self, user_id: str, entity: Any) -> None:
        self._entities.setdefault(user_id, []).append(entity)

    def add_template_listener(self, listener: Callable[[str, Template], None]) -> None:
        self._template_listeners.append(listener)

    def _update_entities(self, user_id: str) -> None:
        """Schedule a state refresh for the user's entities."""
        for entity in self._entities.get(user_id, []):
            if entity.hass is None:
                continue
            entity.async_schedule_update_ha_state(True)
        _LOGGER.debug("Updated %d entities for %s", len(self._entities.get(user_id, [])), user_id)

    # ---- templates ----
    def get_templates(self, user_id: str) -> list[Template]:
        return list(self.session(user_id).user.templates.values())

    def get_template(self, user_id: str, template_id: str) -> Template:
        template = self.session(user_id).user.templates.get(template_id)
        if template is None:
            raise TemplateNotFound(f"Unknown template: {template_id}")
        return template

    async def async_create_template(
        self,
        user_id: str,
        name: str,
        reward: int,
        recurrence: RecurrenceType = RecurrenceType.DAILY,
        days: list[int] | None = None,
        start_day: date | None = None,
        end_day: date | None = None,
        active: bool = True,
    ) -> str:
        """Create a template and add its instances to already materialized days."""
        days = list(days or [])
        validate_rule(recurrence, days)
        session = self.session(user_id)
        async with session.lock:
            now = self.now()
            session.tick(now)
            template = Template(
                id=str(uuid.uuid4())[:8],
                name=name,
                reward=reward,
                recurrence=recurrence,
                days=days,
                active=active,
                start_day=start_day,
                end_day=end_day,
                created_at=now,
                last_modified=now,
            )
            session.user.templates[template.id] = template
            session.instances.regenerate_all_days(now)
            session.streaks.invalidate_cache(template.id)
            template.streak = session.streaks.calculate_template_streak(template)
            await self.async_save()

        _LOGGER.info("Created template %s (%s) for %s", template.id, name, user_id)
        for listener in self._template_listeners:
            listener(user_id, template)
        self._update_entities(user_id)
        return template.id

    async def async_update_template(self, user_id: str, template_id: str, **changes: Any) -> Template:
        """Edit a template. Existing instances keep their status."""
        unknown = set(changes) - TEMPLATE_FIELDS
        if unknown:
            raise ValueError(f"Unknown template fields: {', '.join(sorted(unknown))}")

        session = self.session(user_id)
        async with session.lock:
            template = self.get_template(user_id, template_id)
            recurrence = RecurrenceType(changes.get("recurrence", template.recurrence))
            validate_rule(recurrence, list(changes.get("days", template.days)))

            now = self.now()
            session.tick(now)
            for field_name, value in changes.items():
                setattr(template, field_name, value)
            template.recurrence = recurrence
            template.days = list(template.days)
            template.touch(now)

            session.instances.regenerate_all_days(now)
            if not template.active:
                session.instances.remove_future_pending(template.id, now.date())
            session.streaks.invalidate_cache(template.id)
            template.streak = session.streaks.calculate_template_streak(template)
            await self.async_save()

        _LOGGER.info("Updated template %s for %s: %s", template_id, user_id, sorted(changes))
        self._update_entities(user_id)
        return template

    async def async_delete_template(self, user_id: str, template_id: str) -> None:
        """Delete a template. Past instances and the rewards they earned are kept."""
        session = self.session(user_id)
        async with session.lock:
            self.get_template(user_id, template_id)
            now = self.now()
            session.tick(now)
            removed = session.instances.remove_future_pending(template_id, now.date())
            del session.user.templates[template_id]
            session.streaks.invalidate_cache(template_id)
            await self.async_save()

        _LOGGER.info("Deleted template %s for %s (%d future instances pruned)", template_id, user_id, len(removed))
        self._update_entities(user_id)

    # ---- instances ----
    async def async_get_instances_for_day(self, user_id: str, day: date) -> list[Instance]:
        session = self.session(user_id)
        async with session.lock:
            now = self.now()
            session.tick(now)
            generated = not session.instances.has_day(day)
            instances = session.instances.get_instances_for_day(day, now)
            if generated:
                session.streaks.invalidate_cache()
                await self.async_save()
        return instances

    async def async_regenerate_days(self, user_id: str, day: date | None = None) -> int:
        """Regenerate one day, or every materialized day when no day is given."""
        session = self.session(user_id)
        async with session.lock:
            now = self.now()
            session.tick(now)
            if day is None:
                changed = session.instances.regenerate_all_days(now)
            else:
                changed = int(session.instances.regenerate_day(day, now))
            session.streaks.invalidate_cache()
            await self.async_save()
        self._update_entities(user_id)
        return changed

    async def async_set_status(self, user_id: str, template_id: str, day: date, status: TaskStatus) -> StatusChange:
        """Change an instance's status and settle XP, coins, level and streaks."""
        session = self.session(user_id)
        async with session.lock:
            now = self.now()
            session.tick(now)
            user = session.user
            key = InstanceKey(template_id, day)

            generated = not session.instances.has_day(day)
            session.instances.get_instances_for_day(day, now)
            if generated:
                session.streaks.invalidate_cache()
            existing = session.instances.get(key)
            completed_at = existing.completed_at if existing else None
            previous = session.instances.update_status(key, status, now)
            instance = session.instances.get(key)
            change = StatusChange(previous_status=previous, instance=instance)

            if status.is_logged:
                amount = xp_for(status, instance.is_late)
                if amount:
                    session.ledger.add_xp(amount, day, now)
                    change.xp_delta = amount
            else:
                amount = xp_for(previous, instance.is_late)
                credited_on = credited_day(day, completed_at) if completed_at else None
                if amount and (credited_on is None or credited_on >= logical_day(now)):
                    change.xp_delta = -session.ledger.remove_xp(amount, day, now, credited_on=credited_on)
                elif amount:
                    _LOGGER.debug("XP for %s already settled into base, keeping it", key.encode())

            if status is TaskStatus.COMPLETED:
                user.wallet.coins += instance.reward
                change.coins_delta = instance.reward
            elif previous is TaskStatus.COMPLETED:
                taken = min(instance.reward, user.wallet.coins)
                user.wallet.coins -= taken
                change.coins_delta = -taken

            change.level_up = apply_level(user.wallet, session.ledger.total_xp(now))

            template = user.templates.get(template_id)
            affected = [template] if template else []
            records = session.streaks.update_streaks_for_day(day, affected)
            if template:
                template.streak = records[template.id]
            user.global_streak = session.streaks.calculate_global_logging_streak()
            await self.async_save()

        _LOGGER.info(
            "%s: %s %s -> %s (xp %+d, coins %+d)",
            user_id, key.encode(), previous.value, status.value, change.xp_delta, change.coins_delta,
        )
        if change.level_up:
            self.hass.bus.async_fire(
                EVENT_LEVEL_UP,
                {
                    "user_id": user_id,
                    "old_level": change.level_up.old_level,
                    "new_level": change.level_up.new_level,
                    "diamonds_awarded": change.level_up.diamonds_awarded,
                },
            )
        self._update_entities(user_id)
        return change

    # ---- ledger ----
    async def async_rollover(self, user_id: str | None = None) -> list[str]:
        """Run the rollover for one or all users. Returns the users that rolled over."""
        rolled = []
        for uid in [user_id] if user_id else self.user_ids():
            session = self.session(uid)
            async with session.lock:
                if session.tick(self.now()):
                    rolled.append(uid)
        if rolled:
            await self.async_save()
            for uid in rolled:
                self._update_entities(uid)
        return rolled

    def get_total_xp(self, user_id: str) -> int:
        session = self.session(user_id)
        return session.ledger.total_xp(self.now())

    def get_ledger_summary(self, user_id: str) -> dict[str, Any]:
        session = self.session(user_id)
        now = self.now()
        state = session.ledger.state
        return {
            "base_xp": state.base_xp,
            "today_xp": state.today_xp,
            "tomorrow_xp": state.tomorrow_xp,
            "real_today_xp": session.ledger.real_today_xp(now),
            "real_tomorrow_xp": session.ledger.real_tomorrow_xp(now),
            "last_rollover_day": state.last_rollover_day.isoformat() if state.last_rollover_day else None,
            "version": state.version,
        }

    def get_level_info(self, user_id: str) -> dict[str, Any]:
        total = self.get_total_xp(user_id)
        level = level_for_xp(total)
        return {
            "level": level,
            "total_xp": total,
            "current_level_xp": required_xp(level),
            "next_level_xp": required_xp(level + 1),
            "progress": round(level_progress(total), 4),
        }

    def get_wallet(self, user_id: str) -> Wallet:
        return self.session(user_id).user.wallet

    async def spend_coins(self, user_id: str, amount: int) -> bool:
        return await self._spend(user_id, "coins", amount)

    async def spend_diamonds(self, user_id: str, amount: int) -> bool:
        return await self._spend(user_id, "diamonds", amount)

    async def _spend(self, user_id: str, currency: str, amount: int) -> bool:
        session = self.session(user_id)
        async with session.lock:
            balance = getattr(session.user.wallet, currency)
            if balance < amount:
                return False
            setattr(session.user.wallet, currency, balance - amount)
            await self.async_save()
        self._update_entities(user_id)
        return True

    # ---- streaks ----
    def get_template_streak(self, user_id: str, template_id: str) -> StreakRecord:
        session = self.session(user_id)
        session.tick(self.now())
        return session.streaks.calculate_template_streak(self.get_template(user_id, template_id))

    def get_global_streak(self, user_id: str) -> StreakRecord:
        session = self.session(user_id)
        session.tick(self.now())
        return session.streaks.calculate_global_logging_streak()

    async def async_verify_streaks(self, user_id: str) -> int:
        """Recompute any stored streak summary that fails its consistency checks."""
        session = self.session(user_id)
        healed = 0
        async with session.lock:
            for template in session.user.templates.values():
                record = session.streaks.verify(template)
                if record is not template.streak:
                    template.streak = record
                    healed += 1
            if healed:
                await self.async_save()
        return healed
