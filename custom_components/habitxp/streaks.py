"""Streak calculation over instance history."""
from __future__ import annotations

from bisect import insort
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
import logging
from typing import Any

from .const import GLOBAL_STREAK_FRESHNESS, STREAK_CACHE_MAX_AGE, STREAK_CACHE_SOFT_LIMIT
from .instances import InstanceStore
from .models import Instance, StreakRecord, Template
from .recurrence import applies

_LOGGER = logging.getLogger(__name__)

CacheKey = tuple[str, datetime | None]


@dataclass(frozen=True)
class DayIndex:
    """Days that hold at least one instance, and a day -> template id lookup."""
    days: tuple[date, ...]
    by_day: Mapping[date, Mapping[str, Instance]]


def _two_pass(days: tuple[date, ...], relevant: Callable[[date], bool],
              completed: Callable[[date], bool], today: date, now: datetime) -> StreakRecord:
    best = run = total = 0
    last_completed = None
    for day in days:
        if not relevant(day):
            continue
        if completed(day):
            run += 1
            total += 1
            last_completed = day
            best = max(best, run)
        else:
            run = 0

    current = 0
    start = None
    for day in reversed(days):
        if day > today or not relevant(day):
            continue
        if not completed(day):
            break
        current += 1
        start = day

    return StreakRecord(
        current_streak=current,
        best_streak=best,
        total_completions=total,
        last_completed_day=last_completed,
        current_streak_start_day=start,
        last_calculated=now,
    )


class StreakEngine:
    """Computes and caches streaks for one user.

    Template streaks are cached by (template id, last_modified) and only
    dropped through invalidation. The global logging streak uses a coarser
    one-hour freshness window instead.
    """

    def __init__(self, store: InstanceStore, clock: Callable[[], datetime]) -> None:
        self._store = store
        self._clock = clock
        self._cache: dict[CacheKey, StreakRecord] = {}
        self._global: StreakRecord | None = None
        self._index: DayIndex | None = None
        self._dirty = True

    # ---- indices ----
    def _rebuild(self) -> DayIndex:
        by_day = {}
        for day, row in self._store.iter_rows():
            if row:
                by_day[day] = dict(row)
        index = DayIndex(days=tuple(sorted(by_day)), by_day=by_day)
        # Swap only once the new index is complete
        self._index = index
        self._dirty = False
        _LOGGER.debug("Rebuilt streak index: %d days", len(index.days))
        return index

    def _indices(self) -> DayIndex:
        if self._dirty or self._index is None:
            return self._rebuild()
        return self._index

    def _patch_day(self, day: date) -> DayIndex:
        """Refresh a single day of the index, falling back to a full rebuild."""
        if self._dirty or self._index is None:
            return self._rebuild()
        try:
            row = {i.template_id: i for i in self._store.instances_on(day)}
            by_day = dict(self._index.by_day)
            days = list(self._index.days)
            if row:
                if day not in by_day:
                    insort(days, day)
                by_day[day] = row
            elif day in by_day:
                del by_day[day]
                days.remove(day)
            self._index = DayIndex(days=tuple(days), by_day=by_day)
            return self._index
        except (KeyError, ValueError) as err:
            _LOGGER.warning("Incremental index update for %s failed (%s), rebuilding", day, err)
            return self._rebuild()

    # ---- calculations ----
    def calculate_template_streak(self, template: Template) -> StreakRecord:
        key = (template.id, template.last_modified)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        index = self._indices()
        now = self._clock()

        def instance_on(day: date) -> Instance | None:
            return index.by_day.get(day, {}).get(template.id)

        def relevant(day: date) -> bool:
            # An existing instance pins the day even if the rule changed since
            return instance_on(day) is not None or applies(template, day)

        def completed(day: date) -> bool:
            instance = instance_on(day)
            return instance is not None and instance.status.is_logged

        record = _two_pass(index.days, relevant, completed, now.date(), now)
        record.template_version = template.last_modified
        self._cache[key] = record
        self._evict(now)
        _LOGGER.debug(
            "Streak for %s: current=%d best=%d total=%d",
            template.id, record.current_streak, record.best_streak, record.total_completions,
        )
        return record

    def calculate_global_logging_streak(self) -> StreakRecord:
        """Consecutive days on which anything at all was logged."""
        now = self._clock()
        cached = self._global
        if (
            cached is not None
            and cached.last_calculated is not None
            and now - cached.last_calculated < GLOBAL_STREAK_FRESHNESS
        ):
            return cached

        index = self._indices()

        def completed(day: date) -> bool:
            return any(i.status.is_logged for i in index.by_day[day].values())

        self._global = _two_pass(index.days, lambda day: True, completed, now.date(), now)
        return self._global

    def verify(self, template: Template) -> StreakRecord:
        """Return the template's stored streak summary, recomputing it if it is corrupt."""
        record = template.streak
        index = self._indices()
        if record.is_consistent() and record.total_completions <= len(index.days):
            return record
        _LOGGER.warning("Discarding inconsistent streak summary for template %s", template.id)
        self.invalidate_cache(template.id)
        return self.calculate_template_streak(template)

    # ---- cache maintenance ----
    def invalidate_cache(self, template_id: str | None = None) -> None:
        if template_id is None:
            self._cache.clear()
            self._global = None
        else:
            for key in [k for k in self._cache if k[0] == template_id]:
                del self._cache[key]
        self._dirty = True

    def update_streaks_for_day(self, day: date, affected: list[Template]) -> dict[str, StreakRecord]:
        """Recompute only the affected templates and the global streak after a day changed."""
        for template in affected:
            for key in [k for k in self._cache if k[0] == template.id]:
                del self._cache[key]
        self._global = None
        self._patch_day(day)

        records = {template.id: self.calculate_template_streak(template) for template in affected}
        self.calculate_global_logging_streak()
        return records

    def _evict(self, now: datetime) -> None:
        if len(self._cache) <= STREAK_CACHE_SOFT_LIMIT:
            return
        cutoff = now - STREAK_CACHE_MAX_AGE
        stale = [
            key for key, record in self._cache.items()
            if record.last_calculated is not None and record.last_calculated < cutoff
        ]
        for key in stale:
            del self._cache[key]
        _LOGGER.debug("Evicted %d streak cache entries, %d left", len(stale), len(self._cache))

    def stats(self) -> dict[str, Any]:
        return {
            "cache_entries": len(self._cache),
            "indexed_days": len(self._index.days) if self._index else 0,
            "index_dirty": self._dirty,
            "global_cached": self._global is not None,
        }
