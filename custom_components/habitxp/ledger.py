"""Time-bucketed XP ledger.

XP is kept in three buckets:

- ``base_xp``: everything settled by previous rollovers
- ``today_xp``: raw XP for the current logical day
- ``tomorrow_xp``: raw XP earned between midnight and the 02:00 cutoff for
  tasks scheduled on the new calendar day

The logical day starts at 02:00. Between 00:00 and 02:00 (the gap period)
completions of the previous day still land in ``today_xp``, while completions
of the new day pre-accrue in ``tomorrow_xp``. Raw buckets are capped through
`real_xp` when they are counted.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
import logging
import math

from .const import DAILY_XP_CAP, GRACE_HOURS, OVERFLOW_RATE, REAL_XP_MAX
from .models import LedgerState

_LOGGER = logging.getLogger(__name__)

BUCKET_TODAY = "today"
BUCKET_TOMORROW = "tomorrow"


def real_xp(raw: int) -> int:
    """Apply the daily cap: full value up to the cap, a quarter of the overflow after it."""
    if raw <= DAILY_XP_CAP:
        return max(raw, 0)
    overflow = math.floor((raw - DAILY_XP_CAP) * OVERFLOW_RATE)
    return min(DAILY_XP_CAP + overflow, REAL_XP_MAX)


def in_gap_period(now: datetime) -> bool:
    return now.hour < GRACE_HOURS


def logical_day(now: datetime) -> date:
    """Calendar day whose XP bucket is 'today' at the given moment."""
    if in_gap_period(now):
        return now.date() - timedelta(days=1)
    return now.date()


def credited_day(scheduled_day: date, at: datetime) -> date:
    """Logical day whose bucket received XP credited at the given moment."""
    if in_gap_period(at) and scheduled_day > logical_day(at):
        return at.date()
    return logical_day(at)


class XPLedger:
    """Operations over one user's LedgerState."""

    def __init__(self, state: LedgerState) -> None:
        self.state = state

    def _heal(self) -> None:
        state = self.state
        for bucket in ("base_xp", "today_xp", "tomorrow_xp"):
            if getattr(state, bucket) < 0:
                _LOGGER.warning("Negative %s (%d) in ledger, resetting to 0", bucket, getattr(state, bucket))
                setattr(state, bucket, 0)

    def _observe(self, now: datetime) -> None:
        last_seen = self.state.last_seen
        if last_seen is not None and now < last_seen:
            _LOGGER.warning("Clock moved backward: %s after %s", now.isoformat(), last_seen.isoformat())
            return
        self.state.last_seen = now

    def ensure_rolled_over(self, now: datetime) -> bool:
        """Settle elapsed logical days into base_xp. Safe to call any number of times."""
        self._heal()
        self._observe(now)
        state = self.state
        current = logical_day(now)

        if state.last_rollover_day is None:
            state.last_rollover_day = current
            state.version += 1
            return False
        if state.last_rollover_day >= current:
            return False

        elapsed = (current - state.last_rollover_day).days
        settled = real_xp(state.today_xp)
        state.base_xp += settled
        state.today_xp = state.tomorrow_xp
        state.tomorrow_xp = 0
        if elapsed > 1:
            # The pre-accrued day has passed as well
            carried = real_xp(state.today_xp)
            state.base_xp += carried
            settled += carried
            state.today_xp = 0
        state.last_rollover_day = current
        state.version += 1
        _LOGGER.info("XP rollover to %s: settled %d XP, base now %d", current, settled, state.base_xp)
        return True

    def _bucket_for(self, scheduled_day: date, now: datetime) -> str:
        if in_gap_period(now) and scheduled_day > logical_day(now):
            return BUCKET_TOMORROW
        return BUCKET_TODAY

    def add_xp(self, amount: int, scheduled_day: date, now: datetime) -> str:
        """Credit XP for a task scheduled on the given day. Returns the bucket used."""
        self.ensure_rolled_over(now)
        bucket = self._bucket_for(scheduled_day, now)
        if bucket == BUCKET_TOMORROW:
            self.state.tomorrow_xp += amount
        else:
            self.state.today_xp += amount
        self.state.version += 1
        return bucket

    def remove_xp(self, amount: int, scheduled_day: date, now: datetime, *, credited_on: date | None = None) -> int:
        """Debit XP from the same bucket add_xp would use, never below zero.

        When ``credited_on`` (the logical day that received the XP) is given,
        the bucket holding that day is debited instead. XP of a day that has
        already been settled into base_xp is not removed.

        Returns the raw amount actually removed.
        """
        self.ensure_rolled_over(now)
        if credited_on is None:
            attr = "tomorrow_xp" if self._bucket_for(scheduled_day, now) == BUCKET_TOMORROW else "today_xp"
        elif credited_on < self.state.last_rollover_day:
            return 0
        elif credited_on == self.state.last_rollover_day:
            attr = "today_xp"
        else:
            attr = "tomorrow_xp"
        current = getattr(self.state, attr)
        removed = min(amount, current)
        setattr(self.state, attr, current - removed)
        self.state.version += 1
        return removed

    def real_today_xp(self, now: datetime) -> int:
        self.ensure_rolled_over(now)
        return real_xp(self.state.today_xp)

    def real_tomorrow_xp(self, now: datetime) -> int:
        self.ensure_rolled_over(now)
        return real_xp(self.state.tomorrow_xp)

    def total_xp(self, now: datetime) -> int:
        self.ensure_rolled_over(now)
        state = self.state
        return state.base_xp + real_xp(state.today_xp) + real_xp(state.tomorrow_xp)
