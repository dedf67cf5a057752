"""Data models for HabitXP integration."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum

KEY_SEPARATOR = "/"


class RecurrenceType(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    NOT_NECESSARY = "not_necessary"
    NOT_DID = "not_did"

    @property
    def is_logged(self) -> bool:
        """Whether the instance has been logged in any way."""
        return self is not TaskStatus.PENDING


def _bump(previous: datetime | None, now: datetime) -> datetime:
    """Return a timestamp that never moves behind the previous one."""
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


@dataclass
class StreakRecord:
    current_streak: int = 0
    best_streak: int = 0
    total_completions: int = 0
    last_completed_day: date | None = None
    current_streak_start_day: date | None = None
    last_calculated: datetime | None = None
    template_version: datetime | None = None  # last_modified of the template it was computed for

    def is_consistent(self) -> bool:
        """Check the counters against each other."""
        return (
            0 <= self.current_streak <= self.best_streak <= self.total_completions
        )


@dataclass
class Template:
    """A recurring habit that produces one instance per applicable day"""
    id: str
    name: str
    reward: int  # coins granted on completion
    recurrence: RecurrenceType = RecurrenceType.DAILY
    days: list[int] = field(default_factory=list)  # ISO weekdays or days of month
    active: bool = True
    start_day: date | None = None
    end_day: date | None = None
    created_at: datetime | None = None
    last_modified: datetime | None = None
    streak: StreakRecord = field(default_factory=StreakRecord)

    def touch(self, now: datetime) -> None:
        """Advance last_modified, keeping it monotonic."""
        self.last_modified = _bump(self.last_modified, now)


@dataclass(frozen=True, order=True)
class InstanceKey:
    """Identity of an instance: one per (template, day)."""
    template_id: str
    day: date

    def encode(self) -> str:
        return f"{self.template_id}{KEY_SEPARATOR}{self.day.isoformat()}"

    @classmethod
    def decode(cls, raw: str) -> InstanceKey:
        template_id, sep, day_str = raw.rpartition(KEY_SEPARATOR)
        if not sep or not template_id:
            raise ValueError(f"Malformed instance key: {raw!r}")
        return cls(template_id, date.fromisoformat(day_str))


@dataclass
class Instance:
    """One day's occurrence of a template"""
    template_id: str
    day: date
    name: str
    reward: int
    status: TaskStatus = TaskStatus.PENDING
    completed_at: datetime | None = None
    is_late: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def key(self) -> InstanceKey:
        return InstanceKey(self.template_id, self.day)

    def touch(self, now: datetime) -> None:
        self.updated_at = _bump(self.updated_at, now)


@dataclass
class LedgerState:
    base_xp: int = 0
    today_xp: int = 0  # raw, uncapped
    tomorrow_xp: int = 0  # raw, earned during the gap period
    last_rollover_day: date | None = None
    version: int = 0
    last_seen: datetime | None = None


@dataclass
class Wallet:
    coins: int = 0
    diamonds: int = 0
    level: int = 1
    highest_level_rewarded: int = 1


@dataclass
class LevelUpResult:
    old_level: int
    new_level: int
    diamonds_awarded: int


@dataclass
class StatusChange:
    """Outcome of a status update, for the caller to present"""
    previous_status: TaskStatus
    instance: Instance
    xp_delta: int = 0
    coins_delta: int = 0
    level_up: LevelUpResult | None = None


@dataclass
class UserData:
    id: str
    name: str
    templates: dict[str, Template] = field(default_factory=dict)  # key: template id
    instances: dict[date, dict[str, Instance]] = field(default_factory=dict)  # key: day -> template id
    ledger: LedgerState = field(default_factory=LedgerState)
    wallet: Wallet = field(default_factory=Wallet)
    global_streak: StreakRecord = field(default_factory=StreakRecord)


@dataclass
class StorageModel:
    users: dict[str, UserData] = field(default_factory=dict)
