"""Level curve and level-up rewards."""
from __future__ import annotations

import logging
import math

from .const import XP_PER_LEVEL_UNIT
from .models import LevelUpResult, Wallet

_LOGGER = logging.getLogger(__name__)


def required_xp(level: int) -> int:
    """Total XP needed to reach a level: (level - 1)^2 * 100."""
    return (level - 1) ** 2 * XP_PER_LEVEL_UNIT


def level_for_xp(total_xp: int) -> int:
    """Greatest level whose requirement is covered by total_xp."""
    if total_xp <= 0:
        return 1
    return math.isqrt(total_xp // XP_PER_LEVEL_UNIT) + 1


def level_progress(total_xp: int) -> float:
    """Fraction of the way from the current level to the next, in [0, 1]."""
    level = level_for_xp(total_xp)
    floor_xp = required_xp(level)
    span = required_xp(level + 1) - floor_xp
    if span <= 0:
        return 1.0
    return min(max((total_xp - floor_xp) / span, 0.0), 1.0)


def diamonds_for_levels(from_level: int, to_level: int) -> int:
    """Reaching level L awards L diamonds."""
    return sum(range(from_level + 1, to_level + 1))


def apply_level(wallet: Wallet, total_xp: int) -> LevelUpResult | None:
    """Sync the wallet's level with total_xp, awarding diamonds for new levels.

    Diamonds are granted once per level: dropping below a level and climbing
    back does not pay again.
    """
    old_level = wallet.level
    new_level = level_for_xp(total_xp)
    wallet.level = new_level
    if new_level <= wallet.highest_level_rewarded:
        return None

    diamonds = diamonds_for_levels(wallet.highest_level_rewarded, new_level)
    wallet.diamonds += diamonds
    wallet.highest_level_rewarded = new_level
    _LOGGER.info("Level up %d -> %d, awarded %d diamonds", old_level, new_level, diamonds)
    return LevelUpResult(old_level=old_level, new_level=new_level, diamonds_awarded=diamonds)
