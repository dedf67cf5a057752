"""Exceptions for the HabitXP integration."""
from __future__ import annotations

from homeassistant.exceptions import HomeAssistantError


class HabitXPError(HomeAssistantError):
    """Base class for HabitXP errors."""


class UserNotFound(HabitXPError):
    """Raised when a user id is not configured."""


class TemplateNotFound(HabitXPError):
    """Raised when a template id is unknown."""


class InstanceNotFound(HabitXPError):
    """Raised when no instance exists for a (template, day) key."""


class InvalidTransition(HabitXPError):
    """Raised when a status change does not move between pending and logged."""
