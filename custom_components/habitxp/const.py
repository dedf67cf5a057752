"""Constants for the HabitXP integration."""
from datetime import timedelta

DOMAIN = "habitxp"
PLATFORMS = ["sensor", "todo"]

CONF_USERS = "users"
CONF_USE_TODO = "use_todo"

STORAGE_VERSION = 1
STORAGE_KEY = f"{DOMAIN}_data"

# Day boundary for XP and lateness, in hours past midnight
GRACE_HOURS = 2

# XP bucket cap and overflow
DAILY_XP_CAP = 200
OVERFLOW_RATE = 0.25
REAL_XP_MAX = 250

# XP granted per logged status
XP_COMPLETED = 20
XP_LOGGED = 10

# Level curve
XP_PER_LEVEL_UNIT = 100

# Streak cache
STREAK_CACHE_SOFT_LIMIT = 100
STREAK_CACHE_MAX_AGE = timedelta(hours=24)
GLOBAL_STREAK_FRESHNESS = timedelta(hours=1)

EVENT_LEVEL_UP = f"{DOMAIN}_level_up"

# Services
SERVICE_CREATE_TEMPLATE = "create_template"
SERVICE_UPDATE_TEMPLATE = "update_template"
SERVICE_DELETE_TEMPLATE = "delete_template"
SERVICE_SET_STATUS = "set_status"
SERVICE_REGENERATE_DAYS = "regenerate_days"
SERVICE_ROLLOVER = "rollover"
SERVICE_SPEND = "spend"

SERVICES = [
    SERVICE_CREATE_TEMPLATE,
    SERVICE_UPDATE_TEMPLATE,
    SERVICE_DELETE_TEMPLATE,
    SERVICE_SET_STATUS,
    SERVICE_REGENERATE_DAYS,
    SERVICE_ROLLOVER,
    SERVICE_SPEND,
]

# Scheduled rollover sweep, just after the day boundary
SWEEP_TIME = (GRACE_HOURS, 0, 5)
