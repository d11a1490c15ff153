"""
Timing policy for outreach sends.

Pure decisions over a configuration snapshot:
- Business hours gate (working days + hour window, in the configured timezone)
- Randomized daily quota
- Randomized delay between individual sends
"""

import logging
import random
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

DAY_NAMES = ['Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun']


def local_now(config: dict, now: Optional[datetime] = None) -> datetime:
    """Current time in the configured timezone."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(ZoneInfo(config.get('TIMEZONE', 'America/New_York')))


def local_today(config: dict, now: Optional[datetime] = None) -> date:
    """Current calendar date in the configured timezone."""
    return local_now(config, now).date()


def is_business_hours(config: dict, now: Optional[datetime] = None) -> tuple[bool, str]:
    """Check if the current time is a working day and within [start, end)."""
    local = local_now(config, now)

    day_name = DAY_NAMES[local.weekday()]
    allowed_days = config.get('SEND_DAYS', DAY_NAMES[:5])
    if day_name not in allowed_days:
        return False, f"Today ({day_name}) is not a send day"

    start = config.get('BUSINESS_HOURS_START', 8)
    end = config.get('BUSINESS_HOURS_END', 17)

    if local.hour < start:
        return False, f"Before business hours (start at {start:02d}:00)"
    if local.hour >= end:
        return False, f"After business hours (ended at {end:02d}:00)"

    return True, "Within business hours"


def get_random_daily_quota(config: dict, rng: Optional[random.Random] = None) -> int:
    """Number of emails to allow today, drawn uniformly from [min, max]."""
    rng = rng or random
    low = config.get('MIN_DAILY_EMAILS', 18)
    high = config.get('MAX_DAILY_EMAILS', 40)
    return rng.randint(low, high)


def get_random_delay_seconds(config: dict, rng: Optional[random.Random] = None) -> float:
    """Pause before the next send, drawn uniformly from [min, max] minutes."""
    rng = rng or random
    low = config.get('MIN_DELAY_MINUTES', 5) * 60
    high = config.get('MAX_DELAY_MINUTES', 20) * 60
    return rng.uniform(low, high)


def calculate_next_send_time(config: dict, now: Optional[datetime] = None) -> datetime:
    """
    Calculate when the business hours gate next opens.

    Returns the current local time if we are already inside business hours.
    """
    local = local_now(config, now)
    in_window, _ = is_business_hours(config, local)
    if in_window:
        return local

    start = config.get('BUSINESS_HOURS_START', 8)
    end = config.get('BUSINESS_HOURS_END', 17)
    allowed_days = config.get('SEND_DAYS', DAY_NAMES[:5])

    if not allowed_days:
        raise ValueError("No send days configured")

    next_time = local.replace(hour=start, minute=0, second=0, microsecond=0)

    # Already past today's opening
    if local.hour >= end or local >= next_time:
        next_time += timedelta(days=1)

    while DAY_NAMES[next_time.weekday()] not in allowed_days:
        next_time += timedelta(days=1)

    return next_time
