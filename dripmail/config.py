"""
Configuration for the drip campaign.

These can be overridden via environment variables (or a .env file).
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _get_bool(key: str, default: bool = False) -> bool:
    """Get a boolean from environment."""
    val = os.getenv(key, str(default)).lower()
    return val in ('true', '1', 'yes', 'on')


def _get_int(key: str, default: int) -> int:
    """Get an integer from environment."""
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def _get_list(key: str, default: str = "") -> list:
    """Get a comma-separated list from environment."""
    val = os.getenv(key, default)
    return [x.strip() for x in val.split(",") if x.strip()]


DRIP_CONFIG = {
    # Sender details
    'SENDER_NAME': os.getenv('EMAIL_FROM_NAME', 'Your Name'),
    'SENDER_EMAIL': os.getenv('EMAIL_FROM', os.getenv('EMAIL_USER', '')),

    # SMTP
    'SMTP_HOST': os.getenv('SMTP_HOST', 'smtp.gmail.com'),
    'SMTP_PORT': _get_int('SMTP_PORT', 587),
    'SMTP_USER': os.getenv('EMAIL_USER', ''),
    'SMTP_PASSWORD': os.getenv('EMAIL_PASS', ''),
    'SMTP_TIMEOUT_SECONDS': _get_int('SMTP_TIMEOUT_SECONDS', 30),

    # IMAP (reply detection)
    'IMAP_HOST': os.getenv('IMAP_HOST', 'imap.gmail.com'),
    'IMAP_PORT': _get_int('IMAP_PORT', 993),
    'REPLY_LOOKBACK_DAYS': _get_int('REPLY_LOOKBACK_DAYS', 7),

    # Follow-up intervals (days)
    'FOLLOW_UP_1_DAYS': _get_int('FOLLOW_UP_1_DAYS', 3),
    'FOLLOW_UP_2_DAYS': _get_int('FOLLOW_UP_2_DAYS', 5),
    'FOLLOW_UP_3_DAYS': _get_int('FOLLOW_UP_3_DAYS', 7),

    # Business hours
    'BUSINESS_HOURS_START': _get_int('BUSINESS_HOURS_START', 8),
    'BUSINESS_HOURS_END': _get_int('BUSINESS_HOURS_END', 17),
    'TIMEZONE': os.getenv('TIMEZONE', 'America/New_York'),
    'SEND_DAYS': _get_list('SEND_DAYS', 'Mon,Tue,Wed,Thu,Fri'),

    # Daily volume
    'MIN_DAILY_EMAILS': _get_int('MIN_DAILY_EMAILS', 18),
    'MAX_DAILY_EMAILS': _get_int('MAX_DAILY_EMAILS', 40),
    # Roll the quota once per day instead of on every batch run
    'PIN_DAILY_QUOTA': _get_bool('PIN_DAILY_QUOTA', False),

    # Delay between individual emails (minutes)
    'MIN_DELAY_MINUTES': _get_int('MIN_DELAY_MINUTES', 5),
    'MAX_DELAY_MINUTES': _get_int('MAX_DELAY_MINUTES', 20),

    # Job cadence for main.py
    'SEND_TIMES': _get_list('SEND_TIMES', '09:00,12:00,15:00,18:00'),
    'CHECK_RESPONSES_MINUTES': _get_int('CHECK_RESPONSES_MINUTES', 30),

    # Storage (.json selects the JSON backend, anything else is SQLite)
    'STORE_PATH': os.getenv(
        'DRIP_STORE_PATH',
        os.path.join(os.path.dirname(os.path.dirname(__file__)), "data", "contacts.db"),
    ),

    # Dry run mode (don't actually send)
    'DRY_RUN': _get_bool('DRIP_DRY_RUN', False),
}


def get_config() -> dict:
    """Get the drip campaign configuration."""
    return DRIP_CONFIG.copy()


def validate_config(config: dict | None = None) -> list[str]:
    """Validate configuration and return list of errors."""
    config = config if config is not None else DRIP_CONFIG
    errors = []

    if not config['SMTP_USER']:
        errors.append("EMAIL_USER not set")

    if not config['SMTP_PASSWORD']:
        errors.append("EMAIL_PASS not set")

    if not config['SENDER_NAME'] or config['SENDER_NAME'] == 'Your Name':
        errors.append("EMAIL_FROM_NAME should be set to your actual name")

    if config['MIN_DAILY_EMAILS'] > config['MAX_DAILY_EMAILS']:
        errors.append("MIN_DAILY_EMAILS is greater than MAX_DAILY_EMAILS")

    if config['MIN_DELAY_MINUTES'] > config['MAX_DELAY_MINUTES']:
        errors.append("MIN_DELAY_MINUTES is greater than MAX_DELAY_MINUTES")

    if not 0 <= config['BUSINESS_HOURS_START'] < config['BUSINESS_HOURS_END'] <= 24:
        errors.append("BUSINESS_HOURS_START/END must satisfy 0 <= start < end <= 24")

    return errors
