"""
Reply detection.

Classifies inbound mail (auto-replies and bounces are not real replies) and
moves the matching contact to the terminal responded state.
"""

import logging
import re
from typing import Optional

from dripmail.contacts import ContactStore

logger = logging.getLogger(__name__)

AUTO_REPLY_INDICATORS = [
    'out of office',
    'out of the office',
    'automatic reply',
    'auto-reply',
    'autoreply',
    'vacation',
    'away from my desk',
    'currently unavailable',
    'do not reply',
    'automated response',
    'delivery status notification',
]

BOUNCE_INDICATORS = [
    'mailer-daemon',
    'postmaster',
    'mail delivery',
    'delivery status',
    'undeliverable',
    'failure notice',
    'returned mail',
    'delivery failed',
]

_BRACKET_RE = re.compile(r'<([^>]+)>')
_EMAIL_RE = re.compile(r'([a-zA-Z0-9._%+-]+@[a-zA-Z0-9._-]+\.[a-zA-Z0-9_-]+)')


def extract_email_address(value: Optional[str]) -> Optional[str]:
    """Pull a lower-cased address out of 'Name <addr>' or a bare address."""
    if not value:
        return None

    match = _BRACKET_RE.search(value)
    if match:
        return match.group(1).strip().lower()

    match = _EMAIL_RE.search(value)
    if match:
        return match.group(1).strip().lower()

    return value.strip().lower()


def is_auto_reply(subject: str = "", body: str = "") -> bool:
    text = f"{subject or ''}\n{body or ''}".lower()
    return any(indicator in text for indicator in AUTO_REPLY_INDICATORS)


def is_bounce(sender: str = "", subject: str = "") -> bool:
    text = f"{sender or ''}\n{subject or ''}".lower()
    return any(indicator in text for indicator in BOUNCE_INDICATORS)


def is_legitimate_reply(sender: str = "", subject: str = "", body: str = "") -> bool:
    """True for a genuine human response, False for auto-replies and bounces."""
    return not is_auto_reply(subject, body) and not is_bounce(sender, subject)


def on_reply_detected(
    store: ContactStore,
    sender_address: str,
    is_legitimate: bool,
) -> bool:
    """
    Mark the contact behind an inbound reply as responded.

    Safe to call repeatedly: unknown senders, non-legitimate replies and
    contacts already marked responded are ignored.

    Returns:
        True if a contact moved to responded
    """
    email = extract_email_address(sender_address)
    contact = store.get_contact_by_email(email) if email else None
    if not contact:
        return False

    if contact.is_responded:
        return False

    if not is_legitimate:
        logger.debug("Skipping non-legitimate reply from %s", email)
        return False

    previous_status = contact.status
    store.mark_as_responded(contact.id)
    logger.info("Response detected from %s (was %s)", email, previous_status)
    return True
