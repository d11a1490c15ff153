"""
Automated email drip campaign.

This package handles:
- Tracking each contact through initial outreach and three follow-ups
- Working out who is due for which message today
- Sending rate-limited, randomized batches within business hours
- Detecting replies and stopping outreach for contacts who responded
"""

from dripmail.config import DRIP_CONFIG, get_config, validate_config
from dripmail.db import StoreError, SQLiteBackend, JSONFileBackend, get_backend
from dripmail.models import Contact, MessageRecord, StoreMetadata
from dripmail.contacts import ContactStore, ContactNotFoundError
from dripmail.followup import EligiblePair, FollowUpIntervals, get_eligible_contacts
from dripmail.sender import SmtpTransport, SendResult, TransportSetupError
from dripmail.manager import BatchScheduler, BatchResult, create_scheduler
from dripmail.replies import on_reply_detected, is_legitimate_reply
from dripmail.inbox import InboxMonitor

__all__ = [
    'DRIP_CONFIG',
    'get_config',
    'validate_config',
    'StoreError',
    'SQLiteBackend',
    'JSONFileBackend',
    'get_backend',
    'Contact',
    'MessageRecord',
    'StoreMetadata',
    'ContactStore',
    'ContactNotFoundError',
    'EligiblePair',
    'FollowUpIntervals',
    'get_eligible_contacts',
    'SmtpTransport',
    'SendResult',
    'TransportSetupError',
    'BatchScheduler',
    'BatchResult',
    'create_scheduler',
    'on_reply_detected',
    'is_legitimate_reply',
    'InboxMonitor',
]
