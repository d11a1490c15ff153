import copy
import random
from datetime import datetime, timedelta, timezone

import pytest

from dripmail.config import get_config
from dripmail.contacts import ContactStore
from dripmail.db import StoreError
from dripmail.models import MESSAGE_TYPES, StoreMetadata
from dripmail.sender import SendResult

# Wednesday 15 Oct 2025, 10:00 in New York
WEDNESDAY_10AM = datetime(2025, 10, 15, 14, 0, tzinfo=timezone.utc)
# Saturday 18 Oct 2025, 10:00 in New York
SATURDAY_10AM = datetime(2025, 10, 18, 14, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class MemoryBackend:
    """Keeps a deep copy of the last saved snapshot; can be told to fail.

    fail_on_save fails every save; fail_saves fails only the next N saves.
    """

    def __init__(self):
        self.contacts = []
        self.metadata = StoreMetadata()
        self.saves = 0
        self.fail_on_save = False
        self.fail_saves = 0

    def load(self):
        return copy.deepcopy(self.contacts), copy.deepcopy(self.metadata)

    def save(self, contacts, metadata):
        if self.fail_on_save:
            raise StoreError("disk full")
        if self.fail_saves:
            self.fail_saves -= 1
            raise StoreError("transient")
        self.contacts = copy.deepcopy(contacts)
        self.metadata = copy.deepcopy(metadata)
        self.saves += 1


class FakeTransport:
    """Records sends; returns queued results, then success."""

    def __init__(self, results=None):
        self.calls = []
        self.results = list(results or [])

    def send(self, contact, message_type):
        self.calls.append((contact.email, message_type))
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return SendResult(success=True, variant_id=1)


class SequenceRandom(random.Random):
    """Random source whose randint() returns a fixed sequence of rolls."""

    def __init__(self, rolls, seed=1234):
        super().__init__(seed)
        self.rolls = list(rolls)

    def randint(self, a, b):
        return self.rolls.pop(0)


@pytest.fixture
def clock():
    return FakeClock(WEDNESDAY_10AM)


@pytest.fixture
def config(tmp_path):
    cfg = get_config()
    cfg.update({
        'TIMEZONE': 'America/New_York',
        'SEND_DAYS': ['Mon', 'Tue', 'Wed', 'Thu', 'Fri'],
        'BUSINESS_HOURS_START': 8,
        'BUSINESS_HOURS_END': 17,
        'FOLLOW_UP_1_DAYS': 3,
        'FOLLOW_UP_2_DAYS': 5,
        'FOLLOW_UP_3_DAYS': 7,
        'MIN_DAILY_EMAILS': 18,
        'MAX_DAILY_EMAILS': 40,
        'MIN_DELAY_MINUTES': 0,
        'MAX_DELAY_MINUTES': 0,
        'PIN_DAILY_QUOTA': False,
        'DRY_RUN': False,
        'SENDER_NAME': 'Sam Sender',
        'SENDER_EMAIL': 'sam@sender.test',
        'SMTP_USER': 'sam@sender.test',
        'SMTP_PASSWORD': 'secret',
        'STORE_PATH': str(tmp_path / 'contacts.db'),
    })
    return cfg


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend, clock):
    s = ContactStore(backend, clock=clock)
    s.initialize()
    return s


@pytest.fixture
def make_contact(store, clock):
    """Add a contact and walk it forward to `status`, sent `days_ago` days before now."""

    def _make(email, status='pending', days_ago=0, **profile):
        contact = store.add_contact({'email': email, **profile})
        saved = clock.now
        clock.now = saved - timedelta(days=days_ago)
        try:
            for message_type in MESSAGE_TYPES:
                if contact.status == status:
                    break
                store.record_message_sent(contact.id, message_type, template_index=0, subject_index=0)
        finally:
            clock.now = saved
        return contact

    return _make
