"""
Contact store.

Owns the authoritative collection of contacts and the daily send counter,
and persists both through a backend (see dripmail.db) after every mutation.
"""

import copy
import logging
import threading
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from dripmail.db import StoreError
from dripmail.models import (
    Contact,
    MessageRecord,
    StoreMetadata,
    PENDING,
    RESPONDED,
    STATUSES,
    STATUS_AFTER_SEND,
)

logger = logging.getLogger(__name__)


class ContactNotFoundError(LookupError):
    """No contact with the given id."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContactStore:
    """
    In-memory contact collection backed by a persistence backend.

    Usage:
        store = ContactStore(get_backend(config['STORE_PATH']))
        store.initialize()

        contact = store.add_contact({'email': 'jane@example.com', 'first_name': 'Jane'})
        store.record_message_sent(contact.id, 'initial', template_index=2, subject_index=2)
    """

    def __init__(self, backend, clock: Optional[Callable[[], datetime]] = None):
        self.backend = backend
        self.contacts: list[Contact] = []
        self.metadata = StoreMetadata()
        self._clock = clock or _utcnow
        self._lock = threading.RLock()

    def initialize(self) -> None:
        """Load contacts and metadata from the backend."""
        with self._lock:
            self.contacts, self.metadata = self.backend.load()
        logger.info("Loaded %d contacts from database", len(self.contacts))

    def save(self) -> None:
        """Persist the current snapshot. Raises StoreError on failure."""
        with self._lock:
            self.metadata.last_updated = self._clock()
            self.metadata.total_contacts = len(self.contacts)
            self.backend.save(self.contacts, self.metadata)
        logger.debug("Contacts saved to database")

    # ---------------------------------------------------------------------------
    # Adding contacts
    # ---------------------------------------------------------------------------

    def _build_contact(self, data: dict) -> Contact:
        first_name = (data.get('first_name') or '').strip()
        return Contact(
            id=f"contact_{uuid.uuid4().hex[:16]}",
            email=data['email'].strip().lower(),
            first_name=first_name,
            last_name=(data.get('last_name') or '').strip(),
            name=(data.get('name') or first_name).strip(),
            company_name=(data.get('company_name') or '').strip(),
            city=(data.get('city') or '').strip(),
            status=PENDING,
            created_at=self._clock(),
        )

    def add_contact(self, data: dict) -> Contact:
        """
        Add a new contact in the pending state.

        Args:
            data: Dict with 'email' and optional 'first_name', 'last_name',
                'name', 'company_name', 'city'

        Returns:
            The new contact, or the existing one if the email is already known
            (compared case-insensitively)

        Raises:
            ValueError: If no email address is given
        """
        email = (data.get('email') or '').strip()
        if not email:
            raise ValueError("Contact must have an email")

        with self._lock:
            existing = self.get_contact_by_email(email)
            if existing:
                logger.warning("Contact already exists: %s", email)
                return existing

            contact = self._build_contact(data)
            self.contacts.append(contact)
            try:
                self.save()
            except StoreError:
                self.contacts.remove(contact)
                raise

        logger.info("Added new contact: %s", contact.email)
        return contact

    def add_bulk_contacts(self, contact_list: Iterable[dict]) -> dict:
        """
        Add many contacts and save once.

        Returns:
            Summary dict: {'added': int, 'skipped': int, 'errors': [...]}
        """
        results = {
            'added': 0,
            'skipped': 0,
            'errors': [],
        }

        with self._lock:
            new_contacts = []
            for data in contact_list:
                email = (data.get('email') or '').strip()
                if not email:
                    results['errors'].append({'contact': data, 'error': 'Contact must have an email'})
                    continue

                if self.get_contact_by_email(email):
                    results['skipped'] += 1
                    continue

                contact = self._build_contact(data)
                self.contacts.append(contact)
                new_contacts.append(contact)
                results['added'] += 1

            if new_contacts:
                try:
                    self.save()
                except StoreError:
                    for contact in new_contacts:
                        self.contacts.remove(contact)
                    raise

        logger.info(
            "Bulk import complete: %d added, %d skipped, %d errors",
            results['added'], results['skipped'], len(results['errors'])
        )
        return results

    # ---------------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------------

    def get_contact_by_id(self, contact_id: str) -> Optional[Contact]:
        return next((c for c in self.contacts if c.id == contact_id), None)

    def get_contact_by_email(self, email: str) -> Optional[Contact]:
        """Case-insensitive lookup by email address."""
        if not email:
            return None
        wanted = email.strip().lower()
        return next((c for c in self.contacts if c.email.lower() == wanted), None)

    def get_contacts_by_status(self, status: str) -> list[Contact]:
        if status not in STATUSES:
            raise ValueError(f"Unknown status: {status}")
        return [c for c in self.contacts if c.status == status]

    def get_contacts_needing_follow_up(
        self,
        days_ago: int,
        current_status: str,
        now: Optional[datetime] = None,
    ) -> list[Contact]:
        """
        Contacts in `current_status` last contacted at least `days_ago` days ago.

        The cutoff is inclusive: a contact contacted exactly `days_ago` days
        before `now` is included.
        """
        now = now or self._clock()
        cutoff = now - timedelta(days=days_ago)

        return [
            c for c in self.get_contacts_by_status(current_status)
            if c.last_contacted is not None and c.last_contacted <= cutoff
        ]

    def _require(self, contact_id: str) -> Contact:
        contact = self.get_contact_by_id(contact_id)
        if not contact:
            raise ContactNotFoundError(f"Contact not found: {contact_id}")
        return contact

    # ---------------------------------------------------------------------------
    # State transitions
    # ---------------------------------------------------------------------------

    def record_message_sent(
        self,
        contact_id: str,
        message_type: str,
        template_index: Optional[int] = None,
        subject_index: Optional[int] = None,
    ) -> Contact:
        """
        Record a successful send: append history, advance status, count it.

        Raises:
            ContactNotFoundError: Unknown contact id
            ValueError: The message type is not the one this contact is due for
            StoreError: The new state could not be persisted (in-memory state
                is rolled back)
        """
        with self._lock:
            contact = self._require(contact_id)

            if message_type not in STATUS_AFTER_SEND:
                raise ValueError(f"Invalid message type: {message_type}")
            if contact.next_message_type != message_type:
                raise ValueError(
                    f"Cannot record {message_type} for {contact.email} in status {contact.status}"
                )

            before = copy.deepcopy(contact.__dict__)
            before_count = self.metadata.contacted_today

            sent_at = self._clock()
            contact.message_history.append(MessageRecord(
                message_type=message_type,
                sent_at=sent_at,
                template_index=template_index,
                subject_index=subject_index,
            ))
            contact.last_contacted = sent_at
            contact.status = STATUS_AFTER_SEND[message_type]
            self.metadata.contacted_today += 1

            try:
                self.save()
            except StoreError:
                contact.__dict__.update(before)
                self.metadata.contacted_today = before_count
                raise

        logger.info("Recorded %s sent to: %s", message_type, contact.email)
        return contact

    def mark_as_responded(self, contact_id: str) -> Contact:
        """Move a contact to the terminal responded state (no-op if already there)."""
        with self._lock:
            contact = self._require(contact_id)
            if contact.status == RESPONDED:
                return contact

            previous_status = contact.status
            contact.status = RESPONDED
            contact.responded_at = self._clock()

            try:
                self.save()
            except StoreError:
                contact.status = previous_status
                contact.responded_at = None
                raise

        logger.info("Contact marked as responded: %s (was %s)", contact.email, previous_status)
        return contact

    # ---------------------------------------------------------------------------
    # Daily counter
    # ---------------------------------------------------------------------------

    def get_daily_send_count(self) -> int:
        return self.metadata.contacted_today

    def reset_daily_counter_if_needed(self, today: date) -> bool:
        """Zero the daily counter when the calendar date has moved on."""
        with self._lock:
            if self.metadata.last_reset_date == today:
                return False

            before = copy.copy(self.metadata)

            self.metadata.contacted_today = 0
            self.metadata.last_reset_date = today
            self.metadata.daily_quota = None

            try:
                self.save()
            except StoreError:
                self.metadata = before
                raise

        logger.info("Daily send counter reset for %s", today.isoformat())
        return True

    def set_daily_quota(self, quota: int) -> None:
        """Remember today's quota (only used when the quota is pinned per day)."""
        with self._lock:
            previous = self.metadata.daily_quota
            self.metadata.daily_quota = quota
            try:
                self.save()
            except StoreError:
                self.metadata.daily_quota = previous
                raise

    # ---------------------------------------------------------------------------
    # Statistics
    # ---------------------------------------------------------------------------

    def get_statistics(self) -> dict:
        stats = {'total': len(self.contacts)}
        for status in STATUSES:
            stats[status] = sum(1 for c in self.contacts if c.status == status)
        stats['contacted_today'] = self.metadata.contacted_today
        return stats
