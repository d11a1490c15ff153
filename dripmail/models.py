"""
Contact records and store metadata.

Statuses follow one linear lifecycle:

    pending -> contacted_1 -> follow_up_1 -> follow_up_2 -> follow_up_3

with `responded` reachable from any of them and terminal once reached.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

PENDING = 'pending'
CONTACTED_1 = 'contacted_1'
FOLLOW_UP_1 = 'follow_up_1'
FOLLOW_UP_2 = 'follow_up_2'
FOLLOW_UP_3 = 'follow_up_3'
RESPONDED = 'responded'

STATUSES = (PENDING, CONTACTED_1, FOLLOW_UP_1, FOLLOW_UP_2, FOLLOW_UP_3, RESPONDED)
OUTREACH_STATUSES = (CONTACTED_1, FOLLOW_UP_1, FOLLOW_UP_2, FOLLOW_UP_3)

MSG_INITIAL = 'initial'
MSG_FOLLOW_UP_1 = 'follow_up_1'
MSG_FOLLOW_UP_2 = 'follow_up_2'
MSG_FOLLOW_UP_3 = 'follow_up_3'

MESSAGE_TYPES = (MSG_INITIAL, MSG_FOLLOW_UP_1, MSG_FOLLOW_UP_2, MSG_FOLLOW_UP_3)

# Which message a contact in a given status is waiting for
NEXT_MESSAGE = {
    PENDING: MSG_INITIAL,
    CONTACTED_1: MSG_FOLLOW_UP_1,
    FOLLOW_UP_1: MSG_FOLLOW_UP_2,
    FOLLOW_UP_2: MSG_FOLLOW_UP_3,
}

# Status a contact moves to once a message of this type is sent
STATUS_AFTER_SEND = {
    MSG_INITIAL: CONTACTED_1,
    MSG_FOLLOW_UP_1: FOLLOW_UP_1,
    MSG_FOLLOW_UP_2: FOLLOW_UP_2,
    MSG_FOLLOW_UP_3: FOLLOW_UP_3,
}


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class MessageRecord:
    """One entry in a contact's message history."""
    message_type: str
    sent_at: datetime
    template_index: Optional[int] = None
    subject_index: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            'message_type': self.message_type,
            'sent_at': _to_iso(self.sent_at),
            'template_index': self.template_index,
            'subject_index': self.subject_index,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'MessageRecord':
        return cls(
            message_type=data['message_type'],
            sent_at=_from_iso(data['sent_at']),
            template_index=data.get('template_index'),
            subject_index=data.get('subject_index'),
        )


@dataclass
class Contact:
    """An outreach target tracked through the drip lifecycle."""
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    name: str = ""
    company_name: str = ""
    city: str = ""
    status: str = PENDING
    created_at: Optional[datetime] = None
    last_contacted: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    message_history: list[MessageRecord] = field(default_factory=list)

    @property
    def next_message_type(self) -> Optional[str]:
        """Message this contact is waiting for, or None once the sequence is over."""
        return NEXT_MESSAGE.get(self.status)

    @property
    def is_responded(self) -> bool:
        return self.status == RESPONDED

    @property
    def templates_used(self) -> list[Optional[int]]:
        return [m.template_index for m in self.message_history]

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'name': self.name,
            'company_name': self.company_name,
            'city': self.city,
            'status': self.status,
            'created_at': _to_iso(self.created_at),
            'last_contacted': _to_iso(self.last_contacted),
            'responded_at': _to_iso(self.responded_at),
            'message_history': [m.to_dict() for m in self.message_history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Contact':
        return cls(
            id=data['id'],
            email=data['email'],
            first_name=data.get('first_name') or '',
            last_name=data.get('last_name') or '',
            name=data.get('name') or '',
            company_name=data.get('company_name') or '',
            city=data.get('city') or '',
            status=data.get('status') or PENDING,
            created_at=_from_iso(data.get('created_at')),
            last_contacted=_from_iso(data.get('last_contacted')),
            responded_at=_from_iso(data.get('responded_at')),
            message_history=[
                MessageRecord.from_dict(m) for m in data.get('message_history') or []
            ],
        )


@dataclass
class StoreMetadata:
    """Process-wide counters persisted alongside the contacts."""
    contacted_today: int = 0
    last_reset_date: Optional[date] = None
    last_updated: Optional[datetime] = None
    total_contacts: int = 0
    # Only used when the daily quota is pinned for the whole day
    daily_quota: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            'contacted_today': self.contacted_today,
            'last_reset_date': self.last_reset_date.isoformat() if self.last_reset_date else None,
            'last_updated': _to_iso(self.last_updated),
            'total_contacts': self.total_contacts,
            'daily_quota': self.daily_quota,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'StoreMetadata':
        last_reset = data.get('last_reset_date')
        quota = data.get('daily_quota')
        return cls(
            contacted_today=int(data.get('contacted_today') or 0),
            last_reset_date=date.fromisoformat(last_reset) if last_reset else None,
            last_updated=_from_iso(data.get('last_updated')),
            total_contacts=int(data.get('total_contacts') or 0),
            daily_quota=int(quota) if quota is not None else None,
        )
