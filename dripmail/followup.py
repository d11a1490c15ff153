"""
Follow-up eligibility.

Works out which contacts are due for which message right now:
- pending      -> initial (no waiting period)
- contacted_1  -> follow_up_1 after FOLLOW_UP_1_DAYS
- follow_up_1  -> follow_up_2 after FOLLOW_UP_2_DAYS
- follow_up_2  -> follow_up_3 after FOLLOW_UP_3_DAYS

follow_up_3 and responded contacts are never due again.
"""

import logging
from datetime import datetime
from typing import NamedTuple, Optional

from dripmail.config import DRIP_CONFIG
from dripmail.contacts import ContactStore
from dripmail.models import (
    Contact,
    PENDING,
    CONTACTED_1,
    FOLLOW_UP_1,
    FOLLOW_UP_2,
    MSG_INITIAL,
    MSG_FOLLOW_UP_1,
    MSG_FOLLOW_UP_2,
    MSG_FOLLOW_UP_3,
)

logger = logging.getLogger(__name__)


class FollowUpIntervals(NamedTuple):
    """Waiting periods, in whole days, before each follow-up."""
    after_initial: int = 3
    after_follow_up_1: int = 5
    after_follow_up_2: int = 7

    @classmethod
    def from_config(cls, config: Optional[dict] = None) -> 'FollowUpIntervals':
        config = config if config is not None else DRIP_CONFIG
        return cls(
            after_initial=config.get('FOLLOW_UP_1_DAYS', 3),
            after_follow_up_1=config.get('FOLLOW_UP_2_DAYS', 5),
            after_follow_up_2=config.get('FOLLOW_UP_3_DAYS', 7),
        )


class EligiblePair(NamedTuple):
    """A contact and the message it is due for."""
    contact: Contact
    message_type: str


def _follow_up_stages(intervals: FollowUpIntervals) -> list[tuple[str, int, str]]:
    """(current status, days to wait, message to send) for each follow-up stage."""
    return [
        (CONTACTED_1, intervals.after_initial, MSG_FOLLOW_UP_1),
        (FOLLOW_UP_1, intervals.after_follow_up_1, MSG_FOLLOW_UP_2),
        (FOLLOW_UP_2, intervals.after_follow_up_2, MSG_FOLLOW_UP_3),
    ]


def get_followups_due(
    store: ContactStore,
    stage: int,
    intervals: Optional[FollowUpIntervals] = None,
    now: Optional[datetime] = None,
) -> list[Contact]:
    """
    Get contacts due for a given follow-up.

    Args:
        store: Contact store to query
        stage: 1, 2 or 3
        intervals: Waiting periods (defaults to configuration)
        now: Reference time (defaults to the store's clock)

    Returns:
        List of contacts due for that follow-up
    """
    if stage not in (1, 2, 3):
        return []

    intervals = intervals or FollowUpIntervals.from_config()
    status, days, _ = _follow_up_stages(intervals)[stage - 1]
    return store.get_contacts_needing_follow_up(days, status, now=now)


def get_eligible_contacts(
    store: ContactStore,
    intervals: Optional[FollowUpIntervals] = None,
    now: Optional[datetime] = None,
) -> list[EligiblePair]:
    """
    Every (contact, message type) pair eligible for outreach right now.

    No ordering is implied; callers shuffle or sort as they need.
    """
    intervals = intervals or FollowUpIntervals.from_config()

    eligible = [
        EligiblePair(contact, MSG_INITIAL)
        for contact in store.get_contacts_by_status(PENDING)
    ]

    for status, days, message_type in _follow_up_stages(intervals):
        for contact in store.get_contacts_needing_follow_up(days, status, now=now):
            eligible.append(EligiblePair(contact, message_type))

    logger.info("Found %d eligible contacts for outreach", len(eligible))
    return eligible


def get_followup_counts(
    store: ContactStore,
    intervals: Optional[FollowUpIntervals] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Number of contacts due for each follow-up stage."""
    return {
        f'need_follow_up_{stage}': len(get_followups_due(store, stage, intervals, now))
        for stage in (1, 2, 3)
    }
