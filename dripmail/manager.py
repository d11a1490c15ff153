"""
Batch scheduler - main orchestration module.

One call to run_batch():
- Skips if another batch is already running
- Skips outside business hours
- Resets the daily counter on a new day and checks today's quota
- Sends to a random subset of eligible contacts, at most half of what is
  left of today's quota, pausing a random delay between sends
"""

import logging
import math
import random
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from dripmail.config import DRIP_CONFIG, validate_config
from dripmail.contacts import ContactStore
from dripmail.db import StoreError, get_backend
from dripmail.followup import FollowUpIntervals, get_eligible_contacts, get_followup_counts
from dripmail.sender import SmtpTransport, TransportSetupError
from dripmail.timing import (
    get_random_daily_quota,
    get_random_delay_seconds,
    is_business_hours,
    local_today,
)

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Outcome of one batch run."""
    sent: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self) -> dict:
        return {
            'sent': self.sent,
            'failed': self.failed,
            'skipped': self.skipped,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchScheduler:
    """
    Rate-limited, randomized dispatcher for drip messages.

    Usage:
        store = ContactStore(get_backend(config['STORE_PATH']))
        store.initialize()
        scheduler = BatchScheduler(store, SmtpTransport(config), config)

        result = scheduler.run_batch()

        # From a signal handler or another thread
        scheduler.cancel()
    """

    def __init__(
        self,
        store: ContactStore,
        transport,
        config: Optional[dict] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
        dry_run: bool = False,
    ):
        """
        Initialize the scheduler.

        Args:
            store: Contact store (shared with the reply bridge)
            transport: Object with send(contact, message_type) -> SendResult
            config: Configuration snapshot (defaults to DRIP_CONFIG)
            rng: Random source for quota, shuffle and delays
            clock: Returns the current UTC time
            dry_run: If True, log what would be sent without sending or recording
        """
        self.store = store
        self.transport = transport
        self.config = config if config is not None else DRIP_CONFIG
        self.rng = rng or random.Random()
        self.clock = clock or _utcnow
        self.dry_run = dry_run or self.config.get('DRY_RUN', False)

        self._guard = threading.Lock()
        self._cancelled = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._guard.locked()

    def cancel(self) -> None:
        """Ask an in-flight batch to stop before its next send."""
        self._cancelled.set()
        logger.info("Cancellation requested for running batch")

    def _wait(self, seconds: float) -> bool:
        """Pause between sends. Returns False if cancelled while waiting."""
        return not self._cancelled.wait(seconds)

    def _daily_quota(self, today) -> int:
        """Draw today's quota, or reuse the pinned one when configured to."""
        if not self.config.get('PIN_DAILY_QUOTA', False):
            return get_random_daily_quota(self.config, self.rng)

        quota = self.store.metadata.daily_quota
        if quota is None:
            quota = get_random_daily_quota(self.config, self.rng)
            self.store.set_daily_quota(quota)
            logger.info("Pinned daily quota for %s: %d", today.isoformat(), quota)
        return quota

    def run_batch(self) -> BatchResult:
        """
        Send one batch of emails.

        Returns:
            BatchResult; all zeros when the batch was skipped

        Raises:
            StoreError: The daily counter could not be reset or saved
            TransportSetupError: The transport is not usable at all
        """
        if not self._guard.acquire(blocking=False):
            logger.info("Email batch already in progress, skipping")
            return BatchResult()

        try:
            self._cancelled.clear()
            return self._run()
        except (StoreError, TransportSetupError):
            logger.exception("Email batch aborted")
            raise
        finally:
            self._guard.release()

    def _run(self) -> BatchResult:
        results = BatchResult()
        now = self.clock()

        in_window, reason = is_business_hours(self.config, now)
        if not in_window:
            logger.info("Outside business hours (%s), skipping email batch", reason)
            return results

        today = local_today(self.config, now)
        self.store.reset_daily_counter_if_needed(today)
        current_count = self.store.get_daily_send_count()

        daily_target = self._daily_quota(today)
        if current_count >= daily_target:
            logger.info(
                "Daily limit reached (%d/%d), skipping batch", current_count, daily_target
            )
            return results

        # Send up to half of what is left so later runs today still have room
        remaining = daily_target - current_count
        batch_size = min(remaining, math.ceil(remaining / 2))

        logger.info(
            "Starting email batch: %d emails (%d/%d sent today)",
            batch_size, current_count, daily_target
        )

        eligible = get_eligible_contacts(
            self.store, FollowUpIntervals.from_config(self.config), now=now
        )
        if not eligible:
            logger.info("No eligible contacts for outreach")
            return results

        self.rng.shuffle(eligible)
        selected = eligible[:batch_size]

        logger.info("Selected %d contacts from %d eligible", len(selected), len(eligible))

        for position, (contact, message_type) in enumerate(selected):
            if self._cancelled.is_set():
                results.skipped = len(selected) - position
                logger.info("Batch cancelled, %d sends skipped", results.skipped)
                break

            if self._send_one(contact, message_type):
                results.sent += 1
            else:
                results.failed += 1

            is_last = position == len(selected) - 1
            if not is_last and not self.dry_run:
                delay = get_random_delay_seconds(self.config, self.rng)
                logger.info("Waiting %.1f minutes before next email...", delay / 60)
                if not self._wait(delay):
                    results.skipped = len(selected) - position - 1
                    logger.info("Batch cancelled, %d sends skipped", results.skipped)
                    break

        logger.info(
            "Email batch complete: %d sent, %d failed, %d skipped",
            results.sent, results.failed, results.skipped
        )
        logger.info("Current statistics: %s", self.store.get_statistics())

        return results

    def _send_one(self, contact, message_type: str) -> bool:
        """Send to one contact and record it. Returns True on success."""
        if self.dry_run:
            logger.info("[DRY RUN] Would send %s to %s", message_type, contact.email)
            return True

        try:
            result = self.transport.send(contact, message_type)

            if not result.success:
                logger.error("Failed to send to %s: %s", contact.email, result.error)
                return False

            self.store.record_message_sent(
                contact.id,
                message_type,
                template_index=result.variant_id,
                subject_index=result.variant_id,
            )
        except TransportSetupError:
            raise
        except StoreError:
            logger.exception("Sent to %s but could not record it", contact.email)
            return False
        except Exception:
            logger.exception("Error sending to %s", contact.email)
            return False

        logger.info("Sent %s to %s", message_type, contact.email)
        return True

    def get_status(self) -> dict:
        """Current sending status for display."""
        now = self.clock()
        in_window, reason = is_business_hours(self.config, now)
        return {
            'is_sending': self.is_running,
            'is_business_hours': in_window,
            'business_hours_reason': reason,
            'daily_sent': self.store.get_daily_send_count(),
            'statistics': {
                **self.store.get_statistics(),
                **get_followup_counts(
                    self.store, FollowUpIntervals.from_config(self.config), now=now
                ),
            },
        }


def create_scheduler(config: Optional[dict] = None, dry_run: bool = False) -> BatchScheduler:
    """
    Build a scheduler wired to the configured store and SMTP transport.

    This is the main entry point for scripts and the long-running process.
    """
    config = config if config is not None else DRIP_CONFIG

    errors = validate_config(config)
    for error in errors:
        logger.warning("Config issue: %s", error)

    store = ContactStore(get_backend(config['STORE_PATH']))
    store.initialize()
    store.reset_daily_counter_if_needed(local_today(config))

    return BatchScheduler(store, SmtpTransport(config), config, dry_run=dry_run)
