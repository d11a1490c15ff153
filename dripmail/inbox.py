"""
IMAP inbox monitor.

Scans recent inbox messages and hands each sender to the reply bridge.
Messages are fetched with BODY.PEEK so nothing is marked as read.
"""

import email
import imaplib
import logging
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from email.policy import default as default_policy
from typing import Optional

from bs4 import BeautifulSoup

from dripmail.config import DRIP_CONFIG
from dripmail.contacts import ContactStore
from dripmail.replies import extract_email_address, is_legitimate_reply, on_reply_detected

logger = logging.getLogger(__name__)


def _plain_text(message: EmailMessage) -> str:
    """Best-effort plain text body of a parsed message."""
    part = message.get_body(preferencelist=('plain', 'html'))
    if part is None:
        return ""
    try:
        content = part.get_content()
    except (LookupError, UnicodeDecodeError):
        return ""

    if part.get_content_type() == 'text/html':
        soup = BeautifulSoup(content, "html.parser")
        return soup.get_text(" ", strip=True)
    return content


def process_message(store: ContactStore, raw: bytes) -> bool:
    """
    Classify one raw RFC 822 message and update the matching contact.

    Returns:
        True if a contact was marked as responded
    """
    message = email.message_from_bytes(raw, policy=default_policy)

    sender = str(message.get('From', ''))
    sender_email = extract_email_address(sender)
    if not sender_email:
        logger.warning("Could not extract sender email")
        return False

    # Cheap check first: most inbox mail is not from a tracked contact
    contact = store.get_contact_by_email(sender_email)
    if not contact or contact.is_responded:
        return False

    subject = str(message.get('Subject', ''))
    legitimate = is_legitimate_reply(sender, subject, _plain_text(message))
    return on_reply_detected(store, sender_email, legitimate)


class InboxMonitor:
    """Checks an IMAP inbox for replies from tracked contacts."""

    def __init__(self, store: ContactStore, config: Optional[dict] = None):
        self.store = store
        self.config = config if config is not None else DRIP_CONFIG
        self.connection: Optional[imaplib.IMAP4_SSL] = None

    def connect(self) -> None:
        self.connection = imaplib.IMAP4_SSL(
            self.config.get('IMAP_HOST', 'imap.gmail.com'),
            self.config.get('IMAP_PORT', 993),
            timeout=self.config.get('SMTP_TIMEOUT_SECONDS', 30),
        )
        self.connection.login(self.config['SMTP_USER'], self.config['SMTP_PASSWORD'])
        logger.info("Connected to IMAP server")

    def disconnect(self) -> None:
        if self.connection is None:
            return
        try:
            self.connection.logout()
        except (imaplib.IMAP4.error, OSError) as e:
            logger.warning("Error while logging out of IMAP: %s", e)
        finally:
            self.connection = None
        logger.info("Disconnected from IMAP server")

    def check_for_responses(self, days_back: Optional[int] = None) -> dict:
        """
        Scan inbox messages from the last `days_back` days.

        Returns:
            Summary dict: {'checked': int, 'responses': int, 'errors': int}
        """
        if days_back is None:
            days_back = self.config.get('REPLY_LOOKBACK_DAYS', 7)

        results = {
            'checked': 0,
            'responses': 0,
            'errors': 0,
        }

        if self.connection is None:
            self.connect()

        try:
            self.connection.select('INBOX', readonly=True)

            since = (datetime.now(timezone.utc) - timedelta(days=days_back)).strftime('%d-%b-%Y')
            status, data = self.connection.search(None, 'SINCE', since)
            if status != 'OK':
                raise imaplib.IMAP4.error(f"IMAP search failed: {status}")

            message_ids = data[0].split() if data and data[0] else []
            results['checked'] = len(message_ids)
            logger.info("Found %d emails in the last %d days", len(message_ids), days_back)

            for message_id in message_ids:
                try:
                    status, parts = self.connection.fetch(message_id, '(BODY.PEEK[])')
                    if status != 'OK' or not parts or not isinstance(parts[0], tuple):
                        results['errors'] += 1
                        continue
                    if process_message(self.store, parts[0][1]):
                        results['responses'] += 1
                except (imaplib.IMAP4.error, ValueError) as e:
                    logger.error("Error processing message %s: %s", message_id, e)
                    results['errors'] += 1
        except (imaplib.IMAP4.error, OSError):
            # Drop the connection so the next check starts clean
            self.disconnect()
            raise

        logger.info(
            "Inbox check complete: %d responses found, %d errors",
            results['responses'], results['errors']
        )
        return results
