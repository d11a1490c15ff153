"""
SMTP message transport.

Handles:
- Picking a template variation and rendering it for the contact
- SMTP connection and sending (bounded by a socket timeout)
- Telling ordinary delivery failures (reported in SendResult) apart from
  setup failures (raised as TransportSetupError)
"""

import logging
import random
import smtplib
import socket
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import Optional

from dripmail.config import DRIP_CONFIG
from dripmail.models import Contact
from dripmail.templates import choose_variant, render_message, to_html

logger = logging.getLogger(__name__)


class TransportSetupError(Exception):
    """The transport is not configured or cannot reach/authenticate with the server."""


class SendResult:
    """Result of an email send attempt."""
    def __init__(
        self,
        success: bool,
        variant_id: Optional[int] = None,
        error: Optional[str] = None,
        message_id: Optional[str] = None,
        bounced: bool = False,
    ):
        self.success = success
        self.variant_id = variant_id
        self.error = error
        self.message_id = message_id
        self.bounced = bounced

    def __repr__(self) -> str:
        return (
            f"SendResult(success={self.success!r}, variant_id={self.variant_id!r}, "
            f"error={self.error!r})"
        )


class SmtpTransport:
    """Sends drip messages over SMTP with STARTTLS."""

    def __init__(self, config: Optional[dict] = None, rng: Optional[random.Random] = None):
        self.config = config if config is not None else DRIP_CONFIG
        self.rng = rng or random.Random()

    def _check_credentials(self) -> None:
        if not self.config.get('SMTP_USER') or not self.config.get('SMTP_PASSWORD'):
            raise TransportSetupError("SMTP credentials not configured (EMAIL_USER / EMAIL_PASS)")

    def _open(self) -> smtplib.SMTP:
        """Connect, upgrade to TLS and log in."""
        server = smtplib.SMTP(
            self.config.get('SMTP_HOST', 'smtp.gmail.com'),
            self.config.get('SMTP_PORT', 587),
            timeout=self.config.get('SMTP_TIMEOUT_SECONDS', 30),
        )
        try:
            server.ehlo()
            server.starttls()
            server.ehlo()
            server.login(self.config['SMTP_USER'], self.config['SMTP_PASSWORD'])
        except Exception:
            server.close()
            raise
        return server

    def _sender_address(self) -> str:
        return self.config.get('SENDER_EMAIL') or self.config.get('SMTP_USER', '')

    def _build_message(self, to_email: str, subject: str, body: str) -> MIMEMultipart:
        sender_email = self._sender_address()
        sender_name = self.config.get('SENDER_NAME', '')

        msg = MIMEMultipart('alternative')
        msg.attach(MIMEText(body, 'plain', 'utf-8'))
        msg.attach(MIMEText(to_html(body), 'html', 'utf-8'))

        msg['From'] = formataddr((sender_name, sender_email)) if sender_name else sender_email
        msg['To'] = to_email
        msg['Subject'] = subject
        msg['Message-ID'] = make_msgid(domain=sender_email.split('@')[-1] or None)
        return msg

    def _deliver(self, to_email: str, msg: MIMEMultipart) -> None:
        try:
            with self._open() as server:
                server.sendmail(self._sender_address(), [to_email], msg.as_string())
        except smtplib.SMTPAuthenticationError as e:
            raise TransportSetupError(f"SMTP authentication failed: {e}") from e
        except (smtplib.SMTPConnectError, ConnectionRefusedError, socket.gaierror) as e:
            raise TransportSetupError(f"Cannot connect to SMTP server: {e}") from e

    def verify(self) -> bool:
        """Check that we can connect and authenticate. Raises TransportSetupError."""
        self._check_credentials()
        try:
            with self._open():
                pass
        except smtplib.SMTPAuthenticationError as e:
            raise TransportSetupError(f"SMTP authentication failed: {e}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise TransportSetupError(f"Cannot connect to SMTP server: {e}") from e

        logger.info(
            "SMTP connection verified for %s:%s",
            self.config.get('SMTP_HOST'), self.config.get('SMTP_PORT')
        )
        return True

    def send(self, contact: Contact, message_type: str) -> SendResult:
        """
        Send one drip message to a contact.

        Args:
            contact: Recipient
            message_type: 'initial', 'follow_up_1', 'follow_up_2' or 'follow_up_3'

        Returns:
            SendResult with the variation used

        Raises:
            TransportSetupError: Missing credentials, bad login or unreachable server
        """
        self._check_credentials()

        variant = choose_variant(message_type, self.rng)
        subject, body = render_message(
            contact, message_type, variant, sender_name=self.config.get('SENDER_NAME')
        )
        msg = self._build_message(contact.email, subject, body)

        try:
            self._deliver(contact.email, msg)
        except TransportSetupError:
            raise
        except smtplib.SMTPRecipientsRefused as e:
            logger.error("Recipients refused for %s: %s", contact.email, e)
            return SendResult(success=False, variant_id=variant, error=str(e), bounced=True)
        except smtplib.SMTPException as e:
            logger.error("SMTP error sending to %s: %s", contact.email, e)
            return SendResult(success=False, variant_id=variant, error=str(e))
        except TimeoutError as e:
            logger.error("Timed out sending to %s: %s", contact.email, e)
            return SendResult(success=False, variant_id=variant, error=f"timeout: {e}")
        except OSError as e:
            logger.error("Network error sending to %s: %s", contact.email, e)
            return SendResult(success=False, variant_id=variant, error=str(e))

        logger.info(
            "Email sent to %s (%s, variation %d)", contact.email, message_type, variant
        )
        return SendResult(success=True, variant_id=variant, message_id=msg['Message-ID'])

    def send_test_email(self, to_email: str) -> SendResult:
        """Send a plain test message to check SMTP configuration end to end."""
        self._check_credentials()

        body = "This is a test email to verify SMTP configuration is working correctly."
        msg = self._build_message(to_email, "Test Email from Drip Campaign", body)

        try:
            self._deliver(to_email, msg)
        except smtplib.SMTPException as e:
            logger.error("Failed to send test email: %s", e)
            return SendResult(success=False, error=str(e))
        except TimeoutError as e:
            logger.error("Timed out sending test email: %s", e)
            return SendResult(success=False, error=f"timeout: {e}")
        except OSError as e:
            logger.error("Network error sending test email: %s", e)
            return SendResult(success=False, error=str(e))

        logger.info("Test email sent to %s", to_email)
        return SendResult(success=True, message_id=msg['Message-ID'])
