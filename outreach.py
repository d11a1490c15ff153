#!/usr/bin/env python3
"""
Outreach CLI - Command-line interface for the drip campaign.

Usage:
    python outreach.py status                 Show current status
    python outreach.py add <email> [options]  Add a contact
    python outreach.py import <file.csv>      Bulk import contacts from CSV
    python outreach.py list [--status S]      List contacts
    python outreach.py eligible               Show who is due for what
    python outreach.py send                   Run one send batch
    python outreach.py send --dry-run         Preview what would be sent
    python outreach.py check-replies          Scan the inbox for replies
    python outreach.py reply <email>          Mark a contact as responded
    python outreach.py verify                 Check the SMTP connection
    python outreach.py test-email <email>     Send a test email
"""

import argparse
import csv
import logging
import sys

from dripmail.config import get_config
from dripmail.db import StoreError
from dripmail.followup import FollowUpIntervals, get_eligible_contacts
from dripmail.inbox import InboxMonitor
from dripmail.manager import create_scheduler
from dripmail.models import STATUSES
from dripmail.replies import on_reply_detected
from dripmail.sender import SmtpTransport, TransportSetupError
from dripmail.summary import print_status

logging.basicConfig(
    level=logging.INFO,
    format='%(message)s',
)
logger = logging.getLogger(__name__)

# CSV header aliases -> contact fields
CSV_COLUMNS = {
    'email': 'email',
    'first_name': 'first_name',
    'firstname': 'first_name',
    'last_name': 'last_name',
    'lastname': 'last_name',
    'name': 'name',
    'company': 'company_name',
    'company_name': 'company_name',
    'companyname': 'company_name',
    'city': 'city',
}


def _normalise_row(row: dict) -> dict:
    contact = {}
    for key, value in row.items():
        field = CSV_COLUMNS.get((key or '').strip().lower().replace(' ', '_'))
        if field and value:
            contact[field] = value.strip()
    return contact


def cmd_status(args):
    """Show current campaign status."""
    scheduler = create_scheduler()
    print_status(scheduler)


def cmd_add(args):
    """Add a single contact."""
    scheduler = create_scheduler()
    try:
        contact = scheduler.store.add_contact({
            'email': args.email,
            'first_name': args.first_name,
            'last_name': args.last_name,
            'company_name': args.company,
            'city': args.city,
        })
    except ValueError as e:
        print(f"\n✗ {e}\n")
        return

    print(f"\n✓ {contact.email} ({contact.status}) id={contact.id}\n")


def cmd_import(args):
    """Bulk import contacts from a CSV file."""
    scheduler = create_scheduler()

    with open(args.file, newline='', encoding='utf-8-sig') as f:
        rows = [_normalise_row(row) for row in csv.DictReader(f)]

    results = scheduler.store.add_bulk_contacts(rows)

    print(f"\nImported {args.file}:")
    print(f"  ✓ Added: {results['added']}")
    print(f"  • Skipped (already known): {results['skipped']}")
    if results['errors']:
        print(f"  ✗ Errors: {len(results['errors'])}")
        for error in results['errors'][:10]:
            print(f"    - {error['error']}: {error['contact']}")
    print()


def cmd_list(args):
    """List contacts, optionally filtered by status."""
    scheduler = create_scheduler()
    store = scheduler.store

    contacts = store.get_contacts_by_status(args.status) if args.status else store.contacts

    if not contacts:
        print("\n✓ No contacts\n")
        return

    print(f"\nContacts ({len(contacts)}):")
    print("-" * 80)
    for contact in contacts[:args.limit]:
        last = contact.last_contacted.strftime('%Y-%m-%d') if contact.last_contacted else '-'
        print(f"{contact.status:<12} | {last:<10} | {contact.email[:35]:<35} | {contact.company_name[:15]}")
    if len(contacts) > args.limit:
        print(f"... and {len(contacts) - args.limit} more")
    print("-" * 80)
    print()


def cmd_eligible(args):
    """Show contacts currently eligible for outreach."""
    scheduler = create_scheduler()
    eligible = get_eligible_contacts(
        scheduler.store, FollowUpIntervals.from_config(scheduler.config)
    )

    if not eligible:
        print("\n✓ No contacts due for outreach\n")
        return

    print(f"\nEligible now ({len(eligible)}):")
    for contact, message_type in eligible:
        print(f"  • {message_type:<12} {contact.email}")
    print()


def cmd_send(args):
    """Run one send batch."""
    scheduler = create_scheduler(dry_run=args.dry_run)

    if args.dry_run:
        print("\n🔍 DRY RUN MODE - No emails will be sent\n")

    try:
        result = scheduler.run_batch()
    except (StoreError, TransportSetupError) as e:
        print(f"\n✗ {e}\n")
        sys.exit(1)

    print(f"\n{'[DRY RUN] ' if args.dry_run else ''}Results:")
    print(f"  ✓ Sent: {result.sent}")
    if result.failed:
        print(f"  ✗ Failed: {result.failed}")
    if result.skipped:
        print(f"  ⚠ Skipped: {result.skipped}")
    print()


def cmd_check_replies(args):
    """Scan the inbox for replies."""
    scheduler = create_scheduler()
    monitor = InboxMonitor(scheduler.store, scheduler.config)

    try:
        results = monitor.check_for_responses(args.days)
    finally:
        monitor.disconnect()

    print(f"\nChecked {results['checked']} emails:")
    print(f"  ✓ Responses: {results['responses']}")
    if results['errors']:
        print(f"  ✗ Errors: {results['errors']}")
    print()


def cmd_reply(args):
    """Mark a contact as having responded."""
    scheduler = create_scheduler()

    if on_reply_detected(scheduler.store, args.email, True):
        print(f"\n✓ Marked {args.email} as responded\n")
    else:
        print(f"\n✗ {args.email} is unknown or already responded\n")


def cmd_verify(args):
    """Check the SMTP connection."""
    transport = SmtpTransport(get_config())
    try:
        transport.verify()
    except TransportSetupError as e:
        print(f"\n✗ {e}\n")
        sys.exit(1)
    print("\n✓ SMTP connection verified\n")


def cmd_test_email(args):
    """Send a test email."""
    transport = SmtpTransport(get_config())
    try:
        result = transport.send_test_email(args.email)
    except TransportSetupError as e:
        print(f"\n✗ {e}\n")
        sys.exit(1)

    if result.success:
        print(f"\n✓ Test email sent to {args.email}")
        print("\nCheck your inbox (and spam folder) to verify delivery.\n")
    else:
        print(f"\n✗ Failed to send test email: {result.error}\n")
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(
        description="Outreach CLI - Automated email drip campaign",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # status
    subparsers.add_parser('status', help='Show current status')

    # add
    add_parser = subparsers.add_parser('add', help='Add a contact')
    add_parser.add_argument('email', help='Contact email')
    add_parser.add_argument('--first-name', default='', help='First name')
    add_parser.add_argument('--last-name', default='', help='Last name')
    add_parser.add_argument('--company', default='', help='Company name')
    add_parser.add_argument('--city', default='', help='City')

    # import
    import_parser = subparsers.add_parser('import', help='Bulk import contacts from CSV')
    import_parser.add_argument('file', help='CSV file with an email column')

    # list
    list_parser = subparsers.add_parser('list', help='List contacts')
    list_parser.add_argument('--status', '-s', choices=STATUSES, help='Filter by status')
    list_parser.add_argument('--limit', '-l', type=int, default=50, help='Max entries')

    # eligible
    subparsers.add_parser('eligible', help='Show who is due for outreach')

    # send
    send_parser = subparsers.add_parser('send', help='Run one send batch')
    send_parser.add_argument('--dry-run', action='store_true', help='Preview without sending')

    # check-replies
    replies_parser = subparsers.add_parser('check-replies', help='Scan the inbox for replies')
    replies_parser.add_argument('--days', '-d', type=int, default=None, help='Days to look back')

    # reply
    reply_parser = subparsers.add_parser('reply', help='Mark a contact as responded')
    reply_parser.add_argument('email', help='Contact email')

    # verify
    subparsers.add_parser('verify', help='Check the SMTP connection')

    # test-email
    test_parser = subparsers.add_parser('test-email', help='Send a test email')
    test_parser.add_argument('email', help='Recipient')

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    # Command dispatch
    commands = {
        'status': cmd_status,
        'add': cmd_add,
        'import': cmd_import,
        'list': cmd_list,
        'eligible': cmd_eligible,
        'send': cmd_send,
        'check-replies': cmd_check_replies,
        'reply': cmd_reply,
        'verify': cmd_verify,
        'test-email': cmd_test_email,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        cmd_func(args)
    else:
        parser.print_help()


if __name__ == '__main__':
    main()
