from unittest.mock import MagicMock, patch

from dripmail.inbox import InboxMonitor, process_message
from dripmail.models import CONTACTED_1, RESPONDED


def _raw(sender, subject, body):
    return (
        f"From: {sender}\r\n"
        f"To: sam@sender.test\r\n"
        f"Subject: {subject}\r\n"
        f"Content-Type: text/plain; charset=utf-8\r\n"
        f"\r\n"
        f"{body}\r\n"
    ).encode('utf-8')


def test_genuine_reply_marks_contact_responded(store, make_contact):
    contact = make_contact('jane@example.com', status=CONTACTED_1, days_ago=1)

    raw = _raw('Jane Doe <jane@example.com>', 'Re: Quick question', 'Yes, call me Friday.')

    assert process_message(store, raw) is True
    assert contact.status == RESPONDED


def test_out_of_office_is_ignored(store, make_contact):
    contact = make_contact('jane@example.com', status=CONTACTED_1, days_ago=1)

    raw = _raw('jane@example.com', 'Out of Office', 'I am away until Monday.')

    assert process_message(store, raw) is False
    assert contact.status == CONTACTED_1


def test_mail_from_unknown_sender_is_ignored(store, make_contact):
    make_contact('jane@example.com')

    assert process_message(store, _raw('news@shop.example', 'Deals', 'Buy now')) is False


def test_check_for_responses(store, make_contact, config):
    jane = make_contact('jane@example.com', status=CONTACTED_1, days_ago=2)
    bob = make_contact('bob@example.com', status=CONTACTED_1, days_ago=2)

    messages = {
        b'1': _raw('jane@example.com', 'Re: hello', 'Interested!'),
        b'2': _raw('bob@example.com', 'Automatic reply', 'On vacation'),
        b'3': _raw('other@example.com', 'Newsletter', 'Hi'),
    }

    with patch('dripmail.inbox.imaplib.IMAP4_SSL') as imap_class:
        conn = MagicMock()
        imap_class.return_value = conn
        conn.search.return_value = ('OK', [b'1 2 3'])
        conn.fetch.side_effect = lambda mid, items: ('OK', [(b'RFC822', messages[mid])])

        monitor = InboxMonitor(store, config)
        results = monitor.check_for_responses(days_back=3)
        monitor.disconnect()

    assert results == {'checked': 3, 'responses': 1, 'errors': 0}
    assert jane.status == RESPONDED
    assert bob.status == CONTACTED_1

    conn.login.assert_called_once_with('sam@sender.test', 'secret')
    conn.select.assert_called_once_with('INBOX', readonly=True)
    assert all(c.args[1] == '(BODY.PEEK[])' for c in conn.fetch.call_args_list)
    conn.logout.assert_called_once()
    assert monitor.connection is None


def test_check_for_responses_counts_fetch_errors(store, config):
    with patch('dripmail.inbox.imaplib.IMAP4_SSL') as imap_class:
        conn = MagicMock()
        imap_class.return_value = conn
        conn.search.return_value = ('OK', [b'7'])
        conn.fetch.return_value = ('NO', [None])

        results = InboxMonitor(store, config).check_for_responses(days_back=1)

    assert results == {'checked': 1, 'responses': 0, 'errors': 1}


def _raw_html(sender, subject, html):
    return (
        f"From: {sender}\r\n"
        f"Subject: {subject}\r\n"
        f"Content-Type: text/html; charset=utf-8\r\n"
        f"\r\n"
        f"{html}\r\n"
    ).encode('utf-8')


def test_html_only_auto_reply_is_recognised(store, make_contact):
    contact = make_contact('jane@example.com', status=CONTACTED_1, days_ago=1)

    raw = _raw_html(
        'jane@example.com',
        'Re: Quick question',
        '<p>I am currently <b>out of</b> the <i>office</i> until Monday.</p>',
    )

    assert process_message(store, raw) is False
    assert contact.status == CONTACTED_1


def test_html_only_reply_counts_as_response(store, make_contact):
    contact = make_contact('jane@example.com', status=CONTACTED_1, days_ago=1)

    raw = _raw_html('jane@example.com', 'Re: Quick question', '<div>Sure, call me &amp; Bob Friday.</div>')

    assert process_message(store, raw) is True
    assert contact.status == RESPONDED
