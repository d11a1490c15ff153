from dripmail.manager import BatchScheduler
from dripmail.models import CONTACTED_1, FOLLOW_UP_1
from dripmail.summary import generate_summary_text

from conftest import SATURDAY_10AM, FakeTransport


def test_summary_lists_counts_and_batch(store, config, clock, make_contact):
    make_contact('a@example.com')
    make_contact('b@example.com', status=CONTACTED_1, days_ago=4)
    replied = make_contact('c@example.com', status=FOLLOW_UP_1, days_ago=1)
    store.mark_as_responded(replied.id)
    scheduler = BatchScheduler(store, FakeTransport(), config, clock=clock)

    text = generate_summary_text(scheduler, {'sent': 3, 'failed': 1, 'skipped': 0})

    assert text.startswith('DRIP CAMPAIGN SUMMARY - 15 Oct 2025')
    assert '• Sent: 3' in text
    assert '• Failed: 1' in text
    assert 'Skipped' not in text
    assert '• Total: 3' in text
    assert '• Responded: 1' in text
    assert '• Response rate: 50.0%' in text
    assert '• Follow-up 1: 1' in text
    assert '• Business hours: open' in text


def test_summary_shows_next_window_when_closed(store, config, clock):
    clock.now = SATURDAY_10AM
    scheduler = BatchScheduler(store, FakeTransport(), config, clock=clock)

    text = generate_summary_text(scheduler)

    assert '• Business hours: closed' in text
    assert '• Next send window: Mon 20 Oct 08:00' in text
