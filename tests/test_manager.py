import json
import threading
from datetime import date, timedelta
from unittest.mock import patch

import pytest

from dripmail.db import StoreError
from dripmail.manager import BatchResult, BatchScheduler, create_scheduler
from dripmail.models import CONTACTED_1, FOLLOW_UP_1, PENDING
from dripmail.sender import SendResult, TransportSetupError

from conftest import SATURDAY_10AM, FakeTransport, SequenceRandom

TODAY = date(2025, 10, 15)


def _scheduler(store, transport, config, clock, rolls=None, **kwargs):
    rng = SequenceRandom(rolls) if rolls is not None else None
    return BatchScheduler(store, transport, config, rng=rng, clock=clock, **kwargs)


def _add_pending(store, count):
    return [store.add_contact({'email': f'contact{i}@example.com'}) for i in range(count)]


def test_quota_scenario_across_runs(store, config, clock):
    config.update({'MIN_DAILY_EMAILS': 4, 'MAX_DAILY_EMAILS': 4})
    _add_pending(store, 10)
    transport = FakeTransport()
    scheduler = _scheduler(store, transport, config, clock)

    first = scheduler.run_batch()

    assert first == BatchResult(sent=2, failed=0, skipped=0)
    assert len(store.get_contacts_by_status(CONTACTED_1)) == 2
    assert store.get_daily_send_count() == 2

    # remaining 2 -> at most ceil(2 / 2) = 1 per run
    assert scheduler.run_batch() == BatchResult(sent=1)
    assert scheduler.run_batch() == BatchResult(sent=1)
    assert store.get_daily_send_count() == 4

    assert scheduler.run_batch() == BatchResult()
    assert len(store.get_contacts_by_status(CONTACTED_1)) == 4
    assert len(store.get_contacts_by_status(PENDING)) == 6
    assert len(transport.calls) == 4


def test_batch_is_at_most_half_the_remaining_quota(store, config, clock):
    _add_pending(store, 30)
    transport = FakeTransport()
    scheduler = _scheduler(store, transport, config, clock, rolls=[25])

    result = scheduler.run_batch()

    assert result.sent == 13
    assert store.get_daily_send_count() == 13


def test_batch_limited_by_eligible_contacts(store, config, clock):
    _add_pending(store, 3)
    scheduler = _scheduler(store, FakeTransport(), config, clock, rolls=[40])

    assert scheduler.run_batch() == BatchResult(sent=3)


def test_quota_compared_against_current_roll(store, config, clock):
    config.update({'MIN_DAILY_EMAILS': 30, 'MAX_DAILY_EMAILS': 40})
    _add_pending(store, 5)
    store.metadata.last_reset_date = TODAY
    store.metadata.contacted_today = 30
    transport = FakeTransport()
    scheduler = _scheduler(store, transport, config, clock, rolls=[30, 40])

    assert scheduler.run_batch() == BatchResult()
    assert transport.calls == []

    # A fresh, higher roll on the next run lets sends through again
    result = scheduler.run_batch()
    assert result.sent == 5
    assert store.get_daily_send_count() == 35


def test_counter_reset_before_quota_check(store, config, clock):
    _add_pending(store, 2)
    store.metadata.last_reset_date = TODAY - timedelta(days=1)
    store.metadata.contacted_today = 40
    scheduler = _scheduler(store, FakeTransport(), config, clock, rolls=[18])

    result = scheduler.run_batch()

    assert result.sent == 2
    assert store.metadata.last_reset_date == TODAY
    assert store.get_daily_send_count() == 2


def test_outside_business_hours_skips_everything(store, config, clock):
    _add_pending(store, 5)
    clock.now = SATURDAY_10AM
    transport = FakeTransport()
    scheduler = _scheduler(store, transport, config, clock)

    with patch('dripmail.manager.get_eligible_contacts') as eligible, \
            patch('dripmail.manager.get_random_daily_quota') as quota:
        result = scheduler.run_batch()

    assert result == BatchResult(sent=0, failed=0, skipped=0)
    eligible.assert_not_called()
    quota.assert_not_called()
    assert transport.calls == []


def test_no_eligible_contacts(store, config, clock, make_contact):
    make_contact('waiting@example.com', status=CONTACTED_1, days_ago=1)
    scheduler = _scheduler(store, FakeTransport(), config, clock, rolls=[20])

    assert scheduler.run_batch() == BatchResult()


def test_sends_follow_ups_and_advances_state(store, config, clock, make_contact):
    contact = make_contact('due@example.com', status=FOLLOW_UP_1, days_ago=5)
    transport = FakeTransport([SendResult(success=True, variant_id=3)])
    scheduler = _scheduler(store, transport, config, clock, rolls=[20])

    assert scheduler.run_batch() == BatchResult(sent=1)
    assert transport.calls == [('due@example.com', 'follow_up_2')]
    assert contact.status == 'follow_up_2'
    assert contact.last_contacted == clock.now
    assert contact.message_history[-1].template_index == 3


def test_transport_failure_does_not_abort_batch(store, config, clock):
    contacts = _add_pending(store, 3)
    transport = FakeTransport([
        SendResult(success=False, error='mailbox full'),
        RuntimeError('connection reset'),
    ])
    scheduler = _scheduler(store, transport, config, clock, rolls=[40])

    result = scheduler.run_batch()

    assert result == BatchResult(sent=1, failed=2)
    assert len(transport.calls) == 3
    assert store.get_daily_send_count() == 1
    # Failed contacts keep their state and stay eligible
    assert sorted(c.status for c in contacts) == [CONTACTED_1, PENDING, PENDING]


def test_record_failure_counts_for_that_contact_only(store, backend, config, clock):
    contacts = _add_pending(store, 3)
    store.metadata.last_reset_date = TODAY
    transport = FakeTransport()
    scheduler = _scheduler(store, transport, config, clock, rolls=[6])
    backend.fail_saves = 1

    result = scheduler.run_batch()

    assert result == BatchResult(sent=2, failed=1)
    assert len(transport.calls) == 3
    assert store.get_daily_send_count() == 2
    assert sorted(c.status for c in contacts) == [CONTACTED_1, CONTACTED_1, PENDING]
    assert scheduler.is_running is False


def test_counter_reset_failure_aborts_run_and_releases_guard(store, backend, config, clock):
    _add_pending(store, 2)
    store.metadata.last_reset_date = TODAY - timedelta(days=1)
    store.metadata.contacted_today = 7
    transport = FakeTransport()
    scheduler = _scheduler(store, transport, config, clock, rolls=[20])
    backend.fail_on_save = True

    with pytest.raises(StoreError):
        scheduler.run_batch()

    assert scheduler.is_running is False
    assert transport.calls == []
    assert store.metadata.last_reset_date == TODAY - timedelta(days=1)
    assert store.get_daily_send_count() == 7

    backend.fail_on_save = False
    assert scheduler.run_batch().sent == 2


def test_transport_setup_error_aborts_run(store, config, clock):
    _add_pending(store, 2)
    transport = FakeTransport([TransportSetupError('bad login')])
    scheduler = _scheduler(store, transport, config, clock, rolls=[20])

    with pytest.raises(TransportSetupError):
        scheduler.run_batch()

    assert scheduler.is_running is False
    assert len(transport.calls) == 1


def test_concurrent_run_returns_zero_result(store, config, clock):
    _add_pending(store, 4)

    entered = threading.Event()
    release = threading.Event()

    class BlockingTransport:
        def send(self, contact, message_type):
            entered.set()
            release.wait(5)
            return SendResult(success=True, variant_id=0)

    scheduler = _scheduler(store, BlockingTransport(), config, clock, rolls=[4])
    results = []
    worker = threading.Thread(target=lambda: results.append(scheduler.run_batch()))
    worker.start()

    try:
        assert entered.wait(5)
        assert scheduler.is_running is True
        assert scheduler.run_batch() == BatchResult(sent=0, failed=0, skipped=0)
    finally:
        release.set()
        worker.join(5)

    assert results == [BatchResult(sent=2)]
    assert scheduler.is_running is False


def test_cancel_stops_before_next_send(store, config, clock):
    _add_pending(store, 10)

    class CancellingTransport(FakeTransport):
        def send(self, contact, message_type):
            result = super().send(contact, message_type)
            scheduler.cancel()
            return result

    transport = CancellingTransport()
    scheduler = _scheduler(store, transport, config, clock, rolls=[10])

    result = scheduler.run_batch()

    assert result == BatchResult(sent=1, failed=0, skipped=4)
    assert len(transport.calls) == 1


def test_waits_between_sends_but_not_after_last(store, config, clock):
    _add_pending(store, 3)
    scheduler = _scheduler(store, FakeTransport(), config, clock, rolls=[6])

    with patch.object(scheduler, '_wait', return_value=True) as wait:
        result = scheduler.run_batch()

    assert result.sent == 3
    assert wait.call_count == 2


def test_dry_run_records_nothing(store, config, clock):
    contacts = _add_pending(store, 3)
    transport = FakeTransport()
    scheduler = _scheduler(store, transport, config, clock, rolls=[40], dry_run=True)

    result = scheduler.run_batch()

    assert result.sent == 3
    assert transport.calls == []
    assert all(c.status == PENDING for c in contacts)
    assert store.get_daily_send_count() == 0


def test_pinned_quota_reused_within_the_day(store, config, clock):
    config['PIN_DAILY_QUOTA'] = True
    _add_pending(store, 10)
    scheduler = _scheduler(store, FakeTransport(), config, clock, rolls=[2])

    assert scheduler.run_batch().sent == 1
    assert store.metadata.daily_quota == 2

    # No second roll is drawn; the pinned quota still allows one more send
    assert scheduler.run_batch().sent == 1
    assert scheduler.run_batch() == BatchResult()


def test_get_status(store, config, clock, make_contact):
    make_contact('p@example.com')
    make_contact('due@example.com', status=CONTACTED_1, days_ago=3)
    scheduler = _scheduler(store, FakeTransport(), config, clock)

    status = scheduler.get_status()

    assert status['is_sending'] is False
    assert status['is_business_hours'] is True
    assert status['statistics']['pending'] == 1
    assert status['statistics']['need_follow_up_1'] == 1


def test_create_scheduler_resets_stale_daily_counter(config, tmp_path):
    path = tmp_path / 'contacts.json'
    path.write_text(json.dumps({
        'contacts': [],
        'metadata': {'contacted_today': 12, 'last_reset_date': '2000-01-03', 'daily_quota': 30},
    }), encoding='utf-8')
    config['STORE_PATH'] = str(path)

    scheduler = create_scheduler(config)

    assert scheduler.get_status()['daily_sent'] == 0
    assert scheduler.store.metadata.last_reset_date != date(2000, 1, 3)
    assert scheduler.store.metadata.daily_quota is None
    assert json.loads(path.read_text(encoding='utf-8'))['metadata']['contacted_today'] == 0
