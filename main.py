#!/usr/bin/env python3
"""
Drip Campaign Runner
====================

Long-running process that sends drip batches a few times per day and checks
the inbox for replies in between.

Usage:
    python main.py                  # Run on a schedule (stays running)
    python main.py --once           # Run one send batch and exit
    python main.py --check-replies  # Check the inbox once and exit
    python main.py --dry-run        # Log what would be sent, send nothing
"""

import argparse
import logging
import signal
import time

import schedule

from dripmail.config import get_config
from dripmail.inbox import InboxMonitor
from dripmail.manager import BatchScheduler, create_scheduler


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def send_emails_job(scheduler: BatchScheduler) -> dict:
    """Run one send batch and log the outcome."""
    logger = logging.getLogger("main")
    logger.info("SEND EMAILS JOB STARTED")

    result = scheduler.run_batch()

    logger.info(
        "SEND EMAILS JOB COMPLETED: %d sent, %d failed, %d skipped",
        result.sent, result.failed, result.skipped
    )
    return result.to_dict()


def check_responses_job(monitor: InboxMonitor) -> dict:
    """Scan the inbox once and log the outcome."""
    logger = logging.getLogger("main")
    logger.info("CHECK RESPONSES JOB STARTED")

    results = monitor.check_for_responses()

    logger.info(
        "CHECK RESPONSES JOB COMPLETED: %d responses found, %d emails checked, %d errors",
        results['responses'], results['checked'], results['errors']
    )
    return results


def _logged(job, *args):
    """Wrap a job so one failed run does not stop the scheduler loop."""
    logger = logging.getLogger("main")

    def run():
        try:
            job(*args)
        except Exception:
            logger.exception("%s failed", job.__name__)

    return run


def register_jobs(
    scheduler: BatchScheduler,
    monitor: InboxMonitor,
    runner: schedule.Scheduler = schedule.default_scheduler,
) -> list:
    """Register the send and reply-check jobs; returns the created jobs."""
    logger = logging.getLogger("main")
    config = scheduler.config
    jobs = []

    # Send times are wall-clock times in the business hours timezone
    for send_time in config['SEND_TIMES']:
        job = runner.every().day.at(send_time, config['TIMEZONE'])
        jobs.append(job.do(_logged(send_emails_job, scheduler)))
        logger.info("Send emails scheduled daily at %s (%s)", send_time, config['TIMEZONE'])

    interval = config['CHECK_RESPONSES_MINUTES']
    jobs.append(runner.every(interval).minutes.do(_logged(check_responses_job, monitor)))
    logger.info("Check responses scheduled every %d minutes", interval)

    return jobs


def run_scheduled(scheduler: BatchScheduler, monitor: InboxMonitor) -> None:
    """Run send batches at the configured times and poll the inbox regularly."""
    logger = logging.getLogger("main")
    running = True

    def shutdown(signum, frame):
        nonlocal running
        logger.info("%s received, shutting down gracefully...", signal.Signals(signum).name)
        running = False
        scheduler.cancel()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    register_jobs(scheduler, monitor)

    while running:
        schedule.run_pending()
        time.sleep(1)

    schedule.clear()
    monitor.disconnect()
    logger.info("Shutdown complete")


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Drip Campaign Runner - scheduled outreach and reply checks"
    )
    parser.add_argument(
        "--once", action="store_true",
        help="Run one send batch and exit",
    )
    parser.add_argument(
        "--check-replies", action="store_true",
        help="Check the inbox for replies once and exit",
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Log what would be sent without sending",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()
    setup_logging(args.verbose)

    config = get_config()
    scheduler = create_scheduler(config, dry_run=args.dry_run)
    monitor = InboxMonitor(scheduler.store, config)

    logging.getLogger("main").info(
        "Initial statistics: %s", scheduler.store.get_statistics()
    )

    if args.once:
        send_emails_job(scheduler)
    elif args.check_replies:
        try:
            check_responses_job(monitor)
        finally:
            monitor.disconnect()
    else:
        run_scheduled(scheduler, monitor)


if __name__ == "__main__":
    main()
