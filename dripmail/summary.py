"""
Status summaries for the console.

Builds a plain-text overview of:
- Contacts per lifecycle status
- Follow-ups due
- Today's send count and business hours state
"""

import logging
from datetime import datetime
from typing import Optional

from dripmail.manager import BatchScheduler
from dripmail.models import RESPONDED, OUTREACH_STATUSES
from dripmail.timing import calculate_next_send_time, local_today

logger = logging.getLogger(__name__)


def _response_rate(stats: dict) -> float:
    contacted = sum(stats.get(s, 0) for s in OUTREACH_STATUSES) + stats.get(RESPONDED, 0)
    return (stats.get(RESPONDED, 0) / contacted * 100) if contacted > 0 else 0


def generate_summary_text(scheduler: BatchScheduler, batch_result: Optional[dict] = None) -> str:
    """
    Generate plain-text summary of the campaign.

    Args:
        scheduler: Scheduler whose store and config are summarised
        batch_result: Optional result of a batch run to include

    Returns:
        Plain text summary
    """
    status = scheduler.get_status()
    stats = status['statistics']
    today_str = local_today(scheduler.config, scheduler.clock()).strftime("%d %b %Y")

    lines = [
        f"DRIP CAMPAIGN SUMMARY - {today_str}",
        "=" * 50,
        "",
    ]

    if batch_result:
        lines.append("LAST BATCH")
        lines.append("-" * 30)
        lines.append(f"• Sent: {batch_result.get('sent', 0)}")
        if batch_result.get('failed', 0) > 0:
            lines.append(f"• Failed: {batch_result.get('failed', 0)}")
        if batch_result.get('skipped', 0) > 0:
            lines.append(f"• Skipped: {batch_result.get('skipped', 0)}")
        lines.append("")

    lines.append("CONTACTS")
    lines.append("-" * 30)
    lines.append(f"• Total: {stats.get('total', 0)}")
    lines.append(f"• Pending: {stats.get('pending', 0)}")
    lines.append(f"• Initial sent: {stats.get('contacted_1', 0)}")
    lines.append(f"• Follow-up 1 sent: {stats.get('follow_up_1', 0)}")
    lines.append(f"• Follow-up 2 sent: {stats.get('follow_up_2', 0)}")
    lines.append(f"• Follow-up 3 sent: {stats.get('follow_up_3', 0)}")
    lines.append(f"• Responded: {stats.get('responded', 0)}")
    lines.append(f"• Response rate: {_response_rate(stats):.1f}%")
    lines.append("")

    due = sum(stats.get(f'need_follow_up_{n}', 0) for n in (1, 2, 3))
    lines.append(f"FOLLOW-UPS DUE: {due}")
    lines.append("-" * 30)
    for n in (1, 2, 3):
        lines.append(f"• Follow-up {n}: {stats.get(f'need_follow_up_{n}', 0)}")
    lines.append("")

    lines.append("TODAY")
    lines.append("-" * 30)
    lines.append(f"• Sent today: {status['daily_sent']}")
    lines.append(
        f"• Daily quota range: {scheduler.config.get('MIN_DAILY_EMAILS')}"
        f"-{scheduler.config.get('MAX_DAILY_EMAILS')}"
    )
    if status['is_business_hours']:
        lines.append("• Business hours: open")
    else:
        next_send = calculate_next_send_time(scheduler.config, scheduler.clock())
        lines.append(f"• Business hours: closed ({status['business_hours_reason']})")
        lines.append(f"• Next send window: {_format_time(next_send)}")
    if status['is_sending']:
        lines.append("• A batch is currently running")

    return "\n".join(lines)


def _format_time(value: datetime) -> str:
    return value.strftime("%a %d %b %H:%M %Z")


def print_status(scheduler: BatchScheduler) -> None:
    """Print current campaign status to console."""
    print()
    print(generate_summary_text(scheduler))
    print()
