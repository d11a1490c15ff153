"""
Email template rendering for outreach.

Each message type has several subject/body variations. One is picked at
random per send and its index is recorded in the contact's history.

Variables available in templates:
- first_name (falls back to display name, then "there")
- last_name, email
- company_name (falls back to "your company")
- city (falls back to "your area")
- sender_name
"""

import logging
import random
from typing import Optional

from jinja2 import Environment, StrictUndefined

from dripmail.config import DRIP_CONFIG
from dripmail.models import Contact, MESSAGE_TYPES

logger = logging.getLogger(__name__)

TEMPLATES = {
    'initial': {
        'subjects': [
            "Quick question about {{ company_name }}",
            "Helping teams in {{ city }} move faster",
            "{{ first_name }}, an idea for {{ company_name }}",
        ],
        'bodies': [
            """Hi {{ first_name }},

I work with businesses in {{ city }} and wanted to reach out directly.

We help teams like {{ company_name }} take repetitive work off their plate so
they can spend more time with customers. Most of the people we work with see
results within the first couple of weeks.

Would you be open to a quick 10-minute call next week?

Best,
{{ sender_name }}""",
            """Hi {{ first_name }},

I'm {{ sender_name }}. I've been talking with a few companies around
{{ city }} and {{ company_name }} came up more than once.

If speeding up the day-to-day at {{ company_name }} is on your list this
quarter, I'd love to share what has worked for similar teams.

Do you have 10 minutes for a call this week or next?

Thanks,
{{ sender_name }}""",
            """Hi {{ first_name }},

Short note: I help companies in {{ city }} get more done with the team they
already have.

Happy to walk you through a couple of quick wins for {{ company_name }}.
Worth a short call?

Cheers,
{{ sender_name }}""",
        ],
    },
    'follow_up_1': {
        'subjects': [
            "Re: Quick question about {{ company_name }}",
            "Following up, {{ first_name }}",
            "Did this get buried?",
        ],
        'bodies': [
            """Hi {{ first_name }},

Just floating this back to the top of your inbox in case it got buried.

Would a short call next week make sense?

{{ sender_name }}""",
            """Hi {{ first_name }},

Following up on my note from a few days ago. I think there is a good fit
with {{ company_name }} and would be glad to show you why.

Let me know if a quick call works.

{{ sender_name }}""",
            """Hi {{ first_name }},

I know things get busy. Is improving how {{ company_name }} works something
you're thinking about right now, or should I check back later?

{{ sender_name }}""",
        ],
    },
    'follow_up_2': {
        'subjects': [
            "One more idea for {{ company_name }}",
            "{{ first_name }}, a quick example",
            "Worth a look?",
        ],
        'bodies': [
            """Hi {{ first_name }},

A company similar to {{ company_name }} recently cut their turnaround time in
half after a two-week trial with us. Happy to share how.

Open to a 10-minute chat?

{{ sender_name }}""",
            """Hi {{ first_name }},

I wanted to share one concrete example before I stop following up: teams in
{{ city }} have used us to free up several hours a week per person.

If that sounds useful, just reply and we'll find a time.

{{ sender_name }}""",
            """Hi {{ first_name }},

Is there someone else at {{ company_name }} who would be the right person to
talk to about this? I'd appreciate a pointer.

{{ sender_name }}""",
        ],
    },
    'follow_up_3': {
        'subjects': [
            "Closing the loop",
            "Should I stop reaching out?",
            "Last note, {{ first_name }}",
        ],
        'bodies': [
            """Hi {{ first_name }},

I haven't heard back so I'll assume the timing isn't right. If that changes,
my inbox is always open.

All the best,
{{ sender_name }}""",
            """Hi {{ first_name }},

I don't want to crowd your inbox, so this will be my last note. If
{{ company_name }} ever wants to revisit this, just reply here.

{{ sender_name }}""",
            """Hi {{ first_name }},

Closing the loop on my earlier emails. Wishing you and the team at
{{ company_name }} a great rest of the year.

{{ sender_name }}""",
        ],
    },
}

_HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
{% for line in lines %}{{ line }}<br>
{% endfor %}</body>
</html>"""

_env = None
_html_env = None


def _get_env() -> Environment:
    """Get or create the plain-text Jinja2 environment."""
    global _env
    if _env is None:
        _env = Environment(undefined=StrictUndefined, keep_trailing_newline=False)
    return _env


def _get_html_env() -> Environment:
    global _html_env
    if _html_env is None:
        _html_env = Environment(autoescape=True)
    return _html_env


def get_variant_count(message_type: str) -> int:
    if message_type not in TEMPLATES:
        raise ValueError(f"Invalid template type: {message_type}")
    return len(TEMPLATES[message_type]['subjects'])


def choose_variant(message_type: str, rng: Optional[random.Random] = None) -> int:
    """Pick a random variation index for this message type."""
    rng = rng or random
    return rng.randrange(get_variant_count(message_type))


def build_context(contact: Contact, sender_name: Optional[str] = None) -> dict:
    """Template variables for a contact, with friendly fallbacks."""
    return {
        'first_name': contact.first_name or contact.name or 'there',
        'last_name': contact.last_name,
        'email': contact.email,
        'company_name': contact.company_name or 'your company',
        'city': contact.city or 'your area',
        'sender_name': sender_name or DRIP_CONFIG.get('SENDER_NAME', ''),
    }


def render_message(
    contact: Contact,
    message_type: str,
    variant: int,
    sender_name: Optional[str] = None,
) -> tuple[str, str]:
    """
    Render one variation for a contact.

    Returns:
        (subject, body)
    """
    if message_type not in MESSAGE_TYPES:
        raise ValueError(f"Invalid template type: {message_type}")

    template_set = TEMPLATES[message_type]
    env = _get_env()
    context = build_context(contact, sender_name)

    subject = env.from_string(template_set['subjects'][variant]).render(**context)
    body = env.from_string(template_set['bodies'][variant]).render(**context)
    return subject, body


def to_html(body: str) -> str:
    """Wrap a plain text body in minimal HTML, one <br> per line."""
    template = _get_html_env().from_string(_HTML_TEMPLATE)
    return template.render(lines=body.split('\n'))
