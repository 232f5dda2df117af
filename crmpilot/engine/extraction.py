"""Keyword-based action extraction from free text.

Two pattern tables:
    - EMAIL_ACTION_PATTERNS: what an inbox message asks of us
      (first matching pattern wins, one action per message)
    - DEBRIEF_ACTION_PATTERNS: follow-ups mentioned in meeting notes
      (every matching pattern yields an action)

Simple regular expressions; no language model involved.
"""

import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from crmpilot.core.exceptions import ValidationError
from crmpilot.db.models import EmailMessage


@dataclass(frozen=True)
class ActionPattern:
    pattern: re.Pattern
    action: str
    urgent: bool = False


def _p(words: str, action: str, urgent: bool = False) -> ActionPattern:
    return ActionPattern(re.compile(rf"\b(?:{words})", re.IGNORECASE), action, urgent)


EMAIL_ACTION_PATTERNS: tuple[ActionPattern, ...] = (
    _p("send|forward|share", "Send a document"),
    _p("confirm", "Confirm"),
    _p("reply|respond|get back to|feedback", "Reply"),
    _p("schedule|meeting|call next|set up a time|appointment", "Schedule a meeting"),
    _p("quote|proposal|offer|pricing", "Prepare/send a quote"),
    _p("urgent|asap|as soon as possible|right away", "Urgent action required", urgent=True),
    _p("call me|give me a call|ring", "Make a call"),
    _p("deadline|due by|no later than|before the end", "Meet a deadline"),
    _p("sign|signature|contract", "Signature required"),
)

DEBRIEF_ACTION_PATTERNS: tuple[ActionPattern, ...] = (
    _p("send|forward|share", "Send a document"),
    _p("follow up|follow-up|call back|get back", "Follow up"),
    _p("quote|proposal|offer|estimate|pricing", "Prepare a proposal"),
    _p("contract|sign|signature", "Prepare the contract"),
    _p("schedule|organi[sz]e|meeting|workshop", "Schedule the next meeting"),
    _p("validate|confirm|approval|sign-off", "Get approval"),
    _p("deliver|deploy|go live|rollout|roll out", "Plan the delivery"),
)

SUBJECT_PREVIEW = 50

_IN_DAYS_RE = re.compile(r"\bin\s+(\d+)\s+days?\b", re.IGNORECASE)


@dataclass
class ExtractedAction:
    """Action found in an inbox message."""

    sender: str
    subject: str
    action: str
    urgent: bool = False

    def to_dict(self) -> dict:
        return {"from": self.sender, "subject": self.subject, "action": self.action}


def extract_email_action(message: EmailMessage) -> Optional[ExtractedAction]:
    """First action pattern found in a message's subject or snippet."""
    text = f"{message.subject}\n{message.snippet or message.body}"
    for candidate in EMAIL_ACTION_PATTERNS:
        if candidate.pattern.search(text):
            return ExtractedAction(
                sender=message.sender,
                subject=message.subject,
                action=f"{candidate.action}: {message.subject[:SUBJECT_PREVIEW]}",
                urgent=candidate.urgent,
            )
    return None


def extract_debrief_actions(notes: str) -> list[str]:
    """Every follow-up action mentioned in meeting notes, in table order."""
    return [candidate.action for candidate in DEBRIEF_ACTION_PATTERNS if candidate.pattern.search(notes)]


def resolve_follow_up_date(value: str, today: date) -> date:
    """Parse ``YYYY-MM-DD`` or ``in N days``.

    A relative phrase without a number means one week.

    Raises:
        ValidationError: If the value is neither form
    """
    value = value.strip()
    if value.lower().startswith("in "):
        match = _IN_DAYS_RE.search(value)
        return today + timedelta(days=int(match.group(1)) if match else 7)
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid follow-up date: {value}")
