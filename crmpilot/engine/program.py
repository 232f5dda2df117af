"""Daily work program: urgent / important / to-plan buckets.

Merges the user's tasks, pending mentions, stale client accounts,
today's meetings and unread mail into three ordered buckets. Every item
lands in exactly one bucket and carries a ``deepDiveId``
(``task-12``, ``mention-4``, ``company-7``) so the caller can fetch the
record behind it without re-running the classification.

Classification order (first match wins):
    1. overdue task                  -> urgent      overdue_task
    2. due later today, high         -> urgent      urgent_task
    3. due later today, not high     -> important   today_task
    4. high priority, any other date -> important   high_priority_task
    5. due tomorrow or later         -> to_plan     upcoming_task (first 5)
    mentions                         -> important   mention
    stale clients 1-3                -> urgent      client_followup
    stale clients 4-6                -> to_plan     client_followup

Usage:
    from crmpilot.engine.program import ProgramInputs, build_program

    program = build_program(now, ProgramInputs(tasks=tasks, mentions=mentions))
    print(program.stats["overdueCount"])
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any, Iterable

from crmpilot.core.logging import get_logger
from crmpilot.db.models import (
    ACTIVE_STAGES,
    Account,
    AccountKind,
    CalendarEvent,
    EmailMessage,
    Mention,
    Priority,
    Task,
)
from crmpilot.engine.scoring import days_since_contact

logger = get_logger(__name__)

URGENT_FOLLOWUPS = 3
PLANNED_FOLLOWUPS = 3
MAX_UPCOMING = 5
SNIPPET_LENGTH = 100


@dataclass
class ProgramItem:
    """One entry in a bucket."""

    type: str
    deep_dive_id: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, **self.payload, "deepDiveId": self.deep_dive_id}


@dataclass
class ProgramInputs:
    """Everything the aggregator reads, fetched by the caller.

    Attributes:
        tasks: The user's tasks (completed ones are ignored)
        mentions: Pending mentions for the user
        stale_accounts: Output of select_stale_accounts(), oldest contact first
        unread_notifications: Count of unread notifications
        calendar_events: Today's calendar events
        unread_messages: Unread inbox messages
    """

    tasks: list[Task] = field(default_factory=list)
    mentions: list[Mention] = field(default_factory=list)
    stale_accounts: list[Account] = field(default_factory=list)
    unread_notifications: int = 0
    calendar_events: list[CalendarEvent] = field(default_factory=list)
    unread_messages: list[EmailMessage] = field(default_factory=list)


@dataclass
class DailyProgram:
    """The three buckets plus stats reduced from the same inputs."""

    day: datetime
    urgent: list[ProgramItem] = field(default_factory=list)
    important: list[ProgramItem] = field(default_factory=list)
    to_plan: list[ProgramItem] = field(default_factory=list)
    stats: dict[str, int] = field(default_factory=dict)
    calendar: list[dict[str, Any]] = field(default_factory=list)
    emails: dict[str, Any] = field(default_factory=dict)

    def all_items(self) -> list[ProgramItem]:
        return [*self.urgent, *self.important, *self.to_plan]

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.day.strftime("%A %d %B %Y"),
            "sections": {
                "urgent": {"count": len(self.urgent), "items": [i.to_dict() for i in self.urgent]},
                "important": {
                    "count": len(self.important),
                    "items": [i.to_dict() for i in self.important],
                },
                "toPlan": {"count": len(self.to_plan), "items": [i.to_dict() for i in self.to_plan]},
            },
            "calendar": self.calendar,
            "emails": self.emails,
            "stats": self.stats,
        }


def select_stale_accounts(
    accounts: Iterable[Account], now: datetime, stale_after_days: int = 14
) -> list[Account]:
    """Client accounts in an active stage with no contact for too long.

    Returns:
        Matching accounts, longest silence first
    """
    stale = [
        account
        for account in accounts
        if account.kind == AccountKind.CLIENT
        and account.stage in ACTIVE_STAGES
        and days_since_contact(account, now) > stale_after_days
    ]
    stale.sort(key=lambda account: (-days_since_contact(account, now), account.id or 0))
    return stale


def _task_payload(task: Task) -> dict[str, Any]:
    return {
        "title": task.title,
        "company": task.account_name,
        "priority": task.priority.value,
        "dueDate": task.due_at.isoformat() if task.due_at else None,
    }


def _followup_item(account: Account, now: datetime) -> ProgramItem:
    return ProgramItem(
        type="client_followup",
        deep_dive_id=f"company-{account.id}",
        payload={
            "name": account.name,
            "daysSinceContact": days_since_contact(account, now),
            "stage": account.stage.value,
        },
    )


def build_program(now: datetime, inputs: ProgramInputs) -> DailyProgram:
    """Classify the inputs into urgent, important and to-plan buckets.

    Args:
        now: Reference time; "today" is the calendar day of ``now``
        inputs: Tasks, mentions, stale accounts and provider data

    Returns:
        DailyProgram whose stats agree with its buckets
    """
    today_start = datetime.combine(now.date(), time())
    tomorrow_start = today_start + timedelta(days=1)
    program = DailyProgram(day=now)

    open_tasks = [t for t in inputs.tasks if t.is_open]
    overdue_count = 0
    upcoming: list[Task] = []

    for task in open_tasks:
        deep_dive_id = f"task-{task.id}"
        payload = _task_payload(task)
        due = task.due_at

        if due is not None and due < now:
            overdue_count += 1
            payload["daysLate"] = math.ceil((now - due) / timedelta(days=1))
            program.urgent.append(ProgramItem("overdue_task", deep_dive_id, payload))
        elif due is not None and due < tomorrow_start:
            if task.priority == Priority.HIGH:
                program.urgent.append(ProgramItem("urgent_task", deep_dive_id, payload))
            else:
                program.important.append(ProgramItem("today_task", deep_dive_id, payload))
        elif task.priority == Priority.HIGH:
            program.important.append(ProgramItem("high_priority_task", deep_dive_id, payload))
        elif due is not None:
            upcoming.append(task)

    upcoming.sort(key=lambda t: (t.due_at, t.id or 0))
    for task in upcoming[:MAX_UPCOMING]:
        program.to_plan.append(ProgramItem("upcoming_task", f"task-{task.id}", _task_payload(task)))

    # Mentions sit ahead of today's tasks in the important bucket
    mention_items = [
        ProgramItem(
            type="mention",
            deep_dive_id=f"mention-{mention.id}",
            payload={
                "from": mention.author,
                "content": mention.content[:SNIPPET_LENGTH],
                "source": mention.source.value,
                "parent": mention.parent_title,
            },
        )
        for mention in inputs.mentions
        if not mention.resolved
    ]
    program.important[:0] = mention_items

    stale = inputs.stale_accounts
    program.urgent.extend(_followup_item(a, now) for a in stale[:URGENT_FOLLOWUPS])
    program.to_plan.extend(
        _followup_item(a, now) for a in stale[URGENT_FOLLOWUPS:URGENT_FOLLOWUPS + PLANNED_FOLLOWUPS]
    )

    program.calendar = [
        {
            "subject": event.subject,
            "start": event.start.isoformat() if event.start else None,
            "end": event.end.isoformat() if event.end else None,
            "location": event.location,
            "attendees": len(event.attendees),
            "deepDiveId": f"event-{event.id}" if event.id else None,
        }
        for event in inputs.calendar_events
    ]
    program.emails = {
        "count": len(inputs.unread_messages),
        "messages": [
            {"from": m.sender, "subject": m.subject, "snippet": m.snippet[:SNIPPET_LENGTH]}
            for m in inputs.unread_messages
        ],
    }

    program.stats = {
        "totalActiveTasks": len(open_tasks),
        "overdueCount": overdue_count,
        "unreadNotifications": inputs.unread_notifications,
        "unreadEmails": len(inputs.unread_messages),
        "mentionsPending": len(mention_items),
        "meetingsToday": len(inputs.calendar_events),
        "urgentCount": len(program.urgent),
        "importantCount": len(program.important),
        "toPlanCount": len(program.to_plan),
    }

    logger.info(
        "Daily program built",
        extra={"context": {
            "urgent": len(program.urgent),
            "important": len(program.important),
            "to_plan": len(program.to_plan),
        }},
    )
    return program
