"""Calendar operations: meetings, free slots and the multi-account scheduler."""

import asyncio
from datetime import date, datetime, time, timedelta
from typing import Any

from crmpilot.actions.base import FALLBACK_CONTACT_NAME, ActionContext, iso
from crmpilot.actions.registry import Param, action
from crmpilot.actions.result import ActionResult, ok
from crmpilot.core.exceptions import NotFoundError, ValidationError
from crmpilot.core.logging import get_logger
from crmpilot.db.models import DEAL_STAGES, Account, AccountKind, CalendarEvent
from crmpilot.engine.scheduler import (
    PREFERENCES,
    add_business_days,
    distribute_slots,
    find_free_slots,
    meeting_window_label,
    parse_day,
)
from crmpilot.engine.scoring import days_since_contact
from crmpilot.engine.templates import render_custom, render_template, template_subject

logger = get_logger(__name__)

UPCOMING_SHOWN = 5
FREE_SLOTS_SHOWN = 15
BUSY_SHOWN = 10
AUTO_TARGETS = 5
AUTO_TARGET_SILENCE_DAYS = 7
DEFAULT_MEETING_MINUTES = 60


def _busy_intervals(events: list[CalendarEvent]) -> list[tuple[datetime, datetime]]:
    return [(e.start, e.end) for e in events if e.start is not None and e.end is not None]


def _day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    return datetime.combine(start, time()), datetime.combine(end + timedelta(days=1), time())


def _working_hours(ctx: ActionContext, params: dict[str, Any]) -> tuple[int, int, int]:
    start_hour = params["work_start_hour"]
    end_hour = params["work_end_hour"]
    duration = params["duration"]
    return (
        ctx.config.work_start_hour if start_hour is None else start_hour,
        ctx.config.work_end_hour if end_hour is None else end_hour,
        ctx.config.meeting_duration_minutes if duration is None else duration,
    )


def _parse_range(ctx: ActionContext, params: dict[str, Any]) -> tuple[date, date]:
    start = parse_day(params["start_date"], ctx.today)
    end = parse_day(params["end_date"], add_business_days(start, 5))
    if end < start:
        raise ValidationError("end_date is before start_date")
    return start, end


def _auto_targets(accounts: list[Account], now: datetime) -> list[Account]:
    """Clients that have been quiet for a week or have a deal in motion."""
    targets = [
        a
        for a in accounts
        if a.kind != AccountKind.PARTNER
        and (days_since_contact(a, now) > AUTO_TARGET_SILENCE_DAYS or a.stage in DEAL_STAGES)
    ]
    return targets[:AUTO_TARGETS]


_SLOT_PARAMS = dict(
    start_date=Param("str", description="YYYY-MM-DD, defaults to today"),
    end_date=Param("str", description="YYYY-MM-DD, defaults to 5 business days later"),
    work_start_hour=Param("int"),
    work_end_hour=Param("int"),
    duration=Param("int", description="Meeting length in minutes"),
    preference=Param("str", choices=PREFERENCES, default="any"),
)


# =============================================================================
# MEETINGS
# =============================================================================


@action(
    "schedule_meeting",
    "Create a calendar event",
    title=Param("str", required=True),
    date=Param("str", required=True, description="YYYY-MM-DD"),
    time=Param("str", required=True, description="HH:MM"),
    duration=Param("int", default=DEFAULT_MEETING_MINUTES),
    attendees=Param("list"),
    description=Param("str", default=""),
)
async def schedule_meeting(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    try:
        start = datetime.fromisoformat(f"{params['date']}T{params['time']}")
    except ValueError:
        raise ValidationError(f"Invalid date or time: {params['date']} {params['time']}")
    if params["duration"] <= 0:
        raise ValidationError("Meeting duration must be positive")

    event = await ctx.data.create_calendar_event(
        params["title"],
        start,
        duration_minutes=params["duration"],
        attendees=params["attendees"] or [],
        body=params["description"],
    )
    return ok(
        f"Meeting '{params['title']}' scheduled for {params['date']} at {params['time']}",
        event={
            "id": event.id,
            "subject": event.subject,
            "start": iso(event.start),
            "end": iso(event.end),
            "attendees": event.attendees,
        },
        created=True,
        navigation=ctx.navigation("/calendar"),
    )


@action(
    "get_upcoming_meetings",
    "Meetings in the next few days",
    days=Param("int", default=7),
)
async def get_upcoming_meetings(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    days = params["days"]
    if days <= 0:
        raise ValidationError("days must be positive")
    events = await ctx.data.list_calendar_events(ctx.now, ctx.now + timedelta(days=days))
    return ok(
        f"{len(events)} meeting(s) in the next {days} days",
        count=len(events),
        meetings=[{"title": e.subject, "start": iso(e.start)} for e in events[:UPCOMING_SHOWN]],
    )


# =============================================================================
# SLOTS
# =============================================================================


@action("find_free_slots", "Free windows in working hours over a date range", **_SLOT_PARAMS)
async def find_free_slots_action(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    start, end = _parse_range(ctx, params)
    work_start, work_end, duration = _working_hours(ctx, params)

    events = await ctx.data.list_calendar_events(*_day_bounds(start, end))
    slots = find_free_slots(
        start,
        end,
        _busy_intervals(events),
        work_start_hour=work_start,
        work_end_hour=work_end,
        duration_min=duration,
        preference=params["preference"],
    )
    return ok(
        f"{len(slots)} free slot(s) between {start.isoformat()} and {end.isoformat()}",
        range={"start": start.isoformat(), "end": end.isoformat()},
        calendarEventsCount=len(events),
        slots=[slot.to_dict() for slot in slots],
    )


@action(
    "smart_scheduler",
    "Propose meeting slots to several accounts and draft the invitations",
    accounts=Param("list", description="Account names; defaults to clients needing a meeting"),
    message_template=Param("str"),
    create_drafts=Param("bool", default=True),
    **_SLOT_PARAMS,
)
async def smart_scheduler(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    start, end = _parse_range(ctx, params)
    work_start, work_end, duration = _working_hours(ctx, params)

    events, accounts = await asyncio.gather(
        ctx.data.list_calendar_events(*_day_bounds(start, end)),
        ctx.data.list_accounts(),
    )
    busy = _busy_intervals(events)
    slots = find_free_slots(
        start,
        end,
        busy,
        work_start_hour=work_start,
        work_end_hour=work_end,
        duration_min=duration,
        preference=params["preference"],
    )

    if params["accounts"]:
        needles = [str(name).lower() for name in params["accounts"]]
        targets = [a for a in accounts if any(n in a.name.lower() for n in needles)]
        if not targets:
            raise NotFoundError(f"No account matches {', '.join(params['accounts'])}")
    else:
        targets = _auto_targets(accounts, ctx.now)

    proposals = []
    for allocation in distribute_slots(slots, targets):
        account: Account = allocation.target
        contact = account.main_contact
        contact_name = contact.name if contact else FALLBACK_CONTACT_NAME
        contact_email = contact.primary_email if contact else None

        proposed = [
            {"day": slot.day_label, "date": slot.day.isoformat(), "time": meeting_window_label(slot, duration)}
            for slot in allocation.slots
        ]
        slots_text = "\n".join(
            f"  {i}. {p['day']} at {p['time']}" for i, p in enumerate(proposed, start=1)
        )
        context = {"name": account.name, "contact": contact_name, "slots": slots_text}
        if params["message_template"]:
            body = render_custom(params["message_template"], **context)
        else:
            body = render_template("meeting_proposal", **context)
        subject = template_subject("meeting_proposal", name=account.name)

        draft_created = False
        if params["create_drafts"] and contact_email:
            draft_created = await ctx.create_draft(contact_email, subject, body)

        proposals.append(
            {
                "account": account.name,
                "accountId": account.id,
                "contact": contact_name,
                "contactEmail": contact_email,
                "proposedSlots": proposed,
                "slotReused": allocation.reused,
                "subject": subject,
                "body": body,
                "draftCreated": draft_created,
            }
        )

    drafted = sum(1 for p in proposals if p["draftCreated"])
    logger.info(
        "Meeting slots proposed",
        extra={"context": {"slots": len(slots), "accounts": len(proposals), "drafts": drafted}},
    )
    return ok(
        f"{len(slots)} free slot(s), {len(proposals)} account(s), {drafted} draft(s)",
        range={"start": start.isoformat(), "end": end.isoformat()},
        calendarEventsCount=len(events),
        busySlots=[
            {"start": s.isoformat(), "end": e.isoformat()} for s, e in busy[:BUSY_SHOWN]
        ],
        freeSlots=[slot.to_dict() for slot in slots[:FREE_SLOTS_SHOWN]],
        proposedMeetings=proposals,
        summary={
            "totalFreeSlots": len(slots),
            "totalBusy": len(busy),
            "accountsContacted": len(proposals),
            "draftsCreated": drafted,
        },
    )
