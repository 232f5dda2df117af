"""Work operations: tasks, briefings, the daily program, alerts and reports.

Composite reads start together with asyncio.gather and are awaited
together; the pure engines (program, scoring) run on the results.
"""

import asyncio
from collections import Counter
from datetime import timedelta
from typing import Any, Optional

from crmpilot.actions.base import (
    ActionContext,
    company_path,
    find_account,
    get_account,
    iso,
    parse_due,
)
from crmpilot.actions.registry import Param, action
from crmpilot.actions.result import ActionResult, ok
from crmpilot.core.logging import get_logger
from crmpilot.db.models import (
    DEAL_STAGES,
    AccountKind,
    PipelineStage,
    Priority,
    Task,
    TaskStatus,
)
from crmpilot.engine.data_access import TaskFilter
from crmpilot.engine.program import ProgramInputs, build_program, select_stale_accounts
from crmpilot.engine.scheduler import minute_label
from crmpilot.engine.scoring import days_since_contact

logger = get_logger(__name__)

PRIORITIES = tuple(p.value for p in Priority)

BRIEFING_UPCOMING = 5
BRIEFING_URGENT_CLIENTS = 3
BRIEFING_EMAILS = 5
PROGRAM_EMAILS = 8
PRIORITIZED_SHOWN = 8
SCHEDULED_TASKS = 5
ALERTS_SHOWN = 10
REPORT_HIGHLIGHTS = 5
SEARCH_ACTIVITIES = 5
DASHBOARD_ACTIVITY_WINDOW = timedelta(days=7)

_SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}
_REPORT_PERIODS = ("today", "week", "month")


def _task_row(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "priority": task.priority.value,
        "company": task.account_name,
        "dueDate": iso(task.due_at),
    }


def _my_open_tasks(ctx: ActionContext) -> TaskFilter:
    return TaskFilter(assignee=ctx.user, include_completed=False)


async def _today_events(ctx: ActionContext):
    return await ctx.data.list_calendar_events(ctx.today_start, ctx.today_start + timedelta(days=1))


# =============================================================================
# TASKS
# =============================================================================


@action(
    "create_task",
    "Create a task, optionally linked to an account",
    title=Param("str", required=True),
    description=Param("str", default=""),
    account_id=Param("int"),
    account_name=Param("str"),
    priority=Param("str", choices=PRIORITIES, default="medium"),
    due_date=Param("str", description="YYYY-MM-DD, ISO datetime or +Nd"),
    assignees=Param("list"),
)
async def create_task(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    due_at = parse_due(params["due_date"], ctx.now)

    account = None
    if params["account_id"] is not None:
        account = await get_account(ctx, params["account_id"])
    elif params["account_name"]:
        # An unknown name leaves the task unlinked
        account = find_account(await ctx.data.list_accounts(), params["account_name"])

    assignees = [str(a).strip().lower() for a in params["assignees"] or []] or [ctx.user]
    task = await ctx.data.add_task(
        Task(
            title=params["title"],
            description=params["description"],
            due_at=due_at,
            priority=Priority(params["priority"]),
            assignees=assignees,
            assigned_by=ctx.user,
            account_id=account.id if account else None,
            account_name=account.name if account else None,
            created_at=ctx.now,
        )
    )

    due_text = f" (due {due_at:%Y-%m-%d})" if due_at else ""
    return ok(
        f"Task '{task.title}' created for {', '.join(assignees)}{due_text}",
        task={**_task_row(task), "assignees": assignees},
        created=True,
    )


@action(
    "prioritize_tasks",
    "Rank open tasks by urgency and plan the day around today's meetings",
)
async def prioritize_tasks(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    tasks, events = await asyncio.gather(
        ctx.data.list_tasks(_my_open_tasks(ctx)),
        _today_events(ctx),
    )

    scored = []
    for task in tasks:
        urgency = 0
        reasons: list[str] = []
        if task.due_at is not None:
            hours_left = (task.due_at - ctx.now) / timedelta(hours=1)
            if hours_left < 0:
                urgency += 50
                reasons.append("Overdue")
            elif hours_left < 8:
                urgency += 40
                reasons.append("Due today")
            elif hours_left < 24:
                urgency += 25
                reasons.append("Due tomorrow")
            elif hours_left < 72:
                urgency += 10
        if task.priority == Priority.HIGH:
            urgency += 30
            reasons.append("High priority")
        elif task.priority == Priority.MEDIUM:
            urgency += 15
        scored.append((urgency, reasons, task))

    scored.sort(key=lambda item: item[0], reverse=True)

    # Meetings keep their hour; the top tasks fill the free hours in order
    blocks: list[dict[str, Any]] = []
    taken_hours: set[int] = set()
    for event in events:
        if event.start is None:
            continue
        minute = event.start.hour * 60 + event.start.minute
        blocks.append({"time": minute_label(minute), "minute": minute, "task": event.subject, "type": "meeting"})
        if event.start.minute == 0:
            taken_hours.add(event.start.hour)

    hour = ctx.config.work_start_hour
    for _, _, task in scored[:SCHEDULED_TASKS]:
        while hour in taken_hours:
            hour += 1
        if hour > ctx.config.work_end_hour:
            break
        blocks.append({"time": minute_label(hour * 60), "minute": hour * 60, "task": task.title, "type": "task"})
        taken_hours.add(hour)
        hour += 1

    blocks.sort(key=lambda block: block["minute"])

    return ok(
        f"Day organised: {len(scored)} task(s), {len(events)} meeting(s)",
        prioritizedTasks=[
            {**_task_row(task), "urgencyScore": urgency, "reasons": reasons}
            for urgency, reasons, task in scored[:PRIORITIZED_SHOWN]
        ],
        suggestedSchedule=blocks,
        totalTasks=len(scored),
    )


# =============================================================================
# OVERVIEWS
# =============================================================================


@action("get_dashboard_summary", "Counts of accounts by stage, pending tasks and recent activity")
async def get_dashboard_summary(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    accounts, tasks, activities = await asyncio.gather(
        ctx.data.list_accounts(),
        ctx.data.list_tasks(_my_open_tasks(ctx)),
        ctx.data.list_activity_log(ctx.now - DASHBOARD_ACTIVITY_WINDOW),
    )
    by_stage = Counter(a.stage.value for a in accounts)
    return ok(
        "Dashboard summary",
        totalAccounts=len(accounts),
        byStage={stage.value: by_stage.get(stage.value, 0) for stage in PipelineStage},
        pendingTasks=len(tasks),
        recentActivities=len(activities),
    )


@action(
    "daily_briefing",
    "Today's tasks, meetings, silent clients and notifications",
    include_emails=Param("bool", default=False),
)
async def daily_briefing(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    reads = [
        ctx.data.list_tasks(_my_open_tasks(ctx)),
        _today_events(ctx),
        ctx.data.list_accounts(),
        ctx.data.count_unread_notifications(ctx.user),
    ]
    if params["include_emails"]:
        reads.append(ctx.data.list_messages(BRIEFING_EMAILS, "is:unread"))
    tasks, events, accounts, unread, *rest = await asyncio.gather(*reads)

    tomorrow = ctx.today_start + timedelta(days=1)
    today_tasks = [t for t in tasks if t.due_at is not None and t.due_at <= tomorrow]
    upcoming = [t for t in tasks if t.due_at is None or t.due_at > tomorrow]
    urgent_clients = select_stale_accounts(accounts, ctx.now, ctx.config.stale_after_days)

    email_summary: Optional[dict[str, Any]] = None
    if rest:
        messages = rest[0]
        email_summary = {
            "unreadCount": len(messages),
            "emails": [{"from": m.sender, "subject": m.subject, "snippet": m.snippet} for m in messages],
        }

    return ok(
        f"Briefing: {len(today_tasks)} urgent task(s), {len(events)} event(s)",
        todayTasks=[_task_row(t) for t in today_tasks],
        upcomingTasks=[_task_row(t) for t in upcoming[:BRIEFING_UPCOMING]],
        todayEvents=[{"title": e.subject, "time": iso(e.start)} for e in events],
        urgentClients=[
            {"name": a.name, "lastContact": iso(a.last_contact_at)}
            for a in urgent_clients[:BRIEFING_URGENT_CLIENTS]
        ],
        unreadNotifications=unread,
        emailSummary=email_summary,
        navigation=ctx.navigation("/"),
    )


@action(
    "daily_program",
    "Urgent, important and to-plan buckets for today",
    include_emails=Param("bool", default=True),
)
async def daily_program(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    if params["include_emails"]:
        messages_read = ctx.data.list_messages(PROGRAM_EMAILS, "is:unread")
    else:
        messages_read = asyncio.sleep(0, result=[])

    tasks, mentions, accounts, unread, events, messages = await asyncio.gather(
        ctx.data.list_tasks(TaskFilter(assignee=ctx.user, include_completed=False)),
        ctx.data.list_mentions_for_user(ctx.user),
        ctx.data.list_accounts(),
        ctx.data.count_unread_notifications(ctx.user),
        _today_events(ctx),
        messages_read,
    )

    program = build_program(
        ctx.now,
        ProgramInputs(
            tasks=tasks,
            mentions=mentions,
            stale_accounts=select_stale_accounts(accounts, ctx.now, ctx.config.stale_after_days),
            unread_notifications=unread,
            calendar_events=events,
            unread_messages=messages,
        ),
    )
    stats = program.stats
    return ok(
        f"Program: {stats['urgentCount']} urgent, {stats['importantCount']} important, "
        f"{stats['toPlanCount']} to plan",
        **program.to_dict(),
        navigation=ctx.navigation("/"),
    )


@action(
    "detect_alerts",
    "Silent deals, closing opportunities, missing contacts and overdue tasks",
)
async def detect_alerts(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    accounts, tasks = await asyncio.gather(
        ctx.data.list_accounts(),
        ctx.data.list_tasks(_my_open_tasks(ctx)),
    )

    alerts: list[dict[str, Any]] = []

    def add(kind: str, severity: str, message: str, account=None) -> None:
        alert = {"type": kind, "severity": severity, "message": message}
        if account is not None:
            alert.update(accountId=account.id, accountName=account.name)
        alerts.append(alert)

    for account in accounts:
        if account.kind == AccountKind.PARTNER:
            continue
        days = days_since_contact(account, ctx.now)

        if days > 21 and account.stage in DEAL_STAGES:
            add("stale", "high", f"{account.name}: in {account.stage.value} with no contact for {days} days", account)
        elif days > 14:
            add("risk", "medium", f"{account.name}: no contact for {days} days", account)

        if account.stage == PipelineStage.VALIDATION and days <= 7:
            add("opportunity", "high", f"{account.name}: in validation with recent contact, push to close", account)

        if not account.contacts and account.stage != PipelineStage.ENTRY_POINT:
            add("risk", "medium", f"{account.name}: no contact on file", account)

    for task in tasks:
        if task.due_at is not None and task.due_at < ctx.now:
            company = f" ({task.account_name})" if task.account_name else ""
            add("overdue", "high", f"Overdue task: '{task.title}'{company}")

    alerts.sort(key=lambda alert: _SEVERITY_ORDER[alert["severity"]])

    return ok(
        f"{len(alerts)} alert(s) detected",
        alerts=alerts[:ALERTS_SHOWN],
        summary={
            "high": sum(1 for a in alerts if a["severity"] == "high"),
            "medium": sum(1 for a in alerts if a["severity"] == "medium"),
            "risks": sum(1 for a in alerts if a["type"] == "risk"),
            "opportunities": sum(1 for a in alerts if a["type"] == "opportunity"),
            "overdue": sum(1 for a in alerts if a["type"] == "overdue"),
            "stale": sum(1 for a in alerts if a["type"] == "stale"),
        },
    )


@action(
    "generate_report",
    "Activity, pipeline and task report for a period",
    period=Param("str", choices=_REPORT_PERIODS, default="week"),
)
async def generate_report(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    period = params["period"]
    if period == "today":
        since = ctx.today_start
    elif period == "week":
        since = ctx.now - timedelta(days=7)
    else:
        since = ctx.now - timedelta(days=30)

    activities, tasks, accounts = await asyncio.gather(
        ctx.data.list_activity_log(since),
        ctx.data.list_tasks(),
        ctx.data.list_accounts(),
    )
    names = {a.id: a.name for a in accounts}
    by_stage = Counter(a.stage.value for a in accounts)
    completed = [t for t in tasks if t.status == TaskStatus.COMPLETED]

    return ok(
        f"Report ({period}): {len(activities)} activities",
        period=period,
        since=since.isoformat(),
        totalActivities=len(activities),
        byMember=dict(Counter(a.author or "unknown" for a in activities)),
        byType=dict(Counter(a.type.value for a in activities)),
        pipeline={stage.value: by_stage.get(stage.value, 0) for stage in PipelineStage},
        totalAccounts=len(accounts),
        tasksCompleted=len(completed),
        tasksPending=len(tasks) - len(completed),
        highlights=[
            {"who": a.author, "type": a.type.value, "account": names.get(a.account_id), "title": a.title}
            for a in activities[:REPORT_HIGHLIGHTS]
        ],
    )


@action(
    "smart_search",
    "Search accounts, contacts, tasks and activities at once",
    query=Param("str", required=True),
)
async def smart_search(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    query = params["query"]
    needle = query.lower()
    accounts, tasks = await asyncio.gather(ctx.data.list_accounts(), ctx.data.list_tasks())

    def hit(*texts: Optional[str]) -> bool:
        return any(needle in (text or "").lower() for text in texts)

    results: list[dict[str, Any]] = []

    matched_accounts = [
        {
            "title": a.name,
            "subtitle": f"{a.stage.value} - {len(a.contacts)} contact(s)",
            "id": a.id,
            "path": company_path(a.id),
        }
        for a in accounts
        if hit(a.name, a.general_comment)
        or any(hit(c.name, c.primary_email) for c in a.contacts)
    ]
    if matched_accounts:
        results.append({"category": "accounts", "items": matched_accounts})

    matched_contacts = [
        {"title": c.name, "subtitle": f"{c.role} @ {a.name}", "path": company_path(a.id)}
        for a in accounts
        for c in a.contacts
        if hit(c.name, c.primary_email, c.role)
    ]
    if matched_contacts:
        results.append({"category": "contacts", "items": matched_contacts})

    matched_tasks = [
        {
            "title": t.title,
            "subtitle": f"{t.status.value} - {t.priority.value}"
            + (f" - {t.account_name}" if t.account_name else ""),
            "id": t.id,
        }
        for t in tasks
        if hit(t.title, t.description)
    ]
    if matched_tasks:
        results.append({"category": "tasks", "items": matched_tasks})

    matched_activities = [
        {
            "title": f"{act.type.value} - {a.name}",
            "subtitle": f"{act.author} - {act.created_at:%Y-%m-%d}" if act.created_at else act.author,
        }
        for a in accounts
        for act in a.activities
        if hit(a.name, act.title, act.description)
    ]
    if matched_activities:
        results.append({"category": "activities", "items": matched_activities[:SEARCH_ACTIVITIES]})

    total = sum(len(r["items"]) for r in results)
    return ActionResult(
        success=total > 0,
        description=f"{total} result(s) for '{query}'",
        payload={"query": query, "results": results, "totalResults": total},
        error_kind=None if total else "NotFoundError",
    )
