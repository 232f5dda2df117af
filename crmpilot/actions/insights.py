"""Insight operations backed by the scoring engine.

Every score returned here carries its factor list.
"""

import asyncio
from typing import Any

from crmpilot.actions.base import ActionContext, company_path, contact_summary, filter_accounts, iso
from crmpilot.actions.registry import Param, action
from crmpilot.actions.result import ActionResult, ok
from crmpilot.core.exceptions import NotFoundError
from crmpilot.db.models import DEAL_STAGES, Account, AccountKind, PipelineStage, Task
from crmpilot.engine.data_access import TaskFilter
from crmpilot.engine.scoring import (
    build_signals,
    forecast_probability,
    health_score,
    lead_score,
    score_accounts,
)

SCORES_SHOWN = 10
MEETING_TYPES = ("discovery", "proposal", "negotiation", "follow_up")

_URGENCY_ORDER = {"high": 0, "medium": 1, "low": 2}

_TALKING_POINTS: dict[str, list[str]] = {
    "discovery": [
        "Introduce our team and value proposition",
        "Understand the client's needs and stakes",
        "Identify decision makers and the buying process",
        "Agree on next steps",
    ],
    "proposal": [
        "Walk through the commercial proposal",
        "Address likely objections",
        "Discuss pricing and terms",
        "Get a commitment or a decision timeline",
    ],
    "negotiation": [
        "Review points of agreement and blockers",
        "Negotiation room and possible concessions",
        "Closing timeline",
    ],
}

_PROPOSAL_SECTIONS = (
    ("Context and understanding of the stakes", None),
    ("Our approach", "Proposed method, project phases, expected deliverables."),
    ("Project team", "The dedicated team and their skills."),
    ("Timeline", "Phases, milestones and checkpoints."),
    ("Pricing", "Budget breakdown, payment terms, options."),
    ("Client references", "Similar client cases and their results."),
    ("Next steps", "Approval process, decision timeline, people involved."),
)


async def _accounts_and_open_tasks(ctx: ActionContext) -> tuple[list[Account], list[Task]]:
    accounts, tasks = await asyncio.gather(
        ctx.data.list_accounts(),
        ctx.data.list_tasks(TaskFilter(include_completed=False)),
    )
    return accounts, tasks


async def _open_tasks_for(ctx: ActionContext, account: Account) -> list[Task]:
    return await ctx.data.list_tasks(TaskFilter(account_id=account.id, include_completed=False))


def _checklist_progress(account: Account) -> str:
    if not account.checklist:
        return "N/A"
    done = sum(1 for item in account.checklist if item.completed)
    return f"{done}/{len(account.checklist)}"


def _recent_activities(account: Account, count: int) -> list[dict[str, Any]]:
    return [
        {"type": a.type.value, "title": a.title, "date": iso(a.created_at)}
        for a in account.activities[:count]
    ]


def _targets(accounts: list[Account], name: str, default: list[Account]) -> list[Account]:
    if not name:
        return default
    matched = filter_accounts(accounts, name)
    if not matched:
        raise NotFoundError(f"No account matches '{name}'")
    return matched


@action(
    "lead_scoring",
    "Rank accounts by lead score",
    account_name=Param("str", description="Only accounts whose name contains this"),
)
async def lead_scoring(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    accounts, tasks = await _accounts_and_open_tasks(ctx)
    targets = _targets(
        accounts, params["account_name"], [a for a in accounts if a.kind == AccountKind.CLIENT]
    )
    scored = score_accounts(targets, tasks, ctx.now, model=lead_score)
    return ok(
        f"Scored {len(scored)} account(s)",
        scores=[item.to_dict() for item in scored[:SCORES_SHOWN]],
    )


@action(
    "deal_forecast",
    "Closing probability of deals in motion",
    account_name=Param("str", description="Only accounts whose name contains this"),
)
async def deal_forecast(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    accounts, tasks = await _accounts_and_open_tasks(ctx)
    targets = _targets(
        accounts, params["account_name"], [a for a in accounts if a.stage in DEAL_STAGES]
    )
    scored = score_accounts(targets, tasks, ctx.now, model=forecast_probability)
    forecasts = []
    for item in scored[:SCORES_SHOWN]:
        row = item.to_dict()
        row["probability"] = row.pop("score")
        forecasts.append(row)
    return ok(f"Forecast: {len(scored)} deal(s) analysed", forecasts=forecasts)


@action(
    "analyze_relationship",
    "Relationship health, risks and next actions for one account",
    account_param="account_name",
    account_name=Param("str", required=True),
)
async def analyze_relationship(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    account: Account = params["account"]
    pending = await _open_tasks_for(ctx, account)
    signals = build_signals(account, pending, ctx.now)
    result = health_score(signals)
    days = signals.days_since_contact

    risks: list[str] = []
    if days > 14:
        risks.append(f"No contact for {days} days")
    if len(pending) > 2:
        risks.append(f"{len(pending)} pending tasks")
    if not account.contacts:
        risks.append("No contact on file")
    if not account.website:
        risks.append("No website recorded")

    next_actions: list[str] = []
    if days > 7:
        next_actions.append("Plan a follow-up")
    if pending:
        next_actions.append(f"Handle the {len(pending)} pending task(s)")
    if account.stage in (PipelineStage.PROPOSAL, PipelineStage.EXCHANGE):
        next_actions.append("Send or chase the proposal")
    if len(account.contacts) <= 1:
        next_actions.append("Identify more contacts")

    return ok(
        f"{account.name}: health {result.score}/100",
        account=account.name,
        stage=account.stage.value,
        importance=account.importance.value,
        healthScore=result.score,
        factors=result.factors_as_dicts(),
        daysSinceContact=days,
        contacts=[{"name": c.name, "role": c.role} for c in account.contacts],
        activitiesCount=len(account.activities),
        recentActivities=_recent_activities(account, 3),
        pendingTasks=[{"title": t.title, "priority": t.priority.value} for t in pending],
        checklistProgress=_checklist_progress(account),
        risks=risks,
        nextActions=next_actions,
        navigation=ctx.navigation(company_path(account.id)),
    )


@action(
    "follow_up_suggestions",
    "Which clients to chase, how urgently and through which channel",
    limit=Param("int", default=5),
)
async def follow_up_suggestions(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    accounts, tasks = await _accounts_and_open_tasks(ctx)

    suggestions = []
    for account in accounts:
        if account.kind == AccountKind.PARTNER:
            continue
        signals = build_signals(account, tasks, ctx.now)
        days = signals.days_since_contact
        channel = "email"

        if days > 21:
            urgency, channel = "high", "call"
            reason = f"No contact for {days} days"
            message = "I wanted to get back in touch. How are things progressing on your side?"
        elif days > 14:
            urgency = "medium"
            reason = f"{days} days without contact"
            message = "I wanted to check in on our work together. Do you have any questions?"
        elif account.stage == PipelineStage.PROPOSAL and days > 5:
            urgency = "high"
            reason = "Proposal sent, waiting for feedback"
            message = "I am following up on our proposal. Would you like to discuss it?"
        elif signals.pending_task_count > 2:
            urgency = "medium"
            reason = f"{signals.pending_task_count} pending tasks"
            message = "Several actions involving you are in progress. Can we schedule a catch-up?"
        else:
            continue

        suggestions.append(
            {
                "account": account.name,
                "accountId": account.id,
                "urgency": urgency,
                "channel": channel,
                "reason": reason,
                "suggestedMessage": message,
            }
        )

    suggestions.sort(key=lambda s: _URGENCY_ORDER[s["urgency"]])
    return ok(
        f"{len(suggestions)} follow-up(s) suggested",
        suggestions=suggestions[: max(params["limit"], 0)],
    )


@action(
    "meeting_prep",
    "Talking points, agenda and context for an upcoming meeting",
    account_param="account_name",
    account_name=Param("str", required=True),
    meeting_type=Param("str", choices=MEETING_TYPES, default="follow_up"),
)
async def meeting_prep(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    account: Account = params["account"]
    meeting_type = params["meeting_type"]

    pending, emails = await asyncio.gather(
        _open_tasks_for(ctx, account),
        ctx.data.list_messages(3, account.name),
    )
    days = build_signals(account, pending, ctx.now).days_since_contact

    if meeting_type in _TALKING_POINTS:
        points = list(_TALKING_POINTS[meeting_type])
    else:
        points = ["Review ongoing actions"]
        if pending:
            points.append(f"Discuss the {len(pending)} pending task(s)")
        if days > 7:
            points.append("Reconnect after a long silence")
        points.append("Identify new needs or opportunities")
        points.append("Agree on next steps")

    agenda = [
        {"time": "0-5min", "topic": "Welcome and context"},
        {"time": "5-15min", "topic": points[0] if points else "Main discussion"},
        {"time": "15-25min", "topic": points[1] if len(points) > 1 else "Open points"},
        {"time": "25-30min", "topic": "Next steps and follow-up"},
    ]

    return ok(
        f"{meeting_type.replace('_', ' ').capitalize()} briefing for {account.name} ready",
        account=account.name,
        stage=account.stage.value,
        importance=account.importance.value,
        daysSinceContact=days,
        meetingType=meeting_type,
        contacts=[{**contact_summary(c), "phone": c.phone} for c in account.contacts],
        pendingTasks=[{"title": t.title, "priority": t.priority.value} for t in pending],
        recentActivities=_recent_activities(account, 5),
        recentEmails=[m.subject for m in emails if m.subject],
        talkingPoints=points,
        agenda=agenda,
        checklistProgress=_checklist_progress(account),
        navigation=ctx.navigation(company_path(account.id)),
    )


@action(
    "proposal_outline",
    "Section outline for a commercial proposal",
    account_param="account_name",
    account_name=Param("str", required=True),
    context=Param("str", default=""),
)
async def proposal_outline(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    account: Account = params["account"]
    extra = f". {params['context']}" if params["context"] else ""

    sections = []
    for title, content in _PROPOSAL_SECTIONS:
        if content is None:
            content = (
                f"Summary of our understanding of {account.name}'s needs{extra}. "
                "Recap of previous exchanges."
            )
        sections.append({"title": title, "content": content})

    days = build_signals(account, [], ctx.now).days_since_contact
    return ok(
        f"Proposal outline for {account.name} ready",
        title=f"Commercial proposal - {account.name}",
        sections=sections,
        keyData={
            "contacts": ", ".join(c.name for c in account.contacts) or "To be identified",
            "stage": account.stage.value,
            "interactions": len(account.activities),
            "lastContact": f"{days} days ago",
        },
        navigation=ctx.navigation(company_path(account.id)),
    )
