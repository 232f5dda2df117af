"""Messaging operations: send, draft, inbox summaries and follow-up mailings.

Reads go through DataAccess and come back empty when mail is not
connected. send_email fails with ProviderUnavailable in that case;
the drafting operations carry on and report ``draftCreated: false``.
"""

import re
from typing import Any, Optional

from crmpilot.actions.base import FALLBACK_CONTACT_NAME, ActionContext, find_account
from crmpilot.actions.registry import Param, action
from crmpilot.actions.result import ActionResult, ok
from crmpilot.core.exceptions import NotFoundError, ValidationError
from crmpilot.core.logging import get_logger
from crmpilot.db.models import AccountKind, EmailMessage, Importance, PipelineStage, Priority, Task
from crmpilot.engine.extraction import extract_email_action
from crmpilot.engine.scoring import days_since_contact
from crmpilot.engine.templates import (
    REPLY_TONES,
    render_custom,
    render_template,
    template_subject,
    validate_template,
)

logger = get_logger(__name__)

SUMMARY_FILTERS = ("recent", "unread", "needs_reply")
REPLY_SEARCH_LIMIT = 5

_ADDRESS_RE = re.compile(r"<([^>]+)>")


def _message_row(message: EmailMessage) -> dict[str, Any]:
    return {
        "id": message.id,
        "from": message.sender,
        "subject": message.subject,
        "date": message.received_at.isoformat() if message.received_at else None,
        "snippet": message.snippet,
        "isUnread": not message.is_read,
    }


def _reply_address(message: EmailMessage) -> str:
    if message.from_address:
        return message.from_address
    match = _ADDRESS_RE.search(message.from_name)
    return match.group(1) if match else message.from_name


def _check_template(template: Optional[str]) -> None:
    if template:
        issues = validate_template(template)
        if issues:
            raise ValidationError(issues[0])


@action(
    "send_email",
    "Send an email",
    to=Param("str", required=True),
    subject=Param("str", required=True),
    body=Param("str", required=True),
)
async def send_email(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    message_id = await ctx.data.send_message(params["to"], params["subject"], params["body"])
    return ok(
        f"Email sent to {params['to']}",
        to=params["to"],
        subject=params["subject"],
        messageId=message_id or None,
        sent=True,
    )


@action(
    "draft_email",
    "Draft an email to a contact found in the CRM",
    contact_name=Param("str", required=True),
    subject=Param("str", required=True),
    body=Param("str", required=True),
    account_name=Param("str"),
)
async def draft_email(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    needle = params["contact_name"].lower()
    accounts = await ctx.data.list_accounts()

    email: Optional[str] = None
    account_name = ""
    for account in accounts:
        contact = next((c for c in account.contacts if needle in c.name.lower()), None)
        if contact is not None and contact.primary_email:
            email, account_name = contact.primary_email, account.name
            break

    if email is None and params["account_name"]:
        account = find_account(accounts, params["account_name"])
        if account is not None and account.contacts:
            contact = next(
                (c for c in account.contacts if needle in c.name.lower()), account.contacts[0]
            )
            email, account_name = contact.primary_email, account.name

    draft_created = False
    if email:
        draft_created = await ctx.create_draft(email, params["subject"], params["body"])

    to = email or params["contact_name"]
    address_text = f" ({email})" if email else ""
    return ok(
        f"Draft prepared for {params['contact_name']}{address_text}",
        to=to,
        subject=params["subject"],
        body=params["body"],
        accountName=account_name,
        draftCreated=draft_created,
        navigation=ctx.navigation(
            "/inbox", composeTo=to, subject=params["subject"], body=params["body"]
        ),
    )


@action(
    "summarize_emails",
    "List recent, unread or to-answer inbox messages",
    filter=Param("str", choices=SUMMARY_FILTERS, default="recent"),
    max_results=Param("int", default=10),
)
async def summarize_emails(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    query = None if params["filter"] == "recent" else "is:unread"
    messages = await ctx.data.list_messages(params["max_results"], query)
    return ok(
        f"{len(messages)} {params['filter'].replace('_', ' ')} email(s)",
        count=len(messages),
        filter=params["filter"],
        emails=[_message_row(m) for m in messages],
        navigation=ctx.navigation("/inbox"),
    )


@action(
    "smart_reply",
    "Prepare a reply to the latest message from a sender or on a subject",
    from_name=Param("str"),
    subject=Param("str"),
    tone=Param("str", choices=tuple(REPLY_TONES), default="formal"),
    instructions=Param("str"),
)
async def smart_reply(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    if params["from_name"]:
        query = f"from:{params['from_name']}"
    elif params["subject"]:
        query = f"subject:{params['subject']}"
    else:
        raise ValidationError("Either from_name or subject is required")

    messages = await ctx.data.list_messages(REPLY_SEARCH_LIMIT, query)
    if not messages:
        raise NotFoundError("No matching email found")

    original = messages[0]
    reply_subject = original.subject if original.subject.startswith("Re:") else f"Re: {original.subject}"
    greeting, closing = REPLY_TONES[params["tone"]]
    recipient = original.from_name or original.from_address
    body = render_template(
        "reply",
        greeting=greeting,
        recipient=recipient,
        instructions=params["instructions"],
        closing=closing,
    )

    to = _reply_address(original)
    draft_created = await ctx.create_draft(to, reply_subject, body)
    return ok(
        f"Reply suggested for '{original.subject[:40]}'",
        to=to,
        subject=reply_subject,
        body=body,
        tone=params["tone"],
        originalFrom=original.sender,
        originalSnippet=original.snippet,
        draftCreated=draft_created,
        navigation=ctx.navigation("/inbox", composeTo=to, subject=reply_subject, body=body),
    )


@action(
    "extract_email_actions",
    "Find requested actions in unread mail, optionally as tasks",
    max_emails=Param("int", default=10),
    create_tasks=Param("bool", default=False),
)
async def extract_email_actions(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    messages = await ctx.data.list_messages(params["max_emails"], "is:unread")
    extracted = [a for a in (extract_email_action(m) for m in messages) if a is not None]

    tasks_created = 0
    if params["create_tasks"]:
        for item in extracted:
            await ctx.data.add_task(
                Task(
                    title=item.action,
                    description=f'From an email by {item.sender}: "{item.subject}"',
                    priority=Priority.HIGH if item.urgent else Priority.MEDIUM,
                    assignees=[ctx.user],
                    assigned_by=ctx.user,
                    created_at=ctx.now,
                )
            )
            tasks_created += 1

    return ok(
        f"{len(extracted)} action(s) found in {len(messages)} email(s)",
        actions=[item.to_dict() for item in extracted],
        emailsScanned=len(messages),
        tasksCreated=tasks_created,
    )


@action(
    "bulk_follow_up",
    "Prepare follow-up messages for a filtered set of clients",
    stage=Param("str", choices=tuple(s.value for s in PipelineStage)),
    importance=Param("str", choices=tuple(i.value for i in Importance)),
    min_days_since_contact=Param("int"),
    message_template=Param("str"),
    create_drafts=Param("bool", default=False),
)
async def bulk_follow_up(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    _check_template(params["message_template"])
    accounts = await ctx.data.list_accounts()
    selected = [a for a in accounts if a.kind != AccountKind.PARTNER]
    if params["stage"]:
        selected = [a for a in selected if a.stage.value == params["stage"]]
    if params["importance"]:
        selected = [a for a in selected if a.importance.value == params["importance"]]
    if params["min_days_since_contact"] is not None:
        selected = [
            a for a in selected if days_since_contact(a, ctx.now) >= params["min_days_since_contact"]
        ]

    drafts = []
    for account in selected:
        contact = account.main_contact
        context = {
            "name": account.name,
            "contact": contact.name if contact else FALLBACK_CONTACT_NAME,
        }
        if params["message_template"]:
            body = render_custom(params["message_template"], **context)
        else:
            body = render_template("follow_up", **context)
        subject = template_subject("follow_up", name=account.name)
        to = contact.primary_email if contact else None

        draft_created = False
        if params["create_drafts"] and to:
            draft_created = await ctx.create_draft(to, subject, body)

        drafts.append(
            {
                "account": account.name,
                "accountId": account.id,
                "to": to,
                "contactName": context["contact"],
                "subject": subject,
                "body": body,
                "stage": account.stage.value,
                "draftCreated": draft_created,
            }
        )

    return ok(
        f"{len(drafts)} follow-up(s) prepared across {len(accounts)} account(s)",
        drafts=drafts,
        filters={
            "stage": params["stage"],
            "importance": params["importance"],
            "minDays": params["min_days_since_contact"],
        },
    )
