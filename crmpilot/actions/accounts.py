"""Account operations: lookup, record CRUD and activity logging.

Mostly direct passthroughs to the data-access facade. The two composite
operations here (auto_log_activity, post_meeting_debrief) apply the
automatic pipeline rules:
    - proposal_sent moves an account from exchange to proposal
    - contract_signed moves an account from any stage to client_success
"""

from datetime import datetime
from typing import Any

from crmpilot.actions.base import (
    PAGE_PATHS,
    ActionContext,
    account_from_params,
    company_path,
    contact_summary,
    end_of_day,
    get_account,
    iso,
)
from crmpilot.actions.registry import Param, action
from crmpilot.actions.result import ActionResult, ok
from crmpilot.core.exceptions import ValidationError
from crmpilot.core.logging import get_logger
from crmpilot.db.database import ACCOUNT_UPDATABLE_FIELDS
from crmpilot.db.models import (
    Account,
    AccountKind,
    Activity,
    ActivityType,
    Contact,
    Document,
    Importance,
    PipelineStage,
    Priority,
    Task,
)
from crmpilot.engine.extraction import extract_debrief_actions, resolve_follow_up_date

logger = get_logger(__name__)

STAGES = tuple(s.value for s in PipelineStage)
KINDS = tuple(k.value for k in AccountKind)
LEVELS = tuple(i.value for i in Importance)
ACTIVITY_TYPES = tuple(t.value for t in ActivityType)

SEARCH_LIMIT = 10
NOTES_PREVIEW = 150

_LOGGED_ACTIVITY_TYPES: dict[str, tuple[ActivityType, str]] = {
    "call": (ActivityType.CALL, "Call"),
    "email": (ActivityType.EMAIL, "Email"),
    "meeting": (ActivityType.MEETING, "Meeting"),
    "note": (ActivityType.NOTE, "Note"),
    "proposal_sent": (ActivityType.NOTE, "Proposal sent"),
    "contract_signed": (ActivityType.NOTE, "Contract signed"),
}

_ENUM_FIELDS = {"kind": AccountKind, "stage": PipelineStage, "importance": Importance}


def _account_row(account: Account) -> dict[str, Any]:
    return {
        "id": account.id,
        "name": account.name,
        "stage": account.stage.value,
        "kind": account.kind.value,
    }


def _clean_updates(updates: dict[str, Any]) -> dict[str, Any]:
    """Validate an update_account patch and convert it to model values."""
    unknown = sorted(set(updates) - set(ACCOUNT_UPDATABLE_FIELDS))
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")

    fields: dict[str, Any] = {}
    for name, value in updates.items():
        if name in _ENUM_FIELDS:
            try:
                fields[name] = _ENUM_FIELDS[name](str(value).lower())
            except ValueError:
                raise ValidationError(f"Invalid {name}: {value}")
        elif name == "last_contact_at":
            try:
                fields[name] = datetime.fromisoformat(value) if value else None
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid last_contact_at: {value}")
        else:
            fields[name] = str(value)
    return fields


# =============================================================================
# LOOKUP AND NAVIGATION
# =============================================================================


@action(
    "navigate_to_page",
    "Open a page of the application",
    page=Param("str", required=True, choices=(*PAGE_PATHS, "company")),
    account_id=Param("int"),
)
async def navigate_to_page(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    if params["page"] == "company":
        if params["account_id"] is None:
            raise ValidationError("account_id is required to open a company page")
        path = company_path(params["account_id"])
    else:
        path = PAGE_PATHS[params["page"]]
    return ok(f"Opening {params['page']}", navigation=ctx.navigation(path))


@action(
    "search_accounts",
    "Search accounts by name, stage, kind and importance",
    query=Param("str"),
    stage=Param("str", choices=STAGES),
    kind=Param("str", choices=KINDS),
    importance=Param("str", choices=LEVELS),
)
async def search_accounts(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    accounts = await ctx.data.list_accounts()
    if params["query"]:
        needle = params["query"].lower()
        accounts = [a for a in accounts if needle in a.name.lower()]
    if params["stage"]:
        accounts = [a for a in accounts if a.stage.value == params["stage"]]
    if params["kind"]:
        accounts = [a for a in accounts if a.kind.value == params["kind"]]
    if params["importance"]:
        accounts = [a for a in accounts if a.importance.value == params["importance"]]

    suffix = f" for '{params['query']}'" if params["query"] else ""
    return ok(
        f"{len(accounts)} account(s) found{suffix}",
        total=len(accounts),
        accounts=[_account_row(a) for a in accounts[:SEARCH_LIMIT]],
    )


@action(
    "get_account_details",
    "Show an account with its contacts",
    account_id=Param("int"),
    account_name=Param("str"),
)
async def get_account_details(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    account = await account_from_params(ctx, params)
    return ok(
        f"Details of {account.name}",
        account={
            "id": account.id,
            "name": account.name,
            "kind": account.kind.value,
            "stage": account.stage.value,
            "importance": account.importance.value,
            "website": account.website,
            "contacts": [contact_summary(c) for c in account.contacts],
            "lastContact": iso(account.last_contact_at),
            "activitiesCount": len(account.activities),
        },
    )


# =============================================================================
# RECORD CRUD
# =============================================================================


@action(
    "create_account",
    "Create an account",
    name=Param("str", required=True),
    kind=Param("str", choices=KINDS, default="client"),
    importance=Param("str", choices=LEVELS, default="medium"),
    stage=Param("str", choices=STAGES, default="entry_point"),
    website=Param("str", default=""),
)
async def create_account(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    account = await ctx.data.create_account(
        Account(
            name=params["name"],
            kind=AccountKind(params["kind"]),
            importance=Importance(params["importance"]),
            stage=PipelineStage(params["stage"]),
            website=params["website"],
            created_at=ctx.now,
        )
    )
    return ok(
        f"Account '{account.name}' created",
        account=_account_row(account),
        created=True,
        navigation=ctx.navigation(company_path(account.id)),
    )


@action(
    "update_account",
    "Update account fields",
    account_id=Param("int", required=True),
    updates=Param("dict", required=True),
)
async def update_account(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    account = await get_account(ctx, params["account_id"])
    fields = _clean_updates(params["updates"])
    await ctx.data.update_account(account.id, fields)
    return ok(
        f"{account.name} updated",
        accountId=account.id,
        updated=sorted(fields),
    )


@action(
    "add_contact",
    "Add a contact to an account",
    account_id=Param("int", required=True),
    name=Param("str", required=True),
    email=Param("str"),
    role=Param("str", default=""),
    phone=Param("str"),
    is_main_contact=Param("bool", default=False),
)
async def add_contact(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    account = await get_account(ctx, params["account_id"])
    contact = await ctx.data.add_contact(
        Contact(
            account_id=account.id,
            name=params["name"],
            emails=[params["email"]] if params["email"] else [],
            role=params["role"],
            phone=params["phone"],
            is_main_contact=params["is_main_contact"],
        )
    )
    return ok(
        f"Contact '{contact.name}' added to {account.name}",
        contact={"id": contact.id, **contact_summary(contact)},
        created=True,
    )


@action(
    "log_activity",
    "Log a note, call, email or meeting on an account",
    account_id=Param("int", required=True),
    type=Param("str", required=True, choices=ACTIVITY_TYPES),
    title=Param("str", required=True),
    description=Param("str", default=""),
)
async def log_activity(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    account = await get_account(ctx, params["account_id"])
    activity = await ctx.data.add_activity(
        Activity(
            account_id=account.id,
            type=ActivityType(params["type"]),
            title=params["title"],
            description=params["description"],
            created_at=ctx.now,
            author=ctx.user,
        )
    )
    return ok(
        f"{activity.type.value.capitalize()} logged on {account.name}",
        activity={"id": activity.id, "type": activity.type.value, "title": activity.title},
        created=True,
    )


@action(
    "add_document",
    "Attach a document link to an account",
    account_id=Param("int", required=True),
    name=Param("str", required=True),
    url=Param("str", required=True),
    doc_type=Param("str", default="link"),
)
async def add_document(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    account = await get_account(ctx, params["account_id"])
    document = await ctx.data.add_document(
        Document(
            account_id=account.id,
            name=params["name"],
            type=params["doc_type"],
            url=params["url"],
            added_by=ctx.user,
            created_at=ctx.now,
        )
    )
    return ok(
        f"Document '{document.name}' added to {account.name}",
        document={"id": document.id, "name": document.name, "url": document.url},
        created=True,
    )


@action(
    "update_pipeline_stage",
    "Move an account to another pipeline stage",
    account_id=Param("int", required=True),
    stage=Param("str", required=True, choices=STAGES),
)
async def update_pipeline_stage(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    account = await get_account(ctx, params["account_id"])
    new_stage = PipelineStage(params["stage"])
    await ctx.data.update_account(account.id, {"stage": new_stage})
    return ok(
        f"{account.name} moved to {new_stage.value}",
        accountId=account.id,
        previousStage=account.stage.value,
        newStage=new_stage.value,
        navigation=ctx.navigation(PAGE_PATHS["kanban"]),
    )


# =============================================================================
# COMPOSITE LOGGING
# =============================================================================


@action(
    "auto_log_activity",
    "Log an interaction and apply automatic pipeline moves",
    account_param="account_name",
    account_name=Param("str", required=True),
    activity_type=Param("str", required=True, choices=tuple(_LOGGED_ACTIVITY_TYPES)),
    description=Param("str", default=""),
    update_last_contact=Param("bool", default=True),
)
async def auto_log_activity(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    account: Account = params["account"]
    kind = params["activity_type"]
    activity_type, label = _LOGGED_ACTIVITY_TYPES[kind]

    await ctx.data.add_activity(
        Activity(
            account_id=account.id,
            type=activity_type,
            title=f"{label} - {account.name}",
            description=params["description"],
            created_at=ctx.now,
            author=ctx.user,
        )
    )

    fields: dict[str, Any] = {}
    if params["update_last_contact"]:
        fields["last_contact_at"] = ctx.now

    new_stage = None
    if kind == "proposal_sent" and account.stage == PipelineStage.EXCHANGE:
        new_stage = PipelineStage.PROPOSAL
    elif kind == "contract_signed" and account.stage != PipelineStage.CLIENT_SUCCESS:
        new_stage = PipelineStage.CLIENT_SUCCESS
    if new_stage is not None:
        fields["stage"] = new_stage

    if fields:
        await ctx.data.update_account(account.id, fields)

    if new_stage is not None:
        logger.info(
            "Pipeline auto-advanced",
            extra={"context": {
                "account_id": account.id,
                "from": account.stage.value,
                "to": new_stage.value,
            }},
        )

    return ok(
        f"{label} logged for {account.name}",
        account=account.name,
        activityType=kind,
        description=params["description"],
        pipelineUpdate=new_stage is not None,
        newStage=(new_stage or account.stage).value,
        lastContactUpdated=params["update_last_contact"],
        navigation=ctx.navigation(company_path(account.id)),
    )


@action(
    "post_meeting_debrief",
    "Turn meeting notes into tasks, an activity and pipeline updates",
    account_param="account_name",
    account_name=Param("str", required=True),
    notes=Param("str", required=True),
    next_stage=Param("str", choices=STAGES),
    follow_up_date=Param("str"),
)
async def post_meeting_debrief(ctx: ActionContext, params: dict[str, Any]) -> ActionResult:
    account: Account = params["account"]
    notes: str = params["notes"]

    # Parse before writing anything so a bad date leaves no partial debrief
    follow_up_day = None
    if params["follow_up_date"]:
        follow_up_day = resolve_follow_up_date(params["follow_up_date"], ctx.today)

    created_tasks: list[str] = []
    actions: list[str] = []

    for extracted in extract_debrief_actions(notes):
        await ctx.data.add_task(
            Task(
                title=f"{extracted} - {account.name}",
                description=f'From meeting debrief: "{notes[:100]}"',
                assignees=[ctx.user],
                assigned_by=ctx.user,
                account_id=account.id,
                account_name=account.name,
                created_at=ctx.now,
            )
        )
        created_tasks.append(extracted)

    await ctx.data.add_activity(
        Activity(
            account_id=account.id,
            type=ActivityType.MEETING,
            title=f"Meeting - {account.name}",
            description=notes[:200],
            created_at=ctx.now,
            author=ctx.user,
        )
    )
    actions.append("Activity logged")

    fields: dict[str, Any] = {"last_contact_at": ctx.now}
    new_stage = account.stage
    if params["next_stage"] and params["next_stage"] != account.stage.value:
        new_stage = PipelineStage(params["next_stage"])
        fields["stage"] = new_stage
        actions.append(f"Pipeline: {account.stage.value} -> {new_stage.value}")
    await ctx.data.update_account(account.id, fields)
    actions.append("Last contact updated")

    if follow_up_day is not None:
        await ctx.data.add_task(
            Task(
                title=f"Follow up after meeting - {account.name}",
                description="Post-meeting follow-up",
                due_at=end_of_day(follow_up_day),
                priority=Priority.HIGH,
                assignees=[ctx.user],
                assigned_by=ctx.user,
                account_id=account.id,
                account_name=account.name,
                created_at=ctx.now,
            )
        )
        created_tasks.append(f"Follow-up on {follow_up_day.isoformat()}")

    return ok(
        f"Debrief {account.name}: {len(created_tasks)} task(s) created",
        account=account.name,
        notesSummary=notes[:NOTES_PREVIEW],
        createdTasks=created_tasks,
        actions=actions,
        newStage=new_stage.value,
        navigation=ctx.navigation(company_path(account.id)),
    )
