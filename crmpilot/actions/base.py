"""Per-call context and helpers shared by the handler modules."""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Iterable, Optional

from crmpilot.core.config import Config
from crmpilot.core.exceptions import NotFoundError, ProviderUnavailable, ValidationError
from crmpilot.core.logging import get_logger
from crmpilot.db.models import Account, Contact
from crmpilot.engine.data_access import DataAccess

logger = get_logger(__name__)

# Navigation callback: (path, hints) -> None
Navigator = Callable[[str, dict[str, Any]], None]

FALLBACK_CONTACT_NAME = "Sir or Madam"

PAGE_PATHS: dict[str, str] = {
    "dashboard": "/",
    "inbox": "/inbox",
    "kanban": "/kanban",
    "directory": "/directory",
    "people": "/people",
    "calendar": "/calendar",
    "settings": "/settings",
}


@dataclass
class ActionContext:
    """Everything a handler may touch, passed explicitly per call.

    Attributes:
        data: Async data-access facade
        user: Current user name
        now: Reference time for the whole call
        config: Application configuration
        navigate: Optional UI navigation callback
    """

    data: DataAccess
    user: str
    now: datetime
    config: Config
    navigate: Optional[Navigator] = None

    @property
    def today(self) -> date:
        return self.now.date()

    @property
    def today_start(self) -> datetime:
        return datetime.combine(self.now.date(), time())

    def navigation(self, path: str, **hints: Any) -> dict[str, Any]:
        """Request a page change and describe it for the payload."""
        if self.navigate is not None:
            self.navigate(path, hints)
        return {"path": path, **hints}

    async def create_draft(self, to: str, subject: str, body: str) -> bool:
        """Create a draft, reporting False instead of failing when mail is not connected."""
        try:
            await self.data.create_draft(to, subject, body)
            return True
        except ProviderUnavailable as e:
            logger.info(
                f"Draft not created: {e}",
                extra={"context": {"to": to, "subject": subject}},
            )
            return False


def company_path(account_id: Optional[int]) -> str:
    return f"/company/{account_id}"


def find_account(accounts: Iterable[Account], name: str) -> Optional[Account]:
    """First account whose name contains ``name`` (case-insensitive).

    Overlapping names are not disambiguated: "Acme" matches "Acme Labs"
    if that account comes first.
    """
    needle = name.strip().lower()
    if not needle:
        return None
    for account in accounts:
        if needle in account.name.lower():
            return account
    return None


def filter_accounts(accounts: Iterable[Account], name: str) -> list[Account]:
    """Every account whose name contains ``name`` (case-insensitive)."""
    needle = name.strip().lower()
    return [a for a in accounts if needle in a.name.lower()]


async def resolve_account(ctx: ActionContext, name: str) -> Account:
    """Resolve a free-text account reference.

    Raises:
        NotFoundError: If nothing matches
    """
    account = find_account(await ctx.data.list_accounts(), name)
    if account is None:
        raise NotFoundError(f"No account matches '{name}'")
    return account


async def get_account(ctx: ActionContext, account_id: int) -> Account:
    """Load an account by id.

    Raises:
        NotFoundError: If the id is unknown
    """
    account = await ctx.data.get_account_by_id(account_id)
    if account is None:
        raise NotFoundError(f"Account {account_id} not found")
    return account


async def account_from_params(ctx: ActionContext, params: dict[str, Any]) -> Account:
    """Account named by ``account_id`` or, failing that, ``account_name``.

    Raises:
        ValidationError: If neither is given
        NotFoundError: If the reference resolves to nothing
    """
    if params.get("account_id") is not None:
        return await get_account(ctx, params["account_id"])
    if params.get("account_name"):
        return await resolve_account(ctx, params["account_name"])
    raise ValidationError("Either account_id or account_name is required")


def contact_summary(contact: Contact) -> dict[str, Any]:
    return {"name": contact.name, "role": contact.role, "email": contact.primary_email}


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time(23, 59))


def parse_due(value: Optional[str], now: datetime) -> Optional[datetime]:
    """Due date from ``YYYY-MM-DD``, a full ISO datetime or ``+Nd``.

    ``+Nd`` is N days from now. Date-only values are due at the end of
    that day.

    Raises:
        ValidationError: If the value matches none of the forms
    """
    if not value:
        return None
    value = value.strip()
    if value.startswith("+") and value.endswith("d"):
        try:
            days = int(value[1:-1])
        except ValueError:
            raise ValidationError(f"Invalid due date: {value}")
        return now + timedelta(days=days)
    try:
        if len(value) == 10:
            return end_of_day(date.fromisoformat(value))
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid due date: {value}")


def iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None
