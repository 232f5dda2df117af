"""Async data-access facade over the store and the calendar/mail provider.

Every read or write the engine performs goes through DataAccess, so its
coroutines are the only suspension points of an operation. Store calls
run inline on the loop thread (SQLite is local and fast); provider calls
block on HTTP and are pushed to a worker thread with asyncio.to_thread.

Provider reads never raise: an unconfigured or failing provider gives an
empty list, so composite operations still return partial data. Provider
writes propagate ProviderUnavailable / OutlookError to the caller.

Usage:
    from crmpilot.engine.data_access import DataAccess, TaskFilter

    data = DataAccess(db, provider)
    accounts, tasks = await asyncio.gather(
        data.list_accounts(),
        data.list_tasks(TaskFilter(assignee="me", include_completed=False)),
    )
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from crmpilot.core.exceptions import DatabaseError, IntegrationError, ValidationError
from crmpilot.core.logging import get_logger
from crmpilot.db.database import Database
from crmpilot.db.models import (
    Account,
    Activity,
    CalendarEvent,
    Contact,
    Document,
    EmailMessage,
    Mention,
    Task,
    TaskStatus,
)

logger = get_logger(__name__)

DateLike = Union[datetime, str]


@dataclass
class TaskFilter:
    """Criteria for list_tasks().

    Attributes:
        assignee: Only tasks assigned to this user
        account_id: Only tasks linked to this account
        status: Exact status
        include_completed: Whether completed tasks are returned when no status is given
    """

    assignee: Optional[str] = None
    account_id: Optional[int] = None
    status: Optional[TaskStatus] = None
    include_completed: bool = True


def _as_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid datetime: {value}")


class DataAccess:
    """Narrow async interface the operations consume.

    Attributes:
        db: Backing store
        provider: OutlookClient, OfflineOutlookClient or any object with
            the same methods
    """

    def __init__(self, db: Database, provider: Any) -> None:
        self.db = db
        self.provider = provider

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def list_accounts(self) -> list[Account]:
        return self.db.get_accounts()

    async def get_account_by_id(self, account_id: int) -> Optional[Account]:
        return self.db.get_account(account_id)

    async def create_account(self, account: Account) -> Account:
        """Persist a new account and return it reloaded."""
        account_id = self.db.create_account(account)
        created = self.db.get_account(account_id)
        if created is None:
            raise DatabaseError(f"Account {account_id} missing right after insert")
        return created

    async def update_account(self, account_id: int, fields: dict[str, Any]) -> bool:
        return self.db.update_account_fields(account_id, fields)

    async def add_contact(self, contact: Contact) -> Contact:
        self.db.create_contact(contact)
        return contact

    async def add_activity(self, activity: Activity) -> Activity:
        self.db.create_activity(activity)
        return activity

    async def add_document(self, document: Document) -> Document:
        self.db.create_document(document)
        return document

    async def list_activity_log(self, since: datetime) -> list[Activity]:
        return self.db.get_activities_since(since)

    # =========================================================================
    # TASKS, MENTIONS, NOTIFICATIONS
    # =========================================================================

    async def list_tasks(self, task_filter: Optional[TaskFilter] = None) -> list[Task]:
        f = task_filter or TaskFilter()
        return self.db.get_tasks(
            assignee=f.assignee,
            account_id=f.account_id,
            status=f.status,
            include_completed=f.include_completed,
        )

    async def add_task(self, task: Task) -> Task:
        self.db.create_task(task)
        return task

    async def list_mentions_for_user(self, user: str) -> list[Mention]:
        return self.db.get_mentions(user)

    async def count_unread_notifications(self, user: str) -> int:
        return self.db.count_unread_notifications(user)

    # =========================================================================
    # PROVIDER READS (degrade to empty)
    # =========================================================================

    async def list_calendar_events(self, start: DateLike, end: DateLike) -> list[CalendarEvent]:
        """Calendar events in ``[start, end)``; empty when the calendar is unavailable.

        Args:
            start: datetime or ISO string
            end: datetime or ISO string
        """
        start_dt, end_dt = _as_datetime(start), _as_datetime(end)
        try:
            return await asyncio.to_thread(self.provider.get_events, start_dt, end_dt)
        except IntegrationError as e:
            logger.warning(
                f"Calendar read degraded to empty: {e}",
                extra={"context": {"start": start_dt, "end": end_dt}},
            )
            return []

    async def list_messages(
        self, max_results: int = 10, query: Optional[str] = None
    ) -> list[EmailMessage]:
        """Inbox messages; empty when mail is unavailable."""
        try:
            return await asyncio.to_thread(self.provider.list_messages, max_results, query)
        except IntegrationError as e:
            logger.warning(
                f"Inbox read degraded to empty: {e}",
                extra={"context": {"query": query, "max_results": max_results}},
            )
            return []

    # =========================================================================
    # PROVIDER WRITES (propagate)
    # =========================================================================

    async def create_calendar_event(
        self,
        subject: str,
        start: datetime,
        duration_minutes: int = 30,
        attendees: Optional[list[str]] = None,
        body: Optional[str] = None,
        location: Optional[str] = None,
    ) -> CalendarEvent:
        return await asyncio.to_thread(
            self.provider.create_event,
            subject,
            start,
            duration_minutes=duration_minutes,
            attendees=attendees,
            body=body,
            location=location,
        )

    async def send_message(self, to: str, subject: str, body: str) -> str:
        return await asyncio.to_thread(self.provider.send_email, to, subject, body)

    async def create_draft(self, to: str, subject: str, body: str) -> str:
        return await asyncio.to_thread(self.provider.create_draft, to, subject, body)
