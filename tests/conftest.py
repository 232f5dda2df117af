"""Shared pytest fixtures for crm-pilot tests.

Fixtures:
    - now: Fixed reference time (Wednesday 2026-03-04 10:00)
    - test_config: Test configuration with temp paths
    - memory_db: Fresh in-memory SQLite database
    - populated_db: In-memory database with the sample book of business
    - stub_provider: Recording calendar/mail provider
    - data_access: DataAccess over populated_db and stub_provider
    - dispatcher: ActionDispatcher over data_access
    - offline_dispatcher: ActionDispatcher with the offline provider
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Generator, Optional

import pytest

from crmpilot.actions.dispatcher import ActionDispatcher
from crmpilot.core.config import Config, reset_config
from crmpilot.core.services import reset_service_registry
from crmpilot.db.database import Database
from crmpilot.db.models import (
    Account,
    AccountKind,
    Activity,
    ActivityType,
    CalendarEvent,
    ChecklistItem,
    Contact,
    EmailMessage,
    Importance,
    Mention,
    Notification,
    PipelineStage,
    Priority,
    Task,
    TaskStatus,
)
from crmpilot.engine.data_access import DataAccess
from crmpilot.integrations.offline import OfflineOutlookClient

NOW = datetime(2026, 3, 4, 10, 0)

# Account ids in populated_db (assigned in creation order)
ACME = 1
ACME_LABS = 2
GLOBEX = 3
INITECH = 4
UMBRELLA = 5
HOOLI = 6


class StubProvider:
    """In-memory calendar and mail provider that records writes."""

    def __init__(
        self,
        events: Optional[list[CalendarEvent]] = None,
        messages: Optional[list[EmailMessage]] = None,
    ) -> None:
        self.events = list(events or [])
        self.messages = list(messages or [])
        self.queries: list[Optional[str]] = []
        self.created_events: list[CalendarEvent] = []
        self.sent: list[tuple[str, str, str]] = []
        self.drafts: list[tuple[str, str, str]] = []

    def get_events(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        return [e for e in self.events if e.start < end and e.end > start]

    def list_messages(self, max_results: int = 10, query: Optional[str] = None) -> list[EmailMessage]:
        self.queries.append(query)
        return self.messages[:max_results]

    def create_event(
        self,
        subject: str,
        start: datetime,
        duration_minutes: int = 30,
        attendees: Optional[list[str]] = None,
        body: Optional[str] = None,
        location: Optional[str] = None,
    ) -> CalendarEvent:
        event = CalendarEvent(
            id=f"evt-{len(self.created_events) + 1}",
            subject=subject,
            start=start,
            end=start + timedelta(minutes=duration_minutes),
            attendees=list(attendees or []),
            location=location,
            body=body or "",
        )
        self.created_events.append(event)
        return event

    def send_email(self, to: str, subject: str, body: str) -> str:
        self.sent.append((to, subject, body))
        return f"sent-{len(self.sent)}"

    def create_draft(self, to: str, subject: str, body: str) -> str:
        self.drafts.append((to, subject, body))
        return f"draft-{len(self.drafts)}"


def _days_ago(days: int) -> datetime:
    return NOW - timedelta(days=days)


@pytest.fixture(autouse=True)
def _reset_singletons() -> Generator[None, None, None]:
    """Keep cached config and service registry from leaking between tests."""
    reset_config()
    reset_service_registry()
    yield
    reset_config()
    reset_service_registry()


@pytest.fixture
def now() -> datetime:
    """Fixed reference time, a Wednesday morning."""
    return NOW


@pytest.fixture
def test_config(tmp_path: Path) -> Config:
    """Test configuration with temp paths and no Outlook credentials."""
    return Config(
        db_path=tmp_path / "test.db",
        log_path=tmp_path / "logs",
    )


@pytest.fixture
def memory_db() -> Generator[Database, None, None]:
    """Create an in-memory database for fast tests.

    Yields:
        Database using :memory:, no cleanup needed
    """
    db = Database(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def populated_db(memory_db: Database) -> Database:
    """Database pre-populated with sample data.

    Contains:
        - Acme Corp (1): client, proposal, silent 20 days, 1 contact,
          6 activities (2 recent), checklist 2/2
        - Acme Labs (2): client, exchange, contacted 3 days ago, 2 contacts
        - Globex (3): client, validation, high, contacted 2 days ago, 3 contacts
        - Initech (4): client, entry_point, never contacted, created 30 days ago
        - Umbrella Partners (5): partner, exchange, silent 40 days
        - Hooli (6): client, client_success, contacted yesterday
        - Tasks for "me": overdue high (Acme), due this afternoon (Globex),
          due in 3 days (unlinked), one completed; one overdue task for alice
        - One pending and one resolved mention for "me"
        - Two unread notifications and one read notification for "me"
    """
    db = memory_db
    db.create_account(
        Account(
            name="Acme Corp",
            stage=PipelineStage.PROPOSAL,
            importance=Importance.MEDIUM,
            last_contact_at=_days_ago(20),
            website="https://acme.example",
            created_at=_days_ago(90),
            contacts=[
                Contact(name="Jane Doe", emails=["jane@acme.example"], role="CTO", is_main_contact=True),
            ],
            activities=[
                Activity(type=ActivityType.CALL, title="Pricing call", created_at=_days_ago(2), author="me"),
                Activity(type=ActivityType.EMAIL, title="Sent deck", created_at=_days_ago(5), author="alice"),
                Activity(type=ActivityType.MEETING, title="Kickoff", created_at=_days_ago(30), author="me"),
                Activity(type=ActivityType.NOTE, title="Budget approved", created_at=_days_ago(40), author="me"),
                Activity(type=ActivityType.CALL, title="Intro call", created_at=_days_ago(50), author="me"),
                Activity(type=ActivityType.NOTE, title="First contact", created_at=_days_ago(60), author="me"),
            ],
            checklist=[
                ChecklistItem(label="Budget confirmed", completed=True),
                ChecklistItem(label="Decision maker identified", completed=True),
            ],
        )
    )
    db.create_account(
        Account(
            name="Acme Labs",
            stage=PipelineStage.EXCHANGE,
            importance=Importance.LOW,
            last_contact_at=_days_ago(3),
            created_at=_days_ago(45),
            contacts=[
                Contact(name="Bob Martin", emails=["bob@acmelabs.example"], role="Head of IT"),
                Contact(name="Carol White", role="Buyer"),
            ],
        )
    )
    db.create_account(
        Account(
            name="Globex",
            stage=PipelineStage.VALIDATION,
            importance=Importance.HIGH,
            last_contact_at=_days_ago(2),
            website="https://globex.example",
            created_at=_days_ago(120),
            contacts=[
                Contact(name="Hank Scorpio", emails=["hank@globex.example"], role="CEO", is_main_contact=True),
                Contact(name="Frank Grimes", emails=["frank@globex.example"], role="Engineer"),
                Contact(name="Lisa Ray", emails=["lisa@globex.example"], role="Procurement"),
            ],
            activities=[
                Activity(type=ActivityType.MEETING, title="Contract review", created_at=_days_ago(2), author="me"),
            ],
        )
    )
    db.create_account(
        Account(
            name="Initech",
            stage=PipelineStage.ENTRY_POINT,
            created_at=_days_ago(30),
        )
    )
    db.create_account(
        Account(
            name="Umbrella Partners",
            kind=AccountKind.PARTNER,
            stage=PipelineStage.EXCHANGE,
            last_contact_at=_days_ago(40),
            created_at=_days_ago(200),
        )
    )
    db.create_account(
        Account(
            name="Hooli",
            stage=PipelineStage.CLIENT_SUCCESS,
            last_contact_at=_days_ago(1),
            created_at=_days_ago(300),
            contacts=[Contact(name="Gavin Belson", emails=["gavin@hooli.example"], role="CEO")],
        )
    )

    db.create_task(
        Task(
            title="Send revised quote",
            priority=Priority.HIGH,
            due_at=_days_ago(2),
            assignees=["me"],
            account_id=ACME,
            account_name="Acme Corp",
            created_at=_days_ago(10),
        )
    )
    db.create_task(
        Task(
            title="Prepare demo",
            priority=Priority.MEDIUM,
            due_at=NOW.replace(hour=17),
            assignees=["me"],
            account_id=GLOBEX,
            account_name="Globex",
            created_at=_days_ago(5),
        )
    )
    db.create_task(
        Task(
            title="Call Initech",
            priority=Priority.LOW,
            due_at=NOW + timedelta(days=3),
            assignees=["me"],
            created_at=_days_ago(1),
        )
    )
    db.create_task(
        Task(
            title="Archive old notes",
            status=TaskStatus.COMPLETED,
            assignees=["me"],
            account_id=ACME,
            account_name="Acme Corp",
            created_at=_days_ago(20),
        )
    )
    db.create_task(
        Task(
            title="Alice follow-up",
            priority=Priority.MEDIUM,
            due_at=_days_ago(1),
            assignees=["alice"],
            created_at=_days_ago(3),
        )
    )

    db.create_mention(
        Mention(
            author="alice",
            content="@me can you check the Globex contract?",
            parent_title="Globex renewal",
            created_at=_days_ago(1),
            target_user="me",
        )
    )
    db.create_mention(
        Mention(author="bob", content="@me thanks", created_at=_days_ago(4), target_user="me", resolved=True)
    )

    db.create_notification(Notification(user="me", title="New mention", created_at=_days_ago(1)))
    db.create_notification(Notification(user="me", title="Task assigned", created_at=_days_ago(2)))
    db.create_notification(Notification(user="me", title="Old news", read=True, created_at=_days_ago(9)))
    return db


@pytest.fixture
def stub_provider() -> StubProvider:
    """Connected provider with an empty calendar and inbox."""
    return StubProvider()


@pytest.fixture
def data_access(populated_db: Database, stub_provider: StubProvider) -> DataAccess:
    return DataAccess(populated_db, stub_provider)


@pytest.fixture
def dispatcher(data_access: DataAccess, test_config: Config) -> ActionDispatcher:
    """Dispatcher over the sample data and the stub provider."""
    return ActionDispatcher(data_access, config=test_config)


@pytest.fixture
def offline_dispatcher(populated_db: Database, test_config: Config) -> ActionDispatcher:
    """Dispatcher whose provider is not connected."""
    return ActionDispatcher(DataAccess(populated_db, OfflineOutlookClient()), config=test_config)


# Markers for different test types
def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "database: marks tests requiring database")
