"""Data models and enumerations for crm-pilot.

All enums stored as TEXT in SQLite.
Dataclasses are mutable so records can be patched in place before saving.

This module defines:
    - Enumerations for all categorical fields
    - Dataclasses for CRM records (accounts and everything they own)
    - Read-only provider records (calendar events, email messages)
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

# =============================================================================
# ENUMERATIONS
# =============================================================================


class AccountKind(str, Enum):
    """What the account is to us."""

    CLIENT = "client"
    PARTNER = "partner"


class PipelineStage(str, Enum):
    """Where an account sits in the sales pipeline.

    Stages are ordered; ``rank`` gives the position.

    Values:
        ENTRY_POINT: First touch, nothing qualified yet
        EXCHANGE: Discussions under way
        PROPOSAL: Proposal sent, waiting on feedback
        VALIDATION: Final decision pending
        CLIENT_SUCCESS: Signed, in delivery
    """

    ENTRY_POINT = "entry_point"
    EXCHANGE = "exchange"
    PROPOSAL = "proposal"
    VALIDATION = "validation"
    CLIENT_SUCCESS = "client_success"

    @property
    def rank(self) -> int:
        return list(PipelineStage).index(self)


# Stages where an account is still being worked (not yet won)
ACTIVE_STAGES = (
    PipelineStage.ENTRY_POINT,
    PipelineStage.EXCHANGE,
    PipelineStage.PROPOSAL,
    PipelineStage.VALIDATION,
)

# Stages where a deal is in motion and silence is a risk
DEAL_STAGES = (
    PipelineStage.EXCHANGE,
    PipelineStage.PROPOSAL,
    PipelineStage.VALIDATION,
)


class Importance(str, Enum):
    """Account importance."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Priority(str, Enum):
    """Task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskStatus(str, Enum):
    """Task lifecycle."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ActivityType(str, Enum):
    """Kinds of logged account activity."""

    NOTE = "note"
    CALL = "call"
    EMAIL = "email"
    MEETING = "meeting"


class MentionSource(str, Enum):
    """Where a mention was written."""

    TASK = "task"
    PROJECT = "project"
    COMPANY = "company"


# =============================================================================
# CRM RECORDS
# =============================================================================


@dataclass
class Contact:
    """Person attached to an account.

    Attributes:
        id: Primary key
        account_id: Owning account
        name: Full name
        emails: Ordered addresses, first one is primary
        role: Job title or role in the deal
        phone: Optional phone number
        is_main_contact: Flag for the main contact (not enforced unique)
    """

    id: Optional[int] = None
    account_id: int = 0
    name: str = ""
    emails: list[str] = field(default_factory=list)
    role: str = ""
    phone: Optional[str] = None
    is_main_contact: bool = False

    @property
    def primary_email(self) -> Optional[str]:
        """Return the first email address, if any."""
        return self.emails[0] if self.emails else None


@dataclass
class Activity:
    """Logged interaction on an account.

    Attributes:
        id: Primary key
        account_id: Owning account
        type: note/call/email/meeting
        title: Short title
        description: Free text
        created_at: When it happened
        author: Who logged it
    """

    id: Optional[int] = None
    account_id: int = 0
    type: ActivityType = ActivityType.NOTE
    title: str = ""
    description: str = ""
    created_at: Optional[datetime] = None
    author: str = ""


@dataclass
class ChecklistItem:
    """Deal checklist entry."""

    id: Optional[int] = None
    account_id: int = 0
    label: str = ""
    completed: bool = False
    note: str = ""


@dataclass
class Document:
    """Document linked to an account."""

    id: Optional[int] = None
    account_id: int = 0
    name: str = ""
    type: str = "link"
    url: str = ""
    added_by: str = ""
    created_at: Optional[datetime] = None


@dataclass
class Account:
    """Company record with everything it owns.

    Attributes:
        id: Primary key
        name: Company name
        kind: client or partner
        stage: Pipeline stage
        importance: low/medium/high
        last_contact_at: Last time anyone talked to them
        website: Company website
        general_comment: Free-text notes
        created_at: Record creation time
        contacts: Ordered contacts
        activities: Activity log, newest first
        checklist: Deal checklist
        documents: Linked documents
    """

    id: Optional[int] = None
    name: str = ""
    kind: AccountKind = AccountKind.CLIENT
    stage: PipelineStage = PipelineStage.ENTRY_POINT
    importance: Importance = Importance.MEDIUM
    last_contact_at: Optional[datetime] = None
    website: str = ""
    general_comment: str = ""
    created_at: Optional[datetime] = None
    contacts: list[Contact] = field(default_factory=list)
    activities: list[Activity] = field(default_factory=list)
    checklist: list[ChecklistItem] = field(default_factory=list)
    documents: list[Document] = field(default_factory=list)

    @property
    def main_contact(self) -> Optional[Contact]:
        """Flagged main contact, else the first contact."""
        for contact in self.contacts:
            if contact.is_main_contact:
                return contact
        return self.contacts[0] if self.contacts else None


@dataclass
class Task:
    """Unit of work, optionally linked to an account.

    The account link is weak: account_name is cached at creation and the
    task survives deletion of the account.

    Attributes:
        id: Primary key
        title: Short title
        description: Free text
        due_at: Optional due datetime
        priority: low/medium/high
        status: pending/in_progress/completed
        assignees: User names
        assigned_by: Creator
        account_id: Optional linked account
        account_name: Cached account name
        created_at: Record creation time
    """

    id: Optional[int] = None
    title: str = ""
    description: str = ""
    due_at: Optional[datetime] = None
    priority: Priority = Priority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    assignees: list[str] = field(default_factory=list)
    assigned_by: str = ""
    account_id: Optional[int] = None
    account_name: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status != TaskStatus.COMPLETED


@dataclass
class Mention:
    """Someone @-mentioned a user somewhere."""

    id: Optional[int] = None
    author: str = ""
    content: str = ""
    source: MentionSource = MentionSource.TASK
    parent_title: Optional[str] = None
    created_at: Optional[datetime] = None
    target_user: str = ""
    resolved: bool = False


@dataclass
class Notification:
    """In-app notification."""

    id: Optional[int] = None
    user: str = ""
    title: str = ""
    read: bool = False
    created_at: Optional[datetime] = None


# =============================================================================
# PROVIDER RECORDS (read-only)
# =============================================================================


@dataclass
class CalendarEvent:
    """Calendar event as returned by the provider.

    Times are naive local datetimes.
    """

    id: str = ""
    subject: str = ""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    attendees: list[str] = field(default_factory=list)
    location: Optional[str] = None
    online_meeting_url: Optional[str] = None
    body: str = ""


@dataclass
class EmailMessage:
    """Mail message as returned by the provider."""

    id: str = ""
    from_address: str = ""
    from_name: str = ""
    to: list[str] = field(default_factory=list)
    subject: str = ""
    body: str = ""
    snippet: str = ""
    received_at: Optional[datetime] = None
    is_read: bool = False
    conversation_id: Optional[str] = None

    @property
    def sender(self) -> str:
        """Display name, falling back to the address."""
        return self.from_name or self.from_address
