"""Database package - SQLite store and models.

Modules:
    - database: SQLite connection and operations
    - models: Data models and enumerations
"""

from crmpilot.db.models import (
    ACTIVE_STAGES,
    DEAL_STAGES,
    Account,
    AccountKind,
    Activity,
    ActivityType,
    CalendarEvent,
    ChecklistItem,
    Contact,
    Document,
    EmailMessage,
    Importance,
    Mention,
    MentionSource,
    Notification,
    PipelineStage,
    Priority,
    Task,
    TaskStatus,
)

__all__ = [
    # Enums
    "AccountKind",
    "PipelineStage",
    "Importance",
    "Priority",
    "TaskStatus",
    "ActivityType",
    "MentionSource",
    "ACTIVE_STAGES",
    "DEAL_STAGES",
    # Dataclasses
    "Account",
    "Contact",
    "Activity",
    "ChecklistItem",
    "Document",
    "Task",
    "Mention",
    "Notification",
    "CalendarEvent",
    "EmailMessage",
]
