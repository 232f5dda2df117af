"""SQLite database connection and operations for crm-pilot.

Provides:
    - Connection management with WAL mode
    - Schema creation
    - CRUD operations for accounts and the records they own
    - Tasks, mentions and notifications

Datetimes are stored as ISO-8601 TEXT and parsed back on read.

Usage:
    from crmpilot.db.database import Database

    db = Database()
    db.initialize()

    account_id = db.create_account(Account(name="Acme Corp"))
"""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from crmpilot.core.config import get_config
from crmpilot.core.exceptions import DatabaseError
from crmpilot.core.logging import get_logger
from crmpilot.db.models import (
    Account,
    AccountKind,
    Activity,
    ActivityType,
    ChecklistItem,
    Contact,
    Document,
    Importance,
    Mention,
    MentionSource,
    Notification,
    PipelineStage,
    Priority,
    Task,
    TaskStatus,
)

logger = get_logger(__name__)

# Columns update_account may touch
ACCOUNT_UPDATABLE_FIELDS = (
    "name",
    "kind",
    "stage",
    "importance",
    "last_contact_at",
    "website",
    "general_comment",
)


def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _to_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _to_db_value(value: Any) -> Any:
    """Flatten enums and datetimes for a parameter binding."""
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return value


class Database:
    """SQLite database manager.

    Attributes:
        db_path: Path to database file
    """

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database.

        Args:
            db_path: Path to database file. Use ":memory:" for in-memory.
                    Defaults to config path.
        """
        if db_path is None:
            self.db_path = str(get_config().db_path)
        else:
            self.db_path = db_path

        self._conn: Optional[sqlite3.Connection] = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            try:
                if self.db_path != ":memory:":
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

                # The async facade runs inline on the loop thread, but a
                # caller may still hand the store to a worker thread.
                self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
                self._conn.row_factory = sqlite3.Row
                self._conn.execute("PRAGMA foreign_keys = ON")

                if self.db_path != ":memory:":
                    self._conn.execute("PRAGMA journal_mode = WAL")

            except sqlite3.Error as e:
                raise DatabaseError(f"Cannot connect to database: {e}") from e

        return self._conn

    @staticmethod
    def _lastrowid(cursor: sqlite3.Cursor) -> int:
        """Extract lastrowid from cursor (always set after INSERT in SQLite)."""
        row_id = cursor.lastrowid
        if row_id is None:
            raise DatabaseError("lastrowid was None after INSERT")
        return row_id

    def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def initialize(self) -> None:
        """Create schema if not exists."""
        conn = self._get_connection()

        try:
            conn.executescript(self._get_schema_ddl())
            conn.commit()
            logger.info("Database initialized", extra={"context": {"path": self.db_path}})
        except sqlite3.Error as e:
            raise DatabaseError(f"Cannot initialize database: {e}") from e

    def _get_schema_ddl(self) -> str:
        """Return complete schema DDL."""
        return """
        CREATE TABLE IF NOT EXISTS accounts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            kind TEXT NOT NULL DEFAULT 'client',
            stage TEXT NOT NULL DEFAULT 'entry_point',
            importance TEXT NOT NULL DEFAULT 'medium',
            last_contact_at TEXT,
            website TEXT NOT NULL DEFAULT '',
            general_comment TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS contacts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            account_id INTEGER NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            emails TEXT NOT NULL DEFAULT '[]',
            role TEXT NOT NULL DEFAULT '',
            phone TEXT,
            is_main_contact INTEGER NOT NULL DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS activities (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            account_id INTEGER NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL,
            author TEXT NOT NULL DEFAULT ''
        );

        CREATE TABLE IF NOT EXISTS checklist_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            account_id INTEGER NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            label TEXT NOT NULL,
            completed INTEGER NOT NULL DEFAULT 0,
            note TEXT NOT NULL DEFAULT ''
        );

        CREATE TABLE IF NOT EXISTS documents (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            account_id INTEGER NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            type TEXT NOT NULL DEFAULT 'link',
            url TEXT NOT NULL DEFAULT '',
            added_by TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL
        );

        -- account_id is a weak reference: no FK, tasks outlive accounts
        CREATE TABLE IF NOT EXISTS tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            due_at TEXT,
            priority TEXT NOT NULL DEFAULT 'medium',
            status TEXT NOT NULL DEFAULT 'pending',
            assignees TEXT NOT NULL DEFAULT '[]',
            assigned_by TEXT NOT NULL DEFAULT '',
            account_id INTEGER,
            account_name TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS mentions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            author TEXT NOT NULL,
            content TEXT NOT NULL,
            source TEXT NOT NULL,
            parent_title TEXT,
            created_at TEXT NOT NULL,
            target_user TEXT NOT NULL,
            resolved INTEGER NOT NULL DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS notifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user TEXT NOT NULL,
            title TEXT NOT NULL,
            read INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_contacts_account ON contacts(account_id);
        CREATE INDEX IF NOT EXISTS idx_activities_account ON activities(account_id);
        CREATE INDEX IF NOT EXISTS idx_activities_created ON activities(created_at);
        CREATE INDEX IF NOT EXISTS idx_tasks_due ON tasks(due_at);
        CREATE INDEX IF NOT EXISTS idx_mentions_target ON mentions(target_user);
        """

    # =========================================================================
    # ROW-TO-MODEL HELPERS
    # =========================================================================

    def _row_to_account(self, row: sqlite3.Row) -> Account:
        return Account(
            id=row["id"],
            name=row["name"],
            kind=AccountKind(row["kind"]),
            stage=PipelineStage(row["stage"]),
            importance=Importance(row["importance"]),
            last_contact_at=_to_dt(row["last_contact_at"]),
            website=row["website"],
            general_comment=row["general_comment"],
            created_at=_to_dt(row["created_at"]),
        )

    def _row_to_contact(self, row: sqlite3.Row) -> Contact:
        return Contact(
            id=row["id"],
            account_id=row["account_id"],
            name=row["name"],
            emails=json.loads(row["emails"]),
            role=row["role"],
            phone=row["phone"],
            is_main_contact=bool(row["is_main_contact"]),
        )

    def _row_to_activity(self, row: sqlite3.Row) -> Activity:
        return Activity(
            id=row["id"],
            account_id=row["account_id"],
            type=ActivityType(row["type"]),
            title=row["title"],
            description=row["description"],
            created_at=_to_dt(row["created_at"]),
            author=row["author"],
        )

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            due_at=_to_dt(row["due_at"]),
            priority=Priority(row["priority"]),
            status=TaskStatus(row["status"]),
            assignees=json.loads(row["assignees"]),
            assigned_by=row["assigned_by"],
            account_id=row["account_id"],
            account_name=row["account_name"],
            created_at=_to_dt(row["created_at"]),
        )

    def _row_to_mention(self, row: sqlite3.Row) -> Mention:
        return Mention(
            id=row["id"],
            author=row["author"],
            content=row["content"],
            source=MentionSource(row["source"]),
            parent_title=row["parent_title"],
            created_at=_to_dt(row["created_at"]),
            target_user=row["target_user"],
            resolved=bool(row["resolved"]),
        )

    def _load_children(self, account: Account) -> Account:
        """Attach contacts, activities, checklist and documents."""
        conn = self._get_connection()
        account.contacts = [
            self._row_to_contact(row)
            for row in conn.execute(
                "SELECT * FROM contacts WHERE account_id = ? ORDER BY id", (account.id,)
            ).fetchall()
        ]
        account.activities = [
            self._row_to_activity(row)
            for row in conn.execute(
                "SELECT * FROM activities WHERE account_id = ? ORDER BY created_at DESC, id DESC",
                (account.id,),
            ).fetchall()
        ]
        account.checklist = [
            ChecklistItem(
                id=row["id"],
                account_id=row["account_id"],
                label=row["label"],
                completed=bool(row["completed"]),
                note=row["note"],
            )
            for row in conn.execute(
                "SELECT * FROM checklist_items WHERE account_id = ? ORDER BY id", (account.id,)
            ).fetchall()
        ]
        account.documents = [
            Document(
                id=row["id"],
                account_id=row["account_id"],
                name=row["name"],
                type=row["type"],
                url=row["url"],
                added_by=row["added_by"],
                created_at=_to_dt(row["created_at"]),
            )
            for row in conn.execute(
                "SELECT * FROM documents WHERE account_id = ? ORDER BY id", (account.id,)
            ).fetchall()
        ]
        return account

    # =========================================================================
    # ACCOUNT OPERATIONS
    # =========================================================================

    def create_account(self, account: Account) -> int:
        """Create an account record along with any nested records it carries.

        Args:
            account: Account to create

        Returns:
            New account ID
        """
        conn = self._get_connection()
        created_at = account.created_at or datetime.now()
        try:
            cursor = conn.execute(
                """INSERT INTO accounts
                   (name, kind, stage, importance, last_contact_at, website,
                    general_comment, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    account.name,
                    account.kind.value,
                    account.stage.value,
                    account.importance.value,
                    _to_text(account.last_contact_at),
                    account.website,
                    account.general_comment,
                    created_at.isoformat(),
                ),
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise DatabaseError(f"Failed to create account: {e}") from e

        account_id = self._lastrowid(cursor)
        for contact in account.contacts:
            contact.account_id = account_id
            self.create_contact(contact)
        for activity in account.activities:
            activity.account_id = account_id
            self.create_activity(activity)
        for item in account.checklist:
            item.account_id = account_id
            self.create_checklist_item(item)
        for document in account.documents:
            document.account_id = account_id
            self.create_document(document)

        logger.info(
            "Account created",
            extra={"context": {"account_id": account_id, "name": account.name}},
        )
        return account_id

    def get_account(self, account_id: int) -> Optional[Account]:
        """Get account by ID with all nested records."""
        conn = self._get_connection()
        row = conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,)).fetchone()
        if row is None:
            return None
        return self._load_children(self._row_to_account(row))

    def get_accounts(self) -> list[Account]:
        """Return every account in id order with nested records."""
        conn = self._get_connection()
        rows = conn.execute("SELECT * FROM accounts ORDER BY id").fetchall()
        return [self._load_children(self._row_to_account(row)) for row in rows]

    def update_account_fields(self, account_id: int, fields: dict[str, Any]) -> bool:
        """Patch whitelisted account columns. Returns True if updated.

        Raises:
            DatabaseError: If a field is not updatable or the query fails
        """
        unknown = set(fields) - set(ACCOUNT_UPDATABLE_FIELDS)
        if unknown:
            raise DatabaseError(f"Cannot update account fields: {', '.join(sorted(unknown))}")
        if not fields:
            return False

        columns = [name for name in ACCOUNT_UPDATABLE_FIELDS if name in fields]
        assignments = ", ".join(f"{name} = ?" for name in columns)
        params = [_to_db_value(fields[name]) for name in columns]
        params.append(account_id)

        conn = self._get_connection()
        try:
            cursor = conn.execute(f"UPDATE accounts SET {assignments} WHERE id = ?", params)
            conn.commit()
            return cursor.rowcount > 0
        except sqlite3.Error as e:
            conn.rollback()
            raise DatabaseError(f"Failed to update account: {e}") from e

    def create_contact(self, contact: Contact) -> int:
        """Create a contact record."""
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """INSERT INTO contacts
                   (account_id, name, emails, role, phone, is_main_contact)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    contact.account_id,
                    contact.name,
                    json.dumps(contact.emails),
                    contact.role,
                    contact.phone,
                    int(contact.is_main_contact),
                ),
            )
            conn.commit()
            contact.id = self._lastrowid(cursor)
            return contact.id
        except sqlite3.Error as e:
            conn.rollback()
            raise DatabaseError(f"Failed to create contact: {e}") from e

    def create_activity(self, activity: Activity) -> int:
        """Log an activity."""
        conn = self._get_connection()
        created_at = activity.created_at or datetime.now()
        try:
            cursor = conn.execute(
                """INSERT INTO activities
                   (account_id, type, title, description, created_at, author)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    activity.account_id,
                    activity.type.value,
                    activity.title,
                    activity.description,
                    created_at.isoformat(),
                    activity.author,
                ),
            )
            conn.commit()
            activity.id = self._lastrowid(cursor)
            activity.created_at = created_at
            return activity.id
        except sqlite3.Error as e:
            conn.rollback()
            raise DatabaseError(f"Failed to create activity: {e}") from e

    def get_activities_since(self, since: datetime) -> list[Activity]:
        """Activities across all accounts at or after ``since``, newest first."""
        conn = self._get_connection()
        rows = conn.execute(
            "SELECT * FROM activities WHERE created_at >= ? ORDER BY created_at DESC, id DESC",
            (since.isoformat(),),
        ).fetchall()
        return [self._row_to_activity(row) for row in rows]

    def create_checklist_item(self, item: ChecklistItem) -> int:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """INSERT INTO checklist_items (account_id, label, completed, note)
                   VALUES (?, ?, ?, ?)""",
                (item.account_id, item.label, int(item.completed), item.note),
            )
            conn.commit()
            item.id = self._lastrowid(cursor)
            return item.id
        except sqlite3.Error as e:
            conn.rollback()
            raise DatabaseError(f"Failed to create checklist item: {e}") from e

    def create_document(self, document: Document) -> int:
        conn = self._get_connection()
        created_at = document.created_at or datetime.now()
        try:
            cursor = conn.execute(
                """INSERT INTO documents (account_id, name, type, url, added_by, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    document.account_id,
                    document.name,
                    document.type,
                    document.url,
                    document.added_by,
                    created_at.isoformat(),
                ),
            )
            conn.commit()
            document.id = self._lastrowid(cursor)
            document.created_at = created_at
            return document.id
        except sqlite3.Error as e:
            conn.rollback()
            raise DatabaseError(f"Failed to create document: {e}") from e

    # =========================================================================
    # TASK OPERATIONS
    # =========================================================================

    def create_task(self, task: Task) -> int:
        """Create a task record."""
        conn = self._get_connection()
        created_at = task.created_at or datetime.now()
        try:
            cursor = conn.execute(
                """INSERT INTO tasks
                   (title, description, due_at, priority, status, assignees,
                    assigned_by, account_id, account_name, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    task.title,
                    task.description,
                    _to_text(task.due_at),
                    task.priority.value,
                    task.status.value,
                    json.dumps(task.assignees),
                    task.assigned_by,
                    task.account_id,
                    task.account_name,
                    created_at.isoformat(),
                ),
            )
            conn.commit()
            task.id = self._lastrowid(cursor)
            task.created_at = created_at
            logger.debug(
                "Task created",
                extra={"context": {"task_id": task.id, "account_id": task.account_id}},
            )
            return task.id
        except sqlite3.Error as e:
            conn.rollback()
            raise DatabaseError(f"Failed to create task: {e}") from e

    def get_task(self, task_id: int) -> Optional[Task]:
        conn = self._get_connection()
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def get_tasks(
        self,
        assignee: Optional[str] = None,
        account_id: Optional[int] = None,
        status: Optional[TaskStatus] = None,
        include_completed: bool = True,
    ) -> list[Task]:
        """Get tasks with filtering, in id order."""
        conn = self._get_connection()

        conditions: list[str] = []
        params: list[Any] = []

        if account_id is not None:
            conditions.append("account_id = ?")
            params.append(account_id)

        if status is not None:
            conditions.append("status = ?")
            params.append(status.value)
        elif not include_completed:
            conditions.append("status != ?")
            params.append(TaskStatus.COMPLETED.value)

        where_clause = ""
        if conditions:
            where_clause = "WHERE " + " AND ".join(conditions)

        rows = conn.execute(f"SELECT * FROM tasks {where_clause} ORDER BY id", params).fetchall()
        tasks = [self._row_to_task(row) for row in rows]

        # assignees is a JSON list, filter in Python
        if assignee is not None:
            tasks = [t for t in tasks if assignee in t.assignees]
        return tasks

    def update_task_status(self, task_id: int, status: TaskStatus) -> bool:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "UPDATE tasks SET status = ? WHERE id = ?", (status.value, task_id)
            )
            conn.commit()
            return cursor.rowcount > 0
        except sqlite3.Error as e:
            conn.rollback()
            raise DatabaseError(f"Failed to update task: {e}") from e

    # =========================================================================
    # MENTIONS AND NOTIFICATIONS
    # =========================================================================

    def create_mention(self, mention: Mention) -> int:
        conn = self._get_connection()
        created_at = mention.created_at or datetime.now()
        try:
            cursor = conn.execute(
                """INSERT INTO mentions
                   (author, content, source, parent_title, created_at, target_user, resolved)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    mention.author,
                    mention.content,
                    mention.source.value,
                    mention.parent_title,
                    created_at.isoformat(),
                    mention.target_user,
                    int(mention.resolved),
                ),
            )
            conn.commit()
            mention.id = self._lastrowid(cursor)
            return mention.id
        except sqlite3.Error as e:
            conn.rollback()
            raise DatabaseError(f"Failed to create mention: {e}") from e

    def get_mentions(self, target_user: str, include_resolved: bool = False) -> list[Mention]:
        """Mentions addressed to a user, newest first."""
        conn = self._get_connection()
        query = "SELECT * FROM mentions WHERE target_user = ?"
        if not include_resolved:
            query += " AND resolved = 0"
        rows = conn.execute(query + " ORDER BY created_at DESC, id DESC", (target_user,)).fetchall()
        return [self._row_to_mention(row) for row in rows]

    def create_notification(self, notification: Notification) -> int:
        conn = self._get_connection()
        created_at = notification.created_at or datetime.now()
        try:
            cursor = conn.execute(
                "INSERT INTO notifications (user, title, read, created_at) VALUES (?, ?, ?, ?)",
                (
                    notification.user,
                    notification.title,
                    int(notification.read),
                    created_at.isoformat(),
                ),
            )
            conn.commit()
            notification.id = self._lastrowid(cursor)
            return notification.id
        except sqlite3.Error as e:
            conn.rollback()
            raise DatabaseError(f"Failed to create notification: {e}") from e

    def count_unread_notifications(self, user: str) -> int:
        conn = self._get_connection()
        row = conn.execute(
            "SELECT COUNT(*) AS cnt FROM notifications WHERE user = ? AND read = 0", (user,)
        ).fetchone()
        return int(row["cnt"])
