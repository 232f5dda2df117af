"""Tests for database operations."""

from datetime import datetime, timedelta

import pytest

from crmpilot.core.exceptions import DatabaseError
from crmpilot.db.database import Database
from crmpilot.db.models import (
    Account,
    AccountKind,
    Activity,
    ActivityType,
    Contact,
    Document,
    Mention,
    Notification,
    PipelineStage,
    Priority,
    Task,
    TaskStatus,
)
from tests.conftest import ACME, GLOBEX, NOW

pytestmark = pytest.mark.database


class TestDatabaseLifecycle:
    """Test connection and schema creation."""

    def test_initialize_memory(self):
        db = Database(":memory:")
        db.initialize()
        assert db.get_accounts() == []
        db.close()

    def test_initialize_file_creates_parent_dirs(self, tmp_path):
        db = Database(str(tmp_path / "nested" / "crm.db"))
        db.initialize()
        assert (tmp_path / "nested" / "crm.db").exists()
        db.close()

    def test_initialize_twice_is_safe(self, memory_db: Database):
        memory_db.initialize()
        assert memory_db.get_accounts() == []

    def test_missing_lastrowid(self):
        class Cursor:
            lastrowid = None

        with pytest.raises(DatabaseError, match="lastrowid"):
            Database._lastrowid(Cursor())


class TestAccountOperations:
    """Account CRUD with nested records."""

    def test_create_and_get_account(self, memory_db: Database):
        account_id = memory_db.create_account(
            Account(
                name="Acme Corp",
                stage=PipelineStage.EXCHANGE,
                kind=AccountKind.PARTNER,
                last_contact_at=NOW,
                contacts=[Contact(name="Jane", emails=["jane@acme.example", "j@acme.example"])],
            )
        )
        account = memory_db.get_account(account_id)
        assert account is not None
        assert account.name == "Acme Corp"
        assert account.stage == PipelineStage.EXCHANGE
        assert account.kind == AccountKind.PARTNER
        assert account.last_contact_at == NOW
        assert account.contacts[0].emails == ["jane@acme.example", "j@acme.example"]
        assert account.contacts[0].primary_email == "jane@acme.example"

    def test_get_unknown_account_returns_none(self, memory_db: Database):
        assert memory_db.get_account(42) is None

    def test_accounts_in_id_order(self, populated_db: Database):
        names = [a.name for a in populated_db.get_accounts()]
        assert names == ["Acme Corp", "Acme Labs", "Globex", "Initech", "Umbrella Partners", "Hooli"]

    def test_activities_newest_first(self, populated_db: Database):
        activities = populated_db.get_account(ACME).activities
        dates = [a.created_at for a in activities]
        assert dates == sorted(dates, reverse=True)
        assert activities[0].title == "Pricing call"

    def test_checklist_loaded(self, populated_db: Database):
        checklist = populated_db.get_account(ACME).checklist
        assert [item.completed for item in checklist] == [True, True]

    def test_update_account_fields(self, populated_db: Database):
        updated = populated_db.update_account_fields(
            GLOBEX, {"stage": PipelineStage.CLIENT_SUCCESS, "last_contact_at": NOW}
        )
        assert updated is True
        account = populated_db.get_account(GLOBEX)
        assert account.stage == PipelineStage.CLIENT_SUCCESS
        assert account.last_contact_at == NOW

    def test_update_unknown_field_raises(self, populated_db: Database):
        with pytest.raises(DatabaseError, match="id"):
            populated_db.update_account_fields(GLOBEX, {"id": 7})

    def test_update_missing_account_returns_false(self, populated_db: Database):
        assert populated_db.update_account_fields(999, {"website": "x"}) is False

    def test_contact_for_missing_account_violates_foreign_key(self, memory_db: Database):
        with pytest.raises(DatabaseError):
            memory_db.create_contact(Contact(account_id=999, name="Ghost"))


class TestChildRecords:
    """Activities and documents."""

    def test_create_activity_sets_id_and_time(self, populated_db: Database):
        activity = Activity(account_id=GLOBEX, type=ActivityType.CALL, title="Check-in")
        activity_id = populated_db.create_activity(activity)
        assert activity.id == activity_id
        assert activity.created_at is not None

    def test_get_activities_since(self, populated_db: Database):
        recent = populated_db.get_activities_since(NOW - timedelta(days=7))
        # Same-time entries come back by id, newest first
        assert [a.title for a in recent] == ["Contract review", "Pricing call", "Sent deck"]

    def test_create_document(self, populated_db: Database):
        populated_db.create_document(
            Document(account_id=ACME, name="Proposal v2", url="https://docs.example/p2")
        )
        documents = populated_db.get_account(ACME).documents
        assert [d.name for d in documents] == ["Proposal v2"]
        assert documents[0].type == "link"


class TestTaskOperations:
    """Task storage and filtering."""

    def test_create_and_get_task(self, memory_db: Database):
        task = Task(title="Call back", priority=Priority.HIGH, due_at=NOW, assignees=["me", "alice"])
        task_id = memory_db.create_task(task)
        loaded = memory_db.get_task(task_id)
        assert loaded.title == "Call back"
        assert loaded.priority == Priority.HIGH
        assert loaded.due_at == NOW
        assert loaded.assignees == ["me", "alice"]
        assert loaded.account_id is None

    def test_filter_by_assignee(self, populated_db: Database):
        titles = [t.title for t in populated_db.get_tasks(assignee="alice")]
        assert titles == ["Alice follow-up"]

    def test_exclude_completed(self, populated_db: Database):
        tasks = populated_db.get_tasks(assignee="me", include_completed=False)
        assert "Archive old notes" not in [t.title for t in tasks]
        assert len(tasks) == 3

    def test_filter_by_account_and_status(self, populated_db: Database):
        tasks = populated_db.get_tasks(account_id=ACME, status=TaskStatus.COMPLETED)
        assert [t.title for t in tasks] == ["Archive old notes"]

    def test_update_task_status(self, populated_db: Database):
        assert populated_db.update_task_status(1, TaskStatus.COMPLETED) is True
        assert populated_db.get_task(1).status == TaskStatus.COMPLETED


class TestMentionsAndNotifications:
    """Mentions and notification counts."""

    def test_pending_mentions_only(self, populated_db: Database):
        mentions = populated_db.get_mentions("me")
        assert len(mentions) == 1
        assert mentions[0].author == "alice"

    def test_include_resolved(self, populated_db: Database):
        assert len(populated_db.get_mentions("me", include_resolved=True)) == 2

    def test_mention_round_trip(self, memory_db: Database):
        memory_db.create_mention(
            Mention(author="bob", content="@jane look", target_user="jane", created_at=datetime(2026, 1, 1))
        )
        mention = memory_db.get_mentions("jane")[0]
        assert mention.content == "@jane look"
        assert mention.created_at == datetime(2026, 1, 1)

    def test_count_unread_notifications(self, populated_db: Database):
        assert populated_db.count_unread_notifications("me") == 2
        populated_db.create_notification(Notification(user="alice", title="Hi"))
        assert populated_db.count_unread_notifications("alice") == 1
        assert populated_db.count_unread_notifications("nobody") == 0
