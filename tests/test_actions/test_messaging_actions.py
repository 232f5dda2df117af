"""Tests for messaging operations."""

from datetime import datetime

import pytest

from crmpilot.db.models import EmailMessage, Priority
from tests.conftest import ACME, INITECH, NOW


async def _run(dispatcher, name, /, **params):
    return await dispatcher.execute(name, params, now=NOW)


def _mail(subject: str, snippet: str = "", from_name: str = "Jane Doe", from_address: str = "jane@acme.example"):
    return EmailMessage(
        id=f"msg-{subject}",
        from_name=from_name,
        from_address=from_address,
        subject=subject,
        snippet=snippet,
        received_at=datetime(2026, 3, 4, 8, 0),
    )


class TestSendAndDraft:
    """send_email and draft_email."""

    @pytest.mark.asyncio
    async def test_send_email(self, dispatcher, stub_provider):
        result = await _run(dispatcher, "send_email", to="jane@acme.example", subject="Hello", body="Hi Jane")
        assert result.success
        assert result.payload["messageId"] == "sent-1"
        assert stub_provider.sent == [("jane@acme.example", "Hello", "Hi Jane")]

    @pytest.mark.asyncio
    async def test_send_email_offline(self, offline_dispatcher):
        result = await offline_dispatcher.execute(
            "send_email", {"to": "jane@acme.example", "subject": "Hello", "body": "Hi"}, now=NOW
        )
        assert result.success is False
        assert result.error_kind == "ProviderUnavailable"

    @pytest.mark.asyncio
    async def test_send_email_requires_body(self, dispatcher, stub_provider):
        result = await _run(dispatcher, "send_email", to="jane@acme.example", subject="Hello")
        assert result.error_kind == "ValidationError"
        assert stub_provider.sent == []

    @pytest.mark.asyncio
    async def test_draft_email_finds_contact(self, dispatcher, stub_provider):
        result = await _run(dispatcher, "draft_email", contact_name="jane", subject="Next steps", body="Hi Jane")
        assert result.payload["to"] == "jane@acme.example"
        assert result.payload["accountName"] == "Acme Corp"
        assert result.payload["draftCreated"] is True
        assert result.payload["navigation"]["composeTo"] == "jane@acme.example"
        assert stub_provider.drafts == [("jane@acme.example", "Next steps", "Hi Jane")]

    @pytest.mark.asyncio
    async def test_draft_email_falls_back_to_account_contact(self, dispatcher):
        result = await _run(
            dispatcher, "draft_email", contact_name="Mr Smith", account_name="globex", subject="Hi", body="Hello"
        )
        assert result.payload["to"] == "hank@globex.example"
        assert result.payload["accountName"] == "Globex"

    @pytest.mark.asyncio
    async def test_draft_email_without_address(self, dispatcher, stub_provider):
        result = await _run(dispatcher, "draft_email", contact_name="Carol", subject="Hi", body="Hello")
        assert result.success
        assert result.payload["to"] == "Carol"
        assert result.payload["draftCreated"] is False
        assert stub_provider.drafts == []

    @pytest.mark.asyncio
    async def test_draft_email_offline(self, offline_dispatcher):
        result = await offline_dispatcher.execute(
            "draft_email", {"contact_name": "jane", "subject": "Hi", "body": "Hello"}, now=NOW
        )
        assert result.success
        assert result.payload["draftCreated"] is False


class TestInbox:
    """summarize_emails and extract_email_actions."""

    @pytest.mark.asyncio
    async def test_summarize_unread(self, dispatcher, stub_provider):
        stub_provider.messages = [_mail("Quote"), _mail("Lunch")]
        result = await _run(dispatcher, "summarize_emails", filter="unread")
        assert result.description == "2 unread email(s)"
        assert stub_provider.queries == ["is:unread"]
        assert result.payload["emails"][0] == {
            "id": "msg-Quote",
            "from": "Jane Doe",
            "subject": "Quote",
            "date": "2026-03-04T08:00:00",
            "snippet": "",
            "isUnread": True,
        }

    @pytest.mark.asyncio
    async def test_summarize_recent_has_no_query(self, dispatcher, stub_provider):
        await _run(dispatcher, "summarize_emails")
        assert stub_provider.queries == [None]

    @pytest.mark.asyncio
    async def test_summarize_offline_is_empty(self, offline_dispatcher):
        result = await offline_dispatcher.execute("summarize_emails", {}, now=NOW)
        assert result.success
        assert result.payload["count"] == 0

    @pytest.mark.asyncio
    async def test_extract_email_actions(self, dispatcher, stub_provider):
        stub_provider.messages = [
            _mail("Docs", "Could you send the NDA?"),
            _mail("Hello", "Nice to meet you"),
            _mail("Outage", "Need help ASAP"),
        ]
        result = await _run(dispatcher, "extract_email_actions")
        assert result.payload["emailsScanned"] == 3
        assert [a["action"] for a in result.payload["actions"]] == [
            "Send a document: Docs",
            "Urgent action required: Outage",
        ]
        assert result.payload["tasksCreated"] == 0

    @pytest.mark.asyncio
    async def test_extract_email_actions_creates_tasks(self, dispatcher, stub_provider, populated_db):
        stub_provider.messages = [_mail("Docs", "Could you send the NDA?"), _mail("Outage", "Need help ASAP")]
        before = len(populated_db.get_tasks())
        result = await _run(dispatcher, "extract_email_actions", create_tasks=True)
        assert result.payload["tasksCreated"] == 2
        tasks = populated_db.get_tasks()
        assert len(tasks) == before + 2
        assert tasks[-1].title == "Urgent action required: Outage"
        assert tasks[-1].priority == Priority.HIGH
        assert tasks[-2].priority == Priority.MEDIUM


class TestSmartReply:
    """smart_reply."""

    @pytest.mark.asyncio
    async def test_reply_by_sender(self, dispatcher, stub_provider):
        stub_provider.messages = [_mail("Pricing", "What about 50 seats?")]
        result = await _run(dispatcher, "smart_reply", from_name="Jane", tone="friendly")
        assert stub_provider.queries == ["from:Jane"]
        assert result.payload["to"] == "jane@acme.example"
        assert result.payload["subject"] == "Re: Pricing"
        assert result.payload["body"].startswith("Hi Jane Doe,")
        assert result.payload["draftCreated"] is True
        assert stub_provider.drafts[0][1] == "Re: Pricing"

    @pytest.mark.asyncio
    async def test_reply_keeps_existing_prefix_and_instructions(self, dispatcher, stub_provider):
        stub_provider.messages = [_mail("Re: Pricing")]
        result = await _run(
            dispatcher, "smart_reply", subject="Pricing", instructions="Tuesday at 10 works for us."
        )
        assert stub_provider.queries == ["subject:Pricing"]
        assert result.payload["subject"] == "Re: Pricing"
        assert "Tuesday at 10 works for us." in result.payload["body"]
        assert result.payload["tone"] == "formal"

    @pytest.mark.asyncio
    async def test_address_taken_from_display_name(self, dispatcher, stub_provider):
        stub_provider.messages = [_mail("Hi", from_name="Bob <bob@acmelabs.example>", from_address="")]
        result = await _run(dispatcher, "smart_reply", from_name="Bob")
        assert result.payload["to"] == "bob@acmelabs.example"

    @pytest.mark.asyncio
    async def test_needs_sender_or_subject(self, dispatcher):
        result = await _run(dispatcher, "smart_reply")
        assert result.error_kind == "ValidationError"

    @pytest.mark.asyncio
    async def test_no_matching_mail(self, dispatcher):
        result = await _run(dispatcher, "smart_reply", from_name="Nobody")
        assert result.error_kind == "NotFoundError"


class TestBulkFollowUp:
    """bulk_follow_up."""

    @pytest.mark.asyncio
    async def test_all_clients(self, dispatcher, stub_provider):
        result = await _run(dispatcher, "bulk_follow_up")
        names = [d["account"] for d in result.payload["drafts"]]
        assert names == ["Acme Corp", "Acme Labs", "Globex", "Initech", "Hooli"]
        assert not any(d["draftCreated"] for d in result.payload["drafts"])
        assert stub_provider.drafts == []

    @pytest.mark.asyncio
    async def test_silence_filter_and_drafts(self, dispatcher, stub_provider):
        result = await _run(dispatcher, "bulk_follow_up", min_days_since_contact=14, create_drafts=True)
        drafts = result.payload["drafts"]
        assert [d["accountId"] for d in drafts] == [ACME, INITECH]

        acme, initech = drafts
        assert acme["subject"] == "Follow-up - Acme Corp"
        assert acme["body"].startswith("Hello Jane Doe,")
        assert acme["draftCreated"] is True
        assert initech["contactName"] == "Sir or Madam"
        assert initech["to"] is None
        assert initech["draftCreated"] is False
        assert [d[0] for d in stub_provider.drafts] == ["jane@acme.example"]
        assert result.payload["filters"] == {"stage": None, "importance": None, "minDays": 14}

    @pytest.mark.asyncio
    async def test_stage_filter_with_custom_template(self, dispatcher):
        result = await _run(
            dispatcher, "bulk_follow_up", stage="validation", message_template="Dear {contact}, news on {name}?"
        )
        assert [d["body"] for d in result.payload["drafts"]] == ["Dear Hank Scorpio, news on Globex?"]

    @pytest.mark.asyncio
    async def test_broken_template(self, dispatcher):
        result = await _run(dispatcher, "bulk_follow_up", message_template="Hi {{ contact ")
        assert result.error_kind == "ValidationError"
