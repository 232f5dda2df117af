"""Tests for meeting, free-slot and scheduler operations."""

import time
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
import requests

from crmpilot.actions.dispatcher import ActionDispatcher
from crmpilot.core.config import Config
from crmpilot.db.models import CalendarEvent
from crmpilot.engine.data_access import DataAccess
from crmpilot.integrations.outlook import OutlookClient
from tests.conftest import ACME, ACME_LABS, GLOBEX, INITECH, NOW, StubProvider


async def _run(dispatcher, name, /, **params):
    return await dispatcher.execute(name, params, now=NOW)


def _event(start: datetime, minutes: int, subject: str = "Busy") -> CalendarEvent:
    return CalendarEvent(id=f"e-{start:%d%H%M}", subject=subject, start=start, end=start + timedelta(minutes=minutes))


@pytest.fixture
def busy_morning(stub_provider):
    """A 10:00-11:00 meeting today."""
    stub_provider.events.append(_event(NOW.replace(hour=10), 60, "Weekly sync"))
    return stub_provider


@pytest.fixture
def unreachable_dispatcher(populated_db, test_config, tmp_path):
    """Dispatcher whose Outlook client holds a token but cannot reach Graph."""
    config = Config(
        db_path=tmp_path / "test.db",
        log_path=tmp_path / "logs",
        outlook_client_id="client-id",
        outlook_client_secret="client-secret",
        outlook_tenant_id="tenant-id",
        outlook_user_email="owner@example.com",
    )
    client = OutlookClient(config)
    client._access_token = "token"
    client._token_expiry = datetime.now(timezone.utc) + timedelta(hours=1)
    with patch("crmpilot.integrations.outlook.requests.request", side_effect=requests.ConnectionError("down")):
        with patch.object(OutlookClient, "retry_sleep"):
            yield ActionDispatcher(DataAccess(populated_db, client), config=test_config)


class TestMeetings:
    """schedule_meeting and get_upcoming_meetings."""

    @pytest.mark.asyncio
    async def test_schedule_meeting(self, dispatcher, stub_provider):
        result = await _run(
            dispatcher,
            "schedule_meeting",
            title="Demo",
            date="2026-03-05",
            time="14:00",
            attendees="jane@acme.example, hank@globex.example",
        )
        assert result.success
        assert result.payload["event"]["id"] == "evt-1"
        assert result.payload["event"]["end"] == "2026-03-05T15:00:00"
        assert result.payload["navigation"]["path"] == "/calendar"
        assert stub_provider.created_events[0].attendees == ["jane@acme.example", "hank@globex.example"]

    @pytest.mark.asyncio
    async def test_schedule_meeting_bad_time(self, dispatcher, stub_provider):
        result = await _run(dispatcher, "schedule_meeting", title="Demo", date="2026-03-05", time="25:00")
        assert result.error_kind == "ValidationError"
        assert stub_provider.created_events == []

    @pytest.mark.asyncio
    async def test_schedule_meeting_zero_duration(self, dispatcher):
        result = await _run(
            dispatcher, "schedule_meeting", title="Demo", date="2026-03-05", time="14:00", duration=0
        )
        assert result.error_kind == "ValidationError"

    @pytest.mark.asyncio
    async def test_schedule_meeting_offline(self, offline_dispatcher):
        result = await offline_dispatcher.execute(
            "schedule_meeting", {"title": "Demo", "date": "2026-03-05", "time": "14:00"}, now=NOW
        )
        assert result.success is False
        assert result.error_kind == "ProviderUnavailable"

    @pytest.mark.asyncio
    async def test_upcoming_meetings(self, dispatcher, stub_provider):
        stub_provider.events.extend([_event(NOW + timedelta(days=1), 30), _event(NOW + timedelta(days=10), 30)])
        result = await _run(dispatcher, "get_upcoming_meetings")
        assert result.payload["count"] == 1
        result = await _run(dispatcher, "get_upcoming_meetings", days=14)
        assert result.payload["count"] == 2

    @pytest.mark.asyncio
    async def test_upcoming_meetings_days_must_be_positive(self, dispatcher):
        result = await _run(dispatcher, "get_upcoming_meetings", days=0)
        assert result.error_kind == "ValidationError"


class TestFindFreeSlots:
    """find_free_slots operation."""

    @pytest.mark.asyncio
    async def test_single_day(self, dispatcher, busy_morning):
        result = await _run(dispatcher, "find_free_slots", start_date="2026-03-04", end_date="2026-03-04")
        slots = result.payload["slots"]
        assert [(s["start"], s["end"]) for s in slots] == [("9:00", "10:00"), ("11:00", "18:00")]
        assert result.payload["calendarEventsCount"] == 1

    @pytest.mark.asyncio
    async def test_default_range_is_five_business_days(self, dispatcher):
        result = await _run(dispatcher, "find_free_slots")
        assert result.payload["range"] == {"start": "2026-03-04", "end": "2026-03-11"}
        assert [s["date"] for s in result.payload["slots"]] == [
            "2026-03-04",
            "2026-03-05",
            "2026-03-06",
            "2026-03-09",
            "2026-03-10",
            "2026-03-11",
        ]

    @pytest.mark.asyncio
    async def test_offline_calendar_is_all_free(self, offline_dispatcher):
        result = await offline_dispatcher.execute(
            "find_free_slots", {"start_date": "2026-03-04", "end_date": "2026-03-04"}, now=NOW
        )
        assert result.success
        assert result.payload["calendarEventsCount"] == 0
        assert len(result.payload["slots"]) == 1

    @pytest.mark.asyncio
    async def test_custom_hours_and_preference(self, dispatcher, busy_morning):
        result = await _run(
            dispatcher,
            "find_free_slots",
            start_date="2026-03-04",
            end_date="2026-03-04",
            work_start_hour=8,
            work_end_hour=12,
            preference="morning",
        )
        assert [(s["start"], s["end"]) for s in result.payload["slots"]] == [("8:00", "10:00"), ("11:00", "12:00")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "params",
        [
            {"start_date": "2026-03-10", "end_date": "2026-03-04"},
            {"work_start_hour": 18, "work_end_hour": 9},
            {"duration": 0},
            {"start_date": "soon"},
            {"preference": "evening"},
        ],
    )
    async def test_invalid(self, dispatcher, params):
        result = await dispatcher.execute("find_free_slots", params, now=NOW)
        assert result.error_kind == "ValidationError"


class TestSmartScheduler:
    """Slot proposals and invitation drafts."""

    @pytest.mark.asyncio
    async def test_named_accounts(self, dispatcher, busy_morning):
        result = await _run(
            dispatcher,
            "smart_scheduler",
            accounts=["globex", "acme corp"],
            start_date="2026-03-04",
            end_date="2026-03-04",
        )
        proposals = result.payload["proposedMeetings"]
        assert [p["accountId"] for p in proposals] == [ACME, GLOBEX]

        acme, globex = proposals
        assert acme["contact"] == "Jane Doe"
        assert acme["proposedSlots"] == [{"day": "Wednesday 4/3", "date": "2026-03-04", "time": "9:00 - 9:30"}]
        assert globex["proposedSlots"][0]["time"] == "11:00 - 11:30"
        assert acme["subject"] == "Meeting proposal - Acme Corp"
        assert "  1. Wednesday 4/3 at 9:00 - 9:30" in acme["body"]
        assert acme["draftCreated"] is True

        assert [d[0] for d in busy_morning.drafts] == ["jane@acme.example", "hank@globex.example"]
        assert result.payload["summary"] == {
            "totalFreeSlots": 2,
            "totalBusy": 1,
            "accountsContacted": 2,
            "draftsCreated": 2,
        }
        assert result.payload["busySlots"] == [{"start": "2026-03-04T10:00:00", "end": "2026-03-04T11:00:00"}]

    @pytest.mark.asyncio
    async def test_auto_targets_with_slot_reuse(self, dispatcher, busy_morning):
        result = await _run(dispatcher, "smart_scheduler", start_date="2026-03-04", end_date="2026-03-04")
        proposals = result.payload["proposedMeetings"]
        assert [p["accountId"] for p in proposals] == [ACME, ACME_LABS, GLOBEX, INITECH]
        assert [p["slotReused"] for p in proposals] == [False, False, True, True]
        assert proposals[2]["proposedSlots"][0]["time"] == "9:00 - 9:30"

        initech = proposals[3]
        assert initech["contact"] == "Sir or Madam"
        assert initech["contactEmail"] is None
        assert initech["draftCreated"] is False
        assert result.payload["summary"]["draftsCreated"] == 3

    @pytest.mark.asyncio
    async def test_custom_template(self, dispatcher):
        result = await _run(
            dispatcher,
            "smart_scheduler",
            accounts="hooli",
            start_date="2026-03-04",
            end_date="2026-03-04",
            message_template="Hi {contact}, {name} slots:\n{slots}",
        )
        body = result.payload["proposedMeetings"][0]["body"]
        assert body == "Hi Gavin Belson, Hooli slots:\n  1. Wednesday 4/3 at 9:00 - 9:30"

    @pytest.mark.asyncio
    async def test_drafts_disabled(self, dispatcher, stub_provider):
        result = await _run(dispatcher, "smart_scheduler", accounts="globex", create_drafts=False)
        assert result.payload["proposedMeetings"][0]["draftCreated"] is False
        assert stub_provider.drafts == []

    @pytest.mark.asyncio
    async def test_offline_still_proposes(self, offline_dispatcher):
        result = await offline_dispatcher.execute("smart_scheduler", {"accounts": "globex"}, now=NOW)
        assert result.success
        proposal = result.payload["proposedMeetings"][0]
        assert proposal["draftCreated"] is False
        assert len(proposal["proposedSlots"]) == 3

    @pytest.mark.asyncio
    async def test_no_matching_accounts(self, dispatcher):
        result = await _run(dispatcher, "smart_scheduler", accounts=["Wayne Enterprises"])
        assert result.error_kind == "NotFoundError"

    @pytest.mark.asyncio
    async def test_no_free_time(self, dispatcher, stub_provider):
        stub_provider.events.append(_event(NOW.replace(hour=8), 11 * 60))
        result = await _run(
            dispatcher, "smart_scheduler", accounts="globex", start_date="2026-03-04", end_date="2026-03-04"
        )
        proposal = result.payload["proposedMeetings"][0]
        assert proposal["proposedSlots"] == []
        assert proposal["slotReused"] is False

    @pytest.mark.asyncio
    async def test_reads_start_together(self, populated_db, test_config, monkeypatch):
        calls = []

        class SlowCalendar(StubProvider):
            def get_events(self, start, end):
                calls.append("calendar-start")
                time.sleep(0.05)
                calls.append("calendar-end")
                return []

        get_accounts = populated_db.get_accounts

        def recording_get_accounts():
            calls.append("accounts")
            return get_accounts()

        monkeypatch.setattr(populated_db, "get_accounts", recording_get_accounts)
        dispatcher = ActionDispatcher(DataAccess(populated_db, SlowCalendar()), config=test_config)

        result = await _run(dispatcher, "smart_scheduler", accounts="globex", create_drafts=False)
        assert result.success
        assert calls.index("accounts") < calls.index("calendar-end")


class TestUnreachableCalendar:
    """Graph connection failures leave slot searches working."""

    @pytest.mark.asyncio
    async def test_find_free_slots(self, unreachable_dispatcher):
        result = await _run(unreachable_dispatcher, "find_free_slots", start_date="2026-03-04", end_date="2026-03-04")
        assert result.success
        assert result.payload["calendarEventsCount"] == 0
        assert [(s["start"], s["end"]) for s in result.payload["slots"]] == [("9:00", "18:00")]

    @pytest.mark.asyncio
    async def test_smart_scheduler(self, unreachable_dispatcher):
        result = await _run(
            unreachable_dispatcher,
            "smart_scheduler",
            accounts="globex",
            start_date="2026-03-04",
            end_date="2026-03-04",
            create_drafts=False,
        )
        assert result.success
        assert result.payload["summary"]["totalBusy"] == 0
