"""Microsoft Outlook calendar and mail provider via Graph API.

Provides:
    - OAuth2 client-credentials authentication (MSAL)
    - Calendar view and event creation
    - Inbox listing with unread filter and search
    - Send email and create drafts

Requires application permissions granted in Azure AD:
    Mail.Send, Mail.ReadWrite, Calendars.ReadWrite

All datetimes crossing this module's boundary are naive local times;
Graph speaks UTC and the conversion happens here.

Usage:
    from crmpilot.integrations.outlook import OutlookClient

    client = OutlookClient()
    if client.is_configured():
        events = client.get_events(start, end)
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import msal
import requests

from crmpilot.core.config import Config, get_config
from crmpilot.core.exceptions import OutlookError, ProviderUnavailable
from crmpilot.core.logging import get_logger
from crmpilot.db.models import CalendarEvent, EmailMessage
from crmpilot.integrations.base import IntegrationBase

logger = get_logger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPES = ["https://graph.microsoft.com/.default"]
REQUEST_TIMEOUT = 30

_MESSAGE_FIELDS = "id,from,toRecipients,subject,body,bodyPreview,receivedDateTime,isRead,conversationId"
_EVENT_FIELDS = "id,subject,start,end,location,attendees,onlineMeeting,body"

# Graph emits up to 7 fractional digits, datetime accepts 6
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_graph_datetime(value: str) -> datetime:
    """Parse a Graph UTC timestamp into a naive local datetime.

    Accepts both ``2026-03-02T10:00:00.0000000`` (calendar, no offset) and
    ``2026-03-02T10:00:00Z`` (mail).
    """
    cleaned = _FRACTION_RE.sub(r"\1", value.replace("Z", "+00:00"))
    parsed = datetime.fromisoformat(cleaned)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone().replace(tzinfo=None)


def _to_graph_utc(value: datetime) -> str:
    """Format a naive local (or aware) datetime as Graph UTC text."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


def build_message_params(max_results: int, query: Optional[str]) -> dict[str, str]:
    """Translate a mailbox query into Graph list parameters.

    Supported query forms:
        - ``is:unread``: unread messages only
        - ``from:alice@example.com`` / ``subject:renewal``: KQL search
        - anything else: free-text search

    Graph refuses ``$orderby`` together with ``$search``; search results
    come back by relevance.
    """
    params: dict[str, str] = {
        "$top": str(max_results),
        "$select": _MESSAGE_FIELDS,
    }
    query = (query or "").strip()

    if not query:
        params["$orderby"] = "receivedDateTime desc"
    elif query.lower() == "is:unread":
        params["$filter"] = "isRead eq false"
        params["$orderby"] = "receivedDateTime desc"
    else:
        escaped = query.replace('"', '\\"')
        params["$search"] = f'"{escaped}"'
    return params


class OutlookClient(IntegrationBase):
    """Microsoft Graph API client for calendar and mail.

    Raises ProviderUnavailable from every call when credentials are
    missing, OutlookError when Graph rejects a request.
    """

    def __init__(self, config: Optional[Config] = None) -> None:
        self._config = config or get_config()
        self._access_token: Optional[str] = None
        self._token_expiry: Optional[datetime] = None
        self._msal_app: Optional[msal.ConfidentialClientApplication] = None

    @property
    def _user_email(self) -> str:
        if not self._config.outlook_user_email:
            raise ProviderUnavailable("OUTLOOK_USER_EMAIL not configured")
        return self._config.outlook_user_email

    def is_configured(self) -> bool:
        """Check if Outlook credentials are configured."""
        return all(
            [
                self._config.outlook_client_id,
                self._config.outlook_client_secret,
                self._config.outlook_tenant_id,
                self._config.outlook_user_email,
            ]
        )

    def health_check(self) -> bool:
        """Check if Graph is reachable by reading the mailbox owner profile."""
        if not self.is_configured():
            return False

        try:
            self._ensure_authenticated()
            response = self._graph_request("GET", f"/users/{self._user_email}")
            return response.status_code == 200
        except (OutlookError, ProviderUnavailable, requests.RequestException):
            return False

    def authenticate(self) -> bool:
        """Acquire an app-only token from Azure AD.

        Returns:
            True if authentication successful

        Raises:
            ProviderUnavailable: If credentials are missing
            OutlookError: If Azure AD rejects the credentials
        """
        if not self.is_configured():
            raise ProviderUnavailable("Outlook credentials not configured")

        result = self._get_msal_app().acquire_token_for_client(scopes=GRAPH_SCOPES)

        if "access_token" not in result:
            error = result.get("error_description", result.get("error", "Unknown"))
            raise OutlookError(f"Authentication failed: {error}")

        self._access_token = result["access_token"]
        expires_in = result.get("expires_in", 3600)
        self._token_expiry = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        logger.info(
            "Outlook authentication successful",
            extra={"context": {"user": self._user_email}},
        )
        return True

    # -------------------------------------------------------------------------
    # Calendar
    # -------------------------------------------------------------------------

    def get_events(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        """Get calendar events overlapping [start, end).

        Args:
            start: Range start, naive local time
            end: Range end, naive local time

        Returns:
            Events ordered by start time

        Raises:
            ProviderUnavailable: If credentials are missing
            OutlookError: If calendar read fails
        """
        self._ensure_authenticated()

        params = {
            "startDateTime": _to_graph_utc(start) + "Z",
            "endDateTime": _to_graph_utc(end) + "Z",
            "$orderby": "start/dateTime",
            "$top": "250",
            "$select": _EVENT_FIELDS,
        }
        response = self.with_retry(
            lambda: self._graph_request(
                "GET", f"/users/{self._user_email}/calendarView", params=params
            ),
            operation="get_events",
            exceptions=(requests.ConnectionError, requests.Timeout),
        )
        if response.status_code != 200:
            raise OutlookError(f"Calendar read failed ({response.status_code}): {response.text}")

        events = [self._parse_event(evt) for evt in response.json().get("value", [])]
        logger.debug(
            f"Retrieved {len(events)} calendar events",
            extra={"context": {"count": len(events), "start": start, "end": end}},
        )
        return events

    def create_event(
        self,
        subject: str,
        start: datetime,
        duration_minutes: int = 30,
        attendees: Optional[list[str]] = None,
        body: Optional[str] = None,
        location: Optional[str] = None,
        online_meeting: bool = False,
    ) -> CalendarEvent:
        """Create a calendar event.

        Returns:
            The created event (id empty in dry-run mode)

        Raises:
            ProviderUnavailable: If credentials are missing
            OutlookError: If event creation fails
        """
        end = start + timedelta(minutes=duration_minutes)
        event = CalendarEvent(
            subject=subject,
            start=start,
            end=end,
            attendees=list(attendees or []),
            location=location,
            body=body or "",
        )

        if self._config.dry_run:
            logger.info(
                f"DRY RUN: Would create event {subject}",
                extra={"context": {"subject": subject, "start": start}},
            )
            return event

        self._ensure_authenticated()

        payload: dict[str, Any] = {
            "subject": subject,
            "start": {"dateTime": _to_graph_utc(start), "timeZone": "UTC"},
            "end": {"dateTime": _to_graph_utc(end), "timeZone": "UTC"},
        }
        if body:
            payload["body"] = {"contentType": "Text", "content": body}
        if location:
            payload["location"] = {"displayName": location}
        if attendees:
            payload["attendees"] = [
                {"emailAddress": {"address": addr}, "type": "required"} for addr in attendees
            ]
        if online_meeting:
            payload["isOnlineMeeting"] = True
            payload["onlineMeetingProvider"] = "teamsForBusiness"

        response = self._graph_request(
            "POST", f"/users/{self._user_email}/events", json_data=payload
        )
        if response.status_code != 201:
            raise OutlookError(f"Event creation failed ({response.status_code}): {response.text}")

        created = self._parse_event(response.json())
        logger.info(
            f"Calendar event created: {subject}",
            extra={"context": {"subject": subject, "start": start, "event_id": created.id}},
        )
        return created

    # -------------------------------------------------------------------------
    # Mail
    # -------------------------------------------------------------------------

    def list_messages(self, max_results: int = 10, query: Optional[str] = None) -> list[EmailMessage]:
        """List inbox messages, newest first unless searching.

        Raises:
            ProviderUnavailable: If credentials are missing
            OutlookError: If inbox read fails
        """
        self._ensure_authenticated()

        params = build_message_params(max_results, query)
        response = self.with_retry(
            lambda: self._graph_request(
                "GET", f"/users/{self._user_email}/mailFolders/inbox/messages", params=params
            ),
            operation="list_messages",
            exceptions=(requests.ConnectionError, requests.Timeout),
        )
        if response.status_code != 200:
            raise OutlookError(f"Inbox read failed ({response.status_code}): {response.text}")

        messages = [self._parse_message(msg) for msg in response.json().get("value", [])]
        logger.debug(
            f"Retrieved {len(messages)} inbox messages",
            extra={"context": {"count": len(messages), "query": query}},
        )
        return messages

    def send_email(self, to: str, subject: str, body: str) -> str:
        """Send a plain-text email.

        Returns:
            Pseudo message id (empty string for dry_run)

        Raises:
            ProviderUnavailable: If credentials are missing
            OutlookError: If send fails
        """
        if self._config.dry_run:
            logger.info(
                f"DRY RUN: Would send email to {to}: {subject}",
                extra={"context": {"to": to, "subject": subject}},
            )
            return ""

        self._ensure_authenticated()

        payload = {
            "message": self._message_payload(to, subject, body),
            "saveToSentItems": True,
        }
        response = self._graph_request(
            "POST", f"/users/{self._user_email}/sendMail", json_data=payload
        )
        if response.status_code != 202:
            raise OutlookError(f"Send failed ({response.status_code}): {response.text}")

        logger.info(f"Email sent to {to}", extra={"context": {"to": to, "subject": subject}})
        return f"sent-{datetime.now(timezone.utc).isoformat()}"

    def create_draft(self, to: str, subject: str, body: str) -> str:
        """Create a draft in the mailbox.

        Returns:
            Draft message ID

        Raises:
            ProviderUnavailable: If credentials are missing
            OutlookError: If draft creation fails
        """
        self._ensure_authenticated()

        response = self._graph_request(
            "POST",
            f"/users/{self._user_email}/messages",
            json_data=self._message_payload(to, subject, body),
        )
        if response.status_code != 201:
            raise OutlookError(
                f"Draft creation failed ({response.status_code}): {response.text}"
            )

        draft_id = response.json().get("id", "")
        logger.info(f"Draft created for {to}", extra={"context": {"to": to, "subject": subject}})
        return draft_id

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _message_payload(to: str, subject: str, body: str) -> dict[str, Any]:
        return {
            "subject": subject,
            "body": {"contentType": "Text", "content": body},
            "toRecipients": [{"emailAddress": {"address": to}}],
        }

    @staticmethod
    def _parse_event(evt: dict[str, Any]) -> CalendarEvent:
        online = evt.get("onlineMeeting")
        return CalendarEvent(
            id=evt.get("id", ""),
            subject=evt.get("subject") or "",
            start=parse_graph_datetime(evt["start"]["dateTime"]),
            end=parse_graph_datetime(evt["end"]["dateTime"]),
            attendees=[
                a["emailAddress"]["address"]
                for a in evt.get("attendees", [])
                if a.get("emailAddress", {}).get("address")
            ],
            location=(evt.get("location") or {}).get("displayName") or None,
            online_meeting_url=online.get("joinUrl") if isinstance(online, dict) else None,
            body=(evt.get("body") or {}).get("content") or "",
        )

    @staticmethod
    def _parse_message(msg: dict[str, Any]) -> EmailMessage:
        sender = (msg.get("from") or {}).get("emailAddress") or {}
        received = msg.get("receivedDateTime")
        return EmailMessage(
            id=msg.get("id", ""),
            from_address=sender.get("address", ""),
            from_name=sender.get("name", ""),
            to=[
                r["emailAddress"]["address"]
                for r in msg.get("toRecipients", [])
                if r.get("emailAddress", {}).get("address")
            ],
            subject=msg.get("subject") or "",
            body=(msg.get("body") or {}).get("content") or "",
            snippet=msg.get("bodyPreview") or "",
            received_at=parse_graph_datetime(received) if received else None,
            is_read=msg.get("isRead", False),
            conversation_id=msg.get("conversationId"),
        )

    def _get_msal_app(self) -> msal.ConfidentialClientApplication:
        if self._msal_app is None:
            self._msal_app = msal.ConfidentialClientApplication(
                client_id=self._config.outlook_client_id,
                client_credential=self._config.outlook_client_secret,
                authority=f"https://login.microsoftonline.com/{self._config.outlook_tenant_id}",
            )
        return self._msal_app

    def _ensure_authenticated(self) -> None:
        """Ensure we hold a token that is not about to expire.

        Raises:
            ProviderUnavailable: If credentials are missing
            OutlookError: If authentication fails
        """
        if not self.is_configured():
            raise ProviderUnavailable("Outlook credentials not configured")

        now = datetime.now(timezone.utc)
        if self._access_token and self._token_expiry:
            if now < self._token_expiry - timedelta(minutes=5):
                return

        self.authenticate()

    def _graph_request(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, str]] = None,
    ) -> requests.Response:
        """Make an authenticated request to Microsoft Graph.

        Re-authenticates and retries once on 401.

        Raises:
            OutlookError: If not authenticated
        """
        if not self._access_token:
            raise OutlookError("Not authenticated, call authenticate() first")

        url = f"{GRAPH_BASE_URL}{endpoint}"
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }
        response = requests.request(
            method=method,
            url=url,
            headers=headers,
            json=json_data,
            params=params,
            timeout=REQUEST_TIMEOUT,
        )

        if response.status_code == 401:
            logger.warning("Token expired, re-authenticating")
            self._access_token = None
            self._token_expiry = None
            self.authenticate()
            headers["Authorization"] = f"Bearer {self._access_token}"
            response = requests.request(
                method=method,
                url=url,
                headers=headers,
                json=json_data,
                params=params,
                timeout=REQUEST_TIMEOUT,
            )

        return response
