"""Offline stand-in for the calendar and mail provider.

Used when Outlook credentials are missing. Reads behave like an empty
mailbox and calendar so the engine keeps working (no busy intervals,
zero meetings, no unread mail). Writes cannot be faked without lying
to the user, so they raise ProviderUnavailable.

Usage:
    from crmpilot.integrations.offline import get_outlook_client

    provider = get_outlook_client()  # OutlookClient or OfflineOutlookClient
"""

from datetime import datetime
from typing import Optional, Union

from crmpilot.core.exceptions import ProviderUnavailable
from crmpilot.core.logging import get_logger
from crmpilot.db.models import CalendarEvent, EmailMessage
from crmpilot.integrations.outlook import OutlookClient

logger = get_logger(__name__)

_UNAVAILABLE = "Calendar and mail are not connected (Outlook credentials missing)"


class OfflineOutlookClient:
    """Provider with nothing behind it.

    No network calls are made. No credentials are needed.
    """

    def __init__(self, reason: str = _UNAVAILABLE) -> None:
        self.reason = reason

    def health_check(self) -> bool:
        return False

    def is_configured(self) -> bool:
        return False

    def get_events(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        logger.debug(
            "OFFLINE: calendar read returns nothing",
            extra={"context": {"start": start, "end": end, "offline": True}},
        )
        return []

    def list_messages(self, max_results: int = 10, query: Optional[str] = None) -> list[EmailMessage]:
        logger.debug(
            "OFFLINE: inbox read returns nothing",
            extra={"context": {"query": query, "offline": True}},
        )
        return []

    def create_event(self, subject: str, start: datetime, **kwargs) -> CalendarEvent:
        raise ProviderUnavailable(self.reason)

    def send_email(self, to: str, subject: str, body: str) -> str:
        raise ProviderUnavailable(self.reason)

    def create_draft(self, to: str, subject: str, body: str) -> str:
        raise ProviderUnavailable(self.reason)


def get_outlook_client() -> Union[OutlookClient, OfflineOutlookClient]:
    """Factory: return real OutlookClient if configured, else offline stand-in."""
    from crmpilot.core.services import get_service_registry

    registry = get_service_registry()
    if registry.is_available("outlook"):
        return OutlookClient()

    status = registry.check("outlook")
    logger.info(
        f"Using OfflineOutlookClient: {status.reason}",
        extra={"context": {"service": "outlook"}},
    )
    return OfflineOutlookClient()
