"""Service registry for tracking provider availability.

Tracks whether the calendar/mail provider is configured so callers can
pick the live client or the offline stand-in before any API call is
attempted.

Usage:
    from crmpilot.core.services import get_service_registry

    registry = get_service_registry()
    if registry.is_available("outlook"):
        client = OutlookClient()
    else:
        print(registry.check("outlook").reason)

    # Full readiness report (for CLI diagnostics)
    print(registry.readiness_report().summary)
"""

from dataclasses import dataclass, field
from typing import Optional

from crmpilot.core.config import get_config
from crmpilot.core.exceptions import ConfigurationError
from crmpilot.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ServiceStatus:
    """Status of a single service.

    Attributes:
        name: Human-readable service name
        service_key: Registry lookup key
        configured: Whether credentials are present
        available: Whether the service can be used right now
        reason: Why the service is unavailable (empty if available)
        credentials_present: Which credential fields are set
        credentials_missing: Which credential fields are missing
    """

    name: str
    service_key: str
    configured: bool = False
    available: bool = False
    reason: str = ""
    credentials_present: list[str] = field(default_factory=list)
    credentials_missing: list[str] = field(default_factory=list)


@dataclass
class ReadinessReport:
    """Readiness across all registered services."""

    services: list[ServiceStatus] = field(default_factory=list)
    all_ready: bool = False
    summary: str = ""


class ServiceRegistry:
    """Registry of external services the engine can talk to.

    Checks config once and caches the results.
    """

    def __init__(self) -> None:
        self._statuses: dict[str, ServiceStatus] = {}
        self._refresh()

    def _refresh(self) -> None:
        """Re-check all service configurations against current config."""
        config = get_config()
        self._statuses.clear()

        outlook_creds = {
            "OUTLOOK_CLIENT_ID": config.outlook_client_id,
            "OUTLOOK_CLIENT_SECRET": config.outlook_client_secret,
            "OUTLOOK_TENANT_ID": config.outlook_tenant_id,
            "OUTLOOK_USER_EMAIL": config.outlook_user_email,
        }
        present = [k for k, v in outlook_creds.items() if v]
        missing = [k for k, v in outlook_creds.items() if not v]
        configured = not missing

        if present and missing:
            reason = (
                f"Partial Outlook config: have {', '.join(present)} "
                f"but missing {', '.join(missing)}"
            )
        elif missing:
            reason = "Outlook not configured (no credentials set)"
        else:
            reason = ""

        self._statuses["outlook"] = ServiceStatus(
            name="Microsoft Outlook (Graph API)",
            service_key="outlook",
            configured=configured,
            available=configured,
            reason=reason,
            credentials_present=present,
            credentials_missing=missing,
        )

    def check(self, service_key: str) -> ServiceStatus:
        """Check status of a specific service.

        Args:
            service_key: Service identifier (e.g. "outlook")

        Returns:
            ServiceStatus for the requested service

        Raises:
            KeyError: If service_key is not registered
        """
        if service_key not in self._statuses:
            raise KeyError(
                f"Unknown service '{service_key}'. "
                f"Known services: {', '.join(sorted(self._statuses))}"
            )
        return self._statuses[service_key]

    def is_available(self, service_key: str) -> bool:
        """Quick boolean check: can this service be used right now?"""
        try:
            return self.check(service_key).available
        except KeyError:
            return False

    def require(self, service_key: str) -> None:
        """Raise if a service is not available.

        Raises:
            ConfigurationError: If the service is not available
        """
        status = self.check(service_key)
        if not status.available:
            raise ConfigurationError(f"{status.name} is not available: {status.reason}")

    def readiness_report(self) -> ReadinessReport:
        """Generate a readiness report for all services."""
        services = list(self._statuses.values())
        lines = []
        for svc in services:
            icon = "+" if svc.configured else "-"
            lines.append(f"  [{icon}] {svc.name}: {svc.reason or 'configured'}")

        return ReadinessReport(
            services=services,
            all_ready=all(svc.available for svc in services),
            summary="\n".join(lines),
        )

    def log_status(self) -> None:
        """Log the current service status at startup."""
        for svc in self._statuses.values():
            if svc.available:
                logger.info(
                    f"Service ready: {svc.name}",
                    extra={"context": {"service": svc.service_key}},
                )
            elif svc.credentials_present:
                # Partial config is likely a mistake
                logger.warning(
                    f"Service partially configured: {svc.name} - {svc.reason}",
                    extra={"context": {
                        "service": svc.service_key,
                        "present": svc.credentials_present,
                        "missing": svc.credentials_missing,
                    }},
                )
            else:
                logger.info(
                    f"Service not configured: {svc.name}",
                    extra={"context": {"service": svc.service_key}},
                )


# Singleton
_registry: Optional[ServiceRegistry] = None


def get_service_registry() -> ServiceRegistry:
    """Return the cached ServiceRegistry singleton."""
    global _registry
    if _registry is None:
        _registry = ServiceRegistry()
    return _registry


def reset_service_registry() -> None:
    """Reset the cached registry. Used for testing."""
    global _registry
    _registry = None
