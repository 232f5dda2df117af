"""Integrations package - Calendar and mail provider.

Modules:
    - base: Abstract base class for provider clients
    - outlook: Microsoft Graph API client
    - offline: Stand-in used when Outlook is not configured
"""

from crmpilot.integrations.base import IntegrationBase

__all__ = [
    "IntegrationBase",
]
