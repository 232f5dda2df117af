"""Core package - Configuration, logging, exceptions.

This package provides foundational infrastructure used by all other layers.

Modules:
    - config: Environment and configuration management
    - logging: Structured JSON logging
    - exceptions: Custom exception hierarchy
    - services: Provider availability registry
"""

from crmpilot.core.exceptions import (
    ConfigurationError,
    CrmPilotError,
    DatabaseError,
    IntegrationError,
    NotFoundError,
    OutlookError,
    ProviderUnavailable,
    ValidationError,
)

__all__ = [
    "CrmPilotError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "DatabaseError",
    "IntegrationError",
    "OutlookError",
    "ProviderUnavailable",
]
