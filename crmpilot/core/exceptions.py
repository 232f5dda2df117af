"""crm-pilot exception hierarchy.

All custom exceptions inherit from CrmPilotError. The dispatcher maps
each family to the error kind reported on a failed ActionResult via
``error_kind``.

Exception Hierarchy:
    CrmPilotError (base)
    ├── ConfigurationError
    ├── ValidationError
    ├── NotFoundError
    ├── DatabaseError
    └── IntegrationError
        ├── OutlookError
        └── ProviderUnavailable
"""


class CrmPilotError(Exception):
    """Base exception for all crm-pilot errors.

    Allows broad exception handling when needed. Subclasses override
    ``error_kind`` with the label surfaced to callers of the dispatcher.
    """

    error_kind = "InternalError"


class ConfigurationError(CrmPilotError):
    """Configuration is invalid or missing.

    Raised when:
        - Required environment variable is missing
        - Configuration file is malformed
        - Path is not writable
    """

    pass


class ValidationError(CrmPilotError):
    """Operation input failed validation.

    Raised when:
        - Required parameter is missing
        - Parameter has the wrong type or format
        - Value is outside the allowed choices
    """

    error_kind = "ValidationError"


class NotFoundError(CrmPilotError):
    """Referenced entity does not exist.

    Raised when:
        - Account id is unknown
        - Free-text account name matches nothing
        - Contact or message lookup comes back empty
    """

    error_kind = "NotFoundError"


class DatabaseError(CrmPilotError):
    """Database operation failed.

    Raised when:
        - Database file cannot be opened
        - Database is locked
        - Query execution fails
        - Foreign key constraint violated
    """

    pass


class IntegrationError(CrmPilotError):
    """External integration failed.

    Base class for provider-specific errors.
    """

    pass


class OutlookError(IntegrationError):
    """Outlook/Microsoft Graph integration failed.

    Raised when:
        - OAuth authentication fails
        - API call fails
        - Email send fails
    """

    pass


class ProviderUnavailable(IntegrationError):
    """Calendar or messaging provider is not authenticated.

    Reads degrade to empty results; writes surface this error.
    """

    error_kind = "ProviderUnavailable"
