"""Tests for the exception hierarchy."""

import pytest

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


class TestExceptionHierarchy:
    """Every custom exception derives from CrmPilotError."""

    @pytest.mark.parametrize(
        "exc_class",
        [
            ConfigurationError,
            ValidationError,
            NotFoundError,
            DatabaseError,
            IntegrationError,
            OutlookError,
            ProviderUnavailable,
        ],
    )
    def test_inherits_from_base(self, exc_class):
        assert issubclass(exc_class, CrmPilotError)

    def test_provider_errors_are_integration_errors(self):
        assert issubclass(OutlookError, IntegrationError)
        assert issubclass(ProviderUnavailable, IntegrationError)

    def test_catch_base_catches_subclass(self):
        with pytest.raises(CrmPilotError):
            raise NotFoundError("Account 99 not found")


class TestErrorKinds:
    """error_kind is what a failed ActionResult reports."""

    @pytest.mark.parametrize(
        "exc_class,kind",
        [
            (ValidationError, "ValidationError"),
            (NotFoundError, "NotFoundError"),
            (ProviderUnavailable, "ProviderUnavailable"),
            (DatabaseError, "InternalError"),
            (OutlookError, "InternalError"),
            (ConfigurationError, "InternalError"),
        ],
    )
    def test_error_kind(self, exc_class, kind):
        assert exc_class("boom").error_kind == kind
