"""Tests for the offline provider stand-in."""

from datetime import datetime

import pytest

from crmpilot.core.config import Config
from crmpilot.core.exceptions import ProviderUnavailable
from crmpilot.integrations.offline import OfflineOutlookClient, get_outlook_client
from crmpilot.integrations.outlook import OutlookClient


class TestOfflineOutlookClient:
    """Tests for OfflineOutlookClient."""

    def test_health_check_returns_false(self):
        assert OfflineOutlookClient().health_check() is False

    def test_is_configured_returns_false(self):
        assert OfflineOutlookClient().is_configured() is False

    def test_reads_are_empty(self):
        client = OfflineOutlookClient()
        assert client.get_events(datetime(2026, 3, 4), datetime(2026, 3, 5)) == []
        assert client.list_messages(10, "is:unread") == []

    @pytest.mark.parametrize(
        "call",
        [
            lambda c: c.create_event("Demo", datetime(2026, 3, 5, 9, 0), duration_minutes=30),
            lambda c: c.send_email("a@b.example", "s", "b"),
            lambda c: c.create_draft("a@b.example", "s", "b"),
        ],
    )
    def test_writes_raise(self, call):
        with pytest.raises(ProviderUnavailable, match="not connected"):
            call(OfflineOutlookClient())

    def test_custom_reason(self):
        with pytest.raises(ProviderUnavailable, match="maintenance"):
            OfflineOutlookClient(reason="Mailbox under maintenance").send_email("a", "s", "b")


class TestGetOutlookClient:
    """Factory picks the live client only when credentials are complete."""

    def _use_config(self, monkeypatch, config):
        monkeypatch.setattr("crmpilot.core.services.get_config", lambda: config)
        monkeypatch.setattr("crmpilot.integrations.outlook.get_config", lambda: config)

    def test_offline_without_credentials(self, monkeypatch, test_config):
        self._use_config(monkeypatch, test_config)
        assert isinstance(get_outlook_client(), OfflineOutlookClient)

    def test_offline_with_partial_credentials(self, monkeypatch, test_config):
        test_config.outlook_client_id = "id"
        self._use_config(monkeypatch, test_config)
        assert isinstance(get_outlook_client(), OfflineOutlookClient)

    def test_live_client_when_configured(self, monkeypatch, tmp_path):
        config = Config(
            db_path=tmp_path / "test.db",
            log_path=tmp_path / "logs",
            outlook_client_id="id",
            outlook_client_secret="secret",
            outlook_tenant_id="tenant",
            outlook_user_email="owner@example.com",
        )
        self._use_config(monkeypatch, config)
        client = get_outlook_client()
        assert isinstance(client, OutlookClient)
        assert client.is_configured() is True
