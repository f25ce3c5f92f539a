"""Tests for channel-manager token caching and the refresh retry policy."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from guestcomms.config import AutomationSettings
from guestcomms.domain.errors import TransientExternalError
from guestcomms.jobs.credentials import ChannelManagerTokenClient, CredentialRefresher

from helpers import FakeClock

SETTINGS = AutomationSettings(
    channel_manager_token_url="https://cm.example.com/v2/authentication/token",
    channel_manager_refresh_token="refresh-abc",
)


def _response(payload, status=200):
    response = MagicMock()
    response.json.return_value = payload
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return response


class TestTokenClient:
    def test_fetches_with_refresh_token_header(self):
        session = MagicMock()
        session.get.return_value = _response({"token": "access-1", "expiresIn": 86400})
        client = ChannelManagerTokenClient(SETTINGS, session=session)

        assert client.get_valid_access_token() == "access-1"

        _, kwargs = session.get.call_args
        assert kwargs["headers"]["refreshToken"] == "refresh-abc"
        assert kwargs["timeout"] == SETTINGS.http_timeout_seconds

    def test_refresh_log_carries_length_not_token(self):
        session = MagicMock()
        session.get.return_value = _response({"token": "access-secret", "expiresIn": 7200})
        client = ChannelManagerTokenClient(SETTINGS, session=session)

        with patch("guestcomms.jobs.credentials.logger") as logger:
            client.get_valid_access_token()

        fields = logger.info.call_args.kwargs["extra"]["extra_fields"]
        assert fields == {"token_len": "13", "expires_in": "7200"}

    def test_caches_until_near_expiry(self):
        clock = FakeClock(datetime(2025, 3, 1, tzinfo=timezone.utc))
        session = MagicMock()
        session.get.side_effect = [
            _response({"token": "access-1", "expiresIn": 3600}),
            _response({"token": "access-2", "expiresIn": 3600}),
        ]
        client = ChannelManagerTokenClient(SETTINGS, session=session, clock=clock)

        assert client.get_valid_access_token() == "access-1"
        clock.now += timedelta(minutes=20)
        assert client.get_valid_access_token() == "access-1"
        clock.now += timedelta(minutes=15)
        assert client.get_valid_access_token() == "access-2"
        assert session.get.call_count == 2

    def test_http_error_is_transient(self):
        session = MagicMock()
        session.get.return_value = _response({}, status=503)
        client = ChannelManagerTokenClient(SETTINGS, session=session)
        with pytest.raises(TransientExternalError):
            client.get_valid_access_token()

    def test_missing_token_is_transient(self):
        session = MagicMock()
        session.get.return_value = _response({"error": "invalid refresh token"})
        client = ChannelManagerTokenClient(SETTINGS, session=session)
        with pytest.raises(TransientExternalError):
            client.get_valid_access_token()

    def test_missing_config(self):
        client = ChannelManagerTokenClient(AutomationSettings(), session=MagicMock())
        with pytest.raises(RuntimeError, match="CHANNEL_MANAGER_TOKEN_URL"):
            client.get_valid_access_token()


class TestRefreshWithRetry:
    def test_success_first_try(self):
        client = MagicMock()
        sleep = MagicMock()
        assert CredentialRefresher(client, sleep=sleep).refresh_with_retry() is True
        sleep.assert_not_called()

    def test_backoff_then_success(self):
        client = MagicMock()
        client.get_valid_access_token.side_effect = [
            TransientExternalError("down"),
            TransientExternalError("down"),
            "token",
        ]
        sleep = MagicMock()

        assert CredentialRefresher(client, sleep=sleep).refresh_with_retry() is True
        assert [c.args[0] for c in sleep.call_args_list] == [5.0, 10.0]

    def test_final_failure_flags_operator_and_never_raises(self):
        client = MagicMock()
        client.get_valid_access_token.side_effect = TransientExternalError("down")
        sleep = MagicMock()

        with patch("guestcomms.jobs.credentials.logger") as mock_logger:
            assert CredentialRefresher(client, sleep=sleep).refresh_with_retry() is False

        assert client.get_valid_access_token.call_count == 3
        assert sleep.call_count == 2
        _, kwargs = mock_logger.error.call_args
        assert kwargs["extra"]["extra_fields"]["needs_operator_attention"] == "true"
