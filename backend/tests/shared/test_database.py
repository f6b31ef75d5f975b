"""Tests for shared/database.py."""

import os

import jwt
import pytest
from unittest.mock import patch, MagicMock

from shared.database import (
    CLIENT_OPTIONS,
    get_supabase_client,
    get_supabase_anon_client,
    reset_client_cache,
)


SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_SERVICE_ROLE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")


class TestServiceClient:
    def setup_method(self):
        reset_client_cache()

    def teardown_method(self):
        reset_client_cache()

    @patch("shared.database.create_client")
    @patch("shared.database.get_settings")
    def test_creates_client_with_service_role_key(self, mock_settings, mock_create):
        """Should create client with the service role key."""
        mock_settings.return_value.supabase_url = "https://test.supabase.co"
        mock_settings.return_value.supabase_service_role_key = "service-key"
        mock_create.return_value = MagicMock()

        client = get_supabase_client()

        mock_create.assert_called_once()
        assert mock_create.call_args.args == ("https://test.supabase.co", "service-key")
        assert client is mock_create.return_value

    @patch("shared.database.create_client")
    @patch("shared.database.get_settings")
    def test_caches_client(self, mock_settings, mock_create):
        """Should cache the client and not recreate it."""
        mock_settings.return_value.supabase_url = "https://test.supabase.co"
        mock_settings.return_value.supabase_service_role_key = "service-key"
        mock_create.return_value = MagicMock()

        assert get_supabase_client() is get_supabase_client()
        mock_create.assert_called_once()

    @pytest.mark.parametrize("url,key", [("", ""), ("", "service-key"), ("https://test.supabase.co", "")])
    @patch("shared.database.get_settings")
    def test_raises_without_config(self, mock_settings, url, key):
        """Should raise if URL or service role key is missing."""
        mock_settings.return_value.supabase_url = url
        mock_settings.return_value.supabase_service_role_key = key

        with pytest.raises(RuntimeError, match="configuration missing"):
            get_supabase_client()


class TestAnonClient:
    def setup_method(self):
        reset_client_cache()

    def teardown_method(self):
        reset_client_cache()

    @patch("shared.database.create_client")
    @patch("shared.database.get_settings")
    def test_creates_client_with_anon_key(self, mock_settings, mock_create):
        """Should create client with the anon key, separate from the service client."""
        mock_settings.return_value.supabase_url = "https://test.supabase.co"
        mock_settings.return_value.supabase_anon_key = "anon-key"
        mock_settings.return_value.supabase_service_role_key = "service-key"
        mock_create.side_effect = [MagicMock(name="anon"), MagicMock(name="service")]

        anon = get_supabase_anon_client()
        service = get_supabase_client()

        assert mock_create.call_args_list[0].args == ("https://test.supabase.co", "anon-key")
        assert anon is not service

    @patch("shared.database.get_settings")
    def test_raises_without_anon_key(self, mock_settings):
        """Should raise if the anon key is missing."""
        mock_settings.return_value.supabase_url = "https://test.supabase.co"
        mock_settings.return_value.supabase_anon_key = ""

        with pytest.raises(RuntimeError, match="SUPABASE_ANON_KEY"):
            get_supabase_anon_client()


class TestClientTokenHandling:
    """Clients must leave token refresh to SessionManager."""

    def setup_method(self):
        reset_client_cache()

    def teardown_method(self):
        reset_client_cache()

    @staticmethod
    def _settings(mock_settings):
        key = jwt.encode({"role": "anon"}, "test-secret", algorithm="HS256")
        mock_settings.return_value.supabase_url = "https://test.supabase.co"
        mock_settings.return_value.supabase_anon_key = key
        mock_settings.return_value.supabase_service_role_key = key

    @patch("shared.database.create_client")
    @patch("shared.database.get_settings")
    def test_options_passed_to_both_clients(self, mock_settings, mock_create):
        self._settings(mock_settings)

        get_supabase_anon_client()
        get_supabase_client()

        for call in mock_create.call_args_list:
            options = call.kwargs["options"]
            assert options.auto_refresh_token is False
            assert options.persist_session is False
        assert CLIENT_OPTIONS == {"auto_refresh_token": False, "persist_session": False}

    @patch("shared.database.get_settings")
    def test_anon_client_does_not_auto_refresh(self, mock_settings):
        """No background refresher may rotate the refresh token SessionManager holds."""
        self._settings(mock_settings)

        client = get_supabase_anon_client()

        assert client.auth._auto_refresh_token is False
        assert client.auth._persist_session is False


class TestResetClientCache:
    @patch("shared.database.create_client")
    @patch("shared.database.get_settings")
    def test_reset_client_cache(self, mock_settings, mock_create):
        """Should reset the cache and allow new client creation."""
        reset_client_cache()
        mock_settings.return_value.supabase_url = "https://test.supabase.co"
        mock_settings.return_value.supabase_service_role_key = "service-key"
        mock_create.side_effect = [MagicMock(name="client1"), MagicMock(name="client2")]

        client1 = get_supabase_client()
        reset_client_cache()
        client2 = get_supabase_client()

        assert mock_create.call_count == 2
        assert client1 is not client2
        reset_client_cache()


@pytest.mark.skipif(
    not SUPABASE_URL or not SUPABASE_SERVICE_ROLE_KEY,
    reason="SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY environment variables not set"
)
class TestSupabaseIntegration:
    """Integration tests requiring real Supabase credentials.

    Skipped by default. To run them:
        SUPABASE_URL=https://xxx.supabase.co SUPABASE_SERVICE_ROLE_KEY=xxx \
            pytest backend/tests/shared/test_database.py -v -k Integration
    """

    def setup_method(self):
        reset_client_cache()

    def test_service_client_lists_users(self):
        """The service client should have admin access to auth users."""
        from shared.config import get_settings
        get_settings.cache_clear()

        client = get_supabase_client()
        response = client.auth.admin.list_users()
        assert response is not None
