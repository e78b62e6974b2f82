"""Unit tests for authentication manager."""

from unittest.mock import MagicMock, patch

import pytest
from google.auth.exceptions import DefaultCredentialsError, RefreshError

from gcelb.services.auth import (
    COMPUTE_SCOPES,
    AuthError,
    AuthManager,
    get_auth_manager,
    reset_auth_manager,
)


def _credentials(valid: bool = True) -> MagicMock:
    creds = MagicMock()
    creds.valid = valid
    creds.expired = not valid
    return creds


class TestAuthManager:
    """Tests for AuthManager."""

    @pytest.mark.asyncio
    async def test_loads_adc_with_compute_scope(self) -> None:
        """Test that ADC is loaded once, with the Compute Engine scope."""
        creds = _credentials()

        with patch("google.auth.default", return_value=(creds, "adc-project")) as mock_default:
            manager = AuthManager()
            await manager.initialize()
            await manager.initialize()

        mock_default.assert_called_once_with(scopes=COMPUTE_SCOPES)
        assert manager.credentials is creds
        assert manager.project_id == "adc-project"

    @pytest.mark.asyncio
    async def test_adc_without_project(self) -> None:
        """Test credentials that carry no default project."""
        with patch("google.auth.default", return_value=(_credentials(), None)):
            manager = AuthManager()
            await manager.initialize()

        assert manager.project_id is None

    @pytest.mark.asyncio
    async def test_expired_credentials_are_refreshed(self) -> None:
        """Test that expired credentials are refreshed before use."""
        creds = _credentials(valid=False)

        with (
            patch("google.auth.default", return_value=(creds, "adc-project")),
            patch("google.auth.transport.requests.Request") as mock_request,
        ):
            await AuthManager().initialize()

        creds.refresh.assert_called_once_with(mock_request.return_value)

    @pytest.mark.asyncio
    async def test_refresh_failure(self) -> None:
        """Test that a failed refresh is an AuthError with remediation."""
        creds = _credentials(valid=False)
        creds.refresh.side_effect = RefreshError("token revoked")

        with (
            patch("google.auth.default", return_value=(creds, "adc-project")),
            patch("google.auth.transport.requests.Request"),
            pytest.raises(AuthError, match="Failed to refresh") as exc_info,
        ):
            await AuthManager().initialize()

        assert "gcloud auth application-default login" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_credentials(self) -> None:
        """Test that absent ADC is an AuthError with remediation."""
        with (
            patch("google.auth.default", side_effect=DefaultCredentialsError("none")),
            pytest.raises(AuthError, match="credentials not found") as exc_info,
        ):
            await AuthManager().initialize()

        assert "gcloud auth application-default login" in str(exc_info.value)

    def test_credentials_before_initialize(self) -> None:
        """Test that credentials are unavailable until initialized."""
        with pytest.raises(AuthError, match="not initialized"):
            _ = AuthManager().credentials


class TestGetAuthManager:
    """Tests for the auth manager singleton."""

    @pytest.mark.asyncio
    async def test_singleton_until_reset(self) -> None:
        """Test that the initialized manager is shared until reset."""
        with patch("google.auth.default", return_value=(_credentials(), "adc-project")):
            first = await get_auth_manager()
            second = await get_auth_manager()
            reset_auth_manager()
            third = await get_auth_manager()

        assert first is second
        assert first is not third
        assert first.project_id == "adc-project"

    @pytest.mark.asyncio
    async def test_failure_is_not_cached(self) -> None:
        """Test that a failed initialization is retried on the next call."""
        with patch("google.auth.default", side_effect=DefaultCredentialsError("none")):
            with pytest.raises(AuthError):
                await get_auth_manager()

        with patch("google.auth.default", return_value=(_credentials(), "adc-project")):
            manager = await get_auth_manager()

        assert manager.project_id == "adc-project"
