"""Google Cloud authentication management.

Uses Application Default Credentials (ADC) for all API calls.
"""

import asyncio
from typing import Any

import google.auth
import google.auth.transport.requests
from google.auth.exceptions import DefaultCredentialsError, RefreshError

from gcelb.utils.logging import get_logger

logger = get_logger(__name__)

COMPUTE_SCOPES = [
    "https://www.googleapis.com/auth/compute",
]


class AuthError(Exception):
    """Authentication error."""

    pass


class AuthManager:
    """Manages Google Cloud credentials for the Compute Engine API."""

    def __init__(self) -> None:
        """Initialize the auth manager."""
        self._credentials: Any | None = None
        self._project_id: str | None = None
        self._initialized = False

    async def initialize(self) -> None:
        """Load Application Default Credentials, refreshing them if expired.

        Raises:
            AuthError: If credentials cannot be found or refreshed
        """
        if self._initialized:
            return

        try:
            credentials, project_id = await asyncio.to_thread(
                google.auth.default, scopes=COMPUTE_SCOPES
            )
        except DefaultCredentialsError as e:
            raise AuthError(
                "Google Cloud credentials not found. "
                "Please run 'gcloud auth application-default login'. "
                f"Error: {e}"
            ) from e

        if not credentials.valid and credentials.expired:
            logger.info("Credentials expired, refreshing")
            try:
                request = google.auth.transport.requests.Request()
                await asyncio.to_thread(credentials.refresh, request)
            except RefreshError as e:
                raise AuthError(
                    "Failed to refresh expired credentials. "
                    "Please run 'gcloud auth application-default login'. "
                    f"Error: {e}"
                ) from e

        self._credentials = credentials
        self._project_id = project_id
        self._initialized = True
        logger.info(f"Authenticated with Application Default Credentials (project: {project_id})")

    @property
    def credentials(self) -> Any:
        """Loaded credentials.

        Raises:
            AuthError: If initialize() has not completed
        """
        if not self._initialized or self._credentials is None:
            raise AuthError("Auth manager not initialized. Call initialize() first.")
        return self._credentials

    @property
    def project_id(self) -> str | None:
        """Project ID reported by ADC, if any."""
        return self._project_id


# Global auth manager instance
_auth_manager: AuthManager | None = None


async def get_auth_manager() -> AuthManager:
    """Get the initialized global AuthManager.

    Returns:
        AuthManager instance

    Raises:
        AuthError: If authentication fails
    """
    global _auth_manager
    if _auth_manager is None:
        manager = AuthManager()
        await manager.initialize()
        _auth_manager = manager
    return _auth_manager


def reset_auth_manager() -> None:
    """Reset the global auth manager (mainly for testing)."""
    global _auth_manager
    _auth_manager = None
