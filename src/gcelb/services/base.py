"""Base service class for Compute Engine API interactions.

This module provides the error taxonomy shared by every gcelb service and a
base class with client construction, project/region resolution, retry logic,
timeout management and translation of provider failures.
"""

import asyncio
import re
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httplib2
from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import RefreshError
from googleapiclient import discovery
from googleapiclient.errors import HttpError

from gcelb.config import get_config
from gcelb.services.auth import AuthError, AuthManager, get_auth_manager
from gcelb.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ServiceError(Exception):
    """Base class for gcelb service errors."""

    pass


class TransportError(ServiceError):
    """Network or connectivity error reaching the provider."""

    pass


class ProviderError(ServiceError):
    """The provider accepted the request but reported a failure."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        content: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.content = content


class PermissionError(ProviderError):
    """Permission denied error."""

    pass


class QuotaExceededError(ProviderError):
    """API quota exceeded error."""

    pass


class ServiceNotEnabledError(ProviderError):
    """Compute Engine API not enabled for the project."""

    pass


class ResourceNotFoundError(ProviderError):
    """Resource not found error."""

    pass


class InvalidArgumentError(ServiceError):
    """The request cannot be expressed against the provider."""

    pass


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, TransportError):
        return True
    # Only plain provider errors (5xx) are transient; subclasses never are
    return (
        type(error) is ProviderError
        and error.status_code is not None
        and error.status_code >= 500
    )


class BaseService:
    """Base class for Compute Engine service wrappers.

    This class provides:
    - Lazy Compute Engine v1 client construction
    - Project and region resolution
    - Automatic retry with exponential backoff for reads
    - Timeout handling
    - Translation of provider failures into the gcelb error taxonomy
    """

    def __init__(
        self,
        project_id: str | None = None,
        region: str | None = None,
        client: Any | None = None,
    ) -> None:
        """Initialize the base service.

        Args:
            project_id: GCP project (defaults to config, then ADC project)
            region: GCP region (defaults to config)
            client: Pre-built Compute Engine client, mainly for testing
        """
        self.config = get_config()
        self._auth_manager: AuthManager | None = None
        self._project_id = project_id
        self._region = region
        self._client: Any | None = client

    async def _get_auth_manager(self) -> "AuthManager":
        """Get the auth manager (lazy-loaded).

        Returns:
            AuthManager instance
        """
        if self._auth_manager is None:
            self._auth_manager = await get_auth_manager()
        return self._auth_manager

    async def _get_client(self) -> Any:
        """Get or create the Compute Engine API client.

        Returns:
            Initialized compute client
        """
        if self._client is None:
            auth_manager = await self._get_auth_manager()
            self._client = discovery.build(
                "compute",
                "v1",
                credentials=auth_manager.credentials,
                cache_discovery=False,
            )
        return self._client

    async def _get_project_id(self) -> str:
        """Resolve the project to operate on.

        Raises:
            InvalidArgumentError: If no project is configured anywhere
        """
        if self._project_id is None:
            project_id = self.config.gcloud_project_id
            if project_id is None:
                auth_manager = await self._get_auth_manager()
                project_id = auth_manager.project_id
            if not project_id:
                raise InvalidArgumentError(
                    "No GCP project configured. Set GCELB_GCLOUD_PROJECT_ID or pass project_id."
                )
            self._project_id = project_id
        return self._project_id

    def _get_region(self) -> str:
        """Resolve the region to operate on.

        Raises:
            InvalidArgumentError: If no region is configured
        """
        if self._region is None:
            if not self.config.gcloud_region:
                raise InvalidArgumentError(
                    "No GCP region configured. Set GCELB_GCLOUD_REGION or pass region."
                )
            self._region = self.config.gcloud_region
        return self._region

    async def _execute(self, request: Any, operation_name: str, retry: bool = True) -> Any:
        """Execute a discovery request in a worker thread.

        Args:
            request: googleapiclient HttpRequest
            operation_name: Human-readable operation name for logging
            retry: Whether transient failures may be retried; mutations pass False

        Returns:
            Decoded response body
        """

        async def _run() -> Any:
            return await asyncio.to_thread(request.execute)

        return await self._execute_with_retry(_run, operation_name, retry=retry)

    async def _execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str,
        retry: bool = True,
    ) -> T:
        """Execute an operation with retry logic.

        Args:
            operation: Async callable to execute
            operation_name: Human-readable operation name for logging
            retry: Whether transient failures may be retried

        Returns:
            Result of the operation

        Raises:
            TransportError: Network failure or timeout after all attempts
            ProviderError: Provider-reported failure (or a subclass)
            AuthError: Credentials rejected
            ServiceError: Any other unexpected failure
        """
        max_retries = self.config.api_max_retries if retry else 0
        retry_delay = self.config.api_retry_delay
        backoff = self.config.api_retry_backoff

        last_exception: Exception | None = None

        for attempt in range(max_retries + 1):
            try:
                logger.debug(
                    f"Executing {operation_name} (attempt {attempt + 1}/{max_retries + 1})"
                )

                # Execute with timeout
                result: T = await asyncio.wait_for(
                    operation(),
                    timeout=self.config.api_timeout,
                )

                if attempt > 0:
                    logger.info(f"{operation_name} succeeded after {attempt + 1} attempts")

                return result

            except TimeoutError:
                last_exception = TransportError(
                    f"{operation_name} timed out after {self.config.api_timeout}s"
                )
                logger.warning(f"{operation_name} timed out on attempt {attempt + 1}")

            except HttpError as e:
                error = self._from_status(
                    operation_name,
                    e.resp.status,
                    getattr(e, "reason", None) or str(e),
                    self._decode_content(e.content),
                )
                if not _is_retryable(error):
                    logger.error(f"{operation_name} failed: {error}")
                    raise error from e
                last_exception = error
                logger.warning(f"{operation_name} failed with provider error: {e}")

            except GoogleAPIError as e:
                error = self._from_status(operation_name, getattr(e, "code", None), str(e), None)
                if not _is_retryable(error):
                    logger.error(f"{operation_name} failed: {error}")
                    raise error from e
                last_exception = error
                logger.warning(f"{operation_name} failed with API error: {e}")

            except RefreshError as e:
                logger.error(f"{operation_name} failed due to authentication: {e}")
                raise AuthError(
                    f"Authentication failed for {operation_name}. "
                    "Please run 'gcloud auth application-default login'. "
                    f"Error: {e}"
                ) from e

            except (httplib2.HttpLib2Error, OSError) as e:
                last_exception = TransportError(f"{operation_name} failed: {e}")
                logger.warning(f"{operation_name} failed (network): {e}")

            except (ServiceError, AuthError):
                raise

            except Exception as e:
                logger.error(f"{operation_name} failed with unexpected error: {e}")
                # Don't retry unexpected errors
                raise ServiceError(f"{operation_name} failed unexpectedly: {e}") from e

            # Retry logic - only reached if we didn't raise
            if attempt < max_retries:
                wait_time = retry_delay * (backoff**attempt)
                logger.info(f"Retrying {operation_name} in {wait_time:.1f}s...")
                await asyncio.sleep(wait_time)

        # All retries exhausted
        if last_exception:
            logger.error(f"{operation_name} failed after {max_retries + 1} attempts")
            raise last_exception
        raise ServiceError(f"{operation_name} failed after all retries")

    def _from_status(
        self,
        operation_name: str,
        status: int | None,
        message: str,
        content: str | None,
    ) -> Exception:
        """Map a provider status code to a gcelb error.

        Args:
            operation_name: Human-readable operation name
            status: HTTP status code reported by the provider
            message: Provider error message
            content: Raw response body

        Returns:
            Exception instance to raise
        """
        if status == 401:
            return AuthError(
                f"Authentication failed for {operation_name}. "
                "Please run 'gcloud auth application-default login'. "
                f"Error: {message}"
            )

        if status == 403:
            if "has not been used" in message or "has not been enabled" in message:
                api_name = self._extract_api_name(message)
                return ServiceNotEnabledError(
                    f"Google Cloud API not enabled: {api_name}. "
                    f"Enable it at: https://console.cloud.google.com/apis/library/{api_name}. "
                    f"Error: {message}",
                    status,
                    content,
                )
            return PermissionError(
                f"Permission denied for {operation_name}: "
                f"{self._extract_permission_error(message)}",
                status,
                content,
            )

        if status == 404:
            return ResourceNotFoundError(
                f"Resource not found for {operation_name}: {message}", status, content
            )

        if status == 429:
            return QuotaExceededError(
                f"API quota exceeded for {operation_name}. "
                f"Please wait {self.config.gcloud_quota_wait_time}s or request quota increase. "
                f"Error: {message}",
                status,
                content,
            )

        return ProviderError(f"{operation_name} failed: {message}", status, content)

    @staticmethod
    def _decode_content(content: bytes | str | None) -> str | None:
        if isinstance(content, bytes):
            return content.decode("utf-8", errors="replace")
        return content

    def _extract_permission_error(self, error_str: str) -> str:
        """Extract permission details from an error message.

        Args:
            error_str: Permission error message

        Returns:
            Human-readable permission error message
        """
        # Example: "Required 'compute.targetPools.create' permission for ..."
        match = re.search(r"['\"]([a-z]+\.[A-Za-z]+\.[A-Za-z]+)['\"]", error_str)
        if match:
            permission = match.group(1)
            return (
                f"Missing permission: {permission}. "
                f"Grant this permission in IAM or contact your administrator."
            )

        return error_str

    def _extract_api_name(self, error_str: str) -> str:
        """Extract API name from an error message.

        Args:
            error_str: API error message

        Returns:
            API name or generic message
        """
        patterns = [
            r"([a-z]+\.googleapis\.com)",
            r"API \[([^\]]+)\]",
        ]

        for pattern in patterns:
            match = re.search(pattern, error_str)
            if match:
                return match.group(1)

        return "the required API"
