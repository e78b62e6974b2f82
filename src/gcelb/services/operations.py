"""Completion protocol for Compute Engine long-running operations.

Every mutating Compute Engine call returns an Operation resource instead of
the finished result. Dependent mutations must not be issued until that
operation reaches ``DONE``, so every mutation in gcelb is followed by
:meth:`OperationWaiter.wait`.
"""

import asyncio
from enum import StrEnum
from typing import Any

from gcelb.services.base import BaseService, ServiceError
from gcelb.utils.logging import get_logger

logger = get_logger(__name__)

OPERATION_DONE = "DONE"


class OperationScope(StrEnum):
    """Collection an operation lives in."""

    GLOBAL = "GLOBAL"
    REGIONAL = "REGIONAL"


class OperationFailedError(ServiceError):
    """An operation finished with an error."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors or []


class OperationTimeoutError(ServiceError):
    """An operation did not finish within the configured timeout."""

    pass


class OperationWaiter:
    """Blocks until a Compute Engine operation reaches a terminal status.

    Polls use the owning service's client, project and retry policy.
    """

    def __init__(self, service: BaseService) -> None:
        self._service = service

    async def wait(
        self,
        operation: dict[str, Any],
        scope: OperationScope,
        region: str | None = None,
    ) -> dict[str, Any]:
        """Wait for an operation to finish.

        Args:
            operation: Operation resource returned by a mutating call
            scope: Whether the operation is global or regional
            region: Region of a regional operation (defaults to the service region)

        Returns:
            The finished operation resource

        Raises:
            OperationFailedError: If the operation finished with an error
            OperationTimeoutError: If the operation is still running at the deadline
        """
        service = self._service
        config = service.config
        name = operation.get("name", "")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + config.operation_timeout

        while operation.get("status") != OPERATION_DONE:
            if loop.time() >= deadline:
                raise OperationTimeoutError(
                    f"Operation {name} did not complete within {config.operation_timeout}s "
                    f"(last status: {operation.get('status')})"
                )

            await asyncio.sleep(config.operation_poll_interval)
            operation = await self._poll(name, scope, region)
            logger.debug(f"Operation {name} status: {operation.get('status')}")

        self._raise_for_error(operation)
        logger.debug(f"Operation {name} ({operation.get('operationType')}) completed")
        return operation

    async def _poll(
        self, name: str, scope: OperationScope, region: str | None
    ) -> dict[str, Any]:
        service = self._service
        client = await service._get_client()
        project_id = await service._get_project_id()

        if scope is OperationScope.GLOBAL:
            request = client.globalOperations().get(project=project_id, operation=name)
        else:
            request = client.regionOperations().get(
                project=project_id,
                region=region or service._get_region(),
                operation=name,
            )

        result: dict[str, Any] = await service._execute(
            request, f"get_operation({name})"
        )
        return result

    @staticmethod
    def _raise_for_error(operation: dict[str, Any]) -> None:
        errors = (operation.get("error") or {}).get("errors") or []
        if not errors:
            return

        first = errors[0]
        message = first.get("message") or first.get("code") or "unknown error"
        raise OperationFailedError(
            f"Operation {operation.get('name', '')} failed: {message}",
            operation.get("httpErrorStatusCode"),
            errors,
        )
