"""HTTP health checks attached to target pool load balancers.

Health checks are global resources referenced by self-link from regional
target pools. A health check is a sibling of the pool, not a child: it
survives pool deletion and the provider refuses to delete it while a pool
still references it.
"""

from typing import Any

from gcelb.models.healthcheck import (
    HCProtocol,
    HealthCheck,
    HealthCheckFilterOptions,
    HealthCheckOptions,
)
from gcelb.models.targetpool import TargetPool
from gcelb.services.base import BaseService, InvalidArgumentError, ResourceNotFoundError
from gcelb.services.operations import OperationScope, OperationWaiter
from gcelb.utils.logging import get_logger

logger = get_logger(__name__)


def validate_health_check_options(options: HealthCheckOptions) -> None:
    """Reject health check options that cannot be created.

    Raises:
        InvalidArgumentError: If the name is missing or the protocol is not HTTP
    """
    if not options.name:
        raise InvalidArgumentError("A health check name is required")
    if options.protocol != HCProtocol.HTTP:
        raise InvalidArgumentError(
            f"Only HTTP health checks are supported, got {options.protocol}"
        )


class HealthCheckService(BaseService):
    """Service for load balancer health checks."""

    def __init__(
        self,
        project_id: str | None = None,
        region: str | None = None,
        client: Any | None = None,
    ) -> None:
        """Initialize the HealthCheck service."""
        super().__init__(project_id=project_id, region=region, client=client)
        self._waiter = OperationWaiter(self)

    async def create_health_check(self, options: HealthCheckOptions) -> HealthCheck | None:
        """Create an HTTP health check.

        Args:
            options: Health check parameters; name is required

        Returns:
            The created health check as read back from the provider

        Raises:
            InvalidArgumentError: If the name is missing or the protocol is not HTTP
            OperationFailedError: If the insert operation fails
        """
        validate_health_check_options(options)

        client = await self._get_client()
        project_id = await self._get_project_id()

        logger.info(f"Creating health check {options.name} in project {project_id}")
        request = client.httpHealthChecks().insert(
            project=project_id,
            body=options.to_api_body(),
        )
        operation = await self._execute(
            request, f"create_health_check({options.name})", retry=False
        )
        await self._waiter.wait(operation, OperationScope.GLOBAL)

        return await self.get_health_check(options.name)

    async def attach_health_check(self, load_balancer_id: str, health_check_id: str) -> None:
        """Attach an existing health check to a target pool.

        Args:
            load_balancer_id: Target pool name
            health_check_id: Health check name

        Raises:
            ResourceNotFoundError: If the health check does not exist
            OperationFailedError: If the attach operation fails
        """
        client = await self._get_client()
        project_id = await self._get_project_id()
        region = self._get_region()

        request = client.httpHealthChecks().get(
            project=project_id, httpHealthCheck=health_check_id
        )
        health_check = await self._execute(request, f"get_health_check({health_check_id})")

        logger.info(f"Attaching health check {health_check_id} to {load_balancer_id}")
        request = client.targetPools().addHealthCheck(
            project=project_id,
            region=region,
            targetPool=load_balancer_id,
            body={"healthChecks": [{"healthCheck": health_check["selfLink"]}]},
        )
        operation = await self._execute(
            request,
            f"attach_health_check({load_balancer_id}, {health_check_id})",
            retry=False,
        )
        await self._waiter.wait(operation, OperationScope.REGIONAL, region)

    async def get_health_check(
        self,
        health_check_id: str | None,
        load_balancer_id: str | None = None,
    ) -> HealthCheck | None:
        """Get a health check by name.

        Args:
            health_check_id: Health check name
            load_balancer_id: Target pool to report the check for, if known

        Returns:
            HealthCheck, or None when it does not exist
        """
        if not health_check_id:
            return None

        client = await self._get_client()
        project_id = await self._get_project_id()

        request = client.httpHealthChecks().get(
            project=project_id, httpHealthCheck=health_check_id
        )
        try:
            response = await self._execute(request, f"get_health_check({health_check_id})")
        except ResourceNotFoundError:
            logger.debug(f"Health check {health_check_id} not found")
            return None

        return HealthCheck.from_api_response(response, load_balancer_id)

    async def get_health_check_name(self, load_balancer_id: str) -> str | None:
        """Name of the first health check attached to a target pool.

        Args:
            load_balancer_id: Target pool name

        Returns:
            Health check short name, or None when the pool has none
        """
        client = await self._get_client()
        project_id = await self._get_project_id()

        request = client.targetPools().get(
            project=project_id,
            region=self._get_region(),
            targetPool=load_balancer_id,
        )
        response = await self._execute(request, f"get_target_pool({load_balancer_id})")
        return TargetPool.from_api_response(response).health_check_name

    async def list_lb_health_checks(
        self,
        filter_options: HealthCheckFilterOptions | None = None,
    ) -> list[HealthCheck]:
        """List the health checks of every load balancer in the region.

        Only the first health check of each target pool is reported.

        Args:
            filter_options: Optional criteria the results must match

        Returns:
            At most one HealthCheck per target pool
        """
        client = await self._get_client()
        project_id = await self._get_project_id()
        region = self._get_region()

        health_checks: list[HealthCheck] = []

        request = client.targetPools().list(project=project_id, region=region)
        while request is not None:
            response = await self._execute(
                request, f"list_target_pools({project_id}, {region})"
            )

            for item in response.get("items", []):
                pool = TargetPool.from_api_response(item)
                health_check_name = pool.health_check_name
                if health_check_name is None:
                    continue

                health_check = await self.get_health_check(health_check_name, pool.pool_name)
                if health_check is None:
                    logger.warning(
                        f"Target pool {pool.pool_name} references missing health check "
                        f"{health_check_name}"
                    )
                    continue

                if filter_options is None or filter_options.matches(health_check):
                    health_checks.append(health_check)

            request = client.targetPools().list_next(
                previous_request=request, previous_response=response
            )

        logger.info(f"Found {len(health_checks)} load balancer health checks")
        return health_checks

    async def modify_health_check(
        self,
        health_check_id: str,
        options: HealthCheckOptions,
    ) -> HealthCheck | None:
        """Update an existing health check in place.

        Args:
            health_check_id: Health check name
            options: New values; unset fields keep their current value

        Returns:
            The updated health check

        Raises:
            InvalidArgumentError: If options try to rename the health check
            ResourceNotFoundError: If the health check does not exist
        """
        if options.name is not None and options.name != health_check_id:
            raise InvalidArgumentError("Cannot rename load balancer health checks in GCE")

        client = await self._get_client()
        project_id = await self._get_project_id()

        request = client.httpHealthChecks().get(
            project=project_id, httpHealthCheck=health_check_id
        )
        body = await self._execute(request, f"get_health_check({health_check_id})")
        body.update(options.to_api_body())

        logger.info(f"Updating health check {health_check_id}")
        request = client.httpHealthChecks().update(
            project=project_id,
            httpHealthCheck=health_check_id,
            body=body,
        )
        operation = await self._execute(
            request, f"modify_health_check({health_check_id})", retry=False
        )
        await self._waiter.wait(operation, OperationScope.GLOBAL)

        return await self.get_health_check(health_check_id)

    async def remove_health_check(self, health_check_id: str) -> None:
        """Delete a health check.

        Fails while any target pool still references the check.

        Args:
            health_check_id: Health check name

        Raises:
            OperationFailedError: If the provider rejects the deletion
        """
        client = await self._get_client()
        project_id = await self._get_project_id()

        logger.info(f"Deleting health check {health_check_id}")
        request = client.httpHealthChecks().delete(
            project=project_id, httpHealthCheck=health_check_id
        )
        operation = await self._execute(
            request, f"remove_health_check({health_check_id})", retry=False
        )
        await self._waiter.wait(operation, OperationScope.GLOBAL)


# Singleton instance
_healthcheck_service: HealthCheckService | None = None


async def get_healthcheck_service() -> HealthCheckService:
    """Get the singleton HealthCheckService instance.

    Returns:
        HealthCheckService instance
    """
    global _healthcheck_service
    if _healthcheck_service is None:
        _healthcheck_service = HealthCheckService()
    return _healthcheck_service


def reset_healthcheck_service() -> None:
    """Reset the singleton HealthCheckService (mainly for testing)."""
    global _healthcheck_service
    _healthcheck_service = None
