"""Google Compute Engine instance lookup using the Compute Engine API."""

from typing import Any

from gcelb.models.compute import Instance
from gcelb.services.base import BaseService
from gcelb.utils.logging import get_logger

logger = get_logger(__name__)


class InstanceService(BaseService):
    """Read-only lookup of VM instances by name."""

    async def get_instance(self, server_id: str) -> Instance | None:
        """Find an instance in any zone of the project.

        Uses the aggregated list API so the caller does not need to know the
        instance zone.

        Args:
            server_id: Instance name

        Returns:
            Instance, or None when no instance has that name

        Raises:
            PermissionError: If user lacks permission
            ProviderError: If the API call fails
        """
        client = await self._get_client()
        project_id = await self._get_project_id()

        logger.debug(f"Looking up instance {server_id} in project {project_id}")

        request = client.instances().aggregatedList(
            project=project_id,
            filter=f"name = {server_id}",
        )
        while request is not None:
            response = await self._execute(
                request, f"get_instance({project_id}, {server_id})"
            )

            instance = self._find_in_aggregated(response, server_id)
            if instance is not None:
                return instance

            request = client.instances().aggregatedList_next(
                previous_request=request,
                previous_response=response,
            )

        logger.info(f"Instance {server_id} not found in project {project_id}")
        return None

    @staticmethod
    def _find_in_aggregated(response: dict[str, Any], server_id: str) -> Instance | None:
        for _zone_name, zone_data in response.get("items", {}).items():
            for item in zone_data.get("instances", []):
                if item.get("name") == server_id:
                    return Instance.from_api_response(item)
        return None


# Global service instance
_instance_service: InstanceService | None = None


async def get_instance_service() -> InstanceService:
    """Get the global InstanceService instance.

    Returns:
        InstanceService instance
    """
    global _instance_service
    if _instance_service is None:
        _instance_service = InstanceService()
    return _instance_service


def reset_instance_service() -> None:
    """Reset the global Instance service (mainly for testing)."""
    global _instance_service
    _instance_service = None
