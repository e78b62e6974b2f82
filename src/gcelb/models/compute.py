"""Google Compute Engine instance model."""

from typing import Any

from pydantic import Field

from gcelb.models.base import BaseModel, parse_timestamp
from gcelb.utils.selflink import SelfLink


class Instance(BaseModel):
    """Model for a Google Compute Engine VM instance.

    Only the fields needed to add the instance to a target pool are kept.
    """

    instance_name: str = Field(..., description="Instance name")
    zone: str | None = Field(None, description="GCP zone")
    region: str | None = Field(None, description="GCP region")
    self_link: str = Field(..., description="Fully-qualified instance URL")
    status: str | None = Field(None, description="Instance status")

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "Instance":
        """Create Instance from Compute Engine API response.

        Args:
            data: API response data from instances.get() or instances.aggregatedList()

        Returns:
            Instance instance

        Example API response structure:
            {
                "name": "web-1",
                "zone": "https://www.googleapis.com/compute/v1/projects/my-project/zones/us-central1-a",
                "status": "RUNNING",
                "selfLink": "https://www.googleapis.com/compute/v1/projects/my-project/zones/us-central1-a/instances/web-1",
                "creationTimestamp": "2023-01-01T00:00:00.000-00:00"
            }
        """
        instance_name = data.get("name", "")
        self_link = data.get("selfLink", "")

        # Zone URL: https://www.googleapis.com/compute/v1/projects/{project}/zones/{zone}
        zone = None
        zone_url = data.get("zone", "")
        if zone_url:
            zone = SelfLink(zone_url).short_name

        # Extract region from zone (e.g., us-central1 from us-central1-a)
        region = None
        if zone:
            zone_parts = zone.rsplit("-", 1)
            if len(zone_parts) == 2:
                region = zone_parts[0]

        return cls(
            id=instance_name,
            name=instance_name,
            project_id=SelfLink(self_link).project if self_link else None,
            created_at=parse_timestamp(data.get("creationTimestamp")),
            instance_name=instance_name,
            zone=zone,
            region=region,
            self_link=self_link,
            status=data.get("status"),
            labels=data.get("labels") or {},
            raw_data=data.copy(),
        )
