"""Native Compute Engine network load balancing resources.

A logical load balancer is assembled from a target pool and the forwarding
rules that point at it. These models mirror the provider resources as returned
by the Compute Engine v1 API.
"""

from typing import Any

from pydantic import Field

from gcelb.models.base import BaseModel, parse_timestamp
from gcelb.utils.selflink import SelfLink, short_name


class TargetPool(BaseModel):
    """Model for a Compute Engine target pool."""

    pool_name: str = Field(..., description="Target pool name")
    region: str | None = Field(None, description="Region short name")
    description: str | None = Field(None, description="Target pool description")
    self_link: str | None = Field(None, description="Fully-qualified resource URL")
    instances: list[str] = Field(default_factory=list, description="Member instance self-links")
    health_checks: list[str] = Field(
        default_factory=list, description="Attached health check self-links"
    )
    creation_timestamp: str | None = Field(None, description="Raw creation timestamp")

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "TargetPool":
        """Create TargetPool from Compute Engine API response.

        Args:
            data: API response data from targetPools.get() or targetPools.list()

        Returns:
            TargetPool instance

        Example API response structure:
            {
                "name": "web",
                "region": "https://www.googleapis.com/compute/v1/projects/my-project/regions/us-central1",
                "selfLink": "https://www.googleapis.com/compute/v1/projects/my-project/regions/us-central1/targetPools/web",
                "instances": [
                    "https://www.googleapis.com/compute/v1/projects/my-project/zones/us-central1-a/instances/web-1"
                ],
                "healthChecks": [
                    "https://www.googleapis.com/compute/v1/projects/my-project/global/httpHealthChecks/web-hc"
                ],
                "creationTimestamp": "2014-03-04T10:12:13.123-08:00"
            }
        """
        pool_name = data.get("name", "")
        self_link = data.get("selfLink")
        region = data.get("region")

        return cls(
            id=pool_name,
            name=pool_name,
            project_id=SelfLink(self_link).project if self_link else None,
            created_at=parse_timestamp(data.get("creationTimestamp")),
            pool_name=pool_name,
            region=short_name(region) if region else None,
            description=data.get("description"),
            self_link=self_link,
            instances=list(data.get("instances") or []),
            health_checks=list(data.get("healthChecks") or []),
            creation_timestamp=data.get("creationTimestamp"),
            raw_data=data.copy(),
        )

    @property
    def health_check_name(self) -> str | None:
        """Short name of the first attached health check.

        Only the first reference is honoured; gcelb never attaches more than one.
        """
        if not self.health_checks:
            return None
        return short_name(self.health_checks[0])

    @property
    def instance_names(self) -> list[str]:
        """Short names of the member instances."""
        return [short_name(link) for link in self.instances]


class ForwardingRule(BaseModel):
    """Model for a regional Compute Engine forwarding rule."""

    rule_name: str = Field(..., description="Forwarding rule name")
    description: str | None = Field(None, description="Forwarding rule description")
    ip_address: str | None = Field(None, description="External IP address")
    ip_protocol: str | None = Field(None, description="IP protocol (TCP/UDP)")
    port_range: str | None = Field(None, description="Port or port range")
    region: str | None = Field(None, description="Region short name")
    target: str | None = Field(None, description="Target pool self-link")

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ForwardingRule":
        """Create ForwardingRule from Compute Engine API response.

        Args:
            data: API response data from forwardingRules.get()

        Returns:
            ForwardingRule instance

        Example API response structure:
            {
                "name": "web-0",
                "IPAddress": "34.120.1.1",
                "IPProtocol": "TCP",
                "portRange": "80-80",
                "region": "https://www.googleapis.com/compute/v1/projects/my-project/regions/us-central1",
                "target": "https://www.googleapis.com/compute/v1/projects/my-project/regions/us-central1/targetPools/web"
            }
        """
        rule_name = data.get("name", "")
        region = data.get("region")
        target = data.get("target")

        return cls(
            id=rule_name,
            name=rule_name,
            project_id=SelfLink(target).project if target else None,
            created_at=parse_timestamp(data.get("creationTimestamp")),
            rule_name=rule_name,
            description=data.get("description"),
            ip_address=data.get("IPAddress"),
            ip_protocol=data.get("IPProtocol"),
            port_range=data.get("portRange"),
            region=short_name(region) if region else None,
            target=target,
            raw_data=data.copy(),
        )

    def targets_pool(self, pool_name: str) -> bool:
        """Check whether this rule routes to the named target pool."""
        return bool(self.target) and short_name(self.target or "") == pool_name

    def to_api_body(self) -> dict[str, Any]:
        """Build the request body for forwardingRules.insert()."""
        body: dict[str, Any] = {
            "name": self.rule_name,
            "IPProtocol": self.ip_protocol,
            "portRange": self.port_range,
            "target": self.target,
        }
        if self.description is not None:
            body["description"] = self.description
        if self.ip_address:
            body["IPAddress"] = self.ip_address
        if self.region:
            body["region"] = self.region
        return body
