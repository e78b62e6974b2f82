"""Load balancer health check models."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel as PydanticBaseModel
from pydantic import Field

from gcelb.models.base import BaseModel, parse_timestamp
from gcelb.utils.selflink import SelfLink


class HCProtocol(StrEnum):
    """Health check probe protocol."""

    HTTP = "HTTP"
    HTTPS = "HTTPS"
    TCP = "TCP"
    SSL = "SSL"


class HealthCheckOptions(PydanticBaseModel):
    """Parameters for creating or modifying a health check."""

    name: str | None = None
    description: str | None = None
    host: str | None = None
    protocol: HCProtocol = HCProtocol.HTTP
    port: int | None = None
    path: str | None = None
    interval: int | None = None
    timeout: int | None = None
    healthy_count: int | None = None
    unhealthy_count: int | None = None

    def to_api_body(self) -> dict[str, Any]:
        """Build an httpHealthChecks request body from the set options.

        Returns:
            Request body containing only the fields that were supplied
        """
        fields = {
            "name": self.name,
            "description": self.description,
            "host": self.host,
            "port": self.port,
            "requestPath": self.path,
            "checkIntervalSec": self.interval,
            "timeoutSec": self.timeout,
            "healthyThreshold": self.healthy_count,
            "unhealthyThreshold": self.unhealthy_count,
        }
        return {key: value for key, value in fields.items() if value is not None}


class HealthCheck(BaseModel):
    """Model for an HTTP health check as seen by a load balancer."""

    description: str | None = Field(None, description="Health check description")
    host: str | None = Field(None, description="Host header sent with probes")
    protocol: HCProtocol = Field(default=HCProtocol.HTTP, description="Probe protocol")
    port: int | None = Field(None, description="Probe port")
    path: str | None = Field(None, description="Probe request path")
    interval: int | None = Field(None, description="Seconds between probes")
    timeout: int | None = Field(None, description="Probe timeout in seconds")
    healthy_count: int | None = Field(None, description="Healthy threshold")
    unhealthy_count: int | None = Field(None, description="Unhealthy threshold")
    self_link: str | None = Field(None, description="Fully-qualified resource URL")
    load_balancer_ids: list[str] = Field(
        default_factory=list, description="Load balancers this check was reported for"
    )

    @classmethod
    def from_api_response(
        cls, data: dict[str, Any], load_balancer_id: str | None = None
    ) -> "HealthCheck":
        """Create HealthCheck from Compute Engine API response.

        Args:
            data: API response data from httpHealthChecks.get()
            load_balancer_id: Target pool the check is being reported for

        Returns:
            HealthCheck instance

        Example API response structure:
            {
                "name": "web-hc",
                "host": "www.example.com",
                "requestPath": "/healthz",
                "port": 80,
                "checkIntervalSec": 5,
                "timeoutSec": 5,
                "healthyThreshold": 2,
                "unhealthyThreshold": 2,
                "selfLink": "https://www.googleapis.com/compute/v1/projects/my-project/global/httpHealthChecks/web-hc"
            }
        """
        hc_name = data.get("name", "")
        self_link = data.get("selfLink")

        return cls(
            id=hc_name,
            name=hc_name,
            project_id=SelfLink(self_link).project if self_link else None,
            created_at=parse_timestamp(data.get("creationTimestamp")),
            description=data.get("description"),
            host=data.get("host"),
            protocol=HCProtocol.HTTP,
            port=data.get("port"),
            path=data.get("requestPath"),
            interval=data.get("checkIntervalSec"),
            timeout=data.get("timeoutSec"),
            healthy_count=data.get("healthyThreshold"),
            unhealthy_count=data.get("unhealthyThreshold"),
            self_link=self_link,
            load_balancer_ids=[load_balancer_id] if load_balancer_id else [],
            raw_data=data.copy(),
        )


class HealthCheckFilterOptions(PydanticBaseModel):
    """Criteria for narrowing a health check listing. Unset fields match anything."""

    protocol: HCProtocol | None = None
    port: int | None = None
    path: str | None = None
    load_balancer_id: str | None = None

    def matches(self, health_check: HealthCheck) -> bool:
        """Check a health check against every set criterion."""
        if self.protocol is not None and health_check.protocol != self.protocol:
            return False
        if self.port is not None and health_check.port != self.port:
            return False
        if self.path is not None and health_check.path != self.path:
            return False
        if (
            self.load_balancer_id is not None
            and self.load_balancer_id not in health_check.load_balancer_ids
        ):
            return False
        return True
