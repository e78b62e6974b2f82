"""Logical load balancer model.

A logical load balancer is a projection over three native resources: a target
pool, the forwarding rules that point at it, and the HTTP health check the pool
references. Nothing here is stored; every instance is rebuilt from live
provider state.
"""

from collections.abc import Iterable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel as PydanticBaseModel
from pydantic import Field

from gcelb.models.base import BaseModel
from gcelb.models.healthcheck import HCProtocol, HealthCheckOptions
from gcelb.models.targetpool import ForwardingRule, TargetPool
from gcelb.utils.ports import expand_port_range
from gcelb.utils.selflink import short_name


class LbAlgorithm(StrEnum):
    """Balancing algorithm."""

    ROUND_ROBIN = "ROUND_ROBIN"
    LEAST_CONN = "LEAST_CONN"
    SOURCE = "SOURCE"


class LbPersistence(StrEnum):
    """Session persistence policy."""

    NONE = "NONE"
    COOKIE = "COOKIE"
    SUBNET = "SUBNET"


class LbProtocol(StrEnum):
    """Listener protocol."""

    HTTP = "HTTP"
    HTTPS = "HTTPS"
    RAW_TCP = "RAW_TCP"
    UDP = "UDP"

    @classmethod
    def from_ip_protocol(cls, ip_protocol: str | None) -> "LbProtocol | None":
        """Map a forwarding rule IPProtocol token to a listener protocol.

        Returns:
            Matching protocol, or None for tokens with no listener equivalent
        """
        return _IP_PROTOCOLS.get((ip_protocol or "").upper())


_IP_PROTOCOLS: dict[str, LbProtocol] = {
    "TCP": LbProtocol.RAW_TCP,
    "UDP": LbProtocol.UDP,
}


class LoadBalancerState(StrEnum):
    """Lifecycle state. Target pools expose no intermediate states."""

    ACTIVE = "ACTIVE"


class LbType(StrEnum):
    EXTERNAL = "EXTERNAL"
    INTERNAL = "INTERNAL"


class LoadBalancerAddressType(StrEnum):
    DNS = "DNS"
    IP = "IP"


class IPVersion(StrEnum):
    IPV4 = "IPV4"
    IPV6 = "IPV6"


class LbEndpointType(StrEnum):
    VM = "VM"
    IP = "IP"


class LbEndpointState(StrEnum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


# Target pools do not expose algorithm or persistence; these are what they do.
DEFAULT_ALGORITHM = LbAlgorithm.SOURCE
DEFAULT_PERSISTENCE = LbPersistence.SUBNET


class Listener(PydanticBaseModel):
    """A single public port routed to the pool.

    On create only ``public_port`` is consulted; on read every port covered by
    a forwarding rule becomes one listener.
    """

    public_port: int = Field(..., ge=1, le=65535, description="Incoming port")
    private_port: int | None = Field(None, description="Outgoing port")
    protocol: LbProtocol = Field(default=LbProtocol.RAW_TCP, description="Listener protocol")
    algorithm: LbAlgorithm = Field(default=DEFAULT_ALGORITHM, description="Balancing algorithm")
    persistence: LbPersistence = Field(
        default=DEFAULT_PERSISTENCE, description="Session persistence"
    )

    @classmethod
    def from_forwarding_rule(cls, rule: ForwardingRule) -> list["Listener"]:
        """Infer listeners from a forwarding rule's port range.

        Args:
            rule: Forwarding rule with a port range and a mappable IPProtocol

        Returns:
            One listener per port, in ascending port order

        Raises:
            MalformedPortRangeError: If the rule's port range cannot be parsed
            ValueError: If the rule's protocol has no listener equivalent
        """
        protocol = LbProtocol.from_ip_protocol(rule.ip_protocol)
        if protocol is None:
            raise ValueError(f"Unsupported forwarding rule protocol: {rule.ip_protocol!r}")

        return [
            cls(
                public_port=port,
                private_port=port,
                protocol=protocol,
                algorithm=DEFAULT_ALGORITHM,
                persistence=DEFAULT_PERSISTENCE,
            )
            for port in expand_port_range(rule.port_range or "")
        ]


class LoadBalancer(BaseModel):
    """Model for a logical load balancer backed by a target pool."""

    region: str | None = Field(None, description="Region short name")
    description: str | None = Field(None, description="Load balancer description")
    state: LoadBalancerState = Field(default=LoadBalancerState.ACTIVE, description="State")
    address: str | None = Field(None, description="Public address from the forwarding rule")
    address_type: LoadBalancerAddressType = Field(default=LoadBalancerAddressType.DNS)
    lb_type: LbType = Field(default=LbType.EXTERNAL)
    listeners: list[Listener] = Field(default_factory=list, description="Inferred listeners")
    public_ports: list[int] = Field(default_factory=list, description="All public ports")
    health_check_id: str | None = Field(None, description="Attached health check name")
    data_center_ids: list[str] = Field(default_factory=list, description="Zones in the region")
    ip_versions: list[IPVersion] = Field(default_factory=lambda: [IPVersion.IPV4])

    @property
    def creation_epoch_ms(self) -> int:
        """Creation time in epoch milliseconds (0 when unknown)."""
        if self.created_at is None:
            return 0
        return int(self.created_at.timestamp() * 1000)

    @classmethod
    def from_resources(
        cls,
        pool: TargetPool,
        rules: Iterable[ForwardingRule] = (),
        zones: Iterable[str] = (),
    ) -> "LoadBalancer":
        """Assemble the logical view from its native parts.

        Only the pool's first health check reference is reported.

        Args:
            pool: Target pool; its name is the load balancer id
            rules: Forwarding rules owned by the pool, in listing order
            zones: Zone links or names for the pool's region

        Returns:
            LoadBalancer instance
        """
        listeners: list[Listener] = []
        address: str | None = None
        for rule in rules:
            if address is None and rule.ip_address:
                address = rule.ip_address
            listeners.extend(Listener.from_forwarding_rule(rule))

        return cls(
            id=pool.pool_name,
            name=pool.pool_name,
            project_id=pool.project_id,
            created_at=pool.created_at,
            region=pool.region,
            description=pool.description,
            state=LoadBalancerState.ACTIVE,
            address=address,
            listeners=listeners,
            public_ports=[listener.public_port for listener in listeners],
            health_check_id=pool.health_check_name,
            data_center_ids=[short_name(zone) for zone in zones],
            raw_data=pool.raw_data.copy(),
        )


class LoadBalancerEndpoint(PydanticBaseModel):
    """A backend member of a load balancer."""

    endpoint_type: LbEndpointType = LbEndpointType.VM
    endpoint_value: str
    current_state: LbEndpointState = LbEndpointState.ACTIVE


class ResourceStatus(PydanticBaseModel):
    """Coarse status of a load balancer."""

    resource_id: str
    status: str


class LoadBalancerCreateOptions(PydanticBaseModel):
    """Parameters for creating a logical load balancer."""

    name: str = Field(..., min_length=1)
    description: str | None = None
    listeners: list[Listener] = Field(default_factory=list)
    health_check_options: HealthCheckOptions | None = None
    ip_address: str | None = Field(None, description="Provider address to bind to")

    def to_target_pool_body(self, region: str) -> dict[str, Any]:
        """Build the targetPools.insert() request body."""
        body: dict[str, Any] = {"name": self.name, "region": region}
        if self.description is not None:
            body["description"] = self.description
        return body


class LoadBalancerCapabilities(PydanticBaseModel):
    """Fixed description of what target-pool load balancers support."""

    provider_term: str = "target pool"
    data_center_limited: bool = False
    lb_type: LbType = LbType.EXTERNAL
    address_type: LoadBalancerAddressType = LoadBalancerAddressType.DNS
    supported_algorithms: list[LbAlgorithm] = Field(default_factory=lambda: [LbAlgorithm.SOURCE])
    supported_persistence: list[LbPersistence] = Field(
        default_factory=lambda: [LbPersistence.SUBNET]
    )
    supported_protocols: list[LbProtocol] = Field(default_factory=lambda: [LbProtocol.RAW_TCP])
    supported_health_check_protocols: list[HCProtocol] = Field(
        default_factory=lambda: [HCProtocol.HTTP]
    )
    supported_ip_versions: list[IPVersion] = Field(default_factory=lambda: [IPVersion.IPV4])
    supports_multiple_health_checks: bool = False
