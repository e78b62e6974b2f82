"""Data models for Google Cloud resources and the logical load balancer view."""

from gcelb.models.base import BaseModel
from gcelb.models.compute import Instance
from gcelb.models.healthcheck import (
    HCProtocol,
    HealthCheck,
    HealthCheckFilterOptions,
    HealthCheckOptions,
)
from gcelb.models.loadbalancer import (
    LbAlgorithm,
    LbEndpointState,
    LbEndpointType,
    LbPersistence,
    LbProtocol,
    Listener,
    LoadBalancer,
    LoadBalancerCapabilities,
    LoadBalancerCreateOptions,
    LoadBalancerEndpoint,
    LoadBalancerState,
    ResourceStatus,
)
from gcelb.models.targetpool import ForwardingRule, TargetPool

__all__ = [
    "BaseModel",
    "ForwardingRule",
    "HCProtocol",
    "HealthCheck",
    "HealthCheckFilterOptions",
    "HealthCheckOptions",
    "Instance",
    "LbAlgorithm",
    "LbEndpointState",
    "LbEndpointType",
    "LbPersistence",
    "LbProtocol",
    "Listener",
    "LoadBalancer",
    "LoadBalancerCapabilities",
    "LoadBalancerCreateOptions",
    "LoadBalancerEndpoint",
    "LoadBalancerState",
    "ResourceStatus",
    "TargetPool",
]
