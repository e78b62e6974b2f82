"""Logical load balancers composed from Compute Engine target pools.

A load balancer here is three native resources: a regional target pool (named
after the load balancer), one or more regional forwarding rules targeting it,
and an optional global HTTP health check the pool references. The provider has
no multi-resource transaction, so creation and deletion are explicit ordered
step sequences, each mutation waited on before the next is issued.

Nothing is rolled back on failure. A create that fails after the target pool
exists leaves the pool in place; callers clean up with remove_load_balancer().
"""

from typing import Any

from gcelb.models.healthcheck import HealthCheck
from gcelb.models.loadbalancer import (
    LbEndpointState,
    LbEndpointType,
    LbProtocol,
    LoadBalancer,
    LoadBalancerCapabilities,
    LoadBalancerCreateOptions,
    LoadBalancerEndpoint,
    ResourceStatus,
)
from gcelb.models.targetpool import ForwardingRule, TargetPool
from gcelb.services.base import (
    BaseService,
    ProviderError,
    ResourceNotFoundError,
    TransportError,
)
from gcelb.services.compute import InstanceService
from gcelb.services.healthcheck import HealthCheckService, validate_health_check_options
from gcelb.services.operations import OperationScope, OperationWaiter
from gcelb.utils.logging import get_logger
from gcelb.utils.ports import ALL_PORTS_RANGE, MalformedPortRangeError, parse_port_range, single_port_range
from gcelb.utils.selflink import short_name

logger = get_logger(__name__)

PROVIDER_TERM = "target pool"
DEFAULT_RULE_DESCRIPTION = "Default Forwarding Rule"
FORWARDING_RULE_PROTOCOL = "TCP"
STATUS_UNKNOWN = "UNKNOWN"


class LoadBalancerService(BaseService):
    """Service for logical load balancers backed by target pools."""

    def __init__(
        self,
        project_id: str | None = None,
        region: str | None = None,
        client: Any | None = None,
    ) -> None:
        """Initialize the LoadBalancer service."""
        super().__init__(project_id=project_id, region=region, client=client)
        self._waiter = OperationWaiter(self)
        self.health_checks = HealthCheckService(project_id=project_id, region=region, client=client)
        self._instances = InstanceService(project_id=project_id, region=region, client=client)

    # Capabilities

    def is_data_center_limited(self) -> bool:
        """Target pools span every zone of their region."""
        return False

    def get_provider_term_for_load_balancer(self) -> str:
        """Provider's name for a load balancer."""
        return PROVIDER_TERM

    def is_subscribed(self) -> bool:
        """Network load balancing is available to every Compute Engine project."""
        return True

    def get_capabilities(self) -> LoadBalancerCapabilities:
        """Fixed capability description of target-pool load balancers."""
        return LoadBalancerCapabilities(provider_term=PROVIDER_TERM)

    # Composition

    async def create_load_balancer(self, options: LoadBalancerCreateOptions) -> str:
        """Create a load balancer and every resource it is made of.

        Steps, each completed before the next starts:
        1. insert the target pool;
        2. if requested, insert the health check and attach it to the pool;
        3. insert the forwarding rule(s) targeting the pool.

        Args:
            options: Load balancer definition

        Returns:
            Load balancer id (the target pool name)

        Raises:
            InvalidArgumentError: If the health check options are unusable;
                raised before anything is created
            ProviderError: If any provider call fails
            OperationFailedError: If any operation finishes with an error
        """
        if options.health_check_options is not None:
            validate_health_check_options(options.health_check_options)

        client = await self._get_client()
        project_id = await self._get_project_id()
        region = self._get_region()

        logger.info(f"Creating load balancer {options.name} in {project_id}/{region}")

        request = client.targetPools().insert(
            project=project_id,
            region=region,
            body=options.to_target_pool_body(region),
        )
        operation = await self._execute(
            request, f"create_target_pool({options.name})", retry=False
        )
        await self._waiter.wait(operation, OperationScope.REGIONAL, region)

        health_check_options = options.health_check_options
        if health_check_options is not None:
            await self.health_checks.create_health_check(health_check_options)
            await self.health_checks.attach_health_check(
                options.name, health_check_options.name or ""
            )

        await self._create_forwarding_rules(options)

        logger.info(f"Load balancer {options.name} created")
        return options.name

    async def _create_forwarding_rules(self, options: LoadBalancerCreateOptions) -> None:
        client = await self._get_client()
        project_id = await self._get_project_id()
        region = self._get_region()

        request = client.targetPools().get(
            project=project_id, region=region, targetPool=options.name
        )
        pool = TargetPool.from_api_response(
            await self._execute(request, f"get_target_pool({options.name})")
        )
        if not pool.self_link:
            raise ResourceNotFoundError(f"Target pool {options.name} not found")

        for rule in plan_forwarding_rules(options, pool.self_link, region):
            logger.info(f"Creating forwarding rule {rule.rule_name} ({rule.port_range})")
            request = client.forwardingRules().insert(
                project=project_id,
                region=region,
                body=rule.to_api_body(),
            )
            operation = await self._execute(
                request, f"create_forwarding_rule({rule.rule_name})", retry=False
            )
            await self._waiter.wait(operation, OperationScope.REGIONAL, region)

    async def remove_load_balancer(self, load_balancer_id: str) -> None:
        """Delete a load balancer and every resource it is made of.

        Forwarding rules go first, then the target pool, then the health check,
        which the provider refuses to delete while the pool references it. A
        health check deletion failure is raised after the pool is already gone.

        Args:
            load_balancer_id: Target pool name

        Raises:
            ProviderError: If any provider call fails
            OperationFailedError: If any operation finishes with an error
        """
        client = await self._get_client()
        project_id = await self._get_project_id()
        region = self._get_region()

        logger.info(f"Removing load balancer {load_balancer_id} from {project_id}/{region}")

        for rule_name in await self._get_forwarding_rule_names(load_balancer_id):
            await self._remove_forwarding_rule(rule_name)

        health_check_name = await self.health_checks.get_health_check_name(load_balancer_id)

        request = client.targetPools().delete(
            project=project_id, region=region, targetPool=load_balancer_id
        )
        operation = await self._execute(
            request, f"remove_target_pool({load_balancer_id})", retry=False
        )
        await self._waiter.wait(operation, OperationScope.REGIONAL, region)

        if health_check_name is not None:
            await self.health_checks.remove_health_check(health_check_name)

        logger.info(f"Load balancer {load_balancer_id} removed")

    async def _remove_forwarding_rule(self, rule_name: str) -> None:
        client = await self._get_client()
        project_id = await self._get_project_id()
        region = self._get_region()

        logger.info(f"Deleting forwarding rule {rule_name}")
        request = client.forwardingRules().delete(
            project=project_id, region=region, forwardingRule=rule_name
        )
        operation = await self._execute(
            request, f"remove_forwarding_rule({rule_name})", retry=False
        )
        await self._waiter.wait(operation, OperationScope.REGIONAL, region)

    async def _list_forwarding_rules(self) -> list[ForwardingRule]:
        client = await self._get_client()
        project_id = await self._get_project_id()
        region = self._get_region()

        rules: list[ForwardingRule] = []
        request = client.forwardingRules().list(project=project_id, region=region)
        while request is not None:
            response = await self._execute(
                request, f"list_forwarding_rules({project_id}, {region})"
            )
            rules.extend(ForwardingRule.from_api_response(item) for item in response.get("items", []))
            request = client.forwardingRules().list_next(
                previous_request=request, previous_response=response
            )
        return rules

    async def _get_forwarding_rule_names(self, pool_name: str) -> list[str]:
        """Names of the forwarding rules whose target is the named pool."""
        return [rule.rule_name for rule in await self._list_forwarding_rules() if rule.targets_pool(pool_name)]

    # Reconstruction

    async def get_load_balancer(self, load_balancer_id: str) -> LoadBalancer | None:
        """Get a load balancer by id.

        Any failure is treated as "not found".

        Args:
            load_balancer_id: Target pool name

        Returns:
            LoadBalancer, or None
        """
        try:
            client = await self._get_client()
            project_id = await self._get_project_id()
            request = client.targetPools().get(
                project=project_id,
                region=self._get_region(),
                targetPool=load_balancer_id,
            )
            response = await self._execute(request, f"get_target_pool({load_balancer_id})")
            return await self._to_load_balancer(TargetPool.from_api_response(response))
        except Exception as e:
            logger.info(f"Load balancer {load_balancer_id} not available: {e}")
            return None

    async def list_load_balancers(self) -> list[LoadBalancer]:
        """List every load balancer in the region.

        Returns:
            List of LoadBalancer instances

        Raises:
            AuthError: If authentication fails
            PermissionError: If user lacks permission
            ProviderError: If listing target pools fails
        """
        pools = await self._list_target_pools()
        zones = await self._get_zones()

        load_balancers = [await self._to_load_balancer(pool, zones) for pool in pools]
        logger.info(f"Found {len(load_balancers)} load balancers")
        return load_balancers

    async def list_load_balancer_status(self) -> list[ResourceStatus]:
        """Coarse status listing without listener expansion.

        One UNKNOWN status is reported per existing health check a target pool
        references. Pools without health checks are not reported.

        Returns:
            List of ResourceStatus
        """
        statuses: list[ResourceStatus] = []
        for pool in await self._list_target_pools():
            for link in pool.health_checks:
                health_check = await self.health_checks.get_health_check(
                    short_name(link), pool.pool_name
                )
                if health_check is not None:
                    statuses.append(ResourceStatus(resource_id=pool.pool_name, status=STATUS_UNKNOWN))
        return statuses

    async def get_load_balancer_health_check(self, load_balancer_id: str) -> HealthCheck | None:
        """Health check attached to a load balancer; None when either is missing."""
        try:
            health_check_name = await self.health_checks.get_health_check_name(load_balancer_id)
        except ResourceNotFoundError:
            logger.info(f"Load balancer {load_balancer_id} not found")
            return None
        return await self.health_checks.get_health_check(health_check_name, load_balancer_id)

    async def _list_target_pools(self) -> list[TargetPool]:
        client = await self._get_client()
        project_id = await self._get_project_id()
        region = self._get_region()

        pools: list[TargetPool] = []
        request = client.targetPools().list(project=project_id, region=region)
        while request is not None:
            response = await self._execute(
                request, f"list_target_pools({project_id}, {region})"
            )
            pools.extend(TargetPool.from_api_response(item) for item in response.get("items", []))
            request = client.targetPools().list_next(
                previous_request=request, previous_response=response
            )
        return pools

    async def _to_load_balancer(
        self,
        pool: TargetPool,
        zones: list[str] | None = None,
    ) -> LoadBalancer:
        """Rebuild the logical view of a target pool from live provider state.

        Only the pool's first health check is reported.

        Args:
            pool: Target pool
            zones: Zone names of the region, looked up when not supplied

        Returns:
            LoadBalancer instance
        """
        rules = await self._get_owned_forwarding_rules(pool.pool_name)
        if zones is None:
            zones = await self._get_zones()
        return LoadBalancer.from_resources(pool, rules, zones)

    async def _get_owned_forwarding_rules(self, pool_name: str) -> list[ForwardingRule]:
        """Forwarding rules of a pool that listeners can be inferred from.

        Lookup failures degrade to an empty list; a load balancer with no
        resolvable forwarding rule is still reported, without address or
        listeners.
        """
        client = await self._get_client()
        project_id = await self._get_project_id()
        region = self._get_region()

        rules: list[ForwardingRule] = []
        try:
            for rule_name in await self._get_forwarding_rule_names(pool_name):
                request = client.forwardingRules().get(
                    project=project_id, region=region, forwardingRule=rule_name
                )
                rule = ForwardingRule.from_api_response(
                    await self._execute(request, f"get_forwarding_rule({rule_name})")
                )
                if self._has_listeners(rule):
                    rules.append(rule)
        except (ProviderError, TransportError) as e:
            logger.warning(f"Could not resolve forwarding rules of {pool_name}: {e}")
            return []
        return order_forwarding_rules(pool_name, rules)

    @staticmethod
    def _has_listeners(rule: ForwardingRule) -> bool:
        if LbProtocol.from_ip_protocol(rule.ip_protocol) is None:
            logger.warning(
                f"Skipping forwarding rule {rule.rule_name}: unsupported protocol {rule.ip_protocol}"
            )
            return False
        try:
            parse_port_range(rule.port_range or "")
        except MalformedPortRangeError as e:
            logger.warning(f"Skipping forwarding rule {rule.rule_name}: {e}")
            return False
        return True

    async def _get_zones(self) -> list[str]:
        """Zone names of the region; empty on any failure."""
        try:
            client = await self._get_client()
            project_id = await self._get_project_id()
            region = self._get_region()
            request = client.regions().get(project=project_id, region=region)
            response = await self._execute(request, f"get_region({region})")
            return [short_name(zone) for zone in response.get("zones", [])]
        except Exception as e:
            logger.debug(f"Zone lookup failed, reporting no data centers: {e}")
            return []

    # Membership

    async def add_servers(self, load_balancer_id: str, *server_ids: str) -> None:
        """Add VM instances to a load balancer.

        Args:
            load_balancer_id: Target pool name
            server_ids: Instance names

        Raises:
            ResourceNotFoundError: If an instance or the pool does not exist
            OperationFailedError: If the add operation fails
        """
        if not server_ids:
            logger.debug(f"No servers to add to {load_balancer_id}")
            return

        client = await self._get_client()
        project_id = await self._get_project_id()

        references: list[dict[str, str]] = []
        region: str | None = None
        for server_id in server_ids:
            instance = await self._instances.get_instance(server_id)
            if instance is None:
                raise ResourceNotFoundError(f"Instance {server_id} not found")
            region = instance.region
            references.append({"instance": instance.self_link})

        region = region or self._get_region()

        logger.info(f"Adding {len(references)} servers to {load_balancer_id}")
        request = client.targetPools().addInstance(
            project=project_id,
            region=region,
            targetPool=load_balancer_id,
            body={"instances": references},
        )
        operation = await self._execute(
            request, f"add_servers({load_balancer_id})", retry=False
        )
        await self._waiter.wait(operation, OperationScope.REGIONAL, region)

    async def remove_servers(self, load_balancer_id: str, *server_ids: str) -> None:
        """Remove VM instances from a load balancer.

        Args:
            load_balancer_id: Target pool name
            server_ids: Instance names; names that are not members are ignored

        Raises:
            ResourceNotFoundError: If the pool does not exist
            OperationFailedError: If the remove operation fails
        """
        pool = await self._get_target_pool(load_balancer_id)
        wanted = set(server_ids)
        references = [
            {"instance": link} for link in pool.instances if short_name(link) in wanted
        ]
        if not references:
            logger.info(f"None of {sorted(wanted)} are members of {load_balancer_id}")
            return

        client = await self._get_client()
        project_id = await self._get_project_id()
        region = self._get_region()

        logger.info(f"Removing {len(references)} servers from {load_balancer_id}")
        request = client.targetPools().removeInstance(
            project=project_id,
            region=region,
            targetPool=load_balancer_id,
            body={"instances": references},
        )
        operation = await self._execute(
            request, f"remove_servers({load_balancer_id})", retry=False
        )
        await self._waiter.wait(operation, OperationScope.REGIONAL, region)

    async def list_endpoints(self, load_balancer_id: str) -> list[LoadBalancerEndpoint]:
        """List the VM members of a load balancer.

        Args:
            load_balancer_id: Target pool name

        Returns:
            One ACTIVE VM endpoint per member instance

        Raises:
            ResourceNotFoundError: If the pool does not exist
        """
        pool = await self._get_target_pool(load_balancer_id)
        return [
            LoadBalancerEndpoint(
                endpoint_type=LbEndpointType.VM,
                endpoint_value=name,
                current_state=LbEndpointState.ACTIVE,
            )
            for name in pool.instance_names
        ]

    async def _get_target_pool(self, pool_name: str) -> TargetPool:
        client = await self._get_client()
        project_id = await self._get_project_id()
        request = client.targetPools().get(
            project=project_id, region=self._get_region(), targetPool=pool_name
        )
        return TargetPool.from_api_response(
            await self._execute(request, f"get_target_pool({pool_name})")
        )


def plan_forwarding_rules(
    options: LoadBalancerCreateOptions,
    target_pool_link: str,
    region: str,
) -> list[ForwardingRule]:
    """Forwarding rules to create for a new load balancer.

    One rule per listener, named after the load balancer when there is exactly
    one listener and ``<name>-<index>`` otherwise. Without listeners a single
    default rule covers every port.

    Args:
        options: Load balancer definition
        target_pool_link: Self-link of the load balancer's target pool
        region: Region the rules are created in

    Returns:
        Forwarding rules in creation order
    """

    def _rule(name: str, port_range: str, description: str | None) -> ForwardingRule:
        return ForwardingRule(
            id=name,
            name=name,
            rule_name=name,
            description=description,
            ip_address=options.ip_address,
            ip_protocol=FORWARDING_RULE_PROTOCOL,
            port_range=port_range,
            region=region,
            target=target_pool_link,
        )

    listeners = options.listeners
    if not listeners:
        return [_rule(options.name, ALL_PORTS_RANGE, DEFAULT_RULE_DESCRIPTION)]

    if len(listeners) == 1:
        return [_rule(options.name, single_port_range(listeners[0].public_port), options.description)]

    return [
        _rule(f"{options.name}-{index}", single_port_range(listener.public_port), options.description)
        for index, listener in enumerate(listeners)
    ]


def order_forwarding_rules(pool_name: str, rules: list[ForwardingRule]) -> list[ForwardingRule]:
    """Put a load balancer's forwarding rules back in listener declaration order.

    The provider lists rules by name, so "web-10" sorts before "web-2". Rules
    are ordered as plan_forwarding_rules() names them: a rule named after the
    pool first, then "<pool>-<index>" rules by numeric index, then any other
    rule in listing order.
    """
    prefix = f"{pool_name}-"

    def _key(rule: ForwardingRule) -> tuple[int, int]:
        if rule.rule_name == pool_name:
            return (0, 0)
        suffix = rule.rule_name[len(prefix) :] if rule.rule_name.startswith(prefix) else ""
        if suffix.isdigit():
            return (1, int(suffix))
        return (2, 0)

    return sorted(rules, key=_key)


# Singleton instance
_loadbalancer_service: LoadBalancerService | None = None


async def get_loadbalancer_service() -> LoadBalancerService:
    """Get the singleton LoadBalancerService instance.

    Returns:
        LoadBalancerService instance
    """
    global _loadbalancer_service
    if _loadbalancer_service is None:
        _loadbalancer_service = LoadBalancerService()
    return _loadbalancer_service


def reset_loadbalancer_service() -> None:
    """Reset the singleton LoadBalancerService (mainly for testing)."""
    global _loadbalancer_service
    _loadbalancer_service = None
