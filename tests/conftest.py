"""Pytest configuration and shared fixtures."""

import copy
import itertools
import json
from collections.abc import Callable, Iterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from gcelb.config import reset_config
from gcelb.services.auth import reset_auth_manager
from gcelb.services.compute import reset_instance_service
from gcelb.services.healthcheck import reset_healthcheck_service
from gcelb.services.loadbalancer import reset_loadbalancer_service

PROJECT = "test-project"
REGION = "us-central1"
ZONES = ("us-central1-a", "us-central1-b")
API = "https://www.googleapis.com/compute/v1"


@pytest.fixture(autouse=True)
def fast_operations(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Poll operations and retry without sleeping, and start from fresh singletons."""
    monkeypatch.setenv("GCELB_OPERATION_POLL_INTERVAL", "0")
    monkeypatch.setenv("GCELB_API_RETRY_DELAY", "0")
    reset_config()
    reset_auth_manager()
    reset_instance_service()
    reset_healthcheck_service()
    reset_loadbalancer_service()
    yield
    reset_config()
    reset_auth_manager()
    reset_instance_service()
    reset_healthcheck_service()
    reset_loadbalancer_service()


@pytest.fixture
def mock_gcloud_credentials() -> MagicMock:
    """Mock Google Cloud credentials for testing."""
    creds = MagicMock()
    creds.valid = True
    creds.expired = False
    creds.project_id = "test-project-123"
    return creds


@pytest.fixture
def mock_auth_manager(mock_gcloud_credentials: MagicMock) -> AsyncMock:
    """Mock authentication manager."""
    auth = AsyncMock()
    auth.credentials = mock_gcloud_credentials
    auth.project_id = "test-project-123"
    return auth


def http_error(status: int, message: str = "error") -> HttpError:
    """Build a googleapiclient HttpError carrying a Compute Engine error body."""
    content = json.dumps({"error": {"code": status, "message": message}}).encode()
    return HttpError(httplib2.Response({"status": status}), content)


class FakeRequest:
    """Stand-in for googleapiclient.http.HttpRequest."""

    def __init__(self, func: Callable[[], Any], page: int = 0) -> None:
        self._func = func
        self.page = page
        self.executions = 0

    def execute(self) -> Any:
        self.executions += 1
        return self._func()


class FakeComputeClient:
    """In-memory Compute Engine v1 client.

    Implements the slice of the discovery surface gcelb uses: target pools,
    forwarding rules, HTTP health checks, instances, regions and operations.
    Every mutation is recorded in ``calls`` as ``(collection.method, name)``,
    every read in ``reads`` as ``collection.method``. Forwarding rules are
    listed in name order, as Compute Engine lists them.
    """

    def __init__(
        self,
        project: str = PROJECT,
        region: str = REGION,
        zones: tuple[str, ...] = ZONES,
        page_size: int | None = None,
        pending_polls: int = 0,
    ) -> None:
        self.project = project
        self.region = region
        self.zones = list(zones)
        self.page_size = page_size
        self.pending_polls = pending_polls

        self.target_pools: dict[str, dict[str, Any]] = {}
        self.forwarding_rules: dict[str, dict[str, Any]] = {}
        self.health_checks: dict[str, dict[str, Any]] = {}
        self.instance_records: dict[str, dict[str, Any]] = {}

        self.calls: list[tuple[str, str]] = []
        self.polls: list[tuple[str, str]] = []
        self.reads: list[str] = []
        self.fail_operations: dict[str, str] = {}
        self.fail_requests: dict[str, Exception] = {}
        self.regions_available = True

        self._operations: dict[str, dict[str, Any]] = {}
        self._pending: dict[str, int] = {}
        self._ids = itertools.count(1)
        self._addresses = (f"203.0.113.{n}" for n in itertools.count(10))

    # Links

    @property
    def project_link(self) -> str:
        return f"{API}/projects/{self.project}"

    @property
    def region_link(self) -> str:
        return f"{self.project_link}/regions/{self.region}"

    def pool_link(self, name: str) -> str:
        return f"{self.region_link}/targetPools/{name}"

    def rule_link(self, name: str) -> str:
        return f"{self.region_link}/forwardingRules/{name}"

    def health_check_link(self, name: str) -> str:
        return f"{self.project_link}/global/httpHealthChecks/{name}"

    def zone_link(self, zone: str) -> str:
        return f"{self.project_link}/zones/{zone}"

    def instance_link(self, name: str, zone: str) -> str:
        return f"{self.zone_link(zone)}/instances/{name}"

    # Seeding

    def add_instance(self, name: str, zone: str = ZONES[0]) -> dict[str, Any]:
        instance = {
            "name": name,
            "zone": self.zone_link(zone),
            "status": "RUNNING",
            "selfLink": self.instance_link(name, zone),
        }
        self.instance_records[name] = instance
        return instance

    def add_target_pool(self, name: str, **fields: Any) -> dict[str, Any]:
        pool = {
            "name": name,
            "region": self.region_link,
            "selfLink": self.pool_link(name),
            "instances": [],
            "healthChecks": [],
            "creationTimestamp": "2024-01-01T00:00:00.000-08:00",
        }
        pool.update(fields)
        self.target_pools[name] = pool
        return pool

    def add_forwarding_rule(
        self, name: str, target_pool: str, port_range: str = "80-80", **fields: Any
    ) -> dict[str, Any]:
        rule = {
            "name": name,
            "region": self.region_link,
            "selfLink": self.rule_link(name),
            "IPAddress": next(self._addresses),
            "IPProtocol": "TCP",
            "portRange": port_range,
            "target": self.pool_link(target_pool),
        }
        rule.update(fields)
        self.forwarding_rules[name] = rule
        return rule

    def add_health_check(self, name: str, **fields: Any) -> dict[str, Any]:
        health_check = {
            "name": name,
            "selfLink": self.health_check_link(name),
            "port": 80,
            "requestPath": "/",
            "checkIntervalSec": 5,
            "timeoutSec": 5,
            "healthyThreshold": 2,
            "unhealthyThreshold": 2,
            "creationTimestamp": "2024-01-01T00:00:00.000-08:00",
        }
        health_check.update(fields)
        self.health_checks[name] = health_check
        return health_check

    # Internals

    def _request(self, key: str, func: Callable[[], Any], page: int = 0) -> FakeRequest:
        def _run() -> Any:
            self.reads.append(key)
            if key in self.fail_requests:
                raise self.fail_requests[key]
            return func()

        return FakeRequest(_run, page)

    def _get(self, store: dict[str, dict[str, Any]], name: str) -> dict[str, Any]:
        if name not in store:
            raise http_error(404, f"The resource '{name}' was not found")
        return copy.deepcopy(store[name])

    def _page(self, items: list[dict[str, Any]], page: int) -> dict[str, Any]:
        if self.page_size is None:
            return {"items": copy.deepcopy(items)} if items else {}
        start = page * self.page_size
        response: dict[str, Any] = {"items": copy.deepcopy(items[start : start + self.page_size])}
        if start + self.page_size < len(items):
            response["nextPageToken"] = str(page + 1)
        return response

    def _next(
        self, previous_request: FakeRequest, previous_response: dict[str, Any], list_call: Callable[[int], FakeRequest]
    ) -> FakeRequest | None:
        if "nextPageToken" not in previous_response:
            return None
        return list_call(previous_request.page + 1)

    def _mutate(
        self,
        key: str,
        name: str,
        scope: str,
        apply: Callable[[], str | None],
    ) -> FakeRequest:
        """Record a mutation and return the request yielding its operation.

        ``apply`` changes the in-memory state and returns an error message when
        the provider would reject the mutation asynchronously.
        """

        def _run() -> dict[str, Any]:
            if key in self.fail_requests:
                raise self.fail_requests[key]
            self.calls.append((key, name))
            error = self.fail_operations.get(key) or apply()
            operation_name = f"operation-{next(self._ids)}"
            operation: dict[str, Any] = {
                "kind": "compute#operation",
                "name": operation_name,
                "operationType": key,
                "targetLink": name,
                "status": "DONE",
            }
            if scope == "regional":
                operation["region"] = self.region_link
            if error:
                operation["error"] = {"errors": [{"code": "RESOURCE_ERROR", "message": error}]}
                operation["httpErrorStatusCode"] = 400
            self._operations[operation_name] = operation
            self._pending[operation_name] = self.pending_polls
            if self.pending_polls:
                return {**copy.deepcopy(operation), "status": "PENDING"}
            return copy.deepcopy(operation)

        return FakeRequest(_run)

    def _poll(self, scope: str, operation: str) -> FakeRequest:
        def _run() -> dict[str, Any]:
            self.polls.append((scope, operation))
            remaining = self._pending.get(operation, 0)
            if remaining > 1:
                self._pending[operation] = remaining - 1
                return {**copy.deepcopy(self._operations[operation]), "status": "RUNNING"}
            self._pending[operation] = 0
            return copy.deepcopy(self._operations[operation])

        return FakeRequest(_run)

    def _referenced_by_rule(self, pool_name: str) -> bool:
        link = self.pool_link(pool_name)
        return any(rule.get("target") == link for rule in self.forwarding_rules.values())

    def _referenced_by_pool(self, health_check_name: str) -> bool:
        link = self.health_check_link(health_check_name)
        return any(link in pool.get("healthChecks", []) for pool in self.target_pools.values())

    # Collections

    def targetPools(self) -> "_TargetPools":  # noqa: N802
        return _TargetPools(self)

    def forwardingRules(self) -> "_ForwardingRules":  # noqa: N802
        return _ForwardingRules(self)

    def httpHealthChecks(self) -> "_HttpHealthChecks":  # noqa: N802
        return _HttpHealthChecks(self)

    def instances(self) -> "_Instances":
        return _Instances(self)

    def regions(self) -> "_Regions":
        return _Regions(self)

    def regionOperations(self) -> "_Operations":  # noqa: N802
        return _Operations(self, "regional")

    def globalOperations(self) -> "_Operations":  # noqa: N802
        return _Operations(self, "global")


class _TargetPools:
    def __init__(self, fake: FakeComputeClient) -> None:
        self.fake = fake

    def insert(self, project: str, region: str, body: dict[str, Any]) -> FakeRequest:
        fake = self.fake
        name = body["name"]

        def _apply() -> str | None:
            if name in fake.target_pools:
                return f"The resource '{name}' already exists"
            fake.add_target_pool(name, description=body.get("description"))
            return None

        return fake._mutate("targetPools.insert", name, "regional", _apply)

    def get(self, project: str, region: str, targetPool: str) -> FakeRequest:  # noqa: N803
        return self.fake._request(
            "targetPools.get", lambda: self.fake._get(self.fake.target_pools, targetPool)
        )

    def list(self, project: str, region: str, page: int = 0) -> FakeRequest:
        fake = self.fake
        return fake._request(
            "targetPools.list",
            lambda: fake._page(list(fake.target_pools.values()), page),
            page,
        )

    def list_next(
        self, previous_request: FakeRequest, previous_response: dict[str, Any]
    ) -> FakeRequest | None:
        return self.fake._next(
            previous_request,
            previous_response,
            lambda page: self.list(self.fake.project, self.fake.region, page),
        )

    def delete(self, project: str, region: str, targetPool: str) -> FakeRequest:  # noqa: N803
        fake = self.fake

        def _apply() -> str | None:
            if targetPool not in fake.target_pools:
                return f"The resource '{targetPool}' was not found"
            if fake._referenced_by_rule(targetPool):
                return f"The target pool '{targetPool}' is in use by a forwarding rule"
            del fake.target_pools[targetPool]
            return None

        return fake._mutate("targetPools.delete", targetPool, "regional", _apply)

    def addHealthCheck(  # noqa: N802
        self, project: str, region: str, targetPool: str, body: dict[str, Any]  # noqa: N803
    ) -> FakeRequest:
        fake = self.fake

        def _apply() -> str | None:
            pool = fake.target_pools[targetPool]
            for ref in body["healthChecks"]:
                pool["healthChecks"].append(ref["healthCheck"])
            return None

        return fake._mutate("targetPools.addHealthCheck", targetPool, "regional", _apply)

    def addInstance(  # noqa: N802
        self, project: str, region: str, targetPool: str, body: dict[str, Any]  # noqa: N803
    ) -> FakeRequest:
        fake = self.fake

        def _apply() -> str | None:
            pool = fake.target_pools[targetPool]
            for ref in body["instances"]:
                if ref["instance"] not in pool["instances"]:
                    pool["instances"].append(ref["instance"])
            return None

        return fake._mutate("targetPools.addInstance", targetPool, "regional", _apply)

    def removeInstance(  # noqa: N802
        self, project: str, region: str, targetPool: str, body: dict[str, Any]  # noqa: N803
    ) -> FakeRequest:
        fake = self.fake

        def _apply() -> str | None:
            pool = fake.target_pools[targetPool]
            links = {ref["instance"] for ref in body["instances"]}
            pool["instances"] = [link for link in pool["instances"] if link not in links]
            return None

        return fake._mutate("targetPools.removeInstance", targetPool, "regional", _apply)


class _ForwardingRules:
    def __init__(self, fake: FakeComputeClient) -> None:
        self.fake = fake

    def insert(self, project: str, region: str, body: dict[str, Any]) -> FakeRequest:
        fake = self.fake
        name = body["name"]

        def _apply() -> str | None:
            if name in fake.forwarding_rules:
                return f"The resource '{name}' already exists"
            target = body.get("target", "")
            if target.rsplit("/", 1)[-1] not in fake.target_pools:
                return f"The target pool '{target}' was not found"
            fields = {k: v for k, v in body.items() if k not in ("name", "region")}
            if not fields.get("IPAddress"):
                fields.pop("IPAddress", None)
            fake.add_forwarding_rule(name, target.rsplit("/", 1)[-1], **fields)
            return None

        return fake._mutate("forwardingRules.insert", name, "regional", _apply)

    def get(self, project: str, region: str, forwardingRule: str) -> FakeRequest:  # noqa: N803
        return self.fake._request(
            "forwardingRules.get",
            lambda: self.fake._get(self.fake.forwarding_rules, forwardingRule),
        )

    def list(self, project: str, region: str, page: int = 0) -> FakeRequest:
        fake = self.fake
        return fake._request(
            "forwardingRules.list",
            lambda: fake._page(
                [fake.forwarding_rules[name] for name in sorted(fake.forwarding_rules)], page
            ),
            page,
        )

    def list_next(
        self, previous_request: FakeRequest, previous_response: dict[str, Any]
    ) -> FakeRequest | None:
        return self.fake._next(
            previous_request,
            previous_response,
            lambda page: self.list(self.fake.project, self.fake.region, page),
        )

    def delete(self, project: str, region: str, forwardingRule: str) -> FakeRequest:  # noqa: N803
        fake = self.fake

        def _apply() -> str | None:
            if forwardingRule not in fake.forwarding_rules:
                return f"The resource '{forwardingRule}' was not found"
            del fake.forwarding_rules[forwardingRule]
            return None

        return fake._mutate("forwardingRules.delete", forwardingRule, "regional", _apply)


class _HttpHealthChecks:
    def __init__(self, fake: FakeComputeClient) -> None:
        self.fake = fake

    def insert(self, project: str, body: dict[str, Any]) -> FakeRequest:
        fake = self.fake
        name = body["name"]

        def _apply() -> str | None:
            if name in fake.health_checks:
                return f"The resource '{name}' already exists"
            fake.add_health_check(name, **{k: v for k, v in body.items() if k != "name"})
            return None

        return fake._mutate("httpHealthChecks.insert", name, "global", _apply)

    def get(self, project: str, httpHealthCheck: str) -> FakeRequest:  # noqa: N803
        return self.fake._request(
            "httpHealthChecks.get",
            lambda: self.fake._get(self.fake.health_checks, httpHealthCheck),
        )

    def update(
        self, project: str, httpHealthCheck: str, body: dict[str, Any]  # noqa: N803
    ) -> FakeRequest:
        fake = self.fake

        def _apply() -> str | None:
            if httpHealthCheck not in fake.health_checks:
                return f"The resource '{httpHealthCheck}' was not found"
            fake.health_checks[httpHealthCheck] = copy.deepcopy(body)
            return None

        return fake._mutate("httpHealthChecks.update", httpHealthCheck, "global", _apply)

    def delete(self, project: str, httpHealthCheck: str) -> FakeRequest:  # noqa: N803
        fake = self.fake

        def _apply() -> str | None:
            if httpHealthCheck not in fake.health_checks:
                return f"The resource '{httpHealthCheck}' was not found"
            if fake._referenced_by_pool(httpHealthCheck):
                return f"The health check '{httpHealthCheck}' is in use by a target pool"
            del fake.health_checks[httpHealthCheck]
            return None

        return fake._mutate("httpHealthChecks.delete", httpHealthCheck, "global", _apply)


class _Instances:
    def __init__(self, fake: FakeComputeClient) -> None:
        self.fake = fake

    def aggregatedList(self, project: str, filter: str = "") -> FakeRequest:  # noqa: N802, A002
        fake = self.fake
        wanted = filter.split("=", 1)[1].strip() if "=" in filter else None

        def _run() -> dict[str, Any]:
            items: dict[str, Any] = {
                f"zones/{zone}": {"warning": {"code": "NO_RESULTS_ON_PAGE"}} for zone in fake.zones
            }
            for instance in fake.instance_records.values():
                if wanted is not None and instance["name"] != wanted:
                    continue
                zone_key = f"zones/{instance['zone'].rsplit('/', 1)[-1]}"
                items.setdefault(zone_key, {}).setdefault("instances", []).append(
                    copy.deepcopy(instance)
                )
            return {"items": items}

        return fake._request("instances.aggregatedList", _run)

    def aggregatedList_next(  # noqa: N802
        self, previous_request: FakeRequest, previous_response: dict[str, Any]
    ) -> FakeRequest | None:
        return None


class _Regions:
    def __init__(self, fake: FakeComputeClient) -> None:
        self.fake = fake

    def get(self, project: str, region: str) -> FakeRequest:
        fake = self.fake

        def _run() -> dict[str, Any]:
            if not fake.regions_available:
                raise http_error(403, "Required 'compute.regions.get' permission")
            return {
                "name": region,
                "selfLink": fake.region_link,
                "zones": [fake.zone_link(zone) for zone in fake.zones],
            }

        return fake._request("regions.get", _run)


class _Operations:
    def __init__(self, fake: FakeComputeClient, scope: str) -> None:
        self.fake = fake
        self.scope = scope

    def get(self, project: str, operation: str, region: str | None = None) -> FakeRequest:
        return self.fake._poll(self.scope, operation)


@pytest.fixture
def fake_compute() -> FakeComputeClient:
    """Empty in-memory Compute Engine client."""
    return FakeComputeClient()
