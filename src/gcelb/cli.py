"""Command-line interface entry point for gcelb."""

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel as PydanticBaseModel
from pydantic import ValidationError

from gcelb import __version__
from gcelb.config import get_config
from gcelb.config_file import (
    DEFAULTS_SECTION,
    get_default_value,
    get_defaults,
    update_config_value,
)
from gcelb.models.healthcheck import HealthCheckFilterOptions, HealthCheckOptions
from gcelb.models.loadbalancer import Listener, LoadBalancerCreateOptions
from gcelb.services.auth import AuthError
from gcelb.services.base import ServiceError
from gcelb.services.loadbalancer import LoadBalancerService
from gcelb.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for every gcelb command."""
    parser = argparse.ArgumentParser(
        prog="gcelb",
        description="Manage Compute Engine network load balancers (target pools).",
    )
    parser.add_argument("--version", action="version", version=f"gcelb {__version__}")
    parser.add_argument("--project", help="GCP project (defaults to config file, then ADC)")
    parser.add_argument("--region", help="GCP region (defaults to config file)")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--log-file", help="Also write logs to this file")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("list", help="List load balancers")
    commands.add_parser("status", help="List coarse load balancer status")

    get = commands.add_parser("get", help="Show one load balancer")
    get.add_argument("name")

    create = commands.add_parser("create", help="Create a load balancer")
    create.add_argument("name")
    create.add_argument("--description")
    create.add_argument("--ip-address", help="Reserved address to bind forwarding rules to")
    create.add_argument(
        "--port",
        dest="ports",
        type=int,
        action="append",
        default=[],
        help="Public port; repeat for several listeners. Omit to forward every port.",
    )
    create.add_argument("--health-check", dest="health_check_name", help="Health check name")
    create.add_argument("--health-check-host")
    create.add_argument("--health-check-port", type=int)
    create.add_argument("--health-check-path")
    create.add_argument("--health-check-interval", type=int)
    create.add_argument("--health-check-timeout", type=int)
    create.add_argument("--healthy-threshold", type=int)
    create.add_argument("--unhealthy-threshold", type=int)

    delete = commands.add_parser("delete", help="Delete a load balancer")
    delete.add_argument("name")

    add_servers = commands.add_parser("add-servers", help="Add VM instances")
    add_servers.add_argument("name")
    add_servers.add_argument("servers", nargs="+")

    remove_servers = commands.add_parser("remove-servers", help="Remove VM instances")
    remove_servers.add_argument("name")
    remove_servers.add_argument("servers", nargs="+")

    endpoints = commands.add_parser("endpoints", help="List load balancer members")
    endpoints.add_argument("name")

    health_checks = commands.add_parser("health-checks", help="List load balancer health checks")
    health_checks.add_argument("--load-balancer", dest="load_balancer_id")
    health_checks.add_argument("--port", type=int)
    health_checks.add_argument("--path")

    defaults = commands.add_parser("defaults", help="Show or set the default project and region")
    defaults.add_argument("--set-project", help="Remember this project")
    defaults.add_argument("--set-region", help="Remember this region")

    return parser


def update_defaults(args: argparse.Namespace) -> dict[str, str]:
    """Apply `defaults` arguments to the config file and return the result."""
    if args.set_project is not None:
        update_config_value(DEFAULTS_SECTION, "project_id", args.set_project)
    if args.set_region is not None:
        update_config_value(DEFAULTS_SECTION, "region", args.set_region)
    return get_defaults()


def create_options_from_args(args: argparse.Namespace) -> LoadBalancerCreateOptions:
    """Translate `create` arguments into load balancer create options."""
    health_check_options = None
    if args.health_check_name:
        health_check_options = HealthCheckOptions(
            name=args.health_check_name,
            description=f"Health check for {args.name}",
            host=args.health_check_host,
            port=args.health_check_port,
            path=args.health_check_path,
            interval=args.health_check_interval,
            timeout=args.health_check_timeout,
            healthy_count=args.healthy_threshold,
            unhealthy_count=args.unhealthy_threshold,
        )

    return LoadBalancerCreateOptions(
        name=args.name,
        description=args.description,
        ip_address=args.ip_address,
        listeners=[Listener(public_port=port, private_port=port) for port in args.ports],
        health_check_options=health_check_options,
    )


def _to_json(value: Any) -> Any:
    if isinstance(value, list):
        return [_to_json(item) for item in value]
    if isinstance(value, PydanticBaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    return value


async def run_command(args: argparse.Namespace, service: LoadBalancerService) -> Any:
    """Run one command against the service.

    Returns:
        JSON-serialisable result to print
    """
    command = args.command

    if command == "list":
        return _to_json(await service.list_load_balancers())

    if command == "status":
        return _to_json(await service.list_load_balancer_status())

    if command == "get":
        load_balancer = await service.get_load_balancer(args.name)
        if load_balancer is None:
            raise ServiceError(f"Load balancer {args.name} not found")
        return _to_json(load_balancer)

    if command == "create":
        name = await service.create_load_balancer(create_options_from_args(args))
        return {"id": name}

    if command == "delete":
        await service.remove_load_balancer(args.name)
        return {"deleted": args.name}

    if command == "add-servers":
        await service.add_servers(args.name, *args.servers)
        return _to_json(await service.list_endpoints(args.name))

    if command == "remove-servers":
        await service.remove_servers(args.name, *args.servers)
        return _to_json(await service.list_endpoints(args.name))

    if command == "endpoints":
        return _to_json(await service.list_endpoints(args.name))

    if command == "health-checks":
        filter_options = HealthCheckFilterOptions(
            load_balancer_id=args.load_balancer_id,
            port=args.port,
            path=args.path,
        )
        return _to_json(await service.health_checks.list_lb_health_checks(filter_options))

    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the gcelb CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = get_config()
    setup_logging(
        level=args.log_level or config.log_level,
        log_file=args.log_file or config.log_file,
        enable_credential_scrubbing=config.enable_credential_scrubbing,
    )

    if args.command == "defaults":
        print(json.dumps(update_defaults(args), indent=2))
        return 0

    service = LoadBalancerService(
        project_id=args.project or get_default_value("project_id"),
        region=args.region or get_default_value("region"),
    )

    try:
        result = asyncio.run(run_command(args, service))
    except (ServiceError, AuthError, ValidationError) as e:
        logger.debug(f"{args.command} failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
