"""CLI entry point: python -m sangha_api."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from sangha_api import __version__
from sangha_api.config import SERVICE_NAMES, ApiClientsConfig, RequestOptions
from sangha_api.errors import ApiError
from sangha_api.factory import ApiClientFactory


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="sangha_api",
        description="Operational checks for the platform API clients.",
    )
    p.add_argument("--version", action="version", version=f"sangha_api {__version__}")

    # Connection
    p.add_argument("--base-url", help="API base URL (default: http://localhost:8080/api)")
    p.add_argument("--timeout", type=float, help="Per-attempt timeout in seconds (default: 10)")
    p.add_argument("--token", help="Bearer token to send with requests")
    p.add_argument("--environment", help="Value for the X-Environment header")

    # Output
    p.add_argument("--log-file", help="Log to file in addition to stderr")
    p.add_argument("--log-format", choices=["text", "json"], help="Log format (default: text)")
    p.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    sub = p.add_subparsers(dest="command", required=True)

    health = sub.add_parser("health", help="Probe every service's health endpoint")
    health.add_argument("--probe-timeout", type=float, help="Seconds to wait per probe (default: 2)")

    get = sub.add_parser("get", help="GET one path through a service client")
    get.add_argument("service", choices=SERVICE_NAMES)
    get.add_argument("path", help="Path below the service prefix, e.g. /posts")
    get.add_argument(
        "--param",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Query parameter (repeatable)",
    )

    sub.add_parser("stats", help="Print the effective configuration")
    return p


def apply_cli_overrides(config: ApiClientsConfig, args: argparse.Namespace) -> ApiClientsConfig:
    """Apply CLI arguments to the config, overriding env/defaults."""
    if args.base_url:
        config.base_url = args.base_url
    if args.timeout is not None:
        config.timeout = args.timeout
    if args.environment:
        config.environment = args.environment
    if getattr(args, "probe_timeout", None) is not None:
        config.probe_timeout = args.probe_timeout
    if args.log_file:
        config.log_file = args.log_file
    if args.log_format:
        config.log_format = args.log_format
    if args.verbose:
        config.log_level = "DEBUG"
    return config


def setup_logging(config: ApiClientsConfig) -> None:
    """Configure Python logging."""
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file, encoding="utf-8"))

    if config.log_format == "json":
        fmt = '{"time": "%(asctime)s", "logger": "%(name)s", "level": "%(levelname)s", "message": "%(message)s"}'
    else:
        fmt = "%(asctime)s %(name)-24s %(levelname)-5s %(message)s"

    logging.basicConfig(level=level, format=fmt, handlers=handlers, force=True)


def parse_params(pairs: list[str]) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got: {pair}")
        params[key] = value
    return params


async def run_health(factory: ApiClientFactory) -> int:
    summary = await factory.get_health_summary()
    for status in summary.services:
        mark = "ok  " if status.healthy else "FAIL"
        detail = f" ({status.error})" if status.error else ""
        print(f"{mark} {status.name:<10} {status.latency_ms or 0:>5}ms{detail}")
    print(f"overall: {summary.status} ({summary.summary.healthy}/{summary.summary.total} healthy)")
    return 0 if summary.status == "healthy" else 1


async def run_get(factory: ApiClientFactory, service: str, path: str, params: dict[str, str]) -> int:
    client = factory.get_client(service)
    try:
        response = await client.fetch(path, params, RequestOptions(cache=0))
    except ApiError as exc:
        print(json.dumps(exc.to_dict(), indent=2, default=str))
        return 1
    print(response.model_dump_json(by_alias=True, indent=2))
    return 0


async def run(args: argparse.Namespace, config: ApiClientsConfig) -> int:
    async with ApiClientFactory(config) as factory:
        if args.token:
            factory.set_auth_token(args.token)
        if args.command == "health":
            return await run_health(factory)
        if args.command == "get":
            return await run_get(factory, args.service, args.path, parse_params(args.param))
        print(json.dumps(factory.get_config_summary(), indent=2))
        return 0


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    # Build config: defaults + env → CLI overrides
    config = ApiClientsConfig()
    config = apply_cli_overrides(config, args)
    setup_logging(config)

    try:
        code = asyncio.run(run(args, config))
    except ValueError as exc:
        parser.error(str(exc))
    except KeyboardInterrupt:
        logging.getLogger("sangha_api").info("Interrupted by user")
        sys.exit(130)

    sys.exit(code)


if __name__ == "__main__":
    main()
